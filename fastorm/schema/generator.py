import keyword
import re
import aiofiles
from pathlib import Path
from typing import Sequence, Union

from fastorm.schema.type_mapper import map_native_type
from fastorm.types import ColumnDefinition, ColumnInfo

Column = Union[ColumnInfo, ColumnDefinition]

HEADER = """from datetime import date, datetime
from typing import Any, Optional, TypedDict

from fastorm import Connection, Model
"""


def to_pascal_case(name: str) -> str:
    return "".join(part[:1].upper() + part[1:] for part in re.split(r"[^0-9a-zA-Z]+", name) if part)


def to_snake_case(name: str) -> str:
    name = re.sub(r"(?<=[a-z0-9])([A-Z])", r"_\1", name)
    return re.sub(r"[^0-9a-zA-Z]+", "_", name).strip("_").lower()


def _describe(column: Column) -> tuple[str, str, bool]:
    """Return (name, annotation, optional) for an introspected or declared column"""
    if "native_type" in column and "extra" in column:
        nullable = bool(column["nullable"])
        annotation = map_native_type(column["native_type"], nullable)
        optional = nullable or column["default"] is not None or "auto_increment" in column["extra"]
        return column["name"], annotation, optional

    nullable = bool(column.get("nullable"))
    if column.get("type"):
        annotation = f"Optional[{column['type']}]" if nullable else column["type"]
    else:
        annotation = map_native_type(column.get("native_type", ""), nullable)
    optional = nullable or "default" in column or bool(column.get("auto_increment"))
    return column["name"], annotation, optional


def is_field_name(name: str) -> bool:
    return name.isidentifier() and not keyword.iskeyword(name)


def _class_fields(fields: list[tuple[str, str]]) -> list[str]:
    if not fields:
        return ["    pass"]
    return [f"    {name}: {annotation}" for name, annotation in fields]


def _functional_fields(fields: list[tuple[str, str]]) -> str:
    return "{" + ", ".join(f"{name!r}: {annotation}" for name, annotation in fields) + "}"


class ModelGenerator:
    def render(self, table_name: str, columns: Sequence[Column]) -> str:
        class_name = to_pascal_case(table_name)
        described = [_describe(column) for column in columns]
        required = [(name, annotation) for name, annotation, optional in described if not optional]
        optional = [(name, annotation) for name, annotation, is_optional in described if is_optional]

        lines = [HEADER, ""]
        if all(is_field_name(name) for name, _, _ in described):
            lines.append(f"class {class_name}Required(TypedDict):")
            lines.extend(_class_fields(required))
            lines += ["", ""]
            lines.append(f"class {class_name}Record({class_name}Required, total=False):")
            lines.extend(_class_fields(optional))
        else:
            # Keys that are not valid identifiers only fit the functional syntax
            lines.append(
                f'{class_name}Required = TypedDict("{class_name}Required", {_functional_fields(required)})'
            )
            lines.append(
                f'{class_name}Optional = TypedDict("{class_name}Optional", {_functional_fields(optional)}, total=False)'
            )
            lines += ["", ""]
            lines.append(f"class {class_name}Record({class_name}Required, {class_name}Optional):")
            lines.append("    pass")

        lines += ["", ""]
        lines.append(f"class {class_name}(Model):")
        lines.append(f'    """Model for the {table_name} table"""')
        lines.append("")
        lines.append(f'    table = "{table_name}"')
        lines.append("")
        lines.append("    def __init__(self, connection: Optional[Connection] = None):")
        lines.append("        super().__init__(self.table, connection)")
        return "\n".join(lines) + "\n"

    async def write(self, table_name: str, columns: Sequence[Column], output_dir: str | Path) -> Path:
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        path = output_dir / f"{to_snake_case(table_name)}.py"

        async with aiofiles.open(path, mode="w") as f:
            await f.write(self.render(table_name, columns))
        return path
