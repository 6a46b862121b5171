import orjson
import aiofiles
from pathlib import Path

from fastorm.errors import ConfigurationError
from fastorm.types import TableSchema


class SchemaFileReader:
    supported_extensions = (".json",)

    async def read(self, path: str | Path) -> TableSchema:
        path = Path(path)
        if path.suffix.lower() not in self.supported_extensions:
            raise ConfigurationError(
                f"Unsupported schema file extension: {path.suffix}. Only .json is supported"
            )

        try:
            async with aiofiles.open(path, mode="rb") as f:
                content = await f.read()
        except OSError as e:
            raise ConfigurationError(f"Failed to read schema file '{path}': {e}") from e

        try:
            schema = orjson.loads(content)
        except orjson.JSONDecodeError as e:
            raise ConfigurationError(f"Failed to parse schema file '{path}': {e}") from e

        if not isinstance(schema, dict) or not schema.get("table_name"):
            raise ConfigurationError(f"Schema file '{path}' must define 'table_name'")
        if not isinstance(schema.get("columns"), list) or not schema["columns"]:
            raise ConfigurationError(f"Schema file '{path}' must define a non-empty 'columns' list")
        for column in schema["columns"]:
            if not isinstance(column, dict) or not column.get("name"):
                raise ConfigurationError(f"Schema file '{path}' has a column without a name")

        return schema  # type: ignore[return-value]
