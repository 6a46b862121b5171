from fastorm.connection import Connection
from fastorm.migrations import LEDGER_TABLE
from fastorm.types import ColumnInfo


class DatabaseIntrospector:
    def __init__(self, connection: Connection):
        self.connection = connection

    async def list_tables(self) -> list[str]:
        """User tables, excluding SQLite internals and the migration ledger"""
        rows = await self.connection.query(
            "SELECT name FROM sqlite_master "
            "WHERE type = 'table' AND name NOT LIKE 'sqlite_%' AND name != ? "
            "ORDER BY name",
            [LEDGER_TABLE],
        )
        return [row["name"] for row in rows]  # type: ignore[index]

    async def list_columns(self, table: str) -> list[ColumnInfo]:
        rows = await self.connection.query(f"PRAGMA table_info({table})")
        primary_keys = [row for row in rows if row["pk"]]  # type: ignore[index]

        columns: list[ColumnInfo] = []
        for row in rows:  # type: ignore[union-attr]
            native_type = row["type"] or ""
            is_primary = bool(row["pk"])
            # A lone INTEGER PRIMARY KEY aliases the rowid and is generated on insert
            auto_increment = (
                is_primary and len(primary_keys) == 1 and native_type.upper() == "INTEGER"
            )
            columns.append(
                ColumnInfo(
                    name=row["name"],
                    native_type=native_type,
                    nullable=not row["notnull"] and not is_primary,
                    key="PRI" if is_primary else "",
                    default=row["dflt_value"],
                    extra="auto_increment" if auto_increment else "",
                )
            )
        return columns
