from __future__ import annotations

import inspect
from typing import Any, Awaitable, Callable, Mapping, Optional, Union, get_args
from loguru import logger

from fastorm.connection import Connection
from fastorm.errors import ConfigurationError, DatabaseConnectionError, FastOrmError
from fastorm.query import QueryBuilder
from fastorm.types import HookEvent, QueryResult, Row

ModelHook = Callable[[Row, Optional[Connection]], Union[Awaitable[None], None]]

HOOK_EVENTS: tuple[str, ...] = get_args(HookEvent)


class Model:
    """CRUD facade over one table.

    Records are plain dicts keyed by column name and identified by their
    ``id`` column. Absence is reported with ``None`` or ``False``, never with an
    exception. Hooks registered with ``add_hook`` run in registration order
    around ``create``, ``update`` and ``delete``; a failing hook stops the
    sequence and propagates, without undoing a statement that already ran.
    """

    def __init__(self, table_name: str, connection: Optional[Connection] = None):
        if not table_name:
            raise ConfigurationError("Model requires a table name")
        self.table_name = table_name
        self._connection = connection
        self._hooks: dict[str, list[ModelHook]] = {}

    def set_connection(self, connection: Connection):
        self._connection = connection

    @property
    def connection(self) -> Connection:
        if self._connection is None:
            raise DatabaseConnectionError(
                f"Database connection has not been set for model {self.table_name}"
            )
        return self._connection

    def query(self) -> QueryBuilder:
        return QueryBuilder(self.table_name, self.connection)

    def add_hook(self, event: HookEvent, hook: ModelHook):
        if event not in HOOK_EVENTS:
            raise ConfigurationError(f"Unknown hook event: {event}")
        self._hooks.setdefault(event, []).append(hook)

    async def _run_hooks(self, event: HookEvent, record: Row):
        for hook in self._hooks.get(event, []):
            result = hook(record, self._connection)
            if inspect.isawaitable(result):
                await result

    async def _execute_write(self, sql: str, params: list[Any]) -> QueryResult:
        result = await self.connection.query(sql, params)
        if not isinstance(result, QueryResult):
            raise FastOrmError(f"Expected a write result from {self.table_name}, got a result set")
        return result

    async def find_by_id(self, id: Any) -> Optional[Row]:
        return await self.query().where("id", "=", id).first()

    async def find_all(self) -> list[Row]:
        return await self.query().get()

    async def create(self, data: Mapping[str, Any]) -> Row:
        if not data:
            raise ConfigurationError(f"Cannot insert an empty record into {self.table_name}")

        record = dict(data)
        await self._run_hooks("before_create", record)

        columns = list(data.keys())
        placeholders = ", ".join("?" for _ in columns)
        sql = f"INSERT INTO {self.table_name} ({', '.join(columns)}) VALUES ({placeholders})"
        result = await self._execute_write(sql, [data[column] for column in columns])

        record["id"] = result.insert_id
        await self._run_hooks("after_create", record)
        return record

    async def update(self, id: Any, data: Mapping[str, Any]) -> bool:
        existing = await self.find_by_id(id)
        if existing is None:
            return False
        if not data:
            logger.debug(f"Nothing to update for {self.table_name} id={id}")
            return False

        record = {**existing, **data}
        await self._run_hooks("before_update", record)

        columns = list(data.keys())
        set_clause = ", ".join(f"{column} = ?" for column in columns)
        sql = f"UPDATE {self.table_name} SET {set_clause} WHERE id = ?"
        result = await self._execute_write(sql, [*(data[column] for column in columns), id])

        if result.affected_rows > 0:
            await self._run_hooks("after_update", record)
            return True
        return False

    async def delete(self, id: Any) -> bool:
        record = await self.find_by_id(id)
        if record is None:
            return False
        await self._run_hooks("before_delete", record)

        sql = f"DELETE FROM {self.table_name} WHERE id = ?"
        result = await self._execute_write(sql, [id])

        if result.affected_rows > 0:
            await self._run_hooks("after_delete", record)
            return True
        return False
