from __future__ import annotations

import asyncio
import aiosqlite
from typing import Any, Mapping, Optional, Sequence, Union
from loguru import logger

from fastorm.config import ConnectionConfig
from fastorm.errors import DatabaseConnectionError
from fastorm.types import QueryResult, Row

Params = Optional[Sequence[Any]]


class ConnectionPool:
    """A bounded set of aiosqlite connections to one database file.

    At most ``max_size`` connections are checked out at once; further
    ``acquire`` calls wait for a ``release``. Idle connections are kept open and
    reused. Every connection runs in autocommit mode, so a transaction only
    exists between an explicit ``BEGIN`` and its commit or rollback.
    """

    def __init__(
        self,
        database: str,
        max_size: int = 10,
        timeout: float = 5.0,
        pragmas: Optional[Mapping[str, Any]] = None,
    ):
        self.database = database
        self.max_size = max_size
        self.timeout = timeout
        self.pragmas = dict(pragmas or {})
        self._slots = asyncio.Semaphore(max_size)
        self._idle: list[aiosqlite.Connection] = []
        self._checked_out: set[aiosqlite.Connection] = set()
        self._closing: set[asyncio.Task] = set()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def checked_out(self) -> int:
        return len(self._checked_out)

    async def _connect(self) -> aiosqlite.Connection:
        conn = await aiosqlite.connect(
            self.database, timeout=self.timeout, isolation_level=None
        )
        conn.row_factory = aiosqlite.Row
        for name, value in self.pragmas.items():
            await conn.execute(f"PRAGMA {name}={value}")
        return conn

    async def acquire(self) -> aiosqlite.Connection:
        if self._closed:
            raise DatabaseConnectionError("Connection pool has been closed")

        await self._slots.acquire()
        try:
            if self._closed:
                raise DatabaseConnectionError("Connection pool has been closed")
            conn = self._idle.pop() if self._idle else await self._connect()
        except BaseException:
            self._slots.release()
            raise

        self._checked_out.add(conn)
        return conn

    def release(self, conn: aiosqlite.Connection):
        if conn not in self._checked_out:
            logger.warning("Ignoring release of a connection not checked out from this pool")
            return

        self._checked_out.discard(conn)
        if self._closed:
            task = asyncio.ensure_future(conn.close())
            self._closing.add(task)
            task.add_done_callback(self._closing.discard)
        else:
            self._idle.append(conn)
        self._slots.release()

    async def close(self):
        """Close idle connections and stop handing out new ones.

        Connections still checked out are closed when they are released.
        Calling ``close`` again waits for those late closes to finish.
        """
        if not self._closed:
            self._closed = True
            idle, self._idle = self._idle, []
            for conn in idle:
                await conn.close()
            logger.debug(
                f"Closed connection pool for {self.database} "
                f"({len(idle)} idle, {len(self._checked_out)} still checked out)"
            )
        if self._closing:
            await asyncio.gather(*self._closing)


async def execute(conn: aiosqlite.Connection, sql: str, params: Params = None) -> list[Row] | QueryResult:
    """Run one statement and shape its result.

    Statements producing a result set return a list of dict rows, everything
    else returns the generated row id and the affected row count.
    """
    async with conn.execute(sql, tuple(params or ())) as cursor:
        if cursor.description is not None:
            return [dict(row) for row in await cursor.fetchall()]
        return QueryResult(insert_id=cursor.lastrowid, affected_rows=cursor.rowcount)


class Connection:
    """Runs parameterized statements either through a pool or inside one transaction.

    Built from a ``ConnectionConfig`` (or a mapping of its fields) the instance
    owns a ``ConnectionPool`` and checks a connection out for every statement.
    Built from an already-open ``aiosqlite.Connection`` it is bound to that
    transaction for its whole life: it never checks out, releases or closes
    anything.
    """

    def __init__(self, config_or_connection: Union[ConnectionConfig, Mapping[str, Any], aiosqlite.Connection]):
        self.pool: Optional[ConnectionPool] = None
        self._transaction_connection: Optional[aiosqlite.Connection] = None

        if isinstance(config_or_connection, aiosqlite.Connection):
            self._transaction_connection = config_or_connection
            self._is_transaction_bound = True
        else:
            config = config_or_connection
            if not isinstance(config, ConnectionConfig):
                config = ConnectionConfig.from_dict(dict(config))
            self.pool = ConnectionPool(
                config.database,
                max_size=config.pool_size,
                timeout=config.timeout,
                pragmas=config.pragmas,
            )
            self._is_transaction_bound = False
            logger.debug(f"Created connection pool for {config.database} (size={config.pool_size})")

    @property
    def is_transaction_bound(self) -> bool:
        return self._is_transaction_bound

    async def _get_active_connection(self) -> aiosqlite.Connection:
        if self._is_transaction_bound and self._transaction_connection is not None:
            return self._transaction_connection
        if self.pool is not None:
            return await self.pool.acquire()
        raise DatabaseConnectionError("No active database connection or pool available")

    def release_connection(self, conn: Optional[aiosqlite.Connection]):
        if self._is_transaction_bound or conn is None or self.pool is None:
            return
        self.pool.release(conn)

    async def query(self, sql: str, params: Params = None) -> list[Row] | QueryResult:
        conn = None
        try:
            conn = await self._get_active_connection()
            return await execute(conn, sql, params)
        finally:
            if not self._is_transaction_bound:
                self.release_connection(conn)

    async def begin_transaction(self) -> aiosqlite.Connection:
        if self._is_transaction_bound:
            raise DatabaseConnectionError(
                "Cannot begin a transaction from a transactional connection"
            )
        conn = await self._get_active_connection()
        try:
            await conn.execute("BEGIN")
        except BaseException:
            self.release_connection(conn)
            raise
        return conn

    async def commit_transaction(self, conn: aiosqlite.Connection):
        await conn.commit()

    async def rollback_transaction(self, conn: aiosqlite.Connection):
        await conn.rollback()

    async def end(self):
        if self.pool is not None:
            await self.pool.close()

    async def __aenter__(self) -> "Connection":
        return self

    async def __aexit__(self, *exc_info):
        await self.end()
