import pytest
import pytest_asyncio
from pathlib import Path
from typing import AsyncIterator

from fastorm.config import ConnectionConfig
from fastorm.connection import Connection

from tests.utils import EVENTS_TABLE_SQL, POSTS_TABLE_SQL, USERS_TABLE_SQL


# --- Fixtures ---


@pytest.fixture
def db_config(tmp_path: Path) -> ConnectionConfig:
    """Provides a config pointing at a temporary database file."""
    return ConnectionConfig(database=str(tmp_path / "test.db"), pool_size=4)


@pytest_asyncio.fixture
async def connection(db_config: ConnectionConfig) -> AsyncIterator[Connection]:
    """Provides a pool-backed connection, shut down after the test."""
    conn = Connection(db_config)
    try:
        yield conn
    finally:
        await conn.end()


@pytest_asyncio.fixture
async def schema_connection(connection: Connection) -> AsyncIterator[Connection]:
    """Provides a connection whose database holds the users, posts and events tables."""
    await connection.query(USERS_TABLE_SQL)
    await connection.query(POSTS_TABLE_SQL)
    await connection.query(EVENTS_TABLE_SQL)
    yield connection
