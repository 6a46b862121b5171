from pathlib import Path
from typing import Any

from fastorm.connection import Connection

USERS_TABLE_SQL = """
CREATE TABLE users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    email TEXT,
    age INTEGER,
    vip BOOLEAN DEFAULT 0,
    status TEXT
)
"""

POSTS_TABLE_SQL = """
CREATE TABLE posts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL REFERENCES users(id),
    title TEXT NOT NULL,
    likes INTEGER DEFAULT 0
)
"""

EVENTS_TABLE_SQL = """
CREATE TABLE events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    direction TEXT NOT NULL
)
"""

MIGRATION_SOURCE = '''
async def up(connection):
    {up_failure}
    await connection.query(
        "INSERT INTO events (name, direction) VALUES (?, ?)", ["{name}", "up"]
    )


async def down(connection):
    {down_failure}
    await connection.query(
        "INSERT INTO events (name, direction) VALUES (?, ?)", ["{name}", "down"]
    )
'''

FAILURE = 'raise RuntimeError("boom")'


def write_migration(
    directory: Path, name: str, fail_up: bool = False, fail_down: bool = False
) -> Path:
    """Write a migration module that records each run in the events table."""
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"{name}.py"
    path.write_text(
        MIGRATION_SOURCE.format(
            name=name,
            up_failure=FAILURE if fail_up else "pass",
            down_failure=FAILURE if fail_down else "pass",
        )
    )
    return path


async def seed_users(connection: Connection, users: list[dict[str, Any]]) -> list[int]:
    ids = []
    for user in users:
        columns = list(user)
        placeholders = ", ".join("?" for _ in columns)
        result = await connection.query(
            f"INSERT INTO users ({', '.join(columns)}) VALUES ({placeholders})",
            [user[column] for column in columns],
        )
        ids.append(result.insert_id)
    return ids


async def get_events(connection: Connection) -> list[tuple[str, str]]:
    rows = await connection.query("SELECT name, direction FROM events ORDER BY id")
    return [(row["name"], row["direction"]) for row in rows]


async def get_ledger(connection: Connection) -> list[str]:
    rows = await connection.query("SELECT name FROM _fastorm_migrations ORDER BY name")
    return [row["name"] for row in rows]
