from __future__ import annotations

import re
import aiofiles
import importlib.util
from pathlib import Path
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterator, NamedTuple, Optional
from loguru import logger

from fastorm.connection import Connection
from fastorm.errors import ConfigurationError, MigrationError

MigrationProcedure = Callable[[Connection], Awaitable[None]]

LEDGER_TABLE = "_fastorm_migrations"
MIGRATION_SUFFIX = ".py"

MIGRATION_TEMPLATE = '''from fastorm import Connection


async def up(connection: Connection) -> None:
    # await connection.query(
    #     """
    #     CREATE TABLE users (
    #         id INTEGER PRIMARY KEY AUTOINCREMENT,
    #         name TEXT NOT NULL,
    #         email TEXT UNIQUE NOT NULL,
    #         created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    #     )
    #     """
    # )
    pass


async def down(connection: Connection) -> None:
    # await connection.query("DROP TABLE IF EXISTS users")
    pass
'''


@dataclass(frozen=True)
class MigrationDefinition:
    name: str
    up: MigrationProcedure
    down: MigrationProcedure
    path: Optional[Path] = None


class MigrationStatus(NamedTuple):
    name: str
    applied: bool
    ran_at: Optional[Any]
    available: bool


class MigrationRegistry:
    """Migration definitions keyed by their unique, sortable name"""

    def __init__(self):
        self._definitions: dict[str, MigrationDefinition] = {}

    def __iter__(self) -> Iterator[MigrationDefinition]:
        return iter(self._definitions[name] for name in self.names())

    def __len__(self) -> int:
        return len(self._definitions)

    def __contains__(self, name: object) -> bool:
        return name in self._definitions

    def names(self) -> list[str]:
        return sorted(self._definitions)

    def get(self, name: str) -> Optional[MigrationDefinition]:
        return self._definitions.get(name)

    def register(self, definition: MigrationDefinition):
        if definition.name in self._definitions:
            raise ConfigurationError(f"Duplicate migration name: {definition.name}")
        self._definitions[definition.name] = definition

    def load_file(self, path: Path) -> MigrationDefinition:
        name = path.stem
        spec = importlib.util.spec_from_file_location(f"fastorm_migration_{name}", path)
        if spec is None or spec.loader is None:
            raise ConfigurationError(f"Cannot load migration file {path}")

        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)

        up = getattr(module, "up", None)
        down = getattr(module, "down", None)
        if not callable(up) or not callable(down):
            raise ConfigurationError(f"Migration {name} must define both up() and down()")

        definition = MigrationDefinition(name=name, up=up, down=down, path=path)
        self.register(definition)
        return definition

    def load_directory(self, directory: Path) -> "MigrationRegistry":
        if not directory.is_dir():
            logger.warning(f"Migrations directory {directory} does not exist")
            return self

        for path in sorted(directory.glob(f"*{MIGRATION_SUFFIX}")):
            if path.name.startswith(("_", ".")):
                continue
            try:
                self.load_file(path)
            except Exception as e:
                logger.error(f"Failed to load migration file {path.name}: {e}")
        return self


def slugify(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "_", name.strip().lower()).strip("_")


class MigrationRunner:
    """Reconciles migration files on disk with the ledger table.

    Both sets are re-read on every call. Pending migrations are applied in
    ascending name order; rollbacks take the most recently applied names in
    descending order. A failing procedure aborts the batch: the ledger keeps
    exactly the migrations that completed before it.
    """

    def __init__(self, connection: Optional[Connection], migrations_dir: str | Path, ledger_table: str = LEDGER_TABLE):
        self.connection = connection
        self.migrations_dir = Path(migrations_dir)
        self.ledger_table = ledger_table

    @property
    def _conn(self) -> Connection:
        if self.connection is None:
            raise ConfigurationError("Migration runner requires a database connection")
        return self.connection

    async def ensure_ledger(self):
        await self._conn.query(
            f"""
            CREATE TABLE IF NOT EXISTS {self.ledger_table} (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT UNIQUE NOT NULL,
                ran_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
            """
        )

    def load_migrations(self) -> MigrationRegistry:
        registry = MigrationRegistry().load_directory(self.migrations_dir)
        logger.debug(f"Discovered {len(registry)} migrations in {self.migrations_dir}")
        return registry

    async def _get_ledger_rows(self) -> list[dict[str, Any]]:
        return await self._conn.query(  # type: ignore[return-value]
            f"SELECT name, ran_at FROM {self.ledger_table} ORDER BY name ASC"
        )

    async def get_applied(self) -> list[str]:
        """Names of applied migrations, ascending"""
        await self.ensure_ledger()
        return [row["name"] for row in await self._get_ledger_rows()]

    async def get_pending(self) -> list[MigrationDefinition]:
        applied = set(await self.get_applied())
        return [migration for migration in self.load_migrations() if migration.name not in applied]

    async def migrate_up(self) -> list[str]:
        """Apply all pending migrations, returning the names applied in this run"""
        await self.ensure_ledger()
        available = self.load_migrations()
        applied = set(await self.get_applied())

        completed = []
        for migration in available:
            if migration.name in applied:
                continue

            logger.info(f"Running migration: {migration.name}")
            try:
                await migration.up(self._conn)
            except Exception as e:
                logger.error(f"Error running migration {migration.name}: {e}")
                raise MigrationError(migration.name, "up", str(e)) from e

            await self._conn.query(
                f"INSERT INTO {self.ledger_table} (name) VALUES (?)", [migration.name]
            )
            completed.append(migration.name)
            logger.info(f"Migration {migration.name} completed")

        if completed:
            logger.info(f"Applied {len(completed)} migration(s)")
        else:
            logger.info("Nothing to migrate, schema is up to date")
        return completed

    async def migrate_down(self, steps: int = 1) -> list[str]:
        """Roll back the last ``steps`` applied migrations, most recent first"""
        if steps < 1:
            raise ConfigurationError(f"steps must be a positive number, got {steps}")

        await self.ensure_ledger()
        applied = await self.get_applied()
        if not applied:
            logger.info("No migrations to rollback")
            return []

        to_rollback = list(reversed(applied[-steps:]))
        available = self.load_migrations()

        rolled_back = []
        for name in to_rollback:
            migration = available.get(name)
            if migration is None:
                logger.warning(
                    f"Migration {name} found in ledger but not in migration files. Skipping rollback"
                )
                continue

            logger.info(f"Rolling back migration: {name}")
            try:
                await migration.down(self._conn)
            except Exception as e:
                logger.error(f"Error rolling back migration {name}: {e}")
                raise MigrationError(name, "down", str(e)) from e

            await self._conn.query(f"DELETE FROM {self.ledger_table} WHERE name = ?", [name])
            rolled_back.append(name)
            logger.info(f"Migration {name} rolled back")

        logger.info(f"Rolled back {len(rolled_back)} migration(s)")
        return rolled_back

    async def status(self) -> list[MigrationStatus]:
        await self.ensure_ledger()
        ledger = {row["name"]: row["ran_at"] for row in await self._get_ledger_rows()}
        available = self.load_migrations()

        return [
            MigrationStatus(
                name=name,
                applied=name in ledger,
                ran_at=ledger.get(name),
                available=name in available,
            )
            for name in sorted(set(ledger) | set(available.names()))
        ]

    async def create_migration_file(self, name: str) -> Path:
        """Write a timestamp-prefixed migration stub and return its path"""
        slug = slugify(name)
        if not slug:
            raise ConfigurationError(f"Invalid migration name: {name!r}")

        timestamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
        self.migrations_dir.mkdir(parents=True, exist_ok=True)

        path = self.migrations_dir / f"{timestamp}_{slug}{MIGRATION_SUFFIX}"
        counter = 1
        while path.exists():
            path = self.migrations_dir / f"{timestamp}_{slug}_{counter}{MIGRATION_SUFFIX}"
            counter += 1

        async with aiofiles.open(path, mode="w") as f:
            await f.write(MIGRATION_TEMPLATE)

        logger.info(f"Migration file created: {path}")
        return path
