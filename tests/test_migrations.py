import pytest
from pathlib import Path

from fastorm.connection import Connection
from fastorm.errors import ConfigurationError, MigrationError
from fastorm.migrations import (
    LEDGER_TABLE,
    MigrationDefinition,
    MigrationRegistry,
    MigrationRunner,
)
from tests.utils import get_events, get_ledger, write_migration

A = "20240101000000_create_a"
B = "20240102000000_create_b"
C = "20240103000000_create_c"


# --- Fixtures ---


@pytest.fixture
def migrations_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "migrations"
    # Written out of order on purpose: the listing order must not matter
    for name in (C, A, B):
        write_migration(directory, name)
    return directory


@pytest.fixture
def runner(schema_connection: Connection, migrations_dir: Path) -> MigrationRunner:
    return MigrationRunner(schema_connection, migrations_dir)


# --- Test Cases ---


@pytest.mark.asyncio
async def test_ensure_ledger_is_idempotent(runner: MigrationRunner, schema_connection: Connection):
    await runner.ensure_ledger()
    await runner.ensure_ledger()

    rows = await schema_connection.query(
        "SELECT name FROM sqlite_master WHERE type = 'table' AND name = ?", [LEDGER_TABLE]
    )
    assert len(rows) == 1
    columns = await schema_connection.query(f"PRAGMA table_info({LEDGER_TABLE})")
    assert [column["name"] for column in columns] == ["id", "name", "ran_at"]


@pytest.mark.asyncio
async def test_migrate_up_applies_in_name_order(runner: MigrationRunner, schema_connection: Connection):
    applied = await runner.migrate_up()

    assert applied == [A, B, C]
    assert await get_events(schema_connection) == [(A, "up"), (B, "up"), (C, "up")]
    assert await get_ledger(schema_connection) == [A, B, C]

    # Nothing left to do on a second run
    assert await runner.migrate_up() == []
    assert len(await get_events(schema_connection)) == 3


@pytest.mark.asyncio
async def test_migrate_up_only_runs_pending(runner: MigrationRunner, schema_connection: Connection, migrations_dir: Path):
    await runner.migrate_up()
    d = "20240104000000_create_d"
    write_migration(migrations_dir, d)

    assert [m.name for m in await runner.get_pending()] == [d]
    assert await runner.migrate_up() == [d]
    assert await get_ledger(schema_connection) == [A, B, C, d]


@pytest.mark.asyncio
async def test_migrate_up_failure_aborts_batch(schema_connection: Connection, tmp_path: Path):
    directory = tmp_path / "failing"
    write_migration(directory, A)
    write_migration(directory, B, fail_up=True)
    write_migration(directory, C)
    runner = MigrationRunner(schema_connection, directory)

    with pytest.raises(MigrationError) as exc_info:
        await runner.migrate_up()

    assert exc_info.value.name == B
    assert exc_info.value.direction == "up"
    assert isinstance(exc_info.value.__cause__, RuntimeError)
    # A stays applied, C was never attempted
    assert await get_ledger(schema_connection) == [A]
    assert await get_events(schema_connection) == [(A, "up")]


@pytest.mark.asyncio
async def test_migrate_down_reverse_order(runner: MigrationRunner, schema_connection: Connection):
    await runner.migrate_up()

    rolled_back = await runner.migrate_down(2)

    assert rolled_back == [C, B]
    assert await get_ledger(schema_connection) == [A]
    assert (await get_events(schema_connection))[-2:] == [(C, "down"), (B, "down")]


@pytest.mark.asyncio
async def test_migrate_down_defaults_to_one_step(runner: MigrationRunner, schema_connection: Connection):
    await runner.migrate_up()
    assert await runner.migrate_down() == [C]
    assert await runner.migrate_down(10) == [B, A]
    assert await runner.migrate_down() == []
    assert await get_ledger(schema_connection) == []


@pytest.mark.asyncio
async def test_migrate_down_skips_missing_definition(runner: MigrationRunner, schema_connection: Connection, migrations_dir: Path):
    await runner.migrate_up()
    (migrations_dir / f"{C}.py").unlink()

    rolled_back = await runner.migrate_down(2)

    # C is skipped and stays in the ledger, B is still rolled back
    assert rolled_back == [B]
    assert await get_ledger(schema_connection) == [A, C]


@pytest.mark.asyncio
async def test_migrate_down_failure_aborts(schema_connection: Connection, tmp_path: Path):
    directory = tmp_path / "failing"
    write_migration(directory, A)
    write_migration(directory, B, fail_down=True)
    write_migration(directory, C)
    runner = MigrationRunner(schema_connection, directory)
    await runner.migrate_up()

    with pytest.raises(MigrationError) as exc_info:
        await runner.migrate_down(3)

    assert exc_info.value.direction == "down"
    assert await get_ledger(schema_connection) == [A, B]


@pytest.mark.asyncio
async def test_migrate_down_rejects_invalid_steps(runner: MigrationRunner):
    with pytest.raises(ConfigurationError):
        await runner.migrate_down(0)


@pytest.mark.asyncio
async def test_status(runner: MigrationRunner, migrations_dir: Path):
    await runner.migrate_up()
    await runner.migrate_down()
    (migrations_dir / f"{A}.py").unlink()

    statuses = {status.name: status for status in await runner.status()}

    assert list(statuses) == [A, B, C]
    assert statuses[A].applied and not statuses[A].available
    assert statuses[A].ran_at is not None
    assert statuses[B].applied and statuses[B].available
    assert not statuses[C].applied and statuses[C].available


@pytest.mark.asyncio
async def test_broken_migration_files_are_skipped(schema_connection: Connection, tmp_path: Path):
    directory = tmp_path / "mixed"
    write_migration(directory, A)
    (directory / "20240102000000_broken.py").write_text("def up(:\n")
    (directory / "20240103000000_incomplete.py").write_text("async def up(connection):\n    pass\n")
    (directory / "__init__.py").write_text("")
    (directory / "notes.txt").write_text("not a migration")

    runner = MigrationRunner(schema_connection, directory)
    assert runner.load_migrations().names() == [A]
    assert await runner.migrate_up() == [A]


@pytest.mark.asyncio
async def test_missing_directory_means_no_migrations(schema_connection: Connection, tmp_path: Path):
    runner = MigrationRunner(schema_connection, tmp_path / "nowhere")
    assert await runner.migrate_up() == []


def test_registry_orders_and_rejects_duplicates():
    async def noop(connection):
        pass

    registry = MigrationRegistry()
    for name in (C, A, B):
        registry.register(MigrationDefinition(name, noop, noop))

    assert [definition.name for definition in registry] == [A, B, C]
    assert A in registry and len(registry) == 3
    assert registry.get("missing") is None

    with pytest.raises(ConfigurationError):
        registry.register(MigrationDefinition(A, noop, noop))


@pytest.mark.asyncio
async def test_create_migration_file(tmp_path: Path):
    directory = tmp_path / "new"
    runner = MigrationRunner(None, directory)

    first = await runner.create_migration_file("Create Users")
    second = await runner.create_migration_file("create users")

    assert first.parent == directory
    assert first.name.endswith("_create_users.py")
    assert first.name[:14].isdigit()
    assert second != first

    registry = MigrationRegistry().load_directory(directory)
    assert registry.names() == sorted([first.stem, second.stem])

    with pytest.raises(ConfigurationError):
        await runner.create_migration_file("!!!")


@pytest.mark.asyncio
async def test_runner_without_connection(tmp_path: Path):
    with pytest.raises(ConfigurationError):
        await MigrationRunner(None, tmp_path).migrate_up()
