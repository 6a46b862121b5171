import asyncio
from pathlib import Path
from typing import Optional
from loguru import logger
from typer import Argument, Exit, Option, Typer, echo

from fastorm.config import ConnectionConfig, load_config
from fastorm.connection import Connection
from fastorm.errors import FastOrmError
from fastorm.migrations import MigrationRunner
from fastorm.schema import DatabaseIntrospector, ModelGenerator, SchemaFileReader

DEFAULT_MIGRATIONS_DIR = "migrations"

migration_app = Typer(help="Apply, roll back and inspect migrations.")
generate_app = Typer(help="Generate model modules.")

app = Typer(help="fastorm: query builder, models and migrations for SQLite.")
app.add_typer(migration_app, name="migrate")
app.add_typer(generate_app, name="generate")

ConfigOption = Option(None, "--config", "-c", help="Path to a JSON configuration file")
DatabaseOption = Option(None, "--database", "-d", help="Path to the SQLite database")
DirOption = Option(DEFAULT_MIGRATIONS_DIR, "--dir", help="Directory for migration files")


def _get_config(config: Optional[str], database: Optional[str]) -> ConnectionConfig:
    try:
        return load_config(config, database=database)
    except FastOrmError as e:
        logger.error(str(e))
        raise Exit(code=1)


def _run(coro):
    try:
        return asyncio.run(coro)
    except FastOrmError as e:
        logger.error(str(e))
        raise Exit(code=1)
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        raise Exit(code=1)


async def _migrate_up(config: ConnectionConfig, migrations_dir: str):
    async with Connection(config) as connection:
        logger.info(f"Connecting to database for migrations: {config.database}")
        applied = await MigrationRunner(connection, migrations_dir).migrate_up()
    logger.opt(colors=True).info(f"<g>Migrations UP complete ({len(applied)} applied)</g>")


async def _migrate_down(config: ConnectionConfig, migrations_dir: str, steps: int):
    async with Connection(config) as connection:
        logger.info(f"Connecting to database for migrations: {config.database}")
        rolled_back = await MigrationRunner(connection, migrations_dir).migrate_down(steps)
    logger.opt(colors=True).info(
        f"<g>Migrations DOWN complete ({len(rolled_back)} of {steps} step(s) rolled back)</g>"
    )


async def _migrate_status(config: ConnectionConfig, migrations_dir: str):
    async with Connection(config) as connection:
        statuses = await MigrationRunner(connection, migrations_dir).status()

    if not statuses:
        logger.info("No migrations found")
    for status in statuses:
        if not status.available:
            logger.opt(colors=True).warning(f"<y>[missing]</y> {status.name} (ran at {status.ran_at})")
        elif status.applied:
            logger.opt(colors=True).info(f"<g>[applied]</g> {status.name} (ran at {status.ran_at})")
        else:
            logger.opt(colors=True).info(f"<e>[pending]</e> {status.name}")


async def _make_migration(name: str, migrations_dir: str):
    # Scaffolding does not touch the database
    path = await MigrationRunner(None, migrations_dir).create_migration_file(name)
    echo(str(path))


async def _generate_from_db(config: ConnectionConfig, output_dir: str):
    generator = ModelGenerator()
    generated: list[Path] = []

    async with Connection(config) as connection:
        introspector = DatabaseIntrospector(connection)
        tables = await introspector.list_tables()
        if not tables:
            logger.warning(f"No tables found in database '{config.database}'")
            return

        for table in tables:
            columns = await introspector.list_columns(table)
            if not columns:
                logger.warning(f"Skipping table '{table}' (no columns found)")
                continue
            generated.append(await generator.write(table, columns, output_dir))

    logger.opt(colors=True).info(f"<g>Generated {len(generated)} model file(s)</g>")
    for path in generated:
        logger.info(f"- {path}")


async def _generate_from_schema(schema_file: str, output_dir: str):
    schema = await SchemaFileReader().read(schema_file)
    path = await ModelGenerator().write(schema["table_name"], schema["columns"], output_dir)
    logger.opt(colors=True).info(f"<g>Generated model file: {path}</g>")


@app.command("make-migration")
def make_migration(name: str = Argument(...), migrations_dir: str = DirOption):
    _run(_make_migration(name, migrations_dir))


@migration_app.command()
def up(
    config: Optional[str] = ConfigOption,
    database: Optional[str] = DatabaseOption,
    migrations_dir: str = DirOption,
):
    _run(_migrate_up(_get_config(config, database), migrations_dir))


@migration_app.command()
def down(
    steps: int = Option(1, "--steps", "-s", min=1, help="Number of migrations to roll back"),
    config: Optional[str] = ConfigOption,
    database: Optional[str] = DatabaseOption,
    migrations_dir: str = DirOption,
):
    _run(_migrate_down(_get_config(config, database), migrations_dir, steps))


@migration_app.command()
def status(
    config: Optional[str] = ConfigOption,
    database: Optional[str] = DatabaseOption,
    migrations_dir: str = DirOption,
):
    _run(_migrate_status(_get_config(config, database), migrations_dir))


@generate_app.command("from-db")
def from_db(
    output_dir: str = Argument(...),
    config: Optional[str] = ConfigOption,
    database: Optional[str] = DatabaseOption,
):
    _run(_generate_from_db(_get_config(config, database), output_dir))


@generate_app.command("from-schema")
def from_schema(schema_file: str = Argument(...), output_dir: str = Argument(...)):
    _run(_generate_from_schema(schema_file, output_dir))


if __name__ == "__main__":
    app()
