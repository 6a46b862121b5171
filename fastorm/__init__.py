from fastorm.config import ConnectionConfig, load_config
from fastorm.connection import Connection, ConnectionPool
from fastorm.errors import (
    ConfigurationError,
    DatabaseConnectionError,
    FastOrmError,
    MigrationError,
)
from fastorm.migrations import MigrationDefinition, MigrationRegistry, MigrationRunner
from fastorm.model import Model, ModelHook
from fastorm.orm import FastOrm
from fastorm.query import QueryBuilder
from fastorm.types import QueryResult, Row

__all__ = [
    "ConfigurationError",
    "Connection",
    "ConnectionConfig",
    "ConnectionPool",
    "DatabaseConnectionError",
    "FastOrm",
    "FastOrmError",
    "MigrationDefinition",
    "MigrationError",
    "MigrationRegistry",
    "MigrationRunner",
    "Model",
    "ModelHook",
    "QueryBuilder",
    "QueryResult",
    "Row",
    "load_config",
]
