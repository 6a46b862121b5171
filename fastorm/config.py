import os
import orjson
from pathlib import Path
from dataclasses import dataclass, field, fields
from typing import Any, Optional

from fastorm.errors import ConfigurationError

ENV_PREFIX = "FASTORM_"


def _default_pragmas() -> dict[str, Any]:
    return {"foreign_keys": "ON"}


@dataclass
class ConnectionConfig:
    """Settings for a pool-backed connection to a SQLite database file."""

    database: str
    pool_size: int = 10
    timeout: float = 5.0
    pragmas: dict[str, Any] = field(default_factory=_default_pragmas)

    def __post_init__(self):
        if not self.database:
            raise ConfigurationError(
                "Database name is not provided. Use --database, a config file or FASTORM_DATABASE"
            )
        self.database = str(self.database)
        self.pool_size = int(self.pool_size)
        self.timeout = float(self.timeout)
        if self.pool_size < 1:
            raise ConfigurationError(f"pool_size must be at least 1, got {self.pool_size}")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ConnectionConfig":
        # Unknown keys are ignored so that shared config files can carry extra sections
        names = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in names})

    @classmethod
    def from_file(cls, path: str | Path) -> "ConnectionConfig":
        return cls.from_dict(read_config_file(path))


def read_config_file(path: str | Path) -> dict[str, Any]:
    try:
        content = Path(path).read_bytes()
    except OSError as e:
        raise ConfigurationError(f"Could not read config file {path}: {e}") from e

    try:
        data = orjson.loads(content)
    except orjson.JSONDecodeError as e:
        raise ConfigurationError(f"Could not parse config file {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a JSON object")
    return data


def _from_env() -> dict[str, Any]:
    values = {}
    for name in ("database", "pool_size", "timeout"):
        if (value := os.environ.get(f"{ENV_PREFIX}{name.upper()}")) is not None:
            values[name] = value
    return values


def load_config(config_file: Optional[str | Path] = None, **overrides: Any) -> ConnectionConfig:
    """Merge environment, config file and explicit overrides, later sources winning"""
    values: dict[str, Any] = _from_env()
    if config_file:
        values.update(read_config_file(config_file))
    values.update({k: v for k, v in overrides.items() if v is not None})

    if not values.get("database"):
        raise ConfigurationError(
            "Database name is not provided. Use --database, a config file or FASTORM_DATABASE"
        )
    return ConnectionConfig.from_dict(values)
