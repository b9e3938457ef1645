from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

from ..models.calculation import Thresholds

"""Config loader for ``config/etl.yml``.

Responsibilities:
- Load YAML
- Validate against the bundled ``config_schema.json``
- Apply defaults (persist=true, timezone=UTC, thresholds 0.20 / 0.20)
"""

__all__ = [
    "DEFAULT_CONFIG_PATH",
    "SCHEMA_PATH",
    "ConfigError",
    "DatabaseConfig",
    "EtlConfig",
    "load_config",
]

DEFAULT_CONFIG_PATH = Path("config/etl.yml")
SCHEMA_PATH = Path(__file__).with_name("config_schema.json")


class ConfigError(Exception):
    pass


@dataclass(frozen=True)
class DatabaseConfig:
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    database: str | None = None
    dsn: str | None = None

    @property
    def is_empty(self) -> bool:
        return not any((self.host, self.port, self.user, self.password, self.database, self.dsn))


@dataclass(frozen=True)
class EtlConfig:
    source_directory: str
    master_data: str | None = None
    persist: bool = True
    timezone: str = "UTC"
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    thresholds: Thresholds = field(default_factory=Thresholds)


def _validate_config_schema(data: Any) -> None:
    """Validate config data against the bundled JSON schema.

    Raises:
        ConfigError: schema file missing / not JSON, or the data violates it
    """
    if not SCHEMA_PATH.exists():
        raise ConfigError(f"config schema not found: {SCHEMA_PATH}")

    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid schema file: {e}") from e
    except ValidationError as e:
        raise ConfigError(f"config validation failed: {e.message}") from e


def load_config(path: Path = DEFAULT_CONFIG_PATH) -> EtlConfig:
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e

    _validate_config_schema(data)

    db_raw = data.get("database") or {}
    db = DatabaseConfig(
        host=db_raw.get("host"),
        port=db_raw.get("port"),
        user=db_raw.get("user"),
        password=db_raw.get("password"),
        database=db_raw.get("database"),
        dsn=db_raw.get("dsn"),
    )
    th_raw = data.get("thresholds") or {}
    defaults = Thresholds()
    thresholds = Thresholds(
        ownership_threshold=float(th_raw.get("ownership_threshold", defaults.ownership_threshold)),
        equity_factor=float(th_raw.get("equity_factor", defaults.equity_factor)),
    )
    return EtlConfig(
        source_directory=data["source_directory"],
        master_data=data.get("master_data"),
        persist=data.get("persist", True),
        timezone=data.get("timezone", "UTC"),
        database=db,
        thresholds=thresholds,
    )
