"""
Configuration loader (``parts_ledger.config``).

Responsibility
--------------
Builds the frozen ``LedgerSettings`` used to initialize the engine and the
orchestrating services.  Values come from three layers, later layers
winning: built-in defaults, an optional YAML file, and ``PARTS_LEDGER_*``
environment variables.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown key or invalid value  -> ``ConfigurationError``.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Mapping

import yaml

from parts_ledger.exceptions import ConfigurationError

ENV_PREFIX = "PARTS_LEDGER_"
ENV_CONFIG_FILE = "PARTS_LEDGER_CONFIG"

DEFAULT_DATABASE_URL = "sqlite:///parts_ledger.db"


@dataclass(frozen=True)
class LedgerSettings:
    """Runtime settings for the ledger core."""

    database_url: str = DEFAULT_DATABASE_URL
    echo: bool = False
    pool_size: int = 10
    max_overflow: int = 5
    pool_timeout: int = 30
    # Seconds a SQLite writer waits for the database lock
    sqlite_busy_timeout: float = 30.0
    # Attempts for a sale that loses the batch race before giving up
    max_allocation_attempts: int = 3
    money_places: int = 2
    margin_places: int = 6
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if self.max_allocation_attempts < 1:
            raise ConfigurationError(
                "max_allocation_attempts", "must be at least 1"
            )
        for name in ("money_places", "margin_places"):
            if getattr(self, name) < 0:
                raise ConfigurationError(name, "must not be negative")
        if self.pool_size < 1:
            raise ConfigurationError("pool_size", "must be at least 1")
        if not self.database_url:
            raise ConfigurationError("database_url", "must not be empty")

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")


_FIELD_TYPES: dict[str, type] = {
    "database_url": str,
    "echo": bool,
    "pool_size": int,
    "max_overflow": int,
    "pool_timeout": int,
    "sqlite_busy_timeout": float,
    "max_allocation_attempts": int,
    "money_places": int,
    "margin_places": int,
    "log_level": str,
}


def _coerce(key: str, value: Any) -> Any:
    """Convert a YAML or environment value to the field's declared type."""
    target = _FIELD_TYPES[key]
    if isinstance(value, target) and not (target is int and isinstance(value, bool)):
        return value
    if target is bool:
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in ("1", "true", "yes", "on"):
                return True
            if lowered in ("0", "false", "no", "off"):
                return False
        raise ConfigurationError(key, f"expected a boolean, got {value!r}")
    try:
        return target(value)
    except (TypeError, ValueError):
        raise ConfigurationError(
            key, f"expected {target.__name__}, got {value!r}"
        ) from None


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ConfigurationError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigurationError(str(path), "top-level YAML value must be a mapping")
    return data


def settings_from_mapping(
    data: Mapping[str, Any],
    base: LedgerSettings | None = None,
) -> LedgerSettings:
    """Overlay a mapping of setting names onto ``base`` (or the defaults)."""
    known = {f.name for f in fields(LedgerSettings)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigurationError(", ".join(unknown), "unknown setting")
    values = {key: _coerce(key, value) for key, value in data.items()}
    return replace(base or LedgerSettings(), **values)


def _env_overrides(environ: Mapping[str, str]) -> dict[str, str]:
    overrides: dict[str, str] = {}
    for name in _FIELD_TYPES:
        env_key = f"{ENV_PREFIX}{name.upper()}"
        if env_key in environ:
            overrides[name] = environ[env_key]
    return overrides


def load_settings(
    path: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> LedgerSettings:
    """
    Build settings from defaults, an optional YAML file, then environment.

    The file path defaults to ``$PARTS_LEDGER_CONFIG`` when not given.
    """
    env = os.environ if environ is None else environ
    settings = LedgerSettings()

    config_path = path or env.get(ENV_CONFIG_FILE)
    if config_path:
        settings = settings_from_mapping(load_yaml_file(Path(config_path)), settings)

    overrides = _env_overrides(env)
    if overrides:
        settings = settings_from_mapping(overrides, settings)
    return settings
