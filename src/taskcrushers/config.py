"""
Configuration management.

This module defines ALL configuration for the store tooling. All config keys
are defined here; no other module should invent config keys.

Key invariants:
- Exactly one connection string (database_url) selects the document store
- A missing connection string is a fatal startup error, never a per-call error
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

DATABASE_URL_ENV = "TASKCRUSHERS_DB_URL"


class ConfigValidationError(Exception):
    """Raised when configuration validation fails."""

    pass


def _parse_bool(value: str) -> bool | None:
    lowered = value.strip().lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off"):
        return False
    return None


@dataclass
class MigrationSettings:
    """Migration runner defaults (CLI flags override per invocation)."""

    # Keep running later migrations after one fails
    continue_on_error: bool = False
    # Migrations reverted by `rollback` without --steps
    rollback_steps: int = 1
    # Treat a failed index creation as a failed migration
    strict_indexes: bool = False


@dataclass
class Config:
    """Application configuration.

    All configuration is centralized here. No other module should define
    configuration keys or defaults.
    """

    database_url: str
    # Seconds to wait on a locked database before failing
    busy_timeout_seconds: float = 30.0
    migrations: MigrationSettings = field(default_factory=MigrationSettings)

    def validate(self) -> list[str]:
        """Validate configuration completeness and consistency.

        Returns:
            List of validation errors (empty if valid)
        """
        errors: list[str] = []

        if not self.database_url or not self.database_url.strip():
            errors.append(
                f"database_url is required (set {DATABASE_URL_ENV} or database_url in config)"
            )

        if self.busy_timeout_seconds <= 0:
            errors.append("busy_timeout_seconds must be > 0")

        if self.migrations.rollback_steps < 1:
            errors.append("migrations.rollback_steps must be >= 1")

        return errors

    def require_valid(self) -> None:
        """Raise ConfigValidationError if ``validate`` reports errors."""
        errors = self.validate()
        if errors:
            raise ConfigValidationError("; ".join(errors))


def load_config(config_path: Path) -> Config:
    """
    Load configuration from YAML file.

    The file is optional. Environment variables override config values:
    - TASKCRUSHERS_DB_URL (document store connection string)
    - TASKCRUSHERS_DB_TIMEOUT (busy timeout in seconds)
    - TASKCRUSHERS_STRICT_INDEXES (true/false)
    """
    if config_path.exists():
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
    else:
        data = {}

    migration_data = data.get("migrations", {}) or {}
    strict_indexes = migration_data.get("strict_indexes", False)
    strict_env = _parse_bool(os.environ.get("TASKCRUSHERS_STRICT_INDEXES", ""))
    if strict_env is not None:
        strict_indexes = strict_env

    migrations = MigrationSettings(
        continue_on_error=migration_data.get("continue_on_error", False),
        rollback_steps=int(migration_data.get("rollback_steps", 1)),
        strict_indexes=strict_indexes,
    )

    timeout_env = os.environ.get("TASKCRUSHERS_DB_TIMEOUT", "")
    busy_timeout = data.get("busy_timeout_seconds", 30.0)
    if timeout_env:
        try:
            busy_timeout = float(timeout_env)
        except ValueError:
            raise ConfigValidationError(
                f"TASKCRUSHERS_DB_TIMEOUT must be a number, got {timeout_env!r}"
            ) from None

    return Config(
        database_url=os.environ.get(DATABASE_URL_ENV) or data.get("database_url") or "",
        busy_timeout_seconds=float(busy_timeout),
        migrations=migrations,
    )


def create_default_config(config_path: Path) -> None:
    """Create a default configuration file."""
    default_config = """# Taskcrushers store configuration
#
# The connection string can also come from TASKCRUSHERS_DB_URL,
# which takes precedence over this file.

database_url: "sqlite:///data/taskcrushers.db"

# Seconds to wait on a locked database before failing
busy_timeout_seconds: 30

migrations:
  continue_on_error: false   # Keep going after a failed migration
  rollback_steps: 1          # Default number of migrations to roll back
  strict_indexes: false      # Fail a migration if any of its indexes fails
"""

    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, "w") as f:
        f.write(default_config)
