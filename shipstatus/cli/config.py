"""YAML configuration loader with env var resolution and Pydantic validation.

Loads config from (priority order):
1. --config <path> CLI flag
2. ./shipstatus.yaml (working directory)
3. ~/.shipstatus/config.yaml (user home)

Environment variables override YAML: SHIPSTATUS_<SECTION>_<KEY>.
${VAR} references in YAML values resolve from environment at load time.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any, Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml
from pydantic import BaseModel, Field, field_validator

from shipstatus.services.clock import DEFAULT_TIMEZONE

logger = logging.getLogger(__name__)

_ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")


def resolve_env_vars(value: str) -> str:
    """Resolve ${VAR} references in a string from environment variables.

    Missing env vars resolve to empty string.
    """
    def _replace(match: re.Match) -> str:
        return os.environ.get(match.group(1), "")

    return _ENV_VAR_PATTERN.sub(_replace, value)


def _resolve_env_vars_recursive(data: Any) -> Any:
    if isinstance(data, str):
        return resolve_env_vars(data)
    elif isinstance(data, dict):
        return {k: _resolve_env_vars_recursive(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_resolve_env_vars_recursive(item) for item in data]
    return data


class DatabaseConfig(BaseModel):
    """Database connection settings.

    When url is empty the connection module falls back to DATABASE_URL,
    SHIPSTATUS_DB_PATH and finally the per-user data directory.
    """

    url: str = ""
    echo: bool = False


class SchedulerConfig(BaseModel):
    """Business timezone ("today" for every status decision) and run hours."""

    timezone: str = DEFAULT_TIMEZONE
    daily_hour: int = Field(default=1, ge=0, le=23)
    extra_hours: list[int] = [7, 13, 19]
    run_on_startup: bool = False

    @field_validator("timezone")
    @classmethod
    def known_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {value}") from e
        return value

    @field_validator("extra_hours")
    @classmethod
    def hours_in_range(cls, value: list[int]) -> list[int]:
        bad = [h for h in value if h < 0 or h > 23]
        if bad:
            raise ValueError(f"Hours must be between 0 and 23, got {bad}")
        return value

    @property
    def run_hours(self) -> list[int]:
        """All run hours, sorted and de-duplicated."""
        return sorted({self.daily_hour, *self.extra_hours})


class ReconciliationConfig(BaseModel):
    """Batch reconciliation settings."""

    batch_limit: int = Field(default=1000, ge=1)
    actor: str = "scheduled_job"


class LoggingConfig(BaseModel):
    """Logging settings applied by the CLI at startup."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: str = "%(asctime)s %(levelname)s %(name)s: %(message)s"

    @field_validator("level", mode="before")
    @classmethod
    def upper_level(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value


class ShipStatusConfig(BaseModel):
    """Top-level configuration for the shipment status engine."""

    database: DatabaseConfig = DatabaseConfig()
    scheduler: SchedulerConfig = SchedulerConfig()
    reconciliation: ReconciliationConfig = ReconciliationConfig()
    logging: LoggingConfig = LoggingConfig()


def _find_config_file() -> Path | None:
    """Search for config file in standard locations.

    Returns:
        Path to config file if found, None otherwise.
    """
    candidates = [
        Path.cwd() / "shipstatus.yaml",
        Path.cwd() / "shipstatus.yml",
        Path.home() / ".shipstatus" / "config.yaml",
        Path.home() / ".shipstatus" / "config.yml",
    ]
    for candidate in candidates:
        if candidate.exists():
            return candidate
    return None


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Apply SHIPSTATUS_<SECTION>_<KEY> env var overrides to config data.

    For example, ``SHIPSTATUS_RECONCILIATION_BATCH_LIMIT`` maps to section
    ``reconciliation``, field ``batch_limit``. Values are coerced to int
    or bool where they look like one.
    """
    prefix = "SHIPSTATUS_"
    known_sections = sorted(
        ShipStatusConfig.model_fields.keys(), key=len, reverse=True
    )
    for key, value in os.environ.items():
        if not key.startswith(prefix):
            continue
        suffix = key[len(prefix):].lower()
        matched_section = None
        matched_field = None
        for section in known_sections:
            section_prefix = section + "_"
            if suffix.startswith(section_prefix):
                matched_section = section
                matched_field = suffix[len(section_prefix):]
                break
        if matched_section is None or not matched_field:
            continue
        if matched_section not in data or data[matched_section] is None:
            data[matched_section] = {}
        if isinstance(data[matched_section], dict):
            try:
                data[matched_section][matched_field] = int(value)
            except ValueError:
                if value.lower() in ("true", "false"):
                    data[matched_section][matched_field] = value.lower() == "true"
                else:
                    data[matched_section][matched_field] = value
    return data


def load_config(config_path: str | None = None) -> ShipStatusConfig | None:
    """Load configuration from YAML file with env var resolution.

    Args:
        config_path: Explicit path to config file. If None, searches
            standard locations (cwd, then ~/.shipstatus/).

    Returns:
        Parsed and validated ShipStatusConfig, or None if no config found.

    Raises:
        FileNotFoundError: An explicit config_path does not exist.
        pydantic.ValidationError: The config content is invalid.
    """
    if config_path:
        path = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
    else:
        path = _find_config_file()
        if path is None:
            return None

    logger.info("Loading config from %s", path)

    with open(path) as f:
        raw_data = yaml.safe_load(f) or {}

    data = _resolve_env_vars_recursive(raw_data)
    data = _apply_env_overrides(data)

    return ShipStatusConfig(**data)
