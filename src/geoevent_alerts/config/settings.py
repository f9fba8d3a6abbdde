"""
Configuration settings for the geo-event alert pipeline.

Settings are loaded from TOML files and environment variables.

Configuration hierarchy (later overrides earlier):
1. Default values (built-in)
2. config/default.toml
3. config/local.toml (gitignored)
4. File named by GEOALERT_CONFIG_PATH
5. Environment variables (GEOALERT_* prefix)
6. Command-line arguments

Example:
    >>> from geoevent_alerts.config import get_settings
    >>>
    >>> settings = get_settings()
    >>> print(f"Database: {settings.database_path}")
    >>> print(f"Concurrency: {settings.pipeline.concurrency}")
"""

from __future__ import annotations

import os
import tomllib
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

ENV_PREFIX = "GEOALERT_"
CONFIG_PATH_ENV = "GEOALERT_CONFIG_PATH"


class DatabaseSettings(BaseModel):
    """Database settings."""

    model_config = ConfigDict(extra="ignore")

    path: str = Field(
        default="geoevent_alerts.db",
        description="Database file path",
    )
    timeout_seconds: float = Field(
        default=30.0,
        description="Connection timeout",
    )
    wal_mode: bool = Field(
        default=True,
        description="Enable WAL mode",
    )


class PipelineSettings(BaseModel):
    """Fetch, ingest and match settings."""

    model_config = ConfigDict(extra="ignore")

    concurrency: int = Field(default=3, ge=1, description="Providers processed in parallel")
    default_provider_limit: int = Field(default=4, ge=1, description="Providers per run")
    max_provider_limit: int = Field(default=15, ge=1, description="Upper bound for the limit")
    chunk_size: int = Field(default=2000, ge=1, description="Events deduplicated per chunk")
    insert_batch_size: int = Field(default=1000, ge=1, description="Rows per INSERT batch")
    dedup_window_hours: float = Field(default=12.0, gt=0, description="Recent-id lookback")
    geostationary_batch_size: int = Field(default=500, ge=1)
    polar_batch_size: int = Field(default=1000, ge=1)
    fetch_timeout_seconds: float = Field(default=30.0, gt=0)
    silence_geostationary_alerts: bool = Field(
        default=True,
        description="Mark geostationary alerts processed on creation so they emit no notifications",
    )
    slow_step_ms: float = Field(default=5000.0, description="Steps slower than this log a warning")

    @model_validator(mode="after")
    def _limits_ordered(self) -> PipelineSettings:
        if self.default_provider_limit > self.max_provider_limit:
            raise ValueError("default_provider_limit exceeds max_provider_limit")
        return self

    def clamp_limit(self, value: Any) -> int:
        """Clamp a requested provider limit.

        Absent uses the default; unparseable or too large uses the maximum;
        anything below one becomes one.
        """
        if value is None or value == "":
            return self.default_provider_limit
        try:
            limit = int(value)
        except (TypeError, ValueError):
            return self.max_provider_limit
        if limit > self.max_provider_limit:
            return self.max_provider_limit
        return max(limit, 1)


class CronSettings(BaseModel):
    """Trigger endpoint settings."""

    model_config = ConfigDict(extra="ignore")

    cron_key: str | None = Field(default=None, description="Shared secret for the trigger")
    lock_lease_seconds: int = Field(
        default=900,
        ge=1,
        description="Run lease expiry; a crashed run frees the lock after this",
    )


class CacheSettings(BaseModel):
    """In-process cache settings."""

    model_config = ConfigDict(extra="ignore")

    provider_config_enabled: bool = Field(default=True)
    provider_config_ttl_seconds: float = Field(default=300.0, ge=0)
    site_geometry_enabled: bool = Field(default=True)
    site_geometry_size: int = Field(default=4096, ge=1)


class NotificationSettings(BaseModel):
    """Notification emission and delivery settings."""

    model_config = ConfigDict(extra="ignore")

    max_alert_age_hours: float | None = Field(
        default=None,
        description="Skip alerts whose event is older than this (None = no limit)",
    )
    delivery_batch_size: int = Field(default=100, ge=1)
    disabled_methods: list[str] = Field(
        default_factory=list,
        description="Delivery methods to hold back (e.g. sms, whatsapp)",
    )
    max_fail_counts: dict[str, int] = Field(
        default_factory=lambda: {"sms": 3, "device": 3, "whatsapp": 3, "email": 10, "webhook": 20},
        description="Failures after which an alert method is disabled",
    )
    webhook_timeout_seconds: float = Field(default=10.0, gt=0)
    alert_url_template: str | None = Field(
        default=None,
        description="Link to an alert, formatted with {alert_id}",
    )

    @field_validator("disabled_methods", mode="before")
    @classmethod
    def split_methods(cls, v: Any) -> Any:
        if isinstance(v, str):
            return [part.strip().lower() for part in v.split(",") if part.strip()]
        return v


class LoggingSettings(BaseModel):
    """Logging settings."""

    model_config = ConfigDict(extra="ignore")

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="console", description="Output format")
    include_timestamp: bool = Field(default=True)
    include_location: bool = Field(default=False)


class Settings(BaseModel):
    """Main settings container."""

    model_config = ConfigDict(extra="ignore")

    name: str = Field(default="geoevent-alerts")
    base_dir: Path = Field(default=Path("data"))

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    pipeline: PipelineSettings = Field(default_factory=PipelineSettings)
    cron: CronSettings = Field(default_factory=CronSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @property
    def database_path(self) -> Path:
        """Get absolute database path."""
        db_path = Path(self.database.path)
        if db_path.is_absolute():
            return db_path
        return self.base_dir / db_path


def _find_config_files() -> list[Path]:
    """Find configuration files in standard locations, lowest priority first."""
    files = []

    cwd = Path.cwd()
    for name in ["config/default.toml", "config/local.toml"]:
        path = cwd / name
        if path.exists():
            files.append(path)

    env_config = os.environ.get(CONFIG_PATH_ENV)
    if env_config:
        path = Path(env_config)
        if path.exists():
            files.append(path)

    return files


def _load_toml(path: Path) -> dict[str, Any]:
    with open(path, "rb") as f:
        return tomllib.load(f)


def _merge_dicts(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge dictionaries (override wins)."""
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _merge_dicts(result[key], value)
        else:
            result[key] = value

    return result


def _apply_env_overrides(
    config: dict[str, Any],
    environ: dict[str, str] | None = None,
) -> dict[str, Any]:
    """Apply GEOALERT_* environment overrides.

    The first segment after the prefix names the section, the rest the
    field: GEOALERT_PIPELINE_CHUNK_SIZE -> pipeline.chunk_size. Top-level
    fields are matched whole (GEOALERT_BASE_DIR -> base_dir). Values stay
    strings; pydantic coerces them on validation.
    """
    environ = os.environ if environ is None else environ
    sections = {
        name
        for name, field in Settings.model_fields.items()
        if isinstance(field.annotation, type) and issubclass(field.annotation, BaseModel)
    }

    for key, value in environ.items():
        if not key.startswith(ENV_PREFIX) or key == CONFIG_PATH_ENV:
            continue

        config_key = key[len(ENV_PREFIX) :].lower()
        section, _, field_name = config_key.partition("_")

        if section in sections and field_name:
            config.setdefault(section, {})[field_name] = value
        elif config_key in Settings.model_fields and config_key not in sections:
            config[config_key] = value

    return config


def load_settings(config_path: str | Path | None = None) -> Settings:
    """Load settings from configuration files and the environment.

    Args:
        config_path: Optional explicit config file path (replaces discovery)

    Returns:
        Settings instance
    """
    config: dict[str, Any] = {}

    files = [Path(config_path)] if config_path else _find_config_files()
    for path in files:
        config = _merge_dicts(config, _load_toml(path))

    config = _apply_env_overrides(config)

    return Settings(**config)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return load_settings()


def reload_settings() -> Settings:
    """Reload settings (clears cache)."""
    get_settings.cache_clear()
    return get_settings()
