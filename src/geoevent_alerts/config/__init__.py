"""
Configuration management for the geo-event alert pipeline.

Configuration hierarchy:
1. Default values (built-in)
2. config/default.toml (project defaults)
3. config/local.toml (operator overrides, gitignored)
4. GEOALERT_CONFIG_PATH
5. Environment variables (GEOALERT_* prefix)
6. Command-line arguments

Example:
    >>> from geoevent_alerts.config import get_settings
    >>>
    >>> settings = get_settings()
    >>> print(settings.pipeline.chunk_size)

Configuration files use TOML format. See config/default.toml for all options.
"""

from geoevent_alerts.config.settings import (
    CacheSettings,
    CronSettings,
    DatabaseSettings,
    LoggingSettings,
    NotificationSettings,
    PipelineSettings,
    Settings,
    get_settings,
    load_settings,
    reload_settings,
)

__all__ = [
    "Settings",
    "DatabaseSettings",
    "PipelineSettings",
    "CronSettings",
    "CacheSettings",
    "NotificationSettings",
    "LoggingSettings",
    "get_settings",
    "load_settings",
    "reload_settings",
]
