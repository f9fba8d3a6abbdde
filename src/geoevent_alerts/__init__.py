"""
Geo-event Alerts

A batch pipeline that turns satellite fire detections into alerts for
monitored sites.

Features:
- Pluggable provider adapters (NASA FIRMS, GOES-16, sample data)
- Checksum-based deduplication with a recent-id window
- Spatial matching against point, polygon and multipolygon sites
- Notification records per verified alert method, plus delivery
- Bounded-concurrency runs behind a cron-key trigger

Example:
    >>> from geoevent_alerts import GeoEventOrchestrator, SQLiteStorage, build_default_registry
    >>>
    >>> storage = SQLiteStorage("data/geoevents.db")
    >>> storage.initialize()
    >>> summary = GeoEventOrchestrator(storage, build_default_registry()).run(limit=4)
    >>> print(summary.to_dict())

For more information run:
    $ geoevent-alerts --help
"""

__version__ = "1.0.0"

from geoevent_alerts.config.settings import Settings, get_settings
from geoevent_alerts.models import GeoEvent, GeoEventProvider, PipelineRun, Site, SiteAlert
from geoevent_alerts.pipeline import GeoEventOrchestrator, PipelineOptions, RunSummary
from geoevent_alerts.providers import ProviderRegistry, build_default_registry
from geoevent_alerts.storage.sqlite import SQLiteStorage

__all__ = [
    "GeoEvent",
    "GeoEventOrchestrator",
    "GeoEventProvider",
    "PipelineOptions",
    "PipelineRun",
    "ProviderRegistry",
    "RunSummary",
    "SQLiteStorage",
    "Settings",
    "Site",
    "SiteAlert",
    "__version__",
    "build_default_registry",
    "get_settings",
]
