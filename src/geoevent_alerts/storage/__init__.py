"""
Storage backends for the geo-event alert pipeline.

- SQLiteStorage: Local SQLite database with spatial SQL functions

Example:
    >>> from geoevent_alerts.storage import SQLiteStorage
    >>>
    >>> storage = SQLiteStorage("data/geoevents.db")
    >>> storage.initialize()
    >>> storage.fetch_existing_ids("p1", since_hours=12)

The schema is defined in `storage/schema.py` and includes:
- geo_event_providers: Configured data sources and their schedules
- geo_events: Deduplicated detections keyed by checksum
- sites, site_detection_fragments: Monitored areas
- site_alerts, alert_methods, notifications: Matches and their delivery
- pipeline_runs, run_locks: Audit trail and run leases
"""

from geoevent_alerts.storage.protocol import (
    GeoEventStore,
    NotificationStore,
    PipelineStorage,
    ProviderStore,
    SiteAlertStore,
    SiteStore,
)
from geoevent_alerts.storage.schema import SCHEMA_VERSION, create_schema, get_schema_sql
from geoevent_alerts.storage.spatial import GeometryCache
from geoevent_alerts.storage.sqlite import SQLiteStorage

__all__ = [
    "GeoEventStore",
    "SiteStore",
    "SiteAlertStore",
    "ProviderStore",
    "NotificationStore",
    "PipelineStorage",
    "SQLiteStorage",
    "GeometryCache",
    "SCHEMA_VERSION",
    "create_schema",
    "get_schema_sql",
]
