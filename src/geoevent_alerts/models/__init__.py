"""
Data models for the geo-event alert pipeline.

- GeoEvent, GeoEventProvider: Ingested detections and their sources
- Site, DetectionFragment: Monitored areas (read-only to the pipeline)
- SiteAlert, AlertMethod, Notification: Matches and their delivery
- PipelineRun: Audit record of a run

All models validate on creation and convert to and from SQLite rows.
"""

from geoevent_alerts.models.events import (
    GEOSTATIONARY_CLIENT_ID,
    AlertType,
    Confidence,
    GeoEvent,
    GeoEventProvider,
    ProviderClientId,
)
from geoevent_alerts.models.runs import PipelineRun, RunStatus
from geoevent_alerts.models.sites import (
    AlertMethod,
    AlertMethodKind,
    DetectionFragment,
    GeometryType,
    Notification,
    Site,
    SiteAlert,
)

__all__ = [
    "GEOSTATIONARY_CLIENT_ID",
    "AlertType",
    "Confidence",
    "ProviderClientId",
    "GeoEvent",
    "GeoEventProvider",
    "GeometryType",
    "Site",
    "DetectionFragment",
    "SiteAlert",
    "AlertMethodKind",
    "AlertMethod",
    "Notification",
    "PipelineRun",
    "RunStatus",
]
