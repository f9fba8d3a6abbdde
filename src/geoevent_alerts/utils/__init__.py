"""
Utility functions for the geo-event alert pipeline.

Logging:
- setup_logging(): Configure structured logging with structlog
- get_logger(name): Get a logger instance
- StepTimer / log_duration: Per-step timing

Time:
- utc_now(), to_iso8601(dt), from_iso8601(text), hours_ago(h)
- parse_acq_datetime(date, hhmm): FIRMS acquisition timestamp

Geography:
- determine_slice(lat, lon): Latitude band of a point
- parse_geometry(geojson): Containment and distance on site geometries

Example:
    >>> from geoevent_alerts.utils import get_logger, determine_slice
    >>>
    >>> logger = get_logger(__name__)
    >>> logger.info("slice_resolved", slice=determine_slice(37.5, -120.1))
"""

from geoevent_alerts.utils.geometry import Geometry, buffer_point, parse_bbox, parse_geometry
from geoevent_alerts.utils.logging import (
    StepTimer,
    bind_context,
    clear_context,
    get_logger,
    log_duration,
    setup_logging,
)
from geoevent_alerts.utils.slices import SLICES, UNKNOWN_SLICE, determine_slice, parse_slice_list
from geoevent_alerts.utils.time import (
    ensure_utc,
    from_iso8601,
    hours_ago,
    parse_acq_datetime,
    to_iso8601,
    utc_now,
)

__all__ = [
    "setup_logging",
    "get_logger",
    "bind_context",
    "clear_context",
    "StepTimer",
    "log_duration",
    "utc_now",
    "ensure_utc",
    "to_iso8601",
    "from_iso8601",
    "hours_ago",
    "parse_acq_datetime",
    "SLICES",
    "UNKNOWN_SLICE",
    "determine_slice",
    "parse_slice_list",
    "Geometry",
    "parse_geometry",
    "parse_bbox",
    "buffer_point",
]
