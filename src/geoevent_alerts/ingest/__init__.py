"""
Ingestion: event identity and deduplicated persistence.

- event_checksum / ChecksumGenerator: Deterministic event ids
- DuplicateFilter: Window and in-batch duplicate removal
- GeoEventService: deduplicate_and_save -> DedupResult(created, new)
"""

from geoevent_alerts.ingest.checksum import ChecksumGenerator, checksum_input, event_checksum
from geoevent_alerts.ingest.dedup import DedupResult, DuplicateFilter, GeoEventService

__all__ = [
    "event_checksum",
    "checksum_input",
    "ChecksumGenerator",
    "DedupResult",
    "DuplicateFilter",
    "GeoEventService",
]
