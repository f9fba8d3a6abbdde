"""
Event identity.

A GeoEvent's id is the MD5 hex digest of its type, coordinates and
detection time. The same detection reported twice, by the same provider
or another, therefore always maps to the same id, which is what makes
INSERT OR IGNORE a correct duplicate backstop.

Example:
    >>> from datetime import datetime, UTC
    >>> len(event_checksum("fire", 1.0, 36.0, datetime(2024, 1, 1, 10, tzinfo=UTC)))
    32
"""

from __future__ import annotations

import hashlib
from collections.abc import Iterable
from datetime import datetime
from typing import TYPE_CHECKING

from geoevent_alerts.utils.time import to_iso8601

if TYPE_CHECKING:
    from geoevent_alerts.models import AlertType, GeoEvent


def checksum_input(type: str, latitude: float, longitude: float, event_date: datetime) -> bytes:
    """The exact bytes that are hashed.

    Coordinates use ``repr`` of the float so every significant digit takes
    part; ``1`` and ``1.0`` hash the same.
    """
    return f"{type}|{float(latitude)!r}|{float(longitude)!r}|{to_iso8601(event_date)}".encode()


def event_checksum(
    type: str | AlertType,
    latitude: float,
    longitude: float,
    event_date: datetime,
) -> str:
    """128-bit hex digest identifying a detection."""
    kind = getattr(type, "value", type)
    return hashlib.md5(checksum_input(str(kind), latitude, longitude, event_date)).hexdigest()


class ChecksumGenerator:
    """Assigns checksum ids to events.

    Example:
        >>> generator = ChecksumGenerator()
        >>> events = generator.generate_for_events(adapter_events)
        >>> all(e.id for e in events)
        True
    """

    def generate(self, event: GeoEvent) -> str:
        return event_checksum(event.type, event.latitude, event.longitude, event.event_date)

    def generate_for_events(self, events: Iterable[GeoEvent]) -> list[GeoEvent]:
        """Return copies of ``events`` with ``id`` set; the inputs are not modified."""
        return [event.model_copy(update={"id": self.generate(event)}) for event in events]
