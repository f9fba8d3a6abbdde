"""
Geo-event data models for the alert pipeline.

This module defines Pydantic models for:
- GeoEvent: One normalized thermal-anomaly detection
- GeoEventProvider: A configured data source instance

Both models convert to and from SQLite rows with ``to_db_dict`` /
``from_db_row``; timestamps are stored as ISO 8601 UTC text and opaque
payloads as JSON text.

Example:
    >>> from geoevent_alerts.models import GeoEvent
    >>>
    >>> event = GeoEvent(
    ...     latitude=1.0,
    ...     longitude=36.0,
    ...     event_date="2024-01-01T10:00:00Z",
    ...     confidence="high",
    ...     provider_id="p1",
    ...     provider_client_id="MODIS_NRT",
    ...     slice="33",
    ... )
    >>> event.to_db_dict()["event_date"]
    '2024-01-01T10:00:00.000Z'
"""

from __future__ import annotations

import json
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

from geoevent_alerts.utils.time import from_iso8601, to_iso8601, utc_now

GEOSTATIONARY_CLIENT_ID = "GEOSTATIONARY"


class Confidence(str, Enum):
    """Detection confidence."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class AlertType(str, Enum):
    """Kind of detected event."""

    FIRE = "fire"


class ProviderClientId(str, Enum):
    """Known provider client ids.

    Any string is accepted as a client id; only ``GEOSTATIONARY`` changes
    matching behaviour.
    """

    GEOSTATIONARY = GEOSTATIONARY_CLIENT_ID
    LANDSAT_NRT = "LANDSAT_NRT"
    MODIS_NRT = "MODIS_NRT"
    MODIS_SP = "MODIS_SP"
    VIIRS_NOAA20_NRT = "VIIRS_NOAA20_NRT"
    VIIRS_NOAA21_NRT = "VIIRS_NOAA21_NRT"
    VIIRS_SNPP_NRT = "VIIRS_SNPP_NRT"
    VIIRS_SNPP_SP = "VIIRS_SNPP_SP"


class GeoEvent(BaseModel):
    """One detected thermal anomaly.

    The id is left unset by adapters and filled in from the event
    checksum during ingestion.

    Attributes:
        id: Checksum of (type, latitude, longitude, event_date)
        type: Event kind (always fire)
        latitude: Degrees north (-90 to 90)
        longitude: Degrees east (-180 to 180)
        event_date: Detection time (aware UTC)
        confidence: high, medium or low
        provider_id: Owning GeoEventProvider id
        provider_client_id: Source discriminator (e.g. GEOSTATIONARY)
        slice: Geographic partition key
        is_processed: Set once the matching engine has seen the event
        raw_data: Opaque source payload
    """

    model_config = ConfigDict(
        extra="ignore",
        validate_assignment=True,
        str_strip_whitespace=True,
    )

    id: str | None = Field(default=None, description="Event checksum")
    type: AlertType = Field(default=AlertType.FIRE)
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    event_date: datetime = Field(..., description="Detection time (UTC)")
    confidence: Confidence = Field(default=Confidence.MEDIUM)
    provider_id: str = Field(..., description="GeoEventProvider id")
    provider_client_id: str = Field(..., description="Provider client id")
    slice: str = Field(default="0", description="Slice key")
    is_processed: bool = Field(default=False)
    raw_data: dict[str, Any] = Field(default_factory=dict)

    @field_validator("event_date", mode="before")
    @classmethod
    def normalize_event_date(cls, v: Any) -> datetime:
        """Accept ISO strings and naive datetimes; store aware UTC."""
        return from_iso8601(v)

    @field_validator("confidence", mode="before")
    @classmethod
    def normalize_confidence(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @field_validator("slice", mode="before")
    @classmethod
    def slice_as_text(cls, v: Any) -> str:
        return str(v)

    @property
    def is_geostationary(self) -> bool:
        return self.provider_client_id == GEOSTATIONARY_CLIENT_ID

    def to_db_dict(self) -> dict[str, Any]:
        """Convert to a dictionary for SQLite insertion."""
        return {
            "id": self.id,
            "type": self.type.value,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "event_date": to_iso8601(self.event_date),
            "confidence": self.confidence.value,
            "provider_id": self.provider_id,
            "provider_client_id": self.provider_client_id,
            "slice": self.slice,
            "is_processed": int(self.is_processed),
            "raw_data": json.dumps(self.raw_data, default=str),
        }

    @classmethod
    def from_db_row(cls, row: dict[str, Any]) -> GeoEvent:
        """Create a GeoEvent from a database row."""
        data = dict(row)
        if isinstance(data.get("raw_data"), str):
            data["raw_data"] = json.loads(data["raw_data"])
        data["is_processed"] = bool(data.get("is_processed"))
        return cls(**data)


class GeoEventProvider(BaseModel):
    """A configured data source instance.

    ``config`` is the source-specific settings blob. Its ``client`` entry
    names the adapter key (``FIRMS``, ``GOES-16``, ...) and ``slice`` the
    partition the provider covers; the adapter validates the rest.

    Example:
        >>> provider = GeoEventProvider(
        ...     id="p1",
        ...     client_id="MODIS_NRT",
        ...     client_api_key="key",
        ...     fetch_frequency_minutes=15,
        ...     config={"client": "FIRMS", "slice": "2", "bbox": "-180,-30,180,-15",
        ...             "apiUrl": "https://firms.modaps.eosdis.nasa.gov"},
        ... )
        >>> provider.is_due()
        True
    """

    model_config = ConfigDict(extra="ignore", validate_assignment=True)

    id: str
    name: str | None = None
    type: AlertType = AlertType.FIRE
    client_id: str
    client_api_key: str | None = None
    config: dict[str, Any] = Field(default_factory=dict)
    is_active: bool = True
    fetch_frequency_minutes: int | None = Field(default=None, ge=1)
    last_run: datetime | None = None

    @field_validator("last_run", mode="before")
    @classmethod
    def normalize_last_run(cls, v: Any) -> datetime | None:
        if v is None or v == "":
            return None
        return from_iso8601(v)

    @computed_field  # type: ignore[misc]
    @property
    def is_geostationary(self) -> bool:
        return self.client_id == GEOSTATIONARY_CLIENT_ID

    @property
    def adapter_key(self) -> str | None:
        """Adapter key from ``config["client"]``."""
        client = self.config.get("client")
        return str(client) if client else None

    @property
    def slice(self) -> str:
        return str(self.config.get("slice", "0"))

    @property
    def next_run_at(self) -> datetime | None:
        """When the provider next becomes eligible (None = not scheduled)."""
        if self.fetch_frequency_minutes is None:
            return None
        if self.last_run is None:
            return datetime.min.replace(tzinfo=utc_now().tzinfo)
        return self.last_run + timedelta(minutes=self.fetch_frequency_minutes)

    def is_due(self, now: datetime | None = None) -> bool:
        """Active, scheduled and past its next run time.

        Providers that have never run are due immediately.
        """
        if not self.is_active:
            return False
        next_run = self.next_run_at
        if next_run is None:
            return False
        return (now or utc_now()) >= next_run

    def to_db_dict(self) -> dict[str, Any]:
        """Convert to a dictionary for SQLite insertion."""
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type.value,
            "client_id": self.client_id,
            "client_api_key": self.client_api_key,
            "config": json.dumps(self.config),
            "is_active": int(self.is_active),
            "fetch_frequency_minutes": self.fetch_frequency_minutes,
            "last_run": to_iso8601(self.last_run) if self.last_run else None,
        }

    @classmethod
    def from_db_row(cls, row: dict[str, Any]) -> GeoEventProvider:
        """Create a GeoEventProvider from a database row."""
        data = dict(row)
        if isinstance(data.get("config"), str):
            data["config"] = json.loads(data["config"])
        data["is_active"] = bool(data.get("is_active", True))
        return cls(**data)
