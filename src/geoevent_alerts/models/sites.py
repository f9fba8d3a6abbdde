"""
Site, alert and notification models.

Sites are owned by site management outside the pipeline; the pipeline only
reads them. SiteAlerts are created by the matching engine and Notifications
by notification emission.

Example:
    >>> from geoevent_alerts.models import Site
    >>>
    >>> site = Site.point("s1", latitude=1.0, longitude=36.0, slices=["33"], user_id="u1")
    >>> site.geometry_type
    <GeometryType.POINT: 'Point'>
"""

from __future__ import annotations

import json
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from geoevent_alerts.models.events import AlertType, Confidence
from geoevent_alerts.utils.geometry import buffer_point
from geoevent_alerts.utils.time import from_iso8601, to_iso8601, utc_now

DEFAULT_POINT_BUFFER_M = 1000.0


class GeometryType(str, Enum):
    POINT = "Point"
    POLYGON = "Polygon"
    MULTI_POLYGON = "MultiPolygon"


class AlertMethodKind(str, Enum):
    """Delivery channels an alert method can use."""

    EMAIL = "email"
    SMS = "sms"
    WHATSAPP = "whatsapp"
    DEVICE = "device"
    WEBHOOK = "webhook"


def _optional_datetime(v: Any) -> datetime | None:
    if v is None or v == "":
        return None
    return from_iso8601(v)


def _json_field(v: Any) -> Any:
    return json.loads(v) if isinstance(v, str) else v


def _slice_list(v: Any) -> Any:
    v = _json_field(v)
    if isinstance(v, list):
        return [str(s) for s in v]
    return v


class Site(BaseModel):
    """A monitored area.

    Attributes:
        id: Site id
        name: Display name used in notification messages
        user_id: Owner whose alert methods receive notifications
        geometry_type: Point, Polygon or MultiPolygon
        geometry: Raw boundary (GeoJSON), used for distances
        detection_geometry: Buffered geometry used for containment
        slices: Slice keys the site belongs to
        is_monitored: Monitoring switch
        stop_alert_until: Alerts suppressed until this time
        deleted_at: Soft-delete marker
    """

    model_config = ConfigDict(extra="ignore", validate_assignment=True)

    id: str
    name: str | None = None
    user_id: str | None = None
    geometry_type: GeometryType
    geometry: dict[str, Any]
    detection_geometry: dict[str, Any]
    slices: list[str] = Field(default_factory=list)
    is_monitored: bool = True
    stop_alert_until: datetime | None = None
    deleted_at: datetime | None = None

    @field_validator("geometry", "detection_geometry", mode="before")
    @classmethod
    def parse_json(cls, v: Any) -> Any:
        return _json_field(v)

    @field_validator("slices", mode="before")
    @classmethod
    def slices_as_text(cls, v: Any) -> Any:
        return _slice_list(v)

    @field_validator("stop_alert_until", "deleted_at", mode="before")
    @classmethod
    def normalize_dates(cls, v: Any) -> datetime | None:
        return _optional_datetime(v)

    @classmethod
    def point(
        cls,
        site_id: str,
        *,
        latitude: float,
        longitude: float,
        buffer_m: float = DEFAULT_POINT_BUFFER_M,
        **kwargs: Any,
    ) -> Site:
        """Build a Point site with a circular detection geometry."""
        return cls(
            id=site_id,
            geometry_type=GeometryType.POINT,
            geometry={"type": "Point", "coordinates": [longitude, latitude]},
            detection_geometry=buffer_point(longitude, latitude, buffer_m),
            **kwargs,
        )

    def is_alertable(self, now: datetime | None = None) -> bool:
        """Monitored, not deleted and not suppressed at ``now``."""
        now = now or utc_now()
        if self.deleted_at is not None or not self.is_monitored:
            return False
        return self.stop_alert_until is None or self.stop_alert_until <= now

    def to_db_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "user_id": self.user_id,
            "geometry_type": self.geometry_type.value,
            "geometry": json.dumps(self.geometry),
            "detection_geometry": json.dumps(self.detection_geometry),
            "slices": json.dumps(self.slices),
            "is_monitored": int(self.is_monitored),
            "stop_alert_until": to_iso8601(self.stop_alert_until) if self.stop_alert_until else None,
            "deleted_at": to_iso8601(self.deleted_at) if self.deleted_at else None,
        }

    @classmethod
    def from_db_row(cls, row: dict[str, Any]) -> Site:
        data = dict(row)
        data["is_monitored"] = bool(data.get("is_monitored", True))
        return cls(**data)


class DetectionFragment(BaseModel):
    """One constituent region of a MultiPolygon site.

    Each fragment carries its own slice list so a site spanning several
    slices can be matched per region.
    """

    model_config = ConfigDict(extra="ignore")

    id: str | None = None
    site_id: str
    geometry: dict[str, Any]
    slices: list[str] = Field(default_factory=list)

    @field_validator("geometry", mode="before")
    @classmethod
    def parse_json(cls, v: Any) -> Any:
        return _json_field(v)

    @field_validator("slices", mode="before")
    @classmethod
    def slices_as_text(cls, v: Any) -> Any:
        return _slice_list(v)

    def to_db_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "site_id": self.site_id,
            "geometry": json.dumps(self.geometry),
            "slices": json.dumps([str(s) for s in self.slices]),
        }


class SiteAlert(BaseModel):
    """A match between one GeoEvent and one Site.

    ``distance`` is in metres from the event to the site's raw geometry
    and is zero when the event lies inside it.
    """

    model_config = ConfigDict(extra="ignore")

    id: str
    type: AlertType = AlertType.FIRE
    event_date: datetime
    detected_by: str
    confidence: Confidence
    latitude: float
    longitude: float
    site_id: str
    geo_event_id: str | None = None
    distance: float = Field(default=0.0, ge=0)
    is_processed: bool = False
    raw_data: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime | None = None
    deleted_at: datetime | None = None

    @field_validator("event_date", mode="before")
    @classmethod
    def normalize_event_date(cls, v: Any) -> datetime:
        return from_iso8601(v)

    @field_validator("created_at", "deleted_at", mode="before")
    @classmethod
    def normalize_dates(cls, v: Any) -> datetime | None:
        return _optional_datetime(v)

    @field_validator("raw_data", mode="before")
    @classmethod
    def parse_raw_data(cls, v: Any) -> Any:
        return _json_field(v) or {}

    @classmethod
    def from_db_row(cls, row: dict[str, Any]) -> SiteAlert:
        data = dict(row)
        data["is_processed"] = bool(data.get("is_processed"))
        return cls(**data)


class AlertMethod(BaseModel):
    """A user's delivery channel."""

    model_config = ConfigDict(extra="ignore")

    id: str
    user_id: str
    method: str
    destination: str
    is_enabled: bool = True
    is_verified: bool = False
    fail_count: int = Field(default=0, ge=0)
    deleted_at: datetime | None = None

    @field_validator("method", mode="before")
    @classmethod
    def normalize_method(cls, v: Any) -> str:
        return str(v).strip().lower()

    @field_validator("deleted_at", mode="before")
    @classmethod
    def normalize_deleted_at(cls, v: Any) -> datetime | None:
        return _optional_datetime(v)

    @property
    def receives_alerts(self) -> bool:
        return self.is_enabled and self.is_verified and self.deleted_at is None

    def to_db_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "method": self.method,
            "destination": self.destination,
            "is_enabled": int(self.is_enabled),
            "is_verified": int(self.is_verified),
            "fail_count": self.fail_count,
            "deleted_at": to_iso8601(self.deleted_at) if self.deleted_at else None,
        }

    @classmethod
    def from_db_row(cls, row: dict[str, Any]) -> AlertMethod:
        data = dict(row)
        data["is_enabled"] = bool(data.get("is_enabled"))
        data["is_verified"] = bool(data.get("is_verified"))
        return cls(**data)


class Notification(BaseModel):
    """One delivery obligation for an external notifier."""

    model_config = ConfigDict(extra="ignore")

    id: str
    site_alert_id: str
    alert_method: str
    destination: str
    is_delivered: bool = False
    sent_at: datetime | None = None

    @field_validator("sent_at", mode="before")
    @classmethod
    def normalize_sent_at(cls, v: Any) -> datetime | None:
        return _optional_datetime(v)

    @classmethod
    def from_db_row(cls, row: dict[str, Any]) -> Notification:
        data = dict(row)
        data["is_delivered"] = bool(data.get("is_delivered"))
        return cls(**data)
