"""
GOES-16 fire-pixel adapter.

The geostationary imager's fire/hot-spot product is reduced to vector
features (one point per fire pixel centroid) by a feature service. This
adapter queries that service for the window ``[max(lastRun, now - 2h), now]``
and normalizes the returned GeoJSON FeatureCollection.

Expected feature shape::

    {
        "type": "Feature",
        "geometry": {"type": "Point", "coordinates": [lon, lat]},
        "properties": {"time": "2024-01-01T10:00:00Z", "mask": 10}
    }

Unlike the polar adapters, the slice is derived per detection from its
latitude, since one geostationary provider covers many bands.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any, ClassVar, cast

from pydantic import Field

from geoevent_alerts.exceptions import FetchError
from geoevent_alerts.models import Confidence, GeoEvent
from geoevent_alerts.providers.confidence import resolve_confidence
from geoevent_alerts.providers.protocol import AdapterConfig, BaseAdapter
from geoevent_alerts.utils.logging import get_logger
from geoevent_alerts.utils.slices import determine_slice
from geoevent_alerts.utils.time import ensure_utc, from_iso8601, to_iso8601, utc_now

logger = get_logger(__name__)

MAX_LOOKBACK = timedelta(hours=2)
TIME_PROPERTIES = ("time", "datetime", "event_date", "system:time_start")
MASK_PROPERTIES = ("mask", "fire_mask", "class")


class GoesConfig(AdapterConfig):
    api_url: str = Field(alias="apiUrl")
    bbox: str
    private_key: dict[str, Any] | str = Field(alias="privateKey")


def fetch_window(last_run: datetime | None, now: datetime) -> tuple[datetime, datetime]:
    """Start from ``last_run`` unless it is missing or more than two hours old."""
    if last_run is None or now - ensure_utc(last_run) > MAX_LOOKBACK:
        return now - MAX_LOOKBACK, now
    return ensure_utc(last_run), now


def _feature_time(properties: dict[str, Any]) -> datetime:
    for name in TIME_PROPERTIES:
        value = properties.get(name)
        if value is None:
            continue
        if isinstance(value, (int, float)):
            # epoch milliseconds
            return datetime.fromtimestamp(value / 1000, UTC)
        return from_iso8601(str(value))
    raise ValueError("feature has no timestamp")


class Goes16Adapter(BaseAdapter):
    """Adapter for GOES-16 fire-pixel features."""

    key: ClassVar[str] = "GOES-16"
    REQUIRED_FIELDS: ClassVar[tuple[str, ...]] = ("client", "slice", "apiUrl", "bbox", "privateKey")
    config_model: ClassVar[type[AdapterConfig]] = GoesConfig

    def _auth_headers(self) -> dict[str, str]:
        config = cast(GoesConfig, self.get_config())
        credential = config.private_key
        if isinstance(credential, dict):
            token = credential.get("private_key") or credential.get("token") or ""
            headers = {"Authorization": f"Bearer {token}"}
            if credential.get("client_email"):
                headers["X-Client-Email"] = str(credential["client_email"])
            return headers
        return {"Authorization": f"Bearer {credential}"}

    def fetch_latest(
        self,
        client_id: str,
        provider_id: str,
        slice: str,
        api_key: str | None,
        last_run: datetime | None = None,
        *,
        now: datetime | None = None,
    ) -> list[GeoEvent]:
        config = cast(GoesConfig, self.get_config())
        start, end = fetch_window(last_run, ensure_utc(now) if now else utc_now())

        response = self._get(
            str(config.api_url),
            params={"start": to_iso8601(start), "end": to_iso8601(end), "bbox": config.bbox},
            headers=self._auth_headers(),
        )
        try:
            payload = response.json()
        except ValueError as e:
            raise FetchError(f"GOES-16 response is not JSON: {e}") from e

        events = self.parse_features(
            payload, client_id=client_id, provider_id=provider_id, slice=slice, api_key=api_key
        )
        logger.debug(
            "goes_fetch_completed",
            provider_id=provider_id,
            window_start=to_iso8601(start),
            window_end=to_iso8601(end),
            events=len(events),
        )
        return events

    def parse_features(
        self,
        payload: Any,
        *,
        client_id: str,
        provider_id: str,
        slice: str,
        api_key: str | None = None,
    ) -> list[GeoEvent]:
        """Normalize a FeatureCollection of fire-pixel points.

        Raises:
            FetchError: If the payload is not a FeatureCollection
        """
        if not isinstance(payload, dict) or not isinstance(payload.get("features"), list):
            raise FetchError("GOES-16 payload is not a FeatureCollection")

        events = []
        skipped = 0
        for feature in payload["features"]:
            try:
                events.append(self._to_event(feature, client_id, provider_id, slice, api_key))
            except (KeyError, TypeError, ValueError, IndexError):
                skipped += 1

        if skipped:
            logger.warning("goes_features_skipped", provider_id=provider_id, skipped=skipped)
        return events

    def _to_event(
        self,
        feature: dict[str, Any],
        client_id: str,
        provider_id: str,
        slice: str,
        api_key: str | None,
    ) -> GeoEvent:
        longitude, latitude = feature["geometry"]["coordinates"][:2]
        properties = feature.get("properties") or {}
        mask = next((properties[name] for name in MASK_PROPERTIES if name in properties), None)

        return GeoEvent(
            latitude=latitude,
            longitude=longitude,
            event_date=_feature_time(properties),
            confidence=Confidence.HIGH if mask is None else resolve_confidence("GEOSTATIONARY", mask),
            provider_id=provider_id,
            provider_client_id=client_id,
            slice=determine_slice(latitude, longitude),
            raw_data={"satellite": api_key, "slice": slice, **properties},
        )
