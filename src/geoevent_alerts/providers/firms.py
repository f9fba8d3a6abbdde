"""
FIRMS area CSV adapter.

Fetches the last day of active-fire detections for one satellite product
(``client_id``, e.g. ``MODIS_NRT``) inside the provider's bounding box:

    {apiUrl}/api/area/csv/{apiKey}/{clientId}/{bbox}/1/

Each CSV row becomes one GeoEvent. The row itself is kept as ``raw_data``.

Example:
    >>> adapter = FirmsAdapter()
    >>> adapter.initialize({
    ...     "client": "FIRMS",
    ...     "slice": "2",
    ...     "bbox": "-180,-30,180,-15",
    ...     "apiUrl": "https://firms.modaps.eosdis.nasa.gov",
    ... })
    >>> events = adapter.fetch_latest("MODIS_NRT", "p1", "2", "MAP_KEY")
"""

from __future__ import annotations

import io
from datetime import datetime
from typing import Any, ClassVar, cast

import pandas as pd
from pydantic import Field

from geoevent_alerts.exceptions import FetchError
from geoevent_alerts.models import GeoEvent
from geoevent_alerts.providers.confidence import resolve_confidence
from geoevent_alerts.providers.protocol import AdapterConfig, BaseAdapter
from geoevent_alerts.utils.logging import get_logger
from geoevent_alerts.utils.time import parse_acq_datetime

logger = get_logger(__name__)

REQUIRED_COLUMNS = ("latitude", "longitude", "acq_date", "acq_time")


class FirmsConfig(AdapterConfig):
    api_url: str = Field(alias="apiUrl")
    bbox: str
    map_key: str | None = Field(default=None, alias="mapKey")


class FirmsAdapter(BaseAdapter):
    """Adapter for the FIRMS area CSV API."""

    key: ClassVar[str] = "FIRMS"
    REQUIRED_FIELDS: ClassVar[tuple[str, ...]] = ("client", "slice", "apiUrl", "bbox")
    config_model: ClassVar[type[AdapterConfig]] = FirmsConfig

    def build_url(self, client_id: str, api_key: str | None) -> str:
        config = cast(FirmsConfig, self.get_config())
        key = config.map_key or api_key
        return f"{config.api_url.rstrip('/')}/api/area/csv/{key}/{client_id}/{config.bbox}/1/"

    def fetch_latest(
        self,
        client_id: str,
        provider_id: str,
        slice: str,
        api_key: str | None,
        last_run: datetime | None = None,
    ) -> list[GeoEvent]:
        url = self.build_url(client_id, api_key)
        response = self._get(url)
        events = self.parse_csv(response.text, client_id=client_id, provider_id=provider_id, slice=slice)
        logger.debug("firms_fetch_completed", provider_id=provider_id, client_id=client_id, events=len(events))
        return events

    def parse_csv(
        self,
        text: str,
        *,
        client_id: str,
        provider_id: str,
        slice: str,
    ) -> list[GeoEvent]:
        """Normalize a FIRMS CSV payload.

        Rows with unusable coordinates or timestamps are skipped.

        Raises:
            FetchError: If the payload is not CSV or lacks required columns
        """
        if not text.strip():
            return []

        try:
            # Keep codes as text: "n" and unpadded acq_time values must survive.
            df = pd.read_csv(io.StringIO(text), dtype=str, skipinitialspace=True)
        except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as e:
            raise FetchError(f"Error parsing CSV file: {e}") from e

        missing = [col for col in REQUIRED_COLUMNS if col not in df.columns]
        if missing:
            raise FetchError(f"Error parsing CSV file: missing columns {', '.join(missing)}")

        events = []
        skipped = 0
        for _, row in df.iterrows():
            record: dict[str, Any] = row.dropna().to_dict()
            try:
                events.append(self._to_event(record, client_id, provider_id, slice))
            except (KeyError, ValueError):
                skipped += 1

        if skipped:
            logger.warning("firms_rows_skipped", provider_id=provider_id, skipped=skipped, total=len(df))
        return events

    def _to_event(
        self,
        record: dict[str, Any],
        client_id: str,
        provider_id: str,
        slice: str,
    ) -> GeoEvent:
        return GeoEvent(
            latitude=float(record["latitude"]),
            longitude=float(record["longitude"]),
            event_date=parse_acq_datetime(record["acq_date"], record["acq_time"]),
            confidence=resolve_confidence(record.get("instrument"), record.get("confidence")),
            provider_id=provider_id,
            provider_client_id=client_id,
            slice=slice,
            raw_data=record,
        )
