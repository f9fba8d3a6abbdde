"""
Synthetic provider adapter for development and demos.

Generates reproducible detections inside the configured bounding box
without any network access.

Example:
    >>> adapter = SampleAdapter()
    >>> adapter.initialize({"client": "SAMPLE", "slice": "4", "bbox": "30,0,40,10", "count": 5})
    >>> events = adapter.fetch_latest("VIIRS_SNPP_NRT", "p1", "4", None)
    >>> len(events)
    5
"""

from __future__ import annotations

import random
from datetime import datetime, timedelta
from typing import ClassVar, cast

from pydantic import Field, field_validator

from geoevent_alerts.models import Confidence, GeoEvent
from geoevent_alerts.providers.protocol import AdapterConfig, BaseAdapter
from geoevent_alerts.utils.geometry import parse_bbox
from geoevent_alerts.utils.time import ensure_utc, utc_now


class SampleConfig(AdapterConfig):
    bbox: str
    count: int = Field(default=10, ge=0)
    seed: int | None = None

    @field_validator("bbox")
    @classmethod
    def bbox_parses(cls, v: str) -> str:
        parse_bbox(v)
        return v


class SampleAdapter(BaseAdapter):
    """Seeded synthetic detections.

    Event times are spread over the hour before the start of the current
    hour, so with a fixed seed repeated fetches within one hour return
    identical events.
    """

    key: ClassVar[str] = "SAMPLE"
    REQUIRED_FIELDS: ClassVar[tuple[str, ...]] = ("client", "slice", "bbox")
    config_model: ClassVar[type[AdapterConfig]] = SampleConfig

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
        config = cast(SampleConfig, self.get_config())
        min_lon, min_lat, max_lon, max_lat = parse_bbox(config.bbox)

        rng = random.Random(config.seed)
        hour = ensure_utc(now or utc_now()).replace(minute=0, second=0, microsecond=0)
        confidences = list(Confidence)

        events = []
        for i in range(config.count):
            events.append(
                GeoEvent(
                    latitude=round(rng.uniform(min_lat, max_lat), 4),
                    longitude=round(rng.uniform(min_lon, max_lon), 4),
                    event_date=hour - timedelta(minutes=rng.randint(1, 60)),
                    confidence=rng.choice(confidences),
                    provider_id=provider_id,
                    provider_client_id=client_id,
                    slice=slice,
                    raw_data={"sample": True, "index": i},
                )
            )
        return events
