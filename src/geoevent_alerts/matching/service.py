"""
Site-alert matching.

Unprocessed events of one provider are matched against monitored sites
in batches until none are left. Each batch is one set-based query in the
storage layer that creates the alerts and marks the batch processed in a
single transaction.

Example:
    >>> from geoevent_alerts.matching import SiteAlertService
    >>>
    >>> service = SiteAlertService(storage)
    >>> created = service.create_alerts_for_provider("p1", "MODIS_NRT")
"""

from __future__ import annotations

import time
from datetime import datetime
from typing import TYPE_CHECKING

from geoevent_alerts.models import GEOSTATIONARY_CLIENT_ID
from geoevent_alerts.utils.logging import get_logger

if TYPE_CHECKING:
    from geoevent_alerts.config.settings import Settings
    from geoevent_alerts.storage.protocol import PipelineStorage
    from geoevent_alerts.storage.sqlite import SQLiteStorage

logger = get_logger(__name__)


class SiteAlertService:
    """Turns unprocessed geo-events into SiteAlerts.

    Geostationary providers use smaller batches since their events carry
    heavier geometry work per row.

    Attributes:
        geostationary_batch_size: Events per batch for GEOSTATIONARY providers
        polar_batch_size: Events per batch for everything else
        silence_geostationary_alerts: Create geostationary alerts already processed
    """

    def __init__(
        self,
        storage: PipelineStorage,
        *,
        geostationary_batch_size: int = 500,
        polar_batch_size: int = 1000,
        silence_geostationary_alerts: bool = True,
        slow_step_ms: float = 5000.0,
    ):
        self.storage = storage
        self.geostationary_batch_size = geostationary_batch_size
        self.polar_batch_size = polar_batch_size
        self.silence_geostationary_alerts = silence_geostationary_alerts
        self.slow_step_ms = slow_step_ms

    @classmethod
    def from_settings(cls, storage: PipelineStorage, settings: Settings) -> SiteAlertService:
        return cls(
            storage,
            geostationary_batch_size=settings.pipeline.geostationary_batch_size,
            polar_batch_size=settings.pipeline.polar_batch_size,
            silence_geostationary_alerts=settings.pipeline.silence_geostationary_alerts,
            slow_step_ms=settings.pipeline.slow_step_ms,
        )

    def batch_size_for(self, client_id: str) -> int:
        if client_id == GEOSTATIONARY_CLIENT_ID:
            return self.geostationary_batch_size
        return self.polar_batch_size

    def create_alerts_for_provider(
        self,
        provider_id: str,
        client_id: str,
        *,
        now: datetime | None = None,
    ) -> int:
        """Match every unprocessed event of the provider, batch by batch.

        Stale events are not swept first; late detections are still matched.

        Returns:
            Total SiteAlerts created

        Raises:
            PersistenceError: If a batch query fails (earlier batches stay committed)
        """
        geostationary = client_id == GEOSTATIONARY_CLIENT_ID
        batch_size = self.batch_size_for(client_id)

        total = 0
        batches = 0
        start = time.perf_counter()
        while True:
            event_ids = self.storage.find_unprocessed_by_provider(provider_id, batch_size)
            if not event_ids:
                break
            created = self.storage.create_alerts_for_batch(
                event_ids,
                client_id=client_id,
                geostationary=geostationary,
                silence_alerts=geostationary and self.silence_geostationary_alerts,
                now=now,
            )
            total += created
            batches += 1
            logger.debug(
                "alert_batch_matched",
                provider_id=provider_id,
                batch=batches,
                events=len(event_ids),
                alerts_created=created,
            )

        duration_ms = round((time.perf_counter() - start) * 1000, 2)
        log = logger.warning if duration_ms > self.slow_step_ms else logger.info
        log(
            "alerts_created",
            provider_id=provider_id,
            client_id=client_id,
            batches=batches,
            alerts_created=total,
            duration_ms=duration_ms,
        )
        return total


class StaleEventSweeper:
    """Maintenance step that retires old unprocessed events without matching them.

    Not part of a pipeline run. Detections whose event time is genuinely
    old but that arrived late are lost when this runs, so it is only
    invoked explicitly (``geoevent-alerts sweep-stale``).
    """

    def __init__(self, storage: SQLiteStorage):
        self.storage = storage

    def sweep(
        self,
        older_than_hours: float,
        *,
        provider_id: str | None = None,
        now: datetime | None = None,
    ) -> int:
        if older_than_hours <= 0:
            raise ValueError("older_than_hours must be positive")
        swept = self.storage.mark_stale_events_processed(
            older_than_hours, provider_id=provider_id, now=now
        )
        logger.info(
            "stale_events_swept",
            older_than_hours=older_than_hours,
            provider_id=provider_id,
            swept=swept,
        )
        return swept
