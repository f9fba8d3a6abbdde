"""
Storage protocols for the geo-event alert pipeline.

The pipeline talks to its datastore only through these interfaces. Any
backend with equivalent semantics (windowed id lookup, insert with
duplicate skip, spatial containment and distance, batched unprocessed
lookup) can replace the SQLite implementation.

Currently implemented:
- SQLiteStorage: Local SQLite database with spatial SQL functions

Example:
    >>> from geoevent_alerts.storage import PipelineStorage, SQLiteStorage
    >>>
    >>> storage = SQLiteStorage("data/geoevents.db")
    >>> isinstance(storage, PipelineStorage)
    True
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from geoevent_alerts.models import (
        DetectionFragment,
        GeoEvent,
        GeoEventProvider,
        PipelineRun,
        Site,
    )


@runtime_checkable
class GeoEventStore(Protocol):
    """Persistence of deduplicated geo-events."""

    def fetch_existing_ids(
        self,
        provider_id: str,
        since_hours: float,
        *,
        now: datetime | None = None,
    ) -> list[str]:
        """Ids of the provider's events with ``event_date >= now - since_hours``.

        Older events are not returned; the primary key on the checksum is
        the backstop against re-inserting them.
        """
        ...

    def bulk_insert(self, events: Sequence[GeoEvent], batch_size: int = 1000) -> int:
        """Insert events in fixed-size batches, skipping duplicate ids.

        Returns:
            Number of rows actually created
        """
        ...

    def find_unprocessed_by_provider(self, provider_id: str, limit: int) -> list[str]:
        """Up to ``limit`` ids of the provider's unprocessed events."""
        ...

    def mark_processed(self, event_ids: Sequence[str]) -> int:
        """Flip ``is_processed`` on exactly these events."""
        ...


@runtime_checkable
class SiteStore(Protocol):
    """Read access to monitored sites, plus seeding."""

    def upsert_site(self, site: Site, fragments: Sequence[DetectionFragment] = ()) -> None:
        ...

    def get_site(self, site_id: str) -> Site | None:
        ...

    def list_sites(self, *, include_deleted: bool = False) -> list[Site]:
        ...


@runtime_checkable
class SiteAlertStore(Protocol):
    """Spatial matching of events against sites."""

    def create_alerts_for_batch(
        self,
        event_ids: Sequence[str],
        *,
        client_id: str,
        geostationary: bool,
        silence_alerts: bool = False,
        now: datetime | None = None,
    ) -> int:
        """Create SiteAlerts for a batch and mark the batch processed.

        Alert creation and the processed flags are one transaction.

        Returns:
            Number of SiteAlerts created
        """
        ...


@runtime_checkable
class ProviderStore(Protocol):
    """Provider scheduling."""

    def find_eligible_providers(
        self,
        limit: int,
        *,
        now: datetime | None = None,
    ) -> list[GeoEventProvider]:
        """Active providers past ``last_run + fetch_frequency``, most overdue first."""
        ...

    def update_last_run(self, provider_id: str, timestamp: datetime) -> None:
        ...


@runtime_checkable
class NotificationStore(Protocol):
    """Notification emission and delivery bookkeeping."""

    def create_notifications(
        self,
        *,
        max_alert_age_hours: float | None = None,
        now: datetime | None = None,
    ) -> int:
        """Derive notifications from unprocessed SiteAlerts.

        Returns:
            Number of notifications created
        """
        ...

    def find_undelivered_notifications(
        self,
        limit: int,
        *,
        methods: Sequence[str] | None = None,
        exclude_methods: Sequence[str] = (),
    ) -> list[dict[str, Any]]:
        ...

    def mark_notifications_delivered(
        self,
        notification_ids: Sequence[str],
        *,
        sent_at: datetime | None = None,
    ) -> int:
        ...

    def record_notification_failure(
        self,
        method: str,
        destination: str,
        *,
        max_fail_count: int | None = None,
    ) -> bool:
        ...

    def record_notification_success(self, method: str, destination: str) -> None:
        ...


@runtime_checkable
class PipelineStorage(
    GeoEventStore, SiteStore, SiteAlertStore, ProviderStore, NotificationStore, Protocol
):
    """Everything the orchestrator needs from a datastore."""

    def initialize(self) -> None:
        """Create tables/schema if needed (idempotent)."""
        ...

    def write_pipeline_run(self, run: PipelineRun) -> int:
        """Insert or update a run audit record, returning its id."""
        ...

    def close(self) -> None:
        ...
