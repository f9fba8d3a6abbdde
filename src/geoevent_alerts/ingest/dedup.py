"""
Deduplication and ingestion of fetched geo-events.

Events are deduplicated twice before insert:
1. Against the provider's stored ids inside the dedup window (DB level)
2. Against each other within the fetched batch (memory level)

Whatever slips past both, such as an event older than the window that
was stored before, is dropped by the storage layer's INSERT OR IGNORE on
the checksum primary key.

Example:
    >>> from geoevent_alerts.ingest import GeoEventService
    >>>
    >>> service = GeoEventService(storage)
    >>> result = service.deduplicate_and_save(events, "p1")
    >>> print(f"{result.new} new, {result.created} created")
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from geoevent_alerts.ingest.checksum import ChecksumGenerator
from geoevent_alerts.utils.logging import StepTimer, get_logger

if TYPE_CHECKING:
    from geoevent_alerts.config.settings import Settings
    from geoevent_alerts.models import GeoEvent
    from geoevent_alerts.storage.protocol import GeoEventStore

logger = get_logger(__name__)


@dataclass
class DedupResult:
    """Outcome of one deduplicate-and-save call.

    Attributes:
        created: Rows actually inserted
        new: Events that survived deduplication and were offered for insert
    """

    created: int = 0
    new: int = 0
    timings_ms: dict[str, float] = field(default_factory=dict)

    def __add__(self, other: DedupResult) -> DedupResult:
        timings = dict(self.timings_ms)
        for step, ms in other.timings_ms.items():
            timings[step] = round(timings.get(step, 0.0) + ms, 2)
        return DedupResult(self.created + other.created, self.new + other.new, timings)


class DuplicateFilter:
    """Drops events whose id was already seen."""

    @staticmethod
    def filter_existing(events: Iterable[GeoEvent], existing_ids: set[str]) -> list[GeoEvent]:
        return [event for event in events if event.id not in existing_ids]

    @staticmethod
    def filter_in_memory(events: Iterable[GeoEvent]) -> list[GeoEvent]:
        """Keep the first occurrence of each id, preserving order."""
        seen: set[str | None] = set()
        unique = []
        for event in events:
            if event.id in seen:
                continue
            seen.add(event.id)
            unique.append(event)
        return unique


class GeoEventService:
    """Checksums, deduplicates and persists fetched events.

    Attributes:
        storage: Event store
        window_hours: Lookback for the stored-id comparison set
        insert_batch_size: Rows per INSERT batch
        slow_step_ms: Calls slower than this log a warning
    """

    def __init__(
        self,
        storage: GeoEventStore,
        *,
        window_hours: float = 12.0,
        insert_batch_size: int = 1000,
        slow_step_ms: float = 5000.0,
        checksums: ChecksumGenerator | None = None,
    ):
        self.storage = storage
        self.window_hours = window_hours
        self.insert_batch_size = insert_batch_size
        self.slow_step_ms = slow_step_ms
        self.checksums = checksums or ChecksumGenerator()
        self.filter = DuplicateFilter()

    @classmethod
    def from_settings(cls, storage: GeoEventStore, settings: Settings) -> GeoEventService:
        return cls(
            storage,
            window_hours=settings.pipeline.dedup_window_hours,
            insert_batch_size=settings.pipeline.insert_batch_size,
            slow_step_ms=settings.pipeline.slow_step_ms,
        )

    def fetch_existing_ids(self, provider_id: str) -> set[str]:
        return set(self.storage.fetch_existing_ids(provider_id, self.window_hours))

    def deduplicate_and_save(
        self,
        events: Sequence[GeoEvent],
        provider_id: str,
        existing_ids: set[str] | None = None,
    ) -> DedupResult:
        """Deduplicate ``events`` and insert the survivors.

        Args:
            events: Events from one fetch (ids may be unset)
            provider_id: Provider the events belong to
            existing_ids: Known ids for this provider. Fetched when omitted.
                When given, the ids inserted here are added to it, so
                successive chunks of one fetch see each other.

        Returns:
            DedupResult with created and new counts

        Raises:
            PersistenceError: If an insert batch fails
        """
        if not events:
            return DedupResult()

        timer = StepTimer()

        with timer.step("checksum"):
            stamped = [
                event if event.id else event.model_copy(update={"id": self.checksums.generate(event)})
                for event in events
            ]

        if existing_ids is None:
            with timer.step("fetch_existing"):
                existing_ids = self.fetch_existing_ids(provider_id)

        with timer.step("dedup"):
            fresh = self.filter.filter_existing(self.filter.filter_in_memory(stamped), existing_ids)

        with timer.step("insert"):
            created = self.storage.bulk_insert(fresh, batch_size=self.insert_batch_size)
        existing_ids.update(event.id for event in fresh if event.id)

        result = DedupResult(created=created, new=len(fresh), timings_ms=timer.durations_ms)
        fields = dict(
            provider_id=provider_id,
            received=len(events),
            new=result.new,
            created=result.created,
            duration_ms=timer.total_ms,
            **{f"{step}_ms": ms for step, ms in timer.durations_ms.items()},
        )
        if timer.total_ms > self.slow_step_ms:
            logger.warning("dedup_slow", **fields)
        else:
            logger.debug("dedup_completed", **fields)
        return result
