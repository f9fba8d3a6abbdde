"""
Pipeline orchestrator.

Drives one provider through a full cycle and many providers through one
run:

    fetch -> checksum/dedup/insert (per chunk) -> match -> emit -> lastRun

Each provider's cycle catches its own errors, so a failing provider never
affects the others in the run. ``lastRun`` moves only when the whole cycle
succeeded; a failed provider is therefore retried on its next schedule.

Example:
    >>> from geoevent_alerts.pipeline import GeoEventOrchestrator
    >>>
    >>> orchestrator = GeoEventOrchestrator.from_settings(storage, registry, settings)
    >>> summary = orchestrator.run(limit=4)
    >>> print(summary.to_dict())
"""

from __future__ import annotations

import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from functools import partial
from typing import TYPE_CHECKING, Any

from geoevent_alerts.exceptions import PersistenceError
from geoevent_alerts.ingest.dedup import GeoEventService
from geoevent_alerts.matching.service import SiteAlertService
from geoevent_alerts.models import PipelineRun
from geoevent_alerts.notifications.emitter import NotificationService
from geoevent_alerts.pipeline.lock import InProcessRunLock, LeaseRunLock, RunLock
from geoevent_alerts.pipeline.queue import BoundedQueue
from geoevent_alerts.providers.registry import ProviderConfigCache
from geoevent_alerts.utils.logging import bind_context, clear_context, get_logger
from geoevent_alerts.utils.time import utc_now

if TYPE_CHECKING:
    from geoevent_alerts.config.settings import Settings
    from geoevent_alerts.models import GeoEvent, GeoEventProvider
    from geoevent_alerts.providers import GeoEventAdapter, ProviderRegistry
    from geoevent_alerts.storage.sqlite import SQLiteStorage

logger = get_logger(__name__)

SUCCESS_MESSAGE = "Cron job executed successfully"


@dataclass
class PipelineOptions:
    """Options controlling a run."""

    concurrency: int = 3
    chunk_size: int = 2000
    provider_limit: int = 4
    emit_notifications: bool = True
    trigger: str = "manual"

    @classmethod
    def from_settings(cls, settings: Settings, **overrides: Any) -> PipelineOptions:
        options = cls(
            concurrency=settings.pipeline.concurrency,
            chunk_size=settings.pipeline.chunk_size,
            provider_limit=settings.pipeline.default_provider_limit,
        )
        for name, value in overrides.items():
            if value is not None:
                setattr(options, name, value)
        return options


@dataclass
class ProviderResult:
    """Outcome of one provider's cycle."""

    provider_id: str
    client_id: str
    events_fetched: int = 0
    events_new: int = 0
    events_created: int = 0
    alerts_created: int = 0
    notifications_created: int = 0
    last_run_updated: bool = False
    duration_ms: float = 0.0
    errors: list[dict[str, Any]] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors

    def add_error(self, stage: str, error: BaseException) -> None:
        self.errors.append(
            {
                "providerId": self.provider_id,
                "clientId": self.client_id,
                "stage": stage,
                "error": str(error),
                "type": type(error).__name__,
            }
        )


@dataclass
class RunSummary:
    """Aggregated result of one run, as returned by the trigger endpoint."""

    message: str = SUCCESS_MESSAGE
    alerts_created: int = 0
    processed_providers: int = 0
    errors: list[dict[str, Any]] = field(default_factory=list)
    status: int = 200
    run_id: int | None = None
    run_status: str | None = None
    providers: list[ProviderResult] = field(default_factory=list)

    @property
    def events_created(self) -> int:
        return sum(r.events_created for r in self.providers)

    @property
    def notifications_created(self) -> int:
        return sum(r.notifications_created for r in self.providers)

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "alertsCreated": self.alerts_created,
            "processedProviders": self.processed_providers,
            "errors": self.errors,
            "status": self.status,
            "runId": self.run_id,
            "runStatus": self.run_status,
        }


def _chunks(events: Sequence[GeoEvent], size: int) -> list[Sequence[GeoEvent]]:
    return [events[i : i + size] for i in range(0, len(events), size)]


class GeoEventOrchestrator:
    """Runs providers through fetch, dedup, matching and notification emission.

    The adapter registry is passed in; nothing is looked up globally.
    When a ``cache`` is given, initialized adapters are reused across runs
    until their configuration changes or the entry expires.
    """

    def __init__(
        self,
        storage: SQLiteStorage,
        registry: ProviderRegistry,
        options: PipelineOptions | None = None,
        *,
        cache: ProviderConfigCache | None = None,
        geo_events: GeoEventService | None = None,
        site_alerts: SiteAlertService | None = None,
        notifications: NotificationService | None = None,
        lock: RunLock | None = None,
    ):
        self.storage = storage
        self.registry = registry
        self.options = options or PipelineOptions()
        self.cache = cache
        self.geo_events = geo_events or GeoEventService(storage)
        self.site_alerts = site_alerts or SiteAlertService(storage)
        self.notifications = notifications or NotificationService(storage)
        self.lock = lock or InProcessRunLock()

    @classmethod
    def from_settings(
        cls,
        storage: SQLiteStorage,
        registry: ProviderRegistry,
        settings: Settings,
        *,
        options: PipelineOptions | None = None,
        lock: RunLock | None = None,
    ) -> GeoEventOrchestrator:
        return cls(
            storage,
            registry,
            options or PipelineOptions.from_settings(settings),
            cache=ProviderConfigCache.from_settings(registry, settings),
            geo_events=GeoEventService.from_settings(storage, settings),
            site_alerts=SiteAlertService.from_settings(storage, settings),
            notifications=NotificationService.from_settings(storage, settings),
            lock=lock or LeaseRunLock(storage, ttl_seconds=settings.cron.lock_lease_seconds),
        )

    def _adapter_for(self, provider: GeoEventProvider) -> tuple[GeoEventAdapter, bool]:
        """Return an initialized adapter and whether the caller owns it."""
        if self.cache is not None:
            return self.cache.get_adapter(provider), False
        return self.registry.for_provider(provider), True

    # ------------------------------------------------------------------
    # One provider
    # ------------------------------------------------------------------

    def process_provider(
        self,
        provider: GeoEventProvider,
        *,
        now: datetime | None = None,
    ) -> ProviderResult:
        """Run one provider's full cycle. Never raises.

        A PersistenceError on one chunk is recorded and the remaining
        chunks still run; any other error ends the cycle. Either way
        ``lastRun`` is left untouched.
        """
        result = ProviderResult(provider_id=provider.id, client_id=provider.client_id)
        started_at = now or utc_now()
        start = time.perf_counter()
        log = logger.bind(provider_id=provider.id, client_id=provider.client_id)

        stage = "configure"
        adapter = None
        owned = False
        try:
            adapter, owned = self._adapter_for(provider)

            stage = "fetch"
            events = adapter.fetch_latest(
                provider.client_id,
                provider.id,
                provider.slice,
                provider.client_api_key,
                provider.last_run,
            )
            result.events_fetched = len(events)
            log.debug("provider_fetch_completed", adapter=adapter.key, events=len(events))

            stage = "dedup"
            if events:
                existing_ids = self.geo_events.fetch_existing_ids(provider.id)
                for index, chunk in enumerate(_chunks(events, self.options.chunk_size)):
                    try:
                        saved = self.geo_events.deduplicate_and_save(chunk, provider.id, existing_ids)
                    except PersistenceError as e:
                        log.error("chunk_persist_failed", chunk=index, size=len(chunk), error=str(e))
                        result.add_error(stage, e)
                        continue
                    result.events_new += saved.new
                    result.events_created += saved.created

            stage = "match"
            result.alerts_created = self.site_alerts.create_alerts_for_provider(
                provider.id,
                provider.client_id,
                now=now,
            )

            if self.options.emit_notifications:
                stage = "notify"
                result.notifications_created = self.notifications.create_notifications(now=now)

            if result.success:
                stage = "mark_run"
                self.storage.update_last_run(provider.id, started_at)
                result.last_run_updated = True
        except Exception as e:
            log.error("provider_failed", stage=stage, error=str(e), error_type=type(e).__name__)
            result.add_error(stage, e)
        finally:
            if adapter is not None and owned:
                adapter.close()
            result.duration_ms = round((time.perf_counter() - start) * 1000, 2)

        log.info(
            "provider_completed",
            success=result.success,
            events_fetched=result.events_fetched,
            events_created=result.events_created,
            alerts_created=result.alerts_created,
            duration_ms=result.duration_ms,
        )
        return result

    # ------------------------------------------------------------------
    # Many providers
    # ------------------------------------------------------------------

    def process_providers(
        self,
        providers: Sequence[GeoEventProvider],
        concurrency: int | None = None,
        *,
        now: datetime | None = None,
    ) -> list[ProviderResult]:
        """Process providers through the bounded queue, in input order."""
        if not providers:
            return []

        with BoundedQueue(concurrency or self.options.concurrency) as queue:
            task_results = queue.run_all(
                partial(self.process_provider, provider, now=now) for provider in providers
            )

        results = []
        for provider, task in zip(providers, task_results):
            if task.ok and task.value is not None:
                results.append(task.value)
                continue
            failed = ProviderResult(provider_id=provider.id, client_id=provider.client_id)
            failed.add_error("queue", task.error or RuntimeError("task returned no result"))
            results.append(failed)
        return results

    def run(
        self,
        limit: int | None = None,
        *,
        concurrency: int | None = None,
        trigger: str | None = None,
        now: datetime | None = None,
    ) -> RunSummary:
        """Execute one run under the run lock.

        Raises:
            RunInProgressError: If another run holds the lock
            PersistenceError: If eligible providers cannot be selected
        """
        limit = limit or self.options.provider_limit
        concurrency = concurrency or self.options.concurrency

        with self.lock:
            run = PipelineRun(trigger=trigger or self.options.trigger, provider_limit=limit)
            self.storage.write_pipeline_run(run)
            bind_context(run_id=run.id)
            try:
                return self._run_locked(run, limit, concurrency, now)
            finally:
                clear_context()

    def _run_locked(
        self,
        run: PipelineRun,
        limit: int,
        concurrency: int,
        now: datetime | None,
    ) -> RunSummary:
        try:
            providers = self.storage.find_eligible_providers(limit, now=now)
        except Exception as e:
            run.complete(error=str(e))
            self.storage.write_pipeline_run(run)
            logger.error("pipeline_failed", error=str(e))
            raise

        logger.info("pipeline_started", providers=len(providers), limit=limit, concurrency=concurrency)
        results = self.process_providers(providers, concurrency, now=now)

        summary = RunSummary(processed_providers=len(providers), providers=results)
        for result in results:
            summary.alerts_created += result.alerts_created
            summary.errors.extend(result.errors)
            run.events_fetched += result.events_fetched
            run.events_new += result.events_new
            run.events_created += result.events_created
            run.alerts_created += result.alerts_created
            run.notifications_created += result.notifications_created
            if result.success:
                run.providers_processed += 1
            else:
                run.providers_failed += 1
        run.errors = list(summary.errors)
        run.complete()
        self.storage.write_pipeline_run(run)

        summary.run_id = run.id
        summary.run_status = run.status.value
        logger.info("pipeline_completed", **run.summary_dict(), errors=len(summary.errors))
        return summary
