"""
Tests for the run orchestration layer.

Covers:
- BoundedQueue admission and result ordering
- In-process and lease run locks
- Per-provider cycles: chunking, fault isolation, lastRun
- Whole runs: summary, run records, locking
- The end-to-end fire scenario
"""

from __future__ import annotations

import threading
import time
from datetime import UTC, datetime, timedelta

import pytest

from geoevent_alerts.exceptions import PersistenceError, RunInProgressError
from geoevent_alerts.ingest import GeoEventService
from geoevent_alerts.models import RunStatus
from geoevent_alerts.pipeline import (
    SUCCESS_MESSAGE,
    BoundedQueue,
    GeoEventOrchestrator,
    InProcessRunLock,
    LeaseRunLock,
    PipelineOptions,
)
from geoevent_alerts.providers import ProviderConfigCache
from tests.fixtures import FakeAdapter, failing_fetch

SCENARIO_TIME = datetime(2024, 1, 1, 10, 0, tzinfo=UTC)


@pytest.fixture
def orchestrator(temp_db, fake_registry):
    return GeoEventOrchestrator(temp_db, fake_registry, PipelineOptions(provider_limit=15))


class FlakyGeoEventService(GeoEventService):
    """Fails the insert of one chosen chunk."""

    def __init__(self, storage, fail_on_call):
        super().__init__(storage)
        self.fail_on_call = fail_on_call
        self.calls = 0

    def deduplicate_and_save(self, events, provider_id, existing_ids=None):
        self.calls += 1
        if self.calls == self.fail_on_call:
            raise PersistenceError("insert_batch failed: database is locked")
        return super().deduplicate_and_save(events, provider_id, existing_ids)


class TestBoundedQueue:
    """Tests for bounded admission."""

    def test_never_exceeds_concurrency(self):
        """Test ten slow tasks at concurrency three never overlap more than three."""
        with BoundedQueue(3) as queue:
            results = queue.run_all([lambda: time.sleep(0.05)] * 10)

        assert len(results) == 10
        assert queue.max_in_flight == 3
        assert queue.in_flight == 0

    def test_results_in_submission_order(self):
        def task(i):
            def run():
                time.sleep(0.01 * (5 - i))
                return i

            return run

        with BoundedQueue(3) as queue:
            results = queue.run_all(task(i) for i in range(5))

        assert [r.value for r in results] == [0, 1, 2, 3, 4]
        assert [r.index for r in results] == [0, 1, 2, 3, 4]

    def test_errors_captured(self):
        def boom():
            raise ValueError("bad task")

        with BoundedQueue(2) as queue:
            results = queue.run_all([lambda: 1, boom, lambda: 3])

        assert [r.ok for r in results] == [True, False, True]
        assert isinstance(results[1].error, ValueError)
        assert results[2].value == 3

    def test_invalid_concurrency(self):
        with pytest.raises(ValueError, match="positive integer"):
            BoundedQueue(0)


class TestRunLocks:
    """Tests for run locks."""

    def test_in_process_lock_busy(self):
        lock = InProcessRunLock()
        lock.acquire()

        with pytest.raises(RunInProgressError, match="Another job is running"):
            lock.acquire()

        lock.release()
        with lock:
            assert lock.locked

    def test_lease_lock_excludes_other_holder(self, temp_db):
        """Test two lock instances on one database exclude each other."""
        first = LeaseRunLock(temp_db)
        second = LeaseRunLock(temp_db)

        first.acquire()
        with pytest.raises(RunInProgressError):
            second.acquire()
        first.release()

        with second:
            pass

    def test_busy_lease_releases_local_lock(self, temp_db):
        local = InProcessRunLock()
        holder = LeaseRunLock(temp_db)
        contender = LeaseRunLock(temp_db, local=local)
        holder.acquire()

        with pytest.raises(RunInProgressError):
            contender.acquire()

        assert local.locked is False


class TestProcessProvider:
    """Tests for one provider's cycle."""

    def test_events_saved_and_last_run_set(self, temp_db, orchestrator, fake_feed, provider_factory, event_factory):
        provider = provider_factory.create()
        temp_db.upsert_provider(provider)
        fake_feed.events[provider.id] = event_factory.create_batch(5)
        now = datetime(2024, 1, 1, 12, tzinfo=UTC)

        result = orchestrator.process_provider(provider, now=now)

        assert result.success
        assert (result.events_fetched, result.events_new, result.events_created) == (5, 5, 5)
        assert result.last_run_updated
        assert temp_db.get_provider(provider.id).last_run == now

    def test_chunked_insert(self, temp_db, fake_registry, fake_feed, provider_factory, event_factory):
        orchestrator = GeoEventOrchestrator(temp_db, fake_registry, PipelineOptions(chunk_size=2))
        provider = provider_factory.create()
        events = event_factory.create_batch(5)
        fake_feed.events[provider.id] = events + events[:2]

        result = orchestrator.process_provider(provider)

        assert result.events_fetched == 7
        assert result.events_created == 5
        assert len(temp_db.get_events(provider.id)) == 5

    def test_failed_chunk_does_not_stop_others(self, temp_db, fake_registry, fake_feed, provider_factory, event_factory):
        """Test a chunk insert failure is recorded and later chunks still land."""
        orchestrator = GeoEventOrchestrator(
            temp_db,
            fake_registry,
            PipelineOptions(chunk_size=2),
            geo_events=FlakyGeoEventService(temp_db, fail_on_call=2),
        )
        provider = provider_factory.create()
        temp_db.upsert_provider(provider)
        fake_feed.events[provider.id] = event_factory.create_batch(5)

        result = orchestrator.process_provider(provider)

        assert result.events_created == 3
        assert [e["stage"] for e in result.errors] == ["dedup"]
        assert result.last_run_updated is False
        assert temp_db.get_provider(provider.id).last_run is None

    def test_fetch_error_recorded(self, orchestrator, fake_feed, provider_factory):
        provider = provider_factory.create()
        fake_feed.failures[provider.id] = failing_fetch()

        result = orchestrator.process_provider(provider)

        assert result.errors == [
            {
                "providerId": provider.id,
                "clientId": "MODIS_NRT",
                "stage": "fetch",
                "error": "HTTP error! status: 500",
                "type": "FetchError",
            }
        ]

    @pytest.mark.parametrize(
        "config, error_type",
        [({"slice": ""}, "ConfigurationError"), ({"client": "LANDSAT"}, "ProviderNotFoundError")],
        ids=["incomplete", "unknown-adapter"],
    )
    def test_bad_configuration_recorded(self, orchestrator, provider_factory, config, error_type):
        result = orchestrator.process_provider(provider_factory.create(config=config))

        assert result.errors[0]["stage"] == "configure"
        assert result.errors[0]["type"] == error_type

    def test_owned_adapter_closed(self, temp_db, fake_feed, provider_factory):
        """Test adapters built for one cycle are closed afterwards."""
        built = []

        class RecordingRegistry:
            def for_provider(self, provider):
                adapter = FakeAdapter(fake_feed).with_config(provider.config)
                built.append(adapter)
                return adapter

        orchestrator = GeoEventOrchestrator(temp_db, RecordingRegistry())
        orchestrator.process_provider(provider_factory.create())

        assert built[0].closed is True

    def test_cached_adapter_kept_open(self, temp_db, fake_registry, provider_factory):
        cache = ProviderConfigCache(fake_registry)
        orchestrator = GeoEventOrchestrator(temp_db, fake_registry, cache=cache)
        provider = provider_factory.create()

        orchestrator.process_provider(provider)

        assert cache.get_adapter(provider).closed is False

    def test_notifications_optional(self, temp_db, fake_registry, fake_feed, provider_factory, event_factory, site_factory, method_factory):
        orchestrator = GeoEventOrchestrator(temp_db, fake_registry, PipelineOptions(emit_notifications=False))
        temp_db.upsert_site(site_factory.create_point())
        temp_db.upsert_alert_method(method_factory.create())
        provider = provider_factory.create()
        fake_feed.events[provider.id] = [event_factory.create(latitude=1.0, longitude=36.0)]

        result = orchestrator.process_provider(provider)

        assert result.alerts_created == 1
        assert result.notifications_created == 0
        assert temp_db.get_notifications() == []


class TestRun:
    """Tests for whole runs."""

    def test_fault_isolation(self, temp_db, orchestrator, fake_feed, provider_factory, event_factory):
        """Test one failing provider out of ten leaves the rest untouched."""
        providers = provider_factory.create_batch(10)
        for provider in providers:
            temp_db.upsert_provider(provider)
            fake_feed.events[provider.id] = event_factory.create_batch(3)
        fake_feed.failures["p4"] = failing_fetch()
        now = datetime(2024, 1, 1, 12, tzinfo=UTC)

        summary = orchestrator.run(limit=10, now=now)

        assert summary.processed_providers == 10
        assert summary.events_created == 27
        assert [(e["providerId"], e["stage"]) for e in summary.errors] == [("p4", "fetch")]
        assert summary.run_status == RunStatus.PARTIAL.value
        for provider in providers:
            stored = temp_db.get_provider(provider.id)
            assert stored.last_run == (None if provider.id == "p4" else now)
        assert temp_db.get_events("p4") == []

    def test_concurrency_bound(self, temp_db, fake_registry, fake_feed, provider_factory):
        orchestrator = GeoEventOrchestrator(temp_db, fake_registry, PipelineOptions(concurrency=3))
        for provider in provider_factory.create_batch(10):
            temp_db.upsert_provider(provider)
        fake_feed.delay_seconds = 0.05

        summary = orchestrator.run(limit=10)

        assert summary.processed_providers == 10
        assert len(fake_feed.calls) == 10
        assert fake_feed.max_in_flight <= 3

    def test_limit_respected(self, temp_db, orchestrator, fake_feed, provider_factory):
        for provider in provider_factory.create_batch(6):
            temp_db.upsert_provider(provider)

        summary = orchestrator.run(limit=4)

        assert summary.processed_providers == 4
        assert len(fake_feed.calls) == 4

    def test_no_eligible_providers(self, orchestrator):
        summary = orchestrator.run()

        assert summary.to_dict()["processedProviders"] == 0
        assert summary.to_dict()["alertsCreated"] == 0
        assert summary.run_status == RunStatus.COMPLETED.value

    def test_summary_dict(self, temp_db, orchestrator, provider_factory):
        temp_db.upsert_provider(provider_factory.create())

        summary = orchestrator.run(trigger="cron")

        assert summary.to_dict() == {
            "message": SUCCESS_MESSAGE,
            "alertsCreated": 0,
            "processedProviders": 1,
            "errors": [],
            "status": 200,
            "runId": summary.run_id,
            "runStatus": "completed",
        }

    def test_run_record_written(self, temp_db, orchestrator, fake_feed, provider_factory, event_factory):
        provider = provider_factory.create()
        temp_db.upsert_provider(provider)
        fake_feed.events[provider.id] = event_factory.create_batch(4)

        summary = orchestrator.run(trigger="cli")

        run = temp_db.get_pipeline_runs()[0]
        assert run.id == summary.run_id
        assert run.trigger == "cli"
        assert run.status == RunStatus.COMPLETED
        assert run.events_created == 4
        assert run.providers_processed == 1
        assert run.completed_at is not None

    def test_selection_failure_recorded(self, temp_db, orchestrator, monkeypatch):
        def broken(limit, *, now=None):
            raise PersistenceError("find_eligible_providers failed: disk I/O error")

        monkeypatch.setattr(temp_db, "find_eligible_providers", broken)

        with pytest.raises(PersistenceError):
            orchestrator.run()

        run = temp_db.get_pipeline_runs()[0]
        assert run.status == RunStatus.FAILED
        assert orchestrator.lock.locked is False

    def test_rejected_while_running(self, temp_db, fake_registry, provider_factory):
        lock = InProcessRunLock()
        orchestrator = GeoEventOrchestrator(temp_db, fake_registry, lock=lock)
        temp_db.upsert_provider(provider_factory.create())
        lock.acquire()

        with pytest.raises(RunInProgressError):
            orchestrator.run()

        assert temp_db.get_pipeline_runs() == []
        assert temp_db.get_provider("p1").last_run is None

    def test_overlapping_runs(self, temp_db, fake_registry, fake_feed, provider_factory):
        """Test a run started while another is in flight is refused."""
        orchestrator = GeoEventOrchestrator(temp_db, fake_registry)
        temp_db.upsert_provider(provider_factory.create())
        fake_feed.delay_seconds = 0.3
        errors = []

        worker = threading.Thread(target=orchestrator.run)
        worker.start()
        time.sleep(0.1)
        try:
            orchestrator.run()
        except RunInProgressError as e:
            errors.append(e)
        worker.join()

        assert len(errors) == 1
        assert len(temp_db.get_pipeline_runs()) == 1

    def test_options_from_settings(self, settings):
        options = PipelineOptions.from_settings(settings, concurrency=None, chunk_size=10)

        assert options.concurrency == settings.pipeline.concurrency
        assert options.chunk_size == 10
        assert options.provider_limit == 4

    def test_from_settings_uses_lease_lock(self, temp_db, fake_registry, settings):
        orchestrator = GeoEventOrchestrator.from_settings(temp_db, fake_registry, settings)

        assert isinstance(orchestrator.lock, LeaseRunLock)
        assert orchestrator.cache is not None


class TestFireScenario:
    """A detection next to a monitored farm, from fetch to notifications."""

    @pytest.fixture
    def scenario(self, temp_db, fake_feed, provider_factory, event_factory, site_factory, method_factory):
        provider = provider_factory.create(id="p1", config={"slice": "33"})
        temp_db.upsert_provider(provider)
        fake_feed.events["p1"] = [event_factory.create_at(1.0, 36.0, SCENARIO_TIME)]
        site = site_factory.create_point(id="s1", latitude=1.0, longitude=36.0, slices=["33"])
        temp_db.upsert_site(site)
        for method in (
            method_factory.create(),
            method_factory.create_webhook(),
            method_factory.create(method="sms", destination="+254700000000", is_verified=False),
        ):
            temp_db.upsert_alert_method(method)
        return provider, site

    def test_detection_to_notifications(self, temp_db, orchestrator, scenario):
        now = SCENARIO_TIME + timedelta(minutes=30)

        summary = orchestrator.run(now=now)

        assert summary.alerts_created == 1
        assert summary.errors == []

        events = temp_db.get_events("p1")
        assert len(events) == 1
        assert events[0].is_processed is True

        alerts = temp_db.get_site_alerts("s1")
        assert len(alerts) == 1
        assert alerts[0].distance == pytest.approx(0, abs=1)
        assert alerts[0].geo_event_id == events[0].id
        assert alerts[0].is_processed is True

        notifications = temp_db.get_notifications(alerts[0].id)
        assert sorted(n.alert_method for n in notifications) == ["email", "webhook"]
        assert temp_db.get_provider("p1").last_run == now

    def test_rerun_is_quiet(self, temp_db, orchestrator, scenario):
        """Test the same detection fetched again creates nothing new."""
        orchestrator.run(now=SCENARIO_TIME + timedelta(minutes=30))

        summary = orchestrator.run(now=SCENARIO_TIME + timedelta(minutes=50))

        assert summary.processed_providers == 1
        assert summary.alerts_created == 0
        assert len(temp_db.get_events("p1")) == 1
        assert len(temp_db.get_notifications()) == 2
