"""
Tests for storage backends.

Tests the SQLiteStorage implementation for:
- Schema initialization
- Event inserts and lookups
- Provider scheduling
- Run records and leases
- Notification bookkeeping
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from geoevent_alerts.exceptions import PersistenceError
from geoevent_alerts.ingest import ChecksumGenerator
from geoevent_alerts.models import PipelineRun, RunStatus
from geoevent_alerts.storage import PipelineStorage, SQLiteStorage
from geoevent_alerts.utils.time import utc_now


class TestSQLiteStorageInit:
    """Tests for SQLiteStorage initialization."""

    def test_create_new_database(self, temp_db):
        """Test creating a new database."""
        assert temp_db.db_path.exists()

    def test_initialize_idempotent(self, temp_db):
        """Test that initialize() is safe to call multiple times."""
        temp_db.initialize()
        temp_db.initialize()

    def test_implements_protocol(self, temp_db):
        assert isinstance(temp_db, PipelineStorage)

    def test_stats_empty(self, temp_db):
        stats = temp_db.get_stats()

        assert stats["geo_events_count"] == 0
        assert stats["pending_notifications"] == 0
        assert "geometry_cache" in stats
        assert "latest_run_day" not in stats

    def test_stats_backlog(self, temp_db, event_factory, provider_factory):
        temp_db.upsert_provider(provider_factory.create(id="p1"))
        temp_db.bulk_insert(ChecksumGenerator().generate_for_events(event_factory.create_batch(3)))
        run = PipelineRun(trigger="cli", provider_limit=4)
        run.alerts_created = 2
        run.complete()
        temp_db.write_pipeline_run(run)

        stats = temp_db.get_stats()

        assert stats["unprocessed_events"] == 3
        assert stats["unprocessed_by_provider"] == {"p1": 3}
        assert stats["providers_never_run"] == 1
        assert stats["latest_run_day"]["runs"] == 1
        assert stats["latest_run_day"]["alerts_created"] == 2

    def test_context_manager_closes(self, tmp_path):
        with SQLiteStorage(tmp_path / "ctx.db") as storage:
            storage.initialize()
        assert storage._connection is None


class TestGeoEvents:
    """Tests for event persistence."""

    def test_bulk_insert(self, temp_db, event_factory):
        events = ChecksumGenerator().generate_for_events(event_factory.create_batch(30))

        created = temp_db.bulk_insert(events, batch_size=7)

        assert created == 30
        assert len(temp_db.get_events()) == 30

    def test_bulk_insert_skips_duplicates(self, temp_db, event_factory):
        """Test the checksum primary key drops repeated rows."""
        events = ChecksumGenerator().generate_for_events(event_factory.create_batch(5))

        temp_db.bulk_insert(events)
        assert temp_db.bulk_insert(events) == 0

    def test_bulk_insert_requires_id(self, temp_db, event_factory):
        with pytest.raises(ValueError):
            temp_db.bulk_insert([event_factory.create()])

    def test_round_trip_fields(self, temp_db, event_factory):
        event = ChecksumGenerator().generate_for_events(
            [event_factory.create(raw_data={"frp": "12.5"}, confidence="low")]
        )[0]
        temp_db.bulk_insert([event])

        stored = temp_db.get_events("p1")[0]

        assert stored.id == event.id
        assert stored.event_date == event.event_date
        assert stored.raw_data == {"frp": "12.5"}
        assert stored.confidence.value == "low"

    def test_mark_processed_scoped(self, temp_db, event_factory):
        """Test only the named events flip."""
        events = ChecksumGenerator().generate_for_events(event_factory.create_batch(3))
        temp_db.bulk_insert(events)

        assert temp_db.mark_processed([events[0].id]) == 1
        assert set(temp_db.find_unprocessed_by_provider("p1", 10)) == {events[1].id, events[2].id}

    def test_mark_processed_empty(self, temp_db):
        assert temp_db.mark_processed([]) == 0

    def test_find_unprocessed_limit(self, temp_db, event_factory):
        temp_db.bulk_insert(ChecksumGenerator().generate_for_events(event_factory.create_batch(8)))

        assert len(temp_db.find_unprocessed_by_provider("p1", 5)) == 5


class TestProviders:
    """Tests for provider scheduling."""

    def test_upsert_and_get(self, temp_db, provider_factory):
        provider = provider_factory.create(config={"bbox": "1,2,3,4"})
        temp_db.upsert_provider(provider)

        stored = temp_db.get_provider(provider.id)

        assert stored is not None
        assert stored.config["bbox"] == "1,2,3,4"
        assert stored.adapter_key == "FAKE"

    def test_eligible_providers(self, temp_db, provider_factory):
        """Test only active, scheduled and due providers are returned."""
        now = utc_now()
        due = provider_factory.create(id="due", last_run=now - timedelta(minutes=30))
        never = provider_factory.create(id="never")
        recent = provider_factory.create(id="recent", last_run=now - timedelta(minutes=5))
        inactive = provider_factory.create(id="inactive", is_active=False)
        unscheduled = provider_factory.create(id="unscheduled", fetch_frequency_minutes=None)
        for provider in (due, never, recent, inactive, unscheduled):
            temp_db.upsert_provider(provider)

        eligible = [p.id for p in temp_db.find_eligible_providers(10, now=now)]

        assert eligible == ["never", "due"]

    def test_eligible_most_overdue_first(self, temp_db, provider_factory):
        now = utc_now()
        temp_db.upsert_provider(provider_factory.create(id="a", last_run=now - timedelta(minutes=20)))
        temp_db.upsert_provider(provider_factory.create(id="b", last_run=now - timedelta(minutes=60)))

        assert [p.id for p in temp_db.find_eligible_providers(1, now=now)] == ["b"]

    def test_update_last_run(self, temp_db, provider_factory):
        provider = provider_factory.create()
        temp_db.upsert_provider(provider)
        stamp = utc_now().replace(microsecond=0)

        temp_db.update_last_run(provider.id, stamp)

        assert temp_db.get_provider(provider.id).last_run == stamp
        assert temp_db.find_eligible_providers(10, now=stamp) == []


class TestRunsAndLeases:
    """Tests for run records and run leases."""

    def test_write_and_update_run(self, temp_db):
        run = PipelineRun(trigger="cli", provider_limit=4)

        run_id = temp_db.write_pipeline_run(run)
        run.alerts_created = 3
        run.complete()
        temp_db.write_pipeline_run(run)

        stored = temp_db.get_pipeline_runs()[0]
        assert stored.id == run_id
        assert stored.alerts_created == 3
        assert stored.status == RunStatus.COMPLETED

    def test_lease_exclusive(self, temp_db):
        assert temp_db.acquire_lease("job", "a", 60) is True
        assert temp_db.acquire_lease("job", "b", 60) is False

    def test_lease_release(self, temp_db):
        temp_db.acquire_lease("job", "a", 60)

        assert temp_db.release_lease("job", "b") is False
        assert temp_db.release_lease("job", "a") is True
        assert temp_db.acquire_lease("job", "b", 60) is True

    def test_expired_lease_taken_over(self, temp_db):
        """Test a crashed holder's lease frees itself."""
        now = utc_now()
        temp_db.acquire_lease("job", "a", 60, now=now - timedelta(minutes=5))

        assert temp_db.acquire_lease("job", "b", 60, now=now) is True


class TestNotificationBookkeeping:
    """Tests for delivery failure counting."""

    def test_failure_increments_and_disables(self, temp_db, method_factory):
        method = method_factory.create(method="sms", destination="+100")
        temp_db.upsert_alert_method(method)

        assert temp_db.record_notification_failure("sms", "+100", max_fail_count=2) is False
        assert temp_db.record_notification_failure("sms", "+100", max_fail_count=2) is True

        stored = temp_db.get_alert_method(method.id)
        assert stored.fail_count == 2
        assert stored.is_enabled is False

    def test_success_resets_count(self, temp_db, method_factory):
        method = method_factory.create(method="email", destination="a@example.org")
        temp_db.upsert_alert_method(method)
        temp_db.record_notification_failure("email", "a@example.org")

        temp_db.record_notification_success("email", "a@example.org")

        assert temp_db.get_alert_method(method.id).fail_count == 0


class TestErrors:
    def test_sqlite_error_becomes_persistence_error(self, temp_db):
        with pytest.raises(PersistenceError):
            temp_db.query("SELECT * FROM no_such_table")
