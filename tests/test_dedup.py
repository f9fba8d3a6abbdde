"""
Tests for deduplication and ingestion.

Covers:
- Idempotent ingestion
- Windowed existing-id lookup
- In-batch duplicates
- Chunked vs single-batch equivalence
"""

from __future__ import annotations

from datetime import timedelta

from geoevent_alerts.ingest import DedupResult, DuplicateFilter, GeoEventService
from geoevent_alerts.storage import SQLiteStorage
from geoevent_alerts.utils.time import utc_now


class TestDuplicateFilter:
    """Tests for DuplicateFilter."""

    def test_filter_in_memory_keeps_first(self, event_factory):
        """Test the first occurrence of an id wins."""
        a = event_factory.create(id="x", raw_data={"n": 1})
        b = event_factory.create(id="x", raw_data={"n": 2})
        c = event_factory.create(id="y")

        unique = DuplicateFilter.filter_in_memory([a, b, c])

        assert [e.id for e in unique] == ["x", "y"]
        assert unique[0].raw_data == {"n": 1}

    def test_filter_existing(self, event_factory):
        """Test ids already known are removed."""
        events = [event_factory.create(id=i) for i in ("a", "b", "c")]

        assert [e.id for e in DuplicateFilter.filter_existing(events, {"b"})] == ["a", "c"]


class TestDedupResult:
    def test_add(self):
        """Test results from successive chunks sum up."""
        total = DedupResult(2, 3, {"insert": 1.0}) + DedupResult(1, 1, {"insert": 0.5, "dedup": 0.1})

        assert (total.created, total.new) == (3, 4)
        assert total.timings_ms == {"insert": 1.5, "dedup": 0.1}


class TestGeoEventService:
    """Tests for deduplicate_and_save()."""

    def test_empty_input(self, temp_db):
        result = GeoEventService(temp_db).deduplicate_and_save([], "p1")

        assert (result.created, result.new) == (0, 0)

    def test_first_run_creates_all(self, temp_db, event_factory):
        """Test a fresh batch is stored in full."""
        events = event_factory.create_batch(25)

        result = GeoEventService(temp_db).deduplicate_and_save(events, "p1")

        assert (result.created, result.new) == (25, 25)
        assert len(temp_db.get_events("p1")) == 25

    def test_idempotent(self, temp_db, event_factory):
        """Test running the same batch twice creates nothing the second time."""
        service = GeoEventService(temp_db)
        events = event_factory.create_batch(10)

        service.deduplicate_and_save(events, "p1")
        second = service.deduplicate_and_save(events, "p1")

        assert (second.created, second.new) == (0, 0)
        assert len(temp_db.get_events("p1")) == 10

    def test_in_batch_duplicates(self, temp_db, event_factory):
        """Test the same detection twice in one fetch is stored once."""
        event = event_factory.create()

        result = GeoEventService(temp_db).deduplicate_and_save([event, event.model_copy()], "p1")

        assert (result.created, result.new) == (1, 1)

    def test_existing_ids_updated_in_place(self, temp_db, event_factory):
        """Test ids inserted by one call are added to the caller's set."""
        service = GeoEventService(temp_db)
        existing: set[str] = set()

        service.deduplicate_and_save(event_factory.create_batch(3), "p1", existing)

        assert len(existing) == 3


class TestDedupWindow:
    """Tests for the recent-id window."""

    def test_event_inside_window_found(self, temp_db, event_factory):
        """Test an event 11h old is seen as existing with a 12h window."""
        service = GeoEventService(temp_db, window_hours=12)
        event = event_factory.create(event_date=utc_now() - timedelta(hours=11))
        service.deduplicate_and_save([event], "p1")

        assert len(service.fetch_existing_ids("p1")) == 1

        again = service.deduplicate_and_save([event], "p1")
        assert (again.created, again.new) == (0, 0)

    def test_event_outside_window_not_found(self, temp_db, event_factory):
        """Test an event 13h old is re-attempted but never duplicated."""
        service = GeoEventService(temp_db, window_hours=12)
        event = event_factory.create(event_date=utc_now() - timedelta(hours=13))
        service.deduplicate_and_save([event], "p1")

        assert service.fetch_existing_ids("p1") == set()

        again = service.deduplicate_and_save([event], "p1")
        assert again.new == 1
        assert again.created == 0
        assert len(temp_db.get_events("p1")) == 1

    def test_window_scoped_to_provider(self, temp_db, event_factory):
        """Test another provider's ids are not part of the window."""
        service = GeoEventService(temp_db)
        service.deduplicate_and_save(event_factory.create_batch(2, provider_id="p1"), "p1")

        assert service.fetch_existing_ids("p2") == set()


class TestBatchEquivalence:
    """Chunking is a memory bound, not a behaviour change."""

    def test_chunks_match_single_batch(self, temp_db, tmp_path, event_factory):
        """Test 4,500 events in chunks of 2,000 equal one batch of 4,500."""
        events = event_factory.create_batch(4400)
        events += events[:100]  # in-batch duplicates spanning chunks

        single = GeoEventService(temp_db).deduplicate_and_save(events, "p1")

        with SQLiteStorage(tmp_path / "chunked.db") as other:
            other.initialize()
            service = GeoEventService(other)
            existing = service.fetch_existing_ids("p1")
            chunked = DedupResult()
            for start in range(0, len(events), 2000):
                chunked += service.deduplicate_and_save(events[start : start + 2000], "p1", existing)
            chunked_rows = len(other.get_events("p1"))

        assert (chunked.created, chunked.new) == (single.created, single.new) == (4400, 4400)
        assert chunked_rows == len(temp_db.get_events("p1")) == 4400
