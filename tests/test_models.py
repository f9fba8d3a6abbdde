"""
Tests for Pydantic models.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from pydantic import ValidationError

from geoevent_alerts.models import (
    AlertMethod,
    Confidence,
    DetectionFragment,
    GeoEvent,
    GeoEventProvider,
    GeometryType,
    PipelineRun,
    RunStatus,
    Site,
)
from geoevent_alerts.utils.time import utc_now


class TestGeoEvent:
    """Tests for GeoEvent."""

    def test_normalizes_input(self):
        event = GeoEvent(
            latitude=1.0,
            longitude=36.0,
            event_date="2024-01-01T10:00:00Z",
            confidence=" HIGH ",
            provider_id="p1",
            provider_client_id="MODIS_NRT",
            slice=33,
        )

        assert event.event_date == datetime(2024, 1, 1, 10, tzinfo=UTC)
        assert event.confidence == Confidence.HIGH
        assert event.slice == "33"
        assert event.id is None

    @pytest.mark.parametrize("field, value", [("latitude", 91), ("longitude", -181)])
    def test_rejects_out_of_range(self, event_factory, field, value):
        with pytest.raises(ValidationError):
            event_factory.create(**{field: value})

    def test_db_round_trip(self, event_factory):
        event = event_factory.create(id="abc", raw_data={"bright_ti4": "330.1"})

        restored = GeoEvent.from_db_row(event.to_db_dict())

        assert restored == event

    def test_is_geostationary(self, event_factory):
        assert event_factory.create(provider_client_id="GEOSTATIONARY").is_geostationary
        assert not event_factory.create().is_geostationary


class TestGeoEventProvider:
    """Tests for GeoEventProvider scheduling helpers."""

    def test_never_run_is_due(self, provider_factory):
        assert provider_factory.create().is_due() is True

    def test_due_after_frequency(self, provider_factory):
        now = utc_now()
        provider = provider_factory.create(last_run=now - timedelta(minutes=10), fetch_frequency_minutes=15)

        assert provider.is_due(now) is False
        assert provider.is_due(now + timedelta(minutes=5)) is True
        assert provider.next_run_at == provider.last_run + timedelta(minutes=15)

    def test_inactive_or_unscheduled_not_due(self, provider_factory):
        assert provider_factory.create(is_active=False).is_due() is False
        assert provider_factory.create(fetch_frequency_minutes=None).is_due() is False

    def test_config_helpers(self, provider_factory):
        provider = provider_factory.create(config={"client": "FIRMS", "slice": 2})

        assert provider.adapter_key == "FIRMS"
        assert provider.slice == "2"

    def test_db_round_trip(self, provider_factory):
        provider = provider_factory.create(last_run=datetime(2024, 1, 1, tzinfo=UTC))

        assert GeoEventProvider.from_db_row(provider.to_db_dict()) == provider


class TestSite:
    """Tests for Site."""

    def test_point_factory(self):
        site = Site.point("s1", latitude=1.0, longitude=36.0, slices=[33])

        assert site.geometry_type == GeometryType.POINT
        assert site.geometry == {"type": "Point", "coordinates": [36.0, 1.0]}
        assert site.detection_geometry["type"] == "Polygon"
        assert site.slices == ["33"]

    def test_is_alertable(self, site_factory):
        now = utc_now()

        assert site_factory.create_point().is_alertable(now)
        assert not site_factory.create_point(is_monitored=False).is_alertable(now)
        assert not site_factory.create_point(deleted_at=now).is_alertable(now)
        assert not site_factory.create_point(stop_alert_until=now + timedelta(hours=1)).is_alertable(now)
        assert site_factory.create_point(stop_alert_until=now - timedelta(hours=1)).is_alertable(now)

    def test_db_round_trip(self, site_factory):
        site = site_factory.create_polygon(0, 0, 1, 1, slices=["1", "2"])

        assert Site.from_db_row(site.to_db_dict()) == site

    def test_slices_from_json_numbers(self):
        site = Site.point("s1", latitude=1.0, longitude=36.0, slices="[33, 4]")

        assert site.slices == ["33", "4"]


class TestDetectionFragment:
    def test_slices_coerced_to_text(self):
        fragment = DetectionFragment(
            site_id="s1",
            geometry={"type": "Polygon", "coordinates": [[[0, 0], [1, 0], [1, 1], [0, 0]]]},
            slices=[1, "2"],
        )

        assert fragment.slices == ["1", "2"]


class TestAlertMethod:
    def test_receives_alerts(self, method_factory):
        assert method_factory.create().receives_alerts
        assert not method_factory.create(is_verified=False).receives_alerts
        assert not method_factory.create(is_enabled=False).receives_alerts
        assert not method_factory.create(deleted_at=utc_now()).receives_alerts

    def test_method_normalized(self, method_factory):
        assert method_factory.create(method=" SMS ").method == "sms"

    def test_from_db_row_flags(self, method_factory):
        row = {**method_factory.create().to_db_dict(), "is_enabled": 0, "fail_count": 4}

        method = AlertMethod.from_db_row(row)

        assert method.is_enabled is False
        assert method.is_verified is True
        assert method.fail_count == 4
        assert method.deleted_at is None


class TestPipelineRun:
    """Tests for PipelineRun."""

    def test_complete_clean(self):
        run = PipelineRun(trigger="cron")
        run.providers_processed = 2

        run.complete()

        assert run.status == RunStatus.COMPLETED
        assert run.duration_seconds is not None
        assert run.is_running is False

    def test_complete_partial(self):
        run = PipelineRun()
        run.providers_failed = 1

        run.complete()

        assert run.status == RunStatus.PARTIAL

    def test_complete_failed(self):
        run = PipelineRun()

        run.complete(error="database locked")

        assert run.status == RunStatus.FAILED
        assert run.errors[-1] == {"stage": "run", "error": "database locked"}

    def test_db_round_trip(self):
        run = PipelineRun(trigger="cli", errors=[{"providerId": "p1", "stage": "fetch", "error": "x"}])

        restored = PipelineRun.from_db_row({"id": 1, **run.to_db_dict()})

        assert restored.errors == run.errors
        assert restored.trigger == "cli"
