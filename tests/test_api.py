"""
Tests for the HTTP trigger endpoints.
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from geoevent_alerts.api import _require_cron_key, create_app
from geoevent_alerts.config import Settings
from geoevent_alerts.exceptions import UnauthorizedError
from geoevent_alerts.notifications import LogNotifier, NotifierRegistry
from geoevent_alerts.pipeline import InProcessRunLock
from tests.conftest import CRON_KEY
from tests.fixtures import failing_fetch

FETCHER = "/api/cron/geo-event-fetcher"
SENDER = "/api/cron/notification-sender"


@pytest.fixture
def notifier():
    return LogNotifier(["email"])


@pytest.fixture
def lock():
    return InProcessRunLock()


@pytest.fixture
def client(settings, temp_db, fake_registry, notifier, lock):
    app = create_app(
        settings,
        storage=temp_db,
        registry=fake_registry,
        notifiers=NotifierRegistry([notifier]),
        lock=lock,
    )
    return TestClient(app)


class TestAuthorization:
    """Tests for cron key checks."""

    @pytest.mark.parametrize("params", [{}, {"cron_key": "wrong"}, {"cron_key": ""}], ids=["missing", "wrong", "empty"])
    @pytest.mark.parametrize("path", [FETCHER, SENDER])
    def test_rejected(self, client, path, params):
        response = client.get(path, params=params)

        assert response.status_code == 403
        assert response.json() == {"message": "Unauthorized Invalid Cron Key"}

    def test_rejected_when_no_key_configured(self, tmp_path, temp_db, fake_registry):
        app = create_app(Settings(base_dir=tmp_path), storage=temp_db, registry=fake_registry)

        response = TestClient(app).get(FETCHER, params={"cron_key": "anything"})

        assert response.status_code == 403

    @pytest.mark.parametrize("cron_key", [None, "", "wrong"])
    def test_require_cron_key_raises(self, settings, cron_key):
        with pytest.raises(UnauthorizedError, match="geo-event-fetcher"):
            _require_cron_key(settings, cron_key, "geo-event-fetcher")

    def test_require_cron_key_accepts(self, settings):
        _require_cron_key(settings, CRON_KEY, "geo-event-fetcher")

    def test_rejected_request_runs_nothing(self, client, temp_db, provider_factory):
        temp_db.upsert_provider(provider_factory.create())

        client.get(FETCHER, params={"cron_key": "wrong"})

        assert temp_db.get_pipeline_runs() == []
        assert temp_db.get_provider("p1").last_run is None


class TestGeoEventFetcher:
    """Tests for the run trigger."""

    def test_run_summary(self, client, temp_db, fake_feed, provider_factory, event_factory, site_factory):
        temp_db.upsert_provider(provider_factory.create())
        temp_db.upsert_site(site_factory.create_point(latitude=1.0, longitude=36.0))
        fake_feed.events["p1"] = [event_factory.create(latitude=1.0, longitude=36.0)]

        response = client.get(FETCHER, params={"cron_key": CRON_KEY})

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Cron job executed successfully"
        assert body["alertsCreated"] == 1
        assert body["processedProviders"] == 1
        assert body["errors"] == []
        assert body["status"] == 200
        assert temp_db.get_pipeline_runs()[0].trigger == "cron"

    def test_provider_errors_reported(self, client, temp_db, fake_feed, provider_factory):
        temp_db.upsert_provider(provider_factory.create())
        fake_feed.failures["p1"] = failing_fetch()

        body = client.get(FETCHER, params={"cron_key": CRON_KEY}).json()

        assert body["status"] == 200
        assert body["errors"][0]["providerId"] == "p1"
        assert body["errors"][0]["error"] == "HTTP error! status: 500"

    @pytest.mark.parametrize(
        "limit, expected",
        [(None, 4), ("2", 2), ("99", 15), ("abc", 15), ("0", 1)],
    )
    def test_limit_clamped(self, client, temp_db, provider_factory, limit, expected):
        for provider in provider_factory.create_batch(20):
            temp_db.upsert_provider(provider)
        params = {"cron_key": CRON_KEY}
        if limit is not None:
            params["limit"] = limit

        body = client.get(FETCHER, params=params).json()

        assert body["processedProviders"] == expected

    def test_busy(self, client, lock):
        lock.acquire()
        try:
            response = client.get(FETCHER, params={"cron_key": CRON_KEY})
        finally:
            lock.release()

        assert response.status_code == 423
        assert response.json() == {"message": "Another job is running"}


class TestNotificationSender:
    """Tests for the delivery trigger."""

    def test_delivers_pending(self, client, temp_db, notifier, fake_feed, provider_factory, event_factory, site_factory, method_factory):
        temp_db.upsert_provider(provider_factory.create())
        temp_db.upsert_site(site_factory.create_point(latitude=1.0, longitude=36.0))
        temp_db.upsert_alert_method(method_factory.create())
        fake_feed.events["p1"] = [event_factory.create(latitude=1.0, longitude=36.0)]
        client.get(FETCHER, params={"cron_key": CRON_KEY})

        response = client.get(SENDER, params={"cron_key": CRON_KEY})

        assert response.status_code == 200
        assert response.json() == {
            "message": "Notifications sent",
            "delivered": 1,
            "failed": 0,
            "disabledMethods": [],
            "status": 200,
        }
        assert len(notifier.sent) == 1

    def test_invalid_limit(self, client):
        response = client.get(SENDER, params={"cron_key": CRON_KEY, "limit": 0})

        assert response.status_code == 422


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}
