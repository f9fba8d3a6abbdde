"""
HTTP trigger endpoints.

An external scheduler calls these on a fixed cadence:

    GET /api/cron/geo-event-fetcher?cron_key=...&limit=4
    GET /api/cron/notification-sender?cron_key=...

Both reject requests without the configured cron key. When no key is
configured, every request is rejected.

Example:
    >>> from geoevent_alerts.api import create_app
    >>> app = create_app()
    >>> # uvicorn geoevent_alerts.api:create_app --factory
"""

from __future__ import annotations

import secrets
from typing import Any

from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse

from geoevent_alerts import __version__
from geoevent_alerts.config import Settings, get_settings
from geoevent_alerts.exceptions import RunInProgressError, UnauthorizedError
from geoevent_alerts.notifications import (
    NotificationDispatcher,
    NotifierRegistry,
    build_notifier_registry,
)
from geoevent_alerts.pipeline import GeoEventOrchestrator, PipelineOptions, RunLock
from geoevent_alerts.providers import ProviderRegistry, build_default_registry
from geoevent_alerts.storage import SQLiteStorage
from geoevent_alerts.utils.logging import get_logger

logger = get_logger(__name__)

UNAUTHORIZED = {"message": "Unauthorized Invalid Cron Key"}
BUSY = {"message": "Another job is running"}


def _require_cron_key(settings: Settings, cron_key: str | None, endpoint: str) -> None:
    expected = settings.cron.cron_key
    if expected and cron_key and secrets.compare_digest(cron_key.encode(), expected.encode()):
        return
    logger.warning("cron_unauthorized", endpoint=endpoint)
    raise UnauthorizedError(f"invalid cron key for {endpoint}")


def create_app(
    settings: Settings | None = None,
    storage: SQLiteStorage | None = None,
    registry: ProviderRegistry | None = None,
    notifiers: NotifierRegistry | None = None,
    lock: RunLock | None = None,
) -> FastAPI:
    """Build the trigger app.

    Collaborators are created from ``settings`` unless passed in.
    """
    settings = settings or get_settings()
    if storage is None:
        storage = SQLiteStorage.from_settings(settings)
        storage.initialize()
    registry = registry or build_default_registry(timeout=settings.pipeline.fetch_timeout_seconds)
    notifiers = notifiers or build_notifier_registry(settings)

    orchestrator = GeoEventOrchestrator.from_settings(
        storage,
        registry,
        settings,
        options=PipelineOptions.from_settings(settings, trigger="cron"),
        lock=lock,
    )
    dispatcher = NotificationDispatcher.from_settings(storage, notifiers, settings)

    app = FastAPI(title="Geo-event alerts", version=__version__)
    app.state.settings = settings
    app.state.storage = storage
    app.state.orchestrator = orchestrator
    app.state.dispatcher = dispatcher

    @app.exception_handler(UnauthorizedError)
    async def unauthorized(request: Request, exc: UnauthorizedError) -> JSONResponse:
        return JSONResponse(status_code=403, content=UNAUTHORIZED)

    @app.exception_handler(RunInProgressError)
    async def busy(request: Request, exc: RunInProgressError) -> JSONResponse:
        return JSONResponse(status_code=423, content=BUSY)

    @app.get("/api/cron/geo-event-fetcher")
    def geo_event_fetcher(
        cron_key: str | None = Query(default=None),
        limit: str | None = Query(default=None),
    ) -> Any:
        _require_cron_key(settings, cron_key, "geo-event-fetcher")

        provider_limit = settings.pipeline.clamp_limit(limit)
        summary = orchestrator.run(provider_limit, trigger="cron")
        return summary.to_dict()

    @app.get("/api/cron/notification-sender")
    def notification_sender(
        cron_key: str | None = Query(default=None),
        limit: int | None = Query(default=None, ge=1),
    ) -> Any:
        _require_cron_key(settings, cron_key, "notification-sender")

        result = dispatcher.deliver_pending(limit)
        return {
            "message": "Notifications sent",
            "delivered": result.delivered,
            "failed": result.failed,
            "disabledMethods": result.disabled_methods,
            "status": 200,
        }

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    return app
