"""
Notification delivery.

Pending notifications are rendered into a message and handed to the
notifier registered for their delivery method. A notifier answers with
True (delivered) or False (leave pending for a later sweep).

Notifiers implement one method::

    notify(destination, message) -> bool

Example:
    >>> from geoevent_alerts.notifications import (
    ...     NotificationDispatcher, NotifierRegistry, WebhookNotifier,
    ... )
    >>>
    >>> notifiers = NotifierRegistry([WebhookNotifier()])
    >>> dispatcher = NotificationDispatcher(storage, notifiers)
    >>> result = dispatcher.deliver_pending(limit=50)
    >>> print(f"{result.delivered} delivered, {result.failed} failed")
"""

from __future__ import annotations

import json
import math
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

import httpx

from geoevent_alerts.utils.logging import get_logger

if TYPE_CHECKING:
    from geoevent_alerts.config.settings import Settings
    from geoevent_alerts.storage.protocol import NotificationStore

logger = get_logger(__name__)


@dataclass
class RenderedMessage:
    """What a notifier sends."""

    subject: str
    message: str
    url: str | None = None
    alert: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _format_coordinate(value: float) -> str:
    return f"{value:g}" if float(value).is_integer() else repr(float(value))


def render_message(alert: Mapping[str, Any], *, url_template: str | None = None) -> RenderedMessage:
    """Render the subject and body for one pending notification.

    ``alert`` is a row from ``find_undelivered_notifications``. A zero
    distance means the detection lies inside the site boundary; otherwise
    the distance is reported in whole kilometres.

    Example:
        >>> render_message({"distance": 0, "site_name": "Farm", "confidence": "high",
        ...                 "latitude": 1.0, "longitude": 36.0, "site_alert_id": "a1"}).message
        'Detected inside Farm with high confidence. Check 1, 36 for fires.'
    """
    distance = float(alert.get("distance") or 0.0)
    site_name = alert.get("site_name") or ""
    placement = "inside" if distance == 0 else f"{math.floor(distance / 1000 + 0.5)} km outside"
    latitude = _format_coordinate(alert["latitude"])
    longitude = _format_coordinate(alert["longitude"])

    raw_data = alert.get("raw_data") or {}
    if isinstance(raw_data, str):
        raw_data = json.loads(raw_data)

    alert_id = alert.get("site_alert_id")
    return RenderedMessage(
        subject=f"Likely fire {placement} {site_name} 🔥",
        message=(
            f"Detected {placement} {site_name} with {alert.get('confidence')} confidence. "
            f"Check {latitude}, {longitude} for fires."
        ),
        url=url_template.format(alert_id=alert_id) if url_template and alert_id else None,
        alert={
            "id": alert_id,
            "type": alert.get("type"),
            "confidence": alert.get("confidence"),
            "source": alert.get("detected_by"),
            "date": alert.get("event_date"),
            "latitude": alert["latitude"],
            "longitude": alert["longitude"],
            "distance": distance,
            "siteId": alert.get("site_id"),
            "siteName": site_name,
            "data": raw_data,
        },
    )


# ============================================================================
# NOTIFIERS
# ============================================================================


@runtime_checkable
class Notifier(Protocol):
    """Delivery channel for one or more alert methods."""

    @property
    def supported_methods(self) -> Sequence[str]:
        ...

    def notify(self, destination: str, message: RenderedMessage) -> bool:
        """Deliver ``message``; True if the destination accepted it."""
        ...


class WebhookNotifier:
    """POSTs the rendered message as JSON to the destination URL."""

    supported_methods = ("webhook",)

    def __init__(self, *, timeout: float = 10.0, transport: httpx.BaseTransport | None = None):
        self._client = httpx.Client(timeout=timeout, transport=transport)

    def notify(self, destination: str, message: RenderedMessage) -> bool:
        try:
            response = self._client.post(destination, json=message.to_dict())
        except httpx.HTTPError as e:
            logger.warning("webhook_delivery_failed", destination=destination, error=str(e))
            return False
        if not response.is_success:
            logger.warning("webhook_delivery_failed", destination=destination, status=response.status_code)
            return False
        return True

    def close(self) -> None:
        self._client.close()


class LogNotifier:
    """Writes the message to the log instead of sending it.

    Useful for development and for methods delivered by another system.
    """

    def __init__(self, methods: Iterable[str] = ("device",)):
        self.supported_methods = tuple(methods)
        self.sent: list[tuple[str, RenderedMessage]] = []

    def notify(self, destination: str, message: RenderedMessage) -> bool:
        logger.info("notification_logged", destination=destination, subject=message.subject)
        self.sent.append((destination, message))
        return True


class NotifierRegistry:
    """Notifiers by delivery method."""

    def __init__(self, notifiers: Iterable[Notifier] = ()):
        self._notifiers: dict[str, Notifier] = {}
        for notifier in notifiers:
            self.register(notifier)

    def register(self, notifier: Notifier) -> Notifier:
        for method in notifier.supported_methods:
            if method in self._notifiers:
                raise ValueError(f"Notifier for method '{method}' has already been registered")
            self._notifiers[method] = notifier
        return notifier

    def get(self, method: str) -> Notifier:
        try:
            return self._notifiers[method]
        except KeyError:
            raise KeyError(f"Notifier with key '{method}' not found") from None

    def methods(self) -> list[str]:
        return list(self._notifiers)

    def __contains__(self, method: object) -> bool:
        return method in self._notifiers


def build_notifier_registry(
    settings: Settings,
    *,
    log_methods: Iterable[str] = (),
    transport: httpx.BaseTransport | None = None,
) -> NotifierRegistry:
    """Webhook delivery plus, optionally, logging for the given methods."""
    registry = NotifierRegistry(
        [WebhookNotifier(timeout=settings.notifications.webhook_timeout_seconds, transport=transport)]
    )
    log_methods = [m for m in log_methods if m not in registry]
    if log_methods:
        registry.register(LogNotifier(log_methods))
    return registry


# ============================================================================
# DISPATCH
# ============================================================================


@dataclass
class DeliveryResult:
    delivered: int = 0
    failed: int = 0
    disabled_methods: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class NotificationDispatcher:
    """Delivers pending notifications through registered notifiers.

    Methods listed in ``disabled_methods`` or without a notifier are left
    pending. A failed delivery increments the alert method's fail count
    and disables it once ``max_fail_counts[method]`` is reached.
    Each success is marked delivered before the next row is attempted.
    """

    def __init__(
        self,
        storage: NotificationStore,
        notifiers: NotifierRegistry,
        *,
        batch_size: int = 100,
        disabled_methods: Iterable[str] = (),
        max_fail_counts: Mapping[str, int] | None = None,
        url_template: str | None = None,
    ):
        self.storage = storage
        self.notifiers = notifiers
        self.batch_size = batch_size
        self.disabled_methods = {m.lower() for m in disabled_methods}
        self.max_fail_counts = dict(max_fail_counts or {})
        self.url_template = url_template

    @classmethod
    def from_settings(
        cls,
        storage: NotificationStore,
        notifiers: NotifierRegistry,
        settings: Settings,
    ) -> NotificationDispatcher:
        config = settings.notifications
        return cls(
            storage,
            notifiers,
            batch_size=config.delivery_batch_size,
            disabled_methods=config.disabled_methods,
            max_fail_counts=config.max_fail_counts,
            url_template=config.alert_url_template,
        )

    def deliver_pending(self, limit: int | None = None) -> DeliveryResult:
        """Deliver up to ``limit`` pending notifications (default: batch size)."""
        result = DeliveryResult()
        methods = [m for m in self.notifiers.methods() if m not in self.disabled_methods]
        if not methods:
            return result

        rows = self.storage.find_undelivered_notifications(limit or self.batch_size, methods=methods)
        for row in rows:
            method = row["alert_method"]
            destination = row["destination"]
            message = render_message(row, url_template=self.url_template)
            try:
                delivered = bool(self.notifiers.get(method).notify(destination, message))
            except Exception as e:
                logger.error(
                    "notification_delivery_error",
                    notification_id=row["id"],
                    method=method,
                    error=str(e),
                )
                delivered = False

            if delivered:
                result.delivered += self.storage.mark_notifications_delivered([row["id"]])
                self.storage.record_notification_success(method, destination)
                continue

            result.failed += 1
            disabled = self.storage.record_notification_failure(
                method,
                destination,
                max_fail_count=self.max_fail_counts.get(method),
            )
            if disabled:
                logger.warning("alert_method_disabled", method=method, destination=destination)
                result.disabled_methods.append(f"{method}:{destination}")

        logger.info(
            "notifications_dispatched",
            pending=len(rows),
            delivered=result.delivered,
            failed=result.failed,
        )
        return result
