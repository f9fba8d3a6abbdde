"""
Notification emission and delivery.

- NotificationService: SiteAlerts -> Notifications
- NotificationDispatcher: Notifications -> notifiers
- Notifier, NotifierRegistry, WebhookNotifier, LogNotifier
"""

from geoevent_alerts.notifications.dispatcher import (
    DeliveryResult,
    LogNotifier,
    NotificationDispatcher,
    Notifier,
    NotifierRegistry,
    RenderedMessage,
    WebhookNotifier,
    build_notifier_registry,
    render_message,
)
from geoevent_alerts.notifications.emitter import NotificationService

__all__ = [
    "NotificationService",
    "NotificationDispatcher",
    "DeliveryResult",
    "Notifier",
    "NotifierRegistry",
    "WebhookNotifier",
    "LogNotifier",
    "RenderedMessage",
    "render_message",
    "build_notifier_registry",
]
