"""
Notification emission.

Derives delivery obligations from newly created SiteAlerts: one
Notification per enabled, verified and non-deleted alert method of the
site's owner. Delivery itself is left to :mod:`.dispatcher`.
"""

from __future__ import annotations

import time
from datetime import datetime
from typing import TYPE_CHECKING

from geoevent_alerts.utils.logging import get_logger

if TYPE_CHECKING:
    from geoevent_alerts.config.settings import Settings
    from geoevent_alerts.storage.protocol import NotificationStore

logger = get_logger(__name__)


class NotificationService:
    """Creates Notifications for unprocessed SiteAlerts.

    Example:
        >>> service = NotificationService(storage)
        >>> created = service.create_notifications()
    """

    def __init__(
        self,
        storage: NotificationStore,
        *,
        max_alert_age_hours: float | None = None,
    ):
        self.storage = storage
        self.max_alert_age_hours = max_alert_age_hours

    @classmethod
    def from_settings(cls, storage: NotificationStore, settings: Settings) -> NotificationService:
        return cls(storage, max_alert_age_hours=settings.notifications.max_alert_age_hours)

    def create_notifications(self, *, now: datetime | None = None) -> int:
        """Emit notifications for every unprocessed alert.

        Running it twice creates nothing the second time: the alerts are
        flagged processed with the insert, and notifications are unique per
        (alert, method, destination).

        Returns:
            Number of notifications created
        """
        start = time.perf_counter()
        created = self.storage.create_notifications(
            max_alert_age_hours=self.max_alert_age_hours,
            now=now,
        )
        logger.info(
            "notifications_created",
            created=created,
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
        )
        return created
