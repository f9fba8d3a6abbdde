"""
Site-alert matching engine.

- SiteAlertService: create_alerts_for_provider(provider_id, client_id) -> int
- StaleEventSweeper: Explicit maintenance sweep of old unprocessed events
"""

from geoevent_alerts.matching.service import SiteAlertService, StaleEventSweeper

__all__ = ["SiteAlertService", "StaleEventSweeper"]
