"""
Test fixtures for the geo-event alert pipeline.

This module provides:
- Factories: GeoEvent, provider, site and alert-method test data
- FakeAdapter / FakeFeed: Adapter double with canned events
"""

from tests.fixtures.adapters import FakeAdapter, FakeFeed, failing_fetch
from tests.fixtures.factories import (
    AlertMethodFactory,
    GeoEventFactory,
    ProviderFactory,
    SiteFactory,
)

__all__ = [
    "AlertMethodFactory",
    "FakeAdapter",
    "FakeFeed",
    "GeoEventFactory",
    "ProviderFactory",
    "SiteFactory",
    "failing_fetch",
]
