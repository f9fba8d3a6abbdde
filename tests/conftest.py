"""
Pytest configuration and shared fixtures for the geo-event alert pipeline.

This module provides:
- Factories for events, providers, sites and alert methods
- A fake adapter registry for running the pipeline without network
- Temporary database fixtures
- Settings pointing at a temporary directory

Example usage in tests:
    def test_something(event_factory, temp_db):
        events = event_factory.create_batch(10)
        temp_db.bulk_insert(ChecksumGenerator().generate_for_events(events))
        assert len(temp_db.get_events()) == 10
"""

from __future__ import annotations

import tempfile
from collections.abc import Iterator
from pathlib import Path

import pytest

from geoevent_alerts.config import Settings
from geoevent_alerts.providers import ProviderRegistry
from geoevent_alerts.storage import SQLiteStorage
from tests.fixtures.adapters import FakeAdapter, FakeFeed
from tests.fixtures.factories import (
    AlertMethodFactory,
    GeoEventFactory,
    ProviderFactory,
    SiteFactory,
)

CRON_KEY = "test-cron-key"


# ============================================================================
# FACTORY FIXTURES
# ============================================================================


@pytest.fixture
def event_factory() -> type[GeoEventFactory]:
    """Provide GeoEventFactory with counter reset."""
    GeoEventFactory.reset()
    return GeoEventFactory


@pytest.fixture
def provider_factory() -> type[ProviderFactory]:
    ProviderFactory.reset()
    return ProviderFactory


@pytest.fixture
def site_factory() -> type[SiteFactory]:
    SiteFactory.reset()
    return SiteFactory


@pytest.fixture
def method_factory() -> type[AlertMethodFactory]:
    AlertMethodFactory.reset()
    return AlertMethodFactory


# ============================================================================
# ADAPTER FIXTURES
# ============================================================================


@pytest.fixture
def fake_feed() -> FakeFeed:
    """Canned events and failures served by the fake adapter."""
    return FakeFeed()


@pytest.fixture
def fake_registry(fake_feed: FakeFeed) -> ProviderRegistry:
    """Registry holding only the fake adapter (key ``FAKE``)."""
    return ProviderRegistry([FakeAdapter(fake_feed)])


# ============================================================================
# DATABASE FIXTURES
# ============================================================================


@pytest.fixture
def temp_db() -> Iterator[SQLiteStorage]:
    """Provide a temporary SQLite database.

    Creates a fresh database in a temp directory, initializes schema,
    and cleans up after test.

    Yields:
        Initialized SQLiteStorage instance
    """
    with tempfile.TemporaryDirectory() as temp_dir:
        db_path = Path(temp_dir) / "test.db"
        storage = SQLiteStorage(db_path)
        storage.initialize()
        yield storage
        storage.close()


# ============================================================================
# CONFIGURATION FIXTURES
# ============================================================================


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings rooted in a temporary directory, with a cron key set."""
    return Settings(
        base_dir=tmp_path,
        cron={"cron_key": CRON_KEY},
        logging={"level": "WARNING"},
    )


@pytest.fixture
def temp_config_dir() -> Iterator[Path]:
    """Provide a temporary configuration directory.

    Yields:
        Path to temporary config directory
    """
    with tempfile.TemporaryDirectory() as temp_dir:
        config_dir = Path(temp_dir) / "config"
        config_dir.mkdir()
        yield config_dir


# ============================================================================
# PYTEST CONFIGURATION
# ============================================================================


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "slow: mark test as slow")
    config.addinivalue_line("markers", "integration: mark as integration test")
