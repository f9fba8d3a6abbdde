"""
Provider adapters for the geo-event alert pipeline.

Available adapters:
- FirmsAdapter ("FIRMS"): FIRMS area CSV API
- Goes16Adapter ("GOES-16"): GOES-16 fire-pixel features
- SampleAdapter ("SAMPLE"): Synthetic detections for demos

Example:
    >>> from geoevent_alerts.providers import build_default_registry
    >>>
    >>> registry = build_default_registry(timeout=30)
    >>> adapter = registry.for_provider(provider)
    >>> events = adapter.fetch_latest(provider.client_id, provider.id, provider.slice,
    ...                               provider.client_api_key, provider.last_run)
"""

from geoevent_alerts.providers.confidence import CONFIDENCE_LEVELS, resolve_confidence
from geoevent_alerts.providers.firms import FirmsAdapter, FirmsConfig
from geoevent_alerts.providers.goes import Goes16Adapter, GoesConfig, fetch_window
from geoevent_alerts.providers.protocol import AdapterConfig, BaseAdapter, GeoEventAdapter
from geoevent_alerts.providers.registry import (
    DEFAULT_ADAPTERS,
    ProviderConfigCache,
    ProviderRegistry,
    build_default_registry,
)
from geoevent_alerts.providers.sample import SampleAdapter, SampleConfig

__all__ = [
    "GeoEventAdapter",
    "BaseAdapter",
    "AdapterConfig",
    "FirmsAdapter",
    "FirmsConfig",
    "Goes16Adapter",
    "GoesConfig",
    "fetch_window",
    "SampleAdapter",
    "SampleConfig",
    "CONFIDENCE_LEVELS",
    "resolve_confidence",
    "ProviderRegistry",
    "ProviderConfigCache",
    "DEFAULT_ADAPTERS",
    "build_default_registry",
]
