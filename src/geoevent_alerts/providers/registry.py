"""
Provider registry and adapter cache.

The registry maps adapter keys to adapter prototypes. It is built once at
startup and passed to the orchestrator; there is no module-level registry.

Example:
    >>> from geoevent_alerts.providers import build_default_registry
    >>>
    >>> registry = build_default_registry()
    >>> registry.keys()
    ['FIRMS', 'GOES-16', 'SAMPLE']
    >>> adapter = registry.get("FIRMS").with_config(provider.config)
"""

from __future__ import annotations

import json
import threading
import time
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING

import httpx

from geoevent_alerts.exceptions import (
    ConfigurationError,
    DuplicateProviderError,
    ProviderNotFoundError,
)
from geoevent_alerts.providers.firms import FirmsAdapter
from geoevent_alerts.providers.goes import Goes16Adapter
from geoevent_alerts.providers.protocol import DEFAULT_TIMEOUT_SECONDS, GeoEventAdapter
from geoevent_alerts.providers.sample import SampleAdapter
from geoevent_alerts.utils.logging import get_logger

if TYPE_CHECKING:
    from geoevent_alerts.config.settings import Settings
    from geoevent_alerts.models import GeoEventProvider

logger = get_logger(__name__)

DEFAULT_ADAPTERS = (FirmsAdapter, Goes16Adapter, SampleAdapter)


class ProviderRegistry:
    """Adapters by key.

    Example:
        >>> registry = ProviderRegistry([FirmsAdapter()])
        >>> "FIRMS" in registry
        True
        >>> registry.register(FirmsAdapter())
        Traceback (most recent call last):
        ...
        DuplicateProviderError: Provider for providerKey 'FIRMS' has already been registered
    """

    def __init__(self, adapters: Iterable[GeoEventAdapter] = ()):
        self._adapters: dict[str, GeoEventAdapter] = {}
        for adapter in adapters:
            self.register(adapter)

    def register(self, adapter: GeoEventAdapter) -> GeoEventAdapter:
        key = adapter.key
        if key in self._adapters:
            raise DuplicateProviderError(key)
        self._adapters[key] = adapter
        return adapter

    def get(self, key: str) -> GeoEventAdapter:
        try:
            return self._adapters[key]
        except KeyError:
            raise ProviderNotFoundError(key, self.keys()) from None

    def for_provider(self, provider: GeoEventProvider) -> GeoEventAdapter:
        """A fresh adapter initialized with the provider's configuration.

        Raises:
            ConfigurationError: If the config names no adapter or is incomplete
            ProviderNotFoundError: If the named adapter is not registered
        """
        key = provider.adapter_key
        if key is None:
            raise ConfigurationError(provider.id, ["client"])
        return self.get(key).with_config(provider.config)

    def validate(self, provider: GeoEventProvider) -> None:
        """Check a provider's configuration against its adapter's required fields."""
        self.for_provider(provider).close()

    def keys(self) -> list[str]:
        return list(self._adapters)

    def __contains__(self, key: object) -> bool:
        return key in self._adapters

    def __len__(self) -> int:
        return len(self._adapters)

    def __repr__(self) -> str:
        return f"ProviderRegistry({self.keys()!r})"


def build_default_registry(
    *,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    transport: httpx.BaseTransport | None = None,
) -> ProviderRegistry:
    """Registry with every built-in adapter."""
    return ProviderRegistry(cls(timeout=timeout, transport=transport) for cls in DEFAULT_ADAPTERS)


class ProviderConfigCache:
    """TTL cache of initialized adapters per provider.

    Entries are keyed on the provider id and its configuration, so an
    edited configuration is picked up on the next lookup. A disabled cache
    builds a new adapter every time.

    Example:
        >>> cache = ProviderConfigCache(registry, ttl_seconds=300)
        >>> adapter = cache.get_adapter(provider)
        >>> cache.get_adapter(provider) is adapter
        True
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        *,
        ttl_seconds: float = 300.0,
        enabled: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.registry = registry
        self.ttl_seconds = ttl_seconds
        self.enabled = enabled
        self._clock = clock
        self._entries: dict[tuple[str, str], tuple[float, GeoEventAdapter]] = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    @classmethod
    def from_settings(cls, registry: ProviderRegistry, settings: Settings) -> ProviderConfigCache:
        return cls(
            registry,
            ttl_seconds=settings.cache.provider_config_ttl_seconds,
            enabled=settings.cache.provider_config_enabled,
        )

    def get_adapter(self, provider: GeoEventProvider) -> GeoEventAdapter:
        if not self.enabled:
            return self.registry.for_provider(provider)

        cache_key = (provider.id, json.dumps(provider.config, sort_keys=True, default=str))
        now = self._clock()
        with self._lock:
            entry = self._entries.get(cache_key)
            if entry is not None and now - entry[0] < self.ttl_seconds:
                self.hits += 1
                return entry[1]

        adapter = self.registry.for_provider(provider)
        with self._lock:
            self.misses += 1
            stale = [key for key in self._entries if key[0] == provider.id]
            for key in stale:
                self._entries.pop(key)[1].close()
            self._entries[cache_key] = (now, adapter)
        logger.debug("adapter_cached", provider_id=provider.id, adapter=adapter.key)
        return adapter

    def clear(self) -> None:
        with self._lock:
            for _, adapter in self._entries.values():
                adapter.close()
            self._entries.clear()

    def info(self) -> dict[str, int | bool]:
        return {
            "enabled": self.enabled,
            "entries": len(self._entries),
            "hits": self.hits,
            "misses": self.misses,
        }
