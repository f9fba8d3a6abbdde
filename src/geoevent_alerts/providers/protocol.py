"""
Provider adapter protocol for the geo-event alert pipeline.

This module defines the interface every provider adapter implements, so
the orchestrator can fetch detections from any source family (FIRMS CSV,
GOES-16 vector features, synthetic samples) the same way.

Example - Implementing a custom adapter:
    >>> from geoevent_alerts.providers import BaseAdapter
    >>>
    >>> class MyAdapter(BaseAdapter):
    ...     '''Pull detections from my own feed.'''
    ...
    ...     key = "MY-FEED"
    ...     REQUIRED_FIELDS = ("client", "slice", "apiUrl")
    ...
    ...     def fetch_latest(self, client_id, provider_id, slice, api_key, last_run=None):
    ...         response = self._get(self.get_config().api_url)
    ...         return [self._to_event(row) for row in response.json()]

Using the registry:
    >>> from geoevent_alerts.providers import build_default_registry
    >>> adapter = build_default_registry().get("FIRMS")
    >>> adapter.initialize(provider.config)
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import TYPE_CHECKING, Any, ClassVar, Protocol, runtime_checkable

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from geoevent_alerts.exceptions import ConfigurationError, FetchError

if TYPE_CHECKING:
    from geoevent_alerts.models import GeoEvent

DEFAULT_TIMEOUT_SECONDS = 30.0


class AdapterConfig(BaseModel):
    """Fields every provider configuration carries."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    client: str
    slice: str = "0"
    bbox: str | None = None
    api_url: str | None = Field(default=None, alias="apiUrl")

    @field_validator("slice", mode="before")
    @classmethod
    def slice_as_text(cls, v: Any) -> str:
        return str(v)


@runtime_checkable
class GeoEventAdapter(Protocol):
    """Interface for provider adapters.

    One adapter exists per source family. The orchestrator obtains a fresh
    adapter from the registry, initializes it with the provider's config
    and calls ``fetch_latest`` once per cycle.

    All adapters must implement:
    - key: Registry key matched against ``config["client"]``
    - initialize(): Validate and store the provider configuration
    - fetch_latest(): Return normalized GeoEvents (ids unset)
    - close(): Release the HTTP client
    """

    @property
    def key(self) -> str:
        """Registry key (e.g. "FIRMS", "GOES-16")."""
        ...

    def initialize(self, config: Mapping[str, Any]) -> None:
        """Validate and store the provider configuration.

        Raises:
            ConfigurationError: If required fields are missing or malformed
        """
        ...

    def with_config(self, config: Mapping[str, Any]) -> GeoEventAdapter:
        """Return a new adapter of this kind initialized with ``config``."""
        ...

    def fetch_latest(
        self,
        client_id: str,
        provider_id: str,
        slice: str,
        api_key: str | None,
        last_run: datetime | None = None,
    ) -> list[GeoEvent]:
        """Fetch the newest detections from the source.

        Raises:
            ConfigurationError: If called before ``initialize``
            FetchError: If the source cannot be reached or its payload read
        """
        ...

    def close(self) -> None:
        ...


class BaseAdapter:
    """Shared configuration handling and HTTP access for adapters.

    Subclasses set ``key``, ``REQUIRED_FIELDS`` and ``config_model`` and
    implement ``fetch_latest``.

    Attributes:
        timeout: Request timeout in seconds
        config: Parsed configuration (None until initialized)
    """

    key: ClassVar[str] = ""
    REQUIRED_FIELDS: ClassVar[tuple[str, ...]] = ("client", "slice")
    config_model: ClassVar[type[AdapterConfig]] = AdapterConfig

    def __init__(
        self,
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: httpx.BaseTransport | None = None,
    ):
        self.timeout = timeout
        self.config: AdapterConfig | None = None
        self._transport = transport
        self._client: httpx.Client | None = None

    def initialize(self, config: Mapping[str, Any]) -> None:
        missing = [name for name in self.REQUIRED_FIELDS if config.get(name) in (None, "")]
        if missing:
            raise ConfigurationError(self.key, missing)
        try:
            self.config = self.config_model.model_validate(dict(config))
        except ValidationError as e:
            raise ConfigurationError(
                self.key,
                detail=f"Malformed {self.key} provider configuration: {e.errors()[0]['msg']}",
            ) from e

    def with_config(self, config: Mapping[str, Any]) -> BaseAdapter:
        """A fresh adapter of the same kind, initialized with ``config``.

        The registry holds one prototype per key; each provider works on its
        own copy so concurrent providers never share configuration.
        """
        adapter = type(self)(timeout=self.timeout, transport=self._transport)
        adapter.initialize(config)
        return adapter

    def get_config(self) -> AdapterConfig:
        if self.config is None:
            raise ConfigurationError(
                self.key,
                detail=f"Invalid or incomplete {self.key} provider configuration",
            )
        return self.config

    @property
    def client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(timeout=self.timeout, transport=self._transport)
        return self._client

    def _get(self, url: str, **kwargs: Any) -> httpx.Response:
        """GET ``url``; transport failures and non-2xx responses become FetchError."""
        try:
            response = self.client.get(url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise FetchError(f"HTTP error! status: {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise FetchError(f"{self.key} request failed: {e}") from e
        return response

    def fetch_latest(
        self,
        client_id: str,
        provider_id: str,
        slice: str,
        api_key: str | None,
        last_run: datetime | None = None,
    ) -> list[GeoEvent]:
        raise NotImplementedError

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def __repr__(self) -> str:
        return f"{type(self).__name__}(key={self.key!r})"
