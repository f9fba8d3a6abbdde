"""
Error taxonomy for the geo-event alert pipeline.

Errors raised inside one provider's cycle are caught by the orchestrator
and recorded against that provider; they never cross provider boundaries.
Registry errors are raised at startup and indicate a deployment defect.

Example:
    >>> from geoevent_alerts.exceptions import ConfigurationError
    >>>
    >>> raise ConfigurationError("FIRMS", ["apiUrl", "bbox"])
    Traceback (most recent call last):
    ...
    ConfigurationError: Missing properties 'apiUrl', 'bbox' in FIRMS provider configuration
"""

from __future__ import annotations

from collections.abc import Sequence


class PipelineError(Exception):
    """Base class for all pipeline errors."""


class ConfigurationError(PipelineError):
    """A provider configuration is missing required fields or is malformed.

    Attributes:
        provider_key: Adapter key the configuration was meant for
        missing: Names of the missing fields (empty for malformed values)
    """

    def __init__(self, provider_key: str, missing: Sequence[str] = (), detail: str | None = None):
        self.provider_key = provider_key
        self.missing = list(missing)
        if detail is None:
            names = ", ".join(f"'{name}'" for name in self.missing)
            detail = f"Missing properties {names} in {provider_key} provider configuration"
        super().__init__(detail)


class FetchError(PipelineError):
    """A data source could not be reached or its payload could not be read."""


class PersistenceError(PipelineError):
    """A datastore operation failed."""


class ProviderNotFoundError(PipelineError, KeyError):
    """No adapter is registered under the requested key."""

    def __init__(self, key: str, available: Sequence[str] = ()):
        self.key = key
        listing = ", ".join(available) or "none"
        super().__init__(f"Provider with key '{key}' not found. Available: {listing}")

    def __str__(self) -> str:
        return str(self.args[0])


class DuplicateProviderError(PipelineError, ValueError):
    """An adapter key was registered twice."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Provider for providerKey '{key}' has already been registered")


class UnauthorizedError(PipelineError):
    """The trigger credential is missing or wrong."""


class RunInProgressError(PipelineError):
    """Another pipeline run holds the run lock."""
