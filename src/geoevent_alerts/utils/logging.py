"""
Logging utilities for the geo-event alert pipeline.

Structured logging through structlog, rendered for the console during
development or as JSON lines when the pipeline runs under a scheduler.
Pipeline steps are timed with :class:`StepTimer`, which records named step
durations and logs them together in one line.

Example:
    >>> from geoevent_alerts.utils import setup_logging, get_logger
    >>>
    >>> setup_logging(level="INFO", format="json")
    >>> logger = get_logger(__name__)
    >>> logger.info("provider_fetch_completed", provider_id="p1", events=42)
"""

from __future__ import annotations

import logging
import sys
import time
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from geoevent_alerts.config.settings import LoggingSettings


def setup_logging(
    level: str = "INFO",
    format: str = "console",
    *,
    include_timestamp: bool = True,
    include_location: bool = False,
) -> None:
    """Configure structlog on top of stdlib logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        format: "console" or "json"
        include_timestamp: Add an ISO timestamp to every event
        include_location: Add source file and line number
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper()),
    )

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
    ]

    if include_timestamp:
        processors.append(structlog.processors.TimeStamper(fmt="iso", utc=True))

    if include_location:
        processors.append(
            structlog.processors.CallsiteParameterAdder(
                [
                    structlog.processors.CallsiteParameter.FILENAME,
                    structlog.processors.CallsiteParameter.LINENO,
                ]
            )
        )

    processors.extend(
        [
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
        ]
    )

    if format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def setup_logging_from_settings(settings: LoggingSettings, *, verbose: bool = False) -> None:
    """Configure logging from the ``[logging]`` settings section."""
    setup_logging(
        level="DEBUG" if verbose else settings.level,
        format=settings.format,
        include_timestamp=settings.include_timestamp,
        include_location=settings.include_location,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger (usually ``get_logger(__name__)``)."""
    logger: structlog.stdlib.BoundLogger = structlog.get_logger(name)
    return logger


def bind_context(**kwargs: Any) -> None:
    """Bind context variables (e.g. ``run_id``) for subsequent log calls."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Clear all bound context variables."""
    structlog.contextvars.clear_contextvars()


class StepTimer:
    """Collects named step durations for one unit of work.

    Example:
        >>> timer = StepTimer()
        >>> with timer.step("checksum"):
        ...     compute()
        >>> timer.durations_ms["checksum"]
        1.7
    """

    def __init__(self) -> None:
        self.durations_ms: dict[str, float] = {}

    @contextmanager
    def step(self, name: str) -> Iterator[None]:
        start = time.perf_counter()
        try:
            yield
        finally:
            elapsed = (time.perf_counter() - start) * 1000
            self.durations_ms[name] = round(self.durations_ms.get(name, 0.0) + elapsed, 2)

    @property
    def total_ms(self) -> float:
        return round(sum(self.durations_ms.values()), 2)


@contextmanager
def log_duration(
    logger: structlog.stdlib.BoundLogger,
    event: str,
    *,
    warn_after_ms: float | None = None,
    **context: Any,
) -> Iterator[dict[str, Any]]:
    """Log ``event`` with its duration once the block exits.

    The yielded dict can be filled with extra fields inside the block.
    When ``warn_after_ms`` is exceeded the event is logged at warning level.
    """
    fields: dict[str, Any] = dict(context)
    start = time.perf_counter()
    try:
        yield fields
    finally:
        duration_ms = round((time.perf_counter() - start) * 1000, 2)
        if warn_after_ms is not None and duration_ms > warn_after_ms:
            logger.warning(event, duration_ms=duration_ms, slow=True, **fields)
        else:
            logger.debug(event, duration_ms=duration_ms, **fields)
