"""
Time helpers for geo-event timestamps.

All timestamps inside the pipeline are timezone-aware UTC datetimes.
SQLite stores them as ISO 8601 text with millisecond precision and a
``Z`` suffix, so lexical order matches chronological order and the
checksum input is byte-stable.

Example:
    >>> from geoevent_alerts.utils.time import parse_acq_datetime, to_iso8601
    >>>
    >>> dt = parse_acq_datetime("2024-01-01", "44")
    >>> to_iso8601(dt)
    '2024-01-01T00:44:00.000Z'
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


def ensure_utc(dt: datetime) -> datetime:
    """Return ``dt`` as aware UTC (naive values are taken to be UTC)."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def to_iso8601(dt: datetime) -> str:
    """Format as ``YYYY-MM-DDTHH:MM:SS.mmmZ``."""
    dt = ensure_utc(dt)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def from_iso8601(value: str | datetime) -> datetime:
    """Parse an ISO 8601 string (``Z`` or offset suffix) into aware UTC."""
    if isinstance(value, datetime):
        return ensure_utc(value)
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return ensure_utc(datetime.fromisoformat(text))


def hours_ago(hours: float, *, now: datetime | None = None) -> datetime:
    """The instant ``hours`` hours before ``now`` (default: current time)."""
    return (now or utc_now()) - timedelta(hours=hours)


def parse_acq_datetime(acq_date: str, acq_time: str | int) -> datetime:
    """Combine a FIRMS ``acq_date`` and ``acq_time`` into a UTC datetime.

    ``acq_time`` is an unpadded HHMM value: ``44`` means 00:44 and
    ``2309`` means 23:09.

    Raises:
        ValueError: If either part is malformed
    """
    raw = int(str(acq_time).strip())
    hours, minutes = divmod(raw, 100)
    if hours > 23 or minutes > 59:
        raise ValueError(f"Invalid acq_time: {acq_time!r}")
    day = datetime.strptime(str(acq_date).strip(), "%Y-%m-%d")
    return day.replace(hour=hours, minute=minutes, tzinfo=UTC)
