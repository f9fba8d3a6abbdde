"""
Confidence tables per source family.

Each family reports confidence in its own vocabulary: letter codes for
the polar-orbiting instruments and numeric fire-mask classes for the
geostationary imagers. Unknown families and codes fall back to medium.
"""

from __future__ import annotations

from typing import Any

from geoevent_alerts.models import Confidence

CONFIDENCE_LEVELS: dict[str, dict[str, Confidence]] = {
    "MODIS": {
        "h": Confidence.HIGH,
        "m": Confidence.MEDIUM,
        "l": Confidence.LOW,
    },
    "VIIRS": {
        "h": Confidence.HIGH,
        "n": Confidence.MEDIUM,
        "l": Confidence.LOW,
    },
    "LANDSAT": {
        "H": Confidence.HIGH,
        "M": Confidence.MEDIUM,
        "L": Confidence.LOW,
    },
    "GEOSTATIONARY": {
        # fire-mask classes; 3x are the temporally filtered 1x classes
        "10": Confidence.HIGH,
        "30": Confidence.HIGH,
        "11": Confidence.HIGH,
        "31": Confidence.HIGH,
        "13": Confidence.HIGH,
        "33": Confidence.HIGH,
        "14": Confidence.HIGH,
        "34": Confidence.HIGH,
        "12": Confidence.MEDIUM,
        "15": Confidence.LOW,
        "35": Confidence.LOW,
    },
}


def _code(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def resolve_confidence(
    family: str | None,
    value: Any,
    default: Confidence = Confidence.MEDIUM,
) -> Confidence:
    """Map a source-specific confidence code to a Confidence.

    Example:
        >>> resolve_confidence("VIIRS", "n")
        <Confidence.MEDIUM: 'medium'>
        >>> resolve_confidence("GEOSTATIONARY", 15.0)
        <Confidence.LOW: 'low'>
    """
    if family is None or value is None:
        return default
    table = CONFIDENCE_LEVELS.get(str(family).strip().upper())
    if table is None:
        return default
    return table.get(_code(value), default)
