"""
Geographic slices.

A slice is a coarse latitude band used to shard provider work and to
limit the scope of the spatial join. Orbital providers are configured with
one slice; geostationary events are assigned a slice per detection with
:func:`determine_slice`.
"""

from __future__ import annotations

from dataclasses import dataclass

UNKNOWN_SLICE = "0"


@dataclass(frozen=True)
class Slice:
    key: str
    name: str
    min_lon: float
    min_lat: float
    max_lon: float
    max_lat: float
    description: str = ""

    @property
    def bbox(self) -> str:
        return f"{self.min_lon:g},{self.min_lat:g},{self.max_lon:g},{self.max_lat:g}"

    def contains(self, latitude: float, longitude: float) -> bool:
        return (
            self.min_lon <= longitude <= self.max_lon
            and self.min_lat <= latitude <= self.max_lat
        )


SLICES: dict[str, Slice] = {
    s.key: s
    for s in (
        Slice("1", "Slice 1", -180, -90, 180, -30, "Antarctica and southern South America"),
        Slice("2", "Slice 2", -180, -30, 180, -15, "Southern South America, South Africa, Australia"),
        Slice("3", "Slice 3", -180, -15, 180, 0, "South America, Africa, Australia"),
        Slice("4", "Slice 4", -180, 0, 180, 15, "South America, Africa, Asia, northern Australia"),
        Slice("5", "Slice 5", -180, 15, 180, 30, "United States, Europe, Asia, North Africa"),
        Slice("6", "Slice 6", -180, 30, 180, 45, "United States, Europe, Asia, North Africa"),
        Slice("7", "Slice 7", -180, 45, 180, 60, "Northern United States, Europe, Asia, Russia"),
        Slice("8", "Slice 8", -180, 60, 180, 90, "Greenland, Arctic Ocean, northern Russia"),
    )
}


def determine_slice(latitude: float, longitude: float) -> str:
    """Return the key of the first slice containing the point, or ``"0"``.

    Band edges are shared, so a point on a boundary latitude belongs to
    the southern band.
    """
    for key, band in SLICES.items():
        if band.contains(latitude, longitude):
            return key
    return UNKNOWN_SLICE


def parse_slice_list(value: str | list[str] | None) -> list[str]:
    """Split a comma-separated slice setting (``"1,2"``) into keys."""
    if value is None:
        return []
    if isinstance(value, list):
        return [str(v).strip() for v in value if str(v).strip()]
    return [part.strip() for part in str(value).split(",") if part.strip()]
