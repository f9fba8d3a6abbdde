"""
Planar geometry on GeoJSON coordinates.

The matching engine needs two predicates on a site's detection geometry:
inclusive containment of an event point, and the distance from the event
to the site. Coordinates are WGS84 ``[lon, lat]``; distances are computed
in metres on a local equirectangular projection centred on the event,
which is accurate to well under a percent at site scale.

Supported GeoJSON types: Point, MultiPoint, Polygon (with holes),
MultiPolygon, plus Feature wrappers around them.

Example:
    >>> from geoevent_alerts.utils.geometry import parse_geometry
    >>>
    >>> square = parse_geometry({
    ...     "type": "Polygon",
    ...     "coordinates": [[[0, 0], [1, 0], [1, 1], [0, 1], [0, 0]]],
    ... })
    >>> square.contains(0.5, 0.5), square.contains(1.0, 0.5)
    (True, True)
    >>> round(square.distance_m(2.0, 0.5))
    111195
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass, field
from typing import Any

import numpy as np

EARTH_RADIUS_M = 6_371_008.8
METRES_PER_DEGREE = EARTH_RADIUS_M * math.pi / 180.0

# Points closer than this to a boundary count as on it.
BOUNDARY_TOLERANCE_M = 1e-3


@dataclass
class Geometry:
    """Parsed geometry: polygons as lists of closed rings, plus loose points."""

    kind: str
    polygons: list[list[np.ndarray]] = field(default_factory=list)
    points: np.ndarray = field(default_factory=lambda: np.empty((0, 2)))

    @property
    def is_areal(self) -> bool:
        return bool(self.polygons)

    def bounds(self) -> tuple[float, float, float, float]:
        """``(min_lon, min_lat, max_lon, max_lat)``."""
        arrays = [ring for polygon in self.polygons for ring in polygon]
        if len(self.points):
            arrays.append(self.points)
        stacked = np.vstack(arrays)
        min_lon, min_lat = stacked.min(axis=0)
        max_lon, max_lat = stacked.max(axis=0)
        return float(min_lon), float(min_lat), float(max_lon), float(max_lat)

    def contains(self, lon: float, lat: float) -> bool:
        """Inclusive containment: boundary points are inside."""
        if self.polygons:
            for polygon in self.polygons:
                if _polygon_contains(polygon, lon, lat):
                    return True
            return False
        return self.distance_m(lon, lat) <= BOUNDARY_TOLERANCE_M

    def distance_m(self, lon: float, lat: float) -> float:
        """Distance in metres from the point to the geometry (0 when inside)."""
        if self.polygons and self.contains(lon, lat):
            return 0.0

        best = math.inf
        for polygon in self.polygons:
            for ring in polygon:
                best = min(best, _ring_distance_m(ring, lon, lat))
        if len(self.points):
            projected = _project(self.points, lon, lat)
            best = min(best, float(np.hypot(projected[:, 0], projected[:, 1]).min()))
        return best


def parse_geometry(value: str | dict[str, Any]) -> Geometry:
    """Parse GeoJSON text or a mapping into a :class:`Geometry`.

    Raises:
        ValueError: For unsupported or malformed geometries
    """
    data = json.loads(value) if isinstance(value, str) else value
    if data.get("type") == "Feature":
        data = data.get("geometry") or {}

    kind = data.get("type")
    coords = data.get("coordinates")
    if coords is None:
        raise ValueError(f"Geometry without coordinates: {kind!r}")

    if kind == "Point":
        return Geometry(kind=kind, points=_as_points([coords]))
    if kind == "MultiPoint":
        return Geometry(kind=kind, points=_as_points(coords))
    if kind == "Polygon":
        return Geometry(kind=kind, polygons=[_as_polygon(coords)])
    if kind == "MultiPolygon":
        return Geometry(kind=kind, polygons=[_as_polygon(p) for p in coords])
    raise ValueError(f"Unsupported geometry type: {kind!r}")


def buffer_point(lon: float, lat: float, radius_m: float, *, segments: int = 32) -> dict[str, Any]:
    """Approximate a circle of ``radius_m`` around a point as a GeoJSON Polygon.

    Used to build the detection geometry of Point sites.
    """
    angles = np.linspace(0.0, 2 * math.pi, segments, endpoint=False)
    dlat = (radius_m / METRES_PER_DEGREE) * np.sin(angles)
    dlon = (radius_m / (METRES_PER_DEGREE * max(math.cos(math.radians(lat)), 1e-12))) * np.cos(angles)
    ring = [[float(lon + x), float(lat + y)] for x, y in zip(dlon, dlat)]
    ring.append(ring[0])
    return {"type": "Polygon", "coordinates": [ring]}


def bbox_polygon(min_lon: float, min_lat: float, max_lon: float, max_lat: float) -> dict[str, Any]:
    """GeoJSON Polygon for a bounding box."""
    return {
        "type": "Polygon",
        "coordinates": [
            [
                [min_lon, min_lat],
                [max_lon, min_lat],
                [max_lon, max_lat],
                [min_lon, max_lat],
                [min_lon, min_lat],
            ]
        ],
    }


def parse_bbox(value: str) -> tuple[float, float, float, float]:
    """Parse ``"min_lon,min_lat,max_lon,max_lat"``.

    Raises:
        ValueError: If the value does not hold four ordered numbers
    """
    parts = [float(p) for p in str(value).split(",")]
    if len(parts) != 4:
        raise ValueError(f"Bounding box needs four values: {value!r}")
    min_lon, min_lat, max_lon, max_lat = parts
    if min_lon > max_lon or min_lat > max_lat:
        raise ValueError(f"Bounding box corners out of order: {value!r}")
    return min_lon, min_lat, max_lon, max_lat


# ============================================================================
# INTERNALS
# ============================================================================


def _as_points(coords: Any) -> np.ndarray:
    points = np.asarray(coords, dtype=float)
    if points.ndim != 2 or points.shape[1] < 2:
        raise ValueError("Malformed point coordinates")
    return points[:, :2]


def _as_polygon(rings: Any) -> list[np.ndarray]:
    polygon = []
    for ring in rings:
        arr = _as_points(ring)
        if len(arr) < 3:
            raise ValueError("Polygon ring needs at least three positions")
        if not np.array_equal(arr[0], arr[-1]):
            arr = np.vstack([arr, arr[:1]])
        polygon.append(arr)
    if not polygon:
        raise ValueError("Polygon without rings")
    return polygon


def _project(coords: np.ndarray, lon: float, lat: float) -> np.ndarray:
    """Project coordinates to metres relative to (lon, lat)."""
    scale_x = METRES_PER_DEGREE * math.cos(math.radians(lat))
    out = np.empty_like(coords, dtype=float)
    out[:, 0] = (coords[:, 0] - lon) * scale_x
    out[:, 1] = (coords[:, 1] - lat) * METRES_PER_DEGREE
    return out


def _ring_distance_m(ring: np.ndarray, lon: float, lat: float) -> float:
    """Minimum distance from (lon, lat) to the ring's edges, in metres."""
    projected = _project(ring, lon, lat)
    a = projected[:-1]
    ab = projected[1:] - a
    denom = np.einsum("ij,ij->i", ab, ab)
    t = np.divide(
        -np.einsum("ij,ij->i", a, ab),
        denom,
        out=np.zeros_like(denom),
        where=denom > 0,
    )
    t = np.clip(t, 0.0, 1.0)
    closest = a + t[:, None] * ab
    return float(np.hypot(closest[:, 0], closest[:, 1]).min())


def _ring_crossings(ring: np.ndarray, lon: float, lat: float) -> bool:
    """Ray-casting parity test (strict interior, boundary undefined)."""
    xi, yi = ring[:-1, 0], ring[:-1, 1]
    xj, yj = ring[1:, 0], ring[1:, 1]
    straddles = (yi > lat) != (yj > lat)
    dy = np.where(straddles, yj - yi, 1.0)
    x_cross = xi + (xj - xi) * (lat - yi) / dy
    return bool(np.count_nonzero(straddles & (lon < x_cross)) % 2)


def _polygon_contains(polygon: list[np.ndarray], lon: float, lat: float) -> bool:
    exterior, holes = polygon[0], polygon[1:]
    if _ring_distance_m(exterior, lon, lat) <= BOUNDARY_TOLERANCE_M:
        return True
    if not _ring_crossings(exterior, lon, lat):
        return False
    for hole in holes:
        if _ring_distance_m(hole, lon, lat) <= BOUNDARY_TOLERANCE_M:
            return True
        if _ring_crossings(hole, lon, lat):
            return False
    return True
