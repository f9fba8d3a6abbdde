"""
Spatial SQL functions for SQLite.

SQLite has no geometry type, so site geometries are stored as GeoJSON
text and the matching query calls these scalar functions:

- ``st_within(lon, lat, geojson)``: 1 when the point is inside or on the
  boundary of the geometry, else 0
- ``st_distance(lon, lat, geojson)``: metres from the point to the
  geometry, 0 when inside
- ``gen_uuid()``: random UUID text for new rows

Parsed geometries are kept in an LRU cache keyed by the GeoJSON text, so a
batch of events against the same sites parses each site once.

Example:
    >>> conn = sqlite3.connect(":memory:")
    >>> register_spatial_functions(conn, GeometryCache(maxsize=128))
    >>> conn.execute(
    ...     "SELECT st_within(0.5, 0.5, ?)",
    ...     ('{"type":"Polygon","coordinates":[[[0,0],[1,0],[1,1],[0,1],[0,0]]]}',),
    ... ).fetchone()
    (1,)
"""

from __future__ import annotations

import sqlite3
import uuid
from functools import lru_cache

from geoevent_alerts.utils.geometry import Geometry, parse_geometry
from geoevent_alerts.utils.logging import get_logger

logger = get_logger(__name__)


class GeometryCache:
    """LRU cache of parsed geometries keyed by GeoJSON text."""

    def __init__(self, maxsize: int = 4096, *, enabled: bool = True):
        self.enabled = enabled
        self.maxsize = maxsize
        self._cached = lru_cache(maxsize=maxsize)(parse_geometry)

    def get(self, geojson: str) -> Geometry:
        if not self.enabled:
            return parse_geometry(geojson)
        return self._cached(geojson)

    def clear(self) -> None:
        self._cached.cache_clear()

    def info(self) -> dict[str, int]:
        stats = self._cached.cache_info()
        return {"hits": stats.hits, "misses": stats.misses, "size": stats.currsize}


def register_spatial_functions(conn: sqlite3.Connection, cache: GeometryCache) -> None:
    """Register the spatial scalar functions on a connection."""

    def st_within(lon: float | None, lat: float | None, geojson: str | None) -> int | None:
        if lon is None or lat is None or geojson is None:
            return None
        return int(_geometry(geojson).contains(lon, lat))

    def st_distance(lon: float | None, lat: float | None, geojson: str | None) -> float | None:
        if lon is None or lat is None or geojson is None:
            return None
        return _geometry(geojson).distance_m(lon, lat)

    def _geometry(geojson: str) -> Geometry:
        try:
            return cache.get(geojson)
        except (ValueError, TypeError, KeyError) as e:
            # Raising inside a SQLite function aborts the statement with a
            # generic error; log the real cause first.
            logger.error("invalid_site_geometry", error=str(e), geojson=geojson[:200])
            raise

    conn.create_function("st_within", 3, st_within, deterministic=True)
    conn.create_function("st_distance", 3, st_distance, deterministic=True)
    conn.create_function("gen_uuid", 0, lambda: str(uuid.uuid4()))
