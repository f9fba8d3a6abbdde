"""
SQLite storage backend for the geo-event alert pipeline.

- WAL mode so readers are not blocked by the pipeline's writes
- Batched INSERT OR IGNORE keyed on the event checksum
- Set-based spatial matching through the functions in ``spatial``
- Explicit transactions around every create + mark-processed pair
- One shared connection guarded by a re-entrant lock, since providers
  are processed on worker threads

Every ``sqlite3.Error`` leaves this module as a ``PersistenceError``.

Example:
    >>> from geoevent_alerts.storage import SQLiteStorage
    >>>
    >>> storage = SQLiteStorage("data/geoevents.db")
    >>> storage.initialize()
    >>> created = storage.bulk_insert(events)
    >>> storage.query("SELECT * FROM v_unprocessed_events")
    >>> storage.close()
"""

from __future__ import annotations

import json
import sqlite3
import threading
import uuid
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from datetime import datetime, timedelta
from pathlib import Path
from typing import TYPE_CHECKING, Any

from geoevent_alerts.exceptions import PersistenceError
from geoevent_alerts.models import (
    AlertMethod,
    DetectionFragment,
    GeoEvent,
    GeoEventProvider,
    Notification,
    PipelineRun,
    Site,
    SiteAlert,
)
from geoevent_alerts.storage.schema import get_schema_version, migrate
from geoevent_alerts.storage.spatial import GeometryCache, register_spatial_functions
from geoevent_alerts.utils.logging import get_logger
from geoevent_alerts.utils.time import hours_ago, to_iso8601, utc_now

if TYPE_CHECKING:
    from geoevent_alerts.config.settings import Settings

logger = get_logger(__name__)

EVENT_COLUMNS = [
    "id", "type", "latitude", "longitude", "event_date", "confidence",
    "provider_id", "provider_client_id", "slice", "is_processed", "raw_data",
]

ALERTABLE_SITE = """
    s.deleted_at IS NULL
    AND s.is_monitored = 1
    AND (s.stop_alert_until IS NULL OR s.stop_alert_until <= :now)
"""

# {fragment_slices} is "f" (per-fragment slices) or "s" (per-site slices).
SITE_ALERT_INSERT_SQL = """
WITH batch AS (
    SELECT * FROM geo_events
    WHERE id IN (SELECT value FROM json_each(:event_ids))
      AND is_processed = 0
)
INSERT OR IGNORE INTO site_alerts (
    id, type, event_date, detected_by, confidence, latitude, longitude,
    site_id, geo_event_id, distance, is_processed, raw_data
)
SELECT
    gen_uuid(), e.type, e.event_date, :client_id, e.confidence, e.latitude, e.longitude,
    s.id, e.id, st_distance(e.longitude, e.latitude, s.geometry), 0, e.raw_data
FROM (
    -- Point and Polygon sites
    SELECT e.id AS event_id, s.id AS site_id
    FROM batch e
    JOIN sites s ON s.geometry_type IN ('Point', 'Polygon')
    WHERE {alertable}
      AND EXISTS (SELECT 1 FROM json_each(s.slices) j WHERE j.value = e.slice)
      AND st_within(e.longitude, e.latitude, s.detection_geometry) = 1

    UNION

    -- MultiPolygon sites, one row per containing fragment
    SELECT e.id AS event_id, s.id AS site_id
    FROM batch e
    CROSS JOIN site_detection_fragments f
    JOIN sites s ON s.id = f.site_id AND s.geometry_type = 'MultiPolygon'
    WHERE {alertable}
      AND EXISTS (SELECT 1 FROM json_each({fragment_slices}.slices) j WHERE j.value = e.slice)
      AND st_within(e.longitude, e.latitude, f.geometry) = 1
) m
JOIN batch e ON e.id = m.event_id
JOIN sites s ON s.id = m.site_id
WHERE NOT EXISTS (
    SELECT 1 FROM site_alerts a
    WHERE a.site_id = s.id
      AND a.latitude = e.latitude
      AND a.longitude = e.longitude
      AND a.event_date = e.event_date
)
"""

NOTIFICATION_INSERT_SQL = """
INSERT OR IGNORE INTO notifications (id, site_alert_id, alert_method, destination, is_delivered)
SELECT gen_uuid(), a.id, m.method, m.destination, 0
FROM site_alerts a
JOIN sites s ON s.id = a.site_id
JOIN alert_methods m ON m.user_id = s.user_id
WHERE a.id IN (SELECT value FROM json_each(:alert_ids))
  AND m.deleted_at IS NULL
  AND m.is_enabled = 1
  AND m.is_verified = 1
  AND a.event_date >= :cutoff
"""

DUE_AT_SQL = "strftime('%Y-%m-%dT%H:%M:%fZ', last_run, '+' || fetch_frequency_minutes || ' minutes')"


def _id_list(ids: Sequence[str]) -> str:
    return json.dumps(list(ids))


class SQLiteStorage:
    """SQLite storage backend implementing :class:`PipelineStorage`.

    Attributes:
        db_path: Path to the SQLite database file
        geometry_cache: Parsed-geometry cache used by the spatial functions

    Example:
        >>> storage = SQLiteStorage("data/geoevents.db")
        >>> storage.initialize()
        >>> ids = storage.fetch_existing_ids("p1", since_hours=12)
        >>> storage.close()
    """

    def __init__(
        self,
        db_path: str | Path,
        *,
        timeout: float = 30.0,
        wal_mode: bool = True,
        geometry_cache: GeometryCache | None = None,
    ):
        self.db_path = Path(db_path)
        self.geometry_cache = geometry_cache or GeometryCache()
        self._timeout = timeout
        self._wal_mode = wal_mode
        self._connection: sqlite3.Connection | None = None
        self._lock = threading.RLock()

    @classmethod
    def from_settings(cls, settings: Settings) -> SQLiteStorage:
        return cls(
            settings.database_path,
            timeout=settings.database.timeout_seconds,
            wal_mode=settings.database.wal_mode,
            geometry_cache=GeometryCache(
                settings.cache.site_geometry_size,
                enabled=settings.cache.site_geometry_enabled,
            ),
        )

    @property
    def connection(self) -> sqlite3.Connection:
        """Get active database connection, creating if needed."""
        if self._connection is None:
            self._connect()
        return self._connection  # type: ignore[return-value]

    def _connect(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        # Autocommit mode; transactions are opened explicitly.
        conn = sqlite3.connect(
            self.db_path,
            timeout=self._timeout,
            check_same_thread=False,
            isolation_level=None,
        )
        conn.row_factory = sqlite3.Row

        if self._wal_mode:
            conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")
        conn.execute("PRAGMA synchronous=NORMAL")
        conn.execute("PRAGMA temp_store=MEMORY")

        register_spatial_functions(conn, self.geometry_cache)
        self._connection = conn

    @contextmanager
    def _guard(self, operation: str) -> Iterator[sqlite3.Connection]:
        with self._lock:
            try:
                yield self.connection
            except sqlite3.Error as e:
                logger.error("storage_operation_failed", operation=operation, error=str(e))
                raise PersistenceError(f"{operation} failed: {e}") from e

    @contextmanager
    def _transaction(self, operation: str) -> Iterator[sqlite3.Connection]:
        with self._guard(operation) as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")

    def initialize(self) -> None:
        """Create tables/schema if needed (idempotent)."""
        with self._guard("initialize") as conn:
            version = get_schema_version(conn)
            migrate(conn, wal_mode=self._wal_mode)
            logger.debug("storage_initialized", path=str(self.db_path), previous_version=version)

    # ------------------------------------------------------------------
    # Geo events
    # ------------------------------------------------------------------

    def fetch_existing_ids(
        self,
        provider_id: str,
        since_hours: float,
        *,
        now: datetime | None = None,
    ) -> list[str]:
        cutoff = to_iso8601(hours_ago(since_hours, now=now))
        with self._guard("fetch_existing_ids") as conn:
            rows = conn.execute(
                "SELECT id FROM geo_events WHERE provider_id = ? AND event_date >= ?",
                (provider_id, cutoff),
            ).fetchall()
        return [row["id"] for row in rows]

    def bulk_insert(self, events: Sequence[GeoEvent], batch_size: int = 1000) -> int:
        """Insert events in batches of ``batch_size``; duplicate ids are skipped.

        Each batch commits on its own, so a failing batch keeps the
        batches before it.

        Raises:
            ValueError: If an event has no id
            PersistenceError: If a batch fails
        """
        if not events:
            return 0

        rows = []
        for event in events:
            if event.id is None:
                raise ValueError("Cannot insert a geo event without an id")
            db_dict = event.to_db_dict()
            rows.append(tuple(db_dict[col] for col in EVENT_COLUMNS))

        sql = (
            f"INSERT OR IGNORE INTO geo_events ({', '.join(EVENT_COLUMNS)}) "
            f"VALUES ({', '.join('?' * len(EVENT_COLUMNS))})"
        )

        created = 0
        for start in range(0, len(rows), batch_size):
            with self._transaction("bulk_insert") as conn:
                before = conn.total_changes
                conn.executemany(sql, rows[start : start + batch_size])
                created += conn.total_changes - before
        return created

    def find_unprocessed_by_provider(self, provider_id: str, limit: int) -> list[str]:
        with self._guard("find_unprocessed_by_provider") as conn:
            rows = conn.execute(
                """
                SELECT id FROM geo_events
                WHERE provider_id = ? AND is_processed = 0
                ORDER BY event_date, id
                LIMIT ?
                """,
                (provider_id, limit),
            ).fetchall()
        return [row["id"] for row in rows]

    def mark_processed(self, event_ids: Sequence[str]) -> int:
        if not event_ids:
            return 0
        with self._transaction("mark_processed") as conn:
            cursor = conn.execute(
                "UPDATE geo_events SET is_processed = 1 WHERE id IN (SELECT value FROM json_each(?))",
                (_id_list(event_ids),),
            )
            return cursor.rowcount

    def mark_stale_events_processed(
        self,
        older_than_hours: float,
        *,
        provider_id: str | None = None,
        now: datetime | None = None,
    ) -> int:
        """Maintenance: mark unprocessed events older than the cutoff processed.

        Never called by the pipeline itself; late-arriving detections
        would otherwise be dropped before matching.
        """
        cutoff = to_iso8601(hours_ago(older_than_hours, now=now))
        sql = "UPDATE geo_events SET is_processed = 1 WHERE is_processed = 0 AND event_date < ?"
        params: tuple[Any, ...] = (cutoff,)
        if provider_id is not None:
            sql += " AND provider_id = ?"
            params = (cutoff, provider_id)
        with self._transaction("mark_stale_events_processed") as conn:
            return conn.execute(sql, params).rowcount

    def get_events(self, provider_id: str | None = None) -> list[GeoEvent]:
        sql = "SELECT * FROM geo_events"
        params: tuple[Any, ...] = ()
        if provider_id is not None:
            sql += " WHERE provider_id = ?"
            params = (provider_id,)
        return [GeoEvent.from_db_row(row) for row in self.query(sql + " ORDER BY event_date", params)]

    # ------------------------------------------------------------------
    # Site alerts
    # ------------------------------------------------------------------

    def create_alerts_for_batch(
        self,
        event_ids: Sequence[str],
        *,
        client_id: str,
        geostationary: bool,
        silence_alerts: bool = False,
        now: datetime | None = None,
    ) -> int:
        """Match a batch of events against sites and mark the batch processed.

        Point/Polygon sites match on the site's slices. MultiPolygon sites
        match per fragment; geostationary batches check the fragment's own
        slices, other batches the site's. With ``silence_alerts`` the
        geostationary alerts of this batch are created already processed,
        scoped to ``client_id``.
        """
        if not event_ids:
            return 0

        params = {
            "event_ids": _id_list(event_ids),
            "client_id": client_id,
            "now": to_iso8601(now or utc_now()),
        }
        sql = SITE_ALERT_INSERT_SQL.format(
            alertable=ALERTABLE_SITE,
            fragment_slices="f" if geostationary else "s",
        )

        with self._transaction("create_alerts_for_batch") as conn:
            before = conn.total_changes
            conn.execute(sql, params)
            created = conn.total_changes - before

            conn.execute(
                "UPDATE geo_events SET is_processed = 1 WHERE id IN (SELECT value FROM json_each(:event_ids))",
                params,
            )
            if geostationary and silence_alerts:
                conn.execute(
                    """
                    UPDATE site_alerts SET is_processed = 1
                    WHERE is_processed = 0
                      AND detected_by = :client_id
                      AND geo_event_id IN (SELECT value FROM json_each(:event_ids))
                    """,
                    params,
                )
        return created

    def get_site_alerts(self, site_id: str | None = None) -> list[SiteAlert]:
        sql = "SELECT * FROM site_alerts"
        params: tuple[Any, ...] = ()
        if site_id is not None:
            sql += " WHERE site_id = ?"
            params = (site_id,)
        return [SiteAlert.from_db_row(row) for row in self.query(sql + " ORDER BY event_date", params)]

    # ------------------------------------------------------------------
    # Providers
    # ------------------------------------------------------------------

    def find_eligible_providers(
        self,
        limit: int,
        *,
        now: datetime | None = None,
    ) -> list[GeoEventProvider]:
        """Active, scheduled providers that are due, most overdue first.

        Providers that never ran sort first.
        """
        rows = self.query(
            f"""
            SELECT *, COALESCE({DUE_AT_SQL}, '') AS due_at
            FROM geo_event_providers
            WHERE is_active = 1
              AND fetch_frequency_minutes IS NOT NULL
              AND (last_run IS NULL OR {DUE_AT_SQL} <= ?)
            ORDER BY due_at, id
            LIMIT ?
            """,
            (to_iso8601(now or utc_now()), limit),
        )
        return [GeoEventProvider.from_db_row(row) for row in rows]

    def update_last_run(self, provider_id: str, timestamp: datetime) -> None:
        with self._transaction("update_last_run") as conn:
            conn.execute(
                "UPDATE geo_event_providers SET last_run = ? WHERE id = ?",
                (to_iso8601(timestamp), provider_id),
            )

    def get_provider(self, provider_id: str) -> GeoEventProvider | None:
        rows = self.query("SELECT * FROM geo_event_providers WHERE id = ?", (provider_id,))
        return GeoEventProvider.from_db_row(rows[0]) if rows else None

    def list_providers(self) -> list[GeoEventProvider]:
        rows = self.query("SELECT * FROM geo_event_providers ORDER BY id")
        return [GeoEventProvider.from_db_row(row) for row in rows]

    def upsert_provider(self, provider: GeoEventProvider) -> None:
        data = provider.to_db_dict()
        columns = list(data)
        updates = ", ".join(f"{col} = excluded.{col}" for col in columns if col != "id")
        with self._transaction("upsert_provider") as conn:
            conn.execute(
                f"INSERT INTO geo_event_providers ({', '.join(columns)}) "
                f"VALUES ({', '.join(':' + c for c in columns)}) "
                f"ON CONFLICT(id) DO UPDATE SET {updates}",
                data,
            )

    # ------------------------------------------------------------------
    # Sites and alert methods (seeding; sites are managed elsewhere)
    # ------------------------------------------------------------------

    def upsert_site(self, site: Site, fragments: Sequence[DetectionFragment] = ()) -> None:
        """Insert or replace a site and its detection fragments."""
        data = site.to_db_dict()
        columns = list(data)
        updates = ", ".join(f"{col} = excluded.{col}" for col in columns if col != "id")
        with self._transaction("upsert_site") as conn:
            conn.execute(
                f"INSERT INTO sites ({', '.join(columns)}) "
                f"VALUES ({', '.join(':' + c for c in columns)}) "
                f"ON CONFLICT(id) DO UPDATE SET {updates}",
                data,
            )
            conn.execute("DELETE FROM site_detection_fragments WHERE site_id = ?", (site.id,))
            for fragment in fragments:
                row = fragment.to_db_dict()
                row["id"] = row["id"] or str(uuid.uuid4())
                row["site_id"] = site.id
                conn.execute(
                    "INSERT INTO site_detection_fragments (id, site_id, geometry, slices) "
                    "VALUES (:id, :site_id, :geometry, :slices)",
                    row,
                )

    def get_site(self, site_id: str) -> Site | None:
        rows = self.query("SELECT * FROM sites WHERE id = ?", (site_id,))
        return Site.from_db_row(rows[0]) if rows else None

    def list_sites(self, *, include_deleted: bool = False) -> list[Site]:
        sql = "SELECT * FROM sites"
        if not include_deleted:
            sql += " WHERE deleted_at IS NULL"
        return [Site.from_db_row(row) for row in self.query(sql + " ORDER BY id")]

    def upsert_alert_method(self, method: AlertMethod) -> None:
        data = method.to_db_dict()
        columns = list(data)
        updates = ", ".join(f"{col} = excluded.{col}" for col in columns if col != "id")
        with self._transaction("upsert_alert_method") as conn:
            conn.execute(
                f"INSERT INTO alert_methods ({', '.join(columns)}) "
                f"VALUES ({', '.join(':' + c for c in columns)}) "
                f"ON CONFLICT(id) DO UPDATE SET {updates}",
                data,
            )

    def get_alert_method(self, method_id: str) -> AlertMethod | None:
        rows = self.query("SELECT * FROM alert_methods WHERE id = ?", (method_id,))
        return AlertMethod.from_db_row(rows[0]) if rows else None

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def create_notifications(
        self,
        *,
        max_alert_age_hours: float | None = None,
        now: datetime | None = None,
    ) -> int:
        """Create one notification per eligible alert method of each unprocessed alert.

        The alerts considered here are flagged processed in the same
        transaction, including those too old to notify.
        """
        cutoff = ""
        if max_alert_age_hours is not None:
            cutoff = to_iso8601(hours_ago(max_alert_age_hours, now=now))

        with self._transaction("create_notifications") as conn:
            alert_ids = [
                row["id"]
                for row in conn.execute(
                    "SELECT id FROM site_alerts WHERE is_processed = 0 AND deleted_at IS NULL"
                ).fetchall()
            ]
            if not alert_ids:
                return 0

            params = {"alert_ids": _id_list(alert_ids), "cutoff": cutoff}
            before = conn.total_changes
            conn.execute(NOTIFICATION_INSERT_SQL, params)
            created = conn.total_changes - before

            conn.execute(
                "UPDATE site_alerts SET is_processed = 1 WHERE id IN (SELECT value FROM json_each(:alert_ids))",
                params,
            )
        return created

    def find_undelivered_notifications(
        self,
        limit: int,
        *,
        methods: Sequence[str] | None = None,
        exclude_methods: Sequence[str] = (),
    ) -> list[dict[str, Any]]:
        """Pending notifications joined with their alert and site.

        ``methods`` restricts the result to those delivery methods.
        """
        return self.query(
            """
            SELECT
                n.id, n.alert_method, n.destination, n.site_alert_id,
                a.type, a.confidence, a.latitude, a.longitude, a.distance,
                a.detected_by, a.event_date, a.raw_data,
                s.id AS site_id, s.name AS site_name
            FROM notifications n
            JOIN site_alerts a ON a.id = n.site_alert_id
            JOIN sites s ON s.id = a.site_id
            WHERE n.is_delivered = 0
              AND n.alert_method NOT IN (SELECT value FROM json_each(?))
              AND (? IS NULL OR n.alert_method IN (SELECT value FROM json_each(?)))
            ORDER BY n.created_at, n.id
            LIMIT ?
            """,
            (
                _id_list(exclude_methods),
                None if methods is None else 1,
                _id_list(methods or []),
                limit,
            ),
        )

    def mark_notifications_delivered(
        self,
        notification_ids: Sequence[str],
        *,
        sent_at: datetime | None = None,
    ) -> int:
        if not notification_ids:
            return 0
        with self._transaction("mark_notifications_delivered") as conn:
            return conn.execute(
                """
                UPDATE notifications SET is_delivered = 1, sent_at = ?
                WHERE id IN (SELECT value FROM json_each(?))
                """,
                (to_iso8601(sent_at or utc_now()), _id_list(notification_ids)),
            ).rowcount

    def record_notification_failure(
        self,
        method: str,
        destination: str,
        *,
        max_fail_count: int | None = None,
    ) -> bool:
        """Count a failed delivery against every matching alert method.

        Methods reaching ``max_fail_count`` failures are disabled.

        Returns:
            True if a method was disabled by this failure
        """
        with self._transaction("record_notification_failure") as conn:
            conn.execute(
                """
                UPDATE alert_methods SET fail_count = fail_count + 1
                WHERE method = ? AND destination = ? AND deleted_at IS NULL
                """,
                (method, destination),
            )
            if max_fail_count is None:
                return False
            cursor = conn.execute(
                """
                UPDATE alert_methods SET is_enabled = 0
                WHERE method = ? AND destination = ? AND deleted_at IS NULL
                  AND is_enabled = 1 AND fail_count >= ?
                """,
                (method, destination, max_fail_count),
            )
            return cursor.rowcount > 0

    def record_notification_success(self, method: str, destination: str) -> None:
        with self._transaction("record_notification_success") as conn:
            conn.execute(
                "UPDATE alert_methods SET fail_count = 0 WHERE method = ? AND destination = ? AND fail_count > 0",
                (method, destination),
            )

    def get_notifications(self, site_alert_id: str | None = None) -> list[Notification]:
        sql = "SELECT * FROM notifications"
        params: tuple[Any, ...] = ()
        if site_alert_id is not None:
            sql += " WHERE site_alert_id = ?"
            params = (site_alert_id,)
        return [Notification.from_db_row(row) for row in self.query(sql + " ORDER BY created_at, id", params)]

    # ------------------------------------------------------------------
    # Runs and leases
    # ------------------------------------------------------------------

    def write_pipeline_run(self, run: PipelineRun) -> int:
        """Insert a new run record or update an existing one."""
        data = run.to_db_dict()
        with self._transaction("write_pipeline_run") as conn:
            if run.id is None:
                columns = list(data)
                cursor = conn.execute(
                    f"INSERT INTO pipeline_runs ({', '.join(columns)}) "
                    f"VALUES ({', '.join(':' + c for c in columns)})",
                    data,
                )
                run.id = cursor.lastrowid
            else:
                assignments = ", ".join(f"{col} = :{col}" for col in data)
                conn.execute(
                    f"UPDATE pipeline_runs SET {assignments} WHERE id = :id",
                    {**data, "id": run.id},
                )
        return run.id or 0

    def get_pipeline_runs(self, limit: int = 20) -> list[PipelineRun]:
        rows = self.query("SELECT * FROM pipeline_runs ORDER BY id DESC LIMIT ?", (limit,))
        return [PipelineRun.from_db_row(row) for row in rows]

    def acquire_lease(
        self,
        name: str,
        holder: str,
        ttl_seconds: float,
        *,
        now: datetime | None = None,
    ) -> bool:
        """Take the named lease unless an unexpired holder has it."""
        now = now or utc_now()
        expires_at = now + timedelta(seconds=ttl_seconds)
        with self._transaction("acquire_lease") as conn:
            conn.execute(
                "DELETE FROM run_locks WHERE name = ? AND expires_at <= ?",
                (name, to_iso8601(now)),
            )
            before = conn.total_changes
            conn.execute(
                "INSERT OR IGNORE INTO run_locks (name, holder, acquired_at, expires_at) VALUES (?, ?, ?, ?)",
                (name, holder, to_iso8601(now), to_iso8601(expires_at)),
            )
            return conn.total_changes > before

    def release_lease(self, name: str, holder: str) -> bool:
        with self._transaction("release_lease") as conn:
            cursor = conn.execute(
                "DELETE FROM run_locks WHERE name = ? AND holder = ?",
                (name, holder),
            )
            return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Generic access
    # ------------------------------------------------------------------

    def query(self, sql: str, params: tuple[Any, ...] | dict[str, Any] = ()) -> list[dict[str, Any]]:
        """Execute a query and return rows as dictionaries."""
        with self._guard("query") as conn:
            rows = conn.execute(sql, params).fetchall()
        return [dict(row) for row in rows]

    def execute(self, sql: str, params: tuple[Any, ...] | dict[str, Any] = ()) -> int:
        """Execute a statement in its own transaction; returns affected rows."""
        with self._transaction("execute") as conn:
            return conn.execute(sql, params).rowcount

    def get_stats(self) -> dict[str, Any]:
        """Row counts and backlog figures."""
        stats: dict[str, Any] = {}

        for table in [
            "geo_event_providers", "geo_events", "sites", "site_alerts",
            "alert_methods", "notifications", "pipeline_runs",
        ]:
            result = self.query(f"SELECT COUNT(*) AS count FROM {table}")
            stats[f"{table}_count"] = result[0]["count"] if result else 0

        backlog = self.query("SELECT * FROM v_unprocessed_events")
        stats["unprocessed_events"] = sum(row["events"] for row in backlog)
        stats["unprocessed_by_provider"] = {row["provider_id"]: row["events"] for row in backlog}

        result = self.query("SELECT COUNT(*) AS count FROM v_pending_notifications")
        stats["pending_notifications"] = result[0]["count"]

        result = self.query("SELECT COUNT(*) AS count FROM v_provider_status WHERE is_active = 1 AND last_run IS NULL")
        stats["providers_never_run"] = result[0]["count"]

        result = self.query("SELECT * FROM v_runs_daily LIMIT 1")
        if result:
            stats["latest_run_day"] = result[0]

        result = self.query("SELECT MIN(event_date) AS oldest, MAX(event_date) AS newest FROM geo_events")
        if result and result[0]["oldest"]:
            stats["event_date_range"] = {"min": result[0]["oldest"], "max": result[0]["newest"]}

        if self.db_path.exists():
            stats["file_size_bytes"] = self.db_path.stat().st_size
            stats["file_size_mb"] = round(stats["file_size_bytes"] / (1024 * 1024), 2)

        stats["geometry_cache"] = self.geometry_cache.info()
        return stats

    def close(self) -> None:
        with self._lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None

    def __enter__(self) -> SQLiteStorage:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"SQLiteStorage({self.db_path!r})"
