"""
Database schema for the geo-event alert pipeline.

This module defines the SQLite schema including:
- Core tables (providers, geo events, sites, alerts, notifications)
- Indexes for the pipeline's hot queries
- Views for operators
- Migration support for schema updates

Schema notes:
- geo_events.id is the event checksum, so INSERT OR IGNORE is the
  storage-level duplicate backstop
- site_alerts is unique per (site, latitude, longitude, event_date)
- notifications is unique per (alert, method, destination)
- timestamps are ISO 8601 UTC text with a Z suffix

Example:
    >>> from geoevent_alerts.storage.schema import create_schema, get_schema_sql
    >>>
    >>> create_schema(connection)
    >>> print(get_schema_sql())
"""

from __future__ import annotations

import sqlite3

SCHEMA_VERSION = 1

ISO_NOW = "strftime('%Y-%m-%dT%H:%M:%fZ', 'now')"

# ============================================================================
# TABLE DEFINITIONS
# ============================================================================

TABLES_SQL = f"""
-- ============================================================================
-- GEO_EVENT_PROVIDERS: Configured data sources
-- ============================================================================
CREATE TABLE IF NOT EXISTS geo_event_providers (
    id TEXT PRIMARY KEY,
    name TEXT,
    type TEXT NOT NULL DEFAULT 'fire',
    client_id TEXT NOT NULL,
    client_api_key TEXT,
    config TEXT NOT NULL DEFAULT '{{}}',
    is_active INTEGER NOT NULL DEFAULT 1,
    fetch_frequency_minutes INTEGER,
    last_run TEXT,
    created_at TEXT NOT NULL DEFAULT ({ISO_NOW})
);

-- ============================================================================
-- GEO_EVENTS: Deduplicated detections (id = checksum)
-- ============================================================================
CREATE TABLE IF NOT EXISTS geo_events (
    id TEXT PRIMARY KEY,
    type TEXT NOT NULL DEFAULT 'fire',
    latitude REAL NOT NULL,
    longitude REAL NOT NULL,
    event_date TEXT NOT NULL,
    confidence TEXT NOT NULL,
    provider_id TEXT NOT NULL,
    provider_client_id TEXT NOT NULL,
    slice TEXT NOT NULL,
    is_processed INTEGER NOT NULL DEFAULT 0,
    raw_data TEXT NOT NULL DEFAULT '{{}}',
    created_at TEXT NOT NULL DEFAULT ({ISO_NOW})
);

-- ============================================================================
-- SITES: Monitored areas (managed outside the pipeline)
-- ============================================================================
CREATE TABLE IF NOT EXISTS sites (
    id TEXT PRIMARY KEY,
    name TEXT,
    user_id TEXT,
    geometry_type TEXT NOT NULL,
    geometry TEXT NOT NULL,
    detection_geometry TEXT NOT NULL,
    slices TEXT NOT NULL DEFAULT '[]',
    is_monitored INTEGER NOT NULL DEFAULT 1,
    stop_alert_until TEXT,
    deleted_at TEXT
);

-- ============================================================================
-- SITE_DETECTION_FRAGMENTS: Per-region geometry of MultiPolygon sites
-- ============================================================================
CREATE TABLE IF NOT EXISTS site_detection_fragments (
    id TEXT PRIMARY KEY,
    site_id TEXT NOT NULL,
    geometry TEXT NOT NULL,
    slices TEXT NOT NULL DEFAULT '[]',
    FOREIGN KEY (site_id) REFERENCES sites(id)
);

-- ============================================================================
-- SITE_ALERTS: Event/site matches
-- ============================================================================
CREATE TABLE IF NOT EXISTS site_alerts (
    id TEXT PRIMARY KEY,
    type TEXT NOT NULL DEFAULT 'fire',
    event_date TEXT NOT NULL,
    detected_by TEXT NOT NULL,
    confidence TEXT NOT NULL,
    latitude REAL NOT NULL,
    longitude REAL NOT NULL,
    site_id TEXT NOT NULL,
    geo_event_id TEXT,
    distance REAL NOT NULL DEFAULT 0,
    is_processed INTEGER NOT NULL DEFAULT 0,
    raw_data TEXT NOT NULL DEFAULT '{{}}',
    created_at TEXT NOT NULL DEFAULT ({ISO_NOW}),
    deleted_at TEXT,
    FOREIGN KEY (site_id) REFERENCES sites(id),
    UNIQUE(site_id, latitude, longitude, event_date)
);

-- ============================================================================
-- ALERT_METHODS: Users' delivery channels
-- ============================================================================
CREATE TABLE IF NOT EXISTS alert_methods (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    method TEXT NOT NULL,
    destination TEXT NOT NULL,
    is_enabled INTEGER NOT NULL DEFAULT 1,
    is_verified INTEGER NOT NULL DEFAULT 0,
    fail_count INTEGER NOT NULL DEFAULT 0,
    deleted_at TEXT
);

-- ============================================================================
-- NOTIFICATIONS: Delivery obligations
-- ============================================================================
CREATE TABLE IF NOT EXISTS notifications (
    id TEXT PRIMARY KEY,
    site_alert_id TEXT NOT NULL,
    alert_method TEXT NOT NULL,
    destination TEXT NOT NULL,
    is_delivered INTEGER NOT NULL DEFAULT 0,
    sent_at TEXT,
    created_at TEXT NOT NULL DEFAULT ({ISO_NOW}),
    FOREIGN KEY (site_alert_id) REFERENCES site_alerts(id),
    UNIQUE(site_alert_id, alert_method, destination)
);

-- ============================================================================
-- PIPELINE_RUNS: Run-level audit trail
-- ============================================================================
CREATE TABLE IF NOT EXISTS pipeline_runs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    trigger TEXT NOT NULL,
    provider_limit INTEGER,
    started_at TEXT NOT NULL,
    completed_at TEXT,
    status TEXT NOT NULL DEFAULT 'running',
    providers_processed INTEGER NOT NULL DEFAULT 0,
    providers_failed INTEGER NOT NULL DEFAULT 0,
    events_fetched INTEGER NOT NULL DEFAULT 0,
    events_new INTEGER NOT NULL DEFAULT 0,
    events_created INTEGER NOT NULL DEFAULT 0,
    alerts_created INTEGER NOT NULL DEFAULT 0,
    notifications_created INTEGER NOT NULL DEFAULT 0,
    errors TEXT NOT NULL DEFAULT '[]'
);

-- ============================================================================
-- RUN_LOCKS: Leases for single-run-at-a-time across processes
-- ============================================================================
CREATE TABLE IF NOT EXISTS run_locks (
    name TEXT PRIMARY KEY,
    holder TEXT NOT NULL,
    acquired_at TEXT NOT NULL,
    expires_at TEXT NOT NULL
);

-- ============================================================================
-- SCHEMA_INFO: Track schema version
-- ============================================================================
CREATE TABLE IF NOT EXISTS schema_info (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

INSERT OR REPLACE INTO schema_info (key, value) VALUES ('version', '{SCHEMA_VERSION}');
INSERT OR IGNORE INTO schema_info (key, value) VALUES ('created_at', {ISO_NOW});
"""

# ============================================================================
# INDEX DEFINITIONS
# ============================================================================

INDEXES_SQL = """
-- Dedup window lookup and unprocessed batches
CREATE INDEX IF NOT EXISTS idx_geo_events_provider_date ON geo_events(provider_id, event_date);
CREATE INDEX IF NOT EXISTS idx_geo_events_provider_unprocessed ON geo_events(provider_id, is_processed);

-- Sites and fragments
CREATE INDEX IF NOT EXISTS idx_sites_type ON sites(geometry_type);
CREATE INDEX IF NOT EXISTS idx_fragments_site ON site_detection_fragments(site_id);

-- Alerts
CREATE INDEX IF NOT EXISTS idx_site_alerts_site ON site_alerts(site_id);
CREATE INDEX IF NOT EXISTS idx_site_alerts_unprocessed ON site_alerts(is_processed, detected_by);
CREATE INDEX IF NOT EXISTS idx_site_alerts_event ON site_alerts(geo_event_id);

-- Alert methods and notifications
CREATE INDEX IF NOT EXISTS idx_alert_methods_user ON alert_methods(user_id);
CREATE INDEX IF NOT EXISTS idx_notifications_pending ON notifications(is_delivered);

-- Providers and runs
CREATE INDEX IF NOT EXISTS idx_providers_active ON geo_event_providers(is_active);
CREATE INDEX IF NOT EXISTS idx_pipeline_runs_started ON pipeline_runs(started_at);
"""

# ============================================================================
# VIEW DEFINITIONS
# ============================================================================

VIEWS_SQL = """
-- Events the matching engine has not seen yet
CREATE VIEW IF NOT EXISTS v_unprocessed_events AS
SELECT provider_id, provider_client_id, slice, COUNT(*) AS events, MIN(event_date) AS oldest
FROM geo_events
WHERE is_processed = 0
GROUP BY provider_id, provider_client_id, slice;

-- Notifications waiting for delivery
CREATE VIEW IF NOT EXISTS v_pending_notifications AS
SELECT n.id, n.alert_method, n.destination, a.site_id, a.event_date, a.confidence, a.distance
FROM notifications n
JOIN site_alerts a ON a.id = n.site_alert_id
WHERE n.is_delivered = 0
ORDER BY n.created_at;

-- Provider schedule overview
CREATE VIEW IF NOT EXISTS v_provider_status AS
SELECT
    p.id,
    p.client_id,
    json_extract(p.config, '$.client') AS adapter,
    json_extract(p.config, '$.slice') AS slice,
    p.is_active,
    p.fetch_frequency_minutes,
    p.last_run,
    (SELECT COUNT(*) FROM geo_events e WHERE e.provider_id = p.id) AS events
FROM geo_event_providers p
ORDER BY p.last_run;

-- Run summary by day
CREATE VIEW IF NOT EXISTS v_runs_daily AS
SELECT
    date(started_at) AS date,
    COUNT(*) AS runs,
    SUM(events_created) AS events_created,
    SUM(alerts_created) AS alerts_created,
    SUM(notifications_created) AS notifications_created,
    SUM(providers_failed) AS providers_failed
FROM pipeline_runs
GROUP BY date(started_at)
ORDER BY date DESC;
"""


def get_schema_sql() -> str:
    """Get complete schema SQL for inspection."""
    return "\n".join(
        [
            "-- Geo-event alert pipeline schema",
            f"-- Version: {SCHEMA_VERSION}",
            "",
            "-- TABLES",
            TABLES_SQL,
            "",
            "-- INDEXES",
            INDEXES_SQL,
            "",
            "-- VIEWS",
            VIEWS_SQL,
        ]
    )


def create_schema(conn: sqlite3.Connection, *, wal_mode: bool = True) -> None:
    """Create all tables, indexes and views.

    Idempotent; safe to call on every start.

    Args:
        conn: SQLite connection
        wal_mode: Switch the database to WAL journaling
    """
    cursor = conn.cursor()

    if wal_mode:
        cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")

    cursor.executescript(TABLES_SQL)
    cursor.executescript(INDEXES_SQL)
    cursor.executescript(VIEWS_SQL)

    conn.commit()


def get_schema_version(conn: sqlite3.Connection) -> int | None:
    """Get current schema version, or None for an empty database."""
    try:
        cursor = conn.cursor()
        cursor.execute("SELECT value FROM schema_info WHERE key = 'version'")
        row = cursor.fetchone()
        return int(row[0]) if row else None
    except sqlite3.OperationalError:
        return None


def migrate(conn: sqlite3.Connection, *, wal_mode: bool = True) -> None:
    """Create the schema on a fresh database or bring an old one up to date."""
    current_version = get_schema_version(conn)

    if current_version is None or current_version < SCHEMA_VERSION:
        create_schema(conn, wal_mode=wal_mode)
