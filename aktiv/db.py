"""SQLite database layer: schema, connection, key/value state, history rows.

- Thread-safe via a dedicated lock (SQLite check_same_thread=False is not enough)
- WAL journal so `aktiv status` can read while the daemon writes
- Multi-key writes happen in one transaction, so a failed save leaves the
  previous values in place
- Parameterized queries only; table names are checked against a whitelist
"""

import sqlite3
import logging
import threading
from pathlib import Path

from aktiv.config import DB_PATH

log = logging.getLogger(__name__)

SCHEMA_VERSION = 1

_VALID_TABLES = frozenset({
    "tracker_state", "power_events", "sleep_events", "daemon_health",
})

_SCHEMA = """
-- Schema version tracking
CREATE TABLE IF NOT EXISTS schema_meta (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);
INSERT OR IGNORE INTO schema_meta (key, value) VALUES ('version', '1');

-- Persisted counters (screenOnTime, totalUptime)
CREATE TABLE IF NOT EXISTS tracker_state (
    key TEXT PRIMARY KEY,
    value REAL NOT NULL,
    updated_at REAL
);

CREATE TABLE IF NOT EXISTS power_events (
    id INTEGER PRIMARY KEY,
    timestamp REAL NOT NULL,
    power_state TEXT NOT NULL,
    is_on_battery INTEGER,
    is_charging INTEGER,
    screen_on_time REAL
);
CREATE INDEX IF NOT EXISTS idx_power_ts ON power_events(timestamp);

CREATE TABLE IF NOT EXISTS sleep_events (
    id INTEGER PRIMARY KEY,
    timestamp REAL NOT NULL,
    event_type TEXT NOT NULL,
    screen_on_time REAL,
    total_uptime REAL
);
CREATE INDEX IF NOT EXISTS idx_sleep_ts ON sleep_events(timestamp);

CREATE TABLE IF NOT EXISTS daemon_health (
    id INTEGER PRIMARY KEY,
    timestamp REAL NOT NULL,
    event_type TEXT,
    details TEXT
);
CREATE INDEX IF NOT EXISTS idx_health_ts ON daemon_health(timestamp);
"""


class Database:
    """Thread-safe SQLite wrapper for aktiv.

    Usage:
        with Database() as db:
            db.put_values({"screenOnTime": 12.0}, time.time())
    """

    def __init__(self, path: Path | None = None):
        self.path = path or DB_PATH
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.Lock()

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    # ── lifecycle ───────────────────────────────────────────────────────

    def open(self) -> None:
        """Open the database, apply pragmas, and ensure schema exists."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(
            str(self.path),
            check_same_thread=False,
            timeout=10.0,
        )
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA synchronous=FULL")
        self._conn.execute("PRAGMA busy_timeout=5000")
        self._conn.executescript(_SCHEMA)
        self._conn.commit()
        log.info("database opened at %s (schema v%d)", self.path, SCHEMA_VERSION)

    def close(self) -> None:
        """Close the database connection safely."""
        with self._lock:
            if self._conn:
                try:
                    self._conn.execute("PRAGMA optimize")
                    self._conn.close()
                except sqlite3.Error:
                    log.exception("error during database close")
                finally:
                    self._conn = None
                    log.info("database closed")

    def _ensure_conn(self) -> sqlite3.Connection:
        """Return the active connection, raising if closed."""
        if self._conn is None:
            raise RuntimeError("database is not open: call .open() first")
        return self._conn

    # ── key/value state ─────────────────────────────────────────────────

    def get_values(self, keys: list[str]) -> dict[str, float]:
        """Return the stored value for each key that exists."""
        if not keys:
            return {}
        placeholders = ", ".join("?" for _ in keys)
        conn = self._ensure_conn()
        with self._lock:
            cur = conn.execute(
                f"SELECT key, value FROM tracker_state WHERE key IN ({placeholders})",
                tuple(keys),
            )
            rows = cur.fetchall()
        return {key: float(value) for key, value in rows}

    def put_values(self, values: dict[str, float], ts: float) -> None:
        """Upsert every key in a single transaction (all or nothing)."""
        if not values:
            return
        conn = self._ensure_conn()
        with self._lock:
            with conn:
                conn.executemany(
                    """INSERT INTO tracker_state (key, value, updated_at)
                       VALUES (?, ?, ?)
                       ON CONFLICT(key) DO UPDATE
                       SET value = excluded.value,
                           updated_at = excluded.updated_at""",
                    [(k, float(v), ts) for k, v in values.items()],
                )

    # ── history rows ────────────────────────────────────────────────────

    def batch_insert(self, table: str, columns: list[str], rows: list[tuple]) -> None:
        """Insert many rows in a single transaction."""
        if not rows:
            return
        if table not in _VALID_TABLES:
            raise ValueError(f"unknown table: {table!r}")

        placeholders = ", ".join("?" for _ in columns)
        col_names = ", ".join(columns)
        sql = f"INSERT INTO {table} ({col_names}) VALUES ({placeholders})"

        conn = self._ensure_conn()
        with self._lock:
            with conn:
                conn.executemany(sql, rows)

    def insert_one(self, table: str, columns: list[str], values: tuple) -> None:
        """Insert a single row."""
        self.batch_insert(table, columns, [values])

    def log_health(self, ts: float, event_type: str, details: str = "") -> None:
        """Record a daemon health event."""
        self.insert_one(
            "daemon_health",
            ["timestamp", "event_type", "details"],
            (ts, event_type, details),
        )

    # ── reads (for `aktiv status`) ──────────────────────────────────────

    def count(self, table: str) -> int:
        """Return the row count for a table."""
        if table not in _VALID_TABLES:
            raise ValueError(f"unknown table: {table!r}")
        conn = self._ensure_conn()
        with self._lock:
            cur = conn.execute(f"SELECT COUNT(*) FROM {table}")
            return cur.fetchone()[0]

    def recent(self, table: str, limit: int = 10) -> list[tuple]:
        """Return the newest rows of a history table, newest first."""
        if table not in _VALID_TABLES or table == "tracker_state":
            raise ValueError(f"unknown table: {table!r}")
        conn = self._ensure_conn()
        with self._lock:
            cur = conn.execute(
                f"SELECT * FROM {table} ORDER BY timestamp DESC, id DESC LIMIT ?",
                (limit,),
            )
            return cur.fetchall()
