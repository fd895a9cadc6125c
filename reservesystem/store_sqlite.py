"""SQLite state store for checkpoints, configuration and audit events."""

import logging
import os
import sqlite3
import threading
from typing import Optional

import orjson

from .types import AuditEvent, Checkpoint, MarketConfig

logger = logging.getLogger(__name__)


class StateStoreSQLite:
    """
    Durable persistence using SQLite.

    Stores:
    - Per-market checkpoints
    - Per-identifier authority/handler wiring and the global ratio
    - All audit events

    Values are uint256-sized, so integers are stored as TEXT. The keeper
    and control-plane threads share one connection; every statement runs
    under the connection lock.
    """

    def __init__(self, db_path: str = "/data/reserves.db", enabled: bool = True):
        """
        Initialize the store.

        Args:
            db_path: Path to SQLite database (":memory:" for tests)
            enabled: Whether persistence is enabled
        """
        self.db_path = db_path
        self.enabled = enabled
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()

    @property
    def is_open(self) -> bool:
        return self.enabled and self._conn is not None

    def init_schema(self) -> None:
        """Initialize the database schema."""
        if not self.enabled:
            return

        if self.db_path != ":memory:":
            directory = os.path.dirname(self.db_path)
            if directory:
                os.makedirs(directory, exist_ok=True)

        with self._lock:
            self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA synchronous=NORMAL")

            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS checkpoints (
                    market TEXT PRIMARY KEY,
                    ts INTEGER NOT NULL,
                    total_reserves TEXT NOT NULL,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)

            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS market_configs (
                    market TEXT PRIMARY KEY,
                    extraction_authority TEXT,
                    conversion_handler TEXT,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)

            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS settings (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
            """)

            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS events (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    ts INTEGER NOT NULL,
                    event_type TEXT NOT NULL,
                    event_data TEXT NOT NULL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)

            self._conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_events_ts ON events(ts)
            """)

            self._conn.commit()
        logger.info(f"State store initialized at {self.db_path}")

    # ----- checkpoints -----

    def save_checkpoints(self, checkpoints: dict[str, Checkpoint]) -> None:
        """Upsert a batch of checkpoints in one transaction."""
        if not self.is_open or not checkpoints:
            return

        with self._lock, self._conn:
            self._conn.executemany(
                "INSERT INTO checkpoints (market, ts, total_reserves) VALUES (?, ?, ?) "
                "ON CONFLICT(market) DO UPDATE SET ts = excluded.ts, "
                "total_reserves = excluded.total_reserves, updated_at = CURRENT_TIMESTAMP",
                [
                    (market, cp.timestamp, str(cp.total_reserves))
                    for market, cp in checkpoints.items()
                ],
            )

    def load_checkpoints(self) -> dict[str, Checkpoint]:
        """Load all stored checkpoints."""
        if not self.is_open:
            return {}

        with self._lock:
            rows = self._conn.execute(
                "SELECT market, ts, total_reserves FROM checkpoints"
            ).fetchall()
        return {
            row[0]: Checkpoint(timestamp=row[1], total_reserves=int(row[2]))
            for row in rows
        }

    # ----- configuration -----

    def save_market_configs(self, configs: dict[str, MarketConfig]) -> None:
        """Upsert authority/handler wiring for a batch of identifiers."""
        if not self.is_open or not configs:
            return

        with self._lock, self._conn:
            self._conn.executemany(
                "INSERT INTO market_configs (market, extraction_authority, conversion_handler) "
                "VALUES (?, ?, ?) ON CONFLICT(market) DO UPDATE SET "
                "extraction_authority = excluded.extraction_authority, "
                "conversion_handler = excluded.conversion_handler, "
                "updated_at = CURRENT_TIMESTAMP",
                [
                    (market, cfg.extraction_authority, cfg.conversion_handler)
                    for market, cfg in configs.items()
                ],
            )

    def load_market_configs(self) -> dict[str, MarketConfig]:
        """Load all stored wiring."""
        if not self.is_open:
            return {}

        with self._lock:
            rows = self._conn.execute(
                "SELECT market, extraction_authority, conversion_handler FROM market_configs"
            ).fetchall()
        return {
            row[0]: MarketConfig(extraction_authority=row[1], conversion_handler=row[2])
            for row in rows
        }

    def save_ratio(self, ratio: int) -> None:
        """Persist the global ratio."""
        if not self.is_open:
            return

        with self._lock, self._conn:
            self._conn.execute(
                "INSERT INTO settings (key, value) VALUES ('ratio', ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                (str(ratio),),
            )

    def load_ratio(self) -> Optional[int]:
        """Load the persisted ratio, or None if never saved."""
        if not self.is_open:
            return None

        with self._lock:
            row = self._conn.execute(
                "SELECT value FROM settings WHERE key = 'ratio'"
            ).fetchone()
        return int(row[0]) if row else None

    # ----- events -----

    def append_event(self, event: AuditEvent) -> None:
        """
        Append an audit event.

        Failures are logged and swallowed: the audit trail must never
        abort a committed dispatch.
        """
        if not self.is_open:
            return

        try:
            data = event.to_dict()
            # uint256 amounts do not fit in a JSON number for most readers
            for key, value in data.items():
                if isinstance(value, int) and not isinstance(value, bool) and key != "ts":
                    data[key] = str(value)
            with self._lock, self._conn:
                self._conn.execute(
                    "INSERT INTO events (ts, event_type, event_data) VALUES (?, ?, ?)",
                    (event.ts, data["event_type"], orjson.dumps(data).decode()),
                )
        except Exception as e:
            logger.error(f"Failed to append event to store: {e}")

    def load_events_since(self, ts: int) -> list[dict]:
        """
        Load events with ts strictly greater than the given timestamp.

        Args:
            ts: Timestamp in seconds

        Returns:
            List of event dictionaries in insertion order
        """
        if not self.is_open:
            return []

        with self._lock:
            rows = self._conn.execute(
                "SELECT event_type, event_data, ts FROM events WHERE ts > ? ORDER BY id",
                (ts,),
            ).fetchall()
        return [
            {"event_type": row[0], "event_data": orjson.loads(row[1]), "ts": row[2]}
            for row in rows
        ]

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn:
                self._conn.close()
                self._conn = None
