"""
Database connection management and initialization.
"""

import sqlite3
import threading
from pathlib import Path
from contextlib import contextmanager
from typing import Generator

from server.config import settings


class Database:
    """
    Thread-safe SQLite database manager.

    Each thread gets its own connection to the database file.
    """

    def __init__(self, db_path: str | Path | None = None):
        self.db_path = str(db_path or settings.DATABASE_PATH)
        self._local = threading.local()
        self._init_lock = threading.Lock()
        self._initialized = False
        self._ensure_directory()
        self._ensure_schema()

    def _ensure_directory(self) -> None:
        """Create database directory if it doesn't exist."""
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

    def _ensure_schema(self) -> None:
        """Initialize database schema (once per instance)."""
        with self._init_lock:
            if not self._initialized:
                with self.get_connection() as conn:
                    conn.executescript(SCHEMA_SQL)
                self._initialized = True

    @contextmanager
    def get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """
        Get a thread-local database connection.

        Commits on success, rolls back if the block raises.

        Usage:
            with db.get_connection() as conn:
                cursor = conn.execute("SELECT ...")
        """
        conn = getattr(self._local, "connection", None)
        if conn is None:
            conn = self._create_connection()
            self._local.connection = conn

        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise

    def _create_connection(self) -> sqlite3.Connection:
        """Create a new database connection with optimal settings."""
        conn = sqlite3.connect(
            self.db_path,
            check_same_thread=False,
            timeout=30.0
        )

        conn.execute("PRAGMA foreign_keys = ON")
        conn.execute("PRAGMA journal_mode = WAL")
        conn.row_factory = sqlite3.Row

        return conn

    def close_connection(self) -> None:
        """Close the current thread's connection."""
        conn = getattr(self._local, "connection", None)
        if conn is not None:
            conn.close()
            self._local.connection = None

    def reset_database(self) -> None:
        """Drop and recreate all tables. USE WITH CAUTION."""
        with self.get_connection() as conn:
            cursor = conn.execute(
                "SELECT name FROM sqlite_master WHERE type='table' AND name NOT LIKE 'sqlite_%'"
            )
            tables = [row["name"] for row in cursor.fetchall()]

            for table in tables:
                conn.execute(f"DROP TABLE IF EXISTS {table}")

            conn.executescript(SCHEMA_SQL)


SCHEMA_SQL = """
-- Matches table: directory entry and latest version per match
CREATE TABLE IF NOT EXISTS matches (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    host_id TEXT NOT NULL,
    max_players INTEGER NOT NULL,
    status TEXT NOT NULL DEFAULT 'WAITING',
    phase TEXT NOT NULL DEFAULT 'WAITING',
    version INTEGER NOT NULL DEFAULT 0,
    settings_json TEXT NOT NULL DEFAULT '{}',
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    finished_at TIMESTAMP
);

-- Seats table: who has joined which match
CREATE TABLE IF NOT EXISTS seats (
    match_id TEXT NOT NULL,
    user_id TEXT NOT NULL,
    player_id TEXT NOT NULL,
    username TEXT NOT NULL,
    seat INTEGER NOT NULL,
    joined_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,

    PRIMARY KEY (match_id, user_id),
    FOREIGN KEY (match_id) REFERENCES matches(id) ON DELETE CASCADE
);

-- Snapshots table: full match state, one row per version
CREATE TABLE IF NOT EXISTS match_snapshots (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    match_id TEXT NOT NULL,
    version INTEGER NOT NULL,
    state_json TEXT NOT NULL,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,

    UNIQUE (match_id, version),
    FOREIGN KEY (match_id) REFERENCES matches(id) ON DELETE CASCADE
);

-- Indexes for common queries
CREATE INDEX IF NOT EXISTS idx_seats_match_id ON seats(match_id);
CREATE INDEX IF NOT EXISTS idx_seats_user_id ON seats(user_id);
CREATE INDEX IF NOT EXISTS idx_snapshots_match_id ON match_snapshots(match_id);
CREATE INDEX IF NOT EXISTS idx_matches_status ON matches(status);
"""


# Global database instance
_db: Database | None = None


def get_database() -> Database:
    """Get or create the global database instance."""
    global _db
    if _db is None:
        _db = Database()
    return _db


def init_database(db_path: str | Path | None = None) -> Database:
    """Initialize the global database with an optional custom path."""
    global _db
    _db = Database(db_path)
    return _db
