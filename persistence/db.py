# persistence/db.py
"""
SQLite database connection and schema management.

Uses a file-based SQLite database for persistence. The path and busy
timeout come from AppConfig; nothing here reads the environment.
On Railway, point JOBCRAFT_DB_PATH at a persistent volume.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

_logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Backing store unreachable or a statement failed."""
    pass


class Database:
    """
    Thread-local SQLite connections over a single database file.

    Each request-handling thread gets its own connection. All writers
    rely on single-statement atomicity; no lock is held across calls.
    """

    def __init__(self, path: str | Path, timeout: float = 5.0):
        self.path = Path(path)
        self.timeout = timeout
        self._local = threading.local()
        self._init_lock = threading.Lock()
        self._initialized = False

    def _get_connection(self) -> sqlite3.Connection:
        """Get thread-local database connection."""
        conn = getattr(self._local, "connection", None)
        if conn is None:
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                conn = sqlite3.connect(
                    str(self.path),
                    timeout=self.timeout,
                    check_same_thread=False,
                )
                conn.row_factory = sqlite3.Row
            except (OSError, sqlite3.Error) as e:
                _logger.error(f"Cannot open database at {self.path}: {e}")
                raise StorageError(f"Database unavailable: {e}") from e
            self._local.connection = conn

        return conn

    @contextmanager
    def get_db(self) -> Iterator[sqlite3.Connection]:
        """
        Get database connection context manager.

        Commits on success, rolls back on error. sqlite3 errors are
        re-raised as StorageError.

        Usage:
            with db.get_db() as conn:
                cursor = conn.execute("SELECT ...")
        """
        conn = self._get_connection()
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            _logger.error(f"Database operation failed: {e}")
            raise StorageError(str(e)) from e
        except Exception:
            conn.rollback()
            raise

    def init_db(self) -> None:
        """
        Initialize database schema.

        Creates tables if they don't exist.
        Safe to call multiple times (idempotent).
        """
        with self._init_lock:
            if self._initialized:
                return

            with self.get_db() as conn:
                # Readers must not block the usage increment
                conn.execute("PRAGMA journal_mode = WAL")
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS accounts (
                        user_id TEXT PRIMARY KEY,
                        tier TEXT NOT NULL DEFAULT 'FREEMIUM',
                        usage_count INTEGER NOT NULL DEFAULT 0
                            CHECK (usage_count >= 0),
                        subscription_status TEXT NOT NULL DEFAULT 'inactive',
                        billing_customer_id TEXT,
                        billing_subscription_id TEXT,
                        created_at TEXT NOT NULL,
                        updated_at TEXT NOT NULL
                    )
                """)
                conn.execute("""
                    CREATE INDEX IF NOT EXISTS idx_accounts_subscription
                    ON accounts(billing_subscription_id)
                """)

                # Audit trail of verified webhook deliveries
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS billing_events (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        event_id TEXT NOT NULL,
                        event_type TEXT NOT NULL,
                        user_id TEXT,
                        outcome TEXT NOT NULL,
                        received_at TEXT NOT NULL
                    )
                """)
                conn.execute("""
                    CREATE INDEX IF NOT EXISTS idx_billing_events_event
                    ON billing_events(event_id)
                """)

            _logger.info(f"Database initialized at {self.path}")
            self._initialized = True

    def close_db(self) -> None:
        """Close thread-local database connection."""
        conn = getattr(self._local, "connection", None)
        if conn is not None:
            conn.close()
            self._local.connection = None

    def reset_db(self) -> None:
        """Reset database (for testing). Drops all tables."""
        with self._init_lock:
            with self.get_db() as conn:
                conn.execute("DROP TABLE IF EXISTS billing_events")
                conn.execute("DROP TABLE IF EXISTS accounts")
            self._initialized = False
