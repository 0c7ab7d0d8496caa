# persistence/tests/test_persistence.py
"""
Tests for the SQLite persistence layer.

Tests:
- Schema initialization (idempotent, WAL journal)
- Commit / rollback semantics of get_db
- sqlite3 errors surfacing as StorageError
- Thread-local connections
"""

from __future__ import annotations

import threading

import pytest

from persistence.db import Database, StorageError


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def db(tmp_path):
    database = Database(tmp_path / "nested" / "test.db")
    yield database
    database.close_db()


def table_names(db):
    with db.get_db() as conn:
        rows = conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'").fetchall()
    return {row["name"] for row in rows}


# =============================================================================
# Schema Tests
# =============================================================================


class TestInitDb:
    """Tests for init_db."""

    def test_creates_tables_and_parent_dir(self, db):
        db.init_db()

        assert db.path.exists()
        assert {"accounts", "billing_events"} <= table_names(db)

    def test_idempotent(self, db):
        db.init_db()
        db.init_db()

        assert "accounts" in table_names(db)

    def test_wal_journal(self, db):
        db.init_db()

        with db.get_db() as conn:
            mode = conn.execute("PRAGMA journal_mode").fetchone()[0]

        assert mode.lower() == "wal"

    def test_usage_count_cannot_go_negative(self, db):
        db.init_db()

        with pytest.raises(StorageError):
            with db.get_db() as conn:
                conn.execute(
                    "INSERT INTO accounts (user_id, usage_count, created_at, updated_at) "
                    "VALUES ('u1', -1, 'now', 'now')"
                )

    def test_reset_db_drops_tables(self, db):
        db.init_db()
        db.reset_db()

        assert "accounts" not in table_names(db)

        db.init_db()
        assert "accounts" in table_names(db)


# =============================================================================
# Transaction Tests
# =============================================================================


class TestGetDb:
    """Tests for the get_db context manager."""

    def test_commits_on_success(self, db):
        db.init_db()

        with db.get_db() as conn:
            conn.execute(
                "INSERT INTO accounts (user_id, created_at, updated_at) VALUES ('u1', 'now', 'now')"
            )

        db.close_db()
        with db.get_db() as conn:
            row = conn.execute("SELECT tier, usage_count FROM accounts WHERE user_id = 'u1'").fetchone()

        assert row["tier"] == "FREEMIUM"
        assert row["usage_count"] == 0

    def test_rolls_back_on_error(self, db):
        db.init_db()

        with pytest.raises(RuntimeError):
            with db.get_db() as conn:
                conn.execute(
                    "INSERT INTO accounts (user_id, created_at, updated_at) VALUES ('u1', 'now', 'now')"
                )
                raise RuntimeError("abort")

        with db.get_db() as conn:
            count = conn.execute("SELECT COUNT(*) FROM accounts").fetchone()[0]

        assert count == 0

    def test_sql_error_is_storage_error(self, db):
        db.init_db()

        with pytest.raises(StorageError):
            with db.get_db() as conn:
                conn.execute("SELECT * FROM no_such_table")

    def test_unopenable_path(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("")
        database = Database(blocker / "db.sqlite")

        with pytest.raises(StorageError):
            database.init_db()


class TestConnections:
    """Tests for thread-local connections."""

    def test_same_thread_reuses_connection(self, db):
        assert db._get_connection() is db._get_connection()

    def test_threads_get_their_own_connection(self, db):
        main = db._get_connection()
        other = []

        def worker():
            other.append(db._get_connection())
            db.close_db()

        thread = threading.Thread(target=worker)
        thread.start()
        thread.join()

        assert other[0] is not main
