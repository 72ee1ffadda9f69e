"""
Tests for the SQLite reading store.

Tests cover:
- Database context manager (commit, rollback, error translation)
- Store initialisation
- Appending readings and reading them back by recency and time range
"""
import sqlite3
from datetime import datetime, timedelta, timezone

import pytest

from hydro.errors import StoreError
from hydro.state import (
    _db_connection,
    _ensure_readings_db,
    count_readings,
    fetch_latest_reading,
    fetch_readings_since,
    initialize_database,
    insert_reading,
)

T0 = datetime(2026, 10, 19, 8, 0, tzinfo=timezone.utc)


def _insert(ts: datetime, level: float = 50.0):
    return insert_reading(24.0, 6.1, 1.7, level, ts)


class TestDatabaseContextManager:
    """Tests for the _db_connection context manager."""

    def test_context_manager_commits_on_success(self, temp_db):
        _ensure_readings_db()

        with _db_connection() as conn:
            conn.execute(
                "INSERT INTO sensor_readings (ts, temperature, ph, ec, water_level) VALUES (?, ?, ?, ?, ?)",
                (T0.timestamp(), 24.0, 6.0, 1.5, 80.0),
            )

        assert count_readings() == 1

    def test_context_manager_rolls_back_on_error(self, temp_db):
        _ensure_readings_db()

        with pytest.raises(ValueError):
            with _db_connection() as conn:
                conn.execute(
                    "INSERT INTO sensor_readings (ts, temperature, ph, ec, water_level) VALUES (?, ?, ?, ?, ?)",
                    (T0.timestamp(), 24.0, 6.0, 1.5, 80.0),
                )
                raise ValueError("Test error")

        assert count_readings() == 0

    def test_sqlite_errors_become_store_errors(self, temp_db):
        with pytest.raises(StoreError):
            with _db_connection() as conn:
                conn.execute("SELECT * FROM no_such_table")

    def test_context_manager_with_row_factory(self, temp_db):
        _ensure_readings_db()
        _insert(T0)

        with _db_connection(row_factory=sqlite3.Row) as conn:
            rows = conn.execute("SELECT * FROM sensor_readings").fetchall()
        assert len(rows) == 1
        assert rows[0]["water_level"] == 50.0

    def test_unopenable_store_raises_store_error(self, tmp_path, monkeypatch):
        # a directory cannot be opened as a database file
        monkeypatch.setattr("hydro.state.DB_FILE", str(tmp_path))
        with pytest.raises(StoreError):
            initialize_database()


class TestDatabaseInitialization:
    def test_initialize_creates_table(self, temp_db):
        initialize_database()

        with _db_connection() as conn:
            cursor = conn.execute(
                "SELECT name FROM sqlite_master WHERE type='table' AND name='sensor_readings'"
            )
            assert cursor.fetchone() is not None

            cursor = conn.execute("PRAGMA table_info(sensor_readings)")
            columns = {row[1] for row in cursor.fetchall()}
        assert columns == {"id", "ts", "temperature", "ph", "ec", "water_level"}

    def test_initialize_is_idempotent(self, temp_db):
        initialize_database()
        _insert(T0)
        initialize_database()
        assert count_readings() == 1


class TestReadingOperations:
    def test_insert_returns_stored_record(self, temp_db):
        initialize_database()
        stored = insert_reading(25.2, 6.4, 2.0, 90.0, T0)

        assert stored.id == 1
        assert stored.temperature == 25.2
        assert stored.ph == 6.4
        assert stored.ec == 2.0
        assert stored.waterLevel == 90.0
        assert stored.timestamp == T0

    def test_latest_is_none_when_empty(self, temp_db):
        initialize_database()
        assert fetch_latest_reading() is None

    def test_latest_orders_by_timestamp_not_insertion(self, temp_db):
        initialize_database()
        _insert(T0 + timedelta(minutes=5), level=60)
        _insert(T0, level=40)

        latest = fetch_latest_reading()
        assert latest is not None
        assert latest.waterLevel == 60

    def test_latest_tie_goes_to_last_inserted(self, temp_db):
        initialize_database()
        _insert(T0, level=10)
        second = _insert(T0, level=20)

        assert fetch_latest_reading() == second

    def test_fetch_since_filters_and_sorts_ascending(self, temp_db):
        initialize_database()
        for minutes in (30, -90, 0, 10):
            _insert(T0 + timedelta(minutes=minutes), level=float(abs(minutes)))

        rows = fetch_readings_since(T0)
        stamps = [r.timestamp for r in rows]
        assert stamps == sorted(stamps)
        assert len(rows) == 3
        # the boundary itself is included
        assert rows[0].timestamp == T0

    def test_readings_are_appended_not_replaced(self, temp_db):
        initialize_database()
        for _ in range(5):
            _insert(T0)
        assert count_readings() == 5
        assert [r.id for r in fetch_readings_since(T0 - timedelta(days=1))] == [1, 2, 3, 4, 5]
