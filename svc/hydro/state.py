from __future__ import annotations
import os
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Iterator, List, Optional
from .config import DB_FILE
from .errors import StoreError
from .models import SensorReading


def _ensure_dirs() -> None:
    d = os.path.dirname(DB_FILE)
    if d:
        os.makedirs(d, exist_ok=True)


@contextmanager
def _db_connection(row_factory: Optional[Callable[[sqlite3.Cursor, tuple], Any]] = None) -> Iterator[sqlite3.Connection]:
    """
    Context manager for database connections.

    Automatically handles:
    - Connection creation and cleanup
    - Transaction commit on success
    - Transaction rollback on error
    - Translating sqlite3 errors into StoreError

    Args:
        row_factory: Optional row factory (e.g., sqlite3.Row) to set on connection
    """
    try:
        _ensure_dirs()
        conn = sqlite3.connect(DB_FILE)
    except (sqlite3.Error, OSError) as e:
        raise StoreError(f"cannot open reading store: {e}") from e
    if row_factory:
        conn.row_factory = row_factory
    try:
        yield conn
        conn.commit()
    except sqlite3.Error as e:
        conn.rollback()
        raise StoreError(str(e)) from e
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def _ensure_readings_db() -> None:
    """Create the SQLite table for sensor readings if it does not exist."""
    with _db_connection() as conn:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS sensor_readings (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                ts REAL NOT NULL,
                temperature REAL NOT NULL,
                ph REAL NOT NULL,
                ec REAL NOT NULL,
                water_level REAL NOT NULL
            )
            """
        )
        conn.execute("CREATE INDEX IF NOT EXISTS idx_sensor_readings_ts ON sensor_readings (ts)")


def initialize_database() -> None:
    """
    Open the store and create tables once at application startup.

    Raises StoreError if the database cannot be opened; callers treat that as fatal.
    """
    _ensure_readings_db()


def _to_ts(value: datetime) -> float:
    return value.timestamp()


def _from_ts(ts: float) -> datetime:
    return datetime.fromtimestamp(ts, tz=timezone.utc)


def _row_to_reading(row: sqlite3.Row) -> SensorReading:
    return SensorReading(
        id=row["id"],
        temperature=row["temperature"],
        ph=row["ph"],
        ec=row["ec"],
        waterLevel=row["water_level"],
        timestamp=_from_ts(row["ts"]),
    )


def insert_reading(temperature: float, ph: float, ec: float, water_level: float, timestamp: datetime) -> SensorReading:
    """Append a reading and return it as stored (with its row id)."""
    with _db_connection() as conn:
        cur = conn.execute(
            """
            INSERT INTO sensor_readings (ts, temperature, ph, ec, water_level)
            VALUES (?, ?, ?, ?, ?)
            """,
            (_to_ts(timestamp), temperature, ph, ec, water_level),
        )
        row_id = cur.lastrowid

    return SensorReading(
        id=row_id,
        temperature=temperature,
        ph=ph,
        ec=ec,
        waterLevel=water_level,
        timestamp=_from_ts(_to_ts(timestamp)),
    )


def fetch_latest_reading() -> Optional[SensorReading]:
    """Most recent reading by timestamp, ties going to the last inserted row. None if empty."""
    with _db_connection(row_factory=sqlite3.Row) as conn:
        row = conn.execute(
            """
            SELECT id, ts, temperature, ph, ec, water_level
            FROM sensor_readings
            ORDER BY ts DESC, id DESC
            LIMIT 1
            """
        ).fetchone()
    return _row_to_reading(row) if row is not None else None


def fetch_readings_since(since: datetime) -> List[SensorReading]:
    """Readings with timestamp >= since, oldest first."""
    with _db_connection(row_factory=sqlite3.Row) as conn:
        rows = conn.execute(
            """
            SELECT id, ts, temperature, ph, ec, water_level
            FROM sensor_readings
            WHERE ts >= ?
            ORDER BY ts ASC, id ASC
            """,
            (_to_ts(since),),
        ).fetchall()
    return [_row_to_reading(r) for r in rows]


def count_readings() -> int:
    with _db_connection() as conn:
        return conn.execute("SELECT COUNT(*) FROM sensor_readings").fetchone()[0]

