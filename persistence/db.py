# persistence/db.py
"""
SQLite database connection and schema management.

Stores usage counters and founder seat purchases. Uses a file-based
SQLite database; point PLANS_DB_PATH at a persistent volume in production.
"""

from __future__ import annotations

import logging
import os
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path

_logger = logging.getLogger(__name__)

# Database file location (configurable via env var)
DEFAULT_DB_PATH = Path(__file__).parent.parent / "data" / "plans.db"
DB_PATH = Path(os.environ.get("PLANS_DB_PATH", str(DEFAULT_DB_PATH)))

# One connection per thread
_local = threading.local()
_init_lock = threading.Lock()
_initialized = False


def _get_connection() -> sqlite3.Connection:
    """Get thread-local database connection."""
    if not hasattr(_local, "connection") or _local.connection is None:
        DB_PATH.parent.mkdir(parents=True, exist_ok=True)

        conn = sqlite3.connect(
            str(DB_PATH),
            timeout=30.0,
            check_same_thread=False,
        )
        conn.row_factory = sqlite3.Row
        _local.connection = conn

    return _local.connection


@contextmanager
def get_db():
    """
    Get database connection context manager.

    Commits on success, rolls back on any exception.

    Usage:
        with get_db() as conn:
            cursor = conn.execute("SELECT ...")
    """
    conn = _get_connection()
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise


def init_db() -> None:
    """
    Initialize database schema.

    Creates tables if they don't exist. Safe to call multiple times.
    """
    global _initialized

    with _init_lock:
        if _initialized:
            return

        with get_db() as conn:
            # Usage counters, one row per (account, period)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS usage_records (
                    account_id TEXT NOT NULL,
                    period_key TEXT NOT NULL,
                    renders_used INTEGER NOT NULL DEFAULT 0,
                    minutes_used REAL NOT NULL DEFAULT 0,
                    version INTEGER NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    PRIMARY KEY (account_id, period_key)
                )
            """)

            # Founder lifetime seats
            conn.execute("""
                CREATE TABLE IF NOT EXISTS founder_purchases (
                    account_id TEXT PRIMARY KEY,
                    purchased_at TEXT NOT NULL
                )
            """)

            _logger.info(f"Database initialized at {DB_PATH}")
            _initialized = True


def close_db() -> None:
    """Close thread-local database connection."""
    if hasattr(_local, "connection") and _local.connection is not None:
        _local.connection.close()
        _local.connection = None


def reset_db() -> None:
    """Reset database (for testing). Drops all tables."""
    global _initialized

    with _init_lock:
        with get_db() as conn:
            conn.execute("DROP TABLE IF EXISTS founder_purchases")
            conn.execute("DROP TABLE IF EXISTS usage_records")
        _initialized = False


def get_db_path() -> Path:
    """Get the database file path."""
    return DB_PATH
