# persistence/usage.py
"""
SQLite-backed usage store.

Compare-and-set is applied with a version column:
- first write for a period inserts version 1 (a duplicate insert loses)
- later writes update only if the stored version still matches
- several records (month + day) are written in one transaction, all or
  nothing
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timezone
from typing import Optional, Sequence, Tuple

from entitlements.ledger import LedgerUnavailableError, UsageRecord, UsageStore
from persistence.db import get_db, init_db

_logger = logging.getLogger(__name__)


class _VersionConflict(Exception):
    """A compare-and-set entry lost; the transaction is rolled back."""
    pass


class SqliteUsageStore(UsageStore):
    """UsageStore over the shared SQLite database."""

    def __init__(self):
        init_db()

    def load(self, account_id: str, period_key: str) -> Optional[UsageRecord]:
        try:
            with get_db() as conn:
                row = conn.execute(
                    """
                    SELECT account_id, period_key, renders_used, minutes_used, version
                    FROM usage_records
                    WHERE account_id = ? AND period_key = ?
                    """,
                    (account_id, period_key),
                ).fetchone()
        except sqlite3.Error as e:
            _logger.error(f"Usage read failed for {account_id}/{period_key}: {e}")
            raise LedgerUnavailableError(f"Usage storage unavailable: {e}") from e

        if row is None:
            return None

        return UsageRecord(
            account_id=row["account_id"],
            period_key=row["period_key"],
            renders_used=row["renders_used"],
            minutes_used=row["minutes_used"],
            version=row["version"],
        )

    def compare_and_set_many(self, entries: Sequence[Tuple[UsageRecord, int]]) -> bool:
        now = datetime.now(timezone.utc).isoformat()
        try:
            with get_db() as conn:
                for record, expected_version in entries:
                    if not self._write(conn, record, expected_version, now):
                        # Raising inside get_db() rolls back earlier entries
                        raise _VersionConflict()
        except _VersionConflict:
            return False
        except sqlite3.Error as e:
            keys = ", ".join(f"{r.account_id}/{r.period_key}" for r, _ in entries)
            _logger.error(f"Usage write failed for {keys}: {e}")
            raise LedgerUnavailableError(f"Usage storage unavailable: {e}") from e
        return True

    @staticmethod
    def _write(
        conn: sqlite3.Connection,
        record: UsageRecord,
        expected_version: int,
        now: str,
    ) -> bool:
        if expected_version == 0:
            cursor = conn.execute(
                """
                INSERT OR IGNORE INTO usage_records
                    (account_id, period_key, renders_used, minutes_used,
                     version, created_at, updated_at)
                VALUES (?, ?, ?, ?, 1, ?, ?)
                """,
                (
                    record.account_id,
                    record.period_key,
                    record.renders_used,
                    record.minutes_used,
                    now,
                    now,
                ),
            )
        else:
            cursor = conn.execute(
                """
                UPDATE usage_records
                SET renders_used = ?, minutes_used = ?, version = version + 1,
                    updated_at = ?
                WHERE account_id = ? AND period_key = ? AND version = ?
                """,
                (
                    record.renders_used,
                    record.minutes_used,
                    now,
                    record.account_id,
                    record.period_key,
                    expected_version,
                ),
            )
        return cursor.rowcount == 1


def get_usage_history(account_id: str, limit: int = 12) -> list[UsageRecord]:
    """Most recent period records for an account, newest first."""
    init_db()

    with get_db() as conn:
        rows = conn.execute(
            """
            SELECT account_id, period_key, renders_used, minutes_used, version
            FROM usage_records
            WHERE account_id = ? AND length(period_key) = 7
            ORDER BY period_key DESC
            LIMIT ?
            """,
            (account_id, limit),
        ).fetchall()

    return [
        UsageRecord(
            account_id=row["account_id"],
            period_key=row["period_key"],
            renders_used=row["renders_used"],
            minutes_used=row["minutes_used"],
            version=row["version"],
        )
        for row in rows
    ]
