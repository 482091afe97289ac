# persistence/founder.py
"""
Founder seat purchases.

One row per account; recording a purchase twice is a no-op.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from persistence.db import get_db, init_db

_logger = logging.getLogger(__name__)


def record_purchase(account_id: str) -> bool:
    """
    Record a founder seat purchase.

    Returns:
        True if this call created the purchase, False if it already existed
    """
    init_db()

    with get_db() as conn:
        cursor = conn.execute(
            """
            INSERT OR IGNORE INTO founder_purchases (account_id, purchased_at)
            VALUES (?, ?)
            """,
            (account_id, datetime.now(timezone.utc).isoformat()),
        )
        created = cursor.rowcount == 1

    if created:
        _logger.info(f"Founder seat purchased by {account_id}")
    return created


def count_purchases() -> int:
    """Number of founder seats sold."""
    init_db()

    with get_db() as conn:
        row = conn.execute("SELECT COUNT(*) AS n FROM founder_purchases").fetchone()
    return row["n"]


def has_purchased(account_id: str) -> bool:
    """Whether an account already owns a founder seat."""
    init_db()

    with get_db() as conn:
        row = conn.execute(
            "SELECT 1 FROM founder_purchases WHERE account_id = ?",
            (account_id,),
        ).fetchone()
    return row is not None
