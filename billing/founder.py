# billing/founder.py
"""
Founder seat availability.

Founder is a limited run of lifetime seats. The cap comes from
FOUNDER_MAX_PURCHASES (see app.config); sales are counted in the
persistence layer.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from persistence import founder as founder_store

DEFAULT_FOUNDER_MAX_PURCHASES = 100


@dataclass(frozen=True)
class FounderAvailability:
    """Founder seats left for sale."""
    max_purchases: int
    purchased_count: int

    @property
    def remaining(self) -> int:
        return max(0, self.max_purchases - self.purchased_count)

    @property
    def sold_out(self) -> bool:
        return self.remaining == 0

    def to_dict(self) -> dict:
        return {
            "maxPurchases": self.max_purchases,
            "purchasedCount": self.purchased_count,
            "remaining": self.remaining,
            "soldOut": self.sold_out,
        }


def get_founder_max_purchases() -> int:
    """Founder seat cap from environment."""
    raw = os.environ.get("FOUNDER_MAX_PURCHASES", "")
    try:
        value = int(raw)
    except ValueError:
        return DEFAULT_FOUNDER_MAX_PURCHASES
    return max(0, value)


def get_founder_availability(max_purchases: Optional[int] = None) -> FounderAvailability:
    """Current founder availability."""
    if max_purchases is None:
        max_purchases = get_founder_max_purchases()
    return FounderAvailability(
        max_purchases=max_purchases,
        purchased_count=founder_store.count_purchases(),
    )


def record_founder_purchase(account_id: str) -> bool:
    """Record a founder seat for an account. Idempotent per account."""
    return founder_store.record_purchase(account_id)


def has_founder_seat(account_id: str) -> bool:
    """Whether an account already owns a founder seat."""
    return founder_store.has_purchased(account_id)
