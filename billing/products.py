# billing/products.py
"""
Stripe product and price configuration.

Products:
- STARTER / CREATOR / STUDIO monthly and annual subscriptions
- FOUNDER one-time lifetime purchase (no recurring interval)

Price IDs are set via environment variables so test and production
Stripe accounts can differ:
- STRIPE_PRICE_ID_STARTER, STRIPE_PRICE_ID_STARTER_ANNUAL
- STRIPE_PRICE_ID_CREATOR, STRIPE_PRICE_ID_CREATOR_ANNUAL
- STRIPE_PRICE_ID_STUDIO, STRIPE_PRICE_ID_STUDIO_ANNUAL
- STRIPE_PRICE_ID_FOUNDER

An unset variable means the plan is not purchasable; lookups return ""
rather than failing so checkout can show an "unavailable" state.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from entitlements.tiers import Tier, parse_tier

_logger = logging.getLogger(__name__)


class BillingInterval(str, Enum):
    """Checkout billing cadence."""
    MONTHLY = "monthly"
    ANNUAL = "annual"
    LIFETIME = "lifetime"


@dataclass(frozen=True)
class Plan:
    """Purchasable plan configuration."""
    name: str
    tier: Tier
    interval: BillingInterval
    price_id: str
    amount_cents: int  # For display purposes
    currency: str = "usd"

    @property
    def one_time(self) -> bool:
        return self.interval == BillingInterval.LIFETIME


# List prices in USD per month (founder is a one-time price)
LIST_PRICES_USD = {
    Tier.FREE: 0,
    Tier.STARTER: 9,
    Tier.CREATOR: 29,
    Tier.STUDIO: 99,
    Tier.FOUNDER: 149,
}

# (tier, interval) -> environment variable holding the Stripe price ID
PRICE_ENV_VARS = {
    (Tier.STARTER, BillingInterval.MONTHLY): "STRIPE_PRICE_ID_STARTER",
    (Tier.CREATOR, BillingInterval.MONTHLY): "STRIPE_PRICE_ID_CREATOR",
    (Tier.STUDIO, BillingInterval.MONTHLY): "STRIPE_PRICE_ID_STUDIO",
    (Tier.STARTER, BillingInterval.ANNUAL): "STRIPE_PRICE_ID_STARTER_ANNUAL",
    (Tier.CREATOR, BillingInterval.ANNUAL): "STRIPE_PRICE_ID_CREATOR_ANNUAL",
    (Tier.STUDIO, BillingInterval.ANNUAL): "STRIPE_PRICE_ID_STUDIO_ANNUAL",
    # Founder is one-time: the monthly toggle on the pricing page still
    # sells the lifetime seat, the annual toggle does not.
    (Tier.FOUNDER, BillingInterval.MONTHLY): "STRIPE_PRICE_ID_FOUNDER",
    (Tier.FOUNDER, BillingInterval.LIFETIME): "STRIPE_PRICE_ID_FOUNDER",
}

# Default tier when a subscription ends
DEFAULT_TIER = Tier.FREE


def parse_interval(value: Optional[Union[str, BillingInterval]]) -> Optional[BillingInterval]:
    """Parse an interval string; None for unknown values."""
    if isinstance(value, BillingInterval):
        return value
    try:
        return BillingInterval((value or "").strip().lower())
    except ValueError:
        return None


def price_id_for(
    tier: Union[str, Tier],
    interval: Union[str, BillingInterval] = BillingInterval.MONTHLY,
) -> str:
    """
    Stripe price ID for a tier and billing interval.

    Returns "" for the free tier, for founder under the annual interval,
    and for any unknown or unconfigured combination.
    """
    tier = parse_tier(tier)
    parsed_interval = parse_interval(interval)
    if tier is Tier.FREE or parsed_interval is None:
        return ""

    env_var = PRICE_ENV_VARS.get((tier, parsed_interval))
    if env_var is None:
        return ""
    return os.environ.get(env_var, "").strip()


def get_plan_for_tier(
    tier: Union[str, Tier],
    interval: Union[str, BillingInterval] = BillingInterval.MONTHLY,
) -> Optional[Plan]:
    """Plan configuration for a tier, or None if it cannot be purchased."""
    tier = parse_tier(tier)
    price_id = price_id_for(tier, interval)
    if not price_id:
        return None

    parsed_interval = parse_interval(interval)
    if tier is Tier.FOUNDER:
        parsed_interval = BillingInterval.LIFETIME
        amount = LIST_PRICES_USD[tier] * 100
    elif parsed_interval == BillingInterval.ANNUAL:
        amount = LIST_PRICES_USD[tier] * 12 * 100
    else:
        amount = LIST_PRICES_USD[tier] * 100

    return Plan(
        name=f"AutoEditor {tier.value.capitalize()}",
        tier=tier,
        interval=parsed_interval,
        price_id=price_id,
        amount_cents=amount,
    )


def tier_from_price_id(price_id: str) -> Optional[Tier]:
    """
    Determine tier from a Stripe price ID.

    Returns:
        Tier or None if not a known price
    """
    if not price_id:
        return None
    for (tier, _interval), env_var in PRICE_ENV_VARS.items():
        if os.environ.get(env_var, "").strip() == price_id:
            return tier
    return None
