# entitlements/tiers.py
"""
Subscription tiers and the single tier ordering.

Ordinary tiers form a strict ladder: free < starter < creator < studio.
Founder is a lifetime tier that carries studio capabilities but is never
part of the upgrade ladder, so it is never recommended as an upgrade target
and a founder account is never asked to upgrade.

Every "does tier A satisfy tier B" question goes through tier_rank().
"""
from __future__ import annotations

import logging
from enum import Enum
from typing import Optional, Tuple, Union

_logger = logging.getLogger(__name__)


class Tier(str, Enum):
    """Subscription tiers."""
    FREE = "free"
    STARTER = "starter"
    CREATOR = "creator"
    STUDIO = "studio"
    FOUNDER = "founder"


# Upgrade ladder, lowest first. Founder is deliberately absent.
LADDER: Tuple[Tier, ...] = (Tier.FREE, Tier.STARTER, Tier.CREATOR, Tier.STUDIO)

TOP_LADDER_TIER = LADDER[-1]

# Founder ranks alongside the top of the ladder for capability comparisons.
_FOUNDER_RANK = LADDER.index(TOP_LADDER_TIER)


def parse_tier(value: Optional[Union[str, Tier]]) -> Tier:
    """
    Parse a tier string to the Tier enum.

    Malformed or unknown values (corrupted records, stale clients) are
    normalized to FREE. This never raises.
    """
    if isinstance(value, Tier):
        return value
    if not isinstance(value, str):
        return Tier.FREE

    try:
        return Tier(value.strip().lower())
    except ValueError:
        _logger.debug(f"Unknown tier value {value!r}; normalizing to free")
        return Tier.FREE


def is_ladder_tier(tier: Tier) -> bool:
    """True for tiers that can appear as an upgrade recommendation."""
    return tier is not Tier.FOUNDER


def tier_rank(tier: Tier) -> int:
    """
    Rank of a tier for capability comparisons.

    Founder shares the rank of the top ladder tier; it is never placed
    above it on the ladder.
    """
    if tier is Tier.FOUNDER:
        return _FOUNDER_RANK
    return LADDER.index(tier)


def compare_tiers(a: Tier, b: Tier) -> int:
    """Return -1, 0 or 1 as tier a ranks below, level with, or above tier b."""
    rank_a, rank_b = tier_rank(a), tier_rank(b)
    return (rank_a > rank_b) - (rank_a < rank_b)


def tier_satisfies(actual: Tier, required: Tier) -> bool:
    """True if an account on `actual` already has everything `required` grants."""
    return compare_tiers(actual, required) >= 0


def tiers_above(tier: Tier) -> Tuple[Tier, ...]:
    """Ladder tiers ranked strictly above `tier` (empty for founder)."""
    if tier is Tier.FOUNDER:
        return ()
    return tuple(t for t in LADDER if compare_tiers(t, tier) > 0)
