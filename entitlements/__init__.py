# entitlements/__init__.py
"""
Plan entitlement and usage quota engine.

Provides:
- Tier catalog and the single tier ordering
- Feature resolution with grant-only overrides
- Usage ledger with implicit period rollover
- Quota enforcement with minimal upgrade recommendations
- Quality / preset / auto-zoom clamping
"""

from entitlements.tiers import Tier, LADDER, parse_tier, compare_tiers, tier_satisfies
from entitlements.catalog import (
    AllPresets,
    CapabilitySet,
    CatalogError,
    ExplicitPresets,
    PresetDefinition,
    Quality,
    TierCatalog,
    build_default_catalog,
)
from entitlements.resolver import FeatureOverrides, FeatureResolver, ResolvedFeatures
from entitlements.ledger import (
    InMemoryUsageStore,
    InvalidUsageDelta,
    LedgerUnavailableError,
    PeriodKind,
    UsageLedger,
    UsageRecord,
    UsageStore,
    current_period_key,
)
from entitlements.enforcer import QuotaEnforcer, Reason, RequestedOperation, UpgradeDecision
from entitlements.clamp import clamp_quality, is_preset_allowed, normalize_quality

__all__ = [
    "Tier",
    "LADDER",
    "parse_tier",
    "compare_tiers",
    "tier_satisfies",
    "AllPresets",
    "CapabilitySet",
    "CatalogError",
    "ExplicitPresets",
    "PresetDefinition",
    "Quality",
    "TierCatalog",
    "build_default_catalog",
    "FeatureOverrides",
    "FeatureResolver",
    "ResolvedFeatures",
    "InMemoryUsageStore",
    "InvalidUsageDelta",
    "LedgerUnavailableError",
    "PeriodKind",
    "UsageLedger",
    "UsageRecord",
    "UsageStore",
    "current_period_key",
    "QuotaEnforcer",
    "Reason",
    "RequestedOperation",
    "UpgradeDecision",
    "clamp_quality",
    "is_preset_allowed",
    "normalize_quality",
]
