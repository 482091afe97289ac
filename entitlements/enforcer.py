# entitlements/enforcer.py
"""
Quota enforcement and upgrade-path decisions.

check() answers "may this account do this now?" with an UpgradeDecision:
either allowed, or the minimal tier that would allow it and why.

Order of checks (first failure wins):
1. capability gates: quality, subtitle preset, auto-zoom, advanced effects
2. monthly render quota
3. daily render quota (only tiers that define one)
4. monthly minutes quota

Capability gates come first so that an account on the wrong plan is
offered the plan that unlocks the feature, not a quota message for an
operation it could never perform.

consume() records the cost only if the usage it decided on is still
unchanged in the store; otherwise it reads usage again and re-decides.

Quota exhaustion and locked capabilities are decisions, not errors.
Storage faults raise LedgerUnavailableError and the caller must deny.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Optional

from entitlements.catalog import CapabilitySet, Quality, TierCatalog
from entitlements.ledger import (
    Clock,
    LedgerConflictError,
    PeriodKind,
    UsageLedger,
    UsageRecord,
    current_period_key,
    validate_delta,
)
from entitlements.resolver import FeatureOverrides, FeatureResolver, ResolvedFeatures
from entitlements.tiers import TOP_LADDER_TIER, Tier, compare_tiers, tiers_above

_logger = logging.getLogger(__name__)

# Auto-zoom comparisons are made at this precision to avoid float artefacts.
_ZOOM_PRECISION = 4


class Reason(str, Enum):
    """Machine-readable reason for an upgrade decision."""
    QUALITY_ABOVE_CEILING = "quality_above_ceiling"
    PRESET_NOT_INCLUDED = "preset_not_included"
    AUTO_ZOOM_ABOVE_CEILING = "auto_zoom_above_ceiling"
    ADVANCED_EFFECT_LOCKED = "advanced_effect_locked"
    RENDER_QUOTA_EXHAUSTED = "render_quota_exhausted"
    MINUTES_QUOTA_EXHAUSTED = "minutes_quota_exhausted"


# =============================================================================
# Request / Decision
# =============================================================================


@dataclass(frozen=True)
class RequestedOperation:
    """
    What the caller wants to do.

    A zero cost is a pure capability check (e.g. toggling a setting).
    """
    quality: Optional[Quality] = None
    preset_id: Optional[str] = None
    auto_zoom: Optional[float] = None
    advanced_effects: bool = False
    renders: int = 0
    minutes: float = 0.0

    def __post_init__(self):
        validate_delta(self.renders, self.minutes)

    @property
    def has_cost(self) -> bool:
        return self.renders > 0 or self.minutes > 0


@dataclass(frozen=True)
class UpgradeDecision:
    """
    Result of a check.

    Attributes:
        allowed: True if the operation may proceed
        required_tier: Minimal tier that would allow it (None when allowed)
        reason: Why it was refused
        period: Which window ran out, for quota reasons
        limit: The exhausted quota, for quota reasons
        used: Usage in that window before this operation
        upgradable: False when no upgrade would help
    """
    allowed: bool
    required_tier: Optional[Tier] = None
    reason: Optional[Reason] = None
    period: Optional[PeriodKind] = None
    limit: Optional[float] = None
    used: Optional[float] = None
    upgradable: bool = False

    @classmethod
    def allow(cls) -> "UpgradeDecision":
        return cls(allowed=True)

    def to_dict(self) -> dict:
        if self.allowed:
            return {"allowed": True}
        return {
            "allowed": False,
            "requiredPlan": self.required_tier.value if self.required_tier else None,
            "reason": self.reason.value if self.reason else None,
            "period": self.period.value if self.period else None,
            "limit": self.limit,
            "used": self.used,
            "upgradable": self.upgradable,
        }


# =============================================================================
# Usage Summary
# =============================================================================


@dataclass(frozen=True)
class UsageSummary:
    """Display snapshot of an account's usage. May be slightly stale."""
    features: ResolvedFeatures
    monthly: UsageRecord
    daily: Optional[UsageRecord]

    @property
    def renders_remaining(self) -> Optional[int]:
        limit = self.features.max_renders_per_month
        if limit is None:
            return None
        return max(0, limit - self.monthly.renders_used)

    @property
    def renders_remaining_today(self) -> Optional[int]:
        limit = self.features.max_renders_per_day
        if limit is None or self.daily is None:
            return None
        return max(0, limit - self.daily.renders_used)

    @property
    def minutes_remaining(self) -> Optional[float]:
        limit = self.features.max_minutes_per_month
        if limit is None:
            return None
        return max(0.0, limit - self.monthly.minutes_used)

    def to_dict(self) -> dict:
        usage_daily = None
        if self.daily is not None:
            usage_daily = {
                "day": self.daily.period_key,
                "rendersUsed": self.daily.renders_used,
                "rendersLimit": self.features.max_renders_per_day,
                "rendersRemaining": self.renders_remaining_today,
            }
        return {
            "usage": {
                "month": self.monthly.period_key,
                "rendersUsed": self.monthly.renders_used,
                "minutesUsed": round(self.monthly.minutes_used, 3),
                "rendersRemaining": self.renders_remaining,
                "minutesRemaining": self.minutes_remaining,
            },
            "usageDaily": usage_daily,
            "limits": {
                "maxRendersPerMonth": self.features.max_renders_per_month,
                "maxRendersPerDay": self.features.max_renders_per_day,
                "maxMinutesPerMonth": self.features.max_minutes_per_month,
                "exportQuality": self.features.max_quality.value,
                "watermark": self.features.watermark,
                "priority": self.features.queue_priority == "priority",
            },
        }


# =============================================================================
# Enforcer
# =============================================================================


def _fits(quota: Optional[float], needed: float) -> bool:
    return quota is None or needed <= quota


@dataclass(frozen=True)
class _Evaluation:
    """A decision plus the usage records it was made against."""
    decision: UpgradeDecision
    monthly: Optional[UsageRecord] = None
    daily: Optional[UsageRecord] = None


class QuotaEnforcer:
    """
    Decides whether an account may perform an operation.

    The catalog and ledger are injected; the clock defaults to the
    ledger's so that every period key in one decision comes from a
    single clock read.
    """

    def __init__(
        self,
        catalog: TierCatalog,
        ledger: UsageLedger,
        clock: Optional[Clock] = None,
    ):
        self._catalog = catalog
        self._resolver = FeatureResolver(catalog)
        self._ledger = ledger
        self._clock = clock or ledger.clock

    @property
    def catalog(self) -> TierCatalog:
        return self._catalog

    @property
    def resolver(self) -> FeatureResolver:
        return self._resolver

    @property
    def ledger(self) -> UsageLedger:
        return self._ledger

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def check(
        self,
        account_id: str,
        tier: Tier,
        operation: RequestedOperation,
        overrides: Optional[FeatureOverrides] = None,
    ) -> UpgradeDecision:
        """
        Decide without recording usage.

        Raises:
            LedgerUnavailableError: If usage cannot be read
        """
        return self._decide(account_id, tier, operation, overrides, self._clock())

    def consume(
        self,
        account_id: str,
        tier: Tier,
        operation: RequestedOperation,
        overrides: Optional[FeatureOverrides] = None,
    ) -> UpgradeDecision:
        """
        Decide and, if allowed, record the operation's cost.

        The cost is written with compare-and-set against the exact usage
        records the decision read (monthly, plus daily for tiers with a
        daily cap) in one atomic write. If another writer, in this process
        or another, changed them in between, usage is re-read and the
        decision is made again. Two concurrent consumers therefore cannot
        both spend the last unit of a quota, and a failed write leaves no
        partial charge.

        Raises:
            LedgerUnavailableError: If usage cannot be read or written
            LedgerConflictError: If the write kept losing to other writers
        """
        now = self._clock()
        month_key = current_period_key(PeriodKind.MONTHLY, now)
        day_key = current_period_key(PeriodKind.DAILY, now)
        caps = self._resolver.effective_capabilities(tier, overrides)

        with self._ledger.account_lock(account_id):
            for attempt in range(1, self._ledger.max_retries + 1):
                evaluation = self._evaluate(account_id, tier, operation, overrides, now)
                decision = evaluation.decision
                if not decision.allowed or not operation.has_cost:
                    return decision

                records = [evaluation.monthly or self._ledger.get(account_id, month_key)]
                if caps.max_renders_per_day is not None:
                    records.append(evaluation.daily or self._ledger.get(account_id, day_key))

                written = self._ledger.apply_if_unchanged(
                    records, operation.renders, operation.minutes
                )
                if written is not None:
                    _logger.info(
                        f"Recorded usage for {account_id}",
                        extra={
                            "tier": tier.value,
                            "renders": operation.renders,
                            "minutes": operation.minutes,
                            "period": month_key,
                        },
                    )
                    return decision

                _logger.info(
                    f"Usage changed while deciding for {account_id}, re-deciding",
                    extra={"attempt": attempt},
                )

        raise LedgerConflictError(
            f"Could not record usage for {account_id}/{month_key} "
            f"after {self._ledger.max_retries} attempts"
        )

    def usage_summary(
        self,
        account_id: str,
        tier: Tier,
        overrides: Optional[FeatureOverrides] = None,
    ) -> UsageSummary:
        """Usage snapshot for dashboards and settings pages."""
        now = self._clock()
        features = self._resolver.resolve(tier, overrides)
        monthly = self._ledger.get(account_id, current_period_key(PeriodKind.MONTHLY, now))
        daily = None
        if features.max_renders_per_day is not None:
            daily = self._ledger.get(account_id, current_period_key(PeriodKind.DAILY, now))
        return UsageSummary(features=features, monthly=monthly, daily=daily)

    # -------------------------------------------------------------------------
    # Decision
    # -------------------------------------------------------------------------

    def _decide(
        self,
        account_id: str,
        tier: Tier,
        operation: RequestedOperation,
        overrides: Optional[FeatureOverrides],
        now: datetime,
    ) -> UpgradeDecision:
        return self._evaluate(account_id, tier, operation, overrides, now).decision

    def _evaluate(
        self,
        account_id: str,
        tier: Tier,
        operation: RequestedOperation,
        overrides: Optional[FeatureOverrides],
        now: datetime,
    ) -> _Evaluation:
        features = self._resolver.resolve(tier, overrides)

        locked = self._check_capabilities(tier, features, operation)
        if locked is not None:
            _logger.info(
                f"Capability locked for {account_id}: {locked.reason.value}",
                extra={"tier": tier.value, "required_tier": locked.required_tier.value},
            )
            return _Evaluation(locked)

        month_key = current_period_key(PeriodKind.MONTHLY, now)
        day_key = current_period_key(PeriodKind.DAILY, now)

        monthly: Optional[UsageRecord] = None
        daily: Optional[UsageRecord] = None

        if features.max_renders_per_month is not None:
            monthly = self._ledger.get(account_id, month_key)
            needed = monthly.renders_used + operation.renders
            if needed > features.max_renders_per_month:
                return _Evaluation(self._quota_exhausted(
                    tier,
                    Reason.RENDER_QUOTA_EXHAUSTED,
                    PeriodKind.MONTHLY,
                    limit=features.max_renders_per_month,
                    used=monthly.renders_used,
                    fits=lambda caps: _fits(caps.max_renders_per_month, needed),
                ))

        if features.max_renders_per_day is not None:
            daily = self._ledger.get(account_id, day_key)
            needed_today = daily.renders_used + operation.renders
            if needed_today > features.max_renders_per_day:
                return _Evaluation(self._quota_exhausted(
                    tier,
                    Reason.RENDER_QUOTA_EXHAUSTED,
                    PeriodKind.DAILY,
                    limit=features.max_renders_per_day,
                    used=daily.renders_used,
                    fits=lambda caps: _fits(caps.max_renders_per_day, needed_today),
                ))

        if features.max_minutes_per_month is not None:
            if monthly is None:
                monthly = self._ledger.get(account_id, month_key)
            needed_minutes = monthly.minutes_used + operation.minutes
            if needed_minutes > features.max_minutes_per_month:
                return _Evaluation(self._quota_exhausted(
                    tier,
                    Reason.MINUTES_QUOTA_EXHAUSTED,
                    PeriodKind.MONTHLY,
                    limit=features.max_minutes_per_month,
                    used=monthly.minutes_used,
                    fits=lambda caps: _fits(caps.max_minutes_per_month, needed_minutes),
                ))

        return _Evaluation(UpgradeDecision.allow(), monthly, daily)

    def _check_capabilities(
        self,
        tier: Tier,
        features: ResolvedFeatures,
        operation: RequestedOperation,
    ) -> Optional[UpgradeDecision]:
        catalog = self._catalog

        if operation.quality is not None and operation.quality.rank > features.max_quality.rank:
            requested = operation.quality
            return self._capability_locked(
                tier,
                Reason.QUALITY_ABOVE_CEILING,
                lambda caps: caps.export_quality.rank >= requested.rank,
            )

        if operation.preset_id is not None:
            preset_id = operation.preset_id
            reachable = preset_id in catalog.known_preset_ids and features.subtitle_presets.allows(
                preset_id, catalog.known_preset_ids
            )
            if not reachable:
                return self._capability_locked(
                    tier,
                    Reason.PRESET_NOT_INCLUDED,
                    lambda caps: catalog.preset_allowed(caps, preset_id),
                )

        if operation.auto_zoom is not None:
            zoom = round(operation.auto_zoom, _ZOOM_PRECISION)
            if zoom > round(features.auto_zoom_max, _ZOOM_PRECISION):
                return self._capability_locked(
                    tier,
                    Reason.AUTO_ZOOM_ABOVE_CEILING,
                    lambda caps: round(caps.auto_zoom_max, _ZOOM_PRECISION) >= zoom,
                )

        if operation.advanced_effects and not features.advanced_effects:
            return self._capability_locked(
                tier,
                Reason.ADVANCED_EFFECT_LOCKED,
                lambda caps: caps.advanced_effects,
            )

        return None

    # -------------------------------------------------------------------------
    # Required tier
    # -------------------------------------------------------------------------

    def _capability_locked(
        self,
        tier: Tier,
        reason: Reason,
        satisfies: Callable[[CapabilitySet], bool],
    ) -> UpgradeDecision:
        """
        Lowest ladder tier whose capability set satisfies the request.

        If no ladder tier does, the top ladder tier is named and the
        decision is not upgradable. Founder accounts are never pointed
        elsewhere.
        """
        found = self._catalog.first_tier_where(satisfies)
        if tier is Tier.FOUNDER:
            return UpgradeDecision(allowed=False, required_tier=Tier.FOUNDER, reason=reason)

        required = found if found is not None else TOP_LADDER_TIER
        upgradable = found is not None and compare_tiers(required, tier) > 0
        return UpgradeDecision(
            allowed=False,
            required_tier=required,
            reason=reason,
            upgradable=upgradable,
        )

    def _quota_exhausted(
        self,
        tier: Tier,
        reason: Reason,
        period: PeriodKind,
        limit: float,
        used: float,
        fits: Callable[[CapabilitySet], bool],
    ) -> UpgradeDecision:
        """
        Lowest tier above `tier` whose quota accommodates the usage.

        When no higher tier helps, the current tier is reported and the
        decision is terminal (not upgradable).
        """
        required = tier
        for candidate in tiers_above(tier):
            if fits(self._catalog.capabilities_for(candidate)):
                required = candidate
                break

        upgradable = required is not tier
        _logger.info(
            f"Quota exhausted: {reason.value} ({period.value})",
            extra={
                "tier": tier.value,
                "required_tier": required.value,
                "limit": limit,
                "used": used,
            },
        )
        return UpgradeDecision(
            allowed=False,
            required_tier=required,
            reason=reason,
            period=period,
            limit=limit,
            used=used,
            upgradable=upgradable,
        )
