# entitlements/resolver.py
"""
Feature resolution: tier (+ optional grant overrides) -> ResolvedFeatures.

ResolvedFeatures is the flattened view consumed by the client to show or
hide controls and by the enforcer to gate requests.

Overrides are grants. A field that would lower a capability below the
catalog baseline is ignored and logged, so a misconfigured override can
never silently downgrade a paying account.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any, FrozenSet, Mapping, Optional

from entitlements.catalog import (
    AUTO_ZOOM_CEILING,
    AllPresets,
    CapabilitySet,
    ExplicitPresets,
    PresetAccess,
    Quality,
    TierCatalog,
)
from entitlements.tiers import Tier

_logger = logging.getLogger(__name__)


# =============================================================================
# Overrides
# =============================================================================


@dataclass(frozen=True)
class FeatureOverrides:
    """
    Admin-granted capability deltas. None means "not overridden".

    Quota grants use explicit unbounded_* flags because None already means
    "no override" here.
    """
    export_quality: Optional[Quality] = None
    watermark: Optional[bool] = None
    priority: Optional[bool] = None
    subtitle_presets: Optional[PresetAccess] = None
    auto_zoom_max: Optional[float] = None
    advanced_effects: Optional[bool] = None
    max_renders_per_month: Optional[int] = None
    unbounded_renders: bool = False
    max_minutes_per_month: Optional[float] = None
    unbounded_minutes: bool = False

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "FeatureOverrides":
        """Build overrides from a camelCase admin record."""
        allowed = data.get("allowedPresets")
        preset_access: Optional[PresetAccess] = None
        if allowed == "ALL":
            preset_access = AllPresets()
        elif allowed is not None:
            preset_access = ExplicitPresets(frozenset(allowed))

        quality = data.get("exportQuality")
        return cls(
            export_quality=Quality(quality) if quality else None,
            watermark=data.get("watermark"),
            priority=data.get("priority"),
            subtitle_presets=preset_access,
            auto_zoom_max=data.get("autoZoomMax"),
            advanced_effects=data.get("advancedEffects"),
            max_renders_per_month=data.get("maxRendersPerMonth"),
            unbounded_renders=bool(data.get("unboundedRenders", False)),
            max_minutes_per_month=data.get("maxMinutesPerMonth"),
            unbounded_minutes=bool(data.get("unboundedMinutes", False)),
        )


def _quota_raises(baseline: Optional[float], granted: float) -> bool:
    """A finite grant raises a quota only if the baseline is finite and lower."""
    return baseline is not None and granted >= baseline


def apply_overrides(tier: Tier, caps: CapabilitySet, overrides: FeatureOverrides) -> CapabilitySet:
    """
    Apply grant-only overrides to a baseline capability set.

    Returns a new CapabilitySet; the baseline is never mutated.
    """
    changes = {}

    def _reject(field_name: str, value: Any) -> None:
        _logger.warning(
            f"Ignoring override {field_name}={value!r} for tier '{tier.value}': "
            "overrides may only grant capabilities"
        )

    if overrides.export_quality is not None:
        if overrides.export_quality.rank >= caps.export_quality.rank:
            changes["export_quality"] = overrides.export_quality
        else:
            _reject("export_quality", overrides.export_quality.value)

    # Granting here means removing the watermark.
    if overrides.watermark is not None:
        if overrides.watermark is False or caps.watermark:
            changes["watermark"] = overrides.watermark and caps.watermark
        else:
            _reject("watermark", overrides.watermark)

    if overrides.priority is not None:
        if overrides.priority or not caps.priority:
            changes["priority"] = overrides.priority or caps.priority
        else:
            _reject("priority", overrides.priority)

    if overrides.subtitle_presets is not None:
        if overrides.subtitle_presets.covers(caps.subtitle_presets):
            changes["subtitle_presets"] = overrides.subtitle_presets
        else:
            _reject("subtitle_presets", overrides.subtitle_presets.to_json())

    if overrides.auto_zoom_max is not None:
        if caps.auto_zoom_max <= overrides.auto_zoom_max <= AUTO_ZOOM_CEILING:
            changes["auto_zoom_max"] = overrides.auto_zoom_max
        else:
            _reject("auto_zoom_max", overrides.auto_zoom_max)

    if overrides.advanced_effects is not None:
        if overrides.advanced_effects or not caps.advanced_effects:
            changes["advanced_effects"] = overrides.advanced_effects or caps.advanced_effects
        else:
            _reject("advanced_effects", overrides.advanced_effects)

    if overrides.unbounded_renders:
        changes["max_renders_per_month"] = None
        changes["max_renders_per_day"] = None
    elif overrides.max_renders_per_month is not None:
        if _quota_raises(caps.max_renders_per_month, overrides.max_renders_per_month):
            changes["max_renders_per_month"] = overrides.max_renders_per_month
        else:
            _reject("max_renders_per_month", overrides.max_renders_per_month)

    if overrides.unbounded_minutes:
        changes["max_minutes_per_month"] = None
    elif overrides.max_minutes_per_month is not None:
        if _quota_raises(caps.max_minutes_per_month, overrides.max_minutes_per_month):
            changes["max_minutes_per_month"] = overrides.max_minutes_per_month
        else:
            _reject("max_minutes_per_month", overrides.max_minutes_per_month)

    if not changes:
        return caps
    return replace(caps, **changes)


# =============================================================================
# Resolved Features
# =============================================================================


@dataclass(frozen=True)
class ResolvedFeatures:
    """Flattened capability view for the client and the enforcer."""
    tier: Tier
    resolution: str
    max_quality: Quality
    watermark: bool
    subtitle_access: str  # all | limited | none
    subtitle_presets: PresetAccess
    auto_zoom_max: float
    queue_priority: str  # standard | priority
    advanced_effects: bool
    max_renders_per_month: Optional[int]
    max_renders_per_day: Optional[int]
    max_minutes_per_month: Optional[float]
    lifetime: bool
    includes_future_features: bool

    @property
    def subtitles_enabled(self) -> bool:
        return self.subtitle_access != "none"

    def to_dict(self) -> dict:
        """Convert to the JSON shape the web client reads."""
        return {
            "tier": self.tier.value,
            "resolution": self.resolution,
            "maxResolution": self.max_quality.value,
            "watermark": self.watermark,
            "subtitleAccess": self.subtitle_access,
            "subtitles": {
                "enabled": self.subtitles_enabled,
                "allowedPresets": self.subtitle_presets.to_json(),
            },
            "autoZoomMax": self.auto_zoom_max,
            "queuePriority": self.queue_priority,
            "priorityQueue": self.queue_priority == "priority",
            "advancedEffects": self.advanced_effects,
            "rendersPerMonth": self.max_renders_per_month,
            "maxRendersPerMonth": self.max_renders_per_month,
            "maxRendersPerDay": self.max_renders_per_day,
            "maxMinutesPerMonth": self.max_minutes_per_month,
            "lifetime": self.lifetime,
            "includesFutureFeatures": self.includes_future_features,
        }


def _subtitle_access(access: PresetAccess) -> str:
    if isinstance(access, AllPresets):
        return "all"
    return "limited" if access.preset_ids else "none"


def project_features(tier: Tier, caps: CapabilitySet) -> ResolvedFeatures:
    """Project a capability set into ResolvedFeatures."""
    return ResolvedFeatures(
        tier=tier,
        resolution=caps.export_quality.label,
        max_quality=caps.export_quality,
        watermark=caps.watermark,
        subtitle_access=_subtitle_access(caps.subtitle_presets),
        subtitle_presets=caps.subtitle_presets,
        auto_zoom_max=caps.auto_zoom_max,
        queue_priority="priority" if caps.priority else "standard",
        advanced_effects=caps.advanced_effects,
        max_renders_per_month=caps.max_renders_per_month,
        max_renders_per_day=caps.max_renders_per_day,
        max_minutes_per_month=caps.max_minutes_per_month,
        lifetime=caps.lifetime,
        includes_future_features=caps.includes_future_features,
    )


class FeatureResolver:
    """Resolves features for a tier against an injected catalog."""

    def __init__(self, catalog: TierCatalog):
        self._catalog = catalog

    @property
    def catalog(self) -> TierCatalog:
        return self._catalog

    def effective_capabilities(
        self,
        tier: Tier,
        overrides: Optional[FeatureOverrides] = None,
    ) -> CapabilitySet:
        """Catalog baseline for `tier` with grant overrides applied."""
        caps = self._catalog.capabilities_for(tier)
        if overrides is None:
            return caps
        return apply_overrides(tier, caps, overrides)

    def resolve(
        self,
        tier: Tier,
        overrides: Optional[FeatureOverrides] = None,
    ) -> ResolvedFeatures:
        """Resolve the flattened feature view for `tier`."""
        return project_features(tier, self.effective_capabilities(tier, overrides))

    def allowed_preset_ids(self, features: ResolvedFeatures) -> FrozenSet[str]:
        """Known preset IDs reachable with `features`, for display."""
        known = self._catalog.known_preset_ids
        return frozenset(p for p in known if features.subtitle_presets.allows(p, known))
