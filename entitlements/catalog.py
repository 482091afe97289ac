# entitlements/catalog.py
"""
Tier catalog: the static table of tier -> capability set.

A catalog is built once at process start and injected into the resolver
and enforcer. Capability sets are frozen; runtime grants are modelled as
FeatureOverrides in the resolver, never as catalog mutations. There is no
hot reload: a changed catalog requires a process restart.

Feature Matrix (catalog 2026.02):
- FREE: 720p, watermark, basic_clean only, zoom 1.10x, 12 renders/mo (3/day)
- STARTER: 1080p, 4 presets, zoom 1.12x, 20 renders + 60 min/mo
- CREATOR: 4K, priority queue, all presets, zoom 1.15x, 100 renders + 300 min/mo
- STUDIO: + advanced effects, 5000 renders/mo, unlimited minutes
- FOUNDER: studio capabilities, lifetime, outside the upgrade ladder
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Callable, FrozenSet, Iterable, Mapping, Optional, Tuple, Union

from entitlements.tiers import LADDER, Tier

CATALOG_VERSION = "2026.02"

AUTO_ZOOM_FLOOR = 1.0
AUTO_ZOOM_CEILING = 1.15


class CatalogError(Exception):
    """Raised when a catalog is constructed from an invalid table."""
    pass


# =============================================================================
# Export Quality
# =============================================================================


class Quality(str, Enum):
    """Export quality, ordered 720p < 1080p < 4k."""
    HD = "720p"
    FULL_HD = "1080p"
    UHD = "4k"

    @property
    def rank(self) -> int:
        return QUALITY_ORDER.index(self)

    @property
    def label(self) -> str:
        """Display label used by the client ("4K" rather than "4k")."""
        return "4K" if self is Quality.UHD else self.value


QUALITY_ORDER: Tuple[Quality, ...] = (Quality.HD, Quality.FULL_HD, Quality.UHD)


# =============================================================================
# Subtitle Presets
# =============================================================================


@dataclass(frozen=True)
class PresetDefinition:
    """A subtitle preset. Tiers only gate which IDs are reachable."""
    id: str
    label: str
    description: str

    def to_dict(self) -> dict:
        return {"id": self.id, "label": self.label, "description": self.description}


DEFAULT_PRESETS: Tuple[PresetDefinition, ...] = (
    PresetDefinition("basic_clean", "Basic Clean", "Plain white captions with a soft shadow."),
    PresetDefinition("bold_pop", "Bold Pop", "Heavy type that pops word by word."),
    PresetDefinition("caption_box", "Caption Box", "Captions on a solid rounded box for busy footage."),
    PresetDefinition("mrbeast_animated", "MrBeast Animated", "Bouncy, colour-cycling words for high-energy edits."),
    PresetDefinition("karaoke_highlight", "Karaoke Highlight", "Highlights each word as it is spoken."),
    PresetDefinition("neon_glow", "Neon Glow", "Glowing outlined text for night and gaming content."),
    PresetDefinition("minimal_lower", "Minimal Lower Third", "Small lower-third captions for interviews."),
)


@dataclass(frozen=True)
class AllPresets:
    """Every known preset is reachable."""

    def allows(self, preset_id: str, known_ids: FrozenSet[str]) -> bool:
        return preset_id in known_ids

    def covers(self, other: "PresetAccess") -> bool:
        return True

    def to_json(self) -> Union[str, list]:
        return "ALL"


@dataclass(frozen=True)
class ExplicitPresets:
    """Only the listed presets are reachable. An empty set means no subtitles."""
    preset_ids: FrozenSet[str] = frozenset()

    def allows(self, preset_id: str, known_ids: FrozenSet[str]) -> bool:
        return preset_id in self.preset_ids

    def covers(self, other: "PresetAccess") -> bool:
        if isinstance(other, AllPresets):
            return False
        return other.preset_ids <= self.preset_ids

    def to_json(self) -> Union[str, list]:
        return sorted(self.preset_ids)


PresetAccess = Union[AllPresets, ExplicitPresets]


def presets(*preset_ids: str) -> ExplicitPresets:
    """Shorthand for an explicit preset set."""
    return ExplicitPresets(frozenset(preset_ids))


# =============================================================================
# Capability Set
# =============================================================================


@dataclass(frozen=True)
class CapabilitySet:
    """
    Limits and features attached 1:1 to a tier.

    Quotas use None for "unbounded".

    Attributes:
        export_quality: Highest export quality
        watermark: Whether exports are watermarked
        priority: Whether renders use the priority queue
        subtitle_presets: AllPresets or ExplicitPresets
        auto_zoom_max: Auto-zoom ceiling, within [1.0, 1.15]
        advanced_effects: Emotional Boost / Aggressive Mode
        max_renders_per_month: Monthly render quota
        max_renders_per_day: Daily render quota (baseline free tier only)
        max_minutes_per_month: Monthly minutes quota
        lifetime: One-time purchase with no renewal
        includes_future_features: Future feature drops included
    """
    name: str
    description: str
    export_quality: Quality
    watermark: bool
    priority: bool
    subtitle_presets: PresetAccess
    auto_zoom_max: float
    advanced_effects: bool
    max_renders_per_month: Optional[int]
    max_renders_per_day: Optional[int] = None
    max_minutes_per_month: Optional[float] = None
    lifetime: bool = False
    includes_future_features: bool = False


FREE_CAPABILITIES = CapabilitySet(
    name="Free",
    description="Best for testing AutoEditor before upgrading.",
    export_quality=Quality.HD,
    watermark=True,
    priority=False,
    subtitle_presets=presets("basic_clean"),
    auto_zoom_max=1.10,
    advanced_effects=False,
    max_renders_per_month=12,
    max_renders_per_day=3,
    max_minutes_per_month=15,
)

STARTER_CAPABILITIES = CapabilitySet(
    name="Starter",
    description="For solo creators publishing consistently each week.",
    export_quality=Quality.FULL_HD,
    watermark=False,
    priority=False,
    subtitle_presets=presets("basic_clean", "bold_pop", "caption_box", "mrbeast_animated"),
    auto_zoom_max=1.12,
    advanced_effects=False,
    max_renders_per_month=20,
    max_minutes_per_month=60,
    includes_future_features=True,
)

CREATOR_CAPABILITIES = CapabilitySet(
    name="Creator",
    description="For high-volume creators who need better output headroom.",
    export_quality=Quality.UHD,
    watermark=False,
    priority=True,
    subtitle_presets=AllPresets(),
    auto_zoom_max=1.15,
    advanced_effects=False,
    max_renders_per_month=100,
    max_minutes_per_month=300,
    includes_future_features=True,
)

STUDIO_CAPABILITIES = CapabilitySet(
    name="Studio",
    description="For teams and studios that need speed, scale, and advanced controls.",
    export_quality=Quality.UHD,
    watermark=False,
    priority=True,
    subtitle_presets=AllPresets(),
    auto_zoom_max=1.15,
    advanced_effects=True,
    max_renders_per_month=5000,
    max_minutes_per_month=None,
    includes_future_features=True,
)

FOUNDER_CAPABILITIES = CapabilitySet(
    name="Founder",
    description="Lifetime access for early builders who want the full stack unlocked.",
    export_quality=Quality.UHD,
    watermark=False,
    priority=True,
    subtitle_presets=AllPresets(),
    auto_zoom_max=1.15,
    advanced_effects=True,
    max_renders_per_month=5000,
    max_minutes_per_month=None,
    lifetime=True,
    includes_future_features=True,
)

DEFAULT_CAPABILITIES: Mapping[Tier, CapabilitySet] = MappingProxyType({
    Tier.FREE: FREE_CAPABILITIES,
    Tier.STARTER: STARTER_CAPABILITIES,
    Tier.CREATOR: CREATOR_CAPABILITIES,
    Tier.STUDIO: STUDIO_CAPABILITIES,
    Tier.FOUNDER: FOUNDER_CAPABILITIES,
})


# =============================================================================
# Catalog
# =============================================================================


class TierCatalog:
    """Immutable tier -> capability table plus the preset registry."""

    def __init__(
        self,
        capabilities: Mapping[Tier, CapabilitySet],
        preset_definitions: Iterable[PresetDefinition] = DEFAULT_PRESETS,
        version: str = CATALOG_VERSION,
    ):
        missing = [tier.value for tier in Tier if tier not in capabilities]
        if missing:
            raise CatalogError(f"Catalog {version} is missing tiers: {', '.join(missing)}")

        for tier, caps in capabilities.items():
            if not AUTO_ZOOM_FLOOR <= caps.auto_zoom_max <= AUTO_ZOOM_CEILING:
                raise CatalogError(
                    f"Tier '{tier.value}' auto_zoom_max={caps.auto_zoom_max} is outside "
                    f"[{AUTO_ZOOM_FLOOR}, {AUTO_ZOOM_CEILING}]"
                )

        self._capabilities = MappingProxyType(dict(capabilities))
        self._presets = tuple(preset_definitions)
        self._known_preset_ids = frozenset(p.id for p in self._presets)
        self._version = version

    @property
    def version(self) -> str:
        return self._version

    @property
    def presets(self) -> Tuple[PresetDefinition, ...]:
        return self._presets

    @property
    def known_preset_ids(self) -> FrozenSet[str]:
        return self._known_preset_ids

    def capabilities_for(self, tier: Tier) -> CapabilitySet:
        """Capability set for a tier. Callers normalize raw strings with parse_tier first."""
        return self._capabilities[tier]

    def ladder(self) -> Tuple[Tier, ...]:
        """Upgrade ladder, lowest tier first. Never contains founder."""
        return LADDER

    def first_tier_where(self, predicate: Callable[[CapabilitySet], bool]) -> Optional[Tier]:
        """
        Lowest ladder tier whose capability set satisfies `predicate`.

        Returns None if no ladder tier qualifies.
        """
        for tier in LADDER:
            if predicate(self._capabilities[tier]):
                return tier
        return None

    def preset_allowed(self, caps: CapabilitySet, preset_id: str) -> bool:
        """Whether `caps` reaches `preset_id`. Unknown IDs are never reachable."""
        if preset_id not in self._known_preset_ids:
            return False
        return caps.subtitle_presets.allows(preset_id, self._known_preset_ids)


def build_default_catalog() -> TierCatalog:
    """Build the production catalog."""
    return TierCatalog(DEFAULT_CAPABILITIES, DEFAULT_PRESETS, CATALOG_VERSION)
