# entitlements/clamp.py
"""
Quality, preset and auto-zoom clamping.

Used by the render-submission path to silently downgrade a request to
what the tier permits instead of rejecting it. All functions are pure.
"""
from __future__ import annotations

from typing import Optional, Union

from entitlements.catalog import AUTO_ZOOM_FLOOR, Quality, TierCatalog
from entitlements.tiers import Tier


def normalize_quality(value: Optional[Union[str, Quality]]) -> Quality:
    """
    Parse a loose quality string.

    Accepts labels like "4K", "2160p", "uhd", "Full HD" or "medium".
    Anything unrecognised becomes 720p.
    """
    if isinstance(value, Quality):
        return value

    raw = (value or "").strip().lower()
    if any(token in raw for token in ("4k", "2160", "uhd", "high")):
        return Quality.UHD
    if any(token in raw for token in ("1080", "full", "medium")):
        return Quality.FULL_HD
    return Quality.HD


def quality_to_height(quality: Quality) -> int:
    """Output frame height in pixels."""
    if quality is Quality.UHD:
        return 2160
    if quality is Quality.FULL_HD:
        return 1080
    return 720


def clamp_quality(
    requested: Union[str, Quality],
    tier: Tier,
    catalog: TierCatalog,
) -> Quality:
    """
    Highest quality not above both the request and the tier ceiling.

    Monotonic in `requested` and idempotent.
    """
    quality = normalize_quality(requested)
    ceiling = catalog.capabilities_for(tier).export_quality
    return quality if quality.rank <= ceiling.rank else ceiling


def is_preset_allowed(preset_id: str, tier: Tier, catalog: TierCatalog) -> bool:
    """Whether `tier` reaches `preset_id`. AllPresets accepts any known preset."""
    return catalog.preset_allowed(catalog.capabilities_for(tier), preset_id)


def allowed_preset_or_default(
    preset_id: Optional[str],
    tier: Tier,
    catalog: TierCatalog,
) -> Optional[str]:
    """
    The requested preset if the tier reaches it, otherwise the first
    reachable preset in registry order.

    Returns None when the tier has no subtitle presets at all.
    """
    if preset_id and is_preset_allowed(preset_id, tier, catalog):
        return preset_id
    for preset in catalog.presets:
        if is_preset_allowed(preset.id, tier, catalog):
            return preset.id
    return None


def clamp_auto_zoom(value: float, tier: Tier, catalog: TierCatalog) -> float:
    """Clamp an auto-zoom factor into [1.0, tier ceiling]."""
    ceiling = catalog.capabilities_for(tier).auto_zoom_max
    return max(AUTO_ZOOM_FLOOR, min(float(value), ceiling))
