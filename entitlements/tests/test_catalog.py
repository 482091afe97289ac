# entitlements/tests/test_catalog.py
"""
Tests for the tier catalog.

The default catalog must be monotonic along the ladder: a higher tier
never has less of anything than a lower one.
"""
from __future__ import annotations

from dataclasses import FrozenInstanceError, replace

import pytest

from entitlements.catalog import (
    AUTO_ZOOM_CEILING,
    CATALOG_VERSION,
    DEFAULT_CAPABILITIES,
    AllPresets,
    CatalogError,
    ExplicitPresets,
    Quality,
    TierCatalog,
    build_default_catalog,
    presets,
)
from entitlements.tiers import LADDER, Tier


@pytest.fixture
def catalog():
    return build_default_catalog()


def _quota_le(lower, higher):
    """None is unbounded."""
    if higher is None:
        return True
    if lower is None:
        return False
    return lower <= higher


class TestDefaultCatalog:
    """Tests for the production catalog values."""

    def test_version(self, catalog):
        assert catalog.version == CATALOG_VERSION

    def test_free_tier(self, catalog):
        caps = catalog.capabilities_for(Tier.FREE)
        assert caps.export_quality is Quality.HD
        assert caps.watermark is True
        assert caps.priority is False
        assert caps.subtitle_presets == presets("basic_clean")
        assert caps.auto_zoom_max == 1.10
        assert caps.max_renders_per_month == 12
        assert caps.max_renders_per_day == 3

    def test_starter_tier(self, catalog):
        caps = catalog.capabilities_for(Tier.STARTER)
        assert caps.export_quality is Quality.FULL_HD
        assert caps.watermark is False
        assert caps.subtitle_presets.preset_ids == frozenset(
            {"basic_clean", "bold_pop", "caption_box", "mrbeast_animated"}
        )
        assert caps.auto_zoom_max == 1.12
        assert caps.max_renders_per_month == 20
        assert caps.max_renders_per_day is None

    def test_creator_and_up_have_all_presets_and_priority(self, catalog):
        for tier in (Tier.CREATOR, Tier.STUDIO, Tier.FOUNDER):
            caps = catalog.capabilities_for(tier)
            assert isinstance(caps.subtitle_presets, AllPresets)
            assert caps.priority is True
            assert caps.export_quality is Quality.UHD

    def test_advanced_effects_only_studio_and_founder(self, catalog):
        enabled = {t for t in Tier if catalog.capabilities_for(t).advanced_effects}
        assert enabled == {Tier.STUDIO, Tier.FOUNDER}

    def test_founder_is_lifetime(self, catalog):
        assert catalog.capabilities_for(Tier.FOUNDER).lifetime is True
        assert catalog.capabilities_for(Tier.STUDIO).lifetime is False

    def test_ladder_is_monotonic(self, catalog):
        for lower, higher in zip(LADDER, LADDER[1:]):
            lo = catalog.capabilities_for(lower)
            hi = catalog.capabilities_for(higher)
            assert lo.export_quality.rank <= hi.export_quality.rank
            assert lo.auto_zoom_max <= hi.auto_zoom_max
            assert hi.subtitle_presets.covers(lo.subtitle_presets)
            assert lo.priority <= hi.priority
            assert lo.advanced_effects <= hi.advanced_effects
            assert hi.watermark <= lo.watermark
            assert _quota_le(lo.max_renders_per_month, hi.max_renders_per_month)
            assert _quota_le(lo.max_minutes_per_month, hi.max_minutes_per_month)

    def test_founder_at_least_studio(self, catalog):
        studio = catalog.capabilities_for(Tier.STUDIO)
        founder = catalog.capabilities_for(Tier.FOUNDER)
        assert founder.export_quality.rank >= studio.export_quality.rank
        assert founder.auto_zoom_max >= studio.auto_zoom_max
        assert founder.subtitle_presets.covers(studio.subtitle_presets)
        assert _quota_le(studio.max_renders_per_month, founder.max_renders_per_month)
        assert _quota_le(studio.max_minutes_per_month, founder.max_minutes_per_month)

    def test_capability_sets_are_frozen(self, catalog):
        with pytest.raises(FrozenInstanceError):
            catalog.capabilities_for(Tier.FREE).watermark = False

    def test_ladder_excludes_founder(self, catalog):
        assert Tier.FOUNDER not in catalog.ladder()


class TestPresetAccess:
    """Tests for AllPresets / ExplicitPresets."""

    def test_unknown_preset_not_allowed_even_with_all(self, catalog):
        caps = catalog.capabilities_for(Tier.STUDIO)
        assert catalog.preset_allowed(caps, "karaoke_highlight")
        assert not catalog.preset_allowed(caps, "does_not_exist")

    def test_explicit_presets(self, catalog):
        caps = catalog.capabilities_for(Tier.FREE)
        assert catalog.preset_allowed(caps, "basic_clean")
        assert not catalog.preset_allowed(caps, "bold_pop")

    def test_covers(self):
        assert AllPresets().covers(presets("a", "b"))
        assert presets("a", "b").covers(presets("a"))
        assert not presets("a").covers(presets("a", "b"))
        assert not presets("a", "b").covers(AllPresets())

    def test_to_json(self):
        assert AllPresets().to_json() == "ALL"
        assert presets("b", "a").to_json() == ["a", "b"]
        assert ExplicitPresets().to_json() == []


class TestCatalogValidation:
    """Tests for catalog construction errors."""

    def test_missing_tier(self):
        caps = {t: c for t, c in DEFAULT_CAPABILITIES.items() if t is not Tier.FOUNDER}
        with pytest.raises(CatalogError, match="founder"):
            TierCatalog(caps)

    def test_zoom_out_of_bounds(self):
        caps = dict(DEFAULT_CAPABILITIES)
        caps[Tier.STUDIO] = replace(caps[Tier.STUDIO], auto_zoom_max=AUTO_ZOOM_CEILING + 0.1)
        with pytest.raises(CatalogError, match="auto_zoom_max"):
            TierCatalog(caps)

    def test_first_tier_where(self, catalog):
        assert catalog.first_tier_where(lambda c: c.priority) is Tier.CREATOR
        assert catalog.first_tier_where(lambda c: c.auto_zoom_max > 2) is None
