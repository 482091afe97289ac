# entitlements/tests/test_clamp.py
"""Tests for quality / preset / auto-zoom clamping."""
from __future__ import annotations

import pytest

from entitlements.catalog import Quality, build_default_catalog
from entitlements.clamp import (
    allowed_preset_or_default,
    clamp_auto_zoom,
    clamp_quality,
    is_preset_allowed,
    normalize_quality,
    quality_to_height,
)
from entitlements.tiers import Tier


@pytest.fixture
def catalog():
    return build_default_catalog()


class TestNormalizeQuality:

    @pytest.mark.parametrize("raw,expected", [
        ("4k", Quality.UHD),
        ("4K", Quality.UHD),
        ("2160p", Quality.UHD),
        ("high", Quality.UHD),
        ("1080p", Quality.FULL_HD),
        ("Full HD", Quality.FULL_HD),
        ("medium", Quality.FULL_HD),
        ("720p", Quality.HD),
        ("potato", Quality.HD),
        ("", Quality.HD),
        (None, Quality.HD),
    ])
    def test_normalize(self, raw, expected):
        assert normalize_quality(raw) is expected

    def test_heights(self):
        assert quality_to_height(Quality.HD) == 720
        assert quality_to_height(Quality.FULL_HD) == 1080
        assert quality_to_height(Quality.UHD) == 2160


class TestClampQuality:

    def test_free_clamps_4k_to_720p(self, catalog):
        assert clamp_quality("4k", Tier.FREE, catalog) is Quality.HD

    def test_starter_clamps_4k_to_1080p(self, catalog):
        assert clamp_quality("4k", Tier.STARTER, catalog) is Quality.FULL_HD

    def test_below_ceiling_unchanged(self, catalog):
        assert clamp_quality("720p", Tier.CREATOR, catalog) is Quality.HD

    def test_idempotent(self, catalog):
        for tier in Tier:
            for q in Quality:
                once = clamp_quality(q, tier, catalog)
                assert clamp_quality(once, tier, catalog) is once

    def test_monotonic(self, catalog):
        for tier in Tier:
            results = [clamp_quality(q, tier, catalog).rank for q in (Quality.HD, Quality.FULL_HD, Quality.UHD)]
            assert results == sorted(results)


class TestPresets:

    def test_is_preset_allowed(self, catalog):
        assert is_preset_allowed("basic_clean", Tier.FREE, catalog)
        assert not is_preset_allowed("bold_pop", Tier.FREE, catalog)
        assert is_preset_allowed("neon_glow", Tier.CREATOR, catalog)
        assert not is_preset_allowed("unknown_style", Tier.FOUNDER, catalog)

    def test_fallback_to_first_allowed(self, catalog):
        assert allowed_preset_or_default("neon_glow", Tier.STARTER, catalog) == "basic_clean"
        assert allowed_preset_or_default(None, Tier.FREE, catalog) == "basic_clean"

    def test_allowed_preset_kept(self, catalog):
        assert allowed_preset_or_default("bold_pop", Tier.STARTER, catalog) == "bold_pop"


class TestAutoZoom:

    def test_clamped_to_tier_ceiling(self, catalog):
        assert clamp_auto_zoom(1.15, Tier.FREE, catalog) == 1.10
        assert clamp_auto_zoom(1.13, Tier.STARTER, catalog) == 1.12

    def test_clamped_to_floor(self, catalog):
        assert clamp_auto_zoom(0.5, Tier.STUDIO, catalog) == 1.0

    def test_within_range_unchanged(self, catalog):
        assert clamp_auto_zoom(1.05, Tier.FREE, catalog) == 1.05
