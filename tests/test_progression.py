"""
Tests for modules/progression.py

Level formula, its inverse and the prestige multiplier.
"""

import pytest

from database import PrestigeSettings, PrestigeTier, RankSettings
from modules.progression import (
    apply_prestige_boost,
    level_for,
    level_from_xp,
    level_progress,
    required_xp,
    required_xp_for,
)


# =============================================================================
# required_xp()
# =============================================================================

class TestRequiredXp:

    def test_known_values(self):
        assert required_xp(1) == 100
        assert required_xp(2) == 282
        assert required_xp(5) == 1118

    def test_level_below_one_is_clamped(self):
        assert required_xp(0) == required_xp(1)
        assert required_xp(-4) == required_xp(1)

    def test_custom_formula(self):
        assert required_xp(3, base_xp=50, exponent=2) == 450

    def test_rejects_non_positive_formula(self):
        with pytest.raises(ValueError):
            required_xp(2, base_xp=0)
        with pytest.raises(ValueError):
            required_xp(2, exponent=-1)

    def test_strictly_increasing(self):
        values = [required_xp(level) for level in range(1, 200)]
        assert values == sorted(values)
        assert len(set(values)) == len(values)


# =============================================================================
# level_from_xp()
# =============================================================================

class TestLevelFromXp:

    def test_zero_xp_is_level_one(self):
        assert level_from_xp(0) == 1

    def test_negative_xp_is_level_one(self):
        assert level_from_xp(-50) == 1

    def test_three_hundred_xp_is_level_two(self):
        assert level_from_xp(300) == 2

    @pytest.mark.parametrize("base_xp,exponent", [(100, 1.5), (50, 2.0), (75, 1.2), (1000, 1.05)])
    def test_consistent_with_required_xp(self, base_xp, exponent):
        for level in range(1, 400):
            needed = required_xp(level, base_xp, exponent)
            assert level_from_xp(needed, base_xp, exponent) >= level
            if level > 1:
                assert level_from_xp(needed - 1, base_xp, exponent) < level

    def test_matches_linear_scan(self):
        def scan(xp):
            level = 1
            while required_xp(level + 1) <= xp:
                level += 1
            return level

        for xp in range(0, 20000, 37):
            assert level_from_xp(xp) == scan(xp)

    def test_settings_helpers(self):
        settings = RankSettings(base_xp=100, exponent=1.5)
        assert required_xp_for(5, settings) == 1118
        assert level_for(1118, settings) == 5
        assert level_for(1117, settings) == 4


# =============================================================================
# apply_prestige_boost()
# =============================================================================

class TestPrestigeBoost:

    @pytest.fixture
    def prestige_settings(self):
        return PrestigeSettings(tiers={
            1: PrestigeTier(tier=1, name="Bronze", required_level=100, xp_boost=0.05),
            3: PrestigeTier(tier=3, name="Gold", required_level=300, xp_boost=0.15),
        })

    def test_no_prestige_is_unchanged(self, prestige_settings):
        assert apply_prestige_boost(100, 0, prestige_settings) == 100

    def test_boost_is_floored(self, prestige_settings):
        assert apply_prestige_boost(15, 1, prestige_settings) == 15
        assert apply_prestige_boost(20, 1, prestige_settings) == 21

    def test_no_float_drift(self, prestige_settings):
        assert apply_prestige_boost(100, 3, prestige_settings) == 115

    def test_unknown_tier_is_unchanged(self, prestige_settings):
        assert apply_prestige_boost(100, 2, prestige_settings) == 100


# =============================================================================
# level_progress()
# =============================================================================

class TestLevelProgress:

    def test_level_one_starts_at_zero(self):
        progress = level_progress(141, 1, RankSettings())
        assert progress['current'] == 141
        assert progress['needed'] == 282
        assert progress['remaining'] == 141
        assert progress['percent'] == pytest.approx(50.0)

    def test_mid_level(self):
        progress = level_progress(300, 2, RankSettings())
        assert progress['next_required'] == 519
        assert progress['current'] == 18
        assert progress['remaining'] == 219
