"""
Tests for modules/rewards.py
"""

from database import PrestigeSettings, PrestigeTier, RankSettings, UserProgress
from modules.rewards import eligible_prestige, role_rewards_for_level


# =============================================================================
# Role rewards
# =============================================================================

class TestRoleRewards:

    async def test_all_levels_up_to_new_level(self, db, rewards):
        await db.save_rank_settings(RankSettings(role_rewards={5: "r5", 10: "r10", 20: "r20"}))

        assert await rewards.resolve_role_rewards("1", 12) == {"r5", "r10"}

    async def test_idempotent(self, db, rewards):
        await db.save_rank_settings(RankSettings(role_rewards={5: "r5"}))

        first = await rewards.resolve_role_rewards("1", 7)
        second = await rewards.resolve_role_rewards("1", 7)

        assert first == second == {"r5"}

    async def test_nothing_configured(self, rewards):
        assert await rewards.resolve_role_rewards("1", 50) == set()

    async def test_unreadable_settings_give_nothing(self, db, rewards):
        await db.set_setting('ranks', {'textXp': 'broken'})
        assert await rewards.resolve_role_rewards("1", 50) == set()

    def test_pure_helper(self):
        settings = RankSettings(role_rewards={1: "a", 3: "b"})
        assert role_rewards_for_level(2, settings) == {"a"}
        assert role_rewards_for_level(3, settings) == {"a", "b"}


# =============================================================================
# Prestige
# =============================================================================

class TestPrestige:

    async def test_reaching_tier_one(self, db, rewards):
        change = await rewards.resolve_prestige("1", 100)

        assert change.old_prestige == 0
        assert change.new_prestige == 1
        assert change.config.name == "Bronze"
        assert (await db.get_user_progress("1")).prestige == 1

    async def test_no_change_within_tier(self, rewards):
        await rewards.resolve_prestige("1", 100)
        assert await rewards.resolve_prestige("1", 150) is None

    async def test_below_first_tier(self, db, rewards):
        assert await rewards.resolve_prestige("1", 99) is None
        assert (await db.get_user_progress("1")).prestige == 0

    async def test_skips_straight_to_highest_tier(self, rewards):
        change = await rewards.resolve_prestige("1", 320)
        assert change.new_prestige == 3

    async def test_never_decreases(self, db, rewards):
        await db.save_user_progress("1", UserProgress(xp=10, prestige=4))

        assert await rewards.resolve_prestige("1", 100) is None
        assert (await db.get_user_progress("1")).prestige == 4

    async def test_keeps_other_progress_fields(self, db, rewards):
        await db.save_user_progress("1", UserProgress(xp=900, level=3, total_text_xp=900))

        await rewards.resolve_prestige("1", 100)

        progress = await db.get_user_progress("1")
        assert progress.xp == 900
        assert progress.total_text_xp == 900

    def test_eligible_prestige(self):
        settings = PrestigeSettings(tiers={
            1: PrestigeTier(tier=1, name="One", required_level=10),
            2: PrestigeTier(tier=2, name="Two", required_level=20),
        })
        assert eligible_prestige(9, settings) == 0
        assert eligible_prestige(10, settings) == 1
        assert eligible_prestige(99, settings) == 2
        assert eligible_prestige(99, PrestigeSettings()) == 0
