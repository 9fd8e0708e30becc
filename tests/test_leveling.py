"""
Tests for modules/leveling.py

Text cooldown gate, voice accrual, failure reporting and the leaderboard.
"""

import random

from database import Database, RankSettings, UserProgress
from modules.progression import level_for, required_xp
from tests.conftest import MINUTE, NOW


# =============================================================================
# Text XP
# =============================================================================

class TestMessageXp:

    async def test_first_message_awards_xp(self, db, leveling):
        result = await leveling.award_message_xp("1", NOW)

        assert result.awarded
        assert 15 <= result.xp_gained <= 20

        progress = await db.get_user_progress("1")
        assert progress.xp == result.xp_gained
        assert progress.total_text_xp == result.xp_gained
        assert progress.total_voice_xp == 0
        assert progress.last_message_timestamp == NOW

    async def test_cooldown_blocks_second_message(self, db, leveling):
        first = await leveling.award_message_xp("1", NOW)
        second = await leveling.award_message_xp("1", NOW + 30 * 1000)

        assert first.awarded
        assert not second.awarded
        assert second.reason == 'cooldown'

        progress = await db.get_user_progress("1")
        assert progress.xp == first.xp_gained
        assert progress.last_message_timestamp == NOW

    async def test_cooldown_expires_after_exactly_one_minute(self, leveling):
        await leveling.award_message_xp("1", NOW)
        result = await leveling.award_message_xp("1", NOW + MINUTE)
        assert result.awarded

    async def test_cooldown_is_per_user(self, leveling):
        await leveling.award_message_xp("1", NOW)
        result = await leveling.award_message_xp("2", NOW + 1000)
        assert result.awarded

    async def test_level_up_event(self, db, leveling):
        await db.save_user_progress("1", UserProgress(xp=275, level=1, total_text_xp=275))

        result = await leveling.award_message_xp("1", NOW)

        assert result.level_up is not None
        assert result.level_up.old_level == 1
        assert result.level_up.new_level == 2
        assert result.level_up.xp == 275 + result.xp_gained
        assert result.level_up.next_required_xp == required_xp(3)

    async def test_prestige_boost_applies(self, db, leveling):
        settings = RankSettings(text_base_amount=100, text_random_bonus=0)
        await db.save_rank_settings(settings)
        await db.save_user_progress("1", UserProgress(prestige=3))

        result = await leveling.award_message_xp("1", NOW)

        assert result.xp_gained == 115


# =============================================================================
# Voice XP
# =============================================================================

class TestVoiceXp:

    async def test_minutes_times_rate(self, db, leveling):
        result = await leveling.accrue_voice_xp("1", 10, False, NOW)

        assert result.awarded
        assert result.xp_gained == 100
        progress = await db.get_user_progress("1")
        assert progress.total_voice_xp == 100
        assert progress.level == 1

    async def test_level_up_from_voice(self, leveling):
        result = await leveling.accrue_voice_xp("1", 30, False, NOW)

        assert result.level_up.old_level == 1
        assert result.level_up.new_level == 2

    async def test_afk_time_earns_nothing(self, db, leveling):
        result = await leveling.accrue_voice_xp("1", 10, True, NOW)

        assert not result.awarded
        assert result.reason == 'afk'
        assert result.level_up is None
        assert (await db.get_user_progress("1")).xp == 0

    async def test_afk_allowed_when_setting_off(self, db, leveling):
        await db.save_rank_settings(RankSettings(afk_disabled=False))

        result = await leveling.accrue_voice_xp("1", 10, True, NOW)

        assert result.awarded
        assert result.xp_gained == 100

    async def test_zero_minutes(self, leveling):
        result = await leveling.accrue_voice_xp("1", 0, False, NOW)
        assert result.reason == 'no_time'

    async def test_voice_does_not_touch_message_cooldown(self, db, leveling):
        await leveling.accrue_voice_xp("1", 5, False, NOW)
        assert (await db.get_user_progress("1")).last_message_timestamp == 0


# =============================================================================
# Invariants over mixed activity
# =============================================================================

class TestInvariants:

    async def test_monotonic_and_partitioned(self, db, leveling):
        rng = random.Random(42)
        settings = await db.get_rank_settings()
        now = NOW
        last_xp, last_level = 0, 1

        for _ in range(200):
            now += rng.randint(1, 120) * 1000
            if rng.random() < 0.6:
                await leveling.award_message_xp("1", now)
            else:
                await leveling.accrue_voice_xp("1", rng.randint(0, 15), rng.random() < 0.2, now)

            progress = await db.get_user_progress("1")
            assert progress.xp >= last_xp
            assert progress.level >= last_level
            assert progress.total_text_xp + progress.total_voice_xp == progress.xp
            assert progress.level == level_for(progress.xp, settings)
            last_xp, last_level = progress.xp, progress.level


# =============================================================================
# Failures
# =============================================================================

class TestFailures:

    async def test_storage_error_is_reported(self, db, leveling):
        await db.close()

        text = await leveling.award_message_xp("1", NOW)
        voice = await leveling.accrue_voice_xp("1", 5, False, NOW)

        assert text.reason == 'storage_error'
        assert voice.reason == 'storage_error'
        assert text.failed and voice.failed

    async def test_corrupt_json_is_reported(self, db, leveling):
        await db.execute(
            "INSERT INTO documents (collection, key, body) VALUES (?, ?, ?)",
            (Database.USERS, "1", "{not json")
        )

        result = await leveling.award_message_xp("1", NOW)

        assert result.reason == 'corrupt_document'

    async def test_wrong_shape_is_reported(self, db, leveling):
        await db.put_document(Database.USERS, "1", {"xp": "lots"})

        result = await leveling.accrue_voice_xp("1", 5, False, NOW)

        assert result.reason == 'corrupt_document'

    async def test_corrupt_document_is_left_alone(self, db, leveling):
        await db.put_document(Database.USERS, "1", {"xp": "lots"})
        await leveling.award_message_xp("1", NOW)
        assert await db.get_document(Database.USERS, "1") == {"xp": "lots"}


# =============================================================================
# Leaderboard
# =============================================================================

class TestLeaderboard:

    async def test_ordering(self, db, leveling):
        await db.save_user_progress("a", UserProgress(xp=5000, level=9))
        await db.save_user_progress("b", UserProgress(xp=300, level=2, prestige=1))
        await db.save_user_progress("c", UserProgress(xp=5100, level=9))
        await db.save_user_progress("d", UserProgress(xp=100, level=1))

        board = await leveling.get_leaderboard(10)

        assert [entry['user_id'] for entry in board] == ["b", "c", "a", "d"]

    async def test_limit(self, db, leveling):
        for i in range(8):
            await db.save_user_progress(str(i), UserProgress(xp=i * 100))

        assert len(await leveling.get_leaderboard(5)) == 5

    async def test_rank_position(self, db, leveling):
        await db.save_user_progress("a", UserProgress(xp=100))
        await db.save_user_progress("b", UserProgress(xp=900, level=3))

        assert await leveling.get_rank_position("b") == 1
        assert await leveling.get_rank_position("a") == 2
        assert await leveling.get_rank_position("missing") is None

    async def test_empty(self, leveling):
        assert await leveling.get_leaderboard() == []
