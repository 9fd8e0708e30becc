"""
Tests for modules/voice_tracker.py

Join/move/leave checkpoints and the periodic sweep against a fake guild.
"""

from modules.voice_tracker import VoiceSessionTracker, elapsed_minutes
from database import VoiceSession
from tests.conftest import MINUTE, NOW

GUILD = "900"
USER = "1"
AFK = "afk"


# =============================================================================
# Events
# =============================================================================

class TestVoiceEvents:

    async def test_join_move_leave(self, db, tracker):
        assert await tracker.handle_voice_state(USER, GUILD, None, "A", AFK, NOW) is None
        assert USER in tracker

        moved = await tracker.handle_voice_state(USER, GUILD, "A", "B", AFK, NOW + 3 * MINUTE)
        left = await tracker.handle_voice_state(USER, GUILD, "B", None, AFK, NOW + 6 * MINUTE)

        assert moved.minutes == 3
        assert left.minutes == 3
        assert moved.result.xp_gained == 30
        assert left.result.xp_gained == 30
        assert USER not in tracker

        progress = await db.get_user_progress(USER)
        assert progress.total_voice_xp == 60

    async def test_same_channel_update_is_ignored(self, tracker):
        await tracker.handle_voice_state(USER, GUILD, None, "A", AFK, NOW)

        result = await tracker.handle_voice_state(USER, GUILD, "A", "A", AFK, NOW + 10 * MINUTE)

        assert result is None
        assert tracker.get_session(USER).last_accrual_time == NOW

    async def test_join_while_tracked_replaces_session(self, tracker):
        await tracker.on_join(USER, GUILD, "A", NOW)
        await tracker.on_join(USER, GUILD, "B", NOW + 4 * MINUTE)

        session = tracker.get_session(USER)
        assert session.channel_id == "B"
        assert session.join_time == NOW + 4 * MINUTE
        assert len(tracker) == 1

    async def test_leave_without_session(self, db, tracker):
        result = await tracker.handle_voice_state(USER, GUILD, "A", None, AFK, NOW)

        assert result is None
        assert (await db.get_user_progress(USER)).xp == 0

    async def test_leave_under_a_minute_credits_nothing(self, tracker):
        await tracker.on_join(USER, GUILD, "A", NOW)

        assert await tracker.on_leave(USER, False, NOW + 59 * 1000) is None
        assert USER not in tracker

    async def test_move_without_session_starts_one(self, tracker):
        result = await tracker.handle_voice_state(USER, GUILD, "A", "B", AFK, NOW)

        assert result is None
        assert tracker.get_session(USER).channel_id == "B"

    async def test_quick_move_still_advances_checkpoint(self, tracker):
        await tracker.on_join(USER, GUILD, "A", NOW)

        result = await tracker.handle_voice_state(USER, GUILD, "A", "B", AFK, NOW + 30 * 1000)

        assert result is None
        assert tracker.get_session(USER).last_accrual_time == NOW + 30 * 1000

    async def test_leaving_afk_channel_earns_nothing(self, db, tracker):
        await tracker.handle_voice_state(USER, GUILD, None, AFK, AFK, NOW)

        left = await tracker.handle_voice_state(USER, GUILD, AFK, None, AFK, NOW + 10 * MINUTE)

        assert left.is_afk
        assert left.result.reason == 'afk'
        assert (await db.get_user_progress(USER)).xp == 0

    async def test_move_out_of_afk_credits_afk_time_as_afk(self, db, tracker):
        await tracker.handle_voice_state(USER, GUILD, None, AFK, AFK, NOW)
        await tracker.handle_voice_state(USER, GUILD, AFK, "A", AFK, NOW + 10 * MINUTE)
        left = await tracker.handle_voice_state(USER, GUILD, "A", None, AFK, NOW + 12 * MINUTE)

        assert left.minutes == 2
        assert (await db.get_user_progress(USER)).xp == 20


# =============================================================================
# Sweep
# =============================================================================

class TestSweep:

    async def test_credits_connected_users(self, db, tracker, resolver):
        await tracker.on_join(USER, GUILD, "A", NOW)
        resolver.connect(GUILD, USER, "A")

        accruals = await tracker.sweep(NOW + 7 * MINUTE)

        assert [a.minutes for a in accruals] == [7]
        assert tracker.get_session(USER).last_accrual_time == NOW + 7 * MINUTE
        assert (await db.get_user_progress(USER)).total_voice_xp == 70

    async def test_skips_recent_sessions(self, tracker, resolver):
        await tracker.on_join(USER, GUILD, "A", NOW)
        resolver.connect(GUILD, USER, "A")

        assert await tracker.sweep(NOW + 4 * MINUTE) == []
        assert tracker.get_session(USER).last_accrual_time == NOW

    async def test_departed_user_dropped_without_xp(self, db, tracker, resolver):
        await tracker.on_join(USER, GUILD, "A", NOW)

        accruals = await tracker.sweep(NOW + 20 * MINUTE)

        assert accruals == []
        assert USER not in tracker
        assert (await db.get_user_progress(USER)).xp == 0

    async def test_lookup_failure_keeps_session(self, tracker, resolver):
        await tracker.on_join(USER, GUILD, "A", NOW)
        resolver.connect(GUILD, USER, "A")
        resolver.failing = True

        assert await tracker.sweep(NOW + 10 * MINUTE) == []
        assert tracker.get_session(USER).last_accrual_time == NOW

        resolver.failing = False
        accruals = await tracker.sweep(NOW + 15 * MINUTE)
        assert accruals[0].minutes == 15

    async def test_afk_user_checkpointed_without_xp(self, db, tracker, resolver):
        await tracker.on_join(USER, GUILD, AFK, NOW)
        resolver.connect(GUILD, USER, AFK)
        resolver.afk_channels[GUILD] = AFK

        accruals = await tracker.sweep(NOW + 10 * MINUTE)

        assert accruals[0].is_afk
        assert not accruals[0].result.awarded
        assert tracker.get_session(USER).last_accrual_time == NOW + 10 * MINUTE
        assert (await db.get_user_progress(USER)).xp == 0

    async def test_sweep_follows_channel_changes(self, tracker, resolver):
        await tracker.on_join(USER, GUILD, "A", NOW)
        resolver.connect(GUILD, USER, "B")

        await tracker.sweep(NOW + 5 * MINUTE)

        assert tracker.get_session(USER).channel_id == "B"

    async def test_no_resolver(self, leveling):
        tracker = VoiceSessionTracker(leveling)
        await tracker.on_join(USER, GUILD, "A", NOW)

        assert await tracker.sweep(NOW + 60 * MINUTE) == []
        assert USER in tracker

    async def test_sweep_then_leave_does_not_double_count(self, db, tracker, resolver):
        await tracker.on_join(USER, GUILD, "A", NOW)
        resolver.connect(GUILD, USER, "A")

        await tracker.sweep(NOW + 6 * MINUTE)
        left = await tracker.on_leave(USER, False, NOW + 8 * MINUTE)

        assert left.minutes == 2
        assert (await db.get_user_progress(USER)).total_voice_xp == 80

    async def test_session_just_inside_window_waits_for_next_sweep(self, db, tracker, resolver):
        await tracker.on_join(USER, GUILD, "A", NOW)
        resolver.connect(GUILD, USER, "A")

        assert await tracker.sweep(NOW + 5 * MINUTE - 1) == []
        accruals = await tracker.sweep(NOW + 10 * MINUTE)

        assert [a.minutes for a in accruals] == [10]
        assert (await db.get_user_progress(USER)).total_voice_xp == 100


# =============================================================================
# Storage failures
# =============================================================================

class TestStorageFailure:

    async def test_failed_sweep_keeps_checkpoint(self, db, tracker, resolver):
        await tracker.on_join(USER, GUILD, "A", NOW)
        resolver.connect(GUILD, USER, "A")

        await db.close()
        accruals = await tracker.sweep(NOW + 10 * MINUTE)

        assert accruals[0].result.reason == 'storage_error'
        assert tracker.get_session(USER).last_accrual_time == NOW

        await db.initialize()
        accruals = await tracker.sweep(NOW + 15 * MINUTE)

        assert accruals[0].minutes == 15
        assert accruals[0].result.xp_gained == 150
        assert (await db.get_user_progress(USER)).total_voice_xp == 150

    async def test_failed_move_keeps_checkpoint(self, db, tracker):
        await tracker.on_join(USER, GUILD, "A", NOW)

        await db.close()
        moved = await tracker.on_move(USER, GUILD, "B", False, NOW + 10 * MINUTE)

        assert moved.result.reason == 'storage_error'
        session = tracker.get_session(USER)
        assert session.channel_id == "B"
        assert session.last_accrual_time == NOW

        await db.initialize()
        left = await tracker.on_leave(USER, False, NOW + 12 * MINUTE)

        assert left.minutes == 12
        assert (await db.get_user_progress(USER)).total_voice_xp == 120


# =============================================================================
# Per-user locks
# =============================================================================

class TestLocks:

    async def test_lock_kept_while_session_exists(self, tracker):
        await tracker.on_join(USER, GUILD, "A", NOW)

        assert USER in tracker._locks

    async def test_lock_released_on_leave(self, tracker):
        await tracker.on_join(USER, GUILD, "A", NOW)
        await tracker.on_leave(USER, False, NOW + 3 * MINUTE)

        assert USER not in tracker._locks
        assert tracker._lock_users == {}

    async def test_lock_released_when_sweep_drops_session(self, tracker, resolver):
        await tracker.on_join(USER, GUILD, "A", NOW)

        await tracker.sweep(NOW + 20 * MINUTE)

        assert USER not in tracker
        assert USER not in tracker._locks

    async def test_leave_without_session_leaves_no_lock(self, tracker):
        await tracker.on_leave(USER, False, NOW)

        assert tracker._locks == {}


# =============================================================================
# elapsed_minutes()
# =============================================================================

class TestElapsedMinutes:

    def test_floors_partial_minutes(self):
        session = VoiceSession(guild_id=GUILD, channel_id="A", join_time=NOW, last_accrual_time=NOW)
        assert elapsed_minutes(session, NOW + 2 * MINUTE + 59 * 1000) == 2

    def test_clock_going_backwards(self):
        session = VoiceSession(guild_id=GUILD, channel_id="A", join_time=NOW, last_accrual_time=NOW)
        assert elapsed_minutes(session, NOW - MINUTE) == 0
