"""
Tests for modules/statistics.py
"""

from datetime import datetime, timezone

from database import Database
from modules.statistics import day_key, month_key, prune_stats, to_datetime, week_key
from tests.conftest import MINUTE, NOW

DAY = 24 * 60 * MINUTE


# =============================================================================
# Date keys
# =============================================================================

class TestDateKeys:

    def test_keys_for_now(self):
        dt = to_datetime(NOW)
        assert day_key(dt) == "2024-03-15"
        assert week_key(dt) == "2024-W11"
        assert month_key(dt) == "2024-03"

    def test_iso_week_year_differs_from_calendar_year(self):
        assert week_key(datetime(2021, 1, 1, tzinfo=timezone.utc)) == "2020-W53"
        assert week_key(datetime(2024, 12, 30, tzinfo=timezone.utc)) == "2025-W01"

    def test_dates_are_utc(self):
        # 23:30 UTC on the 15th
        assert day_key(to_datetime(NOW + 11 * 60 * MINUTE + 30 * MINUTE)) == "2024-03-15"


# =============================================================================
# Pruning
# =============================================================================

class TestPrune:

    def test_drops_old_buckets(self):
        section = {
            'total': 10,
            'daily': {"2024-02-13": 1, "2024-02-14": 1, "2024-03-15": 1},
            'weekly': {"2023-W50": 1, "2023-W51": 1, "2024-W11": 1},
            'monthly': {"2023-02": 1, "2023-03": 1, "2024-03": 1},
        }

        prune_stats(section, to_datetime(NOW))

        assert list(section['daily']) == ["2024-02-14", "2024-03-15"]
        assert list(section['weekly']) == ["2023-W51", "2024-W11"]
        assert list(section['monthly']) == ["2023-03", "2024-03"]
        assert section['total'] == 10

    def test_missing_buckets(self):
        section = {'total': 0}
        prune_stats(section, to_datetime(NOW))
        assert section == {'total': 0}


# =============================================================================
# Updates
# =============================================================================

class TestUpdates:

    async def test_message_counts(self, statistics):
        assert await statistics.update_message_stats("1", NOW)
        assert await statistics.update_message_stats("1", NOW + MINUTE)

        stats = await statistics.get_user_statistics("1")
        assert stats['messages']['total'] == 2
        assert stats['messages']['daily'] == {"2024-03-15": 2}
        assert stats['messages']['weekly'] == {"2024-W11": 2}
        assert stats['messages']['monthly'] == {"2024-03": 2}

    async def test_voice_minutes(self, statistics):
        assert await statistics.update_voice_stats("1", 25, NOW)

        stats = await statistics.get_user_statistics("1")
        assert stats['voice']['totalMinutes'] == 25
        assert stats['voice']['daily'] == {"2024-03-15": 25}

    async def test_voice_without_minutes_is_ignored(self, db, statistics):
        assert not await statistics.update_voice_stats("1", 0, NOW)
        assert await db.get_document(Database.STATISTICS, "1") is None

    async def test_command_counts(self, statistics):
        await statistics.update_command_stats("1", "rank")
        await statistics.update_command_stats("1", "rank")
        await statistics.update_command_stats("1", "stats")

        commands = (await statistics.get_user_statistics("1"))['commands']
        assert commands['total'] == 3
        assert commands['types'] == {"rank": 2, "stats": 1}

    async def test_old_days_pruned_on_update(self, statistics):
        await statistics.update_message_stats("1", NOW - 40 * DAY)
        await statistics.update_message_stats("1", NOW)

        stats = await statistics.get_user_statistics("1")
        assert stats['messages']['total'] == 2
        assert list(stats['messages']['daily']) == ["2024-03-15"]

    async def test_storage_failure_returns_false(self, db, statistics):
        await db.close()
        assert not await statistics.update_message_stats("1", NOW)

    async def test_corrupt_document_returns_false(self, db, statistics):
        await db.put_document(Database.STATISTICS, "1", ["not", "an", "object"])
        assert not await statistics.update_message_stats("1", NOW)


# =============================================================================
# Recent stats
# =============================================================================

class TestRecentStats:

    async def test_window(self, statistics):
        await statistics.update_message_stats("1", NOW)
        await statistics.update_message_stats("1", NOW - DAY)
        await statistics.update_message_stats("1", NOW - 10 * DAY)
        await statistics.update_voice_stats("1", 30, NOW - 2 * DAY)

        recent = await statistics.get_recent_stats("1", days=7, now=NOW)

        assert recent['messages']['total'] == 2
        assert len(recent['messages']['daily']) == 7
        assert recent['messages']['daily']["2024-03-14"] == 1
        assert recent['voice']['totalMinutes'] == 30
        assert recent['voice']['daily']["2024-03-13"] == 30

    async def test_days_are_clamped(self, statistics):
        assert len((await statistics.get_recent_stats("1", days=0, now=NOW))['messages']['daily']) == 1
        assert len((await statistics.get_recent_stats("1", days=90, now=NOW))['voice']['daily']) == 30

    async def test_unknown_user(self, statistics):
        recent = await statistics.get_recent_stats("nobody", days=3, now=NOW)
        assert recent['messages']['total'] == 0
        assert recent['voice']['totalMinutes'] == 0
