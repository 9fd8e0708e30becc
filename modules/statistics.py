"""
============================================================================
ACTIVITY STATISTICS
============================================================================
Per-user message, voice and command counters.

Document shape (one per user):
    messages: {total, daily{YYYY-MM-DD}, weekly{YYYY-Www}, monthly{YYYY-MM}}
    voice:    {totalMinutes, daily, weekly, monthly}
    commands: {total, types{name: count}}

Buckets older than 30 days / 12 ISO weeks / 12 months are pruned on
every update. Dates are UTC.
"""

import copy
import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

import config
from database import Database, DatabaseError, CorruptDocumentError

logger = logging.getLogger(__name__)


DEFAULT_STATISTICS = {
    'messages': {'total': 0, 'daily': {}, 'weekly': {}, 'monthly': {}},
    'voice': {'totalMinutes': 0, 'daily': {}, 'weekly': {}, 'monthly': {}},
    'commands': {'total': 0, 'types': {}},
}


# ============================================================================
# DATE KEYS
# ============================================================================

def to_datetime(now_ms: int) -> datetime:
    return datetime.fromtimestamp(now_ms / 1000, tz=timezone.utc)


def day_key(dt: datetime) -> str:
    return dt.strftime('%Y-%m-%d')


def week_key(dt: datetime) -> str:
    """ISO week, e.g. 2024-W01 (the ISO year can differ from the calendar year)."""
    iso_year, iso_week, _ = dt.isocalendar()
    return f"{iso_year}-W{iso_week:02d}"


def month_key(dt: datetime) -> str:
    return dt.strftime('%Y-%m')


def _months_back(dt: datetime, months: int) -> str:
    index = dt.year * 12 + (dt.month - 1) - months
    return f"{index // 12}-{index % 12 + 1:02d}"


def prune_stats(section: Dict, now: datetime):
    """
    Drop daily/weekly/monthly buckets outside the retention window.

    Keys are zero-padded so plain string comparison orders them.
    """
    day_cutoff = day_key(now - timedelta(days=config.STATS_KEEP_DAYS))
    week_cutoff = week_key(now - timedelta(weeks=config.STATS_KEEP_WEEKS))
    month_cutoff = _months_back(now, config.STATS_KEEP_MONTHS)

    for bucket, cutoff in (('daily', day_cutoff), ('weekly', week_cutoff), ('monthly', month_cutoff)):
        entries = section.get(bucket)
        if not entries:
            continue
        for key in [k for k in entries if k < cutoff]:
            del entries[key]


class ActivityStatistics:
    """
    Message/voice/command usage tracking.

    Update methods log and return False on storage errors instead of
    raising, since statistics must never block XP or commands.
    """

    def __init__(self, db: Database):
        self.db = db

    # ========================================================================
    # STORAGE
    # ========================================================================

    async def get_user_statistics(self, user_id: str) -> Dict:
        """
        Load a user's statistics, filling in missing sections.

        Raises:
            StorageError: the read failed
            CorruptDocumentError: the stored document is not an object
        """
        data = await self.db.get_document(Database.STATISTICS, user_id)
        stats = copy.deepcopy(DEFAULT_STATISTICS)
        if data is None:
            return stats

        if not isinstance(data, dict):
            raise CorruptDocumentError(Database.STATISTICS, user_id, "statistics must be an object")

        for section, defaults in stats.items():
            stored = data.get(section)
            if isinstance(stored, dict):
                defaults.update(stored)
        return stats

    async def _update(self, user_id: str, mutate) -> bool:
        try:
            async with self.db.user_lock(f"stats:{user_id}"):
                stats = await self.get_user_statistics(user_id)
                mutate(stats)
                await self.db.put_document(Database.STATISTICS, user_id, stats)
        except DatabaseError as e:
            logger.error("Statistics update for user %s failed: %s", user_id, e)
            return False
        return True

    # ========================================================================
    # UPDATES
    # ========================================================================

    @staticmethod
    def _bump(section: Dict, total_field: str, amount: int, now_ms: int):
        dt = to_datetime(now_ms)
        section[total_field] = section.get(total_field, 0) + amount

        for bucket, key in (('daily', day_key(dt)), ('weekly', week_key(dt)), ('monthly', month_key(dt))):
            entries = section.setdefault(bucket, {})
            entries[key] = entries.get(key, 0) + amount

        prune_stats(section, dt)

    async def update_message_stats(self, user_id: str, now: int) -> bool:
        """Count one message."""
        return await self._update(
            user_id, lambda stats: self._bump(stats['messages'], 'total', 1, now)
        )

    async def update_voice_stats(self, user_id: str, minutes: int, now: int) -> bool:
        """
        Add voice minutes.

        Counted for AFK time too; only XP is suppressed there.
        """
        if minutes <= 0:
            return False
        return await self._update(
            user_id, lambda stats: self._bump(stats['voice'], 'totalMinutes', minutes, now)
        )

    async def update_command_stats(self, user_id: str, command_name: str) -> bool:
        """Count one use of a slash command."""
        def mutate(stats):
            commands = stats['commands']
            commands['total'] = commands.get('total', 0) + 1
            types = commands.setdefault('types', {})
            types[command_name] = types.get(command_name, 0) + 1

        return await self._update(user_id, mutate)

    # ========================================================================
    # QUERIES
    # ========================================================================

    async def get_recent_stats(self, user_id: str, days: int = 7, now: Optional[int] = None) -> Dict:
        """
        Per-day totals for the last `days` days (today included).

        Args:
            user_id: Discord user ID
            days: Days to look back (clamped to 1..STATS_MAX_LOOKBACK_DAYS)
            now: Current time in milliseconds (defaults to the wall clock)

        Returns:
            Dict with messages{total, daily} and voice{totalMinutes, daily}
        """
        days = max(1, min(days, config.STATS_MAX_LOOKBACK_DAYS))
        if now is None:
            now = int(datetime.now(timezone.utc).timestamp() * 1000)

        stats = await self.get_user_statistics(user_id)
        today = to_datetime(now)

        result = {
            'messages': {'total': 0, 'daily': {}},
            'voice': {'totalMinutes': 0, 'daily': {}},
        }

        for offset in range(days):
            day = day_key(today - timedelta(days=offset))

            count = stats['messages']['daily'].get(day, 0)
            result['messages']['daily'][day] = count
            result['messages']['total'] += count

            minutes = stats['voice']['daily'].get(day, 0)
            result['voice']['daily'][day] = minutes
            result['voice']['totalMinutes'] += minutes

        return result


# ============================================================================
# SINGLETON INSTANCE
# ============================================================================

_statistics: Optional[ActivityStatistics] = None


def get_statistics(db: Database = None) -> ActivityStatistics:
    """Get global statistics tracker (pass db on first call)."""
    global _statistics
    if _statistics is None:
        if db is None:
            raise RuntimeError("Statistics not initialized")
        _statistics = ActivityStatistics(db)
    return _statistics
