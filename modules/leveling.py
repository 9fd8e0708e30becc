"""
============================================================================
LEVELING SYSTEM
============================================================================
Turns activity into XP and levels.

Features:
- Text XP per message with a per-user cooldown and random bonus
- Voice XP per credited minute, suppressed in the AFK channel
- Prestige XP boost on every gain
- Leaderboard ordered by prestige, level, XP

Every accrual runs under the user's database lock and returns an
AccrualResult instead of raising, so event handlers never crash on a
storage hiccup. A failed write leaves the stored document untouched.
"""

import logging
import random
from typing import Dict, List, Optional

import config
from database import (
    Database, StorageError, CorruptDocumentError,
    AccrualResult, LevelUpEvent, UserProgress,
)
from modules.progression import apply_prestige_boost, level_for, required_xp_for

logger = logging.getLogger(__name__)


class LevelingSystem:
    """
    XP accrual for text and voice activity.

    Usage:
        leveling = LevelingSystem(db)
        result = await leveling.award_message_xp('123', now_ms)
        if result.level_up:
            ...
    """

    def __init__(self, db: Database, rng: Optional[random.Random] = None):
        """
        Args:
            db: Initialized database
            rng: Random source for the message bonus (seed it in tests)
        """
        self.db = db
        self.rng = rng or random.Random()

    # ========================================================================
    # TEXT XP
    # ========================================================================

    async def award_message_xp(self, user_id: str, now: int) -> AccrualResult:
        """
        Award XP for a message if the user's cooldown has passed.

        Args:
            user_id: Discord user ID
            now: Current time in milliseconds

        Returns:
            AccrualResult; reason 'cooldown' when still on cooldown
        """
        try:
            async with self.db.user_lock(user_id):
                settings = await self.db.get_rank_settings()
                progress = await self.db.get_user_progress(user_id)

                if now - progress.last_message_timestamp < settings.cooldown_ms:
                    return AccrualResult(awarded=False, reason='cooldown')

                gain = settings.text_base_amount + self.rng.randint(0, max(settings.text_random_bonus, 0))
                gain = await self._boost(gain, progress)

                old_level = progress.level
                progress.xp += gain
                progress.total_text_xp += gain
                progress.last_message_timestamp = now
                progress.level = level_for(progress.xp, settings)

                await self.db.save_user_progress(user_id, progress)

        except StorageError as e:
            logger.error("Text XP for user %s not saved: %s", user_id, e)
            return AccrualResult(awarded=False, reason='storage_error')
        except CorruptDocumentError as e:
            logger.critical("Text XP for user %s aborted: %s", user_id, e)
            return AccrualResult(awarded=False, reason='corrupt_document')

        logger.debug("User %s gained %d text XP (total %d)", user_id, gain, progress.xp)
        return AccrualResult(
            awarded=True,
            xp_gained=gain,
            level_up=self._level_up(old_level, progress, settings),
        )

    # ========================================================================
    # VOICE XP
    # ========================================================================

    async def accrue_voice_xp(self, user_id: str, minutes: int, is_afk: bool, now: int) -> AccrualResult:
        """
        Convert credited voice minutes into XP.

        Args:
            user_id: Discord user ID
            minutes: Whole minutes to credit
            is_afk: Whether the time was spent in the AFK channel
            now: Current time in milliseconds

        Returns:
            AccrualResult; reason 'afk' when AFK time earns nothing,
            'no_time' when minutes is not positive
        """
        if minutes <= 0:
            return AccrualResult(awarded=False, reason='no_time')

        try:
            async with self.db.user_lock(user_id):
                settings = await self.db.get_rank_settings()

                if is_afk and settings.afk_disabled:
                    return AccrualResult(awarded=False, reason='afk')

                progress = await self.db.get_user_progress(user_id)

                gain = await self._boost(minutes * settings.voice_per_minute, progress)

                old_level = progress.level
                progress.xp += gain
                progress.total_voice_xp += gain
                progress.level = level_for(progress.xp, settings)

                await self.db.save_user_progress(user_id, progress)

        except StorageError as e:
            logger.error("Voice XP (%d min) for user %s not saved: %s", minutes, user_id, e)
            return AccrualResult(awarded=False, reason='storage_error')
        except CorruptDocumentError as e:
            logger.critical("Voice XP for user %s aborted: %s", user_id, e)
            return AccrualResult(awarded=False, reason='corrupt_document')

        logger.debug("User %s gained %d voice XP for %d min at %d", user_id, gain, minutes, now)
        return AccrualResult(
            awarded=True,
            xp_gained=gain,
            level_up=self._level_up(old_level, progress, settings),
        )

    # ========================================================================
    # HELPERS
    # ========================================================================

    async def _boost(self, gain: int, progress: UserProgress) -> int:
        if progress.prestige <= 0:
            return gain
        prestige_settings = await self.db.get_prestige_settings()
        return apply_prestige_boost(gain, progress.prestige, prestige_settings)

    @staticmethod
    def _level_up(old_level: int, progress: UserProgress, settings) -> Optional[LevelUpEvent]:
        if progress.level <= old_level:
            return None
        return LevelUpEvent(
            old_level=old_level,
            new_level=progress.level,
            xp=progress.xp,
            next_required_xp=required_xp_for(progress.level + 1, settings),
        )

    # ========================================================================
    # LEADERBOARD
    # ========================================================================

    async def get_leaderboard(self, limit: Optional[int] = config.LEADERBOARD_DEFAULT) -> List[Dict]:
        """
        Get top users.

        Args:
            limit: Maximum entries (None for everyone)

        Returns:
            List of dicts with user_id, xp, level, prestige sorted by
            prestige, then level, then XP (all descending)
        """
        users = await self.db.get_all_user_progress()

        entries = [
            {
                'user_id': user_id,
                'xp': progress.xp,
                'level': progress.level,
                'prestige': progress.prestige,
            }
            for user_id, progress in users.items()
        ]
        entries.sort(key=lambda e: (e['prestige'], e['level'], e['xp']), reverse=True)
        return entries[:limit]

    async def get_rank_position(self, user_id: str) -> Optional[int]:
        """1-based leaderboard position, or None if the user has no progress."""
        board = await self.get_leaderboard(limit=None)
        for position, entry in enumerate(board, start=1):
            if entry['user_id'] == user_id:
                return position
        return None


# ============================================================================
# SINGLETON INSTANCE
# ============================================================================

_leveling_system: Optional[LevelingSystem] = None


def get_leveling_system(db: Database = None) -> LevelingSystem:
    """Get global leveling system (pass db on first call)."""
    global _leveling_system
    if _leveling_system is None:
        if db is None:
            raise RuntimeError("Leveling system not initialized")
        _leveling_system = LevelingSystem(db)
    return _leveling_system
