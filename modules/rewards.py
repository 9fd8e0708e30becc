"""
============================================================================
REWARD DISPATCHER
============================================================================
Works out which rewards a level change unlocks:
- Role rewards: every configured level at or below the new level
- Prestige: the highest tier whose required level has been reached

Role rewards are never marked as applied here. The member's current
roles are the record of what was granted, so callers filter against
them before adding.
"""

import logging
from typing import Optional, Set

from database import (
    Database, StorageError, CorruptDocumentError,
    PrestigeChange, PrestigeSettings, RankSettings,
)

logger = logging.getLogger(__name__)


def role_rewards_for_level(level: int, settings: RankSettings) -> Set[str]:
    """Role IDs configured for any level from 1 up to `level`."""
    return {
        role_id
        for required_level, role_id in settings.role_rewards.items()
        if required_level <= level and role_id
    }


def eligible_prestige(level: int, prestige_settings: PrestigeSettings) -> int:
    """Highest tier whose required level is reached (0 if none)."""
    eligible = [t.tier for t in prestige_settings.ordered() if t.required_level <= level]
    return max(eligible, default=0)


class RewardDispatcher:
    """Resolves role and prestige rewards after a level change."""

    def __init__(self, db: Database):
        self.db = db

    async def resolve_role_rewards(self, user_id: str, new_level: int) -> Set[str]:
        """
        Role rewards the user qualifies for at `new_level`.

        Calling this twice with the same level returns the same set.

        Args:
            user_id: Discord user ID (for logging)
            new_level: Level just reached

        Returns:
            Set of role IDs (empty when none are configured or settings are unreadable)
        """
        try:
            settings = await self.db.get_rank_settings()
        except (StorageError, CorruptDocumentError) as e:
            logger.error("Cannot load role rewards for user %s: %s", user_id, e)
            return set()

        return role_rewards_for_level(new_level, settings)

    async def resolve_prestige(self, user_id: str, new_level: int) -> Optional[PrestigeChange]:
        """
        Promote the user's stored prestige if `new_level` unlocks a higher tier.

        Prestige never decreases.

        Args:
            user_id: Discord user ID
            new_level: Level just reached

        Returns:
            PrestigeChange if the stored prestige went up, else None
        """
        try:
            prestige_settings = await self.db.get_prestige_settings()
            target = eligible_prestige(new_level, prestige_settings)
            if target == 0:
                return None

            async with self.db.user_lock(user_id):
                progress = await self.db.get_user_progress(user_id)
                if target <= progress.prestige:
                    return None

                old_prestige = progress.prestige
                progress.prestige = target
                await self.db.save_user_progress(user_id, progress)

        except StorageError as e:
            logger.error("Prestige update for user %s failed: %s", user_id, e)
            return None
        except CorruptDocumentError as e:
            logger.critical("Prestige update for user %s aborted: %s", user_id, e)
            return None

        tier = prestige_settings.get(target)
        logger.info("User %s reached prestige %d (%s)", user_id, target, tier.name)
        return PrestigeChange(old_prestige=old_prestige, new_prestige=target, config=tier)
