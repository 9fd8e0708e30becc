"""
============================================================================
MODERATION SYSTEM
============================================================================
Infraction records and moderation settings.

Each user's infractions are stored as one list document:
    {id, type, reason, moderatorId, timestamp, active, duration?, expiresAt?}

Timestamps and durations are milliseconds. Discord side effects (roles,
bans, log embeds, DMs) live in commands/mod_commands.py; this module
only keeps the records.
"""

import logging
import random
import string
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

import config
from database import Database, CorruptDocumentError

logger = logging.getLogger(__name__)

BASE36 = string.digits + string.ascii_lowercase


def to_base36(value: int) -> str:
    if value == 0:
        return '0'
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(BASE36[remainder])
    return ''.join(reversed(digits))


def generate_infraction_id(now: int, rng: random.Random = None) -> str:
    """Base-36 timestamp followed by 5 random base-36 characters."""
    rng = rng or random
    return to_base36(now) + ''.join(rng.choice(BASE36) for _ in range(5))


def infraction_color(infraction_type: str) -> int:
    return config.INFRACTION_COLORS.get(infraction_type.lower(), config.DEFAULT_INFRACTION_COLOR)


class ModerationSystem:
    """
    Infraction CRUD and moderation settings.

    Usage:
        moderation = ModerationSystem(db)
        infraction = await moderation.create_infraction('123', 'warn', 'spam', '456', now=now_ms)
    """

    def __init__(self, db: Database, rng: Optional[random.Random] = None):
        self.db = db
        self.rng = rng or random.Random()

    # ========================================================================
    # STORAGE HELPERS
    # ========================================================================

    async def _load(self, user_id: str) -> List[Dict]:
        data = await self.db.get_document(Database.INFRACTIONS, user_id)
        if data is None:
            return []
        if not isinstance(data, list):
            raise CorruptDocumentError(Database.INFRACTIONS, user_id, "infractions must be a list")
        return data

    async def _save(self, user_id: str, infractions: List[Dict]):
        await self.db.put_document(Database.INFRACTIONS, user_id, infractions)

    # ========================================================================
    # INFRACTIONS
    # ========================================================================

    async def create_infraction(
        self,
        user_id: str,
        infraction_type: str,
        reason: str,
        moderator_id: str,
        duration: int = None,
        now: int = 0
    ) -> Dict:
        """
        Record a new infraction.

        Args:
            user_id: Target user ID
            infraction_type: warn, mute, unmute, kick, ban, unban
            reason: Reason given by the moderator
            moderator_id: Moderator user ID
            duration: Length in milliseconds for temporary actions
            now: Current time in milliseconds

        Returns:
            The stored infraction
        """
        if infraction_type not in config.INFRACTION_TYPES:
            raise ValueError(f"unknown infraction type: {infraction_type}")

        infraction = {
            'id': generate_infraction_id(now, self.rng),
            'type': infraction_type,
            'reason': reason,
            'moderatorId': moderator_id,
            'timestamp': now,
            'active': True,
        }
        if duration:
            infraction['duration'] = duration
            infraction['expiresAt'] = now + duration

        async with self.db.user_lock(f"infractions:{user_id}"):
            infractions = await self._load(user_id)
            infractions.append(infraction)
            await self._save(user_id, infractions)

        logger.info("Infraction %s (%s) recorded for user %s by %s",
                    infraction['id'], infraction_type, user_id, moderator_id)
        return infraction

    async def get_user_infractions(
        self,
        user_id: str,
        infraction_type: str = None,
        active_only: bool = False
    ) -> List[Dict]:
        """
        Get a user's infractions, newest first.

        Args:
            user_id: Target user ID
            infraction_type: Only this type (None for all)
            active_only: Only active infractions
        """
        infractions = await self._load(user_id)

        if infraction_type:
            infractions = [i for i in infractions if i.get('type') == infraction_type]
        if active_only:
            infractions = [i for i in infractions if i.get('active')]

        return sorted(infractions, key=lambda i: i.get('timestamp', 0), reverse=True)

    async def get_infraction_by_id(self, infraction_id: str) -> Optional[Tuple[str, Dict]]:
        """Find an infraction across all users. Returns (user_id, infraction) or None."""
        documents = await self.db.list_documents(Database.INFRACTIONS)
        for user_id, infractions in documents.items():
            if not isinstance(infractions, list):
                continue
            for infraction in infractions:
                if infraction.get('id') == infraction_id:
                    return user_id, infraction
        return None

    async def update_infraction_status(self, infraction_id: str, active: bool) -> bool:
        """
        Set an infraction's active flag.

        Returns:
            True if the infraction was found and updated
        """
        found = await self.get_infraction_by_id(infraction_id)
        if found is None:
            return False

        user_id, _ = found
        async with self.db.user_lock(f"infractions:{user_id}"):
            infractions = await self._load(user_id)
            for infraction in infractions:
                if infraction.get('id') == infraction_id:
                    infraction['active'] = active
                    await self._save(user_id, infractions)
                    return True
        return False

    async def deactivate_infractions(self, user_id: str, infraction_type: str) -> int:
        """
        Mark every active infraction of a type inactive (e.g. mutes on unmute).

        Returns:
            Number of infractions changed
        """
        async with self.db.user_lock(f"infractions:{user_id}"):
            infractions = await self._load(user_id)
            changed = 0
            for infraction in infractions:
                if infraction.get('type') == infraction_type and infraction.get('active'):
                    infraction['active'] = False
                    changed += 1
            if changed:
                await self._save(user_id, infractions)
        return changed

    async def count_user_infractions(self, user_id: str) -> Dict[str, int]:
        """Counts by type plus total and active."""
        infractions = await self._load(user_id)
        counts = {'total': len(infractions), 'warn': 0, 'mute': 0, 'kick': 0, 'ban': 0, 'active': 0}

        for infraction in infractions:
            infraction_type = str(infraction.get('type', '')).lower()
            if infraction_type in counts and infraction_type not in ('total', 'active'):
                counts[infraction_type] += 1
            if infraction.get('active'):
                counts['active'] += 1

        return counts

    async def get_expired_infractions(self, now: int) -> List[Tuple[str, Dict]]:
        """
        Active infractions whose expiry has passed. Nothing is changed.

        Args:
            now: Current time in milliseconds

        Returns:
            (user_id, infraction) pairs
        """
        expired = []
        documents = await self.db.list_documents(Database.INFRACTIONS)

        for user_id, stored in documents.items():
            if not isinstance(stored, list):
                continue
            expired.extend((user_id, i) for i in stored if self._is_expired(i, now))

        return expired

    async def expire_infractions(
        self,
        now: int,
        lift: Callable[[str, Dict], Awaitable[bool]]
    ) -> List[Tuple[str, Dict]]:
        """
        Close expired infractions once their Discord side effect is undone.

        `lift` is awaited for each expired record and returns True when the
        mute or ban was removed (or there was nothing left to remove). A
        record whose lift returns False stays active and is offered again
        on the next call.

        Args:
            now: Current time in milliseconds
            lift: async (user_id, infraction) -> bool

        Returns:
            (user_id, infraction) pairs that were closed
        """
        closed = []

        for user_id, infraction in await self.get_expired_infractions(now):
            if not await lift(user_id, infraction):
                logger.warning(
                    "Expired %s %s for user %s not lifted; retrying next check",
                    infraction.get('type'), infraction.get('id'), user_id
                )
                continue

            if await self._close(user_id, infraction['id']):
                infraction['active'] = False
                closed.append((user_id, infraction))

        if closed:
            logger.info("%d infraction(s) expired", len(closed))
        return closed

    async def _close(self, user_id: str, infraction_id: str) -> bool:
        async with self.db.user_lock(f"infractions:{user_id}"):
            infractions = await self._load(user_id)
            for infraction in infractions:
                if infraction.get('id') == infraction_id and infraction.get('active'):
                    infraction['active'] = False
                    await self._save(user_id, infractions)
                    return True
        return False

    @staticmethod
    def _is_expired(infraction: Dict, now: int) -> bool:
        expires_at = infraction.get('expiresAt')
        return bool(infraction.get('active')) and expires_at is not None and expires_at <= now

    # ========================================================================
    # SETTINGS
    # ========================================================================

    async def get_settings(self) -> Dict:
        settings = dict(config.DEFAULT_MODERATION_SETTINGS)
        stored = await self.db.get_setting('moderation', {})
        if isinstance(stored, dict):
            settings.update(stored)
        return settings

    async def update_settings(self, **changes) -> Dict:
        """
        Merge changes into the moderation settings.

        Returns:
            The updated settings
        """
        unknown = set(changes) - set(config.DEFAULT_MODERATION_SETTINGS)
        if unknown:
            raise ValueError(f"unknown moderation settings: {', '.join(sorted(unknown))}")

        settings = await self.get_settings()
        settings.update(changes)
        await self.db.set_setting('moderation', settings)
        return settings


# ============================================================================
# SINGLETON INSTANCE
# ============================================================================

_moderation: Optional[ModerationSystem] = None


def get_moderation_system(db: Database = None) -> ModerationSystem:
    """Get global moderation system (pass db on first call)."""
    global _moderation
    if _moderation is None:
        if db is None:
            raise RuntimeError("Moderation system not initialized")
        _moderation = ModerationSystem(db)
    return _moderation
