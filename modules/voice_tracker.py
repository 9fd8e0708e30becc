"""
============================================================================
VOICE SESSION TRACKER
============================================================================
Keeps one in-memory session per user connected to voice and turns the
time spent into XP at checkpoints: leave, move and the periodic sweep.

Session lifecycle:
    join   -> session created (an existing one is replaced and logged)
    move   -> time in the old channel credited, session moved to the new one
    leave  -> time since the last checkpoint credited, session removed
    sweep  -> sessions older than 5 minutes re-checked against the live
              guild; credited if still in voice, dropped without XP if not

Sessions are never persisted. A restart loses them, and time that was
never checkpointed is not backfilled.

Lock order: the tracker's per-user lock is taken before the database's
per-user lock (taken inside LevelingSystem).
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Dict, List, Optional

import config
from database import VoiceAccrual, VoiceSession
from modules.leveling import LevelingSystem

logger = logging.getLogger(__name__)

MS_PER_MINUTE = 60 * 1000


class GuildLookupError(Exception):
    """Live voice state could not be fetched from the guild."""


class GuildResolver:
    """
    Live voice-state lookups used by the sweep.

    The bot provides an implementation backed by the Discord cache;
    tests provide a fake.
    """

    async def current_channel(self, guild_id: str, user_id: str) -> Optional[str]:
        """Voice channel the user is in right now, or None."""
        raise NotImplementedError

    async def is_afk_channel(self, guild_id: str, channel_id: str) -> bool:
        raise NotImplementedError


def elapsed_minutes(session: VoiceSession, now: int) -> int:
    """Whole minutes since the session's last checkpoint."""
    return max(now - session.last_accrual_time, 0) // MS_PER_MINUTE


def _failed(accrual: Optional[VoiceAccrual]) -> bool:
    return accrual is not None and accrual.result.failed


class VoiceSessionTracker:
    """
    Owns the user -> VoiceSession map.

    Usage:
        tracker = VoiceSessionTracker(leveling, resolver)
        accrual = await tracker.handle_voice_state(user_id, guild_id, old_id, new_id, afk_id, now)
        accruals = await tracker.sweep(now)
    """

    def __init__(
        self,
        leveling: LevelingSystem,
        resolver: Optional[GuildResolver] = None,
        min_sweep_elapsed_ms: int = config.VOICE_SWEEP_MIN_ELAPSED_MS
    ):
        self.leveling = leveling
        self.resolver = resolver
        self.min_sweep_elapsed_ms = min_sweep_elapsed_ms
        self._sessions: Dict[str, VoiceSession] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    @asynccontextmanager
    async def _lock(self, user_id: str):
        """
        Per-user lock, dropped again once the user has no session and
        nobody holds or waits for it.
        """
        lock = self._locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[user_id] = lock
        self._lock_users[user_id] = self._lock_users.get(user_id, 0) + 1

        try:
            async with lock:
                yield
        finally:
            self._lock_users[user_id] -= 1
            if self._lock_users[user_id] == 0:
                del self._lock_users[user_id]
                if user_id not in self._sessions:
                    del self._locks[user_id]

    # ========================================================================
    # INSPECTION
    # ========================================================================

    def get_session(self, user_id: str) -> Optional[VoiceSession]:
        return self._sessions.get(user_id)

    def __contains__(self, user_id: str) -> bool:
        return user_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    # ========================================================================
    # EVENTS
    # ========================================================================

    async def handle_voice_state(
        self,
        user_id: str,
        guild_id: str,
        old_channel_id: Optional[str],
        new_channel_id: Optional[str],
        afk_channel_id: Optional[str],
        now: int
    ) -> Optional[VoiceAccrual]:
        """
        Route a voice state update to join, leave or move.

        Mute/deafen updates (same channel before and after) are ignored.

        Args:
            user_id: Discord user ID
            guild_id: Guild the update came from
            old_channel_id: Channel before the update (None if not in voice)
            new_channel_id: Channel after the update (None if left voice)
            afk_channel_id: Guild's AFK channel (None if unset)
            now: Current time in milliseconds

        Returns:
            VoiceAccrual when time was credited, else None
        """
        if old_channel_id == new_channel_id:
            return None

        was_afk = afk_channel_id is not None and old_channel_id == afk_channel_id

        if old_channel_id is None:
            await self.on_join(user_id, guild_id, new_channel_id, now)
            return None

        if new_channel_id is None:
            return await self.on_leave(user_id, was_afk, now)

        return await self.on_move(user_id, guild_id, new_channel_id, was_afk, now)

    async def on_join(self, user_id: str, guild_id: str, channel_id: str, now: int):
        """Start tracking a user who connected to voice."""
        async with self._lock(user_id):
            existing = self._sessions.get(user_id)
            if existing is not None:
                logger.warning(
                    "User %s joined %s while tracked in %s; replacing session",
                    user_id, channel_id, existing.channel_id
                )

            self._sessions[user_id] = VoiceSession(
                guild_id=guild_id,
                channel_id=channel_id,
                join_time=now,
                last_accrual_time=now,
            )

    async def on_leave(self, user_id: str, was_afk: bool, now: int) -> Optional[VoiceAccrual]:
        """
        Credit time since the last checkpoint and stop tracking.

        Args:
            user_id: Discord user ID
            was_afk: Whether the channel being left is the AFK channel
            now: Current time in milliseconds
        """
        async with self._lock(user_id):
            session = self._sessions.pop(user_id, None)
            if session is None:
                logger.warning("User %s left voice without a tracked session", user_id)
                return None

            return await self._accrue(user_id, session, was_afk, now)

    async def on_move(
        self,
        user_id: str,
        guild_id: str,
        new_channel_id: str,
        was_afk: bool,
        now: int
    ) -> Optional[VoiceAccrual]:
        """
        Credit time in the old channel and continue in the new one.

        A move without a session (missed join) starts a fresh session.
        The checkpoint moves to `now` even when less than a minute passed,
        but stays put when the XP could not be saved.
        """
        async with self._lock(user_id):
            session = self._sessions.get(user_id)
            if session is None:
                logger.info("User %s moved to %s with no session; starting one", user_id, new_channel_id)
                self._sessions[user_id] = VoiceSession(
                    guild_id=guild_id,
                    channel_id=new_channel_id,
                    join_time=now,
                    last_accrual_time=now,
                )
                return None

            accrual = await self._accrue(user_id, session, was_afk, now)

            session.guild_id = guild_id
            session.channel_id = new_channel_id
            if not _failed(accrual):
                session.last_accrual_time = now
            return accrual

    # ========================================================================
    # PERIODIC SWEEP
    # ========================================================================

    async def sweep(self, now: int) -> List[VoiceAccrual]:
        """
        Checkpoint every session idle for at least the sweep window.

        Users no longer in voice lose their session and get nothing for
        the unaccounted time. A failed guild lookup skips the user until
        the next sweep.

        Args:
            now: Current time in milliseconds

        Returns:
            Accruals made during this sweep
        """
        if self.resolver is None:
            logger.warning("Voice sweep skipped: no guild resolver configured")
            return []

        accruals = []

        for user_id in list(self._sessions):
            session = self._sessions.get(user_id)
            if session is None or now - session.last_accrual_time < self.min_sweep_elapsed_ms:
                continue

            async with self._lock(user_id):
                # An event may have checkpointed or removed it meanwhile
                session = self._sessions.get(user_id)
                if session is None or now - session.last_accrual_time < self.min_sweep_elapsed_ms:
                    continue

                try:
                    channel_id = await self.resolver.current_channel(session.guild_id, user_id)
                    is_afk = False
                    if channel_id is not None:
                        is_afk = await self.resolver.is_afk_channel(session.guild_id, channel_id)
                except GuildLookupError as e:
                    logger.error("Voice sweep lookup for user %s failed: %s", user_id, e)
                    continue

                if channel_id is None:
                    del self._sessions[user_id]
                    logger.info("User %s no longer in voice; session dropped", user_id)
                    continue

                accrual = await self._accrue(user_id, session, is_afk, now)

                session.channel_id = channel_id
                # Unsaved minutes are retried by the next sweep
                if not _failed(accrual):
                    session.last_accrual_time = now

                if accrual is not None:
                    accruals.append(accrual)

        if accruals:
            logger.debug("Voice sweep credited %d session(s)", len(accruals))
        return accruals

    # ========================================================================
    # HELPERS
    # ========================================================================

    async def _accrue(self, user_id: str, session: VoiceSession, is_afk: bool, now: int) -> Optional[VoiceAccrual]:
        minutes = elapsed_minutes(session, now)
        if minutes <= 0:
            return None

        result = await self.leveling.accrue_voice_xp(user_id, minutes, is_afk, now)
        return VoiceAccrual(
            user_id=user_id,
            guild_id=session.guild_id,
            minutes=minutes,
            is_afk=is_afk,
            result=result,
        )
