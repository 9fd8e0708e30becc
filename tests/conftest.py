"""
Heaven Bot - Test Fixtures
==========================

Shared fixtures for all tests. Every test gets its own SQLite file, so
nothing touches data/ and tests never see each other's documents.
"""

import random
from typing import Dict, Optional, Tuple

import pytest

from database import Database
from modules.leveling import LevelingSystem
from modules.moderation import ModerationSystem
from modules.rewards import RewardDispatcher
from modules.statistics import ActivityStatistics
from modules.voice_tracker import GuildLookupError, GuildResolver, VoiceSessionTracker

# 2024-03-15 12:00:00 UTC
NOW = 1710504000000
MINUTE = 60 * 1000


class FakeResolver(GuildResolver):
    """Guild lookups answered from a dict; set `failing` to simulate an outage."""

    def __init__(self):
        self.channels: Dict[Tuple[str, str], str] = {}
        self.afk_channels: Dict[str, str] = {}
        self.failing = False

    def connect(self, guild_id: str, user_id: str, channel_id: Optional[str]):
        if channel_id is None:
            self.channels.pop((guild_id, user_id), None)
        else:
            self.channels[(guild_id, user_id)] = channel_id

    async def current_channel(self, guild_id: str, user_id: str) -> Optional[str]:
        if self.failing:
            raise GuildLookupError("guild unavailable")
        return self.channels.get((guild_id, user_id))

    async def is_afk_channel(self, guild_id: str, channel_id: str) -> bool:
        if self.failing:
            raise GuildLookupError("guild unavailable")
        return self.afk_channels.get(guild_id) == channel_id


@pytest.fixture
def now():
    return NOW


@pytest.fixture
async def db(tmp_path):
    database = Database(str(tmp_path / "test.db"))
    await database.initialize()
    yield database
    await database.close()


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def leveling(db, rng):
    return LevelingSystem(db, rng)


@pytest.fixture
def resolver():
    return FakeResolver()


@pytest.fixture
def tracker(leveling, resolver):
    return VoiceSessionTracker(leveling, resolver)


@pytest.fixture
def rewards(db):
    return RewardDispatcher(db)


@pytest.fixture
def statistics(db):
    return ActivityStatistics(db)


@pytest.fixture
def moderation(db, rng):
    return ModerationSystem(db, rng)
