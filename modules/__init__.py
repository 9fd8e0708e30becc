"""
HEAVENBOT Core Modules
"""

from .leveling import LevelingSystem, get_leveling_system
from .voice_tracker import VoiceSessionTracker, GuildResolver, GuildLookupError
from .rewards import RewardDispatcher
from .statistics import ActivityStatistics, get_statistics
from .moderation import ModerationSystem, get_moderation_system

__all__ = [
    'LevelingSystem', 'get_leveling_system',
    'VoiceSessionTracker', 'GuildResolver', 'GuildLookupError',
    'RewardDispatcher',
    'ActivityStatistics', 'get_statistics',
    'ModerationSystem', 'get_moderation_system',
]
