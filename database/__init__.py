"""
Persistence layer and the data shapes it stores
"""

from .models import (
    DocumentShapeError, UserProgress, RankSettings, PrestigeTier, PrestigeSettings,
    VoiceSession, LevelUpEvent, PrestigeChange, AccrualResult, VoiceAccrual,
)
from .database import (
    Database, get_db,
    DatabaseError, StorageError, CorruptDocumentError,
)

__all__ = [
    'Database', 'get_db',
    'DatabaseError', 'StorageError', 'CorruptDocumentError', 'DocumentShapeError',
    'UserProgress', 'RankSettings', 'PrestigeTier', 'PrestigeSettings',
    'VoiceSession', 'LevelUpEvent', 'PrestigeChange', 'AccrualResult', 'VoiceAccrual',
]
