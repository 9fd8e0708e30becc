"""
============================================================================
HEAVENBOT CONFIGURATION
============================================================================
Central configuration file for all bot settings.
Edit these values to customize bot behavior.

For security, store your bot token in a .env file:
BOT_TOKEN=your_token_here
"""

import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# ============================================================================
# BOT CREDENTIALS
# ============================================================================

BOT_TOKEN = os.getenv('BOT_TOKEN', 'YOUR_BOT_TOKEN_HERE')
BOT_NAME = 'Heaven Bot'

# Guild used for fast slash command sync (optional, global sync otherwise)
GUILD_ID = os.getenv('GUILD_ID')

# Initial bug report channel; /set-bug-channel overrides it at runtime
BUGS_CHANNEL_ID = os.getenv('BUGS_CHANNEL_ID')

# ============================================================================
# DATABASE SETTINGS
# ============================================================================

DATABASE_PATH = os.getenv('DATABASE_PATH', 'data/heavenbot.db')
BACKUP_INTERVAL = 3600  # Seconds between database backups (1 hour)
MAX_BACKUPS = 7  # Keep 7 backups

# Legacy flat JSON files (imported by migrate_from_json.py)
LEGACY_DATA_DIR = 'data'

# ============================================================================
# LEVELING SETTINGS
# ============================================================================

# Defaults for the rank settings document. Admins change the stored copy
# with /ranks, these values are only used the first time.
DEFAULT_RANK_SETTINGS = {
    'roles': {},  # level -> role ID
    'textXp': {
        'baseAmount': 15,
        'cooldown': 60,     # Seconds between XP awards from messages
        'randomBonus': 5,   # Max random bonus per message
    },
    'voiceXp': {
        'perMinute': 10,
        'afkDisabled': True,
    },
    # XP needed for level n = baseXp * (n ^ exponent)
    'formula': {
        'baseXp': 100,
        'exponent': 1.5,
    },
}

# Prestige tier -> configuration
DEFAULT_PRESTIGE_SETTINGS = {
    'prestiges': {
        '1': {'name': 'Bronze', 'requiredLevel': 100, 'color': '#CD7F32', 'roleId': None, 'xpBoost': 0.05},
        '2': {'name': 'Silver', 'requiredLevel': 200, 'color': '#C0C0C0', 'roleId': None, 'xpBoost': 0.10},
        '3': {'name': 'Gold', 'requiredLevel': 300, 'color': '#FFD700', 'roleId': None, 'xpBoost': 0.15},
        '4': {'name': 'Platinum', 'requiredLevel': 400, 'color': '#E5E4E2', 'roleId': None, 'xpBoost': 0.20},
        '5': {'name': 'Diamond', 'requiredLevel': 500, 'color': '#B9F2FF', 'roleId': None, 'xpBoost': 0.25},
    }
}

MAX_PRESTIGE_TIER = 5
MAX_PRESTIGE_BOOST = 0.5

# Voice accrual
VOICE_SWEEP_INTERVAL_MINUTES = 5
VOICE_SWEEP_MIN_ELAPSED_MS = 5 * 60 * 1000

# Leaderboard
LEADERBOARD_DEFAULT = 10
LEADERBOARD_MIN = 5
LEADERBOARD_MAX = 25

# ============================================================================
# STATISTICS SETTINGS
# ============================================================================

STATS_KEEP_DAYS = 30
STATS_KEEP_WEEKS = 12
STATS_KEEP_MONTHS = 12
STATS_MAX_LOOKBACK_DAYS = 30

# ============================================================================
# MODERATION SETTINGS
# ============================================================================

DEFAULT_MODERATION_SETTINGS = {
    'logChannelId': None,
    'dmNotifications': True,
    'autoMuteRole': None,
}

INFRACTION_TYPES = ['warn', 'mute', 'unmute', 'kick', 'ban', 'unban']

# How often temporary mutes are checked for expiry
INFRACTION_CHECK_INTERVAL_SECONDS = 60

INFRACTION_COLORS = {
    'warn': 0xFFD700,   # Gold
    'mute': 0xFF8C00,   # Dark orange
    'kick': 0xFF4500,   # Orange red
    'ban': 0xFF0000,    # Red
}
DEFAULT_INFRACTION_COLOR = 0x7289DA

# ============================================================================
# BUG REPORT SETTINGS
# ============================================================================

BUG_TITLE_MAX_LENGTH = 100
BUG_TEXT_MAX_LENGTH = 1000
BUG_STATS_MESSAGE_LIMIT = 100

# ============================================================================
# FEATURE FLAGS
# ============================================================================

FEATURES = {
    'leveling': True,
    'voice_xp': True,
    'statistics': True,
    'moderation': True,
    'bug_reports': True,
}

# ============================================================================
# DEVELOPER SETTINGS
# ============================================================================

DEBUG_MODE = False
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')  # DEBUG, INFO, WARNING, ERROR, CRITICAL
LOG_TO_FILE = True
LOG_FILE = 'data/bot.log'

# ============================================================================
# VALIDATION
# ============================================================================

def validate_config():
    """Validate configuration on startup"""
    errors = []

    if BOT_TOKEN == 'YOUR_BOT_TOKEN_HERE':
        errors.append("BOT_TOKEN not set! Please set it in .env file.")

    formula = DEFAULT_RANK_SETTINGS['formula']
    if formula['baseXp'] <= 0 or formula['exponent'] <= 0:
        errors.append("Level formula baseXp and exponent must be positive")

    if VOICE_SWEEP_INTERVAL_MINUTES < 5:
        errors.append("VOICE_SWEEP_INTERVAL_MINUTES must be at least 5")

    if GUILD_ID is not None and not GUILD_ID.isdigit():
        errors.append("GUILD_ID must be a numeric Discord ID")

    return errors
