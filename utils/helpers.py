"""
============================================================================
UTILITY HELPERS
============================================================================
Common helper functions used throughout the bot.
"""

import logging
import re
import time
from datetime import datetime
from typing import Optional

import discord

logger = logging.getLogger(__name__)

DURATION_PATTERN = re.compile(r'^(\d+)([smhdw])$')
DURATION_UNITS = {
    's': 1,
    'm': 60,
    'h': 3600,
    'd': 86400,
    'w': 604800,
}


def now_ms() -> int:
    """Current time in milliseconds since the epoch."""
    return int(time.time() * 1000)


def parse_duration(text: str) -> Optional[int]:
    """
    Parse a duration like "30m", "2h" or "7d".

    Args:
        text: Number followed by one of s, m, h, d, w

    Returns:
        Duration in seconds, or None if invalid or zero
    """
    match = DURATION_PATTERN.match(text.strip().lower()) if text else None
    if not match:
        return None

    value = int(match.group(1))
    if value <= 0:
        return None
    return value * DURATION_UNITS[match.group(2)]


def format_duration(seconds: int) -> str:
    """
    Format seconds as the largest whole unit.

    Returns:
        e.g. "45 seconds", "1 hour", "2 weeks"
    """
    seconds = int(seconds)
    for name, size in (('week', 604800), ('day', 86400), ('hour', 3600), ('minute', 60)):
        if seconds >= size:
            count = seconds // size
            return f"{count} {name}{'' if count == 1 else 's'}"
    return f"{seconds} second{'' if seconds == 1 else 's'}"


def format_minutes(minutes: int) -> str:
    """Voice time as "45 min", "3h 20m" or "2d 1h 5m"."""
    minutes = int(minutes)
    if minutes < 60:
        return f"{minutes} min"

    hours, mins = divmod(minutes, 60)
    if hours < 24:
        return f"{hours}h {mins}m"

    days, hours = divmod(hours, 24)
    return f"{days}d {hours}h {mins}m"


def create_progress_bar(current: int, maximum: int, length: int = 10) -> str:
    """
    Create a text progress bar.

    Args:
        current: Current value
        maximum: Maximum value
        length: Bar length in characters

    Returns:
        Progress bar string (e.g., "█████░░░░░ 50%")
    """
    if maximum <= 0:
        return "░" * length + " 0%"

    percentage = max(0, min(100, (current / maximum) * 100))
    filled = int((percentage / 100) * length)
    empty = length - filled

    bar = "█" * filled + "░" * empty
    return f"{bar} {percentage:.0f}%"


def create_embed(
    title: str,
    description: str = None,
    color: discord.Color = discord.Color.blue(),
    **kwargs
) -> discord.Embed:
    """
    Create a standardized embed.

    Args:
        title: Embed title
        description: Embed description
        color: Embed color (discord.Color or int)
        **kwargs: field_<n>={'name', 'value', 'inline'} entries

    Returns:
        Discord Embed object
    """
    embed = discord.Embed(
        title=title,
        description=description,
        color=color,
        timestamp=datetime.now()
    )

    for key, value in kwargs.items():
        if key.startswith('field_'):
            embed.add_field(
                name=value.get('name', 'Field'),
                value=value.get('value', 'No value'),
                inline=value.get('inline', True)
            )

    return embed


async def send_dm(user: discord.abc.User, embed: discord.Embed) -> bool:
    """
    Send DM to user with error handling.

    Args:
        user: Discord User
        embed: Embed to send

    Returns:
        True if successful, False if failed
    """
    try:
        await user.send(embed=embed)
        return True
    except discord.Forbidden:
        logger.info("Cannot DM %s (DMs disabled)", user)
        return False
    except discord.HTTPException as e:
        logger.warning("Error sending DM to %s: %s", user, e)
        return False


def can_moderate(member: discord.Member) -> bool:
    """
    Check if a member holds any moderation permission.

    Args:
        member: Discord Member

    Returns:
        True for moderate/kick/ban members permission or administrator
    """
    perms = member.guild_permissions
    return perms.administrator or perms.moderate_members or perms.kick_members or perms.ban_members


def capitalize(text: str) -> str:
    return text[:1].upper() + text[1:].lower()


def truncate_string(text: str, max_length: int = 100, suffix: str = "...") -> str:
    """
    Truncate string to max length.

    Args:
        text: String to truncate
        max_length: Maximum length
        suffix: Suffix to add if truncated

    Returns:
        Truncated string
    """
    if len(text) <= max_length:
        return text

    return text[:max_length - len(suffix)] + suffix
