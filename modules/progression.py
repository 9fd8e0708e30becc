"""
============================================================================
PROGRESSION CALCULATOR
============================================================================
Pure functions mapping XP to levels and applying prestige multipliers.

Level formula:
    XP needed for level L = floor(baseXp * L ^ exponent)

The level for an XP total is the largest L whose requirement is met,
never less than 1.
"""

import math
from decimal import Decimal
from typing import Dict

from database.models import PrestigeSettings, RankSettings


def _check_formula(base_xp: float, exponent: float):
    if base_xp <= 0 or exponent <= 0:
        raise ValueError(f"level formula needs positive baseXp and exponent, got {base_xp}, {exponent}")


def required_xp(level: int, base_xp: float = 100, exponent: float = 1.5) -> int:
    """
    XP needed to reach a level.

    Args:
        level: Target level (values below 1 are treated as 1)
        base_xp: Formula base
        exponent: Formula exponent

    Returns:
        Required total XP
    """
    _check_formula(base_xp, exponent)
    level = max(int(level), 1)
    return math.floor(base_xp * level ** exponent)


def level_from_xp(xp: int, base_xp: float = 100, exponent: float = 1.5) -> int:
    """
    Level reached with a given XP total.

    Starts from the closed-form inverse of the formula and then walks
    to the exact answer, so the result always agrees with required_xp.

    Args:
        xp: Total XP (negative values are treated as 0)
        base_xp: Formula base
        exponent: Formula exponent

    Returns:
        Level (minimum 1)
    """
    _check_formula(base_xp, exponent)
    xp = max(int(xp), 0)

    if xp < required_xp(1, base_xp, exponent):
        return 1

    level = max(int((xp / base_xp) ** (1.0 / exponent)), 1)

    while level > 1 and required_xp(level, base_xp, exponent) > xp:
        level -= 1
    while required_xp(level + 1, base_xp, exponent) <= xp:
        level += 1

    return level


def apply_prestige_boost(xp: int, prestige: int, prestige_settings: PrestigeSettings) -> int:
    """
    Multiply an XP gain by the prestige tier's boost.

    Args:
        xp: Base XP gain
        prestige: User's prestige tier (0 means no prestige)
        prestige_settings: Configured tiers

    Returns:
        floor(xp * (1 + xpBoost)), or xp unchanged at tier 0 / unknown tier
    """
    if prestige <= 0:
        return xp

    tier = prestige_settings.get(prestige)
    if tier is None:
        return xp

    # Decimal keeps e.g. 100 * 1.15 at 115 instead of 114.99999
    boosted = Decimal(xp) * (1 + Decimal(str(tier.xp_boost)))
    return math.floor(boosted)


# ============================================================================
# SETTINGS-BOUND HELPERS
# ============================================================================

def required_xp_for(level: int, settings: RankSettings) -> int:
    return required_xp(level, settings.base_xp, settings.exponent)


def level_for(xp: int, settings: RankSettings) -> int:
    return level_from_xp(xp, settings.base_xp, settings.exponent)


def level_progress(xp: int, level: int, settings: RankSettings) -> Dict:
    """
    Progress through the current level, for /rank.

    Level 1 starts at 0 XP rather than at requiredXp(1).

    Returns:
        Dict with 'current', 'needed', 'remaining', 'next_required', 'percent'
    """
    floor_xp = 0 if level <= 1 else required_xp_for(level, settings)
    next_required = required_xp_for(level + 1, settings)

    current = xp - floor_xp
    needed = next_required - floor_xp
    percent = 0.0
    if needed > 0:
        percent = max(0.0, min(100.0, current / needed * 100))

    return {
        'current': current,
        'needed': needed,
        'remaining': max(next_required - xp, 0),
        'next_required': next_required,
        'percent': percent,
    }
