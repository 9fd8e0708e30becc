"""
============================================================================
LEVELING DATA MODEL
============================================================================
Plain data shapes exchanged between the leveling core and the rest of
the bot. Discord objects never reach past the event handlers; everything
below works on IDs, timestamps (milliseconds since epoch) and numbers.

On-disk documents use the camelCase field names of the legacy JSON files
so old data can be imported unchanged.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional


class DocumentShapeError(ValueError):
    """A stored document is missing fields or has the wrong types."""


def _int_field(data: Dict, name: str, default: int = 0) -> int:
    value = data.get(name, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise DocumentShapeError(f"field '{name}' must be a number, got {value!r}")
    return int(value)


# ============================================================================
# USER PROGRESS
# ============================================================================

@dataclass
class UserProgress:
    """
    XP/level/prestige state for one user.

    Invariants:
        total_text_xp + total_voice_xp == xp
        level is always derived from xp
        prestige never decreases
    """

    xp: int = 0
    level: int = 1
    prestige: int = 0
    last_message_timestamp: int = 0
    total_text_xp: int = 0
    total_voice_xp: int = 0

    @classmethod
    def from_dict(cls, data: Dict) -> 'UserProgress':
        if not isinstance(data, dict):
            raise DocumentShapeError("user progress document must be an object")

        progress = cls(
            xp=_int_field(data, 'xp'),
            level=_int_field(data, 'level', 1),
            prestige=_int_field(data, 'prestige'),
            last_message_timestamp=_int_field(data, 'lastMessageTimestamp'),
            total_text_xp=_int_field(data, 'totalTextXp'),
            total_voice_xp=_int_field(data, 'totalVoiceXp'),
        )
        if progress.xp < 0 or progress.prestige < 0:
            raise DocumentShapeError("xp and prestige must be non-negative")
        return progress

    def to_dict(self) -> Dict:
        return {
            'xp': self.xp,
            'level': self.level,
            'prestige': self.prestige,
            'lastMessageTimestamp': self.last_message_timestamp,
            'totalTextXp': self.total_text_xp,
            'totalVoiceXp': self.total_voice_xp,
        }


# ============================================================================
# SETTINGS
# ============================================================================

@dataclass
class RankSettings:
    """Global leveling configuration (edited with /ranks)."""

    role_rewards: Dict[int, str] = field(default_factory=dict)
    text_base_amount: int = 15
    text_cooldown_seconds: int = 60
    text_random_bonus: int = 5
    voice_per_minute: int = 10
    afk_disabled: bool = True
    base_xp: float = 100
    exponent: float = 1.5

    @property
    def cooldown_ms(self) -> int:
        return self.text_cooldown_seconds * 1000

    @classmethod
    def from_dict(cls, data: Dict) -> 'RankSettings':
        try:
            text_xp = data.get('textXp', {})
            voice_xp = data.get('voiceXp', {})
            formula = data.get('formula', {})
            roles = {int(level): str(role_id) for level, role_id in data.get('roles', {}).items()}

            return cls(
                role_rewards=roles,
                text_base_amount=int(text_xp.get('baseAmount', 15)),
                text_cooldown_seconds=int(text_xp.get('cooldown', 60)),
                text_random_bonus=int(text_xp.get('randomBonus', 5)),
                voice_per_minute=int(voice_xp.get('perMinute', 10)),
                afk_disabled=bool(voice_xp.get('afkDisabled', True)),
                base_xp=float(formula.get('baseXp', 100)),
                exponent=float(formula.get('exponent', 1.5)),
            )
        except (AttributeError, TypeError, ValueError) as e:
            raise DocumentShapeError(f"invalid rank settings: {e}") from e

    def to_dict(self) -> Dict:
        return {
            'roles': {str(level): role_id for level, role_id in sorted(self.role_rewards.items())},
            'textXp': {
                'baseAmount': self.text_base_amount,
                'cooldown': self.text_cooldown_seconds,
                'randomBonus': self.text_random_bonus,
            },
            'voiceXp': {
                'perMinute': self.voice_per_minute,
                'afkDisabled': self.afk_disabled,
            },
            'formula': {
                'baseXp': self.base_xp,
                'exponent': self.exponent,
            },
        }


@dataclass
class PrestigeTier:
    tier: int
    name: str
    required_level: int
    xp_boost: float = 0.0
    role_id: Optional[str] = None
    color: Optional[str] = None

    @classmethod
    def default(cls, tier: int) -> 'PrestigeTier':
        """Placeholder for a tier that has never been configured."""
        return cls(
            tier=tier,
            name=f'Prestige {tier}',
            required_level=tier * 100,
            xp_boost=round(tier * 0.05, 2),
        )

    def to_dict(self) -> Dict:
        return {
            'name': self.name,
            'requiredLevel': self.required_level,
            'color': self.color,
            'roleId': self.role_id,
            'xpBoost': self.xp_boost,
        }


@dataclass
class PrestigeSettings:
    """Ordered prestige tiers (edited with /prestige)."""

    tiers: Dict[int, PrestigeTier] = field(default_factory=dict)

    def get(self, tier: int) -> Optional[PrestigeTier]:
        return self.tiers.get(tier)

    def ordered(self) -> List[PrestigeTier]:
        return [self.tiers[t] for t in sorted(self.tiers)]

    def role_ids(self) -> List[str]:
        return [t.role_id for t in self.ordered() if t.role_id]

    @classmethod
    def from_dict(cls, data: Dict) -> 'PrestigeSettings':
        try:
            tiers = {}
            for key, raw in data.get('prestiges', {}).items():
                tier = int(key)
                tiers[tier] = PrestigeTier(
                    tier=tier,
                    name=str(raw.get('name', f'Prestige {tier}')),
                    required_level=int(raw['requiredLevel']),
                    xp_boost=float(raw.get('xpBoost', 0.0)),
                    role_id=str(raw['roleId']) if raw.get('roleId') else None,
                    color=raw.get('color'),
                )
            return cls(tiers=tiers)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise DocumentShapeError(f"invalid prestige settings: {e}") from e

    def to_dict(self) -> Dict:
        return {'prestiges': {str(t.tier): t.to_dict() for t in self.ordered()}}


# ============================================================================
# VOICE SESSIONS (in-memory only)
# ============================================================================

@dataclass
class VoiceSession:
    guild_id: str
    channel_id: str
    join_time: int
    last_accrual_time: int


# ============================================================================
# RESULTS
# ============================================================================

@dataclass
class LevelUpEvent:
    old_level: int
    new_level: int
    xp: int
    next_required_xp: int


@dataclass
class PrestigeChange:
    old_prestige: int
    new_prestige: int
    config: PrestigeTier


@dataclass
class AccrualResult:
    """
    Outcome of one XP accrual attempt.

    `reason` explains why nothing was awarded: 'cooldown', 'afk',
    'no_time', 'storage_error' or 'corrupt_document'.
    """

    awarded: bool
    xp_gained: int = 0
    level_up: Optional[LevelUpEvent] = None
    reason: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.reason in ('storage_error', 'corrupt_document')


@dataclass
class VoiceAccrual:
    """One voice checkpoint (leave, move or sweep) that credited time."""

    user_id: str
    guild_id: str
    minutes: int
    is_afk: bool
    result: AccrualResult

    @property
    def level_up(self) -> Optional[LevelUpEvent]:
        return self.result.level_up
