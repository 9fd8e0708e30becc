"""
============================================================================
LEVELING COMMANDS
============================================================================
Rank, leaderboard and activity commands plus the admin groups that
configure the leveling system.

Commands included:
- Members: /rank, /leaderboard, /stats
- Admin: /ranks list|add|remove|settings, /prestige list|set
"""

import logging
import re
from datetime import timedelta
from typing import Optional

import discord
from discord import app_commands
from discord.ext import commands

import config
from database import get_db, DatabaseError, PrestigeTier
from modules import get_leveling_system, get_statistics
from modules.progression import level_progress, required_xp_for
from modules.statistics import day_key, to_datetime
from utils import create_embed, create_progress_bar, format_minutes, now_ms

logger = logging.getLogger(__name__)

HEX_COLOR = re.compile(r'^#[0-9A-Fa-f]{6}$')
MEDALS = {1: '🥇', 2: '🥈', 3: '🥉'}


def prestige_color(tier: Optional[PrestigeTier]) -> discord.Color:
    if tier and tier.color:
        return discord.Color(int(tier.color[1:], 16))
    return discord.Color.blurple()


def format_daily_activity(recent: dict, now: int, days: int) -> str:
    """One line per active day, oldest first."""
    today = to_datetime(now)
    lines = []

    for offset in reversed(range(days)):
        date = today - timedelta(days=offset)
        key = day_key(date)
        messages = recent['messages']['daily'].get(key, 0)
        minutes = recent['voice']['daily'].get(key, 0)
        if not messages and not minutes:
            continue

        parts = []
        if messages:
            parts.append(f"{messages} msgs")
        if minutes:
            parts.append(f"{format_minutes(minutes)} voice")
        lines.append(f"**{date.strftime('%a')} {date.month}/{date.day}**: {', '.join(parts)}")

    return "\n".join(lines) if lines else "No activity in this period."


class LevelingCommands(commands.Cog):
    """Rank and activity commands."""

    def __init__(self, bot):
        self.bot = bot
        self.leveling = get_leveling_system()
        self.statistics = get_statistics()

    # ========================================================================
    # MEMBER COMMANDS
    # ========================================================================

    @app_commands.command(name="rank", description="Show your rank or another user's")
    @app_commands.describe(user="User to check (defaults to you)")
    async def rank_command(
        self,
        interaction: discord.Interaction,
        user: Optional[discord.Member] = None
    ):
        """Show level, XP progress and prestige."""
        target = user or interaction.user
        await interaction.response.defer()

        db = await get_db()
        try:
            progress = await db.get_user_progress(str(target.id))
            settings = await db.get_rank_settings()
            prestige_settings = await db.get_prestige_settings()
            position = await self.leveling.get_rank_position(str(target.id))
        except DatabaseError as e:
            logger.error("Rank lookup for %s failed: %s", target.id, e)
            await interaction.followup.send("❌ Could not load rank data. Please try again later.")
            return

        tier = prestige_settings.get(progress.prestige)
        bar = level_progress(progress.xp, progress.level, settings)

        embed = create_embed(
            title=f"🏅 {target.display_name}",
            description=f"★ **{tier.name} Prestige**" if tier else None,
            color=prestige_color(tier)
        )
        embed.set_thumbnail(url=target.display_avatar.url)
        embed.add_field(name="Level", value=str(progress.level), inline=True)
        embed.add_field(name="Rank", value=f"#{position}" if position else "Unranked", inline=True)
        embed.add_field(name="Total XP", value=f"{progress.xp:,}", inline=True)
        embed.add_field(
            name=f"Progress to level {progress.level + 1}",
            value=(
                f"{create_progress_bar(bar['current'], bar['needed'], 15)}\n"
                f"{progress.xp:,} / {bar['next_required']:,} XP "
                f"({bar['remaining']:,} XP needed)"
            ),
            inline=False
        )

        await interaction.followup.send(embed=embed)

    @app_commands.command(name="leaderboard", description="Show the server rank leaderboard")
    @app_commands.describe(limit="Number of users to show (5-25)")
    async def leaderboard_command(
        self,
        interaction: discord.Interaction,
        limit: app_commands.Range[int, config.LEADERBOARD_MIN, config.LEADERBOARD_MAX] = config.LEADERBOARD_DEFAULT
    ):
        """Top users by prestige, level and XP."""
        await interaction.response.defer()

        db = await get_db()
        try:
            entries = await self.leveling.get_leaderboard(limit)
            prestige_settings = await db.get_prestige_settings()
        except DatabaseError as e:
            logger.error("Leaderboard failed: %s", e)
            await interaction.followup.send("❌ Could not load the leaderboard. Please try again later.")
            return

        embed = create_embed(
            title="📊 Rank Leaderboard",
            description=f"Top {limit} users by rank",
            color=discord.Color.blurple()
        )

        if not entries:
            embed.description = "No users found in the leaderboard yet."
            await interaction.followup.send(embed=embed)
            return

        lines = []
        for position, entry in enumerate(entries, start=1):
            member = interaction.guild.get_member(int(entry['user_id'])) if interaction.guild else None
            name = member.display_name if member else f"<@{entry['user_id']}>"

            tier = prestige_settings.get(entry['prestige'])
            prestige = f" ★ {tier.name}" if tier else ""
            medal = MEDALS.get(position, '')

            lines.append(
                f"{medal} **#{position}.** {name} - Level {entry['level']}{prestige} ({entry['xp']:,} XP)"
            )

        embed.description = "\n".join(lines)
        await interaction.followup.send(embed=embed)

    @app_commands.command(name="stats", description="Show activity statistics")
    @app_commands.describe(user="User to check (defaults to you)", days="Days to show (1-30)")
    async def stats_command(
        self,
        interaction: discord.Interaction,
        user: Optional[discord.Member] = None,
        days: app_commands.Range[int, 1, config.STATS_MAX_LOOKBACK_DAYS] = 7
    ):
        """Messages, voice time and XP breakdown."""
        target = user or interaction.user
        await interaction.response.defer()

        now = now_ms()
        db = await get_db()
        try:
            recent = await self.statistics.get_recent_stats(str(target.id), days, now)
            progress = await db.get_user_progress(str(target.id))
        except DatabaseError as e:
            logger.error("Stats for %s failed: %s", target.id, e)
            await interaction.followup.send("❌ Could not load statistics. Please try again later.")
            return

        embed = create_embed(
            title=f"📊 Activity Statistics for {target.display_name}",
            description=f"Statistics for the last {days} days",
            color=discord.Color.blurple()
        )
        embed.add_field(name="Level", value=str(progress.level), inline=True)
        embed.add_field(name="Total XP", value=f"{progress.xp:,}", inline=True)
        embed.add_field(name="Prestige", value=str(progress.prestige), inline=True)
        embed.add_field(name="Messages Sent", value=f"{recent['messages']['total']:,}", inline=True)
        embed.add_field(name="Voice Time", value=format_minutes(recent['voice']['totalMinutes']), inline=True)

        text_pct = round(progress.total_text_xp / progress.xp * 100) if progress.xp else 0
        voice_pct = round(progress.total_voice_xp / progress.xp * 100) if progress.xp else 0
        embed.add_field(
            name="XP Breakdown",
            value=(
                f"Text XP: {progress.total_text_xp:,} ({text_pct}%)\n"
                f"Voice XP: {progress.total_voice_xp:,} ({voice_pct}%)"
            ),
            inline=False
        )

        if recent['messages']['total'] or recent['voice']['totalMinutes']:
            embed.add_field(name="Daily Activity", value=format_daily_activity(recent, now, days), inline=False)

        await interaction.followup.send(embed=embed)


class LevelingAdminCommands(commands.Cog):
    """Admin configuration of role rewards, XP rates and prestige tiers."""

    ranks_group = app_commands.Group(
        name="ranks",
        description="Manage the rank system settings",
        default_permissions=discord.Permissions(administrator=True)
    )
    prestige_group = app_commands.Group(
        name="prestige",
        description="Manage the prestige system settings",
        default_permissions=discord.Permissions(administrator=True)
    )

    def __init__(self, bot):
        self.bot = bot

    @staticmethod
    def _check_assignable(interaction: discord.Interaction, role: discord.Role) -> Optional[str]:
        if role.managed:
            return "❌ Managed roles (bot or integration roles) cannot be used as rewards."
        if role >= interaction.guild.me.top_role:
            return "❌ That role is above my highest role. Move my role above it first."
        return None

    # ========================================================================
    # /ranks
    # ========================================================================

    @ranks_group.command(name="list", description="List rank rewards and XP settings")
    async def ranks_list(self, interaction: discord.Interaction):
        db = await get_db()
        settings = await db.get_rank_settings()

        embed = create_embed(title="🏆 Rank Rewards", color=discord.Color.blurple())
        embed.add_field(
            name="Rank Settings",
            value=(
                f"Text XP: {settings.text_base_amount} (+0-{settings.text_random_bonus}) per message\n"
                f"Text Cooldown: {settings.text_cooldown_seconds} seconds\n"
                f"Voice XP: {settings.voice_per_minute} per minute\n"
                f"AFK Disabled: {'Yes' if settings.afk_disabled else 'No'}\n"
                f"XP Formula: {settings.base_xp:g} × (level ^ {settings.exponent:g})"
            ),
            inline=False
        )

        if settings.role_rewards:
            lines = [
                f"Level {level} ({required_xp_for(level, settings):,} XP): <@&{role_id}>"
                for level, role_id in sorted(settings.role_rewards.items())
            ]
            embed.add_field(name="Role Rewards", value="\n".join(lines), inline=False)
        else:
            embed.add_field(
                name="Role Rewards",
                value="No role rewards configured yet. Use `/ranks add` to add one.",
                inline=False
            )

        await interaction.response.send_message(embed=embed, ephemeral=True)

    @ranks_group.command(name="add", description="Add a role reward for a level")
    @app_commands.describe(level="Level required", role="Role to award")
    async def ranks_add(
        self,
        interaction: discord.Interaction,
        level: app_commands.Range[int, 1, None],
        role: discord.Role
    ):
        problem = self._check_assignable(interaction, role)
        if problem:
            await interaction.response.send_message(problem, ephemeral=True)
            return

        db = await get_db()
        settings = await db.get_rank_settings()
        settings.role_rewards[level] = str(role.id)
        await db.save_rank_settings(settings)

        await interaction.response.send_message(
            f"✅ {role.mention} is now the reward for level {level} "
            f"({required_xp_for(level, settings):,} XP).",
            ephemeral=True
        )

    @ranks_group.command(name="remove", description="Remove the role reward for a level")
    @app_commands.describe(level="Level to clear")
    async def ranks_remove(self, interaction: discord.Interaction, level: app_commands.Range[int, 1, None]):
        db = await get_db()
        settings = await db.get_rank_settings()

        role_id = settings.role_rewards.pop(level, None)
        if role_id is None:
            await interaction.response.send_message(
                f"❌ There is no role reward configured for level {level}.",
                ephemeral=True
            )
            return

        await db.save_rank_settings(settings)
        await interaction.response.send_message(
            f"✅ Removed the reward <@&{role_id}> from level {level}.",
            ephemeral=True
        )

    @ranks_group.command(name="settings", description="Adjust XP rates")
    @app_commands.describe(
        text_xp="Base XP per message",
        text_cooldown="Seconds between XP awards for messages",
        voice_xp="XP per minute in voice",
        afk_disabled="Disable XP in the AFK channel"
    )
    async def ranks_settings(
        self,
        interaction: discord.Interaction,
        text_xp: Optional[app_commands.Range[int, 1, None]] = None,
        text_cooldown: Optional[app_commands.Range[int, 0, None]] = None,
        voice_xp: Optional[app_commands.Range[int, 1, None]] = None,
        afk_disabled: Optional[bool] = None
    ):
        if text_xp is None and text_cooldown is None and voice_xp is None and afk_disabled is None:
            await interaction.response.send_message(
                "❌ Provide at least one setting to update.",
                ephemeral=True
            )
            return

        db = await get_db()
        settings = await db.get_rank_settings()
        changes = []

        if text_xp is not None:
            settings.text_base_amount = text_xp
            changes.append(f"Text XP: {text_xp}")
        if text_cooldown is not None:
            settings.text_cooldown_seconds = text_cooldown
            changes.append(f"Text Cooldown: {text_cooldown} seconds")
        if voice_xp is not None:
            settings.voice_per_minute = voice_xp
            changes.append(f"Voice XP: {voice_xp} per minute")
        if afk_disabled is not None:
            settings.afk_disabled = afk_disabled
            changes.append(f"AFK Disabled: {'Yes' if afk_disabled else 'No'}")

        await db.save_rank_settings(settings)
        logger.info("Rank settings changed by %s: %s", interaction.user.id, ", ".join(changes))

        await interaction.response.send_message(
            "✅ Updated rank settings:\n- " + "\n- ".join(changes),
            ephemeral=True
        )

    # ========================================================================
    # /prestige
    # ========================================================================

    @prestige_group.command(name="list", description="List prestige tiers")
    async def prestige_list(self, interaction: discord.Interaction):
        db = await get_db()
        prestige_settings = await db.get_prestige_settings()

        embed = create_embed(
            title="⭐ Prestige Levels",
            description="The following prestige levels are configured:",
            color=discord.Color.blurple()
        )

        for tier in prestige_settings.ordered():
            embed.add_field(
                name=f"{'■' if tier.color else '□'} Level {tier.tier}: {tier.name}",
                value=(
                    f"Required Level: {tier.required_level}\n"
                    f"XP Boost: +{int(tier.xp_boost * 100)}%\n"
                    f"Role: {f'<@&{tier.role_id}>' if tier.role_id else 'None'}\n"
                    f"Color: {tier.color or 'None'}"
                ),
                inline=True
            )

        await interaction.response.send_message(embed=embed, ephemeral=True)

    @prestige_group.command(name="set", description="Configure a prestige tier")
    @app_commands.describe(
        level="Prestige tier to configure",
        name="Display name",
        required_level="Level needed to reach this tier",
        color="Hex colour, e.g. #FF0000",
        role="Role granted at this tier",
        xp_boost="XP boost as a fraction, e.g. 0.05 for 5%"
    )
    async def prestige_set(
        self,
        interaction: discord.Interaction,
        level: app_commands.Range[int, 1, config.MAX_PRESTIGE_TIER],
        name: Optional[str] = None,
        required_level: Optional[app_commands.Range[int, 1, None]] = None,
        color: Optional[str] = None,
        role: Optional[discord.Role] = None,
        xp_boost: Optional[app_commands.Range[float, 0.0, config.MAX_PRESTIGE_BOOST]] = None
    ):
        if all(v is None for v in (name, required_level, color, role, xp_boost)):
            await interaction.response.send_message(
                "❌ Provide at least one setting to update.",
                ephemeral=True
            )
            return

        if role is not None:
            problem = self._check_assignable(interaction, role)
            if problem:
                await interaction.response.send_message(problem, ephemeral=True)
                return

        if color is not None and not HEX_COLOR.match(color):
            await interaction.response.send_message(
                "❌ The color must be a hex code like #FF0000.",
                ephemeral=True
            )
            return

        db = await get_db()
        prestige_settings = await db.get_prestige_settings()
        tier = prestige_settings.get(level) or PrestigeTier.default(level)
        changes = []

        if name is not None:
            tier.name = name
            changes.append(f"Name: {name}")
        if required_level is not None:
            tier.required_level = required_level
            changes.append(f"Required Level: {required_level}")
        if color is not None:
            tier.color = color
            changes.append(f"Color: {color}")
        if role is not None:
            tier.role_id = str(role.id)
            changes.append(f"Role: {role.name}")
        if xp_boost is not None:
            tier.xp_boost = xp_boost
            changes.append(f"XP Boost: +{int(xp_boost * 100)}%")

        prestige_settings.tiers[level] = tier
        await db.save_prestige_settings(prestige_settings)
        logger.info("Prestige %d changed by %s: %s", level, interaction.user.id, ", ".join(changes))

        await interaction.response.send_message(
            f"✅ Updated Prestige {level}:\n- " + "\n- ".join(changes),
            ephemeral=True
        )


async def setup(bot):
    """Load the cogs."""
    await bot.add_cog(LevelingCommands(bot))
    await bot.add_cog(LevelingAdminCommands(bot))
