"""
============================================================================
MODERATION COMMANDS
============================================================================
Moderation command suite for Heaven Bot.

Commands included:
- Punishment: warn, mute, kick, ban
- Reversal: unmute, unban
- Information: infractions
- Configuration: modsettings (log channel, mute role, DM notifications)

Every action is stored as an infraction, posted to the moderation log
channel and, when enabled, DMed to the affected user.
"""

import logging
from typing import Dict, Optional

import discord
from discord import app_commands
from discord.ext import commands

import config
from modules import get_moderation_system
from modules.moderation import infraction_color
from utils import (
    create_embed, send_dm, can_moderate, capitalize,
    parse_duration, format_duration, now_ms, truncate_string,
)

logger = logging.getLogger(__name__)

INFRACTIONS_PER_PAGE = 10
MAX_INFRACTION_PAGES = 9  # Discord allows 10 embeds per message, one is the summary


def _duration_text(infraction: Dict) -> Optional[str]:
    duration = infraction.get('duration')
    return format_duration(duration // 1000) if duration else None


async def report_infraction(
    guild: discord.Guild,
    user: discord.abc.User,
    moderator: Optional[discord.abc.User],
    infraction: Dict
):
    """
    Post an infraction to the log channel and DM the user.

    Args:
        guild: Guild the action happened in
        user: Affected user
        moderator: Acting moderator (None when the bot acted on its own)
        infraction: Stored infraction document
    """
    settings = await get_moderation_system().get_settings()
    duration = _duration_text(infraction)

    log_channel_id = settings.get('logChannelId')
    log_channel = guild.get_channel(int(log_channel_id)) if log_channel_id else None
    if log_channel:
        embed = create_embed(
            title=f"Moderation Action: {capitalize(infraction['type'])}",
            color=infraction_color(infraction['type'])
        )
        embed.add_field(name="User", value=f"{user} ({user.id})", inline=True)
        embed.add_field(
            name="Moderator",
            value=str(moderator) if moderator else f"Unknown ({infraction['moderatorId']})",
            inline=True
        )
        embed.add_field(name="Reason", value=infraction.get('reason') or "No reason provided", inline=False)
        if duration:
            embed.add_field(name="Duration", value=duration, inline=True)
        embed.add_field(name="Infraction ID", value=infraction['id'], inline=True)

        try:
            await log_channel.send(embed=embed)
        except discord.HTTPException as e:
            logger.warning("Could not post infraction %s to log channel: %s", infraction['id'], e)

    if settings.get('dmNotifications'):
        embed = create_embed(
            title=f"You have received a {capitalize(infraction['type'])}",
            description=f"Server: **{guild.name}**",
            color=infraction_color(infraction['type'])
        )
        embed.add_field(name="Reason", value=infraction.get('reason') or "No reason provided", inline=False)
        if duration:
            embed.add_field(name="Duration", value=duration, inline=False)
        await send_dm(user, embed)


class ModerationCommands(commands.Cog):
    """Moderation commands cog."""

    modsettings_group = app_commands.Group(
        name="modsettings",
        description="Configure moderation settings",
        default_permissions=discord.Permissions(administrator=True)
    )

    def __init__(self, bot):
        self.bot = bot
        self.moderation = get_moderation_system()

    @staticmethod
    def _check_target(
        interaction: discord.Interaction,
        user: discord.abc.User,
        member: Optional[discord.Member],
        action: str
    ) -> Optional[str]:
        """Shared guards. Returns an error message or None."""
        if user.bot:
            return f"❌ You cannot {action} bot users."
        if user.id == interaction.user.id:
            return f"❌ You cannot {action} yourself."
        if member and can_moderate(member):
            return f"❌ You cannot {action} other moderators."
        return None

    # ========================================================================
    # PUNISHMENT COMMANDS
    # ========================================================================

    @app_commands.command(name="warn", description="Warn a user")
    @app_commands.describe(user="User to warn", reason="Reason for the warning")
    @app_commands.default_permissions(moderate_members=True)
    @app_commands.checks.has_permissions(moderate_members=True)
    async def warn_command(self, interaction: discord.Interaction, user: discord.Member, reason: str):
        """Record a warning."""
        problem = self._check_target(interaction, user, user, "warn")
        if problem:
            await interaction.response.send_message(problem, ephemeral=True)
            return

        await interaction.response.defer()

        infraction = await self.moderation.create_infraction(
            str(user.id), 'warn', reason, str(interaction.user.id), now=now_ms()
        )
        await report_infraction(interaction.guild, user, interaction.user, infraction)

        counts = await self.moderation.count_user_infractions(str(user.id))
        await interaction.followup.send(
            f"⚠️ Warned {user.mention} for: {reason}\n"
            f"They now have {counts['warn']} warning{'' if counts['warn'] == 1 else 's'}. "
            f"(ID: `{infraction['id']}`)"
        )

    @app_commands.command(name="mute", description="Mute a user for a specified duration")
    @app_commands.describe(
        user="User to mute",
        duration="Duration of the mute (e.g. 30m, 1h, 7d)",
        reason="Reason for the mute"
    )
    @app_commands.default_permissions(moderate_members=True)
    @app_commands.checks.has_permissions(moderate_members=True)
    async def mute_command(
        self,
        interaction: discord.Interaction,
        user: discord.Member,
        duration: str,
        reason: str
    ):
        """Add the mute role for a limited time."""
        seconds = parse_duration(duration)
        if not seconds:
            await interaction.response.send_message(
                "❌ Invalid duration format. Please use formats like 1h, 1d, 7d, etc.",
                ephemeral=True
            )
            return

        problem = self._check_target(interaction, user, user, "mute")
        if problem:
            await interaction.response.send_message(problem, ephemeral=True)
            return

        settings = await self.moderation.get_settings()
        role_id = settings.get('autoMuteRole')
        mute_role = interaction.guild.get_role(int(role_id)) if role_id else None
        if not mute_role:
            await interaction.response.send_message(
                "❌ Mute role is not set up. Use `/modsettings set_mute_role` first.",
                ephemeral=True
            )
            return

        await interaction.response.defer()

        try:
            await user.add_roles(mute_role, reason=f"Muted by {interaction.user}: {reason}")
        except discord.HTTPException as e:
            logger.warning("Could not add mute role to %s: %s", user.id, e)
            await interaction.followup.send(
                "❌ Failed to add the mute role. Check my permissions and role hierarchy."
            )
            return

        infraction = await self.moderation.create_infraction(
            str(user.id), 'mute', reason, str(interaction.user.id),
            duration=seconds * 1000, now=now_ms()
        )
        await report_infraction(interaction.guild, user, interaction.user, infraction)

        await interaction.followup.send(
            f"🔇 Muted {user.mention} for {format_duration(seconds)}. Reason: {reason}"
        )

    @app_commands.command(name="unmute", description="Remove a user's mute")
    @app_commands.describe(user="User to unmute", reason="Reason for the unmute")
    @app_commands.default_permissions(moderate_members=True)
    @app_commands.checks.has_permissions(moderate_members=True)
    async def unmute_command(
        self,
        interaction: discord.Interaction,
        user: discord.Member,
        reason: str = "Manual unmute"
    ):
        """Remove the mute role and close active mutes."""
        settings = await self.moderation.get_settings()
        role_id = settings.get('autoMuteRole')
        mute_role = interaction.guild.get_role(int(role_id)) if role_id else None
        if not mute_role:
            await interaction.response.send_message(
                "❌ Mute role is not set up. Use `/modsettings set_mute_role` first.",
                ephemeral=True
            )
            return

        if mute_role not in user.roles:
            await interaction.response.send_message(f"❌ {user.mention} is not muted.", ephemeral=True)
            return

        await interaction.response.defer()

        try:
            await user.remove_roles(mute_role, reason=f"Unmuted by {interaction.user}: {reason}")
        except discord.HTTPException as e:
            logger.warning("Could not remove mute role from %s: %s", user.id, e)
            await interaction.followup.send(
                "❌ Failed to remove the mute role. Check my permissions and role hierarchy."
            )
            return

        await self.moderation.deactivate_infractions(str(user.id), 'mute')
        infraction = await self.moderation.create_infraction(
            str(user.id), 'unmute', reason, str(interaction.user.id), now=now_ms()
        )
        await report_infraction(interaction.guild, user, interaction.user, infraction)

        await interaction.followup.send(f"🔊 Unmuted {user.mention}. Reason: {reason}")

    @app_commands.command(name="kick", description="Kick a user from the server")
    @app_commands.describe(user="User to kick", reason="Reason for the kick")
    @app_commands.default_permissions(kick_members=True)
    @app_commands.checks.has_permissions(kick_members=True)
    async def kick_command(self, interaction: discord.Interaction, user: discord.Member, reason: str):
        """Kick a member."""
        problem = self._check_target(interaction, user, user, "kick")
        if problem:
            await interaction.response.send_message(problem, ephemeral=True)
            return

        if user.top_role >= interaction.guild.me.top_role:
            await interaction.response.send_message(
                "❌ I cannot kick this user. Check that my role is above theirs.",
                ephemeral=True
            )
            return

        await interaction.response.defer()

        # Report first so the DM still reaches them
        infraction = await self.moderation.create_infraction(
            str(user.id), 'kick', reason, str(interaction.user.id), now=now_ms()
        )
        await report_infraction(interaction.guild, user, interaction.user, infraction)

        try:
            await user.kick(reason=reason)
        except discord.HTTPException as e:
            logger.warning("Kick of %s failed: %s", user.id, e)
            await self.moderation.update_infraction_status(infraction['id'], False)
            await interaction.followup.send("❌ Cannot kick user (missing permissions)")
            return

        await interaction.followup.send(f"👢 Kicked {user} for: {reason}")

    @app_commands.command(name="ban", description="Ban a user from the server")
    @app_commands.describe(
        user="User to ban",
        reason="Reason for the ban",
        duration="Duration (e.g. 1h, 1d, 7d), leave empty for permanent",
        delete_days="Days of message history to delete (0-7)"
    )
    @app_commands.default_permissions(ban_members=True)
    @app_commands.checks.has_permissions(ban_members=True)
    async def ban_command(
        self,
        interaction: discord.Interaction,
        user: discord.User,
        reason: str,
        duration: Optional[str] = None,
        delete_days: app_commands.Range[int, 0, 7] = 0
    ):
        """Ban a user, optionally for a limited time."""
        seconds = None
        if duration:
            seconds = parse_duration(duration)
            if not seconds:
                await interaction.response.send_message(
                    "❌ Invalid duration format. Please use formats like 1h, 1d, 7d, etc.",
                    ephemeral=True
                )
                return

        member = interaction.guild.get_member(user.id)
        problem = self._check_target(interaction, user, member, "ban")
        if problem:
            await interaction.response.send_message(problem, ephemeral=True)
            return

        if member and member.top_role >= interaction.guild.me.top_role:
            await interaction.response.send_message(
                "❌ I cannot ban this user. Check that my role is above theirs.",
                ephemeral=True
            )
            return

        await interaction.response.defer()

        infraction = await self.moderation.create_infraction(
            str(user.id), 'ban', reason, str(interaction.user.id),
            duration=seconds * 1000 if seconds else None, now=now_ms()
        )
        await report_infraction(interaction.guild, user, interaction.user, infraction)

        try:
            await interaction.guild.ban(
                user,
                reason=reason,
                delete_message_seconds=delete_days * 86400
            )
        except discord.HTTPException as e:
            logger.warning("Ban of %s failed: %s", user.id, e)
            await self.moderation.update_infraction_status(infraction['id'], False)
            await interaction.followup.send("❌ Cannot ban user (missing permissions)")
            return

        length = f"for {format_duration(seconds)}" if seconds else "permanently"
        await interaction.followup.send(f"🔨 Banned {user} {length} for: {reason}")

    @app_commands.command(name="unban", description="Unban a user by ID")
    @app_commands.describe(user_id="ID of the user to unban", reason="Reason for the unban")
    @app_commands.default_permissions(ban_members=True)
    @app_commands.checks.has_permissions(ban_members=True)
    async def unban_command(
        self,
        interaction: discord.Interaction,
        user_id: str,
        reason: str = "Manual unban"
    ):
        """Lift a ban."""
        if not user_id.isdigit():
            await interaction.response.send_message("❌ Please provide a valid user ID.", ephemeral=True)
            return

        await interaction.response.defer()

        try:
            ban_entry = await interaction.guild.fetch_ban(discord.Object(id=int(user_id)))
        except discord.NotFound:
            await interaction.followup.send("❌ This user is not banned.")
            return

        try:
            await interaction.guild.unban(ban_entry.user, reason=reason)
        except discord.HTTPException as e:
            logger.warning("Unban of %s failed: %s", user_id, e)
            await interaction.followup.send("❌ Cannot unban user (missing permissions)")
            return

        await self.moderation.deactivate_infractions(user_id, 'ban')
        infraction = await self.moderation.create_infraction(
            user_id, 'unban', reason, str(interaction.user.id), now=now_ms()
        )
        await report_infraction(interaction.guild, ban_entry.user, interaction.user, infraction)

        await interaction.followup.send(f"✅ Unbanned {ban_entry.user}. Reason: {reason}")

    # ========================================================================
    # INFORMATION
    # ========================================================================

    @app_commands.command(name="infractions", description="View a user's infractions")
    @app_commands.describe(
        user="User to look up",
        infraction_type="Filter by infraction type",
        active_only="Show only active infractions"
    )
    @app_commands.choices(infraction_type=[
        app_commands.Choice(name="All", value="all"),
        app_commands.Choice(name="Warnings", value="warn"),
        app_commands.Choice(name="Mutes", value="mute"),
        app_commands.Choice(name="Kicks", value="kick"),
        app_commands.Choice(name="Bans", value="ban"),
    ])
    @app_commands.default_permissions(moderate_members=True)
    @app_commands.checks.has_permissions(moderate_members=True)
    async def infractions_command(
        self,
        interaction: discord.Interaction,
        user: discord.User,
        infraction_type: str = "all",
        active_only: bool = False
    ):
        """Summary plus paged infraction history."""
        await interaction.response.defer()

        infractions = await self.moderation.get_user_infractions(
            str(user.id),
            None if infraction_type == "all" else infraction_type,
            active_only
        )
        label = f"{'active ' if active_only else ''}{'infractions' if infraction_type == 'all' else infraction_type}"

        if not infractions:
            if infraction_type != "all" or active_only:
                await interaction.followup.send(f"{user} has no {label}.")
            else:
                await interaction.followup.send(f"{user} has no infraction history.")
            return

        counts = await self.moderation.count_user_infractions(str(user.id))
        summary = create_embed(
            title=f"Infraction History: {user}",
            description=f"**User ID:** {user.id}",
            color=discord.Color.blurple()
        )
        summary.set_thumbnail(url=user.display_avatar.url)
        summary.add_field(name="Total Infractions", value=str(counts['total']), inline=True)
        summary.add_field(name="Warnings", value=str(counts['warn']), inline=True)
        summary.add_field(name="Mutes", value=str(counts['mute']), inline=True)
        summary.add_field(name="Kicks", value=str(counts['kick']), inline=True)
        summary.add_field(name="Bans", value=str(counts['ban']), inline=True)
        summary.add_field(name="Active Infractions", value=str(counts['active']), inline=True)
        summary.set_footer(text=f"Showing {len(infractions)} {label}")

        embeds = [summary]
        shown = infractions[:INFRACTIONS_PER_PAGE * MAX_INFRACTION_PAGES]
        for start in range(0, len(shown), INFRACTIONS_PER_PAGE):
            page = create_embed(
                title=f"Infractions for {user} (Page {start // INFRACTIONS_PER_PAGE + 1})",
                color=discord.Color.blurple()
            )
            for infraction in shown[start:start + INFRACTIONS_PER_PAGE]:
                status = "🔴 Active" if infraction.get('active') else "⚪ Inactive"
                lines = [
                    f"**Reason:** {truncate_string(infraction.get('reason') or 'No reason provided', 200)}",
                    f"**Moderator:** <@{infraction.get('moderatorId')}>",
                    f"**Date:** <t:{infraction.get('timestamp', 0) // 1000}:f>",
                    f"**Status:** {status}",
                ]
                if infraction.get('expiresAt'):
                    lines.append(f"**Expires:** <t:{infraction['expiresAt'] // 1000}:f>")
                page.add_field(
                    name=f"{capitalize(infraction.get('type', 'unknown'))} | ID: {infraction.get('id')}",
                    value="\n".join(lines),
                    inline=False
                )
            embeds.append(page)

        await interaction.followup.send(embeds=embeds)

    # ========================================================================
    # /modsettings
    # ========================================================================

    @modsettings_group.command(name="view", description="View current moderation settings")
    async def modsettings_view(self, interaction: discord.Interaction):
        settings = await self.moderation.get_settings()

        embed = create_embed(title="Moderation Settings", color=discord.Color.blurple())
        embed.add_field(
            name="Log Channel",
            value=f"<#{settings['logChannelId']}>" if settings.get('logChannelId') else "Not set",
            inline=True
        )
        embed.add_field(
            name="Mute Role",
            value=f"<@&{settings['autoMuteRole']}>" if settings.get('autoMuteRole') else "Not set",
            inline=True
        )
        embed.add_field(
            name="DM Notifications",
            value="Enabled" if settings.get('dmNotifications') else "Disabled",
            inline=True
        )

        await interaction.response.send_message(embed=embed, ephemeral=True)

    @modsettings_group.command(name="set_log_channel", description="Set the moderation log channel")
    @app_commands.describe(channel="Channel for moderation logs")
    async def modsettings_log_channel(self, interaction: discord.Interaction, channel: discord.TextChannel):
        await self.moderation.update_settings(logChannelId=str(channel.id))
        logger.info("Moderation log channel set to %s by %s", channel.id, interaction.user.id)
        await interaction.response.send_message(
            f"✅ Moderation logs will be sent to {channel.mention}.",
            ephemeral=True
        )

    @modsettings_group.command(name="set_mute_role", description="Set the role used for mutes")
    @app_commands.describe(role="Role given to muted users")
    async def modsettings_mute_role(self, interaction: discord.Interaction, role: discord.Role):
        if role.managed or role >= interaction.guild.me.top_role:
            await interaction.response.send_message(
                "❌ I cannot assign that role. Pick a role below my highest role.",
                ephemeral=True
            )
            return

        await self.moderation.update_settings(autoMuteRole=str(role.id))
        logger.info("Mute role set to %s by %s", role.id, interaction.user.id)
        await interaction.response.send_message(f"✅ Mute role set to {role.mention}.", ephemeral=True)

    @modsettings_group.command(name="toggle_dm_notifications", description="Toggle DMs to punished users")
    async def modsettings_toggle_dm(self, interaction: discord.Interaction):
        settings = await self.moderation.get_settings()
        enabled = not settings.get('dmNotifications', True)
        await self.moderation.update_settings(dmNotifications=enabled)

        await interaction.response.send_message(
            f"✅ DM notifications are now **{'enabled' if enabled else 'disabled'}**.",
            ephemeral=True
        )


async def setup(bot):
    """Load the cog."""
    if not config.FEATURES.get('moderation', True):
        return
    await bot.add_cog(ModerationCommands(bot))
