"""
============================================================================
ADMIN & UTILITY COMMANDS
============================================================================
Bot management plus the general utility commands.

Commands included:
- Bot control: sync, botstats, backup, config (admin only)
- Utility: help, echo
"""

import logging
from typing import Optional

import discord
from discord import app_commands
from discord.ext import commands

import config
from database import get_db, DatabaseError
from utils import create_embed, truncate_string

logger = logging.getLogger(__name__)


class AdminCommands(commands.Cog):
    """Admin commands cog."""

    def __init__(self, bot):
        self.bot = bot

    async def interaction_check(self, interaction: discord.Interaction) -> bool:
        """Check if user is admin."""
        return interaction.user.guild_permissions.administrator

    # ========================================================================
    # BOT MANAGEMENT
    # ========================================================================

    @app_commands.command(name="sync", description="Resync slash commands (admin only)")
    async def sync_command(self, interaction: discord.Interaction):
        """Sync slash commands with Discord (ADMIN ONLY)."""

        await interaction.response.defer(ephemeral=True)

        try:
            synced = await self.bot.sync_commands()
        except discord.HTTPException as e:
            logger.error("Command sync failed: %s", e)
            await interaction.followup.send(f"❌ Failed to sync: {e}", ephemeral=True)
            return

        await interaction.followup.send(f"✅ Synced {len(synced)} commands", ephemeral=True)

    @app_commands.command(name="botstats", description="View bot statistics (admin only)")
    async def botstats_command(self, interaction: discord.Interaction):
        """View bot statistics (ADMIN ONLY)."""

        await interaction.response.defer(ephemeral=True)

        db = await get_db()
        users = await db.get_all_user_progress()
        tracker = getattr(self.bot, 'voice_tracker', None)

        embed = create_embed(
            title="📊 Bot Statistics",
            color=discord.Color.blue()
        )
        embed.add_field(name="Tracked Users", value=f"{len(users):,}", inline=True)
        embed.add_field(name="Total XP", value=f"{sum(p.xp for p in users.values()):,}", inline=True)
        embed.add_field(name="Voice Sessions", value=str(len(tracker) if tracker else 0), inline=True)
        embed.add_field(name="Servers", value=str(len(self.bot.guilds)), inline=True)
        embed.add_field(name="Latency", value=f"{self.bot.latency * 1000:.0f} ms", inline=True)

        await interaction.followup.send(embed=embed, ephemeral=True)

    @app_commands.command(name="backup", description="Create a database backup (admin only)")
    async def backup_command(self, interaction: discord.Interaction):
        """Create a database backup (ADMIN ONLY)."""

        await interaction.response.defer(ephemeral=True)

        try:
            db = await get_db()
            path = await db.backup()
        except DatabaseError as e:
            logger.error("Manual backup failed: %s", e)
            await interaction.followup.send(f"❌ Backup failed: {e}", ephemeral=True)
            return

        await interaction.followup.send(f"✅ Database backed up to `{path.name}`", ephemeral=True)

    @app_commands.command(name="config", description="View current bot configuration (admin only)")
    async def config_command(self, interaction: discord.Interaction):
        """View current bot configuration (ADMIN ONLY)."""

        await interaction.response.defer(ephemeral=True)

        db = await get_db()
        settings = await db.get_rank_settings()

        embed = create_embed(
            title="⚙️ Bot Configuration",
            description="Use /ranks, /prestige and /modsettings to change settings",
            color=discord.Color.blue()
        )

        leveling_config = f"""
        Text XP: {settings.text_base_amount} (+0-{settings.text_random_bonus})
        Text Cooldown: {settings.text_cooldown_seconds}s
        Voice XP: {settings.voice_per_minute}/min
        Voice Sweep: every {config.VOICE_SWEEP_INTERVAL_MINUTES} min
        """
        embed.add_field(
            name="📈 Leveling",
            value=f"```{leveling_config}```",
            inline=False
        )

        features_text = "\n".join(
            f"{'✅' if enabled else '❌'} {name}"
            for name, enabled in config.FEATURES.items()
        )
        embed.add_field(
            name="🎛️ Features",
            value=features_text,
            inline=False
        )

        await interaction.followup.send(embed=embed, ephemeral=True)


class UtilityCommands(commands.Cog):
    """Commands available to everyone."""

    def __init__(self, bot):
        self.bot = bot

    @app_commands.command(name="help", description="Lists all available commands")
    async def help_command(self, interaction: discord.Interaction):
        embed = create_embed(
            title="Available Commands",
            description="Here are all the commands you can use:",
            color=0x0099FF
        )
        embed.set_footer(text=config.BOT_NAME, icon_url=self.bot.user.display_avatar.url)

        for command in sorted(self.bot.tree.get_commands(), key=lambda c: c.name)[:25]:
            embed.add_field(
                name=f"/{command.name}",
                value=getattr(command, 'description', None) or "No description provided",
                inline=False
            )

        await interaction.response.send_message(embed=embed)

    @app_commands.command(name="echo", description="Replies with your input")
    @app_commands.describe(input="The input to echo back", ephemeral="Whether the echo should be ephemeral")
    async def echo_command(
        self,
        interaction: discord.Interaction,
        input: str,
        ephemeral: Optional[bool] = False
    ):
        await interaction.response.send_message(truncate_string(input, 2000), ephemeral=bool(ephemeral))


# ============================================================================
# SETUP
# ============================================================================

async def setup(bot):
    """Load the cogs."""
    await bot.add_cog(AdminCommands(bot))
    await bot.add_cog(UtilityCommands(bot))
