"""
============================================================================
HEAVEN BOT - Community Bot with Leveling and Moderation
============================================================================
Discord bot for the Heaven community with:
- Text and voice XP, levels and prestige tiers
- Role rewards per level
- Activity statistics
- Infraction-based moderation with timed mutes
- Bug report triage

Author: Heaven Bot Development Team
Version: 1.0.0
License: MIT
"""

import logging
from datetime import datetime
from typing import List, Optional

import discord
from discord.ext import commands, tasks
from discord import app_commands

# Import configuration
import config

# Import database
from database import Database, DatabaseError, CorruptDocumentError, get_db, PrestigeChange, VoiceAccrual

# Import modules
from modules import (
    get_leveling_system, get_statistics, get_moderation_system,
    RewardDispatcher, VoiceSessionTracker, GuildResolver, GuildLookupError,
)

# Import utilities
from utils import create_embed, now_ms, setup_logging

from commands.mod_commands import report_infraction

logger = logging.getLogger(__name__)

COGS = [
    'commands.leveling_commands',
    'commands.mod_commands',
    'commands.bug_commands',
    'commands.admin_commands',
]


# ============================================================================
# LIVE VOICE STATE
# ============================================================================

class DiscordGuildResolver(GuildResolver):
    """Answers the voice sweep from the gateway cache."""

    def __init__(self, bot: commands.Bot):
        self.bot = bot

    def _guild(self, guild_id: str) -> discord.Guild:
        guild = self.bot.get_guild(int(guild_id))
        if guild is None or guild.unavailable:
            raise GuildLookupError(f"guild {guild_id} is unavailable")
        return guild

    async def current_channel(self, guild_id: str, user_id: str) -> Optional[str]:
        member = self._guild(guild_id).get_member(int(user_id))
        if member is None or member.voice is None or member.voice.channel is None:
            return None
        return str(member.voice.channel.id)

    async def is_afk_channel(self, guild_id: str, channel_id: str) -> bool:
        afk_channel = self._guild(guild_id).afk_channel
        return afk_channel is not None and str(afk_channel.id) == channel_id


# ============================================================================
# BOT SETUP
# ============================================================================

class HeavenBot(commands.Bot):
    """
    Main bot class with custom initialization.
    """

    def __init__(self):
        # Members for role rewards, voice states for XP
        intents = discord.Intents.default()
        intents.members = True
        intents.voice_states = True

        super().__init__(
            command_prefix=commands.when_mentioned,
            intents=intents,
            help_command=None  # /help lists slash commands
        )

        # Initialize modules (will be set in setup_hook)
        self.db: Optional[Database] = None
        self.leveling = None
        self.statistics = None
        self.moderation = None
        self.rewards: Optional[RewardDispatcher] = None
        self.voice_tracker: Optional[VoiceSessionTracker] = None

    async def setup_hook(self):
        """
        Called when bot is setting up.
        Initialize database and modules here.
        """
        print("🚀 Setting up Heaven Bot...")

        # Initialize database
        self.db = await get_db()

        # Initialize modules
        self.leveling = get_leveling_system(self.db)
        self.statistics = get_statistics(self.db)
        self.moderation = get_moderation_system(self.db)
        self.rewards = RewardDispatcher(self.db)
        self.voice_tracker = VoiceSessionTracker(self.leveling, DiscordGuildResolver(self))

        print("✅ All modules initialized!")

        # Load command cogs
        for extension in COGS:
            try:
                await self.load_extension(extension)
            except commands.ExtensionError as e:
                logger.error("Could not load %s: %s", extension, e)
        print("✅ Command cogs loaded!")

        # Sync slash commands
        await self.sync_commands()
        print("✅ Slash commands synced!")

    async def sync_commands(self) -> List[app_commands.AppCommand]:
        """Sync to the configured guild (instant) or globally."""
        if config.GUILD_ID:
            guild = discord.Object(id=int(config.GUILD_ID))
            self.tree.copy_global_to(guild=guild)
            return await self.tree.sync(guild=guild)
        return await self.tree.sync()

    async def on_ready(self):
        """
        Called when bot is fully ready and connected.
        """
        print("=" * 60)
        print(f"✅ {self.user.name} is online!")
        print(f"📊 Connected to {len(self.guilds)} server(s)")
        print(f"👥 Monitoring {sum(g.member_count or 0 for g in self.guilds)} users")
        print("=" * 60)

        await self.seed_voice_sessions()

        # Start background tasks
        if config.FEATURES['voice_xp'] and not voice_sweep.is_running():
            voice_sweep.start()

        if config.FEATURES['moderation'] and not check_expired_infractions.is_running():
            check_expired_infractions.start()

        if not backup_database.is_running():
            backup_database.start()

    async def seed_voice_sessions(self):
        """Start sessions for members who were already in voice when we connected."""
        now = now_ms()
        seeded = 0

        for guild in self.guilds:
            for channel in list(guild.voice_channels) + list(guild.stage_channels):
                for member in channel.members:
                    user_id = str(member.id)
                    if member.bot or user_id in self.voice_tracker:
                        continue
                    await self.voice_tracker.on_join(user_id, str(guild.id), str(channel.id), now)
                    seeded += 1

        if seeded:
            logger.info("Started %d voice session(s) for members already connected", seeded)

    async def close(self):
        """
        Cleanup when bot shuts down.
        """
        print("🛑 Shutting down...")

        for loop in (voice_sweep, check_expired_infractions, backup_database):
            loop.cancel()

        if self.db:
            await self.db.close()

        await super().close()


# ============================================================================
# INITIALIZE BOT
# ============================================================================

bot = HeavenBot()


# ============================================================================
# BACKGROUND TASKS
# ============================================================================

# The sweep only credits sessions idle for at least 5 minutes, so a
# session checkpointed just under 5 minutes before a tick is credited by
# the next tick instead, with its full elapsed minutes.
@tasks.loop(minutes=config.VOICE_SWEEP_INTERVAL_MINUTES)
async def voice_sweep():
    """Credit voice time for everyone still connected."""
    now = now_ms()
    accruals = await bot.voice_tracker.sweep(now)

    for accrual in accruals:
        await handle_voice_accrual(accrual, now)


@tasks.loop(seconds=config.INFRACTION_CHECK_INTERVAL_SECONDS)
async def check_expired_infractions():
    """
    Lift mutes and temporary bans whose time is up.

    A record is closed only after every guild lifted it or had nothing
    to lift. Unavailable guilds and Discord errors leave it active for
    the next check.
    """
    now = now_ms()
    try:
        settings = await bot.moderation.get_settings()
    except DatabaseError as e:
        logger.error("Infraction expiry check failed: %s", e)
        return

    async def lift(user_id: str, infraction: dict) -> bool:
        if infraction['type'] not in ('mute', 'ban'):
            return True

        lifted = True
        for guild in bot.guilds:
            if guild.unavailable:
                lifted = False
                continue

            try:
                if infraction['type'] == 'mute':
                    reversal = await _lift_mute(guild, user_id, settings)
                else:
                    reversal = await _lift_ban(guild, user_id)
            except discord.HTTPException as e:
                logger.warning("Could not lift expired %s for %s: %s", infraction['type'], user_id, e)
                lifted = False
                continue

            if reversal is not None:
                await _record_reversal(guild, user_id, reversal, now)

        return lifted

    try:
        await bot.moderation.expire_infractions(now, lift)
    except DatabaseError as e:
        logger.error("Infraction expiry check failed: %s", e)


async def _record_reversal(guild: discord.Guild, user_id: str, reversal, now: int):
    user, kind, reason = reversal
    try:
        record = await bot.moderation.create_infraction(
            user_id, kind, reason, str(bot.user.id), now=now
        )
    except DatabaseError as e:
        logger.error("Could not record automatic %s for %s: %s", kind, user_id, e)
        return
    await report_infraction(guild, user, bot.user, record)


async def _lift_mute(guild: discord.Guild, user_id: str, settings: dict):
    """Remove the mute role. None when there is nothing to remove."""
    member = guild.get_member(int(user_id))
    role_id = settings.get('autoMuteRole')
    role = guild.get_role(int(role_id)) if role_id else None
    if member is None or role is None or role not in member.roles:
        return None

    await member.remove_roles(role, reason="Mute duration expired")

    logger.info("Mute for %s expired", user_id)
    return member, 'unmute', "Mute duration expired"


async def _lift_ban(guild: discord.Guild, user_id: str):
    """Unban the user. None when they are not banned."""
    try:
        ban_entry = await guild.fetch_ban(discord.Object(id=int(user_id)))
        await guild.unban(ban_entry.user, reason="Temporary ban expired")
    except discord.NotFound:
        return None

    logger.info("Temporary ban for %s expired", user_id)
    return ban_entry.user, 'unban', "Temporary ban expired"


@tasks.loop(seconds=config.BACKUP_INTERVAL)
async def backup_database():
    """Backup database every hour."""
    try:
        db = await get_db()
        await db.backup()
        print(f"💾 Database backed up at {datetime.now().strftime('%H:%M:%S')}")
    except DatabaseError as e:
        logger.error("Backup failed: %s", e)


# ============================================================================
# EVENT HANDLERS
# ============================================================================

@bot.event
async def on_message(message: discord.Message):
    """
    Message handler - statistics and text XP.
    """
    # Ignore bots
    if message.author.bot:
        return

    # Ignore DMs
    if not message.guild:
        return

    user_id = str(message.author.id)
    now = now_ms()

    if config.FEATURES['statistics']:
        await bot.statistics.update_message_stats(user_id, now)

    if config.FEATURES['leveling']:
        result = await bot.leveling.award_message_xp(user_id, now)

        if result.reason == 'corrupt_document':
            await recover_corrupt_progress(user_id)
        elif result.level_up and isinstance(message.author, discord.Member):
            roles, prestige = await handle_level_up(message.author, result.level_up.new_level)
            await announce_level_up(message, result.level_up, roles, prestige)

    await bot.process_commands(message)


@bot.event
async def on_voice_state_update(
    member: discord.Member,
    before: discord.VoiceState,
    after: discord.VoiceState
):
    """
    Start, move and stop voice sessions.
    """
    if member.bot or not config.FEATURES['voice_xp']:
        return

    afk_channel = member.guild.afk_channel
    now = now_ms()

    accrual = await bot.voice_tracker.handle_voice_state(
        str(member.id),
        str(member.guild.id),
        str(before.channel.id) if before.channel else None,
        str(after.channel.id) if after.channel else None,
        str(afk_channel.id) if afk_channel else None,
        now
    )

    if accrual is not None:
        await handle_voice_accrual(accrual, now)


@bot.event
async def on_app_command_completion(interaction: discord.Interaction, command):
    """Count command usage."""
    if config.FEATURES['statistics']:
        await bot.statistics.update_command_stats(str(interaction.user.id), command.qualified_name)


# ============================================================================
# LEVELING
# ============================================================================

async def handle_voice_accrual(accrual: VoiceAccrual, now: int):
    """
    Follow-up for credited voice time: statistics, corruption recovery,
    rewards. Voice level-ups are not announced.
    """
    if config.FEATURES['statistics']:
        await bot.statistics.update_voice_stats(accrual.user_id, accrual.minutes, now)

    if accrual.result.reason == 'corrupt_document':
        await recover_corrupt_progress(accrual.user_id)
        return

    if accrual.level_up is None:
        return

    guild = bot.get_guild(int(accrual.guild_id))
    member = guild.get_member(int(accrual.user_id)) if guild else None
    if member is not None:
        await handle_level_up(member, accrual.level_up.new_level)


async def recover_corrupt_progress(user_id: str):
    """
    Reset a user's progress if their own document is the corrupt one.

    A corrupt settings document also yields 'corrupt_document'; that case
    needs an administrator and must not wipe user progress.
    """
    try:
        await bot.db.get_user_progress(user_id)
    except CorruptDocumentError:
        pass
    except DatabaseError as e:
        logger.error("Could not check progress for %s: %s", user_id, e)
        return
    else:
        logger.critical("A settings document is corrupt; XP for %s was not awarded", user_id)
        return

    try:
        await bot.db.reset_user_progress(user_id)
    except DatabaseError as e:
        logger.error("Could not reset corrupt progress for %s: %s", user_id, e)


async def handle_level_up(member: discord.Member, new_level: int):
    """
    Grant role rewards and prestige after a level-up.

    Args:
        member: Member who leveled up
        new_level: Level just reached

    Returns:
        (roles newly added, PrestigeChange or None)
    """
    user_id = str(member.id)
    print(f"🎉 {member.name} reached level {new_level}")

    # Role rewards: add any the member is missing
    added = []
    role_ids = await bot.rewards.resolve_role_rewards(user_id, new_level)
    missing = [
        role for role in (member.guild.get_role(int(r)) for r in role_ids)
        if role is not None and role not in member.roles
    ]
    if missing:
        try:
            await member.add_roles(*missing, reason=f"Reached level {new_level}")
            added = missing
        except discord.HTTPException as e:
            logger.warning("Cannot assign level roles to %s: %s", user_id, e)

    # Prestige: swap the old tier role for the new one
    prestige = await bot.rewards.resolve_prestige(user_id, new_level)
    if prestige and prestige.config.role_id:
        await _swap_prestige_role(member, prestige)

    return added, prestige


async def _swap_prestige_role(member: discord.Member, prestige: PrestigeChange):
    try:
        prestige_settings = await bot.db.get_prestige_settings()
    except DatabaseError as e:
        logger.error("Cannot load prestige roles for %s: %s", member.id, e)
        return

    new_role = member.guild.get_role(int(prestige.config.role_id))
    old_roles = [
        role for role in member.roles
        if str(role.id) in prestige_settings.role_ids() and role != new_role
    ]

    try:
        if old_roles:
            await member.remove_roles(*old_roles, reason="Prestige changed")
        if new_role is not None:
            await member.add_roles(new_role, reason=f"Reached {prestige.config.name} prestige")
    except discord.HTTPException as e:
        logger.warning("Cannot update prestige role for %s: %s", member.id, e)


async def announce_level_up(message: discord.Message, level_up, roles, prestige: Optional[PrestigeChange]):
    """Post the level-up embed in the channel the message came from."""
    embed = create_embed(
        title="🎉 Level Up!",
        description=f"Congratulations, you've reached level **{level_up.new_level}**!",
        color=0x3498DB
    )
    embed.set_author(name=message.author.display_name, icon_url=message.author.display_avatar.url)
    embed.add_field(
        name="XP",
        value=f"{level_up.xp:,} / {level_up.next_required_xp:,}",
        inline=True
    )

    if roles:
        embed.add_field(
            name="🏆 Unlocked Roles",
            value=", ".join(role.mention for role in roles),
            inline=True
        )

    if prestige:
        if prestige.config.color:
            embed.color = discord.Color(int(prestige.config.color[1:], 16))
        embed.add_field(
            name="⭐ New Prestige",
            value=(
                f"You've achieved **{prestige.config.name} Prestige**!\n"
                f"XP Boost: +{int(prestige.config.xp_boost * 100)}%"
            ),
            inline=False
        )

    try:
        await message.channel.send(embed=embed)
    except discord.HTTPException as e:
        logger.warning("Could not announce level up in %s: %s", message.channel.id, e)


# ============================================================================
# ERROR HANDLERS
# ============================================================================

@bot.tree.error
async def on_app_command_error(interaction: discord.Interaction, error: app_commands.AppCommandError):
    """Reply to failed slash commands."""
    command = interaction.command.qualified_name if interaction.command else "unknown"

    if isinstance(error, app_commands.MissingPermissions):
        perms = ", ".join(p.replace('_', ' ').title() for p in error.missing_permissions)
        text = f"❌ You need {perms} permission to use this command!"
    elif isinstance(error, app_commands.CheckFailure):
        text = "❌ You do not have permission to use this command."
    elif isinstance(error, app_commands.CommandInvokeError) and isinstance(error.original, DatabaseError):
        logger.error("Database error in /%s: %s", command, error.original)
        text = "❌ Could not reach the database. Please try again later."
    else:
        logger.error("Error in /%s", command, exc_info=error)
        text = "❌ There was an error while executing this command."

    if interaction.response.is_done():
        await interaction.followup.send(text, ephemeral=True)
    else:
        await interaction.response.send_message(text, ephemeral=True)


# ============================================================================
# MAIN
# ============================================================================

def main():
    """
    Main entry point.
    """
    setup_logging()

    # Validate config
    errors = config.validate_config()
    if errors:
        print("⚠️  Configuration Errors:")
        for error in errors:
            print(f"   ❌ {error}")
        return

    # Show startup info
    print("=" * 60)
    print("🚀 STARTING HEAVEN BOT")
    print("=" * 60)
    print(f"Features Enabled:")
    for feature, enabled in config.FEATURES.items():
        status = "✅" if enabled else "❌"
        print(f"  {status} {feature}")
    print("=" * 60)

    # Run bot; logging is already configured
    try:
        bot.run(config.BOT_TOKEN, log_handler=None)
    except discord.LoginFailure:
        print("❌ Invalid bot token!")
        print("   Please set BOT_TOKEN in your .env file")


if __name__ == "__main__":
    main()
