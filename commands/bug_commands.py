"""
============================================================================
BUG REPORT COMMANDS
============================================================================
Bug report intake and triage.

Commands included:
- /bug: opens a report modal, posts the report to the bug channel
- /bug-stats: status breakdown of recent reports
- /set-bug-channel: choose where reports are posted

Status buttons survive restarts: they are DynamicItems matched on their
custom ID, so no view state has to be kept in memory.
"""

import logging
import re
from datetime import datetime, timezone

import discord
from discord import app_commands
from discord.ext import commands

import config
from database import get_db
from modules.bug_reports import (
    BUG_STATUSES, CUSTOM_ID_PREFIX, REPORT_TITLE_PREFIX, UNDER_REVIEW,
    make_custom_id, parse_custom_id, status_info, tally_statuses, percentage,
    get_bug_channel_id, set_bug_channel_id,
)
from utils import create_embed, send_dm

logger = logging.getLogger(__name__)

BUTTON_STYLES = {
    'primary': discord.ButtonStyle.primary,
    'success': discord.ButtonStyle.success,
    'danger': discord.ButtonStyle.danger,
    'secondary': discord.ButtonStyle.secondary,
}


# ============================================================================
# STATUS BUTTONS
# ============================================================================

class BugStatusButton(
    discord.ui.DynamicItem[discord.ui.Button],
    template=rf"{CUSTOM_ID_PREFIX}(?P<status>{'|'.join(BUG_STATUSES)})_(?P<reporter_id>\d+)"
):
    """Sets a report's status. Admin only."""

    def __init__(self, status: str, reporter_id: str):
        info = BUG_STATUSES[status]
        super().__init__(
            discord.ui.Button(
                label=info['label'],
                style=BUTTON_STYLES[info['style']],
                custom_id=make_custom_id(status, reporter_id),
            )
        )
        self.status = status
        self.reporter_id = reporter_id

    @classmethod
    async def from_custom_id(
        cls,
        interaction: discord.Interaction,
        item: discord.ui.Button,
        match: re.Match
    ) -> 'BugStatusButton':
        status, reporter_id = parse_custom_id(item.custom_id)
        return cls(status, reporter_id)

    async def callback(self, interaction: discord.Interaction):
        if not interaction.user.guild_permissions.administrator:
            await interaction.response.send_message(
                "❌ You do not have permission to manage bug reports.",
                ephemeral=True
            )
            return

        message = interaction.message
        if not message or not message.embeds:
            await interaction.response.send_message(
                "❌ Could not find the bug report embed.",
                ephemeral=True
            )
            return

        info = status_info(self.status)
        embed = message.embeds[0].copy()
        embed.color = info['color']

        for index, report_field in enumerate(embed.fields):
            if report_field.name == "Status":
                embed.set_field_at(index, name="Status", value=info['label'], inline=report_field.inline)
                break

        resolved_at = datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M UTC')
        embed.add_field(name="Resolution By", value=f"{interaction.user} at {resolved_at}", inline=False)

        await message.edit(embed=embed)
        logger.info("Bug report %s set to %s by %s", message.id, self.status, interaction.user.id)

        reporter = interaction.client.get_user(int(self.reporter_id))
        if reporter is None:
            try:
                reporter = await interaction.client.fetch_user(int(self.reporter_id))
            except discord.HTTPException as e:
                logger.info("Could not look up bug reporter %s: %s", self.reporter_id, e)

        if reporter:
            notification = create_embed(
                title="Bug Report Status Update",
                description="Your bug report has been updated!",
                color=info['color']
            )
            bug_title = (embed.title or "").replace(REPORT_TITLE_PREFIX, "", 1)
            notification.add_field(name="Bug", value=bug_title or "Unknown", inline=False)
            notification.add_field(name="New Status", value=info['label'], inline=False)
            notification.add_field(name="Message", value=info['message'], inline=False)
            await send_dm(reporter, notification)

        await interaction.response.send_message(
            f"✅ Bug report status updated to {info['label']}",
            ephemeral=True
        )


class BugReportView(discord.ui.View):
    def __init__(self, reporter_id: str):
        super().__init__(timeout=None)
        for status in BUG_STATUSES:
            self.add_item(BugStatusButton(status, reporter_id))


# ============================================================================
# REPORT MODAL
# ============================================================================

class BugReportModal(discord.ui.Modal, title="Report a Bug"):
    """Collects the report and posts it to the bug channel."""

    def __init__(self):
        super().__init__()

        self.bug_title = discord.ui.TextInput(
            label="Bug Title",
            style=discord.TextStyle.short,
            placeholder="Brief description of the bug",
            required=True,
            max_length=config.BUG_TITLE_MAX_LENGTH,
        )
        self.add_item(self.bug_title)

        self.description = discord.ui.TextInput(
            label="Bug Description",
            style=discord.TextStyle.paragraph,
            placeholder="Detailed explanation of what happened",
            required=True,
            max_length=config.BUG_TEXT_MAX_LENGTH,
        )
        self.add_item(self.description)

        self.steps = discord.ui.TextInput(
            label="Steps to Reproduce",
            style=discord.TextStyle.paragraph,
            placeholder="Steps to reproduce the bug (if applicable)",
            required=False,
            max_length=config.BUG_TEXT_MAX_LENGTH,
        )
        self.add_item(self.steps)

    async def on_submit(self, interaction: discord.Interaction):
        db = await get_db()
        channel_id = await get_bug_channel_id(db)
        channel = interaction.client.get_channel(int(channel_id)) if channel_id else None

        if channel is None:
            await interaction.response.send_message(
                "❌ The bug reports channel has not been configured. Please contact an administrator.",
                ephemeral=True
            )
            return

        embed = create_embed(
            title=f"{REPORT_TITLE_PREFIX}{self.bug_title.value}",
            color=UNDER_REVIEW['color']
        )
        embed.add_field(name="Description", value=self.description.value, inline=False)
        embed.add_field(name="Steps to Reproduce", value=self.steps.value or "Not provided", inline=False)
        embed.add_field(
            name="Reported By",
            value=f"{interaction.user} ({interaction.user.id})",
            inline=False
        )
        embed.add_field(name="Status", value=UNDER_REVIEW['label'], inline=False)

        try:
            await channel.send(embed=embed, view=BugReportView(str(interaction.user.id)))
        except discord.HTTPException as e:
            logger.error("Could not post bug report to %s: %s", channel_id, e)
            await interaction.response.send_message(
                "❌ There was an error while submitting your bug report. Please try again later.",
                ephemeral=True
            )
            return

        logger.info("Bug report from %s: %s", interaction.user.id, self.bug_title.value)
        await interaction.response.send_message(
            "Thank you for your bug report! Our team will investigate the issue "
            "and you will be notified when there is an update.",
            ephemeral=True
        )


# ============================================================================
# COMMANDS
# ============================================================================

class BugCommands(commands.Cog):
    """Bug report commands cog."""

    def __init__(self, bot):
        self.bot = bot

    @app_commands.command(name="bug", description="Report a bug to the development team")
    async def bug_command(self, interaction: discord.Interaction):
        await interaction.response.send_modal(BugReportModal())

    @app_commands.command(name="bug-stats", description="Show statistics about bug reports")
    @app_commands.default_permissions(administrator=True)
    async def bug_stats_command(self, interaction: discord.Interaction):
        """Tally recent report embeds by status."""
        db = await get_db()
        channel_id = await get_bug_channel_id(db)
        channel = self.bot.get_channel(int(channel_id)) if channel_id else None

        if channel is None:
            await interaction.response.send_message(
                "❌ The bug reports channel has not been configured. Use `/set-bug-channel` to set it up.",
                ephemeral=True
            )
            return

        await interaction.response.defer(ephemeral=True)

        statuses = []
        async for message in channel.history(limit=config.BUG_STATS_MESSAGE_LIMIT):
            if not message.embeds:
                continue
            embed = message.embeds[0]
            if not embed.title or not embed.title.startswith(REPORT_TITLE_PREFIX.strip()):
                continue
            status_field = next((f for f in embed.fields if f.name == "Status"), None)
            statuses.append(status_field.value if status_field else None)

        counts = tally_statuses(statuses)
        total = counts['total']

        embed = create_embed(
            title="Bug Report Statistics",
            description=f"Statistics for the last {total} bug reports:",
            color=0x3498DB
        )
        embed.add_field(name="Total Bug Reports", value=str(total), inline=True)
        embed.add_field(
            name="Under Review",
            value=f"{counts['underreview']} ({percentage(counts['underreview'], total)}%)",
            inline=True
        )
        for status, info in BUG_STATUSES.items():
            embed.add_field(
                name=info['match'],
                value=f"{counts[status]} ({percentage(counts[status], total)}%)",
                inline=True
            )
        embed.set_footer(
            text=f"Note: Only includes the last {config.BUG_STATS_MESSAGE_LIMIT} messages in the channel"
        )

        await interaction.followup.send(embed=embed, ephemeral=True)

    @app_commands.command(name="set-bug-channel", description="Set the channel where bug reports will be sent")
    @app_commands.describe(channel="Channel to send bug reports to")
    @app_commands.default_permissions(administrator=True)
    async def set_bug_channel_command(self, interaction: discord.Interaction, channel: discord.TextChannel):
        db = await get_db()

        if await get_bug_channel_id(db) == str(channel.id):
            await interaction.response.send_message(
                "This channel is already configured for bug reports.",
                ephemeral=True
            )
            return

        perms = channel.permissions_for(interaction.guild.me)
        if not (perms.view_channel and perms.send_messages and perms.embed_links):
            await interaction.response.send_message(
                "❌ I don't have permission to send messages in that channel. "
                "Please give me the required permissions.",
                ephemeral=True
            )
            return

        await set_bug_channel_id(db, str(channel.id))
        await interaction.response.send_message(
            f"✅ Successfully set {channel.mention} as the bug report channel!",
            ephemeral=True
        )

        await channel.send("✅ This channel has been set as the bug reports channel. Bug reports will appear here.")


async def setup(bot):
    """Load the cog and register the persistent status buttons."""
    if not config.FEATURES.get('bug_reports', True):
        return
    bot.add_dynamic_items(BugStatusButton)
    await bot.add_cog(BugCommands(bot))
