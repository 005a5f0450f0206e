"""
Bastion - Invites Command Cog
=============================

/invites stats [user] and /invites top.
"""

from typing import TYPE_CHECKING, Optional

import discord
from discord import app_commands
from discord.ext import commands

from bastion.core.logger import logger
from bastion.core.config import EmbedColors
from bastion.services.invites import format_join_type

from .helpers import build_embed

if TYPE_CHECKING:
    from bastion.bot import BastionBot


MEDALS = ("🥇", "🥈", "🥉")


@app_commands.default_permissions(administrator=True)
@app_commands.guild_only()
class InvitesCog(commands.GroupCog, group_name="invites", group_description="Invite tracking statistics"):
    """Inviter statistics commands."""

    def __init__(self, bot: "BastionBot") -> None:
        self.bot = bot

    @app_commands.command(name="stats", description="Show a member's invite statistics")
    @app_commands.describe(user="Member to look up, defaults to you")
    async def stats(self, interaction: discord.Interaction, user: Optional[discord.User] = None) -> None:
        target = user or interaction.user
        guild_id = interaction.guild_id
        stats = self.bot.invite_tracker.get_user_stats(guild_id, target.id)

        fields = [
            ("Total", str(stats["total_invites"])),
            ("Current", str(stats["current_members"])),
            ("Left", str(stats["left_members"])),
            ("Fake", str(stats["fake_members"])),
        ]

        join = self.bot.db.get_latest_join_event(guild_id, target.id)
        if join is not None:
            inviter = f"<@{join['inviter_id']}>" if join.get("inviter_id") else "Unknown"
            fields.append(("Joined Via", f"{format_join_type(join.get('join_type'))} ({inviter})"))

        embed = build_embed(f"Invite Stats: {target}", color=EmbedColors.INFO, fields=fields)
        await interaction.response.send_message(embed=embed, ephemeral=True)

    @app_commands.command(name="top", description="Show the top inviters")
    async def top(self, interaction: discord.Interaction) -> None:
        leaders = self.bot.invite_tracker.get_top_inviters(interaction.guild_id)

        lines = []
        for rank, stats in enumerate(leaders, start=1):
            prefix = MEDALS[rank - 1] if rank <= len(MEDALS) else f"`#{rank}`"
            lines.append(
                f"{prefix} <@{stats['inviter_id']}> · **{stats['current_members']}** current "
                f"({stats['total_invites']} total, {stats['left_members']} left, {stats['fake_members']} fake)"
            )

        embed = build_embed(
            "Top Inviters",
            "\n".join(lines) or "No invites tracked yet.",
            EmbedColors.GOLD,
        )
        await interaction.response.send_message(embed=embed, ephemeral=True)


async def setup(bot: "BastionBot") -> None:
    """Add the invites cog to the bot."""
    await bot.add_cog(InvitesCog(bot))
    logger.debug("Invite Commands Loaded")
