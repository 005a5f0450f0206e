"""
Bastion - Invite Events
=======================

Keeps invite snapshots current as invites are created and deleted.
"""

from typing import TYPE_CHECKING

import discord
from discord.ext import commands

from bastion.core.logger import logger

if TYPE_CHECKING:
    from bastion.bot import BastionBot


class InviteEvents(commands.Cog):
    """Invite event handlers."""

    def __init__(self, bot: "BastionBot") -> None:
        self.bot = bot

    @commands.Cog.listener()
    async def on_invite_create(self, invite: discord.Invite) -> None:
        await self.bot.invite_tracker.handle_invite_create(invite)

    @commands.Cog.listener()
    async def on_invite_delete(self, invite: discord.Invite) -> None:
        await self.bot.invite_tracker.handle_invite_delete(invite)


async def setup(bot: "BastionBot") -> None:
    """Add the invite events cog to the bot."""
    await bot.add_cog(InviteEvents(bot))
    logger.debug("Invite Events Loaded")
