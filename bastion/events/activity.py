"""
Bastion - Message & Voice Events
================================

Forwards message edits/deletes and voice state updates to the activity
log.
"""

from typing import TYPE_CHECKING

import discord
from discord.ext import commands

from bastion.core.logger import logger

if TYPE_CHECKING:
    from bastion.bot import BastionBot


class ActivityEvents(commands.Cog):
    """Message and voice event handlers."""

    def __init__(self, bot: "BastionBot") -> None:
        self.bot = bot

    @commands.Cog.listener()
    async def on_raw_message_delete(self, payload: discord.RawMessageDeleteEvent) -> None:
        await self.bot.activity_log.handle_message_delete(payload)

    @commands.Cog.listener()
    async def on_raw_message_edit(self, payload: discord.RawMessageUpdateEvent) -> None:
        await self.bot.activity_log.handle_message_edit(payload)

    @commands.Cog.listener()
    async def on_voice_state_update(
        self,
        member: discord.Member,
        before: discord.VoiceState,
        after: discord.VoiceState,
    ) -> None:
        await self.bot.activity_log.handle_voice_state(member, before, after)


async def setup(bot: "BastionBot") -> None:
    """Add the activity events cog to the bot."""
    await bot.add_cog(ActivityEvents(bot))
    logger.debug("Activity Events Loaded")
