"""
Bastion - Object Cache Events
=============================

Keeps deleted channels and roles around briefly so a revert can recreate
them. The gateway delete event and the audit log entry arrive in either
order; restore waits on the cache for a bounded time.
"""

from typing import TYPE_CHECKING

import discord
from discord.ext import commands

from bastion.core.logger import logger

if TYPE_CHECKING:
    from bastion.bot import BastionBot


class ObjectCacheEvents(commands.Cog):
    """Feeds deleted objects into the bot's object cache."""

    def __init__(self, bot: "BastionBot") -> None:
        self.bot = bot

    @commands.Cog.listener()
    async def on_guild_channel_delete(self, channel: discord.abc.GuildChannel) -> None:
        self.bot.object_cache.store(channel.guild.id, channel.id, channel)

    @commands.Cog.listener()
    async def on_guild_role_delete(self, role: discord.Role) -> None:
        self.bot.object_cache.store(role.guild.id, role.id, role)


async def setup(bot: "BastionBot") -> None:
    """Add the object cache events cog to the bot."""
    await bot.add_cog(ObjectCacheEvents(bot))
    logger.debug("Object Cache Events Loaded")
