"""
Bastion - Audit Log Events
==========================

Hands every audit log entry to the protection dispatcher.
"""

from typing import TYPE_CHECKING

import discord
from discord.ext import commands

from bastion.core.logger import logger

if TYPE_CHECKING:
    from bastion.bot import BastionBot


class AuditLogEvents(commands.Cog):
    """Audit log event handlers."""

    def __init__(self, bot: "BastionBot") -> None:
        self.bot = bot

    @commands.Cog.listener()
    async def on_audit_log_entry_create(self, entry: discord.AuditLogEntry) -> None:
        """
        Route an entry to every protection module that claims it.

        DESIGN: Dispatch schedules one task per module and returns at once,
        so a slow revert never delays the next entry.
        """
        if entry.guild is None or entry.user_id is None:
            return

        tasks = self.bot.protection_dispatcher.dispatch(entry)
        if tasks:
            logger.debug("Audit Entry Dispatched", [
                ("Action", str(entry.action.name)),
                ("Guild ID", str(entry.guild.id)),
                ("Actor ID", str(entry.user_id)),
                ("Handlers", str(len(tasks))),
            ])


async def setup(bot: "BastionBot") -> None:
    """Add the audit log events cog to the bot."""
    await bot.add_cog(AuditLogEvents(bot))
    logger.debug("Audit Log Events Loaded")
