"""
Bastion - Member Events
=======================

Handles member join, leave, and update events for invite tracking, sticky
roles and membership logging.

DESIGN:
    Each module's handler runs through gather_with_logging, so an error
    in one (say a failed invite fetch) is logged and the others still run.
"""

from typing import TYPE_CHECKING

import discord
from discord.ext import commands

from bastion.core.logger import logger
from bastion.utils.async_utils import gather_with_logging

if TYPE_CHECKING:
    from bastion.bot import BastionBot


class MemberEvents(commands.Cog):
    """Member event handlers."""

    def __init__(self, bot: "BastionBot") -> None:
        self.bot = bot

    @commands.Cog.listener()
    async def on_member_join(self, member: discord.Member) -> None:
        """Attribute the join, restore sticky roles, and log it."""
        await gather_with_logging(
            ("Invite Tracking", self.bot.invite_tracker.handle_join(member)),
            ("Sticky Roles", self.bot.sticky_roles.handle_join(member)),
            ("Membership Log", self.bot.membership_log.handle_join(member)),
            context="Member Join",
        )

    @commands.Cog.listener()
    async def on_raw_member_remove(self, payload: discord.RawMemberRemoveEvent) -> None:
        """
        Handle a leave, cached member or not.

        DESIGN: The raw event fires even when the member was never cached,
        which is common right after a restart. payload.user is a Member
        when cached and a User otherwise.
        """
        guild = self.bot.get_guild(payload.guild_id)
        if guild is None:
            logger.debug("Member Leave Skipped (Guild Unavailable)", [
                ("Guild ID", str(payload.guild_id)),
                ("User ID", str(payload.user.id)),
            ])
            return

        await gather_with_logging(
            ("Invite Tracking", self.bot.invite_tracker.handle_leave(guild, payload.user)),
            ("Sticky Roles", self.bot.sticky_roles.handle_leave(guild, payload.user)),
            ("Membership Log", self.bot.membership_log.handle_leave(guild, payload.user)),
            context="Member Leave",
        )

    @commands.Cog.listener()
    async def on_member_update(self, before: discord.Member, after: discord.Member) -> None:
        await self.bot.membership_log.handle_roles_changed(before, after)


async def setup(bot: "BastionBot") -> None:
    """Add the member events cog to the bot."""
    await bot.add_cog(MemberEvents(bot))
    logger.debug("Member Events Loaded")
