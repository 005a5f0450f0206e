"""
Bastion - Membership Log
========================

Join/leave logging for the logging module, with a per-member role
snapshot so a leave can still list the roles the member had.

DESIGN:
    Every handled event touches logging_guilds. Guilds that stop
    producing events are dropped by LoggingCleanupScheduler, and their
    member_old_roles rows go with them (ON DELETE CASCADE).

    Snapshots are shared with sticky roles. While sticky roles is enabled
    it owns the snapshot on join and leave: a join does not overwrite the
    stored roles before they are restored, and a leave keeps them for the
    next join.
"""

from typing import TYPE_CHECKING, Optional

import discord

from bastion.core.logger import logger
from bastion.core.database import get_db
from bastion.services.action_log import LogLevel
from bastion.services.protection.constants import ModuleType
from bastion.services.protection.settings import ModuleConfig, load_enabled_config
from bastion.services.sticky_roles import member_role_ids, sticky_roles_enabled, tracks_member_roles

if TYPE_CHECKING:
    from bastion.bot import BastionBot


class MembershipLogService:
    """Membership events for guilds with log_membership enabled."""

    def __init__(self, bot: "BastionBot") -> None:
        self.bot = bot
        self.db = get_db()

    def _get_config(self, guild_id: int) -> Optional[ModuleConfig]:
        config = load_enabled_config(self.db, guild_id, ModuleType.LOGGING)
        if config is None or not config.settings.log_membership:
            return None
        return config

    async def handle_join(self, member: discord.Member) -> bool:
        config = self._get_config(member.guild.id)
        if config is None:
            return False

        guild_id = member.guild.id
        self.db.touch_logging_guild(guild_id)
        if not sticky_roles_enabled(self.db, guild_id):
            self.db.store_member_roles(guild_id, member.id, member_role_ids(member))

        await self.bot.action_log.log_action(
            guild_id,
            ModuleType.LOGGING,
            LogLevel.INFO,
            "Member Joined",
            f"<@{member.id}> joined the server.",
            [
                ("Member", f"{member} ({member.id})"),
                ("Account Created", discord.utils.format_dt(member.created_at, "R")),
            ],
            preferred_channel_id=config.settings.membership_log_channel_id,
        )
        return True

    async def handle_roles_changed(self, before: discord.Member, after: discord.Member) -> bool:
        """Refresh the stored role snapshot when a member's roles change."""
        if {role.id for role in before.roles} == {role.id for role in after.roles}:
            return False
        if not tracks_member_roles(self.db, after.guild.id):
            return False

        self.db.store_member_roles(after.guild.id, after.id, member_role_ids(after))
        return True

    async def handle_leave(self, guild: discord.Guild, user: discord.abc.User) -> bool:
        """
        Log a leave, listing the roles from the live member or the snapshot.
        """
        config = self._get_config(guild.id)
        if config is None:
            return False

        self.db.touch_logging_guild(guild.id)

        if isinstance(user, discord.Member):
            role_ids = member_role_ids(user)
        else:
            role_ids = self.db.get_member_roles(guild.id, user.id) or []

        fields = [("Member", f"{user} ({user.id})")]
        if role_ids:
            fields.append(("Roles", ", ".join(f"<@&{role_id}>" for role_id in role_ids)))

        await self.bot.action_log.log_action(
            guild.id,
            ModuleType.LOGGING,
            LogLevel.INFO,
            "Member Left",
            f"<@{user.id}> left the server.",
            fields,
            preferred_channel_id=config.settings.membership_log_channel_id,
        )

        if not sticky_roles_enabled(self.db, guild.id):
            self.db.delete_member_roles(guild.id, user.id)
        logger.debug("Member Leave Logged", [
            ("Guild", f"{guild.name} ({guild.id})"),
            ("User", f"{user} ({user.id})"),
            ("Roles", str(len(role_ids))),
        ])
        return True


__all__ = ["MembershipLogService"]
