"""
Bastion - Sticky Roles
======================

Gives a rejoining member back the roles they had when they left.

DESIGN:
    Role snapshots live in member_old_roles and are shared with the
    membership log. They are kept while either sticky roles or membership
    logging is enabled. On join, only roles that still exist, are not
    managed and sit below the bot's top role are restored.
"""

from typing import TYPE_CHECKING, List

import discord

from bastion.core.logger import logger
from bastion.core.constants import AUDIT_REASON_LIMIT
from bastion.core.database import get_db
from bastion.services.protection.constants import ModuleType
from bastion.services.protection.settings import load_enabled_config
from bastion.utils.http_errors import log_http_error

if TYPE_CHECKING:
    from bastion.bot import BastionBot
    from bastion.core.database import DatabaseManager


RESTORE_REASON = "Sticky roles: restoring roles from before the member left"


def member_role_ids(member: discord.Member) -> List[int]:
    """Role IDs of a member, without @everyone."""
    return [role.id for role in member.roles if not role.is_default()]


def sticky_roles_enabled(db: "DatabaseManager", guild_id: int) -> bool:
    return load_enabled_config(db, guild_id, ModuleType.STICKY_ROLES) is not None


def tracks_member_roles(db: "DatabaseManager", guild_id: int) -> bool:
    """Whether any enabled module needs member role snapshots."""
    if sticky_roles_enabled(db, guild_id):
        return True
    logging_config = load_enabled_config(db, guild_id, ModuleType.LOGGING)
    return logging_config is not None and logging_config.settings.log_membership


class StickyRolesService:
    """
    Store roles on leave and restore them on rejoin.

    Attributes:
        bot: Main bot instance.
        db: Database manager.
    """

    def __init__(self, bot: "BastionBot") -> None:
        self.bot = bot
        self.db = get_db()

    async def handle_leave(self, guild: discord.Guild, user: discord.abc.User) -> bool:
        """
        Refresh the snapshot from a cached member as they leave.

        Returns:
            True if a snapshot was written.
        """
        if not isinstance(user, discord.Member) or not sticky_roles_enabled(self.db, guild.id):
            return False
        self.db.store_member_roles(guild.id, user.id, member_role_ids(user))
        return True

    async def handle_join(self, member: discord.Member) -> List[int]:
        """
        Restore stored roles to a rejoining member.

        Returns:
            IDs of the roles given back; empty when nothing was restored.
        """
        guild = member.guild
        if not sticky_roles_enabled(self.db, guild.id):
            return []

        stored = self.db.get_member_roles(guild.id, member.id)
        if not stored:
            return []

        self.db.touch_logging_guild(guild.id)

        bot_top = guild.me.top_role.position if guild.me else 0
        current = {role.id for role in member.roles}
        to_add = []
        for role_id in stored:
            if role_id in current:
                continue
            role = guild.get_role(role_id)
            if role is None or role.is_default() or role.managed or role.position >= bot_top:
                continue
            to_add.append(role)

        if not to_add:
            return []

        context = [
            ("Guild", f"{guild.name} ({guild.id})"),
            ("User", f"{member} ({member.id})"),
        ]
        try:
            await member.add_roles(*to_add, reason=RESTORE_REASON[:AUDIT_REASON_LIMIT])
        except discord.Forbidden:
            logger.warning("Sticky Roles Restore Failed (Forbidden)", context + [("Error", "Missing permissions")])
            return []
        except discord.HTTPException as e:
            log_http_error(e, "Sticky Roles Restore", context)
            return []

        restored = [role.id for role in to_add]
        self.db.store_member_roles(guild.id, member.id, member_role_ids(member) + restored)
        logger.tree("Sticky Roles Restored", context + [
            ("Roles", str(len(restored))),
            ("Stored", str(len(stored))),
        ], emoji="📌")
        return restored


__all__ = [
    "StickyRolesService",
    "member_role_ids",
    "sticky_roles_enabled",
    "tracks_member_roles",
]
