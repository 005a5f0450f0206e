"""
Bastion - Jail Service
======================

Swaps a member's roles for the guild's jail role and restores them later.

DESIGN:
    The original removable roles (not managed, not @everyone, below the
    bot's top role) are persisted before the swap so they survive a
    restart. Unjail deletes the record first and only restores roles when
    it won that delete, so the expiry worker and a manual /unjail never
    restore twice.
"""

import time
from typing import TYPE_CHECKING, List, Optional

import discord

from bastion.core.logger import logger
from bastion.core.constants import AUDIT_REASON_LIMIT
from bastion.core.database import get_db
from bastion.core.database.models import JailRecord
from bastion.utils.http_errors import log_http_error

if TYPE_CHECKING:
    from bastion.bot import BastionBot


class JailService:
    """
    Jail and unjail members.

    Attributes:
        bot: Main bot instance.
        db: Database manager.
    """

    def __init__(self, bot: "BastionBot") -> None:
        self.bot = bot
        self.db = get_db()

    # =========================================================================
    # Helpers
    # =========================================================================

    def _get_jail_role(self, guild: discord.Guild) -> Optional[discord.Role]:
        guild_config = self.db.get_guild_config(guild.id)
        if not guild_config or not guild_config.get("jail_role_id"):
            return None
        return guild.get_role(guild_config["jail_role_id"])

    @staticmethod
    def _bot_top_position(guild: discord.Guild) -> int:
        return guild.me.top_role.position if guild.me else 0

    @staticmethod
    def _dedupe(roles: List[discord.Role]) -> List[discord.Role]:
        seen = set()
        result = []
        for role in roles:
            if role.id not in seen:
                seen.add(role.id)
                result.append(role)
        return result

    def _rollback_record(self, guild_id: int, user_id: int, previous: Optional[JailRecord]) -> None:
        """Undo the record written by a jail whose role swap failed."""
        if previous is None:
            self.db.delete_jail(guild_id, user_id)
        else:
            self.db.restore_jail(previous)

    # =========================================================================
    # Jail
    # =========================================================================

    async def jail(
        self,
        guild: discord.Guild,
        member: discord.Member,
        reason: str,
        moderator_id: Optional[int] = None,
        duration_seconds: Optional[int] = None,
    ) -> bool:
        """
        Jail a member.

        Args:
            guild: Guild to act in.
            member: Member to jail.
            reason: Audit log reason.
            moderator_id: Who jailed, None for automatic punishments.
            duration_seconds: Jail length, None for indefinite.

        Returns:
            True if the member's roles were swapped.
        """
        jail_role = self._get_jail_role(guild)
        if jail_role is None:
            logger.warning("Jail Skipped (No Jail Role)", [
                ("Guild", f"{guild.name} ({guild.id})"),
                ("User", f"{member} ({member.id})"),
            ])
            return False

        bot_top = self._bot_top_position(guild)
        removable = [
            role for role in member.roles
            if not role.is_default()
            and not role.managed
            and role.position < bot_top
            and role.id != jail_role.id
        ]
        removable_ids = {role.id for role in removable}
        kept = [
            role for role in member.roles
            if not role.is_default() and role.id not in removable_ids
        ]

        # Re-jailing keeps the roles captured by the first jail
        existing = self.db.get_jail(guild.id, member.id)
        old_role_ids = list(existing["old_roles"]) if existing else []
        old_role_ids.extend(role_id for role_id in removable_ids if role_id not in old_role_ids)

        expires_at = time.time() + duration_seconds if duration_seconds else None
        self.db.add_jail(
            guild.id,
            member.id,
            old_role_ids,
            reason=reason,
            moderator_id=moderator_id,
            expires_at=expires_at,
        )

        try:
            await member.edit(
                roles=self._dedupe(kept + [jail_role]),
                reason=reason[:AUDIT_REASON_LIMIT],
            )
        except discord.Forbidden:
            self._rollback_record(guild.id, member.id, existing)
            logger.warning("Jail Failed (Forbidden)", [
                ("Guild", f"{guild.name} ({guild.id})"),
                ("User", f"{member} ({member.id})"),
                ("Error", "Missing permissions"),
            ])
            return False
        except discord.HTTPException as e:
            self._rollback_record(guild.id, member.id, existing)
            log_http_error(e, "Jail", [
                ("Guild", f"{guild.name} ({guild.id})"),
                ("User", f"{member} ({member.id})"),
            ])
            return False

        logger.tree("Member Jailed", [
            ("Guild", f"{guild.name} ({guild.id})"),
            ("User", f"{member} ({member.id})"),
            ("Roles Stored", str(len(old_role_ids))),
            ("Expires", str(int(expires_at)) if expires_at else "Never"),
            ("Reason", reason[:50]),
        ], emoji="🔒")
        return True

    # =========================================================================
    # Unjail
    # =========================================================================

    async def unjail(self, guild_id: int, user_id: int, reason: str = "Jail expired") -> bool:
        """
        Release a jailed member and restore the stored roles.

        Returns:
            True if this call released the jail (record removed), even
            when the member has since left the guild.
        """
        record = self.db.get_jail(guild_id, user_id)
        if record is None:
            return False

        if not self.db.delete_jail(guild_id, user_id):
            return False  # Released concurrently

        guild = self.bot.get_guild(guild_id)
        if guild is None:
            logger.warning("Unjail Skipped (Guild Unavailable)", [
                ("Guild ID", str(guild_id)),
                ("User ID", str(user_id)),
            ])
            return True

        member = guild.get_member(user_id)
        if member is None:
            try:
                member = await guild.fetch_member(user_id)
            except discord.NotFound:
                logger.info("Unjail Record Cleared (Member Left)", [
                    ("Guild", f"{guild.name} ({guild_id})"),
                    ("User ID", str(user_id)),
                ])
                return True
            except discord.HTTPException as e:
                log_http_error(e, "Unjail Member Fetch", [
                    ("Guild", f"{guild.name} ({guild_id})"),
                    ("User ID", str(user_id)),
                ])
                return True

        jail_role = self._get_jail_role(guild)
        bot_top = self._bot_top_position(guild)

        restored = []
        for role_id in record["old_roles"]:
            role = guild.get_role(role_id)
            if role is not None and not role.managed and role.position < bot_top:
                restored.append(role)

        current = [
            role for role in member.roles
            if not role.is_default() and (jail_role is None or role.id != jail_role.id)
        ]

        try:
            await member.edit(roles=self._dedupe(current + restored), reason=reason[:AUDIT_REASON_LIMIT])
        except discord.Forbidden:
            logger.warning("Unjail Failed (Forbidden)", [
                ("Guild", f"{guild.name} ({guild_id})"),
                ("User", f"{member} ({user_id})"),
                ("Error", "Missing permissions"),
            ])
            return True
        except discord.HTTPException as e:
            log_http_error(e, "Unjail", [
                ("Guild", f"{guild.name} ({guild_id})"),
                ("User", f"{member} ({user_id})"),
            ])
            return True

        logger.tree("Member Unjailed", [
            ("Guild", f"{guild.name} ({guild_id})"),
            ("User", f"{member} ({user_id})"),
            ("Roles Restored", str(len(restored))),
            ("Reason", reason[:50]),
        ], emoji="🔓")
        return True


__all__ = ["JailService"]
