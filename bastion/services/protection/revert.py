"""
Bastion - Revert Executor
=========================

Best-effort undo of unauthorized administrative actions.

DESIGN:
    Every operation returns True/False and never raises. Platform errors
    (Forbidden, NotFound, other HTTP failures) are logged and reported as
    a failed revert; the caller only composes the status line.

    Deleted channels and roles are recreated from the ObjectCache, which
    is filled by the gateway delete events. Those can arrive after the
    audit-log entry, so restores poll the cache a bounded number of times.
"""

from typing import TYPE_CHECKING, Any, Awaitable, Dict, List, Optional, Sequence, Tuple, Union

import discord

from bastion.core.logger import logger
from bastion.core.config import get_config
from bastion.core.constants import AUDIT_REASON_LIMIT, MS_PER_SECOND
from bastion.utils.http_errors import log_http_error

from .cache import ObjectCache

if TYPE_CHECKING:
    from bastion.bot import BastionBot


OverwriteTarget = Union[discord.Role, discord.Member, discord.Object]

CHANNEL_REVERT_FIELDS: Tuple[str, ...] = ("name", "topic", "nsfw", "slowmode_delay")
"""Channel attributes restored on an unauthorized update."""

ROLE_REVERT_FIELDS: Tuple[str, ...] = ("name", "colour", "hoist", "mentionable")
"""Role attributes restored on an unauthorized update (permissions excluded)."""


def collect_before_values(before: Any, names: Sequence[str]) -> Dict[str, Any]:
    """
    Pick the "old" values present in an audit-log diff.

    AuditLogDiff only carries attributes that changed, so absent
    attributes are left alone. Role colour is also exposed as `color`.
    """
    values: Dict[str, Any] = {}
    for name in names:
        if hasattr(before, name):
            values[name] = getattr(before, name)
        elif name == "colour" and hasattr(before, "color"):
            values[name] = getattr(before, "color")
    return values


class RevertExecutor:
    """
    Undo operations for every protected action.

    Attributes:
        bot: Main bot instance.
        cache: Deleted object cache.
        poll_attempts: Cache lookups before a restore gives up.
        poll_delay: Seconds between cache lookups.
    """

    def __init__(
        self,
        bot: "BastionBot",
        cache: ObjectCache,
        poll_attempts: Optional[int] = None,
        poll_delay: Optional[float] = None,
    ) -> None:
        config = get_config()
        self.bot = bot
        self.cache = cache
        self.poll_attempts = poll_attempts if poll_attempts is not None else config.revert_poll_attempts
        self.poll_delay = (
            poll_delay if poll_delay is not None
            else config.revert_poll_delay_ms / MS_PER_SECOND
        )

    # =========================================================================
    # Shared
    # =========================================================================

    async def _attempt(
        self,
        operation: str,
        context: List[Tuple[str, str]],
        call: Awaitable[Any],
    ) -> bool:
        """Await a platform call, converting every failure into False."""
        try:
            await call
        except discord.Forbidden:
            logger.warning(f"{operation} Failed (Forbidden)", context + [("Error", "Missing permissions")])
            return False
        except discord.NotFound:
            logger.warning(f"{operation} Failed (Not Found)", context)
            return False
        except discord.HTTPException as e:
            log_http_error(e, operation, context)
            return False
        except Exception as e:
            logger.error(f"{operation} Failed", context + [
                ("Error", str(e)[:100]),
                ("Type", type(e).__name__),
            ])
            return False

        logger.tree(f"{operation} Succeeded", context, emoji="↩️")
        return True

    @staticmethod
    def _reason(reason: str) -> str:
        return reason[:AUDIT_REASON_LIMIT]

    @staticmethod
    def _guild_ctx(guild: discord.Guild) -> Tuple[str, str]:
        return ("Guild", f"{guild.name} ({guild.id})")

    async def _get_channel(self, guild: discord.Guild, channel_id: int) -> Optional[discord.abc.GuildChannel]:
        channel = guild.get_channel(channel_id)
        if channel is not None:
            return channel
        try:
            return await guild.fetch_channel(channel_id)
        except discord.HTTPException as e:
            logger.debug("Channel Lookup Failed", [
                self._guild_ctx(guild),
                ("Channel ID", str(channel_id)),
                ("Status", str(getattr(e, "status", "?"))),
            ])
            return None

    async def _get_role(self, guild: discord.Guild, role_id: int) -> Optional[discord.Role]:
        role = guild.get_role(role_id)
        if role is not None:
            return role
        try:
            roles = await guild.fetch_roles()
        except discord.HTTPException as e:
            logger.debug("Role Lookup Failed", [
                self._guild_ctx(guild),
                ("Role ID", str(role_id)),
                ("Status", str(getattr(e, "status", "?"))),
            ])
            return None
        return discord.utils.get(roles, id=role_id)

    async def _get_member(self, guild: discord.Guild, user_id: int) -> Optional[discord.Member]:
        member = guild.get_member(user_id)
        if member is not None:
            return member
        try:
            return await guild.fetch_member(user_id)
        except discord.HTTPException:
            return None

    async def _resolve_overwrite_target(
        self,
        guild: discord.Guild,
        target: Optional[OverwriteTarget],
        target_id: int,
    ) -> Optional[Union[discord.Role, discord.Member]]:
        """Turn the audit-log overwrite subject into a Role or Member."""
        if isinstance(target, (discord.Role, discord.Member)):
            return target
        if isinstance(target, discord.Object) and getattr(target, "type", None) is discord.Role:
            return await self._get_role(guild, target_id)
        role = guild.get_role(target_id)
        if role is not None:
            return role
        return await self._get_member(guild, target_id)

    # =========================================================================
    # Channels
    # =========================================================================

    async def delete_channel(self, guild: discord.Guild, channel_id: int, reason: str) -> bool:
        """Delete a channel created without authorization."""
        context = [self._guild_ctx(guild), ("Channel ID", str(channel_id))]
        channel = await self._get_channel(guild, channel_id)
        if channel is None:
            logger.warning("Channel Delete Revert Skipped (Not Found)", context)
            return False
        return await self._attempt("Channel Delete Revert", context, channel.delete(reason=self._reason(reason)))

    async def restore_channel(self, guild: discord.Guild, channel_id: int, reason: str) -> bool:
        """Recreate a deleted channel from its cached snapshot."""
        context = [self._guild_ctx(guild), ("Channel ID", str(channel_id))]
        cached = await self.cache.wait_for(guild.id, channel_id, self.poll_attempts, self.poll_delay)
        if cached is None:
            logger.warning("Channel Restore Skipped (Not Cached)", context + [
                ("Attempts", str(self.poll_attempts)),
            ])
            return False

        context.append(("Name", f"#{cached.name}"))
        try:
            restored = await cached.clone(reason=self._reason(reason))
        except discord.Forbidden:
            logger.warning("Channel Restore Failed (Forbidden)", context + [("Error", "Missing permissions")])
            return False
        except discord.HTTPException as e:
            log_http_error(e, "Channel Restore", context)
            return False

        # Position is not part of a clone
        try:
            await restored.edit(position=cached.position, reason=self._reason(reason))
        except discord.HTTPException as e:
            logger.debug("Channel Restore Position Skipped", context + [
                ("Status", str(getattr(e, "status", "?"))),
            ])

        logger.tree("Channel Restored", context + [("New ID", str(restored.id))], emoji="♻️")
        return True

    async def revert_channel_fields(
        self,
        guild: discord.Guild,
        channel_id: int,
        before: Any,
        reason: str,
    ) -> Optional[bool]:
        """
        Restore changed channel attributes.

        Returns:
            None when no revertible attribute changed, else success.
        """
        values = collect_before_values(before, CHANNEL_REVERT_FIELDS)
        if not values:
            return None

        context = [self._guild_ctx(guild), ("Channel ID", str(channel_id)), ("Fields", ", ".join(values))]
        channel = await self._get_channel(guild, channel_id)
        if channel is None:
            return False
        return await self._attempt(
            "Channel Update Revert", context, channel.edit(**values, reason=self._reason(reason))
        )

    # =========================================================================
    # Permission Overwrites
    # =========================================================================

    async def delete_overwrite(
        self,
        guild: discord.Guild,
        channel_id: int,
        target: Optional[OverwriteTarget],
        target_id: int,
        reason: str,
    ) -> bool:
        """Remove a permission overwrite."""
        context = [self._guild_ctx(guild), ("Channel ID", str(channel_id)), ("Target ID", str(target_id))]
        channel = await self._get_channel(guild, channel_id)
        subject = await self._resolve_overwrite_target(guild, target, target_id)
        if channel is None or subject is None:
            logger.warning("Overwrite Delete Revert Skipped (Not Found)", context)
            return False
        return await self._attempt(
            "Overwrite Delete Revert",
            context,
            channel.set_permissions(subject, overwrite=None, reason=self._reason(reason)),
        )

    async def restore_overwrite(
        self,
        guild: discord.Guild,
        channel_id: int,
        target: Optional[OverwriteTarget],
        target_id: int,
        allow: Optional[discord.Permissions],
        deny: Optional[discord.Permissions],
        reason: str,
    ) -> bool:
        """
        Write an overwrite back with the given allow/deny pair.

        A side that is None falls back to the live overwrite's value for
        that side, so an update that only touched `allow` keeps the
        current `deny`.
        """
        context = [self._guild_ctx(guild), ("Channel ID", str(channel_id)), ("Target ID", str(target_id))]
        channel = await self._get_channel(guild, channel_id)
        subject = await self._resolve_overwrite_target(guild, target, target_id)
        if channel is None or subject is None:
            logger.warning("Overwrite Restore Skipped (Not Found)", context)
            return False

        if allow is None or deny is None:
            live_allow, live_deny = channel.overwrites_for(subject).pair()
            allow = allow if allow is not None else live_allow
            deny = deny if deny is not None else live_deny

        overwrite = discord.PermissionOverwrite.from_pair(allow, deny)
        return await self._attempt(
            "Overwrite Restore",
            context,
            channel.set_permissions(subject, overwrite=overwrite, reason=self._reason(reason)),
        )

    # =========================================================================
    # Roles
    # =========================================================================

    async def delete_role(self, guild: discord.Guild, role_id: int, reason: str) -> bool:
        """Delete a role created without authorization."""
        context = [self._guild_ctx(guild), ("Role ID", str(role_id))]
        role = await self._get_role(guild, role_id)
        if role is None:
            logger.warning("Role Delete Revert Skipped (Not Found)", context)
            return False
        return await self._attempt("Role Delete Revert", context, role.delete(reason=self._reason(reason)))

    async def restore_role(self, guild: discord.Guild, role_id: int, reason: str) -> bool:
        """Recreate a deleted role from its cached snapshot."""
        context = [self._guild_ctx(guild), ("Role ID", str(role_id))]
        cached = await self.cache.wait_for(guild.id, role_id, self.poll_attempts, self.poll_delay)
        if cached is None:
            logger.warning("Role Restore Skipped (Not Cached)", context + [
                ("Attempts", str(self.poll_attempts)),
            ])
            return False

        context.append(("Name", cached.name))
        return await self._attempt(
            "Role Restore",
            context,
            guild.create_role(
                name=cached.name,
                permissions=cached.permissions,
                colour=cached.colour,
                hoist=cached.hoist,
                mentionable=cached.mentionable,
                reason=self._reason(reason),
            ),
        )

    async def revert_role_fields(
        self,
        guild: discord.Guild,
        role_id: int,
        before: Any,
        reason: str,
    ) -> Optional[bool]:
        """
        Restore changed role attributes (name, colour, hoist, mentionable).

        Returns:
            None when none of those attributes changed, else success.
        """
        values = collect_before_values(before, ROLE_REVERT_FIELDS)
        if not values:
            return None

        context = [self._guild_ctx(guild), ("Role ID", str(role_id)), ("Fields", ", ".join(values))]
        role = await self._get_role(guild, role_id)
        if role is None:
            return False
        return await self._attempt("Role Update Revert", context, role.edit(**values, reason=self._reason(reason)))

    async def restore_role_permissions(
        self,
        guild: discord.Guild,
        role_id: int,
        permissions: discord.Permissions,
        reason: str,
    ) -> bool:
        """Put a role's previous permission bitmask back."""
        context = [self._guild_ctx(guild), ("Role ID", str(role_id))]
        role = await self._get_role(guild, role_id)
        if role is None:
            return False
        return await self._attempt(
            "Role Permission Revert",
            context,
            role.edit(permissions=permissions, reason=self._reason(reason)),
        )

    # =========================================================================
    # Members
    # =========================================================================

    async def remove_added_roles(
        self,
        guild: discord.Guild,
        user_id: int,
        role_ids: Sequence[int],
        reason: str,
    ) -> bool:
        """Remove exactly the given roles from a member."""
        context = [self._guild_ctx(guild), ("User ID", str(user_id)), ("Roles", str(len(role_ids)))]
        member = await self._get_member(guild, user_id)
        if member is None:
            logger.warning("Role Grant Revert Skipped (Member Not Found)", context)
            return False

        held = {role.id for role in member.roles}
        roles = [discord.Object(id=role_id) for role_id in role_ids if role_id in held]
        if not roles:
            return True
        return await self._attempt(
            "Role Grant Revert",
            context,
            member.remove_roles(*roles, reason=self._reason(reason)),
        )

    async def unban(self, guild: discord.Guild, user_id: int, reason: str) -> bool:
        context = [self._guild_ctx(guild), ("User ID", str(user_id))]
        return await self._attempt(
            "Ban Revert",
            context,
            guild.unban(discord.Object(id=user_id), reason=self._reason(reason)),
        )

    async def clear_timeout(self, guild: discord.Guild, user_id: int, reason: str) -> bool:
        context = [self._guild_ctx(guild), ("User ID", str(user_id))]
        member = await self._get_member(guild, user_id)
        if member is None:
            logger.warning("Timeout Revert Skipped (Member Not Found)", context)
            return False
        return await self._attempt(
            "Timeout Revert",
            context,
            member.edit(timed_out_until=None, reason=self._reason(reason)),
        )

    async def kick_bot(self, guild: discord.Guild, bot_id: int, reason: str) -> bool:
        context = [self._guild_ctx(guild), ("Bot ID", str(bot_id))]
        return await self._attempt(
            "Bot Add Revert",
            context,
            guild.kick(discord.Object(id=bot_id), reason=self._reason(reason)),
        )


__all__ = [
    "RevertExecutor",
    "collect_before_values",
    "CHANNEL_REVERT_FIELDS",
    "ROLE_REVERT_FIELDS",
]
