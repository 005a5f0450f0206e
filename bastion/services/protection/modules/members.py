"""
Bastion - Member Protection Modules
===================================

Dangerous role grants to members and bot additions.
"""

from typing import Iterable, List, Optional

import discord

from bastion.core.logger import logger

from ..constants import DANGEROUS_PERMISSIONS, ModuleType, SubAction
from ..revert import RevertExecutor
from ..settings import ModuleSettings
from .base import ActionDescription, ProtectedAction, ProtectionModule, RevertOutcome


A = discord.AuditLogAction


def combined_permissions(guild: discord.Guild, role_ids: Iterable[int]) -> discord.Permissions:
    """Union of @everyone and the given roles' permission bits."""
    value = guild.default_role.permissions.value
    for role_id in role_ids:
        role = guild.get_role(role_id)
        if role is not None:
            value |= role.permissions.value
    return discord.Permissions(value)


def granted_permissions(
    guild: discord.Guild,
    current_role_ids: Iterable[int],
    added_role_ids: Iterable[int],
    removed_role_ids: Iterable[int],
) -> discord.Permissions:
    """
    Permission bits a role update newly granted.

    The "before" set is reconstructed from the current roles: added roles
    are taken out and removed roles put back.
    """
    current = list(current_role_ids)
    added = set(added_role_ids)
    roles_before = [role_id for role_id in current if role_id not in added]
    roles_before.extend(removed_role_ids)

    before = combined_permissions(guild, roles_before)
    after = combined_permissions(guild, current)
    return discord.Permissions(after.value & ~before.value)


# =============================================================================
# Member Permission Protection
# =============================================================================

class MemberPermissionProtection(ProtectionModule):
    """Role grants that hand a member dangerous permissions."""

    module_type = ModuleType.MEMBER_PERMISSION
    actions = frozenset({A.member_role_update})

    @staticmethod
    def _role_ids(roles: Optional[List]) -> List[int]:
        return [role.id for role in roles or []]

    async def evaluate(
        self,
        entry: discord.AuditLogEntry,
        settings: ModuleSettings,
    ) -> Optional[ProtectedAction]:
        user_id = self.target_id_of(entry)
        added_ids = self._role_ids(self.new(entry, "roles"))
        removed_ids = self._role_ids(self.old(entry, "roles"))
        if user_id is None or not added_ids:
            return None

        guild = entry.guild
        member = guild.get_member(user_id)
        if member is None:
            try:
                member = await guild.fetch_member(user_id)
            except discord.HTTPException as e:
                logger.debug("Role Grant Check Skipped (Member Unavailable)", [
                    ("Guild", f"{guild.name} ({guild.id})"),
                    ("User ID", str(user_id)),
                    ("Status", str(getattr(e, "status", "?"))),
                ])
                return None

        current_ids = [role.id for role in member.roles]
        # Gateway member cache may lag behind the audit-log entry
        current_ids.extend(role_id for role_id in added_ids if role_id not in current_ids)
        current_ids = [role_id for role_id in current_ids if role_id not in removed_ids]

        granted = granted_permissions(guild, current_ids, added_ids, removed_ids)
        dangerous = discord.Permissions(granted.value & DANGEROUS_PERMISSIONS.value)
        if not dangerous.value:
            return None

        return ProtectedAction(
            module=self.module_type,
            sub_action=SubAction.GRANT,
            guild=guild,
            actor_id=entry.user_id,
            entry=entry,
            target_id=user_id,
            extra={"added_roles": added_ids, "dangerous": dangerous},
        )

    async def revert(self, executor: RevertExecutor, action: ProtectedAction) -> RevertOutcome:
        return RevertOutcome.from_result(await executor.remove_added_roles(
            action.guild, action.target_id, action.extra["added_roles"], self.revert_reason(action),
        ))

    def describe(self, action: ProtectedAction) -> ActionDescription:
        roles = ", ".join(f"<@&{role_id}>" for role_id in action.extra["added_roles"])
        perms = ", ".join(name for name, value in action.extra["dangerous"] if value)
        return ActionDescription(
            title="Dangerous Role Granted",
            description=f"<@{action.actor_id}> granted dangerous permissions to <@{action.target_id}>.",
            fields=[
                ("User", f"<@{action.actor_id}>"),
                ("Target Member", f"<@{action.target_id}>"),
                ("Roles Added", roles),
                ("Added Permissions", f"`{perms}`"),
            ],
        )


# =============================================================================
# Bot Adding Protection
# =============================================================================

class BotAddingProtection(ProtectionModule):
    """Bots added to the guild by unauthorized users."""

    module_type = ModuleType.BOT_ADDING
    actions = frozenset({A.bot_add})

    async def evaluate(
        self,
        entry: discord.AuditLogEntry,
        settings: ModuleSettings,
    ) -> Optional[ProtectedAction]:
        bot_id = self.target_id_of(entry)
        if bot_id is None:
            return None
        return ProtectedAction(
            module=self.module_type,
            sub_action=SubAction.ADD,
            guild=entry.guild,
            actor_id=entry.user_id,
            entry=entry,
            target_id=bot_id,
            extra={"bot_name": str(entry.target)},
        )

    async def revert(self, executor: RevertExecutor, action: ProtectedAction) -> RevertOutcome:
        return RevertOutcome.from_result(
            await executor.kick_bot(action.guild, action.target_id, self.revert_reason(action))
        )

    def describe(self, action: ProtectedAction) -> ActionDescription:
        return ActionDescription(
            title="Bot Added",
            description=f"A bot (<@{action.target_id}>) was added by <@{action.actor_id}>.",
            fields=[
                ("User", f"<@{action.actor_id}>"),
                ("Bot", f"{action.extra['bot_name']} ({action.target_id})"),
            ],
        )


__all__ = [
    "MemberPermissionProtection",
    "BotAddingProtection",
    "combined_permissions",
    "granted_permissions",
]
