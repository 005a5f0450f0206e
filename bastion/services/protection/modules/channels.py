"""
Bastion - Channel Protection Modules
====================================

Channel create/delete/update and channel permission-overwrite
create/delete/update.
"""

from typing import Optional

import discord

from bastion.services.action_log import LogLevel

from ..constants import ModuleType, SubAction
from ..revert import RevertExecutor
from ..settings import ModuleSettings
from .base import ActionDescription, ProtectedAction, ProtectionModule, RevertOutcome


A = discord.AuditLogAction


# =============================================================================
# Channel Protection
# =============================================================================

class ChannelProtection(ProtectionModule):
    """Unauthorized channel creation, deletion and edits."""

    module_type = ModuleType.CHANNEL
    actions = frozenset({A.channel_create, A.channel_delete, A.channel_update})

    SUB_ACTIONS = {
        A.channel_create: SubAction.CREATE,
        A.channel_delete: SubAction.DELETE,
        A.channel_update: SubAction.UPDATE,
    }

    async def evaluate(
        self,
        entry: discord.AuditLogEntry,
        settings: ModuleSettings,
    ) -> Optional[ProtectedAction]:
        channel_id = self.target_id_of(entry)
        if channel_id is None:
            return None

        if settings.ignore_private_channels and self.actor_owns_channel(
            entry.guild, channel_id, entry.user_id, "manage_channels"
        ):
            return None

        name = self.new(entry, "name") or self.old(entry, "name") or getattr(entry.target, "name", None)
        return ProtectedAction(
            module=self.module_type,
            sub_action=self.SUB_ACTIONS[entry.action],
            guild=entry.guild,
            actor_id=entry.user_id,
            entry=entry,
            target_id=channel_id,
            channel_id=channel_id,
            extra={"name": name},
        )

    async def revert(self, executor: RevertExecutor, action: ProtectedAction) -> RevertOutcome:
        reason = self.revert_reason(action)
        if action.sub_action is SubAction.CREATE:
            return RevertOutcome.from_result(
                await executor.delete_channel(action.guild, action.channel_id, reason)
            )
        if action.sub_action is SubAction.DELETE:
            return RevertOutcome.from_result(
                await executor.restore_channel(action.guild, action.channel_id, reason)
            )
        return RevertOutcome.from_result(
            await executor.revert_channel_fields(action.guild, action.channel_id, action.entry.before, reason)
        )

    def blocked_level(self, action: ProtectedAction) -> LogLevel:
        return LogLevel.ERROR if action.sub_action is SubAction.DELETE else LogLevel.WARN

    def describe(self, action: ProtectedAction) -> ActionDescription:
        verb = {
            SubAction.CREATE: "Created",
            SubAction.DELETE: "Deleted",
            SubAction.UPDATE: "Updated",
        }[action.sub_action]
        name = action.extra.get("name")
        channel = f"#{name}" if action.sub_action is SubAction.DELETE and name else f"<#{action.channel_id}>"
        return ActionDescription(
            title=f"Channel {verb}",
            description=f"A channel ({channel}) was {verb.lower()} by <@{action.actor_id}>.",
            fields=[
                ("User", f"<@{action.actor_id}>"),
                ("Channel", f"{channel} ({action.channel_id})"),
            ],
        )


# =============================================================================
# Channel Permission Protection
# =============================================================================

class ChannelPermissionProtection(ProtectionModule):
    """Unauthorized permission-overwrite changes on channels."""

    module_type = ModuleType.CHANNEL_PERMISSION
    actions = frozenset({A.overwrite_create, A.overwrite_delete, A.overwrite_update})

    SUB_ACTIONS = {
        A.overwrite_create: SubAction.CREATE,
        A.overwrite_delete: SubAction.DELETE,
        A.overwrite_update: SubAction.UPDATE,
    }

    async def evaluate(
        self,
        entry: discord.AuditLogEntry,
        settings: ModuleSettings,
    ) -> Optional[ProtectedAction]:
        channel_id = self.target_id_of(entry)
        subject = entry.extra
        subject_id = getattr(subject, "id", None)
        if channel_id is None or subject_id is None:
            return None

        if settings.ignore_private_channels and self.actor_owns_channel(
            entry.guild, channel_id, entry.user_id, "manage_roles"
        ):
            return None

        return ProtectedAction(
            module=self.module_type,
            sub_action=self.SUB_ACTIONS[entry.action],
            guild=entry.guild,
            actor_id=entry.user_id,
            entry=entry,
            target_id=subject_id,
            channel_id=channel_id,
            extra={
                "subject": subject,
                "subject_is_role": isinstance(subject, discord.Role)
                or getattr(subject, "type", None) is discord.Role,
            },
        )

    async def revert(self, executor: RevertExecutor, action: ProtectedAction) -> RevertOutcome:
        reason = self.revert_reason(action)
        subject = action.extra.get("subject")

        if action.sub_action is SubAction.CREATE:
            return RevertOutcome.from_result(await executor.delete_overwrite(
                action.guild, action.channel_id, subject, action.target_id, reason,
            ))

        allow = self.old(action.entry, "allow")
        deny = self.old(action.entry, "deny")

        if action.sub_action is SubAction.DELETE:
            return RevertOutcome.from_result(await executor.restore_overwrite(
                action.guild,
                action.channel_id,
                subject,
                action.target_id,
                allow if allow is not None else discord.Permissions.none(),
                deny if deny is not None else discord.Permissions.none(),
                reason,
            ))

        if allow is None and deny is None:
            return RevertOutcome.NOTHING_TO_REVERT
        return RevertOutcome.from_result(await executor.restore_overwrite(
            action.guild, action.channel_id, subject, action.target_id, allow, deny, reason,
        ))

    def describe(self, action: ProtectedAction) -> ActionDescription:
        verb = {
            SubAction.CREATE: "Created",
            SubAction.DELETE: "Deleted",
            SubAction.UPDATE: "Updated",
        }[action.sub_action]
        subject = (
            f"<@&{action.target_id}>" if action.extra.get("subject_is_role")
            else f"<@{action.target_id}>"
        )
        return ActionDescription(
            title=f"Channel Permission {verb}",
            description=(
                f"A permission overwrite for {subject} in <#{action.channel_id}> "
                f"was {verb.lower()} by <@{action.actor_id}>."
            ),
            fields=[
                ("User", f"<@{action.actor_id}>"),
                ("Channel", f"<#{action.channel_id}>"),
                ("Overwrite Target", subject),
            ],
        )


__all__ = ["ChannelProtection", "ChannelPermissionProtection"]
