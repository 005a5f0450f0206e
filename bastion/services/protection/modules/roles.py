"""
Bastion - Role Protection Modules
=================================

Role create/delete/update and role permission changes.

DESIGN:
    A role_update entry can carry permission changes, other field changes,
    or both. Permission changes belong to RolePermissionProtection; role
    protection only claims the entry when something besides permissions
    changed, so one edit is never punished twice for the same field.
"""

from typing import Optional

import discord

from ..constants import ModuleType, SubAction
from ..revert import ROLE_REVERT_FIELDS, RevertExecutor
from ..settings import ModuleSettings
from .base import ActionDescription, ProtectedAction, ProtectionModule, RevertOutcome


A = discord.AuditLogAction


class RoleProtection(ProtectionModule):
    """Unauthorized role creation, deletion and non-permission edits."""

    module_type = ModuleType.ROLE
    actions = frozenset({A.role_create, A.role_delete, A.role_update})

    SUB_ACTIONS = {
        A.role_create: SubAction.CREATE,
        A.role_delete: SubAction.DELETE,
        A.role_update: SubAction.UPDATE,
    }

    def matches(self, entry: discord.AuditLogEntry) -> bool:
        if entry.action not in self.actions:
            return False
        if entry.action is A.role_update:
            return bool(self.changed_attributes(entry) - {"permissions"})
        return True

    async def evaluate(
        self,
        entry: discord.AuditLogEntry,
        settings: ModuleSettings,
    ) -> Optional[ProtectedAction]:
        role_id = self.target_id_of(entry)
        if role_id is None:
            return None

        name = self.new(entry, "name") or self.old(entry, "name") or getattr(entry.target, "name", None)
        return ProtectedAction(
            module=self.module_type,
            sub_action=self.SUB_ACTIONS[entry.action],
            guild=entry.guild,
            actor_id=entry.user_id,
            entry=entry,
            target_id=role_id,
            extra={"name": name},
        )

    async def revert(self, executor: RevertExecutor, action: ProtectedAction) -> RevertOutcome:
        reason = self.revert_reason(action)
        if action.sub_action is SubAction.CREATE:
            return RevertOutcome.from_result(await executor.delete_role(action.guild, action.target_id, reason))
        if action.sub_action is SubAction.DELETE:
            return RevertOutcome.from_result(await executor.restore_role(action.guild, action.target_id, reason))
        return RevertOutcome.from_result(
            await executor.revert_role_fields(action.guild, action.target_id, action.entry.before, reason)
        )

    def describe(self, action: ProtectedAction) -> ActionDescription:
        verb = {
            SubAction.CREATE: "Created",
            SubAction.DELETE: "Deleted",
            SubAction.UPDATE: "Updated",
        }[action.sub_action]
        name = action.extra.get("name")
        role = f"@{name}" if action.sub_action is SubAction.DELETE and name else f"<@&{action.target_id}>"
        fields = [
            ("User", f"<@{action.actor_id}>"),
            ("Role", f"{role} ({action.target_id})"),
        ]
        if action.sub_action is SubAction.UPDATE:
            changed = sorted(self.changed_attributes(action.entry) & set(ROLE_REVERT_FIELDS + ("color",)))
            if changed:
                fields.append(("Changed", ", ".join(changed)))
        return ActionDescription(
            title=f"Role {verb}",
            description=f"A role ({role}) was {verb.lower()} by <@{action.actor_id}>.",
            fields=fields,
        )


class RolePermissionProtection(ProtectionModule):
    """Unauthorized changes to a role's permission bitmask."""

    module_type = ModuleType.ROLE_PERMISSION
    actions = frozenset({A.role_update})

    def matches(self, entry: discord.AuditLogEntry) -> bool:
        return entry.action is A.role_update and "permissions" in self.changed_attributes(entry)

    async def evaluate(
        self,
        entry: discord.AuditLogEntry,
        settings: ModuleSettings,
    ) -> Optional[ProtectedAction]:
        role_id = self.target_id_of(entry)
        before = self.old(entry, "permissions")
        if role_id is None or before is None:
            return None

        after = self.new(entry, "permissions") or discord.Permissions.none()
        added = discord.Permissions(after.value & ~before.value)
        removed = discord.Permissions(before.value & ~after.value)
        return ProtectedAction(
            module=self.module_type,
            sub_action=SubAction.UPDATE,
            guild=entry.guild,
            actor_id=entry.user_id,
            entry=entry,
            target_id=role_id,
            extra={"before": before, "added": added, "removed": removed},
        )

    async def revert(self, executor: RevertExecutor, action: ProtectedAction) -> RevertOutcome:
        return RevertOutcome.from_result(await executor.restore_role_permissions(
            action.guild, action.target_id, action.extra["before"], self.revert_reason(action),
        ))

    @staticmethod
    def _names(permissions: discord.Permissions) -> str:
        names = [name for name, value in permissions if value]
        return ", ".join(names) if names else "None"

    def describe(self, action: ProtectedAction) -> ActionDescription:
        return ActionDescription(
            title="Role Permissions Updated",
            description=f"Permissions for role (<@&{action.target_id}>) were modified by <@{action.actor_id}>.",
            fields=[
                ("User", f"<@{action.actor_id}>"),
                ("Role", f"<@&{action.target_id}>"),
                ("Added", self._names(action.extra["added"])),
                ("Removed", self._names(action.extra["removed"])),
            ],
        )


__all__ = ["RoleProtection", "RolePermissionProtection"]
