"""
Bastion - Moderation Protection Module
======================================

Bans, kicks, timeouts and unbans performed by untrusted moderators.

DESIGN:
    Moderation actions are often legitimate one-offs, so they are only
    reverted once the actor reaches the punishment threshold. Before
    that, the actor gets a DM as the remaining safe actions run out.
"""

from typing import Optional

import discord

from bastion.core.logger import logger
from bastion.core.constants import MODERATION_WARN_REMAINING

from ..constants import ModuleType, SubAction
from ..ledger import ViolationOutcome, ViolationResult
from ..revert import RevertExecutor
from ..settings import ModuleConfig, ModuleSettings
from .base import ActionDescription, ProtectedAction, ProtectionModule, RevertOutcome


A = discord.AuditLogAction

TITLES = {
    SubAction.BAN: "Member Banned",
    SubAction.KICK: "Member Kicked",
    SubAction.TIMEOUT: "Member Timed Out",
    SubAction.UNBAN: "Member Unbanned",
}


def warning_message(remaining: int, guild_name: str, punishment_label: str) -> Optional[str]:
    """DM text for the given number of remaining safe actions."""
    if remaining in (1, 2):
        return (
            f"⚠️ You performed a restricted moderation action in **{guild_name}**. "
            f"{remaining} more will be tolerated before action is taken."
        )
    if remaining == 0:
        return (
            f"🚨 You reached the moderation limit in **{guild_name}**. "
            f"The next restricted action will result in: **{punishment_label}**."
        )
    return None


class ModerationProtection(ProtectionModule):
    """Limits moderation actions by users without a whitelist level."""

    module_type = ModuleType.MODERATION
    actions = frozenset({A.ban, A.kick, A.unban, A.member_update})
    revert_requires_punishment = True

    SUB_ACTIONS = {
        A.ban: SubAction.BAN,
        A.kick: SubAction.KICK,
        A.unban: SubAction.UNBAN,
        A.member_update: SubAction.TIMEOUT,
    }

    def matches(self, entry: discord.AuditLogEntry) -> bool:
        if entry.action not in self.actions:
            return False
        if entry.action is A.member_update:
            return "timed_out_until" in self.changed_attributes(entry)
        return True

    async def evaluate(
        self,
        entry: discord.AuditLogEntry,
        settings: ModuleSettings,
    ) -> Optional[ProtectedAction]:
        target_id = self.target_id_of(entry)
        if target_id is None:
            return None
        return ProtectedAction(
            module=self.module_type,
            sub_action=self.SUB_ACTIONS[entry.action],
            guild=entry.guild,
            actor_id=entry.user_id,
            entry=entry,
            target_id=target_id,
        )

    async def revert(self, executor: RevertExecutor, action: ProtectedAction) -> RevertOutcome:
        reason = f"{self.revert_reason(action)}: {action.sub_action.value}"
        if action.sub_action is SubAction.BAN:
            return RevertOutcome.from_result(await executor.unban(action.guild, action.target_id, reason))
        if action.sub_action is SubAction.TIMEOUT:
            return RevertOutcome.from_result(await executor.clear_timeout(action.guild, action.target_id, reason))
        return RevertOutcome.NOT_REVERTIBLE

    async def on_violation(
        self,
        action: ProtectedAction,
        config: ModuleConfig,
        result: ViolationResult,
    ) -> None:
        """Warn the actor by DM while the remaining safe actions run out."""
        if result.outcome is not ViolationOutcome.RECORDED:
            return

        remaining = result.threshold - result.current - 1
        if remaining not in MODERATION_WARN_REMAINING:
            return

        message = warning_message(remaining, action.guild.name, config.punishment.label)
        user = self.bot.get_user(action.actor_id)
        try:
            if user is None:
                user = await self.bot.fetch_user(action.actor_id)
            await user.send(message)
            logger.tree("Moderation Warning Sent", [
                ("Guild", f"{action.guild.name} ({action.guild.id})"),
                ("User ID", str(action.actor_id)),
                ("Remaining", str(remaining)),
            ], emoji="✉️")
        except discord.HTTPException as e:
            logger.debug("Moderation Warning DM Failed", [
                ("User ID", str(action.actor_id)),
                ("Status", str(getattr(e, "status", "?"))),
            ])

    def describe(self, action: ProtectedAction) -> ActionDescription:
        return ActionDescription(
            title=TITLES[action.sub_action],
            description=(
                f"<@{action.actor_id}> performed a {action.sub_action.value} "
                f"on <@{action.target_id}>."
            ),
            fields=[
                ("User", f"<@{action.actor_id}>"),
                ("Target Member", f"<@{action.target_id}>"),
            ],
        )


__all__ = ["ModerationProtection", "warning_message"]
