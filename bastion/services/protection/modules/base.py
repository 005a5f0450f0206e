"""
Bastion - Protection Module Interface
=====================================

Common shape of every audit-log protection module.

DESIGN:
    A module only knows its own action family:
    - matches():   which audit-log entries it claims
    - evaluate():  turn an entry into a ProtectedAction, or None to ignore
    - revert():    the undo for that action
    - describe():  title, description and fields for the action log
    The shared decision flow (self-check, config, trust, ledger, revert,
    log) lives in ProtectionPipeline and is identical for all modules.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, FrozenSet, List, Optional, Tuple

import discord

from bastion.services.action_log import LogLevel

from ..constants import ModuleType, SubAction

if TYPE_CHECKING:
    from bastion.bot import BastionBot
    from ..ledger import ViolationResult
    from ..revert import RevertExecutor
    from ..settings import ModuleConfig, ModuleSettings


# =============================================================================
# Data Types
# =============================================================================

class RevertOutcome(Enum):
    """Result of the revert step, valued by its status line."""

    REVERTED = "✅ Successfully Reverted"
    FAILED = "❌ Revert Failed"
    NOT_REVERTIBLE = "ℹ️ Action cannot be reverted"
    NOTHING_TO_REVERT = "ℹ️ Nothing to revert"

    @classmethod
    def from_result(cls, result: Optional[bool]) -> "RevertOutcome":
        """Map an executor return value (None means nothing changed)."""
        if result is None:
            return cls.NOTHING_TO_REVERT
        return cls.REVERTED if result else cls.FAILED


@dataclass
class ProtectedAction:
    """
    One administrative action claimed by a module.

    Attributes:
        module: Module that claimed it.
        sub_action: Sub-action used by the punish_when filter.
        guild: Guild it happened in.
        actor_id: User who performed it.
        entry: Source audit-log entry.
        target_id: Affected object (channel, role, member, bot).
        channel_id: Channel for overwrite actions.
        extra: Module-specific data computed during evaluation.
    """

    module: ModuleType
    sub_action: SubAction
    guild: discord.Guild
    actor_id: int
    entry: discord.AuditLogEntry
    target_id: Optional[int] = None
    channel_id: Optional[int] = None
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ActionDescription:
    """Human-facing rendering of an action for the action log."""

    title: str
    description: str
    fields: List[Tuple[str, str]] = field(default_factory=list)


# =============================================================================
# Module Base
# =============================================================================

class ProtectionModule:
    """
    Base class for protection modules.

    Subclasses set `module_type` and `actions` and implement evaluate(),
    revert() and describe().
    """

    module_type: ModuleType
    actions: FrozenSet[discord.AuditLogAction] = frozenset()

    # Moderation only reverts once the actor has actually been punished
    revert_requires_punishment: bool = False

    def __init__(self, bot: "BastionBot") -> None:
        self.bot = bot

    def matches(self, entry: discord.AuditLogEntry) -> bool:
        return entry.action in self.actions

    async def evaluate(
        self,
        entry: discord.AuditLogEntry,
        settings: "ModuleSettings",
    ) -> Optional[ProtectedAction]:
        raise NotImplementedError

    async def revert(self, executor: "RevertExecutor", action: ProtectedAction) -> RevertOutcome:
        raise NotImplementedError

    def describe(self, action: ProtectedAction) -> ActionDescription:
        raise NotImplementedError

    def violation_reason(self, action: ProtectedAction) -> str:
        """Audit-log reason for a punishment caused by this action."""
        return f"{self.module_type.label}: unauthorized {action.sub_action.value}"

    def revert_reason(self, action: ProtectedAction) -> str:
        return f"{self.module_type.label} Revert"

    def blocked_level(self, action: ProtectedAction) -> LogLevel:
        """Log level when the action is punishable."""
        return LogLevel.WARN

    async def on_violation(
        self,
        action: ProtectedAction,
        config: "ModuleConfig",
        result: "ViolationResult",
    ) -> None:
        """Hook after the ledger recorded the violation."""
        return None

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def new(entry: discord.AuditLogEntry, name: str, default: Any = None) -> Any:
        """Value from the audit-log "after" diff, default if absent."""
        return getattr(entry.after, name, default)

    @staticmethod
    def old(entry: discord.AuditLogEntry, name: str, default: Any = None) -> Any:
        """Value from the audit-log "before" diff, default if absent."""
        return getattr(entry.before, name, default)

    @staticmethod
    def target_id_of(entry: discord.AuditLogEntry) -> Optional[int]:
        target = entry.target
        return target.id if target is not None and hasattr(target, "id") else None

    @staticmethod
    def changed_attributes(entry: discord.AuditLogEntry) -> FrozenSet[str]:
        """Attribute names present in either side of the audit-log diff."""
        names = set()
        for diff in (entry.before, entry.after):
            try:
                names.update(vars(diff))
            except TypeError:
                continue
        return frozenset(names)

    def actor_owns_channel(
        self,
        guild: discord.Guild,
        channel_id: Optional[int],
        actor_id: int,
        permission: str,
    ) -> bool:
        """
        Whether the actor holds a member overwrite granting `permission`
        on the channel (a "private" channel they manage themselves).

        Deleted channels are looked up in the object cache without
        consuming the entry.
        """
        if channel_id is None:
            return False
        channel = guild.get_channel(channel_id)
        if channel is None:
            channel = self.bot.object_cache.peek(guild.id, channel_id)
        if channel is None:
            return False

        for subject, overwrite in channel.overwrites.items():
            if isinstance(subject, discord.Role) or subject.id != actor_id:
                continue
            if getattr(overwrite, permission, None) is True:
                return True
        return False


__all__ = [
    "ActionDescription",
    "ProtectedAction",
    "ProtectionModule",
    "RevertOutcome",
]
