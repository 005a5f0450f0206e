"""
Bastion - Protection Pipeline
=============================

Shared decision flow for every audit-log protection module.

DESIGN:
    Per entry and module:

        self-action? -> ignored
        module configured and enabled? -> otherwise ignored
        module.evaluate() -> None means ignored
        trust level? -> whitelisted, log only
        sub-action punishable? -> otherwise log only
        ledger.record_violation -> revert (if enabled) -> log

    The action log always fires once the module claimed the action, with
    a status line covering whitelist state, violation result and revert
    result. ProtectionDispatcher runs one task per matching module so a
    slow or failing module never blocks the others.
"""

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING, List, Optional, Sequence, Set

import discord

from bastion.core.logger import logger
from bastion.core.database import get_db
from bastion.services.action_log import ActionLogService, LogLevel

from .constants import WhitelistLevel
from .ledger import ViolationLedger, ViolationOutcome, ViolationResult
from .modules import ProtectedAction, ProtectionModule, RevertOutcome
from .revert import RevertExecutor
from .settings import ModuleConfig, load_enabled_config
from .trust import TrustResolver

if TYPE_CHECKING:
    from bastion.bot import BastionBot


# =============================================================================
# Status Lines
# =============================================================================

STATUS_NOT_ENABLED = "ℹ️ Protection not enabled for this action"
STATUS_UNAUTHORIZED = "🚨 Unauthorized"


def whitelisted_status(level: WhitelistLevel, config: ModuleConfig) -> str:
    return (
        f"✅ Whitelisted ({level.label})\n"
        f"ℹ️ Punishment skipped ({config.punishment.label})"
    )


def violation_status(result: ViolationResult) -> str:
    if result.outcome is ViolationOutcome.PUNISHED:
        return f"🚨 Blocked & Punished ({result.punishment.label})"
    if result.outcome is ViolationOutcome.RECORDED:
        return f"🚨 Blocked & Violation Recorded ({result.current}/{result.threshold})"
    return "🚨 Blocked (No Punishment Configured)"


@dataclass
class PipelineOutcome:
    """What the pipeline decided for one claimed action."""

    action: ProtectedAction
    level: Optional[WhitelistLevel]
    should_punish: bool
    violation: Optional[ViolationResult]
    revert: Optional[RevertOutcome]
    status: str
    title: str
    log_level: LogLevel

    @property
    def is_whitelisted(self) -> bool:
        return self.level is not None


# =============================================================================
# Pipeline
# =============================================================================

class ProtectionPipeline:
    """
    Runs one module against one audit-log entry.

    Attributes:
        bot: Main bot instance.
        trust: Whitelist/hierarchy resolver.
        ledger: Violation ledger.
        executor: Revert executor.
        action_log: Guild action log sink.
    """

    def __init__(
        self,
        bot: "BastionBot",
        trust: TrustResolver,
        ledger: ViolationLedger,
        executor: RevertExecutor,
        action_log: ActionLogService,
    ) -> None:
        self.bot = bot
        self.db = get_db()
        self.trust = trust
        self.ledger = ledger
        self.executor = executor
        self.action_log = action_log

    async def handle(
        self,
        module: ProtectionModule,
        entry: discord.AuditLogEntry,
    ) -> Optional[PipelineOutcome]:
        """
        Process an entry for one module.

        Returns:
            The outcome, or None when the entry was ignored.
        """
        guild = entry.guild
        actor_id = entry.user_id
        if guild is None or actor_id is None:
            return None

        if self.bot.user is not None and actor_id == self.bot.user.id:
            return None

        config = load_enabled_config(self.db, guild.id, module.module_type)
        if config is None:
            return None

        action = await module.evaluate(entry, config.settings)
        if action is None:
            return None

        level = await self.trust.resolve(guild, actor_id, module.module_type)
        should_punish = config.settings.punishes(action.sub_action.value)

        violation: Optional[ViolationResult] = None
        revert: Optional[RevertOutcome] = None

        if level is not None:
            status = whitelisted_status(level, config)
        elif not should_punish:
            status = STATUS_NOT_ENABLED
        else:
            violation = await self.ledger.record_violation(
                guild, actor_id, module.module_type, module.violation_reason(action), config,
            )
            status = violation_status(violation)
            await module.on_violation(action, config, violation)

            if config.revert and (violation.is_punished or not module.revert_requires_punishment):
                revert = await module.revert(self.executor, action)
                status += f"\n{revert.value}"

        outcome = self._build_outcome(module, action, level, should_punish, violation, revert, status)
        await self._log(module, action, outcome)
        return outcome

    # =========================================================================
    # Logging
    # =========================================================================

    @staticmethod
    def _build_outcome(
        module: ProtectionModule,
        action: ProtectedAction,
        level: Optional[WhitelistLevel],
        should_punish: bool,
        violation: Optional[ViolationResult],
        revert: Optional[RevertOutcome],
        status: str,
    ) -> PipelineOutcome:
        base_title = module.describe(action).title
        if level is not None:
            title, log_level = f"{base_title} (Whitelisted)", LogLevel.AUDIT
        elif should_punish:
            title, log_level = f"{base_title} (Blocked)", module.blocked_level(action)
        else:
            title, log_level = f"{base_title} (Logged)", LogLevel.INFO

        return PipelineOutcome(
            action=action,
            level=level,
            should_punish=should_punish,
            violation=violation,
            revert=revert,
            status=status,
            title=title,
            log_level=log_level,
        )

    async def _log(
        self,
        module: ProtectionModule,
        action: ProtectedAction,
        outcome: PipelineOutcome,
    ) -> None:
        description = module.describe(action)
        fields = list(description.fields) + [("Status", outcome.status)]

        logger.tree(outcome.title, [
            ("Guild", f"{action.guild.name} ({action.guild.id})"),
            ("Module", module.module_type.value),
            ("Actor ID", str(action.actor_id)),
            ("Target ID", str(action.target_id)),
            ("Status", outcome.status.replace("\n", " | ")),
        ], emoji="🛡️")

        await self.action_log.log_action(
            action.guild.id,
            module.module_type,
            outcome.log_level,
            outcome.title,
            description.description,
            fields,
        )


# =============================================================================
# Dispatcher
# =============================================================================

class ProtectionDispatcher:
    """
    Fans each audit-log entry out to the matching modules.

    DESIGN: Tasks are kept in a set until they finish so they are not
    garbage collected mid-run.
    """

    def __init__(self, pipeline: ProtectionPipeline, modules: Sequence[ProtectionModule]) -> None:
        self.pipeline = pipeline
        self.modules = list(modules)
        self._tasks: Set[asyncio.Task] = set()

    def dispatch(self, entry: discord.AuditLogEntry) -> List[asyncio.Task]:
        """Spawn one task per module claiming the entry."""
        tasks = []
        for module in self.modules:
            if not module.matches(entry):
                continue
            task = asyncio.create_task(self._run(module, entry))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            tasks.append(task)
        return tasks

    async def _run(self, module: ProtectionModule, entry: discord.AuditLogEntry) -> Optional[PipelineOutcome]:
        try:
            return await self.pipeline.handle(module, entry)
        except Exception as e:
            guild = entry.guild
            logger.error("Protection Handler Failed", [
                ("Guild", f"{guild.name} ({guild.id})" if guild else "Unknown"),
                ("Module", module.module_type.value),
                ("Action", str(entry.action)),
                ("Error", str(e)[:100]),
                ("Type", type(e).__name__),
            ])
            return None

    @property
    def pending(self) -> int:
        return len(self._tasks)


__all__ = [
    "ProtectionPipeline",
    "ProtectionDispatcher",
    "PipelineOutcome",
    "violation_status",
    "whitelisted_status",
]
