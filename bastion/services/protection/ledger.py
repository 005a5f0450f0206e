"""
Bastion - Violation Ledger
==========================

Escalation state machine: counts violations per (guild, user, module)
with time decay and fires the configured punishment at the threshold.

DESIGN:
    - Punishment None: nothing is written, the result is Suppressed.
    - The counter update and the threshold decision happen in a single
      database transaction (see ViolationsMixin.record_violation). When
      the threshold is reached the stored count is already 0 before the
      punishment call starts.
    - Punishment calls are best-effort. A failure is logged and does not
      restore the count, so a failing punishment is never retried in a
      loop by later violations.
"""

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Optional

import discord

from bastion.core.logger import logger
from bastion.core.constants import AUDIT_REASON_LIMIT
from bastion.core.database import get_db
from bastion.utils.http_errors import log_http_error

from .constants import ModuleType, PunishmentType
from .settings import ModuleConfig, load_module_config

if TYPE_CHECKING:
    from bastion.bot import BastionBot
    from bastion.services.jail import JailService


# =============================================================================
# Results
# =============================================================================

class ViolationOutcome(str, Enum):
    PUNISHED = "punished"
    RECORDED = "recorded"
    SUPPRESSED = "suppressed"


@dataclass(frozen=True)
class ViolationResult:
    """Outcome of recording one violation."""

    outcome: ViolationOutcome
    punishment: PunishmentType = PunishmentType.NONE
    current: int = 0
    threshold: int = 0

    @classmethod
    def punished(cls, punishment: PunishmentType) -> "ViolationResult":
        return cls(ViolationOutcome.PUNISHED, punishment=punishment)

    @classmethod
    def recorded(cls, current: int, threshold: int) -> "ViolationResult":
        return cls(ViolationOutcome.RECORDED, current=current, threshold=threshold)

    @classmethod
    def suppressed(cls) -> "ViolationResult":
        return cls(ViolationOutcome.SUPPRESSED)

    @property
    def is_punished(self) -> bool:
        return self.outcome is ViolationOutcome.PUNISHED


# =============================================================================
# Violation Ledger
# =============================================================================

class ViolationLedger:
    """
    Records violations and executes punishments.

    Attributes:
        bot: Main bot instance.
        db: Database manager.
        jail_service: Jail subsystem used by the Jail punishment.
    """

    def __init__(self, bot: "BastionBot", jail_service: "JailService") -> None:
        self.bot = bot
        self.db = get_db()
        self.jail_service = jail_service

    async def record_violation(
        self,
        guild: discord.Guild,
        user_id: int,
        module: ModuleType,
        reason: str,
        config: Optional[ModuleConfig] = None,
    ) -> ViolationResult:
        """
        Record one violation and punish at the threshold.

        Args:
            guild: Guild the violation happened in.
            user_id: Offending user.
            module: Module that detected it.
            reason: Audit log reason for the punishment.
            config: Already loaded module config, loaded when omitted.

        Returns:
            Punished, Recorded{current, threshold} or Suppressed.
        """
        if config is None:
            config = load_module_config(self.db, guild.id, module)
        if config is None:
            logger.error("Violation Without Module Config", [
                ("Guild", f"{guild.name} ({guild.id})"),
                ("Module", module.value),
                ("User ID", str(user_id)),
            ])
            return ViolationResult.suppressed()

        if config.punishment is PunishmentType.NONE:
            return ViolationResult.suppressed()

        threshold = config.effective_threshold
        count, triggered = self.db.record_violation(
            guild.id,
            user_id,
            module.value,
            threshold,
            config.decay_window_minutes,
        )

        if not triggered:
            logger.tree("Violation Recorded", [
                ("Guild", f"{guild.name} ({guild.id})"),
                ("User ID", str(user_id)),
                ("Module", module.value),
                ("Count", f"{count}/{threshold}"),
            ], emoji="📈")
            return ViolationResult.recorded(count, threshold)

        succeeded = await self.execute_punishment(guild, user_id, config.punishment, reason)
        logger.tree("Punishment Triggered", [
            ("Guild", f"{guild.name} ({guild.id})"),
            ("User ID", str(user_id)),
            ("Module", module.value),
            ("Punishment", config.punishment.label),
            ("Executed", "Yes" if succeeded else "Failed"),
        ], emoji="⚖️")
        return ViolationResult.punished(config.punishment)

    # =========================================================================
    # Punishment Execution
    # =========================================================================

    async def execute_punishment(
        self,
        guild: discord.Guild,
        user_id: int,
        punishment: PunishmentType,
        reason: str,
    ) -> bool:
        """
        Apply a punishment. Never raises.

        Returns:
            True if the platform accepted the punishment.
        """
        reason = reason[:AUDIT_REASON_LIMIT]
        context = [
            ("Guild", f"{guild.name} ({guild.id})"),
            ("User ID", str(user_id)),
            ("Punishment", punishment.label),
        ]

        try:
            if punishment is PunishmentType.BAN:
                await guild.ban(discord.Object(id=user_id), reason=reason, delete_message_seconds=0)
                return True

            if punishment is PunishmentType.KICK:
                await guild.kick(discord.Object(id=user_id), reason=reason)
                return True

            if punishment in (PunishmentType.STRIP_ROLES, PunishmentType.JAIL):
                member = guild.get_member(user_id) or await guild.fetch_member(user_id)
                if punishment is PunishmentType.JAIL:
                    return await self.jail_service.jail(guild, member, reason)
                return await self._strip_roles(member, reason)

            return False

        except discord.Forbidden:
            logger.warning("Punishment Failed (Forbidden)", context + [("Error", "Missing permissions")])
        except discord.HTTPException as e:
            log_http_error(e, "Punishment", context)
        except Exception as e:
            logger.error("Punishment Failed", context + [
                ("Error", str(e)[:100]),
                ("Type", type(e).__name__),
            ])
        return False

    async def _strip_roles(self, member: discord.Member, reason: str) -> bool:
        """
        Remove every role one by one.

        DESIGN: Per-role removal so one undeletable role (managed, above
        the bot) does not keep the rest in place.
        """
        removed = 0
        failed = 0
        for role in member.roles:
            if role.is_default():
                continue
            try:
                await member.remove_roles(role, reason=reason)
                removed += 1
            except discord.HTTPException as e:
                failed += 1
                logger.debug("Role Removal Skipped", [
                    ("User", f"{member} ({member.id})"),
                    ("Role", f"{role.name} ({role.id})"),
                    ("Status", str(getattr(e, "status", "?"))),
                ])

        logger.tree("Roles Stripped", [
            ("User", f"{member} ({member.id})"),
            ("Removed", str(removed)),
            ("Failed", str(failed)),
        ], emoji="🔻")
        return removed > 0 or failed == 0


__all__ = [
    "ViolationLedger",
    "ViolationResult",
    "ViolationOutcome",
]
