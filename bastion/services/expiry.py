"""
Bastion - Expiry Workers
========================

Periodic reconciliation loops: temp-ban expiry, jail expiry and stale
logging-guild cleanup.

DESIGN:
    Each record is deleted before the platform call (delete-then-act).
    Whoever wins the delete performs the action, so a manual /unjail or
    unban racing the worker never acts twice. "Already gone" responses
    from the platform count as success.
"""

import asyncio
import time
from typing import TYPE_CHECKING, Optional

import discord

from bastion.core.logger import logger
from bastion.core.config import get_config
from bastion.core.constants import SECONDS_PER_DAY
from bastion.core.database import JailRecord, TempBanRecord, get_db
from bastion.services.action_log import LogLevel
from bastion.services.protection.constants import ModuleType
from bastion.services.scheduler import PeriodicWorker
from bastion.utils.http_errors import log_http_error

if TYPE_CHECKING:
    from bastion.bot import BastionBot


BATCH_SIZE = 25


# =============================================================================
# Temp Bans
# =============================================================================

class TempBanScheduler(PeriodicWorker):
    """Lifts temporary bans once they expire."""

    name = "Temp Ban Scheduler"
    emoji = "⏰"

    def __init__(self, bot: "BastionBot", interval: Optional[float] = None) -> None:
        super().__init__(bot, interval if interval is not None else get_config().temp_ban_check_interval)
        self.db = get_db()

    async def run_once(self) -> None:
        expired = self.db.get_expired_temp_bans()
        if not expired:
            return

        for i in range(0, len(expired), BATCH_SIZE):
            batch = expired[i:i + BATCH_SIZE]
            await asyncio.gather(*(self._safe_unban(record) for record in batch), return_exceptions=True)

        logger.tree("Expired Temp Bans Processed", [
            ("Total", str(len(expired))),
        ], emoji=self.emoji)

    async def _safe_unban(self, record: TempBanRecord) -> None:
        try:
            await self.lift(record)
        except Exception as e:
            logger.error("Temp Ban Expiry Failed", [
                ("User ID", str(record["user_id"])),
                ("Guild ID", str(record["guild_id"])),
                ("Error", str(e)[:100]),
                ("Type", type(e).__name__),
            ])

    async def lift(self, record: TempBanRecord) -> bool:
        """
        Remove one temp ban and unban the user.

        Returns:
            True if the user is no longer banned.
        """
        guild_id, user_id = record["guild_id"], record["user_id"]
        if not self.db.delete_temp_ban(guild_id, user_id):
            return False  # Lifted concurrently

        guild = self.bot.get_guild(guild_id)
        if guild is None:
            logger.warning("Temp Ban Expired (Guild Unavailable)", [
                ("Guild ID", str(guild_id)),
                ("User ID", str(user_id)),
            ])
            return False

        context = [
            ("Guild", f"{guild.name} ({guild_id})"),
            ("User ID", str(user_id)),
        ]
        try:
            await guild.unban(discord.Object(id=user_id), reason="Temporary ban expired")
        except discord.NotFound:
            logger.info("Temp Ban Expired (Already Unbanned)", context)
            return True
        except discord.Forbidden:
            logger.warning("Temp Ban Expiry Failed (Forbidden)", context + [("Error", "Missing permissions")])
            return False
        except discord.HTTPException as e:
            log_http_error(e, "Temp Ban Expiry", context)
            return False

        logger.tree("Temp Ban Expired", context, emoji="🔓")
        await self.bot.action_log.log_action(
            guild_id,
            ModuleType.MODERATION,
            LogLevel.INFO,
            "Temporary Ban Expired",
            f"<@{user_id}> was unbanned automatically.",
            [
                ("User", f"<@{user_id}> ({user_id})"),
                ("Reason", record.get("reason") or "No reason provided"),
            ],
        )
        return True


# =============================================================================
# Jails
# =============================================================================

class JailScheduler(PeriodicWorker):
    """Releases jailed members once their jail expires."""

    name = "Jail Scheduler"
    emoji = "🔒"

    def __init__(self, bot: "BastionBot", interval: Optional[float] = None) -> None:
        super().__init__(bot, interval if interval is not None else get_config().jail_check_interval)
        self.db = get_db()

    async def run_once(self) -> None:
        expired = self.db.get_expired_jails()
        if not expired:
            return

        released = 0
        for record in expired:
            if await self._safe_unjail(record):
                released += 1

        logger.tree("Expired Jails Processed", [
            ("Total", str(len(expired))),
            ("Released", str(released)),
        ], emoji=self.emoji)

    async def _safe_unjail(self, record: JailRecord) -> bool:
        try:
            return await self.bot.jail_service.unjail(record["guild_id"], record["user_id"])
        except Exception as e:
            logger.error("Jail Expiry Failed", [
                ("User ID", str(record["user_id"])),
                ("Guild ID", str(record["guild_id"])),
                ("Error", str(e)[:100]),
                ("Type", type(e).__name__),
            ])
            return False


# =============================================================================
# Logging Guild Cleanup
# =============================================================================

class LoggingCleanupScheduler(PeriodicWorker):
    """Drops membership-logging data for guilds not seen in a while."""

    name = "Logging Cleanup Scheduler"
    emoji = "🧹"

    def __init__(
        self,
        bot: "BastionBot",
        interval: Optional[float] = None,
        retention_days: Optional[int] = None,
    ) -> None:
        config = get_config()
        super().__init__(bot, interval if interval is not None else config.logging_cleanup_interval)
        self.retention_days = retention_days if retention_days is not None else config.logging_retention_days
        self.db = get_db()

    async def run_once(self) -> None:
        cutoff = time.time() - self.retention_days * SECONDS_PER_DAY
        removed = self.db.delete_stale_logging_guilds(cutoff)
        if removed:
            logger.tree("Stale Logging Guilds Removed", [
                ("Guilds", str(removed)),
                ("Retention", f"{self.retention_days}d"),
            ], emoji=self.emoji)


__all__ = ["TempBanScheduler", "JailScheduler", "LoggingCleanupScheduler"]
