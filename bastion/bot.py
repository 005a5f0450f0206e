"""
Bastion - Main Bot Class
========================

Core Discord client: owns the services, loads the cogs and runs the
background workers.
"""

from datetime import datetime
from typing import List, Optional, Sequence

import discord
from discord.ext import commands

from bastion.core.logger import logger
from bastion.core.config import get_config
from bastion.core.database import get_db
from bastion.services.action_log import ActionLogService
from bastion.services.activity_log import ActivityLogService
from bastion.services.expiry import JailScheduler, LoggingCleanupScheduler, TempBanScheduler
from bastion.services.invites import InviteTracker
from bastion.services.jail import JailService
from bastion.services.membership_log import MembershipLogService
from bastion.services.protection import (
    ObjectCache,
    ObjectCacheSweeper,
    ProtectionDispatcher,
    ProtectionPipeline,
    RevertExecutor,
    TrustResolver,
    ViolationLedger,
    build_registry,
)
from bastion.services.scheduler import PeriodicWorker
from bastion.services.setup_sessions import SetupSessionStore
from bastion.services.sticky_roles import StickyRolesService


# =============================================================================
# BastionBot Class
# =============================================================================

class BastionBot(commands.Bot):
    """
    Guild protection bot.

    DESIGN: Central orchestrator that holds every service so cogs and
    services reach each other through the bot instance.

    SERVICE INITIALIZATION ORDER:
    1. __init__:
       - Database, object cache, jail, action log
       - Trust resolver, violation ledger, revert executor
       - Protection pipeline and dispatcher over the module registry
       - Invite tracker, membership log, sticky roles, activity log
       - Setup sessions and workers

    2. setup_hook (before on_ready):
       - Command and event cog loading
       - Command tree syncing when publishing

    3. on_ready:
       - Background workers
       - Invite snapshot sync
    """

    # =========================================================================
    # Initialization
    # =========================================================================

    def __init__(self, publish_guild_ids: Optional[Sequence[int]] = None) -> None:
        """
        Args:
            publish_guild_ids: None to skip command sync, an empty list to
                sync globally, or guild IDs to sync to each guild.
        """
        self.config = get_config()

        intents = discord.Intents.default()
        intents.guilds = True
        intents.members = True
        intents.moderation = True
        intents.invites = True
        intents.voice_states = True
        intents.message_content = True

        super().__init__(
            command_prefix=commands.when_mentioned,
            intents=intents,
            help_command=None,
            allowed_mentions=discord.AllowedMentions.none(),
        )

        self.publish_guild_ids = publish_guild_ids
        self.start_time: datetime = datetime.now()
        self._ready_initialized = False

        self.db = get_db()
        self.object_cache = ObjectCache(ttl=self.config.object_cache_ttl)
        self.jail_service = JailService(self)
        self.action_log = ActionLogService(self)

        self.trust = TrustResolver(self)
        self.ledger = ViolationLedger(self, self.jail_service)
        self.revert_executor = RevertExecutor(self, self.object_cache)
        self.protection_pipeline = ProtectionPipeline(
            self,
            self.trust,
            self.ledger,
            self.revert_executor,
            self.action_log,
        )
        self.protection_dispatcher = ProtectionDispatcher(self.protection_pipeline, build_registry(self))

        self.invite_tracker = InviteTracker(self)
        self.membership_log = MembershipLogService(self)
        self.sticky_roles = StickyRolesService(self)
        self.activity_log = ActivityLogService(self)
        self.setup_sessions = SetupSessionStore()

        self.workers: List[PeriodicWorker] = [
            TempBanScheduler(self),
            JailScheduler(self),
            LoggingCleanupScheduler(self),
            ObjectCacheSweeper(self, self.object_cache, self.config.object_cache_sweep_interval),
        ]

        logger.info("Bot Instance Created", [
            ("Protection Modules", str(len(self.protection_dispatcher.modules))),
            ("Workers", str(len(self.workers))),
        ])

    # =========================================================================
    # Setup Hook
    # =========================================================================

    async def setup_hook(self) -> None:
        """Load cogs and sync commands before on_ready."""
        from bastion.commands import COMMAND_COGS
        for cog in COMMAND_COGS:
            try:
                await self.load_extension(cog)
                logger.info(f"Cog Loaded: {cog.split('.')[-1]}")
            except Exception as e:
                logger.error("Failed to Load Cog", [("Cog", cog), ("Error", str(e))])

        from bastion.events import EVENT_COGS
        for cog in EVENT_COGS:
            try:
                await self.load_extension(cog)
                logger.debug(f"Event Cog Loaded: {cog.split('.')[-1]}")
            except Exception as e:
                logger.error("Failed to Load Event Cog", [("Cog", cog), ("Error", str(e))])

        if self.publish_guild_ids is not None:
            await self.publish_commands(self.publish_guild_ids)

    async def publish_commands(self, guild_ids: Sequence[int]) -> None:
        """
        Sync the command tree globally, or copy it to each listed guild.
        """
        try:
            if not guild_ids:
                synced = await self.tree.sync()
                logger.tree("Commands Synced", [
                    ("Scope", "Global"),
                    ("Count", str(len(synced))),
                ], emoji="✅")
                return

            for guild_id in guild_ids:
                guild = discord.Object(id=guild_id)
                self.tree.copy_global_to(guild=guild)
                synced = await self.tree.sync(guild=guild)
                logger.tree("Commands Synced", [
                    ("Scope", f"Guild {guild_id}"),
                    ("Count", str(len(synced))),
                ], emoji="✅")
        except discord.HTTPException as e:
            logger.error("Command Sync Failed", [
                ("Status", str(e.status)),
                ("Error", str(e)[:100]),
            ])

    # =========================================================================
    # On Ready
    # =========================================================================

    async def on_ready(self) -> None:
        """Start workers and sync invites once per process."""
        if self._ready_initialized:
            logger.info("Bot Reconnected (skipping re-initialization)")
            return

        self._ready_initialized = True

        if not self.user:
            return

        logger.tree("BOT ONLINE", [
            ("Name", self.user.name),
            ("ID", str(self.user.id)),
            ("Guilds", str(len(self.guilds))),
        ], emoji="🚀")

        if self.config.error_webhook_url:
            logger.set_webhook(self.config.error_webhook_url)

        for worker in self.workers:
            await worker.start()

        synced = await self.invite_tracker.sync_all()

        logger.tree("BASTION READY", [
            ("Protection Modules", str(len(self.protection_dispatcher.modules))),
            ("Workers", ", ".join(worker.name for worker in self.workers)),
            ("Invite Guilds Synced", str(synced)),
            ("Webhook Alerts", "Enabled" if self.config.error_webhook_url else "Disabled"),
        ], emoji="🛡️")

    # =========================================================================
    # Shutdown
    # =========================================================================

    async def close(self) -> None:
        """Stop workers, close the database, then disconnect."""
        logger.info("Initiating Graceful Shutdown")

        for worker in self.workers:
            await worker.stop()

        self.db.close()
        await super().close()

        logger.tree("SHUTDOWN COMPLETE", [
            ("Uptime", str(datetime.now() - self.start_time)),
            ("Pending Handlers", str(self.protection_dispatcher.pending)),
        ], emoji="🛑")


# =============================================================================
# Module Export
# =============================================================================

__all__ = ["BastionBot"]
