"""
Bastion - Periodic Worker Base
==============================

Shared lifecycle for background loops (expiry workers, cache sweeper).

DESIGN:
    Each worker runs one pass every `interval` seconds for the whole
    process lifetime. A failing pass is logged and the loop keeps going.
    stop() cancels the task and waits for it, so shutdown is clean.
"""

import asyncio
from typing import TYPE_CHECKING, Optional

from bastion.core.logger import logger

if TYPE_CHECKING:
    from bastion.bot import BastionBot


class PeriodicWorker:
    """
    Base class for periodic background tasks.

    Subclasses set `name` and implement run_once().

    Attributes:
        bot: Main bot instance.
        interval: Seconds between passes.
        task: Background task reference.
        running: Whether the loop is active.
    """

    name: str = "Periodic Worker"
    emoji: str = "⏰"

    def __init__(self, bot: "BastionBot", interval: float) -> None:
        self.bot = bot
        self.interval = interval
        self.task: Optional[asyncio.Task] = None
        self.running: bool = False

    # =========================================================================
    # Lifecycle Management
    # =========================================================================

    async def start(self) -> None:
        """Start the loop, replacing any previous task."""
        if self.task and not self.task.done():
            self.task.cancel()

        self.running = True
        self.task = asyncio.create_task(self._scheduler_loop())

        logger.tree(f"{self.name} Started", [
            ("Interval", f"{self.interval}s"),
            ("Status", "Running"),
        ], emoji=self.emoji)

    async def stop(self) -> None:
        """Stop the loop and wait for the task to finish."""
        self.running = False

        if self.task and not self.task.done():
            self.task.cancel()
            try:
                await self.task
            except asyncio.CancelledError:
                pass

        logger.info(f"{self.name} Stopped")

    # =========================================================================
    # Loop
    # =========================================================================

    async def _scheduler_loop(self) -> None:
        await self.bot.wait_until_ready()

        while self.running:
            try:
                await self.run_once()
                await asyncio.sleep(self.interval)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"{self.name} Error", [
                    ("Error", str(e)[:100]),
                    ("Type", type(e).__name__),
                ])
                await asyncio.sleep(self.interval)

    async def run_once(self) -> None:
        """Run a single pass."""
        raise NotImplementedError


__all__ = ["PeriodicWorker"]
