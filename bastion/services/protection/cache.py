"""
Bastion - Deleted Object Cache
==============================

Short-lived store of channels and roles captured from delete events, so
a hostile delete can be recreated from the full pre-delete object.

DESIGN:
    Delete gateway events and audit-log entries arrive in either order.
    The revert path polls this cache for a bounded number of attempts
    (wait_for) instead of blocking indefinitely. Entries leave the cache
    on first consumption (take) or on the periodic sweep after the TTL.
"""

import asyncio
import time
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional, Tuple

from bastion.core.logger import logger
from bastion.services.scheduler import PeriodicWorker

if TYPE_CHECKING:
    from bastion.bot import BastionBot


CacheKey = Tuple[int, int]
"""(guild_id, object_id)"""


class ObjectCache:
    """
    TTL cache keyed by (guild_id, object_id).

    Single-threaded async use only; every method is synchronous so no
    await point can interleave inside an operation.
    """

    def __init__(self, ttl: float = 90.0, clock: Callable[[], float] = time.monotonic) -> None:
        self._ttl = ttl
        self._clock = clock
        self._entries: Dict[CacheKey, Tuple[Any, float]] = {}

    def store(self, guild_id: int, object_id: int, obj: Any) -> None:
        """Cache an object that is about to disappear."""
        self._entries[(guild_id, object_id)] = (obj, self._clock())

    def peek(self, guild_id: int, object_id: int) -> Optional[Any]:
        """Get a live entry without consuming it."""
        entry = self._entries.get((guild_id, object_id))
        if entry is None:
            return None
        obj, cached_at = entry
        if self._clock() - cached_at > self._ttl:
            self._entries.pop((guild_id, object_id), None)
            return None
        return obj

    def take(self, guild_id: int, object_id: int) -> Optional[Any]:
        """Consume an entry: return it and remove it from the cache."""
        obj = self.peek(guild_id, object_id)
        if obj is not None:
            self._entries.pop((guild_id, object_id), None)
        return obj

    async def wait_for(
        self,
        guild_id: int,
        object_id: int,
        attempts: int,
        delay: float,
    ) -> Optional[Any]:
        """
        Poll for an entry and consume it.

        Args:
            guild_id: Guild ID.
            object_id: Deleted object ID.
            attempts: Number of lookups.
            delay: Seconds between lookups.

        Returns:
            The cached object, or None after all attempts miss.
        """
        for attempt in range(attempts):
            obj = self.take(guild_id, object_id)
            if obj is not None:
                return obj
            if attempt < attempts - 1:
                await asyncio.sleep(delay)
        return None

    def sweep(self) -> int:
        """Drop expired entries. Returns the number removed."""
        now = self._clock()
        expired = [key for key, (_, cached_at) in self._entries.items() if now - cached_at > self._ttl]
        for key in expired:
            self._entries.pop(key, None)
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: CacheKey) -> bool:
        return self.peek(*key) is not None


class ObjectCacheSweeper(PeriodicWorker):
    """Periodic TTL sweep for the deleted object cache."""

    name = "Object Cache Sweeper"
    emoji = "🧹"

    def __init__(self, bot: "BastionBot", cache: ObjectCache, interval: float) -> None:
        super().__init__(bot, interval)
        self.cache = cache

    async def run_once(self) -> None:
        removed = self.cache.sweep()
        if removed:
            logger.debug("Object Cache Swept", [
                ("Removed", str(removed)),
                ("Remaining", str(len(self.cache))),
            ])


__all__ = ["ObjectCache", "ObjectCacheSweeper"]
