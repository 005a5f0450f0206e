"""
Bastion - Async Utilities
=========================

Run independent event handlers side by side so one failing handler never
keeps the others from running.

Usage:
    from bastion.utils.async_utils import gather_with_logging

    await gather_with_logging(
        ("Invite Tracking", tracker.handle_join(member)),
        ("Membership Log", membership_log.handle_join(member)),
        context="Member Join",
    )
"""

import asyncio
from typing import Any, Coroutine, List, Optional, Tuple

from bastion.core.logger import logger


async def gather_with_logging(
    *operations: Tuple[str, Coroutine[Any, Any, Any]],
    context: Optional[str] = None,
) -> List[Any]:
    """
    Run operations concurrently and log each one that raised.

    Args:
        *operations: (operation name, coroutine) pairs.
        context: Event name added to every failure log.

    Returns:
        Results in input order; a failed operation leaves its exception.
    """
    names = [name for name, _ in operations]
    results = await asyncio.gather(*(coro for _, coro in operations), return_exceptions=True)

    for name, result in zip(names, results):
        if isinstance(result, Exception):
            details = [
                ("Operation", name),
                ("Error", str(result)[:100]),
                ("Type", type(result).__name__),
            ]
            if context:
                details.insert(0, ("Context", context))
            logger.error("Event Handler Failed", details)

    return results


__all__ = ["gather_with_logging"]
