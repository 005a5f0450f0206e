"""
Bastion - Discord HTTP Error Logging
====================================

Log a failed Discord API call with its status and Discord error code.

Usage:
    try:
        await role.delete(reason=reason)
    except discord.HTTPException as e:
        log_http_error(e, "Role Delete", [("Role ID", str(role.id))])
"""

from typing import List, Optional, Tuple

import discord

from bastion.core.logger import logger


RECOVERABLE_STATUSES = {
    403: ("🚫", "Forbidden"),
    404: ("❓", "Not Found"),
    429: ("🚦", "Rate Limited"),
}
"""Statuses a handler expects during a raid; logged as warnings, not errors."""


def log_http_error(
    e: discord.HTTPException,
    operation: str,
    context: Optional[List[Tuple[str, str]]] = None,
) -> None:
    """
    Log a Discord HTTPException.

    Permission denials, vanished objects and rate limits are warnings;
    anything else is an error and reaches the error webhook.
    """
    status = getattr(e, "status", 0)
    details = [
        ("Status", str(status)),
        ("Code", str(getattr(e, "code", 0))),
        ("Error", (getattr(e, "text", "") or str(e))[:100]),
    ]
    details.extend(context or [])

    if status in RECOVERABLE_STATUSES:
        icon, label = RECOVERABLE_STATUSES[status]
        logger.warning(f"{icon} {operation} {label}", details)
    else:
        logger.error(f"{operation} Failed", details)


__all__ = ["log_http_error"]
