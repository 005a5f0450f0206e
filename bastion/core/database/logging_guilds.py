"""
Bastion - Logging Guild Operations Mixin
========================================

Activity timestamps for guilds using membership logging, and the member
role snapshots that hang off them.
"""

import json
import time
from typing import TYPE_CHECKING, Iterable, List, Optional

from bastion.core.database.base import _safe_json_loads

if TYPE_CHECKING:
    from .manager import DatabaseManager


class LoggingGuildsMixin:
    """Mixin for logging guild and member role snapshot operations."""

    def touch_logging_guild(self: "DatabaseManager", guild_id: int, now: Optional[float] = None) -> None:
        """Mark the guild's logging data as recently used."""
        self.execute(
            """INSERT INTO logging_guilds (guild_id, last_accessed_at) VALUES (?, ?)
               ON CONFLICT(guild_id) DO UPDATE SET last_accessed_at = excluded.last_accessed_at""",
            (guild_id, time.time() if now is None else now)
        )

    def delete_stale_logging_guilds(self: "DatabaseManager", cutoff: float) -> int:
        """
        Delete guilds not touched since cutoff.

        DESIGN: member_old_roles rows go with them via ON DELETE CASCADE.

        Returns:
            Number of guilds removed.
        """
        cursor = self.execute(
            "DELETE FROM logging_guilds WHERE last_accessed_at < ?",
            (cutoff,)
        )
        return cursor.rowcount

    def store_member_roles(
        self: "DatabaseManager",
        guild_id: int,
        user_id: int,
        role_ids: Iterable[int],
    ) -> None:
        """Upsert a member's role snapshot (touches the guild first for the FK)."""
        now = time.time()
        with self.transaction() as tx:
            tx.execute(
                """INSERT INTO logging_guilds (guild_id, last_accessed_at) VALUES (?, ?)
                   ON CONFLICT(guild_id) DO UPDATE SET last_accessed_at = excluded.last_accessed_at""",
                (guild_id, now)
            )
            tx.execute(
                """INSERT INTO member_old_roles (guild_id, user_id, role_ids, updated_at)
                   VALUES (?, ?, ?, ?)
                   ON CONFLICT(guild_id, user_id) DO UPDATE SET
                       role_ids = excluded.role_ids,
                       updated_at = excluded.updated_at""",
                (guild_id, user_id, json.dumps(list(role_ids)), now)
            )

    def get_member_roles(self: "DatabaseManager", guild_id: int, user_id: int) -> Optional[List[int]]:
        """Stored role IDs for a member, or None if never stored."""
        row = self.fetchone(
            "SELECT role_ids FROM member_old_roles WHERE guild_id = ? AND user_id = ?",
            (guild_id, user_id)
        )
        if not row:
            return None
        return _safe_json_loads(row["role_ids"], [])

    def delete_member_roles(self: "DatabaseManager", guild_id: int, user_id: int) -> None:
        """Drop a member's stored roles."""
        self.execute(
            "DELETE FROM member_old_roles WHERE guild_id = ? AND user_id = ?",
            (guild_id, user_id)
        )
