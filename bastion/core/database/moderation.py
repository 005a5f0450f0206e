"""
Bastion - Temp Ban & Jail Operations Mixin
==========================================

Records consumed by the expiry workers.

DESIGN:
    delete_* methods report whether a row was actually removed. Workers
    delete first and only act when they won the delete, which makes them
    idempotent against a concurrent manual unban/unjail.
"""

import json
import time
from typing import TYPE_CHECKING, List, Optional

from bastion.core.logger import logger
from bastion.core.database.base import _safe_json_loads
from bastion.core.database.models import JailRecord, TempBanRecord

if TYPE_CHECKING:
    from .manager import DatabaseManager


class ModerationMixin:
    """Mixin for temp ban and jail operations."""

    # =========================================================================
    # Temp Bans
    # =========================================================================

    def add_temp_ban(
        self: "DatabaseManager",
        guild_id: int,
        user_id: int,
        expires_at: float,
        reason: Optional[str] = None,
        moderator_id: Optional[int] = None,
    ) -> None:
        """Schedule an unban, replacing any existing schedule for the user."""
        self.execute(
            """INSERT OR REPLACE INTO temp_bans
               (guild_id, user_id, reason, moderator_id, created_at, expires_at)
               VALUES (?, ?, ?, ?, ?, ?)""",
            (guild_id, user_id, reason, moderator_id, time.time(), expires_at)
        )
        logger.tree("Temp Ban Scheduled", [
            ("Guild ID", str(guild_id)),
            ("User ID", str(user_id)),
            ("Expires At", str(int(expires_at))),
        ], emoji="⏳")

    def get_expired_temp_bans(self: "DatabaseManager", now: Optional[float] = None) -> List[TempBanRecord]:
        """Temp bans whose expiry has passed."""
        rows = self.fetchall(
            "SELECT * FROM temp_bans WHERE expires_at < ? ORDER BY expires_at",
            (time.time() if now is None else now,)
        )
        return [dict(row) for row in rows]

    def delete_temp_ban(self: "DatabaseManager", guild_id: int, user_id: int) -> bool:
        """Remove a temp ban. Returns True if this call removed it."""
        cursor = self.execute(
            "DELETE FROM temp_bans WHERE guild_id = ? AND user_id = ?",
            (guild_id, user_id)
        )
        return cursor.rowcount > 0

    # =========================================================================
    # Jails
    # =========================================================================

    def add_jail(
        self: "DatabaseManager",
        guild_id: int,
        user_id: int,
        old_roles: List[int],
        reason: Optional[str] = None,
        moderator_id: Optional[int] = None,
        expires_at: Optional[float] = None,
    ) -> None:
        """Store a jail with the role IDs to restore later."""
        self.execute(
            """INSERT OR REPLACE INTO jails
               (guild_id, user_id, old_roles, reason, moderator_id, created_at, expires_at)
               VALUES (?, ?, ?, ?, ?, ?, ?)""",
            (guild_id, user_id, json.dumps(list(old_roles)), reason, moderator_id, time.time(), expires_at)
        )

    def restore_jail(self: "DatabaseManager", record: JailRecord) -> None:
        """Write back a jail record exactly as it was read."""
        self.execute(
            """INSERT OR REPLACE INTO jails
               (guild_id, user_id, old_roles, reason, moderator_id, created_at, expires_at)
               VALUES (?, ?, ?, ?, ?, ?, ?)""",
            (
                record["guild_id"],
                record["user_id"],
                json.dumps(list(record.get("old_roles", []))),
                record.get("reason"),
                record.get("moderator_id"),
                record.get("created_at", time.time()),
                record.get("expires_at"),
            )
        )

    def get_jail(self: "DatabaseManager", guild_id: int, user_id: int) -> Optional[JailRecord]:
        """Get an active jail with old_roles decoded."""
        row = self.fetchone(
            "SELECT * FROM jails WHERE guild_id = ? AND user_id = ?",
            (guild_id, user_id)
        )
        if not row:
            return None
        record = dict(row)
        record["old_roles"] = _safe_json_loads(row["old_roles"], [])
        return record

    def get_expired_jails(self: "DatabaseManager", now: Optional[float] = None) -> List[JailRecord]:
        """Timed jails whose expiry has passed."""
        rows = self.fetchall(
            """SELECT * FROM jails
               WHERE expires_at IS NOT NULL AND expires_at < ?
               ORDER BY expires_at""",
            (time.time() if now is None else now,)
        )
        records = []
        for row in rows:
            record = dict(row)
            record["old_roles"] = _safe_json_loads(row["old_roles"], [])
            records.append(record)
        return records

    def delete_jail(self: "DatabaseManager", guild_id: int, user_id: int) -> bool:
        """Remove a jail. Returns True if this call removed it."""
        cursor = self.execute(
            "DELETE FROM jails WHERE guild_id = ? AND user_id = ?",
            (guild_id, user_id)
        )
        return cursor.rowcount > 0
