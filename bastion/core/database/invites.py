"""
Bastion - Invite Tracking Operations Mixin
==========================================

Invite snapshots, the append-only invite event log and inviter stats.
"""

import json
import time
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from bastion.core.database.models import (
    InviteEventRecord,
    InviteSnapshotRecord,
    InviteStatRecord,
)

if TYPE_CHECKING:
    from .manager import DatabaseManager


class InvitesMixin:
    """Mixin for invite tracking operations."""

    # =========================================================================
    # Snapshots
    # =========================================================================

    def upsert_invite_snapshots(
        self: "DatabaseManager",
        guild_id: int,
        snapshots: List[Dict[str, Any]],
        now: Optional[float] = None,
    ) -> None:
        """
        Mirror live invites into the snapshot table.

        DESIGN: New codes are inserted with every field. Existing codes
        only get uses and last_synced_at updated; the other fields keep
        the values captured when the invite was first seen.

        Args:
            guild_id: Guild ID.
            snapshots: Dicts with code, inviter_id, uses, max_uses, max_age,
                temporary, created_at, expires_at, invite_type.
            now: Sync timestamp override.
        """
        if not snapshots:
            return

        now = time.time() if now is None else now
        self.executemany(
            """INSERT INTO invite_snapshots
               (guild_id, code, inviter_id, uses, max_uses, max_age, temporary,
                created_at, expires_at, invite_type, last_synced_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
               ON CONFLICT(guild_id, code) DO UPDATE SET
                   uses = excluded.uses,
                   last_synced_at = excluded.last_synced_at""",
            [
                (
                    guild_id,
                    snap["code"],
                    snap.get("inviter_id"),
                    snap.get("uses", 0),
                    snap.get("max_uses", 0),
                    snap.get("max_age", 0),
                    1 if snap.get("temporary") else 0,
                    snap.get("created_at"),
                    snap.get("expires_at"),
                    snap.get("invite_type", "normal"),
                    now,
                )
                for snap in snapshots
            ]
        )

    def get_invite_snapshots(self: "DatabaseManager", guild_id: int) -> List[InviteSnapshotRecord]:
        """All snapshots for a guild."""
        rows = self.fetchall(
            "SELECT * FROM invite_snapshots WHERE guild_id = ?",
            (guild_id,)
        )
        return [dict(row) for row in rows]

    def delete_invite_snapshot(self: "DatabaseManager", guild_id: int, code: str) -> bool:
        """Forget an invite the platform reported as deleted."""
        cursor = self.execute(
            "DELETE FROM invite_snapshots WHERE guild_id = ? AND code = ?",
            (guild_id, code)
        )
        return cursor.rowcount > 0

    # =========================================================================
    # Events
    # =========================================================================

    def add_invite_event(
        self: "DatabaseManager",
        guild_id: int,
        event_type: str,
        invite_code: Optional[str] = None,
        inviter_id: Optional[int] = None,
        target_user_id: Optional[int] = None,
        join_type: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        now: Optional[float] = None,
    ) -> int:
        """Append an invite event. Returns the new row id."""
        cursor = self.execute(
            """INSERT INTO invite_events
               (guild_id, event_type, invite_code, inviter_id, target_user_id,
                join_type, metadata, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                guild_id,
                event_type,
                invite_code,
                inviter_id,
                target_user_id,
                join_type,
                json.dumps(metadata) if metadata is not None else None,
                time.time() if now is None else now,
            )
        )
        return cursor.lastrowid

    def get_latest_join_event(
        self: "DatabaseManager",
        guild_id: int,
        user_id: int,
    ) -> Optional[InviteEventRecord]:
        """Most recent member_join event for a user."""
        row = self.fetchone(
            """SELECT * FROM invite_events
               WHERE guild_id = ? AND target_user_id = ? AND event_type = 'member_join'
               ORDER BY created_at DESC, id DESC
               LIMIT 1""",
            (guild_id, user_id)
        )
        return dict(row) if row else None

    # =========================================================================
    # Stats
    # =========================================================================

    def record_invite_join(self: "DatabaseManager", guild_id: int, inviter_id: int) -> None:
        """Join: total_invites += 1, current_members += 1 (creates the row)."""
        now = time.time()
        self.execute(
            """INSERT INTO invite_stats
               (guild_id, inviter_id, total_invites, current_members, left_members, fake_members, updated_at)
               VALUES (?, ?, 1, 1, 0, 0, ?)
               ON CONFLICT(guild_id, inviter_id) DO UPDATE SET
                   total_invites = total_invites + 1,
                   current_members = current_members + 1,
                   updated_at = excluded.updated_at""",
            (guild_id, inviter_id, now)
        )

    def record_invite_leave(
        self: "DatabaseManager",
        guild_id: int,
        inviter_id: int,
        is_fake: bool,
    ) -> bool:
        """
        Leave: current_members floors at 0; left or fake counter += 1.

        DESIGN: Plain UPDATE, so a leave never creates a stats row.

        Returns:
            True if an existing row was updated.
        """
        left_delta, fake_delta = (0, 1) if is_fake else (1, 0)
        cursor = self.execute(
            """UPDATE invite_stats SET
                   current_members = MAX(0, current_members - 1),
                   left_members = left_members + ?,
                   fake_members = fake_members + ?,
                   updated_at = ?
               WHERE guild_id = ? AND inviter_id = ?""",
            (left_delta, fake_delta, time.time(), guild_id, inviter_id)
        )
        return cursor.rowcount > 0

    def get_invite_stats(
        self: "DatabaseManager",
        guild_id: int,
        inviter_id: int,
    ) -> Optional[InviteStatRecord]:
        """Stats row for one inviter."""
        row = self.fetchone(
            "SELECT * FROM invite_stats WHERE guild_id = ? AND inviter_id = ?",
            (guild_id, inviter_id)
        )
        return dict(row) if row else None

    def get_top_inviters(self: "DatabaseManager", guild_id: int, limit: int = 10) -> List[InviteStatRecord]:
        """Inviters ordered by members still present."""
        rows = self.fetchall(
            """SELECT * FROM invite_stats WHERE guild_id = ?
               ORDER BY current_members DESC, total_invites DESC
               LIMIT ?""",
            (guild_id, limit)
        )
        return [dict(row) for row in rows]
