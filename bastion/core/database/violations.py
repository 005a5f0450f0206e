"""
Bastion - Violation Operations Mixin
====================================

Time-decayed escalation counters.
"""

import time
from typing import TYPE_CHECKING, Optional, Tuple

from bastion.core.constants import SECONDS_PER_MINUTE
from bastion.core.database.models import ViolationRecord

if TYPE_CHECKING:
    from .manager import DatabaseManager


class ViolationsMixin:
    """Mixin for violation ledger operations."""

    def record_violation(
        self: "DatabaseManager",
        guild_id: int,
        user_id: int,
        module_type: str,
        threshold: int,
        decay_window_minutes: int,
        now: Optional[float] = None,
    ) -> Tuple[int, bool]:
        """
        Count one violation and decide whether the threshold is reached.

        DESIGN:
            The read-modify-write runs inside one BEGIN IMMEDIATE
            transaction under the connection lock, so two concurrent
            offenses by the same user in the same module cannot both
            read the same count. When the threshold is reached the
            stored count is reset to 0 in the same write, so only one
            caller ever sees the punishing increment.

            Decay: whole elapsed minutes since the last violation greater
            than the window starts a fresh window at 1.

        Args:
            guild_id: Guild ID.
            user_id: Offending user ID.
            module_type: Module type value.
            threshold: Effective threshold (already at least 1).
            decay_window_minutes: Window after which the count restarts.
            now: Timestamp override, defaults to time.time().

        Returns:
            (count reached by this violation, whether punishment triggers).
        """
        now = time.time() if now is None else now

        with self.transaction() as tx:
            tx.execute(
                """SELECT count, last_violation_at FROM violations
                   WHERE guild_id = ? AND user_id = ? AND module_type = ?""",
                (guild_id, user_id, module_type)
            )
            row = tx.fetchone()

            if row is None:
                count = 1
            else:
                elapsed_minutes = int((now - row["last_violation_at"]) // SECONDS_PER_MINUTE)
                count = 1 if elapsed_minutes > decay_window_minutes else row["count"] + 1

            triggered = count >= threshold

            tx.execute(
                """INSERT INTO violations (guild_id, user_id, module_type, count, last_violation_at)
                   VALUES (?, ?, ?, ?, ?)
                   ON CONFLICT(guild_id, user_id, module_type) DO UPDATE SET
                       count = excluded.count,
                       last_violation_at = excluded.last_violation_at""",
                (guild_id, user_id, module_type, 0 if triggered else count, now)
            )

        return count, triggered

    def get_violation(
        self: "DatabaseManager",
        guild_id: int,
        user_id: int,
        module_type: str,
    ) -> Optional[ViolationRecord]:
        """Get the violation counter row, if any."""
        row = self.fetchone(
            """SELECT * FROM violations
               WHERE guild_id = ? AND user_id = ? AND module_type = ?""",
            (guild_id, user_id, module_type)
        )
        return dict(row) if row else None

    def reset_violations(self: "DatabaseManager", guild_id: int, user_id: int) -> int:
        """Zero every module counter for a user. Returns rows touched."""
        cursor = self.execute(
            "UPDATE violations SET count = 0 WHERE guild_id = ? AND user_id = ?",
            (guild_id, user_id)
        )
        return cursor.rowcount
