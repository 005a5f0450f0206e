"""
Bastion - Whitelist Operations Mixin
====================================

User and role whitelist entries, optionally scoped to one module.
"""

import time
from typing import TYPE_CHECKING, Iterable, List, Optional

from bastion.core.logger import logger
from bastion.core.database.base import _placeholders
from bastion.core.database.models import WhitelistEntryRecord

if TYPE_CHECKING:
    from .manager import DatabaseManager


_SUBJECT_TABLES = {
    "user": ("whitelist_users", "user_id"),
    "role": ("whitelist_roles", "role_id"),
}


class WhitelistMixin:
    """Mixin for whitelist operations."""

    def _whitelist_table(self: "DatabaseManager", subject_kind: str):
        try:
            return _SUBJECT_TABLES[subject_kind]
        except KeyError:
            raise ValueError(f"Unknown whitelist subject kind: {subject_kind}")

    # =========================================================================
    # Mutations
    # =========================================================================

    def add_whitelist_entry(
        self: "DatabaseManager",
        guild_id: int,
        subject_kind: str,
        subject_id: int,
        level: str,
        module_type: Optional[str] = None,
    ) -> None:
        """
        Add or replace a whitelist entry.

        DESIGN: One entry per (guild, subject, scope). Replacing in a single
        transaction keeps the pair unique even with NULL scopes.

        Args:
            guild_id: Guild ID.
            subject_kind: "user" or "role".
            subject_id: User or role ID.
            level: Whitelist level value.
            module_type: Module scope, None for all modules.
        """
        table, column = self._whitelist_table(subject_kind)
        with self.transaction() as tx:
            tx.execute(
                f"DELETE FROM {table} WHERE guild_id = ? AND {column} = ? AND module_type IS ?",
                (guild_id, subject_id, module_type)
            )
            tx.execute(
                f"INSERT INTO {table} (guild_id, {column}, level, module_type, created_at) "
                f"VALUES (?, ?, ?, ?, ?)",
                (guild_id, subject_id, level, module_type, time.time())
            )

        logger.tree("Whitelist Entry Added", [
            ("Guild ID", str(guild_id)),
            ("Subject", f"{subject_kind}:{subject_id}"),
            ("Level", level),
            ("Scope", module_type or "Global"),
        ], emoji="📋")

    def remove_whitelist_entry(
        self: "DatabaseManager",
        guild_id: int,
        subject_kind: str,
        subject_id: int,
        module_type: Optional[str] = None,
    ) -> bool:
        """
        Remove a whitelist entry for one scope.

        Returns:
            True if an entry was removed.
        """
        table, column = self._whitelist_table(subject_kind)
        cursor = self.execute(
            f"DELETE FROM {table} WHERE guild_id = ? AND {column} = ? AND module_type IS ?",
            (guild_id, subject_id, module_type)
        )
        removed = cursor.rowcount > 0
        if removed:
            logger.tree("Whitelist Entry Removed", [
                ("Guild ID", str(guild_id)),
                ("Subject", f"{subject_kind}:{subject_id}"),
                ("Scope", module_type or "Global"),
            ], emoji="📋")
        return removed

    # =========================================================================
    # Queries
    # =========================================================================

    def get_whitelist_entries(
        self: "DatabaseManager",
        guild_id: int,
        subject_kind: str,
    ) -> List[WhitelistEntryRecord]:
        """List every entry of one subject kind for a guild."""
        table, column = self._whitelist_table(subject_kind)
        rows = self.fetchall(
            f"SELECT id, guild_id, {column} AS subject_id, level, module_type, created_at "
            f"FROM {table} WHERE guild_id = ? ORDER BY created_at",
            (guild_id,)
        )
        return [dict(row) for row in rows]

    def get_user_whitelist_levels(
        self: "DatabaseManager",
        guild_id: int,
        user_id: int,
        module_type: str,
    ) -> List[str]:
        """Levels of user entries that apply to the module (global or scoped)."""
        rows = self.fetchall(
            """SELECT level FROM whitelist_users
               WHERE guild_id = ? AND user_id = ?
               AND (module_type IS NULL OR module_type = ?)""",
            (guild_id, user_id, module_type)
        )
        return [row["level"] for row in rows]

    def get_role_whitelist_levels(
        self: "DatabaseManager",
        guild_id: int,
        role_ids: Iterable[int],
        module_type: str,
    ) -> List[str]:
        """Levels of role entries matching any of the roles for the module."""
        role_ids = list(role_ids)
        if not role_ids:
            return []

        rows = self.fetchall(
            f"""SELECT level FROM whitelist_roles
                WHERE guild_id = ? AND role_id IN ({_placeholders(role_ids)})
                AND (module_type IS NULL OR module_type = ?)""",
            (guild_id, *role_ids, module_type)
        )
        return [row["level"] for row in rows]
