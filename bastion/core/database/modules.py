"""
Bastion - Module Config Operations Mixin
========================================

Guild-general settings and per-module configuration rows.
"""

import json
import time
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from bastion.core.logger import logger
from bastion.core.database.models import GuildConfigRecord, ModuleConfigRecord

if TYPE_CHECKING:
    from .manager import DatabaseManager


MODULE_CONFIG_COLUMNS = frozenset({
    "enabled",
    "punishment",
    "punishment_threshold",
    "decay_window_minutes",
    "revert",
    "log_channel_id",
    "settings",
})
"""Columns that upsert_module_config() is allowed to write."""


class ModuleConfigMixin:
    """Mixin for guild and module configuration operations."""

    # =========================================================================
    # Guild Config Operations
    # =========================================================================

    def get_guild_config(self: "DatabaseManager", guild_id: int) -> Optional[GuildConfigRecord]:
        """Get the guild-general config row, if any."""
        row = self.fetchone(
            "SELECT * FROM guild_configs WHERE guild_id = ?",
            (guild_id,)
        )
        return dict(row) if row else None

    def set_guild_log_channel(self: "DatabaseManager", guild_id: int, channel_id: Optional[int]) -> None:
        """Set (or clear) the guild-general log channel."""
        self.execute(
            """INSERT INTO guild_configs (guild_id, log_channel_id, updated_at)
               VALUES (?, ?, ?)
               ON CONFLICT(guild_id) DO UPDATE SET
                   log_channel_id = excluded.log_channel_id,
                   updated_at = excluded.updated_at""",
            (guild_id, channel_id, time.time())
        )
        logger.tree("Guild Log Channel Set", [
            ("Guild ID", str(guild_id)),
            ("Channel ID", str(channel_id)),
        ], emoji="⚙️")

    def set_jail_role(self: "DatabaseManager", guild_id: int, role_id: Optional[int]) -> None:
        """Set (or clear) the guild's jail role."""
        self.execute(
            """INSERT INTO guild_configs (guild_id, jail_role_id, updated_at)
               VALUES (?, ?, ?)
               ON CONFLICT(guild_id) DO UPDATE SET
                   jail_role_id = excluded.jail_role_id,
                   updated_at = excluded.updated_at""",
            (guild_id, role_id, time.time())
        )
        logger.tree("Jail Role Set", [
            ("Guild ID", str(guild_id)),
            ("Role ID", str(role_id)),
        ], emoji="⚙️")

    # =========================================================================
    # Module Config Operations
    # =========================================================================

    def get_module_config(
        self: "DatabaseManager",
        guild_id: int,
        module_type: str,
    ) -> Optional[ModuleConfigRecord]:
        """
        Get one module's configuration row.

        Returns:
            Row as a dict, or None if the module was never configured.
        """
        row = self.fetchone(
            "SELECT * FROM module_configs WHERE guild_id = ? AND module_type = ?",
            (guild_id, module_type)
        )
        return dict(row) if row else None

    def get_module_configs(self: "DatabaseManager", guild_id: int) -> List[ModuleConfigRecord]:
        """Get every configured module for a guild."""
        rows = self.fetchall(
            "SELECT * FROM module_configs WHERE guild_id = ? ORDER BY module_type",
            (guild_id,)
        )
        return [dict(row) for row in rows]

    def upsert_module_config(
        self: "DatabaseManager",
        guild_id: int,
        module_type: str,
        **fields: Any,
    ) -> ModuleConfigRecord:
        """
        Create the module row if needed, then apply the given fields.

        DESIGN: Rows are created lazily with schema defaults on the first
        write. Only known columns are accepted; settings may be passed as
        a dict and is stored as JSON.

        Args:
            guild_id: Guild ID.
            module_type: Module type value.
            **fields: Column values to write.

        Returns:
            The updated row.

        Raises:
            ValueError: If an unknown column is passed.
        """
        unknown = set(fields) - MODULE_CONFIG_COLUMNS
        if unknown:
            raise ValueError(f"Unknown module config fields: {', '.join(sorted(unknown))}")

        values: Dict[str, Any] = dict(fields)
        if isinstance(values.get("settings"), dict):
            values["settings"] = json.dumps(values["settings"])
        for flag in ("enabled", "revert"):
            if flag in values:
                values[flag] = 1 if values[flag] else 0

        now = time.time()
        with self.transaction() as tx:
            tx.execute(
                """INSERT OR IGNORE INTO module_configs (guild_id, module_type, updated_at)
                   VALUES (?, ?, ?)""",
                (guild_id, module_type, now)
            )
            if values:
                assignments = ", ".join(f"{column} = ?" for column in values)
                tx.execute(
                    f"UPDATE module_configs SET {assignments}, updated_at = ? "
                    f"WHERE guild_id = ? AND module_type = ?",
                    (*values.values(), now, guild_id, module_type)
                )

        logger.tree("Module Config Updated", [
            ("Guild ID", str(guild_id)),
            ("Module", module_type),
            ("Fields", ", ".join(sorted(values)) or "None"),
        ], emoji="⚙️")

        return self.get_module_config(guild_id, module_type)

    def get_guilds_with_module_enabled(self: "DatabaseManager", module_type: str) -> List[int]:
        """Guild IDs where the module exists and is enabled."""
        rows = self.fetchall(
            "SELECT guild_id FROM module_configs WHERE module_type = ? AND enabled = 1",
            (module_type,)
        )
        return [row["guild_id"] for row in rows]
