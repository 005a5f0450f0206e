"""
Bastion - Database Schema
=========================

Table definitions for every persisted entity.
"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from bastion.core.database.manager import DatabaseManager


class SchemaMixin:
    """Mixin for database schema initialization."""

    def _init_tables(self: "DatabaseManager") -> None:
        """
        Initialize all database tables.

        DESIGN: Tables are created if not exist, allowing safe restarts.
        Indexes added for the lookups the pipeline and workers run hot.
        """
        conn = self._ensure_connection()
        cursor = conn.cursor()

        # -----------------------------------------------------------------
        # Guild Configs
        # DESIGN: Guild-general fallback log channel and the jail role
        # -----------------------------------------------------------------
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS guild_configs (
                guild_id INTEGER PRIMARY KEY,
                log_channel_id INTEGER,
                jail_role_id INTEGER,
                updated_at REAL NOT NULL
            )
        """)

        # -----------------------------------------------------------------
        # Module Configs
        # DESIGN: One row per (guild, module). Created lazily on the first
        # configuration write and soft-disabled, never deleted.
        # punishment_threshold 0 behaves as 1 (punish on first offense).
        # -----------------------------------------------------------------
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS module_configs (
                guild_id INTEGER NOT NULL,
                module_type TEXT NOT NULL,
                enabled INTEGER NOT NULL DEFAULT 0,
                punishment TEXT NOT NULL DEFAULT 'none',
                punishment_threshold INTEGER NOT NULL DEFAULT 0,
                decay_window_minutes INTEGER NOT NULL DEFAULT 5,
                revert INTEGER NOT NULL DEFAULT 1,
                log_channel_id INTEGER,
                settings TEXT NOT NULL DEFAULT '{}',
                updated_at REAL NOT NULL,
                PRIMARY KEY (guild_id, module_type)
            )
        """)
        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_module_configs_type ON module_configs(module_type, enabled)"
        )

        # -----------------------------------------------------------------
        # Whitelists
        # DESIGN: module_type NULL means the entry applies to every module.
        # Uniqueness per (guild, subject, scope) is enforced in the mixin
        # because SQLite treats NULLs as distinct in UNIQUE constraints.
        # -----------------------------------------------------------------
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS whitelist_users (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                guild_id INTEGER NOT NULL,
                user_id INTEGER NOT NULL,
                level TEXT NOT NULL,
                module_type TEXT,
                created_at REAL NOT NULL
            )
        """)
        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_whitelist_users_lookup ON whitelist_users(guild_id, user_id)"
        )

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS whitelist_roles (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                guild_id INTEGER NOT NULL,
                role_id INTEGER NOT NULL,
                level TEXT NOT NULL,
                module_type TEXT,
                created_at REAL NOT NULL
            )
        """)
        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_whitelist_roles_lookup ON whitelist_roles(guild_id, role_id)"
        )

        # -----------------------------------------------------------------
        # Violations
        # DESIGN: One escalation counter per (guild, user, module)
        # -----------------------------------------------------------------
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS violations (
                guild_id INTEGER NOT NULL,
                user_id INTEGER NOT NULL,
                module_type TEXT NOT NULL,
                count INTEGER NOT NULL DEFAULT 0,
                last_violation_at REAL NOT NULL,
                PRIMARY KEY (guild_id, user_id, module_type)
            )
        """)

        # -----------------------------------------------------------------
        # Temp Bans
        # -----------------------------------------------------------------
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS temp_bans (
                guild_id INTEGER NOT NULL,
                user_id INTEGER NOT NULL,
                reason TEXT,
                moderator_id INTEGER,
                created_at REAL NOT NULL,
                expires_at REAL NOT NULL,
                PRIMARY KEY (guild_id, user_id)
            )
        """)
        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_temp_bans_expires ON temp_bans(expires_at)"
        )

        # -----------------------------------------------------------------
        # Jails
        # DESIGN: old_roles is a JSON list of role IDs removed on jailing.
        # expires_at NULL means the jail only ends on manual unjail.
        # -----------------------------------------------------------------
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS jails (
                guild_id INTEGER NOT NULL,
                user_id INTEGER NOT NULL,
                old_roles TEXT NOT NULL DEFAULT '[]',
                reason TEXT,
                moderator_id INTEGER,
                created_at REAL NOT NULL,
                expires_at REAL,
                PRIMARY KEY (guild_id, user_id)
            )
        """)
        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_jails_expires ON jails(expires_at)"
        )

        # -----------------------------------------------------------------
        # Logging Guilds + Member Old Roles
        # DESIGN: Deleting a stale logging_guilds row cascades to the
        # member role snapshots of that guild.
        # -----------------------------------------------------------------
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS logging_guilds (
                guild_id INTEGER PRIMARY KEY,
                last_accessed_at REAL NOT NULL
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS member_old_roles (
                guild_id INTEGER NOT NULL,
                user_id INTEGER NOT NULL,
                role_ids TEXT NOT NULL DEFAULT '[]',
                updated_at REAL NOT NULL,
                PRIMARY KEY (guild_id, user_id),
                FOREIGN KEY (guild_id) REFERENCES logging_guilds(guild_id) ON DELETE CASCADE
            )
        """)

        # -----------------------------------------------------------------
        # Invite Snapshots
        # DESIGN: Local mirror of live invites, diffed on every join
        # -----------------------------------------------------------------
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS invite_snapshots (
                guild_id INTEGER NOT NULL,
                code TEXT NOT NULL,
                inviter_id INTEGER,
                uses INTEGER NOT NULL DEFAULT 0,
                max_uses INTEGER NOT NULL DEFAULT 0,
                max_age INTEGER NOT NULL DEFAULT 0,
                temporary INTEGER NOT NULL DEFAULT 0,
                created_at REAL,
                expires_at REAL,
                invite_type TEXT NOT NULL DEFAULT 'normal',
                last_synced_at REAL NOT NULL,
                PRIMARY KEY (guild_id, code)
            )
        """)

        # -----------------------------------------------------------------
        # Invite Events
        # DESIGN: Append-only; read most-recent-first for attribution
        # -----------------------------------------------------------------
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS invite_events (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                guild_id INTEGER NOT NULL,
                event_type TEXT NOT NULL,
                invite_code TEXT,
                inviter_id INTEGER,
                target_user_id INTEGER,
                join_type TEXT,
                metadata TEXT,
                created_at REAL NOT NULL
            )
        """)
        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_invite_events_target ON invite_events(guild_id, target_user_id, event_type, created_at)"
        )

        # -----------------------------------------------------------------
        # Invite Stats
        # -----------------------------------------------------------------
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS invite_stats (
                guild_id INTEGER NOT NULL,
                inviter_id INTEGER NOT NULL,
                total_invites INTEGER NOT NULL DEFAULT 0,
                current_members INTEGER NOT NULL DEFAULT 0,
                left_members INTEGER NOT NULL DEFAULT 0,
                fake_members INTEGER NOT NULL DEFAULT 0,
                updated_at REAL NOT NULL,
                PRIMARY KEY (guild_id, inviter_id)
            )
        """)
        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_invite_stats_current ON invite_stats(guild_id, current_members DESC)"
        )

        conn.commit()
