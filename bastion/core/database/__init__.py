"""
Bastion - Database Module
=========================

SQLite persistence assembled from per-domain mixins.
"""

from bastion.core.database.manager import DatabaseManager, get_db
from bastion.core.database.base import _safe_json_loads

from bastion.core.database.models import (
    GuildConfigRecord,
    ModuleConfigRecord,
    WhitelistEntryRecord,
    ViolationRecord,
    TempBanRecord,
    JailRecord,
    InviteSnapshotRecord,
    InviteEventRecord,
    InviteStatRecord,
)

__all__ = [
    "DatabaseManager",
    "get_db",
    "_safe_json_loads",
    "GuildConfigRecord",
    "ModuleConfigRecord",
    "WhitelistEntryRecord",
    "ViolationRecord",
    "TempBanRecord",
    "JailRecord",
    "InviteSnapshotRecord",
    "InviteEventRecord",
    "InviteStatRecord",
]
