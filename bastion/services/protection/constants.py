"""
Bastion - Protection Constants
==============================

Closed sets shared by the protection pipeline: module types, punishment
types, whitelist levels, sub-actions and the dangerous permission mask.
"""

from enum import Enum, IntEnum
from typing import Optional

import discord


# =============================================================================
# Module Types
# =============================================================================

class ModuleType(str, Enum):
    """Module families. Values are persisted in module_configs.module_type."""

    CHANNEL = "channel_protection"
    CHANNEL_PERMISSION = "channel_permission_protection"
    ROLE = "role_protection"
    ROLE_PERMISSION = "role_permission_protection"
    MEMBER_PERMISSION = "member_permission_protection"
    BOT_ADDING = "bot_adding_protection"
    MODERATION = "moderation_protection"
    INVITE_TRACKING = "invite_tracking"
    LOGGING = "logging"
    STICKY_ROLES = "sticky_roles"

    @property
    def label(self) -> str:
        return MODULE_LABELS[self]


MODULE_LABELS = {
    ModuleType.CHANNEL: "Channel Protection",
    ModuleType.CHANNEL_PERMISSION: "Channel Permission Protection",
    ModuleType.ROLE: "Role Protection",
    ModuleType.ROLE_PERMISSION: "Role Permission Protection",
    ModuleType.MEMBER_PERMISSION: "Member Permission Protection",
    ModuleType.BOT_ADDING: "Bot Adding Protection",
    ModuleType.MODERATION: "Moderation Protection",
    ModuleType.INVITE_TRACKING: "Invite Tracking",
    ModuleType.LOGGING: "Logging",
    ModuleType.STICKY_ROLES: "Sticky Roles",
}

PROTECTION_MODULES = (
    ModuleType.CHANNEL,
    ModuleType.CHANNEL_PERMISSION,
    ModuleType.ROLE,
    ModuleType.ROLE_PERMISSION,
    ModuleType.MEMBER_PERMISSION,
    ModuleType.BOT_ADDING,
    ModuleType.MODERATION,
)
"""Modules that run through the audit-log pipeline."""


# =============================================================================
# Punishment Types
# =============================================================================

class PunishmentType(str, Enum):
    """Punishment ladder endpoints. Values are persisted."""

    NONE = "none"
    STRIP_ROLES = "strip_roles"
    BAN = "ban"
    KICK = "kick"
    JAIL = "jail"

    @classmethod
    def parse(cls, value: Optional[str]) -> "PunishmentType":
        """Parse a stored value; unknown values disable punishment."""
        if value == "unperm":
            return cls.STRIP_ROLES
        try:
            return cls(value)
        except ValueError:
            return cls.NONE

    @property
    def label(self) -> str:
        return self.value.replace("_", " ").title()


# =============================================================================
# Whitelist Levels
# =============================================================================

class WhitelistLevel(IntEnum):
    """Trust tiers. Ordering is meaningful: merging takes the maximum."""

    INVULNERABLE = 1
    ADMIN = 2
    HEAD = 3

    @property
    def value_name(self) -> str:
        """Lowercase name as persisted in whitelist tables."""
        return self.name.lower()

    @property
    def label(self) -> str:
        return self.name.title()

    @classmethod
    def from_name(cls, name: str) -> Optional["WhitelistLevel"]:
        """Parse a stored level name, None if unknown."""
        try:
            return cls[name.upper()]
        except (KeyError, AttributeError):
            return None


# =============================================================================
# Sub-Actions
# =============================================================================

class SubAction(str, Enum):
    """Sub-actions a module can claim; used by the punish_when filter."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    BAN = "ban"
    KICK = "kick"
    TIMEOUT = "timeout"
    UNBAN = "unban"
    GRANT = "grant"
    ADD = "add"


# =============================================================================
# Dangerous Permissions
# =============================================================================

DANGEROUS_PERMISSION_NAMES = (
    "administrator",
    "manage_guild",
    "manage_roles",
    "manage_channels",
    "kick_members",
    "ban_members",
    "manage_webhooks",
    "manage_expressions",
    "manage_threads",
    "manage_messages",
    "manage_events",
    "moderate_members",
)

DANGEROUS_PERMISSIONS = discord.Permissions(**{name: True for name in DANGEROUS_PERMISSION_NAMES})
"""Bitmask a member role grant must intersect to be considered dangerous."""


__all__ = [
    "ModuleType",
    "MODULE_LABELS",
    "PROTECTION_MODULES",
    "PunishmentType",
    "WhitelistLevel",
    "SubAction",
    "DANGEROUS_PERMISSION_NAMES",
    "DANGEROUS_PERMISSIONS",
]
