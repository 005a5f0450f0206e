"""
Bastion - Protection Modules Package
====================================

One implementation per protected action family, plus the registry the
dispatcher iterates.
"""

from typing import TYPE_CHECKING, List

from .base import ActionDescription, ProtectedAction, ProtectionModule, RevertOutcome
from .channels import ChannelPermissionProtection, ChannelProtection
from .members import BotAddingProtection, MemberPermissionProtection
from .moderation import ModerationProtection
from .roles import RolePermissionProtection, RoleProtection

if TYPE_CHECKING:
    from bastion.bot import BastionBot


MODULE_CLASSES = (
    ChannelProtection,
    ChannelPermissionProtection,
    RoleProtection,
    RolePermissionProtection,
    MemberPermissionProtection,
    BotAddingProtection,
    ModerationProtection,
)


def build_registry(bot: "BastionBot") -> List[ProtectionModule]:
    """Instantiate every protection module."""
    return [module_class(bot) for module_class in MODULE_CLASSES]


__all__ = [
    "ActionDescription",
    "ProtectedAction",
    "ProtectionModule",
    "RevertOutcome",
    "ChannelProtection",
    "ChannelPermissionProtection",
    "RoleProtection",
    "RolePermissionProtection",
    "MemberPermissionProtection",
    "BotAddingProtection",
    "ModerationProtection",
    "MODULE_CLASSES",
    "build_registry",
]
