"""
Bastion - Invite Tracking Package
=================================

Invite snapshot diffing, join/leave attribution and inviter statistics.
"""

from .service import InviteTracker
from .tracking import JoinAttribution, find_used_invite, format_join_type, is_fake_leave

__all__ = [
    "InviteTracker",
    "JoinAttribution",
    "find_used_invite",
    "format_join_type",
    "is_fake_leave",
]
