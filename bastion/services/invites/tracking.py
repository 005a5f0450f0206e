"""
Bastion - Invite Attribution Helpers
====================================

Pure functions behind invite attribution: snapshot conversion, the
uses diff and the fake-leave check.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

import discord

from bastion.core.constants import SECONDS_PER_HOUR
from bastion.core.database import InviteSnapshotRecord


JOIN_TYPE_NORMAL = "normal"
JOIN_TYPE_VANITY = "vanity"
JOIN_TYPE_UNKNOWN = "unknown"

JOIN_TYPE_LABELS = {
    "normal": "Regular Invite",
    "vanity": "Vanity URL",
    "widget": "Server Widget",
    "discovery": "Server Discovery",
    "unknown": "Unknown",
}


@dataclass(frozen=True)
class JoinAttribution:
    """Who brought a member in, and how."""

    inviter_id: Optional[int]
    join_type: str
    invite_code: Optional[str] = None


def format_join_type(join_type: Optional[str]) -> str:
    """Display label for a stored join type."""
    if not join_type:
        return JOIN_TYPE_LABELS[JOIN_TYPE_UNKNOWN]
    return JOIN_TYPE_LABELS.get(join_type, join_type)


def invite_type_for(invite: discord.Invite, vanity_code: Optional[str]) -> str:
    return JOIN_TYPE_VANITY if vanity_code and invite.code == vanity_code else JOIN_TYPE_NORMAL


def snapshot_from_invite(invite: discord.Invite, vanity_code: Optional[str] = None) -> Dict[str, Any]:
    """Convert a live invite into a snapshot row dict."""
    created_at = invite.created_at.timestamp() if invite.created_at else None
    max_age = invite.max_age or 0
    expires_at = created_at + max_age if created_at is not None and max_age > 0 else None
    return {
        "code": invite.code,
        "inviter_id": invite.inviter.id if invite.inviter else None,
        "uses": invite.uses or 0,
        "max_uses": invite.max_uses or 0,
        "max_age": max_age,
        "temporary": bool(invite.temporary),
        "created_at": created_at,
        "expires_at": expires_at,
        "invite_type": invite_type_for(invite, vanity_code),
    }


def find_used_invite(
    live_invites: Iterable[discord.Invite],
    snapshots: Iterable[InviteSnapshotRecord],
    vanity_code: Optional[str] = None,
) -> Optional[JoinAttribution]:
    """
    Find the invite whose use count went up since the last sync.

    First match wins. Invites without a snapshot are skipped: they were
    created after the last sync and have nothing to compare against.
    """
    previous_uses = {snap["code"]: snap.get("uses", 0) or 0 for snap in snapshots}

    for invite in live_invites:
        old_uses = previous_uses.get(invite.code)
        if old_uses is None:
            continue
        if (invite.uses or 0) > old_uses:
            return JoinAttribution(
                inviter_id=invite.inviter.id if invite.inviter else None,
                join_type=invite_type_for(invite, vanity_code),
                invite_code=invite.code,
            )
    return None


def special_join_type(vanity_code: Optional[str]) -> JoinAttribution:
    """Attribution when no tracked invite was used."""
    if vanity_code:
        return JoinAttribution(inviter_id=None, join_type=JOIN_TYPE_VANITY, invite_code=vanity_code)
    return JoinAttribution(inviter_id=None, join_type=JOIN_TYPE_UNKNOWN)


def is_fake_leave(joined_at: Optional[float], left_at: float, threshold_hours: int) -> bool:
    """A leave is fake when fewer than `threshold_hours` full hours passed since the join."""
    if joined_at is None:
        return False
    hours = int((left_at - joined_at) // SECONDS_PER_HOUR)
    return hours < threshold_hours


def snapshots_from_invites(
    invites: Iterable[discord.Invite],
    vanity_code: Optional[str] = None,
) -> List[Dict[str, Any]]:
    return [snapshot_from_invite(invite, vanity_code) for invite in invites]


__all__ = [
    "JOIN_TYPE_NORMAL",
    "JOIN_TYPE_VANITY",
    "JOIN_TYPE_UNKNOWN",
    "JoinAttribution",
    "find_used_invite",
    "format_join_type",
    "invite_type_for",
    "is_fake_leave",
    "snapshot_from_invite",
    "snapshots_from_invites",
    "special_join_type",
]
