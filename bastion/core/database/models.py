"""
Bastion - Database Type Definitions
===================================

TypedDict definitions for database records.
"""

from typing import List, Optional, TypedDict


class GuildConfigRecord(TypedDict, total=False):
    """Guild-general settings."""
    guild_id: int
    log_channel_id: Optional[int]
    jail_role_id: Optional[int]
    updated_at: float


class ModuleConfigRecord(TypedDict, total=False):
    """Per (guild, module) configuration row."""
    guild_id: int
    module_type: str
    enabled: int
    punishment: str
    punishment_threshold: int
    decay_window_minutes: int
    revert: int
    log_channel_id: Optional[int]
    settings: str
    updated_at: float


class WhitelistEntryRecord(TypedDict, total=False):
    """Whitelist entry for a user or a role."""
    id: int
    guild_id: int
    subject_id: int
    level: str
    module_type: Optional[str]
    created_at: float


class ViolationRecord(TypedDict, total=False):
    """Escalation counter for one (guild, user, module)."""
    guild_id: int
    user_id: int
    module_type: str
    count: int
    last_violation_at: float


class TempBanRecord(TypedDict, total=False):
    """Scheduled unban."""
    guild_id: int
    user_id: int
    reason: Optional[str]
    moderator_id: Optional[int]
    created_at: float
    expires_at: float


class JailRecord(TypedDict, total=False):
    """Active jail with the roles to restore."""
    guild_id: int
    user_id: int
    old_roles: List[int]
    reason: Optional[str]
    moderator_id: Optional[int]
    created_at: float
    expires_at: Optional[float]


class InviteSnapshotRecord(TypedDict, total=False):
    """Cached mirror of a live invite."""
    guild_id: int
    code: str
    inviter_id: Optional[int]
    uses: int
    max_uses: int
    max_age: int
    temporary: int
    created_at: Optional[float]
    expires_at: Optional[float]
    invite_type: str
    last_synced_at: float


class InviteEventRecord(TypedDict, total=False):
    """Append-only invite log row."""
    id: int
    guild_id: int
    event_type: str
    invite_code: Optional[str]
    inviter_id: Optional[int]
    target_user_id: Optional[int]
    join_type: Optional[str]
    metadata: Optional[str]
    created_at: float


class InviteStatRecord(TypedDict, total=False):
    """Running invite counters for one inviter."""
    guild_id: int
    inviter_id: int
    total_invites: int
    current_members: int
    left_members: int
    fake_members: int
    updated_at: float
