"""
Bastion - Invite Tracking Service
=================================

Attributes member joins to invites and keeps per-inviter statistics.

DESIGN:
    Attribution diffs the live invite list against the stored snapshots:
    the invite whose uses went up is the one consumed. After every join
    the snapshots are re-synced so the next join compares against fresh
    counts, including when a vanity join is dropped.

    Stats arithmetic:
        join        total += 1, current += 1
        leave       current = max(0, current - 1), left += 1
        fake leave  current = max(0, current - 1), fake += 1
    Leaves only touch existing rows.
"""

import time
from typing import TYPE_CHECKING, List, Optional

import discord

from bastion.core.logger import logger
from bastion.core.constants import TOP_INVITERS_LIMIT
from bastion.core.database import InviteStatRecord, get_db
from bastion.services.action_log import LogLevel
from bastion.services.protection.constants import ModuleType
from bastion.services.protection.settings import ModuleConfig, load_enabled_config
from bastion.utils.http_errors import log_http_error

from .tracking import (
    JOIN_TYPE_VANITY,
    JoinAttribution,
    find_used_invite,
    format_join_type,
    is_fake_leave,
    snapshots_from_invites,
    special_join_type,
)

if TYPE_CHECKING:
    from bastion.bot import BastionBot


EVENT_CREATE = "create"
EVENT_DELETE = "delete"
EVENT_MEMBER_JOIN = "member_join"
EVENT_MEMBER_LEAVE = "member_leave"


class InviteTracker:
    """
    Invite attribution and statistics.

    Attributes:
        bot: Main bot instance.
        db: Database manager.
    """

    def __init__(self, bot: "BastionBot") -> None:
        self.bot = bot
        self.db = get_db()

    def _get_config(self, guild_id: int) -> Optional[ModuleConfig]:
        return load_enabled_config(self.db, guild_id, ModuleType.INVITE_TRACKING)

    # =========================================================================
    # Snapshot Sync
    # =========================================================================

    async def fetch_invites(self, guild: discord.Guild) -> Optional[List[discord.Invite]]:
        """Live invites, None when the platform call fails."""
        try:
            return await guild.invites()
        except discord.Forbidden:
            logger.warning("Invite Fetch Failed (Forbidden)", [
                ("Guild", f"{guild.name} ({guild.id})"),
                ("Error", "Missing Manage Server permission"),
            ])
        except discord.HTTPException as e:
            log_http_error(e, "Invite Fetch", [
                ("Guild", f"{guild.name} ({guild.id})"),
            ])
        return None

    def store_snapshots(self, guild: discord.Guild, invites: List[discord.Invite]) -> None:
        self.db.upsert_invite_snapshots(guild.id, snapshots_from_invites(invites, guild.vanity_url_code))

    async def sync_guild_invites(self, guild: discord.Guild) -> bool:
        """Fetch and store a guild's invites. Returns success."""
        invites = await self.fetch_invites(guild)
        if invites is None:
            return False
        self.store_snapshots(guild, invites)
        logger.debug("Invites Synced", [
            ("Guild", f"{guild.name} ({guild.id})"),
            ("Invites", str(len(invites))),
        ])
        return True

    async def sync_all(self) -> int:
        """Sync every guild with invite tracking enabled. Returns the number synced."""
        synced = 0
        for guild_id in self.db.get_guilds_with_module_enabled(ModuleType.INVITE_TRACKING.value):
            guild = self.bot.get_guild(guild_id)
            if guild is None:
                continue
            if await self.sync_guild_invites(guild):
                synced += 1

        logger.tree("Invite Snapshots Synced", [
            ("Guilds", str(synced)),
        ], emoji="📨")
        return synced

    # =========================================================================
    # Invite Events
    # =========================================================================

    async def handle_invite_create(self, invite: discord.Invite) -> None:
        guild = invite.guild
        if not isinstance(guild, discord.Guild) or self._get_config(guild.id) is None:
            return

        await self.sync_guild_invites(guild)
        self.db.add_invite_event(
            guild.id,
            EVENT_CREATE,
            invite_code=invite.code,
            inviter_id=invite.inviter.id if invite.inviter else None,
        )
        logger.tree("Invite Created", [
            ("Guild", f"{guild.name} ({guild.id})"),
            ("Code", invite.code),
            ("Inviter", str(invite.inviter) if invite.inviter else "Unknown"),
        ], emoji="📨")

    async def handle_invite_delete(self, invite: discord.Invite) -> None:
        guild = invite.guild
        if guild is None or self._get_config(guild.id) is None:
            return

        self.db.delete_invite_snapshot(guild.id, invite.code)
        self.db.add_invite_event(guild.id, EVENT_DELETE, invite_code=invite.code)
        logger.tree("Invite Deleted", [
            ("Guild", f"{getattr(guild, 'name', 'Unknown')} ({guild.id})"),
            ("Code", invite.code),
        ], emoji="🗑️")

    # =========================================================================
    # Member Events
    # =========================================================================

    async def handle_join(self, member: discord.Member) -> Optional[JoinAttribution]:
        """
        Attribute a join and update the inviter's stats.

        Returns:
            The attribution, or None when the join was not recorded
            (module off, ignored bot, dropped vanity join, fetch failure).
        """
        guild = member.guild
        config = self._get_config(guild.id)
        if config is None:
            return None
        if config.settings.ignore_bots and member.bot:
            return None

        live_invites = await self.fetch_invites(guild)
        if live_invites is None:
            return None

        snapshots = self.db.get_invite_snapshots(guild.id)
        vanity_code = guild.vanity_url_code
        attribution = find_used_invite(live_invites, snapshots, vanity_code) or special_join_type(vanity_code)

        try:
            if attribution.join_type == JOIN_TYPE_VANITY and not config.settings.track_vanity:
                logger.debug("Vanity Join Skipped", [
                    ("Guild", f"{guild.name} ({guild.id})"),
                    ("User", f"{member} ({member.id})"),
                ])
                return None

            self.db.add_invite_event(
                guild.id,
                EVENT_MEMBER_JOIN,
                invite_code=attribution.invite_code,
                inviter_id=attribution.inviter_id,
                target_user_id=member.id,
                join_type=attribution.join_type,
            )
            if attribution.inviter_id is not None:
                self.db.record_invite_join(guild.id, attribution.inviter_id)
        finally:
            self.store_snapshots(guild, live_invites)

        logger.tree("Member Join Attributed", [
            ("Guild", f"{guild.name} ({guild.id})"),
            ("User", f"{member} ({member.id})"),
            ("Inviter ID", str(attribution.inviter_id) if attribution.inviter_id else "None"),
            ("Join Type", format_join_type(attribution.join_type)),
            ("Code", attribution.invite_code or "None"),
        ], emoji="📥")

        inviter = f"<@{attribution.inviter_id}>" if attribution.inviter_id else "Unknown"
        await self.bot.action_log.log_action(
            guild.id,
            ModuleType.INVITE_TRACKING,
            LogLevel.INFO,
            "Member Joined",
            f"<@{member.id}> joined the server.",
            [
                ("Member", f"<@{member.id}> ({member.id})"),
                ("Invited By", inviter),
                ("Join Type", format_join_type(attribution.join_type)),
                ("Invite Code", attribution.invite_code or "None"),
            ],
        )
        return attribution

    async def handle_leave(self, guild: discord.Guild, user: discord.abc.User) -> Optional[bool]:
        """
        Record a leave against the member's inviter.

        Returns:
            Whether the leave was fake, None when it was not recorded.
        """
        config = self._get_config(guild.id)
        if config is None:
            return None
        if config.settings.ignore_bots and user.bot:
            return None

        now = time.time()
        join_event = self.db.get_latest_join_event(guild.id, user.id)
        inviter_id = join_event.get("inviter_id") if join_event else None
        is_fake = is_fake_leave(
            join_event.get("created_at") if join_event else None,
            now,
            config.settings.fake_threshold_hours,
        )

        self.db.add_invite_event(
            guild.id,
            EVENT_MEMBER_LEAVE,
            inviter_id=inviter_id,
            target_user_id=user.id,
            metadata={"is_fake": is_fake},
            now=now,
        )

        updated = False
        if inviter_id is not None:
            updated = self.db.record_invite_leave(guild.id, inviter_id, is_fake)

        logger.tree("Member Leave Recorded", [
            ("Guild", f"{guild.name} ({guild.id})"),
            ("User", f"{user} ({user.id})"),
            ("Inviter ID", str(inviter_id) if inviter_id else "None"),
            ("Fake", "Yes" if is_fake else "No"),
            ("Stats Updated", "Yes" if updated else "No"),
        ], emoji="📤")
        return is_fake

    # =========================================================================
    # Statistics
    # =========================================================================

    def get_user_stats(self, guild_id: int, inviter_id: int) -> InviteStatRecord:
        """Stats for one inviter, zeros when never tracked."""
        stats = self.db.get_invite_stats(guild_id, inviter_id)
        if stats is None:
            return {
                "guild_id": guild_id,
                "inviter_id": inviter_id,
                "total_invites": 0,
                "current_members": 0,
                "left_members": 0,
                "fake_members": 0,
            }
        return stats

    def get_top_inviters(self, guild_id: int, limit: int = TOP_INVITERS_LIMIT) -> List[InviteStatRecord]:
        return self.db.get_top_inviters(guild_id, limit)


__all__ = [
    "InviteTracker",
    "EVENT_CREATE",
    "EVENT_DELETE",
    "EVENT_MEMBER_JOIN",
    "EVENT_MEMBER_LEAVE",
]
