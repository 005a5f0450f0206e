"""
Bastion - Invite Tracking Tests
===============================

Attribution by uses diff, vanity handling and leave accounting.
"""

import time
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from bastion.services.invites import InviteTracker
from bastion.services.invites.tracking import (
    find_used_invite,
    format_join_type,
    is_fake_leave,
    snapshot_from_invite,
)
from bastion.services.protection import ModuleType

from conftest import GUILD_ID, http_error


INVITER_ID = 42


def make_invite(code, uses, inviter_id=INVITER_ID, max_age=0):
    invite = MagicMock()
    invite.code = code
    invite.uses = uses
    invite.max_uses = 0
    invite.max_age = max_age
    invite.temporary = False
    invite.created_at = datetime(2024, 1, 1, tzinfo=timezone.utc)
    if inviter_id is None:
        invite.inviter = None
    else:
        invite.inviter = MagicMock()
        invite.inviter.id = inviter_id
    return invite


@pytest.fixture
def tracker(mock_bot):
    return InviteTracker(mock_bot)


def enable(db, **settings):
    db.upsert_module_config(GUILD_ID, ModuleType.INVITE_TRACKING.value, enabled=True, settings=settings)


# =============================================================================
# Pure Helpers
# =============================================================================

class TestTrackingHelpers:
    """Tests for the attribution helpers."""

    def test_snapshot_expiry(self):
        snapshot = snapshot_from_invite(make_invite("ABC123", 3, max_age=3600))
        created = datetime(2024, 1, 1, tzinfo=timezone.utc).timestamp()
        assert snapshot["expires_at"] == created + 3600
        assert snapshot["inviter_id"] == INVITER_ID
        assert snapshot["invite_type"] == "normal"

    def test_snapshot_never_expires(self):
        assert snapshot_from_invite(make_invite("ABC123", 3))["expires_at"] is None

    def test_find_used_invite(self):
        live = [make_invite("AAA", 1, inviter_id=1), make_invite("BBB", 6, inviter_id=2)]
        snapshots = [{"code": "AAA", "uses": 1}, {"code": "BBB", "uses": 5}]
        attribution = find_used_invite(live, snapshots)
        assert attribution.inviter_id == 2
        assert attribution.invite_code == "BBB"

    def test_new_invites_are_skipped(self):
        live = [make_invite("NEW", 1)]
        assert find_used_invite(live, []) is None

    def test_fake_leave_truncates_hours(self):
        assert is_fake_leave(0, 24 * 3600 - 1, 24) is True
        assert is_fake_leave(0, 24 * 3600, 24) is False
        assert is_fake_leave(None, 100, 24) is False

    def test_join_type_labels(self):
        assert format_join_type("vanity") == "Vanity URL"
        assert format_join_type(None) == "Unknown"


# =============================================================================
# Joins
# =============================================================================

class TestInviteJoins:
    """Tests for join attribution."""

    @pytest.mark.asyncio
    async def test_disabled_module_ignores_join(self, tracker, mock_member):
        assert await tracker.handle_join(mock_member) is None

    @pytest.mark.asyncio
    async def test_join_attributed_to_inviter(self, tracker, test_db, mock_guild, mock_member):
        enable(test_db)
        test_db.upsert_invite_snapshots(GUILD_ID, [{"code": "ABC123", "inviter_id": INVITER_ID, "uses": 4}])
        mock_guild.invites.return_value = [make_invite("ABC123", 5)]

        attribution = await tracker.handle_join(mock_member)

        assert attribution.inviter_id == INVITER_ID
        assert attribution.invite_code == "ABC123"
        stats = test_db.get_invite_stats(GUILD_ID, INVITER_ID)
        assert (stats["total_invites"], stats["current_members"]) == (1, 1)
        assert test_db.get_invite_snapshots(GUILD_ID)[0]["uses"] == 5
        assert test_db.get_latest_join_event(GUILD_ID, mock_member.id)["join_type"] == "normal"

    @pytest.mark.asyncio
    async def test_vanity_join_dropped_by_default(self, tracker, test_db, mock_guild, mock_member):
        enable(test_db)
        mock_guild.vanity_url_code = "bastion"
        test_db.upsert_invite_snapshots(GUILD_ID, [{"code": "ABC123", "uses": 4}])
        mock_guild.invites.return_value = [make_invite("ABC123", 4), make_invite("NEW999", 0)]

        assert await tracker.handle_join(mock_member) is None
        assert test_db.get_latest_join_event(GUILD_ID, mock_member.id) is None
        # Snapshots are still refreshed
        codes = {snap["code"] for snap in test_db.get_invite_snapshots(GUILD_ID)}
        assert codes == {"ABC123", "NEW999"}

    @pytest.mark.asyncio
    async def test_vanity_join_tracked_when_enabled(self, tracker, test_db, mock_guild, mock_member):
        enable(test_db, track_vanity=True)
        mock_guild.vanity_url_code = "bastion"

        attribution = await tracker.handle_join(mock_member)

        assert attribution.join_type == "vanity"
        assert attribution.inviter_id is None
        assert test_db.get_latest_join_event(GUILD_ID, mock_member.id)["join_type"] == "vanity"

    @pytest.mark.asyncio
    async def test_unknown_join_without_vanity(self, tracker, test_db, mock_member):
        enable(test_db)
        attribution = await tracker.handle_join(mock_member)
        assert attribution.join_type == "unknown"

    @pytest.mark.asyncio
    async def test_bots_ignored(self, tracker, test_db, mock_member):
        enable(test_db)
        mock_member.bot = True
        assert await tracker.handle_join(mock_member) is None

    @pytest.mark.asyncio
    async def test_invite_fetch_failure(self, tracker, test_db, mock_guild, mock_member):
        enable(test_db)
        mock_guild.invites.side_effect = http_error(status=500)
        assert await tracker.handle_join(mock_member) is None


# =============================================================================
# Leaves
# =============================================================================

class TestInviteLeaves:
    """Tests for leave accounting."""

    @pytest.mark.asyncio
    async def test_quick_leave_is_fake(self, tracker, test_db, mock_guild, mock_member):
        enable(test_db)
        test_db.upsert_invite_snapshots(GUILD_ID, [{"code": "ABC123", "inviter_id": INVITER_ID, "uses": 4}])
        mock_guild.invites.return_value = [make_invite("ABC123", 5)]
        await tracker.handle_join(mock_member)

        assert await tracker.handle_leave(mock_guild, mock_member) is True

        stats = test_db.get_invite_stats(GUILD_ID, INVITER_ID)
        assert stats["current_members"] == 0
        assert stats["fake_members"] == 1
        assert stats["left_members"] == 0

    @pytest.mark.asyncio
    async def test_late_leave_counts_as_left(self, tracker, test_db, mock_guild, mock_member):
        enable(test_db, fake_threshold_hours=24)
        test_db.add_invite_event(
            GUILD_ID, "member_join", "ABC123", INVITER_ID, mock_member.id, "normal",
            now=time.time() - 48 * 3600,
        )
        test_db.record_invite_join(GUILD_ID, INVITER_ID)

        assert await tracker.handle_leave(mock_guild, mock_member) is False

        stats = test_db.get_invite_stats(GUILD_ID, INVITER_ID)
        assert stats["left_members"] == 1
        assert stats["fake_members"] == 0

    @pytest.mark.asyncio
    async def test_untracked_leave_creates_no_stats(self, tracker, test_db, mock_guild, mock_member):
        enable(test_db)
        assert await tracker.handle_leave(mock_guild, mock_member) is False
        assert test_db.get_top_inviters(GUILD_ID) == []


# =============================================================================
# Invite Events & Stats
# =============================================================================

class TestInviteEvents:
    """Tests for invite create/delete handling and stats lookups."""

    @pytest.mark.asyncio
    async def test_invite_delete_drops_snapshot(self, tracker, test_db, mock_guild):
        enable(test_db)
        test_db.upsert_invite_snapshots(GUILD_ID, [{"code": "ABC123", "uses": 1}])
        invite = make_invite("ABC123", 1)
        invite.guild = mock_guild

        await tracker.handle_invite_delete(invite)

        assert test_db.get_invite_snapshots(GUILD_ID) == []

    def test_user_stats_default_to_zero(self, tracker):
        stats = tracker.get_user_stats(GUILD_ID, INVITER_ID)
        assert stats["total_invites"] == 0
        assert stats["fake_members"] == 0

    @pytest.mark.asyncio
    async def test_sync_all_only_enabled_guilds(self, tracker, mock_bot, test_db, mock_guild):
        enable(test_db)
        test_db.upsert_module_config(1, ModuleType.INVITE_TRACKING.value, enabled=False)
        mock_bot.get_guild.side_effect = {GUILD_ID: mock_guild}.get
        mock_guild.invites.return_value = [make_invite("ABC123", 2)]

        assert await tracker.sync_all() == 1
        assert test_db.get_invite_snapshots(GUILD_ID)[0]["uses"] == 2
