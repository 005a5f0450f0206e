"""
Bastion - Database Tests
========================

Tests for the database layer to ensure data integrity.
"""

import json
import time
from concurrent.futures import ThreadPoolExecutor

import pytest


GUILD = 987654321
USER = 123456789


class TestModuleConfig:
    """Tests for module and guild configuration rows."""

    def test_missing_module_config(self, test_db):
        assert test_db.get_module_config(GUILD, "channel_protection") is None

    def test_upsert_creates_row_with_defaults(self, test_db):
        row = test_db.upsert_module_config(GUILD, "channel_protection")
        assert row["enabled"] == 0
        assert row["punishment"] == "none"
        assert row["punishment_threshold"] == 0
        assert row["decay_window_minutes"] == 5
        assert row["revert"] == 1
        assert row["settings"] == "{}"

    def test_upsert_updates_only_given_fields(self, test_db):
        test_db.upsert_module_config(GUILD, "role_protection", enabled=True, punishment="ban")
        row = test_db.upsert_module_config(GUILD, "role_protection", punishment_threshold=3)
        assert row["enabled"] == 1
        assert row["punishment"] == "ban"
        assert row["punishment_threshold"] == 3

    def test_settings_dict_stored_as_json(self, test_db):
        row = test_db.upsert_module_config(GUILD, "invite_tracking", settings={"track_vanity": True})
        assert json.loads(row["settings"]) == {"track_vanity": True}

    def test_unknown_field_rejected(self, test_db):
        with pytest.raises(ValueError):
            test_db.upsert_module_config(GUILD, "logging", bogus=1)

    def test_guilds_with_module_enabled(self, test_db):
        test_db.upsert_module_config(1, "invite_tracking", enabled=True)
        test_db.upsert_module_config(2, "invite_tracking", enabled=False)
        test_db.upsert_module_config(3, "logging", enabled=True)
        assert test_db.get_guilds_with_module_enabled("invite_tracking") == [1]

    def test_get_module_configs_for_guild(self, test_db):
        test_db.upsert_module_config(GUILD, "role_protection")
        test_db.upsert_module_config(GUILD, "channel_protection")
        modules = [row["module_type"] for row in test_db.get_module_configs(GUILD)]
        assert modules == ["channel_protection", "role_protection"]

    def test_guild_log_channel_and_jail_role(self, test_db):
        test_db.set_guild_log_channel(GUILD, 555)
        test_db.set_jail_role(GUILD, 777)
        config = test_db.get_guild_config(GUILD)
        assert config["log_channel_id"] == 555
        assert config["jail_role_id"] == 777


class TestWhitelist:
    """Tests for whitelist entries."""

    def test_global_entry_applies_to_every_module(self, test_db):
        test_db.add_whitelist_entry(GUILD, "user", USER, "admin")
        assert test_db.get_user_whitelist_levels(GUILD, USER, "role_protection") == ["admin"]
        assert test_db.get_user_whitelist_levels(GUILD, USER, "channel_protection") == ["admin"]

    def test_scoped_entry_only_applies_to_its_module(self, test_db):
        test_db.add_whitelist_entry(GUILD, "user", USER, "head", "role_protection")
        assert test_db.get_user_whitelist_levels(GUILD, USER, "role_protection") == ["head"]
        assert test_db.get_user_whitelist_levels(GUILD, USER, "channel_protection") == []

    def test_same_scope_replaces_level(self, test_db):
        test_db.add_whitelist_entry(GUILD, "user", USER, "invulnerable")
        test_db.add_whitelist_entry(GUILD, "user", USER, "head")
        entries = test_db.get_whitelist_entries(GUILD, "user")
        assert len(entries) == 1
        assert entries[0]["level"] == "head"
        assert entries[0]["subject_id"] == USER

    def test_role_levels_match_any_role(self, test_db):
        test_db.add_whitelist_entry(GUILD, "role", 10, "admin")
        test_db.add_whitelist_entry(GUILD, "role", 20, "invulnerable", "bot_adding_protection")
        levels = test_db.get_role_whitelist_levels(GUILD, [10, 20, 30], "bot_adding_protection")
        assert sorted(levels) == ["admin", "invulnerable"]
        assert test_db.get_role_whitelist_levels(GUILD, [], "bot_adding_protection") == []

    def test_remove_entry(self, test_db):
        test_db.add_whitelist_entry(GUILD, "role", 10, "admin")
        assert test_db.remove_whitelist_entry(GUILD, "role", 10) is True
        assert test_db.remove_whitelist_entry(GUILD, "role", 10) is False

    def test_unknown_subject_kind(self, test_db):
        with pytest.raises(ValueError):
            test_db.add_whitelist_entry(GUILD, "channel", 1, "admin")


class TestViolations:
    """Tests for the time-decayed violation counter."""

    def test_counts_up_to_threshold_then_resets(self, test_db):
        now = 1_000_000.0
        assert test_db.record_violation(GUILD, USER, "role_protection", 3, 5, now) == (1, False)
        assert test_db.record_violation(GUILD, USER, "role_protection", 3, 5, now + 10) == (2, False)
        assert test_db.record_violation(GUILD, USER, "role_protection", 3, 5, now + 20) == (3, True)
        assert test_db.get_violation(GUILD, USER, "role_protection")["count"] == 0

    def test_threshold_one_triggers_immediately(self, test_db):
        assert test_db.record_violation(GUILD, USER, "bot_adding_protection", 1, 5, 100.0) == (1, True)

    def test_decay_restarts_count(self, test_db):
        now = 1_000_000.0
        test_db.record_violation(GUILD, USER, "channel_protection", 3, 5, now)
        test_db.record_violation(GUILD, USER, "channel_protection", 3, 5, now + 60)
        # Six whole minutes after the last violation
        count, triggered = test_db.record_violation(GUILD, USER, "channel_protection", 3, 5, now + 60 + 360)
        assert (count, triggered) == (1, False)

    def test_window_boundary_still_counts(self, test_db):
        now = 1_000_000.0
        test_db.record_violation(GUILD, USER, "channel_protection", 3, 5, now)
        # Five minutes and 59 seconds truncates to 5, not above the window
        count, _ = test_db.record_violation(GUILD, USER, "channel_protection", 3, 5, now + 359)
        assert count == 2

    def test_counters_are_per_module(self, test_db):
        test_db.record_violation(GUILD, USER, "role_protection", 3, 5, 100.0)
        count, _ = test_db.record_violation(GUILD, USER, "channel_protection", 3, 5, 100.0)
        assert count == 1

    def test_reset_violations(self, test_db):
        test_db.record_violation(GUILD, USER, "role_protection", 5, 5, 100.0)
        test_db.record_violation(GUILD, USER, "channel_protection", 5, 5, 100.0)
        assert test_db.reset_violations(GUILD, USER) == 2
        assert test_db.get_violation(GUILD, USER, "role_protection")["count"] == 0

    def test_concurrent_writers_trigger_once(self, test_db):
        threshold = 8

        def offend(_):
            return test_db.record_violation(GUILD, USER, "role_protection", threshold, 5)

        with ThreadPoolExecutor(max_workers=threshold) as pool:
            results = list(pool.map(offend, range(threshold)))

        assert sorted(count for count, _ in results) == list(range(1, threshold + 1))
        assert [triggered for _, triggered in results].count(True) == 1
        assert test_db.get_violation(GUILD, USER, "role_protection")["count"] == 0


class TestTempBans:
    """Tests for temp ban records."""

    def test_expired_only(self, test_db):
        now = time.time()
        test_db.add_temp_ban(GUILD, 1, now - 10, reason="spam")
        test_db.add_temp_ban(GUILD, 2, now + 3600)
        expired = test_db.get_expired_temp_bans(now)
        assert [record["user_id"] for record in expired] == [1]
        assert expired[0]["reason"] == "spam"

    def test_delete_reports_winner(self, test_db):
        test_db.add_temp_ban(GUILD, 1, time.time())
        assert test_db.delete_temp_ban(GUILD, 1) is True
        assert test_db.delete_temp_ban(GUILD, 1) is False


class TestJails:
    """Tests for jail records."""

    def test_roles_round_trip(self, test_db):
        test_db.add_jail(GUILD, USER, [10, 20], reason="raid")
        record = test_db.get_jail(GUILD, USER)
        assert record["old_roles"] == [10, 20]
        assert record["expires_at"] is None

    def test_indefinite_jails_never_expire(self, test_db):
        now = time.time()
        test_db.add_jail(GUILD, 1, [], expires_at=now - 5)
        test_db.add_jail(GUILD, 2, [])
        assert [record["user_id"] for record in test_db.get_expired_jails(now)] == [1]

    def test_delete_jail(self, test_db):
        test_db.add_jail(GUILD, USER, [])
        assert test_db.delete_jail(GUILD, USER) is True
        assert test_db.get_jail(GUILD, USER) is None


class TestInvites:
    """Tests for invite snapshots, events and stats."""

    def test_snapshot_update_keeps_original_fields(self, test_db):
        test_db.upsert_invite_snapshots(GUILD, [
            {"code": "ABC123", "inviter_id": 42, "uses": 4, "max_uses": 10},
        ], now=100.0)
        test_db.upsert_invite_snapshots(GUILD, [
            {"code": "ABC123", "inviter_id": 99, "uses": 5, "max_uses": 0},
        ], now=200.0)
        snapshot = test_db.get_invite_snapshots(GUILD)[0]
        assert snapshot["uses"] == 5
        assert snapshot["inviter_id"] == 42
        assert snapshot["max_uses"] == 10
        assert snapshot["last_synced_at"] == 200.0

    def test_delete_snapshot(self, test_db):
        test_db.upsert_invite_snapshots(GUILD, [{"code": "ABC123", "uses": 1}])
        assert test_db.delete_invite_snapshot(GUILD, "ABC123") is True
        assert test_db.get_invite_snapshots(GUILD) == []

    def test_latest_join_event(self, test_db):
        test_db.add_invite_event(GUILD, "member_join", "OLD", 1, USER, "normal", now=100.0)
        test_db.add_invite_event(GUILD, "member_join", "NEW", 2, USER, "normal", now=200.0)
        test_db.add_invite_event(GUILD, "member_leave", None, 2, USER, now=300.0)
        event = test_db.get_latest_join_event(GUILD, USER)
        assert event["invite_code"] == "NEW"
        assert event["inviter_id"] == 2

    def test_join_then_leave_arithmetic(self, test_db):
        test_db.record_invite_join(GUILD, 42)
        test_db.record_invite_join(GUILD, 42)
        test_db.record_invite_leave(GUILD, 42, is_fake=False)
        test_db.record_invite_leave(GUILD, 42, is_fake=True)
        stats = test_db.get_invite_stats(GUILD, 42)
        assert stats["total_invites"] == 2
        assert stats["current_members"] == 0
        assert stats["left_members"] == 1
        assert stats["fake_members"] == 1

    def test_current_members_floors_at_zero(self, test_db):
        test_db.record_invite_join(GUILD, 42)
        test_db.record_invite_leave(GUILD, 42, is_fake=False)
        test_db.record_invite_leave(GUILD, 42, is_fake=False)
        assert test_db.get_invite_stats(GUILD, 42)["current_members"] == 0

    def test_leave_never_creates_row(self, test_db):
        assert test_db.record_invite_leave(GUILD, 42, is_fake=False) is False
        assert test_db.get_invite_stats(GUILD, 42) is None

    def test_top_inviters_ordering(self, test_db):
        for _ in range(3):
            test_db.record_invite_join(GUILD, 1)
        test_db.record_invite_join(GUILD, 2)
        for _ in range(2):
            test_db.record_invite_join(GUILD, 3)
        top = test_db.get_top_inviters(GUILD, limit=2)
        assert [row["inviter_id"] for row in top] == [1, 3]


class TestLoggingGuilds:
    """Tests for logging guild retention and member role snapshots."""

    def test_store_and_get_member_roles(self, test_db):
        test_db.store_member_roles(GUILD, USER, [10, 20])
        assert test_db.get_member_roles(GUILD, USER) == [10, 20]
        assert test_db.get_member_roles(GUILD, 1) is None

    def test_stale_guild_cascades_member_roles(self, test_db):
        test_db.store_member_roles(GUILD, USER, [10])
        test_db.touch_logging_guild(GUILD, now=100.0)
        assert test_db.delete_stale_logging_guilds(cutoff=200.0) == 1
        assert test_db.get_member_roles(GUILD, USER) is None

    def test_recent_guild_kept(self, test_db):
        test_db.store_member_roles(GUILD, USER, [10])
        assert test_db.delete_stale_logging_guilds(cutoff=time.time() - 60) == 0
        assert test_db.get_member_roles(GUILD, USER) == [10]
