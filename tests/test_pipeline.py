"""
Bastion - Protection Pipeline Tests
===================================

End-to-end runs of audit-log entries through the pipeline, the module
claim rules, the dispatcher and the revert executor.
"""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import discord
import pytest

from bastion.services.protection import (
    ModuleType,
    ProtectionDispatcher,
    ProtectionPipeline,
    RevertExecutor,
    RevertOutcome,
    TrustResolver,
    ViolationLedger,
)
from bastion.services.protection.modules import (
    BotAddingProtection,
    ChannelPermissionProtection,
    ChannelProtection,
    MemberPermissionProtection,
    ModerationProtection,
    RolePermissionProtection,
    RoleProtection,
)
from bastion.services.protection.modules.moderation import warning_message
from bastion.services.protection.revert import collect_before_values

from conftest import ACTOR_ID, GUILD_ID, OWNER_ID, audit_entry, forbidden, make_role

A = discord.AuditLogAction
CHANNEL_ID = 444555666
LOG_CHANNEL_ID = 555000555


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def executor(mock_bot):
    return RevertExecutor(mock_bot, mock_bot.object_cache, poll_attempts=2, poll_delay=0)


@pytest.fixture
def pipeline(mock_bot, executor):
    jail_service = MagicMock()
    jail_service.jail = AsyncMock(return_value=True)
    return ProtectionPipeline(
        mock_bot,
        TrustResolver(mock_bot),
        ViolationLedger(mock_bot, jail_service),
        executor,
        mock_bot.action_log,
    )


def enable(db, module, **fields):
    fields.setdefault("enabled", True)
    fields.setdefault("log_channel_id", LOG_CHANNEL_ID)
    return db.upsert_module_config(GUILD_ID, module.value, **fields)


# =============================================================================
# Pipeline Decisions
# =============================================================================

class TestPipelineDecisions:
    """Tests for the ignore / whitelist / punish flow."""

    @pytest.mark.asyncio
    async def test_disabled_module_ignored(self, pipeline, mock_bot, mock_guild):
        entry = audit_entry(A.channel_create, mock_guild, target=SimpleNamespace(id=CHANNEL_ID))
        assert await pipeline.handle(ChannelProtection(mock_bot), entry) is None

    @pytest.mark.asyncio
    async def test_bot_own_actions_ignored(self, pipeline, mock_bot, test_db, mock_guild):
        enable(test_db, ModuleType.CHANNEL, punishment="ban")
        entry = audit_entry(
            A.channel_create, mock_guild, user_id=mock_bot.user.id, target=SimpleNamespace(id=CHANNEL_ID),
        )
        assert await pipeline.handle(ChannelProtection(mock_bot), entry) is None

    @pytest.mark.asyncio
    async def test_owner_is_whitelisted(self, pipeline, mock_bot, test_db, mock_guild, mock_channel):
        enable(test_db, ModuleType.CHANNEL, punishment="ban")
        entry = audit_entry(
            A.channel_create, mock_guild, user_id=OWNER_ID,
            target=SimpleNamespace(id=CHANNEL_ID), after=SimpleNamespace(name="new-channel"),
        )

        outcome = await pipeline.handle(ChannelProtection(mock_bot), entry)

        assert outcome.is_whitelisted
        assert outcome.status == "✅ Whitelisted (Head)\nℹ️ Punishment skipped (Ban)"
        assert outcome.title == "Channel Created (Whitelisted)"
        assert outcome.violation is None
        mock_guild.ban.assert_not_awaited()
        mock_channel.send.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_sub_action_outside_punish_when_is_logged_only(self, pipeline, mock_bot, test_db, mock_guild):
        enable(test_db, ModuleType.CHANNEL, punishment="ban", settings={"punish_when": ["delete"]})
        entry = audit_entry(A.channel_create, mock_guild, target=SimpleNamespace(id=CHANNEL_ID))

        outcome = await pipeline.handle(ChannelProtection(mock_bot), entry)

        assert outcome.status == "ℹ️ Protection not enabled for this action"
        assert outcome.title == "Channel Created (Logged)"
        assert test_db.get_violation(GUILD_ID, ACTOR_ID, ModuleType.CHANNEL.value) is None

    @pytest.mark.asyncio
    async def test_overwrites_escalate_to_ban(self, pipeline, mock_bot, test_db, mock_guild, mock_channel):
        enable(test_db, ModuleType.CHANNEL_PERMISSION, punishment="ban", punishment_threshold=3)
        mock_guild.get_channel.return_value = mock_channel
        module = ChannelPermissionProtection(mock_bot)

        statuses = []
        for _ in range(3):
            entry = audit_entry(
                A.overwrite_create, mock_guild,
                target=SimpleNamespace(id=CHANNEL_ID), extra=make_role(77),
            )
            outcome = await pipeline.handle(module, entry)
            statuses.append(outcome.status)

        assert statuses == [
            "🚨 Blocked & Violation Recorded (1/3)\n✅ Successfully Reverted",
            "🚨 Blocked & Violation Recorded (2/3)\n✅ Successfully Reverted",
            "🚨 Blocked & Punished (Ban)\n✅ Successfully Reverted",
        ]
        assert mock_channel.set_permissions.await_count == 3
        mock_guild.ban.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_role_delete_cache_miss_fails_revert(self, pipeline, mock_bot, test_db, mock_guild):
        enable(test_db, ModuleType.ROLE)
        entry = audit_entry(
            A.role_delete, mock_guild,
            target=SimpleNamespace(id=321), before=SimpleNamespace(name="Moderators"),
        )

        outcome = await pipeline.handle(RoleProtection(mock_bot), entry)

        assert outcome.status == "🚨 Blocked (No Punishment Configured)\n❌ Revert Failed"
        assert outcome.revert is RevertOutcome.FAILED
        mock_guild.create_role.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_role_delete_restored_from_cache(self, pipeline, mock_bot, test_db, mock_guild):
        enable(test_db, ModuleType.ROLE)
        cached = make_role(321, permissions=8)
        mock_bot.object_cache.store(GUILD_ID, 321, cached)
        entry = audit_entry(A.role_delete, mock_guild, target=SimpleNamespace(id=321))

        outcome = await pipeline.handle(RoleProtection(mock_bot), entry)

        assert outcome.revert is RevertOutcome.REVERTED
        assert mock_guild.create_role.await_args.kwargs["name"] == cached.name
        assert len(mock_bot.object_cache) == 0

    @pytest.mark.asyncio
    async def test_revert_disabled(self, pipeline, mock_bot, test_db, mock_guild):
        enable(test_db, ModuleType.BOT_ADDING, punishment="kick", revert=False)
        entry = audit_entry(A.bot_add, mock_guild, target=SimpleNamespace(id=42))

        outcome = await pipeline.handle(BotAddingProtection(mock_bot), entry)

        assert outcome.status == "🚨 Blocked & Punished (Kick)"
        assert outcome.revert is None
        # Only the actor was kicked, not the bot
        mock_guild.kick.assert_awaited_once()
        assert mock_guild.kick.await_args.args[0].id == ACTOR_ID


# =============================================================================
# Moderation
# =============================================================================

class TestModerationProtection:
    """Tests for moderation warnings and punishment-gated reverts."""

    @pytest.mark.asyncio
    async def test_warns_then_punishes_and_unbans(self, pipeline, mock_bot, test_db, mock_guild):
        enable(test_db, ModuleType.MODERATION, punishment="kick", punishment_threshold=3)
        actor = MagicMock()
        actor.send = AsyncMock()
        mock_bot.get_user.return_value = actor
        module = ModerationProtection(mock_bot)

        def ban_entry():
            return audit_entry(A.ban, mock_guild, target=SimpleNamespace(id=42))

        first = await pipeline.handle(module, ban_entry())
        assert first.status == "🚨 Blocked & Violation Recorded (1/3)"
        assert first.revert is None
        assert "1 more will be tolerated" in actor.send.await_args.args[0]

        second = await pipeline.handle(module, ban_entry())
        assert "moderation limit" in actor.send.await_args.args[0]
        assert second.revert is None

        third = await pipeline.handle(module, ban_entry())
        assert third.status == "🚨 Blocked & Punished (Kick)\n✅ Successfully Reverted"
        mock_guild.unban.assert_awaited_once()
        assert mock_guild.unban.await_args.args[0].id == 42

    @pytest.mark.asyncio
    async def test_kick_cannot_be_reverted(self, pipeline, mock_bot, test_db, mock_guild):
        enable(test_db, ModuleType.MODERATION, punishment="ban", punishment_threshold=1)
        entry = audit_entry(A.kick, mock_guild, target=SimpleNamespace(id=42))

        outcome = await pipeline.handle(ModerationProtection(mock_bot), entry)

        assert outcome.revert is RevertOutcome.NOT_REVERTIBLE
        assert outcome.status.endswith("ℹ️ Action cannot be reverted")

    def test_member_update_claimed_only_for_timeouts(self, mock_bot, mock_guild):
        module = ModerationProtection(mock_bot)
        timeout = audit_entry(A.member_update, mock_guild, after=SimpleNamespace(timed_out_until=None))
        nickname = audit_entry(A.member_update, mock_guild, after=SimpleNamespace(nick="x"))
        assert module.matches(timeout) is True
        assert module.matches(nickname) is False

    def test_warning_messages(self):
        assert "2 more" in warning_message(2, "Guild", "Ban")
        assert "**Ban**" in warning_message(0, "Guild", "Ban")
        assert warning_message(3, "Guild", "Ban") is None


# =============================================================================
# Module Claim Rules
# =============================================================================

class TestModuleClaims:
    """Tests for which module claims which entry."""

    def test_role_update_split(self, mock_bot, mock_guild):
        role = RoleProtection(mock_bot)
        perms = RolePermissionProtection(mock_bot)
        permissions_only = audit_entry(
            A.role_update, mock_guild,
            before=SimpleNamespace(permissions=discord.Permissions.none()),
            after=SimpleNamespace(permissions=discord.Permissions(administrator=True)),
        )
        name_only = audit_entry(
            A.role_update, mock_guild,
            before=SimpleNamespace(name="a"), after=SimpleNamespace(name="b"),
        )
        both = audit_entry(
            A.role_update, mock_guild,
            before=SimpleNamespace(name="a", permissions=discord.Permissions.none()),
            after=SimpleNamespace(name="b", permissions=discord.Permissions(administrator=True)),
        )

        assert (role.matches(permissions_only), perms.matches(permissions_only)) == (False, True)
        assert (role.matches(name_only), perms.matches(name_only)) == (True, False)
        assert (role.matches(both), perms.matches(both)) == (True, True)

    @pytest.mark.asyncio
    async def test_role_permission_diff(self, mock_bot, mock_guild):
        from bastion.services.protection import ModuleSettings
        entry = audit_entry(
            A.role_update, mock_guild, target=SimpleNamespace(id=5),
            before=SimpleNamespace(permissions=discord.Permissions(kick_members=True)),
            after=SimpleNamespace(permissions=discord.Permissions(ban_members=True)),
        )
        action = await RolePermissionProtection(mock_bot).evaluate(entry, ModuleSettings())
        assert action.extra["added"].ban_members is True
        assert action.extra["removed"].kick_members is True

    @pytest.mark.asyncio
    async def test_private_channel_owner_skipped(self, mock_bot, mock_guild, mock_channel):
        from bastion.services.protection import ModuleSettings
        actor = MagicMock(spec=discord.Member)
        actor.id = ACTOR_ID
        mock_channel.overwrites = {actor: discord.PermissionOverwrite(manage_channels=True)}
        mock_guild.get_channel.return_value = mock_channel
        entry = audit_entry(A.channel_update, mock_guild, target=SimpleNamespace(id=CHANNEL_ID))
        module = ChannelProtection(mock_bot)

        assert await module.evaluate(entry, ModuleSettings(ignore_private_channels=True)) is None
        assert await module.evaluate(entry, ModuleSettings()) is not None


class TestMemberPermissionProtection:
    """Tests for dangerous role grants."""

    @pytest.fixture
    def setup_roles(self, mock_guild):
        roles = {
            50: make_role(50, permissions=discord.Permissions(administrator=True).value),
            60: make_role(60, permissions=discord.Permissions(send_messages=True).value),
        }
        mock_guild.get_role.side_effect = roles.get
        return roles

    @pytest.mark.asyncio
    async def test_dangerous_grant_claimed_and_reverted(
        self, pipeline, mock_bot, test_db, mock_guild, setup_roles,
    ):
        enable(test_db, ModuleType.MEMBER_PERMISSION)
        target = MagicMock()
        target.id = 42
        target.roles = [mock_guild.default_role, setup_roles[50]]
        target.remove_roles = AsyncMock()
        mock_guild.get_member.side_effect = {42: target}.get
        entry = audit_entry(
            A.member_role_update, mock_guild, target=SimpleNamespace(id=42),
            after=SimpleNamespace(roles=[setup_roles[50]]),
        )

        outcome = await pipeline.handle(MemberPermissionProtection(mock_bot), entry)

        assert outcome.action.extra["dangerous"].administrator is True
        assert outcome.revert is RevertOutcome.REVERTED
        removed = target.remove_roles.await_args.args
        assert [role.id for role in removed] == [50]

    @pytest.mark.asyncio
    async def test_harmless_grant_ignored(self, mock_bot, mock_guild, setup_roles):
        from bastion.services.protection import ModuleSettings
        target = MagicMock()
        target.roles = [mock_guild.default_role]
        mock_guild.get_member.return_value = target
        entry = audit_entry(
            A.member_role_update, mock_guild, target=SimpleNamespace(id=42),
            after=SimpleNamespace(roles=[setup_roles[60]]),
        )
        assert await MemberPermissionProtection(mock_bot).evaluate(entry, ModuleSettings()) is None


# =============================================================================
# Dispatcher
# =============================================================================

class TestDispatcher:
    """Tests for fan-out and failure isolation."""

    @pytest.mark.asyncio
    async def test_only_matching_modules_run(self, mock_bot, mock_guild):
        pipeline = MagicMock()
        pipeline.handle = AsyncMock(return_value=None)
        dispatcher = ProtectionDispatcher(pipeline, [ChannelProtection(mock_bot), RoleProtection(mock_bot)])

        tasks = dispatcher.dispatch(audit_entry(A.channel_delete, mock_guild))
        await asyncio.gather(*tasks)

        assert len(tasks) == 1
        assert dispatcher.pending == 0

    @pytest.mark.asyncio
    async def test_handler_failure_contained(self, mock_bot, mock_guild):
        pipeline = MagicMock()
        pipeline.handle = AsyncMock(side_effect=RuntimeError("boom"))
        dispatcher = ProtectionDispatcher(pipeline, [BotAddingProtection(mock_bot)])

        tasks = dispatcher.dispatch(audit_entry(A.bot_add, mock_guild))
        results = await asyncio.gather(*tasks)

        assert results == [None]


# =============================================================================
# Revert Executor
# =============================================================================

class TestRevertExecutor:
    """Tests for individual undo operations."""

    def test_collect_before_values(self):
        before = SimpleNamespace(name="old", color=discord.Colour.red(), position=3)
        values = collect_before_values(before, ("name", "colour", "hoist"))
        assert values == {"name": "old", "colour": discord.Colour.red()}

    @pytest.mark.asyncio
    async def test_channel_fields_reverted(self, executor, mock_guild, mock_channel):
        mock_guild.get_channel.return_value = mock_channel
        before = SimpleNamespace(name="rules", topic="Read me", position=2)

        assert await executor.revert_channel_fields(mock_guild, CHANNEL_ID, before, "revert") is True
        kwargs = mock_channel.edit.await_args.kwargs
        assert kwargs["name"] == "rules"
        assert kwargs["topic"] == "Read me"
        assert "position" not in kwargs

    @pytest.mark.asyncio
    async def test_channel_fields_nothing_to_revert(self, executor, mock_guild):
        before = SimpleNamespace(position=2)
        assert await executor.revert_channel_fields(mock_guild, CHANNEL_ID, before, "revert") is None

    @pytest.mark.asyncio
    async def test_partial_overwrite_keeps_live_side(self, executor, mock_guild, mock_channel):
        mock_guild.get_channel.return_value = mock_channel
        mock_channel.overwrites_for = MagicMock(
            return_value=discord.PermissionOverwrite(view_channel=False),
        )
        role = make_role(77)

        ok = await executor.restore_overwrite(
            mock_guild, CHANNEL_ID, role, 77,
            discord.Permissions(send_messages=True), None, "revert",
        )

        assert ok is True
        overwrite = mock_channel.set_permissions.await_args.kwargs["overwrite"]
        assert overwrite.send_messages is True
        assert overwrite.view_channel is False

    @pytest.mark.asyncio
    async def test_channel_restored_from_cache(self, executor, mock_bot, mock_guild):
        restored = MagicMock(id=1)
        restored.edit = AsyncMock()
        cached = MagicMock()
        cached.name = "general"
        cached.position = 4
        cached.clone = AsyncMock(return_value=restored)
        mock_bot.object_cache.store(GUILD_ID, CHANNEL_ID, cached)

        assert await executor.restore_channel(mock_guild, CHANNEL_ID, "revert") is True
        assert restored.edit.await_args.kwargs["position"] == 4

    @pytest.mark.asyncio
    async def test_platform_error_becomes_false(self, executor, mock_guild):
        mock_guild.unban.side_effect = forbidden()
        assert await executor.unban(mock_guild, 42, "revert") is False

    @pytest.mark.asyncio
    async def test_remove_added_roles_skips_roles_not_held(self, executor, mock_guild, mock_member):
        mock_member.roles = [mock_guild.default_role]
        mock_guild.get_member.return_value = mock_member
        assert await executor.remove_added_roles(mock_guild, ACTOR_ID, [50], "revert") is True
        mock_member.remove_roles.assert_not_awaited()
