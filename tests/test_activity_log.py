"""
Bastion - Message & Voice Log Tests
===================================

Message edit/delete logging, voice activity logging and the events cog
that feeds them.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from bastion.events.activity import ActivityEvents
from bastion.services.activity_log import ActivityLogService, voice_state_changes
from bastion.services.protection import ModuleType

from conftest import BOT_ID, GUILD_ID


CHANNEL_ID = 700000001


@pytest.fixture
def service(mock_bot):
    return ActivityLogService(mock_bot)


def enable_logging(db, channel_id, **settings):
    db.upsert_module_config(
        GUILD_ID,
        ModuleType.LOGGING.value,
        enabled=True,
        settings={
            "message_log_channel_id": channel_id,
            "voice_log_channel_id": channel_id,
            **settings,
        },
    )


def author(user_id=555, bot=False):
    return SimpleNamespace(id=user_id, bot=bot)


def delete_payload(cached_message=None, guild_id=GUILD_ID):
    return SimpleNamespace(
        guild_id=guild_id,
        channel_id=CHANNEL_ID,
        message_id=1234,
        cached_message=cached_message,
    )


def edit_payload(data, cached_message=None):
    return SimpleNamespace(
        guild_id=GUILD_ID,
        channel_id=CHANNEL_ID,
        message_id=1234,
        data=data,
        cached_message=cached_message,
    )


def voice(channel=None, **flags):
    return SimpleNamespace(channel=channel, **flags)


def voice_channel(channel_id):
    return SimpleNamespace(id=channel_id, mention=f"<#{channel_id}>")


def logged_embed(channel):
    return channel.send.call_args.kwargs["embed"]


def field_values(embed):
    return {field.name: field.value for field in embed.fields}


class TestMessageDelete:
    """Tests for deleted message logs."""

    @pytest.mark.asyncio
    async def test_disabled_without_log_messages(self, service, test_db, mock_channel):
        enable_logging(test_db, mock_channel.id)
        assert await service.handle_message_delete(delete_payload()) is False
        mock_channel.send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_disabled_module_logs_nothing(self, service, test_db, mock_channel):
        test_db.upsert_module_config(
            GUILD_ID, ModuleType.LOGGING.value, enabled=False, settings={"log_messages": True},
        )
        assert await service.handle_message_delete(delete_payload()) is False

    @pytest.mark.asyncio
    async def test_cached_message_content_logged(self, service, test_db, mock_channel):
        enable_logging(test_db, mock_channel.id, log_messages=True)
        message = SimpleNamespace(author=author(), content="hello there")

        assert await service.handle_message_delete(delete_payload(message)) is True

        embed = logged_embed(mock_channel)
        assert "Message Deleted" in embed.title
        assert field_values(embed)["Content"] == "hello there"

    @pytest.mark.asyncio
    async def test_uncached_message_logs_id(self, service, test_db, mock_channel):
        enable_logging(test_db, mock_channel.id, log_messages=True)

        assert await service.handle_message_delete(delete_payload()) is True

        values = field_values(logged_embed(mock_channel))
        assert values["Message ID"] == "1234"
        assert "Content" not in values

    @pytest.mark.asyncio
    async def test_own_messages_skipped(self, service, test_db, mock_channel):
        enable_logging(test_db, mock_channel.id, log_messages=True)
        message = SimpleNamespace(author=author(BOT_ID, bot=True), content="log entry")

        assert await service.handle_message_delete(delete_payload(message)) is False

    @pytest.mark.asyncio
    async def test_direct_messages_ignored(self, service):
        assert await service.handle_message_delete(delete_payload(guild_id=None)) is False


class TestMessageEdit:
    """Tests for edited message logs."""

    @pytest.mark.asyncio
    async def test_update_without_content_ignored(self, service, test_db, mock_channel):
        enable_logging(test_db, mock_channel.id, log_messages=True)
        payload = edit_payload({"embeds": []}, SimpleNamespace(author=author(), content="old"))

        assert await service.handle_message_edit(payload) is False
        mock_channel.send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unchanged_content_ignored(self, service, test_db, mock_channel):
        enable_logging(test_db, mock_channel.id, log_messages=True)
        payload = edit_payload({"content": "same"}, SimpleNamespace(author=author(), content="same"))

        assert await service.handle_message_edit(payload) is False

    @pytest.mark.asyncio
    async def test_before_and_after_logged(self, service, test_db, mock_channel):
        enable_logging(test_db, mock_channel.id, log_messages=True)
        payload = edit_payload({"content": "new text"}, SimpleNamespace(author=author(), content="old text"))

        assert await service.handle_message_edit(payload) is True

        embed = logged_embed(mock_channel)
        assert "Message Edited" in embed.title
        values = field_values(embed)
        assert values["Before"] == "old text"
        assert values["After"] == "new text"

    @pytest.mark.asyncio
    async def test_uncached_edit_uses_payload_author(self, service, test_db, mock_channel):
        enable_logging(test_db, mock_channel.id, log_messages=True)
        payload = edit_payload({"content": "new text", "author": {"id": "555"}})

        assert await service.handle_message_edit(payload) is True

        embed = logged_embed(mock_channel)
        assert "<@555>" in embed.description
        assert field_values(embed)["Before"] == "*Not cached*"

    @pytest.mark.asyncio
    async def test_bot_edits_skipped(self, service, test_db, mock_channel):
        enable_logging(test_db, mock_channel.id, log_messages=True)
        payload = edit_payload({"content": "status", "author": {"id": "42", "bot": True}})

        assert await service.handle_message_edit(payload) is False


class TestVoiceLog:
    """Tests for voice activity logs."""

    @pytest.mark.asyncio
    async def test_disabled_without_log_voice(self, service, test_db, mock_member, mock_channel):
        enable_logging(test_db, mock_channel.id)
        assert await service.handle_voice_state(mock_member, voice(), voice(voice_channel(1))) is False

    @pytest.mark.asyncio
    async def test_join(self, service, test_db, mock_member, mock_channel):
        enable_logging(test_db, mock_channel.id, log_voice=True)

        assert await service.handle_voice_state(mock_member, voice(), voice(voice_channel(1))) is True

        assert "Voice Joined" in logged_embed(mock_channel).title

    @pytest.mark.asyncio
    async def test_leave(self, service, test_db, mock_member, mock_channel):
        enable_logging(test_db, mock_channel.id, log_voice=True)

        assert await service.handle_voice_state(mock_member, voice(voice_channel(1)), voice()) is True

        assert "Voice Left" in logged_embed(mock_channel).title

    @pytest.mark.asyncio
    async def test_move(self, service, test_db, mock_member, mock_channel):
        enable_logging(test_db, mock_channel.id, log_voice=True)

        before, after = voice(voice_channel(1)), voice(voice_channel(2))
        assert await service.handle_voice_state(mock_member, before, after) is True

        embed = logged_embed(mock_channel)
        assert "Voice Moved" in embed.title
        assert "<#1>" in embed.description and "<#2>" in embed.description

    @pytest.mark.asyncio
    async def test_state_change(self, service, test_db, mock_member, mock_channel):
        enable_logging(test_db, mock_channel.id, log_voice=True)
        room = voice_channel(1)

        before, after = voice(room, self_mute=False), voice(room, self_mute=True)
        assert await service.handle_voice_state(mock_member, before, after) is True

        embed = logged_embed(mock_channel)
        assert "Voice State Changed" in embed.title
        assert "Mute: On" in embed.description

    @pytest.mark.asyncio
    async def test_server_side_change_ignored(self, service, test_db, mock_member, mock_channel):
        enable_logging(test_db, mock_channel.id, log_voice=True)
        room = voice_channel(1)

        assert await service.handle_voice_state(mock_member, voice(room), voice(room)) is False
        mock_channel.send.assert_not_awaited()

    def test_voice_state_changes(self):
        before = voice(self_mute=True, self_deaf=False, self_video=False, self_stream=False)
        after = voice(self_mute=False, self_deaf=True, self_video=False, self_stream=False)
        assert voice_state_changes(before, after) == ["Mute: Off", "Deaf: On"]


class TestActivityEvents:
    """Tests for routing gateway events to the activity log."""

    @pytest.fixture
    def bot(self):
        bot = MagicMock()
        bot.activity_log.handle_message_delete = AsyncMock(return_value=True)
        bot.activity_log.handle_message_edit = AsyncMock(return_value=True)
        bot.activity_log.handle_voice_state = AsyncMock(return_value=True)
        return bot

    @pytest.mark.asyncio
    async def test_events_forwarded(self, bot, mock_member):
        cog = ActivityEvents(bot)
        deleted, edited = delete_payload(), edit_payload({"content": "x"})
        before, after = voice(), voice(voice_channel(1))

        await cog.on_raw_message_delete(deleted)
        await cog.on_raw_message_edit(edited)
        await cog.on_voice_state_update(mock_member, before, after)

        bot.activity_log.handle_message_delete.assert_awaited_once_with(deleted)
        bot.activity_log.handle_message_edit.assert_awaited_once_with(edited)
        bot.activity_log.handle_voice_state.assert_awaited_once_with(mock_member, before, after)
