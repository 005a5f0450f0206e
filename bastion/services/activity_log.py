"""
Bastion - Message & Voice Log
=============================

Message edit/delete and voice activity logging for the logging module.

DESIGN:
    Both listeners use raw gateway events where possible so a message
    that was never cached still produces a log entry, just without its
    content. Each kind has its own switch (log_messages, log_voice) and
    optional channel override.
"""

from typing import TYPE_CHECKING, List, Optional, Tuple

import discord

from bastion.core.logger import logger
from bastion.core.database import get_db
from bastion.services.action_log import LogLevel
from bastion.services.protection.constants import ModuleType
from bastion.services.protection.settings import ModuleConfig, load_enabled_config

if TYPE_CHECKING:
    from bastion.bot import BastionBot


VOICE_FLAGS = (
    ("self_mute", "Mute"),
    ("self_deaf", "Deaf"),
    ("self_video", "Video"),
    ("self_stream", "Stream"),
)
"""(VoiceState attribute, label) pairs reported on in-channel state changes."""


def _content(text: Optional[str]) -> str:
    return text if text else "*No text content*"


def voice_state_changes(before: discord.VoiceState, after: discord.VoiceState) -> List[str]:
    """Readable list of self mute/deaf/video/stream flips."""
    changes = []
    for attribute, label in VOICE_FLAGS:
        old, new = bool(getattr(before, attribute, False)), bool(getattr(after, attribute, False))
        if old != new:
            changes.append(f"{label}: {'On' if new else 'Off'}")
    return changes


class ActivityLogService:
    """
    Message and voice logs.

    Attributes:
        bot: Main bot instance.
        db: Database manager.
    """

    def __init__(self, bot: "BastionBot") -> None:
        self.bot = bot
        self.db = get_db()

    def _get_config(self, guild_id: int) -> Optional[ModuleConfig]:
        return load_enabled_config(self.db, guild_id, ModuleType.LOGGING)

    def _is_self(self, user_id: int) -> bool:
        return self.bot.user is not None and user_id == self.bot.user.id

    # =========================================================================
    # Messages
    # =========================================================================

    async def handle_message_delete(self, payload: discord.RawMessageDeleteEvent) -> bool:
        """Log a deleted message, with author and content when it was cached."""
        if payload.guild_id is None:
            return False
        config = self._get_config(payload.guild_id)
        if config is None or not config.settings.log_messages:
            return False

        message = payload.cached_message
        if message is not None and self._is_self(message.author.id):
            return False

        fields: List[Tuple[str, str]] = [("Channel", f"<#{payload.channel_id}>")]
        if message is not None:
            description = f"A message by <@{message.author.id}> was deleted in <#{payload.channel_id}>."
            fields.append(("Author", f"{message.author} ({message.author.id})"))
            fields.append(("Content", _content(message.content)))
        else:
            description = f"An uncached message was deleted in <#{payload.channel_id}>."
            fields.append(("Message ID", str(payload.message_id)))

        return await self.bot.action_log.log_action(
            payload.guild_id,
            ModuleType.LOGGING,
            LogLevel.INFO,
            "Message Deleted",
            description,
            fields,
            preferred_channel_id=config.settings.message_log_channel_id,
        )

    async def handle_message_edit(self, payload: discord.RawMessageUpdateEvent) -> bool:
        """
        Log an edited message.

        Updates without a content key (embed unfurls, pins) and edits that
        leave the cached content unchanged are ignored.
        """
        if payload.guild_id is None:
            return False
        new_content = payload.data.get("content")
        if new_content is None:
            return False

        config = self._get_config(payload.guild_id)
        if config is None or not config.settings.log_messages:
            return False

        cached = payload.cached_message
        old_content = cached.content if cached is not None else ""
        if old_content and old_content == new_content:
            return False

        author = payload.data.get("author") or {}
        author_id = cached.author.id if cached is not None else int(author.get("id", 0))
        if author.get("bot") or (cached is not None and cached.author.bot) or self._is_self(author_id):
            return False

        logged = await self.bot.action_log.log_action(
            payload.guild_id,
            ModuleType.LOGGING,
            LogLevel.INFO,
            "Message Edited",
            f"<@{author_id}> edited a message in <#{payload.channel_id}>.",
            [
                ("Before", _content(old_content) if cached is not None else "*Not cached*"),
                ("After", _content(new_content)),
                ("Message ID", str(payload.message_id)),
            ],
            preferred_channel_id=config.settings.message_log_channel_id,
        )
        logger.debug("Message Edit Logged", [
            ("Guild ID", str(payload.guild_id)),
            ("Author ID", str(author_id)),
            ("Cached", "Yes" if cached is not None else "No"),
        ])
        return logged

    # =========================================================================
    # Voice
    # =========================================================================

    async def handle_voice_state(
        self,
        member: discord.Member,
        before: discord.VoiceState,
        after: discord.VoiceState,
    ) -> bool:
        """Log a voice join, leave, move, or self state change."""
        guild = member.guild
        config = self._get_config(guild.id)
        if config is None or not config.settings.log_voice:
            return False

        old_channel, new_channel = before.channel, after.channel
        if old_channel is None and new_channel is None:
            return False

        if old_channel is None:
            title, description = "Voice Joined", f"<@{member.id}> joined {new_channel.mention}."
        elif new_channel is None:
            title, description = "Voice Left", f"<@{member.id}> left {old_channel.mention}."
        elif old_channel.id != new_channel.id:
            title = "Voice Moved"
            description = f"<@{member.id}> moved from {old_channel.mention} to {new_channel.mention}."
        else:
            changes = voice_state_changes(before, after)
            if not changes:
                return False
            title = "Voice State Changed"
            description = f"<@{member.id}> in {new_channel.mention}: {', '.join(changes)}."

        return await self.bot.action_log.log_action(
            guild.id,
            ModuleType.LOGGING,
            LogLevel.INFO,
            title,
            description,
            [("Member", f"{member} ({member.id})")],
            preferred_channel_id=config.settings.voice_log_channel_id,
        )


__all__ = ["ActivityLogService", "voice_state_changes"]
