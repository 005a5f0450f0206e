"""
Bastion - Action Log
====================

Posts structured protection/invite/membership events to a guild's log
channel.

DESIGN:
    Channel resolution order:
    1. Explicit preferred channel (commands)
    2. The module's log_channel_id
    3. The guild-general log_channel_id
    No channel configured means nothing is sent. log_action never raises;
    a missing channel or a failed send is only written to the bot log.
"""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, List, Optional, Sequence, Tuple

import discord

from bastion.core.logger import logger
from bastion.core.config import EmbedColors, NY_TZ
from bastion.core.constants import EMBED_DESCRIPTION_LIMIT, EMBED_FIELD_VALUE_LIMIT
from bastion.core.database import get_db
from bastion.utils.http_errors import log_http_error

if TYPE_CHECKING:
    from bastion.bot import BastionBot
    from bastion.services.protection.constants import ModuleType


class LogLevel(Enum):
    """Severity of a logged action, with its icon and embed colour."""

    INFO = ("ℹ️", EmbedColors.BLUE)
    WARN = ("⚠️", EmbedColors.YELLOW)
    ERROR = ("❌", EmbedColors.CRIMSON)
    AUDIT = ("📝", EmbedColors.GRAY)

    @property
    def icon(self) -> str:
        return self.value[0]

    @property
    def color(self) -> int:
        return self.value[1]


class ActionLogService:
    """
    Guild-facing action log.

    Attributes:
        bot: Main bot instance.
        db: Database manager.
    """

    def __init__(self, bot: "BastionBot") -> None:
        self.bot = bot
        self.db = get_db()

    def resolve_channel_id(
        self,
        guild_id: int,
        module: Optional["ModuleType"] = None,
        preferred_channel_id: Optional[int] = None,
    ) -> Optional[int]:
        """Pick the target log channel ID, None if nothing is configured."""
        if preferred_channel_id:
            return preferred_channel_id

        if module is not None:
            module_config = self.db.get_module_config(guild_id, module.value)
            if module_config and module_config.get("log_channel_id"):
                return module_config["log_channel_id"]

        guild_config = self.db.get_guild_config(guild_id)
        if guild_config and guild_config.get("log_channel_id"):
            return guild_config["log_channel_id"]
        return None

    @staticmethod
    def build_embed(
        level: LogLevel,
        title: str,
        description: str,
        fields: Sequence[Tuple[str, str]],
    ) -> discord.Embed:
        embed = discord.Embed(
            title=f"{level.icon} {title}",
            description=description[:EMBED_DESCRIPTION_LIMIT],
            color=level.color,
            timestamp=datetime.now(NY_TZ),
        )
        for name, value in fields:
            embed.add_field(name=name, value=(value or "-")[:EMBED_FIELD_VALUE_LIMIT], inline=False)
        return embed

    async def log_action(
        self,
        guild_id: int,
        module: Optional["ModuleType"],
        level: LogLevel,
        title: str,
        description: str,
        fields: Optional[List[Tuple[str, str]]] = None,
        preferred_channel_id: Optional[int] = None,
    ) -> bool:
        """
        Send an action log embed.

        Returns:
            True if a message was posted.
        """
        try:
            channel_id = self.resolve_channel_id(guild_id, module, preferred_channel_id)
            if channel_id is None:
                return False

            channel = self.bot.get_channel(channel_id)
            if channel is None:
                try:
                    channel = await self.bot.fetch_channel(channel_id)
                except discord.HTTPException:
                    logger.warning("Action Log Channel Not Found", [
                        ("Guild ID", str(guild_id)),
                        ("Channel ID", str(channel_id)),
                    ])
                    return False

            embed = self.build_embed(level, title, description, fields or [])
            await channel.send(embed=embed, allowed_mentions=discord.AllowedMentions.none())
            return True

        except discord.Forbidden:
            logger.warning("Action Log Failed (Forbidden)", [
                ("Guild ID", str(guild_id)),
                ("Title", title),
                ("Error", "Missing permissions"),
            ])
        except discord.HTTPException as e:
            log_http_error(e, "Action Log", [
                ("Guild ID", str(guild_id)),
                ("Title", title),
            ])
        except Exception as e:
            logger.error("Action Log Failed", [
                ("Guild ID", str(guild_id)),
                ("Title", title),
                ("Error", str(e)[:100]),
                ("Type", type(e).__name__),
            ])
        return False


__all__ = ["ActionLogService", "LogLevel"]
