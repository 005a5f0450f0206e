"""
Bastion - Command Helpers
=========================

Choices and embed builders shared by the slash command Cogs.
"""

from typing import List, Optional, Sequence, Tuple

import discord
from discord import app_commands

from bastion.core.config import EmbedColors
from bastion.core.constants import EMBED_FIELD_VALUE_LIMIT
from bastion.services.protection.constants import (
    ModuleType,
    PunishmentType,
    WhitelistLevel,
)
from bastion.services.protection.settings import ModuleConfig


# =============================================================================
# Choices
# =============================================================================

MODULE_CHOICES = [
    app_commands.Choice(name=module.label, value=module.value)
    for module in ModuleType
]

LEVEL_CHOICES = [
    app_commands.Choice(name=level.label, value=level.value_name)
    for level in sorted(WhitelistLevel, reverse=True)
]

PUNISHMENT_CHOICES = [
    app_commands.Choice(name=punishment.label, value=punishment.value)
    for punishment in PunishmentType
]


# =============================================================================
# Embeds
# =============================================================================

def build_embed(
    title: str,
    description: Optional[str] = None,
    color: int = EmbedColors.INFO,
    fields: Sequence[Tuple[str, str]] = (),
    inline: bool = True,
) -> discord.Embed:
    embed = discord.Embed(title=title, description=description, color=color)
    for name, value in fields:
        embed.add_field(name=name, value=(value or "-")[:EMBED_FIELD_VALUE_LIMIT], inline=inline)
    return embed


def config_fields(config: ModuleConfig) -> List[Tuple[str, str]]:
    """Embed fields summarising one module config."""
    return [
        ("Enabled", "Yes" if config.enabled else "No"),
        ("Punishment", config.punishment.label),
        ("Threshold", str(config.effective_threshold)),
        ("Decay Window", f"{config.decay_window_minutes}m"),
        ("Revert", "Yes" if config.revert else "No"),
        ("Log Channel", f"<#{config.log_channel_id}>" if config.log_channel_id else "Guild default"),
        ("Punish When", ", ".join(sorted(config.settings.punish_when)) or "All actions"),
    ]


async def send_error(interaction: discord.Interaction, message: str) -> None:
    """Reply (or follow up) with an ephemeral error embed."""
    embed = build_embed("Error", message, EmbedColors.CRIMSON)
    if interaction.response.is_done():
        await interaction.followup.send(embed=embed, ephemeral=True)
    else:
        await interaction.response.send_message(embed=embed, ephemeral=True)


__all__ = [
    "MODULE_CHOICES",
    "LEVEL_CHOICES",
    "PUNISHMENT_CHOICES",
    "build_embed",
    "config_fields",
    "send_error",
]
