"""
Bastion - Protection Command Cog
================================

/protection configure|punish-when|options|log-channel|jail-role|status|reset

DESIGN:
    Module rows are created lazily by the first write. Every option is
    optional so an admin can change one field without restating the rest.
"""

from dataclasses import replace
from typing import TYPE_CHECKING, Any, Dict, FrozenSet, Optional

import discord
from discord import app_commands
from discord.ext import commands

from bastion.core.logger import logger
from bastion.core.config import EmbedColors
from bastion.services.protection.constants import ModuleType, SubAction
from bastion.services.protection.settings import ModuleSettings, load_module_config

from .helpers import MODULE_CHOICES, PUNISHMENT_CHOICES, build_embed, config_fields, send_error

if TYPE_CHECKING:
    from bastion.bot import BastionBot


SUB_ACTION_VALUES = frozenset(action.value for action in SubAction)
CLEAR_KEYWORDS = frozenset({"", "all", "none", "clear"})


def parse_sub_actions(raw: str) -> FrozenSet[str]:
    """
    Parse a comma separated sub-action list.

    "all" (or an empty string) clears the filter so every sub-action counts.

    Raises:
        ValueError: If a name is not a known sub-action.
    """
    text = raw.strip().lower()
    if text in CLEAR_KEYWORDS:
        return frozenset()

    names = {part.strip() for part in text.split(",") if part.strip()}
    unknown = names - SUB_ACTION_VALUES
    if unknown:
        raise ValueError(f"Unknown actions: {', '.join(sorted(unknown))}")
    return frozenset(names)


@app_commands.default_permissions(administrator=True)
@app_commands.guild_only()
class ProtectionCog(commands.GroupCog, group_name="protection", group_description="Configure protection modules"):
    """Module configuration commands."""

    def __init__(self, bot: "BastionBot") -> None:
        self.bot = bot

    def _current_settings(self, guild_id: int, module: ModuleType) -> ModuleSettings:
        config = load_module_config(self.bot.db, guild_id, module)
        return config.settings if config else ModuleSettings()

    async def _reply_with_config(self, interaction: discord.Interaction, module: ModuleType, title: str) -> None:
        config = load_module_config(self.bot.db, interaction.guild_id, module)
        embed = build_embed(f"{title}: {module.label}", color=EmbedColors.SUCCESS, fields=config_fields(config))
        await interaction.response.send_message(embed=embed, ephemeral=True)

    # =========================================================================
    # Configure
    # =========================================================================

    @app_commands.command(name="configure", description="Configure a protection module")
    @app_commands.describe(
        module="Module to configure",
        enabled="Turn the module on or off",
        punishment="Punishment once the threshold is reached",
        threshold="Violations before punishment (0 or 1 punishes at once)",
        decay_window="Minutes after which the violation count resets",
        revert="Undo violating actions",
        log_channel="Channel for this module's logs",
    )
    @app_commands.choices(module=MODULE_CHOICES, punishment=PUNISHMENT_CHOICES)
    async def configure(
        self,
        interaction: discord.Interaction,
        module: app_commands.Choice[str],
        enabled: Optional[bool] = None,
        punishment: Optional[app_commands.Choice[str]] = None,
        threshold: Optional[app_commands.Range[int, 0, 100]] = None,
        decay_window: Optional[app_commands.Range[int, 0, 10080]] = None,
        revert: Optional[bool] = None,
        log_channel: Optional[discord.TextChannel] = None,
    ) -> None:
        module_type = ModuleType(module.value)
        fields: Dict[str, Any] = {}
        if enabled is not None:
            fields["enabled"] = enabled
        if punishment is not None:
            fields["punishment"] = punishment.value
        if threshold is not None:
            fields["punishment_threshold"] = threshold
        if decay_window is not None:
            fields["decay_window_minutes"] = decay_window
        if revert is not None:
            fields["revert"] = revert
        if log_channel is not None:
            fields["log_channel_id"] = log_channel.id

        self.bot.db.upsert_module_config(interaction.guild_id, module_type.value, **fields)
        await self._reply_with_config(interaction, module_type, "Module Configured")

        logger.tree("Protection Command: Configure", [
            ("Guild ID", str(interaction.guild_id)),
            ("Module", module_type.value),
            ("Fields", ", ".join(sorted(fields)) or "None"),
            ("By", f"{interaction.user} ({interaction.user.id})"),
        ], emoji="⚙️")

    @app_commands.command(name="punish-when", description="Limit which actions count as violations")
    @app_commands.describe(
        module="Module to configure",
        actions="Comma separated: create, update, delete, ban, kick, timeout, unban, grant, add. \"all\" clears",
    )
    @app_commands.choices(module=MODULE_CHOICES)
    async def punish_when(
        self,
        interaction: discord.Interaction,
        module: app_commands.Choice[str],
        actions: str,
    ) -> None:
        try:
            punish_when = parse_sub_actions(actions)
        except ValueError as e:
            await send_error(interaction, str(e))
            return

        module_type = ModuleType(module.value)
        settings = replace(self._current_settings(interaction.guild_id, module_type), punish_when=punish_when)
        self.bot.db.upsert_module_config(interaction.guild_id, module_type.value, settings=settings.to_dict())
        await self._reply_with_config(interaction, module_type, "Punish Filter Updated")

    @app_commands.command(name="options", description="Set module-specific options")
    @app_commands.describe(
        module="Module to configure",
        ignore_private_channels="Channel modules: skip actors who manage the channel themselves",
        track_vanity="Invite tracking: record vanity URL joins",
        ignore_bots="Invite tracking: skip bot accounts",
        fake_threshold_hours="Invite tracking: leaves within this many hours count as fake",
        log_membership="Logging: log joins and leaves",
        membership_channel="Logging: channel for join/leave logs",
        log_messages="Logging: log message edits and deletions",
        message_channel="Logging: channel for message logs",
        log_voice="Logging: log voice channel activity",
        voice_channel="Logging: channel for voice logs",
    )
    @app_commands.choices(module=MODULE_CHOICES)
    async def module_options(
        self,
        interaction: discord.Interaction,
        module: app_commands.Choice[str],
        ignore_private_channels: Optional[bool] = None,
        track_vanity: Optional[bool] = None,
        ignore_bots: Optional[bool] = None,
        fake_threshold_hours: Optional[app_commands.Range[int, 0, 720]] = None,
        log_membership: Optional[bool] = None,
        membership_channel: Optional[discord.TextChannel] = None,
        log_messages: Optional[bool] = None,
        message_channel: Optional[discord.TextChannel] = None,
        log_voice: Optional[bool] = None,
        voice_channel: Optional[discord.TextChannel] = None,
    ) -> None:
        changes: Dict[str, Any] = {
            name: value for name, value in (
                ("ignore_private_channels", ignore_private_channels),
                ("track_vanity", track_vanity),
                ("ignore_bots", ignore_bots),
                ("fake_threshold_hours", fake_threshold_hours),
                ("log_membership", log_membership),
                ("log_messages", log_messages),
                ("log_voice", log_voice),
            ) if value is not None
        }
        for key, channel in (
            ("membership_log_channel_id", membership_channel),
            ("message_log_channel_id", message_channel),
            ("voice_log_channel_id", voice_channel),
        ):
            if channel is not None:
                changes[key] = channel.id

        module_type = ModuleType(module.value)
        settings = replace(self._current_settings(interaction.guild_id, module_type), **changes)
        self.bot.db.upsert_module_config(interaction.guild_id, module_type.value, settings=settings.to_dict())

        embed = build_embed(
            f"Options Updated: {module_type.label}",
            color=EmbedColors.SUCCESS,
            fields=[(name.replace("_", " ").title(), str(value)) for name, value in settings.to_dict().items()],
        )
        await interaction.response.send_message(embed=embed, ephemeral=True)

    # =========================================================================
    # Guild-Wide Settings
    # =========================================================================

    @app_commands.command(name="log-channel", description="Set the fallback log channel for all modules")
    @app_commands.describe(channel="Log channel, leave empty to clear")
    async def log_channel(
        self,
        interaction: discord.Interaction,
        channel: Optional[discord.TextChannel] = None,
    ) -> None:
        self.bot.db.set_guild_log_channel(interaction.guild_id, channel.id if channel else None)
        embed = build_embed(
            "Log Channel Updated",
            color=EmbedColors.SUCCESS,
            fields=[("Channel", channel.mention if channel else "Cleared")],
        )
        await interaction.response.send_message(embed=embed, ephemeral=True)

    @app_commands.command(name="jail-role", description="Set the role used by the jail punishment")
    @app_commands.describe(role="Jail role, leave empty to clear")
    async def jail_role(
        self,
        interaction: discord.Interaction,
        role: Optional[discord.Role] = None,
    ) -> None:
        self.bot.db.set_jail_role(interaction.guild_id, role.id if role else None)
        embed = build_embed(
            "Jail Role Updated",
            color=EmbedColors.SUCCESS,
            fields=[("Role", role.mention if role else "Cleared")],
        )
        await interaction.response.send_message(embed=embed, ephemeral=True)

    # =========================================================================
    # Status / Reset
    # =========================================================================

    @app_commands.command(name="status", description="Show every module's configuration")
    async def status(self, interaction: discord.Interaction) -> None:
        guild_id = interaction.guild_id
        guild_config = self.bot.db.get_guild_config(guild_id) or {}

        lines = []
        for module in ModuleType:
            config = load_module_config(self.bot.db, guild_id, module)
            if config is None:
                lines.append(f"⚪ **{module.label}** · not configured")
                continue
            icon = "🟢" if config.enabled else "🔴"
            lines.append(
                f"{icon} **{module.label}** · {config.punishment.label} after "
                f"{config.effective_threshold} in {config.decay_window_minutes}m"
                f"{' · revert' if config.revert else ''}"
            )

        log_channel_id = guild_config.get("log_channel_id")
        jail_role_id = guild_config.get("jail_role_id")
        embed = build_embed(
            "Protection Status",
            "\n".join(lines),
            EmbedColors.INFO,
            fields=[
                ("Log Channel", f"<#{log_channel_id}>" if log_channel_id else "Not set"),
                ("Jail Role", f"<@&{jail_role_id}>" if jail_role_id else "Not set"),
            ],
        )
        await interaction.response.send_message(embed=embed, ephemeral=True)

    @app_commands.command(name="reset", description="Clear a user's violation counts")
    @app_commands.describe(user="User whose violations to clear")
    async def reset(self, interaction: discord.Interaction, user: discord.User) -> None:
        cleared = self.bot.db.reset_violations(interaction.guild_id, user.id)
        embed = build_embed(
            "Violations Reset",
            color=EmbedColors.SUCCESS,
            fields=[("User", user.mention), ("Modules Cleared", str(cleared))],
        )
        await interaction.response.send_message(embed=embed, ephemeral=True)

        logger.tree("Protection Command: Reset", [
            ("Guild ID", str(interaction.guild_id)),
            ("User", f"{user} ({user.id})"),
            ("Rows", str(cleared)),
            ("By", f"{interaction.user} ({interaction.user.id})"),
        ], emoji="🧽")


async def setup(bot: "BastionBot") -> None:
    """Add the protection cog to the bot."""
    await bot.add_cog(ProtectionCog(bot))
    logger.debug("Protection Commands Loaded")
