"""
Bastion - Setup Command Cog
===========================

/setup start|module|whitelist|finish|cancel

DESIGN:
    Drafts live in the bot's SetupSessionStore and touch the database only
    on /setup finish. Only the admin who started a session may change or
    finish it; any admin may cancel it.
"""

from typing import TYPE_CHECKING, Any, Dict, Optional

import discord
from discord import app_commands
from discord.ext import commands

from bastion.core.logger import logger
from bastion.core.config import EmbedColors
from bastion.services.protection.constants import ModuleType, WhitelistLevel
from bastion.services.setup_sessions import (
    SetupSession,
    SetupSessionActive,
    SetupSessionNotFound,
)

from .helpers import LEVEL_CHOICES, MODULE_CHOICES, PUNISHMENT_CHOICES, build_embed, send_error

if TYPE_CHECKING:
    from bastion.bot import BastionBot


def session_summary(session: SetupSession) -> discord.Embed:
    modules = [
        f"**{ModuleType(module_type).label}**: {', '.join(f'{k}={v}' for k, v in sorted(fields.items())) or 'defaults'}"
        for module_type, fields in session.modules.items()
    ]
    whitelist = []
    for subject_kind, subject_id, level, module_type in session.whitelist:
        mention = f"<@{subject_id}>" if subject_kind == "user" else f"<@&{subject_id}>"
        scope = ModuleType(module_type).label if module_type else "All modules"
        whitelist.append(f"{mention} · {WhitelistLevel.from_name(level).label} · {scope}")

    return build_embed(
        "Setup Draft",
        color=EmbedColors.GOLD,
        fields=[
            ("Log Channel", f"<#{session.log_channel_id}>" if session.log_channel_id else "Unchanged"),
            ("Modules", "\n".join(modules) or "None"),
            ("Whitelist", "\n".join(whitelist) or "None"),
        ],
        inline=False,
    )


@app_commands.default_permissions(administrator=True)
@app_commands.guild_only()
class SetupCog(commands.GroupCog, group_name="setup", group_description="Step-by-step protection setup"):
    """Setup session commands."""

    def __init__(self, bot: "BastionBot") -> None:
        self.bot = bot

    async def _owned_session(self, interaction: discord.Interaction) -> Optional[SetupSession]:
        """The guild's live session if the caller owns it, else reply with an error."""
        session = self.bot.setup_sessions.get(interaction.guild_id)
        if session is None:
            await send_error(interaction, "No setup in progress. Run `/setup start` first.")
            return None
        if session.user_id != interaction.user.id:
            await send_error(interaction, f"Setup is being run by <@{session.user_id}>.")
            return None
        return session

    # =========================================================================
    # Start
    # =========================================================================

    @app_commands.command(name="start", description="Start a setup session")
    @app_commands.describe(log_channel="Fallback log channel for all modules")
    async def start(
        self,
        interaction: discord.Interaction,
        log_channel: Optional[discord.TextChannel] = None,
    ) -> None:
        store = self.bot.setup_sessions
        try:
            session = store.start(interaction.guild_id, interaction.user.id)
        except SetupSessionActive as e:
            await send_error(interaction, f"Setup is already in progress by <@{e.user_id}>.")
            return

        if log_channel is not None:
            session = store.update(interaction.guild_id, log_channel_id=log_channel.id)

        embed = session_summary(session)
        embed.description = (
            "Add modules with `/setup module` and whitelist entries with `/setup whitelist`, "
            "then save with `/setup finish`."
        )
        await interaction.response.send_message(embed=embed, ephemeral=True)

    # =========================================================================
    # Draft Steps
    # =========================================================================

    @app_commands.command(name="module", description="Add a module to the setup draft")
    @app_commands.describe(
        module="Module to configure",
        enabled="Turn the module on or off",
        punishment="Punishment once the threshold is reached",
        threshold="Violations before punishment",
        decay_window="Minutes after which the violation count resets",
        revert="Undo violating actions",
        log_channel="Channel for this module's logs",
    )
    @app_commands.choices(module=MODULE_CHOICES, punishment=PUNISHMENT_CHOICES)
    async def module(
        self,
        interaction: discord.Interaction,
        module: app_commands.Choice[str],
        enabled: bool = True,
        punishment: Optional[app_commands.Choice[str]] = None,
        threshold: Optional[app_commands.Range[int, 0, 100]] = None,
        decay_window: Optional[app_commands.Range[int, 0, 10080]] = None,
        revert: Optional[bool] = None,
        log_channel: Optional[discord.TextChannel] = None,
    ) -> None:
        if await self._owned_session(interaction) is None:
            return

        fields: Dict[str, Any] = {"enabled": enabled}
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

        session = self.bot.setup_sessions.set_module(interaction.guild_id, module.value, **fields)
        await interaction.response.send_message(embed=session_summary(session), ephemeral=True)

    @app_commands.command(name="whitelist", description="Add a whitelist entry to the setup draft")
    @app_commands.describe(level="Trust level", user="User to whitelist", role="Role to whitelist", module="Limit to one module")
    @app_commands.choices(level=LEVEL_CHOICES, module=MODULE_CHOICES)
    async def whitelist(
        self,
        interaction: discord.Interaction,
        level: app_commands.Choice[str],
        user: Optional[discord.User] = None,
        role: Optional[discord.Role] = None,
        module: Optional[app_commands.Choice[str]] = None,
    ) -> None:
        if (user is None) == (role is None):
            await send_error(interaction, "Pick exactly one of `user` or `role`.")
            return
        if await self._owned_session(interaction) is None:
            return

        subject_kind, subject_id = ("user", user.id) if user is not None else ("role", role.id)
        session = self.bot.setup_sessions.add_whitelist(
            interaction.guild_id,
            subject_kind,
            subject_id,
            level.value,
            module.value if module else None,
        )
        await interaction.response.send_message(embed=session_summary(session), ephemeral=True)

    # =========================================================================
    # Finish / Cancel
    # =========================================================================

    @app_commands.command(name="finish", description="Save the setup draft")
    async def finish(self, interaction: discord.Interaction) -> None:
        if await self._owned_session(interaction) is None:
            return

        try:
            session = self.bot.setup_sessions.commit(interaction.guild_id, self.bot.db)
        except SetupSessionNotFound:
            await send_error(interaction, "The setup session expired before it was saved.")
            return

        embed = session_summary(session)
        embed.title = "Setup Saved"
        embed.color = EmbedColors.SUCCESS
        await interaction.response.send_message(embed=embed, ephemeral=True)

    @app_commands.command(name="cancel", description="Discard the setup draft")
    async def cancel(self, interaction: discord.Interaction) -> None:
        if not self.bot.setup_sessions.cancel(interaction.guild_id):
            await send_error(interaction, "No setup in progress.")
            return

        logger.info("Setup Session Cancelled", [
            ("Guild ID", str(interaction.guild_id)),
            ("By", f"{interaction.user} ({interaction.user.id})"),
        ])
        embed = build_embed("Setup Cancelled", "Nothing was saved.", EmbedColors.YELLOW)
        await interaction.response.send_message(embed=embed, ephemeral=True)


async def setup(bot: "BastionBot") -> None:
    """Add the setup cog to the bot."""
    await bot.add_cog(SetupCog(bot))
    logger.debug("Setup Commands Loaded")
