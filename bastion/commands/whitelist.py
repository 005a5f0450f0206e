"""
Bastion - Whitelist Command Cog
===============================

/whitelist add-user|add-role|remove-user|remove-role|list

DESIGN:
    Entries are unique per (subject, scope). Adding an entry for an
    existing subject and scope replaces its level. A scope of None
    applies the level to every module.
"""

from typing import TYPE_CHECKING, List, Optional

import discord
from discord import app_commands
from discord.ext import commands

from bastion.core.logger import logger
from bastion.core.config import EmbedColors
from bastion.services.protection.constants import ModuleType, WhitelistLevel

from .helpers import LEVEL_CHOICES, MODULE_CHOICES, build_embed

if TYPE_CHECKING:
    from bastion.bot import BastionBot


def _scope_label(module_type: Optional[str]) -> str:
    if module_type is None:
        return "All modules"
    try:
        return ModuleType(module_type).label
    except ValueError:
        return module_type


def _entry_lines(entries: List[dict], mention: str) -> List[str]:
    lines = []
    for entry in entries:
        level = WhitelistLevel.from_name(entry["level"])
        lines.append(
            f"{mention.format(entry['subject_id'])} · "
            f"{level.label if level else entry['level']} · {_scope_label(entry['module_type'])}"
        )
    return lines


@app_commands.default_permissions(administrator=True)
@app_commands.guild_only()
class WhitelistCog(commands.GroupCog, group_name="whitelist", group_description="Manage the protection whitelist"):
    """Whitelist management commands."""

    def __init__(self, bot: "BastionBot") -> None:
        self.bot = bot

    # =========================================================================
    # Add
    # =========================================================================

    async def _add(
        self,
        interaction: discord.Interaction,
        subject_kind: str,
        subject_id: int,
        mention: str,
        level: app_commands.Choice[str],
        module: Optional[app_commands.Choice[str]],
    ) -> None:
        module_type = module.value if module else None
        self.bot.db.add_whitelist_entry(interaction.guild_id, subject_kind, subject_id, level.value, module_type)

        embed = build_embed(
            "Whitelist Entry Added",
            color=EmbedColors.SUCCESS,
            fields=[
                ("Subject", mention),
                ("Level", level.name),
                ("Scope", _scope_label(module_type)),
            ],
        )
        await interaction.response.send_message(embed=embed, ephemeral=True)

        logger.tree("Whitelist Command: Add", [
            ("Guild ID", str(interaction.guild_id)),
            ("Subject", f"{subject_kind}:{subject_id}"),
            ("Level", level.value),
            ("By", f"{interaction.user} ({interaction.user.id})"),
        ], emoji="📋")

    @app_commands.command(name="add-user", description="Whitelist a user")
    @app_commands.describe(user="User to whitelist", level="Trust level", module="Limit to one module")
    @app_commands.choices(level=LEVEL_CHOICES, module=MODULE_CHOICES)
    async def add_user(
        self,
        interaction: discord.Interaction,
        user: discord.User,
        level: app_commands.Choice[str],
        module: Optional[app_commands.Choice[str]] = None,
    ) -> None:
        await self._add(interaction, "user", user.id, user.mention, level, module)

    @app_commands.command(name="add-role", description="Whitelist a role")
    @app_commands.describe(role="Role to whitelist", level="Trust level", module="Limit to one module")
    @app_commands.choices(level=LEVEL_CHOICES, module=MODULE_CHOICES)
    async def add_role(
        self,
        interaction: discord.Interaction,
        role: discord.Role,
        level: app_commands.Choice[str],
        module: Optional[app_commands.Choice[str]] = None,
    ) -> None:
        await self._add(interaction, "role", role.id, role.mention, level, module)

    # =========================================================================
    # Remove
    # =========================================================================

    async def _remove(
        self,
        interaction: discord.Interaction,
        subject_kind: str,
        subject_id: int,
        mention: str,
        module: Optional[app_commands.Choice[str]],
    ) -> None:
        module_type = module.value if module else None
        removed = self.bot.db.remove_whitelist_entry(interaction.guild_id, subject_kind, subject_id, module_type)

        if removed:
            embed = build_embed(
                "Whitelist Entry Removed",
                color=EmbedColors.SUCCESS,
                fields=[("Subject", mention), ("Scope", _scope_label(module_type))],
            )
        else:
            embed = build_embed(
                "No Matching Entry",
                f"{mention} has no whitelist entry for {_scope_label(module_type).lower()}.",
                EmbedColors.YELLOW,
            )
        await interaction.response.send_message(embed=embed, ephemeral=True)

    @app_commands.command(name="remove-user", description="Remove a user's whitelist entry")
    @app_commands.describe(user="Whitelisted user", module="Scope of the entry to remove")
    @app_commands.choices(module=MODULE_CHOICES)
    async def remove_user(
        self,
        interaction: discord.Interaction,
        user: discord.User,
        module: Optional[app_commands.Choice[str]] = None,
    ) -> None:
        await self._remove(interaction, "user", user.id, user.mention, module)

    @app_commands.command(name="remove-role", description="Remove a role's whitelist entry")
    @app_commands.describe(role="Whitelisted role", module="Scope of the entry to remove")
    @app_commands.choices(module=MODULE_CHOICES)
    async def remove_role(
        self,
        interaction: discord.Interaction,
        role: discord.Role,
        module: Optional[app_commands.Choice[str]] = None,
    ) -> None:
        await self._remove(interaction, "role", role.id, role.mention, module)

    # =========================================================================
    # List
    # =========================================================================

    @app_commands.command(name="list", description="Show every whitelist entry")
    async def list_entries(self, interaction: discord.Interaction) -> None:
        guild_id = interaction.guild_id
        users = _entry_lines(self.bot.db.get_whitelist_entries(guild_id, "user"), "<@{}>")
        roles = _entry_lines(self.bot.db.get_whitelist_entries(guild_id, "role"), "<@&{}>")

        embed = build_embed(
            "Whitelist",
            color=EmbedColors.INFO,
            fields=[
                (f"Users ({len(users)})", "\n".join(users) or "None"),
                (f"Roles ({len(roles)})", "\n".join(roles) or "None"),
            ],
            inline=False,
        )
        await interaction.response.send_message(embed=embed, ephemeral=True)


async def setup(bot: "BastionBot") -> None:
    """Add the whitelist cog to the bot."""
    await bot.add_cog(WhitelistCog(bot))
    logger.debug("Whitelist Commands Loaded")
