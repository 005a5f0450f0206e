"""
Bastion - Moderation Command Cog
================================

/ban, /kick, /timeout, /jail and /unjail. Timed bans and jails are
persisted first and lifted later by TempBanScheduler and JailScheduler.
Every successful action is written to the moderation module's log.
"""

import time
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, List, Optional, Tuple

import discord
from discord import app_commands
from discord.ext import commands

from bastion.core.logger import logger
from bastion.core.config import EmbedColors
from bastion.core.constants import AUDIT_REASON_LIMIT, MAX_TIMEOUT_SECONDS
from bastion.services.action_log import LogLevel
from bastion.services.protection.constants import ModuleType
from bastion.utils.duration import format_duration, is_permanent, parse_duration
from bastion.utils.http_errors import log_http_error

from .helpers import build_embed, send_error

if TYPE_CHECKING:
    from bastion.bot import BastionBot


NO_REASON = "No reason provided"


class ModerationCog(commands.Cog):
    """Moderation commands."""

    def __init__(self, bot: "BastionBot") -> None:
        self.bot = bot

    def _audit_reason(self, interaction: discord.Interaction, reason: Optional[str]) -> str:
        return f"{interaction.user}: {reason or NO_REASON}"[:AUDIT_REASON_LIMIT]

    def _is_self(self, user: discord.abc.User) -> bool:
        return self.bot.user is not None and user.id == self.bot.user.id

    async def _log_moderation(
        self,
        interaction: discord.Interaction,
        command: str,
        target: discord.abc.User,
        fields: List[Tuple[str, str]],
    ) -> None:
        await self.bot.action_log.log_action(
            interaction.guild_id,
            ModuleType.MODERATION,
            LogLevel.AUDIT,
            f"Moderator {command.title()}",
            f"<@{interaction.user.id}> used /{command} on <@{target.id}>.",
            [("User", f"{target} ({target.id})")] + fields,
        )

    # =========================================================================
    # Ban
    # =========================================================================

    @app_commands.default_permissions(administrator=True)
    @app_commands.guild_only()
    @app_commands.command(name="ban", description="Ban a user, optionally for a limited time")
    @app_commands.describe(
        user="User to ban",
        duration="e.g. 30m, 12h, 7d; empty for permanent",
        reason="Reason for the ban",
    )
    async def ban(
        self,
        interaction: discord.Interaction,
        user: discord.User,
        duration: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> None:
        """
        Ban a user, scheduling the unban when a duration is given.

        DESIGN:
            A timed ban's schedule is written before the ban and removed
            again if the ban fails. A permanent ban drops any pending
            schedule so an earlier timed ban cannot lift it.
        """
        seconds = None
        if duration and not is_permanent(duration):
            seconds = parse_duration(duration)
            if seconds is None:
                await send_error(interaction, f"Invalid duration `{duration}`. Try 30m, 12h or 7d.")
                return

        if self._is_self(user):
            await send_error(interaction, "I cannot ban myself.")
            return

        await interaction.response.defer(ephemeral=True)
        guild = interaction.guild
        expires_at = time.time() + seconds if seconds else None
        if expires_at is not None:
            self.bot.db.add_temp_ban(guild.id, user.id, expires_at, reason=reason, moderator_id=interaction.user.id)

        context = [
            ("Guild", f"{guild.name} ({guild.id})"),
            ("User", f"{user} ({user.id})"),
        ]
        try:
            await guild.ban(user, reason=self._audit_reason(interaction, reason), delete_message_seconds=0)
        except discord.Forbidden:
            if expires_at is not None:
                self.bot.db.delete_temp_ban(guild.id, user.id)
            logger.warning("Ban Failed (Forbidden)", context + [("Error", "Missing permissions")])
            await send_error(interaction, "I don't have permission to ban that user.")
            return
        except discord.HTTPException as e:
            if expires_at is not None:
                self.bot.db.delete_temp_ban(guild.id, user.id)
            log_http_error(e, "Ban", context)
            await send_error(interaction, "The ban failed, please try again.")
            return

        if expires_at is None:
            self.bot.db.delete_temp_ban(guild.id, user.id)

        fields = [("Duration", format_duration(seconds)), ("Reason", reason or NO_REASON)]
        embed_fields = [("User", user.mention)] + fields
        if expires_at is not None:
            expires = datetime.fromtimestamp(expires_at, tz=timezone.utc)
            embed_fields.append(("Expires", discord.utils.format_dt(expires, "R")))

        embed = build_embed(
            "User Temporarily Banned" if expires_at else "User Banned",
            color=EmbedColors.RED,
            fields=embed_fields,
        )
        await interaction.followup.send(embed=embed, ephemeral=True)
        await self._log_moderation(interaction, "ban", user, fields)

        logger.tree("Ban Issued", context + [
            ("Duration", format_duration(seconds)),
            ("By", f"{interaction.user} ({interaction.user.id})"),
        ], emoji="🔨")

    # =========================================================================
    # Kick
    # =========================================================================

    @app_commands.default_permissions(administrator=True)
    @app_commands.guild_only()
    @app_commands.command(name="kick", description="Kick a member")
    @app_commands.describe(member="Member to kick", reason="Reason for the kick")
    async def kick(
        self,
        interaction: discord.Interaction,
        member: discord.Member,
        reason: Optional[str] = None,
    ) -> None:
        if self._is_self(member):
            await send_error(interaction, "I cannot kick myself.")
            return

        await interaction.response.defer(ephemeral=True)
        guild = interaction.guild
        context = [
            ("Guild", f"{guild.name} ({guild.id})"),
            ("User", f"{member} ({member.id})"),
        ]
        try:
            await guild.kick(member, reason=self._audit_reason(interaction, reason))
        except discord.Forbidden:
            logger.warning("Kick Failed (Forbidden)", context + [("Error", "Missing permissions")])
            await send_error(interaction, "I don't have permission to kick that member.")
            return
        except discord.HTTPException as e:
            log_http_error(e, "Kick", context)
            await send_error(interaction, "The kick failed, please try again.")
            return

        fields = [("Reason", reason or NO_REASON)]
        embed = build_embed("Member Kicked", color=EmbedColors.RED, fields=[("Member", member.mention)] + fields)
        await interaction.followup.send(embed=embed, ephemeral=True)
        await self._log_moderation(interaction, "kick", member, fields)

        logger.tree("Kick Issued", context + [
            ("By", f"{interaction.user} ({interaction.user.id})"),
        ], emoji="👢")

    # =========================================================================
    # Timeout
    # =========================================================================

    @app_commands.default_permissions(administrator=True)
    @app_commands.guild_only()
    @app_commands.command(name="timeout", description="Time out a member")
    @app_commands.describe(member="Member to time out", duration="e.g. 10m, 1h, 7d (max 28d)", reason="Reason")
    async def timeout(
        self,
        interaction: discord.Interaction,
        member: discord.Member,
        duration: str,
        reason: Optional[str] = None,
    ) -> None:
        seconds = parse_duration(duration)
        if seconds is None or seconds > MAX_TIMEOUT_SECONDS:
            await send_error(interaction, f"Invalid duration `{duration}`. Timeouts run from 1s up to 28d.")
            return

        if self._is_self(member):
            await send_error(interaction, "I cannot time myself out.")
            return

        await interaction.response.defer(ephemeral=True)
        guild = interaction.guild
        context = [
            ("Guild", f"{guild.name} ({guild.id})"),
            ("User", f"{member} ({member.id})"),
        ]
        try:
            await member.timeout(timedelta(seconds=seconds), reason=self._audit_reason(interaction, reason))
        except discord.Forbidden:
            logger.warning("Timeout Failed (Forbidden)", context + [("Error", "Missing permissions")])
            await send_error(interaction, "I don't have permission to time out that member.")
            return
        except discord.HTTPException as e:
            log_http_error(e, "Timeout", context)
            await send_error(interaction, "The timeout failed, please try again.")
            return

        fields = [("Duration", format_duration(seconds)), ("Reason", reason or NO_REASON)]
        embed = build_embed("Member Timed Out", color=EmbedColors.RED, fields=[("Member", member.mention)] + fields)
        await interaction.followup.send(embed=embed, ephemeral=True)
        await self._log_moderation(interaction, "timeout", member, fields)

        logger.tree("Timeout Issued", context + [
            ("Duration", format_duration(seconds)),
            ("By", f"{interaction.user} ({interaction.user.id})"),
        ], emoji="🔇")

    # =========================================================================
    # Jail
    # =========================================================================

    @app_commands.default_permissions(administrator=True)
    @app_commands.guild_only()
    @app_commands.command(name="jail", description="Jail a member, optionally for a limited time")
    @app_commands.describe(member="Member to jail", duration="e.g. 30m, 12h, 7d; empty for indefinite", reason="Reason")
    async def jail(
        self,
        interaction: discord.Interaction,
        member: discord.Member,
        duration: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> None:
        seconds = None
        if duration and not is_permanent(duration):
            seconds = parse_duration(duration)
            if seconds is None:
                await send_error(interaction, f"Invalid duration `{duration}`. Try 30m, 12h or 7d.")
                return

        await interaction.response.defer(ephemeral=True)
        jailed = await self.bot.jail_service.jail(
            interaction.guild,
            member,
            self._audit_reason(interaction, reason),
            moderator_id=interaction.user.id,
            duration_seconds=seconds,
        )
        if not jailed:
            await send_error(interaction, "Jail failed. Check that a jail role is set and that I can manage roles.")
            return

        fields = [("Duration", format_duration(seconds)), ("Reason", reason or NO_REASON)]
        embed = build_embed("Member Jailed", color=EmbedColors.RED, fields=[("Member", member.mention)] + fields)
        await interaction.followup.send(embed=embed, ephemeral=True)
        await self._log_moderation(interaction, "jail", member, fields)

    @app_commands.default_permissions(administrator=True)
    @app_commands.guild_only()
    @app_commands.command(name="unjail", description="Release a jailed member")
    @app_commands.describe(member="Member to release")
    async def unjail(self, interaction: discord.Interaction, member: discord.Member) -> None:
        await interaction.response.defer(ephemeral=True)
        released = await self.bot.jail_service.unjail(
            interaction.guild_id,
            member.id,
            reason=self._audit_reason(interaction, "Manual unjail"),
        )
        if not released:
            await send_error(interaction, f"{member.mention} is not jailed.")
            return

        embed = build_embed("Member Released", color=EmbedColors.SUCCESS, fields=[("Member", member.mention)])
        await interaction.followup.send(embed=embed, ephemeral=True)
        await self._log_moderation(interaction, "unjail", member, [])


async def setup(bot: "BastionBot") -> None:
    """Add the moderation cog to the bot."""
    await bot.add_cog(ModerationCog(bot))
    logger.debug("Moderation Commands Loaded")
