"""
Bastion - Trust Resolver
========================

Decides how much an actor is trusted for one module.

DESIGN:
    Three sources, merged to the highest level:
    1. Guild owner -> Head (terminal)
    2. Explicit whitelist entries for the user and for any of their roles,
       global or scoped to the module
    3. Implicit hierarchy: an actor whose top role outranks the bot's gets
       Admin (with the administrator bit) or Invulnerable

    No level from any source means the actor is unauthorized (None).

    Owner lookup failure keeps evaluating the other sources instead of
    denying. This is fail-open and is logged every time it happens.
"""

from typing import TYPE_CHECKING, Iterable, List, Optional

import discord

from bastion.core.logger import logger
from bastion.core.database import get_db

from .constants import ModuleType, WhitelistLevel

if TYPE_CHECKING:
    from bastion.bot import BastionBot


def merge_levels(levels: Iterable[Optional[WhitelistLevel]]) -> Optional[WhitelistLevel]:
    """Highest level among the given ones, ignoring None."""
    present = [level for level in levels if level is not None]
    return max(present) if present else None


def parse_levels(names: Iterable[str]) -> List[WhitelistLevel]:
    """Convert stored level names, dropping unknown ones."""
    levels = []
    for name in names:
        level = WhitelistLevel.from_name(name)
        if level is None:
            logger.warning("Unknown Whitelist Level Ignored", [("Level", str(name))])
            continue
        levels.append(level)
    return levels


class TrustResolver:
    """
    Resolves an actor's whitelist level for a module.

    Attributes:
        bot: Main bot instance, used for guild fetches on cache miss.
        db: Database manager.
    """

    def __init__(self, bot: "BastionBot") -> None:
        self.bot = bot
        self.db = get_db()

    # =========================================================================
    # Public API
    # =========================================================================

    async def resolve(
        self,
        guild: discord.Guild,
        actor_id: int,
        module: ModuleType,
    ) -> Optional[WhitelistLevel]:
        """
        Resolve the actor's level.

        Args:
            guild: Guild the action happened in.
            actor_id: User who performed the action.
            module: Module being evaluated.

        Returns:
            The merged level, or None when the actor is unauthorized.
        """
        owner_id = await self._get_owner_id(guild)
        if owner_id is not None and owner_id == actor_id:
            return WhitelistLevel.HEAD

        levels: List[WhitelistLevel] = parse_levels(
            self.db.get_user_whitelist_levels(guild.id, actor_id, module.value)
        )

        member = await self._get_member(guild, actor_id)
        if member is not None:
            role_ids = [role.id for role in member.roles]
            levels.extend(parse_levels(
                self.db.get_role_whitelist_levels(guild.id, role_ids, module.value)
            ))

            # Implicit levels never exceed Admin
            if merge_levels(levels) != WhitelistLevel.HEAD:
                implicit = await self._implicit_level(guild, member)
                if implicit is not None:
                    levels.append(implicit)

        return merge_levels(levels)

    # =========================================================================
    # Sources
    # =========================================================================

    async def _get_owner_id(self, guild: discord.Guild) -> Optional[int]:
        """Guild owner ID, fetching the guild on cache miss."""
        if guild.owner_id is not None:
            return guild.owner_id

        try:
            fetched = await self.bot.fetch_guild(guild.id)
            return fetched.owner_id
        except discord.HTTPException as e:
            logger.warning("Owner Lookup Failed (Continuing Without Owner Check)", [
                ("Guild", f"{guild.name} ({guild.id})"),
                ("Status", str(getattr(e, "status", "?"))),
            ])
            return None

    async def _get_member(self, guild: discord.Guild, user_id: int) -> Optional[discord.Member]:
        """Member from cache or API, None if unavailable."""
        member = guild.get_member(user_id)
        if member is not None:
            return member

        try:
            return await guild.fetch_member(user_id)
        except discord.NotFound:
            return None
        except discord.HTTPException as e:
            logger.warning("Member Lookup Failed", [
                ("Guild", f"{guild.name} ({guild.id})"),
                ("User ID", str(user_id)),
                ("Status", str(getattr(e, "status", "?"))),
            ])
            return None

    async def _implicit_level(
        self,
        guild: discord.Guild,
        member: discord.Member,
    ) -> Optional[WhitelistLevel]:
        """Level granted by outranking the bot in the role hierarchy."""
        bot_member = guild.me
        if bot_member is None:
            bot_member = await self._get_member(guild, self.bot.user.id)
        if bot_member is None:
            return None

        if member.top_role.position <= bot_member.top_role.position:
            return None

        if member.guild_permissions.administrator:
            return WhitelistLevel.ADMIN
        return WhitelistLevel.INVULNERABLE


__all__ = ["TrustResolver", "merge_levels", "parse_levels"]
