"""
Bastion - Test Fixtures
=======================

Shared fixtures for all tests.
"""

import os
import sys
import tempfile
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import discord
import pytest

# Add repo root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

# Set up test environment before importing modules
os.environ["TESTING"] = "1"
os.environ.setdefault("DISCORD_TOKEN", "test-token")
os.environ.setdefault("DATABASE_URL", str(Path(tempfile.gettempdir()) / "bastion_test.db"))


GUILD_ID = 987654321
OWNER_ID = 111111111
BOT_ID = 999888777
ACTOR_ID = 123456789


# =============================================================================
# Discord Error Helpers
# =============================================================================

def http_error(cls=discord.HTTPException, status: int = 500, message: str = "error"):
    """Build a real discord.py HTTP exception from a fake response."""
    response = MagicMock(status=status, reason=message)
    return cls(response, message)


def forbidden(message: str = "Missing Permissions"):
    return http_error(discord.Forbidden, 403, message)


def not_found(message: str = "Unknown"):
    return http_error(discord.NotFound, 404, message)


def make_role(role_id: int, position: int = 1, permissions: int = 0, managed: bool = False, default: bool = False):
    role = MagicMock(spec=discord.Role)
    role.id = role_id
    role.name = f"role-{role_id}"
    role.position = position
    role.managed = managed
    role.permissions = discord.Permissions(permissions)
    role.is_default = MagicMock(return_value=default)
    return role


def audit_entry(action, guild, user_id=ACTOR_ID, target=None, before=None, after=None, extra=None):
    """Audit-log entry stand-in with SimpleNamespace diffs."""
    return SimpleNamespace(
        action=action,
        guild=guild,
        user_id=user_id,
        target=target,
        before=before if before is not None else SimpleNamespace(),
        after=after if after is not None else SimpleNamespace(),
        extra=extra,
    )


# =============================================================================
# Database
# =============================================================================

@pytest.fixture
def temp_db_path(tmp_path):
    """Create a temporary database path for testing."""
    return tmp_path / "test_bastion.db"


@pytest.fixture
def test_db(temp_db_path, monkeypatch):
    """Create a fresh test database instance."""
    from bastion.core import config as config_module
    from bastion.core.database import DatabaseManager

    monkeypatch.setenv("DATABASE_URL", str(temp_db_path))
    config_module.reset_config()

    # Reset singleton
    DatabaseManager._instance = None
    db = DatabaseManager(temp_db_path)

    yield db

    # Cleanup
    db.close()
    DatabaseManager._instance = None
    config_module.reset_config()


# =============================================================================
# Mock Discord Objects
# =============================================================================

@pytest.fixture
def mock_bot_member():
    member = MagicMock()
    member.id = BOT_ID
    member.top_role = make_role(5000, position=10)
    return member


@pytest.fixture
def mock_guild(mock_bot_member):
    """Create a mock Discord guild."""
    guild = MagicMock()
    guild.id = GUILD_ID
    guild.name = "Test Server"
    guild.owner_id = OWNER_ID
    guild.me = mock_bot_member
    guild.vanity_url_code = None
    guild.default_role = make_role(GUILD_ID, position=0, default=True)
    guild.get_member = MagicMock(return_value=None)
    guild.get_role = MagicMock(return_value=None)
    guild.get_channel = MagicMock(return_value=None)
    guild.fetch_member = AsyncMock(side_effect=not_found("Unknown Member"))
    guild.fetch_channel = AsyncMock(side_effect=not_found("Unknown Channel"))
    guild.fetch_roles = AsyncMock(return_value=[])
    guild.ban = AsyncMock()
    guild.kick = AsyncMock()
    guild.unban = AsyncMock()
    guild.create_role = AsyncMock()
    guild.invites = AsyncMock(return_value=[])
    return guild


@pytest.fixture
def mock_member(mock_guild):
    """Create a mock Discord member with no special roles."""
    member = MagicMock()
    member.id = ACTOR_ID
    member.name = "testuser"
    member.bot = False
    member.guild = mock_guild
    member.roles = [mock_guild.default_role]
    member.top_role = make_role(1, position=1)
    member.guild_permissions = discord.Permissions.none()
    member.edit = AsyncMock()
    member.remove_roles = AsyncMock()
    member.send = AsyncMock()
    return member


@pytest.fixture
def mock_channel():
    channel = MagicMock()
    channel.id = 444555666
    channel.name = "general"
    channel.send = AsyncMock()
    channel.delete = AsyncMock()
    channel.edit = AsyncMock()
    channel.set_permissions = AsyncMock()
    channel.overwrites = {}
    return channel


@pytest.fixture
def mock_bot(test_db, mock_channel):
    """Bot stand-in carrying the real object cache and action log."""
    from bastion.services.action_log import ActionLogService
    from bastion.services.protection import ObjectCache

    bot = MagicMock()
    bot.db = test_db
    bot.user = MagicMock()
    bot.user.id = BOT_ID
    bot.get_channel = MagicMock(return_value=mock_channel)
    bot.fetch_channel = AsyncMock(return_value=mock_channel)
    bot.fetch_guild = AsyncMock()
    bot.get_guild = MagicMock(return_value=None)
    bot.get_user = MagicMock(return_value=None)
    bot.fetch_user = AsyncMock()
    bot.wait_until_ready = AsyncMock()
    bot.object_cache = ObjectCache(ttl=90)
    bot.action_log = ActionLogService(bot)
    return bot


@pytest.fixture
def mock_interaction(mock_member, mock_guild, mock_bot):
    """Create a mock Discord interaction."""
    interaction = MagicMock()
    interaction.user = mock_member
    interaction.guild = mock_guild
    interaction.guild_id = mock_guild.id
    interaction.client = mock_bot
    interaction.response = MagicMock()
    interaction.response.defer = AsyncMock()
    interaction.response.send_message = AsyncMock()
    interaction.response.is_done = MagicMock(return_value=False)
    interaction.followup = MagicMock()
    interaction.followup.send = AsyncMock()
    return interaction
