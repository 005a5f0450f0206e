"""
Bastion - Configuration Tests
=============================

Environment loading, clamping and DATABASE_URL handling.
"""

from pathlib import Path

import pytest

from bastion.core.config import (
    ConfigValidationError,
    _parse_int_with_default,
    _validate_url,
    load_config,
    resolve_database_path,
)


@pytest.fixture
def env(monkeypatch):
    monkeypatch.setenv("DISCORD_TOKEN", "token")
    monkeypatch.setenv("DATABASE_URL", "sqlite:///data/bastion.db")
    return monkeypatch


class TestLoadConfig:
    """Tests for load_config."""

    def test_required_variables(self, env):
        env.delenv("DISCORD_TOKEN")
        env.delenv("DATABASE_URL")
        with pytest.raises(ConfigValidationError, match="DISCORD_TOKEN, DATABASE_URL"):
            load_config()

    def test_defaults(self, env):
        config = load_config()
        assert config.temp_ban_check_interval == 60
        assert config.object_cache_ttl == 90
        assert config.setup_session_idle_timeout == 180
        assert config.error_webhook_url is None
        assert config.database_path == Path("data/bastion.db")

    def test_overrides_are_clamped(self, env):
        env.setenv("JAIL_CHECK_INTERVAL", "1")
        env.setenv("REVERT_POLL_ATTEMPTS", "1000")
        config = load_config()
        assert config.jail_check_interval == 5
        assert config.revert_poll_attempts == 100

    def test_unsupported_database_fails_fast(self, env):
        env.setenv("DATABASE_URL", "postgres://localhost/bastion")
        with pytest.raises(ConfigValidationError):
            load_config()

    def test_invalid_webhook_ignored(self, env):
        env.setenv("ERROR_WEBHOOK_URL", "not-a-url")
        assert load_config().error_webhook_url is None


class TestHelpers:
    """Tests for parsing helpers."""

    def test_parse_int_default(self):
        assert _parse_int_with_default(None, 7, "X") == 7
        assert _parse_int_with_default("abc", 7, "X") == 7
        assert _parse_int_with_default("12", 7, "X", min_val=1, max_val=20) == 12

    def test_validate_url(self):
        assert _validate_url("https://example.com/hook", "X") == "https://example.com/hook"
        assert _validate_url("", "X") is None

    def test_database_path_forms(self):
        assert resolve_database_path("bastion.db") == Path("bastion.db")
        assert resolve_database_path("sqlite:///data/bastion.db") == Path("data/bastion.db")
        assert resolve_database_path("sqlite:////var/lib/bastion.db") == Path("/var/lib/bastion.db")

    def test_database_path_errors(self):
        with pytest.raises(ConfigValidationError):
            resolve_database_path("mysql://host/db")
        with pytest.raises(ConfigValidationError):
            resolve_database_path("sqlite://")
