"""
Bastion - Configuration Module
==============================

Centralized configuration management with environment variable validation.

DESIGN:
    A single Config dataclass is loaded from environment variables at
    startup. Only the platform credential and the database location are
    required; every interval and timeout has a sane default that can be
    overridden and is clamped into a safe range.

    Key patterns:
    - Singleton via get_config() ensures one Config instance
    - Validation happens once at load time, not on every access
    - Missing required values raise ConfigValidationError (fatal)
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo


# =============================================================================
# Timezone Configuration
# =============================================================================

NY_TZ = ZoneInfo("America/New_York")
"""Eastern timezone used for log timestamps and embed footers."""


# =============================================================================
# Configuration Dataclass
# =============================================================================

@dataclass
class Config:
    """
    Bot configuration loaded from environment variables.

    Attributes:
        discord_token: Discord bot authentication token.
        database_url: SQLite location, plain path or sqlite:/// URL.
        error_webhook_url: Optional webhook for error alerts.
    """

    # -------------------------------------------------------------------------
    # Required
    # -------------------------------------------------------------------------

    discord_token: str
    database_url: str

    # -------------------------------------------------------------------------
    # Optional: Alerts
    # -------------------------------------------------------------------------

    error_webhook_url: Optional[str] = None

    # -------------------------------------------------------------------------
    # Optional: Background Workers (seconds)
    # -------------------------------------------------------------------------

    temp_ban_check_interval: int = 60
    jail_check_interval: int = 60
    logging_cleanup_interval: int = 3600
    logging_retention_days: int = 30

    # -------------------------------------------------------------------------
    # Optional: Object Cache / Revert Polling
    # -------------------------------------------------------------------------

    object_cache_ttl: int = 90
    object_cache_sweep_interval: int = 30
    revert_poll_attempts: int = 10
    revert_poll_delay_ms: int = 200

    # -------------------------------------------------------------------------
    # Optional: Setup Sessions (seconds)
    # -------------------------------------------------------------------------

    setup_session_max_age: int = 900
    setup_session_idle_timeout: int = 180

    @property
    def database_path(self) -> Path:
        """Filesystem path of the SQLite database."""
        return resolve_database_path(self.database_url)


# =============================================================================
# Embed Colors
# =============================================================================

class EmbedColors:
    """Color palette for bot embeds."""

    GREEN = 0x1F5E2E    # Success / restored
    GOLD = 0xE6B84A     # Neutral highlights
    RED = 0xDC3545      # Destructive actions
    BLUE = 0x3498DB     # Informational logs
    YELLOW = 0xF1C40F   # Warnings
    CRIMSON = 0xE74C3C  # Errors
    GRAY = 0x95A5A6     # Audit trail

    SUCCESS = GREEN
    INFO = BLUE


# =============================================================================
# Validation Helpers
# =============================================================================

class ConfigValidationError(Exception):
    """
    Raised when required configuration is missing or invalid.

    DESIGN:
        Custom exception type allows main.py to distinguish config
        errors from other startup failures.
    """

    pass


def _parse_int_with_default(value: Optional[str], default: int, name: str, min_val: int = None, max_val: int = None) -> int:
    """
    Parse optional integer with default and range validation.

    Args:
        value: String value from environment variable.
        default: Default value if not set or invalid.
        name: Variable name for warning messages.
        min_val: Minimum allowed value (inclusive).
        max_val: Maximum allowed value (inclusive).

    Returns:
        Parsed integer within valid range, or default.
    """
    if not value:
        return default
    try:
        parsed = int(value)
        if min_val is not None and parsed < min_val:
            from bastion.core.logger import logger
            logger.warning(f"Config {name}={parsed} below min {min_val}, using {min_val}")
            return min_val
        if max_val is not None and parsed > max_val:
            from bastion.core.logger import logger
            logger.warning(f"Config {name}={parsed} above max {max_val}, using {max_val}")
            return max_val
        return parsed
    except ValueError:
        from bastion.core.logger import logger
        logger.warning(f"Config {name}='{value}' invalid, using default {default}")
        return default


def _validate_url(value: Optional[str], name: str) -> Optional[str]:
    """
    Validate URL format for webhooks.

    Returns:
        URL if valid, None if invalid or empty.
    """
    if not value:
        return None
    if not value.startswith(("https://", "http://")):
        from bastion.core.logger import logger
        logger.warning(f"Config {name} invalid URL format, ignoring")
        return None
    return value


def resolve_database_path(database_url: str) -> Path:
    """
    Turn DATABASE_URL into a filesystem path.

    Accepts "sqlite:///relative.db", "sqlite:////abs/path.db" or a bare path.

    Raises:
        ConfigValidationError: If the URL names another database engine.
    """
    if "://" not in database_url:
        return Path(database_url)

    scheme, _, rest = database_url.partition("://")
    if scheme != "sqlite":
        raise ConfigValidationError(f"Unsupported DATABASE_URL scheme: {scheme}")

    # sqlite:///path -> "/path" after the scheme; strip the authority slash
    path = rest[1:] if rest.startswith("/") else rest
    if not path:
        raise ConfigValidationError("DATABASE_URL has no database path")
    return Path(path)


# =============================================================================
# Configuration Loading
# =============================================================================

def load_config() -> Config:
    """
    Load and validate configuration from environment variables.

    Returns:
        Validated Config object with all settings.

    Raises:
        ConfigValidationError: If any required variable is missing or invalid.
    """
    missing = []

    discord_token = os.getenv("DISCORD_TOKEN")
    if not discord_token:
        missing.append("DISCORD_TOKEN")

    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        missing.append("DATABASE_URL")

    if missing:
        raise ConfigValidationError(
            f"Missing required environment variables: {', '.join(missing)}"
        )

    # Fail fast on an unusable database URL
    resolve_database_path(database_url)

    return Config(
        discord_token=discord_token,
        database_url=database_url,
        error_webhook_url=_validate_url(os.getenv("ERROR_WEBHOOK_URL"), "ERROR_WEBHOOK_URL"),
        temp_ban_check_interval=_parse_int_with_default(
            os.getenv("TEMP_BAN_CHECK_INTERVAL"), 60, "TEMP_BAN_CHECK_INTERVAL", min_val=5, max_val=3600
        ),
        jail_check_interval=_parse_int_with_default(
            os.getenv("JAIL_CHECK_INTERVAL"), 60, "JAIL_CHECK_INTERVAL", min_val=5, max_val=3600
        ),
        logging_cleanup_interval=_parse_int_with_default(
            os.getenv("LOGGING_CLEANUP_INTERVAL"), 3600, "LOGGING_CLEANUP_INTERVAL", min_val=60, max_val=86400
        ),
        logging_retention_days=_parse_int_with_default(
            os.getenv("LOGGING_RETENTION_DAYS"), 30, "LOGGING_RETENTION_DAYS", min_val=1, max_val=365
        ),
        object_cache_ttl=_parse_int_with_default(
            os.getenv("OBJECT_CACHE_TTL"), 90, "OBJECT_CACHE_TTL", min_val=10, max_val=3600
        ),
        object_cache_sweep_interval=_parse_int_with_default(
            os.getenv("OBJECT_CACHE_SWEEP_INTERVAL"), 30, "OBJECT_CACHE_SWEEP_INTERVAL", min_val=5, max_val=600
        ),
        revert_poll_attempts=_parse_int_with_default(
            os.getenv("REVERT_POLL_ATTEMPTS"), 10, "REVERT_POLL_ATTEMPTS", min_val=1, max_val=100
        ),
        revert_poll_delay_ms=_parse_int_with_default(
            os.getenv("REVERT_POLL_DELAY_MS"), 200, "REVERT_POLL_DELAY_MS", min_val=10, max_val=5000
        ),
        setup_session_max_age=_parse_int_with_default(
            os.getenv("SETUP_SESSION_MAX_AGE"), 900, "SETUP_SESSION_MAX_AGE", min_val=60, max_val=7200
        ),
        setup_session_idle_timeout=_parse_int_with_default(
            os.getenv("SETUP_SESSION_IDLE_TIMEOUT"), 180, "SETUP_SESSION_IDLE_TIMEOUT", min_val=30, max_val=3600
        ),
    )


# =============================================================================
# Global Config Instance
# =============================================================================

_config: Optional[Config] = None


def get_config() -> Config:
    """
    Get the global configuration instance, loading if needed.

    Raises:
        ConfigValidationError: On first call if config is invalid.
    """
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reset_config() -> None:
    """Drop the cached Config so the next get_config() reloads it."""
    global _config
    _config = None


def validate_and_log_config() -> None:
    """
    Validate configuration and log results at startup.

    Raises:
        ConfigValidationError: If required configuration is missing.
    """
    from bastion.core.logger import logger

    config = get_config()

    logger.tree("Configuration Validated", [
        ("Required", "✅ All required variables set"),
        ("Database", str(config.database_path)),
        ("Error Webhook", "Enabled" if config.error_webhook_url else "Disabled"),
        ("Temp Ban Check", f"{config.temp_ban_check_interval}s"),
        ("Jail Check", f"{config.jail_check_interval}s"),
        ("Logging Cleanup", f"{config.logging_cleanup_interval}s / {config.logging_retention_days}d"),
        ("Object Cache TTL", f"{config.object_cache_ttl}s"),
        ("Revert Polling", f"{config.revert_poll_attempts} x {config.revert_poll_delay_ms}ms"),
    ], emoji="⚙️")


# =============================================================================
# Module Export
# =============================================================================

__all__ = [
    "Config",
    "ConfigValidationError",
    "EmbedColors",
    "NY_TZ",
    "get_config",
    "reset_config",
    "load_config",
    "resolve_database_path",
    "validate_and_log_config",
]
