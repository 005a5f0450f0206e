"""
Bastion - Centralized Constants
===============================

Magic numbers shared across modules. Import from here instead of
hardcoding values.
"""

# =============================================================================
# Time Constants (in seconds)
# =============================================================================

SECONDS_PER_MINUTE = 60
SECONDS_PER_HOUR = 3600
SECONDS_PER_DAY = 86400

MS_PER_SECOND = 1000

# =============================================================================
# Database Constants
# =============================================================================

DB_CONNECTION_TIMEOUT = 30.0          # sqlite3.connect timeout (seconds)
SQLITE_BUSY_TIMEOUT = 5000            # PRAGMA busy_timeout (milliseconds)

# =============================================================================
# Discord Limits
# =============================================================================

EMBED_FIELD_VALUE_LIMIT = 1024
EMBED_DESCRIPTION_LIMIT = 4096
AUDIT_REASON_LIMIT = 512

# =============================================================================
# Invite Tracking Defaults
# =============================================================================

DEFAULT_FAKE_THRESHOLD_HOURS = 24
TOP_INVITERS_LIMIT = 10

# =============================================================================
# Moderation
# =============================================================================

MODERATION_WARN_REMAINING = frozenset({0, 1, 2})
"""Remaining safe actions at which a moderation actor is DM-warned."""

MAX_TIMEOUT_SECONDS = 28 * SECONDS_PER_DAY  # Discord communication_disabled_until cap


# =============================================================================
# Module Export
# =============================================================================

__all__ = [
    "SECONDS_PER_MINUTE",
    "SECONDS_PER_HOUR",
    "SECONDS_PER_DAY",
    "MS_PER_SECOND",
    "DB_CONNECTION_TIMEOUT",
    "SQLITE_BUSY_TIMEOUT",
    "EMBED_FIELD_VALUE_LIMIT",
    "EMBED_DESCRIPTION_LIMIT",
    "AUDIT_REASON_LIMIT",
    "DEFAULT_FAKE_THRESHOLD_HOURS",
    "TOP_INVITERS_LIMIT",
    "MODERATION_WARN_REMAINING",
    "MAX_TIMEOUT_SECONDS",
]
