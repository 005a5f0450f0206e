"""
Bastion - Duration Utilities
============================

Parse and format moderation durations ("1d12h", "30m", "permanent").

Usage:
    from bastion.utils.duration import parse_duration, format_duration

    seconds = parse_duration("1h30m")   # 5400
    display = format_duration(5400)     # "1h 30m"
"""

import re
from typing import Optional

from bastion.core.constants import SECONDS_PER_DAY, SECONDS_PER_HOUR, SECONDS_PER_MINUTE


# =============================================================================
# Constants
# =============================================================================

SECONDS_PER_WEEK = 7 * SECONDS_PER_DAY

PERMANENT_KEYWORDS = frozenset({"permanent", "perm", "forever", "inf"})

TIME_MULTIPLIERS = {
    "w": SECONDS_PER_WEEK,
    "d": SECONDS_PER_DAY,
    "h": SECONDS_PER_HOUR,
    "m": SECONDS_PER_MINUTE,
    "s": 1,
}

_DURATION_PART = re.compile(r"(\d+)\s*([wdhms])")


# =============================================================================
# Parsing
# =============================================================================

def parse_duration(duration_str: Optional[str]) -> Optional[int]:
    """
    Parse a duration string into seconds.

    Accepts any sequence of <number><unit> pairs with units w/d/h/m/s,
    e.g. "10m30s", "1h 30m", "2d". A bare number means minutes.

    Returns:
        Duration in seconds, or None for permanent/invalid input.

    Examples:
        >>> parse_duration("10m30s")
        630
        >>> parse_duration("1d")
        86400
        >>> parse_duration("45")
        2700
        >>> parse_duration("invalid")
        None
    """
    if not duration_str:
        return None

    text = duration_str.lower().strip()
    if text in PERMANENT_KEYWORDS:
        return None

    if text.isdigit():
        return int(text) * SECONDS_PER_MINUTE or None

    # Whole string must be made of recognised parts
    if _DURATION_PART.sub("", text).strip():
        return None

    total = sum(int(value) * TIME_MULTIPLIERS[unit] for value, unit in _DURATION_PART.findall(text))
    return total if total > 0 else None


def is_permanent(duration_str: Optional[str]) -> bool:
    """True if the string names a permanent duration."""
    return bool(duration_str) and duration_str.lower().strip() in PERMANENT_KEYWORDS


# =============================================================================
# Formatting
# =============================================================================

def format_duration(seconds: Optional[int], max_units: int = 3) -> str:
    """
    Format seconds into a human-readable string like "1d 12h 30m".

    None formats as "Permanent"; anything under a minute as "< 1m".
    """
    if seconds is None:
        return "Permanent"
    if seconds < SECONDS_PER_MINUTE:
        return "< 1m"

    parts = []
    for unit, size in (("w", SECONDS_PER_WEEK), ("d", SECONDS_PER_DAY),
                       ("h", SECONDS_PER_HOUR), ("m", SECONDS_PER_MINUTE)):
        if seconds >= size and len(parts) < max_units:
            value, seconds = divmod(seconds, size)
            parts.append(f"{value}{unit}")

    return " ".join(parts)


# =============================================================================
# Module Export
# =============================================================================

__all__ = [
    "parse_duration",
    "is_permanent",
    "format_duration",
    "PERMANENT_KEYWORDS",
]
