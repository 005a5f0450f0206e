"""
Bastion - Database Helpers
==========================

Shared helpers for the database mixins.
"""

import json
from typing import Any, Iterable, Optional

from bastion.core.logger import logger


def _safe_json_loads(value: Optional[str], default: Any = None) -> Any:
    """
    Decode a JSON column.

    Empty columns and corrupted blobs both yield `default`. Corruption is
    logged once per read so a bad row shows up without breaking the caller.
    """
    if not value:
        return default
    try:
        return json.loads(value)
    except ValueError:
        logger.warning("Corrupted JSON Column", [
            ("Value", value[:50]),
            ("Fallback", repr(default)),
        ])
        return default


def _placeholders(values: Iterable[Any]) -> str:
    """"?, ?, ?" for an IN (...) clause."""
    return ", ".join("?" for _ in values)
