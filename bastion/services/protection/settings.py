"""
Bastion - Module Configuration
==============================

Typed view over a module_configs row and its JSON settings blob.

DESIGN:
    The settings blob is user-edited and may be malformed. Parsing never
    fails: a blob that is not an object, or a key with the wrong type,
    falls back to the default for that key and logs a warning.
"""

from dataclasses import dataclass, field, fields
from typing import TYPE_CHECKING, Any, Dict, FrozenSet, Optional

from bastion.core.logger import logger
from bastion.core.constants import DEFAULT_FAKE_THRESHOLD_HOURS
from bastion.core.database import ModuleConfigRecord, _safe_json_loads

from .constants import ModuleType, PunishmentType

if TYPE_CHECKING:
    from bastion.core.database import DatabaseManager


# =============================================================================
# Settings Blob
# =============================================================================

INT_SETTINGS = frozenset({
    "fake_threshold_hours",
    "membership_log_channel_id",
    "message_log_channel_id",
    "voice_log_channel_id",
})
"""Keys holding non-negative integers; the rest are booleans."""


@dataclass(frozen=True)
class ModuleSettings:
    """
    Module-specific options stored as JSON.

    Attributes:
        punish_when: Sub-actions that count as violations; empty means all.
        ignore_private_channels: Skip actors with manage overwrites on the channel.
        track_vanity: Record joins through the vanity URL.
        ignore_bots: Exclude bot accounts from invite attribution.
        fake_threshold_hours: Leaves sooner than this after joining are fake.
        log_membership: Log joins/leaves and keep member role snapshots.
        membership_log_channel_id: Channel for membership logs, overrides the module channel.
        log_messages: Log message edits and deletions.
        message_log_channel_id: Channel for message logs.
        log_voice: Log voice joins, leaves, moves and state changes.
        voice_log_channel_id: Channel for voice logs.
    """

    punish_when: FrozenSet[str] = field(default_factory=frozenset)
    ignore_private_channels: bool = False
    track_vanity: bool = False
    ignore_bots: bool = True
    fake_threshold_hours: int = DEFAULT_FAKE_THRESHOLD_HOURS
    log_membership: bool = False
    membership_log_channel_id: Optional[int] = None
    log_messages: bool = False
    message_log_channel_id: Optional[int] = None
    log_voice: bool = False
    voice_log_channel_id: Optional[int] = None

    @classmethod
    def from_json(cls, raw: Optional[str], module: str = "") -> "ModuleSettings":
        """Parse a settings blob, falling back to defaults key by key."""
        data = _safe_json_loads(raw, {})
        if not isinstance(data, dict):
            logger.warning("Module Settings Malformed, Using Defaults", [
                ("Module", module),
                ("Type", type(data).__name__),
            ])
            return cls()

        values: Dict[str, Any] = {}
        for setting in fields(cls):
            if setting.name not in data:
                continue
            value = data[setting.name]
            if value is None and setting.default is None:
                continue

            if setting.name == "punish_when":
                if isinstance(value, list) and all(isinstance(v, str) for v in value):
                    values["punish_when"] = frozenset(v.lower() for v in value)
                    continue
            elif setting.name in INT_SETTINGS:
                if isinstance(value, int) and not isinstance(value, bool) and value >= 0:
                    values[setting.name] = value
                    continue
            elif isinstance(value, bool):
                values[setting.name] = value
                continue

            logger.warning("Module Setting Ignored", [
                ("Module", module),
                ("Key", setting.name),
                ("Value", repr(value)[:50]),
            ])

        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        """Serialisable form for storage."""
        return {
            "punish_when": sorted(self.punish_when),
            "ignore_private_channels": self.ignore_private_channels,
            "track_vanity": self.track_vanity,
            "ignore_bots": self.ignore_bots,
            "fake_threshold_hours": self.fake_threshold_hours,
            "log_membership": self.log_membership,
            "membership_log_channel_id": self.membership_log_channel_id,
            "log_messages": self.log_messages,
            "message_log_channel_id": self.message_log_channel_id,
            "log_voice": self.log_voice,
            "voice_log_channel_id": self.voice_log_channel_id,
        }

    def punishes(self, sub_action: str) -> bool:
        """Whether the sub-action qualifies for punishment."""
        return not self.punish_when or sub_action in self.punish_when


# =============================================================================
# Module Config
# =============================================================================

@dataclass(frozen=True)
class ModuleConfig:
    """A module_configs row with parsed types."""

    guild_id: int
    module: ModuleType
    enabled: bool
    punishment: PunishmentType
    punishment_threshold: int
    decay_window_minutes: int
    revert: bool
    log_channel_id: Optional[int]
    settings: ModuleSettings

    @property
    def effective_threshold(self) -> int:
        """Configured threshold, never below 1."""
        return max(self.punishment_threshold, 1)

    @classmethod
    def from_record(cls, record: ModuleConfigRecord) -> "ModuleConfig":
        module = ModuleType(record["module_type"])
        return cls(
            guild_id=record["guild_id"],
            module=module,
            enabled=bool(record.get("enabled", 0)),
            punishment=PunishmentType.parse(record.get("punishment")),
            punishment_threshold=int(record.get("punishment_threshold") or 0),
            decay_window_minutes=int(record.get("decay_window_minutes") or 0),
            revert=bool(record.get("revert", 1)),
            log_channel_id=record.get("log_channel_id"),
            settings=ModuleSettings.from_json(record.get("settings"), module.value),
        )


def load_module_config(
    db: "DatabaseManager",
    guild_id: int,
    module: ModuleType,
) -> Optional[ModuleConfig]:
    """Load a module's config, None if it was never configured."""
    record = db.get_module_config(guild_id, module.value)
    if record is None:
        return None
    return ModuleConfig.from_record(record)


def load_enabled_config(
    db: "DatabaseManager",
    guild_id: int,
    module: ModuleType,
) -> Optional[ModuleConfig]:
    """Load a module's config only if it exists and is enabled."""
    config = load_module_config(db, guild_id, module)
    if config is None or not config.enabled:
        return None
    return config


__all__ = [
    "ModuleSettings",
    "ModuleConfig",
    "load_module_config",
    "load_enabled_config",
]
