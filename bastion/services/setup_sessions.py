"""
Bastion - Setup Sessions
========================

Per-guild store for the step-by-step /setup flow.

DESIGN:
    A session collects module configs, a fallback log channel and
    whitelist entries across several commands and only writes them on
    commit. It expires when older than `max_age` or idle longer than
    `idle_timeout`. Expired sessions are evicted on access, and every
    start() sweeps the whole store so abandoned guilds do not linger.
    Commit writes the whole draft in one transaction.
    One live session per guild at a time.
"""

import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Tuple

from bastion.core.logger import logger
from bastion.core.config import get_config

if TYPE_CHECKING:
    from bastion.core.database import DatabaseManager


WhitelistDraft = Tuple[str, int, str, Optional[str]]
"""(subject_kind, subject_id, level, module_type)"""


class SetupSessionError(Exception):
    """Base error for setup session operations."""


class SetupSessionActive(SetupSessionError):
    """A live session already exists for the guild."""

    def __init__(self, guild_id: int, user_id: int) -> None:
        super().__init__(f"Setup already in progress for guild {guild_id} by user {user_id}")
        self.guild_id = guild_id
        self.user_id = user_id


class SetupSessionNotFound(SetupSessionError):
    """No live session for the guild."""


@dataclass
class SetupSession:
    """Draft configuration collected during setup."""

    guild_id: int
    user_id: int
    started_at: float
    last_active_at: float
    log_channel_id: Optional[int] = None
    modules: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    whitelist: List[WhitelistDraft] = field(default_factory=list)

    def is_expired(self, now: float, max_age: float, idle_timeout: float) -> bool:
        return now - self.started_at > max_age or now - self.last_active_at > idle_timeout


class SetupSessionStore:
    """
    TTL store of setup sessions keyed by guild.

    Attributes:
        max_age: Seconds a session may live in total.
        idle_timeout: Seconds a session may sit unused.
    """

    UPDATABLE_FIELDS = frozenset({"log_channel_id"})

    def __init__(
        self,
        max_age: Optional[float] = None,
        idle_timeout: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        config = get_config()
        self.max_age = max_age if max_age is not None else config.setup_session_max_age
        self.idle_timeout = idle_timeout if idle_timeout is not None else config.setup_session_idle_timeout
        self._clock = clock
        self._sessions: Dict[int, SetupSession] = {}

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self, guild_id: int, user_id: int) -> SetupSession:
        """Open a session. Raises SetupSessionActive while one is live."""
        self.sweep()
        existing = self.get(guild_id)
        if existing is not None:
            raise SetupSessionActive(guild_id, existing.user_id)

        now = self._clock()
        session = SetupSession(guild_id=guild_id, user_id=user_id, started_at=now, last_active_at=now)
        self._sessions[guild_id] = session
        logger.tree("Setup Session Started", [
            ("Guild ID", str(guild_id)),
            ("User ID", str(user_id)),
        ], emoji="🧭")
        return session

    def get(self, guild_id: int) -> Optional[SetupSession]:
        """Live session for the guild, evicting it if expired."""
        session = self._sessions.get(guild_id)
        if session is None:
            return None
        if session.is_expired(self._clock(), self.max_age, self.idle_timeout):
            self._sessions.pop(guild_id, None)
            logger.info("Setup Session Expired", [
                ("Guild ID", str(guild_id)),
                ("User ID", str(session.user_id)),
            ])
            return None
        return session

    def sweep(self) -> int:
        """Drop every expired session. Returns how many were dropped."""
        now = self._clock()
        expired = [
            guild_id for guild_id, session in self._sessions.items()
            if session.is_expired(now, self.max_age, self.idle_timeout)
        ]
        for guild_id in expired:
            del self._sessions[guild_id]
        if expired:
            logger.info("Setup Sessions Swept", [
                ("Expired", str(len(expired))),
                ("Remaining", str(len(self._sessions))),
            ])
        return len(expired)

    def _require(self, guild_id: int) -> SetupSession:
        session = self.get(guild_id)
        if session is None:
            raise SetupSessionNotFound(f"No setup in progress for guild {guild_id}")
        return session

    def touch(self, guild_id: int) -> SetupSession:
        session = self._require(guild_id)
        session.last_active_at = self._clock()
        return session

    def cancel(self, guild_id: int) -> bool:
        """Drop the session. Returns whether a live one existed."""
        existed = self.get(guild_id) is not None
        self._sessions.pop(guild_id, None)
        return existed

    # =========================================================================
    # Draft Changes
    # =========================================================================

    def update(self, guild_id: int, **changes: Any) -> SetupSession:
        """Set plain session fields (currently the fallback log channel)."""
        unknown = set(changes) - self.UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown setup fields: {', '.join(sorted(unknown))}")
        session = self.touch(guild_id)
        for name, value in changes.items():
            setattr(session, name, value)
        return session

    def set_module(self, guild_id: int, module_type: str, **fields: Any) -> SetupSession:
        """Merge config fields for one module into the draft."""
        session = self.touch(guild_id)
        session.modules.setdefault(module_type, {}).update(fields)
        return session

    def add_whitelist(
        self,
        guild_id: int,
        subject_kind: str,
        subject_id: int,
        level: str,
        module_type: Optional[str] = None,
    ) -> SetupSession:
        session = self.touch(guild_id)
        draft = (subject_kind, subject_id, level, module_type)
        # Same subject and scope: latest level wins
        session.whitelist = [
            entry for entry in session.whitelist
            if (entry[0], entry[1], entry[3]) != (subject_kind, subject_id, module_type)
        ]
        session.whitelist.append(draft)
        return session

    # =========================================================================
    # Commit
    # =========================================================================

    def commit(self, guild_id: int, db: "DatabaseManager") -> SetupSession:
        """
        Persist the draft and close the session.

        Nothing is written if any part of the draft fails; the session
        stays open so the user can fix it and finish again.
        """
        session = self._require(guild_id)

        with db.transaction():
            if session.log_channel_id is not None:
                db.set_guild_log_channel(guild_id, session.log_channel_id)

            for module_type, fields in session.modules.items():
                db.upsert_module_config(guild_id, module_type, **fields)

            for subject_kind, subject_id, level, module_type in session.whitelist:
                db.add_whitelist_entry(guild_id, subject_kind, subject_id, level, module_type)

        self._sessions.pop(guild_id, None)
        logger.tree("Setup Session Committed", [
            ("Guild ID", str(guild_id)),
            ("User ID", str(session.user_id)),
            ("Modules", str(len(session.modules))),
            ("Whitelist Entries", str(len(session.whitelist))),
            ("Log Channel", str(session.log_channel_id) if session.log_channel_id else "Unchanged"),
        ], emoji="✅")
        return session

    def __len__(self) -> int:
        return len(self._sessions)


__all__ = [
    "SetupSession",
    "SetupSessionStore",
    "SetupSessionError",
    "SetupSessionActive",
    "SetupSessionNotFound",
]
