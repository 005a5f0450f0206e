"""
Bastion - Database Manager
==========================

Process-wide SQLite handle for protection state, moderation timers,
invite tracking and membership logging.

DESIGN:
    One connection shared by the event loop and the workers, guarded by a
    lock. Single statements autocommit through execute(); anything that
    reads then writes (violation counting, upserts spanning two tables)
    goes through transaction(), which takes SQLite's write lock up front
    with BEGIN IMMEDIATE so two handlers cannot interleave.
"""

import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional, Sequence, Tuple, Union

from bastion.core.logger import logger
from bastion.core.config import get_config
from bastion.core.constants import DB_CONNECTION_TIMEOUT, SQLITE_BUSY_TIMEOUT

from bastion.core.database.schema import SchemaMixin
from bastion.core.database.modules import ModuleConfigMixin
from bastion.core.database.whitelist import WhitelistMixin
from bastion.core.database.violations import ViolationsMixin
from bastion.core.database.moderation import ModerationMixin
from bastion.core.database.invites import InvitesMixin
from bastion.core.database.logging_guilds import LoggingGuildsMixin


PRAGMAS = (
    "PRAGMA journal_mode=WAL",
    "PRAGMA synchronous=NORMAL",
    "PRAGMA foreign_keys=ON",
    f"PRAGMA busy_timeout={SQLITE_BUSY_TIMEOUT}",
)


class DatabaseManager(
    SchemaMixin,
    ModuleConfigMixin,
    WhitelistMixin,
    ViolationsMixin,
    ModerationMixin,
    InvitesMixin,
    LoggingGuildsMixin,
):
    """
    Singleton database manager.

    Attributes:
        db_path: SQLite file in use.
    """

    _instance: Optional["DatabaseManager"] = None
    _instance_lock = threading.Lock()

    def __new__(cls, db_path: Optional[Union[str, Path]] = None) -> "DatabaseManager":
        with cls._instance_lock:
            if cls._instance is None:
                instance = super().__new__(cls)
                instance._initialized = False
                cls._instance = instance
        return cls._instance

    def __init__(self, db_path: Optional[Union[str, Path]] = None) -> None:
        """
        Open the database and create missing tables.

        Args:
            db_path: Database file. Defaults to the configured DATABASE_URL.
        """
        if self._initialized:
            return

        self.db_path: Path = Path(db_path) if db_path else get_config().database_path
        self._lock = threading.RLock()
        self._conn: Optional[sqlite3.Connection] = None
        self._tx_depth = 0

        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._connect()
        self._init_tables()
        self._initialized = True

        logger.tree("Database Ready", [
            ("Path", str(self.db_path)),
            ("Journal", "WAL"),
        ], emoji="🗄️")

    # =========================================================================
    # Connection
    # =========================================================================

    def _connect(self) -> None:
        try:
            conn = sqlite3.connect(
                str(self.db_path),
                timeout=DB_CONNECTION_TIMEOUT,
                check_same_thread=False,
                isolation_level=None,
            )
            for pragma in PRAGMAS:
                conn.execute(pragma)
        except sqlite3.Error as e:
            logger.error("Database Connection Failed", [
                ("Path", str(self.db_path)),
                ("Error", str(e)),
            ])
            raise
        conn.row_factory = sqlite3.Row
        self._conn = conn

    def _ensure_connection(self) -> sqlite3.Connection:
        """Live connection, reopened if it was closed."""
        if self._conn is None:
            self._connect()
        return self._conn

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
                logger.info("Database Connection Closed", [("Path", str(self.db_path))])

    # =========================================================================
    # Statements
    # =========================================================================

    def execute(self, query: str, params: Sequence = ()) -> sqlite3.Cursor:
        """Run one autocommitted statement."""
        with self._lock:
            return self._ensure_connection().execute(query, tuple(params))

    def executemany(self, query: str, rows: List[Tuple]) -> sqlite3.Cursor:
        """Run one statement per row, all in a single transaction."""
        with self.transaction() as tx:
            return tx.executemany(query, rows)

    def fetchone(self, query: str, params: Sequence = ()) -> Optional[sqlite3.Row]:
        return self.execute(query, params).fetchone()

    def fetchall(self, query: str, params: Sequence = ()) -> List[sqlite3.Row]:
        return self.execute(query, params).fetchall()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Cursor]:
        """
        Atomic block holding SQLite's write lock from the first statement.

        Yields a cursor; commits when the block exits cleanly, rolls back
        and re-raises otherwise. A transaction opened inside another one
        becomes a savepoint, so mixin methods compose into a larger
        all-or-nothing write.

        Usage:
            with db.transaction() as tx:
                tx.execute("SELECT ...", (...))
                row = tx.fetchone()
                tx.execute("UPDATE ...", (...))
        """
        with self._lock:
            conn = self._ensure_connection()
            cursor = conn.cursor()
            savepoint = f"sp_{self._tx_depth}" if self._tx_depth else None
            cursor.execute(f"SAVEPOINT {savepoint}" if savepoint else "BEGIN IMMEDIATE")
            self._tx_depth += 1
            try:
                yield cursor
            except BaseException as e:
                if savepoint:
                    cursor.execute(f"ROLLBACK TO {savepoint}")
                    cursor.execute(f"RELEASE {savepoint}")
                else:
                    cursor.execute("ROLLBACK")
                    logger.warning("Database Transaction Rolled Back", [
                        ("Error", str(e)[:100] or type(e).__name__),
                    ])
                raise
            else:
                cursor.execute(f"RELEASE {savepoint}" if savepoint else "COMMIT")
            finally:
                self._tx_depth -= 1


def get_db() -> DatabaseManager:
    """Get the global database manager instance."""
    return DatabaseManager()


__all__ = [
    "DatabaseManager",
    "get_db",
]
