"""
Shared SQLite plumbing for the memory and content stores.

SQLite connections cannot cross threads, and the indexer's worker pool and
the scheduler's executor jobs all touch the stores. Each thread therefore
opens its own connection on first use; `close()` closes all of them.
"""

import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional


logger = logging.getLogger(__name__)


DEFAULT_DB_PATH = ".news_tracker/news.db"


def default_db_path() -> str:
    """Default database location under the user's home directory."""
    return str(Path.home() / DEFAULT_DB_PATH)


class SQLiteBackend:
    """
    Base class for SQLite-backed stores.

    Subclasses set SCHEMA_VERSION and VERSION_TABLE and implement
    `_apply_migrations(cursor, from_version)`. The version table name is
    per store so the memory and content stores can share one file.
    """

    SCHEMA_VERSION = 1
    VERSION_TABLE = "schema_version"

    def __init__(self, db_path: Optional[str] = None):
        self.db_path = db_path or default_db_path()
        self._local = threading.local()
        self._open: List[sqlite3.Connection] = []
        self._open_lock = threading.Lock()

        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._migrate()

    @property
    def _conn(self) -> sqlite3.Connection:
        conn = getattr(self._local, "conn", None)
        if conn is None:
            conn = sqlite3.connect(self.db_path, timeout=30.0, check_same_thread=False)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA foreign_keys = ON")
            self._local.conn = conn
            with self._open_lock:
                self._open.append(conn)
        return conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Cursor]:
        """Cursor whose work is committed on success and rolled back on error."""
        conn = self._conn
        cursor = conn.cursor()
        try:
            yield cursor
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            cursor.close()

    def _migrate(self):
        with self._transaction() as cursor:
            cursor.execute(
                f"CREATE TABLE IF NOT EXISTS {self.VERSION_TABLE} (version INTEGER PRIMARY KEY)"
            )
            found = cursor.execute(f"SELECT MAX(version) AS version FROM {self.VERSION_TABLE}").fetchone()
            from_version = found["version"] or 0
            if from_version >= self.SCHEMA_VERSION:
                return

            self._apply_migrations(cursor, from_version)
            cursor.execute(
                f"INSERT OR REPLACE INTO {self.VERSION_TABLE} (version) VALUES (?)",
                (self.SCHEMA_VERSION,),
            )
        logger.debug(f"{self.VERSION_TABLE} in {self.db_path}: v{from_version} -> v{self.SCHEMA_VERSION}")

    def _apply_migrations(self, cursor: sqlite3.Cursor, from_version: int):
        raise NotImplementedError

    def close(self):
        """Close the connections opened by every thread."""
        with self._open_lock:
            connections, self._open = self._open, []
        for conn in connections:
            conn.close()
        self._local = threading.local()
