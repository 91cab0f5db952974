from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from .errors import StorageUnavailable
from .log import get_logger

log = get_logger(__name__)

# Bump on any incompatible layout change; existing tables are dropped and
# recreated, data is not migrated.
SCHEMA_VERSION = 1

_TABLES = ("bookmarks", "preferences", "history")

_SCHEMA = """
CREATE TABLE IF NOT EXISTS bookmarks (
    id TEXT PRIMARY KEY,
    parent_id TEXT,
    position INTEGER NOT NULL CHECK (position >= 0),
    title TEXT NOT NULL DEFAULT '',
    url TEXT,
    description TEXT,
    icon TEXT,
    folder INTEGER NOT NULL DEFAULT 0
);
CREATE INDEX IF NOT EXISTS idx_bookmarks_parent ON bookmarks(parent_id);
CREATE TABLE IF NOT EXISTS preferences (
    key TEXT PRIMARY KEY,
    value TEXT
);
CREATE TABLE IF NOT EXISTS history (
    timestamp INTEGER PRIMARY KEY,
    action TEXT NOT NULL,
    data_json TEXT NOT NULL DEFAULT '{}'
);
"""


class BookmarksDB:
    """Connection handle shared by the bookmark, preference and history stores."""

    def __init__(self, db_path: Path | str, *, busy_timeout_ms: int = 5000):
        self.db_path = Path(db_path)
        self.busy_timeout_ms = max(0, int(busy_timeout_ms))
        self.conn: sqlite3.Connection | None = None
        self._depth = 0

    def __enter__(self) -> "BookmarksDB":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def is_open(self) -> bool:
        return self.conn is not None

    def open(self) -> None:
        if self.conn is not None:
            return
        timeout_s = max(0.1, self.busy_timeout_ms / 1000.0)
        try:
            if str(self.db_path) != ":memory:":
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(self.db_path), timeout=timeout_s, isolation_level=None)
        except (OSError, sqlite3.Error) as e:
            raise StorageUnavailable(f"cannot open bookmark database {self.db_path}: {e}") from e
        conn.row_factory = sqlite3.Row
        try:
            if self.busy_timeout_ms > 0:
                conn.execute(f"PRAGMA busy_timeout = {self.busy_timeout_ms}")
            self._ensure_schema(conn)
        except sqlite3.Error as e:
            conn.close()
            raise StorageUnavailable(f"cannot initialize bookmark database {self.db_path}: {e}") from e
        self.conn = conn
        log.debug("Opened bookmark database %s (schema v%d)", self.db_path, SCHEMA_VERSION)

    def close(self) -> None:
        if self.conn is not None:
            self.conn.close()
            self.conn = None

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Cursor]:
        """One logical operation: every write inside commits together or not at all.

        Nested use joins the outer transaction.
        """
        c = self.cursor()
        if self._depth:
            self._depth += 1
            try:
                yield c
            finally:
                self._depth -= 1
            return
        try:
            c.execute("BEGIN IMMEDIATE")
        except sqlite3.OperationalError as e:
            raise _unavailable(self.db_path, e) from e
        self._depth = 1
        try:
            yield c
            c.execute("COMMIT")
        except sqlite3.OperationalError as e:
            self._rollback(c)
            raise _unavailable(self.db_path, e) from e
        except BaseException:
            self._rollback(c)
            raise
        finally:
            self._depth = 0

    def _rollback(self, c: sqlite3.Cursor) -> None:
        if self.conn is not None and self.conn.in_transaction:
            c.execute("ROLLBACK")

    @contextmanager
    def reading(self) -> Iterator[sqlite3.Cursor]:
        """Cursor for reads outside a transaction; storage failures surface as StorageUnavailable."""
        c = self.cursor()
        try:
            yield c
        except sqlite3.DatabaseError as e:
            raise _unavailable(self.db_path, e) from e

    def cursor(self) -> sqlite3.Cursor:
        if self.conn is None:
            raise StorageUnavailable("bookmark database is not open")
        return self.conn.cursor()

    def schema_version(self) -> int:
        with self.reading() as c:
            row = c.execute("PRAGMA user_version").fetchone()
        return int(row[0] or 0)

    def _ensure_schema(self, conn: sqlite3.Connection) -> None:
        current = int(conn.execute("PRAGMA user_version").fetchone()[0] or 0)
        if current == SCHEMA_VERSION:
            conn.executescript(_SCHEMA)
            return
        existing = {
            str(r[0])
            for r in conn.execute("SELECT name FROM sqlite_master WHERE type='table'").fetchall()
        }
        stale = [t for t in _TABLES if t in existing]
        if stale:
            log.warning(
                "Bookmark database schema v%d != v%d; recreating tables %s (stored data is discarded)",
                current,
                SCHEMA_VERSION,
                ", ".join(stale),
            )
        script = "".join(f"DROP TABLE IF EXISTS {t};\n" for t in _TABLES)
        conn.executescript(
            "BEGIN;\n" + script + _SCHEMA + f"PRAGMA user_version = {SCHEMA_VERSION};\nCOMMIT;\n"
        )


def _unavailable(db_path: Path, e: sqlite3.Error) -> StorageUnavailable:
    msg = str(e).strip()
    if "locked" in msg.lower() or "busy" in msg.lower():
        return StorageUnavailable(f"bookmark database is locked ({db_path}): {msg}")
    return StorageUnavailable(f"bookmark database access failed ({db_path}): {msg}")
