"""SQLite persistence for kgrag.

Thin wrapper around a single sqlite3 connection. Writes accumulate in the
connection's implicit transaction until save() commits them.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from kgrag.rag.errors import StorageError

logger = logging.getLogger(__name__)


class Database:
    """Owns the sqlite3 connection for one project database file."""

    def __init__(self, path: Path | str) -> None:
        self.path = str(path)
        self._conn: sqlite3.Connection | None = None

    def open(self) -> Database:
        if self._conn is not None:
            return self
        if self.path != ":memory:":
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        try:
            self._conn = sqlite3.connect(self.path, check_same_thread=False)
        except sqlite3.Error as e:
            raise StorageError(f"Failed to open database {self.path}: {e}") from e
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA foreign_keys = ON")
        logger.debug("Database opened at %s", self.path)
        return self

    @property
    def connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StorageError("Database is not open")
        return self._conn

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    def execute(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Cursor:
        """Run a parameterized statement."""
        try:
            return self.connection.execute(sql, tuple(params))
        except sqlite3.Error as e:
            raise StorageError(str(e)) from e

    def executescript(self, script: str) -> None:
        try:
            self.connection.executescript(script)
        except sqlite3.Error as e:
            raise StorageError(str(e)) from e

    def query(self, sql: str, params: Sequence[Any] = ()) -> list[sqlite3.Row]:
        """Run a parameterized query and return all rows."""
        return self.execute(sql, params).fetchall()

    def query_one(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Row | None:
        return self.execute(sql, params).fetchone()

    @contextmanager
    def transaction(self) -> Iterator[Database]:
        """Group writes into one atomic unit: commit on success, roll back on error."""
        conn = self.connection
        try:
            yield self
        except BaseException:
            conn.rollback()
            raise
        else:
            self.save()

    def save(self) -> None:
        """Flush pending writes to disk."""
        try:
            self.connection.commit()
        except sqlite3.Error as e:
            raise StorageError(f"Commit failed: {e}") from e

    def close(self) -> None:
        if self._conn is None:
            return
        try:
            self._conn.commit()
        finally:
            self._conn.close()
            self._conn = None
