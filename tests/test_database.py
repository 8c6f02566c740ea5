"""Tests for the SQLite database wrapper."""

from __future__ import annotations

from pathlib import Path

import pytest

from kgrag.core.database import Database
from kgrag.rag.errors import StorageError


@pytest.fixture
def db() -> Database:
    database = Database(":memory:").open()
    database.executescript("CREATE TABLE t (id INTEGER PRIMARY KEY, name TEXT NOT NULL);")
    yield database
    database.close()


class TestDatabase:
    def test_open_creates_parent_dir(self, tmp_path: Path):
        path = tmp_path / "nested" / "dir" / "k.sqlite"
        db = Database(path).open()
        assert path.parent.is_dir()
        assert db.is_open
        db.close()
        assert not db.is_open

    def test_open_is_idempotent(self, db: Database):
        conn = db.connection
        assert db.open() is db
        assert db.connection is conn

    def test_query_returns_rows(self, db: Database):
        db.execute("INSERT INTO t (name) VALUES (?)", ["a"])
        db.execute("INSERT INTO t (name) VALUES (?)", ["b"])
        rows = db.query("SELECT name FROM t ORDER BY name")
        assert [r["name"] for r in rows] == ["a", "b"]
        assert db.query_one("SELECT COUNT(*) FROM t")[0] == 2

    def test_sql_error_wrapped(self, db: Database):
        with pytest.raises(StorageError):
            db.execute("SELECT * FROM missing_table")

    def test_constraint_error_wrapped(self, db: Database):
        with pytest.raises(StorageError):
            db.execute("INSERT INTO t (name) VALUES (NULL)")

    def test_closed_connection_raises(self):
        with pytest.raises(StorageError):
            Database(":memory:").connection


class TestTransaction:
    def test_commit_on_success(self, tmp_path: Path):
        path = tmp_path / "k.sqlite"
        db = Database(path).open()
        db.executescript("CREATE TABLE t (id INTEGER PRIMARY KEY, name TEXT);")
        with db.transaction():
            db.execute("INSERT INTO t (name) VALUES (?)", ["kept"])
        db.close()

        reopened = Database(path).open()
        assert reopened.query_one("SELECT name FROM t")["name"] == "kept"
        reopened.close()

    def test_rollback_on_error(self, db: Database):
        with pytest.raises(RuntimeError):
            with db.transaction():
                db.execute("INSERT INTO t (name) VALUES (?)", ["lost"])
                raise RuntimeError("boom")
        assert db.query_one("SELECT COUNT(*) FROM t")[0] == 0

    def test_rollback_on_storage_error(self, db: Database):
        with pytest.raises(StorageError):
            with db.transaction():
                db.execute("INSERT INTO t (name) VALUES (?)", ["lost"])
                db.execute("INSERT INTO t (name) VALUES (NULL)")
        assert db.query_one("SELECT COUNT(*) FROM t")[0] == 0
