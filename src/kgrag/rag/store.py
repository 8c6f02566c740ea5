"""Durable segment table plus the in-memory vector cache.

SQLite is authoritative. The cache maps relative document path to its
ordered segments and is what ranking reads. Every mutation writes SQLite
first and the cache second, and load_all() rebuilds the cache wholesale.
"""

from __future__ import annotations

import json
import logging
import numbers
import time
from typing import Any

from kgrag.core.database import Database
from kgrag.rag.errors import MalformedVectorData
from kgrag.rag.schema import (
    FILES_TABLE,
    SCHEMA_SQL,
    STORE_TABLE,
    VECTORS_TABLE,
    IndexedFile,
    Segment,
    StoreInfo,
)

logger = logging.getLogger(__name__)

ABSENT_MARKERS = frozenset({"", "undefined", "null", "none"})

VectorCache = dict[str, list[Segment]]


def now_ms() -> int:
    return int(time.time() * 1000)


def parse_vector_strict(payload: Any) -> list[float]:
    """Parse a persisted vector payload.

    Raises:
        MalformedVectorData: empty, an absence marker, invalid JSON, not a
            list, empty list, or containing non-numeric entries.
    """
    if payload is None:
        raise MalformedVectorData("vector payload is missing")
    if not isinstance(payload, str):
        raise MalformedVectorData(f"vector payload has type {type(payload).__name__}")
    if payload.strip().lower() in ABSENT_MARKERS:
        raise MalformedVectorData(f"vector payload is an absence marker: {payload!r}")
    try:
        value = json.loads(payload)
    except ValueError as e:
        raise MalformedVectorData(f"vector payload is not JSON ({len(payload)} chars)") from e
    if not isinstance(value, list) or not value:
        raise MalformedVectorData("vector payload is not a non-empty list")
    if not all(isinstance(v, numbers.Real) and not isinstance(v, bool) for v in value):
        raise MalformedVectorData("vector payload contains non-numeric entries")
    return [float(v) for v in value]


def parse_vector(payload: Any) -> list[float] | None:
    """Parse a persisted vector payload, returning None when it is unusable."""
    try:
        return parse_vector_strict(payload)
    except MalformedVectorData as e:
        logger.debug("Unusable vector payload: %s", e)
        return None


class VectorStore:
    """Segments, document records and the store record for one store scope."""

    def __init__(
        self,
        db: Database,
        store_id: str,
        dimensions: int | None = None,
    ) -> None:
        self.db = db
        self.store_id = store_id
        self.dimensions = dimensions
        self.cache: VectorCache = {}

    # ------------------------------------------------------------------
    # Schema and store record
    # ------------------------------------------------------------------

    def create_tables(self) -> None:
        self.db.executescript(SCHEMA_SQL)
        self.db.save()

    def ensure_store_record(
        self,
        project_name: str,
        workspace_root: str,
        store_name: str = "Local Store",
    ) -> None:
        """Insert the store record if this store id has none yet."""
        existing = self.db.query_one(
            f"SELECT id FROM {STORE_TABLE} WHERE store_id = ?", [self.store_id]
        )
        if existing is None:
            now = now_ms()
            self.db.execute(
                f"""INSERT INTO {STORE_TABLE}
                    (id, store_id, store_name, project_name, workspace_root,
                     created_at, last_sync_at, file_count)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                [f"store_{self.store_id}", self.store_id, store_name,
                 project_name, workspace_root, now, now, 0],
            )
        self.db.save()

    def delete_store_record(self) -> None:
        self.db.execute(f"DELETE FROM {STORE_TABLE} WHERE store_id = ?", [self.store_id])
        self.db.save()

    def get_store_info(self) -> StoreInfo | None:
        row = self.db.query_one(
            f"SELECT * FROM {STORE_TABLE} WHERE store_id = ?", [self.store_id]
        )
        return StoreInfo.from_row(row) if row is not None else None

    def refresh_store_count(self, count: int | None = None) -> None:
        """Persist the document count (default: cache size) and last-sync time."""
        file_count = len(self.cache) if count is None else count
        self.db.execute(
            f"UPDATE {STORE_TABLE} SET file_count = ?, last_sync_at = ? WHERE store_id = ?",
            [file_count, now_ms(), self.store_id],
        )
        self.db.save()

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def upsert_record(self, record: IndexedFile) -> None:
        """Replace the document record for record.file_path (no segments involved)."""
        with self.db.transaction():
            self._replace_record(record)

    def upsert_document(self, record: IndexedFile, segments: list[Segment]) -> None:
        """Atomically replace all segments and the record for one document.

        Old segments are deleted, new ones inserted and the record replaced in a
        single transaction. The cache is updated only after the commit.
        """
        path = record.file_path
        with self.db.transaction():
            self.db.execute(
                f"DELETE FROM {VECTORS_TABLE} WHERE file_path = ? AND store_id = ?",
                [path, self.store_id],
            )
            for segment in segments:
                self.db.execute(
                    f"""INSERT INTO {VECTORS_TABLE}
                        (id, file_path, chunk_index, chunk_text, vector_json, created_at, store_id)
                        VALUES (?, ?, ?, ?, ?, ?, ?)""",
                    [segment.id, path, segment.chunk_index, segment.text,
                     json.dumps(segment.vector), segment.created_at, self.store_id],
                )
            self._replace_record(record)

        self.cache[path] = list(segments)

    def _replace_record(self, record: IndexedFile) -> None:
        self.db.execute(
            f"DELETE FROM {FILES_TABLE} WHERE file_path = ? AND store_id = ?",
            [record.file_path, self.store_id],
        )
        self.db.execute(
            f"""INSERT INTO {FILES_TABLE}
                (id, file_path, file_name, file_size, mime_type, indexed_at, content_ref, store_id)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
            [record.id, record.file_path, record.file_name, record.file_size,
             record.mime_type, record.indexed_at, record.content_ref, self.store_id],
        )

    def delete_document(self, relative_path: str) -> bool:
        """Remove segments, record and cache entry. Returns whether anything existed."""
        with self.db.transaction():
            vectors = self.db.execute(
                f"DELETE FROM {VECTORS_TABLE} WHERE file_path = ? AND store_id = ?",
                [relative_path, self.store_id],
            ).rowcount
            files = self.db.execute(
                f"DELETE FROM {FILES_TABLE} WHERE file_path = ? AND store_id = ?",
                [relative_path, self.store_id],
            ).rowcount

        cached = self.cache.pop(relative_path, None)
        return bool(vectors or files or cached)

    def clear(self) -> None:
        """Drop every segment and record for this store, and empty the cache."""
        with self.db.transaction():
            self.db.execute(f"DELETE FROM {VECTORS_TABLE} WHERE store_id = ?", [self.store_id])
            self.db.execute(f"DELETE FROM {FILES_TABLE} WHERE store_id = ?", [self.store_id])
        self.cache.clear()

    def get_indexed_files(self) -> list[IndexedFile]:
        rows = self.db.query(
            f"SELECT * FROM {FILES_TABLE} WHERE store_id = ? ORDER BY file_path",
            [self.store_id],
        )
        return [IndexedFile.from_row(row) for row in rows]

    def get_indexed_file(self, relative_path: str) -> IndexedFile | None:
        row = self.db.query_one(
            f"SELECT * FROM {FILES_TABLE} WHERE file_path = ? AND store_id = ?",
            [relative_path, self.store_id],
        )
        return IndexedFile.from_row(row) if row is not None else None

    def count_segments(self, relative_path: str | None = None) -> int:
        """Number of persisted segment rows, for one path or the whole store."""
        if relative_path is None:
            row = self.db.query_one(
                f"SELECT COUNT(*) FROM {VECTORS_TABLE} WHERE store_id = ?", [self.store_id]
            )
        else:
            row = self.db.query_one(
                f"SELECT COUNT(*) FROM {VECTORS_TABLE} WHERE file_path = ? AND store_id = ?",
                [relative_path, self.store_id],
            )
        return int(row[0]) if row is not None else 0

    # ------------------------------------------------------------------
    # Cache
    # ------------------------------------------------------------------

    def load_all(self) -> int:
        """Rebuild the cache from durable rows, skipping unusable vectors.

        Returns the number of segments loaded.
        """
        rows = self.db.query(
            f"""SELECT id, file_path, chunk_index, chunk_text, vector_json, created_at
                FROM {VECTORS_TABLE} WHERE store_id = ?
                ORDER BY file_path, chunk_index""",
            [self.store_id],
        )

        self.cache.clear()
        loaded = 0
        skipped = 0
        for row in rows:
            vector = parse_vector(row["vector_json"])
            if vector is None:
                logger.warning("Skipping segment %s of %s: malformed vector", row["id"], row["file_path"])
                skipped += 1
                continue

            if self.dimensions is not None and len(vector) != self.dimensions:
                logger.warning(
                    "Skipping segment %s of %s: %d dimensions, expected %d",
                    row["id"], row["file_path"], len(vector), self.dimensions,
                )
                skipped += 1
                continue

            self.cache.setdefault(row["file_path"], []).append(Segment(
                id=row["id"],
                file_path=row["file_path"],
                chunk_index=row["chunk_index"],
                text=row["chunk_text"],
                vector=vector,
                created_at=row["created_at"],
            ))
            loaded += 1

        logger.info(
            "Loaded %d segments for %d documents into cache (%d skipped)",
            loaded, len(self.cache), skipped,
        )
        return loaded
