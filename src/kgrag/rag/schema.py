"""Table schema and record types for the retrieval index."""

from __future__ import annotations

import hashlib
import sqlite3
from dataclasses import asdict, dataclass, field
from typing import Any


STORE_TABLE = "rag_store_info"
FILES_TABLE = "indexed_files"
VECTORS_TABLE = "local_rag_vectors"

LOCAL_CONTENT_REF = "local"

SCHEMA_SQL = f"""
CREATE TABLE IF NOT EXISTS {STORE_TABLE} (
    id TEXT PRIMARY KEY,
    store_id TEXT NOT NULL UNIQUE,
    store_name TEXT NOT NULL,
    project_name TEXT NOT NULL,
    workspace_root TEXT NOT NULL,
    created_at INTEGER NOT NULL,
    last_sync_at INTEGER NOT NULL,
    file_count INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS {FILES_TABLE} (
    id TEXT PRIMARY KEY,
    file_path TEXT NOT NULL,
    file_name TEXT NOT NULL,
    file_size INTEGER NOT NULL,
    mime_type TEXT NOT NULL,
    indexed_at INTEGER NOT NULL,
    content_ref TEXT NOT NULL,
    store_id TEXT NOT NULL,
    UNIQUE (file_path, store_id)
);

CREATE TABLE IF NOT EXISTS {VECTORS_TABLE} (
    id TEXT PRIMARY KEY,
    file_path TEXT NOT NULL,
    chunk_index INTEGER NOT NULL,
    chunk_text TEXT NOT NULL,
    vector_json TEXT NOT NULL,
    created_at INTEGER NOT NULL,
    store_id TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_local_vectors_file ON {VECTORS_TABLE}(file_path);
CREATE INDEX IF NOT EXISTS idx_local_vectors_store ON {VECTORS_TABLE}(store_id);
"""


@dataclass
class Segment:
    """One chunk of a document with its embedding."""
    id: str
    file_path: str
    chunk_index: int
    text: str
    vector: list[float]
    created_at: int = 0


@dataclass
class IndexedFile:
    """Metadata row for one indexed document."""
    id: str
    file_path: str
    file_name: str
    file_size: int
    mime_type: str
    indexed_at: int
    content_ref: str
    store_id: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> IndexedFile:
        return cls(
            id=row["id"],
            file_path=row["file_path"],
            file_name=row["file_name"],
            file_size=row["file_size"],
            mime_type=row["mime_type"],
            indexed_at=row["indexed_at"],
            content_ref=row["content_ref"],
            store_id=row["store_id"],
        )


@dataclass
class StoreInfo:
    """The store record bound to one project root."""
    id: str
    store_id: str
    store_name: str
    project_name: str
    workspace_root: str
    created_at: int
    last_sync_at: int
    file_count: int

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> StoreInfo:
        return cls(
            id=row["id"],
            store_id=row["store_id"],
            store_name=row["store_name"],
            project_name=row["project_name"],
            workspace_root=row["workspace_root"],
            created_at=row["created_at"],
            last_sync_at=row["last_sync_at"],
            file_count=row["file_count"],
        )


@dataclass
class SearchResult:
    """A ranked hit returned to callers. relevance is on a 0-100 scale."""
    file_name: str
    file_path: str
    snippet: str
    relevance: float

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class QuestionAnswerResult:
    """An answer with the file names it was grounded on."""
    answer: str
    sources: list[str] = field(default_factory=list)
    citations: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class CloudStoreStatus:
    """Document counts reported by a managed search service."""
    store_name: str
    display_name: str | None
    active_documents: int
    pending_documents: int
    failed_documents: int

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def make_segment_id(store_id: str, file_path: str, chunk_index: int) -> str:
    """Generate a deterministic segment ID."""
    raw = f"{store_id}::{file_path}::{chunk_index}"
    return hashlib.sha256(raw.encode()).hexdigest()[:16]


def make_file_id(store_id: str, file_path: str) -> str:
    """Generate a deterministic document record ID."""
    raw = f"{store_id}::{file_path}"
    return "file_" + hashlib.sha256(raw.encode()).hexdigest()[:16]
