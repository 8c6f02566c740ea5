"""Indexing pipeline: extract -> chunk -> embed -> persist -> cache -> store count.

A document is either fully indexed or left exactly as it was. Embeddings are
requested one chunk at a time, in chunk order, and nothing is written until
every chunk has a vector.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Protocol

from kgrag.core.events import EventListener, IndexEvent, log_event
from kgrag.rag.chunker import (
    DEFAULT_CHUNK_OVERLAP,
    DEFAULT_CHUNK_SIZE,
    chunk_text,
    normalize_text,
)
from kgrag.rag.errors import EmbeddingError, ExtractionError
from kgrag.rag.extract import extract_text, is_supported, mime_type_for
from kgrag.rag.schema import (
    LOCAL_CONTENT_REF,
    IndexedFile,
    Segment,
    make_file_id,
    make_segment_id,
)
from kgrag.rag.store import VectorStore, now_ms
from kgrag.utils.paths import to_relative_path

logger = logging.getLogger(__name__)


class Embedder(Protocol):
    """Anything that turns a text into a vector."""

    async def embed(self, text: str) -> list[float]: ...


class IndexState(Enum):
    """Terminal state of one index attempt."""

    UNSUPPORTED = "unsupported"
    MISSING = "missing"
    IN_FLIGHT = "in-flight"
    EXTRACT_FAILED = "extract-failed"
    EMPTY = "empty"
    EMBED_FAILED = "embed-failed"
    UPLOAD_FAILED = "upload-failed"
    INDEXED = "indexed"


@dataclass
class IndexOutcome:
    """Result of indexing one document."""
    state: IndexState
    relative_path: str
    chunks: int = 0
    error: str | None = None

    @property
    def indexed(self) -> bool:
        return self.state == IndexState.INDEXED


class IndexingPipeline:
    """Indexes and removes documents for one VectorStore."""

    def __init__(
        self,
        store: VectorStore,
        embedder: Embedder,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        chunk_overlap: int = DEFAULT_CHUNK_OVERLAP,
        listener: EventListener | None = None,
    ) -> None:
        self.store = store
        self.embedder = embedder
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self._listener = listener or log_event
        self._in_flight: set[str] = set()

    @property
    def in_flight(self) -> frozenset[str]:
        return frozenset(self._in_flight)

    async def index_document(self, file_path: Path, project_root: Path) -> IndexOutcome:
        """Index one file, replacing any previous index of the same relative path."""
        file_path = Path(file_path)
        relative_path = to_relative_path(file_path, project_root)
        file_name = file_path.name

        if not is_supported(file_path):
            logger.info("Unsupported file type, skipping: %s", relative_path)
            return IndexOutcome(IndexState.UNSUPPORTED, relative_path)

        if not file_path.is_file():
            logger.debug("File no longer exists, skipping: %s", relative_path)
            return IndexOutcome(IndexState.MISSING, relative_path)

        if relative_path in self._in_flight:
            logger.info("Skip duplicate indexing request: %s", relative_path)
            return IndexOutcome(IndexState.IN_FLIGHT, relative_path)

        self._in_flight.add(relative_path)
        try:
            return await self._index(file_path, relative_path, file_name)
        finally:
            self._in_flight.discard(relative_path)

    async def _index(self, file_path: Path, relative_path: str, file_name: str) -> IndexOutcome:
        try:
            raw = extract_text(file_path)
        except ExtractionError as e:
            logger.error("Failed to extract text from %s: %s", relative_path, e)
            self._listener(IndexEvent.extraction_failed(relative_path, file_name, str(e)))
            return IndexOutcome(IndexState.EXTRACT_FAILED, relative_path, error=str(e))

        content = normalize_text(raw)
        if not content:
            logger.warning("Extracted content is empty, skip indexing: %s", relative_path)
            self._listener(IndexEvent.skipped(relative_path, file_name, "empty"))
            return IndexOutcome(IndexState.EMPTY, relative_path)

        chunks = chunk_text(content, self.chunk_size, self.chunk_overlap)
        logger.debug("Split %s into %d chunks", relative_path, len(chunks))

        vectors: list[list[float]] = []
        for i, chunk in enumerate(chunks):
            try:
                vectors.append(await self.embedder.embed(chunk))
            except EmbeddingError as e:
                logger.error("Failed to embed chunk %d of %s: %s", i, relative_path, e)
                self._listener(IndexEvent.embedding_failed(relative_path, file_name, str(e)))
                return IndexOutcome(IndexState.EMBED_FAILED, relative_path, error=str(e))

        now = now_ms()
        store_id = self.store.store_id
        segments = [
            Segment(
                id=make_segment_id(store_id, relative_path, i),
                file_path=relative_path,
                chunk_index=i,
                text=chunk,
                vector=vector,
                created_at=now,
            )
            for i, (chunk, vector) in enumerate(zip(chunks, vectors))
        ]
        record = IndexedFile(
            id=make_file_id(store_id, relative_path),
            file_path=relative_path,
            file_name=file_name,
            file_size=file_path.stat().st_size,
            mime_type=mime_type_for(file_path),
            indexed_at=now,
            content_ref=LOCAL_CONTENT_REF,
            store_id=store_id,
        )

        self.store.upsert_document(record, segments)
        self.store.refresh_store_count()

        self._listener(IndexEvent.indexed(relative_path, file_name, len(segments)))
        return IndexOutcome(IndexState.INDEXED, relative_path, chunks=len(segments))

    async def remove_document(self, file_path: Path | str, project_root: Path) -> bool:
        """Drop a document's segments, record and cache entry.

        Returns False (and changes nothing) when the path was never indexed.
        """
        relative_path = to_relative_path(file_path, project_root)
        existed = self.store.delete_document(relative_path)
        if not existed:
            logger.debug("File not found in index: %s", relative_path)
            return False

        self.store.refresh_store_count()
        self._listener(IndexEvent.removed(relative_path, Path(relative_path).name))
        return True

    def reset(self) -> None:
        """Clear every segment, record and cache entry for the store."""
        self.store.clear()
