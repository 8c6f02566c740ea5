"""Managed-service backend.

Retrieval is delegated entirely to a hosted file-search service reached
through a ManagedSearchClient. This module only keeps the local bookkeeping
(store record, document records holding the remote handle) consistent with
what was uploaded.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from kgrag.core.database import Database
from kgrag.core.events import EventListener, IndexEvent, log_event
from kgrag.rag.errors import ProviderNotInitializedError
from kgrag.rag.extract import is_supported, mime_type_for
from kgrag.rag.pipeline import IndexOutcome, IndexState
from kgrag.rag.provider import FALLBACK_ANSWER, citation_for
from kgrag.rag.schema import (
    CloudStoreStatus,
    IndexedFile,
    QuestionAnswerResult,
    SearchResult,
    StoreInfo,
    make_file_id,
)
from kgrag.rag.store import VectorStore, now_ms
from kgrag.utils.paths import project_hash, to_relative_path

logger = logging.getLogger(__name__)

CLOUD_RELEVANCE = 90.0


@dataclass
class RetrievedContext:
    """One grounding reference returned by the managed service."""
    title: str | None = None
    uri: str | None = None


@dataclass
class ManagedSearchResponse:
    """Generated text plus the documents it was grounded on."""
    text: str = ""
    contexts: list[RetrievedContext] = field(default_factory=list)


class ManagedSearchClient(Protocol):
    """Protocol for hosted file-search services."""

    async def create_store(self, display_name: str) -> str: ...

    async def delete_store(self, store_name: str) -> None: ...

    async def upload_document(
        self,
        store_name: str,
        file_path: Path,
        display_name: str,
        mime_type: str,
        metadata: dict[str, str],
    ) -> str | None: ...

    async def delete_document(self, document_name: str) -> None: ...

    async def generate(self, store_name: str, prompt: str) -> ManagedSearchResponse: ...

    async def get_store(self, store_name: str) -> CloudStoreStatus: ...

    async def ping(self) -> bool: ...


class CloudRAGProvider:
    """RAGProvider that uploads documents to, and queries, a managed service."""

    mode = "cloud"

    def __init__(
        self,
        db: Database,
        client: ManagedSearchClient,
        listener: EventListener | None = None,
    ) -> None:
        self.db = db
        self.client = client
        self._listener = listener or log_event
        self.project_root: Path | None = None
        self.store: VectorStore | None = None
        self.store_name = ""
        self._indexed: dict[str, IndexedFile] = {}
        self._in_flight: set[str] = set()

    def _require_store(self) -> VectorStore:
        if self.store is None or not self.store_name:
            raise ProviderNotInitializedError("Cloud RAG provider is not initialized")
        return self.store

    async def initialize(self, project_root: Path) -> None:
        self.project_root = Path(project_root)
        self.db.open()
        self.store = VectorStore(self.db, "cloud_" + project_hash(project_root))
        self.store.create_tables()
        await self._initialize_store()
        self._indexed = {f.file_path: f for f in self.store.get_indexed_files()}
        logger.info("Cloud RAG provider ready: %s (%d files)", self.store_name, len(self._indexed))

    async def _initialize_store(self) -> None:
        """Reuse the remote store named in the store record, or create one."""
        if self.store is None or self.project_root is None:
            raise ProviderNotInitializedError("Cloud RAG provider is not initialized")
        info = self.store.get_store_info()
        if info is not None:
            self.store_name = info.store_name
            return

        display_name = f"{self.project_root.name}-{project_hash(self.project_root)}"
        self.store_name = await self.client.create_store(display_name)
        self.store.ensure_store_record(
            project_name=self.project_root.name,
            workspace_root=str(self.project_root),
            store_name=self.store_name,
        )

    def is_supported(self, file_path: Path | str) -> bool:
        return is_supported(file_path)

    async def index_file(self, file_path: Path, project_root: Path) -> IndexOutcome:
        store = self._require_store()
        file_path = Path(file_path)
        relative_path = to_relative_path(file_path, project_root)

        if not self.is_supported(file_path):
            logger.warning("Unsupported file type, skipping: %s", file_path.name)
            return IndexOutcome(IndexState.UNSUPPORTED, relative_path)
        if not file_path.is_file():
            return IndexOutcome(IndexState.MISSING, relative_path)
        if relative_path in self._in_flight:
            logger.info("Skip duplicate indexing request: %s", relative_path)
            return IndexOutcome(IndexState.IN_FLIGHT, relative_path)

        self._in_flight.add(relative_path)
        try:
            existing = self._indexed.get(relative_path)
            if existing is not None:
                await self.client.delete_document(existing.content_ref)

            mime_type = mime_type_for(file_path)
            document_name = await self.client.upload_document(
                self.store_name,
                file_path,
                display_name=file_path.name,
                mime_type=mime_type,
                metadata={"relativePath": relative_path},
            )
            if not document_name:
                logger.error("No document handle returned for %s, aborting index", relative_path)
                return IndexOutcome(IndexState.UPLOAD_FAILED, relative_path, error="no document handle")

            record = IndexedFile(
                id=make_file_id(store.store_id, relative_path),
                file_path=relative_path,
                file_name=file_path.name,
                file_size=file_path.stat().st_size,
                mime_type=mime_type,
                indexed_at=now_ms(),
                content_ref=document_name,
                store_id=store.store_id,
            )
            store.upsert_record(record)
            self._indexed[relative_path] = record
            store.refresh_store_count(len(self._indexed))
            self._listener(IndexEvent.indexed(relative_path, file_path.name, 1))
            return IndexOutcome(IndexState.INDEXED, relative_path, chunks=1)
        finally:
            self._in_flight.discard(relative_path)

    async def remove_file(self, file_path: Path | str, project_root: Path) -> bool:
        store = self._require_store()
        relative_path = to_relative_path(file_path, project_root)
        record = self._indexed.get(relative_path) or store.get_indexed_file(relative_path)
        if record is None:
            logger.info("File not found in index: %s", relative_path)
            return False

        await self.client.delete_document(record.content_ref)
        store.delete_document(relative_path)
        self._indexed.pop(relative_path, None)
        store.refresh_store_count(len(self._indexed))
        self._listener(IndexEvent.removed(relative_path, record.file_name))
        return True

    def _match_file(self, context: RetrievedContext) -> IndexedFile | None:
        for record in self._indexed.values():
            if record.file_name == context.title or record.content_ref == context.uri:
                return record
        return None

    async def search(self, query: str) -> list[SearchResult]:
        self._require_store()
        response = await self.client.generate(self.store_name, query)

        results: dict[str, SearchResult] = {}
        for context in response.contexts:
            record = self._match_file(context)
            if record is not None and record.file_path not in results:
                results[record.file_path] = SearchResult(
                    file_name=record.file_name,
                    file_path=record.file_path,
                    snippet=response.text,
                    relevance=CLOUD_RELEVANCE,
                )
        return list(results.values())

    async def ask(self, question: str) -> QuestionAnswerResult:
        self._require_store()
        response = await self.client.generate(self.store_name, question)

        sources = list(dict.fromkeys(c.title for c in response.contexts if c.title))
        return QuestionAnswerResult(
            answer=response.text or FALLBACK_ANSWER,
            sources=sources,
            citations=[citation_for(s) for s in sources],
        )

    async def reindex_all(self) -> None:
        """Drop the remote store and all local records, then create a fresh store."""
        store = self._require_store()
        try:
            await self.client.delete_store(self.store_name)
        except Exception as e:
            logger.warning("Failed to delete remote store %s: %s", self.store_name, e)

        store.clear()
        store.delete_store_record()
        self._indexed.clear()
        self.store_name = ""
        await self._initialize_store()

    def get_store_info(self) -> StoreInfo | None:
        if self.store is None:
            raise ProviderNotInitializedError("Cloud RAG provider is not initialized")
        return self.store.get_store_info()

    def get_indexed_files(self) -> list[IndexedFile]:
        return list(self._indexed.values())

    async def get_cloud_store_status(self) -> CloudStoreStatus | None:
        if not self.store_name:
            return None
        try:
            return await self.client.get_store(self.store_name)
        except Exception as e:
            logger.error("Failed to get store info from cloud: %s", e)
            return None

    async def test_connection(self) -> bool:
        try:
            return await self.client.ping()
        except Exception as e:
            logger.error("Cloud connection test failed: %s", e)
            return False

    async def dispose(self) -> None:
        self._indexed.clear()
