"""Self-hosted backend: SQLite vectors, linear-scan ranking, OpenAI-compatible API."""

from __future__ import annotations

import logging
from pathlib import Path

import httpx

from kgrag.config import KgragSettings
from kgrag.core.database import Database
from kgrag.core.events import EventListener
from kgrag.rag.client import EmbeddingClient, InferenceClient
from kgrag.rag.errors import ProviderNotInitializedError
from kgrag.rag.extract import is_supported
from kgrag.rag.pipeline import IndexingPipeline, IndexOutcome
from kgrag.rag.provider import NO_RELEVANT_DOCUMENTS_ANSWER, citation_for
from kgrag.rag.ranker import rank
from kgrag.rag.schema import (
    CloudStoreStatus,
    IndexedFile,
    QuestionAnswerResult,
    SearchResult,
    StoreInfo,
)
from kgrag.rag.store import VectorStore
from kgrag.utils.paths import project_hash

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a helpful assistant. Answer the question based on the context "
    "provided below. If the answer is not in the context, say you don't know."
)

LOCAL_STORE_NAME = "Local Store"


def build_user_prompt(question: str, results: list[SearchResult]) -> str:
    """Stitch ranked snippets into the context block of the user prompt."""
    context = "\n\n".join(f"[{r.file_name}]: {r.snippet}" for r in results)
    return f"Context:\n{context}\n\nQuestion: {question}"


class LocalRAGProvider:
    """RAGProvider backed by a local vector cache and a self-hosted model API."""

    mode = "local"

    def __init__(
        self,
        db: Database,
        settings: KgragSettings,
        listener: EventListener | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.db = db
        self.settings = settings
        self._listener = listener
        self.embedder = EmbeddingClient.from_settings(settings.local, transport=transport)
        self.inference = InferenceClient.from_settings(settings.local, transport=transport)
        self.project_root: Path | None = None
        self.store: VectorStore | None = None
        self.pipeline: IndexingPipeline | None = None

    @property
    def store_id(self) -> str:
        return self._require_store().store_id

    def _require_store(self) -> VectorStore:
        if self.store is None:
            raise ProviderNotInitializedError("Local RAG provider is not initialized")
        return self.store

    def _require_pipeline(self) -> IndexingPipeline:
        if self.pipeline is None:
            raise ProviderNotInitializedError("Local RAG provider is not initialized")
        return self.pipeline

    async def initialize(self, project_root: Path) -> None:
        """Create tables, ensure the store record and rebuild the vector cache."""
        logger.info("Initializing local RAG provider for %s", project_root)
        self.project_root = Path(project_root)
        store_id = "local_" + project_hash(project_root)

        self.db.open()
        self.store = VectorStore(
            self.db,
            store_id,
            dimensions=self.settings.local.embedding_dimensions,
        )
        self.store.create_tables()
        self.store.ensure_store_record(
            project_name=self.project_root.name,
            workspace_root=str(project_root),
            store_name=LOCAL_STORE_NAME,
        )
        self.store.load_all()

        self.pipeline = IndexingPipeline(
            self.store,
            self.embedder,
            chunk_size=self.settings.chunk_size,
            chunk_overlap=self.settings.chunk_overlap,
            listener=self._listener,
        )

    def is_supported(self, file_path: Path | str) -> bool:
        return is_supported(file_path)

    async def index_file(self, file_path: Path, project_root: Path) -> IndexOutcome:
        return await self._require_pipeline().index_document(file_path, project_root)

    async def remove_file(self, file_path: Path | str, project_root: Path) -> bool:
        removed = await self._require_pipeline().remove_document(file_path, project_root)
        if removed:
            logger.info("Removed %s from local index", file_path)
        return removed

    async def search(self, query: str) -> list[SearchResult]:
        """Embed the query once and rank it against every cached segment."""
        store = self._require_store()
        if not store.cache:
            return []

        query_vector = await self.embedder.embed(query)
        return [
            SearchResult(
                file_name=Path(r.file_path).name,
                file_path=r.file_path,
                snippet=r.segment.text,
                relevance=r.relevance,
            )
            for r in rank(query_vector, store.cache)
        ]

    async def ask(self, question: str) -> QuestionAnswerResult:
        """Answer from the top matches, or the canned answer when none clear the floor."""
        results = await self.search(question)
        if not results:
            return QuestionAnswerResult(answer=NO_RELEVANT_DOCUMENTS_ANSWER)

        answer = await self.inference.complete(SYSTEM_PROMPT, build_user_prompt(question, results))

        sources = list(dict.fromkeys(r.file_name for r in results))
        return QuestionAnswerResult(
            answer=answer,
            sources=sources,
            citations=[citation_for(s) for s in sources],
        )

    async def reindex_all(self) -> None:
        """Clear the store scope and recreate its record. Callers rescan afterwards."""
        store = self._require_store()
        self._require_pipeline().reset()
        store.delete_store_record()
        store.ensure_store_record(
            project_name=self.project_root.name if self.project_root else "",
            workspace_root=str(self.project_root or ""),
            store_name=LOCAL_STORE_NAME,
        )

    def get_store_info(self) -> StoreInfo | None:
        return self._require_store().get_store_info()

    def get_indexed_files(self) -> list[IndexedFile]:
        return self._require_store().get_indexed_files()

    async def get_cloud_store_status(self) -> CloudStoreStatus | None:
        return None

    async def test_connection(self) -> bool:
        return await self.embedder.probe()

    async def dispose(self) -> None:
        if self.store is not None:
            self.store.cache.clear()
        await self.embedder.aclose()
        await self.inference.aclose()
