"""The provider contract shared by the local and cloud backends.

Call sites depend only on RAGProvider. The backend is chosen once, by
create_provider(), from the configured mode.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Protocol

import httpx

from kgrag.config import KgragSettings
from kgrag.core.database import Database
from kgrag.core.events import EventListener
from kgrag.rag.pipeline import IndexOutcome
from kgrag.rag.schema import (
    CloudStoreStatus,
    IndexedFile,
    QuestionAnswerResult,
    SearchResult,
    StoreInfo,
)

if TYPE_CHECKING:
    from kgrag.rag.cloud_provider import ManagedSearchClient


NO_RELEVANT_DOCUMENTS_ANSWER = "No relevant documents found locally."
FALLBACK_ANSWER = "Unable to generate answer"


def citation_for(source: str) -> str:
    return f"Source: {source}"


class RAGProvider(Protocol):
    """Uniform index/search/ask surface implemented by every backend."""

    mode: str

    async def initialize(self, project_root: Path) -> None: ...

    def is_supported(self, file_path: Path | str) -> bool: ...

    async def index_file(self, file_path: Path, project_root: Path) -> IndexOutcome: ...

    async def remove_file(self, file_path: Path | str, project_root: Path) -> bool: ...

    async def search(self, query: str) -> list[SearchResult]: ...

    async def ask(self, question: str) -> QuestionAnswerResult: ...

    async def reindex_all(self) -> None: ...

    def get_store_info(self) -> StoreInfo | None: ...

    def get_indexed_files(self) -> list[IndexedFile]: ...

    async def get_cloud_store_status(self) -> CloudStoreStatus | None: ...

    async def test_connection(self) -> bool: ...

    async def dispose(self) -> None: ...


def create_provider(
    settings: KgragSettings,
    db: Database,
    listener: EventListener | None = None,
    managed_client: ManagedSearchClient | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> RAGProvider:
    """Factory function to create the backend selected by settings.mode."""
    if settings.mode == "cloud":
        if managed_client is None:
            raise ValueError("Cloud mode requires a managed search client")
        from kgrag.rag.cloud_provider import CloudRAGProvider
        return CloudRAGProvider(db, managed_client, listener=listener)

    if settings.mode == "local":
        from kgrag.rag.local_provider import LocalRAGProvider
        return LocalRAGProvider(db, settings, listener=listener, transport=transport)

    raise ValueError(f"Unsupported RAG mode: {settings.mode}")
