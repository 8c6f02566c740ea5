"""Project-level RAG service.

Owns the database, the provider chosen from settings, and the knowledge
folder. Front ends (CLI, engine) talk to this class only.
"""

from __future__ import annotations

import logging
from pathlib import Path

import httpx

from kgrag.config import KgragSettings, load_settings
from kgrag.core.database import Database
from kgrag.core.events import EventListener, IndexEvent, log_event
from kgrag.rag.cloud_provider import ManagedSearchClient
from kgrag.rag.extract import is_supported
from kgrag.rag.pipeline import IndexOutcome
from kgrag.rag.provider import RAGProvider, create_provider
from kgrag.rag.scanner import Snapshot, find_changes, scan_directory, take_snapshot
from kgrag.rag.schema import (
    CloudStoreStatus,
    IndexedFile,
    QuestionAnswerResult,
    SearchResult,
    StoreInfo,
)
from kgrag.utils.paths import get_database_path, get_knowledge_dir, to_relative_path

logger = logging.getLogger(__name__)


class RAGService:
    """Keeps one project's knowledge folder and index in step."""

    def __init__(
        self,
        project_root: Path,
        settings: KgragSettings | None = None,
        db: Database | None = None,
        listener: EventListener | None = None,
        managed_client: ManagedSearchClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.project_root = Path(project_root)
        self.settings = settings or load_settings(self.project_root)
        self.db = db or Database(get_database_path(self.project_root))
        self._listener = listener or log_event
        self.provider: RAGProvider = create_provider(
            self.settings,
            self.db,
            listener=self._listener,
            managed_client=managed_client,
            transport=transport,
        )
        self._snapshot: Snapshot = {}
        self._initialized = False

    @property
    def knowledge_dir(self) -> Path:
        return get_knowledge_dir(self.project_root, self.settings.knowledge_dir)

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(self, scan: bool = True) -> int:
        """Initialize the provider and index every not-yet-indexed file.

        Returns the number of files indexed by the initial scan (0 when scan is False).
        """
        self.knowledge_dir.mkdir(parents=True, exist_ok=True)
        await self.provider.initialize(self.project_root)
        self._initialized = True

        count = await self.scan(only_new=True) if scan else 0
        self._snapshot = self._take_snapshot()
        return count

    def _take_snapshot(self) -> Snapshot:
        return take_snapshot(self.knowledge_dir, self.project_root, accept=is_supported)

    async def scan(self, only_new: bool = False) -> int:
        """Index supported files under the knowledge folder.

        With only_new, files that already have an index record are skipped.
        """
        indexed = {f.file_path for f in self.provider.get_indexed_files()} if only_new else set()

        count = 0
        for path in scan_directory(self.knowledge_dir, accept=is_supported):
            if to_relative_path(path, self.project_root) in indexed:
                continue
            outcome = await self.index_file(path)
            if outcome is not None and outcome.indexed:
                count += 1

        if count:
            logger.info("Indexed %d new files", count)
            self._listener(IndexEvent.status(f"Indexed {count} new files"))
        return count

    async def index_file(self, file_path: Path) -> IndexOutcome | None:
        """Index one file, logging (not raising) backend failures."""
        try:
            return await self.provider.index_file(Path(file_path), self.project_root)
        except Exception as e:
            logger.error("Failed to index %s: %s", file_path, e)
            return None

    async def handle_created(self, file_path: Path) -> None:
        await self.index_file(file_path)

    async def handle_changed(self, file_path: Path) -> None:
        await self.index_file(file_path)

    async def handle_deleted(self, file_path: Path) -> None:
        try:
            await self.provider.remove_file(file_path, self.project_root)
        except Exception as e:
            logger.error("Failed to remove %s from index: %s", file_path, e)

    async def remove_file(self, file_path: Path | str) -> bool:
        return await self.provider.remove_file(file_path, self.project_root)

    async def sync(self) -> tuple[list[str], list[str], list[str]]:
        """Apply filesystem changes since the last snapshot.

        Returns (added, modified, deleted) project-relative paths.
        """
        current = self._take_snapshot()
        added, modified, deleted = find_changes(current, self._snapshot)

        for rel in added:
            await self.handle_created(self.project_root / rel)
        for rel in modified:
            await self.handle_changed(self.project_root / rel)
        for rel in deleted:
            await self.handle_deleted(self.project_root / rel)

        self._snapshot = current
        return added, modified, deleted

    async def reindex_all(self) -> int:
        """Drop the whole index and rebuild it from the knowledge folder."""
        await self.provider.reindex_all()
        count = await self.scan()
        self._snapshot = self._take_snapshot()
        return count

    async def search(self, query: str) -> list[SearchResult]:
        return await self.provider.search(query)

    async def ask(self, question: str) -> QuestionAnswerResult:
        return await self.provider.ask(question)

    def get_store_info(self) -> StoreInfo | None:
        return self.provider.get_store_info()

    def get_indexed_files(self) -> list[IndexedFile]:
        return self.provider.get_indexed_files()

    async def get_cloud_store_status(self) -> CloudStoreStatus | None:
        return await self.provider.get_cloud_store_status()

    async def test_connection(self) -> bool:
        return await self.provider.test_connection()

    async def dispose(self) -> None:
        await self.provider.dispose()
        self.db.close()
        self._initialized = False
