"""Tests for the managed-service RAG provider."""

from __future__ import annotations

from pathlib import Path

import pytest
import pytest_asyncio

from kgrag.config import KgragSettings
from kgrag.core.database import Database
from kgrag.core.events import EventType, IndexEvent
from kgrag.rag.cloud_provider import (
    CLOUD_RELEVANCE,
    CloudRAGProvider,
    ManagedSearchResponse,
    RetrievedContext,
)
from kgrag.rag.errors import ProviderNotInitializedError
from kgrag.rag.pipeline import IndexState
from kgrag.rag.provider import FALLBACK_ANSWER, create_provider
from kgrag.rag.schema import CloudStoreStatus


class FakeManagedClient:
    """Records calls made against a hosted file-search service."""

    def __init__(self) -> None:
        self.stores: list[str] = []
        self.deleted_stores: list[str] = []
        self.uploads: list[dict] = []
        self.deleted_documents: list[str] = []
        self.response = ManagedSearchResponse()
        self.return_handle = True
        self.fail_status = False
        self.fail_delete_store = False
        self.online = True

    async def create_store(self, display_name: str) -> str:
        name = f"fileSearchStores/store-{len(self.stores) + 1}"
        self.stores.append(name)
        return name

    async def delete_store(self, store_name: str) -> None:
        if self.fail_delete_store:
            raise RuntimeError("store is busy")
        self.deleted_stores.append(store_name)

    async def upload_document(self, store_name, file_path, display_name, mime_type, metadata):
        self.uploads.append({
            "store": store_name,
            "path": Path(file_path),
            "display_name": display_name,
            "mime_type": mime_type,
            "metadata": metadata,
        })
        if not self.return_handle:
            return None
        return f"{store_name}/documents/doc-{len(self.uploads)}"

    async def delete_document(self, document_name: str) -> None:
        self.deleted_documents.append(document_name)

    async def generate(self, store_name: str, prompt: str) -> ManagedSearchResponse:
        return self.response

    async def get_store(self, store_name: str) -> CloudStoreStatus:
        if self.fail_status:
            raise RuntimeError("quota exceeded")
        return CloudStoreStatus(
            store_name=store_name,
            display_name="project",
            active_documents=2,
            pending_documents=1,
            failed_documents=0,
        )

    async def ping(self) -> bool:
        if not self.online:
            raise ConnectionError("unreachable")
        return True


@pytest.fixture
def client() -> FakeManagedClient:
    return FakeManagedClient()


@pytest.fixture
def events() -> list[IndexEvent]:
    return []


@pytest_asyncio.fixture
async def provider(tmp_project: Path, client: FakeManagedClient, events: list[IndexEvent]):
    db = Database(tmp_project / ".kgrag" / "knowledge.sqlite")
    p = CloudRAGProvider(db, client, listener=events.append)
    await p.initialize(tmp_project)
    yield p
    await p.dispose()
    db.close()


def write(knowledge_dir: Path, name: str, text: str = "content") -> Path:
    path = knowledge_dir / name
    path.write_text(text, encoding="utf-8")
    return path


class TestCloudInitialize:
    @pytest.mark.asyncio
    async def test_creates_remote_store_once(self, provider, client, tmp_project):
        assert client.stores == ["fileSearchStores/store-1"]
        info = provider.get_store_info()
        assert info.store_name == "fileSearchStores/store-1"
        assert info.store_id.startswith("cloud_")

        again = CloudRAGProvider(provider.db, client)
        await again.initialize(tmp_project)
        assert again.store_name == "fileSearchStores/store-1"
        assert len(client.stores) == 1

    @pytest.mark.asyncio
    async def test_requires_initialize(self, tmp_project, client):
        p = CloudRAGProvider(Database(":memory:"), client)
        with pytest.raises(ProviderNotInitializedError):
            await p.search("anything")

    @pytest.mark.asyncio
    async def test_reindex_requires_initialize(self, client):
        p = CloudRAGProvider(Database(":memory:"), client)
        with pytest.raises(ProviderNotInitializedError):
            await p.reindex_all()
        with pytest.raises(ProviderNotInitializedError):
            p.get_store_info()
        assert client.stores == []


class TestCloudIndexing:
    @pytest.mark.asyncio
    async def test_upload_records_handle(self, provider, client, events, knowledge_dir, tmp_project):
        outcome = await provider.index_file(write(knowledge_dir, "manual.pdf"), tmp_project)

        assert outcome.indexed
        upload = client.uploads[0]
        assert upload["display_name"] == "manual.pdf"
        assert upload["mime_type"] == "application/pdf"
        assert upload["metadata"] == {"relativePath": "Knowledge/manual.pdf"}

        files = provider.get_indexed_files()
        assert [f.content_ref for f in files] == ["fileSearchStores/store-1/documents/doc-1"]
        assert provider.get_store_info().file_count == 1
        assert events[-1].type == EventType.INDEXED

    @pytest.mark.asyncio
    async def test_reupload_deletes_previous_document(self, provider, client, knowledge_dir, tmp_project):
        path = write(knowledge_dir, "notes.md")
        await provider.index_file(path, tmp_project)
        await provider.index_file(path, tmp_project)

        assert client.deleted_documents == ["fileSearchStores/store-1/documents/doc-1"]
        files = provider.get_indexed_files()
        assert len(files) == 1
        assert files[0].content_ref.endswith("doc-2")

    @pytest.mark.asyncio
    async def test_missing_handle_aborts(self, provider, client, knowledge_dir, tmp_project):
        client.return_handle = False
        outcome = await provider.index_file(write(knowledge_dir, "notes.md"), tmp_project)
        assert outcome.state == IndexState.UPLOAD_FAILED
        assert provider.get_indexed_files() == []

    @pytest.mark.asyncio
    async def test_unsupported_not_uploaded(self, provider, client, knowledge_dir, tmp_project):
        path = knowledge_dir / "image.png"
        path.write_bytes(b"\x89PNG")
        outcome = await provider.index_file(path, tmp_project)
        assert outcome.state == IndexState.UNSUPPORTED
        assert client.uploads == []

    @pytest.mark.asyncio
    async def test_remove(self, provider, client, events, knowledge_dir, tmp_project):
        path = write(knowledge_dir, "notes.md")
        await provider.index_file(path, tmp_project)

        assert await provider.remove_file(path, tmp_project) is True
        assert client.deleted_documents == ["fileSearchStores/store-1/documents/doc-1"]
        assert provider.get_indexed_files() == []
        assert events[-1].type == EventType.REMOVED

    @pytest.mark.asyncio
    async def test_remove_unknown(self, provider, client, tmp_project):
        assert await provider.remove_file(tmp_project / "Knowledge" / "nope.md", tmp_project) is False
        assert client.deleted_documents == []


class TestCloudRetrieval:
    @pytest.mark.asyncio
    async def test_search_maps_contexts_to_files(self, provider, client, knowledge_dir, tmp_project):
        await provider.index_file(write(knowledge_dir, "gears.md"), tmp_project)
        client.response = ManagedSearchResponse(
            text="Gears mesh.",
            contexts=[
                RetrievedContext(title="gears.md"),
                RetrievedContext(title="gears.md"),
                RetrievedContext(title="unknown.md"),
            ],
        )
        results = await provider.search("gears")
        assert len(results) == 1
        assert results[0].file_path == "Knowledge/gears.md"
        assert results[0].snippet == "Gears mesh."
        assert results[0].relevance == CLOUD_RELEVANCE

    @pytest.mark.asyncio
    async def test_ask(self, provider, client):
        client.response = ManagedSearchResponse(
            text="Use PETG.",
            contexts=[RetrievedContext(title="materials.md"), RetrievedContext(title="materials.md")],
        )
        result = await provider.ask("Which filament?")
        assert result.answer == "Use PETG."
        assert result.sources == ["materials.md"]
        assert result.citations == ["Source: materials.md"]

    @pytest.mark.asyncio
    async def test_ask_empty_answer(self, provider, client):
        result = await provider.ask("?")
        assert result.answer == FALLBACK_ANSWER
        assert result.sources == []


class TestCloudMaintenance:
    @pytest.mark.asyncio
    async def test_reindex_all_recreates_store(self, provider, client, knowledge_dir, tmp_project):
        await provider.index_file(write(knowledge_dir, "notes.md"), tmp_project)
        await provider.reindex_all()

        assert client.deleted_stores == ["fileSearchStores/store-1"]
        assert provider.store_name == "fileSearchStores/store-2"
        assert provider.get_indexed_files() == []
        assert provider.get_store_info().store_name == "fileSearchStores/store-2"

    @pytest.mark.asyncio
    async def test_reindex_all_tolerates_delete_failure(self, provider, client):
        client.fail_delete_store = True
        await provider.reindex_all()
        assert provider.store_name == "fileSearchStores/store-2"

    @pytest.mark.asyncio
    async def test_store_status(self, provider, client):
        status = await provider.get_cloud_store_status()
        assert status.active_documents == 2
        assert status.pending_documents == 1
        client.fail_status = True
        assert await provider.get_cloud_store_status() is None

    @pytest.mark.asyncio
    async def test_connection(self, provider, client):
        assert await provider.test_connection() is True
        client.online = False
        assert await provider.test_connection() is False

    def test_create_provider_cloud(self, tmp_path, client):
        settings = KgragSettings(mode="cloud")
        provider = create_provider(settings, Database(tmp_path / "k.sqlite"), managed_client=client)
        assert isinstance(provider, CloudRAGProvider)
        assert provider.mode == "cloud"
