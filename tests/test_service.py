"""Tests for the project-level RAG service."""

from __future__ import annotations

import os
from pathlib import Path

import pytest
import pytest_asyncio

from kgrag.config import KgragSettings
from kgrag.core.events import EventType, IndexEvent
from kgrag.rag.errors import StorageError
from kgrag.rag.service import RAGService

from conftest import FakeBackend


def write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def bump_mtime(path: Path) -> None:
    st = path.stat()
    os.utime(path, ns=(st.st_atime_ns, st.st_mtime_ns + 1_000_000_000))


@pytest.fixture
def events() -> list[IndexEvent]:
    return []


@pytest.fixture
def make_service(tmp_project: Path, settings: KgragSettings, backend: FakeBackend, events: list[IndexEvent]):
    created: list[RAGService] = []

    def factory() -> RAGService:
        service = RAGService(
            tmp_project,
            settings=settings,
            listener=events.append,
            transport=backend.transport,
        )
        created.append(service)
        return service

    return factory


@pytest_asyncio.fixture
async def service(make_service):
    s = make_service()
    yield s
    await s.dispose()


class TestInitialScan:
    @pytest.mark.asyncio
    async def test_creates_knowledge_dir(self, tmp_path: Path, settings, backend):
        project = tmp_path / "fresh"
        project.mkdir()
        s = RAGService(project, settings=settings, transport=backend.transport)
        await s.initialize()
        assert (project / "Knowledge").is_dir()
        assert (project / ".kgrag" / "knowledge.sqlite").is_file()
        await s.dispose()

    @pytest.mark.asyncio
    async def test_indexes_supported_files(self, service, knowledge_dir, events):
        write(knowledge_dir / "gears.md", "gear teeth")
        write(knowledge_dir / "sub" / "walls.txt", "nozzle wall")
        write(knowledge_dir / "photo.png", "binary")

        count = await service.initialize()
        assert count == 2
        assert [f.file_path for f in service.get_indexed_files()] == [
            "Knowledge/gears.md",
            "Knowledge/sub/walls.txt",
        ]
        assert events[-1].type == EventType.STATUS
        assert events[-1].message == "Indexed 2 new files"

    @pytest.mark.asyncio
    async def test_second_start_indexes_only_new(self, make_service, knowledge_dir, backend):
        write(knowledge_dir / "gears.md", "gear teeth")
        first = make_service()
        assert await first.initialize() == 1
        await first.dispose()

        write(knowledge_dir / "walls.md", "wall")
        calls_before = backend.embedding_calls
        second = make_service()
        assert await second.initialize() == 1
        assert backend.embedding_calls == calls_before + 1
        assert len(second.get_indexed_files()) == 2
        await second.dispose()

    @pytest.mark.asyncio
    async def test_initialize_without_scan(self, service, knowledge_dir, backend):
        write(knowledge_dir / "gears.md", "gear teeth")
        assert await service.initialize(scan=False) == 0
        assert backend.embedding_calls == 0
        assert service.initialized


class TestSync:
    @pytest.mark.asyncio
    async def test_added_modified_deleted(self, service, knowledge_dir):
        keep = write(knowledge_dir / "keep.md", "gear")
        gone = write(knowledge_dir / "gone.md", "wall")
        await service.initialize()

        write(knowledge_dir / "new.md", "python")
        keep.write_text("gear teeth and more gear", encoding="utf-8")
        bump_mtime(keep)
        gone.unlink()

        added, modified, deleted = await service.sync()
        assert added == ["Knowledge/new.md"]
        assert modified == ["Knowledge/keep.md"]
        assert deleted == ["Knowledge/gone.md"]

        paths = [f.file_path for f in service.get_indexed_files()]
        assert paths == ["Knowledge/keep.md", "Knowledge/new.md"]
        results = await service.search("gear")
        assert results[0].snippet == "gear teeth and more gear"

    @pytest.mark.asyncio
    async def test_nothing_changed(self, service, knowledge_dir):
        write(knowledge_dir / "keep.md", "gear")
        await service.initialize()
        assert await service.sync() == ([], [], [])


class TestEventHandlers:
    @pytest.mark.asyncio
    async def test_errors_are_logged_not_raised(self, service, knowledge_dir, monkeypatch, caplog):
        await service.initialize()

        async def broken(*args, **kwargs):
            raise StorageError("disk full")

        monkeypatch.setattr(service.provider, "index_file", broken)
        monkeypatch.setattr(service.provider, "remove_file", broken)

        path = write(knowledge_dir / "a.md", "gear")
        await service.handle_created(path)
        await service.handle_changed(path)
        await service.handle_deleted(path)
        assert "disk full" in caplog.text

    @pytest.mark.asyncio
    async def test_handle_deleted_removes(self, service, knowledge_dir, events):
        path = write(knowledge_dir / "a.md", "gear")
        await service.initialize()
        path.unlink()
        await service.handle_deleted(path)
        assert service.get_indexed_files() == []
        assert events[-1].type == EventType.REMOVED


class TestDelegation:
    @pytest.mark.asyncio
    async def test_reindex_all_rebuilds(self, service, knowledge_dir):
        write(knowledge_dir / "a.md", "gear")
        write(knowledge_dir / "b.md", "wall")
        await service.initialize()

        (knowledge_dir / "b.md").unlink()
        assert await service.reindex_all() == 1
        assert [f.file_path for f in service.get_indexed_files()] == ["Knowledge/a.md"]
        assert service.get_store_info().file_count == 1

    @pytest.mark.asyncio
    async def test_ask_and_connection(self, service, knowledge_dir, backend):
        write(knowledge_dir / "a.md", "gear teeth")
        await service.initialize()
        result = await service.ask("gear?")
        assert result.answer == backend.answer
        assert result.sources == ["a.md"]
        assert await service.test_connection() is True
        assert await service.get_cloud_store_status() is None

    @pytest.mark.asyncio
    async def test_dispose_closes_database(self, make_service):
        s = make_service()
        await s.initialize()
        await s.dispose()
        assert not s.db.is_open
        assert not s.initialized
