"""Shared test fixtures for kgrag."""

from __future__ import annotations

import json
from pathlib import Path

import httpx
import pytest

from kgrag.config import KgragSettings, LocalRagSettings

VOCABULARY = ("gear", "teeth", "nozzle", "wall", "python", "sqlite", "vector", "coffee")


def embed_words(text: str) -> list[float]:
    """Bag-of-words vector over a tiny vocabulary. Unrelated text gives a zero vector."""
    words = text.lower().replace(".", " ").replace(",", " ").split()
    return [float(sum(1 for w in words if w.startswith(term))) for term in VOCABULARY]


class FakeBackend:
    """In-process OpenAI-compatible backend for httpx.MockTransport."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.embedding_calls = 0
        self.chat_calls = 0
        self.answer = "Gears have teeth."
        self.fail_embeddings_after: int | None = None
        self.embedding_status = 200
        self.models_status = 200
        self.last_chat_body: dict | None = None

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path.endswith("/embeddings"):
            self.embedding_calls += 1
            if (
                self.fail_embeddings_after is not None
                and self.embedding_calls > self.fail_embeddings_after
            ):
                return httpx.Response(500, text="embedding backend down")
            if self.embedding_status != 200:
                return httpx.Response(self.embedding_status, text="error")
            body = json.loads(request.content)
            return httpx.Response(200, json={
                "object": "list",
                "data": [{"index": 0, "embedding": embed_words(body["input"])}],
                "model": body["model"],
            })

        if path.endswith("/chat/completions"):
            self.chat_calls += 1
            self.last_chat_body = json.loads(request.content)
            return httpx.Response(200, json={
                "choices": [{"index": 0, "message": {"role": "assistant", "content": self.answer}}],
            })

        if path.endswith("/models"):
            return httpx.Response(self.models_status, json={"data": []})

        return httpx.Response(404)


@pytest.fixture(autouse=True)
def isolated_user_settings(tmp_path_factory: pytest.TempPathFactory, monkeypatch) -> Path:
    """Keep ~/.kgrag/settings.json out of every test."""
    path = tmp_path_factory.mktemp("home") / ".kgrag" / "settings.json"
    monkeypatch.setattr("kgrag.config.get_user_settings_path", lambda: path)
    return path


@pytest.fixture
def tmp_project(tmp_path: Path) -> Path:
    """Create a temporary kgrag project structure."""
    project = tmp_path / "project"
    kgrag_dir = project / ".kgrag"
    kgrag_dir.mkdir(parents=True)
    (kgrag_dir / "settings.json").write_text(json.dumps({
        "mode": "local",
        "local": {"api_base": "http://llm.test/v1", "api_key": "test-key"},
    }))
    (project / "Knowledge").mkdir()
    return project


@pytest.fixture
def knowledge_dir(tmp_project: Path) -> Path:
    return tmp_project / "Knowledge"


@pytest.fixture
def settings() -> KgragSettings:
    return KgragSettings(
        chunk_size=200,
        chunk_overlap=20,
        local=LocalRagSettings(api_base="http://llm.test/v1", api_key="test-key"),
    )


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()
