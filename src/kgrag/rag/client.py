"""HTTP clients for an OpenAI-compatible embedding and chat backend.

One code path turns text into a vector, used for both documents and
queries so the two stay comparable under cosine similarity.
"""

from __future__ import annotations

import logging
import numbers
from typing import Any

import httpx

from kgrag.config import LocalRagSettings
from kgrag.rag.errors import EmbeddingError, InferenceError

logger = logging.getLogger(__name__)


class OpenAICompatibleClient:
    """Shared connection handling for /v1-style endpoints with bearer auth."""

    def __init__(
        self,
        api_base: str = "http://localhost:8000/v1",
        api_key: str = "",
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_base = api_base.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def api_base(self) -> str:
        return self._api_base

    def _get_client(self) -> httpx.AsyncClient:
        """Lazy-create the HTTP client on first use."""
        if self._client is not None:
            return self._client

        kwargs: dict[str, Any] = {
            "base_url": self._api_base,
            "headers": {
                "Content-Type": "application/json",
                "Authorization": f"Bearer {self._api_key}",
            },
            "timeout": self._timeout,
        }
        if self._transport is not None:
            kwargs["transport"] = self._transport

        self._client = httpx.AsyncClient(**kwargs)
        return self._client

    async def _post(self, endpoint: str, body: dict[str, Any]) -> httpx.Response:
        return await self._get_client().post(endpoint, json=body)

    async def probe(self) -> bool:
        """Check connectivity by listing models. Any 2xx counts as success."""
        try:
            response = await self._get_client().get("/models")
        except httpx.HTTPError as e:
            logger.error("Connection test against %s failed: %s", self._api_base, e)
            return False
        return response.is_success

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


class EmbeddingClient(OpenAICompatibleClient):
    """Calls POST {api_base}/embeddings for one text at a time."""

    def __init__(
        self,
        api_base: str = "http://localhost:8000/v1",
        api_key: str = "",
        model: str = "text-embedding-3-small",
        timeout: float = 60.0,
        dimensions: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(api_base=api_base, api_key=api_key, timeout=timeout, transport=transport)
        self.model = model
        self.dimensions = dimensions

    @classmethod
    def from_settings(
        cls,
        settings: LocalRagSettings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> EmbeddingClient:
        return cls(
            api_base=settings.api_base,
            api_key=settings.api_key,
            model=settings.embedding_model,
            timeout=settings.timeout,
            dimensions=settings.embedding_dimensions,
            transport=transport,
        )

    async def embed(self, text: str) -> list[float]:
        """Embed a single text.

        Raises:
            EmbeddingError: transport failure, non-2xx status, or a body
                without a numeric data[0].embedding.
        """
        try:
            response = await self._post("/embeddings", {"input": text, "model": self.model})
        except httpx.HTTPError as e:
            raise EmbeddingError(f"Embedding request failed: {e}") from e

        if not response.is_success:
            raise EmbeddingError(
                f"Embedding API error: {response.status_code} - {response.text[:200]}"
            )

        try:
            vector = response.json()["data"][0]["embedding"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise EmbeddingError(f"Malformed embedding response: {e!r}") from e

        return self._validate(vector)

    def _validate(self, vector: Any) -> list[float]:
        if not isinstance(vector, list) or not vector:
            raise EmbeddingError("Embedding is not a non-empty list")
        if not all(isinstance(v, numbers.Real) and not isinstance(v, bool) for v in vector):
            raise EmbeddingError("Embedding contains non-numeric values")
        if self.dimensions is not None and len(vector) != self.dimensions:
            raise EmbeddingError(
                f"Embedding has {len(vector)} dimensions, expected {self.dimensions}"
            )
        return [float(v) for v in vector]


class InferenceClient(OpenAICompatibleClient):
    """Calls POST {api_base}/chat/completions without streaming."""

    def __init__(
        self,
        api_base: str = "http://localhost:8000/v1",
        api_key: str = "",
        model: str = "gpt-4.1",
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(api_base=api_base, api_key=api_key, timeout=timeout, transport=transport)
        self.model = model

    @classmethod
    def from_settings(
        cls,
        settings: LocalRagSettings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> InferenceClient:
        return cls(
            api_base=settings.api_base,
            api_key=settings.api_key,
            model=settings.inference_model,
            timeout=settings.timeout,
            transport=transport,
        )

    async def complete(self, system: str, user: str) -> str:
        """Run one chat completion and return the answer text."""
        body = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            "stream": False,
        }
        try:
            response = await self._post("/chat/completions", body)
        except httpx.HTTPError as e:
            raise InferenceError(f"Chat request failed: {e}") from e

        if not response.is_success:
            raise InferenceError(f"Chat API error: {response.status_code}")

        try:
            content = response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise InferenceError(f"Malformed chat response: {e!r}") from e

        if not isinstance(content, str):
            raise InferenceError("Chat response content is not text")
        return content
