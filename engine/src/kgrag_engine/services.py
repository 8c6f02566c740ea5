"""Per-project RAGService registry owned by the engine app."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from pathlib import Path

from kgrag.config import load_settings, validate_settings
from kgrag.rag.service import RAGService

logger = logging.getLogger(__name__)

ServiceFactory = Callable[[Path], RAGService]


def default_service_factory(project_root: Path) -> RAGService:
    """Build a service from the project's merged settings.

    Raises:
        ValueError: the settings fail validation.
    """
    settings = load_settings(project_root)
    errors = validate_settings(settings)
    if errors:
        raise ValueError("Invalid settings: " + "; ".join(errors))
    return RAGService(project_root, settings=settings)


class ServiceRegistry:
    """Creates, initializes and caches one RAGService per project root."""

    def __init__(self, factory: ServiceFactory | None = None) -> None:
        self._factory = factory or default_service_factory
        self._services: dict[str, RAGService] = {}
        self._lock = asyncio.Lock()

    async def get(self, project_root: Path | str) -> RAGService:
        """Return the initialized service for project_root, creating it on first use."""
        root = Path(project_root).resolve()
        key = str(root)
        async with self._lock:
            service = self._services.get(key)
            if service is None:
                if not root.is_dir():
                    raise FileNotFoundError(f"Project root not found: {root}")
                service = self._factory(root)
                await service.initialize(scan=False)
                self._services[key] = service
                logger.info("RAG service ready for %s (%s)", key, service.provider.mode)
            return service

    async def dispose_all(self) -> None:
        async with self._lock:
            for key, service in self._services.items():
                try:
                    await service.dispose()
                except Exception as e:
                    logger.warning("Failed to dispose RAG service for %s: %s", key, e)
            self._services.clear()
