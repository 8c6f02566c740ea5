"""Notices emitted while indexing.

The pipeline and providers push IndexEvents to an optional listener so a
front end (CLI, engine) can show them, decoupling indexing from display.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class EventType(Enum):
    """Types of notices emitted during indexing."""

    INDEXED = "indexed"
    REMOVED = "removed"
    SKIPPED = "skipped"
    EXTRACTION_FAILED = "extraction_failed"
    EMBEDDING_FAILED = "embedding_failed"
    STATUS = "status"


@dataclass
class IndexEvent:
    """A single notice about a document or the index as a whole."""

    type: EventType
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def is_error(self) -> bool:
        return self.type in (EventType.EXTRACTION_FAILED, EventType.EMBEDDING_FAILED)

    @property
    def message(self) -> str:
        name = self.data.get("file_name", "")
        if self.type == EventType.INDEXED:
            return f"Indexed: {name} ({self.data.get('chunks', 0)} chunks)"
        if self.type == EventType.REMOVED:
            return f"Removed from index: {name}"
        if self.type == EventType.SKIPPED:
            return f"Skipped {name}: {self.data.get('reason', '')}"
        if self.type == EventType.EXTRACTION_FAILED:
            return f"Failed to extract text from {name}"
        if self.type == EventType.EMBEDDING_FAILED:
            return f"Embedding failed for {name}"
        return self.data.get("message", "")

    @staticmethod
    def indexed(relative_path: str, file_name: str, chunks: int) -> IndexEvent:
        """A document was embedded and persisted."""
        return IndexEvent(
            type=EventType.INDEXED,
            data={"path": relative_path, "file_name": file_name, "chunks": chunks},
        )

    @staticmethod
    def removed(relative_path: str, file_name: str) -> IndexEvent:
        return IndexEvent(
            type=EventType.REMOVED,
            data={"path": relative_path, "file_name": file_name},
        )

    @staticmethod
    def skipped(relative_path: str, file_name: str, reason: str) -> IndexEvent:
        """A document was left alone (unsupported, empty, already in flight)."""
        return IndexEvent(
            type=EventType.SKIPPED,
            data={"path": relative_path, "file_name": file_name, "reason": reason},
        )

    @staticmethod
    def extraction_failed(relative_path: str, file_name: str, error: str) -> IndexEvent:
        return IndexEvent(
            type=EventType.EXTRACTION_FAILED,
            data={"path": relative_path, "file_name": file_name, "error": error},
        )

    @staticmethod
    def embedding_failed(relative_path: str, file_name: str, error: str) -> IndexEvent:
        return IndexEvent(
            type=EventType.EMBEDDING_FAILED,
            data={"path": relative_path, "file_name": file_name, "error": error},
        )

    @staticmethod
    def status(message: str) -> IndexEvent:
        """A free-form status update (e.g. "Indexed 3 new files")."""
        return IndexEvent(type=EventType.STATUS, data={"message": message})


EventListener = Callable[[IndexEvent], None]


def log_event(event: IndexEvent) -> None:
    """Default listener: route notices to the logging system."""
    if event.is_error:
        logger.error("%s: %s", event.message, event.data.get("error", ""))
    else:
        logger.info(event.message)
