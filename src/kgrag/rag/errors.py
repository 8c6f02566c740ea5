"""Exception taxonomy for indexing and retrieval."""

from __future__ import annotations


class RagError(Exception):
    """Base class for all kgrag retrieval errors."""


class UnsupportedTypeError(RagError):
    """File extension is not on the supported allow-list."""


class ExtractionError(RagError):
    """Text could not be extracted from a document."""


class EmbeddingError(RagError):
    """An embedding request failed or returned an unusable body."""


class StorageError(RagError):
    """The durable store rejected a read or write."""


class MalformedVectorData(RagError):
    """A persisted vector payload could not be parsed."""


class InferenceError(RagError):
    """A chat completion request failed or returned an unusable body."""


class ProviderNotInitializedError(RagError):
    """A provider operation was called before initialize()."""
