"""kgrag Engine: HTTP service over the kgrag RAG core."""

__version__ = "0.3.0"
