"""kgrag: project document indexing and retrieval-augmented answers."""

__version__ = "0.3.0"
