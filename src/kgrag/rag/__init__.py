"""Document indexing, vector storage and retrieval."""
