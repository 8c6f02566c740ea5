"""Pydantic response models for the kgrag engine API."""

from __future__ import annotations

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Health check response."""
    status: str = "ok"
    version: str
    capabilities: list[str] = Field(default_factory=list)


class SearchHit(BaseModel):
    """One ranked passage."""
    file_name: str
    file_path: str
    snippet: str
    relevance: float


class SearchResponse(BaseModel):
    """Response from a search."""
    query: str
    results: list[SearchHit] = Field(default_factory=list)


class AskResponse(BaseModel):
    """Response from a question."""
    answer: str
    sources: list[str] = Field(default_factory=list)
    citations: list[str] = Field(default_factory=list)


class IndexResponse(BaseModel):
    """Response from an index request."""
    success: bool
    indexed_count: int = 0
    path: str | None = None
    state: str | None = None
    chunks: int | None = None
    error: str | None = None


class RemoveResponse(BaseModel):
    """Response from a remove request."""
    removed: bool
    path: str


class ReindexResponse(BaseModel):
    """Response from a full re-index."""
    success: bool
    indexed_count: int


class StoreInfoModel(BaseModel):
    """Store record as persisted."""
    id: str
    store_id: str
    store_name: str
    project_name: str
    workspace_root: str
    created_at: int
    last_sync_at: int
    file_count: int


class IndexedFileModel(BaseModel):
    """Document record as persisted."""
    id: str
    file_path: str
    file_name: str
    file_size: int
    mime_type: str
    indexed_at: int
    content_ref: str
    store_id: str


class CloudStatusModel(BaseModel):
    """Document counts reported by a managed search service."""
    store_name: str
    display_name: str | None = None
    active_documents: int = 0
    pending_documents: int = 0
    failed_documents: int = 0


class StatusResponse(BaseModel):
    """Store, document listing, and cloud counts for a project."""
    mode: str
    store: StoreInfoModel | None = None
    files: list[IndexedFileModel] = Field(default_factory=list)
    cloud: CloudStatusModel | None = None


class ConnectionResponse(BaseModel):
    """Result of a backend connectivity check."""
    ok: bool
    mode: str
