"""Pydantic request models for the kgrag engine API."""

from __future__ import annotations

from pydantic import BaseModel, Field


class ProjectRequest(BaseModel):
    """Request scoped to one project."""
    project_root: str = Field(..., description="Project root directory path")


class SearchRequest(ProjectRequest):
    """Request to rank indexed passages against a query."""
    query: str = Field(..., min_length=1, description="Natural language search query")


class AskRequest(ProjectRequest):
    """Request to answer a question from indexed documents."""
    question: str = Field(..., min_length=1, description="Question to answer")


class IndexRequest(ProjectRequest):
    """Request to index one file, or every new file when path is omitted."""
    path: str | None = Field(
        default=None,
        description="File to index (absolute or relative to project_root)",
    )


class RemoveRequest(ProjectRequest):
    """Request to drop one file from the index."""
    path: str = Field(..., description="File to remove (absolute or relative to project_root)")
