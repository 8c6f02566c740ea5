"""RAG search, question answering and indexing endpoints."""

from __future__ import annotations

from pathlib import Path

from fastapi import APIRouter, Request

from kgrag.rag.service import RAGService
from kgrag_engine.models.requests import (
    AskRequest,
    IndexRequest,
    ProjectRequest,
    RemoveRequest,
    SearchRequest,
)
from kgrag_engine.models.responses import (
    AskResponse,
    CloudStatusModel,
    ConnectionResponse,
    IndexedFileModel,
    IndexResponse,
    ReindexResponse,
    RemoveResponse,
    SearchHit,
    SearchResponse,
    StatusResponse,
    StoreInfoModel,
)

router = APIRouter(prefix="/rag")


async def _service(request: Request, project_root: str) -> RAGService:
    return await request.app.state.services.get(project_root)


def _resolve(service: RAGService, path: str) -> Path:
    p = Path(path)
    return p if p.is_absolute() else service.project_root / p


@router.post("/search", response_model=SearchResponse)
async def search_endpoint(req: SearchRequest, request: Request) -> SearchResponse:
    """Rank indexed passages against a query."""
    service = await _service(request, req.project_root)
    results = await service.search(req.query)
    return SearchResponse(
        query=req.query,
        results=[SearchHit(**r.to_dict()) for r in results],
    )


@router.post("/ask", response_model=AskResponse)
async def ask_endpoint(req: AskRequest, request: Request) -> AskResponse:
    """Answer a question from the indexed documents."""
    service = await _service(request, req.project_root)
    result = await service.ask(req.question)
    return AskResponse(**result.to_dict())


@router.post("/index", response_model=IndexResponse)
async def index_endpoint(req: IndexRequest, request: Request) -> IndexResponse:
    """Index one file, or every not-yet-indexed file in the knowledge folder."""
    service = await _service(request, req.project_root)

    if req.path is None:
        count = await service.scan(only_new=True)
        return IndexResponse(success=True, indexed_count=count)

    outcome = await service.provider.index_file(_resolve(service, req.path), service.project_root)
    return IndexResponse(
        success=outcome.indexed,
        indexed_count=1 if outcome.indexed else 0,
        path=outcome.relative_path,
        state=outcome.state.value,
        chunks=outcome.chunks,
        error=outcome.error,
    )


@router.post("/remove", response_model=RemoveResponse)
async def remove_endpoint(req: RemoveRequest, request: Request) -> RemoveResponse:
    """Drop one file from the index. Unknown paths are a no-op."""
    service = await _service(request, req.project_root)
    removed = await service.remove_file(_resolve(service, req.path))
    return RemoveResponse(removed=removed, path=req.path)


@router.post("/reindex", response_model=ReindexResponse)
async def reindex_endpoint(req: ProjectRequest, request: Request) -> ReindexResponse:
    """Drop the index and rebuild it from the knowledge folder."""
    service = await _service(request, req.project_root)
    count = await service.reindex_all()
    return ReindexResponse(success=True, indexed_count=count)


@router.post("/status", response_model=StatusResponse)
async def status_endpoint(req: ProjectRequest, request: Request) -> StatusResponse:
    """Report the store record, indexed documents, and managed-service counts."""
    service = await _service(request, req.project_root)
    info = service.get_store_info()
    cloud = await service.get_cloud_store_status()
    return StatusResponse(
        mode=service.provider.mode,
        store=StoreInfoModel(**info.to_dict()) if info is not None else None,
        files=[IndexedFileModel(**f.to_dict()) for f in service.get_indexed_files()],
        cloud=CloudStatusModel(**cloud.to_dict()) if cloud is not None else None,
    )


@router.post("/test-connection", response_model=ConnectionResponse)
async def test_connection_endpoint(req: ProjectRequest, request: Request) -> ConnectionResponse:
    """Check that the configured backend answers."""
    service = await _service(request, req.project_root)
    ok = await service.test_connection()
    return ConnectionResponse(ok=ok, mode=service.provider.mode)
