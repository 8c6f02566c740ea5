"""FastAPI application factory for kgrag Engine."""

from __future__ import annotations

import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from kgrag.rag.errors import (
    EmbeddingError,
    InferenceError,
    ProviderNotInitializedError,
    StorageError,
)
from kgrag_engine import __version__
from kgrag_engine.routes import health, rag
from kgrag_engine.services import ServiceFactory, ServiceRegistry

ERROR_STATUS = {
    EmbeddingError: 502,
    InferenceError: 502,
    StorageError: 500,
    ProviderNotInitializedError: 409,
    FileNotFoundError: 404,
    ValueError: 422,
}


def create_app(service_factory: ServiceFactory | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Service mode is controlled via environment variables:
        KGRAG_SERVICE_MODE=1: enable CORS and auth middleware
        KGRAG_API_KEY: API key for auth (optional, skipped if unset)
        KGRAG_CORS_ORIGINS: comma-separated CORS origins (default: *)
    """
    registry = ServiceRegistry(service_factory)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        await registry.dispose_all()

    app = FastAPI(
        title="kgrag Engine",
        version=__version__,
        description="HTTP service for kgrag: document indexing, search and question answering",
        lifespan=lifespan,
    )
    app.state.services = registry

    service_mode = os.environ.get("KGRAG_SERVICE_MODE") == "1"
    if service_mode:
        from starlette.middleware.cors import CORSMiddleware

        from kgrag_engine.middleware.auth import APIKeyMiddleware

        cors_env = os.environ.get("KGRAG_CORS_ORIGINS", "*")
        origins = [o.strip() for o in cors_env.split(",")]
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )
        app.add_middleware(APIKeyMiddleware)

    for exc_type, status_code in ERROR_STATUS.items():
        app.add_exception_handler(exc_type, _error_handler(status_code))

    app.include_router(health.router)
    app.include_router(rag.router)

    return app


def _error_handler(status_code: int):
    async def handler(request: Request, exc: Exception) -> JSONResponse:
        return JSONResponse(
            status_code=status_code,
            content={"detail": str(exc), "error": type(exc).__name__},
        )
    return handler
