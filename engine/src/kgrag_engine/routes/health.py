"""Health check endpoint."""

from __future__ import annotations

from fastapi import APIRouter

from kgrag_engine import __version__
from kgrag_engine.models.responses import HealthResponse

router = APIRouter()


def _detect_capabilities() -> list[str]:
    """Detect which optional document extractors are available."""
    caps = ["rag", "text"]
    try:
        import pypdf  # noqa: F401
        caps.append("pdf")
    except Exception:
        pass
    try:
        import docx  # noqa: F401
        caps.append("docx")
    except Exception:
        pass
    return caps


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Return engine health status and available capabilities."""
    return HealthResponse(
        status="ok",
        version=__version__,
        capabilities=_detect_capabilities(),
    )
