"""API key check for service mode.

Inactive unless a key is configured through KGRAG_API_KEY or --api-key.
Clients send the key as X-API-Key or as an Authorization bearer token.
"""

from __future__ import annotations

import hmac
import os

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import JSONResponse, Response

OPEN_PATHS = frozenset({"/health"})


def request_api_key(request: Request) -> str | None:
    key = request.headers.get("X-API-Key")
    if key:
        return key
    scheme, _, token = request.headers.get("Authorization", "").partition(" ")
    if scheme.lower() == "bearer" and token:
        return token.strip()
    return None


class APIKeyMiddleware(BaseHTTPMiddleware):
    """Reject /rag requests that do not carry the configured key."""

    def __init__(self, app, api_key: str | None = None) -> None:  # type: ignore[override]
        super().__init__(app)
        self._api_key = api_key or os.environ.get("KGRAG_API_KEY")

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if not self._api_key or request.url.path in OPEN_PATHS:
            return await call_next(request)

        provided = request_api_key(request)
        if provided is None or not hmac.compare_digest(provided.encode(), self._api_key.encode()):
            return JSONResponse(
                status_code=401,
                content={"detail": "Invalid or missing API key", "error": "Unauthorized"},
            )
        return await call_next(request)
