"""
HubSpot Pulse — API Key Auth Middleware
========================================
Validates the X-API-Key header against DASHBOARD_API_KEY when
REQUIRE_API_KEY is enabled. With auth disabled every request passes.

Public endpoints (health, docs) bypass auth.
"""
from __future__ import annotations

import hashlib
import hmac

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from lib.logger import setup_logger

logger = setup_logger("api_middleware")

# Paths that don't require auth
PUBLIC_PATHS = {
    "/api/health",
    "/docs",
    "/openapi.json",
    "/redoc",
}


def _hash_key(key: str) -> str:
    """SHA-256 hash of an API key for constant-time comparison."""
    return hashlib.sha256(key.encode()).hexdigest()


class APIKeyMiddleware(BaseHTTPMiddleware):
    """Reject requests without a matching X-API-Key when auth is required."""

    def __init__(self, app, require_auth: bool = False, api_key: str = ""):
        super().__init__(app)
        self.require_auth = require_auth
        self._key_hash = _hash_key(api_key) if api_key else None
        if require_auth and not api_key:
            logger.warning("REQUIRE_API_KEY is set but DASHBOARD_API_KEY is empty; all requests will be rejected")

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path

        if not self.require_auth or path in PUBLIC_PATHS:
            return await call_next(request)

        api_key = request.headers.get("X-API-Key")
        if not api_key:
            return JSONResponse(
                status_code=401,
                content={"error": "Unauthorized", "details": "Missing X-API-Key header"},
            )

        if self._key_hash is None or not hmac.compare_digest(_hash_key(api_key), self._key_hash):
            logger.warning("Rejected invalid API key for %s", path)
            return JSONResponse(
                status_code=403,
                content={"error": "Forbidden", "details": "Invalid API key"},
            )

        return await call_next(request)
