"""
Shared router helpers: the DashboardService dependency and the common
500 error body.
"""
from __future__ import annotations

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse

from analytics.service import DashboardService


def get_service(request: Request) -> DashboardService:
    """The process-wide DashboardService created in the app lifespan."""
    service = getattr(request.app.state, "service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Dashboard service not initialised")
    return service


def error_response(message: str, exc: Exception, status_code: int = 500) -> JSONResponse:
    """JSON `{error, details}` body used by every route on failure."""
    return JSONResponse(
        status_code=status_code,
        content={"error": message, "details": str(exc)},
    )
