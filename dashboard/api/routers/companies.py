"""
HubSpot Pulse — Companies Router
==================================
Endpoints:
  GET /api/companies/top-won-entities   - Companies (or contacts) by won amount
  GET /api/companies/top-lost-entities  - Companies (or contacts) by lost amount
"""
from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from analytics.service import DashboardService
from dashboard.api.deps import error_response, get_service
from lib.logger import setup_logger
from lib.utils import now_ms
from models.metrics_models import EntityTotal

logger = setup_logger("companies_router")

router = APIRouter(prefix="/api/companies", tags=["companies"])


@router.get("/top-won-entities", response_model=List[EntityTotal])
async def top_won_entities(
    start: int = Query(0, ge=0),
    end: Optional[int] = Query(None),
    limit: int = Query(10, ge=1, le=100),
    force_refresh: bool = Query(False, alias="forceRefresh"),
    service: DashboardService = Depends(get_service),
):
    try:
        return await service.get_top_won_entities(
            start, end if end is not None else now_ms(), limit, force_refresh=force_refresh,
        )
    except Exception as e:
        logger.error("Top won entities failed: %s", e)
        return error_response("Failed to fetch top won entities", e)


@router.get("/top-lost-entities", response_model=List[EntityTotal])
async def top_lost_entities(
    start: int = Query(0, ge=0),
    end: Optional[int] = Query(None),
    limit: int = Query(10, ge=1, le=100),
    force_refresh: bool = Query(False, alias="forceRefresh"),
    service: DashboardService = Depends(get_service),
):
    try:
        return await service.get_top_lost_entities(
            start, end if end is not None else now_ms(), limit, force_refresh=force_refresh,
        )
    except Exception as e:
        logger.error("Top lost entities failed: %s", e)
        return error_response("Failed to fetch top lost entities", e)
