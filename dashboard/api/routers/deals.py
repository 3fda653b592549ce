"""
HubSpot Pulse — Deals Router
==============================
Deal aggregates and top-N lists computed live from HubSpot.

Endpoints:
  GET /api/deals/metrics                   - Deal metrics for a period
  GET /api/deals/metrics/stages-metrics    - Open deals by stage with trend
  GET /api/deals/metrics/fetch-properties  - Deal property definitions
  GET /api/deals/forecast                  - Open deal value by close month
  GET /api/deals/top-won                   - Largest won deals in range
  GET /api/deals/top-new                   - Largest deals created in range
  GET /api/deals/top-open                  - Largest open deals
  GET /api/deals/top-lost                  - Largest lost deals in range
  GET /api/deals/top-payed                 - Largest deals closed in range
"""
from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from analytics.service import DashboardService
from dashboard.api.deps import error_response, get_service
from lib.logger import setup_logger
from lib.utils import now_ms
from models.metrics_models import DealMetrics, DealSummary, ForecastPoint

logger = setup_logger("deals_router")

router = APIRouter(prefix="/api/deals", tags=["deals"])


@router.get("/metrics", response_model=DealMetrics)
async def deal_metrics(
    days: int = Query(30, ge=0, description="Period length in days (0 = all time)"),
    start: Optional[int] = Query(None, description="Range start (epoch ms)"),
    end: Optional[int] = Query(None, description="Range end (epoch ms)"),
    force_refresh: bool = Query(False, alias="forceRefresh"),
    service: DashboardService = Depends(get_service),
):
    """Deal counts, sums and rates over all deals."""
    try:
        return await service.get_deal_metrics(
            days=days, start_ts=start, end_ts=end, force_refresh=force_refresh,
        )
    except ValueError as e:
        return error_response("Invalid date range", e, status_code=400)
    except Exception as e:
        logger.error("Deal metrics failed: %s", e)
        return error_response("Failed to fetch deal metrics", e)


@router.get("/metrics/stages-metrics")
async def stage_metrics(
    trend_period: int = Query(30, ge=0, alias="trendPeriod"),
    service: DashboardService = Depends(get_service),
):
    """Open deals grouped by stage."""
    try:
        stages = await service.get_stage_metrics(trend_days=trend_period)
        return {"stages": [s.model_dump(by_alias=True) for s in stages]}
    except Exception as e:
        logger.error("Stage metrics failed: %s", e)
        return error_response("Failed to fetch deals by stage", e)


@router.get("/metrics/fetch-properties")
async def deal_properties(
    force_refresh: bool = Query(False, alias="forceRefresh"),
    service: DashboardService = Depends(get_service),
):
    """Deal property definitions from HubSpot."""
    try:
        return await service.fetch_deal_properties(force_refresh=force_refresh)
    except Exception as e:
        logger.error("Deal properties fetch failed: %s", e)
        return error_response("Failed to fetch deal properties", e)


@router.get("/forecast", response_model=List[ForecastPoint])
async def forecast(service: DashboardService = Depends(get_service)):
    """Sum of open deal amounts per close month."""
    try:
        return await service.get_open_deals_forecast_by_month()
    except Exception as e:
        logger.error("Forecast failed: %s", e)
        return error_response("Failed to fetch sales forecast", e)


@router.get("/top-won", response_model=List[DealSummary])
async def top_won(
    start: int = Query(0, ge=0),
    end: Optional[int] = Query(None),
    limit: int = Query(10, ge=1, le=100),
    force_refresh: bool = Query(False, alias="forceRefresh"),
    service: DashboardService = Depends(get_service),
):
    try:
        return await service.get_top_won_deals(
            start, end if end is not None else now_ms(), limit, force_refresh=force_refresh,
        )
    except Exception as e:
        logger.error("Top won deals failed: %s", e)
        return error_response("Failed to fetch top won deals", e)


@router.get("/top-new", response_model=List[DealSummary])
async def top_new(
    start: int = Query(0, ge=0),
    end: Optional[int] = Query(None),
    limit: int = Query(10, ge=1, le=100),
    force_refresh: bool = Query(False, alias="forceRefresh"),
    service: DashboardService = Depends(get_service),
):
    try:
        return await service.get_top_new_deals(
            start, end if end is not None else now_ms(), limit, force_refresh=force_refresh,
        )
    except Exception as e:
        logger.error("Top new deals failed: %s", e)
        return error_response("Failed to fetch top new deals", e)


@router.get("/top-open", response_model=List[DealSummary])
async def top_open(
    limit: int = Query(10, ge=1, le=100),
    force_refresh: bool = Query(False, alias="forceRefresh"),
    service: DashboardService = Depends(get_service),
):
    """Open deals are all-time, so no range applies."""
    try:
        return await service.get_top_open_deals(limit, force_refresh=force_refresh)
    except Exception as e:
        logger.error("Top open deals failed: %s", e)
        return error_response("Failed to fetch top open deals", e)


@router.get("/top-lost", response_model=List[DealSummary])
async def top_lost(
    start: int = Query(0, ge=0),
    end: Optional[int] = Query(None),
    limit: int = Query(10, ge=1, le=100),
    force_refresh: bool = Query(False, alias="forceRefresh"),
    service: DashboardService = Depends(get_service),
):
    try:
        return await service.get_top_lost_deals(
            start, end if end is not None else now_ms(), limit, force_refresh=force_refresh,
        )
    except Exception as e:
        logger.error("Top lost deals failed: %s", e)
        return error_response("Failed to fetch top lost deals", e)


@router.get("/top-payed", response_model=List[DealSummary])
async def top_payed(
    start: int = Query(0, ge=0),
    end: Optional[int] = Query(None),
    limit: int = Query(10, ge=1, le=100),
    stage: Optional[str] = Query(None, description="Restrict to one deal stage"),
    force_refresh: bool = Query(False, alias="forceRefresh"),
    service: DashboardService = Depends(get_service),
):
    try:
        return await service.get_top_payed_deals(
            start, end if end is not None else now_ms(), limit,
            stage=stage, force_refresh=force_refresh,
        )
    except Exception as e:
        logger.error("Top payed deals failed: %s", e)
        return error_response("Failed to fetch top payed deals", e)
