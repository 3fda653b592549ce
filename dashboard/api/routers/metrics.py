"""
HubSpot Pulse — Metrics Router
================================
Dashboard cards and trend chart data.

Endpoints:
  GET /api/metrics   - Current vs previous period metrics
  GET /api/trends    - One bucket per calendar day
"""
from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from analytics.service import DashboardService
from dashboard.api.deps import error_response, get_service
from lib.logger import setup_logger
from models.metrics_models import DashboardMetricsPair, TrendPoint

logger = setup_logger("metrics_router")

router = APIRouter(prefix="/api", tags=["metrics"])


@router.get("/metrics", response_model=DashboardMetricsPair)
async def dashboard_metrics(
    days: int = Query(30, ge=0, description="Period length in days (0 = all time)"),
    start: Optional[int] = Query(None, description="Range start (epoch ms)"),
    end: Optional[int] = Query(None, description="Range end (epoch ms)"),
    force_refresh: bool = Query(False, alias="forceRefresh"),
    service: DashboardService = Depends(get_service),
):
    """Dashboard metrics for the current and previous period. Degrades to zeros."""
    try:
        return await service.get_dashboard_metrics(
            days=days, start_ts=start, end_ts=end, force_refresh=force_refresh,
        )
    except ValueError as e:
        return error_response("Invalid date range", e, status_code=400)
    except Exception as e:
        logger.error("Dashboard metrics failed: %s", e)
        return error_response("Failed to fetch metrics", e)


@router.get("/trends", response_model=List[TrendPoint])
async def trends(
    days: int = Query(30, ge=1, le=365, description="Number of days to chart"),
    force_refresh: bool = Query(False, alias="forceRefresh"),
    service: DashboardService = Depends(get_service),
):
    """Daily contacts, companies, deals and revenue. Empty list on failure."""
    try:
        return await service.get_trend_data(days=days, force_refresh=force_refresh)
    except Exception as e:
        logger.error("Trend data failed: %s", e)
        return error_response("Failed to fetch trend data", e)
