"""
HubSpot Pulse — Activity Router
=================================
Recent activity feed and task endpoints.

Endpoints:
  GET /api/activity                  - Recent activity across all object types
  GET /api/activity/metrics          - Task metrics for a period
  GET /api/activity/today            - Today's closed tasks and new records
  GET /api/activity/tasks            - Tasks created in a range
  GET /api/activity/tasks/completed  - Tasks completed in a range
  GET /api/activity/tasks/total      - Total task count
"""
from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Query

from analytics.service import DashboardService
from dashboard.api.deps import error_response, get_service
from lib.logger import setup_logger
from models.metrics_models import ActivityItem, TaskList, TaskMetrics, TodayActivitySummary

logger = setup_logger("activities_router")

router = APIRouter(prefix="/api/activity", tags=["activity"])


@router.get("", response_model=List[ActivityItem])
async def recent_activity(
    limit: int = Query(10, ge=1, le=100),
    force_refresh: bool = Query(False, alias="forceRefresh"),
    service: DashboardService = Depends(get_service),
):
    """Newest records first. Empty list if HubSpot is unavailable."""
    try:
        return await service.get_recent_activity(limit=limit, force_refresh=force_refresh)
    except Exception as e:
        logger.error("Recent activity failed: %s", e)
        return error_response("Failed to fetch recent activity", e)


@router.get("/metrics", response_model=TaskMetrics)
async def task_metrics(
    days: int = Query(30, ge=0, description="Period length in days (0 = all time)"),
    force_refresh: bool = Query(False, alias="forceRefresh"),
    service: DashboardService = Depends(get_service),
):
    try:
        return await service.get_task_metrics(days=days, force_refresh=force_refresh)
    except Exception as e:
        logger.error("Task metrics failed: %s", e)
        return error_response("Failed to fetch task metrics", e)


@router.get("/today", response_model=TodayActivitySummary)
async def today_summary(
    force_refresh: bool = Query(False, alias="forceRefresh"),
    service: DashboardService = Depends(get_service),
):
    try:
        return await service.get_today_activity_summary(force_refresh=force_refresh)
    except Exception as e:
        logger.error("Today's activity summary failed: %s", e)
        return error_response("Failed to fetch today's activity", e)


@router.get("/tasks", response_model=TaskList)
async def tasks_created(
    start: int = Query(..., ge=0, description="Created on or after (epoch ms)"),
    end: int = Query(..., ge=0, description="Created on or before (epoch ms)"),
    force_refresh: bool = Query(False, alias="forceRefresh"),
    service: DashboardService = Depends(get_service),
):
    try:
        return await service.get_tasks_created_between(start, end, force_refresh=force_refresh)
    except Exception as e:
        logger.error("Tasks by creation date failed: %s", e)
        return error_response("Failed to fetch tasks by date range", e)


@router.get("/tasks/completed", response_model=TaskList)
async def tasks_completed(
    start: int = Query(..., ge=0, description="Completed on or after (epoch ms)"),
    end: int = Query(..., ge=0, description="Completed on or before (epoch ms)"),
    force_refresh: bool = Query(False, alias="forceRefresh"),
    service: DashboardService = Depends(get_service),
):
    try:
        return await service.get_tasks_completed_between(start, end, force_refresh=force_refresh)
    except Exception as e:
        logger.error("Completed tasks by date failed: %s", e)
        return error_response("Failed to fetch completed tasks by date range", e)


@router.get("/tasks/total")
async def tasks_total(
    force_refresh: bool = Query(False, alias="forceRefresh"),
    service: DashboardService = Depends(get_service),
):
    try:
        return {"totalTasks": await service.get_total_tasks(force_refresh=force_refresh)}
    except Exception as e:
        logger.error("Total task count failed: %s", e)
        return error_response("Failed to fetch total tasks", e)
