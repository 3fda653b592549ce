"""
HubSpot Pulse — Metrics Response Models
=========================================

Derived, transient result shapes served to the dashboard. Field names are
snake_case in Python and camelCase on the wire (totalDeals, wonDeals, ...).
"""
from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ─── Deals ──────────────────────────────────────────────────

class DealMetrics(CamelModel):
    """
    Deal aggregates for one period.

    open_deals / active_deals_value are always all-time (the open pipeline
    is a point-in-time snapshot), so won + lost + open need not equal
    total_deals under period filtering. average_deal_size is also all-time.
    """
    total_deals: int = 0
    new_deals: int = 0
    won_deals: int = 0
    lost_deals: int = 0
    open_deals: int = 0
    revenue: float = 0.0
    lost_revenue: float = 0.0
    average_deal_size: float = 0.0
    average_won_deal_size: float = 0.0
    created_prev_period: int = 0
    new_deals_value: float = 0.0
    average_new_deal_size: float = 0.0
    active_deals_value: float = 0.0
    conversion_rate: float = 0.0
    value_close_rate: float = 0.0


class DashboardMetrics(CamelModel):
    total_contacts: int = 0
    all_time_contacts: int = 0
    total_companies: int = 0
    all_time_companies: int = 0
    total_deals: int = 0
    new_deals: int = 0
    new_deals_value: float = 0.0
    average_new_deal_size: float = 0.0
    total_tasks: int = 0
    active_deals: int = 0
    active_deals_value: float = 0.0
    won_deals: int = 0
    lost_deals: int = 0
    total_revenue: float = 0.0
    lost_revenue: float = 0.0
    average_deal_size: float = 0.0
    average_won_deal_size: float = 0.0
    conversion_rate: float = 0.0
    value_close_rate: float = 0.0
    tasks_completed: int = 0
    tasks_overdue: int = 0


class DashboardMetricsPair(CamelModel):
    current: DashboardMetrics = Field(default_factory=DashboardMetrics)
    previous: DashboardMetrics = Field(default_factory=DashboardMetrics)


class TrendPoint(CamelModel):
    date: str
    contacts: int = 0
    companies: int = 0
    deals: int = 0
    revenue: float = 0.0
    lost_revenue: float = 0.0


class ForecastPoint(CamelModel):
    month: str
    total: float


class StageCount(CamelModel):
    count: int = 0
    sum: float = 0.0


class StageTrend(CamelModel):
    current: StageCount = Field(default_factory=StageCount)
    previous: StageCount = Field(default_factory=StageCount)


class StageMetrics(CamelModel):
    stage: str
    count: int = 0
    sum: float = 0.0
    trend: StageTrend = Field(default_factory=StageTrend)


class DealSummary(CamelModel):
    """A deal resolved with its company and contact names, for top-N lists."""
    company: Optional[str] = None
    contacts: List[str] = Field(default_factory=list)
    name: str
    amount: float = 0.0


class EntityTotal(CamelModel):
    label: str
    sum: float = 0.0


# ─── Activity / tasks ──────────────────────────────────────

class TaskMetrics(CamelModel):
    total_tasks: int = 0
    created_in_period: int = 0
    completed_in_period: int = 0
    overdue: int = 0
    open_tasks: int = 0
    created_prev_period: int = 0


class TaskSummary(CamelModel):
    id: str
    name: Optional[str] = None
    creation_date: Optional[str] = None
    due_date: Optional[str] = None
    completion_date: Optional[str] = None
    status: Optional[str] = None


class TaskList(CamelModel):
    total_tasks: int = 0
    tasks: List[TaskSummary] = Field(default_factory=list)


class ActivityItem(CamelModel):
    type: str
    id: str
    title: str
    date: Optional[str] = None
    description: str = ""


class TodayActivitySummary(CamelModel):
    closed_tasks: int = 0
    new_contacts: int = 0
    new_companies: int = 0
    new_deals: List[DealSummary] = Field(default_factory=list)
