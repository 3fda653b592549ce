"""
Deal Metrics Aggregator
========================
Pure reductions over lists of Deal records. No I/O: the builders in
analytics.service fetch the deals and pass them in together with `now`,
so every function here is deterministic for identical input.

Exports:
    compute_deal_metrics, group_forecast_by_month, compute_stage_metrics,
    rank_by_amount
"""

from __future__ import annotations

from collections import defaultdict
from datetime import tzinfo
from typing import Dict, Iterable, List, Optional

from lib.date_utils import get_metric_date_ranges
from lib.utils import month_key, safe_div
from models.crm_models import CLOSED_LOST, CLOSED_WON, Deal
from models.metrics_models import (
    DealMetrics,
    ForecastPoint,
    StageCount,
    StageMetrics,
    StageTrend,
)

UNKNOWN_STAGE = "Unknown"


def _in_window(ts: Optional[int], start: int, end: int) -> bool:
    return ts is not None and start <= ts <= end


def compute_deal_metrics(deals: Iterable[Deal], period_days: int, now: int) -> DealMetrics:
    """
    Reduce deals into counts, sums and rates for the `period_days` window
    ending at `now` (0 = all time).

    Windowed mode anchors new deals on creation date but won/lost deals on
    close date, so a deal opened long ago and won yesterday counts as
    revenue today. Open deals, active value and average_deal_size are
    always all-time.
    """
    deals = list(deals)
    windows = get_metric_date_ranges(period_days, now)
    all_time = period_days == 0

    m = DealMetrics(total_deals=len(deals))
    won_sizes: List[float] = []
    all_sizes: List[float] = []
    sum_won = 0.0
    sum_lost = 0.0

    for deal in deals:
        created = deal.created_at
        closed = deal.closed_at
        stage = deal.stage
        amount = deal.amount

        if amount:
            all_sizes.append(amount)

        if all_time:
            is_new = created is not None
            counts_won = stage == CLOSED_WON
            counts_lost = stage == CLOSED_LOST
        else:
            is_new = _in_window(created, windows.start, now)
            counts_won = stage == CLOSED_WON and _in_window(closed, windows.start, now)
            counts_lost = stage == CLOSED_LOST and _in_window(closed, windows.start, now)
            if created is not None and windows.prev_start <= created < windows.prev_end:
                m.created_prev_period += 1

        if is_new:
            m.new_deals += 1
            m.new_deals_value += amount

        if counts_won:
            m.won_deals += 1
            if amount:
                m.revenue += amount
                won_sizes.append(amount)
                sum_won += amount

        if counts_lost:
            m.lost_deals += 1
            if amount:
                m.lost_revenue += amount
                sum_lost += amount

        # Open pipeline is a snapshot, never period-filtered
        if stage not in (CLOSED_WON, CLOSED_LOST):
            m.open_deals += 1
            m.active_deals_value += amount

    m.average_deal_size = safe_div(sum(all_sizes), len(all_sizes))
    m.average_won_deal_size = safe_div(sum(won_sizes), len(won_sizes))
    m.average_new_deal_size = safe_div(m.new_deals_value, m.new_deals)
    m.conversion_rate = safe_div(m.won_deals, m.won_deals + m.lost_deals) * 100
    m.value_close_rate = safe_div(sum_won, sum_won + sum_lost) * 100
    return m


def group_forecast_by_month(deals: Iterable[Deal], tz: tzinfo = None) -> List[ForecastPoint]:
    """
    Sum open-deal amounts per close month ('YYYY-MM'), ascending.
    Deals without a close date or with a zero amount are skipped.
    """
    totals: Dict[str, float] = defaultdict(float)
    for deal in deals:
        amount = deal.amount
        month = month_key(deal.closed_at, tz)
        if month is None or not amount:
            continue
        totals[month] += amount
    return [ForecastPoint(month=month, total=totals[month]) for month in sorted(totals)]


def compute_stage_metrics(deals: Iterable[Deal], trend_days: int, now: int) -> List[StageMetrics]:
    """Open deals grouped by stage, with creation-anchored current/previous trend buckets."""
    windows = get_metric_date_ranges(trend_days, now)
    stages: Dict[str, StageMetrics] = {}

    for deal in deals:
        if not deal.is_open:
            continue
        stage = deal.stage or UNKNOWN_STAGE
        amount = deal.amount
        row = stages.get(stage)
        if row is None:
            row = stages[stage] = StageMetrics(
                stage=stage, trend=StageTrend(current=StageCount(), previous=StageCount()),
            )
        row.count += 1
        row.sum += amount

        created = deal.created_at
        if created is None:
            continue
        if windows.start <= created <= now:
            row.trend.current.count += 1
            row.trend.current.sum += amount
        elif windows.prev_start <= created < windows.prev_end:
            row.trend.previous.count += 1
            row.trend.previous.sum += amount

    return list(stages.values())


def rank_by_amount(deals: Iterable[Deal], limit: int) -> List[Deal]:
    """Deals with a non-zero amount, largest first, truncated to `limit`."""
    ranked = sorted((d for d in deals if d.amount), key=lambda d: d.amount, reverse=True)
    return ranked[:max(limit, 0)]
