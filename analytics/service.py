"""
Dashboard Service
==================
Builders behind the JSON routes. One DashboardService is created at app
startup (see dashboard/api/main.py) and shared by every request, so the
cache it holds is process-wide.

Builders fetch through HubSpotClient (whose searches are cached
individually), reduce with analytics.deals / analytics.activity, and cache
the reduced result under their own key:

    metrics:{days}                   dashboard pair
    metrics:{days}:{start}:{end}     dashboard pair for an explicit range
    trends:{days}                    trend buckets
    activity:{limit}                 recent activity feed
    properties:deals                 deal property definitions

Dashboard metrics, trends and the activity feed degrade (zeros / empty list)
instead of raising; everything else propagates to the route layer.
"""

import asyncio
from datetime import timezone, tzinfo
from typing import Callable, Dict, List, Optional

from analytics.activity import (
    build_activity_feed,
    compute_task_metrics,
    count_overdue,
    summarize_tasks,
)
from analytics.deals import (
    compute_deal_metrics,
    compute_stage_metrics,
    group_forecast_by_month,
    rank_by_amount,
)
from integrations.hubspot import HubSpotClient
from lib.cache import TTLCache
from lib.date_utils import (
    build_between_filter,
    build_equals_filter,
    build_not_equals_filter,
    combine_filters,
    get_date_range,
    get_day_range,
    get_metric_date_ranges,
    iter_days,
)
from lib.logger import setup_logger
from lib.utils import MS_PER_DAY, day_key, now_ms
from models.crm_models import (
    CLOSED_LOST,
    CLOSED_WON,
    TASK_COMPLETED,
    Company,
    Contact,
    Deal,
    Task,
    parse_records,
)
from models.metrics_models import (
    ActivityItem,
    DashboardMetrics,
    DashboardMetricsPair,
    DealMetrics,
    DealSummary,
    EntityTotal,
    ForecastPoint,
    StageMetrics,
    TaskList,
    TaskMetrics,
    TodayActivitySummary,
    TrendPoint,
)

logger = setup_logger(__name__)

DEAL_PROPERTIES = [
    "amount",
    "dealstage",
    "closedate",
    "createdate",
    "lastmodifieddate",
    "pipeline",
    "hs_is_closed",
    "hs_is_closed_won",
    "hs_is_closed_lost",
]
TASK_PROPERTIES = [
    "hs_task_status",
    "hs_task_completion_date",
    "hs_timestamp",
    "hs_createdate",
]
TASK_INSPECT_PROPERTIES = TASK_PROPERTIES + ["hs_task_subject"]
TOP_DEAL_PROPERTIES = ["dealname", "amount", "createdate", "closedate"]

CREATED_TASKS_LIMIT = 100
COMPLETED_TASKS_LIMIT = 10


def _count_created(records, start: int, end: int, include_end: bool = True) -> int:
    count = 0
    for record in records:
        created = record.created_at
        if created is None or created < start:
            continue
        if created < end or (include_end and created == end):
            count += 1
    return count


def _compose_dashboard(
    deal_metrics: DealMetrics,
    contacts: int,
    companies: int,
    all_time_contacts: int,
    all_time_companies: int,
    total_tasks: int,
    tasks_completed: int,
    tasks_overdue: int,
) -> DashboardMetrics:
    return DashboardMetrics(
        total_contacts=contacts,
        all_time_contacts=all_time_contacts,
        total_companies=companies,
        all_time_companies=all_time_companies,
        total_deals=deal_metrics.total_deals,
        new_deals=deal_metrics.new_deals,
        new_deals_value=deal_metrics.new_deals_value,
        average_new_deal_size=deal_metrics.average_new_deal_size,
        total_tasks=total_tasks,
        active_deals=deal_metrics.open_deals,
        active_deals_value=deal_metrics.active_deals_value,
        won_deals=deal_metrics.won_deals,
        lost_deals=deal_metrics.lost_deals,
        total_revenue=deal_metrics.revenue,
        lost_revenue=deal_metrics.lost_revenue,
        average_deal_size=deal_metrics.average_deal_size,
        average_won_deal_size=deal_metrics.average_won_deal_size,
        conversion_rate=deal_metrics.conversion_rate,
        value_close_rate=deal_metrics.value_close_rate,
        tasks_completed=tasks_completed,
        tasks_overdue=tasks_overdue,
    )


class DashboardService:
    """Dashboard, trend, activity and top-N builders over one HubSpotClient."""

    def __init__(
        self,
        client: HubSpotClient,
        cache: TTLCache,
        tz: tzinfo = None,
        clock: Callable[[], int] = now_ms,
    ):
        self.client = client
        self.cache = cache
        self.tz = tz or timezone.utc
        self._clock = clock

    def _now(self) -> int:
        return self._clock()

    async def _search(self, object_type: str, model: type, filter_groups, properties,
                      force_refresh: bool = False):
        result = await self.client.search_objects(
            object_type, filter_groups, properties, force_refresh=force_refresh,
        )
        return result.total, parse_records(model, result.results)

    def _resolve_window(self, days: int, start_ts: Optional[int], end_ts: Optional[int]):
        """(days, now, cache suffix) for either a day count or an explicit range."""
        if start_ts is not None and end_ts is not None:
            if end_ts < start_ts:
                raise ValueError(f"end ({end_ts}) must not be before start ({start_ts})")
            days = round((end_ts - start_ts) / MS_PER_DAY)
            return days, end_ts, f"{days}:{start_ts}:{end_ts}"
        if days < 0:
            raise ValueError(f"days must be >= 0, got {days}")
        return days, self._now(), str(days)

    # ─── Dashboard metrics ───────────────────────────────────

    async def get_dashboard_metrics(
        self,
        days: int = 30,
        start_ts: Optional[int] = None,
        end_ts: Optional[int] = None,
        force_refresh: bool = False,
    ) -> DashboardMetricsPair:
        """
        Current and previous period metrics, always as a pair.

        Served from cache within the TTL; a failed refresh falls back to the
        stale entry, and with nothing cached both halves are all zeros.

        With days=0 there is no earlier window, so `previous` is zero apart
        from the all-time totals (contacts, companies, tasks); it does not
        repeat the current deal figures.
        """
        days, now, suffix = self._resolve_window(days, start_ts, end_ts)
        key = f"metrics:{suffix}"

        async def build() -> DashboardMetricsPair:
            return await self._build_dashboard_metrics(days, now, force_refresh)

        try:
            return await self.cache.cache_or_fetch(key, build, force_refresh=force_refresh)
        except Exception as e:
            logger.error("Dashboard metrics failed for days=%s: %s", days, e)
            return DashboardMetricsPair()

    async def _build_dashboard_metrics(self, days: int, now: int,
                                       force_refresh: bool) -> DashboardMetricsPair:
        (contact_total, contacts), (company_total, companies), (_, deals), (task_total, tasks) = (
            await asyncio.gather(
                self._search("contacts", Contact, [], ["createdate"], force_refresh),
                self._search("companies", Company, [], ["createdate"], force_refresh),
                self._search("deals", Deal, [], DEAL_PROPERTIES, force_refresh),
                self._search("tasks", Task, [], TASK_PROPERTIES, force_refresh),
            )
        )
        tasks_completed = sum(1 for t in tasks if t.is_completed and t.completed_at is not None)

        current_deals = compute_deal_metrics(deals, days, now)
        if days == 0:
            current = _compose_dashboard(
                current_deals, len(contacts), len(companies), contact_total, company_total,
                task_total, tasks_completed, count_overdue(tasks, now),
            )
            # No earlier window exists for all time; keep only the all-time totals
            previous = DashboardMetrics(
                all_time_contacts=contact_total,
                all_time_companies=company_total,
                total_tasks=task_total,
                tasks_completed=tasks_completed,
            )
            return DashboardMetricsPair(current=current, previous=previous)

        windows = get_metric_date_ranges(days, now)
        previous_deals = compute_deal_metrics(deals, days, windows.prev_end)
        current = _compose_dashboard(
            current_deals,
            _count_created(contacts, windows.start, now),
            _count_created(companies, windows.start, now),
            contact_total, company_total, task_total, tasks_completed,
            count_overdue(tasks, now),
        )
        previous = _compose_dashboard(
            previous_deals,
            _count_created(contacts, windows.prev_start, windows.prev_end, include_end=False),
            _count_created(companies, windows.prev_start, windows.prev_end, include_end=False),
            contact_total, company_total, task_total, tasks_completed,
            count_overdue(tasks, windows.prev_end),
        )
        logger.info(
            "Dashboard metrics built for days=%d: %d deals, %d contacts, %d companies, %d tasks",
            days, len(deals), len(contacts), len(companies), len(tasks),
        )
        return DashboardMetricsPair(current=current, previous=previous)

    async def get_deal_metrics(
        self,
        days: int = 30,
        start_ts: Optional[int] = None,
        end_ts: Optional[int] = None,
        force_refresh: bool = False,
    ) -> DealMetrics:
        days, now, _ = self._resolve_window(days, start_ts, end_ts)
        _, deals = await self._search("deals", Deal, [], DEAL_PROPERTIES, force_refresh)
        return compute_deal_metrics(deals, days, now)

    # ─── Trends ─────────────────────────────────────────────

    async def get_trend_data(self, days: int = 30, force_refresh: bool = False) -> List[TrendPoint]:
        """
        One bucket per calendar day of the last `days` days (today included).

        Contacts, companies and the deal count are bucketed by creation day;
        revenue and lost revenue by close day. Returns [] on failure.
        """
        if days < 1:
            return []

        async def build() -> List[TrendPoint]:
            return await self._build_trend_data(days, force_refresh)

        try:
            return await self.cache.cache_or_fetch(f"trends:{days}", build, force_refresh=force_refresh)
        except Exception as e:
            logger.error("Trend data failed for days=%s: %s", days, e)
            return []

    async def _build_trend_data(self, days: int, force_refresh: bool) -> List[TrendPoint]:
        date_range = get_date_range(days, now=self._now(), tz=self.tz)
        created_filter = build_between_filter("createdate", date_range.start, date_range.end)
        closed_filter = build_between_filter("closedate", date_range.start, date_range.end)

        (_, contacts), (_, companies), (_, deals) = await asyncio.gather(
            self._search("contacts", Contact, created_filter, ["createdate"], force_refresh),
            self._search("companies", Company, created_filter, ["createdate"], force_refresh),
            self._search(
                "deals", Deal, closed_filter,
                ["createdate", "amount", "closedate", "hs_is_closed_won", "hs_is_closed_lost", "dealstage"],
                force_refresh,
            ),
        )

        buckets: Dict[str, TrendPoint] = {
            key: TrendPoint(date=key) for key in iter_days(date_range.start, days + 1, self.tz)
        }

        for contact in contacts:
            bucket = buckets.get(day_key(contact.created_at, self.tz))
            if bucket:
                bucket.contacts += 1
        for company in companies:
            bucket = buckets.get(day_key(company.created_at, self.tz))
            if bucket:
                bucket.companies += 1
        for deal in deals:
            close_bucket = buckets.get(day_key(deal.closed_at, self.tz))
            if close_bucket:
                if deal.is_won:
                    close_bucket.revenue += deal.amount
                elif deal.is_lost:
                    close_bucket.lost_revenue += deal.amount
            created_bucket = buckets.get(day_key(deal.created_at, self.tz))
            if created_bucket:
                created_bucket.deals += 1

        return list(buckets.values())

    # ─── Deal breakdowns ────────────────────────────────────

    async def get_open_deals_forecast_by_month(self, force_refresh: bool = False) -> List[ForecastPoint]:
        _, deals = await self._search(
            "deals", Deal, build_not_equals_filter("dealstage", CLOSED_WON, CLOSED_LOST),
            ["amount", "closedate"], force_refresh,
        )
        return group_forecast_by_month(deals, self.tz)

    async def get_stage_metrics(self, trend_days: int = 30, force_refresh: bool = False) -> List[StageMetrics]:
        _, deals = await self._search(
            "deals", Deal, [],
            ["createdate", "dealstage", "amount", "hs_is_closed", "hs_is_closed_won", "hs_is_closed_lost"],
            force_refresh,
        )
        return compute_stage_metrics(deals, trend_days, self._now())

    async def fetch_deal_properties(self, force_refresh: bool = False) -> List[dict]:
        return await self.cache.cache_or_fetch(
            "properties:deals", self.client.get_deal_properties, force_refresh=force_refresh,
        )

    # ─── Tasks and activity ─────────────────────────────────

    async def get_task_metrics(self, days: int = 30, force_refresh: bool = False) -> TaskMetrics:
        if days < 0:
            raise ValueError(f"days must be >= 0, got {days}")
        total, tasks = await self._search("tasks", Task, [], TASK_PROPERTIES, force_refresh)
        metrics = compute_task_metrics(tasks, days, self._now())
        metrics.total_tasks = total
        return metrics

    async def get_tasks_created_between(self, start: int, end: int,
                                        force_refresh: bool = False) -> TaskList:
        total, tasks = await self._search(
            "tasks", Task, build_between_filter("hs_createdate", start, end),
            TASK_INSPECT_PROPERTIES, force_refresh,
        )
        return TaskList(total_tasks=total, tasks=summarize_tasks(tasks, CREATED_TASKS_LIMIT))

    async def get_tasks_completed_between(self, start: int, end: int,
                                          force_refresh: bool = False) -> TaskList:
        filter_groups = combine_filters(
            build_between_filter("hs_task_completion_date", start, end),
            build_equals_filter("hs_task_status", TASK_COMPLETED),
        )
        total, tasks = await self._search("tasks", Task, filter_groups, TASK_INSPECT_PROPERTIES, force_refresh)
        return TaskList(total_tasks=total, tasks=summarize_tasks(tasks, COMPLETED_TASKS_LIMIT))

    async def get_total_tasks(self, force_refresh: bool = False) -> int:
        total, _ = await self._search("tasks", Task, [], TASK_INSPECT_PROPERTIES, force_refresh)
        return total

    async def get_recent_activity(self, limit: int = 10, force_refresh: bool = False) -> List[ActivityItem]:
        """Newest contacts, companies, deals and tasks merged into one feed. [] on failure."""
        async def build() -> List[ActivityItem]:
            contacts, companies, deals, tasks = await asyncio.gather(
                self.client.list_objects(
                    "contacts", ["firstname", "lastname", "email", "createdate", "lastmodifieddate"], limit),
                self.client.list_objects(
                    "companies", ["name", "industry", "createdate", "lastmodifieddate"], limit),
                self.client.list_objects(
                    "deals", ["dealname", "amount", "dealstage", "createdate", "lastmodifieddate"], limit),
                self.client.list_objects(
                    "tasks", ["hs_timestamp", "hs_task_subject", "hs_task_status", "hs_task_completion_date"],
                    limit),
            )
            return build_activity_feed(
                parse_records(Contact, contacts),
                parse_records(Company, companies),
                parse_records(Deal, deals),
                parse_records(Task, tasks),
                limit,
            )

        try:
            return await self.cache.cache_or_fetch(f"activity:{limit}", build, force_refresh=force_refresh)
        except Exception as e:
            logger.error("Recent activity failed: %s", e)
            return []

    async def get_today_activity_summary(self, force_refresh: bool = False) -> TodayActivitySummary:
        day = get_day_range(self._now(), self.tz)
        created_today = build_between_filter("createdate", day.start, day.end)
        closed_today = combine_filters(
            build_equals_filter("hs_task_status", TASK_COMPLETED),
            build_between_filter("hs_task_completion_date", day.start, day.end),
        )

        (contacts, _), (companies, _), (closed_tasks, _), (_, deals) = await asyncio.gather(
            self._search("contacts", Contact, created_today, ["createdate"], force_refresh),
            self._search("companies", Company, created_today, ["createdate"], force_refresh),
            self._search("tasks", Task, closed_today,
                         ["hs_task_status", "hs_task_completion_date"], force_refresh),
            self._search("deals", Deal, created_today,
                         ["dealname", "amount", "createdate"], force_refresh),
        )
        return TodayActivitySummary(
            closed_tasks=closed_tasks,
            new_contacts=contacts,
            new_companies=companies,
            new_deals=await self._resolve_deals(deals, default_name="New Deal"),
        )

    # ─── Top-N lists ────────────────────────────────────────

    async def _resolve_deals(self, deals: List[Deal], default_name: str = "Deal") -> List[DealSummary]:
        """Attach company and contact names to each deal, throttled."""
        async def resolve(deal: Deal) -> DealSummary:
            company, contacts = await asyncio.gather(
                self.client.get_deal_company(deal.id),
                self.client.get_deal_contacts(deal.id),
            )
            return DealSummary(
                company=company,
                contacts=contacts,
                name=deal.properties.dealname or default_name,
                amount=deal.amount,
            )

        return await self.client.throttled_batch([
            (lambda deal=deal: resolve(deal)) for deal in deals
        ])

    async def _top_deals(self, filter_groups, limit: int, force_refresh: bool) -> List[DealSummary]:
        _, deals = await self._search("deals", Deal, filter_groups, TOP_DEAL_PROPERTIES, force_refresh)
        return await self._resolve_deals(rank_by_amount(deals, limit))

    async def get_top_won_deals(self, start: int, end: int, limit: int = 10,
                                force_refresh: bool = False) -> List[DealSummary]:
        filter_groups = combine_filters(
            build_equals_filter("dealstage", CLOSED_WON),
            build_between_filter("closedate", start, end),
        )
        return await self._top_deals(filter_groups, limit, force_refresh)

    async def get_top_lost_deals(self, start: int, end: int, limit: int = 10,
                                 force_refresh: bool = False) -> List[DealSummary]:
        filter_groups = combine_filters(
            build_equals_filter("dealstage", CLOSED_LOST),
            build_between_filter("closedate", start, end),
        )
        return await self._top_deals(filter_groups, limit, force_refresh)

    async def get_top_new_deals(self, start: int, end: int, limit: int = 10,
                                force_refresh: bool = False) -> List[DealSummary]:
        return await self._top_deals(build_between_filter("createdate", start, end), limit, force_refresh)

    async def get_top_open_deals(self, limit: int = 10, force_refresh: bool = False) -> List[DealSummary]:
        """Largest open deals, all time."""
        return await self._top_deals(
            build_not_equals_filter("dealstage", CLOSED_WON, CLOSED_LOST), limit, force_refresh,
        )

    async def get_top_payed_deals(self, start: int, end: int, limit: int = 10,
                                  stage: Optional[str] = None,
                                  force_refresh: bool = False) -> List[DealSummary]:
        """Largest deals closed in [start, end], optionally restricted to one stage."""
        filter_groups = build_between_filter("closedate", start, end)
        if stage:
            filter_groups = combine_filters(filter_groups, build_equals_filter("dealstage", stage))
        return await self._top_deals(filter_groups, limit, force_refresh)

    async def _entity_label(self, deal_id: str) -> str:
        company = await self.client.get_deal_company(deal_id)
        if company:
            return company
        return ", ".join(await self.client.get_deal_contacts(deal_id))

    async def _top_entities(self, stage: str, start: int, end: int, limit: int,
                            force_refresh: bool) -> List[EntityTotal]:
        filter_groups = combine_filters(
            build_equals_filter("dealstage", stage),
            build_between_filter("closedate", start, end),
        )
        _, deals = await self._search("deals", Deal, filter_groups, TOP_DEAL_PROPERTIES, force_refresh)
        deals = [d for d in deals if d.amount]
        labels = await self.client.throttled_batch([
            (lambda deal_id=d.id: self._entity_label(deal_id)) for d in deals
        ])

        totals: Dict[str, float] = {}
        for deal, label in zip(deals, labels):
            if not label:
                continue
            totals[label] = totals.get(label, 0.0) + deal.amount
        ranked = sorted(totals.items(), key=lambda kv: kv[1], reverse=True)[:max(limit, 0)]
        return [EntityTotal(label=label, sum=total) for label, total in ranked]

    async def get_top_won_entities(self, start: int, end: int, limit: int = 10,
                                   force_refresh: bool = False) -> List[EntityTotal]:
        """Companies (or contact groups when a deal has no company) by won amount."""
        return await self._top_entities(CLOSED_WON, start, end, limit, force_refresh)

    async def get_top_lost_entities(self, start: int, end: int, limit: int = 10,
                                    force_refresh: bool = False) -> List[EntityTotal]:
        return await self._top_entities(CLOSED_LOST, start, end, limit, force_refresh)

    def get_status(self) -> dict:
        return {
            "hubspot": self.client.get_status(),
            "cache_entries": len(self.cache),
            "timezone": str(self.tz),
        }
