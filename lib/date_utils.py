"""
Date range and HubSpot filter helpers.

Ranges are epoch-millisecond pairs. Calendar ranges snap to day edges in the
dashboard timezone, so end - start is never exactly days * 86_400_000; count
calendar days with count_calendar_days() instead.
"""
from datetime import datetime, time as dt_time, timedelta, timezone, tzinfo
from typing import Any, Dict, List, NamedTuple, Optional

from lib.utils import MS_PER_DAY, now_ms, to_datetime, to_ms


class DateRange(NamedTuple):
    start: int
    end: int


class MetricWindows(NamedTuple):
    period_ms: int
    start: int
    prev_start: int
    prev_end: int


def _start_of_day(dt: datetime) -> datetime:
    return datetime.combine(dt.date(), dt_time.min, tzinfo=dt.tzinfo)


def _end_of_day(dt: datetime) -> datetime:
    return datetime.combine(dt.date(), dt_time(23, 59, 59, 999000), tzinfo=dt.tzinfo)


def get_date_range(
    days: int,
    now: Optional[int] = None,
    tz: tzinfo = None,
    wall_clock: Optional[int] = None,
) -> DateRange:
    """
    Current period for the last `days` calendar days, or all time if days == 0.

    `now` defaults to the wall clock and is never allowed past it. For
    days > 0 the end snaps to 23:59:59.999 of `now`'s day but stays at or
    before the wall clock; the start is 00:00:00.000 `days` days earlier.
    """
    if days < 0:
        raise ValueError(f"days must be >= 0, got {days}")
    tz = tz or timezone.utc
    real_now = wall_clock if wall_clock is not None else now_ms()
    current = real_now if now is None else min(now, real_now)

    if days == 0:
        return DateRange(0, current)

    now_dt = to_datetime(current, tz)
    end = min(to_ms(_end_of_day(now_dt)), real_now)
    start = to_ms(_start_of_day(now_dt - timedelta(days=days)))
    return DateRange(start, end)


def get_previous_date_range(
    days: int,
    now: Optional[int] = None,
    tz: tzinfo = None,
    wall_clock: Optional[int] = None,
) -> DateRange:
    """The `days`-day window immediately before get_date_range(days)."""
    if days == 0:
        return DateRange(0, 0)
    tz = tz or timezone.utc
    current = get_date_range(days, now=now, tz=tz, wall_clock=wall_clock)
    prev_end_dt = to_datetime(current.start - 1, tz)
    prev_start_dt = _start_of_day(prev_end_dt - timedelta(days=days - 1))
    return DateRange(to_ms(prev_start_dt), to_ms(_end_of_day(prev_end_dt)))


def get_metric_date_ranges(days: int, now: Optional[int] = None) -> MetricWindows:
    """Raw arithmetic windows (no day snapping) used by period aggregations."""
    now = now_ms() if now is None else now
    period = days * MS_PER_DAY
    start = now - period
    return MetricWindows(period, start, start - period, start)


def get_day_range(now: Optional[int] = None, tz: tzinfo = None) -> DateRange:
    """00:00:00.000 to 23:59:59.999 of the day containing `now`."""
    tz = tz or timezone.utc
    now_dt = to_datetime(now_ms() if now is None else now, tz)
    return DateRange(to_ms(_start_of_day(now_dt)), to_ms(_end_of_day(now_dt)))


def count_calendar_days(date_range: DateRange, tz: tzinfo = None) -> int:
    """Number of calendar days touched by a range, inclusive of both ends."""
    tz = tz or timezone.utc
    start = to_datetime(date_range.start, tz).date()
    end = to_datetime(date_range.end, tz).date()
    return (end - start).days + 1


def iter_days(start: int, count: int, tz: tzinfo = None) -> List[str]:
    """`count` consecutive 'YYYY-MM-DD' keys beginning at start's calendar day."""
    tz = tz or timezone.utc
    first = to_datetime(start, tz).date()
    return [(first + timedelta(days=i)).isoformat() for i in range(count)]


# ─── HubSpot search filter builders ─────────────────────────

def build_between_filter(property_name: str, start: int, end: int) -> List[Dict[str, Any]]:
    """Filter groups matching property_name between two timestamps (inclusive)."""
    return [
        {
            "filters": [
                {
                    "propertyName": property_name,
                    "operator": "BETWEEN",
                    "value": start,
                    "highValue": end,
                },
            ],
        },
    ]


def build_equals_filter(property_name: str, value: str) -> List[Dict[str, Any]]:
    """Filter groups matching property_name == value."""
    return [{"filters": [{"propertyName": property_name, "operator": "EQ", "value": value}]}]


def build_not_equals_filter(property_name: str, *values: str) -> List[Dict[str, Any]]:
    """Filter groups excluding every value in `values` (AND logic)."""
    return build_and_filter([
        {"propertyName": property_name, "operator": "NEQ", "value": v} for v in values
    ])


def build_and_filter(filters: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """A single filter group with multiple filters (AND logic)."""
    return [{"filters": list(filters)}]


def combine_filters(*filter_groups: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """AND together the filters of several filter-group lists into one group."""
    filters: List[Dict[str, Any]] = []
    for groups in filter_groups:
        for group in groups:
            filters.extend(group.get("filters", []))
    return build_and_filter(filters)
