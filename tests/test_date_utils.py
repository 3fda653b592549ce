"""Tests for period boundaries and HubSpot filter builders."""

from datetime import timedelta, timezone

import pytest

from conftest import DAY, NOW, ms
from lib.date_utils import (
    DateRange,
    build_and_filter,
    build_between_filter,
    build_equals_filter,
    build_not_equals_filter,
    combine_filters,
    count_calendar_days,
    get_date_range,
    get_day_range,
    get_metric_date_ranges,
    get_previous_date_range,
    iter_days,
)
from lib.utils import day_key


class TestGetDateRange:
    def test_all_time_runs_from_epoch_to_now(self):
        assert get_date_range(0, now=NOW, wall_clock=NOW) == DateRange(0, NOW)

    def test_start_snaps_to_midnight_n_days_back(self):
        r = get_date_range(30, now=NOW, wall_clock=NOW)
        assert r.start == ms(2024, 5, 11)
        assert day_key(r.start) == "2024-05-11"

    def test_end_never_passes_wall_clock(self):
        r = get_date_range(30, now=NOW, wall_clock=NOW)
        assert r.end == NOW

    def test_end_snaps_to_end_of_day_for_past_anchor(self):
        r = get_date_range(7, now=NOW, wall_clock=NOW + 5 * DAY)
        assert r.end == ms(2024, 6, 10, 23, 59, 59, 999000)

    def test_future_anchor_is_clamped(self):
        r = get_date_range(7, now=NOW + 3 * DAY, wall_clock=NOW)
        assert r.end == NOW
        assert r.start == ms(2024, 6, 3)

    def test_calendar_day_count(self):
        r = get_date_range(30, now=NOW, wall_clock=NOW)
        # n days back plus today
        assert count_calendar_days(r) == 31
        assert r.end - r.start != 30 * DAY

    def test_negative_days_rejected(self):
        with pytest.raises(ValueError):
            get_date_range(-1, now=NOW)

    def test_respects_timezone(self):
        tz = timezone(timedelta(hours=-5))
        r = get_date_range(1, now=NOW, tz=tz, wall_clock=NOW + DAY)
        # 15:30Z is 10:30 local, so local midnight of the previous day is 05:00Z
        assert r.start == ms(2024, 6, 9, 5)
        assert r.end == ms(2024, 6, 11, 4, 59, 59, 999000)


class TestGetPreviousDateRange:
    def test_all_time_has_no_previous(self):
        assert get_previous_date_range(0, now=NOW) == DateRange(0, 0)

    def test_previous_window_ends_just_before_current(self):
        current = get_date_range(30, now=NOW, wall_clock=NOW)
        previous = get_previous_date_range(30, now=NOW, wall_clock=NOW)
        assert previous.end == current.start - 1
        assert previous.start == ms(2024, 4, 11)

    def test_previous_window_spans_n_calendar_days(self):
        previous = get_previous_date_range(7, now=NOW, wall_clock=NOW)
        assert count_calendar_days(previous) == 7


class TestMetricDateRanges:
    def test_raw_arithmetic(self):
        w = get_metric_date_ranges(10, NOW)
        assert w.period_ms == 10 * DAY
        assert w.start == NOW - 10 * DAY
        assert w.prev_start == NOW - 20 * DAY
        assert w.prev_end == w.start

    def test_zero_days_collapses(self):
        w = get_metric_date_ranges(0, NOW)
        assert w.start == w.prev_start == w.prev_end == NOW


class TestDayHelpers:
    def test_day_range_covers_whole_day(self):
        r = get_day_range(NOW)
        assert r == DateRange(ms(2024, 6, 10), ms(2024, 6, 10, 23, 59, 59, 999000))

    def test_iter_days_crosses_month_boundary(self):
        assert iter_days(ms(2024, 5, 30, 12), 4) == [
            "2024-05-30", "2024-05-31", "2024-06-01", "2024-06-02",
        ]


class TestFilterBuilders:
    def test_between(self):
        assert build_between_filter("createdate", 1, 2) == [
            {"filters": [{"propertyName": "createdate", "operator": "BETWEEN", "value": 1, "highValue": 2}]}
        ]

    def test_equals(self):
        assert build_equals_filter("dealstage", "closedwon") == [
            {"filters": [{"propertyName": "dealstage", "operator": "EQ", "value": "closedwon"}]}
        ]

    def test_not_equals_ands_every_value(self):
        groups = build_not_equals_filter("dealstage", "closedwon", "closedlost")
        assert len(groups) == 1
        assert [f["value"] for f in groups[0]["filters"]] == ["closedwon", "closedlost"]
        assert all(f["operator"] == "NEQ" for f in groups[0]["filters"])

    def test_and_filter_wraps_one_group(self):
        filters = [{"propertyName": "a", "operator": "EQ", "value": "1"}]
        assert build_and_filter(filters) == [{"filters": filters}]

    def test_combine_merges_into_single_group(self):
        groups = combine_filters(
            build_equals_filter("dealstage", "closedwon"),
            build_between_filter("closedate", 1, 2),
        )
        assert len(groups) == 1
        assert [f["propertyName"] for f in groups[0]["filters"]] == ["dealstage", "closedate"]
