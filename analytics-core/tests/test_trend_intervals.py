import logging
import math
from datetime import date, timedelta

import pytest

from app.services.trends import (
    Interval,
    PayloadShapeError,
    TimePoint,
    aggregate_points,
    available_intervals,
    parse_trend_payload,
)
from app.services.trends.intervals import group_key


def _daily(start: date, days: int, **counts):
    return [
        {"date": (start + timedelta(days=i)).isoformat(), **counts}
        for i in range(days)
    ]


def test_month_bucket_is_noop_for_year_month_key():
    points = parse_trend_payload({"impression": {"2024-01": 100}})
    result = aggregate_points(points, Interval.MONTH)

    assert len(result) == 1
    point = result[0]
    assert point.date == "2024-01-01"
    assert point.impressions == 100
    assert point.clicks == 0
    assert point.ctr == 0


def test_weekly_sums_instead_of_averaging():
    # Sunday Jan 7 2024 through Saturday Jan 13 2024
    points = _daily(date(2024, 1, 7), 7, impressions=100)
    result = aggregate_points(points, "7d")

    assert [p.date for p in result] == ["2024-01-07"]
    assert result[0].impressions == 700


def test_ratios_recomputed_from_totals():
    points = [
        {"date": "2024-01-08", "impressions": 100, "clicks": 50, "conversions": 5},
        {"date": "2024-01-09", "impressions": 900, "clicks": 10, "conversions": 5},
    ]
    [week] = aggregate_points(points, Interval.WEEK)

    assert week.clicks == 60
    assert week.ctr == pytest.approx(6.0)  # 60 / 1000, not mean(50%, 1.11%)
    assert week.conversion_rate == pytest.approx(10 / 60 * 100)


def test_week_key_crosses_year_boundary():
    assert group_key(date(2024, 1, 1), Interval.WEEK) == date(2023, 12, 31)
    assert group_key(date(2024, 2, 29), Interval.MONTH) == date(2024, 2, 1)
    assert group_key(date(2024, 2, 29), Interval.DAY) == date(2024, 2, 29)


def test_monthly_grouping_and_sort_order():
    points = [
        {"date": "2024-03-02", "impressions": 1},
        {"date": "2024-02-28", "impressions": 2},
        {"date": "2024-02-10", "impressions": 3},
    ]
    result = aggregate_points(points, "month")

    assert [(p.date, p.impressions) for p in result] == [("2024-02-01", 5), ("2024-03-01", 1)]


def test_daily_regrouping_is_idempotent():
    points = [
        {"date": "2024-01-02", "impressions": 10, "clicks": 3, "conversions": 1, "revenue": 100},
        {"date": "2024-01-01", "impressions": 7, "clicks": 0},
        {"date": "2024-01-02", "impressions": 5, "clicks": 2},
    ]
    once = aggregate_points(points, Interval.DAY)
    twice = aggregate_points(once, Interval.DAY)

    assert once == twice
    assert [p.date for p in once] == ["2024-01-01", "2024-01-02"]


def test_additivity_across_disjoint_subsets():
    left = _daily(date(2024, 5, 5), 3, impressions=40, clicks=4, conversions=1)
    right = _daily(date(2024, 5, 8), 4, impressions=15, clicks=2, conversions=0)

    [whole] = aggregate_points(left + right, Interval.WEEK)
    [a] = aggregate_points(left, Interval.WEEK)
    [b] = aggregate_points(right, Interval.WEEK)

    assert whole.impressions == a.impressions + b.impressions
    assert whole.clicks == a.clicks + b.clicks
    assert whole.conversions == a.conversions + b.conversions


def test_revenue_summed_and_missing_revenue_preserved():
    with_revenue = aggregate_points(
        [
            {"date": "2024-01-01", "revenue": 100.0},
            {"date": "2024-01-02", "revenue": 50.5},
        ],
        Interval.WEEK,
    )
    without_revenue = aggregate_points([{"date": "2024-01-01", "impressions": 3}], Interval.WEEK)

    assert with_revenue[0].revenue == pytest.approx(150.5)
    assert without_revenue[0].revenue is None


def test_non_finite_and_negative_revenue_are_ignored():
    [point] = aggregate_points(
        [
            {"date": "2024-01-01", "revenue": math.inf},
            {"date": "2024-01-01", "revenue": -5},
            {"date": "2024-01-01", "revenue": 12.5},
        ],
        Interval.DAY,
    )
    [typed] = aggregate_points(
        [TimePoint(date="2024-01-01", impressions=-3, revenue=float("nan"))],
        Interval.DAY,
    )

    assert point.revenue == pytest.approx(12.5)
    assert typed.revenue is None
    assert typed.impressions == 0


def test_ratios_are_finite_when_denominators_are_zero():
    [point] = aggregate_points([{"date": "2024-01-01", "impressions": 0, "clicks": 9}], Interval.DAY)

    assert point.ctr == 0
    assert point.conversion_rate == 0
    assert math.isfinite(point.ctr)


def test_invalid_point_date_is_skipped(caplog):
    points = [
        {"date": "not-a-date", "impressions": 5},
        {"date": "2024-01-02", "impressions": 3},
    ]
    with caplog.at_level(logging.WARNING, logger="app.services.trends.intervals"):
        result = aggregate_points(points, Interval.DAY)

    assert [p.impressions for p in result] == [3]
    assert "not-a-date" in caplog.text


def test_empty_input_gives_empty_output():
    assert aggregate_points([], Interval.WEEK) == []
    assert aggregate_points(None, Interval.WEEK) == []


def test_accepts_time_points():
    result = aggregate_points(
        [TimePoint(date="2024-01-03", impressions=4, clicks=1), TimePoint(date="2024-01-04", impressions=6)],
        Interval.WEEK,
    )
    assert result == [
        TimePoint(date="2023-12-31", impressions=10, clicks=1, conversions=0, ctr=pytest.approx(10.0))
    ]


def test_non_list_points_fail_fast():
    with pytest.raises(PayloadShapeError):
        aggregate_points({"date": "2024-01-01"}, Interval.DAY)
    with pytest.raises(PayloadShapeError):
        aggregate_points("2024-01-01", Interval.DAY)
    with pytest.raises(PayloadShapeError):
        aggregate_points([42], Interval.DAY)


class TestIntervalOptions:
    def test_parse_codes_and_words(self):
        assert Interval.parse("1d") is Interval.DAY
        assert Interval.parse("Weekly") is Interval.WEEK
        assert Interval.parse(Interval.MONTH) is Interval.MONTH

    def test_unknown_interval(self):
        with pytest.raises(ValueError):
            Interval.parse("90d")

    def test_available_views_per_fetched_interval(self):
        assert available_intervals("1d") == [Interval.DAY, Interval.WEEK, Interval.MONTH]
        assert available_intervals("7d") == [Interval.WEEK, Interval.MONTH]
        assert available_intervals("30d") == [Interval.MONTH]

    def test_refuses_finer_regrouping(self):
        points = [{"date": "2024-01-07", "impressions": 1}]
        with pytest.raises(ValueError):
            aggregate_points(points, Interval.DAY, fetched=Interval.WEEK)
        assert aggregate_points(points, Interval.MONTH, fetched=Interval.WEEK)[0].date == "2024-01-01"
