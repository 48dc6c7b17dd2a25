"""Regrouping of canonical-dated points into day / week / month buckets."""
from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Mapping
from datetime import date, datetime
from enum import Enum
from typing import Any

import pandas as pd

from .buckets import DATE_FMT, sunday_on_or_before
from .metrics import pct_series, to_count
from .models import PayloadShapeError, Series, TimePoint

logger = logging.getLogger(__name__)

SUM_COLS = ["impressions", "clicks", "conversions", "revenue"]


class Interval(str, Enum):
    DAY = "1d"
    WEEK = "7d"
    MONTH = "30d"

    @classmethod
    def parse(cls, value: "Interval | str") -> "Interval":
        if isinstance(value, cls):
            return value
        key = str(value or "").strip().lower()
        member = _ALIASES.get(key)
        if member is None:
            raise ValueError(f"Unknown interval: {value!r}")
        return member

    @property
    def label(self) -> str:
        return {"1d": "Daily", "7d": "Weekly", "30d": "Monthly"}[self.value]


_ALIASES = {
    "1d": Interval.DAY,
    "day": Interval.DAY,
    "daily": Interval.DAY,
    "7d": Interval.WEEK,
    "week": Interval.WEEK,
    "weekly": Interval.WEEK,
    "30d": Interval.MONTH,
    "month": Interval.MONTH,
    "monthly": Interval.MONTH,
}

INTERVAL_ORDER = [Interval.DAY, Interval.WEEK, Interval.MONTH]


def available_intervals(fetched: Interval | str) -> list[Interval]:
    """Views that can be derived from data fetched at `fetched` (never finer)."""
    fetched = Interval.parse(fetched)
    return INTERVAL_ORDER[INTERVAL_ORDER.index(fetched):]


def group_key(day: date, interval: Interval | str) -> date:
    interval = Interval.parse(interval)
    if interval is Interval.WEEK:
        return sunday_on_or_before(day)
    if interval is Interval.MONTH:
        return day.replace(day=1)
    return day


def _parse_point_date(value: Any) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value).strip(), DATE_FMT).date()
    except ValueError:
        return None


def _to_revenue(value: Any) -> float | None:
    if value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return max(number, 0.0)


def _point_record(point: Any) -> dict[str, Any]:
    if isinstance(point, TimePoint):
        return {
            "date": point.date,
            "impressions": to_count(point.impressions),
            "clicks": to_count(point.clicks),
            "conversions": to_count(point.conversions),
            "revenue": _to_revenue(point.revenue),
        }
    if isinstance(point, Mapping):
        return {
            "date": point.get("date"),
            "impressions": to_count(point.get("impressions")),
            "clicks": to_count(point.get("clicks")),
            "conversions": to_count(point.get("conversions")),
            "revenue": _to_revenue(point.get("revenue")),
        }
    raise PayloadShapeError(f"Trend point must be an object, got {type(point).__name__}")


def ensure_sequence(value: Any, what: str) -> list[Any]:
    """Materialize a list-like argument; strings, mappings and scalars are rejected."""
    if value is None:
        return []
    if isinstance(value, (str, bytes, Mapping)) or not isinstance(value, Iterable):
        raise PayloadShapeError(f"{what} must be a list, got {type(value).__name__}")
    return list(value)


def aggregate_points(
    points: Iterable[TimePoint | Mapping[str, Any]] | None,
    interval: Interval | str,
    *,
    fetched: Interval | str | None = None,
) -> list[TimePoint]:
    """
    Regroup points into `interval` buckets.

    Counts (and revenue) are summed per group; CTR and conversion rate are
    recomputed from the summed counts. Points whose date is not a canonical
    date are skipped with a warning.

    Args:
        points: TimePoints or mappings with date/impressions/clicks/conversions[/revenue]
        interval: target grouping ("1d", "7d", "30d" or an Interval)
        fetched: interval the data was fetched at; regrouping finer than it is refused

    Returns:
        New TimePoints, one per group key, ascending by date
    """
    interval = Interval.parse(interval)
    if fetched is not None and interval not in available_intervals(fetched):
        raise ValueError(
            f"Cannot regroup {Interval.parse(fetched).label.lower()} data into {interval.label.lower()} buckets"
        )

    records: list[dict[str, Any]] = []
    for point in ensure_sequence(points, "Trend points"):
        record = _point_record(point)
        day = _parse_point_date(record["date"])
        if day is None:
            logger.warning("Skipping trend point with invalid date %r", record["date"])
            continue
        record["key"] = group_key(day, interval).isoformat()
        records.append(record)

    if not records:
        return []

    df = pd.DataFrame.from_records(records, columns=["key", *SUM_COLS])
    df["revenue"] = pd.to_numeric(df["revenue"], errors="coerce")

    # min_count=1 keeps revenue missing for groups where no point carried it
    grouped = df.groupby("key", sort=True)[SUM_COLS].sum(min_count=1)
    grouped["ctr"] = pct_series(grouped["clicks"], grouped["impressions"])
    grouped["conversion_rate"] = pct_series(grouped["conversions"], grouped["clicks"])

    result = [
        TimePoint(
            date=str(key),
            impressions=int(row["impressions"]),
            clicks=int(row["clicks"]),
            conversions=int(row["conversions"]),
            ctr=float(row["ctr"]),
            conversion_rate=float(row["conversion_rate"]),
            revenue=None if pd.isna(row["revenue"]) else float(row["revenue"]),
        )
        for key, row in grouped.iterrows()
    ]
    logger.debug("Grouped %d points into %d %s buckets", len(records), len(result), interval.label.lower())
    return result


def aggregate_series(series: Series, interval: Interval | str) -> Series:
    return Series(name=series.name, points=tuple(aggregate_points(series.points, interval)))
