"""Merge independently fetched named series into one chart-ready table."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Sequence

import pandas as pd

from .intervals import Interval, aggregate_series
from .models import COMBINED_TOTAL, Series

logger = logging.getLogger(__name__)

DATE_COLUMN = "date"
COUNT_FIELDS = {"impressions", "clicks", "conversions"}
VALUE_FIELDS = {
    "impressions": "impressions",
    "clicks": "clicks",
    "conversions": "conversions",
    "ctr": "ctr",
    "conversion_rate": "conversion_rate",
    "conversionrate": "conversion_rate",
    "revenue": "revenue",
}


@dataclass(frozen=True)
class CombinedTable:
    """One row per date, one column per series (plus the optional combined total)."""

    columns: list[str] = field(default_factory=list)
    rows: list[dict[str, Any]] = field(default_factory=list)

    def to_frame(self) -> pd.DataFrame:
        if not self.rows:
            return pd.DataFrame(columns=self.columns, index=pd.Index([], name=DATE_COLUMN))
        return pd.DataFrame(self.rows).set_index(DATE_COLUMN)[self.columns]


def resolve_value_field(value_field: str) -> str:
    key = str(value_field or "").strip().lower()
    if key not in VALUE_FIELDS:
        raise ValueError(f"Unknown value field: {value_field!r}")
    return VALUE_FIELDS[key]


def _cell(value: Any, value_field: str) -> int | float:
    if value is None or pd.isna(value):
        return 0 if value_field in COUNT_FIELDS else 0.0
    if value_field in COUNT_FIELDS:
        return int(value)
    return float(value)


def combine_series(
    series: Sequence[Series],
    value_field: str = "impressions",
    include_combined_total: bool = False,
) -> CombinedTable:
    """
    Union the dates of every series and lay the selected field out per series.

    A series with no point on a date contributes 0 there. With
    `include_combined_total` and more than one series, a "Combined Total"
    column holds the per-date sum across series.
    """
    value_field = resolve_value_field(value_field)
    names = [s.name for s in series]
    duplicates = sorted({n for n in names if names.count(n) > 1})
    if duplicates:
        raise ValueError(f"Series names must be unique, got duplicates: {duplicates}")
    if COMBINED_TOTAL in names:
        raise ValueError(f"'{COMBINED_TOTAL}' is reserved and cannot be used as a series name")
    if DATE_COLUMN in names:
        raise ValueError(f"'{DATE_COLUMN}' is the row key and cannot be used as a series name")
    if not series:
        return CombinedTable()

    columns = []
    for s in series:
        values: dict[str, Any] = {}
        for point in s.points:
            # repeated dates inside one series are summed; aggregated series never have them
            current = values.get(point.date)
            value = getattr(point, value_field)
            values[point.date] = value if current is None else current + (value or 0)
        columns.append(pd.Series(values, name=s.name, dtype="float64"))

    frame = pd.concat(columns, axis=1, sort=False)
    frame = frame.reindex(columns=names).fillna(0).sort_index()

    out_columns = list(names)
    with_total = include_combined_total and len(series) > 1
    if with_total:
        frame[COMBINED_TOTAL] = frame[names].sum(axis=1)
        out_columns.append(COMBINED_TOTAL)

    rows = []
    for day, values in frame.iterrows():
        row: dict[str, Any] = {DATE_COLUMN: str(day)}
        for name in out_columns:
            row[name] = _cell(values[name], value_field)
        rows.append(row)

    logger.debug("Combined %d series into %d rows on %s", len(series), len(rows), value_field)
    return CombinedTable(columns=out_columns, rows=rows)


def combine_trend_series(
    series: Iterable[Series],
    interval: Interval | str,
    value_field: str = "impressions",
    include_combined_total: bool = False,
) -> CombinedTable:
    """Regroup every series at the same interval, then combine them."""
    regrouped = [aggregate_series(s, interval) for s in series]
    return combine_series(regrouped, value_field, include_combined_total)
