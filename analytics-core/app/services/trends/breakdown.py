"""Categorical breakdowns (gender / platform / location / age) and ranked tables."""
from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping

import pandas as pd

from .metrics import conversion_rate, ctr, to_count
from .models import UNKNOWN, BreakdownEntry, Dimension, EventType, PayloadShapeError, RawEventRow
from .payload import parse_breakdown_rows

logger = logging.getLogger(__name__)

AGE_BUCKET_LABELS = ["13-18", "18-24", "25-34", "35-44", "45-54", "55-64", "65+", "NA"]

EVENT_COLUMNS = {
    EventType.IMPRESSION: "impressions",
    EventType.CLICK: "clicks",
    EventType.CONVERSION: "conversions",
}
METRIC_COLS = ["impressions", "clicks", "conversions"]
TABLE_SORT_KEYS = ("impressions", "clicks")


def age_bucket_label(index: int) -> str:
    if 0 <= index < len(AGE_BUCKET_LABELS):
        return AGE_BUCKET_LABELS[index]
    return UNKNOWN


def _long_records(rows: list[RawEventRow], dimension: Dimension) -> list[tuple[str, str, int]]:
    """Unpivot rows into (name, metric column, count) triples."""
    records: list[tuple[str, str, int]] = []
    for row in rows:
        column = EVENT_COLUMNS[row.event_type]
        if dimension is Dimension.AGE:
            for index, count in enumerate(row.age_bucket_slots):
                if count > 0:
                    records.append((age_bucket_label(index), column, count))
        else:
            records.append((row.dimension_value or UNKNOWN, column, row.event_count))
    return records


def aggregate_breakdown(
    rows: Iterable[RawEventRow | Mapping[str, Any]] | None,
    dimension: Dimension | str,
) -> list[BreakdownEntry]:
    """
    Fold event rows into per-category totals with percentage-of-total shares.

    `value` is the category's impressions and `percentage` its share of all
    impressions (2 decimals, 0 when nothing was served). Entries are sorted by
    value, descending; ties keep first-appearance order. Rows without a
    dimension value are grouped under "Unknown".
    """
    dimension = Dimension.parse(dimension)
    parsed = parse_breakdown_rows(rows, dimension)
    records = _long_records(parsed, dimension)
    if not records:
        return []

    df = pd.DataFrame.from_records(records, columns=["name", "metric", "count"])
    wide = df.groupby(["name", "metric"], sort=False)["count"].sum().unstack(fill_value=0)
    # unstack sorts the index; restore first-appearance order for tie-breaks
    order = df.drop_duplicates("name")["name"].tolist()
    wide = wide.reindex(index=order, columns=METRIC_COLS, fill_value=0)

    total = int(wide["impressions"].sum())
    wide["percentage"] = (wide["impressions"] / total * 100).round(2) if total > 0 else 0.0
    wide = wide.sort_values("impressions", ascending=False, kind="stable")

    entries = [
        BreakdownEntry(
            name=str(name),
            value=int(row["impressions"]),
            percentage=float(row["percentage"]),
            impressions=int(row["impressions"]),
            clicks=int(row["clicks"]),
            conversions=int(row["conversions"]),
        )
        for name, row in wide.iterrows()
    ]
    logger.debug("Breakdown by %s: %d rows into %d entries", dimension.value, len(parsed), len(entries))
    return entries


def rank_table(
    table_data: Mapping[str, Mapping[str, Any]] | None,
    key_name: str,
    sort_by: str = "impressions",
) -> list[dict[str, Any]]:
    """
    Rank a {key: {impressions, clicks, conversions}} table (location, slotId, adId).

    Returns rows {key_name: key, rank, impressions, clicks, conversions, ctr,
    conversionRate} sorted descending by `sort_by`.
    """
    if sort_by not in TABLE_SORT_KEYS:
        raise ValueError(f"sort_by must be one of {TABLE_SORT_KEYS}, got {sort_by!r}")
    if table_data is None:
        return []
    if not isinstance(table_data, Mapping):
        raise PayloadShapeError(f"Table data must be an object, got {type(table_data).__name__}")

    rows: list[dict[str, Any]] = []
    for key, value in table_data.items():
        metrics = value if isinstance(value, Mapping) else {}
        impressions = to_count(metrics.get("impressions"))
        clicks = to_count(metrics.get("clicks"))
        conversions = to_count(metrics.get("conversions"))
        rows.append(
            {
                key_name: str(key),
                "impressions": impressions,
                "clicks": clicks,
                "conversions": conversions,
                "ctr": ctr(impressions, clicks),
                "conversionRate": conversion_rate(clicks, conversions),
            }
        )

    rows.sort(key=lambda r: r[sort_by], reverse=True)
    for rank, row in enumerate(rows, start=1):
        row["rank"] = rank
    return rows
