"""Time-series and breakdown aggregation for the analytics trend charts and exports."""

from .models import (
    COMBINED_TOTAL,
    UNKNOWN,
    BreakdownEntry,
    Dimension,
    EventType,
    MetricsSummary,
    PayloadShapeError,
    RawEventRow,
    Series,
    TimePoint,
)
from .metrics import ctr, conversion_rate, summarize_metrics, merge_summaries
from .buckets import normalize_bucket, try_normalize_bucket, resolve_bucket
from .intervals import Interval, aggregate_points, aggregate_series, available_intervals
from .payload import parse_trend_payload, parse_breakdown_rows, build_trend
from .combine import CombinedTable, combine_series, combine_trend_series
from .breakdown import AGE_BUCKET_LABELS, aggregate_breakdown, rank_table
from .export import build_export_rows, write_export_csv, build_export_workbook

__all__ = [
    "COMBINED_TOTAL",
    "UNKNOWN",
    "BreakdownEntry",
    "Dimension",
    "EventType",
    "MetricsSummary",
    "PayloadShapeError",
    "RawEventRow",
    "Series",
    "TimePoint",
    "ctr",
    "conversion_rate",
    "summarize_metrics",
    "merge_summaries",
    "normalize_bucket",
    "try_normalize_bucket",
    "resolve_bucket",
    "Interval",
    "aggregate_points",
    "aggregate_series",
    "available_intervals",
    "parse_trend_payload",
    "parse_breakdown_rows",
    "build_trend",
    "CombinedTable",
    "combine_series",
    "combine_trend_series",
    "AGE_BUCKET_LABELS",
    "aggregate_breakdown",
    "rank_table",
    "build_export_rows",
    "write_export_csv",
    "build_export_workbook",
]
