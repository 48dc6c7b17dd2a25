"""Derived ad metrics (CTR, conversion rate, revenue, ROI) with division-by-zero guards."""
from __future__ import annotations

import math
from typing import Any, Iterable, Mapping

import numpy as np
import pandas as pd

from ...config import settings
from .models import EventType, MetricsSummary, PayloadShapeError


def to_count(value: Any) -> int:
    """Coerce a raw count to a non-negative int; junk becomes 0."""
    if value is None or isinstance(value, bool):
        return 0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    if not math.isfinite(number) or number <= 0:
        return 0
    return int(number)


def _finite(value: float) -> float:
    return value if math.isfinite(value) else 0.0


def pct(numerator: float, denominator: float) -> float:
    """numerator / denominator * 100, or 0 when the denominator is not positive."""
    if denominator <= 0:
        return 0.0
    return _finite(numerator / denominator * 100)


def ctr(impressions: float, clicks: float) -> float:
    return pct(clicks, impressions)


def conversion_rate(clicks: float, conversions: float) -> float:
    return pct(conversions, clicks)


def revenue(conversions: float, per_conversion: float | None = None) -> float:
    if per_conversion is None:
        per_conversion = settings.revenue_per_conversion
    return _finite(conversions * per_conversion)


def ad_spend(impressions: float, cost_per_impression: float | None = None) -> float:
    if cost_per_impression is None:
        cost_per_impression = settings.cost_per_impression
    return _finite(impressions * cost_per_impression)


def roi(revenue_value: float, spend: float) -> float:
    return pct(revenue_value - spend, spend)


def pct_series(numerator: pd.Series, denominator: pd.Series) -> pd.Series:
    """Column-wise `pct`; inf/NaN from zero denominators become 0."""
    out = (numerator.astype(float) / denominator.astype(float) * 100)
    return out.replace([np.inf, -np.inf], 0).fillna(0)


def build_summary(
    impressions: int,
    clicks: int,
    conversions: int,
    *,
    revenue_per_conversion: float | None = None,
    cost_per_impression: float | None = None,
) -> MetricsSummary:
    rev = revenue(conversions, revenue_per_conversion)
    spend = ad_spend(impressions, cost_per_impression)
    return MetricsSummary(
        impressions=impressions,
        clicks=clicks,
        conversions=conversions,
        ctr=ctr(impressions, clicks),
        conversion_rate=conversion_rate(clicks, conversions),
        revenue=rev,
        roi=roi(rev, spend),
    )


def summarize_metrics(
    raw: Mapping[str, Any] | None,
    *,
    revenue_per_conversion: float | None = None,
    cost_per_impression: float | None = None,
) -> MetricsSummary:
    """
    Build whole-of-period totals from the overall stats payload.

    Expected shape:
        {"adStats": [{"eventType": 0|1, "eventCount": n}, ...],
         "conversionStats": {"conversionCount": n}}

    Impressions and clicks are summed from adStats; conversions come from
    conversionStats. Missing pieces count as zero.
    """
    if raw is None:
        raw = {}
    if not isinstance(raw, Mapping):
        raise PayloadShapeError(f"Metrics payload must be an object, got {type(raw).__name__}")

    impressions = 0
    clicks = 0
    ad_stats = raw.get("adStats") or []
    if not isinstance(ad_stats, list):
        raise PayloadShapeError("adStats must be a list")
    for stat in ad_stats:
        if not isinstance(stat, Mapping):
            continue
        event_type = EventType.coerce(stat.get("eventType"))
        if event_type is EventType.IMPRESSION:
            impressions += to_count(stat.get("eventCount"))
        elif event_type is EventType.CLICK:
            clicks += to_count(stat.get("eventCount"))

    conversion_stats = raw.get("conversionStats") or {}
    conversions = 0
    if isinstance(conversion_stats, Mapping):
        conversions = to_count(conversion_stats.get("conversionCount"))

    return build_summary(
        impressions,
        clicks,
        conversions,
        revenue_per_conversion=revenue_per_conversion,
        cost_per_impression=cost_per_impression,
    )


def merge_summaries(
    summaries: Iterable[MetricsSummary],
    *,
    cost_per_impression: float | None = None,
) -> MetricsSummary:
    """Sum additive fields across series and recompute the ratios from the sums."""
    impressions = clicks = conversions = 0
    total_revenue = 0.0
    for summary in summaries:
        impressions += summary.impressions
        clicks += summary.clicks
        conversions += summary.conversions
        total_revenue += summary.revenue

    spend = ad_spend(impressions, cost_per_impression)
    return MetricsSummary(
        impressions=impressions,
        clicks=clicks,
        conversions=conversions,
        ctr=ctr(impressions, clicks),
        conversion_rate=conversion_rate(clicks, conversions),
        revenue=_finite(total_revenue),
        roi=roi(total_revenue, spend),
    )
