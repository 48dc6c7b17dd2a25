"""Readers for the raw trend and breakdown payloads returned by the metrics API."""
from __future__ import annotations

import logging
from datetime import date
from typing import Any, Mapping

from .buckets import resolve_bucket
from .intervals import Interval, aggregate_points, ensure_sequence
from .metrics import conversion_rate, ctr, revenue, to_count
from .models import Dimension, EventType, PayloadShapeError, RawEventRow, TimePoint

logger = logging.getLogger(__name__)

TREND_PARTS = ("impression", "click", "conversion")
AGE_SLOT_FIELDS = [f"ageBucket{i}" for i in range(8)]


def _trend_parts(raw: Any) -> dict[str, Mapping[str, Any]]:
    if raw is None:
        return {part: {} for part in TREND_PARTS}
    if not isinstance(raw, Mapping):
        raise PayloadShapeError(f"Trend payload must be an object, got {type(raw).__name__}")
    # The API wraps the mappings in a "total" object; accept both shapes
    if "total" in raw and isinstance(raw["total"], Mapping):
        raw = raw["total"]

    parts: dict[str, Mapping[str, Any]] = {}
    for part in TREND_PARTS:
        value = raw.get(part)
        if value is None:
            value = {}
        if not isinstance(value, Mapping):
            raise PayloadShapeError(f"Trend payload '{part}' must be an object, got {type(value).__name__}")
        parts[part] = value
    return parts


def parse_trend_payload(
    raw: Mapping[str, Any] | None,
    *,
    policy: str | None = None,
    today: date | None = None,
    revenue_per_conversion: float | None = None,
) -> list[TimePoint]:
    """
    Turn {impression: {bucket: n}, click: {...}, conversion: {...}} into TimePoints.

    The point set is the union of bucket keys across the three mappings.
    Each key is normalized to a canonical date; keys that fail to normalize
    are attributed to today or dropped depending on `policy`. Several raw
    keys may land on the same date; they stay separate points here and are
    merged by aggregate_points.
    """
    parts = _trend_parts(raw)
    impression, click, conversion = (parts[p] for p in TREND_PARTS)

    buckets: list[Any] = []
    seen: set[Any] = set()
    for mapping in (impression, click, conversion):
        for key in mapping:
            if key not in seen:
                seen.add(key)
                buckets.append(key)

    points: list[TimePoint] = []
    for bucket in buckets:
        normalized = resolve_bucket(bucket, policy=policy, today=today)
        if normalized is None:
            continue
        impressions = to_count(impression.get(bucket))
        clicks = to_count(click.get(bucket))
        conversions = to_count(conversion.get(bucket))
        points.append(
            TimePoint(
                date=normalized,
                impressions=impressions,
                clicks=clicks,
                conversions=conversions,
                ctr=ctr(impressions, clicks),
                conversion_rate=conversion_rate(clicks, conversions),
                revenue=revenue(conversions, revenue_per_conversion),
            )
        )

    points.sort(key=lambda p: p.date)
    return points


def build_trend(
    raw: Mapping[str, Any] | None,
    interval: Interval | str = Interval.DAY,
    **kwargs: Any,
) -> list[TimePoint]:
    """Parse a raw trend payload and regroup it at `interval` in one step."""
    return aggregate_points(parse_trend_payload(raw, **kwargs), interval)


def _dimension_value(row: Mapping[str, Any], dimension: Dimension) -> str | None:
    value = row.get(dimension.value)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_breakdown_rows(raw: Any, dimension: Dimension | str) -> list[RawEventRow]:
    """
    Read a breakdown payload into RawEventRows.

    Rows with an unrecognized eventType are skipped with a warning. For the
    age dimension the ageBucket0..ageBucket7 fields become the row's slots.
    """
    dimension = Dimension.parse(dimension)
    rows: list[RawEventRow] = []
    for idx, row in enumerate(ensure_sequence(raw, "Breakdown payload")):
        if isinstance(row, RawEventRow):
            rows.append(
                RawEventRow(
                    event_type=row.event_type,
                    event_count=to_count(row.event_count),
                    dimension_value=row.dimension_value,
                    age_bucket_slots=tuple(to_count(count) for count in row.age_bucket_slots),
                )
            )
            continue
        if not isinstance(row, Mapping):
            raise PayloadShapeError(f"Breakdown row {idx} must be an object, got {type(row).__name__}")

        event_type = EventType.coerce(row.get("eventType"))
        if event_type is None:
            logger.warning("Skipping breakdown row %d with unknown eventType %r", idx, row.get("eventType"))
            continue

        if dimension is Dimension.AGE:
            slots = tuple(to_count(row.get(field)) for field in AGE_SLOT_FIELDS)
            rows.append(RawEventRow(event_type=event_type, age_bucket_slots=slots))
        else:
            rows.append(
                RawEventRow(
                    event_type=event_type,
                    event_count=to_count(row.get("eventCount")),
                    dimension_value=_dimension_value(row, dimension),
                )
            )
    return rows
