"""Normalization of raw date-bucket keys to canonical YYYY-MM-DD dates."""
from __future__ import annotations

import calendar
import logging
import re
from datetime import date, datetime, timedelta, timezone
from typing import Callable, NamedTuple

import pandas as pd

from ...config import settings

logger = logging.getLogger(__name__)

DATE_FMT = "%Y-%m-%d"

# Unix timestamps below this are seconds, at or above are milliseconds
SECONDS_CUTOFF = 1e10

MONTH_NAMES = {
    name.lower(): idx
    for idx in range(1, 13)
    for name in (calendar.month_name[idx], calendar.month_abbr[idx])
}
MONTH_NAMES["sept"] = 9


class BucketRule(NamedTuple):
    """One entry of the recognition cascade: a pattern and what to do with its match."""
    name: str
    pattern: re.Pattern
    parse: Callable[[re.Match], date | None]  # None = pattern matched but value is not a real date


def sunday_on_or_before(day: date) -> date:
    # weekday(): Monday=0, Sunday=6
    return day - timedelta(days=(day.weekday() + 1) % 7)


def week_start(year: int, week: int) -> date:
    """Sunday-anchored start of week `week` of `year` (week 1 holds Jan 1)."""
    first = date(year, 1, 1)
    days_from_sunday = (first.weekday() + 1) % 7
    return first + timedelta(days=(week - 1) * 7 - days_from_sunday)


def _parse_day(m: re.Match) -> date | None:
    try:
        return datetime.strptime(m.group(0), DATE_FMT).date()
    except ValueError:
        return None


def _parse_year_month(m: re.Match) -> date | None:
    year, month = int(m.group(1)), int(m.group(2))
    if not 1 <= month <= 12 or year < 1:
        return None
    return date(year, month, 1)


def _parse_iso_week(m: re.Match) -> date | None:
    year, week = int(m.group(1)), int(m.group(2))
    if week < 1:
        return None
    try:
        return week_start(year, week)
    except OverflowError:
        return None


def _parse_alt_week(m: re.Match) -> date | None:
    week, year = int(m.group(1)), int(m.group(2))
    if week < 1:
        return None
    try:
        return week_start(year, week)
    except OverflowError:
        return None


def _parse_month_name(m: re.Match) -> date | None:
    month = MONTH_NAMES.get(m.group(1).lower())
    year = int(m.group(2))
    if month is None or year < 1:
        return None
    return date(year, month, 1)


def _parse_timestamp(m: re.Match) -> date | None:
    value = float(m.group(0))
    if value <= 0:
        return None
    millis = value * 1000 if value < SECONDS_CUTOFF else value
    try:
        return datetime.fromtimestamp(millis / 1000, tz=timezone.utc).date()
    except (OverflowError, OSError, ValueError):
        return None


BUCKET_RULES: list[BucketRule] = [
    BucketRule("day", re.compile(r"^\d{4}-\d{2}-\d{2}$"), _parse_day),
    BucketRule("year_month", re.compile(r"^(\d{4})-(\d{2})$"), _parse_year_month),
    BucketRule("iso_week", re.compile(r"^(\d{4})-W(\d{1,2})$"), _parse_iso_week),
    BucketRule("alt_week", re.compile(r"^Week (\d+) (\d{4})$", re.IGNORECASE), _parse_alt_week),
    BucketRule("month_name", re.compile(r"^([A-Za-z]+)\.? (\d{4})$"), _parse_month_name),
    BucketRule("timestamp", re.compile(r"^\d+(\.\d+)?$"), _parse_timestamp),
]


def _generic_parse(bucket: str) -> date | None:
    try:
        parsed = pd.to_datetime(bucket, errors="coerce", utc=True)
    except (ValueError, TypeError, OverflowError):
        return None
    if parsed is None or pd.isna(parsed):
        return None
    return parsed.date()


def parse_bucket(bucket_key: object) -> date | None:
    """
    Run a bucket key through the recognition cascade.

    Rules are tried in order and the first one that yields a real date
    wins; if none does, a generic date parse is attempted. Returns None
    when nothing recognizes the key.
    """
    if bucket_key is None:
        return None
    bucket = str(bucket_key).strip()
    if not bucket:
        return None

    for rule in BUCKET_RULES:
        match = rule.pattern.match(bucket)
        if not match:
            continue
        parsed = rule.parse(match)
        if parsed is not None:
            return parsed

    return _generic_parse(bucket)


def try_normalize_bucket(bucket_key: object) -> str | None:
    parsed = parse_bucket(bucket_key)
    return parsed.isoformat() if parsed is not None else None


def normalize_bucket(bucket_key: object, today: date | None = None) -> str:
    """
    Canonical YYYY-MM-DD for any bucket key. Never raises.

    Unrecognized keys are attributed to today's date (or `today` if given)
    so charts keep rendering; a warning is logged for each one.
    """
    normalized = try_normalize_bucket(bucket_key)
    if normalized is not None:
        return normalized

    fallback = (today or date.today()).isoformat()
    logger.warning("Could not normalize date bucket %r, using fallback %s", bucket_key, fallback)
    return fallback


def resolve_bucket(
    bucket_key: object,
    *,
    policy: str | None = None,
    today: date | None = None,
) -> str | None:
    """
    Normalize a bucket key under the configured unparseable-bucket policy.

    policy "today" -> same as normalize_bucket (never None)
    policy "drop"  -> None for unrecognized keys so the caller can exclude them
    """
    policy = (policy or settings.unparseable_bucket_policy).lower()
    if policy == "drop":
        normalized = try_normalize_bucket(bucket_key)
        if normalized is None:
            logger.warning("Dropping unparseable date bucket %r", bucket_key)
        return normalized
    return normalize_bucket(bucket_key, today=today)
