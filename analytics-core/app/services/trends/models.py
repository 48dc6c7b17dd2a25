"""Shared value types for the trend analytics engine."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any

COMBINED_TOTAL = "Combined Total"
UNKNOWN = "Unknown"


class PayloadShapeError(ValueError):
    """Raised when a raw payload cannot be represented at all (e.g. a dict where a list is required)."""


class EventType(IntEnum):
    IMPRESSION = 0
    CLICK = 1
    CONVERSION = 2

    @classmethod
    def coerce(cls, value: Any) -> "EventType | None":
        """Map wire codes (0/1/2, "0"/"1"/"2") to an EventType, None if unrecognized."""
        if isinstance(value, cls):
            return value
        if isinstance(value, bool):
            return None
        try:
            code = int(str(value).strip())
        except (TypeError, ValueError):
            return None
        try:
            return cls(code)
        except ValueError:
            return None


class Dimension(str, Enum):
    GENDER = "gender"
    PLATFORM = "platform"
    LOCATION = "location"
    AGE = "age"

    @classmethod
    def parse(cls, value: "Dimension | str") -> "Dimension":
        if isinstance(value, cls):
            return value
        key = str(value or "").strip().lower()
        if key in {"agebucket", "age_bucket", "age bucket"}:
            key = "age"
        for member in cls:
            if member.value == key:
                return member
        raise ValueError(f"Unknown breakdown dimension: {value!r}")


@dataclass(frozen=True)
class RawEventRow:
    """One flat, event-type-tagged row of a breakdown payload."""

    event_type: EventType
    event_count: int = 0
    dimension_value: str | None = None
    age_bucket_slots: tuple[int, ...] = ()


@dataclass(frozen=True)
class TimePoint:
    date: str  # canonical YYYY-MM-DD
    impressions: int = 0
    clicks: int = 0
    conversions: int = 0
    ctr: float = 0.0
    conversion_rate: float = 0.0
    revenue: float | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "date": self.date,
            "impressions": self.impressions,
            "clicks": self.clicks,
            "conversions": self.conversions,
            "ctr": self.ctr,
            "conversionRate": self.conversion_rate,
        }
        if self.revenue is not None:
            out["revenue"] = self.revenue
        return out


@dataclass(frozen=True)
class Series:
    """A named sequence of points, e.g. one campaign's trend."""

    name: str
    points: tuple[TimePoint, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class BreakdownEntry:
    name: str
    value: int
    percentage: float
    impressions: int = 0
    clicks: int = 0
    conversions: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "value": self.value,
            "percentage": self.percentage,
            "impressions": self.impressions,
            "clicks": self.clicks,
            "conversions": self.conversions,
        }


@dataclass(frozen=True)
class MetricsSummary:
    """Whole-of-period totals for one request (or several merged)."""

    impressions: int = 0
    clicks: int = 0
    conversions: int = 0
    ctr: float = 0.0
    conversion_rate: float = 0.0
    revenue: float = 0.0
    roi: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "impressions": self.impressions,
            "clicks": self.clicks,
            "conversions": self.conversions,
            "ctr": self.ctr,
            "conversionRate": self.conversion_rate,
            "revenue": self.revenue,
            "roi": self.roi,
        }
