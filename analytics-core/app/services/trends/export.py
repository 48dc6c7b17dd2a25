"""Flatten aggregated analytics into tabular export rows (CSV / Excel)."""
from __future__ import annotations

import gc
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Iterable, Mapping, Sequence

import pandas as pd
import xlsxwriter

from .intervals import Interval
from .models import BreakdownEntry, Dimension, MetricsSummary, TimePoint

logger = logging.getLogger(__name__)

SECTION_FIELD = "sheet_section"
OVERALL_SECTION = "Overall Metrics"
PERCENT_FIELDS = {"ctr", "conversion_rate", "conversionRate", "percentage", "roi"}

# Excel caps sheet names at 31 characters
MAX_SHEET_NAME = 31


def fmt_pct(value: float | None) -> str:
    if value is None:
        return "0.00%"
    return f"{value:.2f}%"


def _overall_rows(summary: MetricsSummary) -> list[dict[str, Any]]:
    metrics = [
        ("Impressions", summary.impressions),
        ("Clicks", summary.clicks),
        ("Conversions", summary.conversions),
        ("CTR", fmt_pct(summary.ctr)),
        ("Conversion Rate", fmt_pct(summary.conversion_rate)),
        ("Revenue", round(summary.revenue, 2)),
        ("ROI", fmt_pct(summary.roi)),
    ]
    return [{SECTION_FIELD: OVERALL_SECTION, "metric": name, "value": value} for name, value in metrics]


def _breakdown_section(dimension: Dimension | str) -> str:
    try:
        label = Dimension.parse(dimension).value
    except ValueError:
        label = str(dimension)
    return f"{label.title()} Breakdown"


def _breakdown_rows(dimension: Dimension | str, entries: Sequence[BreakdownEntry]) -> list[dict[str, Any]]:
    section = _breakdown_section(dimension)
    return [
        {
            SECTION_FIELD: section,
            "rank": rank,
            "name": entry.name,
            "impressions": entry.impressions,
            "clicks": entry.clicks,
            "conversions": entry.conversions,
            "percentage": fmt_pct(entry.percentage),
        }
        for rank, entry in enumerate(entries, start=1)
    ]


def _trend_rows(trend: Sequence[TimePoint], interval: Interval) -> list[dict[str, Any]]:
    section = f"{interval.label} Trend"
    rows = []
    for point in trend:
        rows.append(
            {
                SECTION_FIELD: section,
                "date": point.date,
                "impressions": point.impressions,
                "clicks": point.clicks,
                "conversions": point.conversions,
                "ctr": fmt_pct(point.ctr),
                "conversion_rate": fmt_pct(point.conversion_rate),
                "revenue": round(point.revenue or 0.0, 2),
            }
        )
    return rows


def _table_rows(key_name: str, table: Sequence[Mapping[str, Any]]) -> list[dict[str, Any]]:
    section = f"{key_name} Table"
    rows = []
    for row in table:
        out: dict[str, Any] = {SECTION_FIELD: section}
        for key, value in row.items():
            out[key] = fmt_pct(value) if key in PERCENT_FIELDS else value
        rows.append(out)
    return rows


def build_export_rows(
    summary: MetricsSummary | None = None,
    breakdowns: Mapping[Dimension | str, Sequence[BreakdownEntry]] | None = None,
    trend: Sequence[TimePoint] | None = None,
    interval: Interval | str = Interval.DAY,
    tables: Mapping[str, Sequence[Mapping[str, Any]]] | None = None,
) -> list[dict[str, Any]]:
    """
    Flatten overall metrics, breakdowns, ranked tables and the trend into one row list.

    Every row carries a `sheet_section` discriminator. Breakdown rows keep the
    rank order they were given; percentage-like fields become "NN.NN%" strings
    here and nowhere else.
    """
    interval = Interval.parse(interval)
    rows: list[dict[str, Any]] = []
    if summary is not None:
        rows.extend(_overall_rows(summary))
    for dimension, entries in (breakdowns or {}).items():
        rows.extend(_breakdown_rows(dimension, entries))
    for key_name, table in (tables or {}).items():
        rows.extend(_table_rows(key_name, table))
    if trend:
        rows.extend(_trend_rows(trend, interval))
    return rows


def write_export_csv(rows: Iterable[Mapping[str, Any]], path: str | Path) -> Path:
    """Write export rows to CSV; columns are the union of row keys in first-seen order."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    rows = list(rows)
    frame = pd.DataFrame.from_records(rows) if rows else pd.DataFrame(columns=[SECTION_FIELD])
    frame.to_csv(path, index=False)
    return path


def _group_sections(rows: Iterable[Mapping[str, Any]]) -> dict[str, list[Mapping[str, Any]]]:
    sections: dict[str, list[Mapping[str, Any]]] = {}
    for row in rows:
        sections.setdefault(str(row.get(SECTION_FIELD, "Export")), []).append(row)
    return sections


def _sheet_name(section: str, used: set[str]) -> str:
    base = "".join("_" if ch in "[]:*?/\\" else ch for ch in section)[:MAX_SHEET_NAME] or "Sheet"
    name = base
    suffix = 2
    while name.lower() in used:
        tail = f" ({suffix})"
        name = base[: MAX_SHEET_NAME - len(tail)] + tail
        suffix += 1
    used.add(name.lower())
    return name


def build_export_workbook(rows: Iterable[Mapping[str, Any]]) -> str:
    """
    Build an Excel workbook with one worksheet per sheet_section.

    Returns:
        Path to the generated .xlsx file (caller owns cleanup)
    """
    tmp = tempfile.NamedTemporaryFile(delete=False, suffix=".xlsx")
    tmp_path = tmp.name
    tmp.close()

    try:
        workbook = xlsxwriter.Workbook(tmp_path, {"nan_inf_to_errors": True})
        header_fmt = workbook.add_format({
            "bold": True,
            "align": "center",
            "valign": "vcenter",
            "bg_color": "#3a3838",
            "font_color": "white",
            "border": 1,
        })
        number_fmt = workbook.add_format({"num_format": "#,##0", "align": "center"})
        decimal_fmt = workbook.add_format({"num_format": "#,##0.00", "align": "center"})

        used_names: set[str] = set()
        for section, section_rows in _group_sections(rows).items():
            ws = workbook.add_worksheet(_sheet_name(section, used_names))

            columns: list[str] = []
            for row in section_rows:
                for key in row:
                    if key != SECTION_FIELD and key not in columns:
                        columns.append(key)

            for col_idx, column in enumerate(columns):
                ws.write_string(0, col_idx, column, header_fmt)
                ws.set_column(col_idx, col_idx, max(12, len(column) + 2))

            for row_idx, row in enumerate(section_rows, start=1):
                for col_idx, column in enumerate(columns):
                    value = row.get(column)
                    if value is None:
                        continue
                    if isinstance(value, bool) or not isinstance(value, (int, float)):
                        ws.write_string(row_idx, col_idx, str(value))
                    elif isinstance(value, int):
                        ws.write_number(row_idx, col_idx, value, number_fmt)
                    else:
                        ws.write_number(row_idx, col_idx, value, decimal_fmt)

            ws.freeze_panes(1, 0)

        workbook.close()
        gc.collect()

        return tmp_path

    except Exception:
        if os.path.exists(tmp_path):
            try:
                os.unlink(tmp_path)
            except OSError:
                logger.warning("Could not remove partial workbook %s", tmp_path)
        raise
