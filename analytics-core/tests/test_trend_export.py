import os

import pandas as pd
from openpyxl import load_workbook

from app.services.trends import (
    BreakdownEntry,
    Dimension,
    Interval,
    MetricsSummary,
    TimePoint,
    build_export_rows,
    build_export_workbook,
    rank_table,
    write_export_csv,
)

SUMMARY = MetricsSummary(
    impressions=1000, clicks=50, conversions=5, ctr=5.0, conversion_rate=10.0, revenue=500.0, roi=400.0
)
GENDER = [
    BreakdownEntry(name="Male", value=80, percentage=80.0, impressions=80, clicks=8),
    BreakdownEntry(name="Female", value=20, percentage=20.0, impressions=20),
]
TREND = [
    TimePoint(date="2024-01-07", impressions=700, clicks=14, conversions=2, ctr=2.0, conversion_rate=100 / 7),
    TimePoint(date="2024-01-14", impressions=300, clicks=36, conversions=3, ctr=12.0, conversion_rate=100 / 12),
]


def _rows():
    return build_export_rows(SUMMARY, {Dimension.GENDER: GENDER}, TREND, Interval.WEEK)


def test_rows_carry_section_discriminator():
    sections = [row["sheet_section"] for row in _rows()]

    assert sections[:7] == ["Overall Metrics"] * 7
    assert sections[7:9] == ["Gender Breakdown"] * 2
    assert sections[9:] == ["Weekly Trend"] * 2


def test_percentages_formatted_at_boundary_only():
    rows = _rows()
    overall = {row["metric"]: row["value"] for row in rows if row["sheet_section"] == "Overall Metrics"}
    assert overall["CTR"] == "5.00%"
    assert overall["Conversion Rate"] == "10.00%"
    assert overall["ROI"] == "400.00%"
    assert overall["Impressions"] == 1000

    gender = [row for row in rows if row["sheet_section"] == "Gender Breakdown"]
    assert [(r["rank"], r["name"], r["percentage"]) for r in gender] == [(1, "Male", "80.00%"), (2, "Female", "20.00%")]

    trend = [row for row in rows if row["sheet_section"] == "Weekly Trend"]
    assert trend[0]["ctr"] == "2.00%"
    assert trend[0]["conversion_rate"] == "14.29%"
    assert trend[0]["revenue"] == 0.0

    # inputs keep numeric percentages
    assert GENDER[0].percentage == 80.0


def test_ranked_tables_are_exported():
    table = rank_table({"Delhi": {"impressions": 10, "clicks": 1}}, "location")
    rows = build_export_rows(tables={"location": table})

    assert rows == [
        {
            "sheet_section": "location Table",
            "location": "Delhi",
            "impressions": 10,
            "clicks": 1,
            "conversions": 0,
            "ctr": "10.00%",
            "conversionRate": "0.00%",
            "rank": 1,
        }
    ]


def test_empty_export():
    assert build_export_rows() == []


def test_csv_round_trip(tmp_path):
    path = write_export_csv(_rows(), tmp_path / "out" / "analytics.csv")

    assert path.exists()
    frame = pd.read_csv(path)
    assert frame.columns[0] == "sheet_section"
    assert set(frame["sheet_section"]) == {"Overall Metrics", "Gender Breakdown", "Weekly Trend"}
    weekly = frame[frame["sheet_section"] == "Weekly Trend"]
    assert weekly["date"].tolist() == ["2024-01-07", "2024-01-14"]


def test_csv_with_no_rows(tmp_path):
    path = write_export_csv([], tmp_path / "empty.csv")
    assert path.read_text().strip() == "sheet_section"


def test_workbook_has_sheet_per_section():
    path = build_export_workbook(_rows())
    assert os.path.exists(path)
    wb = load_workbook(path, data_only=True)
    try:
        assert wb.sheetnames == ["Overall Metrics", "Gender Breakdown", "Weekly Trend"]
        ws = wb["Gender Breakdown"]
        assert [c.value for c in ws[1]] == ["rank", "name", "impressions", "clicks", "conversions", "percentage"]
        assert ws["B2"].value == "Male"
        assert ws["F2"].value == "80.00%"
        assert wb["Weekly Trend"]["B3"].value == 300
    finally:
        wb.close()
        os.remove(path)
