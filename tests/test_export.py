"""Tests for the filtered CSV / Excel export."""

import io
from datetime import date

import pandas as pd
import pytest

from export import EmptyExportError, export_csv, export_excel, filter_for_export
from models import STATUS_COMPLETE, STATUS_NEEDS_REVIEW

HEADER = "studentId,processingDate,totalScore,status,confidence,examSet,Data Analytics,AI/ML,Data Science,Generative AI,Statistics"


def test_status_filter(sample_results):
    assert [r.id for r in filter_for_export(sample_results, STATUS_NEEDS_REVIEW)] == ["r2", "r4"]
    assert [r.id for r in filter_for_export(sample_results, STATUS_COMPLETE)] == ["r1", "r3", "r5"]


def test_date_bounds_are_inclusive(sample_results):
    # processing dates: r1 10-17, r2 10-13, r3 10-08, r4 09-28, r5 10-18
    picked = filter_for_export(sample_results, start=date(2026, 10, 8), end=date(2026, 10, 13))
    assert [r.id for r in picked] == ["r2", "r3"]
    assert [r.id for r in filter_for_export(sample_results, start="2026-10-17")] == ["r1", "r5"]
    assert [r.id for r in filter_for_export(sample_results, end="2026-09-28")] == ["r4"]


def test_status_and_dates_combine(sample_results):
    picked = filter_for_export(sample_results, STATUS_NEEDS_REVIEW, start="2026-10-01")
    assert [r.id for r in picked] == ["r2"]


def test_empty_export_raises(sample_results):
    with pytest.raises(EmptyExportError, match="No results match the selected export filters."):
        export_csv(sample_results, start="2030-01-01")
    with pytest.raises(EmptyExportError):
        export_excel([], STATUS_COMPLETE)


def test_csv_layout(sample_results):
    lines = export_csv(sample_results, STATUS_NEEDS_REVIEW).splitlines()
    assert lines[0] == HEADER
    assert lines[1] == "ST002-202,2026-10-13,45,Needs Review,0.850,B,20,20,20,20,20"
    assert len(lines) == 3


def test_csv_quotes_student_ids_only_when_needed(result_factory):
    rows = [result_factory("a", "ST001-100"), result_factory("b", "ST002, late")]
    lines = export_csv(rows).splitlines()
    assert lines[1].startswith("ST001-100,")
    assert lines[2].startswith('"ST002, late",')
    parsed = pd.read_csv(io.StringIO("\n".join(lines)))
    assert list(parsed["studentId"]) == ["ST001-100", "ST002, late"]


def test_excel_is_a_workbook(sample_results):
    data = export_excel(sample_results)
    assert data[:2] == b"PK"
