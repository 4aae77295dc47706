from __future__ import annotations

import io
from datetime import date, datetime
from typing import List, Optional, Union

import pandas as pd

from models import SECTIONS, STATUS_ALL, StudentResult

EXPORT_FILE_NAME = "omr_results_filtered"
EXPORT_COLUMNS = ["studentId", "processingDate", "totalScore", "status", "confidence", "examSet", *SECTIONS]

DateLike = Union[date, datetime, str, None]


class EmptyExportError(ValueError):
    """Raised when the export filters leave nothing to write."""

    def __init__(self, message: str = "No results match the selected export filters."):
        super().__init__(message)


def _as_date(value: DateLike) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(value)


def filter_for_export(
    results: List[StudentResult],
    status: str = STATUS_ALL,
    start: DateLike = None,
    end: DateLike = None,
) -> List[StudentResult]:
    """Results matching the export panel filters; both date bounds are inclusive."""
    start_d, end_d = _as_date(start), _as_date(end)
    out = []
    for r in results:
        if status != STATUS_ALL and r.status != status:
            continue
        day = r.processing_date.date()
        if start_d and day < start_d:
            continue
        if end_d and day > end_d:
            continue
        out.append(r)
    return out


def results_to_dataframe(results: List[StudentResult]) -> pd.DataFrame:
    rows = [
        {
            "studentId": r.student_id,
            "processingDate": r.processing_date.strftime("%Y-%m-%d"),
            "totalScore": r.total_score,
            "status": r.status,
            "confidence": f"{r.confidence:.3f}",
            "examSet": r.exam_set,
            **{s: r.section_scores.get(s, 0) for s in SECTIONS},
        }
        for r in results
    ]
    return pd.DataFrame(rows, columns=EXPORT_COLUMNS)


def export_csv(results: List[StudentResult], status: str = STATUS_ALL, start: DateLike = None, end: DateLike = None) -> str:
    """CSV of the filtered results, one row per result.

    Fields are quoted only when they need it, so a plain student id is
    written bare (`ST001-123`, not `"ST001-123"`). CSV readers parse both
    forms to the same value.
    """
    selected = filter_for_export(results, status, start, end)
    if not selected:
        raise EmptyExportError()
    csv_buf = io.StringIO()
    results_to_dataframe(selected).to_csv(csv_buf, index=False)
    return csv_buf.getvalue()


def export_excel(results: List[StudentResult], status: str = STATUS_ALL, start: DateLike = None, end: DateLike = None) -> bytes:
    selected = filter_for_export(results, status, start, end)
    if not selected:
        raise EmptyExportError()
    df = results_to_dataframe(selected)
    df["confidence"] = df["confidence"].astype(float)
    xbuf = io.BytesIO()
    df.to_excel(xbuf, index=False, engine='openpyxl')
    return xbuf.getvalue()
