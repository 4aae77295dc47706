from __future__ import annotations

from typing import Dict, Any, List

import numpy as np
import pandas as pd

import config
from models import SECTIONS, TOTAL_QUESTIONS, StudentResult

TOP_DIFFICULT_QUESTIONS = 10

GRADE_BUCKETS = ["A+ (90-100)", "A (80-89)", "B (70-79)", "C (60-69)", "D (50-59)", "F (<50)"]


def grade_bucket(pct: float) -> str:
    if pct >= 90: return "A+ (90-100)"
    if pct >= 80: return "A (80-89)"
    if pct >= 70: return "B (70-79)"
    if pct >= 60: return "C (60-69)"
    if pct >= 50: return "D (50-59)"
    return "F (<50)"


def scores_dataframe(results: List[StudentResult]) -> pd.DataFrame:
    """One row per result: Student_ID, Total and a column per section."""
    return pd.DataFrame.from_records(
        [{"Student_ID": r.student_id, "Total": r.total_score, **{s: r.section_scores.get(s, 0) for s in SECTIONS}} for r in results],
        columns=["Student_ID", "Total", *SECTIONS],
    )


def compute_analytics(results: List[StudentResult], pass_mark: int = config.PASS_MARK) -> Dict[str, Any]:
    """
    Aggregates for the analytics view:
      - total_students
      - avg_score (0-100)
      - pass_rate (% with total >= pass_mark)
      - section_avgs: [{"name", "avg_score"}] in section order (0-20)
      - question_difficulty: ten most missed questions, [{"name": "Q7", "incorrect": pct}]
      - grade_distribution: bucket -> count
    Returns zeros and empty lists when there are no results.
    """
    if not results:
        return {
            "total_students": 0,
            "avg_score": 0.0,
            "pass_rate": 0.0,
            "section_avgs": [],
            "question_difficulty": [],
            "grade_distribution": {},
        }

    df = scores_dataframe(results)
    total_students = int(len(df))
    avg_score = float(df["Total"].mean())
    pass_rate = float((df["Total"] >= pass_mark).mean() * 100.0)
    section_avgs = [{"name": s, "avg_score": float(df[s].mean())} for s in SECTIONS]

    incorrect = np.zeros(TOTAL_QUESTIONS, dtype=int)
    for r in results:
        for a in r.answers:
            if not a.is_correct and 1 <= a.question <= TOTAL_QUESTIONS:
                incorrect[a.question - 1] += 1
    difficulty = pd.DataFrame({
        "name": [f"Q{i + 1}" for i in range(TOTAL_QUESTIONS)],
        "incorrect": incorrect / total_students * 100.0,
    })
    # stable sort so equally-missed questions stay in paper order
    top = difficulty.sort_values("incorrect", ascending=False, kind="stable").head(TOP_DIFFICULT_QUESTIONS)
    question_difficulty = [{"name": n, "incorrect": float(v)} for n, v in zip(top["name"], top["incorrect"])]

    grade_counts: Dict[str, int] = {}
    for v in df["Total"].tolist():
        bucket = grade_bucket(float(v))
        grade_counts[bucket] = grade_counts.get(bucket, 0) + 1
    grade_distribution = {b: grade_counts[b] for b in GRADE_BUCKETS if b in grade_counts}

    return {
        "total_students": total_students,
        "avg_score": avg_score,
        "pass_rate": pass_rate,
        "section_avgs": section_avgs,
        "question_difficulty": question_difficulty,
        "grade_distribution": grade_distribution,
    }
