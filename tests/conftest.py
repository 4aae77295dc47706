"""
Shared fixtures for the AutoOMR test suite.
"""

from datetime import datetime, timedelta

import numpy as np
import pytest

import db
from models import (
    SECTIONS,
    QUESTIONS_PER_SECTION,
    CORRECT_ANSWERS,
    STATUS_COMPLETE,
    STATUS_NEEDS_REVIEW,
    AnswerDetail,
    StudentResult,
)

NOW = datetime(2026, 10, 18, 12, 0, 0)


@pytest.fixture(autouse=True)
def temp_db(tmp_path):
    """Every test gets its own SQLite file; the project database is never touched."""
    db.init_engine(f"sqlite:///{tmp_path / 'test.db'}")
    db.init_db()
    yield
    db.engine.dispose()


@pytest.fixture
def rng():
    return np.random.default_rng(1234)


def make_result(
    result_id,
    student_id=None,
    total_score=None,
    status=STATUS_COMPLETE,
    confidence=0.95,
    exam_set="A",
    days_ago=0,
    wrong=(),
):
    """Build a result by hand. `wrong` lists 1-based questions answered incorrectly."""
    wrong = set(wrong)
    answers = []
    section_scores = {}
    for s_idx, section in enumerate(SECTIONS):
        score = 0
        for i in range(QUESTIONS_PER_SECTION):
            q = s_idx * QUESTIONS_PER_SECTION + i
            ok = (q + 1) not in wrong
            score += 2 if ok else 0
            answers.append(AnswerDetail(
                question=q + 1,
                student_answer=CORRECT_ANSWERS[q] if ok else chr(65 + ((q + 1) % 4)),
                correct_answer=CORRECT_ANSWERS[q],
                is_correct=ok,
            ))
        section_scores[section] = score
    return StudentResult(
        id=result_id,
        student_id=student_id or f"ST-{result_id}",
        exam_set=exam_set,
        section_scores=section_scores,
        total_score=total_score if total_score is not None else sum(section_scores.values()),
        confidence=confidence,
        status=status,
        answers=answers,
        original_image="",
        processing_date=NOW - timedelta(days=days_ago),
    )


@pytest.fixture
def result_factory():
    return make_result


@pytest.fixture
def sample_results():
    return [
        make_result("r1", "ST001-101", total_score=80, exam_set="A", days_ago=1),
        make_result("r2", "ST002-202", total_score=45, status=STATUS_NEEDS_REVIEW, confidence=0.85, exam_set="B", days_ago=5),
        make_result("r3", "st003-303", total_score=92, exam_set="C", days_ago=10),
        make_result("r4", "ST004-404", total_score=60, status=STATUS_NEEDS_REVIEW, confidence=0.82, exam_set="D", days_ago=20),
        make_result("r5", "ST011-505", total_score=80, exam_set="A", days_ago=0),
    ]
