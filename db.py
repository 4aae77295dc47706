from __future__ import annotations

from datetime import datetime
from typing import Dict, Any, List, Tuple

from sqlalchemy import (
    create_engine,
    Integer,
    String,
    DateTime,
    Float,
    JSON,
    select,
    delete,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker, Session

import config
from models import AnswerDetail, StudentResult

TOTAL_PROCESSED_KEY = "total_processed"

engine = create_engine(config.DATABASE_URL, echo=False, future=True)
SessionLocal = sessionmaker(bind=engine, future=True, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


class Result(Base):
    __tablename__ = "results"

    # Insertion order of the in-memory list
    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(String(256), unique=True, index=True)
    student_id: Mapped[str] = mapped_column(String(64), index=True)
    exam_set: Mapped[str] = mapped_column(String(8))
    section_scores: Mapped[Dict[str, int]] = mapped_column(JSON)
    total_score: Mapped[int] = mapped_column(Integer)
    confidence: Mapped[float] = mapped_column(Float)
    status: Mapped[str] = mapped_column(String(32), index=True)
    answers: Mapped[List[Dict[str, Any]]] = mapped_column(JSON)
    original_image: Mapped[str] = mapped_column(String(512), default="")
    processing_date: Mapped[datetime] = mapped_column(DateTime, index=True)


class Meta(Base):
    __tablename__ = "app_meta"

    key: Mapped[str] = mapped_column(String(64), primary_key=True)
    value: Mapped[Any] = mapped_column(JSON)


def init_engine(url: str) -> None:
    """Point the module at another database (tests, alternate deployments)."""
    global engine, SessionLocal
    engine.dispose()
    engine = create_engine(url, echo=False, future=True)
    SessionLocal = sessionmaker(bind=engine, future=True, expire_on_commit=False)


def init_db() -> None:
    Base.metadata.create_all(bind=engine)


def get_session() -> Session:
    return SessionLocal()


def drop_all() -> None:
    """Dangerous: drop all tables in the current database."""
    Base.metadata.drop_all(bind=engine)


def reset_database() -> None:
    """Drop all tables and recreate an empty schema."""
    drop_all()
    init_db()


def _to_row(r: StudentResult) -> Result:
    return Result(
        id=r.id,
        student_id=r.student_id,
        exam_set=r.exam_set,
        section_scores=dict(r.section_scores),
        total_score=r.total_score,
        confidence=r.confidence,
        status=r.status,
        answers=[
            {"question": a.question, "student_answer": a.student_answer,
             "correct_answer": a.correct_answer, "is_correct": a.is_correct}
            for a in r.answers
        ],
        original_image=r.original_image,
        processing_date=r.processing_date,
    )


def _from_row(row: Result) -> StudentResult:
    return StudentResult(
        id=row.id,
        student_id=row.student_id,
        exam_set=row.exam_set,
        section_scores={k: int(v) for k, v in (row.section_scores or {}).items()},
        total_score=row.total_score,
        confidence=row.confidence,
        status=row.status,
        answers=[AnswerDetail(**a) for a in (row.answers or [])],
        original_image=row.original_image or "",
        processing_date=row.processing_date,
    )


def save_state(results: List[StudentResult], total_processed: int) -> None:
    """
    Persist the whole result list and the processed counter.
    Whatever was stored before is replaced, in a single transaction.
    """
    init_db()
    with get_session() as s:
        s.execute(delete(Result))
        s.add_all([_to_row(r) for r in results])
        s.merge(Meta(key=TOTAL_PROCESSED_KEY, value=int(total_processed)))
        s.commit()


def load_state() -> Tuple[List[StudentResult], int]:
    """
    Returns (results, total_processed) as last saved.
    An empty database gives ([], 0).
    """
    init_db()
    with get_session() as s:
        rows = s.execute(select(Result).order_by(Result.seq)).scalars().all()
        meta = s.get(Meta, TOTAL_PROCESSED_KEY)
        total = int(meta.value) if meta is not None and meta.value is not None else 0
        return [_from_row(r) for r in rows], total
