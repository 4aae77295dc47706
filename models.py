from __future__ import annotations

from dataclasses import dataclass, field, asdict, replace
from datetime import datetime
from typing import Dict, Any, List, Optional

SECTIONS = ["Data Analytics", "AI/ML", "Data Science", "Generative AI", "Statistics"]
QUESTIONS_PER_SECTION = 10
TOTAL_QUESTIONS = QUESTIONS_PER_SECTION * len(SECTIONS)
POINTS_PER_QUESTION = 2
SECTION_MAX = QUESTIONS_PER_SECTION * POINTS_PER_QUESTION
EXAM_SETS = ["A", "B", "C", "D"]

# A, B, C, D cycle across the whole paper
CORRECT_ANSWERS = [chr(65 + (i % 4)) for i in range(TOTAL_QUESTIONS)]

STATUS_COMPLETE = "Complete"
STATUS_NEEDS_REVIEW = "Needs Review"
STATUS_ALL = "All"
STATUS_FILTERS = [STATUS_ALL, STATUS_COMPLETE, STATUS_NEEDS_REVIEW]

# File lifecycle through the processing pipeline
FILE_PENDING = "pending"
FILE_UPLOADING = "uploading"
FILE_PREPROCESSING = "preprocessing"
FILE_DETECTING = "detecting"
FILE_SCORING = "scoring"
FILE_COMPLETE = "complete"
FILE_ERROR = "error"
TERMINAL_FILE_STATES = {FILE_COMPLETE, FILE_ERROR}

VIEW_UPLOAD = "upload"
VIEW_PROCESSING = "processing"
VIEW_RESULTS = "results"
VIEW_ANALYTICS = "analytics"
NAV_VIEWS = [VIEW_UPLOAD, VIEW_RESULTS, VIEW_ANALYTICS]


@dataclass
class OMRFile:
    id: str
    name: str
    size: int
    mime_type: str
    data: Optional[bytes] = field(default=None, repr=False)
    progress: float = 0.0
    status: str = FILE_PENDING
    student_id: Optional[str] = None

    @property
    def is_image(self) -> bool:
        return self.mime_type.startswith("image/")

    def copy(self) -> "OMRFile":
        return replace(self)


@dataclass
class AnswerDetail:
    question: int
    student_answer: str
    correct_answer: str
    is_correct: bool


@dataclass
class StudentResult:
    id: str
    student_id: str
    exam_set: str
    section_scores: Dict[str, int]
    total_score: int
    confidence: float
    status: str
    answers: List[AnswerDetail]
    original_image: str
    processing_date: datetime

    @property
    def needs_review(self) -> bool:
        return self.status == STATUS_NEEDS_REVIEW

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["processing_date"] = self.processing_date.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StudentResult":
        when = data["processing_date"]
        if isinstance(when, str):
            when = datetime.fromisoformat(when)
        return cls(
            id=data["id"],
            student_id=data["student_id"],
            exam_set=data["exam_set"],
            section_scores={s: int(v) for s, v in data["section_scores"].items()},
            total_score=int(data["total_score"]),
            confidence=float(data["confidence"]),
            status=data["status"],
            answers=[AnswerDetail(**a) for a in data.get("answers", [])],
            original_image=data.get("original_image", ""),
            processing_date=when,
        )
