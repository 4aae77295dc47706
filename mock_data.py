import hashlib
from datetime import datetime, timedelta
from typing import List, Optional

import numpy as np
from PIL import Image, ImageDraw

from models import (
    SECTIONS,
    QUESTIONS_PER_SECTION,
    POINTS_PER_QUESTION,
    CORRECT_ANSWERS,
    EXAM_SETS,
    STATUS_COMPLETE,
    STATUS_NEEDS_REVIEW,
    AnswerDetail,
    OMRFile,
    StudentResult,
)

MOCK_STUDENT_IDS = [f"ST{i:03d}" for i in range(1, 11)]
CORRECT_PROBABILITY = 0.7
REVIEW_THRESHOLD = 0.9


def generate_mock_result(file: OMRFile, index: int, rng: Optional[np.random.Generator] = None) -> StudentResult:
    """Synthesize a plausible graded result for an uploaded sheet.

    No recognition happens here: every answer is correct with probability 0.7,
    confidence is drawn from [0.8, 1.0) and anything under 0.9 is flagged for
    manual review.
    """
    rng = rng if rng is not None else np.random.default_rng()
    student_id = f"{MOCK_STUDENT_IDS[index % len(MOCK_STUDENT_IDS)]}-{int(rng.integers(100, 1000))}"

    section_scores = {}
    answers: List[AnswerDetail] = []
    for s_idx, section in enumerate(SECTIONS):
        section_score = 0
        for i in range(QUESTIONS_PER_SECTION):
            q = s_idx * QUESTIONS_PER_SECTION + i
            is_correct = bool(rng.random() < CORRECT_PROBABILITY)
            if is_correct:
                section_score += POINTS_PER_QUESTION
            answers.append(AnswerDetail(
                question=q + 1,
                student_answer=CORRECT_ANSWERS[q] if is_correct else chr(65 + ((q + 1) % 4)),
                correct_answer=CORRECT_ANSWERS[q],
                is_correct=is_correct,
            ))
        section_scores[section] = section_score

    confidence = float(rng.random() * 0.2 + 0.8)
    days_ago = int(rng.integers(0, 30))

    return StudentResult(
        id=file.id,
        student_id=student_id,
        exam_set=EXAM_SETS[index % len(EXAM_SETS)],
        section_scores=section_scores,
        total_score=sum(section_scores.values()),
        confidence=confidence,
        status=STATUS_NEEDS_REVIEW if confidence < REVIEW_THRESHOLD else STATUS_COMPLETE,
        answers=answers,
        original_image=f"https://picsum.photos/seed/{student_id}/800/1100",
        processing_date=datetime.now() - timedelta(days=days_ago),
    )


def generate_batch(n: int = 25, rng: Optional[np.random.Generator] = None) -> List[StudentResult]:
    """Results for Demo Mode, as if `n` sheets had been uploaded."""
    rng = rng if rng is not None else np.random.default_rng()
    results = []
    for i in range(n):
        demo_file = OMRFile(id=f"demo-{i + 1:03d}", name=f"demo_sheet_{i + 1:03d}.png", size=0, mime_type="image/png")
        results.append(generate_mock_result(demo_file, i, rng))
    return results


def render_sheet_image(result: StudentResult) -> Image.Image:
    """Draw a placeholder answer sheet with the student's marks (deterministic per student)."""
    seed = int(hashlib.md5(result.student_id.encode()).hexdigest()[:8], 16)
    shade = 235 + seed % 15
    img = Image.new('RGB', (600, 820), (shade, shade, shade))
    draw = ImageDraw.Draw(img)
    # Header
    draw.rectangle([30, 20, 570, 70], outline='black', width=2)
    draw.text((40, 30), "AUTOMATED OMR EVALUATION SHEET", fill='black')
    draw.text((40, 48), f"Student ID: {result.student_id}    Set: {result.exam_set}", fill='black')

    by_question = {a.question: a for a in result.answers}
    for s_idx, section in enumerate(SECTIONS):
        x0 = 30 + s_idx * 110
        draw.rectangle([x0, 90, x0 + 100, 115], fill='lightgray', outline='black')
        draw.text((x0 + 5, 97), section[:14], fill='black')
        for i in range(QUESTIONS_PER_SECTION):
            q = s_idx * QUESTIONS_PER_SECTION + i + 1
            y = 140 + i * 65
            draw.text((x0, y - 6), f"{q:>2}", fill='black')
            ans = by_question.get(q)
            for k, option in enumerate(['A', 'B', 'C', 'D']):
                bx = x0 + 28 + k * 18
                box = [bx - 6, y - 6, bx + 6, y + 6]
                if ans is not None and ans.student_answer == option:
                    color = 'green' if ans.is_correct else 'red'
                    draw.ellipse(box, fill=color, outline=color, width=2)
                else:
                    draw.ellipse(box, outline='gray', width=1)
    return img


def cached_sheet_image(cache: dict, result: StudentResult) -> Image.Image:
    """Render a sheet once per result; student ids can repeat across results."""
    if result.id not in cache:
        cache[result.id] = render_sheet_image(result)
    return cache[result.id]
