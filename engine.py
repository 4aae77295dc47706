# engine.py - file intake and the simulated grading pipeline
"""
There is no recognition engine behind AutoOMR. Each queued sheet is walked
through preprocessing -> detecting -> scoring with randomized progress, and
a synthetic result is produced when it completes (see mock_data).

- FileQueue: accepted uploads waiting to be processed
- PipelineSimulator: sequential, timer-driven processing of a batch
"""

from __future__ import annotations

import logging
import mimetypes
import time
import uuid
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Tuple

import numpy as np

import config
from mock_data import generate_mock_result
from models import (
    OMRFile,
    StudentResult,
    FILE_PENDING,
    FILE_UPLOADING,
    FILE_PREPROCESSING,
    FILE_DETECTING,
    FILE_SCORING,
    FILE_COMPLETE,
    FILE_ERROR,
    TERMINAL_FILE_STATES,
)

logger = logging.getLogger(__name__)

ACCEPTED_MIME_TYPES = {"image/jpeg", "image/png", "application/pdf", "application/zip"}
ACCEPTED_EXTENSIONS = ".jpg,.jpeg,.png,.pdf,.zip"

SUCCESS_STAGES = (FILE_PREPROCESSING, FILE_DETECTING, FILE_SCORING, FILE_COMPLETE)
ERROR_STAGES = (FILE_PREPROCESSING, FILE_DETECTING, FILE_ERROR)

# Files in these states are not "being worked on" for the live preview
IDLE_FILE_STATES = TERMINAL_FILE_STATES | {FILE_PENDING, FILE_UPLOADING}


def guess_mime_type(name: str, mime_type: Optional[str] = None) -> str:
    if mime_type:
        return mime_type
    guessed, _ = mimetypes.guess_type(name)
    return guessed or "application/octet-stream"


class FileQueue:
    """Uploads accepted for processing, in the order they were added."""

    def __init__(self, max_upload_mb: int = config.MAX_UPLOAD_MB):
        self.max_bytes = max_upload_mb * 1024 * 1024
        self._files: Dict[str, OMRFile] = {}

    def __len__(self) -> int:
        return len(self._files)

    def __iter__(self) -> Iterator[OMRFile]:
        return iter(list(self._files.values()))

    @property
    def files(self) -> List[OMRFile]:
        return list(self._files.values())

    def add(
        self,
        name: str,
        data: Optional[bytes] = None,
        mime_type: Optional[str] = None,
        size: Optional[int] = None,
        token: Optional[str] = None,
    ) -> Optional[OMRFile]:
        """Queue one upload. Returns the queued file, or None when rejected or already queued."""
        mime = guess_mime_type(name, mime_type)
        if mime not in ACCEPTED_MIME_TYPES:
            logger.info("Rejected %s: unsupported type %s", name, mime)
            return None
        size = size if size is not None else len(data or b"")
        if size > self.max_bytes:
            logger.info("Rejected %s: %d bytes exceeds limit", name, size)
            return None
        file_id = f"{name}-{token or uuid.uuid4().hex}"
        if file_id in self._files:
            return None
        omr_file = OMRFile(id=file_id, name=name, size=size, mime_type=mime, data=data)
        self._files[file_id] = omr_file
        return omr_file

    def add_many(self, uploads: Iterable[Tuple[str, Optional[bytes], Optional[str], Optional[str]]]) -> Tuple[List[OMRFile], List[str]]:
        """Queue (name, data, mime_type, token) tuples; returns (accepted, rejected names)."""
        accepted, rejected = [], []
        for name, data, mime_type, token in uploads:
            added = self.add(name, data=data, mime_type=mime_type, token=token)
            if added is not None:
                accepted.append(added)
            elif not self.is_queued(name, token):
                rejected.append(name)
        return accepted, rejected

    def is_queued(self, name: str, token: Optional[str]) -> bool:
        return token is not None and f"{name}-{token}" in self._files

    def remove(self, file_id: str) -> bool:
        return self._files.pop(file_id, None) is not None

    def clear(self) -> None:
        self._files.clear()

    def take(self) -> List[OMRFile]:
        """Hand every queued file to the pipeline and empty the queue."""
        files = self.files
        self.clear()
        return files


@dataclass
class PipelineSnapshot:
    files: List[OMRFile]
    elapsed: int
    results: List[StudentResult] = field(default_factory=list)
    done: bool = False

    @property
    def total(self) -> int:
        return len(self.files)

    @property
    def completed_count(self) -> int:
        return sum(1 for f in self.files if f.status in TERMINAL_FILE_STATES)

    @property
    def overall_progress(self) -> float:
        return (self.completed_count / self.total) * 100 if self.total else 100.0

    @property
    def current_file(self) -> Optional[OMRFile]:
        return next((f for f in self.files if f.status not in IDLE_FILE_STATES), None)

    @property
    def error_count(self) -> int:
        return sum(1 for f in self.files if f.status == FILE_ERROR)

    def to_dict(self) -> dict:
        current = self.current_file
        return {
            "done": self.done,
            "elapsed": self.elapsed,
            "total": self.total,
            "completed": self.completed_count,
            "errors": self.error_count,
            "overall_progress": self.overall_progress,
            "current_file": current.name if current else None,
            "files": [
                {"id": f.id, "name": f.name, "status": f.status, "progress": f.progress, "student_id": f.student_id}
                for f in self.files
            ],
            "result_ids": [r.id for r in self.results],
        }


class PipelineSimulator:
    """Timer-driven stand-in for the preprocessing/detection/scoring pipeline.

    Files are processed one after another. Every tick adds up to 15% to the
    current stage; a full stage moves the file to the next one. About one
    file in ten fails after detection. Pass `sleep=lambda s: None` and a
    seeded `rng` to run the whole simulation instantly.
    """

    FIRST_TICK_DELAY = 0.1
    MAX_STEP = 15.0
    TICK_BASE = 0.1
    TICK_JITTER = 0.15
    FILE_GAP = 0.3
    FINISH_DELAY = 1.0

    def __init__(
        self,
        rng: Optional[np.random.Generator] = None,
        sleep: Callable[[float], None] = time.sleep,
        error_rate: float = config.PIPELINE_ERROR_RATE,
    ):
        self.rng = rng if rng is not None else np.random.default_rng()
        self.sleep = sleep
        self.error_rate = error_rate

    def stages_for_next_file(self) -> Tuple[str, ...]:
        return ERROR_STAGES if self.rng.random() < self.error_rate else SUCCESS_STAGES

    def run(self, files: List[OMRFile]) -> Iterator[PipelineSnapshot]:
        """Process `files` in order, yielding a snapshot after every tick.

        The last snapshot has done=True and carries the generated results.
        The OMRFile objects passed in are not modified.
        """
        started = time.monotonic()
        working = [f.copy() for f in files]
        for f in working:
            f.status, f.progress = FILE_UPLOADING, 0.0
        results: List[StudentResult] = []

        def snapshot(done: bool = False) -> PipelineSnapshot:
            return PipelineSnapshot(
                files=[f.copy() for f in working],
                elapsed=int(time.monotonic() - started),
                results=list(results),
                done=done,
            )

        logger.info("Processing batch of %d file(s)", len(working))
        yield snapshot()

        for index, omr_file in enumerate(working):
            stages = self.stages_for_next_file()
            stage_idx = 0
            progress = 0.0
            self.sleep(self.FIRST_TICK_DELAY)
            while True:
                progress += float(self.rng.random()) * self.MAX_STEP
                if progress >= 100:
                    progress = 100.0
                    if stage_idx < len(stages) - 1:
                        stage_idx += 1
                        progress = 0.0
                        logger.debug("%s -> %s", omr_file.name, stages[stage_idx])
                omr_file.progress = progress
                omr_file.status = stages[stage_idx]

                if omr_file.status in TERMINAL_FILE_STATES:
                    if omr_file.status == FILE_COMPLETE:
                        result = generate_mock_result(omr_file, index, self.rng)
                        omr_file.student_id = result.student_id
                        results.append(result)
                    else:
                        logger.warning("Processing failed for %s", omr_file.name)
                    yield snapshot()
                    self.sleep(self.FILE_GAP)
                    break

                yield snapshot()
                self.sleep(self.TICK_BASE + float(self.rng.random()) * self.TICK_JITTER)

        self.sleep(self.FINISH_DELAY)
        final = snapshot(done=True)
        logger.info(
            "Batch finished in %ss: %d graded, %d failed",
            final.elapsed, len(results), final.error_count,
        )
        yield final

    def process(self, files: List[OMRFile], on_update: Optional[Callable[[PipelineSnapshot], None]] = None) -> List[StudentResult]:
        """Run the whole batch and return the generated results."""
        last = None
        for last in self.run(files):
            if on_update is not None:
                on_update(last)
        return last.results if last is not None else []
