from __future__ import annotations

import logging
from typing import Iterable, List, Optional

import db
from models import StudentResult, STATUS_COMPLETE, NAV_VIEWS, VIEW_UPLOAD

logger = logging.getLogger(__name__)


class ResultNotFound(KeyError):
    """No graded result with the requested id."""


def available_views(has_results: bool) -> dict:
    """Navigation entries and whether each is enabled (upload is always reachable)."""
    return {v: (v == VIEW_UPLOAD or has_results) for v in NAV_VIEWS}


class ResultStore:
    """The in-memory list of graded results plus the lifetime processed counter.

    When `persist` is set the whole collection is written back to the
    database after every mutation.
    """

    def __init__(self, results: Optional[List[StudentResult]] = None, total_processed: int = 0, persist: bool = False):
        self.results: List[StudentResult] = list(results or [])
        self.total_processed = total_processed
        self.persist = persist

    @classmethod
    def load(cls) -> "ResultStore":
        try:
            results, total = db.load_state()
        except Exception:
            logger.exception("Failed to load saved results; starting empty")
            results, total = [], 0
        logger.info("Loaded %d saved result(s)", len(results))
        return cls(results, total, persist=True)

    def save(self) -> None:
        if not self.persist:
            return
        try:
            db.save_state(self.results, self.total_processed)
        except Exception:
            logger.exception("Failed to save results")

    def __len__(self) -> int:
        return len(self.results)

    @property
    def has_results(self) -> bool:
        return bool(self.results)

    def get(self, result_id: str) -> StudentResult:
        for r in self.results:
            if r.id == result_id:
                return r
        raise ResultNotFound(result_id)

    def add_results(self, results: Iterable[StudentResult]) -> None:
        results = list(results)
        self.results.extend(results)
        self.total_processed += len(results)
        self.save()

    def approve(self, result_id: str) -> StudentResult:
        result = self.get(result_id)
        result.status = STATUS_COMPLETE
        result.confidence = 1.0
        self.save()
        return result

    def approve_many(self, result_ids: Iterable[str]) -> int:
        ids = set(result_ids)
        count = 0
        for r in self.results:
            if r.id in ids:
                r.status = STATUS_COMPLETE
                r.confidence = 1.0
                count += 1
        self.save()
        return count

    def delete_many(self, result_ids: Iterable[str]) -> int:
        ids = set(result_ids)
        before = len(self.results)
        self.results = [r for r in self.results if r.id not in ids]
        self.save()
        return before - len(self.results)
