"""Search / sort / filter / paginate / select over the graded results table."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import List, Optional, Set, Tuple

import config
from models import StudentResult, STATUS_ALL, STATUS_FILTERS
from store import ResultStore

ASC = "asc"
DESC = "desc"

# Sortable columns in table order: (result attribute, header)
COLUMNS = [
    ("student_id", "Student ID"),
    ("total_score", "Total Score"),
    ("status", "Status"),
    ("processing_date", "Processing Date"),
    ("confidence", "Confidence"),
    ("exam_set", "Set"),
]
SORT_KEYS = [key for key, _ in COLUMNS]


def check_sort_key(key: str) -> str:
    if key not in SORT_KEYS:
        raise ValueError(f"Cannot sort by {key!r}; choose one of {', '.join(SORT_KEYS)}")
    return key


def check_status(status: str) -> str:
    if status not in STATUS_FILTERS:
        raise ValueError(f"Unknown status filter {status!r}")
    return status


def filter_results(results: List[StudentResult], search_term: str = "", status: str = STATUS_ALL) -> List[StudentResult]:
    needle = search_term.lower()
    return [
        r for r in results
        if needle in r.student_id.lower() and (status == STATUS_ALL or r.status == status)
    ]


def sort_results(results: List[StudentResult], key: Optional[str], direction: str = ASC) -> List[StudentResult]:
    # sorted() is stable in both directions, equal rows keep their order
    if key is None:
        return list(results)
    check_sort_key(key)
    return sorted(results, key=lambda r: getattr(r, key), reverse=(direction == DESC))


def total_pages(count: int, page_size: int = config.RESULTS_PER_PAGE) -> int:
    return math.ceil(count / page_size)


def paginate(results: List[StudentResult], page: int, page_size: int = config.RESULTS_PER_PAGE) -> List[StudentResult]:
    start = (page - 1) * page_size
    return results[start:start + page_size]


def showing_range(page: int, count: int, page_size: int = config.RESULTS_PER_PAGE) -> Tuple[int, int, int]:
    """(first, last, total) for the "Showing a to b of n results" line."""
    if count == 0:
        return 0, 0, 0
    return (page - 1) * page_size + 1, min(page * page_size, count), count


@dataclass
class ReviewState:
    """UI state of the results table.

    Mirrors the interaction rules of the review screen: a new search or
    status filter goes back to page 1, and any change of search, filter or
    page drops the current selection. Sorting keeps it.
    """

    search_term: str = ""
    status_filter: str = STATUS_ALL
    sort_key: Optional[str] = "total_score"
    sort_direction: str = DESC
    current_page: int = 1
    selected_ids: Set[str] = field(default_factory=set)
    page_size: int = config.RESULTS_PER_PAGE

    # --- derived views -------------------------------------------------
    def filtered(self, results: List[StudentResult]) -> List[StudentResult]:
        return filter_results(results, self.search_term, self.status_filter)

    def sorted_rows(self, results: List[StudentResult]) -> List[StudentResult]:
        return sort_results(self.filtered(results), self.sort_key, self.sort_direction)

    def page_rows(self, results: List[StudentResult]) -> List[StudentResult]:
        return paginate(self.sorted_rows(results), self.current_page, self.page_size)

    def total_pages(self, results: List[StudentResult]) -> int:
        return total_pages(len(self.filtered(results)), self.page_size)

    def showing(self, results: List[StudentResult]) -> Tuple[int, int, int]:
        return showing_range(self.current_page, len(self.filtered(results)), self.page_size)

    def sort_indicator(self, key: str) -> str:
        if self.sort_key != key:
            return ""
        return "▲" if self.sort_direction == ASC else "▼"

    # --- transitions ---------------------------------------------------
    def set_search(self, term: str) -> None:
        if term != self.search_term:
            self.search_term = term
            self.current_page = 1
            self.selected_ids = set()

    def set_status_filter(self, status: str) -> None:
        check_status(status)
        if status != self.status_filter:
            self.status_filter = status
            self.current_page = 1
            self.selected_ids = set()

    def request_sort(self, key: str) -> None:
        check_sort_key(key)
        if self.sort_key == key and self.sort_direction == ASC:
            self.sort_direction = DESC
        else:
            self.sort_direction = ASC
        self.sort_key = key

    def go_to_page(self, page: int, results: List[StudentResult]) -> None:
        page = max(1, min(page, self.total_pages(results)))
        if page != self.current_page:
            self.current_page = page
            self.selected_ids = set()

    def clamp_page(self, results: List[StudentResult]) -> None:
        """Pull the current page back inside the filtered rows after they shrink."""
        self.go_to_page(self.current_page, results)

    def next_page(self, results: List[StudentResult]) -> None:
        self.go_to_page(self.current_page + 1, results)

    def prev_page(self, results: List[StudentResult]) -> None:
        self.go_to_page(self.current_page - 1, results)

    def toggle(self, result_id: str) -> None:
        if result_id in self.selected_ids:
            self.selected_ids.discard(result_id)
        else:
            self.selected_ids.add(result_id)

    def select_all_on_page(self, checked: bool, results: List[StudentResult]) -> None:
        self.selected_ids = {r.id for r in self.page_rows(results)} if checked else set()

    def all_selected_on_page(self, results: List[StudentResult]) -> bool:
        rows = self.page_rows(results)
        return bool(rows) and all(r.id in self.selected_ids for r in rows)

    # --- batch actions -------------------------------------------------
    def approve_selected(self, store: ResultStore) -> int:
        count = store.approve_many(self.selected_ids)
        self.selected_ids = set()
        # approved rows can drop out of a "Needs Review" filter
        self.clamp_page(store.results)
        return count

    def delete_selected(self, store: ResultStore) -> int:
        count = store.delete_many(self.selected_ids)
        self.selected_ids = set()
        self.clamp_page(store.results)
        return count
