"""Tests for the results table state machine."""

import pytest

from models import STATUS_ALL, STATUS_COMPLETE, STATUS_NEEDS_REVIEW
from review import (
    ReviewState,
    filter_results,
    sort_results,
    paginate,
    showing_range,
    total_pages,
    ASC,
    DESC,
)
from store import ResultStore


@pytest.fixture
def many(result_factory):
    # 23 rows, totals 0..44 in steps of 2
    return [result_factory(f"id{i:02d}", f"ST{i:03d}-100", total_score=i * 2) for i in range(23)]


def test_search_is_case_insensitive_substring(sample_results):
    assert [r.id for r in filter_results(sample_results, "st003")] == ["r3"]
    assert [r.id for r in filter_results(sample_results, "ST00")] == ["r1", "r2", "r3", "r4"]
    assert filter_results(sample_results, "zzz") == []
    assert len(filter_results(sample_results, "")) == 5


def test_status_filter(sample_results):
    assert [r.id for r in filter_results(sample_results, status=STATUS_NEEDS_REVIEW)] == ["r2", "r4"]
    assert [r.id for r in filter_results(sample_results, status=STATUS_COMPLETE)] == ["r1", "r3", "r5"]
    assert len(filter_results(sample_results, status=STATUS_ALL)) == 5


def test_search_and_status_combine(sample_results):
    assert [r.id for r in filter_results(sample_results, "st004", STATUS_NEEDS_REVIEW)] == ["r4"]
    assert filter_results(sample_results, "st004", STATUS_COMPLETE) == []


def test_sort_is_stable(sample_results):
    desc = sort_results(sample_results, "total_score", DESC)
    assert [r.id for r in desc] == ["r3", "r1", "r5", "r4", "r2"]
    asc = sort_results(sample_results, "total_score", ASC)
    assert [r.id for r in asc] == ["r2", "r4", "r1", "r5", "r3"]


def test_sort_other_columns(sample_results):
    assert [r.id for r in sort_results(sample_results, "processing_date", ASC)] == ["r4", "r3", "r2", "r1", "r5"]
    assert [r.id for r in sort_results(sample_results, "exam_set", ASC)] == ["r1", "r5", "r2", "r3", "r4"]
    assert [r.id for r in sort_results(sample_results, "confidence", ASC)][:2] == ["r4", "r2"]


def test_unknown_sort_key_rejected(sample_results):
    with pytest.raises(ValueError):
        sort_results(sample_results, "answers")
    with pytest.raises(ValueError):
        ReviewState().request_sort("original_image")


def test_pagination_helpers(many):
    assert total_pages(23) == 3
    assert total_pages(0) == 0
    assert len(paginate(many, 3)) == 3
    assert showing_range(1, 23) == (1, 10, 23)
    assert showing_range(3, 23) == (21, 23, 23)
    assert showing_range(1, 0) == (0, 0, 0)


def test_defaults():
    state = ReviewState()
    assert state.search_term == ""
    assert state.status_filter == STATUS_ALL
    assert (state.sort_key, state.sort_direction) == ("total_score", DESC)
    assert state.current_page == 1
    assert state.selected_ids == set()
    assert state.page_size == 10


def test_default_order_is_highest_score_first(many):
    rows = ReviewState().page_rows(many)
    assert [r.total_score for r in rows] == [44, 42, 40, 38, 36, 34, 32, 30, 28, 26]


def test_request_sort_cycle():
    state = ReviewState()
    state.request_sort("total_score")  # desc -> asc
    assert (state.sort_key, state.sort_direction) == ("total_score", ASC)
    state.request_sort("total_score")
    assert state.sort_direction == DESC
    state.request_sort("student_id")
    assert (state.sort_key, state.sort_direction) == ("student_id", ASC)


def test_sort_indicator():
    state = ReviewState()
    assert state.sort_indicator("total_score") == "▼"
    assert state.sort_indicator("status") == ""
    state.request_sort("status")
    assert state.sort_indicator("status") == "▲"


def test_page_navigation_clamps(many):
    state = ReviewState()
    state.prev_page(many)
    assert state.current_page == 1
    state.next_page(many)
    state.next_page(many)
    state.next_page(many)
    assert state.current_page == 3
    assert len(state.page_rows(many)) == 3
    assert state.showing(many) == (21, 23, 23)


def test_page_stays_one_without_rows():
    state = ReviewState()
    state.next_page([])
    assert state.current_page == 1
    assert state.total_pages([]) == 0
    assert state.showing([]) == (0, 0, 0)


def test_search_and_filter_reset_page_and_selection(many):
    state = ReviewState()
    state.next_page(many)
    state.toggle("id01")
    state.set_search("st0")
    assert state.current_page == 1
    assert state.selected_ids == set()

    state.next_page(many)
    state.toggle("id01")
    state.set_status_filter(STATUS_COMPLETE)
    assert state.current_page == 1
    assert state.selected_ids == set()


def test_changing_page_clears_selection(many):
    state = ReviewState()
    state.toggle("id22")
    state.next_page(many)
    assert state.selected_ids == set()


def test_sorting_keeps_selection(many):
    state = ReviewState()
    state.toggle("id22")
    state.request_sort("student_id")
    assert state.selected_ids == {"id22"}


def test_toggle(many):
    state = ReviewState()
    state.toggle("id01")
    state.toggle("id02")
    state.toggle("id01")
    assert state.selected_ids == {"id02"}


def test_select_all_on_page(many):
    state = ReviewState()
    state.select_all_on_page(True, many)
    assert state.selected_ids == {r.id for r in state.page_rows(many)}
    assert len(state.selected_ids) == 10
    assert state.all_selected_on_page(many)
    state.toggle("id22")
    assert not state.all_selected_on_page(many)
    state.select_all_on_page(False, many)
    assert state.selected_ids == set()


def test_all_selected_false_on_empty_page():
    assert ReviewState().all_selected_on_page([]) is False


def test_invalid_status_filter():
    with pytest.raises(ValueError):
        ReviewState().set_status_filter("Pending")


def test_approve_selected(sample_results):
    store = ResultStore(sample_results)
    state = ReviewState()
    state.toggle("r2")
    state.toggle("r4")
    assert state.approve_selected(store) == 2
    assert state.selected_ids == set()
    assert store.get("r2").status == STATUS_COMPLETE
    assert store.get("r4").confidence == 1.0


def test_delete_selected_clamps_page(many):
    store = ResultStore(many)
    state = ReviewState()
    state.go_to_page(3, store.results)
    state.select_all_on_page(True, store.results)
    assert state.delete_selected(store) == 3
    assert len(store) == 20
    assert state.current_page == 2
    assert state.selected_ids == set()


def test_approve_selected_under_review_filter_clamps_page(result_factory):
    store = ResultStore([
        result_factory(f"nr{i:02d}", f"ST{i:03d}-100", status=STATUS_NEEDS_REVIEW, confidence=0.85)
        for i in range(15)
    ])
    state = ReviewState()
    state.set_status_filter(STATUS_NEEDS_REVIEW)
    state.next_page(store.results)
    state.select_all_on_page(True, store.results)
    assert state.approve_selected(store) == 5
    assert state.total_pages(store.results) == 1
    assert state.current_page == 1
    assert len(state.page_rows(store.results)) == 10
    assert state.showing(store.results) == (1, 10, 10)


def test_clamp_page_after_switching_to_a_smaller_list(many, sample_results):
    state = ReviewState()
    state.go_to_page(3, many)
    state.toggle("id20")
    state.clamp_page(sample_results)
    assert state.current_page == 1
    assert state.selected_ids == set()
    assert state.showing(sample_results) == (1, 5, 5)


def test_clamp_page_keeps_a_valid_page(many):
    state = ReviewState()
    state.go_to_page(2, many)
    state.toggle("id05")
    state.clamp_page(many)
    assert state.current_page == 2
    assert state.selected_ids == {"id05"}
