"""Tests for file intake and the simulated processing pipeline."""

import numpy as np
import pytest

from engine import (
    FileQueue,
    PipelineSimulator,
    SUCCESS_STAGES,
    ERROR_STAGES,
    guess_mime_type,
)
from models import (
    OMRFile,
    FILE_PENDING,
    FILE_UPLOADING,
    FILE_COMPLETE,
    FILE_ERROR,
)


class SleepRecorder:
    def __init__(self):
        self.calls = []

    def __call__(self, seconds):
        self.calls.append(seconds)


def _files(n):
    return [OMRFile(id=f"f{i}", name=f"sheet{i}.png", size=100, mime_type="image/png") for i in range(n)]


def _simulator(error_rate, seed=3, sleep=None):
    return PipelineSimulator(rng=np.random.default_rng(seed), sleep=sleep or (lambda s: None), error_rate=error_rate)


# --- FileQueue -------------------------------------------------------

def test_queue_accepts_supported_types():
    q = FileQueue()
    for name, mime in [("a.jpg", "image/jpeg"), ("b.png", "image/png"), ("c.pdf", "application/pdf"), ("d.zip", "application/zip")]:
        f = q.add(name, data=b"123", mime_type=mime)
        assert f is not None
        assert f.status == FILE_PENDING
        assert f.progress == 0
        assert f.id.startswith(f"{name}-")
    assert len(q) == 4


def test_queue_rejects_other_types():
    q = FileQueue()
    assert q.add("notes.txt", data=b"hello", mime_type="text/plain") is None
    assert q.add("sheet.gif", data=b"GIF89a") is None
    assert len(q) == 0


def test_mime_type_guessed_from_name():
    assert guess_mime_type("scan.JPG") == "image/jpeg"
    assert guess_mime_type("scan.pdf") == "application/pdf"
    assert guess_mime_type("scan.png", "image/png") == "image/png"
    assert guess_mime_type("README") == "application/octet-stream"


def test_queue_rejects_oversized_files():
    q = FileQueue(max_upload_mb=1)
    assert q.add("big.png", mime_type="image/png", size=2 * 1024 * 1024) is None
    assert q.add("ok.png", mime_type="image/png", size=1024) is not None


def test_queue_ignores_same_upload_twice():
    q = FileQueue()
    accepted, rejected = q.add_many([
        ("a.png", b"1", "image/png", "tok1"),
        ("a.png", b"1", "image/png", "tok1"),
        ("b.txt", b"1", "text/plain", "tok2"),
    ])
    assert [f.id for f in accepted] == ["a.png-tok1"]
    assert rejected == ["b.txt"]
    assert len(q) == 1


def test_queue_remove_clear_and_take():
    q = FileQueue()
    a = q.add("a.png", b"1", "image/png")
    b = q.add("b.png", b"1", "image/png")
    assert q.remove(a.id) is True
    assert q.remove(a.id) is False
    assert [f.id for f in q] == [b.id]
    taken = q.take()
    assert [f.id for f in taken] == [b.id]
    assert len(q) == 0
    q.add("c.png", b"1", "image/png")
    q.clear()
    assert len(q) == 0


# --- PipelineSimulator ----------------------------------------------

def test_all_files_complete_without_errors():
    files = _files(3)
    snaps = list(_simulator(0.0).run(files))
    final = snaps[-1]
    assert final.done
    assert [f.status for f in final.files] == [FILE_COMPLETE] * 3
    assert [r.id for r in final.results] == ["f0", "f1", "f2"]
    assert final.overall_progress == 100
    assert final.current_file is None
    assert all(f.student_id for f in final.files)


def test_failed_files_produce_no_results():
    snaps = list(_simulator(1.0).run(_files(2)))
    final = snaps[-1]
    assert [f.status for f in final.files] == [FILE_ERROR, FILE_ERROR]
    assert final.results == []
    assert final.completed_count == 2
    assert final.error_count == 2


def test_first_snapshot_marks_files_uploading():
    first = next(_simulator(0.0).run(_files(2)))
    assert [f.status for f in first.files] == [FILE_UPLOADING, FILE_UPLOADING]
    assert first.current_file is None
    assert first.overall_progress == 0
    assert not first.done


def test_stages_advance_in_order():
    for error_rate, stages in [(0.0, SUCCESS_STAGES), (1.0, ERROR_STAGES)]:
        seen = []
        for snap in _simulator(error_rate).run(_files(1)):
            status = snap.files[0].status
            if status != FILE_UPLOADING and (not seen or seen[-1] != status):
                seen.append(status)
            assert 0 <= snap.files[0].progress <= 100
        assert tuple(seen) == stages


def test_current_file_is_the_one_in_progress():
    for snap in _simulator(0.0).run(_files(3)):
        current = snap.current_file
        if current is not None:
            assert current.status not in (FILE_UPLOADING, FILE_COMPLETE, FILE_ERROR)
            assert snap.completed_count == int(current.id[1:])


def test_overall_progress_counts_terminal_files():
    seen = set()
    for snap in _simulator(0.0).run(_files(4)):
        seen.add(snap.overall_progress)
    assert seen == {0, 25, 50, 75, 100}


def test_delays():
    sleep = SleepRecorder()
    list(_simulator(0.0, sleep=sleep).run(_files(2)))
    assert sleep.calls[0] == pytest.approx(0.1)
    assert sleep.calls[-1] == pytest.approx(1.0)
    assert sleep.calls.count(0.3) == 2
    ticks = [s for s in sleep.calls if s not in (0.3, 1.0)]
    assert all(0.1 <= s < 0.25 for s in ticks)


def test_input_files_left_untouched():
    files = _files(2)
    list(_simulator(0.0).run(files))
    assert all(f.status == FILE_PENDING and f.progress == 0 for f in files)


def test_empty_batch():
    assert _simulator(0.0).process([]) == []


def test_process_reports_every_snapshot():
    updates = []
    results = _simulator(0.0).process(_files(2), on_update=updates.append)
    assert updates[-1].done
    assert len(results) == 2
    assert len(updates) > 4


def test_error_rate_is_roughly_respected():
    sim = _simulator(0.1, seed=11)
    final = sim.process(_files(200))
    assert 150 <= len(final) <= 195
