"""Tests for the dashboard script, driven through Streamlit's AppTest."""

from pathlib import Path

import pytest
from streamlit.testing.v1 import AppTest

from engine import FileQueue

APP_PATH = str(Path(__file__).resolve().parent.parent / "app.py")


@pytest.fixture
def queued():
    queue = FileQueue()
    queue.add("sheet.pdf", data=b"%PDF", token="1")
    return queue


def _start_buttons(at):
    return [b for b in at.button if b.label.startswith("Start Processing")]


def test_upload_view_offers_processing(queued):
    at = AppTest.from_file(APP_PATH, default_timeout=30)
    at.session_state["queue"] = queued
    at.run()
    assert not at.exception
    assert [b.label for b in _start_buttons(at)] == ["Start Processing 1 File"]


def test_demo_mode_blocks_uploads(queued):
    at = AppTest.from_file(APP_PATH, default_timeout=30)
    at.session_state["demo_mode"] = True
    at.session_state["queue"] = queued
    at.run()
    assert not at.exception
    assert _start_buttons(at) == []
    assert any("Turn it off to upload" in i.value for i in at.info)
    assert len(queued) == 1
