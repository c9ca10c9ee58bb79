"""Tests for lifecycle events and sinks."""

import dataclasses
import logging

import pytest

from fetchpilot.core.events import (
    CallbackEventSink,
    CollectingEventSink,
    LoggingEventSink,
    PageFailed,
    PaginationFound,
    RunStarted,
    emit_safely,
)


class ExplodingSink:
    def emit(self, event):
        raise RuntimeError("sink down")


def test_to_dict_carries_stage_and_payload():
    event = PaginationFound(run_id="r1", url="https://shop.test/", links=("https://shop.test/2",), enqueued=1)
    data = event.to_dict()
    assert data["stage"] == "pagination_links"
    assert data["run_id"] == "r1"
    assert data["links"] == ("https://shop.test/2",)
    assert data["timestamp"] > 0


def test_events_are_frozen():
    event = PageFailed(run_id="r1", url="https://shop.test/", reason="no_html")
    with pytest.raises(dataclasses.FrozenInstanceError):
        event.reason = "other"


def test_emit_safely_swallows_sink_errors():
    emit_safely(ExplodingSink(), PageFailed(run_id="r1", url="u", reason="x"))


def test_emit_safely_without_sink():
    emit_safely(None, PageFailed(run_id="r1", url="u", reason="x"))


def test_collecting_sink_filters_by_type():
    sink = CollectingEventSink()
    started = RunStarted(run_id="r1", start_url="https://shop.test/", goal="g", max_total_pages=3)
    failed = PageFailed(run_id="r1", url="u", reason="no_html")
    sink.emit(started)
    sink.emit(failed)

    assert sink.of_type(PageFailed) == [failed]
    assert sink.events == [started, failed]


def test_callback_sink():
    seen = []
    CallbackEventSink(seen.append).emit(PageFailed(run_id="r1", url="u", reason="x"))
    assert [e.reason for e in seen] == ["x"]


def test_logging_sink(caplog):
    with caplog.at_level(logging.INFO, logger="fetchpilot.core.events"):
        LoggingEventSink(level=logging.INFO).emit(PageFailed(run_id="abcdef123456", url="u", reason="no_html"))
    assert "[abcdef12] page_failed" in caplog.text
    assert "no_html" in caplog.text
