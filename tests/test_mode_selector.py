"""Tests for the full-load vs streaming decision and bounded reads."""

import threading

import pytest

from spreadsheet_importer.config_models import DEFAULT_STREAMING_THRESHOLD, ImportOptions, StreamingMode
from spreadsheet_importer.errors import UnreadableFile
from spreadsheet_importer.streaming import call_with_timeout, iter_with_timeout, select_streaming

MB = 1024 * 1024


@pytest.mark.parametrize("size,mode,expected", [
    (5 * MB, StreamingMode.AUTO, False),
    (50 * MB, StreamingMode.AUTO, True),
    (10 * MB, StreamingMode.AUTO, False),
    (10 * MB + 1, StreamingMode.AUTO, True),
    (None, StreamingMode.AUTO, False),
    (50 * MB, StreamingMode.OFF, False),
    (1, StreamingMode.ON, True),
    (None, StreamingMode.ON, True),
])
def test_select_streaming(size, mode, expected):
    assert select_streaming(size, mode, 10 * MB) is expected


def test_default_threshold_is_ten_megabytes():
    assert DEFAULT_STREAMING_THRESHOLD == 10 * MB
    assert select_streaming(DEFAULT_STREAMING_THRESHOLD + 1) is True


def test_legacy_boolean_streaming_flag():
    assert ImportOptions(use_streaming=True).use_streaming is StreamingMode.ON
    assert ImportOptions(use_streaming=False).use_streaming is StreamingMode.OFF
    assert ImportOptions(use_streaming=None).use_streaming is StreamingMode.AUTO
    assert ImportOptions(use_streaming="on").use_streaming is StreamingMode.ON


def test_call_with_timeout_returns_result():
    assert call_with_timeout(lambda a, b: a + b, 1.0, "adding", 2, 3) == 5


def test_call_with_timeout_expires():
    release = threading.Event()
    try:
        with pytest.raises(UnreadableFile, match="Timed out"):
            call_with_timeout(release.wait, 0.05, "waiting", 5)
    finally:
        release.set()


def test_iter_with_timeout_preserves_order():
    assert list(iter_with_timeout(iter(range(1000)), 1.0, buffer_size=8)) == list(range(1000))


def test_iter_with_timeout_forwards_errors():
    def rows():
        yield 1
        raise UnreadableFile("broken sheet")

    out = []
    with pytest.raises(UnreadableFile, match="broken sheet"):
        for item in iter_with_timeout(rows(), 1.0):
            out.append(item)
    assert out == [1]


def test_iter_with_timeout_expires_on_stalled_source():
    release = threading.Event()

    def rows():
        yield 1
        release.wait(5)
        yield 2

    iterator = iter_with_timeout(rows(), 0.05)
    try:
        assert next(iterator) == 1
        with pytest.raises(UnreadableFile, match="waiting for the next row"):
            next(iterator)
    finally:
        release.set()


def test_iter_with_timeout_closes_source_when_consumer_stops():
    closed = threading.Event()

    def rows():
        try:
            for i in range(10_000):
                yield i
        finally:
            closed.set()

    iterator = iter_with_timeout(rows(), 1.0, buffer_size=4)
    assert next(iterator) == 0
    iterator.close()
    assert closed.wait(2.0)
