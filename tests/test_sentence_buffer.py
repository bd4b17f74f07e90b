"""
tests/test_sentence_buffer.py – Label de-duplication, eviction and the
analysis trigger.
"""

from __future__ import annotations

import pytest

from signflow.sentence_buffer import SentenceBuffer, should_analyze


def test_consecutive_duplicates_are_dropped() -> None:
    buf = SentenceBuffer()
    assert buf.push("Hello")
    assert not buf.push("Hello")
    assert buf.push("Thank you")
    assert buf.push("Hello")
    assert buf.labels == ["Hello", "Thank you", "Hello"]


def test_empty_label_is_ignored() -> None:
    buf = SentenceBuffer()
    assert not buf.push("")
    assert len(buf) == 0
    assert buf.last is None


def test_oldest_label_is_evicted() -> None:
    buf = SentenceBuffer(capacity=3)
    for label in ["A", "B", "C", "D"]:
        buf.push(label)
    assert buf.labels == ["B", "C", "D"]
    assert buf.last == "D"


def test_clear() -> None:
    buf = SentenceBuffer()
    buf.push("Yes")
    buf.push("No")
    buf.clear()
    assert buf.labels == []


def test_capacity_must_be_positive() -> None:
    with pytest.raises(ValueError):
        SentenceBuffer(capacity=0)


@pytest.mark.parametrize(
    "labels, now, last, expected",
    [
        ([], 10_000, None, False),
        (["Hello"], 10_000, None, False),
        (["Hello", "Yes"], 10_000, None, True),
        (["Hello", "Yes"], 10_000, 7_001, False),
        (["Hello", "Yes"], 10_000, 7_000, True),
        (["Hello", "Yes"], 10_000, 1_000, True),
    ],
)
def test_should_analyze(labels, now, last, expected) -> None:
    assert should_analyze(labels, now, last) is expected


def test_buffer_should_analyze_uses_its_labels() -> None:
    buf = SentenceBuffer()
    buf.push("Hello")
    assert not buf.should_analyze(5_000, None)
    buf.push("Friend")
    assert buf.should_analyze(5_000, None)
    assert not buf.should_analyze(5_000, 4_000, min_interval_ms=2_000)
