"""
sentence_buffer.py – Bounded, de-duplicating queue of recent sign labels.

The buffer decouples "a sign was seen" from "ask for a sentence
interpretation": labels accumulate here every frame, and
:func:`should_analyze` gates how often the semantic analyzer is called.
"""

from __future__ import annotations

from collections import deque
from typing import Iterator

DEFAULT_CAPACITY = 10
DEFAULT_MIN_INTERVAL_MS = 3000.0
MIN_LABELS_FOR_ANALYSIS = 2


class SentenceBuffer:
    """FIFO of at most *capacity* labels with no two adjacent entries equal."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self.capacity = capacity
        self._labels: deque[str] = deque(maxlen=capacity)

    def __len__(self) -> int:
        return len(self._labels)

    def __iter__(self) -> Iterator[str]:
        return iter(self._labels)

    def __repr__(self) -> str:
        return f"SentenceBuffer({list(self._labels)!r}, capacity={self.capacity})"

    @property
    def labels(self) -> list[str]:
        return list(self._labels)

    @property
    def last(self) -> str | None:
        return self._labels[-1] if self._labels else None

    def push(self, label: str) -> bool:
        """Append *label* unless it repeats the last entry.

        Returns ``True`` when the label was stored.  The oldest entry is
        evicted once the buffer is full.
        """
        if not label or label == self.last:
            return False
        self._labels.append(label)
        return True

    def clear(self) -> None:
        self._labels.clear()

    def should_analyze(
        self,
        now_ms: float,
        last_analysis_ms: float | None,
        min_interval_ms: float = DEFAULT_MIN_INTERVAL_MS,
    ) -> bool:
        return should_analyze(self, now_ms, last_analysis_ms, min_interval_ms)


def should_analyze(
    labels: SentenceBuffer | list[str],
    now_ms: float,
    last_analysis_ms: float | None,
    min_interval_ms: float = DEFAULT_MIN_INTERVAL_MS,
) -> bool:
    """True iff at least two labels are buffered and *min_interval_ms* has
    elapsed since the last analysis (``None`` means never analysed)."""
    if len(labels) < MIN_LABELS_FOR_ANALYSIS:
        return False
    if last_analysis_ms is None:
        return True
    return now_ms - last_analysis_ms >= min_interval_ms
