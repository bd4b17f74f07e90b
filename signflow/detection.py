"""detection.py – Result type shared by the classifier, analyzer and pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from signflow.landmarks import HandSample


class GestureType(Enum):
    STATIC = "static"
    DYNAMIC = "dynamic"
    SENTENCE = "sentence"
    VALIDATED = "validated"


@dataclass(frozen=True)
class DetectionResult:
    """A single classification or sentence interpretation.

    ``tier`` is the classifier stage that produced the label (1 = canonical
    pose … 5 = feature-prior fallback, 0 = not from the classifier).
    Tier-5 labels are low-trust guesses; gate on ``confidence`` / ``tier``
    before treating them as meaningful.
    """

    sign: str
    confidence: float
    gesture_type: GestureType = GestureType.STATIC
    landmarks: list[HandSample] | None = field(default=None, compare=False)
    hand_shape: str | None = None
    tier: int = 0

    @property
    def is_fallback(self) -> bool:
        return self.tier == 5
