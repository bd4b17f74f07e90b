"""
landmarks.py – Typed hand-landmark samples.

A tracked hand is 21 points in normalised image space (MediaPipe
convention): ``x``/``y`` in [0, 1] with ``y`` growing downwards, ``z`` a
relative depth that may be 0 when the tracker does not provide it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence

import numpy as np

# ── Constants ────────────────────────────────────────────────────────────────

NUM_HAND_JOINTS = 21

WRIST_IDX = 0

# Per-finger joint indices: thumb, index, middle, ring, pinky
FINGERTIP_IDX = [4, 8, 12, 16, 20]
FINGER_PIP_IDX = [3, 6, 10, 14, 18]  # thumb uses its IP joint
FINGER_MCP_IDX = [2, 5, 9, 13, 17]

THUMB, INDEX, MIDDLE, RING, PINKY = range(5)

MIDDLE_MCP_IDX = 9  # used for palm-length normalisation

# 21-point hand skeleton connectivity (MediaPipe convention)
HAND_CONNECTIONS: list[tuple[int, int]] = [
    (0, 1), (1, 2), (2, 3), (3, 4),        # thumb
    (5, 6), (6, 7), (7, 8),                 # index
    (9, 10), (10, 11), (11, 12),            # middle
    (13, 14), (14, 15), (15, 16),           # ring
    (17, 18), (18, 19), (19, 20),           # pinky
    (0, 5), (5, 9), (9, 13), (13, 17),      # palm
    (0, 17),
]


# ── Data structures ──────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Landmark:
    """One tracked point on a hand."""

    x: float
    y: float
    z: float = 0.0


@dataclass(frozen=True)
class HandSample:
    """The landmark set for one tracked hand in one frame.

    The length is not validated here: a partial sample is a legal value
    and the classifier rejects it (see :attr:`is_complete`).
    """

    landmarks: tuple[Landmark, ...]
    handedness: str | None = None

    def __len__(self) -> int:
        return len(self.landmarks)

    def __getitem__(self, idx: int) -> Landmark:
        return self.landmarks[idx]

    @property
    def is_complete(self) -> bool:
        return len(self.landmarks) >= NUM_HAND_JOINTS

    def as_array(self) -> np.ndarray:
        """Return a ``(N, 3)`` float32 array of ``(x, y, z)`` rows."""
        if not self.landmarks:
            return np.zeros((0, 3), dtype=np.float32)
        return np.array(
            [(lm.x, lm.y, lm.z) for lm in self.landmarks], dtype=np.float32
        )

    @classmethod
    def from_array(
        cls, points: np.ndarray | Sequence[Sequence[float]], handedness: str | None = None
    ) -> HandSample:
        """Build a sample from an ``(N, 2)`` or ``(N, 3)`` array."""
        arr = np.asarray(points, dtype=np.float32)
        if arr.ndim != 2 or arr.shape[1] not in (2, 3):
            raise ValueError(f"Expected an (N, 2) or (N, 3) array, got {arr.shape}")
        if arr.shape[1] == 2:
            arr = np.hstack([arr, np.zeros((arr.shape[0], 1), dtype=np.float32)])
        return cls(
            landmarks=tuple(Landmark(float(x), float(y), float(z)) for x, y, z in arr),
            handedness=handedness,
        )

    @classmethod
    def from_normalized(
        cls, points: Iterable, handedness: str | None = None
    ) -> HandSample:
        """Build a sample from MediaPipe ``NormalizedLandmark`` objects."""
        return cls(
            landmarks=tuple(
                Landmark(float(p.x), float(p.y), float(getattr(p, "z", 0.0) or 0.0))
                for p in points
            ),
            handedness=handedness,
        )


# ── Geometry helpers ─────────────────────────────────────────────────────────


def palm_size(points: np.ndarray) -> float:
    """Wrist → middle-MCP distance in the xy plane, floored to avoid /0."""
    return max(
        float(np.linalg.norm(points[MIDDLE_MCP_IDX, :2] - points[WRIST_IDX, :2])),
        1e-6,
    )
