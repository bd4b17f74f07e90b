"""
tests/conftest.py – Shared fixtures.

``make_hand`` builds synthetic 21-point hands in normalised image space
(y grows downwards).  The palm (wrist → middle MCP) is 0.20 long.
Extended fingers point straight up, either fanned out (``spread=True``),
held together, or rising parallel over their knuckles (``parallel=True``);
curled fingers fold back below their knuckle.
"""

from __future__ import annotations

import sys
from pathlib import Path

import numpy as np
import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from signflow.landmarks import INDEX, MIDDLE, PINKY, RING, HandSample

_WRIST = (0.50, 0.90)
_THUMB_BASE = [(0.44, 0.86), (0.40, 0.80)]          # CMC, MCP
_THUMB_OUT = [(0.37, 0.74), (0.35, 0.68)]           # IP, TIP
_THUMB_IN = [(0.42, 0.76), (0.47, 0.75)]

_KNUCKLES = {
    INDEX: (0.44, 0.70),
    MIDDLE: (0.50, 0.70),
    RING: (0.56, 0.70),
    PINKY: (0.61, 0.72),
}
_LIFT = (0.08, 0.14, 0.20)                          # PIP, DIP, TIP above the MCP


def build_hand(
    extended: tuple[int, ...] = (),
    thumb: bool = False,
    spread: bool = True,
    parallel: bool = False,
    dy: float = 0.0,
    handedness: str | None = "Right",
) -> HandSample:
    pts = np.zeros((21, 2), dtype=np.float64)
    pts[0] = _WRIST
    pts[1:3] = _THUMB_BASE
    pts[3:5] = _THUMB_OUT if thumb else _THUMB_IN

    for finger, (mx, my) in _KNUCKLES.items():
        base = 4 * finger + 1
        pts[base] = (mx, my)
        if finger in extended:
            if parallel:
                step, fracs = 0.0, (0.0, 0.0, 0.0)
            elif spread:
                step, fracs = mx - 0.5, (0.2, 0.4, 0.6)
            else:
                step, fracs = 0.5 - mx, (0.1, 0.2, 0.3)
            for j, (frac, lift) in enumerate(zip(fracs, _LIFT), start=1):
                pts[base + j] = (mx + step * frac, my - lift)
        else:
            pts[base + 1] = (mx, my - 0.04)
            pts[base + 2] = (mx, my)
            pts[base + 3] = (mx, my + 0.03)

    pts[:, 1] += dy
    return HandSample.from_array(pts, handedness=handedness)


ALL_FINGERS = (INDEX, MIDDLE, RING, PINKY)


@pytest.fixture
def make_hand():
    return build_hand


@pytest.fixture
def open_hand():
    return build_hand(ALL_FINGERS, thumb=True)


@pytest.fixture
def fist():
    return build_hand()
