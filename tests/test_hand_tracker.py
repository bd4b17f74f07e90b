"""
tests/test_hand_tracker.py – FIR landmark smoothing and clear-on-loss.

The MediaPipe landmarker itself needs a model file, so these tests drive
the smoothing path directly on an unconstructed tracker.
"""

from __future__ import annotations

import numpy as np
import pytest

pytest.importorskip("mediapipe")
pytest.importorskip("cv2")

from signflow.config import TrackerConfig
from signflow.errors import TrackerInitializationError
from signflow.hand_tracker import HandTracker, _LandmarkSmoother, draw_hands
from signflow.landmarks import NUM_HAND_JOINTS


def _bare_tracker(smoothing: bool = True) -> HandTracker:
    tracker = HandTracker.__new__(HandTracker)
    tracker.config = TrackerConfig()
    tracker.smoothing = smoothing
    tracker._smoothers = {"Left": _LandmarkSmoother(), "Right": _LandmarkSmoother()}
    tracker._last_ts_ms = -1
    tracker._landmarker = None
    return tracker


def test_smoother_reduces_jitter() -> None:
    sm = _LandmarkSmoother()
    base = np.random.RandomState(0).randn(NUM_HAND_JOINTS, 3).astype(np.float32) * 0.1 + 0.5

    raw_diffs, smooth_diffs = [], []
    for i in range(15):
        jitter = np.random.RandomState(i + 100).randn(NUM_HAND_JOINTS, 3).astype(np.float32) * 0.02
        noisy = base + jitter
        smoothed = sm.push(noisy)
        if i >= 7:
            raw_diffs.append(np.linalg.norm(noisy - base))
            smooth_diffs.append(np.linalg.norm(smoothed - base))

    assert np.mean(smooth_diffs) < np.mean(raw_diffs)
    assert len(sm) == 7


def test_smoother_first_frame_passes_through() -> None:
    sm = _LandmarkSmoother()
    frame = np.full((NUM_HAND_JOINTS, 3), 0.25, dtype=np.float32)
    np.testing.assert_allclose(sm.push(frame), frame)
    np.testing.assert_allclose(sm.push(frame), frame, atol=1e-6)


def test_clear_on_loss() -> None:
    tracker = _bare_tracker()
    right = np.full((NUM_HAND_JOINTS, 3), 0.5, dtype=np.float32)
    left = np.full((NUM_HAND_JOINTS, 3), 0.3, dtype=np.float32)

    for _ in range(5):
        samples = tracker._smooth_result([("Right", right), ("Left", left)])
    assert [s.handedness for s in samples] == ["Right", "Left"]
    assert len(tracker._smoothers["Right"]) == 5

    samples = tracker._smooth_result([("Left", left)])
    assert len(samples) == 1
    assert len(tracker._smoothers["Right"]) == 0
    assert len(tracker._smoothers["Left"]) == 6

    assert tracker._smooth_result([]) == []
    assert all(len(sm) == 0 for sm in tracker._smoothers.values())


def test_timestamps_strictly_increase() -> None:
    tracker = _bare_tracker()
    stamps = [tracker._next_timestamp() for _ in range(5)]
    assert all(b > a for a, b in zip(stamps, stamps[1:]))


def test_closed_tracker_rejects_frames() -> None:
    tracker = _bare_tracker()
    tracker.close()
    tracker.close()
    with pytest.raises(RuntimeError):
        tracker.process(np.zeros((8, 8, 3), dtype=np.uint8))


def test_missing_model_raises(tmp_path) -> None:
    config = TrackerConfig(model_path=tmp_path / "missing.task")
    with pytest.raises(TrackerInitializationError):
        HandTracker(config)


def test_draw_hands_marks_frame(open_hand) -> None:
    frame = np.zeros((120, 160, 3), dtype=np.uint8)
    out = draw_hands(frame, [open_hand])
    assert out is frame
    assert frame.any()
