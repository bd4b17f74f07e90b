"""
hand_tracker.py – MediaPipe HandLandmarker wrapper.

Extracts 21-joint hand landmarks per detected hand from BGR webcam frames
and returns them as :class:`~signflow.landmarks.HandSample` objects.

  1. The landmarker runs in VIDEO mode, so timestamps must strictly
     increase from frame to frame.
  2. Detection / tracking thresholds come from :class:`TrackerConfig` and
     are fixed at construction; build a new tracker to change them.
  3. Per-hand FIR smoothing on the full 21-joint landmark buffer reduces
     jitter before classification.
  4. A hand's smoothing history is cleared when it is lost to avoid
     stale-data contamination.
"""

from __future__ import annotations

import logging
import time
import urllib.request
from collections import deque
from pathlib import Path

import cv2
import mediapipe as mp
import numpy as np
from mediapipe.tasks import python as mp_python
from mediapipe.tasks.python import vision

from signflow.config import DEFAULT_HAND_MODEL, TrackerConfig
from signflow.errors import TrackerInitializationError
from signflow.landmarks import HAND_CONNECTIONS, NUM_HAND_JOINTS, WRIST_IDX, HandSample

logger = logging.getLogger(__name__)

# ── Constants ────────────────────────────────────────────────────────────────

HAND_MODEL_URL = (
    "https://storage.googleapis.com/mediapipe-models/hand_landmarker/"
    "hand_landmarker/float16/latest/hand_landmarker.task"
)

# Colours (BGR) for drawing
_RIGHT_COLOUR = (255, 200, 0)   # cyan-ish
_LEFT_COLOUR = (0, 100, 255)    # orange-ish
_POINT_COLOUR = (0, 255, 0)     # green

# FIR smoothing filter.
# 7-tap causal low-pass filter: older frames get lower (even negative)
# weights, recent frames get higher weights.  Sum ≈ 1.0.
_FIR_COEFFS = np.array(
    [-0.17857, -0.07143, 0.03571, 0.14286, 0.25, 0.35714, 0.46429],
    dtype=np.float32,
)
_FIR_LEN = len(_FIR_COEFFS)


# ── FIR Landmark Smoother ────────────────────────────────────────────────────


class _LandmarkSmoother:
    """Per-hand FIR low-pass filter on the full (21, 3) landmark array.

    Maintains a fixed-length deque of recent landmark frames and returns
    the weighted sum using ``_FIR_COEFFS``.  When the buffer has fewer
    entries than the filter length, a truncated (re-normalised) version
    of the newest coefficients is used so output is always valid.
    """

    def __init__(self) -> None:
        self._buf: deque[np.ndarray] = deque(maxlen=_FIR_LEN)

    def clear(self) -> None:
        self._buf.clear()

    def __len__(self) -> int:
        return len(self._buf)

    def push(self, landmarks: np.ndarray) -> np.ndarray:
        """Add a new (21, 3) frame and return the smoothed output."""
        self._buf.append(landmarks.copy())
        n = len(self._buf)

        if n == 1:
            return landmarks.copy()

        coeffs = _FIR_COEFFS[-n:].copy()
        coeffs /= coeffs.sum()

        stacked = np.stack(list(self._buf))                  # (n, 21, 3)
        smoothed = np.einsum("i,ijk->jk", coeffs, stacked)   # (21, 3)
        return smoothed.astype(np.float32)


# ── Public API ───────────────────────────────────────────────────────────────


class HandTracker:
    """Detect hands and return normalised 21-joint landmarks per frame.

    Parameters
    ----------
    config:
        Hand count and detection / tracking thresholds.  Fixed for the
        lifetime of the tracker.
    smoothing:
        Whether FIR landmark smoothing is active.

    Raises
    ------
    TrackerInitializationError
        When the model file is missing or MediaPipe fails to build the
        landmarker.
    """

    def __init__(self, config: TrackerConfig | None = None, smoothing: bool = True) -> None:
        self.config = config or TrackerConfig()
        self.smoothing = smoothing
        self._smoothers: dict[str, _LandmarkSmoother] = {
            "Left": _LandmarkSmoother(),
            "Right": _LandmarkSmoother(),
        }
        self._last_ts_ms = -1

        model_path = Path(self.config.model_path)
        if not model_path.exists():
            raise TrackerInitializationError(
                f"Hand landmarker model not found: {model_path} (run ensure_model())"
            )

        options = vision.HandLandmarkerOptions(
            base_options=mp_python.BaseOptions(model_asset_path=str(model_path)),
            running_mode=vision.RunningMode.VIDEO,
            num_hands=self.config.max_hands,
            min_hand_detection_confidence=self.config.detection_threshold,
            min_hand_presence_confidence=self.config.detection_threshold,
            min_tracking_confidence=self.config.tracking_threshold,
        )
        try:
            self._landmarker = vision.HandLandmarker.create_from_options(options)
        except Exception as exc:
            raise TrackerInitializationError(f"MediaPipe HandLandmarker failed to start: {exc}") from exc

        logger.debug(
            "HandTracker ready (hands=%d, detection=%.2f, tracking=%.2f)",
            self.config.max_hands,
            self.config.detection_threshold,
            self.config.tracking_threshold,
        )

    # ── Core tracking ────────────────────────────────────────────────────

    def process(self, bgr_frame: np.ndarray) -> list[HandSample]:
        """Return 0–``max_hands`` samples for *bgr_frame*, in detection order."""
        if self._landmarker is None:
            raise RuntimeError("HandTracker has been closed")

        rgb = cv2.cvtColor(bgr_frame, cv2.COLOR_BGR2RGB)
        image = mp.Image(image_format=mp.ImageFormat.SRGB, data=rgb)
        result = self._landmarker.detect_for_video(image, self._next_timestamp())

        raw: list[tuple[str, np.ndarray]] = []
        for i, hand in enumerate(result.hand_landmarks or []):
            side = "Right"
            if result.handedness and i < len(result.handedness) and result.handedness[i]:
                side = result.handedness[i][0].category_name
            points = np.array([(p.x, p.y, p.z or 0.0) for p in hand], dtype=np.float32)
            raw.append((side, points))

        return self._smooth_result(raw)

    def close(self) -> None:
        """Release the landmarker.  Safe to call more than once."""
        if self._landmarker is not None:
            self._landmarker.close()
            self._landmarker = None
        for smoother in self._smoothers.values():
            smoother.clear()

    def __enter__(self) -> HandTracker:
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # ── FIR smoothing wrapper ─────────────────────────────────────────────

    def _smooth_result(self, raw: list[tuple[str, np.ndarray]]) -> list[HandSample]:
        """Apply per-hand FIR smoothing.  Clear a hand's history when lost."""
        seen = set()
        samples: list[HandSample] = []
        for side, points in raw:
            smoother = self._smoothers.setdefault(side, _LandmarkSmoother())
            if side in seen or len(points) != NUM_HAND_JOINTS:
                # Second hand with the same chirality passes through unsmoothed
                samples.append(HandSample.from_array(points, handedness=side))
                continue
            seen.add(side)
            smoothed = smoother.push(points) if self.smoothing else points
            samples.append(HandSample.from_array(smoothed, handedness=side))

        for side, smoother in self._smoothers.items():
            if side not in seen:
                smoother.clear()
        return samples

    def _next_timestamp(self) -> int:
        ts = max(int(time.monotonic() * 1000), self._last_ts_ms + 1)
        self._last_ts_ms = ts
        return ts


def create_tracker(config: TrackerConfig) -> HandTracker:
    """Default tracker factory for :class:`~signflow.pipeline.SignPipeline`."""
    return HandTracker(config)


# ── Drawing utilities ────────────────────────────────────────────────────────


def draw_hands(
    bgr_frame: np.ndarray,
    hands: list[HandSample],
    point_radius: int = 3,
    line_thickness: int = 2,
) -> np.ndarray:
    """Draw detected hand skeletons onto *bgr_frame* (mutates in-place)."""
    h, w = bgr_frame.shape[:2]

    for hand in hands:
        if not hand.is_complete:
            continue
        colour = _LEFT_COLOUR if hand.handedness == "Left" else _RIGHT_COLOUR
        pts = [(int(x), int(y)) for x, y in hand.as_array()[:, :2] * [w, h]]

        for a, b in HAND_CONNECTIONS:
            cv2.line(bgr_frame, pts[a], pts[b], colour, line_thickness)

        for pt in pts:
            cv2.circle(bgr_frame, pt, point_radius, _POINT_COLOUR, -1)

        label = (hand.handedness or "hand").upper()
        wrist = pts[WRIST_IDX]
        cv2.putText(
            bgr_frame, label,
            (wrist[0] + 5, wrist[1] - 10),
            cv2.FONT_HERSHEY_SIMPLEX, 0.5, colour, 1, cv2.LINE_AA,
        )

    return bgr_frame


# ── Model download helper ────────────────────────────────────────────────────


def ensure_model(model_dir: str | Path = DEFAULT_HAND_MODEL.parent) -> Path:
    """Download the MediaPipe hand-landmarker bundle if not already present.

    Returns the path to the ``.task`` file.
    """
    model_dir = Path(model_dir)
    model_dir.mkdir(parents=True, exist_ok=True)
    task_path = model_dir / DEFAULT_HAND_MODEL.name

    if task_path.exists():
        logger.info("Hand model already present: %s", task_path)
        return task_path

    logger.info("Downloading hand landmarker model to %s ...", task_path)
    tmp_path = task_path.with_suffix(".part")
    urllib.request.urlretrieve(HAND_MODEL_URL, tmp_path)
    tmp_path.rename(task_path)
    logger.info("Hand model ready: %s", task_path)
    return task_path
