"""
gesture_classifier.py – Map one frame's hand landmarks to a sign label.

The classifier is a heuristic cascade over geometric features of the first
detected hand; the first tier that matches wins:

1. **Canonical poses** – fist, point, peace, open hand, I-love-you.
2. **Manual alphabet / numerals** – A–Z then 0–10, built from the same
   finger-extension primitives plus pairwise fingertip distances.
3. **Named vocabulary** – greeting / courtesy / need words.
4. **Language overlay** – for KSL / BSL only: a language-specific predicate
   set, else tiers 1–3 with the label mapped through the vocabulary tables.
5. **Feature-prior fallback** – coarse features (extended-finger count,
   fingertip spread, aspect ratio) pick a plausible label from a large
   candidate vocabulary with seeded pseudo-random tie-breaking.  These
   results are guesses; they carry ``tier == 5`` and a lower confidence.

All distances are normalised by palm size (wrist → middle MCP) so the
thresholds are independent of how far the hand is from the camera.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Sequence

import numpy as np

from signflow.detection import DetectionResult, GestureType
from signflow.landmarks import (
    FINGER_MCP_IDX,
    FINGER_PIP_IDX,
    FINGERTIP_IDX,
    HandSample,
    INDEX,
    MIDDLE,
    PINKY,
    RING,
    THUMB,
    WRIST_IDX,
    palm_size,
)
from signflow.settings import Language
from signflow.vocabulary import DEFAULT_VOCABULARY, VocabularyMapper

# ── Constants ────────────────────────────────────────────────────────────────

CANONICAL_CONFIDENCE = 0.85
ALPHABET_CONFIDENCE = 0.85
VOCABULARY_CONFIDENCE = 0.8
OVERLAY_CONFIDENCE = 0.75
FALLBACK_CONFIDENCE = 0.7
FALLBACK_WEAK_CONFIDENCE = 0.65

# Thresholds in palm-size units
_THUMB_OUT = 0.4          # thumb tip distance from index MCP when extended
_STRAIGHT = 0.7           # MCP → tip length for a straightened finger
_V_SPREAD = 0.35          # index / middle tip gap for V vs U
_TOGETHER = 0.8           # tip gap as a fraction of knuckle gap for a closed-up hand
_TOUCH = 0.3              # fingertip contact
_POINTING_DOWN = 0.3      # tip below its MCP by this much

_FIST_MAX_ASPECT = 1.6
_RAISED_WRIST_Y = 0.7     # image-space y above which the hand counts as raised

_FINGERS = (INDEX, MIDDLE, RING, PINKY)

# ── Feature extraction ───────────────────────────────────────────────────────


@dataclass(frozen=True)
class HandFeatures:
    """Geometric summary of one hand, computed once per frame."""

    points: np.ndarray            # (21, 3)
    palm: float
    extended: tuple[bool, ...]    # thumb, index, middle, ring, pinky
    straight: tuple[bool, ...]
    horizontal: tuple[bool, ...]
    spread: float                 # mean adjacent fingertip gap (index..pinky)
    knuckle_spread: float         # mean adjacent MCP gap (index..pinky)
    aspect_ratio: float           # bbox height / width

    @classmethod
    def from_points(cls, points: np.ndarray) -> HandFeatures:
        palm = palm_size(points)
        xy = points[:, :2]
        wrist = xy[WRIST_IDX]

        extended = [_thumb_extended(xy, palm)]
        for f in _FINGERS:
            tip, pip, mcp = xy[FINGERTIP_IDX[f]], xy[FINGER_PIP_IDX[f]], xy[FINGER_MCP_IDX[f]]
            extended.append(bool(tip[1] < pip[1] < mcp[1]))

        straight, horizontal = [], []
        for f in range(5):
            tip, pip, mcp = xy[FINGERTIP_IDX[f]], xy[FINGER_PIP_IDX[f]], xy[FINGER_MCP_IDX[f]]
            length = float(np.linalg.norm(tip - mcp)) / palm
            reaching = np.linalg.norm(tip - wrist) > np.linalg.norm(pip - wrist)
            straight.append(bool(length > _STRAIGHT and reaching))
            dx, dy = np.abs(tip - mcp)
            horizontal.append(bool(dx > dy))

        tips = xy[[FINGERTIP_IDX[f] for f in _FINGERS]]
        spread = float(np.linalg.norm(np.diff(tips, axis=0), axis=1).mean()) / palm
        knuckles = xy[[FINGER_MCP_IDX[f] for f in _FINGERS]]
        knuckle_spread = float(np.linalg.norm(np.diff(knuckles, axis=0), axis=1).mean()) / palm

        span = xy.max(axis=0) - xy.min(axis=0)
        aspect = float(span[1] / max(span[0], 1e-6))

        return cls(
            points=points,
            palm=palm,
            extended=tuple(extended),
            straight=tuple(straight),
            horizontal=tuple(horizontal),
            spread=spread,
            knuckle_spread=knuckle_spread,
            aspect_ratio=aspect,
        )

    # ── primitives ──

    def tip(self, finger: int) -> np.ndarray:
        return self.points[FINGERTIP_IDX[finger], :2]

    def pip(self, finger: int) -> np.ndarray:
        return self.points[FINGER_PIP_IDX[finger], :2]

    def mcp(self, finger: int) -> np.ndarray:
        return self.points[FINGER_MCP_IDX[finger], :2]

    @property
    def wrist(self) -> np.ndarray:
        return self.points[WRIST_IDX, :2]

    def tip_distance(self, a: int, b: int) -> float:
        """Normalised distance between two fingertips."""
        return float(np.linalg.norm(self.tip(a) - self.tip(b))) / self.palm

    def only(self, *fingers: int) -> bool:
        """Exactly *fingers* are extended (thumb included in the check)."""
        return all(self.extended[f] == (f in fingers) for f in range(5))

    def fingers_only(self, *fingers: int) -> bool:
        """Exactly *fingers* among index..pinky are extended; thumb ignored."""
        return all(self.extended[f] == (f in fingers) for f in _FINGERS)

    @property
    def closed(self) -> bool:
        """No finger (index..pinky) extended or straightened."""
        return not any(self.extended[f] or self.straight[f] for f in _FINGERS)

    @property
    def thumb_out(self) -> bool:
        return self.extended[THUMB]

    @property
    def thumb_up(self) -> bool:
        return self.thumb_out and self.tip(THUMB)[1] < self.mcp(INDEX)[1]

    def hooked(self, finger: int) -> bool:
        tip_y = self.tip(finger)[1]
        return bool(self.pip(finger)[1] < tip_y < self.mcp(finger)[1])

    def curved(self, finger: int) -> bool:
        """Tip above its MCP without being fully extended."""
        return bool(self.tip(finger)[1] < self.mcp(finger)[1] and not self.extended[finger])

    def pointing_down(self, finger: int) -> bool:
        drop = (self.tip(finger)[1] - self.mcp(finger)[1]) / self.palm
        return bool(self.straight[finger] and drop > _POINTING_DOWN)

    def horizontal_straight(self, finger: int) -> bool:
        return self.straight[finger] and self.horizontal[finger]

    @property
    def extended_count(self) -> int:
        return sum(self.extended)

    @property
    def fingers_together(self) -> bool:
        """Fingertips closer to each other than the knuckles they rise from."""
        return self.spread < _TOGETHER * self.knuckle_spread

    @property
    def flat_hand(self) -> bool:
        """Four fingers up and held together."""
        return self.fingers_only(INDEX, MIDDLE, RING, PINKY) and self.fingers_together

    @property
    def raised(self) -> bool:
        return bool(self.wrist[1] < _RAISED_WRIST_Y)

    def thumb_x_between(self, a: int, b: int) -> bool:
        lo, hi = sorted((self.mcp(a)[0], self.mcp(b)[0]))
        return bool(lo <= self.tip(THUMB)[0] <= hi)

    @property
    def shape_code(self) -> str:
        return "ext:" + "".join("1" if e else "0" for e in self.extended)


def _thumb_extended(xy: np.ndarray, palm: float) -> bool:
    # The thumb moves sideways, so the y-ordering test used for the other
    # fingers is unreliable; use distance from the index knuckle instead.
    tip, ip = xy[FINGERTIP_IDX[THUMB]], xy[FINGER_PIP_IDX[THUMB]]
    wrist = xy[WRIST_IDX]
    away = float(np.linalg.norm(tip - xy[FINGER_MCP_IDX[INDEX]])) / palm > _THUMB_OUT
    return bool(away and np.linalg.norm(tip - wrist) > np.linalg.norm(ip - wrist))


Predicate = Callable[[HandFeatures], bool]

# label, confidence, gesture type, hand-shape tag, tier
_Match = tuple[str, float, GestureType, "str | None", int]

# ── Tier 1: canonical poses ──────────────────────────────────────────────────


def _is_fist(h: HandFeatures) -> bool:
    return (
        h.closed
        and not h.thumb_out
        and h.tip(THUMB)[1] > h.pip(INDEX)[1]
        and h.aspect_ratio < _FIST_MAX_ASPECT
    )


def _is_point(h: HandFeatures) -> bool:
    return h.only(INDEX) and not h.horizontal[INDEX]


def _is_peace(h: HandFeatures) -> bool:
    return h.only(INDEX, MIDDLE) and h.tip_distance(INDEX, MIDDLE) > _V_SPREAD


def _is_open_hand(h: HandFeatures) -> bool:
    # A closed-up flat hand with the thumb out is left to the vocabulary tier
    return h.extended_count == 5 and not h.fingers_together


def _is_i_love_you(h: HandFeatures) -> bool:
    return h.only(THUMB, INDEX, PINKY)


CANONICAL_POSES: list[tuple[str, str, Predicate]] = [
    ("Fist", "fist", _is_fist),
    ("Point", "point", _is_point),
    ("Peace", "v", _is_peace),
    ("Open Hand", "open", _is_open_hand),
    ("I Love You", "ily", _is_i_love_you),
]

# ── Tier 2: manual alphabet and numerals ─────────────────────────────────────


def _two_up(h: HandFeatures) -> bool:
    return h.fingers_only(INDEX, MIDDLE)


ALPHABET: list[tuple[str, Predicate]] = [
    ("A", lambda h: h.closed and not h.thumb_out
        and h.tip(THUMB)[1] < h.pip(INDEX)[1] and h.tip(THUMB)[0] < h.mcp(INDEX)[0]),
    ("B", lambda h: h.flat_hand and not h.thumb_out),
    ("C", lambda h: h.thumb_out and h.fingers_only()
        and sum(h.curved(f) for f in _FINGERS) >= 3
        and _TOUCH <= h.tip_distance(THUMB, INDEX) <= 1.0),
    ("D", lambda h: h.fingers_only(INDEX) and h.tip_distance(THUMB, MIDDLE) < _TOUCH),
    ("E", lambda h: h.closed and not h.thumb_out
        and h.tip(THUMB)[1] > np.mean([h.tip(f)[1] for f in _FINGERS])),
    ("F", lambda h: h.fingers_only(MIDDLE, RING, PINKY)
        and h.tip_distance(THUMB, INDEX) < _TOUCH),
    ("G", lambda h: h.thumb_out and h.horizontal_straight(INDEX)
        and not any(h.straight[f] for f in (MIDDLE, RING, PINKY))),
    ("H", lambda h: not h.thumb_out
        and h.horizontal_straight(INDEX) and h.horizontal_straight(MIDDLE)
        and not h.straight[RING] and not h.straight[PINKY]),
    ("I", lambda h: h.only(PINKY)),
    ("J", lambda h: not h.thumb_out and h.horizontal_straight(PINKY)
        and not any(h.straight[f] for f in (INDEX, MIDDLE, RING))),
    ("K", lambda h: _two_up(h) and h.thumb_x_between(INDEX, MIDDLE)
        and h.tip(THUMB)[1] < h.pip(MIDDLE)[1]),
    ("L", lambda h: h.only(THUMB, INDEX)),
    ("M", lambda h: h.closed and not h.thumb_out
        and h.tip(THUMB)[0] > h.mcp(RING)[0]),
    ("N", lambda h: h.closed and not h.thumb_out and h.thumb_x_between(MIDDLE, RING)),
    ("O", lambda h: h.fingers_only() and h.tip_distance(THUMB, INDEX) < _TOUCH
        and h.tip_distance(THUMB, MIDDLE) < _TOUCH + 0.1),
    ("P", lambda h: h.pointing_down(INDEX) and h.pointing_down(MIDDLE)
        and not h.straight[RING]),
    ("Q", lambda h: h.pointing_down(INDEX)
        and (h.tip(THUMB)[1] - h.mcp(THUMB)[1]) / h.palm > _POINTING_DOWN
        and not h.straight[MIDDLE]),
    ("R", lambda h: _two_up(h)
        and np.sign(h.tip(INDEX)[0] - h.tip(MIDDLE)[0])
        != np.sign(h.mcp(INDEX)[0] - h.mcp(MIDDLE)[0])),
    ("S", lambda h: h.closed and not h.thumb_out
        and h.pip(INDEX)[1] <= h.tip(THUMB)[1] <= h.tip(INDEX)[1]),
    ("T", lambda h: h.closed and h.thumb_x_between(INDEX, MIDDLE)
        and h.tip(THUMB)[1] < h.pip(INDEX)[1]),
    ("U", lambda h: h.only(INDEX, MIDDLE) and h.tip_distance(INDEX, MIDDLE) <= _V_SPREAD),
    ("V", lambda h: _two_up(h) and h.tip_distance(INDEX, MIDDLE) > _V_SPREAD),
    ("W", lambda h: h.only(INDEX, MIDDLE, RING)),
    ("X", lambda h: h.hooked(INDEX) and h.fingers_only()),
    ("Y", lambda h: h.only(THUMB, PINKY)),
    ("Z", lambda h: not h.thumb_out and h.horizontal_straight(INDEX)
        and not any(h.straight[f] for f in (MIDDLE, RING, PINKY))),
]

NUMERALS: list[tuple[str, Predicate]] = [
    ("0", lambda h: h.fingers_only() and h.tip_distance(THUMB, INDEX) < _TOUCH
        and h.tip_distance(THUMB, MIDDLE) < _TOUCH + 0.1),
    ("1", lambda h: h.only(INDEX)),
    ("2", lambda h: h.only(INDEX, MIDDLE)),
    ("3", lambda h: h.only(THUMB, INDEX, MIDDLE)),
    ("4", lambda h: h.only(INDEX, MIDDLE, RING, PINKY) and not h.fingers_together),
    ("5", lambda h: h.extended_count == 5 and not h.fingers_together),
    ("6", lambda h: h.fingers_only(INDEX, MIDDLE, RING) and h.tip_distance(THUMB, PINKY) < _TOUCH),
    ("7", lambda h: h.fingers_only(INDEX, MIDDLE, PINKY) and h.tip_distance(THUMB, RING) < _TOUCH),
    ("8", lambda h: h.fingers_only(INDEX, RING, PINKY) and h.tip_distance(THUMB, MIDDLE) < _TOUCH),
    ("9", lambda h: h.fingers_only(MIDDLE, RING, PINKY) and h.tip_distance(THUMB, INDEX) < _TOUCH),
    ("10", lambda h: h.thumb_up and h.closed),
]

# ── Tier 3: named vocabulary ─────────────────────────────────────────────────


def _flat_tilted(h: HandFeatures) -> bool:
    return sum(h.horizontal_straight(f) for f in _FINGERS) >= 3


VOCABULARY: list[tuple[str, Predicate]] = [
    ("Good morning", lambda h: _flat_tilted(h) and h.raised),
    ("Hello", lambda h: h.flat_hand and h.thumb_out and h.raised),
    ("Please", lambda h: h.flat_hand and h.thumb_out and not h.raised),
    ("Thank you", _flat_tilted),
    ("Nice to meet you", lambda h: h.thumb_out
        and h.horizontal_straight(INDEX) and h.horizontal_straight(MIDDLE)),
    ("Water", lambda h: h.only(THUMB, INDEX, MIDDLE, RING)),
    ("No", lambda h: h.straight[INDEX] and h.tip_distance(THUMB, INDEX) < _TOUCH
        and h.tip_distance(THUMB, MIDDLE) < _TOUCH),
]

# ── Tier 4: language overlays ────────────────────────────────────────────────
# Labels here are already in the target language's lexicon.

LANGUAGE_OVERLAYS: dict[Language, list[tuple[str, Predicate]]] = {
    Language.KSL: [
        ("Jambo", lambda h: h.extended_count == 5 and h.raised),
        ("Sawa", lambda h: h.fingers_only(MIDDLE, RING, PINKY)
            and h.tip_distance(THUMB, INDEX) < _TOUCH - 0.05),
        ("Asante", _flat_tilted),
    ],
    Language.BSL: [
        ("Good", lambda h: h.thumb_up and h.closed),
        ("Bad", lambda h: h.fingers_only(PINKY) and not h.thumb_out
            and h.tip(PINKY)[1] < h.mcp(PINKY)[1]),
        ("Hiya", lambda h: h.extended_count == 5 and h.raised),
    ],
}

# ── Tier 5: fallback candidates ──────────────────────────────────────────────
# Profile = (extended-finger count, fingertip spread, aspect ratio).

FALLBACK_PROFILES: list[tuple[tuple[int, float, float], list[str]]] = [
    ((0, 0.10, 1.1), ["Yes", "Sorry", "Stop", "Work", "Coffee", "Again", "Bathroom"]),
    ((1, 0.20, 1.4), ["Where", "You", "Me", "Think", "Look", "Wait", "Who"]),
    ((2, 0.40, 1.5), ["See", "Walk", "Friend", "Read", "Need", "Understand"]),
    ((3, 0.40, 1.5), ["Water", "Family", "Now", "Later", "Mother", "Father"]),
    ((4, 0.30, 1.6), ["Thank you", "Please", "Fine", "Good", "Eat", "Drink"]),
    ((5, 0.45, 1.3), [
        "Hello", "Goodbye", "Good morning", "More", "Help", "Food",
        "How are you?", "Nice to meet you", "Learn", "Name", "Home", "School",
    ]),
]

_FALLBACK_TEMPERATURE = 4.0


# ── GestureClassifier ────────────────────────────────────────────────────────


class GestureClassifier:
    """Cascade classifier over a single frame's hand samples.

    Parameters
    ----------
    language:
        Active sign language.  Non-default languages enable tier 4.
    seed:
        Seed for the fallback tier's tie-breaking.  Ignored when *rng* is
        given.
    rng:
        Explicit ``numpy.random.Generator`` for the fallback tier.
    vocabulary:
        Lexicon used to localise labels for non-default languages.
    """

    def __init__(
        self,
        language: Language = Language.ASL,
        seed: int | None = None,
        rng: np.random.Generator | None = None,
        vocabulary: VocabularyMapper | None = None,
    ) -> None:
        self.language = language
        self.vocabulary = vocabulary or DEFAULT_VOCABULARY
        self._rng = rng if rng is not None else np.random.default_rng(seed)

    def reconfigure(self, language: Language) -> None:
        self.language = language

    def classify(self, hands: Sequence[HandSample]) -> DetectionResult | None:
        """Classify the first hand in *hands*.

        Returns ``None`` for an empty list or an incomplete sample; never
        raises for malformed input.
        """
        if not hands:
            return None
        first = hands[0]
        if len(first) < 21:
            return None

        points = first.as_array()
        if not np.all(np.isfinite(points)):
            return None
        features = HandFeatures.from_points(points)
        landmarks = list(hands)

        if self.language.is_default:
            hit = _match_core(features)
        else:
            hit = self._match_overlay(features)

        if hit is None:
            label, confidence = self._fallback(features)
            return DetectionResult(
                sign=self.vocabulary.localize(label, self.language),
                confidence=confidence,
                gesture_type=GestureType.STATIC,
                landmarks=landmarks,
                hand_shape=features.shape_code,
                tier=5,
            )

        label, confidence, gesture_type, shape, tier = hit
        return DetectionResult(
            sign=label,
            confidence=confidence,
            gesture_type=gesture_type,
            landmarks=landmarks,
            hand_shape=shape or features.shape_code,
            tier=tier,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _match_overlay(self, h: HandFeatures) -> _Match | None:
        for label, predicate in LANGUAGE_OVERLAYS.get(self.language, []):
            if predicate(h):
                return label, OVERLAY_CONFIDENCE, GestureType.STATIC, None, 4

        hit = _match_core(h)
        if hit is None:
            return None
        label, _, gesture_type, shape, _ = hit
        return self.vocabulary.localize(label, self.language), OVERLAY_CONFIDENCE, gesture_type, shape, 4

    def _fallback(self, h: HandFeatures) -> tuple[str, float]:
        observed = np.array([
            h.extended_count / 5,
            min(h.spread, 1.0),
            min(h.aspect_ratio / 2, 1.0),
        ])
        protos = np.array([
            (count / 5, spread, aspect / 2)
            for (count, spread, aspect), _ in FALLBACK_PROFILES
        ])
        dists = np.linalg.norm(protos - observed, axis=1)
        weights = np.exp(-_FALLBACK_TEMPERATURE * dists)
        weights /= weights.sum()

        idx = int(self._rng.choice(len(FALLBACK_PROFILES), p=weights))
        (count, _, _), labels = FALLBACK_PROFILES[idx]
        label = labels[int(self._rng.integers(len(labels)))]

        confidence = (
            FALLBACK_CONFIDENCE if count == h.extended_count else FALLBACK_WEAK_CONFIDENCE
        )
        return label, confidence


def _match_core(h: HandFeatures) -> _Match | None:
    """Tiers 1–3 for the default language."""
    for label, shape, predicate in CANONICAL_POSES:
        if predicate(h):
            return label, CANONICAL_CONFIDENCE, GestureType.STATIC, shape, 1

    for table in (ALPHABET, NUMERALS):
        for label, predicate in table:
            if predicate(h):
                return label, ALPHABET_CONFIDENCE, GestureType.STATIC, None, 2

    for label, predicate in VOCABULARY:
        if predicate(h):
            return label, VOCABULARY_CONFIDENCE, GestureType.DYNAMIC, None, 3

    return None
