"""
tests/test_pipeline.py – Lifecycle, per-frame delivery and sentence
analysis of the streaming pipeline.

The hand tracker and the camera are replaced with in-memory fakes so the
tests run without MediaPipe models or a webcam.
"""

from __future__ import annotations

import asyncio
import itertools

import numpy as np
import pytest

from conftest import ALL_FINGERS, build_hand
from signflow.config import PipelineConfig, TrackerConfig
from signflow.detection import DetectionResult, GestureType
from signflow.errors import TrackerInitializationError
from signflow.landmarks import INDEX, MIDDLE
from signflow.pipeline import PipelineState, SignPipeline
from signflow.semantic_analyzer import SemanticAnalyzer
from signflow.settings import Language
from signflow.vocabulary import VocabularyMapper

IDLE = PipelineState.IDLE
INITIALIZING = PipelineState.INITIALIZING
RUNNING = PipelineState.RUNNING
STOPPING = PipelineState.STOPPING

FRAME = np.zeros((4, 4, 3), dtype=np.uint8)


class FakeSource:
    """Endless (or *limit*-frame) source of blank frames."""

    def __init__(self, limit: int | None = None) -> None:
        self.limit = limit
        self.reads = 0
        self.ready = True

    @property
    def ended(self) -> bool:
        return self.limit is not None and self.reads >= self.limit

    def read(self):
        self.reads += 1
        return FRAME


class FakeTracker:
    def __init__(self, config: TrackerConfig, poses) -> None:
        self.config = config
        self._poses = itertools.cycle(poses)
        self.closed = False
        self.frames = 0

    def process(self, frame):
        if self.closed:
            raise RuntimeError("tracker used after close")
        self.frames += 1
        return next(self._poses)

    def close(self) -> None:
        self.closed = True


class TrackerFactory:
    def __init__(self, *poses, error: Exception | None = None) -> None:
        self.poses = poses or ([build_hand(ALL_FINGERS, thumb=True)],)
        self.error = error
        self.trackers: list[FakeTracker] = []

    def __call__(self, config: TrackerConfig) -> FakeTracker:
        if self.error is not None:
            raise self.error
        tracker = FakeTracker(config, self.poses)
        self.trackers.append(tracker)
        return tracker


class RecordingAnalyzer:
    def __init__(self, hang: bool = False) -> None:
        self.hang = hang
        self.calls: list[tuple[list[str], Language]] = []
        self.cancelled = False

    async def analyze(self, labels, language):
        self.calls.append((list(labels), language))
        if self.hang:
            try:
                await asyncio.Event().wait()
            except asyncio.CancelledError:
                self.cancelled = True
                raise
        return DetectionResult(" ".join(labels), 0.9, GestureType.SENTENCE)


class StepClock:
    def __init__(self, step: float = 1000.0) -> None:
        self.now = 0.0
        self.step = step

    def __call__(self) -> float:
        self.now += self.step
        return self.now


def make_pipeline(factory=None, analyzer=None, **config_kwargs) -> SignPipeline:
    config = PipelineConfig(seed=0, **config_kwargs)
    return SignPipeline(
        config,
        tracker_factory=factory or TrackerFactory(),
        analyzer=analyzer or RecordingAnalyzer(),
        clock=StepClock(),
    )


async def spin(n: int = 50) -> None:
    for _ in range(n):
        await asyncio.sleep(0)


# ── Lifecycle ────────────────────────────────────────────────────────────────


def test_start_and_stop() -> None:
    factory = TrackerFactory()
    pipeline = make_pipeline(factory)
    results: list[DetectionResult] = []

    async def scenario():
        await pipeline.start(FakeSource(), results.append)
        assert pipeline.state is RUNNING
        await spin()
        await pipeline.stop()

    asyncio.run(scenario())
    assert pipeline.state is IDLE
    assert pipeline.state_history == [IDLE, INITIALIZING, RUNNING, STOPPING, IDLE]
    assert factory.trackers[0].closed
    assert results and results[0].sign == "Open Hand"


def test_stop_is_idempotent() -> None:
    pipeline = make_pipeline()

    async def scenario():
        await pipeline.stop()
        await pipeline.start(FakeSource(), lambda r: None)
        await pipeline.stop()
        await pipeline.stop()

    asyncio.run(scenario())
    assert pipeline.state is IDLE
    assert pipeline.state_history.count(STOPPING) == 1


def test_start_twice_is_rejected() -> None:
    pipeline = make_pipeline()

    async def scenario():
        await pipeline.start(FakeSource(), lambda r: None)
        try:
            with pytest.raises(RuntimeError):
                await pipeline.start(FakeSource(), lambda r: None)
        finally:
            await pipeline.stop()

    asyncio.run(scenario())


@pytest.mark.parametrize(
    "error",
    [TrackerInitializationError("no model"), OSError("camera busy")],
)
def test_tracker_failure_is_fatal_to_start(error) -> None:
    pipeline = make_pipeline(TrackerFactory(error=error))

    async def scenario():
        with pytest.raises(TrackerInitializationError):
            await pipeline.start(FakeSource(), lambda r: None)

    asyncio.run(scenario())
    assert pipeline.state is IDLE
    assert pipeline.state_history == [IDLE, INITIALIZING, IDLE]
    assert isinstance(pipeline.last_error, TrackerInitializationError)


def test_ended_source_stops_the_pipeline() -> None:
    factory = TrackerFactory()
    pipeline = make_pipeline(factory)
    results: list[DetectionResult] = []

    async def scenario():
        await pipeline.start(FakeSource(limit=3), results.append)
        await spin()

    asyncio.run(scenario())
    assert pipeline.state is IDLE
    assert factory.trackers[0].closed
    assert factory.trackers[0].frames == 3
    assert pipeline.state_history[-2:] == [STOPPING, IDLE]


def test_paused_source_is_skipped() -> None:
    factory = TrackerFactory()
    pipeline = make_pipeline(factory)
    source = FakeSource()
    source.ready = False

    async def scenario():
        await pipeline.start(source, lambda r: None)
        await spin()
        await pipeline.stop()

    asyncio.run(scenario())
    assert source.reads == 0
    assert factory.trackers[0].frames == 0


# ── Settings changes ─────────────────────────────────────────────────────────


def test_settings_change_rebuilds_tracker() -> None:
    factory = TrackerFactory()
    pipeline = make_pipeline(factory)

    async def scenario():
        await pipeline.start(FakeSource(), lambda r: None)
        await spin()
        pipeline.update_settings(sensitivity=4, language="KSL")
        await pipeline.wait_reinitialized()
        assert pipeline.state is RUNNING
        await spin()
        await pipeline.stop()

    asyncio.run(scenario())

    first, second = factory.trackers
    assert first.closed and second.closed
    assert first.config.detection_threshold == pytest.approx(0.7)
    assert second.config.detection_threshold == pytest.approx(0.4)
    assert second.config.tracking_threshold == pytest.approx(0.4)
    assert pipeline.classifier.language is Language.KSL

    history = pipeline.state_history
    assert history[:3] == [IDLE, INITIALIZING, RUNNING]
    assert history[3:6] == [STOPPING, INITIALIZING, RUNNING]


def test_back_to_back_settings_changes_release_every_tracker() -> None:
    factory = TrackerFactory()
    pipeline = make_pipeline(factory)

    async def scenario():
        await pipeline.start(FakeSource(), lambda r: None)
        await spin()
        pipeline.update_settings(sensitivity=3)
        pipeline.update_settings(sensitivity=4)
        await pipeline.wait_reinitialized()
        assert pipeline.state is RUNNING
        await spin()
        await pipeline.stop()

    asyncio.run(scenario())

    assert len(factory.trackers) == 3
    assert all(tracker.closed for tracker in factory.trackers)
    assert factory.trackers[-1].config.detection_threshold == pytest.approx(0.4)
    assert pipeline.state_history == [
        IDLE, INITIALIZING, RUNNING,
        STOPPING, INITIALIZING, RUNNING,
        STOPPING, INITIALIZING, RUNNING,
        STOPPING, IDLE,
    ]


def test_stop_waits_for_queued_reinitialisation() -> None:
    factory = TrackerFactory()
    pipeline = make_pipeline(factory)

    async def scenario():
        await pipeline.start(FakeSource(), lambda r: None)
        pipeline.update_settings(sensitivity=3)
        pipeline.update_settings(language="BSL")
        await pipeline.stop()

    asyncio.run(scenario())
    assert pipeline.state is IDLE
    assert all(tracker.closed for tracker in factory.trackers)
    assert pipeline.classifier.language is Language.BSL


def test_settings_change_while_idle_only_stores() -> None:
    factory = TrackerFactory()
    pipeline = make_pipeline(factory)
    pipeline.update_settings(sensitivity=2)
    assert pipeline.settings.sensitivity == 2
    assert factory.trackers == []
    assert pipeline.state_history == [IDLE]


def test_failed_reinitialisation_returns_to_idle() -> None:
    factory = TrackerFactory()
    pipeline = make_pipeline(factory)

    async def scenario():
        await pipeline.start(FakeSource(), lambda r: None)
        factory.error = OSError("device lost")
        pipeline.update_settings(sensitivity=9)
        await pipeline.wait_reinitialized()

    asyncio.run(scenario())
    assert pipeline.state is IDLE
    assert isinstance(pipeline.last_error, TrackerInitializationError)
    assert factory.trackers[0].closed


# ── Results ──────────────────────────────────────────────────────────────────


def test_validated_emitted_once_per_streak() -> None:
    pipeline = make_pipeline(validation_frames=3)
    results: list[DetectionResult] = []

    async def scenario():
        await pipeline.start(FakeSource(limit=8), results.append)
        await spin()

    asyncio.run(scenario())
    validated = [r for r in results if r.gesture_type is GestureType.VALIDATED]
    assert len(validated) == 1
    assert validated[0].sign == "Open Hand"
    per_frame = [r for r in results if r.gesture_type is GestureType.STATIC]
    assert len(per_frame) == 8


def test_low_confidence_labels_are_not_buffered() -> None:
    pipeline = make_pipeline(confidence_gate=0.9)
    results: list[DetectionResult] = []

    async def scenario():
        await pipeline.start(FakeSource(limit=5), results.append)
        await spin()

    asyncio.run(scenario())
    assert len(results) == 5
    assert len(pipeline.buffer) == 0


def test_sentence_analysis_is_delivered() -> None:
    factory = TrackerFactory(
        [build_hand(ALL_FINGERS, thumb=True)],
        [build_hand()],
    )
    analyzer = RecordingAnalyzer()
    pipeline = make_pipeline(factory, analyzer)
    results: list[DetectionResult] = []

    async def scenario():
        await pipeline.start(FakeSource(limit=3), results.append)
        await spin()

    asyncio.run(scenario())
    assert analyzer.calls == [(["Open Hand", "Fist"], Language.ASL)]
    sentences = [r for r in results if r.gesture_type is GestureType.SENTENCE]
    assert [s.sign for s in sentences] == ["Open Hand Fist"]


def test_analysis_respects_min_interval() -> None:
    factory = TrackerFactory(
        [build_hand(ALL_FINGERS, thumb=True)],
        [build_hand()],
    )
    analyzer = RecordingAnalyzer()
    # StepClock advances 1 s per gated frame
    pipeline = make_pipeline(factory, analyzer, analysis_interval_ms=3000.0)

    async def scenario():
        await pipeline.start(FakeSource(limit=6), lambda r: None)
        await spin()

    asyncio.run(scenario())
    # Frames 2 (first due) and 5 (3 s later)
    assert len(analyzer.calls) == 2


def test_slow_analysis_does_not_block_frames_and_is_cancelled() -> None:
    factory = TrackerFactory(
        [build_hand(ALL_FINGERS, thumb=True)],
        [build_hand()],
    )
    analyzer = RecordingAnalyzer(hang=True)
    pipeline = make_pipeline(factory, analyzer)

    async def scenario():
        await pipeline.start(FakeSource(), lambda r: None)
        await spin()
        assert factory.trackers[0].frames > 10
        await pipeline.stop()

    asyncio.run(scenario())
    assert analyzer.calls
    assert analyzer.cancelled


def test_consumer_errors_do_not_stop_the_loop(caplog) -> None:
    factory = TrackerFactory()
    pipeline = make_pipeline(factory)

    def broken(result):
        raise ValueError("display closed")

    async def scenario():
        await pipeline.start(FakeSource(limit=4), broken)
        await spin()

    with caplog.at_level("ERROR"):
        asyncio.run(scenario())
    assert factory.trackers[0].frames == 4
    assert "Result consumer raised" in caplog.text


def test_clear_buffer() -> None:
    pipeline = make_pipeline()

    async def scenario():
        await pipeline.start(FakeSource(limit=3), lambda r: None)
        await spin()

    asyncio.run(scenario())
    assert pipeline.buffer.labels == ["Open Hand"]
    pipeline.clear_buffer()
    assert pipeline.buffer.labels == []


def test_local_analysis_end_to_end() -> None:
    factory = TrackerFactory(
        [build_hand(ALL_FINGERS, thumb=True)],
        [build_hand()],
        [build_hand((INDEX,))],
    )
    pipeline = make_pipeline(factory, SemanticAnalyzer(None))
    results: list[DetectionResult] = []

    async def scenario():
        await pipeline.start(FakeSource(), results.append)
        await spin()
        await pipeline.stop()

    asyncio.run(scenario())
    sentences = [r.sign for r in results if r.gesture_type is GestureType.SENTENCE]
    assert sentences
    assert sentences[0].startswith("5 signs detected: Open Hand Fist Point Open Hand Fist")


def test_vocabulary_is_shared_with_the_classifier() -> None:
    mapper = VocabularyMapper({Language.KSL: {"Peace": "Amani"}})
    pipeline = SignPipeline(
        PipelineConfig(seed=0),
        tracker_factory=TrackerFactory([build_hand((INDEX, MIDDLE))]),
        analyzer=RecordingAnalyzer(),
        clock=StepClock(),
        vocabulary=mapper,
    )
    pipeline.update_settings(language="KSL")
    results: list[DetectionResult] = []

    async def scenario():
        await pipeline.start(FakeSource(limit=1), results.append)
        await spin()

    asyncio.run(scenario())
    assert pipeline.classifier.vocabulary is mapper
    assert results[0].sign == "Amani"
