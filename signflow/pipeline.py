"""
pipeline.py – Streaming control loop: frames → signs → sentences.

Pipeline (per frame)::

    frame source ──► hand tracker ──► GestureClassifier ──► on_result
                                             │
                                             └─(confidence gate)─► SentenceBuffer
                                                                       │
                                       (should_analyze) ◄──────────────┘
                                             │
                                             └─► SemanticAnalyzer task ──► on_result

Everything runs on one asyncio event loop.  Frames are processed one at a
time inside a single frame task, so the buffer and the lifecycle state are
never touched concurrently.  Sentence analysis is the only slow step and
runs as a separate task; its result arrives on the same ``on_result``
callback tagged ``GestureType.SENTENCE``.

Lifecycle::

    IDLE ──start()──► INITIALIZING ──tracker ready──► RUNNING
      ▲                                                  │
      └──────────────── STOPPING ◄──── stop() / source ended
                           │
    settings change ───────┴──► INITIALIZING ──► RUNNING   (fresh tracker)
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import replace
from enum import Enum
from typing import Callable, Optional, Protocol, Sequence

import numpy as np

from signflow.config import PipelineConfig, TrackerConfig
from signflow.detection import DetectionResult, GestureType
from signflow.errors import TrackerInitializationError
from signflow.gesture_classifier import GestureClassifier
from signflow.landmarks import HandSample
from signflow.llm_client import LanguageModelClient
from signflow.semantic_analyzer import SemanticAnalyzer
from signflow.sentence_buffer import SentenceBuffer
from signflow.settings import Language, Settings, SettingsController
from signflow.vocabulary import VocabularyMapper

logger = logging.getLogger(__name__)

ResultCallback = Callable[[DetectionResult], None]


class PipelineState(Enum):
    IDLE = "idle"
    INITIALIZING = "initializing"
    RUNNING = "running"
    STOPPING = "stopping"


class FrameSource(Protocol):
    @property
    def ready(self) -> bool: ...

    @property
    def ended(self) -> bool: ...

    def read(self) -> Optional[np.ndarray]: ...


class Tracker(Protocol):
    def process(self, frame: np.ndarray) -> Sequence[HandSample]: ...

    def close(self) -> None: ...


def _default_tracker_factory(config: TrackerConfig) -> Tracker:
    from signflow.hand_tracker import create_tracker

    return create_tracker(config)


def _monotonic_ms() -> float:
    return time.monotonic() * 1000.0


class SignPipeline:
    """One live recognition session at a time.

    Parameters
    ----------
    config:
        Loop configuration; ``config.settings`` seeds the settings
        controller.
    tracker_factory:
        Builds the hand tracker from a :class:`TrackerConfig`.  Called on
        every start and every reinitialisation.  Defaults to MediaPipe.
    analyzer:
        Sentence analyzer.  Defaults to one backed by ``config.llm``.
    classifier:
        Defaults to a :class:`GestureClassifier` seeded with
        ``config.seed``.
    clock:
        Millisecond clock used for the analysis trigger.
    vocabulary:
        Lexicon shared by the default classifier and analyzer.
    """

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        tracker_factory: Optional[Callable[[TrackerConfig], Tracker]] = None,
        analyzer: Optional[SemanticAnalyzer] = None,
        classifier: Optional[GestureClassifier] = None,
        clock: Optional[Callable[[], float]] = None,
        vocabulary: Optional[VocabularyMapper] = None,
    ) -> None:
        self.config = config or PipelineConfig()
        self.settings_controller = SettingsController(self.config.settings)
        self.settings_controller.subscribe(self._on_settings_changed)

        self.classifier = classifier or GestureClassifier(
            language=self.settings.language, seed=self.config.seed, vocabulary=vocabulary
        )
        self.classifier.reconfigure(self.settings.language)
        if analyzer is None:
            llm = self.config.llm
            analyzer = SemanticAnalyzer(
                LanguageModelClient(
                    backend=llm.backend,
                    model=llm.model,
                    api_key=llm.api_key,
                    max_tokens=llm.max_tokens,
                    temperature=llm.temperature,
                ),
                timeout=llm.timeout,
                vocabulary=vocabulary,
            )
        self.analyzer = analyzer
        self.buffer = SentenceBuffer(self.config.buffer_capacity)

        self._tracker_factory = tracker_factory or _default_tracker_factory
        self._clock = clock or _monotonic_ms

        self._state = PipelineState.IDLE
        self.state_history: list[PipelineState] = [PipelineState.IDLE]
        self.last_error: Optional[BaseException] = None

        self._tracker: Optional[Tracker] = None
        self._source: Optional[FrameSource] = None
        self._on_result: Optional[ResultCallback] = None
        self._frame_task: Optional[asyncio.Task] = None
        self._init_task: Optional[asyncio.Task] = None
        self._reinit_task: Optional[asyncio.Task] = None
        self._reinit_pending = False
        self._analysis_tasks: set[asyncio.Task] = set()
        self._last_analysis_ms: Optional[float] = None
        self._streak_label: Optional[str] = None
        self._streak = 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def settings(self) -> Settings:
        return self.settings_controller.settings

    async def start(self, frame_source: FrameSource, on_result: ResultCallback) -> None:
        """Build the tracker and begin processing frames.

        Returns once the pipeline is RUNNING.

        Raises
        ------
        TrackerInitializationError
            The tracker could not be built; the pipeline is back to IDLE.
        RuntimeError
            The pipeline is not IDLE.
        """
        if self._state is not PipelineState.IDLE:
            raise RuntimeError(f"Pipeline is already {self._state.value}")

        self._source = frame_source
        self._on_result = on_result
        self.last_error = None
        self._set_state(PipelineState.INITIALIZING)
        self._init_task = asyncio.get_running_loop().create_task(self._initialize())
        await self._init_task

    async def stop(self) -> None:
        """Cancel frame processing and outstanding analyses, release the
        tracker.  Idempotent."""
        current = asyncio.current_task()
        while True:
            # A finishing reinitialisation may schedule a follow-up one
            in_flight = [
                task for task in (self._init_task, self._reinit_task)
                if task is not None and not task.done() and task is not current
            ]
            if not in_flight:
                break
            await asyncio.gather(*in_flight, return_exceptions=True)

        if self._state in (PipelineState.IDLE, PipelineState.STOPPING):
            return

        self._set_state(PipelineState.STOPPING)
        await self._teardown(cancel_analysis=True)
        self._end_session()

    def update_settings(
        self,
        sensitivity: Optional[int] = None,
        language: Optional[Language | str] = None,
    ) -> Settings:
        """Store new settings; a RUNNING pipeline is rebuilt with them.

        Must be called from the event loop thread.
        """
        return self.settings_controller.update(sensitivity, language)

    async def wait_reinitialized(self) -> None:
        """Wait for any scheduled reinitialisation to finish."""
        while self._reinit_task is not None and not self._reinit_task.done():
            await asyncio.gather(self._reinit_task, return_exceptions=True)

    def clear_buffer(self) -> None:
        self.buffer.clear()
        self._last_analysis_ms = None

    # ------------------------------------------------------------------
    # Lifecycle internals
    # ------------------------------------------------------------------

    def _set_state(self, state: PipelineState) -> None:
        if state is self._state:
            return
        logger.debug("Pipeline %s → %s", self._state.value, state.value)
        self._state = state
        self.state_history.append(state)

    async def _build_tracker(self) -> Tracker:
        config = TrackerConfig.from_settings(self.settings, self.config.hand_model_path)
        try:
            return await asyncio.to_thread(self._tracker_factory, config)
        except TrackerInitializationError:
            raise
        except Exception as exc:
            raise TrackerInitializationError(f"Hand tracker failed to start: {exc}") from exc

    async def _initialize(self) -> None:
        try:
            self._tracker = await self._build_tracker()
        except TrackerInitializationError as exc:
            logger.error("Cannot start pipeline: %s", exc)
            self.last_error = exc
            self._end_session()
            raise
        except asyncio.CancelledError:
            self._end_session()
            raise
        self._run()

    async def _reinitialize(self) -> None:
        self._set_state(PipelineState.STOPPING)
        await self._teardown(cancel_analysis=False)
        self._set_state(PipelineState.INITIALIZING)
        try:
            self._tracker = await self._build_tracker()
        except TrackerInitializationError as exc:
            logger.error("Reinitialisation failed, pipeline stopped: %s", exc)
            self.last_error = exc
            await self._teardown(cancel_analysis=True)
            self._end_session()
            return
        self._run()

    def _run(self) -> None:
        self._set_state(PipelineState.RUNNING)
        self._frame_task = asyncio.get_running_loop().create_task(self._run_frames())
        if self._reinit_pending:
            self._reinit_pending = False
            self._schedule_reinitialize()

    def _schedule_reinitialize(self) -> None:
        self._reinit_task = asyncio.get_running_loop().create_task(self._reinitialize())

    def _on_settings_changed(self, old: Settings, new: Settings) -> None:
        self.classifier.reconfigure(new.language)
        if self._state is PipelineState.IDLE:
            return
        reinitializing = self._reinit_task is not None and not self._reinit_task.done()
        if self._state is PipelineState.RUNNING and not reinitializing:
            # Leave RUNNING now so a second change in the same tick is queued
            self._set_state(PipelineState.STOPPING)
            self._schedule_reinitialize()
        else:
            # Applied once the in-flight (re)initialisation reaches RUNNING
            self._reinit_pending = True

    async def _teardown(self, cancel_analysis: bool) -> None:
        current = asyncio.current_task()
        tasks = []
        if self._frame_task is not None and self._frame_task is not current:
            self._frame_task.cancel()
            tasks.append(self._frame_task)
        if cancel_analysis:
            for task in self._analysis_tasks:
                task.cancel()
                tasks.append(task)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._frame_task = None
        if cancel_analysis:
            self._analysis_tasks.clear()

        if self._tracker is not None:
            self._tracker.close()
            self._tracker = None
        self._reset_streak()

    def _end_session(self) -> None:
        self._reinit_pending = False
        self._source = None
        self._on_result = None
        self._set_state(PipelineState.IDLE)

    # ------------------------------------------------------------------
    # Frame loop
    # ------------------------------------------------------------------

    async def _run_frames(self) -> None:
        source = self._source
        while self._state is PipelineState.RUNNING:
            if source.ended:
                logger.info("Frame source ended; stopping pipeline")
                self._set_state(PipelineState.STOPPING)
                await self._teardown(cancel_analysis=True)
                self._end_session()
                return
            if source.ready:
                frame = source.read()
                if frame is not None:
                    self._process_frame(frame)
            await asyncio.sleep(self.config.frame_interval)

    def _process_frame(self, frame: np.ndarray) -> None:
        try:
            hands = self._tracker.process(frame)
        except Exception:
            logger.exception("Hand tracker failed on a frame; skipping it")
            return

        result = self.classifier.classify(hands)
        if result is None:
            self._reset_streak()
            return

        self._emit(result)

        if result.confidence <= self.config.confidence_gate:
            self._reset_streak()
            return

        if self._advance_streak(result.sign):
            self._emit(replace(result, gesture_type=GestureType.VALIDATED))

        self.buffer.push(result.sign)
        now = self._clock()
        if self.buffer.should_analyze(now, self._last_analysis_ms, self.config.analysis_interval_ms):
            self._last_analysis_ms = now
            self._spawn_analysis(self.buffer.labels, self.settings.language)

    def _advance_streak(self, label: str) -> bool:
        """Count consecutive gated frames; True exactly when the streak
        reaches ``validation_frames``."""
        if label == self._streak_label:
            self._streak += 1
        else:
            self._streak_label = label
            self._streak = 1
        return self._streak == self.config.validation_frames

    def _reset_streak(self) -> None:
        self._streak_label = None
        self._streak = 0

    # ------------------------------------------------------------------
    # Sentence analysis and delivery
    # ------------------------------------------------------------------

    def _spawn_analysis(self, labels: list[str], language: Language) -> None:
        task = asyncio.get_running_loop().create_task(self._analyze(labels, language))
        self._analysis_tasks.add(task)
        task.add_done_callback(self._analysis_tasks.discard)

    async def _analyze(self, labels: list[str], language: Language) -> None:
        try:
            result = await self.analyzer.analyze(labels, language)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Sentence analysis raised; dropping this interpretation")
            return
        if result is not None:
            logger.debug("Sentence for %s: %s", labels, result.sign)
            self._emit(result)

    def _emit(self, result: DetectionResult) -> None:
        callback = self._on_result
        if callback is None:
            return
        try:
            callback(result)
        except Exception:
            logger.exception("Result consumer raised; continuing")
