#!/usr/bin/env python3
"""
main.py – SignFlow live demo.

Pipeline:
  Webcam  ──►  MediaPipe HandLandmarker  ──►  GestureClassifier  ──►  stdout / overlay
                                                     │
                                                     └──►  SentenceBuffer  ──►  SemanticAnalyzer  ──►  stdout

Usage
-----
    python main.py                          # default webcam, ASL, OpenAI if OPENAI_API_KEY is set
    python main.py --language KSL           # Kenyan Sign Language vocabulary
    python main.py --sensitivity 5          # looser hand detection
    python main.py --llm-backend llama_cpp --llm-model models/phi-3.gguf
    python main.py --llm-backend none       # local sentence heuristics only
    python main.py --no-display             # headless (e.g. SSH / CI)
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

import cv2

from signflow.config import LLMConfig, PipelineConfig
from signflow.detection import DetectionResult, GestureType
from signflow.errors import FrameSourceError, TrackerInitializationError
from signflow.frame_source import CameraFrameSource
from signflow.hand_tracker import draw_hands, ensure_model
from signflow.llm_client import BACKENDS
from signflow.pipeline import PipelineState, SignPipeline
from signflow.settings import Language, Settings

logger = logging.getLogger("signflow")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="SignFlow – real-time sign recognition")
    p.add_argument("--camera", type=int, default=0, help="Camera device index")
    p.add_argument("--video", type=str, default=None, help="Read frames from a video file instead")
    p.add_argument("--sensitivity", type=int, default=7, help="Detection sensitivity 1–10 (default 7)")
    p.add_argument(
        "--language",
        type=str,
        default="ASL",
        choices=[lang.value for lang in Language],
        help="Sign language vocabulary (default ASL)",
    )
    p.add_argument(
        "--gate",
        type=float,
        default=0.6,
        help="Minimum confidence before a sign counts towards a sentence",
    )
    p.add_argument(
        "--llm-backend",
        type=str,
        default=None,
        choices=BACKENDS,
        help="Sentence-interpretation backend (default from SIGNFLOW_LLM_BACKEND or openai)",
    )
    p.add_argument("--llm-model", type=str, default=None, help="Model name / .gguf path / HF id")
    p.add_argument("--seed", type=int, default=None, help="Seed for the fallback classifier tier")
    p.add_argument(
        "--no-display",
        action="store_true",
        help="Headless mode – skip OpenCV window",
    )
    p.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )
    return p.parse_args(argv)


def build_config(args: argparse.Namespace) -> PipelineConfig:
    config = PipelineConfig.from_env()
    config.settings = Settings(sensitivity=args.sensitivity, language=Language.parse(args.language))
    config.confidence_gate = args.gate
    config.seed = args.seed
    # ~30 fps; also gives the window loop time to run
    config.frame_interval = 1 / 30

    llm = LLMConfig.from_env()
    if args.llm_backend:
        llm.backend = args.llm_backend
    if args.llm_model:
        llm.model = args.llm_model
    config.llm = llm
    return config


# ── Overlay ──────────────────────────────────────────────────────────────────


class _Overlay:
    """Keeps the latest per-frame sign and sentence for the preview window."""

    def __init__(self) -> None:
        self.sign: DetectionResult | None = None
        self.sentence: str | None = None

    def on_result(self, result: DetectionResult) -> None:
        if result.gesture_type is GestureType.SENTENCE:
            self.sentence = result.sign
            print(f"  >> SENTENCE: {result.sign}")
        elif result.gesture_type is GestureType.VALIDATED:
            print(f"  >> SIGN: {result.sign} ({result.confidence:.2f})")
        else:
            self.sign = result

    def draw(self, frame, pipeline: SignPipeline) -> None:
        w = frame.shape[1]
        font = cv2.FONT_HERSHEY_SIMPLEX
        scale = 0.48
        color_text = (220, 220, 220)  # soft white (BGR)
        color_bar = (32, 32, 32)      # dark bar

        bar_h = 56
        roi = frame[0:bar_h, 0:w].copy()
        cv2.rectangle(roi, (0, 0), (w, bar_h), color_bar, -1)
        frame[0:bar_h, 0:w] = cv2.addWeighted(roi, 0.5, frame[0:bar_h, 0:w], 0.5, 0)

        settings = pipeline.settings
        lines = [
            f"{settings.language.value}  ·  Sensitivity {settings.sensitivity}  ·  "
            f"Buffer {len(pipeline.buffer)}/{pipeline.buffer.capacity}",
        ]
        if self.sign is not None:
            lines.append(f"Sign: {self.sign.sign} ({self.sign.confidence:.2f}, tier {self.sign.tier})")
        if self.sentence:
            lines.append(self.sentence[:80])

        for i, line in enumerate(lines):
            cv2.putText(frame, line, (14, 22 + i * 20), font, scale, color_text, 1, cv2.LINE_AA)


class _PreviewSource:
    """Wraps the camera so every frame read by the pipeline is also shown."""

    def __init__(self, source: CameraFrameSource) -> None:
        self._source = source
        self.frame = None

    @property
    def ready(self) -> bool:
        return self._source.ready

    @property
    def ended(self) -> bool:
        return self._source.ended

    def read(self):
        self.frame = self._source.read()
        return None if self.frame is None else self.frame.copy()


# ── Main loop ────────────────────────────────────────────────────────────────


async def run(args: argparse.Namespace) -> int:
    config = build_config(args)
    config.hand_model_path = ensure_model(config.hand_model_path.parent)

    device = args.video if args.video else args.camera
    try:
        camera = CameraFrameSource(device, mirror=args.video is None)
    except FrameSourceError as exc:
        logger.error("%s", exc)
        return 1

    overlay = _Overlay()
    source = _PreviewSource(camera)
    pipeline = SignPipeline(config)
    print(f"[SignFlow] Language   : {pipeline.settings.language.display_name}")
    print(f"[SignFlow] Sentences  : {'model' if pipeline.analyzer.model_available else 'local heuristics'}")
    print("[SignFlow] Press 'q' to quit, 'c' to clear the sentence buffer.\n")

    try:
        await pipeline.start(source, overlay.on_result)
    except TrackerInitializationError as exc:
        logger.error("%s", exc)
        camera.release()
        return 1

    try:
        while pipeline.state is not PipelineState.IDLE:
            await asyncio.sleep(1 / 60)
            if args.no_display or source.frame is None:
                continue

            frame = source.frame.copy()
            if overlay.sign is not None and overlay.sign.landmarks:
                draw_hands(frame, overlay.sign.landmarks)
            overlay.draw(frame, pipeline)
            cv2.imshow("SignFlow", frame)
            key = cv2.waitKey(1) & 0xFF
            if key == ord("q") or key == 27:  # Q or Escape
                break
            if key == ord("c"):
                pipeline.clear_buffer()
                overlay.sentence = None
    finally:
        await pipeline.stop()
        camera.release()
        if not args.no_display:
            cv2.destroyAllWindows()
    return 0


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        code = asyncio.run(run(args))
    except KeyboardInterrupt:
        print("\n[SignFlow] Interrupted.")
        code = 0
    print("[SignFlow] Done.")
    sys.exit(code)


if __name__ == "__main__":
    main()
