"""
config.py – Pipeline and language-model configuration.

Defaults match the interactive app: a 0.6 confidence gate before a label
counts towards a sentence, a sentence interpretation at most every three
seconds, and a ten-label buffer.  ``from_env`` overlays environment
variables so deployments can switch model backends without code changes.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from signflow.settings import Settings

DEFAULT_HAND_MODEL = Path("models") / "hand_landmarker.task"


@dataclass
class TrackerConfig:
    """Construction-time options for the hand-tracking collaborator.

    Thresholds are fixed for the tracker's lifetime; a settings change
    builds a new tracker with a new config.
    """
    max_hands: int = 2
    detection_threshold: float = 0.7
    tracking_threshold: float = 0.7
    model_path: Path = DEFAULT_HAND_MODEL

    @classmethod
    def from_settings(cls, settings: Settings, model_path: Optional[Path] = None) -> TrackerConfig:
        return cls(
            detection_threshold=settings.detection_threshold,
            tracking_threshold=settings.tracking_threshold,
            model_path=Path(model_path) if model_path else DEFAULT_HAND_MODEL,
        )


@dataclass
class LLMConfig:
    """Semantic-analysis backend selection."""
    backend: str = "openai"            # "openai", "llama_cpp", "transformers", "none"
    model: Optional[str] = None        # model name, .gguf path or HF model id
    api_key: Optional[str] = None
    max_tokens: int = 150
    temperature: float = 0.3
    timeout: float = 10.0              # seconds before falling back to local analysis

    @classmethod
    def from_env(cls) -> LLMConfig:
        backend = os.getenv("SIGNFLOW_LLM_BACKEND")
        gguf_path = os.getenv("LLAMA_GGUF_PATH")
        if backend is None:
            backend = "llama_cpp" if gguf_path else "openai"
        model = os.getenv("SIGNFLOW_LLM_MODEL") or (gguf_path if backend == "llama_cpp" else None)
        return cls(
            backend=backend,
            model=model,
            api_key=os.getenv("OPENAI_API_KEY"),
        )


@dataclass
class PipelineConfig:
    """Streaming-loop configuration."""
    # Per-frame labels above this confidence are pushed into the sentence buffer
    confidence_gate: float = 0.6
    analysis_interval_ms: float = 3000.0
    buffer_capacity: int = 10
    # Consecutive gated frames with the same label before it is re-emitted as VALIDATED
    validation_frames: int = 3
    # Pause between frames; 0 still yields to the event loop
    frame_interval: float = 0.0
    # Seed for the classifier's fallback tier (None = nondeterministic)
    seed: Optional[int] = None
    hand_model_path: Path = DEFAULT_HAND_MODEL
    settings: Settings = field(default_factory=Settings)
    llm: LLMConfig = field(default_factory=LLMConfig)

    @classmethod
    def from_env(cls) -> PipelineConfig:
        config = cls(llm=LLMConfig.from_env())
        hand_model = os.getenv("SIGNFLOW_HAND_MODEL")
        if hand_model:
            config.hand_model_path = Path(hand_model)
        return config
