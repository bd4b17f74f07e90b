"""
signflow package – real-time sign recognition and sentence construction.

Exposes the main pipeline components:
    GestureClassifier  – rule-based landmark → sign label classifier
    SentenceBuffer     – bounded history of confident labels
    SemanticAnalyzer   – language-model sentence interpretation with local fallback
    SignPipeline       – asyncio streaming loop tying them together
    VocabularyMapper   – canonical label ↔ language lexicon

The MediaPipe tracker and the OpenCV frame source live in
``signflow.hand_tracker`` and ``signflow.frame_source``.
"""

from .detection import DetectionResult, GestureType
from .gesture_classifier import GestureClassifier
from .landmarks import HandSample, Landmark
from .pipeline import PipelineState, SignPipeline
from .semantic_analyzer import SemanticAnalyzer
from .sentence_buffer import SentenceBuffer
from .settings import Language, Settings, SettingsController
from .vocabulary import VocabularyMapper

__all__ = [
    "DetectionResult",
    "GestureType",
    "GestureClassifier",
    "HandSample",
    "Landmark",
    "PipelineState",
    "SignPipeline",
    "SemanticAnalyzer",
    "SentenceBuffer",
    "Language",
    "Settings",
    "SettingsController",
    "VocabularyMapper",
]
