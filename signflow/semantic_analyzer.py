"""
semantic_analyzer.py – Buffered sign labels → sentence interpretation.

The primary path asks a language model (see :mod:`signflow.llm_client`) to
turn the buffered labels into a sentence.  The call runs in a worker
thread under a timeout so the frame loop is never blocked.  Any failure
(no credential, transport error, timeout, empty reply) falls back to a
small set of local pattern heuristics for that call only; the next
analysis tries the model again.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Protocol, Sequence

from signflow.detection import DetectionResult, GestureType
from signflow.settings import Language
from signflow.vocabulary import DEFAULT_VOCABULARY, VocabularyMapper

logger = logging.getLogger(__name__)

MODEL_CONFIDENCE = 0.9
LOCAL_CONFIDENCE = 0.6
GENERIC_MIN_LABELS = 3

SYSTEM_PROMPT = (
    "You are an expert {language} interpreter. "
    "You receive sign labels recognised from a live camera, oldest first. "
    "Some labels may be misrecognised or repeated. "
    "Reply with the most likely intended English sentence, then one short line "
    "about grammar or sign ordering. Be brief."
)

USER_PROMPT = "Signs: {signs}\nLanguage: {code}"


class CompletionClient(Protocol):
    def complete(self, system_prompt: str, user_prompt: str) -> str: ...


# ── Local pattern analysis ───────────────────────────────────────────────────

_NEEDS = {
    "help": "Request for help: \"I need help.\"",
    "water": "Request: \"I would like some water.\"",
    "drink": "Request: \"I would like a drink.\"",
    "food": "Request: \"I am hungry, I would like some food.\"",
    "eat": "Request: \"I would like to eat.\"",
    "more": "Request: \"More, please.\"",
    "bathroom": "Request: \"Where is the bathroom?\"",
}


def _contains_in_order(labels: list[str], words: Sequence[str]) -> bool:
    it = iter(labels)
    return all(any(label == word for label in it) for word in words)


def local_analysis(
    labels: Sequence[str],
    language: Language = Language.ASL,
    vocabulary: VocabularyMapper = DEFAULT_VOCABULARY,
) -> str | None:
    """Canned interpretations for recognisable label combinations.

    Returns ``None`` when nothing is recognised and fewer than three signs
    are buffered.
    """
    canonical = [vocabulary.canonicalize(label, language).lower() for label in labels]
    present = set(canonical)

    if {"hello", "how are you?"} <= present:
        return "Greeting: \"Hello, how are you?\""
    if "nice to meet you" in present:
        return "Introduction: \"Hello, nice to meet you.\""
    if "i love you" in present or _contains_in_order(canonical, ("i", "love", "you")):
        return "Expression of affection: \"I love you.\""
    if "good morning" in present:
        return "Greeting: \"Good morning!\""
    if "thank you" in present:
        if "please" in present:
            return "Polite exchange: \"Please… thank you.\""
        return "Gratitude: \"Thank you.\""
    if "sorry" in present:
        return "Apology: \"I'm sorry.\""
    for need, text in _NEEDS.items():
        if need in present:
            return text
    if "yes" in present or "no" in present:
        return "Answer: \"{}.\"".format("Yes" if "yes" in present else "No")

    if len(labels) >= GENERIC_MIN_LABELS:
        return (
            f"{len(labels)} signs detected: {' '.join(labels)}. "
            "Check the sign ordering for a complete sentence."
        )
    return None


# ── SemanticAnalyzer ─────────────────────────────────────────────────────────


class SemanticAnalyzer:
    """Sentence interpretation with a local fallback.

    Parameters
    ----------
    client:
        Anything with a blocking ``complete(system_prompt, user_prompt)``
        method (normally a :class:`~signflow.llm_client.LanguageModelClient`).
        ``None`` or a client whose ``available`` flag is false disables the
        primary path.
    timeout:
        Seconds to wait for the model before falling back.
    vocabulary:
        Lexicon used to map localised labels back to canonical ones for
        the local patterns.
    """

    def __init__(
        self,
        client: Optional[CompletionClient] = None,
        timeout: float = 10.0,
        vocabulary: VocabularyMapper | None = None,
    ) -> None:
        self.timeout = timeout
        self.vocabulary = vocabulary or DEFAULT_VOCABULARY
        self._client = client
        if not self.model_available:
            logger.warning(
                "No semantic-analysis backend configured; sentence "
                "interpretations will use local pattern analysis."
            )

    @property
    def model_available(self) -> bool:
        return self._client is not None and getattr(self._client, "available", True)

    async def analyze(
        self, labels: Sequence[str], language: Language = Language.ASL
    ) -> DetectionResult | None:
        """Interpret *labels*; ``None`` when neither path produces text.

        Never raises except for task cancellation.
        """
        labels = list(labels)
        if not labels:
            return None

        if self.model_available:
            text = await self._analyze_with_model(labels, language)
            if text:
                return self._result(text, MODEL_CONFIDENCE)

        return self.analyze_local(labels, language)

    def analyze_local(
        self, labels: Sequence[str], language: Language = Language.ASL
    ) -> DetectionResult | None:
        text = local_analysis(labels, language, self.vocabulary)
        if text is None:
            return None
        return self._result(text, LOCAL_CONFIDENCE)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _analyze_with_model(self, labels: list[str], language: Language) -> str | None:
        system_prompt = SYSTEM_PROMPT.format(language=language.display_name)
        user_prompt = USER_PROMPT.format(signs=" | ".join(labels), code=language.value)
        try:
            reply = await asyncio.wait_for(
                asyncio.to_thread(self._client.complete, system_prompt, user_prompt),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Semantic analysis timed out after %.1fs; using local analysis.", self.timeout)
            return None
        except Exception as exc:
            logger.warning(
                "Semantic analysis failed (%s: %s); using local analysis.",
                type(exc).__name__, exc,
            )
            return None

        reply = (reply or "").strip()
        if not reply:
            logger.warning("Semantic analysis returned an empty reply; using local analysis.")
            return None
        return reply

    @staticmethod
    def _result(text: str, confidence: float) -> DetectionResult:
        return DetectionResult(
            sign=text,
            confidence=confidence,
            gesture_type=GestureType.SENTENCE,
        )
