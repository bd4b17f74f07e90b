"""llm_client.py – Blocking chat-completion client for sentence interpretation.

Backends:

1. **openai** – hosted chat model; needs ``OPENAI_API_KEY`` (the credential).
2. **llama.cpp** via ``llama-cpp-python`` – local ``.gguf`` quantised model.
3. **HuggingFace transformers** – local text-generation pipeline.

When the requested backend has no credential / model, or fails to load,
the client is left *unavailable* and every :meth:`complete` call raises
:class:`~signflow.errors.LanguageModelUnavailable`.  Callers
(:class:`~signflow.semantic_analyzer.SemanticAnalyzer`) treat that the same
as any other failure and use their local fallback.
"""

from __future__ import annotations

import logging
import os
from typing import Optional

from signflow.errors import LanguageModelUnavailable

logger = logging.getLogger(__name__)

BACKENDS = ("openai", "llama_cpp", "transformers", "none")

DEFAULT_OPENAI_MODEL = "gpt-4o-mini"


class LanguageModelClient:
    """Send a ``(system_prompt, user_prompt)`` pair to a language model.

    Parameters
    ----------
    backend:
        One of ``"openai"``, ``"llama_cpp"``, ``"transformers"`` or
        ``"none"``.
    model:
        - For ``openai``: model name (default ``gpt-4o-mini``).
        - For ``llama_cpp``: path to a ``.gguf`` quantised model.
        - For ``transformers``: HuggingFace model name or local directory.
    api_key:
        OpenAI credential; read from ``OPENAI_API_KEY`` when omitted.
    max_tokens:
        Response budget.  Sentence interpretations are short.
    temperature:
        Kept low so repeated buffers give similar interpretations.
    """

    def __init__(
        self,
        backend: str = "openai",
        model: Optional[str] = None,
        api_key: Optional[str] = None,
        max_tokens: int = 150,
        temperature: float = 0.3,
    ) -> None:
        if backend not in BACKENDS:
            raise ValueError(f"Unknown LLM backend {backend!r}; expected one of {BACKENDS}")

        self.max_tokens = max_tokens
        self.temperature = temperature
        self.model = model
        self._backend = "none"
        self._model = None

        if backend == "openai":
            self._try_init_openai(model, api_key or os.getenv("OPENAI_API_KEY"))
        elif backend == "llama_cpp":
            self._try_init_llama_cpp(model)
        elif backend == "transformers":
            self._try_init_transformers(model)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def backend(self) -> str:
        return self._backend

    @property
    def available(self) -> bool:
        return self._backend != "none"

    def complete(self, system_prompt: str, user_prompt: str) -> str:
        """Return the model's reply, stripped.

        Blocking; run it in a worker thread from async code.  Transport
        and model errors propagate unchanged.
        """
        if self._backend == "openai":
            return self._generate_openai(system_prompt, user_prompt)
        if self._backend == "llama_cpp":
            return self._generate_llama_cpp(system_prompt, user_prompt)
        if self._backend == "transformers":
            return self._generate_transformers(system_prompt, user_prompt)
        raise LanguageModelUnavailable("No language-model backend is loaded")

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _try_init_openai(self, model: Optional[str], api_key: Optional[str]) -> None:
        """Create an OpenAI client when a credential is configured."""
        if not api_key:
            return
        try:
            from openai import OpenAI

            self._model = OpenAI(api_key=api_key)
            self.model = model or DEFAULT_OPENAI_MODEL
            self._backend = "openai"
        except Exception as exc:
            logger.warning("OpenAI client could not be created (%s).", exc)
            self._model = None

    def _try_init_llama_cpp(self, model_path: Optional[str]) -> None:
        """Attempt to load a llama.cpp model."""
        if not model_path:
            return
        try:
            from llama_cpp import Llama  # type: ignore[import]

            self._model = Llama(model_path=model_path, n_ctx=512, verbose=False)
            self._backend = "llama_cpp"
        except Exception as exc:
            logger.warning("llama.cpp model could not be loaded from %r (%s).", model_path, exc)
            self._model = None

    def _try_init_transformers(self, model_path: Optional[str]) -> None:
        """Attempt to load a HuggingFace transformers model."""
        if not model_path:
            return
        try:
            from transformers import pipeline  # type: ignore[import]

            self._model = pipeline("text-generation", model=model_path)
            self._backend = "transformers"
        except Exception as exc:
            logger.warning(
                "transformers model could not be loaded from %r (%s).", model_path, exc
            )
            self._model = None

    def _generate_openai(self, system_prompt: str, user_prompt: str) -> str:
        response = self._model.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            max_tokens=self.max_tokens,
            temperature=self.temperature,
        )
        return (response.choices[0].message.content or "").strip()

    def _generate_llama_cpp(self, system_prompt: str, user_prompt: str) -> str:
        output = self._model.create_chat_completion(
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            max_tokens=self.max_tokens,
            temperature=self.temperature,
        )
        return (output["choices"][0]["message"]["content"] or "").strip()

    def _generate_transformers(self, system_prompt: str, user_prompt: str) -> str:
        prompt = f"{system_prompt}\n\n{user_prompt}\nInterpretation:"
        output = self._model(
            prompt,
            max_new_tokens=self.max_tokens,
            temperature=self.temperature,
            do_sample=self.temperature > 0,
        )
        return output[0]["generated_text"].replace(prompt, "").strip()
