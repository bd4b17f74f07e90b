"""
settings.py – Detection sensitivity / sign-language settings.

The tracker bakes its thresholds in at construction time, so a settings
change never mutates a running tracker: listeners are notified and the
pipeline rebuilds the tracker (see :meth:`SignPipeline._reinitialize`).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable

logger = logging.getLogger(__name__)

MIN_SENSITIVITY = 1
MAX_SENSITIVITY = 10


class Language(Enum):
    ASL = "ASL"
    KSL = "KSL"
    BSL = "BSL"

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]

    @property
    def is_default(self) -> bool:
        return self is Language.ASL

    @classmethod
    def parse(cls, value: str | Language) -> Language:
        """Accept a code (``"ksl"``) or a long name
        (``"Kenyan Sign Language (KSL)"``)."""
        if isinstance(value, Language):
            return value
        text = value.strip()
        for lang in cls:
            if text.upper() == lang.value or text == lang.display_name:
                return lang
        raise ValueError(f"Unknown sign language: {value!r}")


_DISPLAY_NAMES = {
    Language.ASL: "American Sign Language (ASL)",
    Language.KSL: "Kenyan Sign Language (KSL)",
    Language.BSL: "British Sign Language (BSL)",
}


@dataclass(frozen=True)
class Settings:
    sensitivity: int = 7
    language: Language = Language.ASL

    def __post_init__(self) -> None:
        if isinstance(self.sensitivity, bool) or not isinstance(self.sensitivity, int):
            raise ValueError(f"sensitivity must be an int, got {self.sensitivity!r}")
        if not MIN_SENSITIVITY <= self.sensitivity <= MAX_SENSITIVITY:
            raise ValueError(
                f"sensitivity must be in [{MIN_SENSITIVITY}, {MAX_SENSITIVITY}], "
                f"got {self.sensitivity}"
            )
        if not isinstance(self.language, Language):
            object.__setattr__(self, "language", Language.parse(self.language))

    @property
    def detection_threshold(self) -> float:
        """Sensitivity scaled to a 0.1–1.0 tracker confidence."""
        return self.sensitivity / 10

    @property
    def tracking_threshold(self) -> float:
        return self.sensitivity / 10


class SettingsController:
    """Owns the active :class:`Settings` and notifies listeners on change.

    Parameters
    ----------
    settings:
        Initial settings (defaults to sensitivity 7, ASL).
    on_change:
        Optional listener called with ``(old, new)`` after every update
        that actually changes a value.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        on_change: Callable[[Settings, Settings], None] | None = None,
    ) -> None:
        self._settings = settings or Settings()
        self._listeners: list[Callable[[Settings, Settings], None]] = []
        if on_change is not None:
            self._listeners.append(on_change)

    @property
    def settings(self) -> Settings:
        return self._settings

    def subscribe(self, listener: Callable[[Settings, Settings], None]) -> None:
        self._listeners.append(listener)

    def update(
        self,
        sensitivity: int | None = None,
        language: Language | str | None = None,
    ) -> Settings:
        """Store new values and notify listeners.

        Raises ``ValueError`` for an out-of-range sensitivity or an unknown
        language; the stored settings are left untouched in that case.
        """
        old = self._settings
        new = Settings(
            sensitivity=old.sensitivity if sensitivity is None else sensitivity,
            language=old.language if language is None else Language.parse(language),
        )
        if new == old:
            return old

        self._settings = new
        logger.info(
            "Settings updated: sensitivity %d → %d, language %s → %s",
            old.sensitivity, new.sensitivity, old.language.value, new.language.value,
        )
        for listener in self._listeners:
            listener(old, new)
        return new
