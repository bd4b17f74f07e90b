"""
vocabulary.py – Canonical label → target-language lexicon.

Canonical labels are the English names the classifier emits.  ASL is the
default language and uses them as-is; KSL (Kenyan Sign Language) glosses
are Swahili, BSL glosses use British English phrasing.  Anything not in a
table passes through unchanged.
"""

from __future__ import annotations

from signflow.settings import Language

KSL_LEXICON: dict[str, str] = {
    "Hello": "Jambo",
    "Thank you": "Asante",
    "Please": "Tafadhali",
    "Yes": "Ndiyo",
    "No": "Hapana",
    "Sorry": "Pole",
    "Help": "Msaada",
    "Water": "Maji",
    "Food": "Chakula",
    "More": "Zaidi",
    "Good morning": "Habari ya asubuhi",
    "How are you?": "Habari yako?",
    "Nice to meet you": "Nimefurahi kukutana nawe",
    "Goodbye": "Kwaheri",
    "Friend": "Rafiki",
    "Family": "Familia",
    "Love": "Upendo",
    "I Love You": "Nakupenda",
    "Home": "Nyumbani",
    "School": "Shule",
    "Eat": "Kula",
    "Drink": "Kunywa",
    "Good": "Nzuri",
    "Bad": "Mbaya",
    "Stop": "Simama",
    "Open Hand": "Mkono wazi",
    "Fist": "Ngumi",
}

BSL_LEXICON: dict[str, str] = {
    "Hello": "Hiya",
    "Thank you": "Cheers",
    "Good morning": "Morning",
    "How are you?": "You alright?",
    "Goodbye": "Ta-ra",
    "Friend": "Mate",
    "Food": "Grub",
    "Bathroom": "Toilet",
    "Mom": "Mum",
    "Sorry": "Pardon",
    "Nice to meet you": "Pleased to meet you",
}

_LEXICONS: dict[Language, dict[str, str]] = {
    Language.KSL: KSL_LEXICON,
    Language.BSL: BSL_LEXICON,
}


class VocabularyMapper:
    """Table-backed mapper; ``extra`` entries override the built-in tables."""

    def __init__(self, extra: dict[Language, dict[str, str]] | None = None) -> None:
        self._tables = {lang: dict(table) for lang, table in _LEXICONS.items()}
        for lang, table in (extra or {}).items():
            self._tables.setdefault(lang, {}).update(table)

    def lexicon(self, language: Language) -> dict[str, str]:
        return dict(self._tables.get(language, {}))

    def localize(self, label: str, language: Language) -> str:
        """Translate *label* into *language*'s lexicon; unmapped labels pass through."""
        return self._tables.get(language, {}).get(label, label)

    def canonicalize(self, label: str, language: Language) -> str:
        """Inverse of :meth:`localize`; unknown labels pass through."""
        for canonical, native in self._tables.get(language, {}).items():
            if native == label:
                return canonical
        return label


DEFAULT_VOCABULARY = VocabularyMapper()


def localize(label: str, language: Language) -> str:
    return DEFAULT_VOCABULARY.localize(label, language)


def canonicalize(label: str, language: Language) -> str:
    return DEFAULT_VOCABULARY.canonicalize(label, language)
