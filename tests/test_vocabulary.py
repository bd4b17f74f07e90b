"""
tests/test_vocabulary.py – Canonical label ↔ language lexicon mapping.
"""

from __future__ import annotations

from signflow.settings import Language
from signflow.vocabulary import VocabularyMapper, canonicalize, localize


def test_default_language_passes_through() -> None:
    assert localize("Hello", Language.ASL) == "Hello"


def test_ksl_uses_swahili_glosses() -> None:
    assert localize("Hello", Language.KSL) == "Jambo"
    assert localize("Thank you", Language.KSL) == "Asante"
    assert localize("Fist", Language.KSL) == "Ngumi"


def test_bsl_uses_british_phrasing() -> None:
    assert localize("Hello", Language.BSL) == "Hiya"
    assert localize("Mom", Language.BSL) == "Mum"


def test_unknown_labels_pass_through() -> None:
    assert localize("Q", Language.KSL) == "Q"
    assert canonicalize("Q", Language.KSL) == "Q"


def test_canonicalize_reverses_localize() -> None:
    assert canonicalize("Asante", Language.KSL) == "Thank you"
    assert canonicalize("Cheers", Language.BSL) == "Thank you"


def test_mapper_extra_entries() -> None:
    mapper = VocabularyMapper({Language.KSL: {"Peace": "Amani"}})
    assert mapper.localize("Peace", Language.KSL) == "Amani"
    assert mapper.localize("Hello", Language.KSL) == "Jambo"
    assert localize("Peace", Language.KSL) == "Peace"
    assert "Peace" in mapper.lexicon(Language.KSL)
    assert mapper.lexicon(Language.ASL) == {}


def test_mapper_canonicalize_uses_extra_entries() -> None:
    mapper = VocabularyMapper({Language.KSL: {"Peace": "Amani"}})
    assert mapper.canonicalize("Amani", Language.KSL) == "Peace"
    assert mapper.canonicalize("Asante", Language.KSL) == "Thank you"
    assert canonicalize("Amani", Language.KSL) == "Amani"
