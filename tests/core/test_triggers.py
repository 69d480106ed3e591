from __future__ import annotations

from innervoice.core.memory.models import TriggerPhrase
from innervoice.core.triggers import detect_trigger_phrase


def _trigger(phrase: str, active: bool = True) -> TriggerPhrase:
    return TriggerPhrase(phrase=phrase, guidelines="g", personality="p", active=active)


def test_detects_phrase_case_insensitively() -> None:
    poet = _trigger("poet mode")
    assert detect_trigger_phrase("Switch to POET MODE please", [poet]) is poet


def test_requires_whole_words() -> None:
    assert detect_trigger_phrase("I love poetry", [_trigger("poet")]) is None
    assert detect_trigger_phrase("poet, tell me something", [_trigger("poet")]) is not None


def test_inactive_triggers_are_ignored() -> None:
    assert detect_trigger_phrase("coach me", [_trigger("coach", active=False)]) is None


def test_first_matching_trigger_wins() -> None:
    first, second = _trigger("coach"), _trigger("coach me")
    assert detect_trigger_phrase("coach me now", [first, second]) is first


def test_regex_characters_are_literal() -> None:
    assert detect_trigger_phrase("say c++ now", [_trigger("c++")]) is not None
    assert detect_trigger_phrase("say cpp now", [_trigger("c.p")]) is None


def test_blank_phrase_never_matches() -> None:
    assert detect_trigger_phrase("anything", [_trigger("   ")]) is None
    assert detect_trigger_phrase("anything", []) is None
