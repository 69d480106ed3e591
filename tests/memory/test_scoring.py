from __future__ import annotations

import pytest

from innervoice.core.memory.config import ScoringWeights
from innervoice.core.memory.models import StructuredMemory
from innervoice.core.memory.scoring import estimate_tokens, recency_factor, score_messages


def test_estimate_tokens_rounds_up() -> None:
    assert estimate_tokens("") == 0
    assert estimate_tokens("abcd") == 1
    assert estimate_tokens("abcde") == 2


@pytest.mark.parametrize(
    ("position", "expected"),
    [(0, 1.0), (2, 1.0), (3, 0.8), (7, 0.8), (8, 0.5), (40, 0.5)],
)
def test_recency_tiers(position: int, expected: float) -> None:
    assert recency_factor(position, ScoringWeights()) == expected


def test_score_messages_tiers_and_roles(conversation_messages) -> None:
    messages = conversation_messages(10)
    scored = score_messages(messages)

    assert [s.index for s in scored] == list(range(10))
    # index 9 is the latest (assistant), index 8 user within the last three
    assert scored[9].score == pytest.approx(1.0)
    assert scored[8].score == pytest.approx(1.2)
    # index 4 is 5 from the end: recent tier, user
    assert scored[4].score == pytest.approx(0.8 * 1.2)
    # index 1 is 8 from the end: older tier, assistant
    assert scored[1].score == pytest.approx(0.5)


def test_emotional_messages_are_boosted(conversation_messages) -> None:
    messages = conversation_messages(3)
    memory = StructuredMemory(user_id="user1", sentiment_map={"2": "sad", "3": "neutral"})
    scored = score_messages(messages, memory)
    assert scored[1].score == pytest.approx(1.0 * 1.3)
    assert scored[2].score == pytest.approx(1.2)


def test_messages_without_id_are_never_emotional(make_message) -> None:
    memory = StructuredMemory(user_id="user1", sentiment_map={"None": "sad"})
    scored = score_messages([make_message("hello there")], memory)
    assert scored[0].score == pytest.approx(1.2)


def test_token_estimate_attached(make_message) -> None:
    scored = score_messages([make_message("x" * 41, id=1)])
    assert scored[0].tokens == 11


def test_scoring_is_pure(conversation_messages) -> None:
    messages = conversation_messages(6)
    memory = StructuredMemory(user_id="user1", sentiment_map={"1": "angry"})
    assert score_messages(messages, memory) == score_messages(messages, memory)


def test_custom_weights(conversation_messages) -> None:
    weights = ScoringWeights(user_role=2.0)
    scored = score_messages(conversation_messages(1), weights=weights)
    assert scored[0].score == pytest.approx(2.0)
