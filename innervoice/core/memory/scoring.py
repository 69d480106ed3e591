from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass

from innervoice.core.memory.config import ScoringWeights
from innervoice.core.memory.models import NEUTRAL, Message, StructuredMemory

# Approximate: 1 token ≈ 4 characters
_CHARS_PER_TOKEN = 4


def estimate_tokens(text: str) -> int:
    return math.ceil(len(text) / _CHARS_PER_TOKEN)


@dataclass(frozen=True)
class ScoredMessage:
    """A history message with its importance score and token estimate."""

    message: Message
    index: int
    score: float
    tokens: int


def recency_factor(position_from_end: int, weights: ScoringWeights) -> float:
    if position_from_end < weights.very_recent_count:
        return weights.very_recent_factor
    if position_from_end < weights.very_recent_count + weights.recent_count:
        return weights.recent_factor
    return weights.older_factor


def _is_emotional(message: Message, memory: StructuredMemory | None) -> bool:
    if memory is None or message.id is None:
        return False
    sentiment = memory.sentiment_map.get(str(message.id))
    return bool(sentiment) and sentiment != NEUTRAL


def score_messages(
    messages: Sequence[Message],
    memory_context: StructuredMemory | None = None,
    weights: ScoringWeights | None = None,
) -> list[ScoredMessage]:
    """Score every message by recency tier, speaker and emotional charge.

    Pure: the same inputs always give the same scores, in input order.
    """
    weights = weights or ScoringWeights()
    total = len(messages)
    scored: list[ScoredMessage] = []
    for index, message in enumerate(messages):
        score = recency_factor(total - 1 - index, weights)
        score *= weights.user_role if message.is_from_user else weights.assistant_role
        if _is_emotional(message, memory_context):
            score *= weights.emotional
        scored.append(
            ScoredMessage(
                message=message,
                index=index,
                score=score,
                tokens=estimate_tokens(message.content),
            )
        )
    return scored
