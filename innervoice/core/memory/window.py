from __future__ import annotations

import logging
from collections.abc import Sequence

from innervoice.core.memory.config import ScoringWeights
from innervoice.core.memory.models import Message, StructuredMemory
from innervoice.core.memory.scoring import estimate_tokens, score_messages

logger = logging.getLogger(__name__)

MAX_CONTEXT_TOKENS = 4096


def select_relevant_messages(
    messages: Sequence[Message],
    memory_context: StructuredMemory | None = None,
    max_tokens: int = MAX_CONTEXT_TOKENS,
    weights: ScoringWeights | None = None,
) -> list[Message]:
    """Pick the history that fits the token budget, oldest first.

    The latest message is always kept, even when it alone exceeds the
    budget. Other messages are taken greedily by score and the scan stops
    at the first one that does not fit.
    """
    if not messages:
        return []

    latest_index = len(messages) - 1
    selected = {latest_index}
    token_count = estimate_tokens(messages[latest_index].content)

    ranked = sorted(
        score_messages(messages, memory_context, weights),
        key=lambda s: s.score,
        reverse=True,
    )
    for candidate in ranked:
        if candidate.index == latest_index:
            continue
        if token_count + candidate.tokens > max_tokens:
            break
        selected.add(candidate.index)
        token_count += candidate.tokens

    logger.debug(
        "Context window: %d/%d messages, ~%d tokens",
        len(selected), len(messages), token_count,
    )
    return [messages[i] for i in sorted(selected)]
