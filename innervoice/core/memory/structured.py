"""Create, migrate and update the per-user structured memory.

Every function here is pure: inputs are never mutated, a new
``StructuredMemory`` is returned. Persistence lives in ``MemoryManager``.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from innervoice.core.memory.config import MemoryConfig
from innervoice.core.memory.decay import apply_decay
from innervoice.core.memory.models import (
    NEUTRAL,
    Interaction,
    LegacyMemoryContext,
    MemoryRecord,
    Message,
    StructuredMemory,
    Topic,
    utcnow,
)
from innervoice.core.memory.topics import extract_topics

logger = logging.getLogger(__name__)


def create_initial_memory(user_id: str, now: datetime | None = None) -> StructuredMemory:
    return StructuredMemory(
        user_id=user_id,
        last_interaction=now or utcnow(),
        sentiment=NEUTRAL,
        notes="New user",
    )


def _parse_legacy_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.warning("Unparseable legacy lastInteraction: %r", value[:200])
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


def _from_legacy(legacy: LegacyMemoryContext, user_id: str) -> StructuredMemory:
    structured = create_initial_memory(user_id)
    structured.legacy_data = legacy.model_dump(mode="json", by_alias=True, exclude_unset=True)
    structured.last_interaction = (
        _parse_legacy_timestamp(legacy.last_interaction) or structured.last_interaction
    )
    structured.notes = legacy.notes or ""
    structured.sentiment = legacy.sentiment or NEUTRAL
    return structured


def migrate_memory(
    source: MemoryRecord | StructuredMemory | LegacyMemoryContext,
    user_id: str | None = None,
) -> StructuredMemory:
    """Bring any stored memory shape up to ``StructuredMemory``.

    Structured input comes back untouched, so migrating twice is a no-op.
    """
    if isinstance(source, StructuredMemory):
        return source
    if isinstance(source, MemoryRecord):
        context = source.context
        if isinstance(context, StructuredMemory):
            return context
        if context is None:
            return create_initial_memory(source.user_id)
        return _from_legacy(context, source.user_id)
    if user_id is None:
        raise ValueError("user_id is required to migrate a bare legacy context")
    return _from_legacy(source, user_id)


def blend_sentiment(current: str, tone: str) -> str:
    """Newest non-neutral tone wins; neutral never overwrites a feeling."""
    if current == NEUTRAL or tone != NEUTRAL:
        return tone
    return current


def _normalize_tone(tone: str) -> str:
    return tone.strip().lower() or NEUTRAL


def record_message(
    memory: StructuredMemory,
    message: Message,
    emotional_tone: str,
    config: MemoryConfig | None = None,
    now: datetime | None = None,
) -> StructuredMemory:
    """Fold one message into a copy of ``memory`` and run the decay sweep."""
    config = config or MemoryConfig()
    now = now or utcnow()
    tone = _normalize_tone(emotional_tone)
    updated = memory.model_copy(deep=True)

    if message.id is not None:
        updated.sentiment_map[str(message.id)] = tone

    updated.last_interaction = now
    updated.sentiment = blend_sentiment(updated.sentiment, tone)

    topics = extract_topics(message.content, config.topics_per_message)
    for name in topics:
        existing = updated.topics.get(name)
        if existing is None:
            updated.topics[name] = Topic(
                name=name,
                relevance=config.new_topic_relevance,
                last_discussed=now,
                sentiment=tone,
                mentions=1,
            )
            continue
        existing.last_discussed = now
        existing.mentions += 1
        existing.relevance = min(1.0, existing.relevance + config.topic_relevance_step)
        if tone != NEUTRAL:
            existing.sentiment = tone

    speaker = "User" if message.is_from_user else "Assistant"
    updated.interactions.append(
        Interaction(
            timestamp=now,
            type="message",
            summary=f"{speaker} discussed: {', '.join(topics) or 'general topics'}",
            sentiment=tone,
            importance=(
                config.emotional_importance if tone != NEUTRAL else config.neutral_importance
            ),
        )
    )
    if len(updated.interactions) > config.interactions_cap:
        updated.interactions = updated.interactions[-config.interactions_cap :]

    apply_decay(
        updated,
        now=now,
        decay_rate=config.decay_rate,
        prune_threshold=config.decay_prune_threshold,
    )
    return updated
