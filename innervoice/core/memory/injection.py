"""Render structured memory as prompt text.

The turn pipeline only uses ``memory_entries`` and narrows the result with the
relevance filter. ``format_memory_for_prompt`` and ``get_relevant_memories``
are public helpers for callers that want the full memory block or the part
of it matching the current message's topics, without an LLM pass.
"""

from __future__ import annotations

import logging

from innervoice.core.memory.models import Interaction, StructuredMemory
from innervoice.core.memory.topics import extract_topics

logger = logging.getLogger(__name__)

_PREFERENCE_CONFIDENCE = 0.6
_TOPIC_RELEVANCE = 0.3
_TOP_TOPICS = 5
_TOP_EMOTIONS = 3
_RECENT_INTERACTIONS = 3


def _format_interaction(interaction: Interaction) -> str:
    return (
        f"{interaction.timestamp.date().isoformat()}: "
        f"{interaction.summary} ({interaction.sentiment})"
    )


def format_memory_for_prompt(memory: StructuredMemory | None) -> str:
    """Render the full memory as a ``USER MEMORY CONTEXT`` block."""
    if memory is None:
        return ""

    result = "USER MEMORY CONTEXT:\n"

    preferences = "\n".join(
        f"- Prefers {p.value}"
        for p in memory.preferences.values()
        if p.confidence > _PREFERENCE_CONFIDENCE
    )
    if preferences:
        result += "Preferences:\n" + preferences + "\n\n"

    topics = sorted(
        (t for t in memory.topics.values() if t.relevance > _TOPIC_RELEVANCE),
        key=lambda t: t.relevance,
        reverse=True,
    )[:_TOP_TOPICS]
    if topics:
        result += "Topics of Interest:\n" + "\n".join(
            f"- {t.name} (sentiment: {t.sentiment}, mentioned {t.mentions} times)"
            for t in topics
        ) + "\n\n"

    emotions = sorted(
        memory.emotions.values(), key=lambda e: e.intensity, reverse=True
    )[:_TOP_EMOTIONS]
    if emotions:
        result += "Emotional Patterns:\n" + "\n".join(
            f"- Shows {e.type} when discussing: {', '.join(e.triggers)}"
            for e in emotions
        ) + "\n\n"

    recent = memory.interactions[-_RECENT_INTERACTIONS:]
    if recent:
        result += "Recent Interactions:\n" + "\n".join(
            f"- {_format_interaction(i)}" for i in recent
        ) + "\n\n"

    result += f"Current Emotional State: {memory.sentiment}\n"
    if memory.notes:
        result += f"Notes: {memory.notes}\n"
    return result


def get_relevant_memories(memory: StructuredMemory | None, current_message: str) -> str:
    """Memory narrowed to topics overlapping the current message."""
    if memory is None:
        return ""

    current_topics = extract_topics(current_message)
    if not current_topics:
        return format_memory_for_prompt(memory)

    result = "RELEVANT USER MEMORY:\n"

    matching = sorted(
        (
            t for t in memory.topics.values()
            if any(c in t.name or t.name in c for c in current_topics)
        ),
        key=lambda t: t.relevance,
        reverse=True,
    )
    if matching:
        result += "Related Topics:\n" + "\n".join(
            f"- {t.name}: mentioned {t.mentions} times, sentiment: {t.sentiment}"
            for t in matching
        ) + "\n\n"

    related = [
        i for i in memory.interactions
        if any(t.name in i.summary for t in matching)
    ][-_RECENT_INTERACTIONS:]
    if related:
        result += "Related Interactions:\n" + "\n".join(
            f"- {i.summary} ({i.sentiment})" for i in related
        ) + "\n\n"

    result += f"Current Sentiment: {memory.sentiment}\n"
    return result


def memory_entries(memory: StructuredMemory | None) -> list[dict[str, str]]:
    """Flatten memory into typed candidate items for relevance filtering.

    Ordered by importance so the positional fallback keeps the best ones.
    """
    if memory is None:
        return []

    entries: list[dict[str, str]] = []
    for topic in sorted(memory.topics.values(), key=lambda t: t.relevance, reverse=True):
        entries.append({
            "type": "topic",
            "content": (
                f"{topic.name} (sentiment: {topic.sentiment}, "
                f"mentioned {topic.mentions} times)"
            ),
        })
    for pref in memory.preferences.values():
        if pref.confidence > _PREFERENCE_CONFIDENCE:
            entries.append({"type": "preference", "content": f"Prefers {pref.value}"})
    for emotion in sorted(memory.emotions.values(), key=lambda e: e.intensity, reverse=True):
        entries.append({
            "type": "emotion",
            "content": f"Shows {emotion.type} when discussing: {', '.join(emotion.triggers)}",
        })
    for interaction in reversed(memory.interactions):
        entries.append({"type": "interaction", "content": _format_interaction(interaction)})
    if memory.notes:
        entries.append({"type": "note", "content": memory.notes})
    return entries
