"""Conversation compression: verbatim head and tail, extractive middle.

All stdlib. No LLM calls; the abstractive variant lives in ``relevance``.
"""

from __future__ import annotations

import json
import re
from collections.abc import Sequence
from typing import Any

from innervoice.core.memory.models import Message
from innervoice.core.memory.topics import STOP_WORDS, top_words

DEFAULT_ASSISTANT_LABEL = "Rex"

_MAX_LINE_CHARS = 100
_HEAD_MESSAGES = 2
_TAIL_MESSAGES = 3
_SUMMARY_KEYWORDS = 5
_WORD_SPLIT_RE = re.compile(r"\W+")


# ---------------------------------------------------------------------------
# Compact JSON
# ---------------------------------------------------------------------------

def compact_dumps(obj: Any) -> str:
    """json.dumps with minimal whitespace and non-ASCII pass-through."""
    return json.dumps(obj, separators=(",", ":"), ensure_ascii=False, default=str)


# ---------------------------------------------------------------------------
# Message formatting
# ---------------------------------------------------------------------------

def format_message(message: Message, assistant_label: str = DEFAULT_ASSISTANT_LABEL) -> str:
    """Render ``Sender: content`` with content cut to 100 characters."""
    sender = "User" if message.is_from_user else assistant_label
    content = message.content
    if len(content) > _MAX_LINE_CHARS:
        content = content[:_MAX_LINE_CHARS] + "..."
    return f"{sender}: {content}"


# ---------------------------------------------------------------------------
# Extractive summary
# ---------------------------------------------------------------------------

def summary_keywords(messages: Sequence[Message], limit: int = _SUMMARY_KEYWORDS) -> list[str]:
    text = " ".join(m.content for m in messages).lower()
    words = [
        w for w in _WORD_SPLIT_RE.split(text)
        if len(w) > 3 and w not in STOP_WORDS
    ]
    return top_words(words, limit)


def summarize_conversation(messages: Sequence[Message]) -> str:
    """Counts plus top keywords. Fewer than three messages yield ``""``."""
    if len(messages) < 3:
        return ""
    user_count = sum(1 for m in messages if m.is_from_user)
    summary = f"This conversation has {len(messages)} messages ({user_count} from user). "
    keywords = summary_keywords(messages)
    if keywords:
        return summary + f"Main topics appear to be: {', '.join(keywords)}."
    return summary


# ---------------------------------------------------------------------------
# Three-part compression
# ---------------------------------------------------------------------------

def split_segments(
    messages: Sequence[Message],
) -> tuple[list[Message], list[Message], list[Message]]:
    """Split into (beginning, middle, recent); recent is the last three."""
    total = len(messages)
    head_end = max(0, min(_HEAD_MESSAGES, total - _TAIL_MESSAGES))
    tail_start = max(0, total - _TAIL_MESSAGES)
    return (
        list(messages[:head_end]),
        list(messages[head_end:tail_start]),
        list(messages[tail_start:]),
    )


def compress_conversation(
    messages: Sequence[Message],
    assistant_label: str = DEFAULT_ASSISTANT_LABEL,
) -> str:
    if not messages:
        return ""

    if len(messages) < 3:
        return "\n".join(format_message(m, assistant_label) for m in messages)

    beginning, middle, recent = split_segments(messages)
    result = ""

    if beginning:
        result += "== Conversation Start ==\n"
        result += "\n".join(format_message(m, assistant_label) for m in beginning)
        result += "\n"

    if middle:
        result += "== Summary of Previous Messages ==\n"
        result += summarize_conversation(middle)
        result += f"\n({len(middle)} messages omitted)\n"

    if recent:
        result += "== Recent Messages ==\n"
        result += "\n".join(format_message(m, assistant_label) for m in recent)

    return result
