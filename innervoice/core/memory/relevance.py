"""LLM-backed narrowing passes with deterministic local fallbacks.

Each pass makes a single collaborator call. A raised error or an unusable
response is logged and replaced by a local result, so callers never see
collaborator failures from this module.

``Summarizer`` is a public helper for callers that want an abstractive summary
of older history. The default turn uses the extractive compression in
``compression`` and does not call it.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel

from innervoice.core.memory._parsing import list_items, split_lines, strip_markdown_fences
from innervoice.core.memory.compression import (
    compact_dumps,
    format_message,
    summarize_conversation,
)
from innervoice.core.memory.models import Message
from innervoice.core.memory.prompts import MemoryPrompt

logger = logging.getLogger(__name__)

DEFAULT_KEEP = 11

_FALLBACK_SUMMARY_CHARS = 300
_SENTENCE_SPLIT_RE = re.compile(r"(?<=[.!?])\s+")
_REGENERATED_RE = re.compile(r"Regenerated Response:\s*(.*)$", re.IGNORECASE | re.DOTALL)

Item = Mapping[str, Any] | BaseModel | str


def _as_mapping(item: Item) -> Mapping[str, Any]:
    if isinstance(item, BaseModel):
        return item.model_dump(mode="json")
    if isinstance(item, Mapping):
        return item
    return {"content": str(item)}


def item_text(item: Item) -> str:
    """Best human-readable text of a candidate item."""
    data = _as_mapping(item)
    for key in ("content", "text"):
        value = data.get(key)
        if isinstance(value, str) and value:
            return value
    return compact_dumps(dict(data))


def fallback_items(items: Sequence[Item], item_type: str, keep: int) -> list[str]:
    """First ``keep`` items in order, labelled with their type."""
    result = []
    for item in items[: max(0, keep)]:
        label = _as_mapping(item).get("type") or item_type
        result.append(f"{str(label).upper()}: {item_text(item)}")
    return result


class RelevanceFilter:
    """Narrow a candidate list to the items most pertinent to a message."""

    def __init__(self, llm_caller: Callable[[str, str], Awaitable[str]]) -> None:
        self._llm_caller = llm_caller

    async def filter_relevant_items(
        self,
        items: Sequence[Item],
        user_message: str,
        item_type: str = "content",
        keep: int = DEFAULT_KEEP,
    ) -> list[str]:
        if not items or keep <= 0:
            return []

        listing = "\n".join(f"#{i}: {item_text(item)}" for i, item in enumerate(items, 1))
        system = MemoryPrompt.FILTER_ITEMS.read().format(
            item_type=item_type,
            item_label=item_type.capitalize(),
            keep=keep,
            items=listing,
        )
        try:
            raw = await self._llm_caller(system, f"User message: {user_message}")
        except Exception:
            logger.warning(
                "Relevance filter for %s failed, keeping first %d items",
                item_type, keep, exc_info=True,
            )
            return fallback_items(items, item_type, keep)

        selected = list_items(raw or "")
        if not selected:
            logger.warning("Relevance filter for %s returned no items", item_type)
            return fallback_items(items, item_type, keep)
        return selected[:keep]


def leading_sentences(text: str, max_chars: int = _FALLBACK_SUMMARY_CHARS) -> str:
    """Whole leading sentences up to ``max_chars``; hard cut if the first is longer."""
    text = " ".join(text.split())
    if len(text) <= max_chars:
        return text
    kept = ""
    for sentence in _SENTENCE_SPLIT_RE.split(text):
        candidate = f"{kept} {sentence}".strip()
        if len(candidate) > max_chars:
            break
        kept = candidate
    return kept or text[:max_chars] + "..."


class Summarizer:
    """Abstractive summaries with an extractive fallback."""

    def __init__(
        self,
        llm_caller: Callable[[str, str], Awaitable[str]],
        assistant_label: str = "Rex",
    ) -> None:
        self._llm_caller = llm_caller
        self._assistant_label = assistant_label

    async def summarize_text(self, text: str) -> str:
        if not text.strip():
            return ""
        try:
            raw = await self._llm_caller(MemoryPrompt.SUMMARIZE_TEXT.read(), text)
        except Exception:
            logger.warning("Text summarization failed, using leading sentences", exc_info=True)
            return leading_sentences(text)
        summary = strip_markdown_fences(raw or "")
        return summary or leading_sentences(text)

    async def summarize_messages(self, messages: Sequence[Message]) -> str:
        if not messages:
            return ""
        transcript = "\n".join(format_message(m, self._assistant_label) for m in messages)
        try:
            raw = await self._llm_caller(
                MemoryPrompt.SUMMARIZE_CONVERSATION.read(), transcript
            )
        except Exception:
            logger.warning("Conversation summary failed, using extractive summary", exc_info=True)
            return summarize_conversation(messages)
        summary = strip_markdown_fences(raw or "")
        return summary or summarize_conversation(messages)


@dataclass(frozen=True)
class GuidelineReview:
    compliant: bool
    corrections: str
    improved: str


class GuidelineChecker:
    """Rank persona guidelines for a message and check a draft against them."""

    def __init__(self, llm_caller: Callable[[str, str], Awaitable[str]]) -> None:
        self._llm_caller = llm_caller

    async def arrange_guidelines(
        self, guidelines: Sequence[str], user_message: str
    ) -> list[str]:
        cleaned = [g.strip() for g in guidelines if g.strip()]
        if not cleaned:
            return []
        system = MemoryPrompt.ARRANGE_GUIDELINES.read().format(guidelines="\n".join(cleaned))
        try:
            raw = await self._llm_caller(system, f"User message: {user_message}")
        except Exception:
            logger.warning("Guideline ranking failed, keeping given order", exc_info=True)
            return cleaned
        return split_lines(raw or "") or cleaned

    async def enforce_guidelines(
        self, checklist: Sequence[str], draft_response: str
    ) -> GuidelineReview:
        passthrough = GuidelineReview(compliant=True, corrections="", improved=draft_response)
        if not checklist:
            return passthrough
        system = MemoryPrompt.ENFORCE_GUIDELINES.read().format(checklist="\n".join(checklist))
        try:
            raw = await self._llm_caller(system, f"Draft response:\n{draft_response}")
        except Exception:
            logger.warning("Guideline enforcement failed, keeping draft", exc_info=True)
            return passthrough

        output = (raw or "").strip()
        if not output:
            logger.warning("Guideline enforcement returned an empty response")
            return passthrough
        return self._parse_review(output, draft_response)

    @staticmethod
    def _parse_review(output: str, draft_response: str) -> GuidelineReview:
        match = _REGENERATED_RE.search(output)
        if match is None:
            return GuidelineReview(compliant=True, corrections="", improved=output)
        corrections = output[: match.start()].strip()
        improved = match.group(1).strip() or draft_response
        return GuidelineReview(
            compliant="violat" not in corrections.lower(),
            corrections=corrections,
            improved=improved,
        )
