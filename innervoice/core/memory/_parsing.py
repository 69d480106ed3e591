from __future__ import annotations

import re

_LIST_ITEM_RE = re.compile(r"^(?:[-*•]\s|#?\d+[.):]|#\d+)")


def strip_markdown_fences(text: str) -> str:
    """Remove markdown code fences (```json ... ```) from LLM responses."""
    text = text.strip()
    if not text.startswith("```"):
        return text
    lines = text.split("\n")
    lines = lines[1:]  # Strip opening fence
    if lines and lines[-1].strip() == "```":
        lines = lines[:-1]  # Strip closing fence
    return "\n".join(lines).strip()


def split_lines(text: str) -> list[str]:
    """Trimmed, non-blank lines of an LLM response."""
    return [line.strip() for line in strip_markdown_fences(text).splitlines() if line.strip()]


def list_items(text: str) -> list[str]:
    """Bullet or numbered lines of a response; every line when none are."""
    lines = split_lines(text)
    items = [line for line in lines if _LIST_ITEM_RE.match(line)]
    return items or lines
