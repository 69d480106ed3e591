from __future__ import annotations

from enum import StrEnum, auto
from pathlib import Path

from innervoice import INNERVOICE_ROOT

_PROMPTS_DIR = INNERVOICE_ROOT / "core" / "memory" / "prompts"


class MemoryPrompt(StrEnum):
    @property
    def path(self) -> Path:
        return (_PROMPTS_DIR / self.value).with_suffix(".md")

    def read(self) -> str:
        return self.path.read_text(encoding="utf-8").strip()

    EMOTIONAL_TONE = auto()
    FILTER_ITEMS = auto()
    SUMMARIZE_TEXT = auto()
    SUMMARIZE_CONVERSATION = auto()
    ARRANGE_GUIDELINES = auto()
    ENFORCE_GUIDELINES = auto()


__all__ = ["MemoryPrompt"]
