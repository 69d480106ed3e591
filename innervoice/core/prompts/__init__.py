from __future__ import annotations

from enum import StrEnum, auto
from pathlib import Path

from innervoice import INNERVOICE_ROOT

_PROMPTS_DIR = INNERVOICE_ROOT / "core" / "prompts"


class PersonaPrompt(StrEnum):
    @property
    def path(self) -> Path:
        return (_PROMPTS_DIR / self.value).with_suffix(".md")

    def read(self) -> str:
        return self.path.read_text(encoding="utf-8").strip()

    PERSONA = auto()
    DIRECTIVES = auto()
    TRIGGER = auto()
    PLAN = auto()
    DRAFT = auto()
    VALIDATE = auto()


__all__ = ["PersonaPrompt"]
