from __future__ import annotations

import logging
import re
from collections.abc import Awaitable, Callable

from innervoice.core.memory.models import NEUTRAL
from innervoice.core.memory.prompts import MemoryPrompt

logger = logging.getLogger(__name__)

_WORD_RE = re.compile(r"[a-z]+")


class ToneAnalyzer:
    """LLM-based single-word emotional tone tagging."""

    def __init__(self, llm_caller: Callable[[str, str], Awaitable[str]]) -> None:
        self._llm_caller = llm_caller

    async def analyze(self, message: str) -> str:
        if not message.strip():
            return NEUTRAL
        try:
            response = await self._llm_caller(MemoryPrompt.EMOTIONAL_TONE.read(), message)
            return self._parse_tone(response)
        except Exception:
            logger.warning("Tone analysis failed, defaulting to neutral", exc_info=True)
            return NEUTRAL

    @staticmethod
    def _parse_tone(response: str) -> str:
        match = _WORD_RE.search((response or "").strip().lower())
        if match:
            return match.group()
        return NEUTRAL
