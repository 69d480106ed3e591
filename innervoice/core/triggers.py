from __future__ import annotations

import re
from collections.abc import Iterable

from innervoice.core.memory.models import TriggerPhrase


def _phrase_pattern(phrase: str) -> re.Pattern[str]:
    return re.compile(rf"(?<!\w){re.escape(phrase.strip())}(?!\w)", re.IGNORECASE)


def detect_trigger_phrase(
    message: str, triggers: Iterable[TriggerPhrase]
) -> TriggerPhrase | None:
    """First active trigger whose phrase appears as a whole word in ``message``."""
    for trigger in triggers:
        if not trigger.active or not trigger.phrase.strip():
            continue
        if _phrase_pattern(trigger.phrase).search(message):
            return trigger
    return None
