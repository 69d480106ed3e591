from __future__ import annotations

import logging
from datetime import datetime

from innervoice.core.memory.models import StructuredMemory, utcnow

logger = logging.getLogger(__name__)

DEFAULT_DECAY_RATE = 0.9
DEFAULT_PRUNE_THRESHOLD = 0.1

_SECONDS_PER_DAY = 86400.0


def days_between(earlier: datetime, now: datetime) -> float:
    """Elapsed days, never negative (clock skew counts as no time passed)."""
    return max(0.0, (now - earlier).total_seconds() / _SECONDS_PER_DAY)


def compute_retention(days: float, decay_rate: float = DEFAULT_DECAY_RATE) -> float:
    """Fraction of relevance kept after ``days`` of inactivity."""
    return decay_rate ** max(0.0, days)


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def apply_decay(
    memory: StructuredMemory,
    now: datetime | None = None,
    decay_rate: float = DEFAULT_DECAY_RATE,
    prune_threshold: float = DEFAULT_PRUNE_THRESHOLD,
) -> list[str]:
    """Decay topic relevance in place and drop topics that fell below threshold.

    Only ``topics`` is touched; emotions, interactions and preferences keep
    their values. Returns the names of the removed topics.
    """
    now = now or utcnow()
    pruned: list[str] = []
    for key in list(memory.topics):
        topic = memory.topics[key]
        retention = compute_retention(days_between(topic.last_discussed, now), decay_rate)
        topic.relevance = _clamp(topic.relevance * retention)
        if topic.relevance < prune_threshold:
            del memory.topics[key]
            pruned.append(key)
    if pruned:
        logger.debug("Pruned %d decayed topics: %s", len(pruned), ", ".join(pruned))
    return pruned


def calculate_memory_health(
    memory: StructuredMemory,
    now: datetime | None = None,
    decay_rate: float = DEFAULT_DECAY_RATE,
) -> float:
    """Score in [0, 1] blending interaction recency and mean topic relevance."""
    now = now or utcnow()
    recency = compute_retention(days_between(memory.last_interaction, now), decay_rate)
    topics = list(memory.topics.values())
    avg_relevance = sum(t.relevance for t in topics) / len(topics) if topics else 0.0
    return _clamp((recency + avg_relevance) / 2)
