from __future__ import annotations

from pydantic import BaseModel, Field


class ScoringWeights(BaseModel):
    """Multipliers used when ranking history messages for the context window."""

    very_recent_count: int = 3
    very_recent_factor: float = 1.0
    recent_count: int = 5
    recent_factor: float = 0.8
    older_factor: float = 0.5
    user_role: float = 1.2
    assistant_role: float = 1.0
    emotional: float = 1.3


class MemoryConfig(BaseModel):
    """Configuration for per-user conversation memory."""

    decay_rate: float = Field(default=0.9, gt=0.0, le=1.0)
    decay_prune_threshold: float = 0.1
    max_context_tokens: int = 4096
    interactions_cap: int = 10
    topics_per_message: int = 3
    new_topic_relevance: float = 0.5
    topic_relevance_step: float = 0.1
    emotional_importance: float = 0.8
    neutral_importance: float = 0.5
    scoring: ScoringWeights = Field(default_factory=ScoringWeights)
