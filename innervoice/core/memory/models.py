from __future__ import annotations

from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

MEMORY_STRUCTURE_VERSION = 1
NEUTRAL = "neutral"


def utcnow() -> datetime:
    return datetime.now(UTC)


class _WireModel(BaseModel):
    """Snake_case in Python, camelCase on the wire (persisted JSON)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class Message(_WireModel):
    """A single conversation turn. Immutable once persisted."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )

    id: int | None = None
    user_id: str
    content: str
    is_from_user: bool
    timestamp: datetime = Field(default_factory=utcnow)


class Preference(_WireModel):
    value: str
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    last_updated: datetime = Field(default_factory=utcnow)
    source: str = ""


class Topic(_WireModel):
    """A keyword the user has discussed, with decaying relevance."""

    name: str
    relevance: float = Field(default=0.5, ge=0.0, le=1.0)
    last_discussed: datetime = Field(default_factory=utcnow)
    sentiment: str = NEUTRAL
    mentions: int = Field(default=1, ge=1)


class EmotionRecord(_WireModel):
    type: str
    intensity: float = Field(default=0.0, ge=0.0, le=1.0)
    triggers: list[str] = Field(default_factory=list)
    last_observed: datetime = Field(default_factory=utcnow)
    frequency: int = 0

    @field_validator("triggers")
    @classmethod
    def _dedupe_triggers(cls, value: list[str]) -> list[str]:
        return list(dict.fromkeys(value))


class Interaction(_WireModel):
    timestamp: datetime = Field(default_factory=utcnow)
    type: str = "message"
    summary: str = ""
    sentiment: str = NEUTRAL
    importance: float = Field(default=0.5, ge=0.0, le=1.0)


class StructuredMemory(_WireModel):
    """Per-user structured memory. ``version`` marks the structured shape."""

    version: int = MEMORY_STRUCTURE_VERSION
    user_id: str
    preferences: dict[str, Preference] = Field(default_factory=dict)
    topics: dict[str, Topic] = Field(default_factory=dict)
    emotions: dict[str, EmotionRecord] = Field(default_factory=dict)
    interactions: list[Interaction] = Field(default_factory=list)
    sentiment_map: dict[str, str] = Field(default_factory=dict)
    last_interaction: datetime = Field(default_factory=utcnow)
    sentiment: str = NEUTRAL
    notes: str = ""
    legacy_data: dict[str, Any] | None = None

    @field_validator("sentiment_map", mode="before")
    @classmethod
    def _stringify_message_ids(cls, value: Any) -> Any:
        if isinstance(value, Mapping):
            return {str(k): v for k, v in value.items()}
        return value


class LegacyMemoryContext(_WireModel):
    """Pre-structured memory blob. Unknown keys are kept as-is."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="allow"
    )

    last_interaction: str | None = None
    notes: str | None = None
    sentiment: str | None = None


MemoryContext = StructuredMemory | LegacyMemoryContext


def parse_memory_context(raw: Any) -> MemoryContext | None:
    """Resolve a stored context blob using ``version`` as the discriminant."""
    if raw is None or isinstance(raw, (StructuredMemory, LegacyMemoryContext)):
        return raw
    if not isinstance(raw, Mapping):
        raise ValueError(f"Unsupported memory context: {type(raw).__name__}")
    if raw.get("version") is not None:
        return StructuredMemory.model_validate(raw)
    return LegacyMemoryContext.model_validate(raw)


class MemoryRecord(_WireModel):
    """Storage row holding one user's memory context."""

    id: int | None = None
    user_id: str
    context: StructuredMemory | LegacyMemoryContext | None = None
    last_updated: datetime = Field(default_factory=utcnow)

    @field_validator("context", mode="before")
    @classmethod
    def _parse_context(cls, value: Any) -> Any:
        return parse_memory_context(value)


class Setting(_WireModel):
    id: int | None = None
    key: str
    value: str


class ContentItem(_WireModel):
    """Content library entry (microblog post, reflection, ...)."""

    id: int | None = None
    type: str
    content: str
    timestamp: datetime = Field(default_factory=utcnow)


class TriggerPhrase(_WireModel):
    """Admin-defined persona override activated by a phrase in the message."""

    id: int | None = None
    phrase: str
    guidelines: str = ""
    personality: str = ""
    examples: str = ""
    active: bool = True
    identity: str = ""
    purpose: str = ""
    audience: str = ""
    task: str = ""
