from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence

from pydantic import BaseModel, Field

from innervoice.core.config import PromptConfig
from innervoice.core.memory.compression import compress_conversation
from innervoice.core.memory.config import MemoryConfig
from innervoice.core.memory.injection import memory_entries
from innervoice.core.memory.models import (
    NEUTRAL,
    ContentItem,
    Message,
    Setting,
    StructuredMemory,
    TriggerPhrase,
)
from innervoice.core.memory.relevance import RelevanceFilter
from innervoice.core.memory.window import select_relevant_messages
from innervoice.core.prompts import PersonaPrompt

logger = logging.getLogger(__name__)

# Settings consumed by name; everything else is a custom guideline.
_NAMED_SETTINGS = frozenset({"personality", "language_preference", "behavior_rules"})
_PRIVATE_SETTINGS = frozenset({"api_key"})


class SettingsSnapshot(BaseModel):
    """Admin settings captured once per turn."""

    personality: str = ""
    language_preference: str = ""
    behavior_rules: str = ""
    guidelines: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_settings(cls, settings: Iterable[Setting]) -> SettingsSnapshot:
        named: dict[str, str] = {}
        guidelines: dict[str, str] = {}
        for setting in settings:
            if setting.key in _PRIVATE_SETTINGS:
                continue
            if setting.key in _NAMED_SETTINGS:
                named[setting.key] = setting.value
            elif setting.value.strip():
                guidelines[setting.key] = setting.value
        return cls(**named, guidelines=guidelines)


class PromptPayload(BaseModel):
    """Request for the generative collaborator: system text plus user turn."""

    system: str
    user: str


def _section(title: str, body: str) -> str:
    body = body.strip()
    return f"{title}:\n{body}" if body else ""


class PromptAssembler:
    """Compose the persona prompt from memory, history, rules and content.

    Settings and the content library are passed in as snapshots; a missing
    or empty source just drops its section.
    """

    def __init__(
        self,
        relevance_filter: RelevanceFilter,
        config: PromptConfig | None = None,
        memory_config: MemoryConfig | None = None,
    ) -> None:
        self._filter = relevance_filter
        self.config = config or PromptConfig()
        self.memory_config = memory_config or MemoryConfig()

    async def memory_section(
        self, memory: StructuredMemory | None, current_message: str
    ) -> str:
        if memory is None:
            return ""
        entries = memory_entries(memory)
        lines = await self._filter.filter_relevant_items(
            entries, current_message, item_type="memory", keep=self.config.memory_keep
        )
        lines.append(f"Current emotional state: {memory.sentiment}")
        return _section("USER MEMORY", "\n".join(lines))

    def history_section(
        self, previous_messages: Sequence[Message], memory: StructuredMemory | None
    ) -> str:
        selected = select_relevant_messages(
            previous_messages,
            memory,
            max_tokens=self.memory_config.max_context_tokens,
            weights=self.memory_config.scoring,
        )
        return _section(
            "CONVERSATION HISTORY",
            compress_conversation(selected, assistant_label=self.config.persona_name),
        )

    async def content_section(
        self, contents: Sequence[ContentItem], current_message: str
    ) -> str:
        lines = await self._filter.filter_relevant_items(
            contents, current_message, item_type="content", keep=self.config.content_keep
        )
        return _section("RELEVANT CONTENT", "\n".join(lines))

    @staticmethod
    def rules_section(behavior_rules: str, settings: SettingsSnapshot) -> str:
        parts = [behavior_rules.strip()]
        parts.extend(f"- {key}: {value}" for key, value in settings.guidelines.items())
        return _section("BEHAVIOR RULES", "\n".join(p for p in parts if p))

    @staticmethod
    def guideline_list(behavior_rules: str, settings: SettingsSnapshot) -> list[str]:
        """Flat guideline list used by the checklist passes."""
        guidelines = [line.strip() for line in behavior_rules.splitlines() if line.strip()]
        guidelines.extend(f"{key}: {value}" for key, value in settings.guidelines.items())
        guidelines.extend(
            line.lstrip("- ").strip()
            for line in PersonaPrompt.DIRECTIVES.read().splitlines()
            if line.strip()
        )
        return guidelines

    async def build_prompt(
        self,
        current_message: str,
        emotional_tone: str = NEUTRAL,
        memory_context: StructuredMemory | None = None,
        behavior_rules: str = "",
        previous_messages: Sequence[Message] = (),
        settings: SettingsSnapshot | None = None,
        contents: Sequence[ContentItem] = (),
    ) -> PromptPayload:
        settings = settings or SettingsSnapshot()
        sections = [
            PersonaPrompt.PERSONA.read().format(persona_name=self.config.persona_name),
            _section("PERSONALITY TRAITS", settings.personality),
            _section("LANGUAGE PREFERENCE", settings.language_preference),
            f"Current emotional tone detected: {emotional_tone or NEUTRAL}",
            await self.memory_section(memory_context, current_message),
            self.history_section(previous_messages, memory_context),
            self.rules_section(behavior_rules, settings),
            await self.content_section(contents, current_message),
            _section("COMMUNICATION STYLE", PersonaPrompt.DIRECTIVES.read()),
        ]
        system = "\n\n".join(s for s in sections if s)
        logger.debug("Assembled persona prompt: %d chars", len(system))
        return PromptPayload(system=system, user=f"User message: {current_message}")

    async def build_trigger_prompt(
        self,
        current_message: str,
        trigger: TriggerPhrase,
        memory_context: StructuredMemory | None = None,
        previous_messages: Sequence[Message] = (),
        contents: Sequence[ContentItem] = (),
    ) -> PromptPayload:
        audience = ""
        if trigger.audience.strip():
            audience = (
                f"Target audience: {trigger.audience}\n"
                "Calibrate vocabulary, references, emotional sensitivity and format "
                "to this audience."
            )
        optional = [
            _section("### IDENTITY DEFINITION", trigger.identity),
            _section("### PRIMARY PURPOSE", trigger.purpose),
            _section("### AUDIENCE ANALYSIS (CRITICAL)", audience),
            _section("### EXECUTION PARAMETERS", trigger.task),
            _section("### RESPONSE EXEMPLARS (MODEL THESE PRECISELY)", trigger.examples),
        ]
        supporting = [
            await self.memory_section(memory_context, current_message),
            self.history_section(previous_messages, memory_context),
            await self.content_section(contents, current_message),
        ]
        system = PersonaPrompt.TRIGGER.read().format(
            phrase=trigger.phrase.upper(),
            guidelines=trigger.guidelines,
            personality=trigger.personality,
            optional_sections="\n\n".join(s for s in optional if s),
            supporting_sections="\n\n".join(s for s in supporting if s),
        )
        return PromptPayload(system=system, user=f"User message: {current_message}")
