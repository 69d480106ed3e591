from __future__ import annotations

import pytest

from innervoice.core.assembler import PromptAssembler, SettingsSnapshot
from innervoice.core.config import PromptConfig
from innervoice.core.memory.config import MemoryConfig
from innervoice.core.memory.models import (
    ContentItem,
    Setting,
    StructuredMemory,
    Topic,
    TriggerPhrase,
)
from innervoice.core.memory.relevance import RelevanceFilter
from innervoice.core.prompts import PersonaPrompt

SECTION_ORDER = [
    "PERSONALITY TRAITS:",
    "LANGUAGE PREFERENCE:",
    "Current emotional tone detected:",
    "USER MEMORY:",
    "CONVERSATION HISTORY:",
    "BEHAVIOR RULES:",
    "RELEVANT CONTENT:",
    "COMMUNICATION STYLE:",
]


@pytest.fixture
def memory() -> StructuredMemory:
    return StructuredMemory(
        user_id="user1",
        topics={"hiking": Topic(name="hiking", relevance=0.8, sentiment="happy", mentions=3)},
        sentiment="happy",
        notes="Prefers Hinglish",
    )


@pytest.fixture
def settings() -> SettingsSnapshot:
    return SettingsSnapshot.from_settings([
        Setting(key="personality", value="warm, curious"),
        Setting(key="language_preference", value="Hinglish"),
        Setting(key="behavior_rules", value="Mirror greetings"),
        Setting(key="greeting_style", value="Yo first"),
        Setting(key="api_key", value="secret"),
        Setting(key="empty_rule", value="  "),
    ])


def test_settings_snapshot_splits_named_and_custom(settings: SettingsSnapshot) -> None:
    assert settings.personality == "warm, curious"
    assert settings.language_preference == "Hinglish"
    assert settings.behavior_rules == "Mirror greetings"
    assert settings.guidelines == {"greeting_style": "Yo first"}


@pytest.mark.asyncio
async def test_build_prompt_section_order(
    make_llm, memory, settings, conversation_messages
) -> None:
    llm = make_llm("- #1: relevant line")
    assembler = PromptAssembler(RelevanceFilter(llm))

    payload = await assembler.build_prompt(
        "Yo, want to go hiking?",
        emotional_tone="excited",
        memory_context=memory,
        behavior_rules=settings.behavior_rules,
        previous_messages=conversation_messages(4),
        settings=settings,
        contents=[ContentItem(type="microblog", content="Mountains at dawn")],
    )

    system = payload.system
    assert system.startswith(PersonaPrompt.PERSONA.read().format(persona_name="Rex"))
    positions = [system.index(title) for title in SECTION_ORDER]
    assert positions == sorted(positions)
    assert "Current emotional tone detected: excited" in system
    assert "Current emotional state: happy" in system
    assert "- greeting_style: Yo first" in system
    assert "secret" not in system
    assert payload.user == "User message: Yo, want to go hiking?"
    # one filter call for memory, one for content
    assert len(llm.calls) == 2
    assert "Memory List:" in llm.calls[0][0]
    assert "Content List:" in llm.calls[1][0]


@pytest.mark.asyncio
async def test_failed_enrichment_never_aborts_assembly(failing_llm, memory) -> None:
    assembler = PromptAssembler(RelevanceFilter(failing_llm))
    payload = await assembler.build_prompt(
        "hello",
        memory_context=memory,
        contents=[ContentItem(type="reflection", content="On rain")],
    )
    assert "TOPIC: hiking (sentiment: happy, mentioned 3 times)" in payload.system
    assert "NOTE: Prefers Hinglish" in payload.system
    assert "REFLECTION: On rain" in payload.system


@pytest.mark.asyncio
async def test_missing_sources_drop_their_sections(make_llm) -> None:
    llm = make_llm("- unused")
    payload = await PromptAssembler(RelevanceFilter(llm)).build_prompt("hello")
    for title in ("PERSONALITY TRAITS:", "USER MEMORY:", "CONVERSATION HISTORY:",
                  "BEHAVIOR RULES:", "RELEVANT CONTENT:"):
        assert title not in payload.system
    assert "Current emotional tone detected: neutral" in payload.system
    assert "COMMUNICATION STYLE:" in payload.system
    assert llm.calls == []


@pytest.mark.asyncio
async def test_history_is_windowed_and_compressed(make_llm, conversation_messages) -> None:
    config = PromptConfig(persona_name="Mira")
    assembler = PromptAssembler(
        RelevanceFilter(make_llm("- x")), config, MemoryConfig(max_context_tokens=4096)
    )
    section = assembler.history_section(conversation_messages(10), None)
    assert section.startswith("CONVERSATION HISTORY:\n== Conversation Start ==")
    assert "Mira: reply number 10" in section
    assert "(5 messages omitted)" in section


def test_guideline_list_flattens_rules(settings: SettingsSnapshot) -> None:
    guidelines = PromptAssembler.guideline_list("Be kind\n\nStay short", settings)
    assert guidelines[:3] == ["Be kind", "Stay short", "greeting_style: Yo first"]
    assert any(g.startswith("Mirror the user's greeting style") for g in guidelines)


@pytest.mark.asyncio
async def test_trigger_prompt(make_llm, memory, conversation_messages) -> None:
    trigger = TriggerPhrase(
        phrase="poet mode",
        guidelines="Answer in verse",
        personality="dreamy",
        identity="A wandering poet",
        audience="teenagers",
        examples="Roses fade, but you remain",
    )
    assembler = PromptAssembler(RelevanceFilter(make_llm("- #1: hiking")))

    payload = await assembler.build_trigger_prompt(
        "poet mode: write about hiking", trigger, memory, conversation_messages(3)
    )

    system = payload.system
    assert system.startswith("# TRIGGER MODE: POET MODE")
    assert "### GUIDELINES (STRICT ADHERENCE REQUIRED)\nAnswer in verse" in system
    assert "### IDENTITY DEFINITION:\nA wandering poet" in system
    assert "Target audience: teenagers" in system
    assert "PRIMARY PURPOSE" not in system
    assert "EXECUTION PARAMETERS" not in system
    assert "USER MEMORY:" in system
    assert "CONVERSATION HISTORY:" in system
    assert "RELEVANT CONTENT:" not in system
    assert payload.user == "User message: poet mode: write about hiking"
