from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from innervoice.core.memory.config import MemoryConfig
from innervoice.core.memory.models import (
    LegacyMemoryContext,
    MemoryRecord,
    Message,
    StructuredMemory,
    Topic,
)
from innervoice.core.memory.structured import (
    blend_sentiment,
    create_initial_memory,
    migrate_memory,
    record_message,
)

NOW = datetime(2025, 3, 14, 12, 0, tzinfo=UTC)


def _msg(content: str, id: int | None = 1, is_from_user: bool = True) -> Message:
    return Message(id=id, user_id="u1", content=content, is_from_user=is_from_user, timestamp=NOW)


def test_create_initial_memory() -> None:
    memory = create_initial_memory("u1", now=NOW)
    assert memory.version == 1
    assert memory.user_id == "u1"
    assert memory.sentiment == "neutral"
    assert memory.last_interaction == NOW
    assert memory.topics == {}
    assert memory.interactions == []
    assert memory.sentiment_map == {}


class TestMigrateMemory:
    def test_structured_is_returned_unchanged(self) -> None:
        memory = create_initial_memory("u1", now=NOW)
        assert migrate_memory(memory) is memory

    def test_legacy_record_is_wrapped(self) -> None:
        record = MemoryRecord(
            user_id="u1",
            context={
                "lastInteraction": "2024-12-01T10:00:00Z",
                "notes": "Enjoys poetry",
                "sentiment": "wistful",
                "favouriteBand": "Coldplay",
            },
        )
        memory = migrate_memory(record)
        assert memory.version == 1
        assert memory.user_id == "u1"
        assert memory.notes == "Enjoys poetry"
        assert memory.sentiment == "wistful"
        assert memory.last_interaction == datetime(2024, 12, 1, 10, 0, tzinfo=UTC)
        assert memory.legacy_data is not None
        assert memory.legacy_data["favouriteBand"] == "Coldplay"

    def test_legacy_data_keeps_only_stored_keys(self) -> None:
        memory = migrate_memory(MemoryRecord(user_id="u1", context={"foo": 1}))
        assert memory.legacy_data == {"foo": 1}
        assert memory.notes == ""
        assert memory.sentiment == "neutral"

    def test_unparseable_legacy_timestamp_falls_back_to_now(self) -> None:
        legacy = LegacyMemoryContext(last_interaction="yesterday-ish")
        memory = migrate_memory(legacy, user_id="u1")
        assert memory.last_interaction > NOW

    def test_record_without_context_creates_fresh_memory(self) -> None:
        memory = migrate_memory(MemoryRecord(user_id="u9"))
        assert memory.user_id == "u9"
        assert memory.notes == "New user"

    def test_record_with_structured_context(self) -> None:
        record = MemoryRecord(user_id="u1", context=create_initial_memory("u1").to_wire())
        assert migrate_memory(record) is record.context

    def test_bare_legacy_requires_user_id(self) -> None:
        with pytest.raises(ValueError):
            migrate_memory(LegacyMemoryContext(notes="x"))

    @pytest.mark.parametrize(
        "source",
        [
            MemoryRecord(user_id="u1", context={"notes": "legacy", "sentiment": "calm"}),
            MemoryRecord(user_id="u1", context={"version": 1, "userId": "u1"}),
        ],
    )
    def test_migration_is_idempotent(self, source: MemoryRecord) -> None:
        once = migrate_memory(source)
        twice = migrate_memory(once)
        assert twice.to_wire() == once.to_wire()


@pytest.mark.parametrize(
    ("current", "tone", "expected"),
    [
        ("neutral", "happy", "happy"),
        ("happy", "neutral", "happy"),
        ("happy", "sad", "sad"),
        ("neutral", "neutral", "neutral"),
    ],
)
def test_blend_sentiment_is_an_override(current: str, tone: str, expected: str) -> None:
    assert blend_sentiment(current, tone) == expected


class TestRecordMessage:
    def test_first_message_on_empty_memory(self) -> None:
        memory = create_initial_memory("u1", now=NOW)
        msg = _msg("I love hiking and climbing mountains, hiking is great", id=42)

        updated = record_message(memory, msg, "happy", now=NOW)

        assert updated.topics["hiking"].mentions == 1
        assert updated.topics["hiking"].relevance == pytest.approx(0.5)
        assert updated.topics["hiking"].sentiment == "happy"
        assert updated.sentiment == "happy"
        assert updated.sentiment_map == {"42": "happy"}
        assert len(updated.interactions) == 1
        interaction = updated.interactions[0]
        assert interaction.summary == "User discussed: hiking, love, climbing"
        assert interaction.importance == pytest.approx(0.8)
        assert updated.last_interaction == NOW

    def test_input_memory_is_not_mutated(self) -> None:
        memory = create_initial_memory("u1", now=NOW)
        record_message(memory, _msg("gardening tomatoes"), "calm", now=NOW)
        assert memory.topics == {}
        assert memory.interactions == []

    def test_existing_topic_is_reinforced(self) -> None:
        memory = create_initial_memory("u1", now=NOW)
        memory.topics["guitar"] = Topic(
            name="guitar", relevance=0.95, last_discussed=NOW, sentiment="excited", mentions=3
        )

        updated = record_message(memory, _msg("guitar practice"), "neutral", now=NOW)

        topic = updated.topics["guitar"]
        assert topic.mentions == 4
        assert topic.relevance == pytest.approx(1.0)
        # neutral tone keeps the earlier sentiment
        assert topic.sentiment == "excited"

    def test_message_without_topics_and_id(self) -> None:
        memory = create_initial_memory("u1", now=NOW)
        updated = record_message(memory, _msg("ok yes", id=None), "neutral", now=NOW)
        assert updated.sentiment_map == {}
        assert updated.interactions[0].summary == "User discussed: general topics"
        assert updated.interactions[0].importance == pytest.approx(0.5)

    def test_assistant_message_summary(self) -> None:
        memory = create_initial_memory("u1", now=NOW)
        updated = record_message(
            memory, _msg("sunsets matter", is_from_user=False), "neutral", now=NOW
        )
        assert updated.interactions[0].summary.startswith("Assistant discussed:")

    def test_interactions_are_capped(self) -> None:
        memory = create_initial_memory("u1", now=NOW)
        for i in range(25):
            memory = record_message(memory, _msg(f"topic{i} words", id=i), "neutral", now=NOW)
            assert len(memory.interactions) <= 10
        assert len(memory.interactions) == 10
        assert memory.interactions[-1].summary == "User discussed: topic24, words"

    def test_stale_topics_are_swept(self) -> None:
        memory = create_initial_memory("u1", now=NOW)
        memory.topics["chess"] = Topic(
            name="chess", relevance=0.15, last_discussed=NOW - timedelta(days=10)
        )
        updated = record_message(memory, _msg("baking bread"), "neutral", now=NOW)
        assert "chess" not in updated.topics
        assert "baking" in updated.topics

    def test_tone_is_normalized(self) -> None:
        memory = create_initial_memory("u1", now=NOW)
        updated = record_message(memory, _msg("painting"), "  Joyful ", now=NOW)
        assert updated.sentiment == "joyful"

    def test_config_overrides(self) -> None:
        config = MemoryConfig(interactions_cap=2, new_topic_relevance=0.7)
        memory: StructuredMemory = create_initial_memory("u1", now=NOW)
        for i in range(4):
            memory = record_message(memory, _msg("swimming", id=i), "neutral", config, now=NOW)
        assert len(memory.interactions) == 2
        assert memory.topics["swimming"].relevance == pytest.approx(1.0)
