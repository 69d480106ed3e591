from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

from innervoice.core.assembler import PromptAssembler, PromptPayload, SettingsSnapshot
from innervoice.core.config import PromptConfig
from innervoice.core.memory import MemoryManager
from innervoice.core.memory.config import MemoryConfig
from innervoice.core.memory.models import (
    NEUTRAL,
    ContentItem,
    MemoryRecord,
    Message,
    Setting,
    StructuredMemory,
    TriggerPhrase,
)
from innervoice.core.memory.relevance import GuidelineChecker, RelevanceFilter
from innervoice.core.memory.tone import ToneAnalyzer
from innervoice.core.prompts import PersonaPrompt
from innervoice.core.storage import Storage
from innervoice.core.triggers import detect_trigger_phrase

logger = logging.getLogger(__name__)

T = TypeVar("T")

FALLBACK_REPLY = (
    "I seem to be having trouble connecting with my thoughts right now. "
    "Can you give me a moment?"
)


class GenerationError(Exception):
    """The reply-producing collaborator call failed; the turn has no answer."""

    def __init__(self, stage: str) -> None:
        super().__init__(f"Reply generation failed at stage: {stage}")
        self.stage = stage


class ReplyGenerator:
    """Turn a prompt payload into the persona's reply.

    Single-step by default. With ``multi_pass`` the reply goes through
    plan, draft and validate calls; any of them failing fails the turn.
    Guideline enforcement degrades to the unchecked reply instead.
    """

    def __init__(
        self,
        llm_caller: Callable[[str, str], Awaitable[str]],
        config: PromptConfig | None = None,
        guideline_checker: GuidelineChecker | None = None,
    ) -> None:
        self._llm_caller = llm_caller
        self.config = config or PromptConfig()
        self._checker = guideline_checker or GuidelineChecker(llm_caller)

    async def _call(self, stage: str, system: str, user: str) -> str:
        try:
            text = await self._llm_caller(system, user)
        except Exception as exc:
            raise GenerationError(stage) from exc
        if not text or not text.strip():
            raise GenerationError(stage)
        return text.strip()

    async def generate(
        self,
        payload: PromptPayload,
        guidelines: Sequence[str] = (),
        user_message: str = "",
    ) -> str:
        if self.config.multi_pass:
            plan = await self._call(
                "plan", f"{payload.system}\n\n{PersonaPrompt.PLAN.read()}", payload.user
            )
            draft = await self._call(
                "draft",
                f"{payload.system}\n\n{PersonaPrompt.DRAFT.read().format(plan=plan)}",
                payload.user,
            )
            reply = await self._call(
                "validate",
                f"{payload.system}\n\n{PersonaPrompt.VALIDATE.read().format(draft=draft)}",
                payload.user,
            )
        else:
            reply = await self._call("reply", payload.system, payload.user)

        if self.config.enforce_guidelines and guidelines:
            checklist = await self._checker.arrange_guidelines(guidelines, user_message)
            review = await self._checker.enforce_guidelines(checklist, reply)
            if not review.compliant:
                logger.info("Reply rewritten to satisfy guidelines: %s", review.corrections[:200])
            reply = review.improved
        return reply


def _ensure_latest(history: list[Message], message: Message) -> list[Message]:
    if message.id is None or not any(m.id == message.id for m in history):
        return [*history, message]
    return history


class Conversation:
    """Runs one persona turn end to end against the storage collaborator."""

    def __init__(
        self,
        storage: Storage,
        llm_caller: Callable[[str, str], Awaitable[str]],
        memory_config: MemoryConfig | None = None,
        prompt_config: PromptConfig | None = None,
    ) -> None:
        self.prompt_config = prompt_config or PromptConfig()
        self._storage = storage
        self.memory = MemoryManager(storage, memory_config)
        self._tone = ToneAnalyzer(llm_caller)
        self._assembler = PromptAssembler(
            RelevanceFilter(llm_caller), self.prompt_config, self.memory.config
        )
        self._generator = ReplyGenerator(llm_caller, self.prompt_config)

    async def _persist(self, message: Message) -> Message:
        try:
            return await self._storage.put_message(message)
        except Exception:
            logger.warning("Failed to save message for %s", message.user_id, exc_info=True)
            return message

    @staticmethod
    def _or_default(result: T | BaseException, default: T, label: str) -> T:
        if isinstance(result, BaseException):
            logger.warning("Could not fetch %s", label, exc_info=result)
            return default
        return result

    async def _fetch_context(
        self, user_id: str
    ) -> tuple[list[Setting], list[ContentItem], list[TriggerPhrase], list[Message]]:
        settings, contents, triggers, history = await asyncio.gather(
            self._storage.get_settings(),
            self._storage.get_content_library(),
            self._storage.get_trigger_phrases(),
            self._storage.get_messages(user_id),
            return_exceptions=True,
        )
        return (
            self._or_default(settings, [], "settings"),
            self._or_default(contents, [], "content library"),
            self._or_default(triggers, [], "trigger phrases"),
            self._or_default(history, [], "message history"),
        )

    async def _reply(
        self,
        content: str,
        tone: str,
        memory: StructuredMemory | None,
        history: list[Message],
        settings: SettingsSnapshot,
        contents: list[ContentItem],
        triggers: list[TriggerPhrase],
    ) -> str:
        trigger = detect_trigger_phrase(content, triggers)
        if trigger is not None:
            logger.info("Trigger mode %r activated", trigger.phrase)
            payload = await self._assembler.build_trigger_prompt(
                content, trigger, memory, history, contents
            )
            guidelines = [g for g in trigger.guidelines.splitlines() if g.strip()]
        else:
            payload = await self._assembler.build_prompt(
                content,
                emotional_tone=tone,
                memory_context=memory,
                behavior_rules=settings.behavior_rules,
                previous_messages=history,
                settings=settings,
                contents=contents,
            )
            guidelines = self._assembler.guideline_list(settings.behavior_rules, settings)
        return await self._generator.generate(payload, guidelines, content)

    async def send_message(self, user_id: str, content: str) -> Message:
        """Answer ``content``; returns the persona's reply message.

        Enrichment and persistence problems only degrade the reply. When no
        reply can be generated the fixed ``FALLBACK_REPLY`` is returned
        unsaved.
        """
        user_message = await self._persist(
            Message(user_id=user_id, content=content, is_from_user=True)
        )
        tone = await self._tone.analyze(content)

        existing = await self.memory.load(user_id)
        record = await self.memory.update_memory_from_message(
            user_id, user_message, tone, existing
        )
        memory = self._current_memory(user_id, record, existing)

        settings, contents, triggers, history = await self._fetch_context(user_id)
        history = _ensure_latest(history, user_message)

        try:
            reply_text = await self._reply(
                content,
                tone,
                memory,
                history,
                SettingsSnapshot.from_settings(settings),
                contents,
                triggers,
            )
        except Exception:
            logger.warning("Reply generation failed for %s", user_id, exc_info=True)
            return Message(user_id=user_id, content=FALLBACK_REPLY, is_from_user=False)

        reply = await self._persist(
            Message(user_id=user_id, content=reply_text, is_from_user=False)
        )
        await self.memory.update_memory_from_message(
            user_id, reply, NEUTRAL, record or memory
        )
        return reply

    def _current_memory(
        self,
        user_id: str,
        record: MemoryRecord | None,
        existing: MemoryRecord | None,
    ) -> StructuredMemory:
        if record is not None and isinstance(record.context, StructuredMemory):
            return record.context
        return self.memory.resolve(user_id, existing)
