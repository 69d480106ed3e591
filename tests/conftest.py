"""Shared fixtures: scripted LLM callers, fixed clocks and message factories."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime, timedelta

import pytest

from innervoice.core.memory.models import Message

FIXED_NOW = datetime(2025, 3, 14, 12, 0, tzinfo=UTC)


class ScriptedLLM:
    """Async LLM stand-in that records calls and replays responses in order.

    A response that is an exception instance is raised instead of returned.
    """

    def __init__(self, *responses: str | Exception) -> None:
        self._responses = list(responses)
        self.calls: list[tuple[str, str]] = []

    async def __call__(self, system: str, user: str) -> str:
        self.calls.append((system, user))
        if not self._responses:
            raise RuntimeError("no scripted response left")
        response = self._responses.pop(0) if len(self._responses) > 1 else self._responses[0]
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def make_llm() -> Callable[..., ScriptedLLM]:
    def _make(*responses: str | Exception) -> ScriptedLLM:
        return ScriptedLLM(*responses)

    return _make


@pytest.fixture
def failing_llm() -> ScriptedLLM:
    return ScriptedLLM(RuntimeError("LLM call failed"))


@pytest.fixture
def make_message() -> Callable[..., Message]:
    def _make(
        content: str,
        is_from_user: bool = True,
        id: int | None = None,
        user_id: str = "user1",
        minutes_ago: int = 0,
    ) -> Message:
        return Message(
            id=id,
            user_id=user_id,
            content=content,
            is_from_user=is_from_user,
            timestamp=FIXED_NOW - timedelta(minutes=minutes_ago),
        )

    return _make


@pytest.fixture
def conversation_messages(make_message) -> Callable[[int], list[Message]]:
    """``n`` alternating user/assistant messages with ids 1..n."""

    def _make(n: int) -> list[Message]:
        return [
            make_message(
                f"message number {i} about hiking" if i % 2 else f"reply number {i}",
                is_from_user=bool(i % 2),
                id=i,
                minutes_ago=n - i,
            )
            for i in range(1, n + 1)
        ]

    return _make
