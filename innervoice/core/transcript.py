"""Client-side transcript with optimistic messages.

A message is shown as ``PendingMessage`` as soon as it is sent and replaced
by the server's ``ConfirmedMessage`` once persisted. Reconciliation matches
on content and role, not on list position.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

from innervoice.core.memory.models import Message, utcnow


@dataclass(frozen=True)
class PendingMessage:
    user_id: str
    content: str
    is_from_user: bool
    created_at: datetime = field(default_factory=utcnow)
    kind: Literal["pending"] = "pending"


@dataclass(frozen=True)
class ConfirmedMessage:
    message: Message
    kind: Literal["confirmed"] = "confirmed"

    @property
    def content(self) -> str:
        return self.message.content

    @property
    def is_from_user(self) -> bool:
        return self.message.is_from_user


TranscriptEntry = PendingMessage | ConfirmedMessage


@dataclass(frozen=True)
class MessageSent:
    pending: PendingMessage


@dataclass(frozen=True)
class MessagesConfirmed:
    messages: tuple[Message, ...]


@dataclass(frozen=True)
class SendFailed:
    """The turn failed; the typed message stays pending next to the fallback."""

    fallback: Message | None = None


TranscriptEvent = MessageSent | MessagesConfirmed | SendFailed


def _matches(entry: TranscriptEntry, message: Message) -> bool:
    return (
        isinstance(entry, PendingMessage)
        and entry.content == message.content
        and entry.is_from_user == message.is_from_user
    )


def reduce_transcript(
    state: tuple[TranscriptEntry, ...], event: TranscriptEvent
) -> tuple[TranscriptEntry, ...]:
    """Return the transcript after applying ``event``."""
    match event:
        case MessageSent(pending=pending):
            return (*state, pending)
        case MessagesConfirmed(messages=messages):
            entries = list(state)
            for message in messages:
                for i, entry in enumerate(entries):
                    if _matches(entry, message):
                        entries[i] = ConfirmedMessage(message)
                        break
                else:
                    entries.append(ConfirmedMessage(message))
            return tuple(entries)
        case SendFailed(fallback=fallback):
            entries = list(state)
            if fallback is not None:
                entries.append(ConfirmedMessage(fallback))
            return tuple(entries)
    raise TypeError(f"Unknown transcript event: {event!r}")
