"""Storage collaborators: an async protocol plus in-memory and SQLite backends.

Every backend raises ``StorageError`` for any failure so callers can treat
persistence problems uniformly as "unavailable this turn".
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
import threading
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Any, Protocol, TypeVar, runtime_checkable

from innervoice.core.memory.compression import compact_dumps
from innervoice.core.memory.models import (
    ContentItem,
    MemoryContext,
    MemoryRecord,
    Message,
    Setting,
    TriggerPhrase,
    utcnow,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_SETTINGS: dict[str, str] = {
    "greeting_style": "Hey there! I'm Rex. How can I connect with you today?",
    "behavior_rules": (
        "Mirror user's greeting style, switch to Hinglish if user uses it, "
        "foster emotional connection, read between the lines"
    ),
}


class StorageError(Exception):
    """A storage operation failed."""


@runtime_checkable
class Storage(Protocol):
    async def get_memory(self, user_id: str) -> MemoryRecord | None: ...

    async def put_memory(self, user_id: str, context: MemoryContext) -> MemoryRecord: ...

    async def get_messages(self, user_id: str, limit: int = 0) -> list[Message]: ...

    async def put_message(self, message: Message) -> Message: ...

    async def get_settings(self) -> list[Setting]: ...

    async def get_content_library(self) -> list[ContentItem]: ...

    async def get_trigger_phrases(self) -> list[TriggerPhrase]: ...


class InMemoryStorage:
    """Process-local storage, seeded with the default persona settings."""

    def __init__(self, settings: dict[str, str] | None = None) -> None:
        self._messages: list[Message] = []
        self._memories: dict[str, MemoryRecord] = {}
        self._settings: dict[str, Setting] = {}
        self._contents: list[ContentItem] = []
        self._triggers: list[TriggerPhrase] = []
        self._next_message_id = 1
        self._next_memory_id = 1
        for key, value in (DEFAULT_SETTINGS if settings is None else settings).items():
            self._settings[key] = Setting(id=len(self._settings) + 1, key=key, value=value)

    async def get_memory(self, user_id: str) -> MemoryRecord | None:
        return self._memories.get(user_id)

    async def put_memory(self, user_id: str, context: MemoryContext) -> MemoryRecord:
        existing = self._memories.get(user_id)
        record = MemoryRecord(
            id=existing.id if existing else self._next_memory_id,
            user_id=user_id,
            context=context.model_copy(deep=True),
            last_updated=utcnow(),
        )
        if existing is None:
            self._next_memory_id += 1
        self._memories[user_id] = record
        return record

    async def get_messages(self, user_id: str, limit: int = 0) -> list[Message]:
        messages = [m for m in self._messages if m.user_id == user_id]
        return messages[-limit:] if limit > 0 else messages

    async def put_message(self, message: Message) -> Message:
        saved = message.model_copy(update={"id": self._next_message_id, "timestamp": utcnow()})
        self._next_message_id += 1
        self._messages.append(saved)
        return saved

    async def get_settings(self) -> list[Setting]:
        return list(self._settings.values())

    async def put_setting(self, key: str, value: str) -> Setting:
        existing = self._settings.get(key)
        setting = Setting(id=existing.id if existing else len(self._settings) + 1, key=key, value=value)
        self._settings[key] = setting
        return setting

    async def get_content_library(self) -> list[ContentItem]:
        return list(self._contents)

    async def add_content(self, type: str, content: str) -> ContentItem:
        item = ContentItem(id=len(self._contents) + 1, type=type, content=content)
        self._contents.append(item)
        return item

    async def get_trigger_phrases(self) -> list[TriggerPhrase]:
        return list(self._triggers)

    async def add_trigger_phrase(self, trigger: TriggerPhrase) -> TriggerPhrase:
        saved = trigger.model_copy(update={"id": len(self._triggers) + 1})
        self._triggers.append(saved)
        return saved


_INIT_SQL = """
CREATE TABLE IF NOT EXISTS messages (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id      TEXT NOT NULL,
    content      TEXT NOT NULL,
    is_from_user INTEGER NOT NULL,
    timestamp    TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_messages_user ON messages(user_id, id);

CREATE TABLE IF NOT EXISTS memories (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id      TEXT NOT NULL UNIQUE,
    context      TEXT NOT NULL,
    last_updated TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS settings (
    id    INTEGER PRIMARY KEY AUTOINCREMENT,
    key   TEXT NOT NULL UNIQUE,
    value TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS contents (
    id        INTEGER PRIMARY KEY AUTOINCREMENT,
    type      TEXT NOT NULL,
    content   TEXT NOT NULL,
    timestamp TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS trigger_phrases (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    phrase      TEXT NOT NULL UNIQUE,
    guidelines  TEXT NOT NULL,
    personality TEXT NOT NULL,
    examples    TEXT DEFAULT '',
    active      INTEGER DEFAULT 1,
    identity    TEXT DEFAULT '',
    purpose     TEXT DEFAULT '',
    audience    TEXT DEFAULT '',
    task        TEXT DEFAULT ''
);
"""

_TRIGGER_COLUMNS = (
    "phrase", "guidelines", "personality", "examples", "active",
    "identity", "purpose", "audience", "task",
)


class SQLiteStorage:
    """SQLite-backed storage. Blocking calls run in a worker thread.

    Use ``":memory:"`` as ``db_path`` for an in-process database (testing).
    """

    def __init__(self, db_path: str | Path, seed_defaults: bool = True) -> None:
        self._db_path = str(db_path)
        if self._db_path != ":memory:":
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(self._db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA busy_timeout=5000")
        self._conn.executescript(_INIT_SQL)
        if seed_defaults:
            self._conn.executemany(
                "INSERT OR IGNORE INTO settings (key, value) VALUES (?, ?)",
                list(DEFAULT_SETTINGS.items()),
            )
        self._conn.commit()

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def _run_sync(self, fn: Callable[[sqlite3.Connection], T]) -> T:
        with self._lock:
            try:
                return fn(self._conn)
            except sqlite3.Error as exc:
                self._conn.rollback()
                raise StorageError(str(exc)) from exc

    async def _run(self, fn: Callable[[sqlite3.Connection], T]) -> T:
        return await asyncio.to_thread(self._run_sync, fn)

    # -- Memory --

    async def get_memory(self, user_id: str) -> MemoryRecord | None:
        def _do(conn: sqlite3.Connection) -> sqlite3.Row | None:
            return conn.execute(
                "SELECT id, user_id, context, last_updated FROM memories WHERE user_id = ?",
                (user_id,),
            ).fetchone()

        row = await self._run(_do)
        if row is None:
            return None
        try:
            return MemoryRecord(
                id=row["id"],
                user_id=row["user_id"],
                context=json.loads(row["context"]),
                last_updated=datetime.fromisoformat(row["last_updated"]),
            )
        except ValueError as exc:
            raise StorageError(f"Corrupt memory row for {user_id}: {exc}") from exc

    async def put_memory(self, user_id: str, context: MemoryContext) -> MemoryRecord:
        payload = compact_dumps(context.to_wire())
        now = utcnow().isoformat()

        def _do(conn: sqlite3.Connection) -> None:
            conn.execute(
                """INSERT INTO memories (user_id, context, last_updated) VALUES (?, ?, ?)
                   ON CONFLICT(user_id) DO UPDATE SET context = excluded.context,
                                                      last_updated = excluded.last_updated""",
                (user_id, payload, now),
            )
            conn.commit()

        await self._run(_do)
        record = await self.get_memory(user_id)
        if record is None:
            raise StorageError(f"Memory for {user_id} vanished after write")
        return record

    # -- Messages --

    @staticmethod
    def _message_from_row(row: sqlite3.Row) -> Message:
        return Message(
            id=row["id"],
            user_id=row["user_id"],
            content=row["content"],
            is_from_user=bool(row["is_from_user"]),
            timestamp=datetime.fromisoformat(row["timestamp"]),
        )

    async def get_messages(self, user_id: str, limit: int = 0) -> list[Message]:
        def _do(conn: sqlite3.Connection) -> list[sqlite3.Row]:
            if limit > 0:
                rows = conn.execute(
                    "SELECT * FROM messages WHERE user_id = ? ORDER BY id DESC LIMIT ?",
                    (user_id, limit),
                ).fetchall()
                return list(reversed(rows))
            return conn.execute(
                "SELECT * FROM messages WHERE user_id = ? ORDER BY id ASC", (user_id,)
            ).fetchall()

        return [self._message_from_row(r) for r in await self._run(_do)]

    async def put_message(self, message: Message) -> Message:
        timestamp = utcnow()

        def _do(conn: sqlite3.Connection) -> int:
            cursor = conn.execute(
                "INSERT INTO messages (user_id, content, is_from_user, timestamp) VALUES (?, ?, ?, ?)",
                (message.user_id, message.content, int(message.is_from_user), timestamp.isoformat()),
            )
            conn.commit()
            return int(cursor.lastrowid)

        message_id = await self._run(_do)
        return message.model_copy(update={"id": message_id, "timestamp": timestamp})

    # -- Settings, content, triggers --

    async def get_settings(self) -> list[Setting]:
        rows = await self._run(
            lambda conn: conn.execute("SELECT id, key, value FROM settings ORDER BY id").fetchall()
        )
        return [Setting(id=r["id"], key=r["key"], value=r["value"]) for r in rows]

    async def put_setting(self, key: str, value: str) -> Setting:
        def _do(conn: sqlite3.Connection) -> sqlite3.Row:
            conn.execute(
                """INSERT INTO settings (key, value) VALUES (?, ?)
                   ON CONFLICT(key) DO UPDATE SET value = excluded.value""",
                (key, value),
            )
            conn.commit()
            return conn.execute("SELECT id, key, value FROM settings WHERE key = ?", (key,)).fetchone()

        row = await self._run(_do)
        return Setting(id=row["id"], key=row["key"], value=row["value"])

    async def get_content_library(self) -> list[ContentItem]:
        rows = await self._run(
            lambda conn: conn.execute("SELECT * FROM contents ORDER BY id").fetchall()
        )
        return [
            ContentItem(
                id=r["id"],
                type=r["type"],
                content=r["content"],
                timestamp=datetime.fromisoformat(r["timestamp"]),
            )
            for r in rows
        ]

    async def add_content(self, type: str, content: str) -> ContentItem:
        timestamp = utcnow()

        def _do(conn: sqlite3.Connection) -> int:
            cursor = conn.execute(
                "INSERT INTO contents (type, content, timestamp) VALUES (?, ?, ?)",
                (type, content, timestamp.isoformat()),
            )
            conn.commit()
            return int(cursor.lastrowid)

        item_id = await self._run(_do)
        return ContentItem(id=item_id, type=type, content=content, timestamp=timestamp)

    async def get_trigger_phrases(self) -> list[TriggerPhrase]:
        rows = await self._run(
            lambda conn: conn.execute("SELECT * FROM trigger_phrases ORDER BY id").fetchall()
        )
        return [TriggerPhrase(**_trigger_row(r)) for r in rows]

    async def add_trigger_phrase(self, trigger: TriggerPhrase) -> TriggerPhrase:
        values = trigger.model_dump(include=set(_TRIGGER_COLUMNS))
        values["active"] = int(values["active"])

        def _do(conn: sqlite3.Connection) -> int:
            cursor = conn.execute(
                f"INSERT INTO trigger_phrases ({', '.join(_TRIGGER_COLUMNS)}) "
                f"VALUES ({', '.join('?' for _ in _TRIGGER_COLUMNS)})",
                tuple(values[c] for c in _TRIGGER_COLUMNS),
            )
            conn.commit()
            return int(cursor.lastrowid)

        trigger_id = await self._run(_do)
        return trigger.model_copy(update={"id": trigger_id})


def _trigger_row(row: sqlite3.Row) -> dict[str, Any]:
    data = {key: row[key] for key in row.keys()}
    data["active"] = bool(data["active"])
    return data
