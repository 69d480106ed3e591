from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from innervoice.core.memory.config import MemoryConfig
from innervoice.core.memory.decay import calculate_memory_health
from innervoice.core.memory.models import (
    LegacyMemoryContext,
    MemoryRecord,
    Message,
    StructuredMemory,
)
from innervoice.core.memory.structured import (
    create_initial_memory,
    migrate_memory,
    record_message,
)

if TYPE_CHECKING:
    from innervoice.core.storage import Storage

logger = logging.getLogger(__name__)

__all__ = ["MemoryConfig", "MemoryManager", "MemoryMetrics"]


@dataclass
class MemoryMetrics:
    """Per-process counters for memory operations."""

    loads_failed: int = 0
    migrations: int = 0
    updates_persisted: int = 0
    updates_failed: int = 0


class MemoryManager:
    """Facade over the structured memory of every user: load, update, persist."""

    def __init__(self, storage: Storage, config: MemoryConfig | None = None) -> None:
        self.config = config or MemoryConfig()
        self.metrics = MemoryMetrics()
        self._storage = storage

    async def load(self, user_id: str) -> MemoryRecord | None:
        """Fetch the stored record; ``None`` when absent or unreachable."""
        try:
            return await self._storage.get_memory(user_id)
        except Exception:
            self.metrics.loads_failed += 1
            logger.warning("Memory load failed for %s", user_id, exc_info=True)
            return None

    def resolve(
        self,
        user_id: str,
        existing: MemoryRecord | StructuredMemory | None,
    ) -> StructuredMemory:
        """Migrate whatever is stored, or start a fresh memory."""
        if existing is None:
            return create_initial_memory(user_id)
        if isinstance(existing, MemoryRecord) and isinstance(
            existing.context, LegacyMemoryContext
        ):
            self.metrics.migrations += 1
            logger.info("Migrating legacy memory for %s", user_id)
        return migrate_memory(existing)

    async def update_memory_from_message(
        self,
        user_id: str,
        message: Message,
        emotional_tone: str,
        existing: MemoryRecord | StructuredMemory | None = None,
    ) -> MemoryRecord | None:
        """Fold ``message`` into the user's memory and persist it.

        Returns the stored record, or ``None`` when the write failed; the
        conversation carries on without this update.
        """
        try:
            memory = record_message(
                self.resolve(user_id, existing), message, emotional_tone, self.config
            )
            record = await self._storage.put_memory(user_id, memory)
        except Exception:
            self.metrics.updates_failed += 1
            logger.warning("Failed to update memory for %s", user_id, exc_info=True)
            return None
        self.metrics.updates_persisted += 1
        return record

    def health(self, memory: StructuredMemory) -> float:
        return calculate_memory_health(memory, decay_rate=self.config.decay_rate)
