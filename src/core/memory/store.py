"""Per-agent memory cache backed by the action log.

The store is an explicit object, constructed once per application context
and shared by the retriever and the reflection engine. The action log stays
the source of truth; the cache is rebuilt from it whenever the TTL lapses.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import TYPE_CHECKING

from core.config import MemoryConfig
from core.memory.builder import build_memory
from core.memory.types import Memory, OutcomeRecord

if TYPE_CHECKING:
    from core.db.d1 import ActionLog

logger = logging.getLogger(__name__)


class MemoryStore:
    """Bounded, TTL-refreshed collection of memories per agent.

    Collections are chronological (oldest first) and capped at
    ``config.max_memories_per_agent``. All mutations are synchronous, so on
    a single event loop an append and its trim cannot interleave with
    another coroutine. A reload racing with ``record`` may drop the
    in-flight append; the next reload recovers it from the log.
    """

    def __init__(
        self,
        action_log: ActionLog,
        config: MemoryConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the store.

        Args:
            action_log: Source of completed executions
            config: Cache bounds (default: MemoryConfig())
            clock: Monotonic seconds source, injectable for TTL tests
        """
        self.action_log = action_log
        self.config = config or MemoryConfig()
        self._clock = clock
        self._cache: dict[str, list[Memory]] = {}
        self._last_load: dict[str, float] = {}

    def record(
        self,
        agent_id: str,
        record: OutcomeRecord,
        market_context: str | None = None,
    ) -> Memory:
        """Build a memory from an outcome and append it to the agent's cache.

        Args:
            agent_id: Agent the outcome belongs to
            record: Completed execution (SUCCESS or FAILED)
            market_context: Optional market context at trade time

        Returns:
            The new Memory
        """
        memory = build_memory(record, market_context)

        memories = self._cache.setdefault(agent_id, [])
        memories.append(memory)
        overflow = len(memories) - self.config.max_memories_per_agent
        if overflow > 0:
            del memories[:overflow]

        return memory

    def _is_fresh(self, agent_id: str) -> bool:
        last_load = self._last_load.get(agent_id)
        if last_load is None or agent_id not in self._cache:
            return False
        return self._clock() - last_load < self.config.cache_ttl_seconds

    async def load(self, agent_id: str) -> list[Memory]:
        """Return the agent's memories, reloading from the action log when stale.

        A failed log fetch degrades to whatever is cached (possibly nothing)
        and never raises.
        """
        if self._is_fresh(agent_id):
            return list(self._cache[agent_id])

        now = self._clock()
        try:
            records = await self.action_log.get_recent_executions(agent_id, limit=self.config.load_limit)
        except Exception as e:
            logger.warning(f"Failed to load trade memories for {agent_id}: {e}")
            return list(self._cache.get(agent_id, []))

        # Log returns newest first; cache is chronological
        memories = [build_memory(r) for r in records]
        memories.reverse()
        del memories[: max(0, len(memories) - self.config.max_memories_per_agent)]

        self._cache[agent_id] = memories
        self._last_load[agent_id] = now
        logger.debug(f"Loaded {len(memories)} memories for {agent_id}")

        return list(memories)

    def cached(self, agent_id: str) -> list[Memory]:
        """Current cache contents without triggering a reload."""
        return list(self._cache.get(agent_id, []))

    def find(self, agent_id: str, memory_id: str) -> Memory | None:
        """Locate a cached memory by id."""
        for memory in self._cache.get(agent_id, []):
            if memory.id == memory_id:
                return memory
        return None

    def clear(self, agent_id: str | None = None) -> None:
        """Clear one agent's cache, or every agent's when ``agent_id`` is None."""
        if agent_id is not None:
            self._cache.pop(agent_id, None)
            self._last_load.pop(agent_id, None)
        else:
            self._cache.clear()
            self._last_load.clear()
