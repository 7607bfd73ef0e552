"""Trade memory facade.

One ``TradeMemorySystem`` per application context wires the store,
retriever, prompt rendering and reflection together and is passed to the
components that need it (trade execution, advisor).
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from core.ai.generation import build_text_generator
from core.config import Settings
from core.memory.prompts import (
    build_current_situation,
    format_memories_for_prompt,
    format_stats_for_prompt,
)
from core.memory.retriever import MemoryRetriever
from core.memory.store import MemoryStore
from core.memory.types import Memory, OutcomeRecord, TradeStats
from core.reflection.engine import TradeReflector

if TYPE_CHECKING:
    from core.ai.generation import TextGenerator
    from core.db.d1 import ActionLog

logger = logging.getLogger(__name__)


class TradeMemorySystem:
    """Record outcomes, recall relevant lessons, and render them for prompts.

    Usage:
        system = TradeMemorySystem.from_env(D1ActionLog(env.DB), env)

        memory = system.record_outcome(agent_id, record, market_context)
        system.reflect_in_background(agent_id, memory, market_context)

        situation = system.build_situation_text("BUY", "TKN", "momentum", 0.8, "medium")
        memories = await system.retrieve(agent_id, situation)
        prompt_block = system.format_for_prompt(memories)
    """

    def __init__(
        self,
        action_log: ActionLog,
        generator: TextGenerator | None = None,
        settings: Settings | None = None,
    ):
        self.settings = settings or Settings()
        self.store = MemoryStore(action_log, self.settings.memory)
        self.retriever = MemoryRetriever(self.store)
        self.reflector = (
            TradeReflector(self.store, generator, self.settings.reflection) if generator is not None else None
        )

    @classmethod
    def from_env(cls, action_log: ActionLog, env: Any | None = None) -> TradeMemorySystem:
        """Build a system with providers configured from the environment."""
        settings = Settings.from_env(env)
        generator = build_text_generator(settings.providers) if settings.providers else None
        if generator is None:
            logger.info("No text generation providers configured, reflection disabled")
        return cls(action_log, generator=generator, settings=settings)

    def record_outcome(
        self,
        agent_id: str,
        record: OutcomeRecord,
        market_context: str | None = None,
    ) -> Memory:
        """Store a completed trade as a memory."""
        return self.store.record(agent_id, record, market_context)

    async def retrieve(self, agent_id: str, situation: str, top_k: int | None = None) -> list[Memory]:
        """Memories most relevant to the situation, best first."""
        if top_k is None:
            top_k = self.settings.memory.default_top_k
        return await self.retriever.retrieve(agent_id, situation, top_k)

    def format_for_prompt(self, memories: list[Memory]) -> str:
        return format_memories_for_prompt(memories)

    def build_situation_text(
        self,
        action: str,
        token_symbol: str,
        strategy: str,
        confidence: float,
        risk_level: str,
        market_metrics: Mapping[str, Mapping[str, Any]] | None = None,
    ) -> str:
        return build_current_situation(action, token_symbol, strategy, confidence, risk_level, market_metrics)

    async def get_stats(self, agent_id: str) -> TradeStats:
        return await self.retriever.get_stats(agent_id)

    async def reflect(
        self,
        agent_id: str,
        memory: Memory,
        market_context: str | None = None,
    ) -> str | None:
        """LLM reflection on a trade; None when disabled or on failure."""
        if self.reflector is None:
            return None
        return await self.reflector.reflect(agent_id, memory, market_context)

    def reflect_in_background(
        self,
        agent_id: str,
        memory: Memory,
        market_context: str | None = None,
    ) -> asyncio.Task | None:
        """Schedule a reflection without waiting for it."""
        if self.reflector is None:
            return None
        return self.reflector.reflect_in_background(agent_id, memory, market_context)

    async def build_memory_context(self, agent_id: str, situation: str, top_k: int | None = None) -> str:
        """Lessons block plus trade history for the advisor prompt.

        Never raises; an unavailable memory degrades to an empty string.
        """
        try:
            memories = await self.retrieve(agent_id, situation, top_k)
            stats = await self.get_stats(agent_id)
        except Exception as e:
            logger.warning(f"Memory context unavailable for {agent_id}: {e}")
            return ""

        blocks = [format_memories_for_prompt(memories), format_stats_for_prompt(stats)]
        return "\n".join(block for block in blocks if block)

    def clear_cache(self, agent_id: str | None = None) -> None:
        self.store.clear(agent_id)
