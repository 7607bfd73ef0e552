"""Reflection engine: LLM-generated lessons for completed trades.

After a trade is recorded, the reflector asks a text generation provider
what the agent should learn from it and overwrites the rule-based lesson in
the memory cache. The rule-based lesson stays authoritative whenever the
call fails; reflection never raises to its caller.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from core.ai.generation import GenerationOptions
from core.config import ReflectionConfig

if TYPE_CHECKING:
    from core.ai.generation import TextGenerator
    from core.memory.store import MemoryStore
    from core.memory.types import Memory

logger = logging.getLogger(__name__)


REFLECTION_SYSTEM = """You are an expert trading analyst reviewing a completed on-chain token trade.
Your goal is to extract concise, actionable lessons from this trade outcome.

Analyze:
1. Was the trade decision correct given the market conditions?
2. What factors contributed to the outcome (positive or negative)?
3. What should the agent do differently in similar situations?

Keep your response to 2-3 sentences maximum. Be specific and actionable.
Focus on patterns that can improve future trading decisions.

Examples of good lessons:
- "BUY on RSI=72 resulted in loss. Wait for RSI<65 before buying high-momentum tokens."
- "SELL at bonding curve 88% was correctly timed. Continue pre-graduation exits above 85%."
- "Small position (0.5 MON) on low-volume token yielded negligible profit. Increase minimum position size to 2 MON.\""""

REFLECTION_INSTRUCTION = "Provide a concise lesson (2-3 sentences) for the agent to improve future decisions."

# Market context lines worth showing the model
REFLECTION_CONTEXT_MARKERS: tuple[str, ...] = (
    "Price:",
    "RSI",
    "MACD",
    "Volume",
    "Confidence",
    "Bollinger",
    "priceChange",
    "Bonding",
)


def build_reflection_prompt(
    memory: Memory,
    market_context: str | None = None,
    max_context_lines: int = 10,
) -> str:
    """User prompt describing the trade and its market context."""
    lines = [
        f"Trade: {memory.action}",
        f"Outcome: {memory.outcome}",
        f"PnL: ${memory.pnl_usd:.4f}",
        f"Result: {'PROFITABLE' if memory.profitable else 'LOSS'}",
    ]

    if market_context:
        key_lines = [
            line
            for line in market_context.split("\n")
            if any(marker in line for marker in REFLECTION_CONTEXT_MARKERS)
        ]
        lines.append("")
        lines.append("Market conditions at time of trade:")
        lines.extend(key_lines[:max_context_lines])

    lines.append("")
    lines.append(REFLECTION_INSTRUCTION)

    return "\n".join(lines)


class TradeReflector:
    """Generates reflections and writes them back into the memory store.

    The target memory is located by its id, which is the execution id it
    was built from, so the write-back still lands after a cache reload
    rebuilt the entry.
    """

    def __init__(
        self,
        store: MemoryStore,
        generator: TextGenerator,
        config: ReflectionConfig | None = None,
    ):
        """Initialize the reflector.

        Args:
            store: Memory store holding the agent's cache
            generator: Text generation backend
            config: Token and time budgets (default: ReflectionConfig())
        """
        self.store = store
        self.generator = generator
        self.config = config or ReflectionConfig()
        self._pending: set[asyncio.Task] = set()

    @property
    def options(self) -> GenerationOptions:
        return GenerationOptions(
            max_tokens=self.config.max_tokens,
            temperature=self.config.temperature,
            timeout_ms=self.config.timeout_ms,
        )

    async def reflect(
        self,
        agent_id: str,
        memory: Memory,
        market_context: str | None = None,
    ) -> str | None:
        """Generate a lesson for a trade and apply it to the cached memory.

        Args:
            agent_id: Agent that made the trade
            memory: Memory to reflect on
            market_context: Optional market context at trade time

        Returns:
            The generated lesson, or None if generation failed
        """
        messages = [
            {"role": "system", "content": REFLECTION_SYSTEM},
            {
                "role": "user",
                "content": build_reflection_prompt(memory, market_context, self.config.max_context_lines),
            },
        ]
        options = self.options

        try:
            result = await asyncio.wait_for(
                self.generator.generate(messages, options),
                timeout=options.timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Reflection timed out after {options.timeout_ms}ms for memory {memory.id}")
            return None
        except Exception as e:
            logger.warning(f"Reflection failed for memory {memory.id}: {e}")
            return None

        content = getattr(result, "content", None)
        if not isinstance(content, str):
            if result is not None:
                logger.warning(f"Reflection for memory {memory.id} returned non-text content, ignoring")
            return None
        content = content.strip()
        if not content:
            return None

        try:
            target = self.store.find(agent_id, memory.id)
            if target is None:
                logger.debug(f"Memory {memory.id} no longer cached for {agent_id}, discarding reflection")
            elif not target.apply_reflection(content):
                logger.debug(f"Memory {memory.id} already reflected, keeping existing lesson")
        except Exception as e:
            logger.warning(f"Reflection write-back failed for memory {memory.id}: {e}")
            return None

        return content

    def reflect_in_background(
        self,
        agent_id: str,
        memory: Memory,
        market_context: str | None = None,
    ) -> asyncio.Task:
        """Schedule ``reflect`` without awaiting it.

        Must be called from a running event loop. The task is held until it
        finishes so it is not garbage collected mid-flight.
        """
        task = asyncio.create_task(self.reflect(agent_id, memory, market_context))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self) -> None:
        """Wait for all background reflections to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
