"""Reflection module for learning from trade outcomes.

The reflection engine asks an LLM what went right or wrong in a completed
trade and replaces the rule-based lesson in the memory cache.

Usage:
    from core.reflection import TradeReflector

    reflector = TradeReflector(store, generator)

    lesson = await reflector.reflect(agent_id, memory, market_context)

    # Fire-and-forget after recording an outcome
    reflector.reflect_in_background(agent_id, memory)
"""

from core.reflection.engine import (
    REFLECTION_SYSTEM,
    TradeReflector,
    build_reflection_prompt,
)

__all__ = [
    "REFLECTION_SYSTEM",
    "TradeReflector",
    "build_reflection_prompt",
]
