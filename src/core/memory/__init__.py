"""Trade memory: learning from past trade outcomes.

Completed executions become memories (situation, action, outcome, lesson).
Before a new trade, the memories most similar to the current situation are
retrieved with BM25 Okapi, re-weighted toward recent trades and losses, and
rendered as lessons for the advisor prompt.

Usage:
    from core.memory import TradeMemorySystem, OutcomeRecord, ExecutionStatus
    from core.db.d1 import D1ActionLog

    system = TradeMemorySystem.from_env(D1ActionLog(env.DB), env)

    # After a trade completes
    memory = system.record_outcome(agent_id, record, market_context)
    system.reflect_in_background(agent_id, memory, market_context)

    # Before a new decision
    situation = system.build_situation_text("BUY", "TKN", "momentum", 0.8, "medium")
    memories = await system.retrieve(agent_id, situation, top_k=3)
    prompt_block = system.format_for_prompt(memories)
"""

from core.memory.builder import (
    LESSON_RULES,
    LessonContext,
    LessonRule,
    build_memory,
    match_lesson_rule,
)
from core.memory.prompts import (
    build_current_situation,
    format_memories_for_prompt,
    format_stats_for_prompt,
)
from core.memory.retrieval_monitor import RetrievalMetrics, RetrievalMonitor
from core.memory.retriever import MemoryRetriever
from core.memory.scoring import BM25Scorer
from core.memory.store import MemoryStore
from core.memory.system import TradeMemorySystem
from core.memory.tokenizer import STOP_WORDS, tokenize
from core.memory.types import (
    ExecutionStatus,
    Memory,
    OutcomeRecord,
    RecentStreak,
    TradeStats,
)

__all__ = [
    # Types
    "ExecutionStatus",
    "Memory",
    "OutcomeRecord",
    "RecentStreak",
    "TradeStats",
    # Builder
    "LESSON_RULES",
    "LessonContext",
    "LessonRule",
    "build_memory",
    "match_lesson_rule",
    # Retrieval
    "BM25Scorer",
    "MemoryRetriever",
    "MemoryStore",
    "RetrievalMetrics",
    "RetrievalMonitor",
    "STOP_WORDS",
    "tokenize",
    # Prompts
    "build_current_situation",
    "format_memories_for_prompt",
    "format_stats_for_prompt",
    # Facade
    "TradeMemorySystem",
]
