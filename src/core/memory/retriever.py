"""Memory retriever: BM25 recall over an agent's cached trade memories.

Scores are computed fresh on every call from the current cache; there is
no persisted index.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime

import numpy as np

from core.memory.retrieval_monitor import RetrievalMonitor
from core.memory.scoring import BM25Scorer
from core.memory.store import MemoryStore
from core.memory.tokenizer import tokenize
from core.memory.types import (
    LOSING_STREAK_MAX_WINS,
    STREAK_WINDOW,
    WINNING_STREAK_MIN_WINS,
    Memory,
    RecentStreak,
    TradeStats,
)

logger = logging.getLogger(__name__)


class MemoryRetriever:
    """Finds the past trades most relevant to a new situation."""

    def __init__(
        self,
        store: MemoryStore,
        scorer: BM25Scorer | None = None,
        monitor: RetrievalMonitor | None = None,
    ):
        """Initialize the retriever.

        Args:
            store: Memory store to read from
            scorer: BM25 scorer (default: built from the store's config)
            monitor: Optional retrieval monitor
        """
        self.store = store
        self.scorer = scorer or BM25Scorer(store.config)
        self.monitor = monitor or RetrievalMonitor()

    async def retrieve(
        self,
        agent_id: str,
        situation: str,
        top_k: int = 3,
        as_of: datetime | None = None,
    ) -> list[Memory]:
        """Get the memories most relevant to the current situation.

        Args:
            agent_id: Agent whose memories to search
            situation: Free-text description of the current situation
            top_k: Maximum number of memories to return
            as_of: Reference time for recency weighting (default: now)

        Returns:
            Up to ``top_k`` memories, best first. When the query has no
            usable terms, the most recent ``top_k`` memories in
            chronological order.

        Raises:
            ValueError: If top_k < 1
        """
        if top_k < 1:
            raise ValueError(f"top_k must be >= 1, got {top_k}")

        memories = await self.store.load(agent_id)
        if not memories:
            return []

        query_terms = tokenize(situation)
        if not query_terms:
            return memories[-top_k:]

        started = time.perf_counter()
        ranked = self.scorer.rank(query_terms, memories, top_k, as_of)
        latency_ms = (time.perf_counter() - started) * 1000

        self.monitor.log_query(
            agent_id=agent_id,
            query_terms=len(query_terms),
            corpus_size=len(memories),
            results_count=len(ranked),
            top_score=ranked[0][1] if ranked else 0.0,
            latency_ms=latency_ms,
        )
        logger.debug(f"Retrieved {len(ranked)}/{len(memories)} memories for {agent_id}")

        return [memory for memory, _ in ranked]

    async def get_stats(self, agent_id: str) -> TradeStats:
        """Win/loss summary over the agent's cached memories."""
        memories = await self.store.load(agent_id)
        if not memories:
            return TradeStats()

        pnl = np.array([m.pnl_usd for m in memories], dtype=float)
        wins = int(np.sum(pnl > 0))
        losses = int(np.sum(pnl < 0))
        total_pnl = float(pnl.sum())

        recent_wins = int(np.sum(pnl[-STREAK_WINDOW:] > 0))
        if recent_wins >= WINNING_STREAK_MIN_WINS:
            streak = RecentStreak.WINNING
        elif recent_wins <= LOSING_STREAK_MAX_WINS:
            streak = RecentStreak.LOSING
        else:
            streak = RecentStreak.MIXED

        return TradeStats(
            total_trades=len(memories),
            wins=wins,
            losses=losses,
            win_rate=wins / len(memories) * 100,
            avg_pnl=total_pnl / len(memories),
            total_pnl=total_pnl,
            recent_streak=streak,
        )
