"""Retrieval quality monitoring for lexical memory queries.

Tracks how often queries find overlapping memories, how strong the top
scores are, and how long scoring takes, so a drift toward empty or weak
recall shows up in the logs.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import numpy as np

logger = logging.getLogger(__name__)


@dataclass
class QueryLog:
    """Log entry for a single retrieval."""

    timestamp: datetime
    agent_id: str
    query_terms: int
    corpus_size: int
    results_count: int
    top_score: float
    latency_ms: float


@dataclass
class RetrievalMetrics:
    """Aggregated retrieval metrics for monitoring."""

    query_count: int
    hit_rate: float  # share of queries with at least one result
    avg_results_returned: float
    avg_top_score: float
    avg_corpus_size: float
    avg_latency_ms: float

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "query_count": self.query_count,
            "hit_rate": self.hit_rate,
            "avg_results_returned": self.avg_results_returned,
            "avg_top_score": self.avg_top_score,
            "avg_corpus_size": self.avg_corpus_size,
            "avg_latency_ms": self.avg_latency_ms,
        }


class RetrievalMonitor:
    """In-process monitor for memory retrieval.

    Used to detect:
    - Queries that miss a non-empty corpus entirely
    - Slow scoring as caches grow
    """

    def __init__(self, max_logs: int = 1000):
        self._query_logs: deque[QueryLog] = deque(maxlen=max_logs)

    def log_query(
        self,
        agent_id: str,
        query_terms: int,
        corpus_size: int,
        results_count: int,
        top_score: float,
        latency_ms: float,
    ) -> None:
        """Record one retrieval."""
        self._query_logs.append(
            QueryLog(
                timestamp=datetime.now(),
                agent_id=agent_id,
                query_terms=query_terms,
                corpus_size=corpus_size,
                results_count=results_count,
                top_score=top_score,
                latency_ms=latency_ms,
            )
        )

        if corpus_size > 0 and query_terms > 0 and results_count == 0:
            logger.warning(
                f"No memory overlap: agent={agent_id}, corpus={corpus_size}, query_terms={query_terms}"
            )

    def get_metrics(self, agent_id: str | None = None) -> RetrievalMetrics:
        """Aggregate logged queries, optionally for one agent."""
        logs = [q for q in self._query_logs if agent_id is None or q.agent_id == agent_id]
        if not logs:
            return RetrievalMetrics(
                query_count=0,
                hit_rate=0.0,
                avg_results_returned=0.0,
                avg_top_score=0.0,
                avg_corpus_size=0.0,
                avg_latency_ms=0.0,
            )

        results = np.array([q.results_count for q in logs], dtype=float)
        return RetrievalMetrics(
            query_count=len(logs),
            hit_rate=float(np.mean(results > 0)),
            avg_results_returned=float(results.mean()),
            avg_top_score=float(np.mean([q.top_score for q in logs])),
            avg_corpus_size=float(np.mean([q.corpus_size for q in logs])),
            avg_latency_ms=float(np.mean([q.latency_ms for q in logs])),
        )

    def clear(self) -> None:
        self._query_logs.clear()
