"""Memory scoring using BM25 Okapi with recency and outcome re-weighting.

final = bm25(query, doc) * recency_boost * outcome_multiplier

Statistics (document frequency, average length) come from the corpus passed
in, i.e. one agent's current cache. Scores are not comparable across agents
or across calls with different cache states.
"""

from __future__ import annotations

import math
from collections import Counter
from dataclasses import dataclass
from datetime import datetime

import numpy as np

from core.config import MemoryConfig
from core.memory.tokenizer import tokenize
from core.memory.types import Memory, elapsed_seconds


@dataclass
class CorpusStats:
    """Per-call corpus statistics for BM25."""

    doc_terms: list[Counter[str]]
    doc_lengths: np.ndarray
    doc_freq: Counter[str]
    avg_doc_length: float

    @property
    def size(self) -> int:
        return len(self.doc_terms)


class BM25Scorer:
    """Scores memories against a query.

    - BM25: sum over query terms of idf * tfNorm
    - Recency: 1 + max(0, 1 - age_hours / window), i.e. 2x fresh, 1x after a week
    - Outcome: unprofitable memories are boosted by ``loss_multiplier``
    """

    def __init__(self, config: MemoryConfig | None = None):
        self.config = config or MemoryConfig()

    def build_corpus(self, memories: list[Memory]) -> CorpusStats:
        """Tokenize every memory and collect document statistics."""
        doc_terms: list[Counter[str]] = []
        doc_freq: Counter[str] = Counter()

        for memory in memories:
            counts = Counter(tokenize(memory.document))
            doc_terms.append(counts)
            doc_freq.update(counts.keys())

        doc_lengths = np.array([sum(c.values()) for c in doc_terms], dtype=float)
        avg_doc_length = float(doc_lengths.mean()) if len(doc_lengths) else 1.0

        return CorpusStats(
            doc_terms=doc_terms,
            doc_lengths=doc_lengths,
            doc_freq=doc_freq,
            avg_doc_length=avg_doc_length,
        )

    def idf(self, term: str, corpus: CorpusStats) -> float:
        """idf = ln((N - df + 0.5) / (df + 0.5) + 1)"""
        n = corpus.size
        df = corpus.doc_freq.get(term, 0)
        return math.log((n - df + 0.5) / (df + 0.5) + 1)

    def term_frequency_norm(self, tf: int, doc_length: float, avg_doc_length: float) -> float:
        """Saturated, length-normalized term frequency."""
        k1 = self.config.k1
        b = self.config.b
        # Empty corpus documents would divide by zero
        ratio = doc_length / avg_doc_length if avg_doc_length > 0 else 0.0
        return (tf * (k1 + 1)) / (tf + k1 * (1 - b + b * ratio))

    def bm25_scores(self, query_terms: list[str], corpus: CorpusStats) -> np.ndarray:
        """Raw BM25 score per document."""
        scores = np.zeros(corpus.size, dtype=float)
        idf_cache: dict[str, float] = {}

        for i, counts in enumerate(corpus.doc_terms):
            doc_length = corpus.doc_lengths[i]
            score = 0.0
            for term in query_terms:
                tf = counts.get(term, 0)
                if tf == 0:
                    continue
                if term not in idf_cache:
                    idf_cache[term] = self.idf(term, corpus)
                score += idf_cache[term] * self.term_frequency_norm(tf, doc_length, corpus.avg_doc_length)
            scores[i] = score

        return scores

    def calculate_recency_boost(self, timestamp: datetime, as_of: datetime | None = None) -> float:
        """Linear decay from 2x to 1x over the recency window, floored at 1x.

        Naive and aware datetimes may be mixed; naive ones are read as local time.
        """
        if as_of is None:
            as_of = datetime.now(timestamp.tzinfo)
        age_hours = elapsed_seconds(timestamp, as_of) / 3600
        return 1 + max(0.0, 1 - age_hours / self.config.recency_window_hours)

    def calculate_outcome_multiplier(self, memory: Memory) -> float:
        """Boost losses so their lessons surface first."""
        return 1.0 if memory.profitable else self.config.loss_multiplier

    def score_memories(
        self,
        query_terms: list[str],
        memories: list[Memory],
        as_of: datetime | None = None,
    ) -> list[tuple[Memory, float]]:
        """Final score for every memory, in corpus order.

        Args:
            query_terms: Tokenized query
            memories: Corpus (one agent's cache)
            as_of: Reference time for recency (default: now)

        Returns:
            (memory, score) pairs; zero when no query term overlaps
        """
        if not memories:
            return []

        corpus = self.build_corpus(memories)
        raw = self.bm25_scores(query_terms, corpus)

        recency = np.array([self.calculate_recency_boost(m.timestamp, as_of) for m in memories])
        outcome = np.array([self.calculate_outcome_multiplier(m) for m in memories])
        final = raw * recency * outcome

        return [(memory, float(score)) for memory, score in zip(memories, final)]

    def rank(
        self,
        query_terms: list[str],
        memories: list[Memory],
        top_k: int,
        as_of: datetime | None = None,
    ) -> list[tuple[Memory, float]]:
        """Top ``top_k`` memories with a positive score, best first.

        Ties keep corpus order.
        """
        scored = [(m, s) for m, s in self.score_memories(query_terms, memories, as_of) if s > 0]
        if not scored:
            return []

        scores = np.array([s for _, s in scored])
        order = np.argsort(-scores, kind="stable")
        return [scored[i] for i in order[:top_k]]
