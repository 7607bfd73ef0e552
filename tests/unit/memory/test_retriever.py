"""Tests for memory retrieval and trade statistics."""

from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from core.memory.retriever import MemoryRetriever
from core.memory.types import ExecutionStatus, RecentStreak

from tests.conftest import make_record


@pytest.fixture
def retriever(store) -> MemoryRetriever:
    return MemoryRetriever(store)


async def _warm(store, agent_id: str = "agent-1") -> None:
    """Load the (empty) log so recorded memories stay cached."""
    await store.load(agent_id)


class TestRetrieve:
    async def test_empty_cache_returns_empty(self, retriever):
        assert await retriever.retrieve("agent-1", "buy momentum") == []

    async def test_invalid_top_k_raises(self, retriever):
        with pytest.raises(ValueError):
            await retriever.retrieve("agent-1", "buy", top_k=0)

    async def test_query_without_terms_returns_most_recent(self, store, retriever):
        await _warm(store)
        base = datetime.now() - timedelta(hours=10)
        for i in range(5):
            store.record("agent-1", make_record(record_id=f"r{i}", executed_at=base + timedelta(hours=i)))

        results = await retriever.retrieve("agent-1", "a to of !!", top_k=2)

        assert [m.id for m in results] == ["r3", "r4"]

    async def test_no_overlap_returns_empty(self, store, retriever):
        await _warm(store)
        store.record("agent-1", make_record())

        assert await retriever.retrieve("agent-1", "zzzqqq xxyyzz") == []
        assert retriever.monitor.get_metrics("agent-1").hit_rate == 0.0

    async def test_never_more_than_top_k_sorted_desc(self, store, retriever):
        await _warm(store)
        for i in range(10):
            store.record("agent-1", make_record(action="buy", token=f"0xTOKEN{i:02d}ABCDEF", pnl=0.5 * i - 2))

        as_of = datetime.now()
        results = await retriever.retrieve("agent-1", "buy momentum profitable", top_k=3, as_of=as_of)
        assert len(results) == 3

        memories = await store.load("agent-1")
        scored = retriever.scorer.score_memories(["buy", "momentum", "profitable"], memories, as_of)
        all_scores = {m.id: s for m, s in scored}
        returned = [all_scores[m.id] for m in results]
        assert returned == sorted(returned, reverse=True)
        assert returned[-1] >= max(s for mid, s in all_scores.items() if mid not in {m.id for m in results})

    async def test_scores_use_agent_cache_only(self, store, retriever):
        await _warm(store, "agent-1")
        await _warm(store, "agent-2")
        store.record("agent-2", make_record(agent_id="agent-2", action="sell"))

        assert await retriever.retrieve("agent-1", "sell") == []
        assert len(await retriever.retrieve("agent-2", "sell")) == 1

    async def test_retrieval_is_logged(self, store, retriever):
        await _warm(store)
        store.record("agent-1", make_record())

        await retriever.retrieve("agent-1", "buy")

        metrics = retriever.monitor.get_metrics()
        assert metrics.query_count == 1
        assert metrics.hit_rate == 1.0
        assert metrics.avg_corpus_size == 1.0

        data = metrics.to_dict()
        assert data["query_count"] == 1
        assert data["hit_rate"] == 1.0
        assert data["avg_results_returned"] == 1.0
        assert data["avg_latency_ms"] >= 0


class TestEndToEndScenario:
    @pytest.fixture
    async def scenario(self, store):
        await _warm(store, "A1")
        base = datetime.now() - timedelta(hours=3)
        store.record(
            "A1",
            make_record(agent_id="A1", action="buy", token="TKN1", pnl=2.5, executed_at=base),
        )
        store.record(
            "A1",
            make_record(agent_id="A1", action="sell", token="TKN2", pnl=-1.5, executed_at=base + timedelta(hours=1)),
        )
        store.record(
            "A1",
            make_record(
                agent_id="A1",
                action="buy",
                token="TKN3",
                status=ExecutionStatus.FAILED,
                error_msg="slippage too high",
                result={},
                executed_at=base + timedelta(hours=2),
            ),
        )
        return store

    async def test_tkn1_ranked_above_tkn3(self, scenario, retriever):
        results = await retriever.retrieve("A1", "buy TKN1 momentum", 2)

        assert len(results) == 2
        assert "TKN1" in results[0].action
        assert "TKN3" in results[1].action
        assert results[0].lesson.startswith("BUY was very profitable")

    async def test_stats(self, scenario, retriever):
        stats = await retriever.get_stats("A1")

        assert stats.total_trades == 3
        assert stats.wins == 1
        assert stats.losses == 1
        assert stats.win_rate == pytest.approx(100 / 3)
        assert stats.total_pnl == pytest.approx(1.0)
        assert stats.avg_pnl == pytest.approx(1.0 / 3)
        assert stats.recent_streak == RecentStreak.LOSING

    async def test_recalled_memory_serializes(self, scenario, retriever):
        top = (await retriever.retrieve("A1", "buy TKN1 momentum", 1))[0]

        data = top.to_dict()

        assert data["id"] == top.id
        assert data["lesson"] == top.lesson
        assert data["pnl_usd"] == 2.5
        assert data["profitable"] is True
        assert data["reflected"] is False
        assert data["timestamp"] == top.timestamp.isoformat()

    async def test_stats_serialize(self, scenario, retriever):
        data = (await retriever.get_stats("A1")).to_dict()

        assert data["total_trades"] == 3
        assert (data["wins"], data["losses"]) == (1, 1)
        assert data["total_pnl"] == pytest.approx(1.0)
        assert data["recent_streak"] == "losing"


class TestStats:
    async def test_empty(self, retriever):
        stats = await retriever.get_stats("agent-1")

        assert stats.total_trades == 0
        assert stats.win_rate == 0.0
        assert stats.recent_streak == RecentStreak.MIXED

    @pytest.mark.parametrize(
        "pnls,expected",
        [
            ([1, 1, 1, 1, -1], RecentStreak.WINNING),
            ([-1, -1, -1, -1, -1, 1, 1, 1, 1, 1], RecentStreak.WINNING),
            ([1, -1, -1, -1, 0], RecentStreak.LOSING),
            ([1, 1, -1, -1, 0], RecentStreak.MIXED),
            ([1, 1, 1], RecentStreak.MIXED),
        ],
    )
    async def test_recent_streak_uses_last_five(self, store, retriever, pnls, expected):
        await _warm(store)
        for pnl in pnls:
            store.record("agent-1", make_record(pnl=pnl))

        assert (await retriever.get_stats("agent-1")).recent_streak == expected

    async def test_break_even_is_neither_win_nor_loss(self, store, retriever):
        await _warm(store)
        store.record("agent-1", make_record(pnl=0))

        stats = await retriever.get_stats("agent-1")

        assert (stats.wins, stats.losses) == (0, 0)
