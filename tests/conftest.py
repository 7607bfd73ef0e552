"""Pytest configuration and fixtures for trade memory tests."""

from __future__ import annotations

from datetime import datetime, timedelta
from itertools import count
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from core.ai.generation import GenerationResult
from core.db.d1 import InMemoryActionLog
from core.memory.store import MemoryStore
from core.memory.types import ExecutionStatus, OutcomeRecord


class FakeClock:
    """Monotonic clock the tests can advance."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


_ids = count(1)


def make_record(
    agent_id: str = "agent-1",
    action: str = "buy",
    token: str = "0xabcdef1234567890",
    amount: str = "1.5",
    pnl: Any = 0.0,
    status: ExecutionStatus = ExecutionStatus.SUCCESS,
    error_msg: str | None = None,
    executed_at: datetime | None = None,
    router: str | None = "nadfun",
    record_id: str | None = None,
    params: dict | None = None,
    result: dict | None = None,
) -> OutcomeRecord:
    """Build an outcome record with sensible defaults."""
    if params is None:
        params = {"tokenAddress": token, "amount": amount, "action": action, "slippageBps": 100}
    if result is None:
        result = {"amountIn": amount, "amountOut": "1234.5"}
        if router:
            result["router"] = router
    return OutcomeRecord(
        id=record_id or f"exec-{next(_ids)}",
        agent_id=agent_id,
        type=action.upper(),
        status=status,
        executed_at=executed_at or datetime.now(),
        params=params,
        result=result,
        pnl=pnl,
        completed_at=None,
        error_msg=error_msg,
    )


@pytest.fixture
def record_factory():
    """Factory for outcome records."""
    return make_record


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def action_log() -> InMemoryActionLog:
    """Empty in-memory action log."""
    return InMemoryActionLog()


@pytest.fixture
def failing_action_log():
    """Action log whose fetch always raises."""
    log = MagicMock()
    log.get_recent_executions = AsyncMock(side_effect=ConnectionError("database unreachable"))
    return log


@pytest.fixture
def store(action_log, clock) -> MemoryStore:
    """Memory store over the in-memory action log with a controllable clock."""
    return MemoryStore(action_log, clock=clock)


@pytest.fixture
def mock_generator():
    """Text generator returning a fixed lesson."""
    generator = MagicMock()
    generator.generate = AsyncMock(
        return_value=GenerationResult(content="Wait for RSI<65 before buying.", provider="mock")
    )
    return generator


@pytest.fixture
def now() -> datetime:
    return datetime.now()


@pytest.fixture
def hours_ago(now):
    """Timestamp ``n`` hours before ``now``."""

    def _hours_ago(n: float) -> datetime:
        return now - timedelta(hours=n)

    return _hours_ago
