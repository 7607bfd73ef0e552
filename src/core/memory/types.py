"""Trade memory types.

A ``Memory`` is the unit of recall: what the situation was, what the agent
did, what happened, and the lesson to carry forward. ``OutcomeRecord`` is
the execution-log row a memory is built from.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any


class ExecutionStatus(str, Enum):
    """Terminal status of an execution."""

    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class RecentStreak(str, Enum):
    """Outcome trend over the last few trades."""

    WINNING = "winning"
    LOSING = "losing"
    MIXED = "mixed"


def parse_pnl(value: Any) -> float:
    """Coerce a nullable numeric outcome to float.

    Accepts floats, ints, Decimals and numeric strings. Anything
    unparseable counts as 0.
    """
    if value is None or value == "":
        return 0.0
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(Decimal(str(value)))
    except (InvalidOperation, ValueError):
        return 0.0


def _parse_datetime(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    text = str(value)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


def elapsed_seconds(start: datetime, end: datetime) -> float:
    """Seconds from ``start`` to ``end``, tolerating mixed naive/aware values.

    Naive datetimes are taken as local time, as ``datetime.now()`` produces.
    """
    if (start.tzinfo is None) != (end.tzinfo is None):
        start = start.astimezone() if start.tzinfo is None else start
        end = end.astimezone() if end.tzinfo is None else end
    return (end - start).total_seconds()


def _parse_mapping(value: Any) -> dict:
    if not value:
        return {}
    if isinstance(value, dict):
        return value
    if isinstance(value, str):
        try:
            parsed = json.loads(value)
        except json.JSONDecodeError:
            return {}
        return parsed if isinstance(parsed, dict) else {}
    return {}


@dataclass
class OutcomeRecord:
    """A completed execution from the action log.

    ``params`` and ``result`` are free-form; the memory builder substitutes
    placeholders for anything missing.
    """

    id: str
    agent_id: str
    type: str
    status: ExecutionStatus
    executed_at: datetime
    params: dict[str, Any] = field(default_factory=dict)
    result: dict[str, Any] = field(default_factory=dict)
    pnl: float | Decimal | str | None = None
    completed_at: datetime | None = None
    error_msg: str | None = None

    @property
    def pnl_value(self) -> float:
        return parse_pnl(self.pnl)

    @property
    def failed(self) -> bool:
        return self.status == ExecutionStatus.FAILED

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> OutcomeRecord:
        """Parse an execution row (D1/SQL style, camelCase or snake_case keys)."""

        def pick(*keys: str) -> Any:
            for key in keys:
                if key in row and row[key] is not None:
                    return row[key]
            return None

        status = str(pick("status") or ExecutionStatus.FAILED.value).upper()

        return cls(
            id=str(pick("id") or uuid.uuid4().hex),
            agent_id=str(pick("agent_id", "agentId") or ""),
            type=str(pick("type") or "unknown"),
            status=ExecutionStatus(status),
            executed_at=_parse_datetime(pick("executed_at", "executedAt")) or datetime.now(),
            params=_parse_mapping(pick("params")),
            result=_parse_mapping(pick("result")),
            pnl=pick("pnl"),
            completed_at=_parse_datetime(pick("completed_at", "completedAt")),
            error_msg=pick("error_msg", "errorMsg"),
        )


@dataclass
class Memory:
    """A structured record of a past trade and its outcome."""

    situation: str  # market context, signal, token, router
    action: str  # buy/sell + token + amount
    outcome: str  # what happened
    lesson: str  # actionable takeaway, never empty
    timestamp: datetime  # when the trade happened
    pnl_usd: float
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    reflected: bool = False  # lesson replaced by the reflection engine

    @property
    def profitable(self) -> bool:
        return self.pnl_usd > 0

    @property
    def document(self) -> str:
        """Text indexed for retrieval."""
        return f"{self.situation} {self.lesson} {self.action}"

    def apply_reflection(self, lesson: str) -> bool:
        """Overwrite the rule-based lesson once. Returns False if already reflected."""
        if self.reflected or not lesson:
            return False
        self.lesson = lesson
        self.reflected = True
        return True

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "id": self.id,
            "situation": self.situation,
            "action": self.action,
            "outcome": self.outcome,
            "lesson": self.lesson,
            "timestamp": self.timestamp.isoformat(),
            "pnl_usd": self.pnl_usd,
            "profitable": self.profitable,
            "reflected": self.reflected,
        }


@dataclass
class TradeStats:
    """Aggregate outcome statistics over an agent's cached memories."""

    total_trades: int = 0
    wins: int = 0
    losses: int = 0
    win_rate: float = 0.0  # percent
    avg_pnl: float = 0.0
    total_pnl: float = 0.0
    recent_streak: RecentStreak = RecentStreak.MIXED

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "total_trades": self.total_trades,
            "wins": self.wins,
            "losses": self.losses,
            "win_rate": self.win_rate,
            "avg_pnl": self.avg_pnl,
            "total_pnl": self.total_pnl,
            "recent_streak": self.recent_streak.value,
        }


# Streak window and thresholds (last N trades)
STREAK_WINDOW = 5
WINNING_STREAK_MIN_WINS = 4
LOSING_STREAK_MAX_WINS = 1
