"""Prompt rendering for trade memories.

Output is deterministic given the input memories and the reference time.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import Any

from core.memory.types import Memory, RecentStreak, TradeStats, elapsed_seconds

MEMORY_BANNER = "═══ LESSONS FROM PAST TRADES ═══"
MEMORY_INSTRUCTION = "Use these lessons from similar past situations to improve your decision:"
MEMORY_CLOSING = "IMPORTANT: Do not repeat past mistakes. Apply lessons learned to your current assessment."

STATS_BANNER = "═══ AGENT TRADE HISTORY ═══"
LOSING_STREAK_WARNING = "WARNING: Agent is on a losing streak. Be more conservative with confidence scores."


def format_time_ago(timestamp: datetime, now: datetime | None = None) -> str:
    """Relative time bucket: minutes, hours, days, then weeks."""
    if now is None:
        now = datetime.now(timestamp.tzinfo)
    diff_seconds = elapsed_seconds(timestamp, now)
    minutes = int(diff_seconds // 60)
    hours = int(diff_seconds // 3600)
    days = int(diff_seconds // 86400)

    if minutes < 60:
        return f"{minutes}m ago"
    if hours < 24:
        return f"{hours}h ago"
    if days < 7:
        return f"{days}d ago"
    return f"{days // 7}w ago"


def outcome_label(memory: Memory) -> str:
    if memory.profitable:
        return "PROFIT"
    if memory.pnl_usd == 0:
        return "BREAK-EVEN"
    return "LOSS"


def format_memories_for_prompt(memories: list[Memory], now: datetime | None = None) -> str:
    """Render memories as a lessons block for the advisor prompt.

    Args:
        memories: Memories in the order they should appear
        now: Reference time for the relative-time labels (default: now)

    Returns:
        The lessons block, or an empty string when there are no memories
    """
    if not memories:
        return ""

    lines = [MEMORY_BANNER, MEMORY_INSTRUCTION, ""]

    for i, memory in enumerate(memories, start=1):
        time_ago = format_time_ago(memory.timestamp, now)
        lines.append(f"── Past Trade #{i} ({time_ago}, {outcome_label(memory)}) ──")
        lines.append(f"Action: {memory.action}")
        lines.append(f"Outcome: {memory.outcome}")
        lines.append(f"Lesson: {memory.lesson}")
        lines.append("")

    lines.append(MEMORY_CLOSING)

    return "\n".join(lines)


def _signed(value: float) -> str:
    return f"{'+' if value > 0 else ''}{value:.1f}"


def build_current_situation(
    action: str,
    token_symbol: str,
    strategy: str,
    confidence: float,
    risk_level: str,
    market_metrics: Mapping[str, Mapping[str, Any]] | None = None,
) -> str:
    """Describe the current signal in the same vocabulary as stored memories.

    ``market_metrics`` maps a timeframe label to ``priceChange`` and
    ``volumeChange`` percentages.
    """
    parts = [
        f"{action} signal for {token_symbol}",
        f"Strategy: {strategy}",
        f"Confidence: {confidence}",
        f"Risk level: {risk_level}",
    ]

    if market_metrics:
        for timeframe, data in market_metrics.items():
            price = float(data.get("priceChange", 0.0))
            volume = float(data.get("volumeChange", 0.0))
            parts.append(f"{timeframe}: price {_signed(price)}%, vol {_signed(volume)}%")

    return ". ".join(parts)


def format_stats_for_prompt(stats: TradeStats) -> str:
    """Render the agent's trade history summary, empty when it has no trades."""
    if stats.total_trades == 0:
        return ""

    lines = [
        "",
        STATS_BANNER,
        f"Total Trades: {stats.total_trades} ({stats.wins}W / {stats.losses}L)",
        f"Win Rate: {stats.win_rate:.0f}%",
        f"Avg PnL per Trade: ${stats.avg_pnl:.4f}",
        f"Recent Streak: {stats.recent_streak.value}",
    ]

    if stats.recent_streak == RecentStreak.LOSING:
        lines.append(LOSING_STREAK_WARNING)

    return "\n".join(lines)
