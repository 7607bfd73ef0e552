"""Memory builder: converts an execution outcome into a Memory.

Situation, action and outcome text are deterministic templates. The lesson
comes from ``LESSON_RULES``, an ordered decision table evaluated top to
bottom where the first matching rule wins. The last rule always matches, so
every outcome gets a lesson.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from core.memory.types import Memory, OutcomeRecord

PLACEHOLDER = "unknown"
NATIVE_UNIT = "MON"
DEFAULT_SLIPPAGE_BPS = 100
DEFAULT_FAILURE_REASON = "Transaction reverted"

# Market context lines worth keeping in the situation text
SITUATION_CONTEXT_MARKERS: tuple[str, ...] = (
    "priceChange",
    "Price:",
    "Volume:",
    "RSI",
    "MACD",
    "Bollinger",
    "confidence",
    "Confidence",
)


@dataclass(frozen=True)
class LessonContext:
    """Inputs the lesson rules are evaluated against."""

    action: str  # upper-cased verb
    pnl: float
    profitable: bool
    failed: bool
    error: str  # lower-cased error text, empty when none
    error_msg: str | None  # raw error text


@dataclass(frozen=True)
class LessonRule:
    """One row of the lesson decision table."""

    name: str
    predicate: Callable[[LessonContext], bool]
    template: Callable[[LessonContext], str]

    def matches(self, ctx: LessonContext) -> bool:
        return self.predicate(ctx)

    def render(self, ctx: LessonContext) -> str:
        return self.template(ctx)


def _error_has(ctx: LessonContext, *needles: str) -> bool:
    return any(needle in ctx.error for needle in needles)


LESSON_RULES: tuple[LessonRule, ...] = (
    LessonRule(
        name="slippage",
        predicate=lambda c: c.failed and _error_has(c, "slippage", "insufficient output"),
        template=lambda c: (
            "Slippage was too tight for the available liquidity. Consider increasing slippage "
            "tolerance or reducing trade size for low-liquidity tokens."
        ),
    ),
    LessonRule(
        name="insufficient_balance",
        predicate=lambda c: c.failed and _error_has(c, "insufficient", "balance"),
        template=lambda c: (
            "Insufficient balance for this trade. Always verify wallet balance before proposing trades."
        ),
    ),
    LessonRule(
        name="reverted",
        predicate=lambda c: c.failed and _error_has(c, "revert"),
        template=lambda c: (
            "Transaction reverted on-chain. This may indicate pool issues, contract restrictions, "
            "or front-running. Be cautious with this token."
        ),
    ),
    LessonRule(
        name="failed",
        predicate=lambda c: c.failed,
        template=lambda c: (
            f"Trade failed: {c.error_msg or 'unknown reason'}. "
            "Verify token liquidity and contract status before retrying."
        ),
    ),
    LessonRule(
        name="very_profitable",
        predicate=lambda c: c.profitable and c.pnl > 1.0,
        template=lambda c: (
            f"{c.action} was very profitable (+${c.pnl:.2f}). The market conditions and timing "
            "were favorable. Look for similar setups: strong momentum alignment across timeframes."
        ),
    ),
    LessonRule(
        name="moderate_profit",
        predicate=lambda c: c.profitable and c.pnl > 0.1,
        template=lambda c: (
            f"{c.action} yielded moderate profit (+${c.pnl:.2f}). Strategy signal was correct. "
            "Continue applying this pattern when technical indicators align."
        ),
    ),
    LessonRule(
        name="marginal_profit",
        predicate=lambda c: c.profitable,
        template=lambda c: (
            f"{c.action} was marginally profitable (+${c.pnl:.4f}). Gains were small relative to "
            "gas costs. Consider waiting for stronger signals or larger position sizes."
        ),
    ),
    LessonRule(
        name="significant_loss",
        predicate=lambda c: not c.profitable and c.pnl < -1.0,
        template=lambda c: (
            f"{c.action} resulted in significant loss (${c.pnl:.2f}). The signal may have been too "
            "aggressive or market conditions shifted. Reduce confidence for similar setups and "
            "consider tighter stop conditions."
        ),
    ),
    LessonRule(
        name="loss",
        predicate=lambda c: not c.profitable and c.pnl < -0.1,
        template=lambda c: (
            f"{c.action} resulted in a loss (${c.pnl:.2f}). Review whether RSI/MACD confirmed the "
            "signal direction. Avoid trading against strong counter-trends."
        ),
    ),
    LessonRule(
        name="break_even",
        predicate=lambda c: True,
        template=lambda c: (
            f"{c.action} was roughly break-even. Gas costs may have eaten into any small gain. "
            "Only trade when confidence is high enough to overcome transaction costs."
        ),
    ),
)


def match_lesson_rule(ctx: LessonContext) -> LessonRule:
    """Return the first rule in ``LESSON_RULES`` that matches."""
    for rule in LESSON_RULES:
        if rule.matches(ctx):
            return rule
    # unreachable: the last rule matches everything
    raise LookupError("No lesson rule matched")


def _param(mapping: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = mapping.get(key)
        if value:
            return value
    return None


def shorten_address(address: str) -> str:
    """Obscure an address to ``0x1234...abcd`` form."""
    return f"{address[:6]}...{address[-4:]}"


def build_situation(
    action: str,
    token_short: str,
    amount: str,
    router: str,
    market_context: str | None = None,
) -> str:
    """Describe the market situation at trade time."""
    parts = [
        f"Trade {action} on token {token_short}",
        f"Amount: {amount} {NATIVE_UNIT}",
        f"Router: {router}",
    ]

    if market_context:
        for line in market_context.split("\n"):
            if not line.strip():
                continue
            if any(marker in line for marker in SITUATION_CONTEXT_MARKERS):
                parts.append(line.strip())

    return ". ".join(parts)


def build_outcome(record: OutcomeRecord, pnl: float) -> str:
    """Describe what happened."""
    if record.failed:
        return f"FAILED — {record.error_msg or DEFAULT_FAILURE_REASON}"

    result = record.result or {}
    amount_in = _param(result, "amountIn", "amount_in") or PLACEHOLDER
    amount_out = _param(result, "amountOut", "amount_out") or PLACEHOLDER
    pnl_str = f"+${pnl:.4f}" if pnl >= 0 else f"-${abs(pnl):.4f}"

    return f"SUCCESS — In: {amount_in}, Out: {amount_out}, PnL: {pnl_str}"


def extract_lesson(action: str, pnl: float, record: OutcomeRecord) -> str:
    """Pick the lesson for this outcome from the decision table."""
    ctx = LessonContext(
        action=action.upper(),
        pnl=pnl,
        profitable=pnl > 0,
        failed=record.failed,
        error=(record.error_msg or "").lower(),
        error_msg=record.error_msg,
    )
    return match_lesson_rule(ctx).render(ctx)


def build_memory(record: OutcomeRecord, market_context: str | None = None) -> Memory:
    """Convert an outcome record into a Memory.

    Missing parameters fall back to placeholders; this never raises on
    malformed records.

    Args:
        record: Completed execution (SUCCESS or FAILED)
        market_context: Optional market context text at trade time

    Returns:
        Memory keyed by the record id
    """
    params = record.params or {}
    result = record.result or {}
    pnl = record.pnl_value

    token_address = str(_param(params, "tokenAddress", "token_address") or PLACEHOLDER)
    token_short = shorten_address(token_address)
    action = str(_param(params, "action") or record.type or PLACEHOLDER).lower()
    amount = str(_param(params, "amount") or "0")
    router = str(_param(result, "router") or _param(params, "router") or PLACEHOLDER)
    slippage = _param(params, "slippageBps", "slippage_bps") or DEFAULT_SLIPPAGE_BPS

    situation = build_situation(action, token_short, amount, router, market_context)
    action_text = (
        f"{action.upper()} {token_short} — {amount} {NATIVE_UNIT} via {router} (slippage: {slippage}bps)"
    )

    return Memory(
        id=record.id or uuid.uuid4().hex,
        situation=situation,
        action=action_text,
        outcome=build_outcome(record, pnl),
        lesson=extract_lesson(action, pnl, record),
        timestamp=record.executed_at,
        pnl_usd=pnl,
    )
