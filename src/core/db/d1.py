from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol

from core.memory.types import ExecutionStatus, OutcomeRecord

logger = logging.getLogger(__name__)


def js_to_python(obj):
    """Convert JsProxy objects to Python equivalents.

    Outside the Workers runtime there is no pyodide and rows are already
    plain Python.
    """
    try:
        from pyodide.ffi import JsProxy
    except ImportError:
        return obj

    if isinstance(obj, JsProxy):
        if hasattr(obj, "to_py"):
            return obj.to_py()
        try:
            return {k: js_to_python(getattr(obj, k)) for k in dir(obj) if not k.startswith("_")}
        except Exception:
            return str(obj)
    return obj


class ActionLog(Protocol):
    """Read-only source of completed executions.

    Implementations return at most ``limit`` records for the agent with
    status SUCCESS or FAILED, newest first.
    """

    async def get_recent_executions(self, agent_id: str, limit: int = 50) -> list[OutcomeRecord]:
        ...


class D1Client:
    """Client for Cloudflare D1 SQLite database operations."""

    def __init__(self, db_binding: Any):
        self.db = db_binding

    async def execute(self, query: str, params: list | None = None, retries: int = 3) -> Any:
        """Execute a query and return results.

        Retries transient D1 failures with exponential backoff.
        """
        last_error: Exception | None = None
        for attempt in range(retries):
            try:
                if params:
                    result = await self.db.prepare(query).bind(*params).all()
                else:
                    result = await self.db.prepare(query).all()
                return js_to_python(result)
            except Exception as e:
                last_error = e
                if attempt < retries - 1:
                    logger.warning(
                        f"D1 execute error (attempt {attempt + 1}/{retries}): {type(e).__name__}: {e}"
                    )
                    # 100ms, 200ms, 400ms...
                    await asyncio.sleep(0.1 * (2 ** attempt))
                else:
                    logger.error(f"D1 execute error (final): type={type(e).__name__}, str={e}")

        raise last_error


def _result_rows(result: Any) -> list[dict]:
    if isinstance(result, dict):
        return list(result.get("results") or [])
    return list(getattr(result, "results", None) or [])


class D1ActionLog:
    """Action log backed by the ``executions`` table."""

    RECENT_EXECUTIONS_QUERY = """
        SELECT id, agent_id, type, params, result, pnl, status,
               executed_at, completed_at, error_msg
        FROM executions
        WHERE agent_id = ?
          AND status IN (?, ?)
        ORDER BY executed_at DESC
        LIMIT ?
    """

    def __init__(self, db_binding: Any, retries: int = 3):
        self.client = D1Client(db_binding)
        self.retries = retries

    async def get_recent_executions(self, agent_id: str, limit: int = 50) -> list[OutcomeRecord]:
        """Most recent completed executions for an agent, newest first."""
        result = await self.client.execute(
            self.RECENT_EXECUTIONS_QUERY,
            [agent_id, ExecutionStatus.SUCCESS.value, ExecutionStatus.FAILED.value, limit],
            retries=self.retries,
        )
        return [OutcomeRecord.from_row(row) for row in _result_rows(result)]


class InMemoryActionLog:
    """Action log held in process memory, for local runs and tests."""

    def __init__(self, records: list[OutcomeRecord] | None = None):
        self._records: list[OutcomeRecord] = list(records or [])

    def append(self, record: OutcomeRecord) -> None:
        self._records.append(record)

    async def get_recent_executions(self, agent_id: str, limit: int = 50) -> list[OutcomeRecord]:
        rows = [r for r in self._records if r.agent_id == agent_id]
        rows.sort(key=lambda r: r.executed_at, reverse=True)
        return rows[:limit]
