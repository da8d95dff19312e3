"""
Per-session model spend.

Every model call made on behalf of a session is recorded here, whether
it succeeded or not, so the diagnostic step can refuse to spend past
the session budget.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from assessment.exceptions import BudgetExceeded
from assessment.llm.router import LLMResponse

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LedgerEntry:
    task: str
    model: str
    input_tokens: int
    output_tokens: int
    cost_usd: float
    latency_ms: float
    ok: bool
    at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class CostLedger:
    """In-memory ledger of model calls keyed by session id."""

    def __init__(self, session_budget_usd: float = 0.50):
        self.session_budget_usd = session_budget_usd
        self._entries: dict[str, list[LedgerEntry]] = {}
        self._lock = threading.Lock()

    def record(
        self,
        session_id: Optional[str],
        response: Optional[LLMResponse],
        *,
        task: str,
        ok: bool,
    ) -> None:
        """Record one call. Calls outside a session are not tracked."""
        if not session_id:
            return
        entry = LedgerEntry(
            task=task,
            model=f"{response.provider}/{response.model}" if response else "",
            input_tokens=response.input_tokens if response else 0,
            output_tokens=response.output_tokens if response else 0,
            cost_usd=response.cost if response else 0.0,
            latency_ms=response.latency_ms if response else 0.0,
            ok=ok,
        )
        with self._lock:
            self._entries.setdefault(session_id, []).append(entry)

    def get_session_cost(self, session_id: str) -> float:
        with self._lock:
            return sum(e.cost_usd for e in self._entries.get(session_id, []))

    def remaining_budget(self, session_id: str) -> float:
        return max(self.session_budget_usd - self.get_session_cost(session_id), 0.0)

    def check_budget(self, session_id: str) -> None:
        """
        Raises:
            BudgetExceeded: The session has already spent its budget.
        """
        spent = self.get_session_cost(session_id)
        if spent >= self.session_budget_usd:
            logger.warning(
                "session_budget_exceeded",
                extra={
                    "session_id": session_id,
                    "cost_usd": round(spent, 5),
                    "limit_usd": self.session_budget_usd,
                },
            )
            raise BudgetExceeded(
                f"Session {session_id} spent ${spent:.4f} of ${self.session_budget_usd:.2f}",
                session_id=session_id,
                spent_usd=spent,
                limit_usd=self.session_budget_usd,
            )

    def get_usage(self, session_id: str) -> dict[str, Any]:
        with self._lock:
            entries = list(self._entries.get(session_id, []))
        by_task: dict[str, dict[str, Any]] = {}
        for e in entries:
            bucket = by_task.setdefault(e.task, {"calls": 0, "failures": 0, "cost_usd": 0.0})
            bucket["calls"] += 1
            bucket["failures"] += 0 if e.ok else 1
            bucket["cost_usd"] += e.cost_usd
        for bucket in by_task.values():
            bucket["cost_usd"] = round(bucket["cost_usd"], 6)
        return {
            "session_id": session_id,
            "total_calls": len(entries),
            "total_cost_usd": round(sum(e.cost_usd for e in entries), 6),
            "total_tokens": sum(e.input_tokens + e.output_tokens for e in entries),
            "budget_usd": self.session_budget_usd,
            "by_task": by_task,
        }

    def forget(self, session_id: str) -> None:
        with self._lock:
            self._entries.pop(session_id, None)

    def session_ids(self) -> set[str]:
        with self._lock:
            return set(self._entries)
