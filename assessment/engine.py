"""
Interview Engine: the facade every outer surface talks to.

Wires the session store, block router and model orchestration together
and owns the two places where routing needs a model:

    router raises ExpertiseRequired  → detect expertise, route again
    router raises RiskAreasRequired  → select risk areas, route again

Completion runs diagnostic generation and synthesis under a per-session
asyncio.Lock, so two concurrent `complete` calls produce one diagnostic.

Usage:
    engine = InterviewEngine(load_settings(), model_router=router)
    session_id = engine.create_session({"source": "landing-page"})
    nxt = await engine.next_question(session_id)
    await engine.submit_answer(session_id, nxt.question["id"], "Acme Analytics")
    ...
    diagnostic = await engine.complete(session_id)
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from pydantic import BaseModel, Field

from assessment.config.schema import EngineSettings
from assessment.diagnostic.models import Diagnostic
from assessment.diagnostic.synthesizer import synthesize, validate_diagnostic
from assessment.exceptions import (
    ExpertiseRequired,
    InvalidTransition,
    RiskAreasRequired,
)
from assessment.interview.areas import AreaGraph
from assessment.interview.models import BlockTransition, Persona, SignalSnapshot
from assessment.interview.questions import QuestionBank
from assessment.interview.router import BlockRouter, RoutingDecision
from assessment.interview.scoring import CompletenessScorer, CompletionMetrics
from assessment.interview.store import SessionStore
from assessment.llm.prompts import PromptLibrary
from assessment.llm.router import ModelRouter
from assessment.observability.logging_config import session_context
from assessment.orchestration.diagnostic import DiagnosticGenerator
from assessment.orchestration.expertise import ExpertiseDetector, ExpertiseResult
from assessment.orchestration.ledger import CostLedger
from assessment.orchestration.risk import RiskAreaSelector, RiskSelectionResult
from assessment.orchestration.structured import StructuredCaller
from assessment.storage.kv import InMemoryKeyValueStore, KeyValueStore

logger = logging.getLogger(__name__)

# Route, detect expertise, route, select risk areas, route
MAX_ROUTING_STEPS = 3


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------

class NextQuestionResponse(BaseModel):
    session_id: str
    question: Optional[dict[str, Any]] = None
    routing_metadata: dict[str, Any] = Field(default_factory=dict)
    should_finish: bool = False
    completion_metrics: CompletionMetrics


class SubmitAnswerResponse(BaseModel):
    session_id: str
    question_id: str
    extracted_data: dict[str, Any] = Field(default_factory=dict)
    extraction_error: Optional[str] = None
    completeness_score: int
    block_transition: Optional[BlockTransition] = None
    signals: Optional[SignalSnapshot] = None


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class InterviewEngine:
    def __init__(
        self,
        settings: Optional[EngineSettings] = None,
        *,
        kv: Optional[KeyValueStore] = None,
        model_router: Optional[ModelRouter] = None,
        bank: Optional[QuestionBank] = None,
        graph: Optional[AreaGraph] = None,
    ):
        self.settings = settings or EngineSettings()
        self.bank = bank or QuestionBank()
        self.graph = graph or AreaGraph()
        self.scorer = CompletenessScorer(
            self.bank, self.settings.scoring, self.settings.interview
        )
        self.store = SessionStore(
            kv or InMemoryKeyValueStore(),
            question_bank=self.bank,
            scorer=self.scorer,
            settings=self.settings,
        )
        self.router = BlockRouter(
            self.store, self.bank, self.scorer, self.settings.interview
        )

        orchestration = self.settings.orchestration
        self.ledger = CostLedger(session_budget_usd=orchestration.session_budget_usd)
        self.caller = StructuredCaller(
            model_router,
            PromptLibrary(default_version=orchestration.prompt_version),
            self.ledger,
            timeout_seconds=orchestration.timeout_seconds,
            prompt_version=orchestration.prompt_version,
        )
        self.detector = ExpertiseDetector(
            self.caller, self.bank, timeout_seconds=orchestration.fast_timeout_seconds
        )
        self.selector = RiskAreaSelector(
            self.caller,
            self.graph,
            self.bank,
            count=self.settings.interview.risk_area_count,
            timeout_seconds=orchestration.fast_timeout_seconds,
        )
        self.generator = DiagnosticGenerator(
            self.caller, self.bank, self.scorer, orchestration
        )
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock(self, session_id: str) -> asyncio.Lock:
        """Per-session lock; only live sessions get one."""
        self.store.get_session(session_id)
        return self._locks.setdefault(session_id, asyncio.Lock())

    def _forget(self, session_id: str) -> None:
        self.ledger.forget(session_id)
        self.generator.forget(session_id)
        self._locks.pop(session_id, None)

    def purge_expired(self) -> list[str]:
        """
        Drop locks, ledger entries and cached drafts of sessions the store
        no longer holds (expired by TTL or deleted behind the engine).
        """
        tracked = (
            set(self._locks)
            | self.ledger.session_ids()
            | self.generator.cached_session_ids()
        )
        stale = sorted(tracked - set(self.store.list_active_sessions()))
        for session_id in stale:
            self._forget(session_id)
        if stale:
            logger.info("expired_sessions_purged", extra={"count": len(stale)})
        return stale

    # ── Sessions ─────────────────────────────────────────────────

    def create_session(
        self,
        initial_context: Optional[dict[str, Any]] = None,
        persona: Optional[Persona] = None,
    ) -> str:
        self.purge_expired()
        session = self.store.create_session(initial_context, persona)
        return session.id

    def delete_session(self, session_id: str) -> bool:
        self._forget(session_id)
        return self.store.delete_session(session_id)

    def get_session_stats(self, session_id: str) -> dict[str, Any]:
        stats = self.store.get_session_stats(session_id)
        stats["model_usage"] = self.ledger.get_usage(session_id)
        return stats

    def get_session_summary(self, session_id: str) -> dict[str, Any]:
        return self.store.get_session_summary(session_id)

    def get_diagnostic(self, diagnostic_id: str) -> Diagnostic:
        return Diagnostic.model_validate_json(self.store.get_diagnostic(diagnostic_id))

    # ── Model-backed routing steps ───────────────────────────────

    async def _detect_expertise(self, session_id: str) -> None:
        session = self.store.get_session(session_id)
        if session.detected_area is None:
            result = await self.detector.detect(session)
            self.store.set_detected_expertise(
                session_id, result.area, result.confidence, result.reasoning
            )
            area = result.area
        else:
            area = session.detected_area
        self.store.set_deep_dive_area(session_id, area)

    async def _select_risk_areas(self, session_id: str) -> None:
        session = self.store.get_session(session_id)
        result = await self.selector.select(session, ExpertiseResult.from_session(session))
        self.store.set_risk_scan_areas(session_id, list(result.areas), result.reasoning)

    async def _route(self, session_id: str) -> RoutingDecision:
        for _ in range(MAX_ROUTING_STEPS):
            try:
                return self.router.route_to_next_question(session_id)
            except ExpertiseRequired:
                await self._detect_expertise(session_id)
            except RiskAreasRequired:
                await self._select_risk_areas(session_id)
        return self.router.route_to_next_question(session_id)

    # ── Interview ────────────────────────────────────────────────

    async def next_question(self, session_id: str) -> NextQuestionResponse:
        with session_context(session_id):
            async with self._lock(session_id):
                decision = await self._route(session_id)
                session = self.store.get_session(session_id)
            transition = decision.transition
            return NextQuestionResponse(
                session_id=session_id,
                question=decision.question_payload or None,
                routing_metadata={
                    "current_block": session.current_block.value,
                    "reason": decision.reason,
                    "is_follow_up": decision.is_follow_up,
                    "transition": transition.model_dump(mode="json") if transition else None,
                    "follow_ups_asked": session.follow_ups_asked,
                    "questions_remaining": self.scorer.estimate_questions_remaining(session),
                },
                should_finish=decision.should_finish,
                completion_metrics=decision.completion_metrics or self.scorer.metrics(session),
            )

    async def submit_answer(
        self,
        session_id: str,
        question_id: str,
        text: str,
    ) -> SubmitAnswerResponse:
        """
        Record an answer, then route so block moves happen right away.

        Raises:
            SessionNotFound: Unknown or expired session.
            QuestionNotFound: The id is neither a catalog question nor the
                pending follow-up.
            InvalidTransition: The session is already completed.
        """
        with session_context(session_id):
            async with self._lock(session_id):
                before = self.store.get_session(session_id)
                if before.completed:
                    raise InvalidTransition(
                        f"Session {session_id} is already completed",
                        current_block=before.current_block.value,
                    )
                seen = len(before.block_history)

                outcome = self.store.add_answer(session_id, question_id, text)
                await self._route(session_id)
                session = self.store.get_session(session_id)

            new_transitions = session.block_history[seen:]
            return SubmitAnswerResponse(
                session_id=session_id,
                question_id=question_id,
                extracted_data=outcome.extracted,
                extraction_error=outcome.extraction_error,
                completeness_score=session.completeness_score,
                block_transition=new_transitions[-1] if new_transitions else None,
                signals=outcome.signals,
            )

    async def complete(self, session_id: str, override: bool = False) -> Diagnostic:
        """
        Generate, store and return the session's diagnostic.

        Idempotent: a completed session returns its stored diagnostic.
        `override` lets low-value leads through the lead gate.

        Raises:
            SessionNotFound: Unknown or expired session.
            InvalidTransition: The interview is not finished yet.
        """
        with session_context(session_id):
            async with self._lock(session_id):
                session = self.store.get_session(session_id)
                if session.diagnostic_id:
                    return self.get_diagnostic(session.diagnostic_id)
                if not self.router.can_finish_assessment(session):
                    raise InvalidTransition(
                        f"Session {session_id} cannot be completed yet",
                        current_block=session.current_block.value,
                        details={"completeness_score": session.completeness_score},
                    )

                expertise = ExpertiseResult.from_session(session)
                risk = RiskSelectionResult.from_session(session)
                draft = await self.generator.generate(session, expertise, risk, override=override)
                diagnostic = synthesize(
                    session, expertise, risk, draft, graph=self.graph, scorer=self.scorer
                )

                issues = validate_diagnostic(diagnostic)
                if issues:
                    logger.warning(
                        "diagnostic_validation_issues",
                        extra={"diagnostic_id": diagnostic.id, "issues": issues},
                    )

                self.store.save_diagnostic(diagnostic.id, diagnostic)
                self.store.mark_completed(
                    session_id, diagnostic.id, low_confidence=diagnostic.low_confidence
                )
                logger.info(
                    "session_completed",
                    extra={
                        "diagnostic_id": diagnostic.id,
                        "overall_score": diagnostic.overall_score,
                        "cost_usd": round(self.ledger.get_session_cost(session_id), 5),
                    },
                )
                return diagnostic
