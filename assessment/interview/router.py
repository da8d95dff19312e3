"""
Block Router: decides what to ask next.

Blocks are visited strictly in order (context → expertise → deep-dive →
risk-scan). A block is left once it has enough answers AND enough of its
essential fields; if its catalog runs out first, the router moves on
anyway and records a routing gap.

The router never calls a model. Entering deep-dive needs the detected
expertise area and entering risk-scan needs the selected risk areas;
when those are missing the router raises ExpertiseRequired or
RiskAreasRequired *before* changing anything, and the engine facade
runs the model step and routes again.

Order of checks on every call:
1. completed session, or finish criteria met → stop
2. pending follow-up → serve it again
3. weak signals on the last answer (budget permitting) → new follow-up
4. advance blocks whose criteria are met
5. next unanswered catalog question in the current block
6. catalog exhausted: forced transition, or gap-fill follow-up in risk-scan
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from assessment.config.schema import InterviewSettings
from assessment.exceptions import ExpertiseRequired, RiskAreasRequired
from assessment.interview.models import (
    BLOCK_ORDER,
    Block,
    BlockTransition,
    FollowUpQuestion,
    Session,
    block_position,
    next_block,
)
from assessment.interview.questions import Question, QuestionBank
from assessment.interview.scoring import (
    CompletenessScorer,
    CompletionMetrics,
    field_has_value,
)
from assessment.interview.signals import build_follow_up, build_gap_follow_up
from assessment.interview.store import SessionStore

logger = logging.getLogger(__name__)

TERMINAL_THRESHOLD_GAP = f"{Block.RISK_SCAN.value}: terminal threshold unmet"


@dataclass
class RoutingDecision:
    """Outcome of one routing call."""
    should_ask: bool
    question: Optional[Union[Question, FollowUpQuestion]] = None
    is_follow_up: bool = False
    block: Optional[Block] = None
    transition: Optional[BlockTransition] = None
    reason: str = ""
    completion_metrics: Optional[CompletionMetrics] = None
    question_payload: dict[str, Any] = field(default_factory=dict)

    @property
    def should_finish(self) -> bool:
        return not self.should_ask


class BlockRouter:
    """Stateless routing over the SessionStore."""

    def __init__(
        self,
        store: SessionStore,
        bank: Optional[QuestionBank] = None,
        scorer: Optional[CompletenessScorer] = None,
        settings: Optional[InterviewSettings] = None,
    ):
        self._store = store
        self._bank = bank or store.question_bank
        self._scorer = scorer or store.scorer
        self._settings = settings or InterviewSettings()

    # ── Criteria ─────────────────────────────────────────────────

    def block_questions(self, session: Session, block: Block) -> list[Question]:
        """Catalog questions of `block` for this session."""
        if block == Block.DEEP_DIVE and session.detected_area is None:
            raise ExpertiseRequired(
                "Deep-dive needs the detected expertise area", session_id=session.id
            )
        if block == Block.RISK_SCAN and not session.risk_areas:
            raise RiskAreasRequired(
                "Risk-scan needs the selected risk areas", session_id=session.id
            )
        return self._bank.questions_for_session(
            block,
            deep_dive_area=session.deep_dive_area or session.detected_area,
            risk_areas=session.risk_areas,
            persona=session.persona,
        )

    def block_criteria_met(self, session: Session, block: Block) -> bool:
        answered = session.answered_count(block)
        ratio = self._scorer.block_completion(session, block).ratio
        return (
            answered >= self._settings.min_questions_for(block)
            and ratio >= self._settings.threshold_for(block)
        )

    def _check_entry(self, session: Session, block: Block) -> None:
        """Raise before entering a block whose model-backed input is missing."""
        if block == Block.DEEP_DIVE and session.detected_area is None:
            raise ExpertiseRequired(
                "Detect expertise before entering deep-dive", session_id=session.id
            )
        if block == Block.RISK_SCAN and not session.risk_areas:
            raise RiskAreasRequired(
                "Select risk areas before entering risk-scan", session_id=session.id
            )

    def _gap_fill_candidate(self, session: Session) -> Optional[Question]:
        """First asked question whose essential field is still missing."""
        if session.follow_ups_asked >= self._settings.max_follow_ups:
            return None
        answered = session.answered_question_ids()
        for block in BLOCK_ORDER:
            if block_position(block) > block_position(session.current_block):
                break
            for q in self.block_questions(session, block):
                if (
                    q.id in answered
                    and q.id not in session.followed_up_question_ids
                    and not field_has_value(session.extracted_data, q.essential_field)
                ):
                    return q
        return None

    def can_finish_assessment(self, session: Session) -> bool:
        """The single authority on whether the interview is over."""
        if session.current_block != Block.RISK_SCAN or not session.risk_areas:
            return False
        if session.pending_follow_up is not None:
            return False
        answered = session.answered_question_ids()
        risk_questions = self.block_questions(session, Block.RISK_SCAN)
        if any(q.id not in answered for q in risk_questions):
            return False
        if self._scorer.score(session) >= self._settings.terminal_threshold:
            return True
        return self._gap_fill_candidate(session) is None

    # ── Routing ──────────────────────────────────────────────────

    def _decision(
        self,
        session: Session,
        question: Optional[Union[Question, FollowUpQuestion]],
        reason: str,
        transition: Optional[BlockTransition] = None,
    ) -> RoutingDecision:
        is_follow_up = isinstance(question, FollowUpQuestion)
        payload: dict[str, Any] = {}
        if isinstance(question, FollowUpQuestion):
            parent = self._bank.get_question_by_id(question.parent_question_id)
            payload = parent.to_dict() | {
                "id": question.id,
                "text": question.text,
                "parent_question_id": parent.id,
                "is_follow_up": True,
            }
        elif question is not None:
            payload = question.to_dict() | {"is_follow_up": False}
        return RoutingDecision(
            should_ask=question is not None,
            question=question,
            is_follow_up=is_follow_up,
            block=session.current_block,
            transition=transition,
            reason=reason,
            completion_metrics=self._scorer.metrics(session),
            question_payload=payload,
        )

    def _signal_follow_up(self, session: Session) -> Optional[FollowUpQuestion]:
        signals = session.last_signals
        if signals is None or not signals.triggered:
            return None
        if session.follow_ups_asked >= self._settings.max_follow_ups:
            return None
        if signals.question_id in session.followed_up_question_ids:
            return None
        parent = self._bank.get_question_by_id(signals.question_id)
        return build_follow_up(
            parent,
            signals.kinds,
            sequence=session.follow_ups_asked + 1,
            reason="; ".join(signals.reasons),
        )

    def _record_unmet_threshold(self, session: Session) -> Session:
        """Finishing below the terminal threshold leaves a routing gap."""
        if TERMINAL_THRESHOLD_GAP in session.routing_gaps:
            return session
        logger.warning(
            "finish_below_threshold",
            extra={
                "session_id": session.id,
                "completeness_score": session.completeness_score,
                "terminal_threshold": self._settings.terminal_threshold,
            },
        )
        return self._store.record_routing_gap(session.id, TERMINAL_THRESHOLD_GAP)

    def route_to_next_question(self, session_id: str) -> RoutingDecision:
        """
        Pick the next question for a session, advancing blocks as needed.

        Calling it twice without an answer in between returns the same
        question and no second transition.

        Raises:
            SessionNotFound: Unknown session.
            ExpertiseRequired / RiskAreasRequired: A model step must run first.
        """
        session = self._store.get_session(session_id)

        if session.completed:
            return self._decision(session, None, "session completed")
        if self.can_finish_assessment(session):
            if self._scorer.score(session) < self._settings.terminal_threshold:
                session = self._record_unmet_threshold(session)
            return self._decision(session, None, "finish criteria met")

        if session.pending_follow_up is not None:
            return self._decision(session, session.pending_follow_up, "pending follow-up")

        follow_up = self._signal_follow_up(session)
        if follow_up is not None:
            session = self._store.queue_follow_up(session_id, follow_up)
            return self._decision(session, follow_up, f"weak signals: {follow_up.reason}")

        transition: Optional[BlockTransition] = None
        while True:
            block = session.current_block
            upcoming = next_block(block)

            if upcoming is not None and self.block_criteria_met(session, block):
                self._check_entry(session, upcoming)
                transition = self._store.advance_to_block(
                    session_id, upcoming, reason=f"{block.value} criteria met"
                )
                session = self._store.get_session(session_id)
                continue

            answered = session.answered_question_ids()
            remaining = [
                q for q in self.block_questions(session, block) if q.id not in answered
            ]
            if remaining:
                return self._decision(
                    session, remaining[0], f"next {block.value} question", transition
                )

            if upcoming is None:
                gap_question = self._gap_fill_candidate(session)
                if gap_question is None:
                    return self._decision(session, None, "no questions left", transition)
                gap_fill = build_gap_follow_up(gap_question, session.follow_ups_asked + 1)
                session = self._store.queue_follow_up(session_id, gap_fill)
                return self._decision(session, gap_fill, gap_fill.reason, transition)

            self._check_entry(session, upcoming)
            gap = f"{block.value}: criteria unmet"
            self._store.record_routing_gap(session_id, gap)
            logger.warning(
                "block_forced_transition",
                extra={
                    "session_id": session_id,
                    "from_block": block.value,
                    "to_block": upcoming.value,
                    "reason": gap,
                },
            )
            transition = self._store.advance_to_block(
                session_id, upcoming, reason=gap, forced=True
            )
            session = self._store.get_session(session_id)
