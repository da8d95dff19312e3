"""
Session Store: the only writer of interview session state.

Sessions are serialized as JSON into an injected KeyValueStore under
`session:<id>` with a sliding TTL. Diagnostics live under
`diagnostic:<id>` without a TTL, so a finished report outlives the
session that produced it.

Every answer goes through `add_answer`, which:
1. appends the answer to the log,
2. runs the question's extractor (failures become gaps, never errors),
3. merges the extracted fields last-write-wins,
4. tracks topics and weak signals,
5. recomputes completeness and gaps,
6. persists.

Usage:
    store = SessionStore(InMemoryKeyValueStore())
    session = store.create_session({"source": "landing-page"})
    outcome = store.add_answer(session.id, "ctx-001", "Acme Analytics")
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel

from assessment.config.schema import EngineSettings
from assessment.exceptions import (
    DiagnosticNotFound,
    ExtractionFailure,
    InvalidTransition,
    QuestionNotFound,
    SessionNotFound,
)
from assessment.interview.models import (
    BLOCK_ORDER,
    Answer,
    Area,
    Block,
    BlockTransition,
    FollowUpQuestion,
    Persona,
    Session,
    SignalSnapshot,
    block_position,
)
from assessment.interview.questions import Question, QuestionBank
from assessment.interview.scoring import CompletenessScorer, field_has_value
from assessment.interview.signals import AnswerContext, CompositeSignalDetector
from assessment.interview.topics import detect_topics, topic_coverage
from assessment.storage.kv import KeyValueStore

logger = logging.getLogger(__name__)

SESSION_PREFIX = "session:"
DIAGNOSTIC_PREFIX = "diagnostic:"

# Catalog answers expected by the end of each block
EXPECTED_TOTALS: dict[Block, int] = {
    Block.CONTEXT: 7,
    Block.EXPERTISE: 11,
    Block.DEEP_DIVE: 16,
    Block.RISK_SCAN: 19,
}


@dataclass
class AnswerOutcome:
    """What `add_answer` did with one answer."""
    session: Session
    extracted: dict[str, Any] = field(default_factory=dict)
    extraction_error: Optional[str] = None
    signals: Optional[SignalSnapshot] = None
    is_follow_up: bool = False


def _now() -> datetime:
    return datetime.now(timezone.utc)


class SessionStore:
    """Persistence and narrow mutators for interview sessions."""

    def __init__(
        self,
        kv: KeyValueStore,
        question_bank: Optional[QuestionBank] = None,
        scorer: Optional[CompletenessScorer] = None,
        detectors: Optional[CompositeSignalDetector] = None,
        settings: Optional[EngineSettings] = None,
    ):
        self._kv = kv
        self._settings = settings or EngineSettings()
        self._bank = question_bank or QuestionBank()
        self._scorer = scorer or CompletenessScorer(
            self._bank, self._settings.scoring, self._settings.interview
        )
        self._detectors = detectors or CompositeSignalDetector.default(
            min_answer_length=self._settings.interview.min_answer_length,
            threshold=self._settings.interview.signal_threshold,
        )
        self._ttl = self._settings.interview.session_ttl_seconds

    @property
    def question_bank(self) -> QuestionBank:
        return self._bank

    @property
    def scorer(self) -> CompletenessScorer:
        return self._scorer

    # ── Persistence ──────────────────────────────────────────────

    def _key(self, session_id: str) -> str:
        return f"{SESSION_PREFIX}{session_id}"

    def _save(self, session: Session) -> Session:
        session.updated_at = _now()
        self._kv.set(
            self._key(session.id), session.model_dump_json(), ttl_seconds=self._ttl
        )
        return session

    def _refresh(self, session: Session) -> None:
        """Recompute derived fields. Pure function of the session's data."""
        session.completeness_score = self._scorer.score(session)
        session.gaps_identified = self._scorer.identify_gaps(session)
        session.block_question_index = session.answered_count(session.current_block)

    # ── Lifecycle ────────────────────────────────────────────────

    def create_session(
        self,
        initial_context: Optional[dict[str, Any]] = None,
        persona: Optional[Persona] = None,
    ) -> Session:
        session = Session(initial_context=dict(initial_context or {}), persona=persona)
        self._refresh(session)
        self._save(session)
        logger.info(
            "session_created",
            extra={"session_id": session.id, "persona": persona.value if persona else None},
        )
        return session

    def get_session(self, session_id: str) -> Session:
        raw = self._kv.get(self._key(session_id))
        if raw is None:
            raise SessionNotFound(session_id)
        return Session.model_validate_json(raw)

    def delete_session(self, session_id: str) -> bool:
        deleted = self._kv.delete(self._key(session_id))
        if deleted:
            logger.info("session_deleted", extra={"session_id": session_id})
        return deleted

    def list_active_sessions(self) -> list[str]:
        return [
            k[len(SESSION_PREFIX):] for k in self._kv.keys(f"{SESSION_PREFIX}*")
        ]

    def touch(self, session_id: str) -> None:
        """Refresh the session's TTL without changing it."""
        if not self._kv.expire(self._key(session_id), self._ttl):
            raise SessionNotFound(session_id)

    # ── Answers ──────────────────────────────────────────────────

    def _resolve_question(
        self, session: Session, question_id: str
    ) -> tuple[Question, Optional[FollowUpQuestion]]:
        """Catalog question for an answer, plus the follow-up if it is one."""
        pending = session.pending_follow_up
        if pending is not None and pending.id == question_id:
            return self._bank.get_question_by_id(pending.parent_question_id), pending
        return self._bank.get_question_by_id(question_id), None

    def _extract(
        self,
        session: Session,
        question: Question,
        text: str,
        follow_up: Optional[FollowUpQuestion],
    ) -> dict[str, Any]:
        if (
            follow_up is not None
            and question.open_ended
            and field_has_value(session.extracted_data, question.essential_field)
        ):
            # Clarification of a narrative answer: keep it beside the original
            return {f"followups.{question.id}": text.strip()}
        return question.extract(text)

    def add_answer(self, session_id: str, question_id: str, text: str) -> AnswerOutcome:
        """
        Record an answer and update everything derived from it.

        Raises:
            SessionNotFound: Unknown or expired session.
            QuestionNotFound: Neither a catalog question nor the pending follow-up.
        """
        session = self.get_session(session_id)
        question, follow_up = self._resolve_question(session, question_id)

        session.answers.append(
            Answer(
                question_id=question_id,
                text=text,
                block=question.block,
                area=question.area,
                is_follow_up=follow_up is not None,
                parent_question_id=question.id if follow_up else None,
            )
        )

        previous_data = dict(session.extracted_data)
        extracted: dict[str, Any] = {}
        error: Optional[str] = None
        try:
            extracted = self._extract(session, question, text, follow_up)
        except ExtractionFailure as e:
            error = str(e)
            gap = e.field or question.essential_field
            if gap not in session.extraction_gaps:
                session.extraction_gaps.append(gap)
            logger.warning(
                "extraction_failed",
                extra={
                    "session_id": session.id,
                    "question_id": question_id,
                    "field": gap,
                    "reason": error,
                },
            )

        self._merge(session, extracted)
        session.topics_covered |= detect_topics(text)

        # Any answer settles the pending follow-up; follow-ups never chain
        session.pending_follow_up = None
        snapshot: Optional[SignalSnapshot] = None
        if follow_up is None:
            report = self._detectors.evaluate(
                AnswerContext(
                    question=question,
                    text=text,
                    session=session,
                    extracted=extracted,
                    extraction_failed=error is not None,
                    previous_data=previous_data,
                )
            )
            snapshot = report.to_snapshot()
            if report.signals:
                logger.info(
                    "weak_signals_detected",
                    extra={
                        "session_id": session.id,
                        "question_id": question_id,
                        "signals": [k.value for k in report.kinds],
                        "score": report.score,
                        "triggered": report.triggered,
                    },
                )
        session.last_signals = snapshot

        self._refresh(session)
        self._save(session)

        logger.info(
            "answer_recorded",
            extra={
                "session_id": session.id,
                "question_id": question_id,
                "block": question.block.value,
                "fields": sorted(extracted),
                "completeness": session.completeness_score,
            },
        )
        return AnswerOutcome(
            session=session,
            extracted=extracted,
            extraction_error=error,
            signals=snapshot,
            is_follow_up=follow_up is not None,
        )

    def _merge(self, session: Session, data: dict[str, Any]) -> None:
        """Last-write-wins merge. None values never overwrite."""
        for key, value in data.items():
            if value is None:
                continue
            session.extracted_data[key] = value
            if key in session.extraction_gaps:
                session.extraction_gaps.remove(key)

    def update_extracted_data(self, session_id: str, data: dict[str, Any]) -> Session:
        session = self.get_session(session_id)
        self._merge(session, data)
        self._refresh(session)
        return self._save(session)

    # ── Narrow setters ───────────────────────────────────────────

    def set_detected_expertise(
        self,
        session_id: str,
        area: Area,
        confidence: float,
        reasoning: str = "",
    ) -> Session:
        session = self.get_session(session_id)
        if session.detected_area is not None:
            raise InvalidTransition(
                f"Expertise already detected for {session_id}: "
                f"{session.detected_area.value}",
                current_block=session.current_block.value,
                target_block=Block.DEEP_DIVE.value,
            )
        session.detected_area = area
        session.expertise_confidence = confidence
        session.expertise_reasoning = reasoning
        logger.info(
            "expertise_set",
            extra={"session_id": session_id, "area": area.value, "confidence": confidence},
        )
        return self._save(session)

    def set_deep_dive_area(self, session_id: str, area: Area) -> Session:
        session = self.get_session(session_id)
        session.deep_dive_area = area
        self._refresh(session)
        return self._save(session)

    def set_risk_scan_areas(
        self,
        session_id: str,
        areas: list[Area],
        reasoning: str = "",
    ) -> Session:
        session = self.get_session(session_id)
        distinct = list(dict.fromkeys(areas))
        if session.detected_area in distinct:
            raise ValueError(
                f"Risk areas must exclude the detected area {session.detected_area.value}"
            )
        expected = self._settings.interview.risk_area_count
        if len(distinct) != expected:
            raise ValueError(f"Expected {expected} distinct risk areas, got {len(distinct)}")
        session.risk_areas = distinct
        session.risk_reasoning = reasoning
        self._refresh(session)
        logger.info(
            "risk_areas_set",
            extra={"session_id": session_id, "areas": [a.value for a in distinct]},
        )
        return self._save(session)

    def advance_to_block(
        self,
        session_id: str,
        block: Block,
        reason: str,
        forced: bool = False,
    ) -> BlockTransition:
        """
        Move the session into `block`. The only writer of `current_block`.

        Raises:
            InvalidTransition: `block` is not after the current block, or
                has been entered before.
        """
        session = self.get_session(session_id)
        current = session.current_block
        entered = {t.to_block for t in session.block_history}
        if block_position(block) <= block_position(current) or block in entered:
            raise InvalidTransition(
                f"Cannot move from {current.value} to {block.value}",
                current_block=current.value,
                target_block=block.value,
            )

        transition = BlockTransition(
            from_block=current, to_block=block, reason=reason, forced=forced
        )
        session.block_history.append(transition)
        session.current_block = block
        session.block_question_index = 0
        self._refresh(session)
        self._save(session)
        logger.info(
            "block_transition",
            extra={
                "session_id": session_id,
                "from_block": current.value,
                "to_block": block.value,
                "reason": reason,
                "forced": forced,
            },
        )
        return transition

    def queue_follow_up(self, session_id: str, follow_up: FollowUpQuestion) -> Session:
        """Make `follow_up` the next question and charge it to the budget."""
        session = self.get_session(session_id)
        session.pending_follow_up = follow_up
        session.last_signals = None
        session.follow_ups_asked += 1
        if follow_up.parent_question_id not in session.followed_up_question_ids:
            session.followed_up_question_ids.append(follow_up.parent_question_id)
        logger.info(
            "follow_up_queued",
            extra={
                "session_id": session_id,
                "question_id": follow_up.id,
                "reason": follow_up.reason,
            },
        )
        return self._save(session)

    def record_routing_gap(self, session_id: str, gap: str) -> Session:
        session = self.get_session(session_id)
        if gap not in session.routing_gaps:
            session.routing_gaps.append(gap)
        self._refresh(session)
        return self._save(session)

    def mark_completed(
        self,
        session_id: str,
        diagnostic_id: str,
        low_confidence: bool = False,
    ) -> Session:
        session = self.get_session(session_id)
        session.completed = True
        session.completed_at = _now()
        session.diagnostic_id = diagnostic_id
        session.low_confidence = low_confidence
        return self._save(session)

    # ── Diagnostics ──────────────────────────────────────────────

    def save_diagnostic(self, diagnostic_id: str, diagnostic: BaseModel) -> None:
        self._kv.set(f"{DIAGNOSTIC_PREFIX}{diagnostic_id}", diagnostic.model_dump_json())

    def get_diagnostic(self, diagnostic_id: str) -> str:
        """Raw JSON of a stored diagnostic."""
        raw = self._kv.get(f"{DIAGNOSTIC_PREFIX}{diagnostic_id}")
        if raw is None:
            raise DiagnosticNotFound(diagnostic_id)
        return raw

    # ── Read-only views ──────────────────────────────────────────

    def get_session_stats(self, session_id: str) -> dict[str, Any]:
        session = self.get_session(session_id)
        catalog_answers = len(session.answered_question_ids())
        expected = EXPECTED_TOTALS[session.current_block]
        return {
            "session_id": session.id,
            "current_block": session.current_block.value,
            "completeness_score": self._scorer.score(session),
            "answers_per_block": {
                b.value: len(session.answers_in_block(b)) for b in BLOCK_ORDER
            },
            "total_answers": len(session.answers),
            "follow_ups_asked": session.follow_ups_asked,
            "elapsed_seconds": round(session.elapsed_seconds()),
            "progress_percentage": min(round(100 * catalog_answers / expected, 1), 100.0),
            "topic_coverage": topic_coverage(session.topics_covered),
            "questions_remaining": self._scorer.estimate_questions_remaining(session),
            "completion_metrics": self._scorer.metrics(session).model_dump(),
        }

    def get_session_summary(self, session_id: str) -> dict[str, Any]:
        session = self.get_session(session_id)
        return {
            "session_id": session.id,
            "detected_area": session.detected_area.value if session.detected_area else None,
            "expertise_confidence": session.expertise_confidence,
            "deep_dive_area": session.deep_dive_area.value if session.deep_dive_area else None,
            "risk_areas": [a.value for a in session.risk_areas],
            "total_answers": len(session.answers),
            "data_fields_filled": self._scorer.total_fields_collected(session),
            "completed": session.completed,
        }
