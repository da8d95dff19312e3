"""
Tests for the SessionStore.

Covers:
- Session lifecycle (create, get, delete, TTL expiry)
- add_answer: extraction, gaps, merge, topics, weak signals
- Follow-up answers
- Narrow setters and their validation
- Block transitions (forward only, no re-entry)
- Diagnostic persistence and stats views
"""

import pytest

from assessment.config.schema import EngineSettings
from assessment.exceptions import (
    DiagnosticNotFound,
    InvalidTransition,
    QuestionNotFound,
    SessionNotFound,
)
from assessment.interview.models import (
    Area,
    Block,
    FollowUpQuestion,
    Persona,
    SignalKind,
)
from assessment.interview.store import SessionStore
from assessment.storage.kv import InMemoryKeyValueStore


# ─── Fixtures ─────────────────────────────────────────────────────────


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return SessionStore(InMemoryKeyValueStore(clock=clock))


@pytest.fixture
def session_id(store):
    return store.create_session({"source": "test"}).id


# ─── Lifecycle ────────────────────────────────────────────────────────


class TestLifecycle:

    def test_create_defaults(self, store):
        session = store.create_session({"team_size": 12}, Persona.FOUNDER)
        assert session.id.startswith("sess_")
        assert session.current_block == Block.CONTEXT
        assert session.completeness_score == 0
        assert session.persona == Persona.FOUNDER
        assert session.initial_context == {"team_size": 12}

    def test_round_trip(self, store, session_id):
        assert store.get_session(session_id).id == session_id

    def test_unknown_session(self, store):
        with pytest.raises(SessionNotFound):
            store.get_session("sess_missing")

    def test_delete(self, store, session_id):
        assert store.delete_session(session_id) is True
        with pytest.raises(SessionNotFound):
            store.get_session(session_id)

    def test_list_active(self, store, session_id):
        assert store.list_active_sessions() == [session_id]

    def test_ttl_expiry(self, store, session_id, clock):
        clock.now += EngineSettings().interview.session_ttl_seconds + 1
        with pytest.raises(SessionNotFound):
            store.get_session(session_id)

    def test_writes_slide_ttl(self, store, session_id, clock):
        clock.now += 7000
        store.add_answer(session_id, "ctx-001", "Acme Analytics")
        clock.now += 7000
        assert store.get_session(session_id).answers

    def test_touch_unknown(self, store):
        with pytest.raises(SessionNotFound):
            store.touch("sess_missing")


# ─── Answers ──────────────────────────────────────────────────────────


class TestAddAnswer:

    def test_extracts_all_target_fields(self, store, session_id):
        outcome = store.add_answer(session_id, "ctx-004", "We have 25 people")
        assert outcome.extracted == {"company.team_size": 25, "people.headcount": 25}
        assert outcome.extraction_error is None
        assert outcome.session.extracted_data["company.team_size"] == 25

    def test_completeness_grows(self, store, session_id):
        outcome = store.add_answer(session_id, "ctx-001", "Acme Analytics")
        assert outcome.session.completeness_score == 6

    def test_extraction_failure_becomes_gap(self, store, session_id):
        outcome = store.add_answer(session_id, "ctx-004", "a handful")
        assert outcome.extraction_error
        session = outcome.session
        assert len(session.answers) == 1
        assert "company.team_size" in session.extraction_gaps
        assert "company.team_size" in session.gaps_identified

    def test_later_answer_clears_gap(self, store, session_id):
        store.add_answer(session_id, "ctx-004", "a handful")
        outcome = store.add_answer(session_id, "ctx-004", "about 15")
        assert "company.team_size" not in outcome.session.extraction_gaps

    def test_last_write_wins(self, store, session_id):
        store.add_answer(session_id, "ctx-001", "Acme")
        outcome = store.add_answer(session_id, "ctx-001", "Acme Analytics")
        assert outcome.session.extracted_data["company.name"] == "Acme Analytics"
        assert len(outcome.session.answers) == 2

    def test_unknown_question(self, store, session_id):
        with pytest.raises(QuestionNotFound):
            store.add_answer(session_id, "zzz-001", "hello")

    def test_topics_tracked(self, store, session_id):
        outcome = store.add_answer(
            session_id, "ctx-007", "Cut churn and hire a second engineering team"
        )
        assert {"customer", "team"} <= outcome.session.topics_covered

    def test_weak_signals_snapshot(self, store, session_id):
        outcome = store.add_answer(session_id, "ctx-004", "a handful, I guess")
        assert outcome.signals is not None
        assert SignalKind.MISSING_METRIC in outcome.signals.kinds
        assert SignalKind.HEDGING in outcome.signals.kinds
        assert outcome.signals.triggered is True
        assert store.get_session(session_id).last_signals == outcome.signals

    def test_block_question_index(self, store, session_id):
        store.add_answer(session_id, "ctx-001", "Acme Analytics")
        store.add_answer(session_id, "ctx-002", "B2B SaaS")
        assert store.get_session(session_id).block_question_index == 2

    def test_re_answer_not_counted_twice(self, store, session_id):
        store.add_answer(session_id, "ctx-001", "Acme Analytics")
        store.add_answer(session_id, "ctx-001", "Acme Analytics Inc")
        session = store.get_session(session_id)
        assert len(session.answers) == 2
        assert session.block_question_index == 1
        assert session.answered_count(Block.CONTEXT) == 1


class TestFollowUpAnswers:

    @pytest.fixture
    def follow_up(self):
        return FollowUpQuestion(
            id="fu-ctx-004-1",
            parent_question_id="ctx-004",
            block=Block.CONTEXT,
            area=Area.PEOPLE,
            text="Could you put a number on that?",
            reason="missing_metric",
        )

    def test_queue_charges_budget(self, store, session_id, follow_up):
        session = store.queue_follow_up(session_id, follow_up)
        assert session.pending_follow_up == follow_up
        assert session.follow_ups_asked == 1
        assert session.followed_up_question_ids == ["ctx-004"]

    def test_answer_resolves_parent(self, store, session_id, follow_up):
        store.add_answer(session_id, "ctx-004", "a handful")
        store.queue_follow_up(session_id, follow_up)
        outcome = store.add_answer(session_id, "fu-ctx-004-1", "about 12")
        assert outcome.is_follow_up is True
        assert outcome.signals is None
        session = outcome.session
        assert session.pending_follow_up is None
        assert session.extracted_data["company.team_size"] == 12
        assert session.answers[-1].parent_question_id == "ctx-004"
        assert "ctx-004" in session.answered_question_ids()

    def test_narrative_clarification_kept_aside(self, store, session_id):
        store.add_answer(session_id, "ctx-007", "Grow revenue 3x before next year")
        store.queue_follow_up(session_id, FollowUpQuestion(
            id="fu-ctx-007-1",
            parent_question_id="ctx-007",
            block=Block.CONTEXT,
            text="Could you say a bit more?",
            reason="vague",
        ))
        outcome = store.add_answer(session_id, "fu-ctx-007-1", "Mostly via enterprise deals")
        data = outcome.session.extracted_data
        assert data["goals.primary_goal"] == "Grow revenue 3x before next year"
        assert data["followups.ctx-007"] == "Mostly via enterprise deals"

    def test_stale_follow_up_id_rejected(self, store, session_id):
        with pytest.raises(QuestionNotFound):
            store.add_answer(session_id, "fu-ctx-004-1", "12")


# ─── Setters ──────────────────────────────────────────────────────────


class TestSetters:

    def test_expertise_set_once(self, store, session_id):
        store.set_detected_expertise(session_id, Area.SALES, 0.8, "pipeline talk")
        with pytest.raises(InvalidTransition):
            store.set_detected_expertise(session_id, Area.FINANCE, 0.9)
        session = store.get_session(session_id)
        assert session.detected_area == Area.SALES
        assert session.expertise_reasoning == "pipeline talk"

    def test_risk_areas_exclude_detected(self, store, session_id):
        store.set_detected_expertise(session_id, Area.SALES, 0.8)
        with pytest.raises(ValueError):
            store.set_risk_scan_areas(
                session_id, [Area.SALES, Area.FINANCE, Area.PRODUCT]
            )

    def test_risk_area_count(self, store, session_id):
        with pytest.raises(ValueError):
            store.set_risk_scan_areas(session_id, [Area.FINANCE, Area.FINANCE, Area.PRODUCT])

    def test_risk_areas_stored_in_order(self, store, session_id):
        store.set_detected_expertise(session_id, Area.TECHNOLOGY, 0.9)
        session = store.set_risk_scan_areas(
            session_id, [Area.PRODUCT, Area.OPERATIONS, Area.FINANCE], "graph"
        )
        assert session.risk_areas == [Area.PRODUCT, Area.OPERATIONS, Area.FINANCE]

    def test_routing_gap_recorded_once(self, store, session_id):
        store.record_routing_gap(session_id, "context: criteria unmet")
        session = store.record_routing_gap(session_id, "context: criteria unmet")
        assert session.routing_gaps == ["context: criteria unmet"]
        assert "context: criteria unmet" in session.gaps_identified

    def test_update_extracted_data_ignores_none(self, store, session_id):
        store.update_extracted_data(session_id, {"company.name": "Acme"})
        session = store.update_extracted_data(session_id, {"company.name": None})
        assert session.extracted_data["company.name"] == "Acme"


class TestTransitions:

    def test_forward(self, store, session_id):
        transition = store.advance_to_block(session_id, Block.EXPERTISE, "context criteria met")
        assert transition.from_block == Block.CONTEXT
        session = store.get_session(session_id)
        assert session.current_block == Block.EXPERTISE
        assert session.block_history == [transition]

    def test_backwards_rejected(self, store, session_id):
        store.advance_to_block(session_id, Block.EXPERTISE, "ok")
        with pytest.raises(InvalidTransition) as exc_info:
            store.advance_to_block(session_id, Block.CONTEXT, "back")
        assert exc_info.value.target_block == "context"

    def test_same_block_rejected(self, store, session_id):
        with pytest.raises(InvalidTransition):
            store.advance_to_block(session_id, Block.CONTEXT, "stay")

    def test_forced_flag(self, store, session_id):
        transition = store.advance_to_block(
            session_id, Block.EXPERTISE, "context: criteria unmet", forced=True
        )
        assert transition.forced is True


# ─── Diagnostics & Views ──────────────────────────────────────────────


class TestDiagnosticsAndViews:

    def test_diagnostic_round_trip(self, store, session_id):
        session = store.get_session(session_id)
        store.save_diagnostic("diag_1", session)
        assert session_id in store.get_diagnostic("diag_1")

    def test_missing_diagnostic(self, store):
        with pytest.raises(DiagnosticNotFound):
            store.get_diagnostic("diag_missing")

    def test_mark_completed(self, store, session_id):
        session = store.mark_completed(session_id, "diag_1", low_confidence=True)
        assert session.completed is True
        assert session.completed_at is not None
        assert session.diagnostic_id == "diag_1"
        assert session.low_confidence is True

    def test_stats(self, store, session_id):
        store.add_answer(session_id, "ctx-001", "Acme Analytics")
        stats = store.get_session_stats(session_id)
        assert stats["current_block"] == "context"
        assert stats["total_answers"] == 1
        assert stats["answers_per_block"]["context"] == 1
        assert stats["progress_percentage"] == pytest.approx(14.3)
        assert stats["completion_metrics"]["completeness_score"] == 6
        assert set(stats["topic_coverage"]) == {"percentage", "covered", "missing"}

    def test_summary(self, store, session_id):
        store.set_detected_expertise(session_id, Area.FINANCE, 0.7)
        summary = store.get_session_summary(session_id)
        assert summary["detected_area"] == "finance"
        assert summary["risk_areas"] == []
        assert summary["completed"] is False
