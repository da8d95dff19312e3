"""
Tests for the Block Router.

Covers:
- Strict block order and criteria-based advancement
- Idempotent routing (no double transitions without an answer)
- Routing preconditions raised before any state change
- Weak-signal follow-ups and the follow-up budget
- Forced transitions with routing gaps when a catalog runs out
- Finish criteria and gap-fill follow-ups in risk-scan
- Routing gap when finishing below the terminal threshold
"""

import pytest

from assessment.config.schema import EngineSettings, InterviewSettings
from assessment.exceptions import ExpertiseRequired, RiskAreasRequired
from assessment.interview.models import Area, Block, FollowUpQuestion
from assessment.interview.router import TERMINAL_THRESHOLD_GAP, BlockRouter
from assessment.interview.store import SessionStore
from assessment.storage.kv import InMemoryKeyValueStore


CONTEXT_ANSWERS = {
    "ctx-001": "Acme Analytics",
    "ctx-002": "B2B SaaS for logistics companies",
    "ctx-003": "Startup (finding product-market fit, growing)",
    "ctx-004": "We have 25 people",
    "ctx-005": "$200k per month",
    "ctx-006": "Founded in 2018",
    "ctx-007": "Grow revenue 3x and cut churn in half by next year",
}

EXPERTISE_ANSWERS = {
    "exp-001": "Our deployment pipeline is slow and releases break production often.",
    "exp-002": "Technology, because our infrastructure cannot keep up with growth.",
    "exp-003": "Deploy frequency, incident count and uptime every single week.",
    "exp-004": "A release outage last quarter cost us a large enterprise contract.",
}

TECH_ANSWERS = {
    "tech-001": "Python, React and Postgres on AWS",
    "tech-002": "Fully automated pipeline",
    "tech-003": "Around 65% coverage",
    "tech-004": "Monthly",
    "tech-005": "Scaling the data platform while paying down legacy code.",
}

RISK_AREAS = [Area.PRODUCT, Area.OPERATIONS, Area.FINANCE]


# ─── Fixtures ─────────────────────────────────────────────────────────


def _build(interview: InterviewSettings | None = None):
    interview = interview or InterviewSettings()
    settings = EngineSettings(interview=interview)
    store = SessionStore(InMemoryKeyValueStore(), settings=settings)
    return store, BlockRouter(store, settings=interview)


@pytest.fixture
def store_and_router():
    return _build()


def _answer_next(store, router, session_id, answers):
    decision = router.route_to_next_question(session_id)
    assert decision.should_ask, decision.reason
    store.add_answer(session_id, decision.question.id, answers[decision.question.id])
    return decision


def _drive(store, router, session_id, answers):
    for _ in range(len(answers)):
        _answer_next(store, router, session_id, answers)


def _to_risk_scan(store, router, session_id):
    _drive(store, router, session_id, CONTEXT_ANSWERS)
    _drive(store, router, session_id, EXPERTISE_ANSWERS)
    with pytest.raises(ExpertiseRequired):
        router.route_to_next_question(session_id)
    store.set_detected_expertise(session_id, Area.TECHNOLOGY, 0.9)
    store.set_deep_dive_area(session_id, Area.TECHNOLOGY)
    _drive(store, router, session_id, TECH_ANSWERS)
    with pytest.raises(RiskAreasRequired):
        router.route_to_next_question(session_id)
    store.set_risk_scan_areas(session_id, RISK_AREAS)


# ─── Ordering ─────────────────────────────────────────────────────────


class TestOrdering:

    def test_first_question(self, store_and_router):
        store, router = store_and_router
        session_id = store.create_session().id
        decision = router.route_to_next_question(session_id)
        assert decision.question.id == "ctx-001"
        assert decision.block == Block.CONTEXT
        assert decision.transition is None
        assert decision.question_payload["is_follow_up"] is False
        assert decision.completion_metrics.completeness_score == 0

    def test_same_question_until_answered(self, store_and_router):
        store, router = store_and_router
        session_id = store.create_session().id
        first = router.route_to_next_question(session_id)
        second = router.route_to_next_question(session_id)
        assert first.question.id == second.question.id

    def test_advances_after_context(self, store_and_router):
        store, router = store_and_router
        session_id = store.create_session().id
        _drive(store, router, session_id, CONTEXT_ANSWERS)

        decision = router.route_to_next_question(session_id)
        assert decision.question.id == "exp-001"
        assert decision.transition.from_block == Block.CONTEXT
        assert decision.transition.to_block == Block.EXPERTISE
        assert decision.transition.forced is False

        again = router.route_to_next_question(session_id)
        assert again.transition is None
        assert len(store.get_session(session_id).block_history) == 1

    def test_criteria(self, store_and_router):
        store, router = store_and_router
        session_id = store.create_session().id
        _drive(store, router, session_id, dict(list(CONTEXT_ANSWERS.items())[:6]))
        session = store.get_session(session_id)
        assert router.block_criteria_met(session, Block.CONTEXT) is False

    def test_re_answers_do_not_advance(self, store_and_router):
        store, router = store_and_router
        session_id = store.create_session().id
        _drive(store, router, session_id, dict(list(CONTEXT_ANSWERS.items())[:5]))
        store.add_answer(session_id, "ctx-001", CONTEXT_ANSWERS["ctx-001"])
        store.add_answer(session_id, "ctx-001", CONTEXT_ANSWERS["ctx-001"])

        session = store.get_session(session_id)
        assert len(session.answers_in_block(Block.CONTEXT)) == 7
        assert session.block_question_index == 5
        assert router.block_criteria_met(session, Block.CONTEXT) is False

        decision = router.route_to_next_question(session_id)
        assert decision.question.id == "ctx-006"
        assert decision.block == Block.CONTEXT
        assert decision.transition is None


class TestPreconditions:

    def test_expertise_required_leaves_state_untouched(self, store_and_router):
        store, router = store_and_router
        session_id = store.create_session().id
        _drive(store, router, session_id, CONTEXT_ANSWERS)
        _drive(store, router, session_id, EXPERTISE_ANSWERS)

        before = store.get_session(session_id)
        with pytest.raises(ExpertiseRequired) as exc_info:
            router.route_to_next_question(session_id)
        assert exc_info.value.session_id == session_id

        after = store.get_session(session_id)
        assert after.current_block == Block.EXPERTISE
        assert after.block_history == before.block_history

    def test_deep_dive_uses_detected_area(self, store_and_router):
        store, router = store_and_router
        session_id = store.create_session().id
        _drive(store, router, session_id, CONTEXT_ANSWERS)
        _drive(store, router, session_id, EXPERTISE_ANSWERS)
        store.set_detected_expertise(session_id, Area.TECHNOLOGY, 0.9)
        store.set_deep_dive_area(session_id, Area.TECHNOLOGY)

        decision = router.route_to_next_question(session_id)
        assert decision.question.id == "tech-001"
        assert decision.block == Block.DEEP_DIVE

    def test_risk_areas_required(self, store_and_router):
        store, router = store_and_router
        session_id = store.create_session().id
        _to_risk_scan(store, router, session_id)
        decision = router.route_to_next_question(session_id)
        assert decision.question.id == "risk-product"
        assert decision.block == Block.RISK_SCAN


# ─── Follow-ups ───────────────────────────────────────────────────────


class TestFollowUps:

    def test_weak_signal_triggers_follow_up(self, store_and_router):
        store, router = store_and_router
        session_id = store.create_session().id
        _drive(store, router, session_id, dict(list(CONTEXT_ANSWERS.items())[:3]))
        store.add_answer(session_id, "ctx-004", "a handful, I guess")

        decision = router.route_to_next_question(session_id)
        assert decision.is_follow_up is True
        assert isinstance(decision.question, FollowUpQuestion)
        assert decision.question.id == "fu-ctx-004-1"
        assert decision.question_payload["parent_question_id"] == "ctx-004"
        assert decision.question_payload["is_follow_up"] is True

        pending = router.route_to_next_question(session_id)
        assert pending.question.id == "fu-ctx-004-1"
        assert store.get_session(session_id).follow_ups_asked == 1

        store.add_answer(session_id, "fu-ctx-004-1", "about 12")
        assert router.route_to_next_question(session_id).question.id == "ctx-005"

    def test_budget_exhausted(self):
        store, router = _build(InterviewSettings(max_follow_ups=0))
        session_id = store.create_session().id
        store.add_answer(session_id, "ctx-004", "a handful, I guess")
        decision = router.route_to_next_question(session_id)
        assert decision.is_follow_up is False
        assert decision.question.id == "ctx-001"

    def test_budget_bounds_total_follow_ups(self):
        store, router = _build(InterviewSettings(max_follow_ups=1))
        session_id = store.create_session().id
        store.add_answer(session_id, "ctx-004", "a few")
        fu = router.route_to_next_question(session_id)
        store.add_answer(session_id, fu.question.id, "still a few")
        store.add_answer(session_id, "ctx-005", "no idea")
        decision = router.route_to_next_question(session_id)
        assert decision.is_follow_up is False
        assert store.get_session(session_id).follow_ups_asked == 1


# ─── Forced transitions ───────────────────────────────────────────────


class TestForcedTransition:

    def test_exhausted_context_forces_move(self):
        store, router = _build(InterviewSettings(max_follow_ups=0))
        session_id = store.create_session().id
        weak = dict(CONTEXT_ANSWERS)
        weak.update({"ctx-004": "some", "ctx-005": "enough", "ctx-006": "a while ago"})
        _drive(store, router, session_id, weak)

        decision = router.route_to_next_question(session_id)
        assert decision.question.id == "exp-001"
        assert decision.transition.forced is True
        session = store.get_session(session_id)
        assert "context: criteria unmet" in session.routing_gaps
        assert "context: criteria unmet" in session.gaps_identified


# ─── Finishing ────────────────────────────────────────────────────────


class TestFinish:

    def test_full_interview_finishes(self, store_and_router):
        store, router = store_and_router
        session_id = store.create_session().id
        _to_risk_scan(store, router, session_id)
        _drive(store, router, session_id, {
            "risk-product": "No", "risk-operations": "Yes", "risk-finance": "No",
        })

        session = store.get_session(session_id)
        assert router.can_finish_assessment(session) is True
        decision = router.route_to_next_question(session_id)
        assert decision.should_finish is True
        assert decision.question is None
        assert decision.reason == "finish criteria met"
        assert session.completeness_score == 100

    def test_cannot_finish_before_risk_scan(self, store_and_router):
        store, router = store_and_router
        session_id = store.create_session().id
        _drive(store, router, session_id, CONTEXT_ANSWERS)
        assert router.can_finish_assessment(store.get_session(session_id)) is False

    def test_gap_fill_follow_up(self):
        store, router = _build(InterviewSettings(terminal_threshold=100))
        session_id = store.create_session().id
        _to_risk_scan(store, router, session_id)
        _drive(store, router, session_id, {
            "risk-product": "No", "risk-operations": "Yes", "risk-finance": "hard to tell",
        })

        decision = router.route_to_next_question(session_id)
        assert decision.is_follow_up is True
        assert decision.question.gap_fill is True
        assert decision.question.parent_question_id == "risk-finance"

        store.add_answer(session_id, decision.question.id, "Yes")
        assert router.route_to_next_question(session_id).should_finish is True

    def test_finish_below_threshold_records_gap(self):
        store, router = _build(InterviewSettings(terminal_threshold=100, max_follow_ups=0))
        session_id = store.create_session().id
        _to_risk_scan(store, router, session_id)
        _drive(store, router, session_id, {
            "risk-product": "No", "risk-operations": "Yes", "risk-finance": "hard to tell",
        })

        decision = router.route_to_next_question(session_id)
        assert decision.should_finish is True
        assert decision.completion_metrics.completeness_score < 100
        router.route_to_next_question(session_id)

        session = store.get_session(session_id)
        assert session.routing_gaps == [TERMINAL_THRESHOLD_GAP]
        assert TERMINAL_THRESHOLD_GAP == "risk-scan: terminal threshold unmet"
        assert TERMINAL_THRESHOLD_GAP in session.gaps_identified

    def test_no_gap_when_threshold_reached(self, store_and_router):
        store, router = store_and_router
        session_id = store.create_session().id
        _to_risk_scan(store, router, session_id)
        _drive(store, router, session_id, {
            "risk-product": "No", "risk-operations": "Yes", "risk-finance": "No",
        })
        assert router.route_to_next_question(session_id).should_finish is True
        assert store.get_session(session_id).routing_gaps == []

    def test_completed_session_stops(self, store_and_router):
        store, router = store_and_router
        session_id = store.create_session().id
        store.mark_completed(session_id, "diag_1")
        decision = router.route_to_next_question(session_id)
        assert decision.should_finish is True
        assert decision.reason == "session completed"
