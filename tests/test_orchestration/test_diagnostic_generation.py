"""
Tests for diagnostic generation.

Covers:
- LeadValueGate (team size sources, completeness threshold)
- Deterministic fallback draft
- Gate skip and override, budget skip, model success and failure
- Per-session caching of drafts
"""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from assessment.config.schema import OrchestrationSettings
from assessment.diagnostic.models import Level, Priority
from assessment.interview.models import Area, Session
from assessment.llm.router import LLMResponse
from assessment.orchestration.diagnostic import (
    BASELINE_SCORE,
    EXPERTISE_AREA_SCORE,
    FLAGGED_RISK_SCORE,
    DiagnosticGenerator,
    LeadValueGate,
    fallback_draft,
    flagged_risks,
)
from assessment.orchestration.expertise import ExpertiseResult
from assessment.orchestration.ledger import CostLedger
from assessment.orchestration.risk import RiskSelectionResult
from assessment.orchestration.structured import StructuredCaller


# ─── Fixtures ─────────────────────────────────────────────────────────


EXPERTISE = ExpertiseResult(area=Area.TECHNOLOGY, confidence=0.9, reasoning="")
RISK = RiskSelectionResult(
    areas=(Area.PRODUCT, Area.OPERATIONS, Area.FINANCE), reasoning=""
)

MODEL_DIAGNOSTIC = {
    "health_scores": [
        {"area": "Technology", "score": 82, "reasoning": "Automated pipeline"},
        {"area": "finance", "score": 48, "reasoning": "Short runway"},
    ],
    "detected_patterns": [
        {
            "name": "Founder-led sales",
            "areas": ["sales"],
            "evidence": ["'I close every deal myself'"],
            "severity": "Medium",
        },
    ],
    "root_causes": [{"description": "No finance owner", "areas": ["finance"]}],
    "recommendations": [
        {"title": "Hire a fractional CFO", "area": "finance", "priority": "High", "effort": "medium"},
    ],
    "roadmap": [{"phase": 1, "title": "Stabilize", "duration_weeks": 4, "actions": ["Plan cash"]}],
    "executive_summary": "Strong engineering, weak finance.",
}


def _session(**extracted) -> Session:
    return Session(extracted_data=dict(extracted))


def _reply(payload, cost: float = 0.02) -> LLMResponse:
    text = payload if isinstance(payload, str) else json.dumps(payload)
    return LLMResponse(
        text=text, provider="anthropic", model="claude-sonnet-4-20250514", cost=cost
    )


@pytest.fixture
def router():
    r = MagicMock()
    r.route = AsyncMock(return_value=_reply(MODEL_DIAGNOSTIC))
    return r


@pytest.fixture
def open_gate():
    return OrchestrationSettings(min_lead_completeness=0)


@pytest.fixture
def generator(router, open_gate):
    return DiagnosticGenerator(StructuredCaller(router), settings=open_gate)


# ─── Lead-value gate ──────────────────────────────────────────────────


class TestLeadValueGate:

    def test_team_size_sources(self):
        gate = LeadValueGate()
        assert gate.team_size(_session(**{"company.team_size": 25})) == 25
        assert gate.team_size(_session(**{"people.headcount": 7.0})) == 7
        assert gate.team_size(Session(initial_context={"team_size": 4})) == 4
        assert gate.team_size(Session(initial_context={"team_size": "many"})) is None

    def test_small_team(self):
        lead = LeadValueGate().evaluate(_session(**{"company.team_size": 2}), 80)
        assert lead.worth_model_call is False
        assert lead.reason == "team_size 2 < 3"

    def test_low_completeness(self):
        lead = LeadValueGate().evaluate(_session(), 20)
        assert lead.worth_model_call is False
        assert lead.reason == "completeness 20 < 40"

    def test_unknown_team_size_not_penalized(self):
        lead = LeadValueGate().evaluate(_session(), 40)
        assert lead.worth_model_call is True
        assert lead.team_size is None
        assert lead.reason == ""


# ─── Fallback draft ───────────────────────────────────────────────────


class TestFallbackDraft:

    def test_scores_without_flags(self):
        draft = fallback_draft(_session(), EXPERTISE, RISK)
        scores = {a.area: a.score for a in draft.health_scores}
        assert len(scores) == len(Area)
        assert scores[Area.TECHNOLOGY] == EXPERTISE_AREA_SCORE
        assert scores[Area.FINANCE] == BASELINE_SCORE
        assert draft.detected_patterns == []
        assert draft.executive_summary == ""
        assert draft.from_model is False
        assert [p.phase for p in draft.roadmap] == [1, 2, 3]

    def test_flagged_risks(self):
        session = _session(**{"risk.finance": True, "risk.product": True, "risk.operations": False})
        assert flagged_risks(session, RISK) == [Area.PRODUCT, Area.FINANCE]

        draft = fallback_draft(session, EXPERTISE, RISK, is_fallback=True, reason="x")
        scores = {a.area: a.score for a in draft.health_scores}
        assert scores[Area.FINANCE] == FLAGGED_RISK_SCORE
        assert scores[Area.OPERATIONS] == BASELINE_SCORE
        assert draft.detected_patterns[0].severity == Level.MEDIUM
        assert draft.detected_patterns[0].evidence == ["risk.product = yes", "risk.finance = yes"]
        assert len(draft.root_causes) == 2
        assert draft.recommendations[0].priority == Priority.HIGH
        assert draft.is_fallback is True
        assert draft.llm_skipped_reason == "x"

    def test_three_flags_high_severity(self):
        session = _session(**{f"risk.{a.value}": True for a in RISK.areas})
        draft = fallback_draft(session, EXPERTISE, RISK)
        assert draft.detected_patterns[0].severity == Level.HIGH


# ─── Generator ────────────────────────────────────────────────────────


class TestDiagnosticGenerator:

    @pytest.mark.asyncio
    async def test_model_draft(self, generator):
        session = _session(**{"company.team_size": 25})
        draft = await generator.generate(session, EXPERTISE, RISK)
        assert draft.from_model is True
        assert draft.model == "anthropic/claude-sonnet-4-20250514"
        assert draft.is_fallback is False
        assert draft.session_id == session.id
        assert draft.health_scores[0].area == Area.TECHNOLOGY
        assert draft.recommendations[0].priority == Priority.HIGH
        assert draft.executive_summary == "Strong engineering, weak finance."
        assert draft.detected_patterns[0].name == "Founder-led sales"
        assert draft.detected_patterns[0].evidence == ["'I close every deal myself'"]

    @pytest.mark.asyncio
    async def test_low_lead_value_skips_model(self, router):
        generator = DiagnosticGenerator(StructuredCaller(router))
        draft = await generator.generate(_session(), EXPERTISE, RISK)
        assert draft.low_confidence is True
        assert draft.llm_skipped_reason.startswith("low_lead_value: completeness")
        assert draft.from_model is False
        router.route.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_override_calls_model(self, router):
        generator = DiagnosticGenerator(StructuredCaller(router))
        draft = await generator.generate(_session(), EXPERTISE, RISK, override=True)
        assert draft.from_model is True
        assert draft.low_confidence is False

    @pytest.mark.asyncio
    async def test_budget_exceeded(self, router, open_gate):
        caller = StructuredCaller(router, ledger=CostLedger(session_budget_usd=0.0))
        generator = DiagnosticGenerator(caller, settings=open_gate)
        draft = await generator.generate(_session(), EXPERTISE, RISK)
        assert draft.low_confidence is True
        assert draft.llm_skipped_reason == "budget_exceeded: $0.0000 of $0.00"
        router.route.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_model_failure(self, generator, router):
        router.route.return_value = _reply({"health_scores": [], "executive_summary": ""})
        draft = await generator.generate(_session(), EXPERTISE, RISK)
        assert draft.is_fallback is True
        assert draft.low_confidence is False
        assert draft.llm_skipped_reason == "model_failed: ModelSchemaViolation"
        assert router.route.await_count == 2

    @pytest.mark.asyncio
    async def test_provider_failure(self, generator, router):
        router.route.side_effect = RuntimeError("overloaded")
        draft = await generator.generate(_session(), EXPERTISE, RISK)
        assert draft.llm_skipped_reason == "model_failed: ModelProviderError"

    @pytest.mark.asyncio
    async def test_cached_per_session(self, generator, router):
        session = _session()
        first = await generator.generate(session, EXPERTISE, RISK)
        second = await generator.generate(session, EXPERTISE, RISK)
        assert first is second
        assert router.route.await_count == 1

        generator.forget(session.id)
        await generator.generate(session, EXPERTISE, RISK)
        assert router.route.await_count == 2

    @pytest.mark.asyncio
    async def test_prompt_includes_interview(self, generator, router):
        session = Session(
            initial_context={"company_name": "Acme"},
            extracted_data={"company.team_size": 25, "risk.finance": True},
        )
        await generator.generate(session, EXPERTISE, RISK)
        user_prompt = router.route.call_args.args[2]
        assert "Acme" in user_prompt
        assert "finance" in user_prompt
