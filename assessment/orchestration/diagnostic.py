"""
Diagnostic generation: the one expensive model call of a session.

Before calling the model the generator checks two things:

1. LeadValueGate: very small companies, or sessions with too little data,
   are not worth a large-model call. They get the deterministic draft
   unless the caller passes override=True.
2. The session's CostLedger budget. BudgetExceeded is caught here and
   also produces the deterministic draft.

Both skips flag the draft low_confidence and record why in
llm_skipped_reason. A model failure (after the caller's single retry)
produces the same deterministic draft flagged is_fallback.

Drafts are cached per session id, so completing a session twice never
pays for two diagnostics.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from assessment.config.schema import OrchestrationSettings
from assessment.diagnostic.models import (
    AreaAssessment,
    DiagnosticDraft,
    Level,
    Pattern,
    Priority,
    Recommendation,
    RoadmapPhase,
    RootCause,
)
from assessment.exceptions import BudgetExceeded
from assessment.interview.areas import AREA_METADATA
from assessment.interview.models import Area, Session
from assessment.interview.questions import QuestionBank
from assessment.interview.scoring import CompletenessScorer
from assessment.llm.llm_config import ModelTask
from assessment.orchestration.context import company_profile, transcript
from assessment.orchestration.expertise import ExpertiseResult
from assessment.orchestration.risk import RiskSelectionResult
from assessment.orchestration.schemas import DiagnosticResponse
from assessment.orchestration.structured import StructuredCaller

logger = logging.getLogger(__name__)

# Deterministic draft scores
EXPERTISE_AREA_SCORE = 70
FLAGGED_RISK_SCORE = 55
BASELINE_SCORE = 65

TEAM_SIZE_KEYS = ("company.team_size", "people.headcount")


# ---------------------------------------------------------------------------
# Lead-value gate
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LeadValue:
    worth_model_call: bool
    team_size: Optional[int]
    completeness_score: int
    reason: str = ""


class LeadValueGate:
    """
    Decides whether a session justifies the diagnostic model call.

    An unknown team size is not held against the lead; only a known
    size below the minimum is.
    """

    def __init__(self, min_team_size: int = 3, min_completeness: int = 40):
        self.min_team_size = min_team_size
        self.min_completeness = min_completeness

    @staticmethod
    def team_size(session: Session) -> Optional[int]:
        for key in TEAM_SIZE_KEYS:
            value = session.extracted_data.get(key)
            if isinstance(value, (int, float)):
                return int(value)
        value = session.initial_context.get("team_size")
        if isinstance(value, (int, float)):
            return int(value)
        return None

    def evaluate(self, session: Session, completeness_score: int) -> LeadValue:
        size = self.team_size(session)
        reasons = []
        if size is not None and size < self.min_team_size:
            reasons.append(f"team_size {size} < {self.min_team_size}")
        if completeness_score < self.min_completeness:
            reasons.append(f"completeness {completeness_score} < {self.min_completeness}")
        return LeadValue(
            worth_model_call=not reasons,
            team_size=size,
            completeness_score=completeness_score,
            reason="; ".join(reasons),
        )


# ---------------------------------------------------------------------------
# Deterministic draft
# ---------------------------------------------------------------------------

def flagged_risks(session: Session, risk: RiskSelectionResult) -> list[Area]:
    """Risk areas whose yes/no risk question was answered yes."""
    return [a for a in risk.areas if session.extracted_data.get(f"risk.{a.value}") is True]


def fallback_draft(
    session: Session,
    expertise: ExpertiseResult,
    risk: RiskSelectionResult,
    *,
    is_fallback: bool = False,
    low_confidence: bool = False,
    reason: Optional[str] = None,
) -> DiagnosticDraft:
    """
    A diagnostic built from the interview data alone, with no model.

    The executive summary is left empty; the synthesizer writes it from
    the final scores.
    """
    detected = expertise.area
    flagged = flagged_risks(session, risk)

    health = []
    for area in Area:
        if area == detected:
            score, why = EXPERTISE_AREA_SCORE, "Strongest area of the respondent"
        elif area in flagged:
            score, why = FLAGGED_RISK_SCORE, "Risk question answered yes"
        elif area in risk.areas:
            score, why = BASELINE_SCORE, "Risk scanned, no warning sign reported"
        else:
            score, why = BASELINE_SCORE, "Not covered by the interview"
        health.append(AreaAssessment(area=area, score=score, reasoning=why))

    patterns = []
    if len(flagged) >= 2:
        patterns.append(Pattern(
            name="Multiple blind spots",
            description=(
                f"Warning signs in {len(flagged)} areas outside the respondent's expertise"
            ),
            areas=flagged,
            evidence=[f"risk.{area.value} = yes" for area in flagged],
            severity=Level.HIGH if len(flagged) >= 3 else Level.MEDIUM,
        ))

    root_causes = [
        RootCause(
            description=f"{AREA_METADATA[area].name} is not getting enough attention",
            areas=[area],
            evidence=[f"risk.{area.value} = yes"],
        )
        for area in flagged
    ]

    recommendations = [
        Recommendation(
            title=f"Address the {AREA_METADATA[area].name.lower()} warning sign",
            description=(
                f"Review {', '.join(AREA_METADATA[area].key_metrics[:2]) or area.value} "
                "with the team and agree on an owner."
            ),
            area=area,
            priority=Priority.HIGH,
            impact="Removes a risk outside the team's core strength",
            effort=Level.MEDIUM,
        )
        for area in flagged
    ]
    recommendations.append(Recommendation(
        title=f"Turn {AREA_METADATA[detected].name.lower()} strength into a system",
        description="Document what works so it does not depend on one person.",
        area=detected,
        priority=Priority.MEDIUM,
        impact="Keeps the strongest area strong as the company grows",
        effort=Level.LOW,
    ))
    recommendations.extend(
        Recommendation(
            title=f"Monitor {AREA_METADATA[area].name.lower()}",
            description=f"Track {', '.join(AREA_METADATA[area].key_metrics[:2]) or area.value} monthly.",
            area=area,
            priority=Priority.LOW,
            impact="Early warning",
            effort=Level.LOW,
        )
        for area in risk.areas
        if area not in flagged
    )

    focus = [a.value for a in flagged] or [detected.value]
    roadmap = [
        RoadmapPhase(
            phase=1, title="Stabilize", duration_weeks=4,
            actions=[f"Assign an owner for {a}" for a in focus],
        ),
        RoadmapPhase(
            phase=2, title="Strengthen", duration_weeks=8,
            actions=["Put the key metrics of each focus area on a monthly review"],
        ),
        RoadmapPhase(
            phase=3, title="Scale", duration_weeks=12,
            actions=[f"Document and delegate the {detected.value} playbook"],
        ),
    ]

    return DiagnosticDraft(
        session_id=session.id,
        health_scores=health,
        detected_patterns=patterns,
        root_causes=root_causes,
        recommendations=recommendations,
        roadmap=roadmap,
        is_fallback=is_fallback,
        low_confidence=low_confidence,
        llm_skipped_reason=reason,
    )


# ---------------------------------------------------------------------------
# Generator
# ---------------------------------------------------------------------------

class DiagnosticGenerator:
    def __init__(
        self,
        caller: StructuredCaller,
        bank: Optional[QuestionBank] = None,
        scorer: Optional[CompletenessScorer] = None,
        settings: Optional[OrchestrationSettings] = None,
    ):
        self._caller = caller
        self._bank = bank or QuestionBank()
        self._scorer = scorer or CompletenessScorer(self._bank)
        self._settings = settings or OrchestrationSettings()
        self._gate = LeadValueGate(
            min_team_size=self._settings.min_lead_team_size,
            min_completeness=self._settings.min_lead_completeness,
        )
        self._cache: dict[str, DiagnosticDraft] = {}

    @property
    def gate(self) -> LeadValueGate:
        return self._gate

    def forget(self, session_id: str) -> None:
        self._cache.pop(session_id, None)

    def cached_session_ids(self) -> set[str]:
        return set(self._cache)

    def _context(
        self,
        session: Session,
        expertise: ExpertiseResult,
        risk: RiskSelectionResult,
    ) -> dict[str, Any]:
        return {
            "areas": [a.value for a in Area],
            "company": company_profile(session),
            "detected_area": expertise.area.value,
            "risk_areas": [a.value for a in risk.areas],
            "extracted": dict(sorted(session.extracted_data.items())),
            "answers": transcript(session, self._bank),
            "gaps": self._scorer.identify_gaps(session),
        }

    async def generate(
        self,
        session: Session,
        expertise: ExpertiseResult,
        risk: RiskSelectionResult,
        override: bool = False,
    ) -> DiagnosticDraft:
        cached = self._cache.get(session.id)
        if cached is not None:
            return cached

        draft = await self._generate(session, expertise, risk, override)
        self._cache[session.id] = draft
        logger.info(
            "diagnostic_draft_ready",
            extra={
                "session_id": session.id,
                "model": draft.model,
                "is_fallback": draft.is_fallback,
                "low_confidence": draft.low_confidence,
                "skipped_reason": draft.llm_skipped_reason,
            },
        )
        return draft

    async def _generate(
        self,
        session: Session,
        expertise: ExpertiseResult,
        risk: RiskSelectionResult,
        override: bool,
    ) -> DiagnosticDraft:
        lead = self._gate.evaluate(session, self._scorer.score(session))
        if not lead.worth_model_call:
            if not override:
                return fallback_draft(
                    session, expertise, risk,
                    low_confidence=True,
                    reason=f"low_lead_value: {lead.reason}",
                )
            logger.info(
                "lead_gate_overridden",
                extra={"session_id": session.id, "reason": lead.reason},
            )

        try:
            self._caller.ledger.check_budget(session.id)
        except BudgetExceeded as e:
            return fallback_draft(
                session, expertise, risk,
                low_confidence=True,
                reason=f"budget_exceeded: ${e.spent_usd:.4f} of ${e.limit_usd:.2f}",
            )

        result = await self._caller.complete(
            ModelTask.DIAGNOSTIC_GENERATION,
            "diagnostic_generation",
            self._context(session, expertise, risk),
            DiagnosticResponse,
            session_id=session.id,
            timeout_seconds=self._settings.timeout_seconds,
        )
        if result.ok and result.value is not None:
            return DiagnosticDraft(
                **result.value.model_dump(),
                session_id=session.id,
                model=result.model,
            )

        error_type = type(result.error).__name__ if result.error else "unknown"
        return fallback_draft(
            session, expertise, risk,
            is_fallback=True,
            reason=f"model_failed: {error_type}",
        )
