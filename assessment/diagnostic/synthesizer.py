"""
Diagnostic Synthesizer.

Turns a session plus a DiagnosticDraft into the final Diagnostic. Pure:
the same inputs always give the same report (apart from id and
timestamp), and nothing here calls a model or writes to a store.

Area health:
    Every area starts from BASE_HEALTH and is adjusted by the rules in
    HEALTH_RULES for the metrics the interview extracted. A "yes" on the
    area's risk-scan question costs RISK_FLAG_PENALTY. An area with no
    extracted metric and no risk answer has no derived score.

    The derived score is averaged 50/50 with the model's score when the
    draft came from a model. Drafts built without a model only supply a
    baseline for areas that have no derived score.

Overall score:
    Mean of the area scores weighted by the graph's criticality.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from assessment.diagnostic.models import (
    PRIORITY_ORDER,
    AreaScore,
    Diagnostic,
    DiagnosticDraft,
    HealthStatus,
    Recommendation,
)
from assessment.interview.areas import AREA_METADATA, AreaGraph
from assessment.interview.models import Area, ConfidenceTier, Session
from assessment.interview.scoring import CompletenessScorer
from assessment.orchestration.expertise import ExpertiseResult
from assessment.orchestration.risk import RiskSelectionResult

logger = logging.getLogger(__name__)

BASE_HEALTH = 70
RISK_FLAG_PENALTY = 20
DEFAULT_BASELINE = 65
MODEL_WEIGHT = 0.5

AREA_ORDER: dict[Area, int] = {area: i for i, area in enumerate(Area)}


# ---------------------------------------------------------------------------
# Health rules
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class HealthRule:
    field: str
    adjust: Callable[[Any], int]


def _numeric(fn: Callable[[float], int]) -> Callable[[Any], int]:
    def adjust(value: Any) -> int:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return 0
        return fn(value)
    return adjust


def _choice(deltas: dict[Any, int]) -> Callable[[Any], int]:
    return lambda value: deltas.get(value, 0)


HEALTH_RULES: dict[Area, tuple[HealthRule, ...]] = {
    Area.MARKETING: (
        HealthRule("marketing.cac_known", _choice({True: 5, False: -10})),
        HealthRule(
            "marketing.conversion_rate",
            _numeric(lambda v: 10 if v >= 5 else -10 if v < 1 else 0),
        ),
    ),
    Area.SALES: (
        HealthRule(
            "sales.win_rate",
            _numeric(lambda v: 10 if v >= 30 else -10 if v < 15 else 0),
        ),
        HealthRule("sales.crm_usage", _choice({"none": -10, "advanced": 10})),
        HealthRule("sales.sales_cycle_days", _numeric(lambda v: -5 if v > 120 else 0)),
    ),
    Area.PRODUCT: (
        HealthRule(
            "product.pmf_stage",
            _choice({"searching": -15, "early-signals": -5, "strong": 10, "scaling": 15}),
        ),
        HealthRule(
            "product.feedback_process",
            _choice({"none": -10, "structured": 5, "continuous": 5}),
        ),
        HealthRule(
            "product.releases_per_month",
            _numeric(lambda v: 5 if v >= 4 else -5 if v == 0 else 0),
        ),
    ),
    Area.OPERATIONS: (
        HealthRule(
            "operations.error_rate",
            _numeric(lambda v: -15 if v > 10 else 5 if v <= 2 else 0),
        ),
        HealthRule(
            "operations.process_documentation",
            _choice({"none": -10, "documented": 10}),
        ),
        HealthRule(
            "operations.automation_level",
            _choice({"manual": -10, "automated": 10}),
        ),
    ),
    Area.FINANCE: (
        HealthRule(
            "finance.runway_months",
            _numeric(lambda v: -20 if v < 6 else -5 if v < 12 else 10 if v >= 18 else 0),
        ),
        HealthRule("finance.profitable", _choice({True: 10, False: -5})),
        HealthRule("finance.planning_maturity", _choice({"none": -10, "rolling": 10})),
    ),
    Area.PEOPLE: (
        HealthRule(
            "people.turnover_rate",
            _numeric(lambda v: -15 if v > 20 else 5 if v <= 10 else 0),
        ),
        HealthRule(
            "people.culture_clarity",
            _choice({"undefined": -10, "defined": 5, "lived": 10}),
        ),
        HealthRule("people.ramp_up_days", _numeric(lambda v: -5 if v > 90 else 0)),
    ),
    Area.TECHNOLOGY: (
        HealthRule("technology.cicd", _choice({"none": -10, "automated": 10})),
        HealthRule(
            "technology.test_coverage",
            _numeric(lambda v: -10 if v < 30 else 10 if v >= 70 else 0),
        ),
        HealthRule(
            "technology.incident_frequency",
            _choice({"weekly": -15, "monthly": -5, "rare": 10}),
        ),
    ),
}


def derive_area_health(area: Area, data: dict[str, Any]) -> Optional[int]:
    """Rule-based health for one area, or None when nothing was collected."""
    seen = False
    score = BASE_HEALTH
    for rule in HEALTH_RULES.get(area, ()):
        if rule.field in data and data[rule.field] is not None:
            seen = True
            score += rule.adjust(data[rule.field])
    flag = data.get(f"risk.{area.value}")
    if isinstance(flag, bool):
        seen = True
        if flag:
            score -= RISK_FLAG_PENALTY
    if not seen:
        return None
    return max(0, min(100, score))


def status_for(score: float) -> HealthStatus:
    if score < 50:
        return HealthStatus.CRITICAL
    if score < 70:
        return HealthStatus.ATTENTION
    if score < 90:
        return HealthStatus.GOOD
    return HealthStatus.EXCELLENT


def area_scores(session: Session, draft: DiagnosticDraft) -> list[AreaScore]:
    """One AreaScore per area, in catalog order."""
    drafted = {a.area: a for a in draft.health_scores}
    scores = []
    for area in Area:
        derived = derive_area_health(area, session.extracted_data)
        assessed = drafted.get(area)
        reasoning = assessed.reasoning if assessed else ""

        if draft.from_model and assessed is not None:
            if derived is None:
                value, source = assessed.score, "model"
            else:
                value = MODEL_WEIGHT * assessed.score + (1 - MODEL_WEIGHT) * derived
                source = "blended"
        elif derived is not None:
            value, source = derived, "derived"
            reasoning = reasoning or "Derived from the collected metrics"
        else:
            value = assessed.score if assessed is not None else DEFAULT_BASELINE
            source = "baseline"

        value = int(round(value))
        scores.append(AreaScore(
            area=area,
            score=value,
            status=status_for(value),
            reasoning=reasoning,
            source=source,
        ))
    return scores


def overall_score(scores: list[AreaScore], graph: AreaGraph) -> int:
    total_weight = sum(graph.criticality(s.area) for s in scores)
    if total_weight <= 0:
        return 0
    weighted = sum(graph.criticality(s.area) * s.score for s in scores)
    return int(round(weighted / total_weight))


def sort_recommendations(recommendations: list[Recommendation]) -> list[Recommendation]:
    return sorted(
        recommendations,
        key=lambda r: (PRIORITY_ORDER[r.priority], AREA_ORDER[r.area]),
    )


def _lower_tier(tier: ConfidenceTier) -> ConfidenceTier:
    if tier == ConfidenceTier.HIGH:
        return ConfidenceTier.MEDIUM
    return ConfidenceTier.LOW


def executive_summary(
    company: str,
    overall: int,
    scores: list[AreaScore],
    expertise: ExpertiseResult,
    draft: DiagnosticDraft,
) -> str:
    """Plain summary used when the draft brings none."""
    weakest = sorted(
        (s for s in scores if s.status in (HealthStatus.CRITICAL, HealthStatus.ATTENTION)),
        key=lambda s: (s.score, AREA_ORDER[s.area]),
    )[:2]
    parts = [
        f"{company} scores {overall}/100 overall ({status_for(overall).value}).",
        f"Its strongest area is {AREA_METADATA[expertise.area].name}.",
    ]
    if weakest:
        names = " and ".join(
            f"{AREA_METADATA[s.area].name} ({s.score})" for s in weakest
        )
        parts.append(f"Most in need of attention: {names}.")
    else:
        parts.append("No area is below a healthy level.")
    if not draft.from_model:
        parts.append(
            "This report was produced from the interview data alone and "
            "should be reviewed with a consultant."
        )
    return " ".join(parts)


# ---------------------------------------------------------------------------
# Synthesis
# ---------------------------------------------------------------------------

def synthesize(
    session: Session,
    expertise: ExpertiseResult,
    risk: RiskSelectionResult,
    draft: DiagnosticDraft,
    graph: Optional[AreaGraph] = None,
    scorer: Optional[CompletenessScorer] = None,
) -> Diagnostic:
    graph = graph or AreaGraph()
    scorer = scorer or CompletenessScorer()

    scores = area_scores(session, draft)
    overall = overall_score(scores, graph)
    completeness = scorer.score(session)
    tier = scorer.confidence_tier(session, completeness)
    if draft.is_fallback or draft.low_confidence:
        tier = _lower_tier(tier)

    company = str(session.extracted_data.get("company.name") or "The company")
    summary = draft.executive_summary.strip() or executive_summary(
        company, overall, scores, expertise, draft
    )

    diagnostic = Diagnostic(
        session_id=session.id,
        overall_score=overall,
        overall_status=status_for(overall),
        detected_area=expertise.area,
        risk_areas=list(risk.areas),
        health_scores=scores,
        detected_patterns=draft.detected_patterns,
        root_causes=draft.root_causes,
        recommendations=sort_recommendations(draft.recommendations),
        roadmap=sorted(draft.roadmap, key=lambda p: p.phase),
        executive_summary=summary,
        completeness_score=completeness,
        confidence_tier=tier,
        gaps=scorer.identify_gaps(session),
        is_fallback=draft.is_fallback,
        low_confidence=draft.low_confidence,
        llm_skipped_reason=draft.llm_skipped_reason,
    )
    logger.info(
        "diagnostic_synthesized",
        extra={
            "session_id": session.id,
            "diagnostic_id": diagnostic.id,
            "overall_score": overall,
            "confidence_tier": tier.value,
            "is_fallback": draft.is_fallback,
        },
    )
    return diagnostic


def validate_diagnostic(diagnostic: Diagnostic) -> list[str]:
    """Consistency problems in a finished report. Empty means valid."""
    errors: list[str] = []

    areas = [s.area for s in diagnostic.health_scores]
    if len(areas) != len(Area):
        errors.append(f"Expected {len(Area)} health scores, got {len(areas)}")
    if len(set(areas)) != len(areas):
        errors.append("Duplicate area in health scores")

    for s in diagnostic.health_scores:
        if s.status != status_for(s.score):
            errors.append(f"{s.area.value}: status {s.status.value} does not match score {s.score}")

    if not diagnostic.recommendations:
        errors.append("No recommendations provided")
    elif diagnostic.recommendations != sort_recommendations(diagnostic.recommendations):
        errors.append("Recommendations are not sorted by priority")

    if diagnostic.detected_area is not None and diagnostic.detected_area in diagnostic.risk_areas:
        errors.append("Detected area is also listed as a risk area")

    phases = [p.phase for p in diagnostic.roadmap]
    if phases != sorted(phases):
        errors.append("Roadmap phases are out of order")

    if not diagnostic.executive_summary.strip():
        errors.append("Executive summary is empty")

    return errors
