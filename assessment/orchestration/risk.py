"""
Risk-area selection: which areas to scan for blind spots.

The area graph supplies the candidates (areas coupled to the
respondent's strength). The model picks among them; if its answer has
too few usable areas, or the model is unavailable, the candidates are
ranked by a hybrid score instead:

    score = 10 × relationship score + 3 × risk-keyword hits

where the keyword hits are counted in the deep-dive answers.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from assessment.interview.areas import AreaGraph
from assessment.interview.models import Area, Block, Session
from assessment.interview.questions import QuestionBank
from assessment.llm.llm_config import ModelTask
from assessment.orchestration.context import answers_text, company_profile, transcript
from assessment.orchestration.expertise import ExpertiseResult
from assessment.orchestration.schemas import RiskSelectionResponse
from assessment.orchestration.structured import StructuredCaller

logger = logging.getLogger(__name__)

GRAPH_SCORE_FACTOR = 10.0
KEYWORD_HIT_SCORE = 3.0
MIN_MODEL_PICKS = 3

# Phrases in deep-dive answers that hint at trouble in another area
RISK_KEYWORDS: dict[Area, tuple[str, ...]] = {
    Area.MARKETING: ("leads", "traffic", "conversion", "acquisition", "cac", "awareness"),
    Area.SALES: ("sales", "pipeline", "closing", "churn", "retention", "quota"),
    Area.PRODUCT: ("feature", "roadmap", "slow development", "tech debt", "bugs", "usability"),
    Area.OPERATIONS: ("delivery", "fulfillment", "manual process", "operational", "bottleneck"),
    Area.FINANCE: ("cash", "runway", "budget", "cost", "margin", "funding"),
    Area.PEOPLE: ("hiring", "turnover", "culture", "talent", "burnout", "morale"),
    Area.TECHNOLOGY: ("infrastructure", "automation", "outage", "downtime", "legacy", "data"),
}


@dataclass(frozen=True)
class RiskSelectionResult:
    areas: tuple[Area, ...]
    reasoning: str
    source: str = "model"       # model | model+graph | graph | keywords+graph | stored

    @classmethod
    def from_session(cls, session: Session) -> "RiskSelectionResult":
        return cls(
            areas=tuple(session.risk_areas),
            reasoning=session.risk_reasoning,
            source="stored",
        )


def keyword_hits(area: Area, text: str) -> int:
    return sum(1 for k in RISK_KEYWORDS.get(area, ()) if k in text)


def rank_candidates(
    graph: AreaGraph,
    detected: Area,
    candidates: list[Area],
    text: str,
) -> list[tuple[Area, float]]:
    """Graph candidates re-ranked by the hybrid score, best first."""
    text = text.lower()
    scored = []
    for area in candidates:
        score = (
            GRAPH_SCORE_FACTOR * graph.calculate_relationship_score(detected, area)
            + KEYWORD_HIT_SCORE * keyword_hits(area, text)
        )
        scored.append((area, score))
    # sorted() is stable: ties keep the graph's own order
    return sorted(scored, key=lambda pair: -pair[1])


class RiskAreaSelector:
    def __init__(
        self,
        caller: StructuredCaller,
        graph: Optional[AreaGraph] = None,
        bank: Optional[QuestionBank] = None,
        count: int = 3,
        timeout_seconds: Optional[float] = None,
    ):
        self._caller = caller
        self._graph = graph or AreaGraph()
        self._bank = bank or QuestionBank()
        self._count = count
        self._timeout = timeout_seconds

    def candidates(self, session: Session, detected: Area) -> list[Area]:
        exclude = [session.deep_dive_area] if session.deep_dive_area else []
        return self._graph.suggest_risk_scan_areas(
            detected, exclude_areas=exclude, min_results=self._count
        )

    def fallback(self, session: Session, detected: Area) -> RiskSelectionResult:
        text = answers_text(session, Block.DEEP_DIVE)
        ranked = rank_candidates(self._graph, detected, self.candidates(session, detected), text)
        areas = tuple(a for a, _ in ranked[: self._count])
        keyword_driven = any(keyword_hits(a, text) for a in areas)
        return RiskSelectionResult(
            areas=areas,
            reasoning=(
                f"Areas most tightly coupled to {detected.value}"
                + (", weighted by risk signals in the deep-dive answers" if keyword_driven else "")
            ),
            source="keywords+graph" if keyword_driven else "graph",
        )

    def _usable(self, picks: list[str], detected: Area) -> list[Area]:
        valid = {a.value for a in Area}
        usable: list[Area] = []
        for name in picks:
            if name not in valid:
                continue
            area = Area(name)
            if area == detected or area in usable:
                continue
            usable.append(area)
        return usable

    async def select(self, session: Session, expertise: ExpertiseResult) -> RiskSelectionResult:
        detected = expertise.area
        candidates = self.candidates(session, detected)
        context = {
            "detected_area": detected.value,
            "count": self._count,
            "company": company_profile(session),
            "candidates": [
                {"area": a.value, "score": self._graph.calculate_relationship_score(detected, a)}
                for a in candidates
            ],
            "answers": transcript(session, self._bank, Block.DEEP_DIVE),
        }
        result = await self._caller.complete(
            ModelTask.RISK_SELECTION,
            "risk_selection",
            context,
            RiskSelectionResponse,
            session_id=session.id,
            timeout_seconds=self._timeout,
        )

        if result.ok and result.value is not None:
            picks = self._usable(result.value.areas, detected)
            if len(picks) >= min(MIN_MODEL_PICKS, self._count):
                source = "model"
                if len(picks) < self._count:
                    picks += [a for a in candidates if a not in picks][: self._count - len(picks)]
                    source = "model+graph"
                return RiskSelectionResult(
                    areas=tuple(picks[: self._count]),
                    reasoning=result.value.reasoning,
                    source=source,
                )
            logger.warning(
                "risk_selection_rejected",
                extra={
                    "session_id": session.id,
                    "picks": result.value.areas,
                    "reason": f"{len(picks)} usable area(s)",
                },
            )

        fallback = self.fallback(session, detected)
        logger.info(
            "risk_fallback_used",
            extra={
                "session_id": session.id,
                "areas": [a.value for a in fallback.areas],
                "source": fallback.source,
            },
        )
        return fallback
