"""
Expertise detection: which area is the respondent strongest in?

Asks the classification model first. When the model is unavailable,
times out or keeps replying with something unusable, falls back to a
keyword score over the expertise-block answers: longer keywords are more
specific and weigh more, and confidence grows with the gap between the
best and second-best area but never exceeds 0.7.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from assessment.interview.areas import AREA_METADATA, AreaMetadata
from assessment.interview.models import Area, Block, Session
from assessment.interview.questions import QuestionBank
from assessment.llm.llm_config import ModelTask
from assessment.orchestration.context import answers_text, company_profile, transcript
from assessment.orchestration.schemas import ExpertiseResponse
from assessment.orchestration.structured import StructuredCaller

logger = logging.getLogger(__name__)

DEFAULT_AREA = Area.MARKETING
FALLBACK_BASE_CONFIDENCE = 0.3
FALLBACK_GAP_STEP = 0.05
FALLBACK_MAX_CONFIDENCE = 0.7


@dataclass(frozen=True)
class ExpertiseResult:
    area: Area
    confidence: float
    reasoning: str
    signals: tuple[str, ...] = field(default_factory=tuple)
    source: str = "model"       # model | keywords | stored

    @classmethod
    def from_session(cls, session: Session) -> "ExpertiseResult":
        if session.detected_area is None:
            raise ValueError(f"Session {session.id} has no detected expertise")
        return cls(
            area=session.detected_area,
            confidence=session.expertise_confidence or 0.0,
            reasoning=session.expertise_reasoning,
            source="stored",
        )


def keyword_weight(keyword: str) -> float:
    return min(len(keyword) / 5, 2.0)


def score_keywords(
    text: str,
    metadata: dict[Area, AreaMetadata] = AREA_METADATA,
) -> dict[Area, float]:
    """Weighted keyword hits per area, in catalog order."""
    text = text.lower()
    return {
        area: sum(keyword_weight(k) for k in meta.keywords if k in text)
        for area, meta in metadata.items()
    }


def detect_by_keywords(
    text: str,
    metadata: dict[Area, AreaMetadata] = AREA_METADATA,
) -> ExpertiseResult:
    scores = score_keywords(text, metadata)
    ranked = sorted(scores.items(), key=lambda kv: -kv[1])
    (top_area, top), (_, second) = ranked[0], ranked[1]
    area = top_area if top > 0 else DEFAULT_AREA
    confidence = min(
        FALLBACK_BASE_CONFIDENCE + (top - second) * FALLBACK_GAP_STEP,
        FALLBACK_MAX_CONFIDENCE,
    )
    return ExpertiseResult(
        area=area,
        confidence=round(confidence, 3),
        reasoning=(
            f"Keyword match ({top:.1f} weighted hits); model unavailable, "
            f"confidence capped at {FALLBACK_MAX_CONFIDENCE:.0%}"
        ),
        signals=tuple(f"{a.value}: {s:.1f}" for a, s in ranked if s > 0),
        source="keywords",
    )


class ExpertiseDetector:
    def __init__(
        self,
        caller: StructuredCaller,
        bank: Optional[QuestionBank] = None,
        metadata: Optional[dict[Area, AreaMetadata]] = None,
        timeout_seconds: Optional[float] = None,
    ):
        self._caller = caller
        self._bank = bank or QuestionBank()
        self._metadata = metadata or AREA_METADATA
        self._timeout = timeout_seconds

    async def detect(self, session: Session) -> ExpertiseResult:
        context = {
            "company": company_profile(session),
            "answers": transcript(session, self._bank, Block.EXPERTISE),
            "areas": [
                {"value": area.value, "description": meta.description}
                for area, meta in self._metadata.items()
            ],
        }
        result = await self._caller.complete(
            ModelTask.EXPERTISE_DETECTION,
            "expertise_detection",
            context,
            ExpertiseResponse,
            session_id=session.id,
            timeout_seconds=self._timeout,
        )
        if result.ok and result.value is not None:
            reply = result.value
            return ExpertiseResult(
                area=reply.area,
                confidence=round(reply.confidence, 3),
                reasoning=reply.reasoning,
                signals=tuple(reply.signals),
                source="model",
            )

        fallback = detect_by_keywords(answers_text(session, Block.EXPERTISE), self._metadata)
        logger.info(
            "expertise_fallback_used",
            extra={
                "session_id": session.id,
                "area": fallback.area.value,
                "confidence": fallback.confidence,
                "reason": type(result.error).__name__ if result.error else "unknown",
            },
        )
        return fallback
