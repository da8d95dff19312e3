"""
Completeness & Confidence Scorer.

Turns a session's extracted data into a 0-100 completeness score, the
list of essential fields still missing, and a confidence tier for the
final report.

Scoring:
    Each block has its essential fields: fields[0] of every question the
    session will be asked in that block. The block ratio is
    present / required. The global score is the block-weighted mean of
    those ratios:

        score = 100 × Σ(weight_b × ratio_b) / Σ(weight_b)

    Context carries the most weight, risk-scan the least. Blocks whose
    questions are not known yet (deep-dive before expertise detection,
    risk-scan before selection) count with ratio 0, so the score only
    grows as data arrives.

Confidence:
    high / medium / low by score, dropped one tier when too many open
    answers were shorter than the minimum length. Short answers must not
    produce a "high confidence" report even with every field filled.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from pydantic import BaseModel, Field

from assessment.config.schema import InterviewSettings, ScoringSettings
from assessment.interview.models import BLOCK_ORDER, Block, ConfidenceTier, Session
from assessment.interview.questions import QuestionBank

logger = logging.getLogger(__name__)

COMPLETION_METRICS_VERSION = "1"


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class BlockCompletion:
    """Essential-field coverage of one block."""
    block: Block
    essential_fields_required: int
    essential_fields_collected: int
    missing: tuple[str, ...] = ()
    resolved: bool = True

    @property
    def ratio(self) -> float:
        if not self.resolved:
            return 0.0
        if self.essential_fields_required == 0:
            return 1.0
        return self.essential_fields_collected / self.essential_fields_required

    @property
    def is_complete(self) -> bool:
        return self.resolved and not self.missing


class CompletionMetrics(BaseModel):
    """
    Completion snapshot exposed to the report layer.

    The field names are a versioned contract (COMPLETION_METRICS_VERSION).
    Do not rename or reshape without bumping it.
    """
    completeness_score: int = Field(..., ge=0, le=100)
    essential_fields_collected: int
    essential_fields_required: int
    total_fields_collected: int
    topics_covered: list[str] = Field(default_factory=list)
    gaps_identified: list[str] = Field(default_factory=list)


def field_has_value(data: dict[str, Any], field_name: str) -> bool:
    """Check if an extracted field has a meaningful value."""
    value = data.get(field_name)
    if value is None:
        return False
    if isinstance(value, str) and not value.strip():
        return False
    if isinstance(value, (list, tuple, set, dict)) and len(value) == 0:
        return False
    return True


# ---------------------------------------------------------------------------
# Scorer
# ---------------------------------------------------------------------------

class CompletenessScorer:
    """
    Pure functions of session state. Safe to call any number of times.
    """

    def __init__(
        self,
        bank: Optional[QuestionBank] = None,
        scoring: Optional[ScoringSettings] = None,
        interview: Optional[InterviewSettings] = None,
    ):
        self._bank = bank or QuestionBank()
        self._scoring = scoring or ScoringSettings()
        self._interview = interview or InterviewSettings()

    # ── Essential fields ─────────────────────────────────────────

    def essential_fields(self, session: Session, block: Block) -> Optional[list[str]]:
        """
        Essential fields for `block`, or None while the block's
        questions are not known yet.
        """
        if block == Block.DEEP_DIVE and session.deep_dive_area is None:
            return None
        if block == Block.RISK_SCAN and not session.risk_areas:
            return None
        questions = self._bank.questions_for_session(
            block,
            deep_dive_area=session.deep_dive_area,
            risk_areas=session.risk_areas,
            persona=session.persona,
        )
        seen: list[str] = []
        for q in questions:
            if q.essential_field not in seen:
                seen.append(q.essential_field)
        return seen

    def block_completion(self, session: Session, block: Block) -> BlockCompletion:
        fields = self.essential_fields(session, block)
        if fields is None:
            return BlockCompletion(
                block=block,
                essential_fields_required=0,
                essential_fields_collected=0,
                resolved=False,
            )
        missing = tuple(
            f for f in fields if not field_has_value(session.extracted_data, f)
        )
        return BlockCompletion(
            block=block,
            essential_fields_required=len(fields),
            essential_fields_collected=len(fields) - len(missing),
            missing=missing,
        )

    # ── Score ────────────────────────────────────────────────────

    def score(self, session: Session) -> int:
        total_weight = sum(self._scoring.weight_for(b) for b in BLOCK_ORDER)
        weighted = sum(
            self._scoring.weight_for(b) * self.block_completion(session, b).ratio
            for b in BLOCK_ORDER
        )
        return int(round(100 * weighted / total_weight))

    def identify_gaps(self, session: Session) -> list[str]:
        """Missing essential fields in block order, then extraction and routing gaps."""
        gaps: list[str] = []
        for block in BLOCK_ORDER:
            for f in self.block_completion(session, block).missing:
                if f not in gaps:
                    gaps.append(f)
        for gap in session.extraction_gaps + session.routing_gaps:
            if gap not in gaps:
                gaps.append(gap)
        return gaps

    def total_fields_collected(self, session: Session) -> int:
        return sum(
            1 for k in session.extracted_data
            if field_has_value(session.extracted_data, k)
        )

    def metrics(self, session: Session) -> CompletionMetrics:
        collected = required = 0
        for block in BLOCK_ORDER:
            bc = self.block_completion(session, block)
            collected += bc.essential_fields_collected
            required += bc.essential_fields_required
        return CompletionMetrics(
            completeness_score=self.score(session),
            essential_fields_collected=collected,
            essential_fields_required=required,
            total_fields_collected=self.total_fields_collected(session),
            topics_covered=sorted(session.topics_covered),
            gaps_identified=self.identify_gaps(session),
        )

    # ── Confidence ───────────────────────────────────────────────

    def vague_answer_ratio(self, session: Session) -> float:
        """Share of answered open questions whose latest answer is too short."""
        open_ids = [
            a.question_id for a in session.answers
            if not a.is_follow_up
            and a.question_id in self._bank
            and self._bank.get_question_by_id(a.question_id).open_ended
        ]
        if not open_ids:
            return 0.0
        short = 0
        for qid in dict.fromkeys(open_ids):
            latest = session.answer_for(qid)
            if latest and len(latest.text.strip()) < self._interview.min_answer_length:
                short += 1
        return short / len(dict.fromkeys(open_ids))

    def confidence_tier(self, session: Session, score: Optional[int] = None) -> ConfidenceTier:
        score = self.score(session) if score is None else score
        tiers = (ConfidenceTier.LOW, ConfidenceTier.MEDIUM, ConfidenceTier.HIGH)
        if score >= self._scoring.high_confidence_score:
            level = 2
        elif score >= self._scoring.medium_confidence_score:
            level = 1
        else:
            level = 0

        if self.vague_answer_ratio(session) > self._interview.vague_answer_ratio:
            level = max(level - 1, 0)
        return tiers[level]

    # ── Estimates ────────────────────────────────────────────────

    def estimate_questions_remaining(self, session: Session) -> dict[str, Any]:
        """Rough count of questions left, for progress displays."""
        answered = session.answered_question_ids()
        remaining = 0
        start = BLOCK_ORDER.index(session.current_block)
        for block in BLOCK_ORDER[start:]:
            fields = self.essential_fields(session, block)
            if fields is None:
                remaining += (
                    self._interview.risk_area_count
                    if block == Block.RISK_SCAN
                    else self._interview.min_questions_for(block)
                )
                continue
            questions = self._bank.questions_for_session(
                block,
                deep_dive_area=session.deep_dive_area,
                risk_areas=session.risk_areas,
                persona=session.persona,
            )
            remaining += sum(1 for q in questions if q.id not in answered)

        follow_ups_left = max(self._interview.max_follow_ups - session.follow_ups_asked, 0)
        return {
            "min": remaining,
            "max": remaining + follow_ups_left,
            "reason": f"{remaining} catalog question(s) left in {session.current_block.value} onwards",
        }
