"""
Weak-signal detection on answers.

A weak signal is a hint that an answer deserves a follow-up: it is vague,
hedged, missing a number the question asked for, contradicts earlier
data, or uses urgent/emotional language. Each heuristic is a separate
SignalDetector so strategies can be swapped and tested on their own;
CompositeSignalDetector combines them with a weighted sum.

The router (not the detectors) decides whether a follow-up is actually
asked, subject to the per-session follow-up budget.

Usage:
    detector = CompositeSignalDetector.default(min_answer_length=20)
    report = detector.evaluate(AnswerContext(question, text, session, extracted))
    if report.triggered:
        ...
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol, runtime_checkable

from assessment.interview.models import (
    FollowUpQuestion,
    Session,
    SignalKind,
    SignalSnapshot,
)
from assessment.interview.questions import Question


# ---------------------------------------------------------------------------
# Types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Signal:
    kind: SignalKind
    score: float            # 0..1 strength
    reason: str


@dataclass(frozen=True)
class AnswerContext:
    """
    Everything a detector may look at.

    `previous_data` is the session's extracted data *before* this answer
    was merged, so contradictions can be spotted.
    """
    question: Question
    text: str
    session: Session
    extracted: dict[str, Any] = field(default_factory=dict)
    extraction_failed: bool = False
    previous_data: dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class SignalDetector(Protocol):
    """One weak-signal heuristic."""

    name: str

    def detect(self, ctx: AnswerContext) -> Optional[Signal]:
        ...


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------

HEDGING_PHRASES: tuple[str, ...] = (
    "i guess", "i think", "kind of", "kinda", "sort of", "maybe",
    "not sure", "don't know", "dont know", "no idea", "hard to say",
    "more or less", "probably", "it depends", "somewhat",
    "mais ou menos", "não sei", "acho que",
)

URGENCY_PHRASES: tuple[str, ...] = (
    "urgent", "asap", "desperate", "frustrat", "worried", "scared",
    "losing customers", "losing clients", "can't sleep", "burning out",
    "deadline", "crisis", "board is", "running out",
)


class LexicalHedgingDetector:
    """Hedging/uncertain phrasing in open or quantifiable answers."""

    name = "lexical_hedging"

    def __init__(self, phrases: tuple[str, ...] = HEDGING_PHRASES):
        self._phrases = phrases

    def detect(self, ctx: AnswerContext) -> Optional[Signal]:
        q = ctx.question
        if not (q.open_ended or q.quantifiable):
            return None
        text = ctx.text.lower()
        hits = [p for p in self._phrases if p in text]
        if not hits:
            return None
        return Signal(
            kind=SignalKind.HEDGING,
            score=min(0.6 + 0.2 * (len(hits) - 1), 1.0),
            reason=f"hedging language: {', '.join(hits[:3])}",
        )


class LengthDetector:
    """Open answers shorter than the minimum length read as vague."""

    name = "length"

    def __init__(self, min_length: int = 20):
        self._min_length = min_length

    def detect(self, ctx: AnswerContext) -> Optional[Signal]:
        if not ctx.question.open_ended or self._min_length <= 0:
            return None
        length = len(ctx.text.strip())
        if length >= self._min_length:
            return None
        return Signal(
            kind=SignalKind.VAGUE,
            score=round(1.0 - length / self._min_length, 3),
            reason=f"answer is {length} chars (< {self._min_length})",
        )


class MissingMetricDetector:
    """A quantifiable question answered without a usable number."""

    name = "missing_metric"

    def detect(self, ctx: AnswerContext) -> Optional[Signal]:
        if not ctx.question.quantifiable:
            return None
        if ctx.extraction_failed or not re.search(r"\d", ctx.text):
            return Signal(
                kind=SignalKind.MISSING_METRIC,
                score=1.0,
                reason=f"no number for {ctx.question.essential_field}",
            )
        return None


class ContradictionDetector:
    """
    New value disagrees with one already extracted for the same field.

    Numbers disagree when they differ by more than `tolerance` (relative);
    strings and flags disagree on any change.
    """

    name = "contradiction"

    def __init__(self, tolerance: float = 0.5):
        self._tolerance = tolerance

    def _conflicts(self, old: Any, new: Any) -> bool:
        if old is None or new is None:
            return False
        if isinstance(old, bool) or isinstance(new, bool):
            return bool(old) != bool(new)
        if isinstance(old, (int, float)) and isinstance(new, (int, float)):
            base = max(abs(old), abs(new), 1e-9)
            return abs(old - new) / base > self._tolerance
        if isinstance(old, str) and isinstance(new, str):
            return old.strip().lower() != new.strip().lower() and not _is_narrative(old, new)
        return False

    def detect(self, ctx: AnswerContext) -> Optional[Signal]:
        conflicts = [
            f for f, new in ctx.extracted.items()
            if self._conflicts(ctx.previous_data.get(f), new)
        ]
        if not conflicts:
            return None
        return Signal(
            kind=SignalKind.CONTRADICTION,
            score=1.0,
            reason=f"conflicts with earlier answer: {', '.join(conflicts)}",
        )


def _is_narrative(old: str, new: str) -> bool:
    """Long free-text values are narrative; a rewrite is not a contradiction."""
    return len(old) > 40 or len(new) > 40


class UrgencyDetector:
    """Emotional or urgent language in open answers."""

    name = "urgency"

    def __init__(self, phrases: tuple[str, ...] = URGENCY_PHRASES):
        self._phrases = phrases

    def detect(self, ctx: AnswerContext) -> Optional[Signal]:
        if not ctx.question.open_ended:
            return None
        text = ctx.text.lower()
        hits = [p for p in self._phrases if p in text]
        if not hits:
            return None
        return Signal(
            kind=SignalKind.URGENCY,
            score=min(0.6 + 0.2 * (len(hits) - 1), 1.0),
            reason=f"urgent language: {', '.join(hits[:3])}",
        )


# ---------------------------------------------------------------------------
# Composite
# ---------------------------------------------------------------------------

DEFAULT_SIGNAL_WEIGHTS: dict[SignalKind, float] = {
    SignalKind.VAGUE: 0.5,
    SignalKind.HEDGING: 0.5,
    SignalKind.MISSING_METRIC: 0.6,
    SignalKind.CONTRADICTION: 0.6,
    SignalKind.URGENCY: 0.5,
}


@dataclass(frozen=True)
class SignalReport:
    question_id: str
    signals: tuple[Signal, ...] = ()
    score: float = 0.0
    triggered: bool = False

    @property
    def kinds(self) -> list[SignalKind]:
        return [s.kind for s in self.signals]

    def to_snapshot(self) -> SignalSnapshot:
        return SignalSnapshot(
            question_id=self.question_id,
            kinds=self.kinds,
            score=self.score,
            triggered=self.triggered,
            reasons=[s.reason for s in self.signals],
        )


class CompositeSignalDetector:
    """Runs every detector and sums weight × strength against a threshold."""

    def __init__(
        self,
        detectors: list[SignalDetector],
        weights: Optional[dict[SignalKind, float]] = None,
        threshold: float = 0.5,
    ):
        self._detectors = list(detectors)
        self._weights = dict(DEFAULT_SIGNAL_WEIGHTS)
        if weights:
            self._weights.update(weights)
        self._threshold = threshold

    @classmethod
    def default(
        cls,
        min_answer_length: int = 20,
        threshold: float = 0.5,
    ) -> "CompositeSignalDetector":
        return cls(
            detectors=[
                LexicalHedgingDetector(),
                LengthDetector(min_answer_length),
                MissingMetricDetector(),
                ContradictionDetector(),
                UrgencyDetector(),
            ],
            threshold=threshold,
        )

    @property
    def detectors(self) -> list[SignalDetector]:
        return list(self._detectors)

    def evaluate(self, ctx: AnswerContext) -> SignalReport:
        signals = []
        for detector in self._detectors:
            signal = detector.detect(ctx)
            if signal is not None:
                signals.append(signal)
        score = round(
            sum(self._weights.get(s.kind, 0.0) * s.score for s in signals), 3
        )
        return SignalReport(
            question_id=ctx.question.id,
            signals=tuple(signals),
            score=score,
            triggered=bool(signals) and score >= self._threshold,
        )


# ---------------------------------------------------------------------------
# Follow-up wording
# ---------------------------------------------------------------------------

_FOLLOW_UP_PREFIX: dict[SignalKind, str] = {
    SignalKind.MISSING_METRIC: "Could you put a number on that? A rough estimate is fine.",
    SignalKind.CONTRADICTION: "That differs from something you said earlier. Which is accurate?",
    SignalKind.HEDGING: "No need to be exact. What is your best estimate?",
    SignalKind.VAGUE: "Could you say a bit more, ideally with a concrete example?",
    SignalKind.URGENCY: "That sounds pressing. What happens if it is not solved in the next 3 months?",
}

# Strongest reason to ask again comes first
_FOLLOW_UP_PRIORITY: tuple[SignalKind, ...] = (
    SignalKind.MISSING_METRIC,
    SignalKind.CONTRADICTION,
    SignalKind.HEDGING,
    SignalKind.VAGUE,
    SignalKind.URGENCY,
)


def build_follow_up(
    question: Question,
    kinds: list[SignalKind],
    sequence: int,
    reason: str = "",
) -> FollowUpQuestion:
    """Deterministic follow-up text for the strongest signal."""
    lead = next((k for k in _FOLLOW_UP_PRIORITY if k in kinds), SignalKind.VAGUE)
    text = _FOLLOW_UP_PREFIX[lead]
    if lead != SignalKind.URGENCY:
        text = f"{text} {question.text}"
    return FollowUpQuestion(
        id=f"fu-{question.id}-{sequence}",
        parent_question_id=question.id,
        block=question.block,
        area=question.area,
        text=text,
        reason=reason or lead.value,
        signals=list(kinds),
    )


def build_gap_follow_up(question: Question, sequence: int) -> FollowUpQuestion:
    """Follow-up asking again for an essential field that is still missing."""
    return FollowUpQuestion(
        id=f"fu-{question.id}-{sequence}",
        parent_question_id=question.id,
        block=question.block,
        area=question.area,
        text=f"We are still missing this one before we can finish: {question.text}",
        reason=f"gap: {question.essential_field}",
        signals=[SignalKind.MISSING_METRIC] if question.quantifiable else [SignalKind.VAGUE],
        gap_fill=True,
    )
