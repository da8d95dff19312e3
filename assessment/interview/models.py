"""
Domain model for an interview session.

Sessions are pydantic models so they can be serialized to whatever
key-value backend the engine is given. Everything else in the interview
package (store, scorer, router) reads and writes these types.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class Block(str, Enum):
    """The four interview phases, asked strictly in this order."""
    CONTEXT = "context"          # Who is the company? Always asked.
    EXPERTISE = "expertise"      # Open probes that reveal the strong area
    DEEP_DIVE = "deep-dive"      # Questions for the detected area only
    RISK_SCAN = "risk-scan"      # One question per selected risk area


BLOCK_ORDER: tuple[Block, ...] = (
    Block.CONTEXT,
    Block.EXPERTISE,
    Block.DEEP_DIVE,
    Block.RISK_SCAN,
)


def block_position(block: Block) -> int:
    return BLOCK_ORDER.index(block)


def next_block(block: Block) -> Optional[Block]:
    """The block after `block`, or None after risk-scan."""
    pos = block_position(block)
    return BLOCK_ORDER[pos + 1] if pos + 1 < len(BLOCK_ORDER) else None


class Area(str, Enum):
    """Business areas a respondent can be strong or weak in."""
    MARKETING = "marketing"
    SALES = "sales"
    PRODUCT = "product"
    OPERATIONS = "operations"
    FINANCE = "finance"
    PEOPLE = "people"
    TECHNOLOGY = "technology"


class InputType(str, Enum):
    TEXT = "text"
    SINGLE_CHOICE = "single-choice"
    MULTI_CHOICE = "multi-choice"
    NUMBER = "number"


class Persona(str, Enum):
    """Who is answering. Some questions only make sense for some roles."""
    FOUNDER = "founder"
    EXECUTIVE = "executive"
    MANAGER = "manager"
    TECHNICAL = "technical"


class SignalKind(str, Enum):
    """Weak signals that can trigger a dynamically generated follow-up."""
    VAGUE = "vague"
    HEDGING = "hedging"
    MISSING_METRIC = "missing_metric"
    CONTRADICTION = "contradiction"
    URGENCY = "urgency"


class ConfidenceTier(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


# ---------------------------------------------------------------------------
# Session entities
# ---------------------------------------------------------------------------

def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Answer(BaseModel):
    """One recorded answer. The answer log is append-only."""
    model_config = ConfigDict(frozen=True)

    question_id: str
    text: str
    timestamp: datetime = Field(default_factory=_utcnow)
    block: Block
    area: Optional[Area] = None
    is_follow_up: bool = False
    parent_question_id: Optional[str] = None


class FollowUpQuestion(BaseModel):
    """A question generated at runtime rather than taken from the catalog."""
    model_config = ConfigDict(frozen=True)

    id: str
    parent_question_id: str
    block: Block
    area: Optional[Area] = None
    text: str
    reason: str
    signals: list[SignalKind] = Field(default_factory=list)
    gap_fill: bool = False


class SignalSnapshot(BaseModel):
    """Weak signals detected on the most recent catalog answer."""
    model_config = ConfigDict(frozen=True)

    question_id: str
    kinds: list[SignalKind] = Field(default_factory=list)
    score: float = 0.0
    triggered: bool = False
    reasons: list[str] = Field(default_factory=list)


class BlockTransition(BaseModel):
    """Record of a move from one block to the next."""
    model_config = ConfigDict(frozen=True)

    from_block: Block
    to_block: Block
    reason: str
    forced: bool = False
    at: datetime = Field(default_factory=_utcnow)


class Session(BaseModel):
    """
    Mutable state of one interview.

    Owned by the SessionStore. `completeness_score` and `gaps_identified`
    are recomputed by the store after every answer; nothing else should
    write them.
    """

    id: str = Field(default_factory=lambda: f"sess_{uuid4().hex[:16]}")
    started_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    initial_context: dict[str, Any] = Field(default_factory=dict)
    persona: Optional[Persona] = None

    current_block: Block = Block.CONTEXT
    block_question_index: int = 0
    block_history: list[BlockTransition] = Field(default_factory=list)

    answers: list[Answer] = Field(default_factory=list)
    extracted_data: dict[str, Any] = Field(default_factory=dict)
    extraction_gaps: list[str] = Field(default_factory=list)
    routing_gaps: list[str] = Field(default_factory=list)

    detected_area: Optional[Area] = None
    expertise_confidence: Optional[float] = None
    expertise_reasoning: str = ""
    deep_dive_area: Optional[Area] = None
    risk_areas: list[Area] = Field(default_factory=list)
    risk_reasoning: str = ""

    completeness_score: int = 0
    topics_covered: set[str] = Field(default_factory=set)
    gaps_identified: list[str] = Field(default_factory=list)

    last_signals: Optional[SignalSnapshot] = None
    pending_follow_up: Optional[FollowUpQuestion] = None
    follow_ups_asked: int = 0
    followed_up_question_ids: list[str] = Field(default_factory=list)

    completed: bool = False
    completed_at: Optional[datetime] = None
    diagnostic_id: Optional[str] = None
    low_confidence: bool = False

    # ── Derived views ────────────────────────────────────────────

    def answered_question_ids(self) -> set[str]:
        """Catalog question ids with at least one answer (follow-ups excluded)."""
        return {a.question_id for a in self.answers if not a.is_follow_up}

    def answers_in_block(self, block: Block) -> list[Answer]:
        return [a for a in self.answers if a.block == block and not a.is_follow_up]

    def answered_count(self, block: Block) -> int:
        """Distinct catalog questions answered in `block`; re-answers count once."""
        return len({a.question_id for a in self.answers_in_block(block)})

    def answer_for(self, question_id: str) -> Optional[Answer]:
        """Latest answer text for a catalog question, follow-ups included."""
        latest = None
        for a in self.answers:
            if a.question_id == question_id or a.parent_question_id == question_id:
                latest = a
        return latest

    def elapsed_seconds(self, now: Optional[datetime] = None) -> float:
        now = now or _utcnow()
        return max((now - self.started_at).total_seconds(), 0.0)
