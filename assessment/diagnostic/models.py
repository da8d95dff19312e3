"""
Diagnostic data model.

DiagnosticContent is what a model (or the deterministic fallback)
produces; DiagnosticDraft adds how it was produced; Diagnostic is the
final, synthesized report that is stored and returned to clients.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator

from assessment.interview.models import Area, ConfidenceTier


class HealthStatus(str, Enum):
    CRITICAL = "critical"       # < 50
    ATTENTION = "attention"     # < 70
    GOOD = "good"               # < 90
    EXCELLENT = "excellent"


class Priority(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


PRIORITY_ORDER: dict[Priority, int] = {
    Priority.CRITICAL: 0,
    Priority.HIGH: 1,
    Priority.MEDIUM: 2,
    Priority.LOW: 3,
}


class Level(str, Enum):
    """Severity of a pattern or effort of a recommendation."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


def coerce_area(value: Any) -> Any:
    """Accept 'Finance', ' finance ' and Area.FINANCE alike."""
    if isinstance(value, str) and not isinstance(value, Area):
        return value.strip().lower()
    return value


def coerce_areas(value: Any) -> Any:
    if isinstance(value, (list, tuple)):
        return [coerce_area(v) for v in value]
    return value


def coerce_lower(value: Any) -> Any:
    return value.strip().lower() if isinstance(value, str) else value


# ---------------------------------------------------------------------------
# Parts
# ---------------------------------------------------------------------------

class AreaAssessment(BaseModel):
    """A model's opinion of one area's health."""
    area: Area
    score: float = Field(..., ge=0, le=100)
    reasoning: str = ""

    @field_validator("area", mode="before")
    @classmethod
    def normalize_area(cls, v: Any) -> Any:
        return coerce_area(v)


class AreaScore(BaseModel):
    """Final per-area health in the report."""
    model_config = ConfigDict(frozen=True)

    area: Area
    score: int = Field(..., ge=0, le=100)
    status: HealthStatus
    reasoning: str = ""
    source: str = "derived"     # derived | model | blended | baseline


class Pattern(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    description: str = ""
    areas: list[Area] = Field(default_factory=list)
    evidence: list[str] = Field(default_factory=list)
    severity: Level = Level.MEDIUM

    @field_validator("areas", mode="before")
    @classmethod
    def normalize_areas(cls, v: Any) -> Any:
        return coerce_areas(v)

    @field_validator("severity", mode="before")
    @classmethod
    def normalize_severity(cls, v: Any) -> Any:
        return coerce_lower(v)


class RootCause(BaseModel):
    model_config = ConfigDict(frozen=True)

    description: str
    areas: list[Area] = Field(default_factory=list)
    evidence: list[str] = Field(default_factory=list)

    @field_validator("areas", mode="before")
    @classmethod
    def normalize_areas(cls, v: Any) -> Any:
        return coerce_areas(v)


class Recommendation(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str
    description: str = ""
    area: Area
    priority: Priority = Priority.MEDIUM
    impact: str = ""
    effort: Level = Level.MEDIUM

    @field_validator("area", mode="before")
    @classmethod
    def normalize_area(cls, v: Any) -> Any:
        return coerce_area(v)

    @field_validator("priority", "effort", mode="before")
    @classmethod
    def normalize_levels(cls, v: Any) -> Any:
        return coerce_lower(v)


class RoadmapPhase(BaseModel):
    model_config = ConfigDict(frozen=True)

    phase: int = Field(..., ge=1)
    title: str
    duration_weeks: int = Field(4, ge=1)
    actions: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Draft and report
# ---------------------------------------------------------------------------

class DiagnosticContent(BaseModel):
    """Body of a diagnostic, as written by a model or the fallback."""
    health_scores: list[AreaAssessment] = Field(default_factory=list)
    detected_patterns: list[Pattern] = Field(default_factory=list)
    root_causes: list[RootCause] = Field(default_factory=list)
    recommendations: list[Recommendation] = Field(default_factory=list)
    roadmap: list[RoadmapPhase] = Field(default_factory=list)
    executive_summary: str = ""


class DiagnosticDraft(DiagnosticContent):
    """Content plus provenance, before synthesis."""
    session_id: str
    is_fallback: bool = False
    low_confidence: bool = False
    llm_skipped_reason: Optional[str] = None
    model: Optional[str] = None

    @property
    def from_model(self) -> bool:
        return self.model is not None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Diagnostic(BaseModel):
    """The final report. Stored independently of the session."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: f"diag_{uuid4().hex[:16]}")
    session_id: str
    generated_at: datetime = Field(default_factory=_utcnow)
    overall_score: int = Field(..., ge=0, le=100)
    overall_status: HealthStatus
    detected_area: Optional[Area] = None
    risk_areas: list[Area] = Field(default_factory=list)
    health_scores: list[AreaScore] = Field(default_factory=list)
    detected_patterns: list[Pattern] = Field(default_factory=list)
    root_causes: list[RootCause] = Field(default_factory=list)
    recommendations: list[Recommendation] = Field(default_factory=list)
    roadmap: list[RoadmapPhase] = Field(default_factory=list)
    executive_summary: str = ""
    completeness_score: int = 0
    confidence_tier: ConfidenceTier = ConfidenceTier.LOW
    gaps: list[str] = Field(default_factory=list)
    is_fallback: bool = False
    low_confidence: bool = False
    llm_skipped_reason: Optional[str] = None
