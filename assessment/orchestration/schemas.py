"""
Shapes a model reply must have before the engine will use it.

A reply that fails validation here is a ModelSchemaViolation and is
retried once with the validation errors fed back to the model.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from assessment.diagnostic.models import DiagnosticContent, coerce_area
from assessment.interview.models import Area


class ExpertiseResponse(BaseModel):
    area: Area
    confidence: float = Field(..., ge=0.0, le=1.0)
    reasoning: str = ""
    signals: list[str] = Field(default_factory=list)

    @field_validator("area", mode="before")
    @classmethod
    def normalize_area(cls, v: Any) -> Any:
        return coerce_area(v)

    @field_validator("confidence", mode="before")
    @classmethod
    def percent_to_ratio(cls, v: Any) -> Any:
        # Some models answer 85 instead of 0.85
        if isinstance(v, (int, float)) and 1.0 < v <= 100.0:
            return v / 100.0
        return v


class RiskSelectionResponse(BaseModel):
    """
    Areas are kept as raw strings; the selector drops unknown or
    duplicate names itself and tops the list up from the graph.
    """
    areas: list[str] = Field(..., min_length=1)
    reasoning: str = ""

    @field_validator("areas", mode="before")
    @classmethod
    def normalize_areas(cls, v: Any) -> Any:
        if isinstance(v, list):
            return [coerce_area(a) if isinstance(a, str) else a for a in v]
        return v


class DiagnosticResponse(DiagnosticContent):
    """A diagnostic must at least score some area and summarize."""

    @model_validator(mode="after")
    def require_substance(self) -> "DiagnosticResponse":
        if not self.health_scores:
            raise ValueError("health_scores must not be empty")
        if not self.executive_summary.strip():
            raise ValueError("executive_summary must not be empty")
        return self
