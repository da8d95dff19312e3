"""
Pydantic schema for engine settings.

Interview thresholds (minimum questions per block, completeness cutoffs,
follow-up budget) are tuned empirically, so they live in config.yaml
rather than in code. Every field has a default, so an empty file or no
file at all yields a working engine.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from assessment.interview.models import Block


def _check_block_keys(value: dict[str, float | int]) -> dict[str, float | int]:
    known = {b.value for b in Block}
    unknown = set(value) - known
    if unknown:
        raise ValueError(f"Unknown block(s): {', '.join(sorted(unknown))}")
    return value


# ---------------------------------------------------------------------------
# Sub-models
# ---------------------------------------------------------------------------

class InterviewSettings(BaseModel):
    """Block gating, termination and follow-up rules."""
    min_questions: dict[str, int] = Field(
        default_factory=lambda: {
            "context": 7,
            "expertise": 4,
            "deep-dive": 5,
            "risk-scan": 3,
        },
        description="Answers required in a block before it may advance",
    )
    block_thresholds: dict[str, float] = Field(
        default_factory=lambda: {
            "context": 0.7,
            "expertise": 0.75,
            "deep-dive": 0.6,
            "risk-scan": 1.0,
        },
        description="Block completeness ratio (0-1) required before advancing",
    )
    terminal_threshold: int = Field(
        70, ge=0, le=100,
        description="Global completeness score required to finish",
    )
    max_follow_ups: int = Field(
        3, ge=0, description="Dynamically generated follow-ups per session"
    )
    risk_area_count: int = Field(3, ge=1)
    min_answer_length: int = Field(
        20, ge=0, description="Open answers shorter than this count as vague"
    )
    vague_answer_ratio: float = Field(
        0.34, ge=0.0, le=1.0,
        description="Share of vague open answers that drops the confidence tier",
    )
    signal_threshold: float = Field(
        0.5, ge=0.0, description="Combined weak-signal score that triggers a follow-up"
    )
    session_ttl_seconds: int = Field(7200, gt=0)

    @field_validator("min_questions")
    @classmethod
    def validate_min_questions(cls, v: dict[str, int]) -> dict[str, int]:
        _check_block_keys(v)
        if any(n < 0 for n in v.values()):
            raise ValueError("min_questions values must be >= 0")
        return v

    @field_validator("block_thresholds")
    @classmethod
    def validate_thresholds(cls, v: dict[str, float]) -> dict[str, float]:
        _check_block_keys(v)
        if any(not 0.0 <= t <= 1.0 for t in v.values()):
            raise ValueError("block_thresholds must be between 0 and 1")
        return v

    def min_questions_for(self, block: Block) -> int:
        return self.min_questions.get(block.value, 0)

    def threshold_for(self, block: Block) -> float:
        return self.block_thresholds.get(block.value, 0.0)


class ScoringSettings(BaseModel):
    """Relative weight of each block in the global completeness score."""
    block_weights: dict[str, float] = Field(
        default_factory=lambda: {
            "context": 0.4,
            "expertise": 0.15,
            "deep-dive": 0.3,
            "risk-scan": 0.15,
        },
    )
    high_confidence_score: int = Field(80, ge=0, le=100)
    medium_confidence_score: int = Field(50, ge=0, le=100)

    @field_validator("block_weights")
    @classmethod
    def validate_weights(cls, v: dict[str, float]) -> dict[str, float]:
        _check_block_keys(v)
        if any(w < 0 for w in v.values()):
            raise ValueError("block_weights must be >= 0")
        if sum(v.values()) <= 0:
            raise ValueError("block_weights must not all be zero")
        return v

    @model_validator(mode="after")
    def validate_tiers(self) -> "ScoringSettings":
        if self.medium_confidence_score > self.high_confidence_score:
            raise ValueError(
                "medium_confidence_score must not exceed high_confidence_score"
            )
        return self

    def weight_for(self, block: Block) -> float:
        return self.block_weights.get(block.value, 0.0)


class ModelSettings(BaseModel):
    """Model names per orchestration task."""
    expertise_detection: str = "claude-3-5-haiku-20241022"
    risk_selection: str = "claude-3-5-haiku-20241022"
    diagnostic_generation: str = "claude-sonnet-4-20250514"


class OrchestrationSettings(BaseModel):
    """Model call limits and the lead-value gate."""
    timeout_seconds: float = Field(60.0, gt=0)
    fast_timeout_seconds: float = Field(
        15.0, gt=0, description="Timeout for the cheap classification calls"
    )
    session_budget_usd: float = Field(0.50, ge=0.0)
    prompt_version: int = Field(1, ge=1)
    models: ModelSettings = Field(default_factory=ModelSettings)
    min_lead_team_size: int = Field(
        3, ge=0, description="Companies smaller than this are low lead value"
    )
    min_lead_completeness: int = Field(
        40, ge=0, le=100,
        description="Below this score the diagnostic call is skipped",
    )


class APISettings(BaseModel):
    host: str = "0.0.0.0"
    port: int = Field(8000, gt=0, lt=65536)
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------

class EngineSettings(BaseModel):
    """Root settings object (config/engine.yaml)."""
    environment: str = "development"
    log_level: str = "INFO"
    interview: InterviewSettings = Field(default_factory=InterviewSettings)
    scoring: ScoringSettings = Field(default_factory=ScoringSettings)
    orchestration: OrchestrationSettings = Field(default_factory=OrchestrationSettings)
    api: APISettings = Field(default_factory=APISettings)
    source_path: Optional[str] = Field(
        None, description="File these settings were loaded from, if any"
    )
