"""
Exception hierarchy for the assessment engine.

Errors fall into a few categories:
- Caller contract violations (unknown session), surfaced as 404s
- Catalog lookups (unknown question), treated as "block exhausted"
- Extraction failures, recorded as gaps and never thrown past the store
- Model call failures (timeout, schema violation), retried once then
  replaced by a deterministic fallback
- Budget exhaustion, which skips diagnostic generation

Usage:
    from assessment.exceptions import SessionNotFound, ExtractionFailure

    try:
        session = store.get_session(session_id)
    except SessionNotFound:
        raise HTTPException(status_code=404, detail="Session not found")
"""

from __future__ import annotations

from typing import Any, Optional


class AssessmentError(Exception):
    """
    Base exception for all assessment engine errors.

    Catch `AssessmentError` to handle anything raised by this package.
    """

    def __init__(self, message: str, *, details: Optional[dict] = None):
        super().__init__(message)
        self.details = details or {}


# ── Configuration Errors ──────────────────────────────────────────


class ConfigurationError(AssessmentError):
    """
    Raised when engine settings are missing or invalid.

    Examples:
    - YAML file that does not parse
    - Threshold outside 0..1
    - Unknown block name in a per-block table
    """

    def __init__(
        self,
        message: str,
        *,
        config_path: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, details=details)
        self.config_path = config_path


# ── Session / Catalog Errors ──────────────────────────────────────


class SessionNotFound(AssessmentError):
    """
    The session id was never created or has already expired.

    This is the only terminal error: the caller has to start over.
    """

    def __init__(
        self,
        session_id: str,
        *,
        details: Optional[dict] = None,
    ):
        super().__init__(f"Session not found: {session_id}", details=details)
        self.session_id = session_id


class QuestionNotFound(AssessmentError):
    """
    No catalog entry for the requested id or block/area combination.

    The router treats this as "no more questions in this block".
    """

    def __init__(
        self,
        message: str,
        *,
        question_id: Optional[str] = None,
        block: Optional[str] = None,
        area: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, details=details)
        self.question_id = question_id
        self.block = block
        self.area = area


class DiagnosticNotFound(AssessmentError):
    """No diagnostic has been generated under this id."""

    def __init__(
        self,
        diagnostic_id: str,
        *,
        details: Optional[dict] = None,
    ):
        super().__init__(f"Diagnostic not found: {diagnostic_id}", details=details)
        self.diagnostic_id = diagnostic_id


class ExtractionFailure(AssessmentError):
    """
    An answer could not be parsed into the fields its question targets.

    Recoverable: the raw answer is still stored and the field is
    reported as a gap.
    """

    def __init__(
        self,
        message: str,
        *,
        question_id: Optional[str] = None,
        field: Optional[str] = None,
        raw_answer: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, details=details)
        self.question_id = question_id
        self.field = field
        self.raw_answer = raw_answer


class InvalidTransition(AssessmentError):
    """
    A block move that would go backwards or re-enter the current block.
    """

    def __init__(
        self,
        message: str,
        *,
        current_block: Optional[str] = None,
        target_block: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, details=details)
        self.current_block = current_block
        self.target_block = target_block


# ── Routing Preconditions ─────────────────────────────────────────


class RoutingPreconditionError(AssessmentError):
    """
    The router cannot enter the next block until a model-backed step runs.

    Raised by the router and handled by the engine facade, which runs
    the missing step and routes again. This is control flow, not failure.
    """

    def __init__(
        self,
        message: str,
        *,
        session_id: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, details=details)
        self.session_id = session_id


class ExpertiseRequired(RoutingPreconditionError):
    """Deep-dive cannot start before the expertise area is detected."""


class RiskAreasRequired(RoutingPreconditionError):
    """Risk-scan cannot start before the risk areas are selected."""


# ── Model Call Errors ─────────────────────────────────────────────


class ModelCallError(AssessmentError):
    """
    Base class for failures of a single language-model call.

    These are returned inside a ModelResult by the orchestration layer
    rather than raised to callers.
    """

    def __init__(
        self,
        message: str,
        *,
        task: Optional[str] = None,
        attempt: int = 1,
        details: Optional[dict] = None,
    ):
        super().__init__(message, details=details)
        self.task = task
        self.attempt = attempt


class ModelTimeout(ModelCallError):
    """The provider did not answer within the configured timeout."""

    def __init__(
        self,
        message: str,
        *,
        timeout_seconds: float = 0.0,
        task: Optional[str] = None,
        attempt: int = 1,
        details: Optional[dict] = None,
    ):
        super().__init__(message, task=task, attempt=attempt, details=details)
        self.timeout_seconds = timeout_seconds


class ModelSchemaViolation(ModelCallError):
    """The reply was not JSON, or did not match the expected schema."""

    def __init__(
        self,
        message: str,
        *,
        errors: Optional[list[Any]] = None,
        raw_text: str = "",
        task: Optional[str] = None,
        attempt: int = 1,
        details: Optional[dict] = None,
    ):
        super().__init__(message, task=task, attempt=attempt, details=details)
        self.errors = errors or []
        self.raw_text = raw_text


class ModelProviderError(ModelCallError):
    """The provider SDK raised (network error, rate limit, bad key)."""


# ── Budget ────────────────────────────────────────────────────────


class BudgetExceeded(AssessmentError):
    """
    The session has spent its model budget.

    Recoverable: diagnostic generation is skipped and the session is
    completed with a low-confidence flag.
    """

    def __init__(
        self,
        message: str,
        *,
        session_id: Optional[str] = None,
        spent_usd: float = 0.0,
        limit_usd: float = 0.0,
        details: Optional[dict] = None,
    ):
        super().__init__(message, details=details)
        self.session_id = session_id
        self.spent_usd = spent_usd
        self.limit_usd = limit_usd
