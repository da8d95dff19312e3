"""
Interview API Server.

FastAPI application exposing the InterviewEngine over REST. Every
response uses the APIResponse envelope; `meta.contract_version` carries
the completion-metrics contract version so clients can detect changes.

Usage:
    from assessment.api.server import create_api_app

    app = create_api_app(engine)
    uvicorn.run(app, host="0.0.0.0", port=8000)

Endpoints:
    GET  /api/v1/health                    — Health check
    POST /api/v1/sessions                  — Start an interview
    GET  /api/v1/sessions/{id}/next        — Next question (or finish signal)
    POST /api/v1/sessions/{id}/answers     — Submit an answer
    POST /api/v1/sessions/{id}/complete    — Generate the diagnostic
    GET  /api/v1/sessions/{id}/stats       — Progress and usage
    GET  /api/v1/diagnostics/{id}          — Fetch a stored diagnostic
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from assessment import __version__
from assessment.engine import InterviewEngine
from assessment.exceptions import (
    AssessmentError,
    DiagnosticNotFound,
    InvalidTransition,
    QuestionNotFound,
    SessionNotFound,
)
from assessment.interview.models import Persona
from assessment.interview.scoring import COMPLETION_METRICS_VERSION

logger = logging.getLogger(__name__)

ERROR_STATUS: dict[type[AssessmentError], int] = {
    SessionNotFound: 404,
    DiagnosticNotFound: 404,
    QuestionNotFound: 422,
    InvalidTransition: 409,
}


# ── Request/Response Models ──────────────────────────────────


class SessionCreateRequest(BaseModel):
    """Request body for starting an interview."""
    initial_context: dict[str, Any] = Field(default_factory=dict)
    persona: Optional[Persona] = None


class AnswerRequest(BaseModel):
    question_id: str = Field(..., min_length=1)
    text: str = Field(..., max_length=10_000)


class CompleteRequest(BaseModel):
    override: bool = False


class APIResponse(BaseModel):
    """Standard API response envelope."""
    ok: bool = True
    data: Any = None
    error: Optional[dict[str, Any]] = None
    meta: dict[str, Any] = Field(default_factory=lambda: {
        "contract_version": COMPLETION_METRICS_VERSION,
    })


def get_health_response() -> dict[str, Any]:
    return {
        "status": "healthy",
        "service": "assessment-engine",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": __version__,
    }


def status_for_error(exc: AssessmentError) -> int:
    for error_type, status in ERROR_STATUS.items():
        if isinstance(exc, error_type):
            return status
    return 400


# ── App Factory ──────────────────────────────────────────────


def create_api_app(
    engine: InterviewEngine,
    cors_origins: Optional[list[str]] = None,
) -> FastAPI:
    """
    Create the FastAPI application with all interview routes.

    Args:
        engine: The InterviewEngine that owns sessions and diagnostics.
        cors_origins: Allowed CORS origins (default: from engine settings).

    Returns:
        Configured FastAPI app.
    """
    app = FastAPI(
        title="Assessment Engine API",
        description="Adaptive business interview and diagnostic synthesis.",
        version=__version__,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins or engine.settings.api.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── Health ───────────────────────────────────────────

    @app.get("/api/v1/health", tags=["Health"])
    async def health_check():
        return APIResponse(
            data=get_health_response(),
            meta={
                "contract_version": COMPLETION_METRICS_VERSION,
                "active_sessions": len(engine.store.list_active_sessions()),
            },
        )

    # ── Sessions ─────────────────────────────────────────

    @app.post("/api/v1/sessions", tags=["Sessions"], status_code=201)
    async def create_session(body: Optional[SessionCreateRequest] = None):
        """Start a new interview."""
        body = body or SessionCreateRequest()
        session_id = engine.create_session(body.initial_context, body.persona)
        return APIResponse(data={"session_id": session_id})

    @app.get("/api/v1/sessions/{session_id}/next", tags=["Sessions"])
    async def next_question(session_id: str):
        """Next question, or should_finish once the interview is over."""
        result = await engine.next_question(session_id)
        return APIResponse(data=result.model_dump(mode="json"))

    @app.post("/api/v1/sessions/{session_id}/answers", tags=["Sessions"])
    async def submit_answer(session_id: str, body: AnswerRequest):
        result = await engine.submit_answer(session_id, body.question_id, body.text)
        return APIResponse(data=result.model_dump(mode="json"))

    @app.post("/api/v1/sessions/{session_id}/complete", tags=["Sessions"])
    async def complete_session(session_id: str, body: Optional[CompleteRequest] = None):
        """
        Generate the diagnostic. Returns 409 while the interview is unfinished.
        """
        body = body or CompleteRequest()
        diagnostic = await engine.complete(session_id, override=body.override)
        return APIResponse(
            data=diagnostic.model_dump(mode="json"),
            meta={
                "contract_version": COMPLETION_METRICS_VERSION,
                "diagnostic_id": diagnostic.id,
            },
        )

    @app.get("/api/v1/sessions/{session_id}/stats", tags=["Sessions"])
    async def session_stats(session_id: str):
        return APIResponse(data=engine.get_session_stats(session_id))

    # ── Diagnostics ──────────────────────────────────────

    @app.get("/api/v1/diagnostics/{diagnostic_id}", tags=["Diagnostics"])
    async def get_diagnostic(diagnostic_id: str):
        diagnostic = engine.get_diagnostic(diagnostic_id)
        return APIResponse(data=diagnostic.model_dump(mode="json"))

    # ── Error Handlers ───────────────────────────────────

    @app.exception_handler(AssessmentError)
    async def assessment_error_handler(request: Request, exc: AssessmentError):
        """Map domain errors to HTTP status codes."""
        status = status_for_error(exc)
        logger.info(
            "api_request_rejected",
            extra={
                "path": request.url.path,
                "status": status,
                "error_type": type(exc).__name__,
            },
        )
        return JSONResponse(
            status_code=status,
            content=APIResponse(
                ok=False,
                error={
                    "type": type(exc).__name__,
                    "message": str(exc),
                    "details": exc.details,
                },
            ).model_dump(mode="json"),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Catch-all error handler."""
        logger.error(
            "api_unhandled_error",
            extra={"path": request.url.path, "error": str(exc)},
            exc_info=True,
        )
        return JSONResponse(
            status_code=500,
            content=APIResponse(
                ok=False,
                error={"type": "InternalError", "message": "Internal server error"},
            ).model_dump(mode="json"),
        )

    return app
