"""
Structured model calls: prompt in, validated pydantic object out.

StructuredCaller.complete():
1. renders the prompt template,
2. calls the router under asyncio.wait_for,
3. extracts JSON from the reply and validates it against the schema,
4. on failure retries once (with a corrective prompt when there was a
   reply to correct),
5. returns a ModelResult. It never raises.

Every attempt, successful or not, is written to the CostLedger.

Usage:
    caller = StructuredCaller(router, PromptLibrary(), CostLedger())
    result = await caller.complete(
        ModelTask.EXPERTISE_DETECTION, "expertise_detection", context,
        ExpertiseResponse, session_id=session.id,
    )
    if result.ok:
        result.value.area
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel, ValidationError

from assessment.exceptions import (
    ConfigurationError,
    ModelCallError,
    ModelProviderError,
    ModelSchemaViolation,
    ModelTimeout,
)
from assessment.llm.llm_config import ModelTask
from assessment.llm.parsing import extract_json
from assessment.llm.prompts import PromptLibrary, RenderedPrompt
from assessment.llm.router import LLMResponse, ModelRouter
from assessment.orchestration.ledger import CostLedger

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

CORRECTIVE_PROMPT = "corrective_retry"
MAX_ATTEMPTS = 2


@dataclass
class ModelResult(Generic[T]):
    """Outcome of a structured call: a value or the last error."""
    ok: bool
    value: Optional[T] = None
    error: Optional[ModelCallError] = None
    attempts: int = 0
    response: Optional[LLMResponse] = None

    @property
    def model(self) -> Optional[str]:
        if self.response is None:
            return None
        return f"{self.response.provider}/{self.response.model}"


def _format_errors(errors: list[Any]) -> list[str]:
    lines = []
    for err in errors:
        if isinstance(err, dict):
            loc = ".".join(str(p) for p in err.get("loc", ())) or "reply"
            lines.append(f"{loc}: {err.get('msg', 'invalid')}")
        else:
            lines.append(str(err))
    return lines


class StructuredCaller:
    """Runs one task's prompt against the router with a single retry."""

    def __init__(
        self,
        router: Optional[ModelRouter],
        prompts: Optional[PromptLibrary] = None,
        ledger: Optional[CostLedger] = None,
        timeout_seconds: float = 60.0,
        prompt_version: int = 1,
    ):
        self._router = router
        self._prompts = prompts or PromptLibrary(default_version=prompt_version)
        self._ledger = ledger or CostLedger()
        self._timeout = timeout_seconds
        self._prompt_version = prompt_version

    @property
    def ledger(self) -> CostLedger:
        return self._ledger

    @property
    def has_model(self) -> bool:
        return self._router is not None

    def _validate(
        self,
        text: str,
        schema: type[T],
        task: str,
        attempt: int,
    ) -> tuple[Optional[T], Optional[ModelSchemaViolation]]:
        data = extract_json(text)
        if data is None:
            return None, ModelSchemaViolation(
                "Reply did not contain a JSON object",
                errors=["reply: expected a JSON object"],
                raw_text=text,
                task=task,
                attempt=attempt,
            )
        try:
            return schema.model_validate(data), None
        except ValidationError as e:
            return None, ModelSchemaViolation(
                f"Reply did not match {schema.__name__}",
                errors=e.errors(include_url=False),
                raw_text=text,
                task=task,
                attempt=attempt,
            )

    def _corrective(
        self, prompt: RenderedPrompt, error: ModelSchemaViolation
    ) -> RenderedPrompt:
        return self._prompts.render(
            CORRECTIVE_PROMPT,
            {
                "system": prompt.system,
                "user": prompt.user,
                "raw_reply": error.raw_text[:4000],
                "errors": _format_errors(error.errors),
            },
            version=self._prompt_version,
        )

    async def complete(
        self,
        task: ModelTask,
        prompt_name: str,
        context: dict[str, Any],
        schema: type[T],
        *,
        session_id: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
    ) -> ModelResult[T]:
        task_name = task.value
        if self._router is None:
            return ModelResult(
                ok=False,
                error=ModelProviderError("No model router configured", task=task_name),
            )

        try:
            original = self._prompts.render(prompt_name, context, version=self._prompt_version)
        except ConfigurationError as e:
            logger.error("prompt_render_failed", extra={"task": task_name, "reason": str(e)})
            return ModelResult(
                ok=False, error=ModelProviderError(str(e), task=task_name, details=e.details)
            )

        timeout = timeout_seconds or self._timeout
        prompt = original
        last_error: Optional[ModelCallError] = None
        response: Optional[LLMResponse] = None

        for attempt in range(1, MAX_ATTEMPTS + 1):
            response = None
            try:
                response = await asyncio.wait_for(
                    self._router.route(task, prompt.system, prompt.user),
                    timeout=timeout,
                )
            except asyncio.TimeoutError:
                last_error = ModelTimeout(
                    f"{task_name} timed out after {timeout:.0f}s",
                    timeout_seconds=timeout,
                    task=task_name,
                    attempt=attempt,
                )
            except Exception as e:
                last_error = ModelProviderError(
                    f"{task_name} provider error: {e}",
                    task=task_name,
                    attempt=attempt,
                )
            else:
                value, violation = self._validate(response.text, schema, task_name, attempt)
                if value is not None:
                    self._ledger.record(session_id, response, task=task_name, ok=True)
                    logger.info(
                        "structured_call_succeeded",
                        extra={
                            "task": task_name,
                            "attempt": attempt,
                            "model": f"{response.provider}/{response.model}",
                            "cost_usd": round(response.cost, 5),
                        },
                    )
                    return ModelResult(ok=True, value=value, attempts=attempt, response=response)
                last_error = violation

            self._ledger.record(session_id, response, task=task_name, ok=False)
            logger.warning(
                "structured_call_failed",
                extra={
                    "task": task_name,
                    "attempt": attempt,
                    "error_type": type(last_error).__name__,
                    "reason": str(last_error)[:200],
                },
            )

            if attempt < MAX_ATTEMPTS and isinstance(last_error, ModelSchemaViolation):
                try:
                    prompt = self._corrective(original, last_error)
                except ConfigurationError:
                    prompt = original

        return ModelResult(ok=False, error=last_error, attempts=MAX_ATTEMPTS, response=response)
