"""
Model Router: task-based routing over Anthropic, OpenAI and Ollama.

Each call goes to the task's primary model; if the provider raises
(network error, rate limit, missing client) it is retried once on the
task's fallback model. Provider SDK clients are injected, so tests pass
mocks and production passes `anthropic.Anthropic()` / `openai.OpenAI()`.
Synchronous SDK clients are run in a worker thread so a slow provider
never blocks the event loop; async clients are awaited directly.

Usage:
    from assessment.llm.router import ModelRouter

    router = ModelRouter(anthropic_client=anthropic.Anthropic())
    response = await router.route(
        ModelTask.EXPERTISE_DETECTION,
        system_prompt="You classify business expertise.",
        user_prompt="...",
    )
    print(response.text, response.cost)
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

import httpx

from assessment.llm.llm_config import LLMConfig, ModelProfile, ModelTask

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Response Type
# ---------------------------------------------------------------------------

@dataclass
class LLMResponse:
    """Provider-independent reply."""

    text: str
    provider: str
    model: str
    task: str = ""
    input_tokens: int = 0
    output_tokens: int = 0
    cost: float = 0.0           # USD
    latency_ms: float = 0.0
    is_fallback: bool = False
    raw_response: Any = None

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


async def _invoke(fn: Callable[..., Any], **kwargs: Any) -> Any:
    """Await async SDK methods, push sync ones to a thread."""
    if inspect.iscoroutinefunction(fn):
        return await fn(**kwargs)
    return await asyncio.to_thread(fn, **kwargs)


# ---------------------------------------------------------------------------
# Model Router
# ---------------------------------------------------------------------------

class ModelRouter:
    """
    Routes model calls by task with one provider fallback.

    Keeps process-wide usage counters; per-session spend is tracked
    separately by the orchestration layer's CostLedger.
    """

    def __init__(
        self,
        anthropic_client: Any = None,
        openai_client: Any = None,
        ollama_base_url: Optional[str] = None,
        config: Optional[LLMConfig] = None,
        http_timeout: float = 120.0,
    ):
        self._anthropic = anthropic_client
        self._openai = openai_client
        self._ollama_base_url = ollama_base_url or "http://localhost:11434"
        self._config = config or LLMConfig()
        self._http_timeout = http_timeout

        self._call_count: int = 0
        self._total_cost: float = 0.0
        self._total_input_tokens: int = 0
        self._total_output_tokens: int = 0
        self._calls_by_task: dict[str, int] = {}

    @property
    def call_count(self) -> int:
        return self._call_count

    @property
    def total_cost(self) -> float:
        return self._total_cost

    @property
    def config(self) -> LLMConfig:
        return self._config

    @property
    def has_provider(self) -> bool:
        """False when no client is configured and no Ollama route exists."""
        if self._anthropic is not None or self._openai is not None:
            return True
        return any(
            r["primary"].startswith("ollama/") for r in self._config.list_routes()
        )

    # --- Main Routing API ---

    async def route(
        self,
        task: str | ModelTask,
        system_prompt: str,
        user_prompt: str,
        *,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> LLMResponse:
        """
        Send one prompt to the task's model.

        Raises whatever the fallback provider raised if both fail; the
        caller (StructuredCaller) turns that into a ModelResult.
        """
        route = self._config.get_route(task)
        task_str = route.task.value

        try:
            response = await self._call_model(
                route.primary, system_prompt, user_prompt, temperature, max_tokens
            )
        except Exception as primary_error:
            logger.warning(
                "llm_primary_failed",
                extra={
                    "task": task_str,
                    "model": route.primary.display_name,
                    "error": str(primary_error)[:200],
                },
            )
            if route.fallback is None:
                raise
            try:
                response = await self._call_model(
                    route.fallback, system_prompt, user_prompt, temperature, max_tokens
                )
            except Exception as fallback_error:
                logger.error(
                    "llm_fallback_also_failed",
                    extra={
                        "task": task_str,
                        "primary_error": str(primary_error)[:100],
                        "fallback_error": str(fallback_error)[:100],
                    },
                )
                raise fallback_error from primary_error
            response.is_fallback = True

        response.task = task_str
        self._track_usage(response)
        logger.info(
            "llm_routed",
            extra={
                "task": task_str,
                "model": f"{response.provider}/{response.model}",
                "tokens": response.total_tokens,
                "cost_usd": round(response.cost, 5),
                "latency_ms": round(response.latency_ms),
                "fallback": response.is_fallback,
            },
        )
        return response

    # --- Provider Adapters ---

    async def _call_model(
        self,
        profile: ModelProfile,
        system_prompt: str,
        user_prompt: str,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> LLMResponse:
        temp = temperature if temperature is not None else profile.temperature
        tokens = max_tokens if max_tokens is not None else profile.max_tokens

        if profile.provider == "anthropic":
            return await self._anthropic_call(profile, system_prompt, user_prompt, temp, tokens)
        elif profile.provider == "openai":
            return await self._openai_call(profile, system_prompt, user_prompt, temp, tokens)
        elif profile.provider == "ollama":
            return await self._ollama_call(profile, system_prompt, user_prompt, temp, tokens)
        else:
            raise ValueError(f"Unsupported provider: {profile.provider}")

    async def _anthropic_call(
        self,
        profile: ModelProfile,
        system_prompt: str,
        user_prompt: str,
        temperature: float,
        max_tokens: int,
    ) -> LLMResponse:
        if self._anthropic is None:
            raise ValueError(
                "Anthropic client not configured. Pass anthropic_client to ModelRouter()."
            )

        start = time.monotonic()
        response = await _invoke(
            self._anthropic.messages.create,
            model=profile.model,
            max_tokens=max_tokens,
            temperature=temperature,
            system=system_prompt,
            messages=[{"role": "user", "content": user_prompt}],
        )
        elapsed = (time.monotonic() - start) * 1000

        input_tokens = getattr(response.usage, "input_tokens", 0)
        output_tokens = getattr(response.usage, "output_tokens", 0)
        return LLMResponse(
            text=response.content[0].text if response.content else "",
            provider="anthropic",
            model=profile.model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost=profile.estimate_cost(input_tokens, output_tokens),
            latency_ms=elapsed,
            raw_response=response,
        )

    async def _openai_call(
        self,
        profile: ModelProfile,
        system_prompt: str,
        user_prompt: str,
        temperature: float,
        max_tokens: int,
    ) -> LLMResponse:
        if self._openai is None:
            raise ValueError(
                "OpenAI client not configured. Pass openai_client to ModelRouter()."
            )

        start = time.monotonic()
        response = await _invoke(
            self._openai.chat.completions.create,
            model=profile.model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            temperature=temperature,
            max_tokens=max_tokens,
            response_format={"type": "json_object"},
        )
        elapsed = (time.monotonic() - start) * 1000

        choice = response.choices[0] if response.choices else None
        text = choice.message.content if choice and choice.message else ""
        usage = response.usage
        input_tokens = usage.prompt_tokens if usage else 0
        output_tokens = usage.completion_tokens if usage else 0
        return LLMResponse(
            text=text or "",
            provider="openai",
            model=profile.model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost=profile.estimate_cost(input_tokens, output_tokens),
            latency_ms=elapsed,
            raw_response=response,
        )

    async def _ollama_call(
        self,
        profile: ModelProfile,
        system_prompt: str,
        user_prompt: str,
        temperature: float,
        max_tokens: int,
    ) -> LLMResponse:
        start = time.monotonic()
        base_url = profile.base_url or self._ollama_base_url

        async with httpx.AsyncClient(timeout=self._http_timeout) as client:
            resp = await client.post(
                f"{base_url}/api/chat",
                json={
                    "model": profile.model,
                    "messages": [
                        {"role": "system", "content": system_prompt},
                        {"role": "user", "content": user_prompt},
                    ],
                    "stream": False,
                    "format": "json",
                    "options": {"temperature": temperature, "num_predict": max_tokens},
                },
            )
            resp.raise_for_status()
            data = resp.json()

        elapsed = (time.monotonic() - start) * 1000
        return LLMResponse(
            text=data.get("message", {}).get("content", ""),
            provider="ollama",
            model=profile.model,
            input_tokens=data.get("prompt_eval_count", 0),
            output_tokens=data.get("eval_count", 0),
            cost=0.0,
            latency_ms=elapsed,
            raw_response=data,
        )

    # --- Usage Tracking ---

    def _track_usage(self, response: LLMResponse) -> None:
        self._call_count += 1
        self._total_cost += response.cost
        self._total_input_tokens += response.input_tokens
        self._total_output_tokens += response.output_tokens
        self._calls_by_task[response.task] = self._calls_by_task.get(response.task, 0) + 1

    def get_usage_stats(self) -> dict[str, Any]:
        return {
            "total_calls": self._call_count,
            "total_cost_usd": round(self._total_cost, 4),
            "total_input_tokens": self._total_input_tokens,
            "total_output_tokens": self._total_output_tokens,
            "total_tokens": self._total_input_tokens + self._total_output_tokens,
            "calls_by_task": dict(self._calls_by_task),
        }

    def reset_usage(self) -> None:
        self._call_count = 0
        self._total_cost = 0.0
        self._total_input_tokens = 0
        self._total_output_tokens = 0
        self._calls_by_task.clear()
