"""
Model routing table.

Each orchestration task has a primary model and a fallback on another
provider. The cheap classification steps (expertise, risk selection) go
to Haiku; the diagnostic goes to Sonnet. Model names can be overridden
from settings (`orchestration.models`), prices stay with the profile.

Usage:
    from assessment.llm.llm_config import LLMConfig, ModelTask

    config = LLMConfig.from_settings(settings.orchestration.models)
    config.get_model_for_task(ModelTask.DIAGNOSTIC_GENERATION)
    # → ModelProfile(provider="anthropic", model="claude-sonnet-4-20250514", ...)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Optional

from assessment.config.schema import ModelSettings

logger = logging.getLogger(__name__)


class ModelTask(str, Enum):
    """The three places the engine talks to a model."""

    EXPERTISE_DETECTION = "expertise_detection"
    RISK_SELECTION = "risk_selection"
    DIAGNOSTIC_GENERATION = "diagnostic_generation"


# ---------------------------------------------------------------------------
# Profiles
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ModelProfile:
    """One concrete model and its price."""

    provider: str           # "anthropic", "openai", "ollama"
    model: str
    temperature: float = 0.3
    max_tokens: int = 2048
    base_url: Optional[str] = None      # ollama only
    cost_per_1k_input: float = 0.0      # USD
    cost_per_1k_output: float = 0.0     # USD

    @property
    def display_name(self) -> str:
        return f"{self.provider}/{self.model}"

    def estimate_cost(self, input_tokens: int, output_tokens: int) -> float:
        return (
            input_tokens / 1000 * self.cost_per_1k_input
            + output_tokens / 1000 * self.cost_per_1k_output
        )


@dataclass(frozen=True)
class RouteConfig:
    """Task → primary model, plus a fallback used when the primary raises."""

    task: ModelTask
    primary: ModelProfile
    fallback: Optional[ModelProfile] = None
    description: str = ""


CLAUDE_SONNET = ModelProfile(
    provider="anthropic",
    model="claude-sonnet-4-20250514",
    temperature=0.4,
    max_tokens=4096,
    cost_per_1k_input=0.003,
    cost_per_1k_output=0.015,
)

CLAUDE_HAIKU = ModelProfile(
    provider="anthropic",
    model="claude-3-5-haiku-20241022",
    temperature=0.2,
    max_tokens=1024,
    cost_per_1k_input=0.001,
    cost_per_1k_output=0.005,
)

GPT_4O = ModelProfile(
    provider="openai",
    model="gpt-4o",
    temperature=0.4,
    max_tokens=4096,
    cost_per_1k_input=0.005,
    cost_per_1k_output=0.015,
)

GPT_4O_MINI = ModelProfile(
    provider="openai",
    model="gpt-4o-mini",
    temperature=0.2,
    max_tokens=1024,
    cost_per_1k_input=0.00015,
    cost_per_1k_output=0.0006,
)

OLLAMA_LLAMA = ModelProfile(
    provider="ollama",
    model="llama3.1:8b",
    base_url="http://localhost:11434",
)


DEFAULT_ROUTING: dict[ModelTask, RouteConfig] = {
    ModelTask.EXPERTISE_DETECTION: RouteConfig(
        task=ModelTask.EXPERTISE_DETECTION,
        primary=CLAUDE_HAIKU,
        fallback=GPT_4O_MINI,
        description="Classify the respondent's strongest business area",
    ),
    ModelTask.RISK_SELECTION: RouteConfig(
        task=ModelTask.RISK_SELECTION,
        primary=CLAUDE_HAIKU,
        fallback=GPT_4O_MINI,
        description="Pick the areas to scan for hidden risk",
    ),
    ModelTask.DIAGNOSTIC_GENERATION: RouteConfig(
        task=ModelTask.DIAGNOSTIC_GENERATION,
        primary=CLAUDE_SONNET,
        fallback=GPT_4O,
        description="Write the full business diagnostic",
    ),
}


# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

class LLMConfig:
    """Routing table with per-task overrides."""

    def __init__(self, routing: Optional[dict[ModelTask, RouteConfig]] = None):
        self._routing = dict(routing or DEFAULT_ROUTING)

    @classmethod
    def from_settings(cls, models: ModelSettings) -> "LLMConfig":
        """Apply configured primary model names on top of the defaults."""
        config = cls()
        for task in ModelTask:
            name = getattr(models, task.value, None)
            route = config._routing[task]
            if name and name != route.primary.model:
                config._routing[task] = replace(
                    route, primary=replace(route.primary, model=name)
                )
                logger.debug(
                    "model_override",
                    extra={"task": task.value, "model": name},
                )
        return config

    def get_route(self, task: str | ModelTask) -> RouteConfig:
        return self._routing[ModelTask(task)]

    def get_model_for_task(self, task: str | ModelTask) -> ModelProfile:
        return self.get_route(task).primary

    def get_fallback_for_task(self, task: str | ModelTask) -> Optional[ModelProfile]:
        return self.get_route(task).fallback

    def override_route(
        self,
        task: ModelTask,
        primary: ModelProfile,
        fallback: Optional[ModelProfile] = None,
    ) -> None:
        self._routing[task] = RouteConfig(task=task, primary=primary, fallback=fallback)

    def set_all_to_provider(self, provider: str, model: str, **kwargs: Any) -> None:
        """
        Send every task to one model, e.g. a local Ollama for development:
            config.set_all_to_provider("ollama", "llama3.1:8b",
                                       base_url="http://localhost:11434")
        """
        profile = ModelProfile(provider=provider, model=model, **kwargs)
        for task in ModelTask:
            self._routing[task] = RouteConfig(task=task, primary=profile)

    def list_routes(self) -> list[dict[str, Any]]:
        return [
            {
                "task": route.task.value,
                "primary": route.primary.display_name,
                "fallback": route.fallback.display_name if route.fallback else None,
                "description": route.description,
            }
            for route in self._routing.values()
        ]
