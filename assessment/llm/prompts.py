"""
Prompt library for the model-backed interview steps.

Prompts are Jinja2 templates shipped inside the package as
`templates/<name>.v<version>.j2`. A template holds the system prompt,
a line containing only `---`, then the user prompt. Versions let a new
prompt be rolled out from settings (`orchestration.prompt_version`)
while the old one stays available.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from jinja2 import Environment, PackageLoader, StrictUndefined, TemplateNotFound

from assessment.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

SECTION_MARKER = "---"


@dataclass(frozen=True)
class RenderedPrompt:
    name: str
    version: int
    system: str
    user: str


def _to_bullets(items: Any) -> str:
    return "\n".join(f"- {item}" for item in items or [])


class PromptLibrary:
    """Renders versioned prompt templates into system/user pairs."""

    def __init__(self, default_version: int = 1):
        self.default_version = default_version
        self.env = Environment(
            loader=PackageLoader("assessment.llm", "templates"),
            autoescape=False,  # plain-text prompts
            trim_blocks=True,
            lstrip_blocks=True,
            undefined=StrictUndefined,
            keep_trailing_newline=False,
        )
        self.env.filters["bullets"] = _to_bullets

    @staticmethod
    def template_name(name: str, version: int) -> str:
        return f"{name}.v{version}.j2"

    def render(
        self,
        name: str,
        context: dict[str, Any],
        version: int | None = None,
    ) -> RenderedPrompt:
        """
        Render prompt `name` with `context`.

        Raises:
            ConfigurationError: The template does not exist or lacks the
                `---` separator.
        """
        version = version or self.default_version
        filename = self.template_name(name, version)
        try:
            template = self.env.get_template(filename)
        except TemplateNotFound:
            raise ConfigurationError(
                f"Prompt template not found: {filename}",
                details={"prompt": name, "version": version},
            ) from None

        rendered = template.render(**context)
        system, sep, user = rendered.partition(f"\n{SECTION_MARKER}\n")
        if not sep:
            raise ConfigurationError(
                f"Prompt template {filename} has no '{SECTION_MARKER}' separator",
                details={"prompt": name, "version": version},
            )
        return RenderedPrompt(
            name=name, version=version, system=system.strip(), user=user.strip()
        )

    def list_templates(self) -> list[str]:
        return sorted(t for t in self.env.list_templates() if t.endswith(".j2"))
