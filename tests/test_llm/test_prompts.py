"""
Tests for the versioned prompt library.

Covers template discovery, system/user splitting, strict variables,
the bullets filter and missing-template errors.
"""

import pytest
from jinja2 import UndefinedError

from assessment.exceptions import ConfigurationError
from assessment.llm.prompts import PromptLibrary, RenderedPrompt


@pytest.fixture
def prompts():
    return PromptLibrary()


RISK_CONTEXT = {
    "detected_area": "technology",
    "count": 3,
    "company": {"company.name": "Acme"},
    "candidates": [
        {"area": "product", "score": 10.0},
        {"area": "operations", "score": 13.0},
    ],
    "answers": [{"question": "Stack?", "answer": "Python"}],
}


class TestPromptLibrary:

    def test_lists_shipped_templates(self, prompts):
        assert prompts.list_templates() == [
            "corrective_retry.v1.j2",
            "diagnostic_generation.v1.j2",
            "expertise_detection.v1.j2",
            "risk_selection.v1.j2",
        ]

    def test_template_name(self):
        assert PromptLibrary.template_name("risk_selection", 2) == "risk_selection.v2.j2"

    def test_render_splits_sections(self, prompts):
        rendered = prompts.render("risk_selection", RISK_CONTEXT)
        assert isinstance(rendered, RenderedPrompt)
        assert rendered.version == 1
        assert "Never pick technology." in rendered.system
        assert "- product (coupling 10.0)" in rendered.user
        assert "- company.name: Acme" in rendered.user
        assert "---" not in rendered.user

    def test_strict_undefined(self, prompts):
        with pytest.raises(UndefinedError):
            prompts.render("risk_selection", {"detected_area": "sales"})

    def test_missing_template(self, prompts):
        with pytest.raises(ConfigurationError) as exc_info:
            prompts.render("risk_selection", RISK_CONTEXT, version=99)
        assert exc_info.value.details == {"prompt": "risk_selection", "version": 99}

    def test_bullets_filter(self, prompts):
        rendered = prompts.render("corrective_retry", {
            "system": "sys",
            "user": "usr",
            "raw_reply": "oops",
            "errors": ["area: invalid", "confidence: missing"],
        })
        assert rendered.system.startswith("sys")
        assert "- area: invalid\n- confidence: missing" in rendered.user
        assert "oops" in rendered.user

    def test_default_version(self):
        prompts = PromptLibrary(default_version=2)
        with pytest.raises(ConfigurationError):
            prompts.render("risk_selection", RISK_CONTEXT)
