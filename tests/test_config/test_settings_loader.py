"""
Unit tests for engine settings (schema + YAML loader).

Validates defaults, per-block validation, file discovery and caching.
"""

import pytest

from assessment.config import EngineSettings, clear_cache, load_settings
from assessment.config.loader import CONFIG_ENV_VAR, find_config_file
from assessment.config.schema import InterviewSettings, ScoringSettings
from assessment.exceptions import ConfigurationError
from assessment.interview.models import Block


@pytest.fixture(autouse=True)
def _fresh_cache():
    clear_cache()
    yield
    clear_cache()


class TestInterviewSettings:
    """Defaults and validation for block gating."""

    def test_defaults(self):
        s = InterviewSettings()
        assert s.min_questions_for(Block.CONTEXT) == 7
        assert s.min_questions_for(Block.EXPERTISE) == 4
        assert s.min_questions_for(Block.DEEP_DIVE) == 5
        assert s.min_questions_for(Block.RISK_SCAN) == 3
        assert s.threshold_for(Block.RISK_SCAN) == 1.0
        assert s.terminal_threshold == 70
        assert s.max_follow_ups == 3

    def test_unknown_block_rejected(self):
        with pytest.raises(Exception):
            InterviewSettings(min_questions={"strategy": 2})

    def test_threshold_out_of_range(self):
        with pytest.raises(Exception):
            InterviewSettings(block_thresholds={"context": 1.5})

    def test_negative_min_questions(self):
        with pytest.raises(Exception):
            InterviewSettings(min_questions={"context": -1})

    def test_partial_table_missing_block_is_zero(self):
        s = InterviewSettings(min_questions={"context": 2})
        assert s.min_questions_for(Block.EXPERTISE) == 0


class TestScoringSettings:

    def test_weights_default(self):
        s = ScoringSettings()
        assert s.weight_for(Block.CONTEXT) == 0.4
        assert sum(s.block_weights.values()) == pytest.approx(1.0)

    def test_all_zero_weights_rejected(self):
        with pytest.raises(Exception):
            ScoringSettings(block_weights={"context": 0, "expertise": 0})

    def test_tier_order_enforced(self):
        with pytest.raises(Exception):
            ScoringSettings(high_confidence_score=40, medium_confidence_score=60)


class TestLoadSettings:

    def test_loads_yaml(self, tmp_path):
        path = tmp_path / "engine.yaml"
        path.write_text(
            "environment: test\n"
            "interview:\n"
            "  terminal_threshold: 55\n"
            "  max_follow_ups: 1\n"
        )
        settings = load_settings(path)
        assert settings.environment == "test"
        assert settings.interview.terminal_threshold == 55
        assert settings.interview.max_follow_ups == 1
        assert settings.interview.min_questions_for(Block.CONTEXT) == 7
        assert settings.source_path == str(path)

    def test_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / "engine.yaml"
        path.write_text("")
        settings = load_settings(path)
        assert settings.orchestration.session_budget_usd == 0.5

    def test_cached(self, tmp_path):
        path = tmp_path / "engine.yaml"
        path.write_text("log_level: DEBUG\n")
        assert load_settings(path) is load_settings(path)

    def test_clear_cache_reloads(self, tmp_path):
        path = tmp_path / "engine.yaml"
        path.write_text("log_level: DEBUG\n")
        first = load_settings(path)
        path.write_text("log_level: WARNING\n")
        clear_cache()
        assert load_settings(path) is not first
        assert load_settings(path).log_level == "WARNING"

    def test_missing_explicit_file(self, tmp_path):
        with pytest.raises(ConfigurationError) as exc_info:
            load_settings(tmp_path / "nope.yaml")
        assert exc_info.value.config_path.endswith("nope.yaml")

    def test_bad_yaml(self, tmp_path):
        path = tmp_path / "engine.yaml"
        path.write_text("interview: [unclosed\n")
        with pytest.raises(ConfigurationError) as exc_info:
            load_settings(path)
        assert "error" in exc_info.value.details

    def test_non_mapping_root(self, tmp_path):
        path = tmp_path / "engine.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigurationError):
            load_settings(path)

    def test_invalid_value_reports_errors(self, tmp_path):
        path = tmp_path / "engine.yaml"
        path.write_text("interview:\n  terminal_threshold: 150\n")
        with pytest.raises(ConfigurationError) as exc_info:
            load_settings(path)
        assert exc_info.value.details["errors"]

    def test_env_var_points_at_file(self, tmp_path, monkeypatch):
        path = tmp_path / "custom.yaml"
        path.write_text("environment: staging\n")
        monkeypatch.setenv(CONFIG_ENV_VAR, str(path))
        assert find_config_file() == path
        assert load_settings().environment == "staging"

    def test_repo_config_matches_defaults(self, monkeypatch):
        monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
        settings = load_settings()
        assert isinstance(settings, EngineSettings)
        defaults = EngineSettings()
        assert settings.interview == defaults.interview
        assert settings.scoring == defaults.scoring
