"""
Settings loader.

Finds config/engine.yaml (or the file named by ASSESSMENT_CONFIG),
validates it against EngineSettings, and caches the result. Without a
file the defaults from the schema apply.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import ValidationError

from assessment.config.schema import EngineSettings
from assessment.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "ASSESSMENT_CONFIG"
DEFAULT_CONFIG_NAME = Path("config") / "engine.yaml"

# Module-level cache: resolved path (or "<defaults>") -> EngineSettings
_loaded_settings: dict[str, EngineSettings] = {}


def find_config_file() -> Optional[Path]:
    """Locate config/engine.yaml by walking up from this file."""
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path)

    current = Path(__file__).resolve()
    for parent in current.parents:
        candidate = parent / DEFAULT_CONFIG_NAME
        if candidate.is_file():
            return candidate
    return None


def load_settings(config_path: Optional[str | Path] = None) -> EngineSettings:
    """
    Load and validate engine settings.

    Args:
        config_path: Explicit path to a YAML file. If not provided, uses
                     ASSESSMENT_CONFIG or the nearest config/engine.yaml.

    Returns:
        Validated EngineSettings (schema defaults when no file is found).

    Raises:
        ConfigurationError: If the file is missing, unreadable or invalid.
    """
    explicit = config_path is not None
    path = Path(config_path) if explicit else find_config_file()

    cache_key = str(path.resolve()) if path else "<defaults>"
    if cache_key in _loaded_settings:
        return _loaded_settings[cache_key]

    if path is None:
        logger.info("settings_defaults_used")
        settings = EngineSettings()
        _loaded_settings[cache_key] = settings
        return settings

    if not path.exists():
        raise ConfigurationError(
            f"Config not found: {path}",
            config_path=str(path),
        )

    try:
        with open(path, "r") as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(
            f"Config is not valid YAML: {path}",
            config_path=str(path),
            details={"error": str(e)},
        ) from e

    raw = raw or {}
    if not isinstance(raw, dict):
        raise ConfigurationError(
            f"Config root must be a mapping: {path}",
            config_path=str(path),
        )
    raw["source_path"] = str(path)

    try:
        settings = EngineSettings(**raw)
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid settings in {path}:\n{e}",
            config_path=str(path),
            details={"errors": e.errors(include_url=False)},
        ) from e

    logger.info("settings_loaded", extra={"config_path": str(path)})
    _loaded_settings[cache_key] = settings
    return settings


def clear_cache() -> None:
    """Clear the settings cache. Useful for testing."""
    _loaded_settings.clear()
