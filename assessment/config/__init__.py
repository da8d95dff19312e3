"""Engine settings: pydantic schema and YAML loader."""

from assessment.config.loader import clear_cache, load_settings
from assessment.config.schema import EngineSettings

__all__ = ["EngineSettings", "clear_cache", "load_settings"]
