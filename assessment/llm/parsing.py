"""
Pull a JSON object out of a model reply.

Models wrap JSON in prose or markdown fences more often than not. Three
attempts, in order:
1. the whole reply parses as JSON
2. the first ```json fenced block parses
3. the span from the first '{' to the last '}' parses
"""

from __future__ import annotations

import json
import re
from typing import Any, Optional

_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*(.*?)```", re.DOTALL)


def _loads_object(candidate: str) -> Optional[dict[str, Any]]:
    try:
        value = json.loads(candidate)
    except (json.JSONDecodeError, TypeError):
        return None
    return value if isinstance(value, dict) else None


def extract_json(text: str) -> Optional[dict[str, Any]]:
    """The first JSON object found in `text`, or None."""
    if not text or not text.strip():
        return None

    direct = _loads_object(text.strip())
    if direct is not None:
        return direct

    for match in _FENCE_RE.finditer(text):
        fenced = _loads_object(match.group(1).strip())
        if fenced is not None:
            return fenced

    start, end = text.find("{"), text.rfind("}")
    if start != -1 and end > start:
        return _loads_object(text[start:end + 1])
    return None
