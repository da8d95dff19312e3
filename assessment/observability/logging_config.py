"""
Structured logging for the assessment engine.

Plain stdlib logging with two formatters:
- production: one JSON object per line on stdout
- development/staging/test: colored text on stderr

Every record emitted while a session is being handled carries its
session_id, so an interview can be followed across the router, the store
and the model calls.

Usage:
    from assessment.observability.logging_config import (
        configure_logging, session_context,
    )

    configure_logging()  # reads ASSESSMENT_ENV

    with session_context(session_id):
        logger.info("answer_recorded", extra={"question_id": "ctx-001"})
"""

from __future__ import annotations

import json
import logging
import os
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Iterator, Optional

# ─── Session Context ──────────────────────────────────────────────────

_session_id: ContextVar[Optional[str]] = ContextVar("assessment_session_id", default=None)


def set_session_id(session_id: str) -> None:
    """Bind a session id to the current task/thread context."""
    _session_id.set(session_id)


def get_session_id() -> Optional[str]:
    """The session id bound to this context, or None."""
    return _session_id.get()


def clear_session_id() -> None:
    _session_id.set(None)


@contextmanager
def session_context(session_id: str) -> Iterator[None]:
    """Bind session_id for the duration of a block, then restore."""
    token = _session_id.set(session_id)
    try:
        yield
    finally:
        _session_id.reset(token)


# ─── Context Filter ───────────────────────────────────────────────────


class ContextFilter(logging.Filter):
    """Stamps session_id onto records when one is bound."""

    def filter(self, record: logging.LogRecord) -> bool:
        session_id = get_session_id()
        if session_id and not hasattr(record, "session_id"):
            record.session_id = session_id  # type: ignore[attr-defined]
        return True


# ─── JSON Formatter (Production) ──────────────────────────────────────


_STANDARD_FIELDS = frozenset({
    "name", "msg", "args", "levelname", "levelno", "pathname",
    "filename", "module", "exc_info", "exc_text", "stack_info",
    "lineno", "funcName", "created", "msecs", "relativeCreated",
    "thread", "threadName", "processName", "process", "message",
    "taskName",
})


class JSONFormatter(logging.Formatter):
    """
    Single-line JSON records.

    Output format:
        {"timestamp": "...", "level": "INFO",
         "logger": "assessment.interview.router",
         "message": "block_advanced", "session_id": "...", "to_block": "expertise"}
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key, value in record.__dict__.items():
            if key in _STANDARD_FIELDS or key.startswith("_"):
                continue
            try:
                json.dumps(value)
                entry[key] = value
            except (TypeError, ValueError):
                entry[key] = str(value)

        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


# ─── Dev Formatter (Local Development) ────────────────────────────────


class DevFormatter(logging.Formatter):
    """
    Human-readable colored output.

    Format: [HH:MM:SS] LEVEL logger: message [key=value key=value]
    """

    COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[41m",
    }
    RESET = "\033[0m"

    _EXTRA_KEYS = (
        "session_id", "question_id", "block", "from_block", "to_block",
        "task", "model", "cost_usd", "latency_ms", "source", "reason",
    )

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelno, self.RESET)
        timestamp = self.formatTime(record, "%H:%M:%S")

        extras = []
        for key in self._EXTRA_KEYS:
            value = getattr(record, key, None)
            if value is not None:
                extras.append(f"{key}={value}")
        extra_str = f" [{' '.join(extras)}]" if extras else ""

        formatted = (
            f"{self.RESET}[{timestamp}] "
            f"{color}{record.levelname:<8}{self.RESET} "
            f"{record.name}: {record.getMessage()}{extra_str}"
        )

        if record.exc_info and record.exc_info[1]:
            formatted += f"\n{self.formatException(record.exc_info)}"

        return formatted


# ─── Configuration ────────────────────────────────────────────────────


def configure_logging(
    env: Optional[str] = None,
    level: int | str = logging.INFO,
) -> None:
    """
    Configure the root logger.

    Args:
        env: Override environment. If None, reads ASSESSMENT_ENV
             (defaults to "development").
        level: Log level, as an int or a name such as "DEBUG".

    Behavior:
        - production → JSONFormatter to stdout
        - everything else → DevFormatter to stderr
    """
    env = env or os.environ.get("ASSESSMENT_ENV", "development").lower().strip()
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if env == "production":
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JSONFormatter())
    else:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(DevFormatter())

    handler.addFilter(ContextFilter())
    root_logger.addHandler(handler)

    # Silence noisy libraries
    for noisy in ("httpx", "httpcore", "anthropic", "openai", "uvicorn.access"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
