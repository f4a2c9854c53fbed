"""
Structured logging configuration.

Provides:
    • JSON lines in production, coloured console lines in development
    • Request-scoped context (request_id, client_ip, endpoint), set by
      RequestLoggingMiddleware
    • Submission-scoped context: every record emitted while a run is
      active carries its submission_id, including records from channels
      that never see the id themselves

Usage:
    from backend.app.core.logging_config import setup_logging, submission_context

    setup_logging()
    with submission_context("SUB-1A2B3C4D5E6F"):
        logger.warning("Channel failed", extra={"channel": "direct", "outcome": "timeout"})
"""

from __future__ import annotations

import json
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional

from backend.app.core.config import settings

_request_context: ContextVar[Dict[str, Any]] = ContextVar(
    "request_context", default={}
)
_submission_id: ContextVar[Optional[str]] = ContextVar("submission_id", default=None)

# Record attributes promoted to top-level JSON keys when present
SUBMISSION_FIELDS = (
    "submission_id", "channel", "outcome", "locator", "attempt_index",
    "attempt_count", "duration_ms", "status_code", "endpoint",
)


def set_request_context(**kwargs: Any) -> None:
    """Replace the request context; call with no arguments to clear it."""
    _request_context.set(kwargs)


def get_request_context() -> Dict[str, Any]:
    return _request_context.get()


@contextmanager
def submission_context(submission_id: str) -> Iterator[None]:
    """Tag every record logged inside the block with ``submission_id``."""
    token = _submission_id.set(submission_id)
    try:
        yield
    finally:
        _submission_id.reset(token)


class SubmissionContextFilter(logging.Filter):
    """Copies the active submission id onto records that lack one."""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "submission_id", None) is None:
            record.submission_id = _submission_id.get()
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per line, for log shipping."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "where": f"{record.module}:{record.funcName}:{record.lineno}",
        }
        request = get_request_context()
        if request:
            entry["request"] = request
        entry.update({
            key: getattr(record, key)
            for key in SUBMISSION_FIELDS
            if getattr(record, key, None) is not None
        })
        if record.exc_info and record.exc_info[1]:
            exc = record.exc_info[1]
            entry["exception"] = {"type": type(exc).__name__, "message": str(exc)}
        return json.dumps(entry, default=str)


class PrettyFormatter(logging.Formatter):
    """``12:00:01 WARNING  [req-id SUB-…] logger: message`` with level colours."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, self.RESET)
        tags = [
            str(tag) for tag in (
                get_request_context().get("request_id"),
                getattr(record, "submission_id", None),
                getattr(record, "channel", None),
            ) if tag
        ]
        prefix = f"{color}{self.formatTime(record, '%H:%M:%S')} {record.levelname:8s}{self.RESET}"
        line = f"{prefix} [{' '.join(tags)}] " if tags else f"{prefix} "
        line += f"{record.name}: {record.getMessage()}"
        if record.exc_info and record.exc_info[1]:
            line += f"\n  {type(record.exc_info[1]).__name__}: {record.exc_info[1]}"
        return line


def setup_logging() -> None:
    """Install one stdout handler on the root logger, formatted per environment."""
    root = logging.getLogger()
    root.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(SubmissionContextFilter())
    handler.setFormatter(JSONFormatter() if settings.is_production else PrettyFormatter())
    root.addHandler(handler)

    # Per-request client chatter is already covered by channel logs
    for noisy in ("uvicorn.access", "httpx", "httpcore", "multipart"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
