"""
Structured Logging — Verdict-Aware Log Lines

Every engine and API log call passes its context (detection id, score,
recommendation, review transition, request timing) as `extra` fields.
Both formatters surface those fields: JSON lines for production, and
a trailing key=value list on the human-readable format for development.

Usage:
    from spamshield.logging import get_logger
    logger = get_logger("engine")
    logger.info("Analysis complete", extra={"score": 72, "recommendation": "REJECT"})

Environment:
    SPAMSHIELD_LOG_LEVEL   DEBUG / INFO / WARNING / ERROR (default INFO)
    SPAMSHIELD_LOG_FORMAT  json / text (default json)
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import IO, Optional


LOG_LEVEL = os.getenv("SPAMSHIELD_LOG_LEVEL", "INFO").upper()
LOG_FORMAT = os.getenv("SPAMSHIELD_LOG_FORMAT", "json")

# Context fields, in the order the text format prints them
CONTEXT_FIELDS = (
    "detection_id", "recommendation", "score", "confidence", "is_spam",
    "previous_status", "status", "reviewer", "workspace_id", "content_type",
    "key_id", "method", "path", "status_code", "duration_ms",
    "error_type", "error",
)


def log_context(record: logging.LogRecord) -> dict:
    """The context fields actually set on a record."""
    return {
        key: getattr(record, key)
        for key in CONTEXT_FIELDS
        if getattr(record, key, None) is not None
    }


class JSONFormatter(logging.Formatter):
    """One JSON object per line, stamped with the record's own time."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **log_context(record),
        }
        if record.exc_info and record.exc_info[0]:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable format for development."""

    def __init__(self):
        super().__init__(
            fmt="%(asctime)s [%(levelname)-8s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = log_context(record)
        if not context:
            return line
        tail = " ".join(f"{k}={v}" for k, v in context.items())
        head, _, trace = line.partition("\n")
        return f"{head} | {tail}" + (f"\n{trace}" if trace else "")


def setup_logging(
    level: Optional[str] = None,
    fmt: Optional[str] = None,
    stream: Optional[IO[str]] = None,
) -> logging.Logger:
    """
    Configure the spamshield logger. Call once at app startup.

    Arguments override SPAMSHIELD_LOG_LEVEL / SPAMSHIELD_LOG_FORMAT.
    Calling it again replaces the handler rather than adding one.
    """
    root = logging.getLogger("spamshield")
    root.setLevel(getattr(logging, (level or LOG_LEVEL).upper(), logging.INFO))
    root.handlers.clear()

    handler = logging.StreamHandler(stream or sys.stdout)
    if (fmt or LOG_FORMAT) == "text":
        handler.setFormatter(TextFormatter())
    else:
        handler.setFormatter(JSONFormatter())
    root.addHandler(handler)
    return root


def get_logger(name: str) -> logging.Logger:
    """Get a named logger under the spamshield namespace."""
    return logging.getLogger(f"spamshield.{name}")
