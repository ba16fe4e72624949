"""Structured logging configuration for Teams Chat MCP.

Provides JSON-formatted structured logging with contextual fields
(tool, request_id, chat_id) via contextvars.
"""

import json
import logging
import sys
from contextvars import ContextVar
from typing import Any, Dict, Optional

# Context variables for request-scoped logging fields
_tool_name: ContextVar[Optional[str]] = ContextVar("tool_name", default=None)
_request_id: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
_chat_id: ContextVar[Optional[str]] = ContextVar("chat_id", default=None)

REDACTED = "***REDACTED***"
SENSITIVE_KEYS = {"accessToken", "access_token", "token", "authorization", "clientSecret"}


def set_log_context(
    tool_name: Optional[str] = None,
    request_id: Optional[str] = None,
    chat_id: Optional[str] = None,
):
    """Set contextual logging fields for the current async context."""
    if tool_name is not None:
        _tool_name.set(tool_name)
    if request_id is not None:
        _request_id.set(request_id)
    if chat_id is not None:
        _chat_id.set(chat_id)


def clear_log_context():
    """Clear all contextual logging fields."""
    _tool_name.set(None)
    _request_id.set(None)
    _chat_id.set(None)


def redact_arguments(arguments: Dict[str, Any]) -> Dict[str, Any]:
    """Return a shallow copy of tool arguments with credentials masked."""
    safe = dict(arguments or {})
    for key in safe:
        if key in SENSITIVE_KEYS and safe[key]:
            safe[key] = REDACTED
    return safe


def _context_fields() -> Dict[str, str]:
    fields = {}
    tool = _tool_name.get()
    if tool:
        fields["tool"] = tool
    request_id = _request_id.get()
    if request_id:
        fields["request_id"] = request_id
    chat_id = _chat_id.get()
    if chat_id:
        fields["chat_id"] = chat_id
    return fields


class StructuredFormatter(logging.Formatter):
    """JSON structured log formatter with context fields."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        log_entry.update(_context_fields())

        if record.exc_info and record.exc_info[1]:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry)


class HumanReadableFormatter(logging.Formatter):
    """Human-readable log formatter with context fields for development."""

    def format(self, record: logging.LogRecord) -> str:
        parts = [
            f"[{self.formatTime(record, self.datefmt)}]",
            f"{record.levelname:8s}",
            f"{record.name}:",
            record.getMessage(),
        ]

        ctx = _context_fields()
        if ctx:
            parts.append("[" + ", ".join(f"{k}={v}" for k, v in ctx.items()) + "]")

        msg = " ".join(parts)

        if record.exc_info and record.exc_info[1]:
            msg += "\n" + self.formatException(record.exc_info)

        return msg


def configure_logging(environment: str = "development", log_level: str = "INFO", stream=None):
    """Configure structured logging for the application.

    Args:
        environment: "production" for JSON output, anything else for human-readable.
        log_level: Logging level string (DEBUG, INFO, WARNING, ERROR).
        stream: Output stream. Defaults to stderr so the stdio MCP transport
            keeps stdout for protocol frames.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    # Remove existing handlers
    root_logger.handlers.clear()

    handler = logging.StreamHandler(stream or sys.stderr)

    if environment == "production":
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(HumanReadableFormatter(
            datefmt="%Y-%m-%d %H:%M:%S"
        ))

    root_logger.addHandler(handler)

    # Quiet noisy third-party loggers
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
