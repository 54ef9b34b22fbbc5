"""
Structured logging with run/node trace context.

Every log record emitted while a run is executing picks up the run's
identifiers automatically:

    WorkflowExecutor.execute() -> sets run_id, workflow_id
        | (ContextVar, copied into every node task)
    node task -> adds node_id
        |
    any module -> logger.info("...") -> record carries all of the above

Two output modes: JSON lines for production, colorized text for development.
"""

import json
import logging
import os
import re
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

trace_context: ContextVar[dict[str, Any] | None] = ContextVar("trace_context", default=None)

ANSI_ESCAPE_PATTERN = re.compile(r"\x1b\[[0-9;]*m")

# Third-party loggers routed through the root handler in JSON mode
THIRD_PARTY_LOGGERS = ("LiteLLM", "httpcore", "httpx")


def strip_ansi_codes(text: str) -> str:
    """Remove ANSI escape codes from text for clean JSON logging."""
    return ANSI_ESCAPE_PATTERN.sub("", text)


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Fields: timestamp, level, logger, message, the current trace context
    (run_id, workflow_id, node_id) and the optional ``extra`` fields
    ``event``, ``latency_ms``, ``tokens_used``, ``model``.
    """

    EXTRA_FIELDS = ("event", "latency_ms", "tokens_used", "model")

    def format(self, record: logging.LogRecord) -> str:
        context = trace_context.get() or {}

        log_entry: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": strip_ansi_codes(record.getMessage()),
        }
        log_entry.update(context)

        for name in self.EXTRA_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                log_entry[name] = strip_ansi_codes(value) if isinstance(value, str) else value

        if record.exc_info:
            log_entry["exception"] = strip_ansi_codes(self.formatException(record.exc_info))

        return json.dumps(log_entry, default=str)


class HumanReadableFormatter(logging.Formatter):
    """Colorized one-line records prefixed with the short run/node context."""

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def __init__(self, use_colors: bool = True):
        super().__init__()
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        context = trace_context.get() or {}

        prefix_parts = []
        if context.get("run_id"):
            prefix_parts.append(f"run:{context['run_id'][-8:]}")
        if context.get("workflow_id"):
            prefix_parts.append(f"wf:{context['workflow_id']}")
        if context.get("node_id"):
            prefix_parts.append(f"node:{context['node_id']}")
        context_prefix = f"[{' | '.join(prefix_parts)}] " if prefix_parts else ""

        level = f"{record.levelname:<8}"
        if self.use_colors:
            level = f"{self.COLORS.get(record.levelname, '')}[{level}]{self.RESET}"
        else:
            level = f"[{level}]"

        event = getattr(record, "event", None)
        suffix = f" [{event}]" if event is not None else ""

        message = f"{level} {context_prefix}{record.getMessage()}{suffix}"
        if record.exc_info:
            message += "\n" + self.formatException(record.exc_info)
        return message


def configure_logging(
    level: str = "INFO",
    format: str = "auto",  # "json", "human", or "auto"
) -> None:
    """
    Configure logging for the process. Call once at startup.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format: "json", "human", or "auto" (JSON when LOG_FORMAT=json or
            ENV=production, human-readable otherwise)
    """
    if format == "auto":
        log_format_env = os.getenv("LOG_FORMAT", "").lower()
        env = os.getenv("ENV", "development").lower()
        format = "json" if log_format_env == "json" or env == "production" else "human"

    if format == "json":
        formatter: logging.Formatter = StructuredFormatter()
        os.environ["NO_COLOR"] = "1"
    else:
        formatter = HumanReadableFormatter(use_colors="NO_COLOR" not in os.environ)

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level.upper())

    if format == "json":
        for logger_name in THIRD_PARTY_LOGGERS:
            third_party = logging.getLogger(logger_name)
            third_party.handlers.clear()
            third_party.propagate = True


def set_trace_context(**kwargs: Any) -> None:
    """
    Add fields to the trace context of the current execution context.

    Asyncio tasks copy the context when created, so fields set inside a node
    task never leak into sibling tasks or the scheduler.
    """
    current = trace_context.get() or {}
    trace_context.set({**current, **kwargs})


def get_trace_context() -> dict:
    """Return a copy of the current trace context (empty dict if unset)."""
    context = trace_context.get() or {}
    return context.copy()


def clear_trace_context() -> None:
    """Drop all trace context fields."""
    trace_context.set(None)


@contextmanager
def trace_scope(**kwargs: Any) -> Iterator[None]:
    """Set trace fields for the duration of a block, then restore the previous context."""
    current = trace_context.get() or {}
    token = trace_context.set({**current, **kwargs})
    try:
        yield
    finally:
        trace_context.reset(token)
