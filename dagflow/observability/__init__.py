"""
Observability: trace context propagation and structured logging.

Run and node identifiers travel in a ContextVar and are attached to every
log record by the formatters; no ids are passed around by hand.
"""

from dagflow.observability.logging import (
    clear_trace_context,
    configure_logging,
    get_trace_context,
    set_trace_context,
    trace_scope,
)

__all__ = [
    "configure_logging",
    "get_trace_context",
    "set_trace_context",
    "clear_trace_context",
    "trace_scope",
]
