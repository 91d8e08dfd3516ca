"""Logging and tracing."""

from safe_exec.observability.logging import (
    bind_context,
    clear_context,
    get_logger,
    reset_logging,
    setup_logging,
)
from safe_exec.observability.tracing import (
    execution_span,
    get_tracer,
    reset_tracing,
    setup_tracing,
    trace_execution_completed,
    trace_execution_failed,
    traced_async,
)

__all__ = [
    "bind_context",
    "clear_context",
    "execution_span",
    "get_logger",
    "get_tracer",
    "reset_logging",
    "reset_tracing",
    "setup_logging",
    "setup_tracing",
    "trace_execution_completed",
    "trace_execution_failed",
    "traced_async",
]
