"""OpenTelemetry tracing for safe-exec.

One span is opened per command execution; it records the command, the
argument count and the timeout, then either the exit code and duration or
the failure kind and message.
"""

from __future__ import annotations

import functools
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, ParamSpec, TypeVar

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.trace import Status, StatusCode, Tracer

if TYPE_CHECKING:
    from collections.abc import Callable, Generator, Sequence

    from safe_exec.core.config import TracingSettings

_TRACER_NAME = "safe_exec"
_TRACER_VERSION = "0.1.0"

# Module-level tracer
_tracer: Tracer | None = None
_initialized: bool = False

P = ParamSpec("P")
T = TypeVar("T")


def setup_tracing(settings: TracingSettings) -> None:
    """Initialize OpenTelemetry tracing.

    Args:
        settings: Tracing configuration settings.
    """
    global _tracer, _initialized  # noqa: PLW0603

    if _initialized:
        return

    if not settings.enabled:
        _initialized = True
        return

    resource = Resource.create(
        {
            "service.name": settings.service_name,
            "service.version": _TRACER_VERSION,
        }
    )
    provider = TracerProvider(resource=resource)

    if settings.otlp_endpoint:
        try:
            from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (
                OTLPSpanExporter,
            )

            provider.add_span_processor(
                BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.otlp_endpoint))
            )
        except ImportError:
            # The OTLP exporter is an optional extra
            provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
    else:
        provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))

    trace.set_tracer_provider(provider)

    _tracer = trace.get_tracer(_TRACER_NAME, _TRACER_VERSION)
    _initialized = True


def get_tracer() -> Tracer:
    """Get the configured tracer, or a no-op one if tracing is not set up."""
    if _tracer is None:
        return trace.get_tracer(_TRACER_NAME, _TRACER_VERSION)
    return _tracer


def reset_tracing() -> None:
    """Reset tracing state. Useful for testing."""
    global _tracer, _initialized  # noqa: PLW0603
    _tracer = None
    _initialized = False


@contextmanager
def execution_span(
    command: str,
    args: Sequence[str],
    timeout_ms: float,
) -> Generator[trace.Span, None, None]:
    """Create a span covering one command execution.

    Args:
        command: The whitelisted command being run.
        args: Its argument vector.
        timeout_ms: Effective timeout for this execution.

    Yields:
        The active span for the execution.
    """
    attributes: dict[str, Any] = {
        "exec.command": command,
        "exec.args_count": len(args),
        "exec.timeout_ms": timeout_ms,
    }

    with get_tracer().start_as_current_span(
        f"exec:{command}",
        attributes=attributes,
        record_exception=False,
        set_status_on_exception=False,
    ) as span:
        yield span


def trace_execution_completed(
    exit_code: int,
    duration_ms: int,
    *,
    span: trace.Span,
) -> None:
    """Record a child that ran to completion.

    A non-zero exit code is still a completed execution, so the span
    status is OK either way.
    """
    span.set_attribute("exec.exit_code", exit_code)
    span.set_attribute("exec.duration_ms", duration_ms)
    span.set_status(Status(StatusCode.OK))


def trace_execution_failed(
    kind: str,
    message: str,
    *,
    span: trace.Span,
) -> None:
    """Record a rejected, timed-out or unspawnable execution."""
    span.set_attribute("exec.error.kind", kind)
    span.set_attribute("exec.error.message", message)
    span.set_status(Status(StatusCode.ERROR, message))


def traced_async(
    operation_name: str | None = None,
) -> Callable[[Callable[P, T]], Callable[P, T]]:
    """Decorator to trace an async function.

    Args:
        operation_name: Optional custom name for the span.
            Defaults to the function name.

    Returns:
        A decorator that wraps the async function with tracing.
    """

    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        span_name = operation_name or func.__name__

        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            tracer = get_tracer()
            with tracer.start_as_current_span(span_name):
                return await func(*args, **kwargs)  # type: ignore[misc, no-any-return]

        return wrapper  # type: ignore[return-value]

    return decorator
