"""Structured logging for safe-exec.

Provides structured logging using structlog with JSON output for
production and pretty-printed output for development. Everything is
written to stderr: stdout belongs to the MCP stdio transport.
"""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from safe_exec.core.config import GeneralSettings

_configured: bool = False


def setup_logging(settings: GeneralSettings) -> None:
    """Configure structured logging.

    Args:
        settings: General application settings including log level and format.
    """
    global _configured  # noqa: PLW0603

    if _configured:
        return

    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=log_level,
    )

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if settings.json_logs:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[*shared_processors, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        # Loggers resolve the configured stream on every call
        cache_logger_on_first_use=False,
    )

    _configured = True


def reset_logging() -> None:
    """Reset logging configuration. Useful for testing."""
    global _configured  # noqa: PLW0603
    _configured = False
    structlog.reset_defaults()


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger.

    Args:
        name: Optional logger name. Defaults to the calling module.

    Returns:
        A bound structlog logger.
    """
    logger: structlog.stdlib.BoundLogger = structlog.get_logger(name)
    return logger


def bind_context(**kwargs: object) -> None:
    """Bind key-value pairs to the logging context.

    These values are included in all subsequent log entries from the
    current context (e.g., within a single tool call).

    Args:
        **kwargs: Key-value pairs to bind to the context.
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Clear all bound context variables."""
    structlog.contextvars.clear_contextvars()
