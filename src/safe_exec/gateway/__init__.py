"""MCP adapter for the execution gateway."""

from safe_exec.gateway.models import (
    DryRunResult,
    ExecuteCommandError,
    ExecuteCommandRequest,
    ExecuteCommandResult,
)
from safe_exec.gateway.server import SERVER_NAME, TOOL_NAME, GatewayServer

__all__ = [
    "SERVER_NAME",
    "TOOL_NAME",
    "DryRunResult",
    "ExecuteCommandError",
    "ExecuteCommandRequest",
    "ExecuteCommandResult",
    "GatewayServer",
]
