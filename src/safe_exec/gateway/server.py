"""MCP server exposing the execute_command tool.

The server is a thin adapter: it validates the tool arguments, answers dry
runs, hands real executions to the ProcessExecutor and turns every outcome
or failure into a JSON text result. Nothing a child process does can make
a call raise into the transport.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from mcp import types
from mcp.server.lowlevel import Server
from mcp.server.stdio import stdio_server
from pydantic import ValidationError

from safe_exec import __version__
from safe_exec.gateway.models import (
    DryRunResult,
    ExecuteCommandError,
    ExecuteCommandRequest,
    ExecuteCommandResult,
)
from safe_exec.observability import bind_context, clear_context, get_logger, traced_async
from safe_exec.shell.executor import CommandNotAllowedError, ExecutionError, ProcessExecutor

if TYPE_CHECKING:
    from safe_exec.core.config import GatewayConfig

SERVER_NAME = "safe-exec-mcp"
TOOL_NAME = "execute_command"

logger = get_logger(__name__)


def _text_result(text: str, *, is_error: bool = False) -> types.CallToolResult:
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text)],
        isError=is_error,
    )


def _describe(error: ValidationError) -> str:
    """Summarize validation errors per field, without documentation links."""
    parts: list[str] = []
    for detail in error.errors(include_url=False):
        location = ".".join(str(part) for part in detail["loc"]) or "arguments"
        parts.append(f"{location}: {detail['msg']}")
    return "; ".join(parts)


class GatewayServer:
    """Command-execution gateway served over MCP."""

    def __init__(
        self,
        config: GatewayConfig,
        *,
        executor: ProcessExecutor | None = None,
    ) -> None:
        """Create the gateway.

        Args:
            config: Immutable gateway configuration.
            executor: Executor to run commands with; one is built from
                ``config`` when omitted.
        """
        self.config = config
        self.executor = executor or ProcessExecutor(config)
        self.server = self._build_server()

    def _build_server(self) -> Server[Any, Any]:
        server: Server[Any, Any] = Server(SERVER_NAME, version=__version__)
        server.list_tools()(self.list_tools)
        # ExecuteCommandRequest is the only argument validator
        server.call_tool(validate_input=False)(self.call_tool)
        return server

    def tool_definition(self) -> types.Tool:
        """Describe the execute_command tool."""
        allowed = ", ".join(self.config.whitelist.sorted())
        return types.Tool(
            name=TOOL_NAME,
            description="Execute a whitelisted command without using a shell",
            inputSchema={
                "type": "object",
                "properties": {
                    "command": {"type": "string", "description": f"One of: {allowed}"},
                    "args": {"type": "array", "items": {"type": "string"}},
                    "cwd": {"type": "string"},
                    "timeoutMs": {"type": "number"},
                    "dryRun": {"type": "boolean"},
                },
                "required": ["command"],
            },
        )

    async def list_tools(self) -> list[types.Tool]:
        return [self.tool_definition()]

    @traced_async("gateway.call_tool")
    async def call_tool(
        self,
        name: str,
        arguments: dict[str, Any] | None,
    ) -> types.CallToolResult:
        """Handle a tool call.

        Args:
            name: Requested tool name.
            arguments: Raw tool arguments from the client.

        Returns:
            A text result holding a JSON payload, flagged as an error for
            unknown tools, invalid arguments and failed executions.
        """
        if name != TOOL_NAME:
            logger.warning("unknown_tool", tool=name)
            return _text_result(f"Unknown tool: {name}", is_error=True)

        try:
            request = ExecuteCommandRequest.model_validate(arguments or {})
        except ValidationError as e:
            logger.warning("invalid_arguments", errors=e.error_count())
            return self._error(f"Invalid arguments: {_describe(e)}")

        bind_context(command=request.command)
        try:
            return await self._handle(request)
        finally:
            clear_context()

    async def _handle(self, request: ExecuteCommandRequest) -> types.CallToolResult:
        if request.dry_run:
            return self._dry_run(request)

        try:
            outcome = await self.executor.execute(
                request.command,
                request.args,
                cwd=request.cwd,
                timeout_ms=request.timeout_ms,
            )
        except ExecutionError as e:
            return self._error(e.message, request)

        payload = ExecuteCommandResult(
            command=request.command,
            args=request.args,
            exit_code=outcome.exit_code,
            stdout=outcome.stdout,
            stderr=outcome.stderr,
            signal=outcome.signal,
        )
        return _text_result(payload.to_json())

    def _dry_run(self, request: ExecuteCommandRequest) -> types.CallToolResult:
        if not self.executor.whitelist.is_allowed(request.command):
            return self._error(CommandNotAllowedError(request.command).message, request)

        payload = DryRunResult(
            command=request.command,
            args=request.args,
            cwd=self.executor.resolve_cwd(request.cwd),
            timeout_ms=self.executor.resolve_timeout(request.timeout_ms),
        )
        logger.info("dry_run", args=request.args, cwd=payload.cwd, timeout_ms=payload.timeout_ms)
        return _text_result(payload.to_json())

    def _error(
        self,
        message: str,
        request: ExecuteCommandRequest | None = None,
    ) -> types.CallToolResult:
        payload = ExecuteCommandError(
            command=request.command if request else None,
            args=request.args if request else None,
            error=message,
        )
        return _text_result(payload.to_json(), is_error=True)

    async def run_stdio(self) -> None:
        """Serve MCP over stdin/stdout until the client disconnects."""
        logger.info("server_started", allowed=self.config.whitelist.sorted())
        async with stdio_server() as (read_stream, write_stream):
            await self.server.run(
                read_stream,
                write_stream,
                self.server.create_initialization_options(),
            )
