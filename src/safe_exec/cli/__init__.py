"""Command-line interface for safe-exec."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import TYPE_CHECKING

import click
from pydantic import ValidationError

from safe_exec.core.config import GatewayConfig, Settings, get_settings
from safe_exec.observability import setup_logging, setup_tracing

if TYPE_CHECKING:
    from typing import Any

    from safe_exec.gateway.server import GatewayServer


def _run_async(coro: Any) -> Any:
    """Run an async function synchronously."""
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        loop = None

    if loop and loop.is_running():
        # Already inside an event loop (e.g. pytest-asyncio): run in a thread
        import concurrent.futures

        with concurrent.futures.ThreadPoolExecutor() as pool:
            future = pool.submit(asyncio.run, coro)
            return future.result()
    else:
        return asyncio.run(coro)


def _load_settings(ctx: click.Context) -> Settings:
    try:
        return get_settings(ctx.obj.get("config_path"))
    except ValidationError as e:
        raise click.ClickException(f"Invalid configuration: {e}") from e


def _build_gateway(ctx: click.Context) -> GatewayServer:
    from safe_exec.gateway.server import GatewayServer

    settings = _load_settings(ctx)
    setup_logging(settings.general)
    setup_tracing(settings.tracing)
    return GatewayServer(GatewayConfig.from_settings(settings))


@click.group()
@click.version_option(package_name="safe-exec-mcp")
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, path_type=Path),
    help="Path to config file.",
)
@click.pass_context
def main(ctx: click.Context, config: Path | None) -> None:
    """safe-exec: run whitelisted commands for MCP clients, without a shell."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = str(config) if config else None


@main.command()
@click.pass_context
def serve(ctx: click.Context) -> None:
    """Serve the execute_command tool over MCP stdio."""
    gateway = _build_gateway(ctx)
    _run_async(gateway.run_stdio())


@main.command(context_settings={"ignore_unknown_options": True})
@click.argument("command")
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
@click.option("--cwd", type=click.Path(file_okay=False, path_type=str), help="Working directory.")
@click.option("--timeout-ms", type=click.IntRange(min=1), help="Timeout in milliseconds.")
@click.option("--dry-run", is_flag=True, help="Show the resolved parameters without running.")
@click.pass_context
def run(
    ctx: click.Context,
    command: str,
    args: tuple[str, ...],
    cwd: str | None,
    timeout_ms: int | None,
    dry_run: bool,
) -> None:
    """Execute one whitelisted command and print the JSON result.

    Options for the command itself go after '--', e.g.
    safe-exec run ls -- -la
    """
    from safe_exec.gateway.server import TOOL_NAME

    gateway = _build_gateway(ctx)
    arguments: dict[str, Any] = {"command": command, "args": list(args), "dryRun": dry_run}
    if cwd is not None:
        arguments["cwd"] = cwd
    if timeout_ms is not None:
        arguments["timeoutMs"] = timeout_ms

    result = _run_async(gateway.call_tool(TOOL_NAME, arguments))
    for item in result.content:
        click.echo(item.text)
    if result.isError:
        ctx.exit(1)


@main.command()
@click.pass_context
def config(ctx: click.Context) -> None:
    """Show the resolved configuration."""
    settings = _load_settings(ctx)
    gateway_config = GatewayConfig.from_settings(settings)
    click.echo(
        json.dumps(
            {
                **settings.to_dict(),
                "effective": {
                    "allowed_commands": gateway_config.whitelist.sorted(),
                    "timeout_ms": gateway_config.default_timeout_ms,
                    "default_cwd": gateway_config.default_cwd,
                },
            },
            indent=2,
        )
    )
