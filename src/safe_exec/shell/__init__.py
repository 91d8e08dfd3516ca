"""Whitelisted command execution.

Commands are checked against an immutable whitelist and spawned from an
argument vector, never through a shell.
"""

from safe_exec.shell.executor import (
    NO_EXIT_CODE,
    CommandNotAllowedError,
    CommandTimeoutError,
    ExecutionError,
    ExecutionOutcome,
    FailureKind,
    ProcessExecutor,
    SingleResolution,
    SpawnError,
)
from safe_exec.shell.whitelist import (
    DEFAULT_ALLOWED_COMMANDS,
    Whitelist,
    parse_command_list,
)

__all__ = [
    "DEFAULT_ALLOWED_COMMANDS",
    "NO_EXIT_CODE",
    "CommandNotAllowedError",
    "CommandTimeoutError",
    "ExecutionError",
    "ExecutionOutcome",
    "FailureKind",
    "ProcessExecutor",
    "SingleResolution",
    "SpawnError",
    "Whitelist",
    "parse_command_list",
]
