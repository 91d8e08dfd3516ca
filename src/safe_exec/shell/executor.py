"""Whitelisted, shell-less process execution.

Every execution spawns its child directly from an argument vector, drains
stdout and stderr into private buffers and races three terminal events
(natural exit, timeout expiry, spawn failure) through a single-resolution
latch. Whichever event arrives first decides the result; the others are
no-ops.
"""

from __future__ import annotations

import asyncio
import contextlib
import os
from collections.abc import Awaitable, Callable, Generator, Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from safe_exec.observability import (
    execution_span,
    get_logger,
    trace_execution_completed,
    trace_execution_failed,
)

if TYPE_CHECKING:
    from safe_exec.core.config import GatewayConfig
    from safe_exec.shell.whitelist import Whitelist

T = TypeVar("T")

SpawnFn = Callable[..., Awaitable[asyncio.subprocess.Process]]

# Exit code reported when the child produced none (killed by a signal)
NO_EXIT_CODE: int = -1

_READ_CHUNK_SIZE: int = 64 * 1024

logger = get_logger(__name__)


class FailureKind(StrEnum):
    """Tags for the ways an execution can fail."""

    COMMAND_NOT_ALLOWED = "CommandNotAllowed"
    TIMEOUT = "Timeout"
    SPAWN_ERROR = "SpawnError"


class ExecutionError(Exception):
    """Base class for execution failures."""

    kind: FailureKind

    def __init__(self, message: str, *, command: str) -> None:
        super().__init__(message)
        self.message = message
        self.command = command

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "kind": self.kind.value,
            "message": self.message,
            "command": self.command,
        }


class CommandNotAllowedError(ExecutionError):
    """The command is not in the whitelist."""

    kind = FailureKind.COMMAND_NOT_ALLOWED

    def __init__(self, command: str) -> None:
        super().__init__(f"Command not allowed: {command}", command=command)


class CommandTimeoutError(ExecutionError):
    """The child did not exit before the timeout and was killed."""

    kind = FailureKind.TIMEOUT

    def __init__(self, command: str, timeout_ms: float) -> None:
        super().__init__(f"Command timed out after {timeout_ms}ms", command=command)
        self.timeout_ms = timeout_ms


class SpawnError(ExecutionError):
    """The operating system refused to start the child."""

    kind = FailureKind.SPAWN_ERROR


@dataclass(frozen=True)
class ExecutionOutcome:
    """Result of a child process that ran to completion."""

    exit_code: int
    stdout: str
    stderr: str
    signal: int | None = None

    @classmethod
    def from_returncode(cls, returncode: int | None, stdout: str, stderr: str) -> ExecutionOutcome:
        """Build an outcome from an asyncio return code.

        asyncio reports death by signal N as ``-N``; that is surfaced as
        ``exit_code == -1`` with ``signal == N``.
        """
        if returncode is None:
            return cls(exit_code=NO_EXIT_CODE, stdout=stdout, stderr=stderr)
        if returncode < 0:
            return cls(exit_code=NO_EXIT_CODE, stdout=stdout, stderr=stderr, signal=-returncode)
        return cls(exit_code=returncode, stdout=stdout, stderr=stderr)

    @property
    def success(self) -> bool:
        """Check if the command exited with status zero."""
        return self.exit_code == 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "exit_code": self.exit_code,
            "stdout": self.stdout,
            "stderr": self.stderr,
            "signal": self.signal,
        }


class SingleResolution(Generic[T]):
    """A future that accepts exactly one terminal event.

    ``resolve`` and ``reject`` return True only for the call that settled the
    latch; every later call is ignored and returns False. Callbacks added with
    ``add_settle_callback`` run once, synchronously, at settlement.
    """

    def __init__(self) -> None:
        self._future: asyncio.Future[T] = asyncio.get_running_loop().create_future()
        self._settled = False
        self._callbacks: list[Callable[[], object]] = []

    @property
    def settled(self) -> bool:
        """Whether a terminal event has already been accepted."""
        return self._settled

    def add_settle_callback(self, callback: Callable[[], object]) -> None:
        """Run ``callback`` when the latch settles."""
        self._callbacks.append(callback)

    def resolve(self, value: T) -> bool:
        """Settle with a result."""
        if not self._settle():
            return False
        self._future.set_result(value)
        return True

    def reject(self, error: BaseException) -> bool:
        """Settle with an exception."""
        if not self._settle():
            return False
        self._future.set_exception(error)
        return True

    def _settle(self) -> bool:
        # The awaiting task may have been cancelled, which cancels the future
        if self._settled or self._future.done():
            return False
        self._settled = True
        for callback in self._callbacks:
            callback()
        return True

    def __await__(self) -> Generator[Any, None, T]:
        return self._future.__await__()


async def _drain(stream: asyncio.StreamReader | None, buffer: bytearray) -> None:
    """Append everything read from ``stream`` to ``buffer`` until EOF."""
    if stream is None:
        return
    while chunk := await stream.read(_READ_CHUNK_SIZE):
        buffer.extend(chunk)


async def _spawned_or_none(
    spawning: asyncio.Future[asyncio.subprocess.Process],
) -> asyncio.subprocess.Process | None:
    """Wait for a spawn to finish, returning None if it failed."""
    try:
        return await spawning
    except (OSError, ValueError):
        return None


class _Execution:
    """State owned by a single execution: child, buffers, timer and latch."""

    def __init__(
        self,
        command: str,
        args: list[str],
        *,
        cwd: str,
        timeout_ms: float,
        spawn: SpawnFn,
    ) -> None:
        self.command = command
        self.args = args
        self.cwd = cwd
        self.timeout_ms = timeout_ms
        self._spawn = spawn
        self.process: asyncio.subprocess.Process | None = None
        self.stdout = bytearray()
        self.stderr = bytearray()
        self.resolution: SingleResolution[ExecutionOutcome] = SingleResolution()

    async def run(self) -> ExecutionOutcome:
        loop = asyncio.get_running_loop()
        timer = loop.call_later(self.timeout_ms / 1000, self._on_timeout)
        self.resolution.add_settle_callback(timer.cancel)

        # Shielded so a cancelled caller can still reap a child created late
        spawning = asyncio.ensure_future(
            self._spawn(
                self.command,
                *self.args,
                cwd=self.cwd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        )
        tasks: list[asyncio.Task[None]] = []
        try:
            try:
                self.process = await asyncio.shield(spawning)
            except (OSError, ValueError) as e:
                self.resolution.reject(SpawnError(str(e), command=self.command))
            else:
                if self.resolution.settled:
                    # Timed out while the child was being created
                    self._kill()
                else:
                    readers = [
                        asyncio.create_task(_drain(self.process.stdout, self.stdout)),
                        asyncio.create_task(_drain(self.process.stderr, self.stderr)),
                    ]
                    tasks = [*readers, asyncio.create_task(self._wait_exit(readers))]

            return await self.resolution
        finally:
            timer.cancel()
            if self.process is None:
                self.process = await _spawned_or_none(spawning)
            await self._cleanup(tasks)

    async def _wait_exit(self, readers: list[asyncio.Task[None]]) -> None:
        assert self.process is not None
        returncode = await self.process.wait()
        await asyncio.gather(*readers)
        self.resolution.resolve(
            ExecutionOutcome.from_returncode(
                returncode,
                self.stdout.decode(errors="replace"),
                self.stderr.decode(errors="replace"),
            )
        )

    def _on_timeout(self) -> None:
        if self.resolution.settled:
            return
        self._kill()
        self.resolution.reject(CommandTimeoutError(self.command, self.timeout_ms))

    def _kill(self) -> None:
        if self.process is None or self.process.returncode is not None:
            return
        with contextlib.suppress(ProcessLookupError):
            self.process.kill()

    async def _cleanup(self, tasks: list[asyncio.Task[None]]) -> None:
        """Reap the child and stop the pipe readers."""
        if self.process is not None and self.process.returncode is None:
            self._kill()
            await self.process.wait()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)


class ProcessExecutor:
    """Runs whitelisted commands without a shell.

    The executor holds no per-execution state; concurrent calls to
    ``execute`` each own their child process, buffers and timer.
    """

    def __init__(self, config: GatewayConfig, *, spawn: SpawnFn | None = None) -> None:
        """Create an executor.

        Args:
            config: Immutable gateway configuration (whitelist and defaults).
            spawn: Process factory with the signature of
                ``asyncio.create_subprocess_exec``.
        """
        self.config = config
        self._spawn: SpawnFn = spawn or asyncio.create_subprocess_exec

    @property
    def whitelist(self) -> Whitelist:
        """The whitelist every command is checked against."""
        return self.config.whitelist

    def resolve_cwd(self, cwd: str | None) -> str:
        """Effective working directory for a request."""
        return cwd or self.config.default_cwd or os.getcwd()

    def resolve_timeout(self, timeout_ms: float | None) -> float:
        """Effective timeout in milliseconds for a request."""
        return timeout_ms if timeout_ms is not None else self.config.default_timeout_ms

    async def execute(
        self,
        command: str,
        args: Sequence[str] = (),
        *,
        cwd: str | None = None,
        timeout_ms: float | None = None,
    ) -> ExecutionOutcome:
        """Execute a whitelisted command.

        Args:
            command: Command name; must be in the whitelist.
            args: Arguments passed verbatim to the command.
            cwd: Working directory (defaults to the configured or current one).
            timeout_ms: Timeout in milliseconds (defaults to the configured one).

        Returns:
            ExecutionOutcome with exit code and captured output. A non-zero
            exit code is still an outcome, not an error.

        Raises:
            CommandNotAllowedError: If the command is not whitelisted.
            SpawnError: If the child could not be started.
            CommandTimeoutError: If the child outlived the timeout.
        """
        if not self.config.whitelist.is_allowed(command):
            logger.warning("command_rejected", command=command)
            raise CommandNotAllowedError(command)

        argv = list(args)
        effective_cwd = self.resolve_cwd(cwd)
        effective_timeout = self.resolve_timeout(timeout_ms)
        if effective_timeout <= 0:
            raise ValueError(f"timeout_ms must be positive, got {effective_timeout}")

        execution = _Execution(
            command,
            argv,
            cwd=effective_cwd,
            timeout_ms=effective_timeout,
            spawn=self._spawn,
        )

        loop = asyncio.get_running_loop()
        started = loop.time()
        with execution_span(command, argv, effective_timeout) as span:
            logger.debug(
                "command_started",
                command=command,
                args=argv,
                cwd=effective_cwd,
                timeout_ms=effective_timeout,
            )
            try:
                outcome = await execution.run()
            except ExecutionError as e:
                duration_ms = int((loop.time() - started) * 1000)
                trace_execution_failed(e.kind.value, e.message, span=span)
                event = (
                    "command_timed_out"
                    if e.kind is FailureKind.TIMEOUT
                    else "command_spawn_failed"
                )
                logger.warning(event, command=command, error=e.message, duration_ms=duration_ms)
                raise

            duration_ms = int((loop.time() - started) * 1000)
            trace_execution_completed(outcome.exit_code, duration_ms, span=span)
            logger.info(
                "command_completed",
                command=command,
                exit_code=outcome.exit_code,
                signal=outcome.signal,
                duration_ms=duration_ms,
            )
            return outcome
