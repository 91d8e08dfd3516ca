"""Shared fixtures."""

from __future__ import annotations

import asyncio
import sys
from typing import TYPE_CHECKING, Any

import pytest

from safe_exec.core.config import GatewayConfig, clear_settings_cache
from safe_exec.observability import reset_logging, reset_tracing
from safe_exec.shell import ProcessExecutor, Whitelist

if TYPE_CHECKING:
    from collections.abc import Generator

# The interpreter running the tests is the child process used throughout
PYTHON = sys.executable


class RecordingSpawn:
    """Process factory that records every spawn before delegating to asyncio."""

    def __init__(self, delay: float = 0.0) -> None:
        self.calls: list[tuple[tuple[Any, ...], dict[str, Any]]] = []
        self.processes: list[asyncio.subprocess.Process] = []
        self.delay = delay

    async def __call__(self, *args: Any, **kwargs: Any) -> asyncio.subprocess.Process:
        self.calls.append((args, kwargs))
        if self.delay:
            await asyncio.sleep(self.delay)
        process = await asyncio.create_subprocess_exec(*args, **kwargs)
        self.processes.append(process)
        return process


@pytest.fixture(autouse=True)
def clean_state() -> Generator[None, None, None]:
    """Reset cached settings and observability around each test."""
    clear_settings_cache()
    reset_logging()
    reset_tracing()
    yield
    clear_settings_cache()
    reset_logging()
    reset_tracing()


@pytest.fixture
def config() -> GatewayConfig:
    """Gateway config allowing only the test interpreter and a missing binary."""
    return GatewayConfig(
        whitelist=Whitelist(commands=frozenset({PYTHON, "safe-exec-no-such-binary"})),
        default_timeout_ms=10000,
    )


@pytest.fixture
def spawn_factory() -> type[RecordingSpawn]:
    """The recording process factory class, for tests needing a spawn delay."""
    return RecordingSpawn


@pytest.fixture
def spawn() -> RecordingSpawn:
    return RecordingSpawn()


@pytest.fixture
def executor(config: GatewayConfig, spawn: RecordingSpawn) -> ProcessExecutor:
    return ProcessExecutor(config, spawn=spawn)
