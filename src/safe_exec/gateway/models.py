"""Request and response schemas for the execute_command tool.

Field names on the wire are camelCase (``timeoutMs``, ``dryRun``,
``exitCode``); the models expose snake_case attributes and serialize by
alias.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ExecuteCommandRequest(BaseModel):
    """Input schema for the execute_command tool."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    command: str = Field(min_length=1, description="Command to execute (must be whitelisted)")
    args: list[str] = Field(default_factory=list, description="Arguments, passed verbatim")
    cwd: str | None = Field(default=None, description="Working directory")
    timeout_ms: int | float | None = Field(
        default=None,
        alias="timeoutMs",
        description="Timeout in milliseconds",
    )
    dry_run: bool = Field(
        default=False,
        alias="dryRun",
        description="Echo the resolved parameters without spawning",
    )

    @field_validator("args", mode="before")
    @classmethod
    def _null_args(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("timeout_ms")
    @classmethod
    def _positive_timeout(cls, value: int | float | None) -> int | float | None:
        if value is not None and not value > 0:
            raise ValueError("must be greater than 0")
        return value


class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_json(self) -> str:
        """Serialize with wire (camelCase) field names."""
        return self.model_dump_json(by_alias=True)


class DryRunResult(_Payload):
    """Acknowledgement returned for a dry run."""

    ok: Literal[True] = True
    dry_run: Literal[True] = Field(default=True, alias="dryRun")
    command: str
    args: list[str]
    cwd: str
    timeout_ms: int | float = Field(alias="timeoutMs")


class ExecuteCommandResult(_Payload):
    """Output schema for a completed execution."""

    ok: Literal[True] = True
    command: str
    args: list[str]
    exit_code: int = Field(alias="exitCode")
    stdout: str
    stderr: str
    signal: int | None = Field(default=None, description="Terminating signal, if any")


class ExecuteCommandError(_Payload):
    """Output schema for a rejected or failed execution."""

    ok: Literal[False] = False
    command: str | None = None
    args: list[str] | None = None
    error: str

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)
