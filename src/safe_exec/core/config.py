"""Configuration management for safe-exec.

Loads configuration from TOML files with environment variable overrides.
Uses pydantic-settings for validation and type safety.
"""

from __future__ import annotations

import tomllib
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from safe_exec.shell.whitelist import Whitelist

DEFAULT_TIMEOUT_MS: int = 30000


class _SectionSettings(BaseSettings):
    """Settings section where environment variables beat file values."""

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return env_settings, init_settings, dotenv_settings, file_secret_settings


class GeneralSettings(_SectionSettings):
    """General application settings."""

    model_config = SettingsConfigDict(env_prefix="SAFE_EXEC_")

    log_level: str = Field(default="INFO", description="Log level")
    json_logs: bool = Field(default=False, description="Enable JSON structured logging")


class ExecutionSettings(_SectionSettings):
    """Command execution settings."""

    model_config = SettingsConfigDict(env_prefix="SAFE_EXEC_", populate_by_name=True)

    allowed_commands: str | None = Field(
        default=None,
        validation_alias=AliasChoices("SAFE_EXEC_ALLOWED_COMMANDS", "ALLOWED_COMMANDS"),
        description="Comma-separated command whitelist (unset uses the built-in set)",
    )
    timeout_ms: int = Field(
        default=DEFAULT_TIMEOUT_MS,
        validation_alias=AliasChoices("SAFE_EXEC_TIMEOUT_MS", "EXEC_TIMEOUT_MS"),
        description="Default timeout in milliseconds",
        gt=0,
    )
    default_cwd: str | None = Field(
        default=None,
        description="Default working directory (unset uses the current directory)",
    )

    @field_validator("allowed_commands", "default_cwd", mode="before")
    @classmethod
    def _blank_is_unset(cls, value: Any) -> Any:
        return None if value == "" else value

    @field_validator("timeout_ms", mode="before")
    @classmethod
    def _blank_timeout_is_default(cls, value: Any) -> Any:
        return DEFAULT_TIMEOUT_MS if value == "" else value


class TracingSettings(_SectionSettings):
    """OpenTelemetry tracing settings."""

    model_config = SettingsConfigDict(env_prefix="SAFE_EXEC_TRACING_")

    enabled: bool = Field(default=False, description="Enable tracing")
    otlp_endpoint: str = Field(default="http://localhost:4317", description="OTLP endpoint")
    service_name: str = Field(default="safe-exec-mcp", description="Service name")


class Settings(BaseSettings):
    """Main application settings.

    Configuration is loaded in the following order (later overrides earlier):
    1. Default values in this class
    2. Values from config.toml (if exists)
    3. Environment variables (SAFE_EXEC_* prefix, plus the legacy
       ALLOWED_COMMANDS and EXEC_TIMEOUT_MS names)
    """

    model_config = SettingsConfigDict(env_prefix="SAFE_EXEC_")

    general: GeneralSettings = Field(default_factory=GeneralSettings)
    execution: ExecutionSettings = Field(default_factory=ExecutionSettings)
    tracing: TracingSettings = Field(default_factory=TracingSettings)

    @classmethod
    def from_toml(cls, path: Path | str) -> Settings:
        """Load settings from a TOML file.

        Args:
            path: Path to the TOML file.

        Returns:
            Settings instance with values from the file.

        Raises:
            FileNotFoundError: If the file doesn't exist.
        """
        path = Path(path)
        with path.open("rb") as f:
            data = tomllib.load(f)

        return cls._from_dict(data)

    @classmethod
    def _from_dict(cls, data: dict[str, Any]) -> Settings:
        """Create settings from a dictionary."""
        return cls(
            general=GeneralSettings(**data.get("general", {})),
            execution=ExecutionSettings(**data.get("execution", {})),
            tracing=TracingSettings(**data.get("tracing", {})),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert settings to a dictionary."""
        return {
            "general": self.general.model_dump(),
            "execution": self.execution.model_dump(),
            "tracing": self.tracing.model_dump(),
        }


@dataclass(frozen=True)
class GatewayConfig:
    """Immutable runtime configuration injected into the gateway.

    Built once at startup and shared read-only by every execution.
    """

    whitelist: Whitelist
    default_timeout_ms: int = DEFAULT_TIMEOUT_MS
    default_cwd: str | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> GatewayConfig:
        """Resolve the gateway configuration from loaded settings."""
        execution = settings.execution
        return cls(
            whitelist=Whitelist.from_config(execution.allowed_commands),
            default_timeout_ms=execution.timeout_ms,
            default_cwd=execution.default_cwd,
        )


def _find_config_file() -> Path | None:
    """Find the config file in standard locations."""
    candidates = [
        Path("config.toml"),
        Path("safe_exec.toml"),
        Path.home() / ".config" / "safe-exec" / "config.toml",
    ]
    for path in candidates:
        if path.exists():
            return path
    return None


@lru_cache
def get_settings(config_path: str | None = None) -> Settings:
    """Get the application settings.

    Settings are loaded from:
    1. Default values
    2. Config file (if found or specified)
    3. Environment variables

    The result is cached after first call.

    Args:
        config_path: Optional explicit path to config file.

    Returns:
        The resolved Settings instance.
    """
    settings = Settings()

    path = Path(config_path) if config_path else _find_config_file()
    if path and path.exists():
        settings = Settings.from_toml(path)

    return settings


def clear_settings_cache() -> None:
    """Clear the settings cache. Useful for testing."""
    get_settings.cache_clear()
