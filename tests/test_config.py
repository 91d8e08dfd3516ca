"""Tests for configuration management."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from pydantic import ValidationError

from safe_exec.core.config import (
    DEFAULT_TIMEOUT_MS,
    ExecutionSettings,
    GatewayConfig,
    GeneralSettings,
    Settings,
    TracingSettings,
    get_settings,
)
from safe_exec.shell.whitelist import DEFAULT_ALLOWED_COMMANDS

if TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove configuration variables inherited from the environment."""
    for name in (
        "ALLOWED_COMMANDS",
        "EXEC_TIMEOUT_MS",
        "SAFE_EXEC_ALLOWED_COMMANDS",
        "SAFE_EXEC_TIMEOUT_MS",
        "SAFE_EXEC_DEFAULT_CWD",
        "SAFE_EXEC_LOG_LEVEL",
        "SAFE_EXEC_JSON_LOGS",
    ):
        monkeypatch.delenv(name, raising=False)


class TestDefaultSettings:
    """Tests for default configuration values."""

    def test_general_defaults(self) -> None:
        """General settings have correct defaults."""
        settings = GeneralSettings()
        assert settings.log_level == "INFO"
        assert settings.json_logs is False

    def test_execution_defaults(self) -> None:
        """Execution settings have correct defaults."""
        settings = ExecutionSettings()
        assert settings.allowed_commands is None
        assert settings.timeout_ms == DEFAULT_TIMEOUT_MS == 30000
        assert settings.default_cwd is None

    def test_tracing_defaults(self) -> None:
        """Tracing settings have correct defaults."""
        settings = TracingSettings()
        assert settings.enabled is False
        assert settings.service_name == "safe-exec-mcp"


class TestSettingsFromToml:
    """Tests for loading settings from TOML files."""

    def test_load_from_toml(self, tmp_path: Path) -> None:
        """Settings can be loaded from a TOML file."""
        config_file = tmp_path / "config.toml"
        config_file.write_text("""
[general]
log_level = "DEBUG"
json_logs = true

[execution]
allowed_commands = "git, make"
timeout_ms = 5000
default_cwd = "/srv/repo"

[tracing]
enabled = true
service_name = "test-service"
""")

        settings = Settings.from_toml(config_file)

        assert settings.general.log_level == "DEBUG"
        assert settings.general.json_logs is True
        assert settings.execution.allowed_commands == "git, make"
        assert settings.execution.timeout_ms == 5000
        assert settings.execution.default_cwd == "/srv/repo"
        assert settings.tracing.enabled is True
        assert settings.tracing.service_name == "test-service"

    def test_load_partial_toml(self, tmp_path: Path) -> None:
        """Missing sections in TOML use defaults."""
        config_file = tmp_path / "config.toml"
        config_file.write_text("""
[general]
log_level = "WARNING"
""")

        settings = Settings.from_toml(config_file)

        assert settings.general.log_level == "WARNING"
        assert settings.execution.timeout_ms == DEFAULT_TIMEOUT_MS

    def test_missing_toml_raises(self, tmp_path: Path) -> None:
        """Loading non-existent TOML file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            Settings.from_toml(tmp_path / "nonexistent.toml")

    def test_env_beats_toml(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Environment variables override values from the file."""
        config_file = tmp_path / "config.toml"
        config_file.write_text("""
[execution]
allowed_commands = "git"
timeout_ms = 5000
""")
        monkeypatch.setenv("SAFE_EXEC_TIMEOUT_MS", "750")

        settings = Settings.from_toml(config_file)

        assert settings.execution.timeout_ms == 750
        assert settings.execution.allowed_commands == "git"


class TestSettingsEnvOverride:
    """Tests for environment variable overrides."""

    def test_env_overrides_general(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Environment variables override general settings."""
        monkeypatch.setenv("SAFE_EXEC_LOG_LEVEL", "ERROR")
        monkeypatch.setenv("SAFE_EXEC_JSON_LOGS", "true")

        settings = GeneralSettings()

        assert settings.log_level == "ERROR"
        assert settings.json_logs is True

    def test_prefixed_execution_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """SAFE_EXEC_* variables configure execution."""
        monkeypatch.setenv("SAFE_EXEC_ALLOWED_COMMANDS", "echo,date")
        monkeypatch.setenv("SAFE_EXEC_TIMEOUT_MS", "1500")
        monkeypatch.setenv("SAFE_EXEC_DEFAULT_CWD", "/tmp")

        settings = ExecutionSettings()

        assert settings.allowed_commands == "echo,date"
        assert settings.timeout_ms == 1500
        assert settings.default_cwd == "/tmp"

    def test_legacy_execution_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """ALLOWED_COMMANDS and EXEC_TIMEOUT_MS are honoured."""
        monkeypatch.setenv("ALLOWED_COMMANDS", "node,npm")
        monkeypatch.setenv("EXEC_TIMEOUT_MS", "2500")

        settings = ExecutionSettings()

        assert settings.allowed_commands == "node,npm"
        assert settings.timeout_ms == 2500

    @pytest.mark.parametrize("name", ["ALLOWED_COMMANDS", "SAFE_EXEC_ALLOWED_COMMANDS"])
    def test_empty_allowed_commands_uses_default(
        self, monkeypatch: pytest.MonkeyPatch, name: str
    ) -> None:
        """An empty command list counts as unset."""
        monkeypatch.setenv(name, "")

        config = GatewayConfig.from_settings(Settings())

        assert config.whitelist.commands == DEFAULT_ALLOWED_COMMANDS
        assert config.whitelist.is_allowed("ls")

    @pytest.mark.parametrize("name", ["EXEC_TIMEOUT_MS", "SAFE_EXEC_TIMEOUT_MS"])
    def test_empty_timeout_uses_default(self, monkeypatch: pytest.MonkeyPatch, name: str) -> None:
        """An empty timeout counts as unset."""
        monkeypatch.setenv(name, "")

        assert ExecutionSettings().timeout_ms == DEFAULT_TIMEOUT_MS

    def test_empty_default_cwd_is_unset(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """An empty default working directory counts as unset."""
        monkeypatch.setenv("SAFE_EXEC_DEFAULT_CWD", "")

        assert ExecutionSettings().default_cwd is None

    def test_non_positive_timeout_rejected(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """A zero timeout is a configuration error."""
        monkeypatch.setenv("SAFE_EXEC_TIMEOUT_MS", "0")

        with pytest.raises(ValidationError):
            ExecutionSettings()


class TestGatewayConfig:
    """Tests for the immutable gateway configuration."""

    def test_from_default_settings(self) -> None:
        """Defaults resolve to the default whitelist and timeout."""
        config = GatewayConfig.from_settings(Settings())

        assert config.whitelist.commands == DEFAULT_ALLOWED_COMMANDS
        assert config.default_timeout_ms == 30000
        assert config.default_cwd is None

    def test_from_configured_settings(self) -> None:
        """Configured values flow into the gateway config."""
        settings = Settings(
            execution=ExecutionSettings(
                allowed_commands=" git , make ,",
                timeout_ms=1000,
                default_cwd="/srv",
            )
        )

        config = GatewayConfig.from_settings(settings)

        assert config.whitelist.sorted() == ["git", "make"]
        assert config.default_timeout_ms == 1000
        assert config.default_cwd == "/srv"

    def test_frozen(self) -> None:
        """The config cannot be mutated after construction."""
        config = GatewayConfig.from_settings(Settings())
        with pytest.raises(AttributeError):
            config.default_timeout_ms = 1  # type: ignore[misc]


class TestSettingsToDict:
    """Tests for settings serialization."""

    def test_to_dict(self) -> None:
        """Settings can be converted to a dictionary."""
        result = Settings().to_dict()

        assert set(result) == {"general", "execution", "tracing"}
        assert result["execution"]["timeout_ms"] == DEFAULT_TIMEOUT_MS


class TestGetSettings:
    """Tests for the get_settings function."""

    def test_get_settings_default(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """get_settings returns default settings when no config file."""
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("HOME", str(tmp_path))

        settings = get_settings()

        assert settings.general.log_level == "INFO"
        assert settings.execution.timeout_ms == DEFAULT_TIMEOUT_MS

    def test_get_settings_with_path(self, tmp_path: Path) -> None:
        """get_settings loads from specified path."""
        config_file = tmp_path / "custom.toml"
        config_file.write_text("""
[execution]
timeout_ms = 1234
""")

        settings = get_settings(str(config_file))

        assert settings.execution.timeout_ms == 1234

    def test_get_settings_discovers_local_file(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """A config.toml in the working directory is picked up."""
        (tmp_path / "config.toml").write_text('[general]\nlog_level = "DEBUG"\n')
        monkeypatch.chdir(tmp_path)

        settings = get_settings()

        assert settings.general.log_level == "DEBUG"

    def test_get_settings_cached(self) -> None:
        """get_settings returns cached settings."""
        assert get_settings() is get_settings()
