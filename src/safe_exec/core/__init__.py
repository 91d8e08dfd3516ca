"""Configuration."""

from safe_exec.core.config import (
    DEFAULT_TIMEOUT_MS,
    ExecutionSettings,
    GatewayConfig,
    GeneralSettings,
    Settings,
    TracingSettings,
    clear_settings_cache,
    get_settings,
)

__all__ = [
    "DEFAULT_TIMEOUT_MS",
    "ExecutionSettings",
    "GatewayConfig",
    "GeneralSettings",
    "Settings",
    "TracingSettings",
    "clear_settings_cache",
    "get_settings",
]
