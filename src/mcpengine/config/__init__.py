"""Server configuration — YAML settings and service assembly."""

from mcpengine.config.errors import ConfigError
from mcpengine.config.loader import SettingsLoader, build_service, resolve_tool
from mcpengine.config.models import CapabilitySettings, ServerSettings, TelemetrySettings

__all__ = [
    "CapabilitySettings",
    "ConfigError",
    "ServerSettings",
    "SettingsLoader",
    "TelemetrySettings",
    "build_service",
    "resolve_tool",
]
