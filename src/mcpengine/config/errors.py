"""Configuration error types."""

from __future__ import annotations


class ConfigError(Exception):
    """Raised when a server YAML fails parsing or validation, or a tool reference cannot be resolved."""
