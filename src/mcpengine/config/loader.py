"""Server settings loading and service assembly."""

from __future__ import annotations

import importlib
import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from mcpengine.config.errors import ConfigError
from mcpengine.config.models import ServerSettings
from mcpengine.protocol.service import Service
from mcpengine.protocol.tool import Tool

logger = logging.getLogger(__name__)


class SettingsLoader:
    """Load and validate a server YAML file into :class:`ServerSettings`."""

    def __init__(self, path: Path) -> None:
        self._path = path

    def load(self) -> ServerSettings:
        """Read YAML, interpolate env vars, and validate.

        ``${VAR}`` and ``$VAR`` are expanded with :func:`os.path.expandvars`
        before parsing. An empty file yields the default settings.

        Raises:
            ConfigError: On read errors, YAML parse errors or schema validation failures.
        """
        try:
            raw = self._path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ConfigError(f"Cannot read {self._path}: {exc}") from exc

        expanded = os.path.expandvars(raw)

        try:
            data: Any = yaml.safe_load(expanded)
        except yaml.YAMLError as exc:
            raise ConfigError(f"YAML parse error: {exc}") from exc

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigError("Server YAML must be a mapping")

        try:
            return ServerSettings.model_validate(data)
        except ValidationError as exc:
            raise ConfigError(str(exc)) from exc


def resolve_tool(reference: str) -> Tool:
    """Import ``package.module:attribute`` and return the :class:`Tool` it names.

    The attribute may be a ``Tool`` or a zero-argument callable returning one.
    """
    module_path, _, attr = reference.partition(":")
    try:
        module = importlib.import_module(module_path)
    except ImportError as exc:
        raise ConfigError(f"Cannot import {module_path!r} for tool reference {reference!r}: {exc}") from exc

    try:
        target = getattr(module, attr)
    except AttributeError as exc:
        raise ConfigError(f"Module {module_path!r} has no attribute {attr!r}") from exc

    if not isinstance(target, Tool) and callable(target):
        target = target()
    if not isinstance(target, Tool):
        raise ConfigError(f"Tool reference {reference!r} resolved to {type(target).__name__}, expected Tool")
    return target


def build_service(settings: ServerSettings) -> Service:
    """Construct a :class:`Service` from *settings* and register its tools."""
    service = Service(
        settings.name,
        settings.version,
        capabilities=settings.capabilities.to_capabilities(),
        rate_limits=settings.rate_limits,
        instructions=settings.instructions,
        admission_timeout=settings.admission_timeout,
    )
    for reference in settings.tools:
        service.register_tool(resolve_tool(reference))
    logger.debug("Built service %s with %d tool(s)", settings.name, len(service.registry))
    return service
