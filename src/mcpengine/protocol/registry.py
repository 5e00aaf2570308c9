"""ToolRegistry — concurrency-safe name-to-tool mapping with unique names.

Readers never lock: the registry publishes an immutable snapshot mapping and
writers replace it wholesale under a lock. A lookup therefore sees either
the mapping before a registration or the one after it, never a tool that
is half-inserted.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from types import MappingProxyType

from mcpengine.protocol.errors import DuplicateToolError, InvalidToolError, ToolNotFoundError
from mcpengine.protocol.models import ToolInfo
from mcpengine.protocol.tool import Tool

logger = logging.getLogger(__name__)


class ToolRegistry:
    """Holds the tools a service exposes.

    Usage::

        registry = ToolRegistry()
        registry.register(Tool(name="echo", handler=echo))

        registry.lookup("echo")   # ToolInfo, no handler
        registry.list()           # tuple[ToolInfo, ...]
    """

    def __init__(self) -> None:
        self._write_lock = threading.Lock()
        self._tools: Mapping[str, Tool] = MappingProxyType({})

    def register(self, tool: Tool) -> None:
        """Insert *tool*; its name must be non-empty and not yet taken."""
        if not tool.name:
            raise InvalidToolError("tool name required")
        if tool.handler is None or not callable(tool.handler):
            raise InvalidToolError(f"tool {tool.name!r} has no handler")

        with self._write_lock:
            current = self._tools
            if tool.name in current:
                raise DuplicateToolError(tool.name)
            updated = dict(current)
            updated[tool.name] = tool
            self._tools = MappingProxyType(updated)

        logger.info("Registered tool %s", tool.name)

    def lookup(self, name: str) -> ToolInfo:
        """Return the descriptive metadata of *name*."""
        return self.resolve(name).info()

    def resolve(self, name: str) -> Tool:
        """Return the full tool, handler included, for invocation by the service."""
        tool = self._tools.get(name)
        if tool is None:
            raise ToolNotFoundError(name)
        return tool

    def list(self) -> tuple[ToolInfo, ...]:
        """Snapshot of every registered tool, handlers stripped."""
        return tuple(tool.info() for tool in self._tools.values())

    def names(self) -> list[str]:
        return list(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)
