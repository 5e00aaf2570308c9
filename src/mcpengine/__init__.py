"""mcpengine — server-side Model Context Protocol engine."""

from __future__ import annotations

from typing import TYPE_CHECKING

__version__ = "0.1.0"

if TYPE_CHECKING:
    from mcpengine.protocol.service import Service as Service
    from mcpengine.protocol.tool import Tool as Tool

_EXPORTS = {
    "Service": "mcpengine.protocol.service",
    "Tool": "mcpengine.protocol.tool",
}


def __getattr__(name: str) -> object:
    module_path = _EXPORTS.get(name)
    if module_path is not None:
        import importlib

        mod = importlib.import_module(module_path)
        return getattr(mod, name)
    raise AttributeError(f"module 'mcpengine' has no attribute {name!r}")
