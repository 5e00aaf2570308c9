"""Example tools bundled with mcpengine."""

from mcpengine.tools.echo import echo_tool

__all__ = ["echo_tool"]
