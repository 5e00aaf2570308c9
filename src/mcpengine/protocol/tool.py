"""Tool definitions — descriptive metadata bound to a single invoke operation.

A handler is anything callable with the raw argument bytes that returns a
:class:`ToolResult`, either directly or as an awaitable::

    async def echo(arguments: bytes) -> ToolResult:
        params = json.loads(arguments or b"{}")
        return ToolResult.from_text(params["message"])

    tool = Tool(name="echo", description="Echo the input", handler=echo)
"""

from __future__ import annotations

import inspect
import json
from collections.abc import Callable
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from mcpengine.protocol.errors import InvalidArgumentsError
from mcpengine.protocol.models import ToolInfo, ToolResult

# The single operation a registered tool exposes: raw argument bytes in,
# ToolResult (or an awaitable of one) out.
ToolHandler = Callable[[bytes], Any]


class Tool(BaseModel):
    """A named, invocable unit of server-side functionality.

    ``handler`` is excluded from every dump; use :meth:`info` for the
    listing representation.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True, populate_by_name=True)

    name: str
    description: str = ""
    input_schema: dict[str, Any] = Field(default_factory=dict, alias="inputSchema")
    handler: ToolHandler | None = Field(default=None, exclude=True, repr=False)

    def info(self) -> ToolInfo:
        """Return the handler-free metadata of this tool."""
        return ToolInfo(
            name=self.name,
            description=self.description,
            input_schema=dict(self.input_schema),
        )

    async def invoke(self, arguments: bytes) -> ToolResult:
        """Run the handler, awaiting it when it is a coroutine function."""
        if self.handler is None:
            msg = f"Tool {self.name!r} has no handler"
            raise RuntimeError(msg)
        result = self.handler(arguments)
        if inspect.isawaitable(result):
            result = await result
        if not isinstance(result, ToolResult):
            msg = f"Tool {self.name!r} handler returned {type(result).__name__}, expected ToolResult"
            raise TypeError(msg)
        return result


def parse_arguments(arguments: bytes) -> dict[str, Any]:
    """Decode a JSON object argument payload for a handler.

    Empty payloads decode to ``{}``. Anything that is not a JSON object
    raises :class:`InvalidArgumentsError`.
    """
    if not arguments:
        return {}
    try:
        data = json.loads(arguments)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise InvalidArgumentsError(str(exc)) from exc
    if not isinstance(data, dict):
        raise InvalidArgumentsError(f"expected a JSON object, got {type(data).__name__}")
    return data
