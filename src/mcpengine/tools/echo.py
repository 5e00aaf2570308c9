"""``echo`` — a minimal example tool that returns its ``message`` argument."""

from __future__ import annotations

from mcpengine.protocol.errors import InvalidArgumentsError
from mcpengine.protocol.models import ToolResult
from mcpengine.protocol.tool import Tool, parse_arguments


async def echo(arguments: bytes) -> ToolResult:
    params = parse_arguments(arguments)
    message = params.get("message")
    if not isinstance(message, str):
        raise InvalidArgumentsError("'message' must be a string")
    return ToolResult.from_text(message)


echo_tool = Tool(
    name="echo",
    description="Echo the input",
    input_schema={
        "type": "object",
        "properties": {"message": {"type": "string"}},
        "required": ["message"],
    },
    handler=echo,
)
