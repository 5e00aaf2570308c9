"""Shared error types for the protocol engine.

Every error carries a JSON-RPC ``code`` so the request router can turn it
into an error object without a lookup table.
"""

from __future__ import annotations

from typing import Any

# JSON-RPC 2.0 reserved codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
SERVER_ERROR = -32000


class ProtocolError(Exception):
    """Base error for all protocol-engine failures."""

    code: int = SERVER_ERROR


class InvalidToolError(ProtocolError):
    """A tool definition was rejected before registration."""

    code = INVALID_PARAMS

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(f"Invalid tool: {detail}")


class DuplicateToolError(ProtocolError):
    """A tool with the same name is already registered."""

    code = INVALID_PARAMS

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Tool already registered: {name}")


class ToolNotFoundError(ProtocolError):
    """Requested tool does not exist in the registry."""

    code = INVALID_PARAMS

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Tool not found: {name}")


class InvalidArgumentsError(ProtocolError):
    """Raised by a tool handler when its argument payload does not parse.

    :meth:`Service.call_tool` reports this as a ``ToolResult`` with
    ``is_error=True``; it never reaches the caller as an exception.
    """

    code = INVALID_PARAMS

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__("Invalid arguments" + (f": {detail}" if detail else ""))


class HandlerFailureError(ProtocolError):
    """A tool handler raised instead of returning a result."""

    def __init__(self, name: str, detail: str = "") -> None:
        self.name = name
        self.detail = detail
        super().__init__(f"Tool execution failed: {name}" + (f": {detail}" if detail else ""))


class UnsupportedNotificationError(ProtocolError):
    """``notify_list_changed`` was given an unrecognised method identifier."""

    def __init__(self, method: str) -> None:
        self.method = method
        super().__init__(f"Unsupported list change notification: {method}")


class NotificationDeliveryError(ProtocolError):
    """A notification subscriber failed; later subscribers were skipped."""

    def __init__(self, method: str, detail: str = "") -> None:
        self.method = method
        self.detail = detail
        super().__init__(f"Notification handler failed for {method}" + (f": {detail}" if detail else ""))


class RateLimitedError(ProtocolError):
    """An admission wait was abandoned before a token became available."""

    def __init__(self, scope: str, key: str | None = None, reason: str = "") -> None:
        self.scope = scope
        self.key = key
        self.reason = reason
        target = f"{scope}:{key}" if key else scope
        msg = f"Rate limit exceeded for {target}"
        if reason:
            msg += f" ({reason})"
        super().__init__(msg)


class MethodNotFoundError(ProtocolError):
    """The request names a method the service does not expose."""

    code = METHOD_NOT_FOUND

    def __init__(self, method: str) -> None:
        self.method = method
        super().__init__(f"Method not found: {method}")


class InvalidParamsError(ProtocolError):
    """Request parameters failed validation."""

    code = INVALID_PARAMS

    def __init__(self, method: str, detail: str = "") -> None:
        self.method = method
        self.detail = detail
        super().__init__(f"Invalid params for {method}" + (f": {detail}" if detail else ""))


class ConnectionClosedError(ProtocolError):
    """The peer closed the stream before answering a request."""

    def __init__(self, method: str) -> None:
        self.method = method
        super().__init__(f"Connection closed while waiting for {method}")


class RemoteError(ProtocolError):
    """The server answered a client request with a JSON-RPC error object."""

    def __init__(self, method: str, code: int, message: str, data: Any = None) -> None:
        self.method = method
        self.code = code
        self.remote_message = message
        self.data = data
        super().__init__(f"{method} failed ({code}): {message}")
