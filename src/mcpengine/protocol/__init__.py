"""Protocol engine — tool registry, capability negotiation, notifications, rate limiting."""

from mcpengine.protocol.client import Client
from mcpengine.protocol.errors import (
    ConnectionClosedError,
    DuplicateToolError,
    HandlerFailureError,
    InvalidArgumentsError,
    InvalidParamsError,
    InvalidToolError,
    MethodNotFoundError,
    NotificationDeliveryError,
    ProtocolError,
    RateLimitedError,
    RemoteError,
    ToolNotFoundError,
    UnsupportedNotificationError,
)
from mcpengine.protocol.models import (
    NOTIFY_TOOLS_LIST_CHANGED,
    PROTOCOL_VERSION,
    ClientCapabilities,
    ContentBlock,
    Implementation,
    InitializeRequest,
    InitializeResult,
    JsonRpcRequest,
    JsonRpcResponse,
    ListToolsResult,
    LoggingLevel,
    ServerCapabilities,
    ToolInfo,
    ToolResult,
)
from mcpengine.protocol.notify import NotificationDispatcher
from mcpengine.protocol.ratelimit import RateLimitConfig, RateLimiter, TokenBucket
from mcpengine.protocol.registry import ToolRegistry
from mcpengine.protocol.service import Service
from mcpengine.protocol.tool import Tool, parse_arguments

__all__ = [
    "NOTIFY_TOOLS_LIST_CHANGED",
    "PROTOCOL_VERSION",
    "Client",
    "ClientCapabilities",
    "ConnectionClosedError",
    "ContentBlock",
    "DuplicateToolError",
    "HandlerFailureError",
    "Implementation",
    "InitializeRequest",
    "InitializeResult",
    "InvalidArgumentsError",
    "InvalidParamsError",
    "InvalidToolError",
    "JsonRpcRequest",
    "JsonRpcResponse",
    "ListToolsResult",
    "LoggingLevel",
    "MethodNotFoundError",
    "NotificationDeliveryError",
    "NotificationDispatcher",
    "ProtocolError",
    "RateLimitConfig",
    "RateLimitedError",
    "RateLimiter",
    "RemoteError",
    "ServerCapabilities",
    "Service",
    "TokenBucket",
    "Tool",
    "ToolInfo",
    "ToolNotFoundError",
    "ToolRegistry",
    "ToolResult",
    "UnsupportedNotificationError",
    "parse_arguments",
]
