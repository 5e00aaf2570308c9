"""Service — the server-side protocol engine.

Ties together the :class:`ToolRegistry`, :class:`RateLimiter` and
:class:`NotificationDispatcher`: answers the handshake, lists and invokes
tools, and emits list-changed notifications the peer agreed to receive.
A transport hands decoded requests to :meth:`Service.handle`.
"""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import ValidationError

from mcpengine.protocol.errors import (
    INTERNAL_ERROR,
    INVALID_REQUEST,
    HandlerFailureError,
    InvalidArgumentsError,
    InvalidParamsError,
    MethodNotFoundError,
    ProtocolError,
)
from mcpengine.protocol.models import (
    JSONRPC_VERSION,
    METHOD_ALIASES,
    METHOD_CALL_TOOL,
    METHOD_INITIALIZE,
    METHOD_LIST_TOOLS,
    METHOD_PING,
    NOTIFY_TOOLS_LIST_CHANGED,
    PROTOCOL_VERSION,
    CallToolRequest,
    ClientCapabilities,
    Implementation,
    InitializeRequest,
    InitializeResult,
    JsonRpcError,
    JsonRpcRequest,
    JsonRpcResponse,
    ListToolsResult,
    ServerCapabilities,
    ToolResult,
)
from mcpengine.protocol.notify import NotificationDispatcher, Subscriber
from mcpengine.protocol.ratelimit import RateLimitConfig, RateLimiter
from mcpengine.protocol.registry import ToolRegistry
from mcpengine.protocol.tool import Tool
from mcpengine.utils.telemetry import (
    ATTR_CLIENT_NAME,
    ATTR_CLIENT_VERSION,
    ATTR_ERROR_CODE,
    ATTR_METHOD,
    ATTR_PROTOCOL_VERSION,
    ATTR_REQUEST_ID,
    ATTR_TOOL_IS_ERROR,
    ATTR_TOOL_NAME,
    get_tracer,
)

logger = logging.getLogger(__name__)
_tracer = get_tracer(__name__)

# Rate-limit keys use the MCP wire spelling so the default method limits
# apply whichever name the peer calls.
_LIMIT_KEYS = {canonical: wire for wire, canonical in METHOD_ALIASES.items()}

Route = Callable[[dict[str, Any]], Awaitable[dict[str, Any]]]


class Service:
    """Server-side MCP engine.

    Usage::

        service = Service("example", "1.0.0")
        service.register_tool(Tool(name="echo", handler=echo))

        reply = service.initialize(InitializeRequest(client_info=client))
        listing = service.list_tools()
        result = await service.call_tool("echo", b'{"message": "hi"}')
    """

    def __init__(
        self,
        name: str,
        version: str,
        *,
        capabilities: ServerCapabilities | None = None,
        rate_limits: RateLimitConfig | None = None,
        limiter: RateLimiter | None = None,
        dispatcher: NotificationDispatcher | None = None,
        registry: ToolRegistry | None = None,
        instructions: str | None = None,
        admission_timeout: float | None = None,
    ) -> None:
        self._server_info = Implementation(name=name, version=version)
        self._capabilities = capabilities or ServerCapabilities(tools=True, tools_list_changed=True)
        self._caps_lock = threading.Lock()
        self._limiter = limiter or RateLimiter(rate_limits)
        self._dispatcher = dispatcher or NotificationDispatcher()
        self._dispatcher.bind_capabilities(lambda: self._capabilities)
        self._registry = registry or ToolRegistry()
        self._instructions = instructions
        self._admission_timeout = admission_timeout

        self._initialized = False
        self._client_info: Implementation | None = None
        self._client_capabilities: ClientCapabilities | None = None

        self._routes: dict[str, Route] = {
            METHOD_INITIALIZE: self._route_initialize,
            METHOD_LIST_TOOLS: self._route_list_tools,
            METHOD_CALL_TOOL: self._route_call_tool,
            METHOD_PING: self._route_ping,
        }

    # -- state ---------------------------------------------------------------

    @property
    def server_info(self) -> Implementation:
        return self._server_info

    @property
    def capabilities(self) -> ServerCapabilities:
        return self._capabilities

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    @property
    def limiter(self) -> RateLimiter:
        return self._limiter

    @property
    def dispatcher(self) -> NotificationDispatcher:
        return self._dispatcher

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def client_info(self) -> Implementation | None:
        return self._client_info

    @property
    def client_capabilities(self) -> ClientCapabilities | None:
        return self._client_capabilities

    def set_capabilities(self, capabilities: ServerCapabilities) -> None:
        """Replace the advertised capability set; gated notifications see it immediately."""
        with self._caps_lock:
            self._capabilities = capabilities
        logger.info("Server capabilities updated: %s", capabilities.to_wire())

    # -- handshake -----------------------------------------------------------

    def initialize(self, request: InitializeRequest) -> InitializeResult:
        """Answer the handshake with the server's own version and capabilities.

        A differing client protocol version is logged, never rejected.
        """
        if request.protocol_version != PROTOCOL_VERSION:
            logger.warning(
                "Client %s requested protocol %s; answering with %s",
                request.client_info.name,
                request.protocol_version,
                PROTOCOL_VERSION,
            )
        self._client_info = request.client_info
        self._client_capabilities = request.capabilities
        self._initialized = True
        logger.info("Initialized session with %s %s", request.client_info.name, request.client_info.version)

        return InitializeResult(
            protocol_version=PROTOCOL_VERSION,
            capabilities=self._capabilities,
            server_info=self._server_info,
            instructions=self._instructions,
        )

    # -- tools ---------------------------------------------------------------

    def list_tools(self, cursor: str | None = None) -> ListToolsResult:
        """Return every registered tool; *cursor* is accepted but there is a single page."""
        return ListToolsResult(tools=list(self._registry.list()))

    async def call_tool(self, name: str, arguments: bytes = b"", *, timeout: float | None = None) -> ToolResult:
        """Admit, resolve and run the tool *name*.

        Argument errors come back as a ``ToolResult`` with ``is_error`` set;
        any other handler exception is raised as :class:`HandlerFailureError`.
        """
        with _tracer.start_as_current_span("mcp.tool.call") as span:
            span.set_attribute(ATTR_TOOL_NAME, name)

            await self._limiter.allow_tool(name, timeout)
            tool = self._registry.resolve(name)

            try:
                result = await tool.invoke(arguments)
            except InvalidArgumentsError as exc:
                logger.debug("Tool %s rejected its arguments: %s", name, exc)
                result = ToolResult.from_text(str(exc), is_error=True)
            except Exception as exc:
                logger.warning("Tool %s failed: %s", name, exc)
                raise HandlerFailureError(name, str(exc)) from exc

            span.set_attribute(ATTR_TOOL_IS_ERROR, result.is_error)
            return result

    def register_tool(self, tool: Tool) -> None:
        """Register *tool* and announce the change if ``tools.listChanged`` is advertised."""
        self._registry.register(tool)
        self._dispatcher.notify_list_changed(NOTIFY_TOOLS_LIST_CHANGED)

    # -- notifications -------------------------------------------------------

    def subscribe(self, method: str, callback: Subscriber) -> None:
        self._dispatcher.subscribe(method, callback)

    def notify_list_changed(self, method: str) -> None:
        self._dispatcher.notify_list_changed(method)

    # -- request routing -----------------------------------------------------

    async def handle(self, request: JsonRpcRequest) -> JsonRpcResponse | None:
        """Process one decoded request; returns ``None`` for notifications."""
        with _tracer.start_as_current_span("mcp.handle") as span:
            span.set_attribute(ATTR_METHOD, request.method)
            if request.id is not None:
                span.set_attribute(ATTR_REQUEST_ID, str(request.id))

            if request.is_notification:
                self._receive_notification(request)
                return None

            try:
                if request.jsonrpc != JSONRPC_VERSION:
                    return _error_response(request.id, INVALID_REQUEST, "invalid JSON-RPC version")
                canonical = METHOD_ALIASES.get(request.method, request.method)
                await self._limiter.allow(_LIMIT_KEYS.get(canonical, canonical), self._admission_timeout)
                route = self._routes.get(canonical)
                if route is None:
                    raise MethodNotFoundError(request.method)
                result = await route(request.params)
            except ProtocolError as exc:
                span.set_attribute(ATTR_ERROR_CODE, exc.code)
                logger.debug("%s failed: %s", request.method, exc)
                return _error_response(request.id, exc.code, str(exc))
            except Exception as exc:
                span.set_attribute(ATTR_ERROR_CODE, INTERNAL_ERROR)
                logger.exception("Unexpected error handling %s", request.method)
                return _error_response(request.id, INTERNAL_ERROR, str(exc))

            return JsonRpcResponse(id=request.id, result=result)

    def _receive_notification(self, request: JsonRpcRequest) -> None:
        try:
            self._dispatcher.dispatch(request.method, request.params or None)
        except ProtocolError as exc:
            # Notifications have no reply channel.
            logger.warning("Dropped %s: %s", request.method, exc)

    async def _route_initialize(self, params: dict[str, Any]) -> dict[str, Any]:
        try:
            request = InitializeRequest.model_validate(params)
        except ValidationError as exc:
            raise InvalidParamsError(METHOD_INITIALIZE, str(exc)) from exc
        with _tracer.start_as_current_span("mcp.initialize") as span:
            span.set_attribute(ATTR_CLIENT_NAME, request.client_info.name)
            span.set_attribute(ATTR_CLIENT_VERSION, request.client_info.version)
            span.set_attribute(ATTR_PROTOCOL_VERSION, request.protocol_version)
            return self.initialize(request).to_wire()

    async def _route_list_tools(self, params: dict[str, Any]) -> dict[str, Any]:
        cursor = params.get("cursor")
        return self.list_tools(cursor if isinstance(cursor, str) else None).to_wire()

    async def _route_call_tool(self, params: dict[str, Any]) -> dict[str, Any]:
        try:
            request = CallToolRequest.model_validate(params)
        except ValidationError as exc:
            raise InvalidParamsError(METHOD_CALL_TOOL, str(exc)) from exc
        arguments = json.dumps(request.arguments if request.arguments is not None else {}).encode()
        result = await self.call_tool(request.name, arguments, timeout=self._admission_timeout)
        return result.to_wire()

    async def _route_ping(self, params: dict[str, Any]) -> dict[str, Any]:
        return {}


def _error_response(request_id: int | str | None, code: int, message: str) -> JsonRpcResponse:
    return JsonRpcResponse(id=request_id, error=JsonRpcError(code=code, message=message))
