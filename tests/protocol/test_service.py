"""Tests for Service orchestration and request routing."""

import json
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from mcpengine.protocol.errors import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    DuplicateToolError,
    HandlerFailureError,
    InvalidArgumentsError,
    RateLimitedError,
    ToolNotFoundError,
)
from mcpengine.protocol.models import (
    NOTIFY_INITIALIZED,
    NOTIFY_TOOLS_LIST_CHANGED,
    PROTOCOL_VERSION,
    Implementation,
    InitializeRequest,
    JsonRpcRequest,
    ServerCapabilities,
    ToolResult,
)
from mcpengine.protocol.ratelimit import RateLimitConfig, RateLimiter
from mcpengine.protocol.service import Service
from mcpengine.protocol.tool import Tool, parse_arguments


def _open_limits() -> RateLimitConfig:
    return RateLimitConfig(
        global_rps=1000,
        global_burst=1000,
        method_rps={},
        method_burst={},
        tool_rps={},
        tool_burst={},
    )


def _echo_tool(name: str = "echo") -> Tool:
    async def handler(arguments: bytes) -> ToolResult:
        params = parse_arguments(arguments)
        if "message" not in params:
            raise InvalidArgumentsError("'message' is required")
        return ToolResult.from_text(params["message"])

    return Tool(
        name=name,
        description="Echo the input",
        input_schema={"type": "object", "properties": {"message": {"type": "string"}}},
        handler=handler,
    )


def _service(**kwargs: Any) -> Service:
    kwargs.setdefault("rate_limits", _open_limits())
    return Service("test", "1.0.0", **kwargs)


def _client() -> Implementation:
    return Implementation(name="test-client", version="1.0.0")


class TestInitialize:
    def test_reports_server_version_and_info(self) -> None:
        service = _service()
        reply = service.initialize(InitializeRequest(client_info=_client()))
        assert reply.protocol_version == PROTOCOL_VERSION
        assert reply.server_info == Implementation(name="test", version="1.0.0")

    def test_default_capabilities_advertise_tools_list_changed(self) -> None:
        reply = _service().initialize(InitializeRequest(client_info=_client()))
        assert reply.capabilities.to_wire() == {"tools": {"listChanged": True}}

    def test_configured_capabilities_applied_verbatim(self) -> None:
        caps = ServerCapabilities(tools_list_changed=False, logging=True, experimental={"x": {}})
        reply = _service(capabilities=caps).initialize(InitializeRequest(client_info=_client()))
        assert reply.capabilities == caps

    def test_version_mismatch_does_not_fail(self) -> None:
        service = _service()
        reply = service.initialize(InitializeRequest(protocol_version="1999-01-01", client_info=_client()))
        assert reply.protocol_version == PROTOCOL_VERSION

    def test_records_handshake(self) -> None:
        service = _service()
        assert service.initialized is False
        request = InitializeRequest.model_validate(
            {"clientInfo": {"name": "c", "version": "2"}, "capabilities": {"sampling": {}}}
        )
        service.initialize(request)
        assert service.initialized is True
        assert service.client_info == Implementation(name="c", version="2")
        assert service.client_capabilities is not None
        assert service.client_capabilities.sampling is True

    def test_idempotent(self) -> None:
        service = _service(instructions="Be brief.")
        first = service.initialize(InitializeRequest(client_info=_client()))
        second = service.initialize(InitializeRequest(client_info=_client()))
        assert first == second
        assert first.instructions == "Be brief."


class TestTools:
    def test_list_tools_strips_handler(self) -> None:
        service = _service()
        service.register_tool(_echo_tool())
        listing = service.list_tools().to_wire()
        assert listing == {
            "tools": [
                {
                    "name": "echo",
                    "description": "Echo the input",
                    "inputSchema": {"type": "object", "properties": {"message": {"type": "string"}}},
                }
            ]
        }

    async def test_call_tool(self) -> None:
        service = _service()
        service.register_tool(_echo_tool())
        result = await service.call_tool("echo", b'{"message": "hi"}')
        assert result.to_wire() == {"content": [{"type": "text", "text": "hi"}]}

    async def test_call_unknown_tool(self) -> None:
        with pytest.raises(ToolNotFoundError, match="missing"):
            await _service().call_tool("missing", b"{}")

    async def test_invalid_arguments_reported_as_data(self) -> None:
        service = _service()
        service.register_tool(_echo_tool())
        result = await service.call_tool("echo", b"{}")
        assert result.is_error is True
        assert "'message' is required" in result.text

    async def test_handler_failure_is_protocol_error(self) -> None:
        def broken(_arguments: bytes) -> ToolResult:
            raise OSError("disk gone")

        service = _service()
        service.register_tool(Tool(name="broken", handler=broken))
        with pytest.raises(HandlerFailureError, match="disk gone") as excinfo:
            await service.call_tool("broken", b"{}")
        assert isinstance(excinfo.value.__cause__, OSError)

    async def test_tool_result_is_error_passes_through(self) -> None:
        service = _service()
        service.register_tool(
            Tool(name="soft", handler=lambda _a: ToolResult.from_text("nope", is_error=True))
        )
        result = await service.call_tool("soft", b"")
        assert result.is_error is True

    async def test_tool_tier_checked_before_lookup(self) -> None:
        limiter = MagicMock(spec=RateLimiter)
        limiter.allow_tool = AsyncMock(side_effect=RateLimitedError("tool", "missing"))
        service = _service(limiter=limiter)
        with pytest.raises(RateLimitedError):
            await service.call_tool("missing", b"{}")
        limiter.allow_tool.assert_awaited_once_with("missing", None)

    async def test_tool_tier_limits_calls(self) -> None:
        limits = _open_limits().model_copy(update={"tool_rps": {"echo": 0.0}, "tool_burst": {"echo": 1}})
        service = _service(rate_limits=limits)
        service.register_tool(_echo_tool())
        await service.call_tool("echo", b'{"message": "a"}')
        with pytest.raises(RateLimitedError):
            await service.call_tool("echo", b'{"message": "b"}')

    def test_register_duplicate(self) -> None:
        service = _service()
        service.register_tool(_echo_tool())
        with pytest.raises(DuplicateToolError):
            service.register_tool(_echo_tool())


class TestListChangedNotifications:
    def test_register_notifies_when_advertised(self) -> None:
        service = _service()
        received: list[str] = []
        service.subscribe(NOTIFY_TOOLS_LIST_CHANGED, lambda method, _params: received.append(method))
        service.register_tool(_echo_tool())
        assert received == [NOTIFY_TOOLS_LIST_CHANGED]

    def test_register_silent_without_capability(self) -> None:
        service = _service(capabilities=ServerCapabilities(tools_list_changed=False))
        received: list[str] = []
        service.subscribe(NOTIFY_TOOLS_LIST_CHANGED, lambda method, _params: received.append(method))
        service.register_tool(_echo_tool())
        assert received == []
        assert "echo" in service.registry

    def test_set_capabilities_toggles_next_call(self) -> None:
        service = _service(capabilities=ServerCapabilities(tools_list_changed=False))
        received: list[str] = []
        service.subscribe(NOTIFY_TOOLS_LIST_CHANGED, lambda method, _params: received.append(method))

        service.register_tool(_echo_tool("a"))
        service.set_capabilities(ServerCapabilities(tools_list_changed=True))
        service.register_tool(_echo_tool("b"))

        assert received == [NOTIFY_TOOLS_LIST_CHANGED]
        assert service.capabilities.tools_list_changed is True


class TestHandle:
    async def test_initialize_request(self) -> None:
        service = _service()
        response = await service.handle(
            JsonRpcRequest(
                id=1,
                method="initialize",
                params={
                    "protocolVersion": PROTOCOL_VERSION,
                    "capabilities": {},
                    "clientInfo": {"name": "c", "version": "1"},
                },
            )
        )
        assert response is not None
        assert response.error is None
        assert response.result is not None
        assert response.result["serverInfo"] == {"name": "test", "version": "1.0.0"}

    async def test_spec_method_names(self) -> None:
        service = _service()
        service.register_tool(_echo_tool())
        listing = await service.handle(JsonRpcRequest(id=1, method="ListTools"))
        call = await service.handle(
            JsonRpcRequest(id=2, method="CallTool", params={"name": "echo", "arguments": {"message": "hi"}})
        )
        assert listing is not None and listing.result is not None
        assert [t["name"] for t in listing.result["tools"]] == ["echo"]
        assert call is not None
        assert call.result == {"content": [{"type": "text", "text": "hi"}]}

    async def test_tools_call_unknown_tool(self) -> None:
        response = await _service().handle(
            JsonRpcRequest(id=3, method="tools/call", params={"name": "missing", "arguments": {}})
        )
        assert response is not None
        assert response.error is not None
        assert response.error.code == INVALID_PARAMS
        assert "missing" in response.error.message

    async def test_tools_call_without_arguments(self) -> None:
        seen: list[bytes] = []

        def handler(arguments: bytes) -> ToolResult:
            seen.append(arguments)
            return ToolResult.from_text("ok")

        service = _service()
        service.register_tool(Tool(name="noargs", handler=handler))
        await service.handle(JsonRpcRequest(id=4, method="tools/call", params={"name": "noargs"}))
        assert json.loads(seen[0]) == {}

    async def test_invalid_params(self) -> None:
        response = await _service().handle(JsonRpcRequest(id=5, method="tools/call", params={}))
        assert response is not None and response.error is not None
        assert response.error.code == INVALID_PARAMS

    async def test_unknown_method(self) -> None:
        response = await _service().handle(JsonRpcRequest(id=6, method="resources/list"))
        assert response is not None and response.error is not None
        assert response.error.code == METHOD_NOT_FOUND

    async def test_bad_jsonrpc_version(self) -> None:
        response = await _service().handle(JsonRpcRequest(jsonrpc="1.0", id=7, method="ping"))
        assert response is not None and response.error is not None
        assert response.error.code == INVALID_REQUEST

    async def test_ping(self) -> None:
        response = await _service().handle(JsonRpcRequest(id=8, method="ping"))
        assert response is not None
        assert response.to_wire() == {"jsonrpc": "2.0", "id": 8, "result": {}}

    async def test_rate_limit_keyed_by_wire_method_name(self) -> None:
        limiter = MagicMock(spec=RateLimiter)
        limiter.allow = AsyncMock()
        service = _service(limiter=limiter)
        await service.handle(JsonRpcRequest(id=1, method="ListTools"))
        await service.handle(JsonRpcRequest(id=2, method="ping"))
        assert [c.args[0] for c in limiter.allow.await_args_list] == ["tools/list", "ping"]

    async def test_rate_limited_request_returns_error(self) -> None:
        limits = _open_limits().model_copy(update={"global_rps": 0.0, "global_burst": 1})
        service = _service(rate_limits=limits)
        first = await service.handle(JsonRpcRequest(id=1, method="ping"))
        second = await service.handle(JsonRpcRequest(id=2, method="ping"))
        assert first is not None and first.error is None
        assert second is not None and second.error is not None
        assert "Rate limit exceeded" in second.error.message

    async def test_handler_failure_maps_to_server_error(self) -> None:
        def broken(_arguments: bytes) -> ToolResult:
            raise RuntimeError("kaput")

        service = _service()
        service.register_tool(Tool(name="broken", handler=broken))
        response = await service.handle(JsonRpcRequest(id=9, method="tools/call", params={"name": "broken"}))
        assert response is not None and response.error is not None
        assert "kaput" in response.error.message

    async def test_unexpected_error_maps_to_internal_error(self) -> None:
        limiter = MagicMock(spec=RateLimiter)
        limiter.allow = AsyncMock(side_effect=KeyError("boom"))
        response = await _service(limiter=limiter).handle(JsonRpcRequest(id=10, method="ping"))
        assert response is not None and response.error is not None
        assert response.error.code == INTERNAL_ERROR

    async def test_notification_dispatched_without_response(self) -> None:
        service = _service()
        received: list[str] = []
        service.subscribe(NOTIFY_INITIALIZED, lambda method, _params: received.append(method))
        response = await service.handle(JsonRpcRequest(method=NOTIFY_INITIALIZED))
        assert response is None
        assert received == [NOTIFY_INITIALIZED]

    async def test_failing_notification_subscriber_is_dropped(self) -> None:
        service = _service()

        def failing(_method: str, _params: dict[str, Any] | None) -> None:
            raise ValueError("nope")

        service.subscribe("notifications/cancelled", failing)
        response = await service.handle(
            JsonRpcRequest(method="notifications/cancelled", params={"requestId": 1})
        )
        assert response is None
