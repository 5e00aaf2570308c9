"""Tests for MCP wire models."""

from mcpengine.protocol.models import (
    NOTIFY_PROMPTS_LIST_CHANGED,
    NOTIFY_ROOTS_LIST_CHANGED,
    NOTIFY_TOOLS_LIST_CHANGED,
    PROTOCOL_VERSION,
    CallToolRequest,
    ClientCapabilities,
    ContentBlock,
    Implementation,
    InitializeRequest,
    InitializeResult,
    JsonRpcError,
    JsonRpcRequest,
    JsonRpcResponse,
    ListToolsResult,
    LoggingMessageParams,
    ProgressParams,
    ServerCapabilities,
    ToolInfo,
    ToolResult,
)


class TestServerCapabilities:
    def test_default_advertises_nothing(self) -> None:
        assert ServerCapabilities().to_wire() == {}

    def test_empty_wire_set_round_trips(self) -> None:
        caps = ServerCapabilities.model_validate({})
        assert caps.tools is False
        assert caps.to_wire() == {}

    def test_tools_without_list_changed(self) -> None:
        assert ServerCapabilities(tools=True).to_wire() == {"tools": {}}
        assert ServerCapabilities.model_validate({"tools": {}}).tools is True

    def test_sub_flag_implies_feature(self) -> None:
        caps = ServerCapabilities(tools_list_changed=True, resources_subscribe=True)
        assert caps.tools is True
        assert caps.resources is True

    def test_list_changed_nested_on_wire(self) -> None:
        caps = ServerCapabilities(tools_list_changed=True, prompts_list_changed=True)
        assert caps.to_wire() == {
            "prompts": {"listChanged": True},
            "tools": {"listChanged": True},
        }

    def test_resources_flags(self) -> None:
        caps = ServerCapabilities(resources_subscribe=True, resources_list_changed=True)
        assert caps.to_wire()["resources"] == {"subscribe": True, "listChanged": True}

    def test_parse_wire_shape(self) -> None:
        caps = ServerCapabilities.model_validate(
            {
                "tools": {"listChanged": True},
                "resources": {"subscribe": True},
                "logging": {},
                "experimental": {"beta": {}},
            }
        )
        assert caps.tools_list_changed is True
        assert caps.resources is True
        assert caps.resources_subscribe is True
        assert caps.resources_list_changed is False
        assert caps.logging is True
        assert caps.experimental == {"beta": {}}

    def test_wire_round_trip(self) -> None:
        caps = ServerCapabilities(tools_list_changed=True, roots_list_changed=True, logging=True)
        assert ServerCapabilities.model_validate(caps.to_wire()) == caps

    def test_list_changed_enabled(self) -> None:
        caps = ServerCapabilities(tools_list_changed=True)
        assert caps.list_changed_enabled(NOTIFY_TOOLS_LIST_CHANGED) is True
        assert caps.list_changed_enabled(NOTIFY_PROMPTS_LIST_CHANGED) is False
        assert caps.list_changed_enabled(NOTIFY_ROOTS_LIST_CHANGED) is False
        assert caps.list_changed_enabled("bogus") is False


class TestClientCapabilities:
    def test_parse_sampling_presence(self) -> None:
        caps = ClientCapabilities.model_validate({"sampling": {}})
        assert caps.sampling is True
        assert caps.roots is False

    def test_roots_list_changed(self) -> None:
        caps = ClientCapabilities.model_validate({"roots": {"listChanged": True}})
        assert caps.roots is True
        assert caps.roots_list_changed is True
        assert caps.to_wire() == {"roots": {"listChanged": True}}

    def test_empty(self) -> None:
        assert ClientCapabilities().to_wire() == {}


class TestHandshake:
    def test_request_from_wire(self) -> None:
        req = InitializeRequest.model_validate(
            {
                "protocolVersion": "2024-11-05",
                "capabilities": {"sampling": {}},
                "clientInfo": {"name": "client", "version": "1.0.0"},
            }
        )
        assert req.client_info == Implementation(name="client", version="1.0.0")
        assert req.capabilities.sampling is True

    def test_request_defaults_protocol_version(self) -> None:
        req = InitializeRequest(client_info=Implementation(name="c", version="1"))
        assert req.protocol_version == PROTOCOL_VERSION

    def test_result_to_wire(self) -> None:
        result = InitializeResult(
            capabilities=ServerCapabilities(tools_list_changed=True),
            server_info=Implementation(name="srv", version="2.0"),
        )
        assert result.to_wire() == {
            "protocolVersion": PROTOCOL_VERSION,
            "capabilities": {"tools": {"listChanged": True}},
            "serverInfo": {"name": "srv", "version": "2.0"},
        }

    def test_result_includes_instructions(self) -> None:
        result = InitializeResult(
            capabilities=ServerCapabilities(),
            server_info=Implementation(name="srv", version="2.0"),
            instructions="Use echo.",
        )
        assert result.to_wire()["instructions"] == "Use echo."


class TestContent:
    def test_text_block_omits_empty_fields(self) -> None:
        assert ContentBlock.from_text("hi").to_wire() == {"type": "text", "text": "hi"}

    def test_binary_data_is_base64_on_wire(self) -> None:
        block = ContentBlock(type="image", data=b"\x00\x01", mime_type="image/png")
        assert block.to_wire() == {"type": "image", "data": "AAE=", "mimeType": "image/png"}

    def test_binary_data_decoded_from_wire(self) -> None:
        block = ContentBlock.model_validate({"type": "image", "data": "AAE=", "mimeType": "image/png"})
        assert block.data == b"\x00\x01"
        assert block.mime_type == "image/png"


class TestToolResult:
    def test_success_omits_is_error(self) -> None:
        assert ToolResult.from_text("hi").to_wire() == {"content": [{"type": "text", "text": "hi"}]}

    def test_error_flag_on_wire(self) -> None:
        wire = ToolResult.from_text("bad input", is_error=True).to_wire()
        assert wire["isError"] is True

    def test_meta_passthrough(self) -> None:
        result = ToolResult(content=[], meta={"trace": "abc"})
        assert result.to_wire() == {"content": [], "meta": {"trace": "abc"}}

    def test_meta_accepts_underscore_spelling(self) -> None:
        result = ToolResult.model_validate({"content": [], "_meta": {"trace": "abc"}})
        assert result.meta == {"trace": "abc"}
        assert result.to_wire() == {"content": [], "meta": {"trace": "abc"}}

    def test_text_concatenates_text_blocks(self) -> None:
        result = ToolResult(
            content=[
                ContentBlock.from_text("a"),
                ContentBlock(type="image", data=b"x"),
                ContentBlock.from_text("b"),
            ]
        )
        assert result.text == "ab"


class TestToolListing:
    def test_tool_info_alias(self) -> None:
        info = ToolInfo(name="echo", input_schema={"type": "object"})
        assert info.to_wire() == {"name": "echo", "description": "", "inputSchema": {"type": "object"}}

    def test_list_result_omits_cursor(self) -> None:
        assert ListToolsResult().to_wire() == {"tools": []}

    def test_call_request_arguments_optional(self) -> None:
        req = CallToolRequest.model_validate({"name": "echo"})
        assert req.arguments is None


class TestJsonRpc:
    def test_request_without_id_is_notification(self) -> None:
        assert JsonRpcRequest(method="notifications/initialized").is_notification is True
        assert JsonRpcRequest(method="ping", id=1).is_notification is False

    def test_result_response(self) -> None:
        resp = JsonRpcResponse(id=7, result={})
        assert resp.to_wire() == {"jsonrpc": "2.0", "id": 7, "result": {}}

    def test_error_response_keeps_null_id(self) -> None:
        resp = JsonRpcResponse(error=JsonRpcError(code=-32700, message="Parse error"))
        assert resp.to_wire() == {
            "jsonrpc": "2.0",
            "id": None,
            "error": {"code": -32700, "message": "Parse error"},
        }


class TestNotificationParams:
    def test_progress_shape(self) -> None:
        params = ProgressParams(progress_token="token1", progress=50, total=100)
        assert params.to_wire() == {"progressToken": "token1", "progress": 50, "total": 100}

    def test_progress_omits_total(self) -> None:
        assert "total" not in ProgressParams(progress_token=1, progress=0.5).to_wire()

    def test_logging_shape(self) -> None:
        params = LoggingMessageParams(level="info", logger="test", data="hello")
        assert params.to_wire() == {"level": "info", "logger": "test", "data": "hello"}

    def test_logging_keeps_null_data(self) -> None:
        params = LoggingMessageParams(level="error", data=None)
        assert params.to_wire() == {"level": "error", "data": None}
