"""MCP models — JSON-RPC 2.0 envelopes, handshake, tool and notification payloads.

All wire-facing models serialize through :meth:`WireModel.to_wire`, which
emits camelCase aliases and drops unset optional fields.
"""

from __future__ import annotations

import base64
from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_serializer, field_validator, model_serializer, model_validator

PROTOCOL_VERSION = "2024-11-05"
JSONRPC_VERSION = "2.0"

# ---------------------------------------------------------------------------
# Method identifiers
# ---------------------------------------------------------------------------

METHOD_INITIALIZE = "Initialize"
METHOD_LIST_TOOLS = "ListTools"
METHOD_CALL_TOOL = "CallTool"
METHOD_PING = "ping"

# MCP wire spellings routed to the same handlers.
METHOD_ALIASES: dict[str, str] = {
    "initialize": METHOD_INITIALIZE,
    "tools/list": METHOD_LIST_TOOLS,
    "tools/call": METHOD_CALL_TOOL,
}

NOTIFY_TOOLS_LIST_CHANGED = "notifications/tools/list_changed"
NOTIFY_RESOURCES_LIST_CHANGED = "notifications/resources/list_changed"
NOTIFY_PROMPTS_LIST_CHANGED = "notifications/prompts/list_changed"
NOTIFY_ROOTS_LIST_CHANGED = "notifications/roots/list_changed"
NOTIFY_PROGRESS = "notifications/progress"
NOTIFY_MESSAGE = "notifications/message"
NOTIFY_CANCELLED = "notifications/cancelled"
NOTIFY_INITIALIZED = "notifications/initialized"

LIST_CHANGED_METHODS = frozenset(
    {
        NOTIFY_TOOLS_LIST_CHANGED,
        NOTIFY_RESOURCES_LIST_CHANGED,
        NOTIFY_PROMPTS_LIST_CHANGED,
        NOTIFY_ROOTS_LIST_CHANGED,
    }
)


class WireModel(BaseModel):
    """Base for models that travel over the wire."""

    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        """Dump with aliases, omitting ``None`` fields."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ---------------------------------------------------------------------------
# JSON-RPC 2.0 envelope
# ---------------------------------------------------------------------------


class JsonRpcRequest(BaseModel):
    """A JSON-RPC 2.0 request or notification (no ``id``)."""

    jsonrpc: str = JSONRPC_VERSION
    method: str
    id: int | str | None = None
    params: dict[str, Any] = {}

    @property
    def is_notification(self) -> bool:
        return self.id is None


class JsonRpcError(BaseModel):
    """A JSON-RPC 2.0 error object."""

    code: int
    message: str
    data: Any = None


class JsonRpcResponse(BaseModel):
    """A JSON-RPC 2.0 response message."""

    jsonrpc: str = JSONRPC_VERSION
    id: int | str | None = None
    result: dict[str, Any] | None = None
    error: JsonRpcError | None = None

    def to_wire(self) -> dict[str, Any]:
        """Dump for the transport; ``id`` is always present, even when null."""
        data: dict[str, Any] = {"jsonrpc": self.jsonrpc, "id": self.id}
        if self.error is not None:
            data["error"] = self.error.model_dump(exclude_none=True)
        else:
            data["result"] = self.result if self.result is not None else {}
        return data


# ---------------------------------------------------------------------------
# Participants and capabilities
# ---------------------------------------------------------------------------


class Implementation(WireModel):
    """Identifies a protocol participant (client or server)."""

    model_config = ConfigDict(frozen=True)

    name: str
    version: str


def _flatten_feature(data: dict[str, Any], feature: str, flags: tuple[str, ...]) -> None:
    """Rewrite ``{"tools": {"listChanged": true}}`` into flat boolean flags."""
    block = data.get(feature)
    if not isinstance(block, dict):
        return
    data[feature] = True
    for flag in flags:
        snake = "".join("_" + c.lower() if c.isupper() else c for c in flag)
        data[f"{feature}_{snake}"] = bool(block.get(flag, False))


def _imply_feature(data: dict[str, Any], feature: str, flags: tuple[str, ...]) -> None:
    """A set sub-flag such as ``tools_list_changed`` implies its feature."""
    if any(data.get(f"{feature}_{flag}") for flag in flags):
        data.setdefault(feature, True)


class ServerCapabilities(WireModel):
    """Features the server advertises during the handshake.

    Held as flat boolean flags; :meth:`to_wire` produces the nested wire
    shape and validation accepts either form. A feature absent from the
    wire is off, so an empty capability set round-trips as ``{}``.
    """

    model_config = ConfigDict(frozen=True)

    tools: bool = False
    tools_list_changed: bool = False
    resources: bool = False
    resources_subscribe: bool = False
    resources_list_changed: bool = False
    prompts: bool = False
    prompts_list_changed: bool = False
    roots_list_changed: bool = False
    logging: bool = False
    experimental: dict[str, Any] | None = None

    @model_validator(mode="before")
    @classmethod
    def _from_wire(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        flat = dict(data)
        _flatten_feature(flat, "tools", ("listChanged",))
        _flatten_feature(flat, "resources", ("subscribe", "listChanged"))
        _flatten_feature(flat, "prompts", ("listChanged",))
        _imply_feature(flat, "tools", ("list_changed",))
        _imply_feature(flat, "resources", ("subscribe", "list_changed"))
        _imply_feature(flat, "prompts", ("list_changed",))
        roots = flat.pop("roots", None)
        if isinstance(roots, dict):
            flat["roots_list_changed"] = bool(roots.get("listChanged", False))
        if isinstance(flat.get("logging"), dict):
            flat["logging"] = True
        return flat

    def list_changed_enabled(self, method: str) -> bool:
        """Return whether the list-changed notification *method* may be sent."""
        return {
            NOTIFY_TOOLS_LIST_CHANGED: self.tools_list_changed,
            NOTIFY_RESOURCES_LIST_CHANGED: self.resources_list_changed,
            NOTIFY_PROMPTS_LIST_CHANGED: self.prompts_list_changed,
            NOTIFY_ROOTS_LIST_CHANGED: self.roots_list_changed,
        }.get(method, False)

    @model_serializer(mode="plain")
    def _to_nested(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        if self.experimental is not None:
            out["experimental"] = self.experimental
        if self.logging:
            out["logging"] = {}
        if self.prompts or self.prompts_list_changed:
            out["prompts"] = {"listChanged": True} if self.prompts_list_changed else {}
        if self.resources or self.resources_subscribe or self.resources_list_changed:
            block: dict[str, Any] = {}
            if self.resources_subscribe:
                block["subscribe"] = True
            if self.resources_list_changed:
                block["listChanged"] = True
            out["resources"] = block
        if self.roots_list_changed:
            out["roots"] = {"listChanged": True}
        if self.tools or self.tools_list_changed:
            out["tools"] = {"listChanged": True} if self.tools_list_changed else {}
        return out


class ClientCapabilities(WireModel):
    """Features the client declares in its handshake request."""

    model_config = ConfigDict(frozen=True)

    sampling: bool = False
    roots: bool = False
    roots_list_changed: bool = False
    experimental: dict[str, Any] | None = None

    @model_validator(mode="before")
    @classmethod
    def _from_wire(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        flat = dict(data)
        if isinstance(flat.get("sampling"), dict):
            flat["sampling"] = True
        _flatten_feature(flat, "roots", ("listChanged",))
        return flat

    @model_serializer(mode="plain")
    def _to_nested(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        if self.experimental is not None:
            out["experimental"] = self.experimental
        if self.sampling:
            out["sampling"] = {}
        if self.roots or self.roots_list_changed:
            out["roots"] = {"listChanged": True} if self.roots_list_changed else {}
        return out


# ---------------------------------------------------------------------------
# Handshake
# ---------------------------------------------------------------------------


class InitializeRequest(WireModel):
    """Parameters of the ``initialize`` request."""

    protocol_version: str = Field(default=PROTOCOL_VERSION, alias="protocolVersion")
    capabilities: ClientCapabilities = Field(default_factory=ClientCapabilities)
    client_info: Implementation = Field(alias="clientInfo")


class InitializeResult(WireModel):
    """The server's handshake reply."""

    protocol_version: str = Field(default=PROTOCOL_VERSION, alias="protocolVersion")
    capabilities: ServerCapabilities
    server_info: Implementation = Field(alias="serverInfo")
    instructions: str | None = None


# ---------------------------------------------------------------------------
# Tool payloads
# ---------------------------------------------------------------------------


class ContentBlock(WireModel):
    """One piece of displayable tool output (text, image, audio, ...)."""

    type: str = "text"
    text: str | None = None
    data: bytes | None = None
    mime_type: str | None = Field(default=None, alias="mimeType")

    @field_validator("data", mode="before")
    @classmethod
    def _decode_data(cls, value: Any) -> Any:
        if isinstance(value, str):
            return base64.b64decode(value)
        return value

    @field_serializer("data", when_used="json-unless-none")
    def _encode_data(self, value: bytes) -> str:
        return base64.b64encode(value).decode("ascii")

    @classmethod
    def from_text(cls, text: str) -> ContentBlock:
        return cls(type="text", text=text)


class ToolResult(WireModel):
    """The outcome of one tool invocation.

    ``is_error`` marks a failure reported *as data* by the tool itself; it
    is a successful protocol response, unlike a raised error.
    """

    content: list[ContentBlock] = []
    is_error: bool = Field(default=False, alias="isError")
    meta: dict[str, Any] | None = Field(default=None, validation_alias=AliasChoices("meta", "_meta"))

    @classmethod
    def from_text(cls, text: str, *, is_error: bool = False) -> ToolResult:
        """Create a ToolResult with a single text content block."""
        return cls(content=[ContentBlock.from_text(text)], is_error=is_error)

    @property
    def text(self) -> str:
        """Concatenated text of all text blocks."""
        return "".join(block.text or "" for block in self.content if block.type == "text")

    def to_wire(self) -> dict[str, Any]:
        data = super().to_wire()
        if not self.is_error:
            data.pop("isError", None)
        return data


class ToolInfo(WireModel):
    """Descriptive metadata of a registered tool, as returned by ``tools/list``."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str = ""
    input_schema: dict[str, Any] = Field(default_factory=dict, alias="inputSchema")


class ListToolsResult(WireModel):
    """Reply to ``tools/list``."""

    tools: list[ToolInfo] = []
    next_cursor: str | None = Field(default=None, alias="nextCursor")


class CallToolRequest(WireModel):
    """Parameters of ``tools/call``."""

    name: str
    arguments: dict[str, Any] | None = None


# ---------------------------------------------------------------------------
# Notification payloads
# ---------------------------------------------------------------------------


class LoggingLevel(str, Enum):
    """Severity of a log message notification (RFC 5424)."""

    DEBUG = "debug"
    INFO = "info"
    NOTICE = "notice"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"
    ALERT = "alert"
    EMERGENCY = "emergency"


class ProgressParams(WireModel):
    """Parameters of ``notifications/progress``."""

    progress_token: str | int = Field(alias="progressToken")
    progress: float
    total: float | None = None


class LoggingMessageParams(WireModel):
    """Parameters of ``notifications/message``."""

    level: LoggingLevel
    logger: str | None = None
    data: Any

    def to_wire(self) -> dict[str, Any]:
        data = super().to_wire()
        # ``data`` is required on the wire even when it is null.
        data.setdefault("data", None)
        return data


class CancelledParams(WireModel):
    """Parameters of ``notifications/cancelled``."""

    request_id: str | int = Field(alias="requestId")
    reason: str | None = None
