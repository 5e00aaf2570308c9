"""Client — the peer side of the protocol over newline-delimited JSON-RPC.

Performs the handshake, lists tools and calls them against any server that
speaks the same framing as :func:`~mcpengine.protocol.transport.serve_stream`.
Notifications the server sends between responses are routed to a
:class:`NotificationDispatcher`.
"""

from __future__ import annotations

import asyncio
import json
import logging
import shlex
from typing import Any

from mcpengine import __version__
from mcpengine.protocol.errors import (
    METHOD_NOT_FOUND,
    ConnectionClosedError,
    ProtocolError,
    RemoteError,
)
from mcpengine.protocol.models import (
    JSONRPC_VERSION,
    NOTIFY_INITIALIZED,
    PROTOCOL_VERSION,
    ClientCapabilities,
    Implementation,
    InitializeRequest,
    InitializeResult,
    JsonRpcError,
    JsonRpcRequest,
    JsonRpcResponse,
    ListToolsResult,
    ToolInfo,
    ToolResult,
)
from mcpengine.protocol.notify import NotificationDispatcher, Subscriber
from mcpengine.protocol.transport import STDIO_LINE_LIMIT, LineWriter, encode_message, read_message_line

logger = logging.getLogger(__name__)

_DEFAULT_CLIENT_INFO = Implementation(name="mcpengine-client", version=__version__)


class Client:
    """Async context manager speaking to one server over a stream pair.

    Usage::

        async with await Client.spawn("mcpengine serve --echo") as client:
            await client.initialize()
            tools = await client.list_tools()
            result = await client.call_tool("echo", {"message": "hi"})

    Requests are sent one at a time; each waits for the response carrying
    its id.
    """

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: LineWriter,
        *,
        dispatcher: NotificationDispatcher | None = None,
        process: asyncio.subprocess.Process | None = None,
    ) -> None:
        self._reader = reader
        self._writer = writer
        self._dispatcher = dispatcher or NotificationDispatcher()
        self._process = process
        self._lock = asyncio.Lock()
        self._next_id = 1
        self._server: InitializeResult | None = None

    @classmethod
    async def spawn(cls, command: str, env: dict[str, str] | None = None) -> Client:
        """Launch *command* as a subprocess and talk to it over its stdin and stdout."""
        process = await asyncio.create_subprocess_exec(
            *shlex.split(command),
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            env=env,
            limit=STDIO_LINE_LIMIT,
        )
        if process.stdin is None or process.stdout is None:
            msg = f"Could not open pipes to {command!r}"
            raise RuntimeError(msg)
        return cls(process.stdout, process.stdin, process=process)

    async def __aenter__(self) -> Client:
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.close()

    @property
    def server(self) -> InitializeResult | None:
        """The server's handshake reply, once :meth:`initialize` has run."""
        return self._server

    @property
    def dispatcher(self) -> NotificationDispatcher:
        return self._dispatcher

    def subscribe(self, method: str, callback: Subscriber) -> None:
        """Receive server notifications for *method*."""
        self._dispatcher.subscribe(method, callback)

    # -- operations ----------------------------------------------------------

    async def initialize(
        self,
        client_info: Implementation | None = None,
        capabilities: ClientCapabilities | None = None,
    ) -> InitializeResult:
        """Run the handshake, then confirm it with ``notifications/initialized``.

        The client declares sampling support unless *capabilities* says otherwise.
        """
        request = InitializeRequest(
            protocol_version=PROTOCOL_VERSION,
            capabilities=capabilities or ClientCapabilities(sampling=True),
            client_info=client_info or _DEFAULT_CLIENT_INFO,
        )
        result = await self._request("initialize", request.to_wire())
        self._server = InitializeResult.model_validate(result)
        if self._server.protocol_version != PROTOCOL_VERSION:
            logger.warning(
                "Server %s answered with protocol %s",
                self._server.server_info.name,
                self._server.protocol_version,
            )
        await self._notify(NOTIFY_INITIALIZED)
        return self._server

    async def list_tools(self) -> list[ToolInfo]:
        """Return every tool the server lists, following ``nextCursor`` pages."""
        tools: list[ToolInfo] = []
        cursor: str | None = None
        while True:
            params = {"cursor": cursor} if cursor else {}
            page = ListToolsResult.model_validate(await self._request("tools/list", params))
            tools.extend(page.tools)
            if not page.next_cursor:
                return tools
            cursor = page.next_cursor

    async def call_tool(self, name: str, arguments: dict[str, Any] | None = None) -> ToolResult:
        """Invoke *name*; a tool-reported failure comes back with ``is_error`` set."""
        result = await self._request("tools/call", {"name": name, "arguments": arguments or {}})
        return ToolResult.model_validate(result)

    async def ping(self) -> None:
        await self._request("ping", {})

    async def close(self) -> None:
        """Close the outbound stream and stop a spawned server."""
        close = getattr(self._writer, "close", None)
        if close is not None:
            close()
        if self._process is not None:
            if self._process.returncode is None:
                self._process.terminate()
            await self._process.wait()
            self._process = None

    # -- framing -------------------------------------------------------------

    async def _request(self, method: str, params: dict[str, Any]) -> dict[str, Any]:
        async with self._lock:
            request_id = self._next_id
            self._next_id += 1
            request = JsonRpcRequest(method=method, id=request_id, params=params)
            await self._send(request.model_dump(exclude_none=True))

            while True:
                message = await self._receive(method)
                if message.get("id") == request_id and "method" not in message:
                    break
                await self._handle_unsolicited(message)

        response = JsonRpcResponse.model_validate(message)
        if response.error is not None:
            raise RemoteError(method, response.error.code, response.error.message, response.error.data)
        return response.result or {}

    async def _notify(self, method: str, params: dict[str, Any] | None = None) -> None:
        message: dict[str, Any] = {"jsonrpc": JSONRPC_VERSION, "method": method}
        if params is not None:
            message["params"] = params
        async with self._lock:
            await self._send(message)

    async def _send(self, message: dict[str, Any]) -> None:
        self._writer.write(encode_message(message))
        await self._writer.drain()

    async def _receive(self, method: str) -> dict[str, Any]:
        while True:
            line = await read_message_line(self._reader)
            if line is None:
                logger.warning("Skipped an oversized message from the server")
                continue
            if not line:
                raise ConnectionClosedError(method)
            if not line.strip():
                continue
            try:
                message = json.loads(line)
            except (json.JSONDecodeError, UnicodeDecodeError) as exc:
                logger.warning("Skipped unparseable message from the server: %s", exc)
                continue
            if isinstance(message, dict):
                return message
            logger.warning("Skipped non-object message from the server")

    async def _handle_unsolicited(self, message: dict[str, Any]) -> None:
        method = message.get("method")
        if not isinstance(method, str):
            logger.debug("Ignored response for unknown id %r", message.get("id"))
            return
        if "id" not in message:
            params = message.get("params")
            try:
                self._dispatcher.dispatch(method, params if isinstance(params, dict) else None)
            except ProtocolError as exc:
                logger.warning("Dropped %s: %s", method, exc)
            return
        request_id = message["id"]
        if not isinstance(request_id, (int, str)):
            logger.debug("Ignored server request %s with id %r", method, request_id)
            return
        # Server-initiated requests (sampling, roots) are not served.
        logger.debug("Declined server request %s", method)
        reply = JsonRpcResponse(
            id=request_id,
            error=JsonRpcError(code=METHOD_NOT_FOUND, message=f"Method not found: {method}"),
        )
        await self._send(reply.to_wire())
