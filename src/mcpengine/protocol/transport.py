"""Stream transport — newline-delimited JSON-RPC over asyncio streams.

Each inbound line is one JSON-RPC message; each response is written as one
line. Requests are handled in arrival order. Notifications the service
emits toward the peer are written to the same stream as they happen.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from typing import TYPE_CHECKING, Any, Protocol

from pydantic import ValidationError

from mcpengine.protocol.errors import INVALID_REQUEST, PARSE_ERROR
from mcpengine.protocol.models import (
    NOTIFY_MESSAGE,
    NOTIFY_PROGRESS,
    NOTIFY_PROMPTS_LIST_CHANGED,
    NOTIFY_RESOURCES_LIST_CHANGED,
    NOTIFY_TOOLS_LIST_CHANGED,
    JSONRPC_VERSION,
    JsonRpcError,
    JsonRpcRequest,
    JsonRpcResponse,
)

if TYPE_CHECKING:
    from mcpengine.protocol.service import Service

logger = logging.getLogger(__name__)

# Longest accepted line on stdio; larger requests are answered with an error.
STDIO_LINE_LIMIT = 16 * 1024 * 1024

# Server-originated notifications forwarded to the peer.
OUTBOUND_NOTIFICATIONS = (
    NOTIFY_TOOLS_LIST_CHANGED,
    NOTIFY_RESOURCES_LIST_CHANGED,
    NOTIFY_PROMPTS_LIST_CHANGED,
    NOTIFY_PROGRESS,
    NOTIFY_MESSAGE,
)


class LineWriter(Protocol):
    """The subset of :class:`asyncio.StreamWriter` the server writes through."""

    def write(self, data: bytes) -> None: ...
    async def drain(self) -> None: ...


def encode_message(message: dict[str, Any]) -> bytes:
    """Frame *message* as one newline-terminated JSON line."""
    return (json.dumps(message) + "\n").encode()


async def read_message_line(reader: asyncio.StreamReader) -> bytes | None:
    """Return the next line, ``b""`` at EOF, or ``None`` for a line over the reader's limit.

    An oversized line is consumed and dropped so the stream stays in sync.
    """
    try:
        return await reader.readuntil(b"\n")
    except asyncio.IncompleteReadError as exc:
        return exc.partial
    except asyncio.LimitOverrunError as exc:
        await _skip_line(reader, exc.consumed)
        return None


async def _skip_line(reader: asyncio.StreamReader, buffered: int) -> None:
    while True:
        await reader.readexactly(buffered)
        try:
            await reader.readuntil(b"\n")
            return
        except asyncio.IncompleteReadError:
            return
        except asyncio.LimitOverrunError as exc:
            buffered = exc.consumed


async def serve_stream(service: Service, reader: asyncio.StreamReader, writer: LineWriter) -> None:
    """Serve *service* until *reader* reaches EOF."""

    def forward(method: str, params: dict[str, Any] | None) -> None:
        message: dict[str, Any] = {"jsonrpc": JSONRPC_VERSION, "method": method}
        if params is not None:
            message["params"] = params
        writer.write(encode_message(message))

    for method in OUTBOUND_NOTIFICATIONS:
        service.subscribe(method, forward)
    try:
        await _serve_lines(service, reader, writer)
    finally:
        for method in OUTBOUND_NOTIFICATIONS:
            service.dispatcher.unsubscribe(method, forward)


async def _serve_lines(service: Service, reader: asyncio.StreamReader, writer: LineWriter) -> None:
    while True:
        line = await read_message_line(reader)
        if line is None:
            logger.warning("Dropped a request line longer than the stream limit")
            response: JsonRpcResponse | None = JsonRpcResponse(
                error=JsonRpcError(code=INVALID_REQUEST, message="Request line exceeds the size limit"),
            )
        elif not line:
            logger.info("Input closed, stopping")
            return
        elif not line.strip():
            continue
        else:
            response = await _process_line(service, line)

        if response is None:
            continue
        writer.write(encode_message(response.to_wire()))
        await writer.drain()


async def _process_line(service: Service, line: bytes) -> JsonRpcResponse | None:
    try:
        raw: Any = json.loads(line)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        logger.debug("Unparseable message: %s", exc)
        return JsonRpcResponse(error=JsonRpcError(code=PARSE_ERROR, message=f"Parse error: {exc}"))

    if not isinstance(raw, dict):
        return JsonRpcResponse(error=JsonRpcError(code=INVALID_REQUEST, message="Request must be an object"))

    try:
        request = JsonRpcRequest.model_validate(raw)
    except ValidationError as exc:
        if "id" not in raw:
            logger.warning("Dropped malformed notification: %s", exc)
            return None
        request_id = raw["id"]
        if not isinstance(request_id, (int, str)):
            request_id = None
        return JsonRpcResponse(id=request_id, error=JsonRpcError(code=INVALID_REQUEST, message=str(exc)))

    return await service.handle(request)


async def serve_stdio(service: Service) -> None:
    """Serve *service* over the process's stdin and stdout."""
    loop = asyncio.get_running_loop()

    reader = asyncio.StreamReader(limit=STDIO_LINE_LIMIT)
    await loop.connect_read_pipe(lambda: asyncio.StreamReaderProtocol(reader), sys.stdin)

    transport, protocol = await loop.connect_write_pipe(asyncio.streams.FlowControlMixin, sys.stdout)
    writer = asyncio.StreamWriter(transport, protocol, reader, loop)

    logger.info("Serving %s %s on stdio", service.server_info.name, service.server_info.version)
    try:
        await serve_stream(service, reader, writer)
    finally:
        writer.close()
