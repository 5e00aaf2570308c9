"""OpenTelemetry tracing helpers for mcpengine.

The rest of the package calls :func:`get_tracer` and never checks whether
the SDK is installed. Without a configured SDK the API hands back no-op
tracers, so instrumentation costs next to nothing.

Usage::

    from mcpengine.utils.telemetry import ATTR_TOOL_NAME, get_tracer

    _tracer = get_tracer(__name__)

    with _tracer.start_as_current_span("mcp.tool.call") as span:
        span.set_attribute(ATTR_TOOL_NAME, name)

Call :func:`configure_telemetry` once at startup to export spans (requires
the ``otel`` extra: ``pip install mcpengine[otel]``).
"""

from __future__ import annotations

import sys
from typing import Any

from opentelemetry import trace

# ---------------------------------------------------------------------------
# Semantic attribute keys
# ---------------------------------------------------------------------------

ATTR_METHOD = "mcp.method"
ATTR_REQUEST_ID = "mcp.request.id"
ATTR_TOOL_NAME = "mcp.tool.name"
ATTR_TOOL_IS_ERROR = "mcp.tool.is_error"
ATTR_CLIENT_NAME = "mcp.client.name"
ATTR_CLIENT_VERSION = "mcp.client.version"
ATTR_PROTOCOL_VERSION = "mcp.protocol_version"
ATTR_ERROR_CODE = "mcp.error.code"

_INSTRUMENTATION_NAME = "mcpengine"


def get_tracer(name: str | None = None) -> trace.Tracer:
    """Return a :class:`~opentelemetry.trace.Tracer` for *name*.

    If the OpenTelemetry SDK has not been configured the returned tracer
    is a no-op.
    """
    return trace.get_tracer(name or _INSTRUMENTATION_NAME)


def build_tracer_provider(
    *,
    service_name: str = "mcpengine",
    console: bool = False,
    otlp_endpoint: str | None = None,
) -> Any:
    """Build an SDK tracer provider without installing it globally.

    Parameters
    ----------
    service_name:
        The ``service.name`` resource attribute.
    console:
        If ``True``, print finished spans as JSON to stderr. Stdout carries
        the protocol stream and is never written to.
    otlp_endpoint:
        If set, export spans via OTLP/gRPC to this endpoint.

    Raises
    ------
    ImportError
        If the ``opentelemetry-sdk`` package is not installed.
    """
    try:
        from opentelemetry.sdk.resources import Resource  # pyright: ignore[reportMissingImports,reportUnknownVariableType]
        from opentelemetry.sdk.trace import TracerProvider  # pyright: ignore[reportMissingImports,reportUnknownVariableType]
        from opentelemetry.sdk.trace.export import BatchSpanProcessor, SimpleSpanProcessor  # pyright: ignore[reportMissingImports,reportUnknownVariableType]
    except ImportError as exc:
        msg = (
            "opentelemetry-sdk is required for configure_telemetry(). "
            "Install it with: pip install mcpengine[otel]"
        )
        raise ImportError(msg) from exc

    resource = Resource.create({"service.name": service_name})  # pyright: ignore[reportUnknownVariableType,reportUnknownMemberType]
    provider = TracerProvider(resource=resource)  # pyright: ignore[reportUnknownVariableType]

    if console:
        _add_stderr_exporter(provider, SimpleSpanProcessor)

    if otlp_endpoint:
        _add_otlp_exporter(provider, BatchSpanProcessor, otlp_endpoint)

    return provider


def configure_telemetry(
    *,
    service_name: str = "mcpengine",
    console: bool = False,
    otlp_endpoint: str | None = None,
) -> Any:
    """Install an SDK tracer provider globally (requires ``mcpengine[otel]``).

    Takes the same arguments as :func:`build_tracer_provider` and returns
    the installed provider.
    """
    provider = build_tracer_provider(service_name=service_name, console=console, otlp_endpoint=otlp_endpoint)
    trace.set_tracer_provider(provider)  # pyright: ignore[reportUnknownArgumentType]
    return provider


def _add_stderr_exporter(provider: Any, processor_cls: Any) -> None:
    from opentelemetry.sdk.trace.export import ConsoleSpanExporter  # pyright: ignore[reportMissingImports,reportUnknownVariableType]

    provider.add_span_processor(processor_cls(ConsoleSpanExporter(out=sys.stderr)))


def _add_otlp_exporter(provider: Any, processor_cls: Any, endpoint: str) -> None:
    """Attach the OTLP gRPC exporter."""
    try:
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter  # pyright: ignore[reportMissingImports,reportUnknownVariableType]
    except ImportError as exc:
        msg = (
            "opentelemetry-exporter-otlp is required for OTLP export. "
            "Install it with: pip install mcpengine[otel]"
        )
        raise ImportError(msg) from exc

    provider.add_span_processor(processor_cls(OTLPSpanExporter(endpoint=endpoint)))
