"""OpenTelemetry tracing for tool execution.

Tool invocations run inside an ``mcp.tool.call`` span so slow or failing
tools can be spotted in whatever collector the host forwards spans to.

Example:
    >>> from serverless_mcp.observability.tracing import configure_tracing, tool_span_context
    >>> configure_tracing(service_name="my-mcp-server")
    >>> with tool_span_context("get_test_message"):
    ...     ...
"""

from __future__ import annotations

import os
from contextlib import AbstractContextManager

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import ConsoleSpanExporter, SimpleSpanProcessor

from serverless_mcp.observability.logging import get_logger

# Environment variables for zero-config (OpenTelemetry convention)
_ENV_OTEL_SERVICE_NAME = "OTEL_SERVICE_NAME"
_ENV_OTEL_TRACES_EXPORTER = "OTEL_TRACES_EXPORTER"

_TRACER_NAME = "serverless_mcp"

logger = get_logger(__name__)

_tracer_provider: TracerProvider | None = None
_tracer: trace.Tracer | None = None


def configure_tracing(service_name: str | None = None) -> None:
    """Configure the OpenTelemetry tracer provider.

    Uses environment variables for zero-config:
    - OTEL_SERVICE_NAME: service name (default: "serverless-mcp")
    - OTEL_TRACES_EXPORTER: "none" | "console" (default: "none")

    With "none" spans are created but not exported.

    Args:
        service_name: Override for OTEL_SERVICE_NAME.
    """
    global _tracer_provider, _tracer

    name = service_name or os.environ.get(_ENV_OTEL_SERVICE_NAME) or "serverless-mcp"
    resource = Resource.create({"service.name": name})
    _tracer_provider = TracerProvider(resource=resource)

    exporter_name = os.environ.get(_ENV_OTEL_TRACES_EXPORTER, "none").strip().lower()
    if exporter_name == "console":
        _tracer_provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
    elif exporter_name != "none":
        logger.warning("mcp.tracing.unknown_exporter", exporter=exporter_name)

    _tracer = _tracer_provider.get_tracer(_TRACER_NAME)


def reset_tracing() -> None:
    """Drop the configured tracer (used by tests)."""
    global _tracer_provider, _tracer
    _tracer_provider = None
    _tracer = None


def get_tracer() -> trace.Tracer:
    """Return the configured tracer, or the global (no-op by default) one."""
    if _tracer is None:
        return trace.get_tracer(_TRACER_NAME)
    return _tracer


def tool_span_context(tool_name: str) -> AbstractContextManager[trace.Span]:
    """Start a current span for one tool invocation (use as context manager).

    Attributes: mcp.tool.name.
    """
    return get_tracer().start_as_current_span(
        "mcp.tool.call",
        attributes={"mcp.tool.name": tool_name},
    )
