"""Observability for the serverless MCP adapter.

Structured logging (structlog) and OpenTelemetry spans around tool calls.

Example:
    >>> from serverless_mcp.observability import get_logger
    >>> logger = get_logger(__name__)
    >>> logger.info("mcp.request.received", method="initialize")
"""

from serverless_mcp.observability.logging import (
    bind_context,
    configure_logging,
    get_logger,
    is_debug_mode,
    sanitize_for_logging,
    unbind_context,
)
from serverless_mcp.observability.tracing import (
    configure_tracing,
    get_tracer,
    reset_tracing,
    tool_span_context,
)

__all__ = [
    "bind_context",
    "configure_logging",
    "configure_tracing",
    "get_logger",
    "get_tracer",
    "is_debug_mode",
    "reset_tracing",
    "sanitize_for_logging",
    "tool_span_context",
    "unbind_context",
]
