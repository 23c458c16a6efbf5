"""HTTP transport for MCP: streamable adapter and serverless body bridge."""

from serverless_mcp.transport.bridge import (
    BufferedHttpResponse,
    ServerlessBridge,
    http_scope,
    internal_error_response,
)
from serverless_mcp.transport.streamable_http import (
    MCP_PROTOCOL_VERSION_HEADER,
    MCP_SESSION_ID_HEADER,
    HttpRequest,
    StreamableHTTPTransport,
    rpc_error_response,
)

__all__ = [
    "BufferedHttpResponse",
    "HttpRequest",
    "MCP_PROTOCOL_VERSION_HEADER",
    "MCP_SESSION_ID_HEADER",
    "ServerlessBridge",
    "StreamableHTTPTransport",
    "http_scope",
    "internal_error_response",
    "rpc_error_response",
]
