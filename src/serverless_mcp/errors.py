"""Error taxonomy for the serverless MCP adapter.

Every protocol-level failure is an MCPError carrying a string code
(``mcp:<area>/<reason>``), a human-readable message and a details dict.
Each class also declares the JSON-RPC numeric code it maps to, so the
MCP server can turn any MCPError into the SDK's ErrorData without a lookup
table.
"""

from __future__ import annotations

from typing import Any

from mcp import types

# JSON-RPC 2.0 standard error codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603

# Server-defined codes (reserved range -32000..-32099)
SERVER_NOT_INITIALIZED = -32002
SESSION_TERMINATED = -32003


class MCPError(Exception):
    """Base exception for all adapter errors.

    Attributes:
        code: Error code following the mcp:<area>/<reason> pattern
        message: Human-readable error message
        details: Optional additional error context
        rpc_code: JSON-RPC numeric code used when the error is sent in-band
    """

    rpc_code: int = INTERNAL_ERROR

    def __init__(self, code: str, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Serialize to ``{code, message, details}`` dict."""
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }

    def to_error_data(self) -> types.ErrorData:
        """Convert to a JSON-RPC error object; details travel as ``data``."""
        return types.ErrorData(code=self.rpc_code, message=self.message, data=self.details or None)


class ProtocolVersionMismatchError(MCPError):
    """Raised when a client asks for a protocol version this server does not speak.

    Recoverable: the details carry the supported versions so the client can
    retry ``initialize`` with one of them.

    Attributes:
        requested: Version the client asked for
        supported: Versions this server accepts
    """

    rpc_code = INVALID_PARAMS

    def __init__(
        self,
        requested: str,
        supported: list[str],
        details: dict[str, Any] | None = None,
    ) -> None:
        message = (
            f"Unsupported protocol version: {requested}. "
            f"Supported versions: {', '.join(supported)}"
        )
        super().__init__(
            code="mcp:protocol/version_mismatch",
            message=message,
            details={"requested": requested, "supported": list(supported), **(details or {})},
        )
        self.requested = requested
        self.supported = list(supported)


class NotInitializedError(MCPError):
    """Raised when an operation is attempted before ``initialize``."""

    rpc_code = SERVER_NOT_INITIALIZED

    def __init__(self, method: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(
            code="mcp:session/not_initialized",
            message=f"Session not initialized: '{method}' requires a prior 'initialize'",
            details={"method": method, **(details or {})},
        )
        self.method = method


class InvalidTransitionError(MCPError):
    """Raised when a session state transition is not allowed.

    Attributes:
        from_state: The current session status
        to_state: The attempted target status
    """

    rpc_code = INVALID_REQUEST

    def __init__(
        self, from_state: str, to_state: str, details: dict[str, Any] | None = None
    ) -> None:
        message = f"Invalid session transition from '{from_state}' to '{to_state}'"
        super().__init__(
            code="mcp:session/invalid_state",
            message=message,
            details={"from_state": from_state, "to_state": to_state, **(details or {})},
        )
        self.from_state = from_state
        self.to_state = to_state


class SessionTerminatedError(MCPError):
    """Raised when an operation targets a session that has been closed."""

    rpc_code = SESSION_TERMINATED

    def __init__(self, method: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(
            code="mcp:session/terminated",
            message=f"Session terminated: cannot handle '{method}'",
            details={"method": method, **(details or {})},
        )
        self.method = method


class InvalidParametersError(MCPError):
    """Raised when request or tool parameters fail validation.

    The handler is never invoked when this is raised. ``errors`` holds
    field-level diagnostics, one dict per problem with ``loc``, ``msg`` and
    ``type`` keys.
    """

    rpc_code = INVALID_PARAMS

    def __init__(
        self,
        reason: str,
        errors: list[dict[str, Any]] | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        extra: dict[str, Any] = dict(details or {})
        if errors:
            extra["errors"] = errors
        super().__init__(
            code="mcp:params/invalid",
            message=f"Invalid parameters: {reason}",
            details=extra,
        )
        self.reason = reason
        self.errors = errors or []


class ToolNotFoundError(MCPError):
    """Raised when ``tools/call`` names a tool that is not registered."""

    rpc_code = INVALID_PARAMS

    def __init__(self, tool_name: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(
            code="mcp:tool/not_found",
            message=f"Unknown tool: {tool_name}",
            details={"tool": tool_name, **(details or {})},
        )
        self.tool_name = tool_name


class ToolExecutionError(MCPError):
    """Raised by (or on behalf of) a tool handler that failed.

    Tool handlers raise this to report a failure to the client; the message
    is returned in-band as an ``isError`` tool result rather than a JSON-RPC
    error, so the model calling the tool can see what went wrong.
    """

    rpc_code = INTERNAL_ERROR

    def __init__(
        self,
        message: str,
        tool_name: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        extra: dict[str, Any] = dict(details or {})
        if tool_name is not None:
            extra["tool"] = tool_name
        super().__init__(code="mcp:tool/execution_failed", message=message, details=extra)
        self.tool_name = tool_name


class TransportFaultError(MCPError):
    """Raised when reading a request body or draining a response body fails.

    Never reaches the client as-is: the bridge logs it and answers with a
    generic 500 response.
    """

    rpc_code = INTERNAL_ERROR

    def __init__(self, reason: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(
            code="mcp:transport/fault",
            message=f"Transport fault: {reason}",
            details=details or {},
        )
        self.reason = reason
