"""MCP session handler: the protocol state machine.

A SessionHandler owns one logical MCP session. It starts uninitialized,
becomes initialized after a successful ``initialize`` and ends terminated
when closed. Storage is not its concern: the MCP server creates one handler
per SDK session, which lives for one request in stateless mode and until
DELETE in stateful mode.

Example:
    >>> handler = SessionHandler(registry, descriptor)
    >>> handler.initialize({"protocolVersion": "2024-11-05", ...})
    >>> await handler.call_tool("echo", {"message": "hi"})
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from mcp import types
from pydantic import ValidationError

from serverless_mcp.capabilities import CapabilityDescriptor
from serverless_mcp.errors import (
    InvalidParametersError,
    InvalidTransitionError,
    NotInitializedError,
    ProtocolVersionMismatchError,
    SessionTerminatedError,
    ToolExecutionError,
)
from serverless_mcp.observability import get_logger
from serverless_mcp.tools import ToolContext, ToolRegistry, validation_diagnostics

logger = get_logger(__name__)


class SessionStatus(str, Enum):
    """Session lifecycle states.

    Listing and calling tools happen inside INITIALIZED; TERMINATED is final.
    """

    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"
    TERMINATED = "terminated"

    def is_terminal(self) -> bool:
        return self is SessionStatus.TERMINATED


VALID_TRANSITIONS: dict[SessionStatus, set[SessionStatus]] = {
    SessionStatus.UNINITIALIZED: {SessionStatus.INITIALIZED, SessionStatus.TERMINATED},
    SessionStatus.INITIALIZED: {SessionStatus.TERMINATED},
    SessionStatus.TERMINATED: set(),  # Terminal state
}


def can_transition(from_status: SessionStatus, to_status: SessionStatus) -> bool:
    """Check if a session may move from one status to another.

    Example:
        >>> can_transition(SessionStatus.UNINITIALIZED, SessionStatus.INITIALIZED)
        True
        >>> can_transition(SessionStatus.TERMINATED, SessionStatus.INITIALIZED)
        False
    """
    return to_status in VALID_TRANSITIONS.get(from_status, set())


class SessionHandler:
    """Implements initialize, tools/list, tools/call and ping for one session.

    The registry and descriptor are shared, read-only collaborators; all
    per-session state (status, client info, tool context) lives on the
    instance.

    Attributes:
        status: Current SessionStatus
        client_info: Client identity sent with initialize, if any
        protocol_version: Negotiated protocol version once initialized
    """

    def __init__(self, registry: ToolRegistry, descriptor: CapabilityDescriptor) -> None:
        self._registry = registry
        self._descriptor = descriptor
        self.status = SessionStatus.UNINITIALIZED
        self.client_info: types.Implementation | None = None
        self.protocol_version: str | None = None
        self._tool_context = ToolContext()

    @property
    def tool_context(self) -> ToolContext:
        return self._tool_context

    def _transition(self, new_status: SessionStatus) -> None:
        if not can_transition(self.status, new_status):
            raise InvalidTransitionError(
                from_state=self.status.value,
                to_state=new_status.value,
            )
        logger.debug(
            "mcp.session.transition",
            from_status=self.status.value,
            to_status=new_status.value,
        )
        self.status = new_status

    def _require_initialized(self, method: str) -> None:
        if self.status is SessionStatus.TERMINATED:
            raise SessionTerminatedError(method)
        if self.status is SessionStatus.UNINITIALIZED:
            raise NotInitializedError(method)

    # --- Protocol operations ---

    def initialize(self, params: dict[str, Any] | None) -> types.InitializeResult:
        """Validate the requested protocol version and enter INITIALIZED.

        Raises:
            InvalidParametersError: If params are not a valid initialize request.
            ProtocolVersionMismatchError: If the version is not supported; the
                session stays uninitialized so the client can retry.
            SessionTerminatedError: If the session was closed.
            InvalidTransitionError: If the session is already initialized.
        """
        if self.status is SessionStatus.TERMINATED:
            raise SessionTerminatedError("initialize")
        try:
            parsed = types.InitializeRequestParams.model_validate(params or {})
        except ValidationError as e:
            raise InvalidParametersError(
                "malformed initialize request",
                errors=validation_diagnostics(e),
            ) from e

        if not self._descriptor.supports(parsed.protocolVersion):
            logger.info(
                "mcp.session.version_mismatch",
                requested=parsed.protocolVersion,
                supported=self._descriptor.protocol_version,
            )
            raise ProtocolVersionMismatchError(
                requested=parsed.protocolVersion,
                supported=[self._descriptor.protocol_version],
            )

        self._transition(SessionStatus.INITIALIZED)
        self.client_info = parsed.clientInfo
        self.protocol_version = parsed.protocolVersion
        logger.info(
            "mcp.session.initialized",
            client=parsed.clientInfo.name,
            client_version=parsed.clientInfo.version,
            protocol_version=parsed.protocolVersion,
        )
        return self._descriptor.to_initialize_result()

    def mark_initialized(self) -> None:
        """Enter INITIALIZED without a handshake.

        Stateless transports use this: no session state survives between
        requests, so a client's earlier initialize cannot be remembered and
        every fresh session starts out as already negotiated.
        """
        self._transition(SessionStatus.INITIALIZED)
        self.protocol_version = self._descriptor.protocol_version

    def admit(self, method: str, params: dict[str, Any] | None, *, stateless: bool) -> None:
        """Run the state machine for one incoming request before it is served.

        ``initialize`` is negotiated here. Any other request on an
        uninitialized session marks it initialized when the session is
        stateless, and is rejected otherwise.

        Raises:
            MCPError: The request must be answered with this error instead.
        """
        if method == "initialize":
            self.initialize(params)
            return
        if self.status is SessionStatus.TERMINATED:
            raise SessionTerminatedError(method)
        if method == "ping" or self.status is SessionStatus.INITIALIZED:
            return
        if not stateless:
            raise NotInitializedError(method)
        self.mark_initialized()

    def list_tools(self) -> types.ListToolsResult:
        """Return all registered tools in registration order.

        Raises:
            NotInitializedError: Before initialize.
        """
        self._require_initialized("tools/list")
        return types.ListToolsResult(tools=[d.to_tool() for d in self._registry.list_tools()])

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> types.CallToolResult:
        """Invoke the named tool once with validated arguments.

        Handler failures come back in-band as ``isError`` results.

        Raises:
            NotInitializedError: Before initialize.
            ToolNotFoundError: Unknown tool; no handler runs.
            InvalidParametersError: Arguments rejected; no handler runs.
        """
        self._require_initialized("tools/call")
        descriptor = self._registry.lookup(name)
        try:
            return await descriptor.invoke(arguments, self._tool_context)
        except ToolExecutionError as e:
            return types.CallToolResult(
                content=[types.TextContent(type="text", text=e.message)],
                isError=True,
            )

    def ping(self) -> types.EmptyResult:
        if self.status is SessionStatus.TERMINATED:
            raise SessionTerminatedError("ping")
        return types.EmptyResult()

    def close(self) -> None:
        """Terminate the session; idempotent."""
        if self.status is SessionStatus.TERMINATED:
            return
        self._transition(SessionStatus.TERMINATED)
        self._tool_context.session_data.clear()
