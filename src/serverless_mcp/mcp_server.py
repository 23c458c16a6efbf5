"""MCP server built on the SDK's low-level Server.

MCPServer answers tools/list, tools/call and ping from a ToolRegistry and
advertises the CapabilityDescriptor's capabilities; the SDK owns JSON-RPC
framing, request routing and the initialize reply.

Every SDK session gets its own SessionHandler. Incoming requests pass
through the handler's state machine before the SDK sees them, so
``initialize`` is checked against the one supported protocol version and a
rejected request is answered with the handler's error. Tool handlers reach
the current session through a context variable.

Example:
    >>> server = MCPServer(registry, descriptor)
    >>> manager = StreamableHTTPSessionManager(app=server, stateless=True)
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any

import anyio
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream
from mcp import types
from mcp.server.lowlevel.server import NotificationOptions, Server
from mcp.server.models import InitializationOptions
from mcp.shared.exceptions import McpError
from mcp.shared.message import SessionMessage

from serverless_mcp.capabilities import CapabilityDescriptor
from serverless_mcp.errors import MCPError
from serverless_mcp.observability import get_logger
from serverless_mcp.session import SessionHandler
from serverless_mcp.tools import ToolRegistry

logger = get_logger(__name__)

_current_session: ContextVar[SessionHandler | None] = ContextVar(
    "serverless_mcp_session", default=None
)

IncomingMessage = SessionMessage | Exception


def current_session() -> SessionHandler:
    """Return the SessionHandler of the SDK session serving this request."""
    session = _current_session.get()
    if session is None:
        raise RuntimeError("No MCP session is active")
    return session


@contextmanager
def _rpc_errors(method: str) -> Iterator[None]:
    """Raise adapter errors as McpError so the SDK sends them in-band."""
    try:
        yield
    except MCPError as e:
        logger.info("mcp.request.failed", method=method, error_code=e.code)
        raise McpError(e.to_error_data()) from e
    except Exception as e:
        logger.exception("mcp.request_error", method=method, error=str(e))
        raise McpError(
            types.ErrorData(code=types.INTERNAL_ERROR, message="Internal error")
        ) from e


class MCPServer(Server[Any, Any]):
    """Low-level SDK server serving one ToolRegistry."""

    def __init__(self, registry: ToolRegistry, descriptor: CapabilityDescriptor) -> None:
        super().__init__(
            descriptor.server_info.name,
            version=descriptor.server_info.version,
            instructions=descriptor.instructions,
        )
        self._registry = registry
        self._descriptor = descriptor

        self.request_handlers[types.ListToolsRequest] = self._list_tools
        self.request_handlers[types.CallToolRequest] = self._call_tool
        self.request_handlers[types.PingRequest] = self._ping
        self.notification_handlers[types.InitializedNotification] = self._initialized

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    @property
    def descriptor(self) -> CapabilityDescriptor:
        return self._descriptor

    def get_capabilities(
        self,
        notification_options: NotificationOptions,
        experimental_capabilities: Mapping[str, Mapping[str, Any]],
    ) -> types.ServerCapabilities:
        return self._descriptor.to_server_capabilities()

    async def run(
        self,
        read_stream: MemoryObjectReceiveStream[IncomingMessage],
        write_stream: MemoryObjectSendStream[SessionMessage],
        initialization_options: InitializationOptions,
        raise_exceptions: bool = False,
        stateless: bool = False,
    ) -> None:
        """Serve one SDK session with its own SessionHandler.

        The handler is closed when the session ends: after the request in
        stateless mode, on DELETE or shutdown in stateful mode.
        """
        session = SessionHandler(self._registry, self._descriptor)
        token = _current_session.set(session)
        admitted_send, admitted_receive = anyio.create_memory_object_stream[IncomingMessage](0)
        try:
            async with anyio.create_task_group() as tg:
                tg.start_soon(
                    self._admit, session, read_stream, admitted_send, write_stream, stateless
                )
                await super().run(
                    admitted_receive,
                    write_stream,
                    initialization_options,
                    raise_exceptions,
                    stateless,
                )
                tg.cancel_scope.cancel()
        finally:
            _current_session.reset(token)
            session.close()

    async def _admit(
        self,
        session: SessionHandler,
        read_stream: MemoryObjectReceiveStream[IncomingMessage],
        admitted: MemoryObjectSendStream[IncomingMessage],
        write_stream: MemoryObjectSendStream[SessionMessage],
        stateless: bool,
    ) -> None:
        """Forward requests the session admits; answer the others directly."""
        async with admitted:
            try:
                async for message in read_stream:
                    if isinstance(message, SessionMessage) and isinstance(
                        message.message.root, types.JSONRPCRequest
                    ):
                        request = message.message.root
                        try:
                            session.admit(request.method, request.params, stateless=stateless)
                        except MCPError as e:
                            logger.info(
                                "mcp.request.rejected", method=request.method, error_code=e.code
                            )
                            error = types.JSONRPCError(
                                jsonrpc="2.0", id=request.id, error=e.to_error_data()
                            )
                            await write_stream.send(SessionMessage(types.JSONRPCMessage(error)))
                            continue
                    await admitted.send(message)
            except (anyio.ClosedResourceError, anyio.BrokenResourceError):
                logger.debug("mcp.session.streams_closed")

    async def _list_tools(self, request: types.ListToolsRequest) -> types.ServerResult:
        with _rpc_errors("tools/list"):
            result = current_session().list_tools()
        return types.ServerResult(result)

    async def _call_tool(self, request: types.CallToolRequest) -> types.ServerResult:
        with _rpc_errors("tools/call"):
            result = await current_session().call_tool(
                request.params.name, request.params.arguments or {}
            )
        return types.ServerResult(result)

    async def _ping(self, request: types.PingRequest) -> types.ServerResult:
        with _rpc_errors("ping"):
            result = current_session().ping()
        return types.ServerResult(result)

    async def _initialized(self, notification: types.InitializedNotification) -> None:
        logger.debug("mcp.initialized")
