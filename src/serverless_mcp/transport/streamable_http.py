"""Streamable HTTP transport for MCP.

StreamableHTTPTransport is an ASGI application that mounts an MCPServer on
the SDK's StreamableHTTPSessionManager. It adds the gates this deployment
needs in front of the SDK: a method gate (no server-initiated GET stream), a
request size limit and a JSON parse check that answers malformed or too
deeply nested bodies with a parse error.

The two session modes differ in the lifetime of the session manager:

- Stateless: every request runs on a fresh manager, so no session outlives
  the request and no Mcp-Session-Id is issued. Nothing has to be started
  beforehand, which suits serverless hosts that skip ASGI lifespan events.
- Stateful: one long-lived manager keeps sessions in process memory, keyed by
  Mcp-Session-Id. It must be started with ``run()``, typically from the host
  application's lifespan.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

from mcp.server.streamable_http_manager import StreamableHTTPSessionManager
from starlette.datastructures import Headers
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.types import Message, Receive, Scope, Send

from serverless_mcp.config import ServerConfig
from serverless_mcp.errors import INVALID_REQUEST, PARSE_ERROR
from serverless_mcp.mcp_server import MCPServer
from serverless_mcp.observability import get_logger

logger = get_logger(__name__)

MCP_SESSION_ID_HEADER = "mcp-session-id"
MCP_PROTOCOL_VERSION_HEADER = "mcp-protocol-version"

CONTENT_TYPE_JSON = "application/json"


@dataclass(frozen=True)
class HttpRequest:
    """An inbound HTTP request with its body fully read.

    ``headers`` accepts any mapping and is normalized to a case-insensitive
    starlette Headers instance.
    """

    method: str
    uri: str
    headers: Headers = field(default_factory=Headers)
    body: bytes = b""

    def __post_init__(self) -> None:
        if not isinstance(self.headers, Headers):
            object.__setattr__(self, "headers", Headers(headers=dict(self.headers)))


def rpc_error_response(
    status: int,
    code: int,
    message: str,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    """JSON-RPC error body (id null) with an HTTP status."""
    return JSONResponse(
        status_code=status,
        content={"jsonrpc": "2.0", "id": None, "error": {"code": code, "message": message}},
        headers=headers,
    )


def _replay(body: bytes, receive: Receive) -> Receive:
    """Receive callable that yields the already-read body, then defers to ``receive``."""
    sent = False

    async def replay() -> Message:
        nonlocal sent
        if not sent:
            sent = True
            return {"type": "http.request", "body": body, "more_body": False}
        return await receive()

    return replay


class StreamableHTTPTransport:
    """ASGI app serving MCP over streamable HTTP through the SDK session manager."""

    def __init__(self, server: MCPServer, config: ServerConfig) -> None:
        self._server = server
        self._config = config
        self._session_manager = self._new_manager() if config.stateful_mode else None

    @property
    def server(self) -> MCPServer:
        return self._server

    @property
    def config(self) -> ServerConfig:
        return self._config

    @property
    def session_manager(self) -> StreamableHTTPSessionManager | None:
        """The long-lived manager in stateful mode; None when stateless."""
        return self._session_manager

    @property
    def allowed_methods(self) -> str:
        return "POST, DELETE" if self._config.stateful_mode else "POST"

    def _new_manager(self) -> StreamableHTTPSessionManager:
        return StreamableHTTPSessionManager(
            app=self._server,
            stateless=not self._config.stateful_mode,
            json_response=self._config.json_response,
        )

    @asynccontextmanager
    async def run(self) -> AsyncIterator[None]:
        """Start the stateful session manager; a no-op in stateless mode.

        Leaving the context terminates every open session.
        """
        if self._session_manager is None:
            yield
            return
        async with self._session_manager.run():
            logger.info("mcp.transport.started", stateful=True)
            try:
                yield
            finally:
                logger.info("mcp.transport.stopped", stateful=True)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        method = scope["method"].upper()
        if method not in self.allowed_methods.split(", "):
            logger.info("mcp.request.method_not_allowed", method=method)
            response = rpc_error_response(
                405,
                INVALID_REQUEST,
                f"Method not allowed: {method}",
                headers={"allow": self.allowed_methods},
            )
            await response(scope, receive, send)
            return

        if method == "POST":
            request = Request(scope, receive)
            body = await self._read_body(request)
            if isinstance(body, JSONResponse):
                await body(scope, receive, send)
                return
            receive = _replay(body, receive)

        if self._session_manager is not None:
            await self._session_manager.handle_request(scope, receive, send)
            return
        manager = self._new_manager()
        async with manager.run():
            await manager.handle_request(scope, receive, send)

    async def _read_body(self, request: Request) -> bytes | JSONResponse:
        """Read the POST body within the size limit and check that it parses."""
        max_size = self._config.max_request_size
        content_length = request.headers.get("content-length")
        if content_length:
            try:
                size = int(content_length)
            except ValueError:
                size = 0
            if size > max_size:
                logger.warning(
                    "mcp.request.size_exceeded", content_length=size, max_size=max_size
                )
                return rpc_error_response(
                    413,
                    INVALID_REQUEST,
                    f"Request size ({size} bytes) exceeds maximum ({max_size} bytes)",
                )

        body = bytearray()
        async for chunk in request.stream():
            body.extend(chunk)
            if len(body) > max_size:
                logger.warning(
                    "mcp.request.size_exceeded", actual_size=len(body), max_size=max_size
                )
                return rpc_error_response(
                    413,
                    INVALID_REQUEST,
                    f"Request size ({len(body)} bytes) exceeds maximum ({max_size} bytes)",
                )

        content_type = request.headers.get("content-type", "")
        if content_type.split(";")[0].strip().lower() == CONTENT_TYPE_JSON:
            try:
                json.loads(body)
            except (ValueError, RecursionError) as e:
                logger.warning("mcp.request.invalid_json", error=type(e).__name__)
                return rpc_error_response(400, PARSE_ERROR, "Parse error")
        return bytes(body)
