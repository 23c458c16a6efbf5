"""FastAPI host surface for the serverless MCP adapter.

create_app wires a ToolRegistry and CapabilityDescriptor into an MCPServer,
mounts it on the streamable HTTP transport and exposes the MCP endpoint
(POST, GET and DELETE on ``config.path``) plus a ``/health`` check. Each
request body is read in full, run through the ServerlessBridge and answered
with one buffered Response, which is what serverless platforms expect from
an ASGI app.

Example:
    >>> from serverless_mcp.server import create_app
    >>> registry = ToolRegistry()
    >>> registry.register("echo", lambda p: p.message, EchoParams, description="Echo")
    >>> descriptor = CapabilityDescriptor.build(types.Implementation(name="echo", version="1.0.0"))
    >>> app = create_app(registry, descriptor)
    >>>
    >>> # Run with: uvicorn my_module:app --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response
from mcp.shared.version import SUPPORTED_PROTOCOL_VERSIONS

from serverless_mcp.capabilities import CapabilityDescriptor
from serverless_mcp.config import ServerConfig
from serverless_mcp.ids import generate_id
from serverless_mcp.mcp_server import MCPServer
from serverless_mcp.observability import (
    bind_context,
    configure_tracing,
    get_logger,
    is_debug_mode,
    unbind_context,
)
from serverless_mcp.tools import ToolRegistry
from serverless_mcp.transport import HttpRequest, ServerlessBridge, StreamableHTTPTransport

logger = get_logger(__name__)


def create_app(
    registry: ToolRegistry,
    descriptor: CapabilityDescriptor,
    config: ServerConfig | None = None,
) -> FastAPI:
    """Create a FastAPI application serving MCP over streamable HTTP.

    The registry is frozen here: tools must be registered before the app is
    created. In stateful mode the session manager runs inside the app's
    lifespan, so the host must send lifespan events.

    Args:
        registry: Tools exposed through tools/list and tools/call.
        descriptor: Capability descriptor returned by initialize.
        config: Transport configuration (defaults to ServerConfig()).

    Returns:
        Configured FastAPI application.

    Raises:
        ValueError: If the descriptor and config disagree on the protocol
            version, or the MCP SDK does not speak that version.
    """
    config = config or ServerConfig()
    if descriptor.protocol_version != config.supported_protocol_version:
        raise ValueError(
            f"Descriptor protocol version {descriptor.protocol_version!r} does not match "
            f"configured version {config.supported_protocol_version!r}"
        )
    if descriptor.protocol_version not in SUPPORTED_PROTOCOL_VERSIONS:
        raise ValueError(
            f"Protocol version {descriptor.protocol_version!r} is not supported by the MCP SDK "
            f"(supported: {', '.join(SUPPORTED_PROTOCOL_VERSIONS)})"
        )

    registry.freeze()
    server = MCPServer(registry, descriptor)
    transport = StreamableHTTPTransport(server, config)
    bridge = ServerlessBridge(transport)

    if config.stateful_mode:
        logger.warning(
            "mcp.server.in_memory_sessions",
            message="Sessions are held in process memory and do not survive "
            "across serverless instances",
        )

    @asynccontextmanager
    async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
        async with transport.run():
            yield

    _docs_url = "/docs" if is_debug_mode() else None
    app = FastAPI(
        title="Serverless MCP Server",
        description=f"MCP server for {descriptor.server_info.name}",
        version=descriptor.server_info.version,
        docs_url=_docs_url,
        redoc_url=None,
        openapi_url="/openapi.json" if is_debug_mode() else None,
        lifespan=_lifespan,
    )
    app.state.registry = registry
    app.state.descriptor = descriptor
    app.state.config = config
    app.state.server = server
    app.state.transport = transport
    app.state.bridge = bridge

    configure_tracing(service_name=descriptor.server_info.name)

    logger.info(
        "mcp.server.created",
        server=descriptor.server_info.name,
        version=descriptor.server_info.version,
        path=config.path,
        stateful=config.stateful_mode,
        tools=len(registry),
    )

    @app.get("/health")
    async def health() -> JSONResponse:
        """Liveness check: always OK if the process is running."""
        return JSONResponse(status_code=200, content={"status": "ok"})

    @app.api_route(config.path, methods=["POST", "GET", "DELETE"])
    async def handle_mcp(request: Request) -> Response:
        """Handle one MCP exchange and return the fully buffered response."""
        bind_context(request_id=generate_id())
        try:
            body = await request.body()
            buffered = await bridge(
                HttpRequest(
                    method=request.method,
                    uri=str(request.url),
                    headers=request.headers,
                    body=body,
                )
            )
        finally:
            unbind_context("request_id")
        return Response(
            content=buffered.body,
            status_code=buffered.status,
            headers=dict(buffered.headers.items()),
        )

    return app
