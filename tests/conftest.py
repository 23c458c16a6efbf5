"""Shared pytest fixtures for serverless MCP tests.

Provides a small tool registry, a capability descriptor and helpers for
building JSON-RPC messages and HTTP requests, so individual test modules do
not repeat the same setup.
"""

from __future__ import annotations

import json
from typing import Any

import pytest
from mcp import types
from pydantic import BaseModel

from serverless_mcp.capabilities import DEFAULT_PROTOCOL_VERSION, Capability, CapabilityDescriptor
from serverless_mcp.config import ServerConfig
from serverless_mcp.errors import ToolExecutionError
from serverless_mcp.mcp_server import MCPServer
from serverless_mcp.session import SessionHandler
from serverless_mcp.tools import ToolContext, ToolRegistry
from serverless_mcp.transport import HttpRequest, ServerlessBridge, StreamableHTTPTransport

TEST_INSTRUCTIONS = "Use the echo tool."

ACCEPT_BOTH = "application/json, text/event-stream"
JSON_HEADERS = {"content-type": "application/json", "accept": ACCEPT_BOTH}


class EchoParams(BaseModel):
    message: str


class AddParams(BaseModel):
    a: int
    b: int


def initialize_params(version: str = DEFAULT_PROTOCOL_VERSION) -> dict[str, Any]:
    return {
        "protocolVersion": version,
        "capabilities": {},
        "clientInfo": {"name": "test-client", "version": "1.0.0"},
    }


def rpc_request(method: str, params: dict[str, Any] | None = None, id: int | str = 1) -> dict[str, Any]:
    message: dict[str, Any] = {"jsonrpc": "2.0", "id": id, "method": method}
    if params is not None:
        message["params"] = params
    return message


def rpc_notification(method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
    message: dict[str, Any] = {"jsonrpc": "2.0", "method": method}
    if params is not None:
        message["params"] = params
    return message


def http_post(
    payload: Any,
    headers: dict[str, str] | None = None,
    *,
    raw: bytes | None = None,
) -> HttpRequest:
    """POST /mcp with a JSON body (or ``raw`` bytes as-is)."""
    body = raw if raw is not None else json.dumps(payload).encode()
    return HttpRequest(method="POST", uri="/mcp", headers=headers or JSON_HEADERS, body=body)


def build_registry() -> ToolRegistry:
    registry = ToolRegistry()

    registry.register("echo", lambda params: params.message, EchoParams, description="Echo")

    async def add(params: AddParams) -> str:
        return str(params.a + params.b)

    registry.register("add", add, AddParams, description="Add two integers")

    def fail(params: dict[str, Any]) -> str:
        raise ToolExecutionError("backend unavailable")

    registry.register("fail", fail, description="Always fails")

    def crash(params: dict[str, Any]) -> str:
        raise RuntimeError("boom")

    registry.register("crash", crash, description="Raises an unexpected error")

    def counter(params: dict[str, Any], context: ToolContext) -> str:
        count = context.session_data.get("count", 0) + 1
        context.session_data["count"] = count
        return str(count)

    registry.register("counter", counter, description="Counts calls per session", with_context=True)
    return registry


def build_descriptor(name: str = "test-server") -> CapabilityDescriptor:
    return CapabilityDescriptor.build(
        types.Implementation(name=name, version="0.1.0"),
        capabilities={Capability.TOOLS},
        instructions=TEST_INSTRUCTIONS,
    )


def make_bridge(
    registry: ToolRegistry,
    descriptor: CapabilityDescriptor,
    **config: Any,
) -> ServerlessBridge:
    """Bridge over a transport serving ``registry``; ``config`` feeds ServerConfig."""
    transport = StreamableHTTPTransport(MCPServer(registry, descriptor), ServerConfig(**config))
    return ServerlessBridge(transport)


@pytest.fixture
def registry() -> ToolRegistry:
    return build_registry()


@pytest.fixture
def descriptor() -> CapabilityDescriptor:
    return build_descriptor()


@pytest.fixture
def handler(registry: ToolRegistry, descriptor: CapabilityDescriptor) -> SessionHandler:
    return SessionHandler(registry, descriptor)


@pytest.fixture
def initialized_handler(handler: SessionHandler) -> SessionHandler:
    handler.initialize(initialize_params())
    return handler


@pytest.fixture
def debug_off(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("SMCP_DEBUG", raising=False)
