"""Default MCP server application.

Exposes a single example tool, ``get_test_message``, in stateless mode.
Importing this module has no side effects: the serverless entry module
(``api/mcp.py``) calls build_app(), and locally ``serverless-mcp serve``
does.
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

from fastapi import FastAPI
from mcp import types
from pydantic import BaseModel, Field

from serverless_mcp import __version__
from serverless_mcp.capabilities import Capability, CapabilityDescriptor
from serverless_mcp.config import ServerConfig
from serverless_mcp.server import create_app
from serverless_mcp.tools import ToolRegistry

SERVER_NAME = "serverless-mcp"

INSTRUCTIONS = (
    "This is a test MCP server. Use the `get_test_message` tool to return a test message."
)


class TestMessageParams(BaseModel):
    """Parameters of the get_test_message tool."""

    __test__ = False  # not a pytest test class

    test_param: str = Field(description="Value echoed back in the test message")


def get_test_message(params: TestMessageParams) -> str:
    return f"Hello World! Value of test_param is: {params.test_param}"


def _package_version() -> str:
    try:
        return version(SERVER_NAME)
    except PackageNotFoundError:
        return __version__


def build_registry() -> ToolRegistry:
    """Registry holding the example tool."""
    registry = ToolRegistry()
    registry.register(
        "get_test_message",
        get_test_message,
        TestMessageParams,
        description="Return a test message containing the given parameter",
    )
    return registry


def build_descriptor(config: ServerConfig) -> CapabilityDescriptor:
    return CapabilityDescriptor.build(
        types.Implementation(name=SERVER_NAME, version=_package_version()),
        protocol_version=config.supported_protocol_version,
        capabilities=(Capability.TOOLS,),
        instructions=INSTRUCTIONS,
    )


def build_app(config: ServerConfig | None = None) -> FastAPI:
    """Create the default application; reads SMCP_* variables when no config is given."""
    config = config or ServerConfig.from_env()
    return create_app(build_registry(), build_descriptor(config), config)
