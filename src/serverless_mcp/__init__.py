"""Serverless MCP: an MCP tool server over stateless streamable HTTP.

Register typed tools in a ToolRegistry, describe the server with a
CapabilityDescriptor and serve both with create_app on any ASGI host,
including serverless platforms that need a fully buffered response body.
"""

__version__ = "0.1.0"

from serverless_mcp.capabilities import Capability, CapabilityDescriptor
from serverless_mcp.config import ServerConfig
from serverless_mcp.mcp_server import MCPServer
from serverless_mcp.server import create_app
from serverless_mcp.session import SessionHandler, SessionStatus
from serverless_mcp.tools import ToolContext, ToolRegistry

__all__ = [
    "Capability",
    "CapabilityDescriptor",
    "MCPServer",
    "ServerConfig",
    "SessionHandler",
    "SessionStatus",
    "ToolContext",
    "ToolRegistry",
    "__version__",
    "create_app",
]
