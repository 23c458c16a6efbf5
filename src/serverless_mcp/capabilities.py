"""Capability descriptor returned by ``initialize``.

The descriptor is built once at process start and shared by every request.
It is a frozen pydantic model, so concurrent requests can read it without
synchronization.

Example:
    >>> descriptor = CapabilityDescriptor.build(
    ...     types.Implementation(name="demo", version="1.0.0"),
    ...     capabilities={Capability.TOOLS},
    ...     instructions="Use the echo tool.",
    ... )
    >>> descriptor.capabilities_object()
    {'tools': {'listChanged': False}}
"""

from __future__ import annotations

from collections.abc import Iterable
from enum import Enum
from typing import Any

from mcp import types
from pydantic import BaseModel, ConfigDict, Field

DEFAULT_PROTOCOL_VERSION = "2024-11-05"


class Capability(str, Enum):
    """Server feature categories advertised on initialize."""

    TOOLS = "tools"
    PROMPTS = "prompts"
    RESOURCES = "resources"
    LOGGING = "logging"
    COMPLETIONS = "completions"

    def to_wire(self) -> dict[str, Any]:
        """Capability object for the initialize result.

        The tool set never changes after start-up, so list-changed
        notifications are always advertised as off.
        """
        if self in (Capability.TOOLS, Capability.PROMPTS):
            return {"listChanged": False}
        if self is Capability.RESOURCES:
            return {"subscribe": False, "listChanged": False}
        return {}


class CapabilityDescriptor(BaseModel):
    """Static server metadata: protocol version, capabilities, identity, instructions."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    protocol_version: str = Field(default=DEFAULT_PROTOCOL_VERSION)
    capabilities: frozenset[Capability] = Field(default_factory=frozenset)
    server_info: types.Implementation
    instructions: str | None = Field(default=None)

    @classmethod
    def build(
        cls,
        server_info: types.Implementation,
        *,
        protocol_version: str = DEFAULT_PROTOCOL_VERSION,
        capabilities: Iterable[Capability] = (Capability.TOOLS,),
        instructions: str | None = None,
    ) -> CapabilityDescriptor:
        """Create a descriptor; tools are enabled unless capabilities says otherwise."""
        return cls(
            protocol_version=protocol_version,
            capabilities=frozenset(capabilities),
            server_info=server_info,
            instructions=instructions,
        )

    def supports(self, protocol_version: str) -> bool:
        return protocol_version == self.protocol_version

    def has(self, capability: Capability) -> bool:
        return capability in self.capabilities

    def capabilities_object(self) -> dict[str, Any]:
        """Render enabled capabilities as the MCP ``capabilities`` object (stable order)."""
        return {
            capability.value: capability.to_wire()
            for capability in Capability
            if capability in self.capabilities
        }

    def to_server_capabilities(self) -> types.ServerCapabilities:
        return types.ServerCapabilities.model_validate(self.capabilities_object())

    def to_initialize_result(self) -> types.InitializeResult:
        return types.InitializeResult(
            protocolVersion=self.protocol_version,
            capabilities=self.to_server_capabilities(),
            serverInfo=self.server_info,
            instructions=self.instructions,
        )
