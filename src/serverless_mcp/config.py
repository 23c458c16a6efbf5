"""Server configuration.

ServerConfig is handed to the transport at construction; the transport
never reads the environment itself. Entry points (the serverless entry
module and the CLI) build one with ServerConfig.from_env().

Environment Variables:
    SMCP_PROTOCOL_VERSION: Supported protocol version (default "2024-11-05")
    SMCP_STATEFUL: "true" to keep sessions between requests (default false)
    SMCP_JSON_RESPONSE: "false" to frame responses as server-sent events
        (default true)
    SMCP_MAX_REQUEST_SIZE: Maximum request body size in bytes
    SMCP_PATH: HTTP path of the MCP endpoint (default "/mcp")
"""

from __future__ import annotations

import os
from collections.abc import Mapping

from pydantic import BaseModel, ConfigDict, Field

from serverless_mcp.capabilities import DEFAULT_PROTOCOL_VERSION

DEFAULT_MAX_REQUEST_SIZE = 4 * 1024 * 1024  # 4MB, below typical serverless payload caps
DEFAULT_PATH = "/mcp"

ENV_PREFIX = "SMCP_"

_TRUTHY = ("true", "1", "yes", "on")


class ServerConfig(BaseModel):
    """Transport configuration.

    Attributes:
        supported_protocol_version: The one protocol version initialize accepts
        stateful_mode: Keep sessions in process memory, keyed by Mcp-Session-Id
        json_response: Answer with a single application/json body instead of
            an event stream
        max_request_size: Largest accepted request body in bytes
        path: HTTP path of the MCP endpoint
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    supported_protocol_version: str = Field(default=DEFAULT_PROTOCOL_VERSION)
    stateful_mode: bool = Field(default=False)
    json_response: bool = Field(default=True)
    max_request_size: int = Field(default=DEFAULT_MAX_REQUEST_SIZE, gt=0)
    path: str = Field(default=DEFAULT_PATH, pattern=r"^/")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> ServerConfig:
        """Build a config from SMCP_* environment variables.

        Unset variables fall back to the field defaults.
        """
        env = os.environ if environ is None else environ

        def get(name: str) -> str | None:
            value = env.get(ENV_PREFIX + name)
            if value is None or not value.strip():
                return None
            return value.strip()

        values: dict[str, object] = {}
        if (version := get("PROTOCOL_VERSION")) is not None:
            values["supported_protocol_version"] = version
        if (stateful := get("STATEFUL")) is not None:
            values["stateful_mode"] = stateful.lower() in _TRUTHY
        if (json_response := get("JSON_RESPONSE")) is not None:
            values["json_response"] = json_response.lower() in _TRUTHY
        if (max_size := get("MAX_REQUEST_SIZE")) is not None:
            values["max_request_size"] = int(max_size)
        if (path := get("PATH")) is not None:
            values["path"] = path
        return cls(**values)
