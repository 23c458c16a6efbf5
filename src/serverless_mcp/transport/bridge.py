"""Serverless body bridge.

Serverless hosts take one complete byte buffer as the response body; they
cannot forward a stream. ServerlessBridge runs an ASGI application (the
streamable HTTP transport) against an already read request, collects every
``http.response.body`` message until the last one and only then builds the
final response, so the host never sees a partial body.

Example:
    >>> bridge = ServerlessBridge(transport)
    >>> response = await bridge(HttpRequest("POST", "/mcp", headers, body))
    >>> response.headers["content-length"] == str(len(response.body))
    True
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from typing import Any

from starlette.datastructures import URL, MutableHeaders
from starlette.types import ASGIApp, Message

from serverless_mcp.errors import INTERNAL_ERROR, TransportFaultError
from serverless_mcp.observability import get_logger
from serverless_mcp.transport.streamable_http import CONTENT_TYPE_JSON, HttpRequest

logger = get_logger(__name__)


@dataclass
class BufferedHttpResponse:
    """An HTTP response with its body fully materialized."""

    status: int
    headers: MutableHeaders = field(default_factory=MutableHeaders)
    body: bytes = b""


def internal_error_response() -> BufferedHttpResponse:
    """Generic 500 response with a JSON-RPC internal error body."""
    payload = {
        "jsonrpc": "2.0",
        "id": None,
        "error": {"code": INTERNAL_ERROR, "message": "Internal error"},
    }
    body = json.dumps(payload).encode()
    headers = MutableHeaders()
    headers["content-type"] = CONTENT_TYPE_JSON
    headers["content-length"] = str(len(body))
    return BufferedHttpResponse(status=500, headers=headers, body=body)


def http_scope(request: HttpRequest) -> dict[str, Any]:
    """ASGI HTTP scope for a fully read request."""
    url = URL(request.uri)
    raw_headers = [
        (key, value) for key, value in request.headers.raw if key.lower() != b"content-length"
    ]
    raw_headers.append((b"content-length", str(len(request.body)).encode()))
    path = url.path or "/"
    return {
        "type": "http",
        "asgi": {"version": "3.0", "spec_version": "2.3"},
        "http_version": "1.1",
        "method": request.method.upper(),
        "scheme": url.scheme or "http",
        "path": path,
        "raw_path": path.encode(),
        "query_string": url.query.encode(),
        "root_path": "",
        "headers": raw_headers,
        "server": (url.hostname, url.port or 80) if url.hostname else None,
        "client": None,
    }


class _ResponseCollector:
    """ASGI send callable that buffers the response start and every body chunk."""

    def __init__(self) -> None:
        self.status: int | None = None
        self.headers = MutableHeaders()
        self.body = bytearray()
        self.complete = asyncio.Event()

    async def __call__(self, message: Message) -> None:
        if message["type"] == "http.response.start":
            self.status = message["status"]
            self.headers = MutableHeaders(raw=list(message.get("headers", [])))
        elif message["type"] == "http.response.body":
            self.body.extend(message.get("body", b""))
            if not message.get("more_body", False):
                self.complete.set()


class ServerlessBridge:
    """Runs an ASGI app and buffers its response for a serverless host.

    Every call returns exactly one BufferedHttpResponse. Failures while the
    app handles the request, or a response that never completes, are logged
    as a TransportFaultError and answered with a 500. Cancellation of the
    invocation is not a fault and propagates to the host.
    """

    def __init__(self, app: ASGIApp) -> None:
        self._app = app

    @property
    def app(self) -> ASGIApp:
        return self._app

    async def __call__(self, request: HttpRequest) -> BufferedHttpResponse:
        collector = _ResponseCollector()
        delivered = False

        async def receive() -> Message:
            nonlocal delivered
            if not delivered:
                delivered = True
                return {"type": "http.request", "body": request.body, "more_body": False}
            await collector.complete.wait()
            return {"type": "http.disconnect"}

        try:
            await self._app(http_scope(request), receive, collector)
            if collector.status is None or not collector.complete.is_set():
                raise RuntimeError("response ended before its last body chunk")
        except Exception as e:
            fault = TransportFaultError(
                str(e) or type(e).__name__,
                details={"method": request.method, "uri": request.uri},
            )
            logger.exception(
                "mcp.transport.fault",
                error=fault.message,
                error_type=type(e).__name__,
                **fault.details,
            )
            return internal_error_response()

        body = bytes(collector.body)
        headers = collector.headers
        headers["content-length"] = str(len(body))
        logger.debug(
            "mcp.transport.response",
            status=collector.status,
            content_length=len(body),
            content_type=headers.get("content-type"),
        )
        return BufferedHttpResponse(status=collector.status, headers=headers, body=body)
