"""Tool registry for MCP tools/list and tools/call.

A ToolRegistry maps tool names to ToolDescriptors. Each descriptor pairs a
handler with a parameter contract: either a pydantic model class (the
handler receives a validated model instance) or a raw JSON schema (the
handler receives the validated argument dict).

Registration happens once at process start; create_app freezes the
registry when it is built, after which the registry is read-only and can be
shared by concurrent requests without locking.

Example:
    >>> from pydantic import BaseModel
    >>> class EchoParams(BaseModel):
    ...     message: str
    >>> registry = ToolRegistry()
    >>> registry.register(
    ...     "echo",
    ...     lambda params: params.message,
    ...     EchoParams,
    ...     description="Echo back the given message",
    ... )
    >>> [d.name for d in registry.list_tools()]
    ['echo']
"""

from __future__ import annotations

import asyncio
import inspect
import json
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from functools import partial
from typing import Any, Union

import jsonschema
from mcp import types
from pydantic import BaseModel, ValidationError

from serverless_mcp.errors import InvalidParametersError, ToolExecutionError, ToolNotFoundError
from serverless_mcp.observability import (
    get_logger,
    is_debug_mode,
    sanitize_for_logging,
    tool_span_context,
)

logger = get_logger(__name__)

_INTERNAL_TOOL_ERROR_MESSAGE = "Internal tool error"

EMPTY_INPUT_SCHEMA: dict[str, Any] = {"type": "object", "additionalProperties": False}

# A handler receives the validated parameters (and a ToolContext when
# registered with with_context=True) and returns a CallToolResult, a list
# of content items, a str, or a JSON-serializable value. It may be sync or
# async.
ToolHandler = Callable[..., Any]
ToolParams = Union[type[BaseModel], dict[str, Any], None]


def validation_diagnostics(error: ValidationError) -> list[dict[str, Any]]:
    """Field-level diagnostics from a pydantic error, safe to serialize as JSON."""
    return [
        {"loc": [str(part) for part in item["loc"]], "msg": item["msg"], "type": item["type"]}
        for item in error.errors(include_url=False, include_context=False, include_input=False)
    ]


_CONTENT_TYPES = (types.TextContent, types.ImageContent, types.EmbeddedResource)


def _to_result(out: Any) -> types.CallToolResult:
    """Normalize a handler return value into a CallToolResult.

    A non-empty list of content items becomes the ordered result content;
    dicts and other lists are serialized into one JSON text item.
    """
    if isinstance(out, types.CallToolResult):
        return out
    if out is None:
        return types.CallToolResult(content=[])
    if isinstance(out, list) and out and all(isinstance(item, _CONTENT_TYPES) for item in out):
        return types.CallToolResult(content=list(out))
    if isinstance(out, str):
        text = out
    elif isinstance(out, (dict, list)):
        text = json.dumps(out)
    else:
        text = str(out)
    return types.CallToolResult(content=[types.TextContent(type="text", text=text)])


@dataclass
class ToolContext:
    """Session-scoped data handed to tools registered with ``with_context=True``.

    ``session_data`` lives exactly as long as the session: one request in
    stateless mode, until DELETE or shutdown in stateful mode.
    """

    session_data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ToolDescriptor:
    """An immutable registry entry: name, description, parameter contract and handler."""

    name: str
    description: str
    handler: ToolHandler
    input_schema: dict[str, Any]
    params_model: type[BaseModel] | None = None
    title: str | None = None
    with_context: bool = False

    def to_tool(self) -> types.Tool:
        """Render as a tools/list item."""
        return types.Tool(
            name=self.name,
            title=self.title,
            description=self.description,
            inputSchema=self.input_schema,
        )

    def parse_arguments(self, arguments: dict[str, Any]) -> Any:
        """Validate raw arguments against this tool's parameter contract.

        Returns:
            A params_model instance for typed tools, otherwise the argument dict.

        Raises:
            InvalidParametersError: With field-level diagnostics on mismatch.
        """
        if self.params_model is not None:
            try:
                return self.params_model.model_validate(arguments)
            except ValidationError as e:
                raise InvalidParametersError(
                    f"arguments do not match the schema of tool '{self.name}'",
                    errors=validation_diagnostics(e),
                    details={"tool": self.name},
                ) from e
        try:
            jsonschema.validate(instance=arguments, schema=self.input_schema)
        except jsonschema.ValidationError as e:
            raise InvalidParametersError(
                e.message,
                errors=[
                    {
                        "loc": [str(part) for part in e.absolute_path],
                        "msg": e.message,
                        "type": str(e.validator),
                    }
                ],
                details={"tool": self.name},
            ) from e
        return arguments

    async def invoke(
        self,
        arguments: dict[str, Any],
        context: ToolContext | None = None,
    ) -> types.CallToolResult:
        """Validate arguments, then run the handler exactly once.

        Async handlers are awaited; sync handlers run in the default executor
        so they never block the event loop.

        Args:
            arguments: Raw tools/call arguments.
            context: Session context, passed as second argument to handlers
                registered with ``with_context=True``.

        Raises:
            InvalidParametersError: Arguments rejected; the handler was not called.
            ToolExecutionError: The handler failed.
        """
        params = self.parse_arguments(arguments)
        if self.with_context:
            call = partial(self.handler, params, context or ToolContext())
        else:
            call = partial(self.handler, params)
        start_time = time.perf_counter()
        with tool_span_context(self.name) as span:
            try:
                if inspect.iscoroutinefunction(self.handler):
                    out = await call()
                else:
                    loop = asyncio.get_running_loop()
                    out = await loop.run_in_executor(None, call)
                    if inspect.isawaitable(out):
                        out = await out
                result = _to_result(out)
            except ToolExecutionError as e:
                span.set_attribute("mcp.tool.is_error", True)
                logger.warning("mcp.tool.failed", tool=self.name, error=e.message)
                raise
            except Exception as e:
                span.set_attribute("mcp.tool.is_error", True)
                log_args = arguments if is_debug_mode() else sanitize_for_logging(arguments)
                logger.exception(
                    "mcp.tool.error",
                    tool=self.name,
                    arguments=log_args,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                message = str(e) if is_debug_mode() else _INTERNAL_TOOL_ERROR_MESSAGE
                raise ToolExecutionError(message, tool_name=self.name) from e

        duration_ms = (time.perf_counter() - start_time) * 1000
        logger.debug("mcp.tool.completed", tool=self.name, duration_ms=round(duration_ms, 2))
        return result


class ToolRegistry:
    """Ordered registry of MCP tools.

    Tool order is registration order and is what tools/list returns. Names
    are unique; registering an existing name raises ValueError.
    """

    def __init__(self) -> None:
        self._tools: dict[str, ToolDescriptor] = {}
        self._frozen = False

    def register(
        self,
        name: str,
        handler: ToolHandler,
        params: ToolParams = None,
        *,
        description: str = "",
        title: str | None = None,
        with_context: bool = False,
    ) -> ToolDescriptor:
        """Register a tool that can be invoked via tools/call.

        Args:
            name: Unique tool name (e.g. "get_weather").
            handler: Callable receiving the validated parameters. May be
                sync or async.
            params: A pydantic model class (typed parameters), a JSON Schema
                dict (handler receives the validated dict), or None for a tool
                without parameters.
            description: Human-readable description (defaults to "Tool <name>").
            title: Optional display title.
            with_context: Call the handler as ``handler(params, context)`` with
                the session's ToolContext.

        Returns:
            The registered ToolDescriptor.

        Raises:
            RuntimeError: If the registry has been frozen.
            ValueError: If the name is empty or already registered.
        """
        if self._frozen:
            raise RuntimeError(f"Cannot register tool '{name}': registry is frozen")
        if not name:
            raise ValueError("Tool name must not be empty")
        if name in self._tools:
            raise ValueError(f"Tool already registered: {name}")
        if not callable(handler):
            raise TypeError(f"Handler for tool '{name}' must be callable")

        params_model: type[BaseModel] | None = None
        if isinstance(params, type) and issubclass(params, BaseModel):
            params_model = params
            input_schema = params.model_json_schema()
        else:
            input_schema = params if params else EMPTY_INPUT_SCHEMA
        descriptor = ToolDescriptor(
            name=name,
            description=description or f"Tool {name}",
            handler=handler,
            input_schema=input_schema,
            params_model=params_model,
            title=title,
            with_context=with_context,
        )
        self._tools[name] = descriptor
        logger.debug("mcp.tool.registered", tool=name, typed=params_model is not None)
        return descriptor

    def tool(
        self,
        name: str | None = None,
        *,
        params: ToolParams = None,
        description: str = "",
        title: str | None = None,
        with_context: bool = False,
    ) -> Callable[[ToolHandler], ToolHandler]:
        """Decorator form of register(); the function name is the default tool name."""

        def decorator(func: ToolHandler) -> ToolHandler:
            self.register(
                name or func.__name__,
                func,
                params,
                description=description,
                title=title,
                with_context=with_context,
            )
            return func

        return decorator

    def lookup(self, name: str) -> ToolDescriptor:
        """Return the descriptor for ``name``.

        Raises:
            ToolNotFoundError: If no tool with that name is registered.
        """
        try:
            return self._tools[name]
        except KeyError:
            raise ToolNotFoundError(name) from None

    def list_tools(self) -> list[ToolDescriptor]:
        """Return all descriptors in registration order."""
        return list(self._tools.values())

    def freeze(self) -> None:
        """Make the registry read-only."""
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def __iter__(self) -> Iterator[ToolDescriptor]:
        return iter(self.list_tools())
