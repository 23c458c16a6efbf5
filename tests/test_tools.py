"""Tests for the tool registry and tool invocation."""

from __future__ import annotations

from typing import Any

import pytest
from mcp import types
from pydantic import BaseModel

from serverless_mcp.errors import InvalidParametersError, ToolExecutionError, ToolNotFoundError
from serverless_mcp.tools import EMPTY_INPUT_SCHEMA, ToolContext, ToolRegistry

from tests.conftest import EchoParams


class TestRegister:
    """Tests for ToolRegistry.register and the tool decorator."""

    def test_typed_tool_schema_from_model(self) -> None:
        registry = ToolRegistry()
        descriptor = registry.register("echo", lambda p: p.message, EchoParams, description="Echo")
        assert descriptor.params_model is EchoParams
        assert descriptor.input_schema["properties"]["message"]["type"] == "string"
        assert descriptor.input_schema["required"] == ["message"]

    def test_raw_schema_tool(self) -> None:
        schema = {"type": "object", "properties": {"x": {"type": "number"}}, "required": ["x"]}
        registry = ToolRegistry()
        descriptor = registry.register("double", lambda args: args["x"] * 2, schema)
        assert descriptor.params_model is None
        assert descriptor.input_schema is schema
        assert descriptor.description == "Tool double"

    def test_no_params_uses_empty_schema(self) -> None:
        registry = ToolRegistry()
        descriptor = registry.register("noop", lambda args: None)
        assert descriptor.input_schema == EMPTY_INPUT_SCHEMA

    def test_duplicate_name_rejected(self) -> None:
        registry = ToolRegistry()
        registry.register("echo", lambda p: p.message, EchoParams)
        with pytest.raises(ValueError, match="already registered"):
            registry.register("echo", lambda p: p.message, EchoParams)

    def test_empty_name_rejected(self) -> None:
        with pytest.raises(ValueError, match="must not be empty"):
            ToolRegistry().register("", lambda args: None)

    def test_non_callable_rejected(self) -> None:
        with pytest.raises(TypeError):
            ToolRegistry().register("bad", "not callable")  # type: ignore[arg-type]

    def test_register_after_freeze_fails(self) -> None:
        registry = ToolRegistry()
        registry.freeze()
        assert registry.frozen
        with pytest.raises(RuntimeError, match="frozen"):
            registry.register("late", lambda args: None)

    def test_decorator_uses_function_name(self) -> None:
        registry = ToolRegistry()

        @registry.tool(params=EchoParams, description="Shout")
        def shout(params: EchoParams) -> str:
            return params.message.upper()

        assert "shout" in registry
        assert registry.lookup("shout").description == "Shout"
        # the decorator returns the function unchanged
        assert shout(EchoParams(message="a")) == "A"

    def test_decorator_explicit_name(self) -> None:
        registry = ToolRegistry()

        @registry.tool("renamed")
        def function_name(args: dict[str, Any]) -> str:
            return "x"

        assert "renamed" in registry
        assert "function_name" not in registry


class TestLookupAndList:
    def test_lookup_unknown_raises(self) -> None:
        with pytest.raises(ToolNotFoundError) as exc_info:
            ToolRegistry().lookup("missing")
        assert exc_info.value.tool_name == "missing"

    def test_list_in_registration_order(self) -> None:
        registry = ToolRegistry()
        for name in ("zeta", "alpha", "mid"):
            registry.register(name, lambda args: None)
        assert [d.name for d in registry.list_tools()] == ["zeta", "alpha", "mid"]
        assert [d.name for d in registry] == ["zeta", "alpha", "mid"]
        assert len(registry) == 3

    def test_to_tool(self) -> None:
        registry = ToolRegistry()
        registry.register("echo", lambda p: p.message, EchoParams, description="Echo", title="Echo!")
        tool = registry.lookup("echo").to_tool()
        dumped = tool.model_dump(by_alias=True, exclude_none=True)
        assert dumped["name"] == "echo"
        assert dumped["title"] == "Echo!"
        assert "inputSchema" in dumped


class TestInvoke:
    """Tests for ToolDescriptor.invoke."""

    @pytest.mark.asyncio
    async def test_sync_handler_result_wrapped_as_text(self) -> None:
        registry = ToolRegistry()
        registry.register("echo", lambda p: p.message, EchoParams)
        result = await registry.lookup("echo").invoke({"message": "hi"})
        assert result.content == [types.TextContent(type="text", text="hi")]
        assert result.isError is False

    @pytest.mark.asyncio
    async def test_async_handler_awaited(self) -> None:
        registry = ToolRegistry()

        async def handler(params: EchoParams) -> str:
            return params.message * 2

        registry.register("twice", handler, EchoParams)
        result = await registry.lookup("twice").invoke({"message": "ab"})
        assert result.content == [types.TextContent(type="text", text="abab")]

    @pytest.mark.asyncio
    async def test_call_tool_result_returned_verbatim(self) -> None:
        expected = types.CallToolResult(content=[types.TextContent(type="text", text="a")], isError=True)
        registry = ToolRegistry()
        registry.register("multi", lambda args: expected)
        assert await registry.lookup("multi").invoke({}) is expected

    @pytest.mark.asyncio
    async def test_dict_result_serialized_as_json(self) -> None:
        registry = ToolRegistry()
        registry.register("data", lambda args: {"a": 1})
        result = await registry.lookup("data").invoke({})
        assert result.content[0].text == '{"a": 1}'

    @pytest.mark.asyncio
    async def test_content_list_returned_in_order(self) -> None:
        content = [
            types.TextContent(type="text", text="first"),
            types.TextContent(type="text", text="second"),
        ]
        registry = ToolRegistry()
        registry.register("multi", lambda args: content)
        result = await registry.lookup("multi").invoke({})
        assert result.content == content
        assert result.isError is False

    @pytest.mark.asyncio
    async def test_plain_list_serialized_as_json(self) -> None:
        registry = ToolRegistry()
        registry.register("numbers", lambda args: [1, 2])
        result = await registry.lookup("numbers").invoke({})
        assert result.content == [types.TextContent(type="text", text="[1, 2]")]

    @pytest.mark.asyncio
    async def test_unserializable_result_becomes_tool_error(self, debug_off: None) -> None:
        registry = ToolRegistry()
        registry.register("opaque", lambda args: {"handle": object()})
        with pytest.raises(ToolExecutionError) as exc_info:
            await registry.lookup("opaque").invoke({})
        assert exc_info.value.message == "Internal tool error"
        assert exc_info.value.tool_name == "opaque"
        assert isinstance(exc_info.value.__cause__, TypeError)

    @pytest.mark.asyncio
    async def test_none_result_is_empty_success(self) -> None:
        registry = ToolRegistry()
        registry.register("noop", lambda args: None)
        result = await registry.lookup("noop").invoke({})
        assert result.content == []
        assert result.isError is False

    @pytest.mark.asyncio
    async def test_invalid_typed_arguments_skip_handler(self) -> None:
        calls: list[Any] = []
        registry = ToolRegistry()
        registry.register("echo", lambda p: calls.append(p), EchoParams)
        with pytest.raises(InvalidParametersError) as exc_info:
            await registry.lookup("echo").invoke({"message": 42})
        assert calls == []
        error = exc_info.value
        assert error.details["tool"] == "echo"
        assert error.errors[0]["loc"] == ["message"]

    @pytest.mark.asyncio
    async def test_invalid_raw_schema_arguments_skip_handler(self) -> None:
        calls: list[Any] = []
        schema = {"type": "object", "properties": {"x": {"type": "number"}}, "required": ["x"]}
        registry = ToolRegistry()
        registry.register("double", lambda args: calls.append(args), schema)
        with pytest.raises(InvalidParametersError) as exc_info:
            await registry.lookup("double").invoke({"x": "not a number"})
        assert calls == []
        assert exc_info.value.errors[0]["loc"] == ["x"]
        assert exc_info.value.errors[0]["type"] == "type"

    @pytest.mark.asyncio
    async def test_empty_schema_rejects_unexpected_arguments(self) -> None:
        registry = ToolRegistry()
        registry.register("noop", lambda args: None)
        with pytest.raises(InvalidParametersError):
            await registry.lookup("noop").invoke({"unexpected": 1})

    @pytest.mark.asyncio
    async def test_tool_execution_error_keeps_message(self) -> None:
        def handler(args: dict[str, Any]) -> str:
            raise ToolExecutionError("quota exceeded")

        registry = ToolRegistry()
        registry.register("limited", handler)
        with pytest.raises(ToolExecutionError, match="quota exceeded"):
            await registry.lookup("limited").invoke({})

    @pytest.mark.asyncio
    async def test_unexpected_error_hidden_outside_debug(self, debug_off: None) -> None:
        def handler(args: dict[str, Any]) -> str:
            raise RuntimeError("database password leaked")

        registry = ToolRegistry()
        registry.register("crash", handler)
        with pytest.raises(ToolExecutionError) as exc_info:
            await registry.lookup("crash").invoke({})
        assert exc_info.value.message == "Internal tool error"
        assert exc_info.value.tool_name == "crash"
        assert isinstance(exc_info.value.__cause__, RuntimeError)

    @pytest.mark.asyncio
    async def test_unexpected_error_exposed_in_debug(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SMCP_DEBUG", "true")

        def handler(args: dict[str, Any]) -> str:
            raise RuntimeError("boom")

        registry = ToolRegistry()
        registry.register("crash", handler)
        with pytest.raises(ToolExecutionError, match="boom"):
            await registry.lookup("crash").invoke({})

    @pytest.mark.asyncio
    async def test_context_passed_when_requested(self) -> None:
        class Params(BaseModel):
            key: str

        def handler(params: Params, context: ToolContext) -> str:
            context.session_data[params.key] = True
            return ",".join(sorted(context.session_data))

        registry = ToolRegistry()
        registry.register("remember", handler, Params, with_context=True)
        context = ToolContext(session_data={"earlier": 1})
        result = await registry.lookup("remember").invoke({"key": "seen"}, context)
        assert result.content[0].text == "earlier,seen"
        assert context.session_data == {"earlier": 1, "seen": True}
