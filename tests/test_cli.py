"""Tests for the serverless-mcp CLI."""

from __future__ import annotations

import json
from typing import Any

import pytest
from typer.testing import CliRunner

from serverless_mcp import __version__
from serverless_mcp.cli import app

runner = CliRunner()


def test_version() -> None:
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.stdout


def test_tools_prints_json() -> None:
    result = runner.invoke(app, ["tools"])
    assert result.exit_code == 0
    tools = json.loads(result.stdout)
    assert tools[0]["name"] == "get_test_message"
    assert "inputSchema" in tools[0]


class TestServe:
    @pytest.fixture
    def captured(self, monkeypatch: pytest.MonkeyPatch) -> dict[str, Any]:
        calls: dict[str, Any] = {}

        def fake_run(app: Any, **kwargs: Any) -> None:
            calls["app"] = app
            calls.update(kwargs)

        monkeypatch.setattr("serverless_mcp.cli.uvicorn.run", fake_run)
        monkeypatch.setattr("serverless_mcp.cli.configure_logging", lambda **kwargs: None)
        for name in ("SMCP_STATEFUL", "SMCP_JSON_RESPONSE", "SMCP_PATH"):
            monkeypatch.delenv(name, raising=False)
        return calls

    def test_serve_defaults(self, captured: dict[str, Any]) -> None:
        result = runner.invoke(app, ["serve"])
        assert result.exit_code == 0, result.stdout
        assert captured["host"] == "127.0.0.1"
        assert captured["port"] == 8000
        config = captured["app"].state.config
        assert config.stateful_mode is False
        assert config.json_response is True
        assert "stateless" in result.stdout

    def test_serve_flags(self, captured: dict[str, Any]) -> None:
        result = runner.invoke(
            app, ["serve", "--host", "0.0.0.0", "--port", "9000", "--stateful", "--json-response"]
        )
        assert result.exit_code == 0, result.stdout
        assert captured["host"] == "0.0.0.0"
        assert captured["port"] == 9000
        config = captured["app"].state.config
        assert config.stateful_mode is True
        assert config.json_response is True
        assert "stateful" in result.stdout

    def test_stateless_flag_overrides_environment(
        self, captured: dict[str, Any], monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("SMCP_STATEFUL", "true")
        result = runner.invoke(app, ["serve", "--stateless"])
        assert result.exit_code == 0, result.stdout
        assert captured["app"].state.config.stateful_mode is False

    def test_sse_flag_disables_json_response(self, captured: dict[str, Any]) -> None:
        result = runner.invoke(app, ["serve", "--sse"])
        assert result.exit_code == 0, result.stdout
        assert captured["app"].state.config.json_response is False
