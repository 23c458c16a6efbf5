"""Command-line interface for local development.

Example:
    >>> # From terminal:
    >>> # serverless-mcp --version
    >>> # serverless-mcp serve --port 8000 --stateful --sse
    >>> # serverless-mcp tools
"""

import json
from typing import Annotated, Optional

import typer
import uvicorn

from serverless_mcp import __version__
from serverless_mcp.app import build_descriptor, build_registry
from serverless_mcp.config import ServerConfig
from serverless_mcp.observability import configure_logging
from serverless_mcp.server import create_app

app = typer.Typer(help="Serverless MCP server CLI.")

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8000


def _version_callback(value: bool) -> None:
    """Print the version and exit when requested."""
    if value:
        typer.echo(__version__)
        raise typer.Exit()


VERSION_OPTION = typer.Option(
    False,
    "--version",
    help="Show serverless-mcp version and exit.",
    callback=_version_callback,
    is_eager=True,
)


@app.callback()
def cli(version: bool = VERSION_OPTION) -> None:
    """Serverless MCP CLI entrypoint."""


@app.command("serve")
def serve(
    host: Annotated[str, typer.Option("--host", help="Interface to bind.")] = DEFAULT_HOST,
    port: Annotated[int, typer.Option("--port", "-p", help="Port to listen on.")] = DEFAULT_PORT,
    stateful: Annotated[
        Optional[bool],
        typer.Option(
            "--stateful/--stateless",
            help="Keep sessions between requests (default from SMCP_STATEFUL).",
        ),
    ] = None,
    json_response: Annotated[
        Optional[bool],
        typer.Option(
            "--json-response/--sse",
            help="Answer with JSON bodies or event streams (default from SMCP_JSON_RESPONSE).",
        ),
    ] = None,
    log_level: Annotated[
        Optional[str],
        typer.Option("--log-level", help="Log level (DEBUG, INFO, WARNING, ERROR)."),
    ] = None,
) -> None:
    """Run the default MCP app with uvicorn."""
    configure_logging(log_level=log_level.upper() if log_level else None, force=True)
    overrides: dict[str, object] = {}
    if stateful is not None:
        overrides["stateful_mode"] = stateful
    if json_response is not None:
        overrides["json_response"] = json_response
    config = ServerConfig.from_env().model_copy(update=overrides)

    server_app = create_app(build_registry(), build_descriptor(config), config)
    mode = "stateful" if config.stateful_mode else "stateless"
    typer.echo(f"Serving MCP ({mode}) on http://{host}:{port}{config.path}")
    uvicorn.run(server_app, host=host, port=port, log_config=None)


@app.command("tools")
def tools() -> None:
    """Print the registered tool descriptors as JSON."""
    registry = build_registry()
    listing = [
        descriptor.to_tool().model_dump(by_alias=True, exclude_none=True)
        for descriptor in registry.list_tools()
    ]
    typer.echo(json.dumps(listing, indent=2))


def main() -> None:
    app()


if __name__ == "__main__":
    main()
