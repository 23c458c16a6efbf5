"""Serverless entry point: the platform imports ``app`` from this module."""

from serverless_mcp.app import build_app
from serverless_mcp.observability import configure_logging

configure_logging()
app = build_app()

__all__ = ["app"]
