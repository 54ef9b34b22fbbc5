"""Capabilities callers plug in (HTTP, tools) and the workflow runner."""

from dagflow.runner.http_client import HttpClient, HttpResponse, HttpxClient
from dagflow.runner.tool_registry import Tool, ToolRegistry

__all__ = [
    "HttpClient",
    "HttpResponse",
    "HttpxClient",
    "Tool",
    "ToolRegistry",
]
