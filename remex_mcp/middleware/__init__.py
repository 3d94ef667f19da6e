"""Remex MCP middleware components."""

from remex_mcp.middleware.base import RemexMiddleware
from remex_mcp.middleware.errors import ErrorHandlingMiddleware
from remex_mcp.middleware.logging import LoggingMiddleware

__all__ = [
    "ErrorHandlingMiddleware",
    "LoggingMiddleware",
    "RemexMiddleware",
]
