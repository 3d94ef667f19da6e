"""Remex MCP FastMCP server.

This is a thin wrapper that wires the orchestration services into MCP
tools and HTTP routes. All business logic lives in services/.
"""

import logging
import sys
from collections.abc import AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Any

from fastmcp import FastMCP
from starlette.requests import Request
from starlette.responses import JSONResponse

from remex_mcp import __version__
from remex_mcp.config import Config
from remex_mcp.dependencies import Dependencies
from remex_mcp.middleware import ErrorHandlingMiddleware, LoggingMiddleware
from remex_mcp.routes import register_routes
from remex_mcp.tools import register_tools
from remex_mcp.utils.console import MCPRequestFormatter


def configure_logging(config: Config) -> None:
    """Configure colorful logging for the remex_mcp package.

    Safe to call more than once; the handler is only added the first time.
    """
    log_level = config.log_level
    use_colors = config.log_colors

    # Disable colors if not a TTY
    if not sys.stderr.isatty():
        use_colors = False

    remex_logger = logging.getLogger("remex_mcp")
    remex_logger.setLevel(getattr(logging, log_level, logging.INFO))

    # Only add handler if not already configured
    if not remex_logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(MCPRequestFormatter(use_colors=use_colors))
        remex_logger.addHandler(handler)
        remex_logger.propagate = False

    # Suppress noisy third-party loggers
    for noisy_logger in [
        "uvicorn",
        "uvicorn.access",
        "uvicorn.error",
        "asyncssh",
        "httpx",
        "httpcore",
        "fastmcp",
        "starlette",
        "anyio",
    ]:
        lg = logging.getLogger(noisy_logger)
        lg.setLevel(logging.WARNING)


logger = logging.getLogger(__name__)


def make_lifespan(
    deps: Dependencies,
) -> Callable[[FastMCP], AbstractAsyncContextManager[dict[str, Any]]]:
    """Build the server lifespan that tears down ``deps`` on shutdown."""

    @asynccontextmanager
    async def app_lifespan(server: FastMCP) -> AsyncIterator[dict[str, Any]]:
        connections = deps.registry.get_connections()
        logger.info(
            "Remex MCP server ready (%d registered connection(s))",
            len(connections),
        )
        try:
            yield {"connections": [c.id for c in connections]}
        finally:
            logger.info("Remex MCP server shutting down")
            if deps.pool.pool_size > 0:
                logger.info(
                    "Closing %d active transport(s): %s",
                    deps.pool.pool_size,
                    ", ".join(deps.pool.active_hosts),
                )
            await deps.cleanup()
            logger.info("Remex MCP server shutdown complete")

    return app_lifespan


def configure_middleware(server: FastMCP, config: Config) -> None:
    """Add middleware in order: ErrorHandling -> Logging (with integrated timing).

    Args:
        server: The FastMCP server to configure.
        config: Supplies payload logging, slow threshold and traceback settings.
    """
    # First added = innermost
    server.add_middleware(
        ErrorHandlingMiddleware(include_traceback=config.include_traceback)
    )
    server.add_middleware(
        LoggingMiddleware(
            include_payloads=config.log_payloads,
            slow_threshold_ms=config.slow_threshold_ms,
        )
    )


def create_server(deps: Dependencies | None = None) -> FastMCP:
    """Create and configure the MCP server with tools, routes and middleware.

    Args:
        deps: Services to serve; built from the environment when omitted.

    Returns:
        Configured FastMCP server instance
    """
    if deps is None:
        config = Config.from_env()
        configure_logging(config)
        deps = Dependencies.from_config(config)
    else:
        configure_logging(deps.config)

    server = FastMCP("remex_mcp", lifespan=make_lifespan(deps))
    configure_middleware(server, deps.config)
    register_tools(server, deps)
    register_routes(server, deps)

    @server.custom_route("/health", methods=["GET"])
    async def health_check(request: Request) -> JSONResponse:
        """Health check endpoint."""
        client_host = request.client.host if request.client else "unknown"
        logger.debug("Health check from %s", client_host)
        return JSONResponse(
            {
                "success": True,
                "data": {
                    "status": "ok",
                    "version": __version__,
                    "connections": len(deps.registry.get_connections()),
                    "transports": deps.pool.pool_size,
                },
            }
        )

    return server
