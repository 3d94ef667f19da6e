"""Entry point for remex_mcp server."""

import logging

from remex_mcp.config import Config
from remex_mcp.dependencies import Dependencies
from remex_mcp.server import configure_logging, create_server

logger = logging.getLogger(__name__)


def run_server() -> None:
    """Run the MCP server with configured transport."""
    config = Config.from_env()
    configure_logging(config)
    mcp = create_server(Dependencies.from_config(config))

    if config.transport == "stdio":
        logger.info("Starting Remex MCP server (transport=stdio)")
        mcp.run(transport="stdio")
    else:
        logger.info(
            "Starting Remex MCP server (transport=http, host=%s, port=%d)",
            config.http_host,
            config.http_port,
        )
        mcp.run(
            transport="http",
            host=config.http_host,
            port=config.http_port,
        )


if __name__ == "__main__":
    run_server()
