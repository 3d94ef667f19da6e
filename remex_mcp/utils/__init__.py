"""Utilities for Remex MCP."""

from remex_mcp.utils.console import ColorfulFormatter, MCPRequestFormatter
from remex_mcp.utils.ping import check_host_online
from remex_mcp.utils.shell import (
    build_remote_command,
    quote_posix_arg,
    quote_powershell_arg,
    render_parameter_flags,
)

__all__ = [
    "build_remote_command",
    "check_host_online",
    "ColorfulFormatter",
    "MCPRequestFormatter",
    "quote_posix_arg",
    "quote_powershell_arg",
    "render_parameter_flags",
]
