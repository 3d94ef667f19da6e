"""Remote execution orchestration engine exposed over MCP and HTTP."""

__version__ = "0.1.0"
