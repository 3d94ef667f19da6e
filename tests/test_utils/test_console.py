"""Tests for the console log formatters."""

import logging
import sys
from datetime import timezone

from remex_mcp.utils.console import COLORS, ColorfulFormatter, MCPRequestFormatter


def make_record(name: str, message: str, level: int = logging.INFO) -> logging.LogRecord:
    return logging.LogRecord(name, level, __file__, 1, message, None, None)


def test_plain_format_has_four_columns():
    formatter = ColorfulFormatter(use_colors=False, tz=timezone.utc)

    line = formatter.format(make_record("remex_mcp.services.registry", "Connection c1 -> connected"))

    parts = [p.strip() for p in line.split("|")]
    assert len(parts) == 4
    assert parts[1] == "INFO"
    assert parts[2] == "services.registry"
    assert parts[3] == "Connection c1 -> connected"
    assert "\033[" not in line


def test_colored_format_highlights_durations():
    formatter = ColorfulFormatter(use_colors=True)

    line = formatter.format(make_record("remex_mcp.middleware.logging", "<<< TOOL: connect -> ok [12.5ms]"))

    assert f"{COLORS['bright_yellow']}12.5ms{COLORS['reset']}" in line


def test_format_includes_exception_text():
    formatter = ColorfulFormatter(use_colors=False)
    try:
        raise RuntimeError("boom")
    except RuntimeError:
        record = logging.LogRecord(
            "remex_mcp.server", logging.ERROR, __file__, 1, "failed", None, sys.exc_info()
        )

    line = formatter.format(record)

    assert "RuntimeError: boom" in line


def test_request_formatter_marks_lifecycle_messages():
    formatter = MCPRequestFormatter(use_colors=True)

    ready = formatter.format(make_record("remex_mcp.server", "Remex MCP server ready"))
    failed = formatter.format(make_record("remex_mcp.services.executor", "Execution e1 failed: x"))
    other = formatter.format(make_record("remex_mcp.services.pool", "nothing special"))

    assert ready.startswith(f"{COLORS['bright_green']}>>>")
    assert failed.startswith(f"{COLORS['bright_red']}!!")
    assert other.startswith("    ")


def test_request_formatter_without_colors_adds_no_prefix():
    formatter = MCPRequestFormatter(use_colors=False)

    line = formatter.format(make_record("remex_mcp.server", "Remex MCP server ready"))

    assert not line.startswith(">>>")
