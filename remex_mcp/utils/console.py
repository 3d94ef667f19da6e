"""Colorful console logging formatter."""

import logging
import re
from datetime import datetime, tzinfo

# ANSI color codes
COLORS = {
    "reset": "\033[0m",
    "bold": "\033[1m",
    "dim": "\033[2m",
    "red": "\033[31m",
    "green": "\033[32m",
    "yellow": "\033[33m",
    "blue": "\033[34m",
    "magenta": "\033[35m",
    "cyan": "\033[36m",
    "white": "\033[37m",
    "bright_black": "\033[90m",
    "bright_red": "\033[91m",
    "bright_green": "\033[92m",
    "bright_yellow": "\033[93m",
    "bright_blue": "\033[94m",
    "bright_magenta": "\033[95m",
    "bright_cyan": "\033[96m",
    "bg_red": "\033[41m",
}

LEVEL_COLORS = {
    "DEBUG": COLORS["bright_black"],
    "INFO": COLORS["bright_green"],
    "WARNING": COLORS["bright_yellow"],
    "ERROR": COLORS["bright_red"],
    "CRITICAL": COLORS["bg_red"] + COLORS["white"] + COLORS["bold"],
}

# Component colors for logger names
COMPONENT_COLORS = {
    "remex_mcp.server": COLORS["bright_cyan"],
    "remex_mcp.services.pool": COLORS["bright_magenta"],
    "remex_mcp.services.registry": COLORS["magenta"],
    "remex_mcp.services.executor": COLORS["bright_blue"],
    "remex_mcp.services.stager": COLORS["cyan"],
    "remex_mcp.services.pipeline": COLORS["blue"],
    "remex_mcp.middleware": COLORS["yellow"],
    "remex_mcp.config": COLORS["green"],
    "default": COLORS["white"],
}

_PATTERNS = (
    # Durations like "123.4ms"
    (re.compile(r"(\d+\.?\d*ms)"), COLORS["bright_yellow"]),
    # user@host:port
    (re.compile(r"(\w+@[\w.\-]+:\d+)"), COLORS["bright_magenta"]),
    (re.compile(r"(pool_size=\d+(?:/\d+)?)"), COLORS["cyan"]),
    # Status transitions "-> connected"
    (re.compile(r"(-> (?:connecting|connected|disconnected|error))"), COLORS["bright_cyan"]),
)


class ColorfulFormatter(logging.Formatter):
    """Colorful log formatter with component highlighting."""

    def __init__(self, use_colors: bool = True, tz: tzinfo | None = None) -> None:
        """Initialize the formatter.

        Args:
            use_colors: Whether to use ANSI colors.
            tz: Timezone for timestamps; local time when None.
        """
        super().__init__()
        self.use_colors = use_colors
        self.tz = tz

    def _colorize(self, text: str, color: str) -> str:
        if not self.use_colors:
            return text
        return f"{color}{text}{COLORS['reset']}"

    def _get_component_color(self, name: str) -> str:
        for prefix, color in COMPONENT_COLORS.items():
            if prefix != "default" and name.startswith(prefix):
                return color
        return COMPONENT_COLORS["default"]

    def _format_timestamp(self, record: logging.LogRecord) -> str:
        dt = datetime.fromtimestamp(record.created, tz=self.tz)
        return f"{dt:%H:%M:%S}.{int(record.msecs):03d} {dt:%m/%d}"

    def _format_level(self, record: logging.LogRecord) -> str:
        level = record.levelname
        color = LEVEL_COLORS.get(level, COLORS["white"])
        return self._colorize(f"{level:<8}", color)

    def _format_component(self, record: logging.LogRecord) -> str:
        name = record.name.removeprefix("remex_mcp.")
        color = self._get_component_color(record.name)
        return self._colorize(f"{name:<20}", color)

    def format(self, record: logging.LogRecord) -> str:
        """Format the log record as ``time | level | component | message``."""
        timestamp = self._colorize(self._format_timestamp(record), COLORS["dim"])
        level = self._format_level(record)
        component = self._format_component(record)
        sep = self._colorize("|", COLORS["dim"])
        message = self._highlight_message(record.getMessage())

        line = f"{timestamp} {sep} {level} {sep} {component} {sep} {message}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line

    def _highlight_message(self, message: str) -> str:
        if not self.use_colors:
            return message
        for pattern, color in _PATTERNS:
            message = pattern.sub(f"{color}\\1{COLORS['reset']}", message)
        return message


class MCPRequestFormatter(ColorfulFormatter):
    """Extended formatter with request and lifecycle indicators."""

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        if not self.use_colors:
            return base

        message = record.getMessage().lower()

        if "starting" in message or "ready" in message:
            return f"{COLORS['bright_green']}>>>{COLORS['reset']} {base}"
        elif "shutting down" in message or "shutdown" in message:
            return f"{COLORS['bright_red']}<<<{COLORS['reset']} {base}"
        elif "error" in message or "failed" in message:
            return f"{COLORS['bright_red']}!!{COLORS['reset']}  {base}"
        elif "warning" in message or "slow" in message:
            return f"{COLORS['bright_yellow']}!{COLORS['reset']}   {base}"
        elif "completed" in message or "finalized" in message or "connected " in message:
            return f"{COLORS['bright_green']}OK{COLORS['reset']}  {base}"
        elif "opening" in message or "uploaded" in message:
            return f"{COLORS['bright_cyan']}+{COLORS['reset']}   {base}"
        elif "closing" in message or "stopped" in message:
            return f"{COLORS['bright_yellow']}-{COLORS['reset']}   {base}"
        elif "reusing" in message or "downloaded" in message:
            return f"{COLORS['bright_magenta']}~{COLORS['reset']}   {base}"

        return f"    {base}"
