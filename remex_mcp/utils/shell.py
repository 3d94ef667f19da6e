"""Remote command rendering and quoting."""

import re
import shlex
from collections.abc import Mapping
from typing import Any

_POWERSHELL_NEEDS_QUOTES = re.compile(r"[\s&(){}^=;!'+,`~|<>%$\"]")


def quote_powershell_arg(arg: str) -> str:
    """Quote an argument for a PowerShell command line.

    The argument is wrapped in double quotes when it is empty or contains
    whitespace or shell metacharacters. Inside the quotes, backticks and
    ``$`` are escaped with a backtick and double quotes with a backslash.
    """
    if not arg:
        return '""'
    if not _POWERSHELL_NEEDS_QUOTES.search(arg):
        return arg
    escaped = arg.replace("`", "``").replace("$", "`$").replace('"', '\\"')
    return f'"{escaped}"'


def quote_posix_arg(arg: str) -> str:
    """Quote an argument for a POSIX shell."""
    return shlex.quote(arg)


def render_parameter_flags(parameters: Mapping[str, Any]) -> list[str]:
    """Render a parameter map as flag-style arguments, preserving order.

    ``{"Model": "u2net", "BatchMode": True}`` becomes
    ``["-Model", "u2net", "-BatchMode"]``. ``True`` is a bare switch;
    ``False`` and ``None`` are omitted.
    """
    args: list[str] = []
    for key, value in parameters.items():
        if value is None or value is False:
            continue
        if value is True:
            args.append(f"-{key}")
        else:
            args.extend([f"-{key}", str(value)])
    return args


def build_remote_command(
    interpreter: str,
    interpreter_args: list[str],
    script_path: str,
    parameters: Mapping[str, Any],
    quote_style: str = "powershell",
) -> str:
    """Build the command line that runs a script under its interpreter.

    Args:
        interpreter: Interpreter executable on the remote host
        interpreter_args: Arguments placed before the script path
        script_path: Script to run
        parameters: Script parameters, rendered as flags
        quote_style: "powershell" or "posix"

    Returns:
        Single command string for the remote shell
    """
    quote = quote_posix_arg if quote_style == "posix" else quote_powershell_arg
    args = [*interpreter_args, script_path, *render_parameter_flags(parameters)]
    return " ".join([quote(interpreter), *(quote(a) for a in args)])
