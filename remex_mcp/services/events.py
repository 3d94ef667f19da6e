"""Typed process events and the reducer that folds them into executions.

A launched process is observed as a sequence of events:

    Started -> OutputChunk* -> Exited | Aborted
    SpawnFailed (instead of all of the above)

``reduce_event`` is the only place an execution's status, output and
progress change while the process is alive. Events that arrive after an
execution reached a terminal state are ignored.

Progress follows a line protocol: a stdout line ``PROGRESS: <n>`` (``n``
0-100, optional ``%``) sets it directly. Until the script emits such a line,
progress is estimated from output size (one point per 100 characters).
Either way it is capped at 95 while running and never decreases.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timezone

from remex_mcp.models import ExecutionStatus, ScriptExecution

RUNNING_PROGRESS_CAP = 95
CHARS_PER_PROGRESS_POINT = 100

PROGRESS_LINE = re.compile(
    r"^[ \t]*PROGRESS:[ \t]*(\d{1,3})[ \t]*%?[ \t]*\r?$",
    re.IGNORECASE | re.MULTILINE,
)


@dataclass(frozen=True)
class Started:
    """The process is running."""

    pid: int | None = None


@dataclass(frozen=True)
class OutputChunk:
    """Incremental output on stdout or stderr."""

    text: str
    stream: str = "stdout"


@dataclass(frozen=True)
class Exited:
    """The process ended; ``code`` is None when killed by a signal."""

    code: int | None


@dataclass(frozen=True)
class SpawnFailed:
    """The process could not be started."""

    message: str


@dataclass(frozen=True)
class Aborted:
    """The execution was cancelled or its process stream was lost."""

    reason: str


ProcessEvent = Started | OutputChunk | Exited | SpawnFailed | Aborted


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _apply_output(execution: ScriptExecution, text: str) -> None:
    # Rescan from the start of the last partial line so split lines still match
    scan_from = execution.output.rfind("\n") + 1
    execution.output += text

    reported = PROGRESS_LINE.findall(execution.output, scan_from)
    if reported:
        execution.structured_progress = True
        candidate = min(int(reported[-1]), 100)
    elif execution.structured_progress:
        candidate = execution.progress
    else:
        candidate = len(execution.output) // CHARS_PER_PROGRESS_POINT

    execution.progress = max(
        execution.progress, min(candidate, RUNNING_PROGRESS_CAP)
    )


def reduce_event(execution: ScriptExecution, event: ProcessEvent) -> ScriptExecution:
    """Apply one process event to an execution in place.

    Args:
        execution: Execution to update
        event: Event observed on its process

    Returns:
        The same execution, for chaining
    """
    if execution.is_terminal:
        return execution

    if isinstance(event, Started):
        execution.status = ExecutionStatus.RUNNING
        if execution.start_time is None:
            execution.start_time = _now()

    elif isinstance(event, OutputChunk):
        if event.stream == "stderr":
            execution.stderr += event.text
        else:
            _apply_output(execution, event.text)

    elif isinstance(event, Exited):
        execution.exit_code = event.code
        execution.end_time = _now()
        if event.code == 0:
            execution.status = ExecutionStatus.COMPLETED
            execution.progress = 100
        else:
            execution.status = ExecutionStatus.FAILED
            reason = (
                f"code {event.code}" if event.code is not None else "a signal"
            )
            execution.error = f"Script failed with {reason}: {execution.stderr.strip()}"

    elif isinstance(event, SpawnFailed):
        execution.status = ExecutionStatus.FAILED
        execution.error = f"Failed to start script: {event.message}"
        execution.end_time = _now()

    elif isinstance(event, Aborted):
        execution.status = ExecutionStatus.FAILED
        execution.error = event.reason
        execution.end_time = _now()

    return execution
