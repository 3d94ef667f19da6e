"""Script execution data models."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class ExecutionStatus(Enum):
    """Lifecycle state of a script execution."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        """Completed and failed executions never change again."""
        return self in (ExecutionStatus.COMPLETED, ExecutionStatus.FAILED)


@dataclass
class ScriptExecution:
    """One invocation of an external script against a connected host."""

    id: str
    connection_id: str
    script_path: str
    parameters: dict[str, Any] = field(default_factory=dict)
    status: ExecutionStatus = ExecutionStatus.PENDING
    progress: int = 0
    output: str = ""
    stderr: str = ""
    error: str | None = None
    exit_code: int | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    # Set once the script reports progress itself
    structured_progress: bool = field(default=False, repr=False)

    @property
    def is_terminal(self) -> bool:
        """Whether the execution reached completed or failed."""
        return self.status.is_terminal

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict."""
        return {
            "id": self.id,
            "connection_id": self.connection_id,
            "script_path": self.script_path,
            "parameters": dict(self.parameters),
            "status": self.status.value,
            "progress": self.progress,
            "output": self.output or None,
            "error": self.error,
            "exit_code": self.exit_code,
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "end_time": self.end_time.isoformat() if self.end_time else None,
        }
