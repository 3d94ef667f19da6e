"""Script executor: runs external scripts on connected hosts.

Executions live in memory only. Each one is backed by a launched process
whose events are consumed by a background observer task and folded into
the execution record by ``reduce_event``. There is no cap on concurrent
executions per connection.
"""

import asyncio
import logging
import uuid
from contextlib import aclosing
from typing import TYPE_CHECKING, Any

from remex_mcp.models import ExecutionStatus, ScriptExecution
from remex_mcp.services.errors import NotFoundError, ProcessFailureError
from remex_mcp.services.events import Aborted, SpawnFailed, Started, reduce_event
from remex_mcp.utils.shell import build_remote_command

if TYPE_CHECKING:
    from remex_mcp.protocols import ProcessHandle, ProcessLauncher
    from remex_mcp.services.registry import ConnectionRegistry

logger = logging.getLogger(__name__)

STOPPED_BY_USER = "Execution stopped by user"


class ScriptExecutor:
    """Creates and tracks script executions against connected hosts."""

    def __init__(
        self,
        registry: "ConnectionRegistry",
        launcher: "ProcessLauncher",
        interpreter: str = "powershell.exe",
        interpreter_args: list[str] | None = None,
        quote_style: str = "powershell",
    ) -> None:
        """Initialize the executor.

        Args:
            registry: Registry used to gate executions on connection status
            launcher: Spawns the interpreter process on the remote host
            interpreter: Interpreter executable on the remote host
            interpreter_args: Arguments placed before the script path
            quote_style: Quoting used for the remote command line
        """
        self.registry = registry
        self.launcher = launcher
        self.interpreter = interpreter
        self.interpreter_args = list(interpreter_args or [])
        self.quote_style = quote_style
        self._executions: dict[str, ScriptExecution] = {}
        self._handles: dict[str, "ProcessHandle"] = {}
        self._observers: dict[str, asyncio.Task[None]] = {}

    def build_command(self, script_path: str, parameters: dict[str, Any]) -> str:
        """Render the interpreter command line for a script invocation."""
        return build_remote_command(
            self.interpreter,
            self.interpreter_args,
            script_path,
            parameters,
            quote_style=self.quote_style,
        )

    async def execute_script(
        self,
        connection_id: str,
        script_path: str,
        parameters: dict[str, Any] | None = None,
    ) -> str:
        """Start a script on a connected host and return its execution id.

        The call returns once the process is spawned; completion is observed
        in the background.

        Raises:
            NotFoundError: If the connection is unknown
            ConnectionNotEstablishedError: If it is not connected (nothing spawned)
            ProcessFailureError: If the process could not be spawned
        """
        connection = self.registry.require_connected(connection_id)

        execution = ScriptExecution(
            id=uuid.uuid4().hex[:12],
            connection_id=connection_id,
            script_path=script_path,
            parameters=dict(parameters or {}),
        )
        self._executions[execution.id] = execution
        reduce_event(execution, Started())

        command = self.build_command(script_path, execution.parameters)
        logger.info(
            "Starting execution %s on %s: %s",
            execution.id,
            connection_id,
            script_path,
        )

        try:
            handle = await self.launcher.launch(connection, command)
        except Exception as e:
            reduce_event(execution, SpawnFailed(message=str(e)))
            logger.error("Execution %s failed to start: %s", execution.id, e)
            raise ProcessFailureError(
                execution.error or str(e),
                execution_id=execution.id,
            ) from e

        if execution.is_terminal:
            # Stopped while the process was being spawned
            handle.terminate()
            return execution.id

        self._handles[execution.id] = handle
        self._observers[execution.id] = asyncio.create_task(
            self._observe(execution, handle),
            name=f"execution-{execution.id}",
        )
        return execution.id

    async def _observe(
        self,
        execution: ScriptExecution,
        handle: "ProcessHandle",
    ) -> None:
        try:
            async with aclosing(handle.events()) as events:
                async for event in events:
                    reduce_event(execution, event)
                    if execution.is_terminal:
                        break
            if not execution.is_terminal:
                reduce_event(
                    execution, Aborted(reason="Process ended without an exit status")
                )
        except asyncio.CancelledError:
            reduce_event(execution, Aborted(reason="Execution observer cancelled"))
            raise
        except Exception as e:
            logger.error("Lost process stream for execution %s: %s", execution.id, e)
            reduce_event(execution, Aborted(reason=f"Lost process stream: {e}"))
        finally:
            self._handles.pop(execution.id, None)
            self._observers.pop(execution.id, None)

        if execution.status is ExecutionStatus.COMPLETED:
            logger.info(
                "Execution %s completed (%d chars of output)",
                execution.id,
                len(execution.output),
            )
        else:
            logger.warning("Execution %s failed: %s", execution.id, execution.error)

    async def stop_execution(self, execution_id: str) -> ScriptExecution:
        """Terminate an execution's process and mark it failed.

        Calling this on an execution that already finished changes nothing.

        Raises:
            NotFoundError: If the execution is unknown
        """
        execution = self.require(execution_id)
        if execution.is_terminal:
            logger.debug(
                "Execution %s already %s; nothing to stop",
                execution_id,
                execution.status.value,
            )
            return execution

        handle = self._handles.pop(execution_id, None)
        if handle is not None:
            handle.terminate()
        observer = self._observers.pop(execution_id, None)
        if observer is not None:
            observer.cancel()

        reduce_event(execution, Aborted(reason=STOPPED_BY_USER))
        logger.info("Stopped execution %s", execution_id)
        return execution

    async def stop_executions_for(self, connection_id: str) -> int:
        """Stop every unfinished execution bound to a connection."""
        active = [
            e.id
            for e in self._executions.values()
            if e.connection_id == connection_id and not e.is_terminal
        ]
        for execution_id in active:
            await self.stop_execution(execution_id)
        if active:
            logger.info(
                "Stopped %d execution(s) on %s", len(active), connection_id
            )
        return len(active)

    async def wait_for_execution(
        self,
        execution_id: str,
        timeout: float | None = None,
    ) -> ScriptExecution:
        """Wait until an execution reaches a terminal state.

        Raises:
            NotFoundError: If the execution is unknown
            TimeoutError: If ``timeout`` elapses first
        """
        execution = self.require(execution_id)
        observer = self._observers.get(execution_id)
        if observer is not None and not execution.is_terminal:
            _, pending = await asyncio.wait({observer}, timeout=timeout)
            if pending:
                raise TimeoutError(
                    f"Execution {execution_id} still running after {timeout}s"
                )
        return execution

    async def shutdown(self) -> None:
        """Stop all running executions and their observers."""
        for execution_id in list(self._handles):
            await self.stop_execution(execution_id)
        observers = list(self._observers.values())
        for observer in observers:
            observer.cancel()
        if observers:
            await asyncio.gather(*observers, return_exceptions=True)

    # Reads

    def get_executions(self) -> list[ScriptExecution]:
        return list(self._executions.values())

    def get_execution(self, execution_id: str) -> ScriptExecution | None:
        return self._executions.get(execution_id)

    def require(self, execution_id: str) -> ScriptExecution:
        """Return an execution or raise NotFoundError."""
        execution = self._executions.get(execution_id)
        if execution is None:
            raise NotFoundError("Execution", execution_id)
        return execution
