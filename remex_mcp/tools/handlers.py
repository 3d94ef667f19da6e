"""Operation handlers shared by the MCP tools and the HTTP routes.

Handlers validate their input, call one service operation and return
JSON-compatible data. Failures are raised as ``RemexError``; ``enveloped``
turns the outcome into the ``{success, data, error}`` envelope.
"""

import logging
from collections.abc import Awaitable
from typing import TYPE_CHECKING, Any

from remex_mcp.models import ConnectionType
from remex_mcp.services.background_removal import (
    BackgroundRemovalRequest,
    start_background_removal,
)
from remex_mcp.services.errors import RemexError, ValidationError

if TYPE_CHECKING:
    from remex_mcp.dependencies import Dependencies

logger = logging.getLogger(__name__)


def success(data: Any) -> dict[str, Any]:
    return {"success": True, "data": data}


def failure(error: RemexError) -> dict[str, Any]:
    return {
        "success": False,
        "error": {"kind": error.kind, "message": str(error)},
    }


async def enveloped(call: Awaitable[Any]) -> tuple[dict[str, Any], int]:
    """Await a handler and wrap its outcome.

    Returns:
        Tuple of (envelope, HTTP status code)
    """
    try:
        data = await call
    except RemexError as e:
        logger.info("Request failed (%s): %s", e.kind, e)
        return failure(e), e.status_code
    return success(data), 200


def _require(**values: Any) -> None:
    missing = [name for name, value in values.items() if value in (None, "")]
    if missing:
        raise ValidationError(f"Missing required field(s): {', '.join(missing)}")


def _parse_port(port: Any) -> int | None:
    if port in (None, ""):
        return None
    try:
        value = int(port)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Invalid port: {port!r}") from e
    if not 1 <= value <= 65535:
        raise ValidationError(f"Port out of range: {value}")
    return value


def _parse_timeout(timeout: Any) -> float | None:
    if timeout in (None, ""):
        return None
    if isinstance(timeout, bool):
        raise ValidationError(f"Invalid timeout: {timeout!r}")
    try:
        value = float(timeout)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Invalid timeout: {timeout!r}") from e
    if value <= 0:
        raise ValidationError(f"Timeout must be positive: {value}")
    return value


# Connections


async def list_connections(deps: "Dependencies") -> list[dict[str, Any]]:
    return [c.to_dict() for c in deps.registry.get_connections()]


async def get_connection(deps: "Dependencies", connection_id: str) -> dict[str, Any]:
    return deps.registry.require(connection_id).to_dict()


async def create_connection(
    deps: "Dependencies",
    name: str | None,
    type: str | None,
    host: str | None,
    port: Any = None,
    username: str | None = None,
    key_path: str | None = None,
) -> dict[str, Any]:
    """Register a connection and return its record.

    Raises:
        ValidationError: If name, type or host is missing, or type/port is invalid
    """
    _require(name=name, type=type, host=host)
    valid_types = [t.value for t in ConnectionType]
    if type not in valid_types:
        raise ValidationError(
            f"Invalid connection type: {type} (expected one of {', '.join(valid_types)})"
        )

    connection_id = deps.registry.add_connection(
        name,
        type,
        host,
        port=_parse_port(port),
        username=username or None,
        key_path=key_path or None,
    )
    return deps.registry.require(connection_id).to_dict()


async def connect_connection(deps: "Dependencies", connection_id: str) -> dict[str, Any]:
    await deps.registry.connect(connection_id)
    return deps.registry.require(connection_id).to_dict()


async def disconnect_connection(
    deps: "Dependencies",
    connection_id: str,
) -> dict[str, Any]:
    await deps.registry.disconnect(connection_id)
    return deps.registry.require(connection_id).to_dict()


async def connection_health(deps: "Dependencies", connection_id: str) -> dict[str, Any]:
    return deps.registry.get_connection_health(connection_id)


# Executions


async def list_executions(deps: "Dependencies") -> list[dict[str, Any]]:
    return [e.to_dict() for e in deps.executor.get_executions()]


async def get_execution(deps: "Dependencies", execution_id: str) -> dict[str, Any]:
    return deps.executor.require(execution_id).to_dict()


async def create_execution(
    deps: "Dependencies",
    connection_id: str | None,
    script_path: str | None,
    parameters: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Start a script and return its execution id."""
    _require(connection_id=connection_id, script_path=script_path)
    if parameters is not None and not isinstance(parameters, dict):
        raise ValidationError("parameters must be an object")

    execution_id = await deps.executor.execute_script(
        connection_id, script_path, parameters or {}
    )
    return {"execution_id": execution_id, "status": "started"}


async def stop_execution(deps: "Dependencies", execution_id: str) -> dict[str, Any]:
    execution = await deps.executor.stop_execution(execution_id)
    return execution.to_dict()


# Background removal


async def background_removal(
    deps: "Dependencies",
    payload: dict[str, Any],
) -> dict[str, Any]:
    """Start a background-removal run from a request body."""
    request = BackgroundRemovalRequest.from_dict(payload)
    return await start_background_removal(
        request, deps.pipeline, deps.executor, deps.config
    )


async def finalize_background_removal(
    deps: "Dependencies",
    connection_id: str | None = None,
    remote_output_dir: str | None = None,
    original_paths: list[str] | None = None,
    job_id: str | None = None,
    wait: bool = False,
    timeout: float | None = None,
) -> dict[str, Any]:
    """Copy results back, either for a pipeline job or an ad-hoc directory.

    With ``job_id`` the job's own connection, directories and manifest are
    used. Otherwise ``connection_id`` and ``remote_output_dir`` are required.
    """
    timeout = _parse_timeout(timeout)
    if job_id:
        job = await deps.pipeline.finalize_job(job_id, wait=wait, timeout=timeout)
        return job.to_dict()

    _require(connection_id=connection_id, remote_output_dir=remote_output_dir)
    if original_paths is not None and not isinstance(original_paths, list):
        raise ValidationError("original_paths must be a list")

    result = await deps.pipeline.finalize(
        connection_id, remote_output_dir, original_paths=original_paths
    )
    return result.to_dict()


async def list_jobs(deps: "Dependencies") -> list[dict[str, Any]]:
    return [j.to_dict() for j in deps.pipeline.get_jobs()]


async def get_job(deps: "Dependencies", job_id: str) -> dict[str, Any]:
    return deps.pipeline.require(job_id).to_dict()
