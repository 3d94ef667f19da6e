"""HTTP routes for the remote execution API.

Routes are registered on the FastMCP server with ``custom_route`` so they
share the MCP server's Starlette app. Every response uses the
``{success, data, error}`` envelope; error kinds map to status codes
(validation 400, not found 404, invalid state 409, transport 502,
process 500).
"""

import json
import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from starlette.requests import Request
from starlette.responses import JSONResponse

from remex_mcp.services.errors import ValidationError
from remex_mcp.tools import handlers
from remex_mcp.tools.handlers import enveloped

if TYPE_CHECKING:
    from fastmcp import FastMCP

    from remex_mcp.dependencies import Dependencies

logger = logging.getLogger(__name__)

Handler = Callable[[Request], Awaitable[Any]]


def _camel_case(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def _field(body: dict[str, Any], name: str) -> Any:
    """Read a body field by its snake_case or camelCase name."""
    if name in body:
        return body[name]
    return body.get(_camel_case(name))


async def _json_body(request: Request) -> dict[str, Any]:
    raw = await request.body()
    if not raw:
        return {}
    try:
        body = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValidationError(f"Invalid JSON body: {e}") from e
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body


def _endpoint(
    handler: Handler,
    created: bool = False,
) -> Callable[[Request], Awaitable[JSONResponse]]:
    """Wrap a request handler in the envelope and its status code."""

    async def endpoint(request: Request) -> JSONResponse:
        try:
            envelope, status_code = await enveloped(handler(request))
        except Exception as e:
            logger.exception("Unhandled error in %s %s", request.method, request.url.path)
            envelope = {
                "success": False,
                "error": {"kind": "internal_error", "message": str(e)},
            }
            status_code = 500
        if created and status_code == 200:
            status_code = 201
        return JSONResponse(envelope, status_code=status_code)

    return endpoint


def register_routes(server: "FastMCP", deps: "Dependencies") -> None:
    """Register the remote execution API under ``deps.config.api_prefix``."""
    prefix = deps.config.api_prefix.rstrip("/")

    def route(path: str, method: str, handler: Handler, created: bool = False) -> None:
        server.custom_route(f"{prefix}{path}", methods=[method])(
            _endpoint(handler, created=created)
        )

    # Connections

    async def list_connections(request: Request) -> Any:
        return await handlers.list_connections(deps)

    async def create_connection(request: Request) -> Any:
        body = await _json_body(request)
        return await handlers.create_connection(
            deps,
            _field(body, "name"),
            _field(body, "type"),
            _field(body, "host"),
            port=_field(body, "port"),
            username=_field(body, "username"),
            key_path=_field(body, "key_path"),
        )

    async def get_connection(request: Request) -> Any:
        return await handlers.get_connection(deps, request.path_params["id"])

    async def connect(request: Request) -> Any:
        return await handlers.connect_connection(deps, request.path_params["id"])

    async def disconnect(request: Request) -> Any:
        return await handlers.disconnect_connection(deps, request.path_params["id"])

    async def health(request: Request) -> Any:
        return await handlers.connection_health(deps, request.path_params["id"])

    route("/connections", "GET", list_connections)
    route("/connections", "POST", create_connection, created=True)
    route("/connections/{id}", "GET", get_connection)
    route("/connections/{id}/connect", "POST", connect)
    route("/connections/{id}/disconnect", "POST", disconnect)
    route("/connections/{id}/health", "GET", health)

    # Executions

    async def list_executions(request: Request) -> Any:
        return await handlers.list_executions(deps)

    async def create_execution(request: Request) -> Any:
        body = await _json_body(request)
        return await handlers.create_execution(
            deps,
            _field(body, "connection_id"),
            _field(body, "script_path"),
            _field(body, "parameters"),
        )

    async def get_execution(request: Request) -> Any:
        return await handlers.get_execution(deps, request.path_params["id"])

    async def stop_execution(request: Request) -> Any:
        return await handlers.stop_execution(deps, request.path_params["id"])

    route("/executions", "GET", list_executions)
    route("/executions", "POST", create_execution, created=True)
    route("/executions/{id}", "GET", get_execution)
    route("/executions/{id}/stop", "POST", stop_execution)

    # Background removal and jobs

    async def background_removal(request: Request) -> Any:
        return await handlers.background_removal(deps, await _json_body(request))

    async def finalize(request: Request) -> Any:
        body = await _json_body(request)
        return await handlers.finalize_background_removal(
            deps,
            connection_id=_field(body, "connection_id"),
            remote_output_dir=_field(body, "remote_output_dir"),
            original_paths=_field(body, "original_paths"),
            job_id=_field(body, "job_id"),
            wait=bool(_field(body, "wait")),
            timeout=_field(body, "timeout"),
        )

    async def list_jobs(request: Request) -> Any:
        return await handlers.list_jobs(deps)

    async def get_job(request: Request) -> Any:
        return await handlers.get_job(deps, request.path_params["id"])

    route("/background-removal", "POST", background_removal, created=True)
    route("/background-removal/finalize", "POST", finalize)
    route("/jobs", "GET", list_jobs)
    route("/jobs/{id}", "GET", get_job)

    logger.debug("Registered remote execution API under %s", prefix)


__all__ = ["register_routes"]
