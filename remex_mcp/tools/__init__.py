"""MCP tools for Remex MCP.

One tool per orchestration operation. Tools close over the server's
``Dependencies`` and return the ``{success, data, error}`` envelope.
"""

from typing import TYPE_CHECKING, Any

from remex_mcp.tools import handlers
from remex_mcp.tools.handlers import enveloped

if TYPE_CHECKING:
    from fastmcp import FastMCP

    from remex_mcp.dependencies import Dependencies

Envelope = dict[str, Any]


def register_tools(server: "FastMCP", deps: "Dependencies") -> None:
    """Register every orchestration tool on the server."""

    async def run(call: Any) -> Envelope:
        envelope, _ = await enveloped(call)
        return envelope

    # Connections

    @server.tool
    async def list_connections() -> Envelope:
        """List registered remote connections."""
        return await run(handlers.list_connections(deps))

    @server.tool
    async def get_connection(connection_id: str) -> Envelope:
        """Get one connection by id."""
        return await run(handlers.get_connection(deps, connection_id))

    @server.tool
    async def add_connection(
        name: str,
        type: str,
        host: str,
        port: int | None = None,
        username: str | None = None,
        key_path: str | None = None,
    ) -> Envelope:
        """Register a remote host.

        Args:
            name: Display name
            type: One of "mesh-vpn", "ssh", "cloud-tunnel"
            host: Hostname or address
            port: SSH port (default 22)
            username: SSH login user
            key_path: Private key file for the login
        """
        return await run(
            handlers.create_connection(
                deps, name, type, host, port, username=username, key_path=key_path
            )
        )

    @server.tool
    async def connect(connection_id: str) -> Envelope:
        """Run the connection's handshake and mark it connected."""
        return await run(handlers.connect_connection(deps, connection_id))

    @server.tool
    async def disconnect(connection_id: str) -> Envelope:
        """Stop the connection's executions and disconnect it."""
        return await run(handlers.disconnect_connection(deps, connection_id))

    @server.tool
    async def connection_health(connection_id: str) -> Envelope:
        """Connection status plus handshake latency when connected."""
        return await run(handlers.connection_health(deps, connection_id))

    # Executions

    @server.tool
    async def list_executions() -> Envelope:
        """List script executions started since the server came up."""
        return await run(handlers.list_executions(deps))

    @server.tool
    async def get_execution(execution_id: str) -> Envelope:
        """Get an execution with its status, progress and output."""
        return await run(handlers.get_execution(deps, execution_id))

    @server.tool
    async def execute_script(
        connection_id: str,
        script_path: str,
        parameters: dict[str, Any] | None = None,
    ) -> Envelope:
        """Start a script on a connected host.

        Parameters are passed as flags in order: ``-Key value``, with
        ``true`` as a bare ``-Key`` and ``false``/``null`` omitted.
        """
        return await run(
            handlers.create_execution(deps, connection_id, script_path, parameters)
        )

    @server.tool
    async def stop_execution(execution_id: str) -> Envelope:
        """Terminate a running execution."""
        return await run(handlers.stop_execution(deps, execution_id))

    # Background removal

    @server.tool
    async def remove_background(
        connection_id: str,
        input_path: str,
        engine: str = "backgroundremover",
        output_path: str | None = None,
        model: str | None = None,
        batch_mode: bool = False,
        alpha_matting: bool = False,
        alpha_erode: int | None = None,
        transparent_video: bool = False,
        frame_rate: int | None = None,
        frame_limit: int | None = None,
        gpu_batch: int | None = None,
        workers: int | None = None,
        overlay_video_path: str | None = None,
        overlay_image_path: str | None = None,
        remote_script_path: str | None = None,
        remote_input_dir: str | None = None,
        remote_output_dir: str | None = None,
        python_path: str | None = None,
    ) -> Envelope:
        """Stage an input, run background removal on it and return the job.

        Args:
            connection_id: Connected host to run on
            input_path: Local file or directory to process
            engine: "backgroundremover" or legacy "rembg"
            remote_script_path: Script on the remote host (configured default if omitted)
            remote_input_dir: Remote directory inputs are copied into
            remote_output_dir: Remote directory the script writes to
            python_path: Python interpreter the script should use
        """
        payload = {
            "connection_id": connection_id,
            "input_path": input_path,
            "engine": engine,
            "output_path": output_path,
            "model": model,
            "batch_mode": batch_mode,
            "alpha_matting": alpha_matting,
            "alpha_erode": alpha_erode,
            "transparent_video": transparent_video,
            "frame_rate": frame_rate,
            "frame_limit": frame_limit,
            "gpu_batch": gpu_batch,
            "workers": workers,
            "overlay_video_path": overlay_video_path,
            "overlay_image_path": overlay_image_path,
            "remote_script_path": remote_script_path,
            "remote_input_dir": remote_input_dir,
            "remote_output_dir": remote_output_dir,
            "python_path": python_path,
        }
        return await run(handlers.background_removal(deps, payload))

    @server.tool
    async def finalize_background_removal(
        job_id: str | None = None,
        connection_id: str | None = None,
        remote_output_dir: str | None = None,
        original_paths: list[str] | None = None,
        wait: bool = False,
        timeout: float | None = None,
    ) -> Envelope:
        """Copy results back and pair them with their inputs.

        Pass ``job_id`` for a job started by remove_background, or
        ``connection_id`` and ``remote_output_dir`` for an ad-hoc directory.
        """
        return await run(
            handlers.finalize_background_removal(
                deps,
                connection_id=connection_id,
                remote_output_dir=remote_output_dir,
                original_paths=original_paths,
                job_id=job_id,
                wait=wait,
                timeout=timeout,
            )
        )

    @server.tool
    async def list_jobs() -> Envelope:
        """List pipeline jobs."""
        return await run(handlers.list_jobs(deps))

    @server.tool
    async def get_job(job_id: str) -> Envelope:
        """Get a pipeline job with its stage, results and pairings."""
        return await run(handlers.get_job(deps, job_id))


__all__ = ["register_tools"]
