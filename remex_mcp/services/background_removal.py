"""Background-removal requests driven through the pipeline.

Two script engines are supported:

- ``backgroundremover``: Model, BatchMode, AlphaMatting, AlphaErode,
  TransparentVideo, FrameRate, FrameLimit, GpuBatch, Workers,
  OverlayVideoPath, OverlayImagePath
- ``rembg`` (legacy): Model, BatchMode

Only flag formatting happens here; the scripts own the meaning of their
options.
"""

import logging
from dataclasses import dataclass, fields
from typing import TYPE_CHECKING, Any

from remex_mcp.services.errors import ValidationError

if TYPE_CHECKING:
    from remex_mcp.config import Config
    from remex_mcp.services.executor import ScriptExecutor
    from remex_mcp.services.pipeline import PipelineOrchestrator

logger = logging.getLogger(__name__)

ENGINES = ("backgroundremover", "rembg")
OPERATION = "background-removal"

# Request field -> script flag; booleans become bare switches
_BACKGROUNDREMOVER_FLAGS = (
    ("model", "Model"),
    ("batch_mode", "BatchMode"),
    ("alpha_matting", "AlphaMatting"),
    ("alpha_erode", "AlphaErode"),
    ("transparent_video", "TransparentVideo"),
    ("frame_rate", "FrameRate"),
    ("frame_limit", "FrameLimit"),
    ("gpu_batch", "GpuBatch"),
    ("workers", "Workers"),
    ("overlay_video_path", "OverlayVideoPath"),
    ("overlay_image_path", "OverlayImagePath"),
)
_REMBG_FLAGS = (
    ("model", "Model"),
    ("batch_mode", "BatchMode"),
)


def _snake_case(key: str) -> str:
    return "".join(f"_{c.lower()}" if c.isupper() else c for c in key)


@dataclass
class BackgroundRemovalRequest:
    """A background-removal run against one input file or directory."""

    connection_id: str
    input_path: str
    output_path: str | None = None
    engine: str = "backgroundremover"
    model: str | None = None
    batch_mode: bool = False
    alpha_matting: bool = False
    alpha_erode: int | None = None
    transparent_video: bool = False
    frame_rate: int | None = None
    frame_limit: int | None = None
    gpu_batch: int | None = None
    workers: int | None = None
    overlay_video_path: str | None = None
    overlay_image_path: str | None = None
    remote_script_path: str | None = None
    remote_input_dir: str | None = None
    remote_output_dir: str | None = None
    python_path: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BackgroundRemovalRequest":
        """Build a request from a JSON body (camelCase or snake_case keys).

        Raises:
            ValidationError: If required fields are missing or the engine is unknown
        """
        known = {f.name for f in fields(cls)}
        values = {}
        for key, value in data.items():
            name = _snake_case(key)
            if name in known and value is not None:
                values[name] = value

        if not values.get("connection_id") or not values.get("input_path"):
            raise ValidationError("Connection ID and input path are required")

        request = cls(**values)
        request.engine = request.engine or "backgroundremover"
        if request.engine not in ENGINES:
            raise ValidationError(
                f"Invalid engine: {request.engine} (expected one of {', '.join(ENGINES)})"
            )
        return request

    def script_parameters(self) -> dict[str, Any]:
        """Script flags in the order the scripts document them."""
        parameters: dict[str, Any] = {"InputPath": self.input_path}
        if self.output_path:
            parameters["OutputPath"] = self.output_path

        flags = _BACKGROUNDREMOVER_FLAGS if self.engine == "backgroundremover" else _REMBG_FLAGS
        for attr, flag in flags:
            value = getattr(self, attr)
            if value is None or value is False or value == "":
                continue
            parameters[flag] = value
        return parameters


def resolve_script_path(request: BackgroundRemovalRequest, config: "Config") -> str:
    """Pick the script for a request: explicit path, then the engine default."""
    if request.remote_script_path:
        return request.remote_script_path
    default = (
        config.default_script_path
        if request.engine == "backgroundremover"
        else config.legacy_script_path
    )
    if not default:
        raise ValidationError(
            f"No script configured for engine {request.engine}; "
            "pass remote_script_path or set REMEX_SCRIPT_PATH / REMEX_LEGACY_SCRIPT_PATH"
        )
    return default


async def start_background_removal(
    request: BackgroundRemovalRequest,
    pipeline: "PipelineOrchestrator",
    executor: "ScriptExecutor",
    config: "Config",
) -> dict[str, Any]:
    """Start a background-removal run.

    With remote input and output directories (from the request or the
    configuration) the input is staged through a pipeline job. Without them
    the script runs against ``input_path`` as given, which must already be
    reachable from the remote host.

    Raises:
        ValidationError: If the request cannot be resolved to a script and
            directories
    """
    script_path = resolve_script_path(request, config)
    remote_input_dir = request.remote_input_dir or config.remote_input_dir
    remote_output_dir = request.remote_output_dir or config.remote_output_dir

    if request.remote_script_path and not (remote_input_dir and remote_output_dir):
        raise ValidationError(
            "remote_input_dir and remote_output_dir are required when using remote_script_path"
        )

    parameters = request.script_parameters()
    response: dict[str, Any] = {
        "status": "started",
        "operation": OPERATION,
        "engine": request.engine,
    }

    if remote_input_dir and remote_output_dir:
        job = await pipeline.start_job(
            request.connection_id,
            request.input_path,
            remote_input_dir,
            remote_output_dir,
            script_path,
            parameters,
            python_path=request.python_path,
        )
        response["job_id"] = job.id
        response["execution_id"] = job.execution_id
        return response

    if request.python_path:
        parameters["PythonPath"] = request.python_path
    logger.info(
        "Running %s against %s without staging", request.engine, request.input_path
    )
    response["execution_id"] = await executor.execute_script(
        request.connection_id, script_path, parameters
    )
    return response
