"""Tests for background-removal requests."""

from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from remex_mcp.config import Config
from remex_mcp.services.background_removal import (
    BackgroundRemovalRequest,
    resolve_script_path,
    start_background_removal,
)
from remex_mcp.services.errors import ValidationError
from remex_mcp.services.executor import ScriptExecutor
from remex_mcp.services.pipeline import PipelineOrchestrator


@pytest.fixture
def config() -> Config:
    return Config(
        default_script_path="C:/scripts/backgroundremover.ps1",
        legacy_script_path="C:/scripts/rembg.ps1",
    )


@pytest.fixture
def pipeline(executor: ScriptExecutor, tmp_path: Path) -> PipelineOrchestrator:
    return PipelineOrchestrator(AsyncMock(), executor, tmp_path / "processed")


def test_from_dict_accepts_camel_case() -> None:
    request = BackgroundRemovalRequest.from_dict(
        {
            "connectionId": "c1",
            "inputPath": "C:/in/car1.jpg",
            "alphaMatting": True,
            "frameRate": 30,
            "unknownField": "ignored",
        }
    )

    assert request.connection_id == "c1"
    assert request.input_path == "C:/in/car1.jpg"
    assert request.alpha_matting is True
    assert request.frame_rate == 30
    assert request.engine == "backgroundremover"


def test_from_dict_accepts_snake_case() -> None:
    request = BackgroundRemovalRequest.from_dict(
        {"connection_id": "c1", "input_path": "x.jpg", "engine": "rembg"}
    )

    assert request.engine == "rembg"


@pytest.mark.parametrize(
    "body",
    [
        {"inputPath": "x.jpg"},
        {"connectionId": "c1"},
        {"connectionId": "", "inputPath": "x.jpg"},
    ],
)
def test_from_dict_requires_connection_and_input(body: dict) -> None:
    with pytest.raises(ValidationError, match="Connection ID and input path are required"):
        BackgroundRemovalRequest.from_dict(body)


def test_from_dict_rejects_unknown_engine() -> None:
    with pytest.raises(ValidationError, match="Invalid engine"):
        BackgroundRemovalRequest.from_dict(
            {"connectionId": "c1", "inputPath": "x.jpg", "engine": "photoshop"}
        )


def test_script_parameters_backgroundremover_order() -> None:
    request = BackgroundRemovalRequest(
        connection_id="c1",
        input_path="C:/in/clip.mp4",
        output_path="C:/out",
        model="u2net_human_seg",
        transparent_video=True,
        frame_rate=24,
        alpha_matting=False,
        workers=2,
    )

    assert list(request.script_parameters().items()) == [
        ("InputPath", "C:/in/clip.mp4"),
        ("OutputPath", "C:/out"),
        ("Model", "u2net_human_seg"),
        ("TransparentVideo", True),
        ("FrameRate", 24),
        ("Workers", 2),
    ]


def test_script_parameters_rembg_ignores_unsupported_flags() -> None:
    request = BackgroundRemovalRequest(
        connection_id="c1",
        input_path="x.jpg",
        engine="rembg",
        model="u2net",
        batch_mode=True,
        workers=8,
    )

    assert request.script_parameters() == {
        "InputPath": "x.jpg",
        "Model": "u2net",
        "BatchMode": True,
    }


def test_resolve_script_path(config: Config) -> None:
    default = BackgroundRemovalRequest(connection_id="c1", input_path="x")
    legacy = BackgroundRemovalRequest(connection_id="c1", input_path="x", engine="rembg")
    explicit = BackgroundRemovalRequest(
        connection_id="c1", input_path="x", remote_script_path="D:/custom.ps1"
    )

    assert resolve_script_path(default, config) == "C:/scripts/backgroundremover.ps1"
    assert resolve_script_path(legacy, config) == "C:/scripts/rembg.ps1"
    assert resolve_script_path(explicit, config) == "D:/custom.ps1"


def test_resolve_script_path_without_configuration() -> None:
    request = BackgroundRemovalRequest(connection_id="c1", input_path="x")

    with pytest.raises(ValidationError, match="No script configured"):
        resolve_script_path(request, Config())


@pytest.mark.asyncio
async def test_start_without_staging_runs_script_directly(
    pipeline: PipelineOrchestrator,
    executor: ScriptExecutor,
    launcher,
    config: Config,
    connected_id: str,
) -> None:
    request = BackgroundRemovalRequest(
        connection_id=connected_id,
        input_path="C:/in/car1.jpg",
        model="u2net",
        python_path="C:/Python311/python.exe",
    )

    response = await start_background_removal(request, pipeline, executor, config)

    assert response["status"] == "started"
    assert response["operation"] == "background-removal"
    assert response["engine"] == "backgroundremover"
    assert "job_id" not in response
    assert executor.get_execution(response["execution_id"]) is not None
    assert launcher.commands[0].endswith(
        "-InputPath C:/in/car1.jpg -Model u2net -PythonPath C:/Python311/python.exe"
    )
    assert pipeline.get_jobs() == []


@pytest.mark.asyncio
async def test_start_with_directories_runs_pipeline_job(
    pipeline: PipelineOrchestrator,
    executor: ScriptExecutor,
    config: Config,
    connected_id: str,
    tmp_path: Path,
) -> None:
    source = tmp_path / "car1.jpg"
    source.write_bytes(b"jpg")
    request = BackgroundRemovalRequest(
        connection_id=connected_id,
        input_path=str(source),
        remote_input_dir="C:/work/in",
        remote_output_dir="C:/work/out",
    )

    response = await start_background_removal(request, pipeline, executor, config)

    job = pipeline.require(response["job_id"])
    assert job.execution_id == response["execution_id"]
    assert job.parameters["InputPath"] == "C:/work/in/car1.jpg"
    assert job.script_path == "C:/scripts/backgroundremover.ps1"


@pytest.mark.asyncio
async def test_remote_script_path_requires_directories(
    pipeline: PipelineOrchestrator,
    executor: ScriptExecutor,
    launcher,
    config: Config,
) -> None:
    request = BackgroundRemovalRequest(
        connection_id="c1",
        input_path="x.jpg",
        remote_script_path="D:/custom.ps1",
        remote_input_dir="D:/in",
    )

    with pytest.raises(ValidationError, match="remote_input_dir and remote_output_dir"):
        await start_background_removal(request, pipeline, executor, config)

    assert launcher.commands == []
