"""Pipeline orchestrator: stage in, execute, stage out, finalize.

Each job moves through

    staging_in -> executing -> staging_out -> finalized

and can drop to ``failed`` from any stage. A failing stage records its
message on the job and re-raises; nothing is retried and nothing already
copied is cleaned up.

Outputs are paired with inputs in two passes. Output names recorded in the
job manifest at stage-in (``<stem>_no_bg.png``) win. Anything left over
falls back to a case-insensitive substring match of each input's stem in
the output filename, so one output can pair with several inputs.
"""

import logging
import posixpath
import re
import uuid
from pathlib import Path
from typing import TYPE_CHECKING, Any

from remex_mcp.models import (
    ExecutionStatus,
    FinalizeResult,
    JobManifest,
    JobStage,
    OutputPairing,
    PipelineJob,
    ResultFile,
)
from remex_mcp.services.errors import (
    InvalidStateError,
    NotFoundError,
    ProcessFailureError,
)

if TYPE_CHECKING:
    from remex_mcp.services.executor import ScriptExecutor
    from remex_mcp.services.stager import FileStager

logger = logging.getLogger(__name__)

OUTPUT_SUFFIX = "_no_bg.png"

_SEPARATORS = re.compile(r"[\\/]")


def expected_output_name(input_name: str) -> str:
    """Output filename the background-removal scripts write for an input."""
    return f"{_stem(input_name)}{OUTPUT_SUFFIX}"


def _basename(path: str) -> str:
    # Inputs may be Windows or POSIX paths
    return _SEPARATORS.split(path)[-1]


def _stem(path: str) -> str:
    name = _basename(path)
    stem, dot, _ = name.rpartition(".")
    return stem if dot and stem else name


def pair_outputs(
    outputs: list[str],
    originals: list[str],
    manifest: JobManifest | None = None,
) -> list[OutputPairing]:
    """Associate output files with the inputs they came from.

    Args:
        outputs: Output file names or relative paths
        originals: Input paths to pair against
        manifest: Expected outputs recorded at stage-in, if any

    Returns:
        One pairing per match, in output order
    """
    expected = manifest.expected_outputs if manifest else {}
    pairings: list[OutputPairing] = []

    for output in outputs:
        name = _basename(output)
        if name in expected:
            pairings.append(
                OutputPairing(output=output, original=expected[name], method="manifest")
            )
            continue

        lowered = name.lower()
        for original in originals:
            stem = _stem(original).lower()
            if stem and stem in lowered:
                pairings.append(
                    OutputPairing(output=output, original=original, method="substring")
                )

    return pairings


def list_results(local_dir: Path, url_prefix: str) -> list[ResultFile]:
    """List result files under a directory as relative URLs.

    Hidden files and anything inside hidden directories are skipped.
    """
    if not local_dir.is_dir():
        return []

    results = []
    for path in sorted(local_dir.rglob("*")):
        relative = path.relative_to(local_dir)
        if any(part.startswith(".") for part in relative.parts):
            continue
        if not path.is_file():
            continue
        results.append(
            ResultFile(
                file=relative.as_posix(),
                url=f"{url_prefix.rstrip('/')}/{relative.as_posix()}",
            )
        )
    return results


class PipelineOrchestrator:
    """Runs stage-in, execute and stage-out for pipeline jobs."""

    def __init__(
        self,
        stager: "FileStager",
        executor: "ScriptExecutor",
        results_dir: Path,
        results_url_prefix: str = "/uploads/processed",
    ) -> None:
        """Initialize the orchestrator.

        Args:
            stager: Copies inputs to and outputs from the remote host
            executor: Runs the processing script
            results_dir: Local directory finalized outputs are copied into
            results_url_prefix: URL prefix result files are served under
        """
        self.stager = stager
        self.executor = executor
        self.results_dir = Path(results_dir)
        self.results_url_prefix = results_url_prefix.rstrip("/")
        self._jobs: dict[str, PipelineJob] = {}

    async def start_job(
        self,
        connection_id: str,
        input_path: str,
        remote_input_dir: str,
        remote_output_dir: str,
        script_path: str,
        parameters: dict[str, Any] | None = None,
        python_path: str | None = None,
    ) -> PipelineJob:
        """Stage a local input and start the script against it.

        A directory input is copied into ``remote_input_dir`` and the script
        gets both directories. A single file lands as
        ``<remote_input_dir>/<name>`` and the script gets an explicit
        ``<remote_output_dir>/<stem>_no_bg.png`` output path.

        Returns:
            The job, in the executing stage

        Raises:
            RemexError: Whatever the failing stage raised; the job is failed
        """
        job = PipelineJob(
            id=uuid.uuid4().hex[:12],
            connection_id=connection_id,
            input_path=str(input_path),
            remote_input_dir=remote_input_dir,
            remote_output_dir=remote_output_dir,
            script_path=script_path,
            parameters=dict(parameters or {}),
        )
        self._jobs[job.id] = job
        logger.info(
            "Job %s: staging %s to %s:%s",
            job.id,
            input_path,
            connection_id,
            remote_input_dir,
        )

        try:
            await self.stager.ensure_remote_directory(connection_id, remote_input_dir)
            await self.stager.ensure_remote_directory(connection_id, remote_output_dir)
            remote_input, remote_output = await self._stage_in(job)

            job.parameters["InputPath"] = remote_input
            job.parameters["OutputPath"] = remote_output
            if python_path:
                job.parameters["PythonPath"] = python_path

            job.stage = JobStage.EXECUTING
            job.execution_id = await self.executor.execute_script(
                connection_id, script_path, job.parameters
            )
        except ProcessFailureError as e:
            job.execution_id = e.execution_id
            self._fail(job, e)
            raise
        except Exception as e:
            self._fail(job, e)
            raise

        logger.info("Job %s: executing as %s", job.id, job.execution_id)
        return job

    async def _stage_in(self, job: PipelineJob) -> tuple[str, str]:
        local = Path(job.input_path)

        if local.is_dir():
            await self.stager.copy_directory_to_remote(
                job.connection_id, local, job.remote_input_dir
            )
            for path in sorted(local.rglob("*")):
                if path.is_file():
                    job.manifest.inputs.append(str(path))
                    job.manifest.expected_outputs[expected_output_name(path.name)] = str(path)
            return job.remote_input_dir, job.remote_output_dir

        remote_file = posixpath.join(job.remote_input_dir, local.name)
        await self.stager.copy_file_to_remote(job.connection_id, local, remote_file)
        output_name = expected_output_name(local.name)
        job.manifest.inputs.append(str(local))
        job.manifest.expected_outputs[output_name] = str(local)
        return remote_file, posixpath.join(job.remote_output_dir, output_name)

    async def finalize_job(
        self,
        job_id: str,
        wait: bool = False,
        timeout: float | None = None,
    ) -> PipelineJob:
        """Copy a job's outputs back once its execution completed.

        Outputs land in ``<results_dir>/<job id>``. Finalizing again re-copies
        everything.

        Raises:
            NotFoundError: If the job is unknown
            ProcessFailureError: If the execution failed
            InvalidStateError: If the job failed before executing or the
                execution is still running
        """
        job = self.require(job_id)
        if job.execution_id is None:
            raise InvalidStateError(
                f"Job {job_id} has no execution to finalize: {job.error or job.stage.value}"
            )

        if wait:
            try:
                await self.executor.wait_for_execution(job.execution_id, timeout)
            except TimeoutError as e:
                raise InvalidStateError(str(e)) from e

        execution = self.executor.require(job.execution_id)
        if execution.status is ExecutionStatus.FAILED:
            self._sync_stage(job)
            raise ProcessFailureError(
                execution.error or "Script failed",
                exit_code=execution.exit_code,
                stderr=execution.stderr,
                execution_id=execution.id,
            )
        if execution.status is not ExecutionStatus.COMPLETED:
            raise InvalidStateError(
                f"Execution {execution.id} is still {execution.status.value}"
            )

        job.stage = JobStage.STAGING_OUT
        try:
            result = await self.finalize(
                job.connection_id,
                job.remote_output_dir,
                original_paths=job.manifest.inputs,
                local_dir=self.results_dir / job.id,
                url_prefix=f"{self.results_url_prefix}/{job.id}",
                manifest=job.manifest,
            )
        except Exception as e:
            self._fail(job, e)
            raise

        job.results = result.files
        job.pairings = result.pairings
        job.stage = JobStage.FINALIZED
        job.error = None
        logger.info("Job %s finalized with %d file(s)", job.id, len(job.results))
        return job

    async def finalize(
        self,
        connection_id: str,
        remote_output_dir: str,
        original_paths: list[str] | None = None,
        local_dir: Path | None = None,
        url_prefix: str | None = None,
        manifest: JobManifest | None = None,
    ) -> FinalizeResult:
        """Copy a remote output directory back and list what arrived.

        Without ``local_dir`` the copy lands in a fresh run directory under
        ``results_dir``, so only this run's files are listed and paired.
        Not incremental, and not safe to run concurrently against the same
        local directory.
        """
        if local_dir is None:
            run_id = uuid.uuid4().hex[:12]
            destination = self.results_dir / run_id
            prefix = f"{self.results_url_prefix}/{run_id}"
        else:
            destination = Path(local_dir)
            prefix = url_prefix if url_prefix is not None else self.results_url_prefix

        await self.stager.copy_directory_from_remote(
            connection_id, remote_output_dir, destination
        )
        files = list_results(destination, prefix)
        pairings = pair_outputs(
            [f.file for f in files],
            list(original_paths or []),
            manifest,
        )
        logger.info(
            "Finalized %s:%s into %s (%d file(s), %d pairing(s))",
            connection_id,
            remote_output_dir,
            destination,
            len(files),
            len(pairings),
        )
        return FinalizeResult(files=files, pairings=pairings)

    def _fail(self, job: PipelineJob, error: Exception) -> None:
        logger.error("Job %s failed during %s: %s", job.id, job.stage.value, error)
        job.stage = JobStage.FAILED
        job.error = str(error)

    def _sync_stage(self, job: PipelineJob) -> None:
        """Follow the execution into the failed state."""
        if job.stage is not JobStage.EXECUTING or job.execution_id is None:
            return
        execution = self.executor.get_execution(job.execution_id)
        if execution is not None and execution.status is ExecutionStatus.FAILED:
            job.stage = JobStage.FAILED
            job.error = execution.error

    # Reads

    def get_jobs(self) -> list[PipelineJob]:
        jobs = list(self._jobs.values())
        for job in jobs:
            self._sync_stage(job)
        return jobs

    def get_job(self, job_id: str) -> PipelineJob | None:
        job = self._jobs.get(job_id)
        if job is not None:
            self._sync_stage(job)
        return job

    def require(self, job_id: str) -> PipelineJob:
        """Return a job or raise NotFoundError."""
        job = self.get_job(job_id)
        if job is None:
            raise NotFoundError("Job", job_id)
        return job
