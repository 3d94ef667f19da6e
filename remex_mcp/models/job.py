"""Pipeline job data models."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class JobStage(Enum):
    """Stage of a stage-in, execute, stage-out pipeline job."""

    STAGING_IN = "staging_in"
    EXECUTING = "executing"
    STAGING_OUT = "staging_out"
    FINALIZED = "finalized"
    FAILED = "failed"


@dataclass
class JobManifest:
    """Inputs staged for a job and the outputs they are expected to produce.

    ``expected_outputs`` maps an output filename to the local input it comes
    from, following the ``<stem>_no_bg.png`` naming convention of the
    background-removal scripts.
    """

    inputs: list[str] = field(default_factory=list)
    expected_outputs: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "inputs": list(self.inputs),
            "expected_outputs": dict(self.expected_outputs),
        }


@dataclass
class ResultFile:
    """A file copied back from the remote output directory."""

    file: str
    url: str

    def to_dict(self) -> dict[str, Any]:
        return {"file": self.file, "url": self.url}


@dataclass
class OutputPairing:
    """Association between a result file and the input it originated from."""

    output: str
    original: str
    method: str  # "manifest" or "substring"

    def to_dict(self) -> dict[str, Any]:
        return {"output": self.output, "original": self.original, "method": self.method}


@dataclass
class PipelineJob:
    """Transient composition of one input, one connection and one execution."""

    id: str
    connection_id: str
    input_path: str
    remote_input_dir: str
    remote_output_dir: str
    script_path: str
    parameters: dict[str, Any] = field(default_factory=dict)
    stage: JobStage = JobStage.STAGING_IN
    execution_id: str | None = None
    error: str | None = None
    manifest: JobManifest = field(default_factory=JobManifest)
    results: list[ResultFile] = field(default_factory=list)
    pairings: list[OutputPairing] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict."""
        return {
            "id": self.id,
            "connection_id": self.connection_id,
            "input_path": self.input_path,
            "remote_input_dir": self.remote_input_dir,
            "remote_output_dir": self.remote_output_dir,
            "script_path": self.script_path,
            "parameters": dict(self.parameters),
            "stage": self.stage.value,
            "execution_id": self.execution_id,
            "error": self.error,
            "manifest": self.manifest.to_dict(),
            "files": [r.to_dict() for r in self.results],
            "pairings": [p.to_dict() for p in self.pairings],
        }


@dataclass
class FinalizeResult:
    """Files copied back by a finalize and their pairings with inputs."""

    files: list[ResultFile] = field(default_factory=list)
    pairings: list[OutputPairing] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "files": [f.to_dict() for f in self.files],
            "pairings": [p.to_dict() for p in self.pairings],
        }
