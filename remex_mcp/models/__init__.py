"""Data models for Remex MCP."""

from remex_mcp.models.connection import (
    ConnectionStatus,
    ConnectionType,
    RemoteConnection,
)
from remex_mcp.models.execution import ExecutionStatus, ScriptExecution
from remex_mcp.models.job import (
    FinalizeResult,
    JobManifest,
    JobStage,
    OutputPairing,
    PipelineJob,
    ResultFile,
)
from remex_mcp.models.ssh import PooledConnection, SSHHost
from remex_mcp.models.transfer import TransferResult

__all__ = [
    "ConnectionStatus",
    "ConnectionType",
    "ExecutionStatus",
    "FinalizeResult",
    "JobManifest",
    "JobStage",
    "OutputPairing",
    "PipelineJob",
    "PooledConnection",
    "RemoteConnection",
    "ResultFile",
    "ScriptExecution",
    "SSHHost",
    "TransferResult",
]
