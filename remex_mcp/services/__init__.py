"""Orchestration services for Remex MCP."""

from remex_mcp.services.background_removal import (
    BackgroundRemovalRequest,
    start_background_removal,
)
from remex_mcp.services.errors import (
    ConnectionNotEstablishedError,
    InvalidStateError,
    NotFoundError,
    ProcessFailureError,
    RemexError,
    TransferFailedError,
    TransportError,
    ValidationError,
)
from remex_mcp.services.executor import ScriptExecutor
from remex_mcp.services.handshake import build_handshakes
from remex_mcp.services.launcher import SSHProcessLauncher
from remex_mcp.services.pipeline import PipelineOrchestrator, pair_outputs
from remex_mcp.services.pool import TransportPool
from remex_mcp.services.registry import ConnectionRegistry
from remex_mcp.services.stager import FileStager

__all__ = [
    "BackgroundRemovalRequest",
    "ConnectionNotEstablishedError",
    "ConnectionRegistry",
    "FileStager",
    "InvalidStateError",
    "NotFoundError",
    "PipelineOrchestrator",
    "ProcessFailureError",
    "RemexError",
    "ScriptExecutor",
    "SSHProcessLauncher",
    "TransferFailedError",
    "TransportError",
    "TransportPool",
    "ValidationError",
    "build_handshakes",
    "pair_outputs",
    "start_background_removal",
]
