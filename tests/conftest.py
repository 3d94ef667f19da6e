"""Shared fixtures: fake handshakes, fake processes and wired services."""

import asyncio
from collections.abc import AsyncIterator, Callable
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

from remex_mcp.config import Config
from remex_mcp.dependencies import Dependencies
from remex_mcp.models import ConnectionType, RemoteConnection
from remex_mcp.services.events import Exited, OutputChunk, ProcessEvent, Started
from remex_mcp.services.executor import ScriptExecutor
from remex_mcp.services.pipeline import PipelineOrchestrator
from remex_mcp.services.registry import ConnectionRegistry


class FakeHandshake:
    """Handshake that succeeds, fails or blocks on demand."""

    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.calls = 0
        self.gate: asyncio.Event | None = None

    async def establish(self, connection: RemoteConnection) -> None:
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error


class FakeProcessHandle:
    """Replays scripted events; with ``hold`` it stays running until terminated."""

    def __init__(self, events: list[ProcessEvent], hold: bool = False) -> None:
        self._events = events
        self._released = asyncio.Event()
        if not hold:
            self._released.set()
        self.terminated = False

    async def events(self) -> AsyncIterator[ProcessEvent]:
        yield Started(pid=4242)
        for event in self._events:
            yield event
        await self._released.wait()

    def terminate(self) -> None:
        self.terminated = True
        self._released.set()


class FakeLauncher:
    """Hands out queued handles and records every command it was asked to run."""

    def __init__(self) -> None:
        self.commands: list[str] = []
        self.handles: list[FakeProcessHandle] = []
        self.error: Exception | None = None

    async def launch(self, connection: RemoteConnection, command: str) -> FakeProcessHandle:
        self.commands.append(command)
        if self.error is not None:
            raise self.error
        if self.handles:
            return self.handles.pop(0)
        return FakeProcessHandle([OutputChunk("done\n"), Exited(0)])


@pytest.fixture
def make_handle() -> Callable[..., FakeProcessHandle]:
    """Factory for scripted process handles."""
    return FakeProcessHandle


@pytest.fixture
def handshakes() -> dict[ConnectionType, FakeHandshake]:
    return {t: FakeHandshake() for t in ConnectionType}


@pytest.fixture
def transport_pool() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def registry(
    tmp_path: Path,
    handshakes: dict[ConnectionType, FakeHandshake],
    transport_pool: AsyncMock,
) -> ConnectionRegistry:
    return ConnectionRegistry(tmp_path / "connections.json", handshakes, pool=transport_pool)


@pytest.fixture
def launcher() -> FakeLauncher:
    return FakeLauncher()


@pytest.fixture
def executor(registry: ConnectionRegistry, launcher: FakeLauncher) -> ScriptExecutor:
    executor = ScriptExecutor(
        registry,
        launcher,
        interpreter="powershell.exe",
        interpreter_args=["-NoProfile", "-File"],
    )
    registry.add_disconnect_hook(executor.stop_executions_for)
    return executor


@pytest_asyncio.fixture
async def connected_id(registry: ConnectionRegistry) -> str:
    """A connected ssh connection."""
    connection_id = registry.add_connection("Lab PC", "ssh", "10.0.0.5")
    await registry.connect(connection_id)
    return connection_id


@pytest.fixture
def deps(
    tmp_path: Path,
    registry: ConnectionRegistry,
    executor: ScriptExecutor,
) -> Dependencies:
    """Services wired from fakes: no SSH, no SFTP."""
    config = Config(
        data_dir=tmp_path,
        results_dir=tmp_path / "processed",
        default_script_path="C:/scripts/backgroundremover.ps1",
        log_colors=False,
    )
    pool = MagicMock(pool_size=0, active_hosts=[])
    pool.close_all = AsyncMock()
    stager = AsyncMock()
    return Dependencies(
        config=config,
        pool=pool,
        registry=registry,
        executor=executor,
        stager=stager,
        pipeline=PipelineOrchestrator(stager, executor, config.results_dir),
    )
