"""Spawns interpreter processes on connected hosts over SSH.

Each script runs as its own process on the remote host, attached to an SSH
session channel. Its stdout, stderr and exit status are surfaced as
``ProcessEvent`` values rather than callbacks.
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from typing import TYPE_CHECKING

import asyncssh

from remex_mcp.models import RemoteConnection, SSHHost
from remex_mcp.services.events import (
    Exited,
    OutputChunk,
    ProcessEvent,
    Started,
)

if TYPE_CHECKING:
    from remex_mcp.protocols import SSHTransportPool

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 4096


class SSHProcessHandle:
    """Event view over an ``asyncssh`` client process."""

    def __init__(self, process: asyncssh.SSHClientProcess) -> None:
        self._process = process

    async def _pump(
        self,
        reader: asyncssh.SSHReader,
        stream: str,
        queue: "asyncio.Queue[OutputChunk | None]",
    ) -> None:
        try:
            while True:
                data = await reader.read(READ_CHUNK_SIZE)
                if not data:
                    break
                await queue.put(OutputChunk(text=data, stream=stream))
        finally:
            await queue.put(None)

    async def events(self) -> AsyncIterator[ProcessEvent]:
        yield Started()

        queue: asyncio.Queue[OutputChunk | None] = asyncio.Queue()
        pumps = [
            asyncio.create_task(self._pump(self._process.stdout, "stdout", queue)),
            asyncio.create_task(self._pump(self._process.stderr, "stderr", queue)),
        ]
        try:
            open_streams = len(pumps)
            while open_streams:
                chunk = await queue.get()
                if chunk is None:
                    open_streams -= 1
                    continue
                yield chunk

            # Surface reader errors (e.g. connection lost) to the observer
            await asyncio.gather(*pumps)

            completed = await self._process.wait(check=False)
            yield Exited(code=completed.returncode)
        finally:
            for pump in pumps:
                pump.cancel()

    def terminate(self) -> None:
        if self._process.exit_status is not None:
            return
        try:
            self._process.terminate()
        except OSError as e:
            logger.debug("Terminate signal not delivered: %s", e)
        self._process.close()


class SSHProcessLauncher:
    """Launch commands through the connection's pooled SSH transport."""

    def __init__(
        self,
        pool: "SSHTransportPool",
        default_user: str | None = None,
    ) -> None:
        self.pool = pool
        self.default_user = default_user

    async def launch(
        self,
        connection: RemoteConnection,
        command: str,
    ) -> SSHProcessHandle:
        host = SSHHost.from_connection(connection, self.default_user)
        conn = await self.pool.get_connection(host)
        logger.debug("Spawning on %s: %s", connection.id, command)
        process = await conn.create_process(command, encoding="utf-8", errors="replace")
        return SSHProcessHandle(process)
