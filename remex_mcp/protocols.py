"""Protocol interfaces for dependency inversion.

The services depend on these abstractions rather than on asyncssh
directly, so tests can inject fakes for handshakes, process launchers
and transport pools.

Usage Example:

    from remex_mcp.protocols import ProcessLauncher

    class FakeLauncher:
        async def launch(self, connection, command):
            return FakeHandle(exit_code=0)

    executor = ScriptExecutor(registry, launcher=FakeLauncher(), ...)
"""

from collections.abc import AsyncIterator
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from remex_mcp.models import RemoteConnection, SSHHost
    from remex_mcp.services.events import ProcessEvent


@runtime_checkable
class Handshake(Protocol):
    """Type-specific establish step run by ``ConnectionRegistry.connect``."""

    async def establish(self, connection: "RemoteConnection") -> None:
        """Bring the connection up.

        Raises:
            TransportError: If the remote host cannot be reached
        """
        ...


@runtime_checkable
class ProcessHandle(Protocol):
    """A spawned interpreter process observed as a stream of events."""

    def events(self) -> AsyncIterator["ProcessEvent"]:
        """Yield Started, OutputChunk and finally Exited events."""
        ...

    def terminate(self) -> None:
        """Ask the process to stop. Safe to call after it exited."""
        ...


@runtime_checkable
class ProcessLauncher(Protocol):
    """Spawns interpreter processes against a connected host."""

    async def launch(
        self,
        connection: "RemoteConnection",
        command: str,
    ) -> ProcessHandle:
        """Start ``command`` on the connection's host.

        Raises:
            Exception: Any spawn failure; the executor records it
        """
        ...


@runtime_checkable
class SSHTransportPool(Protocol):
    """Pool of live SSH transports keyed by connection id."""

    async def open(self, host: "SSHHost") -> Any:
        """Open a fresh transport for the host."""
        ...

    async def get_connection(self, host: "SSHHost") -> Any:
        """Return the live transport, reopening a stale one."""
        ...

    async def release(self, name: str) -> None:
        """Close the transport for a connection id."""
        ...

    async def close_all(self) -> None:
        """Close every transport."""
        ...
