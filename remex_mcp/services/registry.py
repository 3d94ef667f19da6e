"""Connection registry: owns RemoteConnection records and their lifecycle.

Status moves only along:

    disconnected -> connecting -> connected | error
    error        -> connecting
    connected    -> disconnected

The full registry is written to a JSON file whenever a record is added or
changes status.
"""

import asyncio
import json
import logging
import os
import time
import uuid
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any

from remex_mcp.models import ConnectionStatus, ConnectionType, RemoteConnection
from remex_mcp.services.errors import (
    ConnectionNotEstablishedError,
    InvalidStateError,
    NotFoundError,
    RemexError,
    TransportError,
    ValidationError,
)

if TYPE_CHECKING:
    from remex_mcp.protocols import Handshake, SSHTransportPool

logger = logging.getLogger(__name__)

DisconnectHook = Callable[[str], Awaitable[Any]]

_ALLOWED_TRANSITIONS: dict[ConnectionStatus, frozenset[ConnectionStatus]] = {
    ConnectionStatus.DISCONNECTED: frozenset({ConnectionStatus.CONNECTING}),
    ConnectionStatus.ERROR: frozenset({ConnectionStatus.CONNECTING}),
    ConnectionStatus.CONNECTING: frozenset(
        {ConnectionStatus.CONNECTED, ConnectionStatus.ERROR}
    ),
    ConnectionStatus.CONNECTED: frozenset({ConnectionStatus.DISCONNECTED}),
}

# A restarted process has no live transport for these
_RESET_ON_LOAD = frozenset({ConnectionStatus.CONNECTING, ConnectionStatus.CONNECTED})


class ConnectionRegistry:
    """Registered remote connections, their handshakes and persistence."""

    def __init__(
        self,
        path: Path,
        handshakes: dict[ConnectionType, "Handshake"],
        pool: "SSHTransportPool | None" = None,
    ) -> None:
        """Initialize an empty registry.

        Args:
            path: JSON file the registry is persisted to
            handshakes: Establish step for each connection type
            pool: Transport pool released on disconnect
        """
        self.path = path
        self._handshakes = handshakes
        self._pool = pool
        self._connections: dict[str, RemoteConnection] = {}
        self._disconnect_hooks: list[DisconnectHook] = []
        self._inflight: dict[str, asyncio.Task[None]] = {}

    # Persistence

    def load(self) -> int:
        """Load persisted connections, returning how many were read."""
        if not self.path.exists():
            logger.debug("No connection registry at %s", self.path)
            return 0

        try:
            records = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Cannot read connection registry %s: %s", self.path, e)
            return 0

        loaded = 0
        for record in records:
            try:
                connection = RemoteConnection.from_dict(record)
            except (KeyError, ValueError, TypeError) as e:
                logger.warning("Skipping invalid connection record %r: %s", record, e)
                continue
            if connection.status in _RESET_ON_LOAD:
                connection.status = ConnectionStatus.DISCONNECTED
            self._connections[connection.id] = connection
            loaded += 1

        logger.info("Loaded %d connection(s) from %s", loaded, self.path)
        return loaded

    def save(self) -> None:
        """Write the full registry to disk."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        records = [c.to_dict() for c in self._connections.values()]
        tmp_path = self.path.with_suffix(".tmp")
        tmp_path.write_text(json.dumps(records, indent=2), encoding="utf-8")
        os.replace(tmp_path, self.path)
        logger.debug("Saved %d connection(s) to %s", len(records), self.path)

    # Lifecycle

    def add_disconnect_hook(self, hook: DisconnectHook) -> None:
        """Register a coroutine run with the connection id before disconnecting."""
        self._disconnect_hooks.append(hook)

    def add_connection(
        self,
        name: str,
        type: str | ConnectionType,
        host: str,
        port: int | None = None,
        username: str | None = None,
        key_path: str | None = None,
    ) -> str:
        """Register a new connection in the disconnected state.

        Returns:
            The new connection id

        Raises:
            ValidationError: If the connection type is unknown
        """
        try:
            connection_type = ConnectionType(type)
        except ValueError as e:
            raise ValidationError(f"Invalid connection type: {type}") from e

        connection = RemoteConnection(
            id=uuid.uuid4().hex[:12],
            name=name,
            type=connection_type,
            host=host,
            port=port,
            username=username,
            key_path=key_path,
        )
        self._connections[connection.id] = connection
        self.save()
        logger.info(
            "Added %s connection %s (%s -> %s)",
            connection_type.value,
            connection.id,
            name,
            host,
        )
        return connection.id

    async def connect(self, connection_id: str) -> bool:
        """Run the connection's handshake.

        A connection that is already connected is left alone; a second call
        while a handshake is in flight waits for that handshake.

        Raises:
            NotFoundError: If the id is unknown
            TransportError: If the handshake fails (status becomes error)
        """
        connection = self.require(connection_id)

        if connection.status is ConnectionStatus.CONNECTED:
            logger.debug("Connection %s already connected", connection_id)
            return True

        inflight = self._inflight.get(connection_id)
        if inflight is not None:
            logger.debug("Joining in-flight handshake for %s", connection_id)
            await asyncio.shield(inflight)
            return True

        self._transition(connection, ConnectionStatus.CONNECTING)
        connection.error = None
        task = asyncio.ensure_future(self._handshake(connection))
        self._inflight[connection_id] = task
        try:
            await task
        finally:
            self._inflight.pop(connection_id, None)
        return True

    async def _handshake(self, connection: RemoteConnection) -> None:
        handshake = self._handshakes.get(connection.type)
        started = time.perf_counter()
        try:
            if handshake is None:
                raise TransportError(
                    f"No handshake available for {connection.type.value}",
                    host=connection.host,
                )
            await handshake.establish(connection)
        except asyncio.CancelledError:
            self._fail(connection, "Connection attempt cancelled")
            raise
        except RemexError as e:
            self._fail(connection, str(e))
            raise
        except Exception as e:
            self._fail(connection, str(e))
            raise TransportError(
                f"Connection to {connection.host} failed: {e}",
                host=connection.host,
            ) from e

        connection.latency_ms = (time.perf_counter() - started) * 1000
        connection.last_connected = datetime.now(timezone.utc)
        self._transition(connection, ConnectionStatus.CONNECTED)
        logger.info(
            "Connected %s (%s) in %.1fms",
            connection.id,
            connection.host,
            connection.latency_ms,
        )

    def _fail(self, connection: RemoteConnection, message: str) -> None:
        connection.error = message
        self._transition(connection, ConnectionStatus.ERROR)
        logger.error("Connection %s failed: %s", connection.id, message)

    async def disconnect(self, connection_id: str) -> None:
        """Stop bound executions, release the transport and mark disconnected.

        Raises:
            NotFoundError: If the id is unknown
            InvalidStateError: If a handshake is in progress
        """
        connection = self.require(connection_id)
        if connection.status is ConnectionStatus.CONNECTING:
            raise InvalidStateError(
                f"Connection {connection_id} is connecting; wait for the handshake"
            )

        for hook in list(self._disconnect_hooks):
            await hook(connection_id)

        if self._pool is not None:
            await self._pool.release(connection_id)

        if connection.status is ConnectionStatus.CONNECTED:
            connection.latency_ms = None
            self._transition(connection, ConnectionStatus.DISCONNECTED)
            logger.info("Disconnected %s", connection_id)
        else:
            logger.debug(
                "Connection %s was %s; status left unchanged",
                connection_id,
                connection.status.value,
            )

    def _transition(
        self,
        connection: RemoteConnection,
        status: ConnectionStatus,
    ) -> None:
        if status not in _ALLOWED_TRANSITIONS[connection.status]:
            raise InvalidStateError(
                f"Connection {connection.id} cannot move from "
                f"{connection.status.value} to {status.value}"
            )
        logger.debug(
            "Connection %s: %s -> %s",
            connection.id,
            connection.status.value,
            status.value,
        )
        connection.status = status
        self.save()

    # Reads

    def get_connections(self) -> list[RemoteConnection]:
        return list(self._connections.values())

    def get_connection(self, connection_id: str) -> RemoteConnection | None:
        return self._connections.get(connection_id)

    def require(self, connection_id: str) -> RemoteConnection:
        """Return a connection or raise NotFoundError."""
        connection = self._connections.get(connection_id)
        if connection is None:
            raise NotFoundError("Connection", connection_id)
        return connection

    def require_connected(self, connection_id: str) -> RemoteConnection:
        """Return a connected connection.

        Raises:
            NotFoundError: If the id is unknown
            ConnectionNotEstablishedError: If it is not connected
        """
        connection = self.require(connection_id)
        if not connection.is_connected:
            raise ConnectionNotEstablishedError(
                connection_id, connection.status.value
            )
        return connection

    def get_connection_health(self, connection_id: str) -> dict[str, Any]:
        """Status plus the last handshake latency when connected.

        Unknown ids report ``{"status": "not_found"}`` instead of raising.
        """
        connection = self._connections.get(connection_id)
        if connection is None:
            return {"status": "not_found"}

        health: dict[str, Any] = {"status": connection.status.value}
        if connection.is_connected and connection.latency_ms is not None:
            health["latency"] = round(connection.latency_ms, 1)
        return health
