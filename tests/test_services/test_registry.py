"""Tests for the connection registry."""

import asyncio
import json
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from remex_mcp.models import ConnectionStatus, ConnectionType
from remex_mcp.services.errors import (
    ConnectionNotEstablishedError,
    InvalidStateError,
    NotFoundError,
    TransportError,
    ValidationError,
)
from remex_mcp.services.registry import ConnectionRegistry


def test_add_connection_starts_disconnected(registry: ConnectionRegistry) -> None:
    """A new connection is registered as disconnected."""
    connection_id = registry.add_connection("Lab PC", "ssh", "10.0.0.5")

    connection = registry.get_connection(connection_id)
    assert connection is not None
    assert connection.status is ConnectionStatus.DISCONNECTED
    assert connection.type is ConnectionType.SSH
    assert connection.last_connected is None


def test_add_connection_persists_immediately(registry: ConnectionRegistry) -> None:
    """The registry file holds the new record right after add."""
    connection_id = registry.add_connection("Lab PC", "ssh", "10.0.0.5", port=2222)

    records = json.loads(registry.path.read_text())
    assert [r["id"] for r in records] == [connection_id]
    assert records[0]["port"] == 2222
    assert records[0]["status"] == "disconnected"


def test_add_connection_rejects_unknown_type(registry: ConnectionRegistry) -> None:
    """Unknown connection types are a validation error."""
    with pytest.raises(ValidationError):
        registry.add_connection("Lab PC", "carrier-pigeon", "10.0.0.5")

    assert registry.get_connections() == []


@pytest.mark.asyncio
async def test_connect_mesh_vpn_sets_connected(registry: ConnectionRegistry) -> None:
    """A mesh-vpn connect ends connected with a timestamp and latency."""
    connection_id = registry.add_connection("Mesh box", "mesh-vpn", "100.64.0.7")

    assert await registry.connect(connection_id) is True

    connection = registry.require(connection_id)
    assert connection.status is ConnectionStatus.CONNECTED
    assert connection.last_connected is not None
    assert connection.latency_ms is not None


@pytest.mark.asyncio
async def test_connect_passes_through_connecting(
    registry: ConnectionRegistry,
    handshakes: dict,
) -> None:
    """Status is connecting while the handshake runs."""
    connection_id = registry.add_connection("Lab PC", "ssh", "10.0.0.5")
    gate = asyncio.Event()
    handshakes[ConnectionType.SSH].gate = gate

    task = asyncio.create_task(registry.connect(connection_id))
    await asyncio.sleep(0)
    assert registry.require(connection_id).status is ConnectionStatus.CONNECTING

    gate.set()
    await task
    assert registry.require(connection_id).status is ConnectionStatus.CONNECTED


@pytest.mark.asyncio
async def test_connect_failure_sets_error_and_raises(
    registry: ConnectionRegistry,
    handshakes: dict,
) -> None:
    """A failed handshake leaves the connection in error with the message."""
    handshakes[ConnectionType.SSH].error = TransportError("host unreachable")
    connection_id = registry.add_connection("Lab PC", "ssh", "10.0.0.5")

    with pytest.raises(TransportError, match="host unreachable"):
        await registry.connect(connection_id)

    connection = registry.require(connection_id)
    assert connection.status is ConnectionStatus.ERROR
    assert connection.error == "host unreachable"


@pytest.mark.asyncio
async def test_connect_wraps_unexpected_errors(
    registry: ConnectionRegistry,
    handshakes: dict,
) -> None:
    """Non-orchestration errors surface as TransportError."""
    handshakes[ConnectionType.SSH].error = OSError("connection refused")
    connection_id = registry.add_connection("Lab PC", "ssh", "10.0.0.5")

    with pytest.raises(TransportError) as exc_info:
        await registry.connect(connection_id)

    assert exc_info.value.host == "10.0.0.5"
    assert registry.require(connection_id).status is ConnectionStatus.ERROR


@pytest.mark.asyncio
async def test_reconnect_after_error(
    registry: ConnectionRegistry,
    handshakes: dict,
) -> None:
    """error -> connecting -> connected is allowed and clears the error."""
    handshake = handshakes[ConnectionType.SSH]
    handshake.error = TransportError("timeout")
    connection_id = registry.add_connection("Lab PC", "ssh", "10.0.0.5")
    with pytest.raises(TransportError):
        await registry.connect(connection_id)

    handshake.error = None
    await registry.connect(connection_id)

    connection = registry.require(connection_id)
    assert connection.status is ConnectionStatus.CONNECTED
    assert connection.error is None


@pytest.mark.asyncio
async def test_connect_when_connected_skips_handshake(
    registry: ConnectionRegistry,
    handshakes: dict,
    connected_id: str,
) -> None:
    """Connecting an already connected connection does nothing."""
    assert await registry.connect(connected_id) is True
    assert handshakes[ConnectionType.SSH].calls == 1


@pytest.mark.asyncio
async def test_concurrent_connect_joins_inflight_handshake(
    registry: ConnectionRegistry,
    handshakes: dict,
) -> None:
    """A second connect while connecting waits for the first handshake."""
    handshake = handshakes[ConnectionType.SSH]
    handshake.gate = asyncio.Event()
    connection_id = registry.add_connection("Lab PC", "ssh", "10.0.0.5")

    first = asyncio.create_task(registry.connect(connection_id))
    await asyncio.sleep(0)
    second = asyncio.create_task(registry.connect(connection_id))
    await asyncio.sleep(0)
    handshake.gate.set()

    assert await asyncio.gather(first, second) == [True, True]
    assert handshake.calls == 1


@pytest.mark.asyncio
async def test_connect_unknown_id(registry: ConnectionRegistry) -> None:
    with pytest.raises(NotFoundError):
        await registry.connect("missing")


@pytest.mark.asyncio
async def test_disconnect_releases_transport(
    registry: ConnectionRegistry,
    transport_pool: AsyncMock,
    connected_id: str,
) -> None:
    """Disconnect flips to disconnected and releases the pooled transport."""
    await registry.disconnect(connected_id)

    connection = registry.require(connected_id)
    assert connection.status is ConnectionStatus.DISCONNECTED
    assert connection.latency_ms is None
    transport_pool.release.assert_awaited_once_with(connected_id)


@pytest.mark.asyncio
async def test_disconnect_runs_hooks_before_status_change(
    registry: ConnectionRegistry,
    connected_id: str,
) -> None:
    """Hooks see the connection still connected."""
    seen = []

    async def hook(connection_id: str) -> None:
        seen.append(registry.require(connection_id).status)

    registry.add_disconnect_hook(hook)
    await registry.disconnect(connected_id)

    assert seen == [ConnectionStatus.CONNECTED]


@pytest.mark.asyncio
async def test_disconnect_while_connecting_is_rejected(
    registry: ConnectionRegistry,
    handshakes: dict,
) -> None:
    """connecting -> disconnected is not a valid transition."""
    handshake = handshakes[ConnectionType.SSH]
    handshake.gate = asyncio.Event()
    connection_id = registry.add_connection("Lab PC", "ssh", "10.0.0.5")
    task = asyncio.create_task(registry.connect(connection_id))
    await asyncio.sleep(0)

    with pytest.raises(InvalidStateError):
        await registry.disconnect(connection_id)

    handshake.gate.set()
    await task


@pytest.mark.asyncio
async def test_disconnect_when_disconnected_keeps_status(
    registry: ConnectionRegistry,
) -> None:
    connection_id = registry.add_connection("Lab PC", "ssh", "10.0.0.5")

    await registry.disconnect(connection_id)

    assert registry.require(connection_id).status is ConnectionStatus.DISCONNECTED


@pytest.mark.asyncio
async def test_status_changes_are_persisted(
    registry: ConnectionRegistry,
    connected_id: str,
) -> None:
    records = json.loads(registry.path.read_text())

    assert records[0]["status"] == "connected"
    assert records[0]["last_connected"] is not None


def test_load_resets_live_statuses(tmp_path: Path, handshakes: dict) -> None:
    """Connected and connecting records come back disconnected after restart."""
    path = tmp_path / "connections.json"
    path.write_text(
        json.dumps(
            [
                {"id": "a", "name": "A", "type": "ssh", "host": "h1", "status": "connected"},
                {"id": "b", "name": "B", "type": "mesh-vpn", "host": "h2", "status": "connecting"},
                {"id": "c", "name": "C", "type": "cloud-tunnel", "host": "h3", "status": "error",
                 "error": "boom"},
            ]
        )
    )
    registry = ConnectionRegistry(path, handshakes)

    assert registry.load() == 3
    assert registry.require("a").status is ConnectionStatus.DISCONNECTED
    assert registry.require("b").status is ConnectionStatus.DISCONNECTED
    assert registry.require("c").status is ConnectionStatus.ERROR
    assert registry.require("c").error == "boom"


def test_load_skips_invalid_records(tmp_path: Path, handshakes: dict) -> None:
    path = tmp_path / "connections.json"
    path.write_text(
        json.dumps(
            [
                {"id": "a", "name": "A", "type": "ssh", "host": "h1"},
                {"id": "b", "name": "B", "type": "teleport", "host": "h2"},
            ]
        )
    )
    registry = ConnectionRegistry(path, handshakes)

    assert registry.load() == 1
    assert registry.get_connection("b") is None


def test_load_unreadable_file_starts_empty(tmp_path: Path, handshakes: dict) -> None:
    path = tmp_path / "connections.json"
    path.write_text("{not json")
    registry = ConnectionRegistry(path, handshakes)

    assert registry.load() == 0
    assert registry.get_connections() == []


def test_require_connected_gates_on_status(registry: ConnectionRegistry) -> None:
    connection_id = registry.add_connection("Lab PC", "ssh", "10.0.0.5")

    with pytest.raises(ConnectionNotEstablishedError):
        registry.require_connected(connection_id)
    with pytest.raises(NotFoundError):
        registry.require_connected("missing")


@pytest.mark.asyncio
async def test_health_reports_latency_when_connected(
    registry: ConnectionRegistry,
    connected_id: str,
) -> None:
    health = registry.get_connection_health(connected_id)

    assert health["status"] == "connected"
    assert isinstance(health["latency"], float)


def test_health_unknown_id_does_not_raise(registry: ConnectionRegistry) -> None:
    assert registry.get_connection_health("missing") == {"status": "not_found"}


def test_health_disconnected_has_no_latency(registry: ConnectionRegistry) -> None:
    connection_id = registry.add_connection("Lab PC", "ssh", "10.0.0.5")

    assert registry.get_connection_health(connection_id) == {"status": "disconnected"}
