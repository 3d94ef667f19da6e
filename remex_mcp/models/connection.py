"""Remote connection data models."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any


class ConnectionType(Enum):
    """Transport kind used to reach a remote host."""

    MESH_VPN = "mesh-vpn"
    SSH = "ssh"
    CLOUD_TUNNEL = "cloud-tunnel"


class ConnectionStatus(Enum):
    """Lifecycle state of a registered connection."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


@dataclass
class RemoteConnection:
    """A registered remote host and its connection state."""

    id: str
    name: str
    type: ConnectionType
    host: str
    port: int | None = None
    username: str | None = None
    key_path: str | None = None
    status: ConnectionStatus = ConnectionStatus.DISCONNECTED
    last_connected: datetime | None = None
    error: str | None = None
    # Handshake round trip of the last successful connect; never persisted
    latency_ms: float | None = None

    @property
    def is_connected(self) -> bool:
        """Whether the connection is currently usable."""
        return self.status is ConnectionStatus.CONNECTED

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible record."""
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type.value,
            "host": self.host,
            "port": self.port,
            "username": self.username,
            "key_path": self.key_path,
            "status": self.status.value,
            "last_connected": (
                self.last_connected.isoformat() if self.last_connected else None
            ),
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RemoteConnection":
        """Build a connection from a persisted record.

        Raises:
            KeyError: If a required field is missing.
            ValueError: If type, status or timestamp cannot be parsed.
        """
        last_connected = data.get("last_connected")
        return cls(
            id=data["id"],
            name=data["name"],
            type=ConnectionType(data["type"]),
            host=data["host"],
            port=data.get("port"),
            username=data.get("username"),
            key_path=data.get("key_path"),
            status=ConnectionStatus(data.get("status", "disconnected")),
            last_connected=(
                datetime.fromisoformat(last_connected) if last_connected else None
            ),
            error=data.get("error"),
        )
