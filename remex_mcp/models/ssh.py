"""SSH-related data models."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import asyncssh

    from remex_mcp.models.connection import RemoteConnection


@dataclass
class SSHHost:
    """SSH login parameters for a registered connection."""

    name: str
    hostname: str
    user: str | None = None
    port: int = 22
    identity_file: str | None = None

    @classmethod
    def from_connection(
        cls,
        connection: "RemoteConnection",
        default_user: str | None = None,
    ) -> "SSHHost":
        """Derive SSH login parameters from a connection record.

        The pool keys live transports by connection id, so the id is used
        as the host name.
        """
        return cls(
            name=connection.id,
            hostname=connection.host,
            user=connection.username or default_user,
            port=connection.port or 22,
            identity_file=connection.key_path,
        )


@dataclass
class PooledConnection:
    """A live SSH connection with last-used timestamp."""

    connection: "asyncssh.SSHClientConnection"
    last_used: datetime = field(default_factory=datetime.now)

    def touch(self) -> None:
        """Update last-used timestamp."""
        self.last_used = datetime.now()

    @property
    def is_stale(self) -> bool:
        """Check if connection was closed."""
        is_closed = self.connection.is_closed
        # asyncssh exposes is_closed() as a method
        if callable(is_closed):
            return bool(is_closed())
        return bool(is_closed)
