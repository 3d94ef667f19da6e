"""Per-type establish steps for remote connections.

Every connection type ends with an SSH session through the transport pool;
what differs is the negotiation run before it:

- ssh: key exchange only
- mesh-vpn: peer discovery (the peer must answer on the mesh address)
- cloud-tunnel: wait for the tunnel endpoint to come up, then key exchange
"""

import asyncio
import logging
from typing import TYPE_CHECKING

import asyncssh

from remex_mcp.models import ConnectionType, RemoteConnection, SSHHost
from remex_mcp.services.errors import TransportError
from remex_mcp.utils.ping import check_host_online

if TYPE_CHECKING:
    from remex_mcp.config import Config
    from remex_mcp.protocols import Handshake, SSHTransportPool

logger = logging.getLogger(__name__)


class SSHHandshake:
    """Open an SSH transport for the connection."""

    def __init__(
        self,
        pool: "SSHTransportPool",
        default_user: str | None = None,
    ) -> None:
        self.pool = pool
        self.default_user = default_user

    async def establish(self, connection: RemoteConnection) -> None:
        host = SSHHost.from_connection(connection, self.default_user)
        try:
            await self.pool.open(host)
        except (asyncssh.Error, OSError) as e:
            raise TransportError(
                f"SSH handshake with {connection.host} failed: {e}",
                host=connection.host,
            ) from e


class MeshVPNHandshake(SSHHandshake):
    """Discover the peer on the mesh network before opening SSH."""

    def __init__(
        self,
        pool: "SSHTransportPool",
        default_user: str | None = None,
        probe_timeout: float = 2.0,
    ) -> None:
        super().__init__(pool, default_user)
        self.probe_timeout = probe_timeout

    async def establish(self, connection: RemoteConnection) -> None:
        port = connection.port or 22
        logger.debug("Discovering mesh peer %s:%d", connection.host, port)
        if not await check_host_online(connection.host, port, self.probe_timeout):
            raise TransportError(
                f"Mesh peer {connection.host} not reachable on port {port}",
                host=connection.host,
            )
        await super().establish(connection)


class CloudTunnelHandshake(SSHHandshake):
    """Wait for the tunnel endpoint to accept connections, then open SSH."""

    def __init__(
        self,
        pool: "SSHTransportPool",
        default_user: str | None = None,
        probe_timeout: float = 2.0,
        attempts: int = 5,
        interval: float = 1.0,
    ) -> None:
        super().__init__(pool, default_user)
        self.probe_timeout = probe_timeout
        self.attempts = max(1, attempts)
        self.interval = interval

    async def establish(self, connection: RemoteConnection) -> None:
        port = connection.port or 22
        for attempt in range(1, self.attempts + 1):
            if await check_host_online(connection.host, port, self.probe_timeout):
                logger.debug(
                    "Tunnel %s:%d negotiated after %d attempt(s)",
                    connection.host,
                    port,
                    attempt,
                )
                break
            if attempt < self.attempts:
                await asyncio.sleep(self.interval)
        else:
            raise TransportError(
                f"Tunnel endpoint {connection.host}:{port} did not come up "
                f"after {self.attempts} attempt(s)",
                host=connection.host,
            )
        await super().establish(connection)


def build_handshakes(
    pool: "SSHTransportPool",
    config: "Config",
) -> dict[ConnectionType, "Handshake"]:
    """Create the establish step for every connection type."""
    return {
        ConnectionType.SSH: SSHHandshake(pool, config.default_user),
        ConnectionType.MESH_VPN: MeshVPNHandshake(
            pool,
            config.default_user,
            probe_timeout=config.probe_timeout,
        ),
        ConnectionType.CLOUD_TUNNEL: CloudTunnelHandshake(
            pool,
            config.default_user,
            probe_timeout=config.probe_timeout,
            attempts=config.tunnel_attempts,
            interval=config.tunnel_interval,
        ),
    }
