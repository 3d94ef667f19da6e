"""Live SSH transports for connected remote connections.

Transports are keyed by connection id. The registry decides when a
transport is opened (``connect``) and released (``disconnect``); the pool
only reopens a transport that the remote side closed underneath a
connection the registry still considers connected.

Locking Strategy:
- `_meta_lock`: Protects the _transports OrderedDict and _host_locks dict
- Per-connection locks: Serialize open/release for one connection id
- Lock acquisition order: per-connection lock first, then meta-lock

LRU Eviction:
- OrderedDict with move_to_end() tracks recency
- The oldest transport is closed when the pool reaches max_size
"""

import asyncio
import logging
from collections import OrderedDict

import asyncssh

from remex_mcp.models import PooledConnection, SSHHost

logger = logging.getLogger(__name__)


class TransportPool:
    """SSH transport pool with size limit and LRU eviction."""

    def __init__(
        self,
        max_size: int = 100,
        known_hosts: str | None = None,
        strict_host_key_checking: bool = True,
    ) -> None:
        """Initialize the pool.

        Args:
            max_size: Maximum number of live transports (must be > 0)
            known_hosts: Path to known_hosts file, or None to disable verification
            strict_host_key_checking: Whether to reject unknown host keys

        Raises:
            ValueError: If max_size is not positive
        """
        if max_size <= 0:
            raise ValueError(f"max_size must be > 0, got {max_size}")

        self.max_size = max_size
        self._transports: OrderedDict[str, PooledConnection] = OrderedDict()
        self._host_locks: dict[str, asyncio.Lock] = {}
        self._meta_lock = asyncio.Lock()
        self._known_hosts = known_hosts
        self._strict_host_key = strict_host_key_checking

        if self._known_hosts is None:
            logger.warning(
                "SSH host key verification DISABLED - vulnerable to MITM attacks"
            )

        logger.info("TransportPool initialized (max_size=%d)", max_size)

    async def _get_host_lock(self, name: str) -> asyncio.Lock:
        async with self._meta_lock:
            if name not in self._host_locks:
                self._host_locks[name] = asyncio.Lock()
            return self._host_locks[name]

    async def _evict_lru_if_needed(self) -> None:
        """Close least recently used transports if at capacity."""
        to_close: list[PooledConnection] = []

        async with self._meta_lock:
            while len(self._transports) >= self.max_size:
                oldest = next(iter(self._transports))
                logger.info(
                    "Pool at capacity (%d/%d), evicting LRU: %s",
                    len(self._transports),
                    self.max_size,
                    oldest,
                )
                to_close.append(self._transports.pop(oldest))

        for pooled in to_close:
            pooled.connection.close()

    async def _connect(self, host: SSHHost) -> asyncssh.SSHClientConnection:
        """Run the SSH handshake for a host."""
        client_keys = [host.identity_file] if host.identity_file else None

        logger.info(
            "Opening SSH transport to %s (%s@%s:%d)",
            host.name,
            host.user or "<default>",
            host.hostname,
            host.port,
        )
        try:
            return await asyncssh.connect(
                host.hostname,
                port=host.port,
                username=host.user,
                known_hosts=self._known_hosts,
                client_keys=client_keys,
            )
        except asyncssh.HostKeyNotVerifiable as e:
            if self._strict_host_key:
                logger.error(
                    "Host key verification failed for %s: %s. Add the host key "
                    "to %s or set REMEX_STRICT_HOST_KEY_CHECKING=false",
                    host.name,
                    e,
                    self._known_hosts,
                )
                raise
            logger.warning(
                "Host key not verified for %s (strict mode disabled): %s",
                host.name,
                e,
            )
            return await asyncssh.connect(
                host.hostname,
                port=host.port,
                username=host.user,
                known_hosts=None,
                client_keys=client_keys,
            )

    async def open(self, host: SSHHost) -> asyncssh.SSHClientConnection:
        """Open a fresh transport for a connection, replacing any existing one."""
        host_lock = await self._get_host_lock(host.name)

        async with host_lock:
            async with self._meta_lock:
                previous = self._transports.pop(host.name, None)
            if previous is not None:
                logger.debug("Replacing existing transport for %s", host.name)
                previous.connection.close()

            await self._evict_lru_if_needed()
            conn = await self._connect(host)

            async with self._meta_lock:
                self._transports[host.name] = PooledConnection(connection=conn)
                self._transports.move_to_end(host.name)

            logger.info(
                "SSH transport established to %s (pool_size=%d/%d)",
                host.name,
                len(self._transports),
                self.max_size,
            )
            return conn

    async def get_connection(self, host: SSHHost) -> asyncssh.SSHClientConnection:
        """Return the live transport for a connection, reopening a stale one."""
        host_lock = await self._get_host_lock(host.name)

        async with host_lock:
            pooled = self._transports.get(host.name)
            if pooled and not pooled.is_stale:
                pooled.touch()
                async with self._meta_lock:
                    self._transports.move_to_end(host.name)
                logger.debug(
                    "Reusing transport to %s (pool_size=%d)",
                    host.name,
                    len(self._transports),
                )
                return pooled.connection

        if pooled is not None:
            logger.info("Transport to %s is stale, reopening", host.name)
        return await self.open(host)

    async def release(self, name: str) -> None:
        """Close and forget the transport of a connection, if any."""
        host_lock = await self._get_host_lock(name)
        async with host_lock:
            async with self._meta_lock:
                pooled = self._transports.pop(name, None)
            if pooled is None:
                logger.debug("No transport to release for %s", name)
                return
            logger.info(
                "Closing transport to %s (pool_size=%d)",
                name,
                len(self._transports),
            )
            pooled.connection.close()

    async def close_all(self) -> None:
        """Close every live transport."""
        async with self._meta_lock:
            names = list(self._transports.keys())

        if names:
            logger.info("Closing all %d transport(s)", len(names))
        for name in names:
            await self.release(name)

    @property
    def pool_size(self) -> int:
        """Return the current number of live transports."""
        return len(self._transports)

    @property
    def active_hosts(self) -> list[str]:
        """Return connection ids with live transports."""
        return list(self._transports.keys())
