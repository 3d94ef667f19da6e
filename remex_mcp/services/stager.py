"""File staging between the local host and a connected remote host.

Copies run over SFTP on the connection's pooled SSH transport. Remote paths
are joined with forward slashes, which both OpenSSH on POSIX hosts and the
Windows OpenSSH SFTP server accept.

Copies are at-least-once and not atomic: when a copy fails part way, the
files already transferred stay where they are.
"""

import logging
import posixpath
import stat
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import TYPE_CHECKING

import asyncssh

from remex_mcp.models import SSHHost, TransferResult
from remex_mcp.services.errors import TransferFailedError, TransportError

if TYPE_CHECKING:
    from remex_mcp.protocols import SSHTransportPool
    from remex_mcp.services.registry import ConnectionRegistry

logger = logging.getLogger(__name__)

_TRANSFER_ERRORS = (asyncssh.Error, OSError)


def _is_directory(attrs: asyncssh.SFTPAttrs) -> bool:
    if attrs.permissions is not None:
        return stat.S_ISDIR(attrs.permissions)
    return attrs.type == asyncssh.FILEXFER_TYPE_DIRECTORY


class FileStager:
    """Copies files and directories to and from connected hosts."""

    def __init__(
        self,
        registry: "ConnectionRegistry",
        pool: "SSHTransportPool",
        default_user: str | None = None,
    ) -> None:
        self.registry = registry
        self.pool = pool
        self.default_user = default_user

    @asynccontextmanager
    async def _sftp(
        self,
        connection_id: str,
        path: str,
    ) -> AsyncIterator[asyncssh.SFTPClient]:
        """Open an SFTP session, mapping transport failures to TransferFailedError."""
        connection = self.registry.require(connection_id)
        if not connection.is_connected:
            raise TransportError(
                f"Connection {connection_id} is not connected "
                f"(status={connection.status.value})",
                host=connection.host,
                path=path,
            )

        host = SSHHost.from_connection(connection, self.default_user)
        try:
            conn = await self.pool.get_connection(host)
            async with conn.start_sftp_client() as sftp:
                yield sftp
        except _TRANSFER_ERRORS as e:
            logger.error("Transfer on %s failed at %s: %s", connection_id, path, e)
            raise TransferFailedError(path, e) from e

    async def ensure_remote_directory(self, connection_id: str, path: str) -> None:
        """Create a remote directory and its parents if missing."""
        async with self._sftp(connection_id, path) as sftp:
            await sftp.makedirs(path, exist_ok=True)
        logger.debug("Ensured remote directory %s on %s", path, connection_id)

    async def copy_file_to_remote(
        self,
        connection_id: str,
        local_path: str | Path,
        remote_path: str,
    ) -> TransferResult:
        """Upload a single file."""
        source = Path(local_path)
        if not source.is_file():
            raise TransferFailedError(
                str(source), FileNotFoundError(f"Source file not found: {source}")
            )

        async with self._sftp(connection_id, remote_path) as sftp:
            await sftp.put(str(source), remote_path, preserve=True)

        size = source.stat().st_size
        logger.info("Uploaded %s -> %s:%s (%d bytes)", source, connection_id, remote_path, size)
        return TransferResult(
            source=str(source),
            destination=remote_path,
            files_copied=1,
            bytes_transferred=size,
        )

    async def copy_directory_to_remote(
        self,
        connection_id: str,
        local_dir: str | Path,
        remote_dir: str,
    ) -> TransferResult:
        """Upload a directory tree, keeping paths relative to ``local_dir``."""
        source = Path(local_dir)
        if not source.is_dir():
            raise TransferFailedError(
                str(source), NotADirectoryError(f"Source directory not found: {source}")
            )

        result = TransferResult(source=str(source), destination=remote_dir)
        async with self._sftp(connection_id, remote_dir) as sftp:
            await sftp.makedirs(remote_dir, exist_ok=True)
            # Sorted so parent directories are created before their contents
            for path in sorted(source.rglob("*")):
                target = posixpath.join(remote_dir, path.relative_to(source).as_posix())
                try:
                    if path.is_dir():
                        await sftp.makedirs(target, exist_ok=True)
                        continue
                    if not path.is_file():
                        continue
                    await sftp.put(str(path), target, preserve=True)
                except _TRANSFER_ERRORS as e:
                    raise TransferFailedError(str(path), e) from e
                result.files_copied += 1
                result.bytes_transferred += path.stat().st_size

        logger.info(
            "Uploaded %s -> %s:%s (%d file(s), %d bytes)",
            source,
            connection_id,
            remote_dir,
            result.files_copied,
            result.bytes_transferred,
        )
        return result

    async def copy_file_from_remote(
        self,
        connection_id: str,
        remote_path: str,
        local_dir: str | Path,
    ) -> TransferResult:
        """Download a single file into ``local_dir``."""
        destination_dir = Path(local_dir)
        destination_dir.mkdir(parents=True, exist_ok=True)
        destination = destination_dir / posixpath.basename(remote_path)

        async with self._sftp(connection_id, remote_path) as sftp:
            await sftp.get(remote_path, str(destination), preserve=True)

        size = destination.stat().st_size if destination.exists() else 0
        return TransferResult(
            source=remote_path,
            destination=str(destination),
            files_copied=1,
            bytes_transferred=size,
        )

    async def copy_directory_from_remote(
        self,
        connection_id: str,
        remote_dir: str,
        local_dir: str | Path,
    ) -> TransferResult:
        """Download the contents of a remote directory tree into ``local_dir``.

        Existing local files with the same relative path are overwritten.
        """
        destination = Path(local_dir)
        destination.mkdir(parents=True, exist_ok=True)
        result = TransferResult(source=remote_dir, destination=str(destination))

        async with self._sftp(connection_id, remote_dir) as sftp:
            await self._download_tree(sftp, remote_dir, destination, result)

        logger.info(
            "Downloaded %s:%s -> %s (%d file(s), %d bytes)",
            connection_id,
            remote_dir,
            destination,
            result.files_copied,
            result.bytes_transferred,
        )
        return result

    async def _download_tree(
        self,
        sftp: asyncssh.SFTPClient,
        remote_dir: str,
        local_dir: Path,
        result: TransferResult,
    ) -> None:
        for entry in await sftp.readdir(remote_dir):
            name = entry.filename
            if name in (".", ".."):
                continue
            remote_path = posixpath.join(remote_dir, name)
            local_path = local_dir / name
            if _is_directory(entry.attrs):
                local_path.mkdir(exist_ok=True)
                await self._download_tree(sftp, remote_path, local_path, result)
            else:
                try:
                    await sftp.get(remote_path, str(local_path), preserve=True)
                except _TRANSFER_ERRORS as e:
                    raise TransferFailedError(remote_path, e) from e
                result.files_copied += 1
                result.bytes_transferred += entry.attrs.size or 0
