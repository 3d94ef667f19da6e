"""TCP reachability probes used by the mesh and tunnel handshakes."""

import asyncio


async def check_host_online(hostname: str, port: int, timeout: float = 2.0) -> bool:
    """Check whether a host accepts TCP connections on a port.

    Args:
        hostname: Host to probe.
        port: Port to connect to (usually the SSH port).
        timeout: Connection timeout in seconds.

    Returns:
        True if the connection was accepted, False otherwise.
    """
    try:
        _, writer = await asyncio.wait_for(
            asyncio.open_connection(hostname, port),
            timeout=timeout,
        )
    except (TimeoutError, OSError):
        return False
    writer.close()
    await writer.wait_closed()
    return True
