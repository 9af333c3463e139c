"""Reachability check for the local Tor SOCKS proxy."""

import asyncio
import logging

logger = logging.getLogger(__name__)

DEFAULT_PROBE_TIMEOUT = 5.0


async def probe(host: str, port: int, deadline: float = DEFAULT_PROBE_TIMEOUT) -> bool:
    """Check whether something accepts TCP connections at host:port.

    The connection is closed right away. Any error or an expired deadline
    counts as unreachable.

    Args:
        host: Proxy host.
        port: Proxy port.
        deadline: Seconds to wait for the connection.

    Returns:
        True if the connection was established.
    """
    try:
        _, writer = await asyncio.wait_for(
            asyncio.open_connection(host, port), timeout=deadline
        )
    except asyncio.TimeoutError:
        logger.warning(f"Proxy check failed for {host}:{port}: timeout after {deadline}s")
        return False
    except OSError as e:
        logger.warning(f"Proxy check failed for {host}:{port}: {e}")
        return False

    writer.close()
    try:
        await writer.wait_closed()
    except OSError:
        pass

    logger.debug(f"Proxy at {host}:{port} is reachable")
    return True


class ProxyProber:
    """Probes a fixed proxy address.

    Not cached: every call opens a fresh connection.
    """

    def __init__(self, host: str = "127.0.0.1", port: int = 9050, timeout: float = DEFAULT_PROBE_TIMEOUT):
        self.host = host
        self.port = port
        self.timeout = timeout

    async def probe(self) -> bool:
        logger.info(f"Testing proxy connectivity at {self.host}:{self.port}")
        return await probe(self.host, self.port, self.timeout)
