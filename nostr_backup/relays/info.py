"""NIP-11 relay information documents."""

import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)

NIP11_ACCEPT = "application/nostr+json"


def info_url(relay_url: str) -> str:
    """Map a websocket relay URL to its HTTP information URL."""
    if relay_url.startswith("wss://"):
        return "https://" + relay_url[len("wss://"):]
    if relay_url.startswith("ws://"):
        return "http://" + relay_url[len("ws://"):]
    return relay_url


async def fetch_relay_info(
    relay_url: str,
    timeout: float = 5.0,
    client: httpx.AsyncClient | None = None,
) -> dict[str, Any] | None:
    """Fetch a relay's information document.

    Args:
        relay_url: ws:// or wss:// relay address.
        timeout: Request timeout in seconds.
        client: Optional shared client; a short-lived one is used otherwise.

    Returns:
        The decoded document, or None if the relay did not serve one.
    """
    url = info_url(relay_url)
    headers = {"Accept": NIP11_ACCEPT}

    try:
        if client is not None:
            response = await client.get(url, headers=headers, timeout=timeout)
        else:
            async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as own_client:
                response = await own_client.get(url, headers=headers)
    except httpx.HTTPError as e:
        logger.debug(f"Relay info request to {url} failed: {e}")
        return None

    if response.status_code != 200:
        logger.debug(f"Relay info request to {url} returned HTTP {response.status_code}")
        return None

    try:
        data = response.json()
    except ValueError as e:
        logger.debug(f"Relay info from {url} is not JSON: {e}")
        return None

    return data if isinstance(data, dict) else None
