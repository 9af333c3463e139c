"""Route relay addresses to a transport."""

from enum import Enum
from urllib.parse import urlsplit

from ..models import Endpoint

ANONYMIZED_SUFFIX = ".onion"


class TransportKind(Enum):
    STANDARD = "standard"
    ANONYMIZED = "anonymized"


def _host(address: str) -> str:
    address = address.strip()
    if "://" not in address:
        address = f"//{address}"
    try:
        return (urlsplit(address).hostname or "").lower()
    except ValueError:
        return ""


def classify(address: str) -> TransportKind:
    """Classify a relay address.

    Tor hidden services (hosts ending in ``.onion``) need the anonymized
    transport; everything else goes through the standard pool.
    """
    if _host(address).endswith(ANONYMIZED_SUFFIX):
        return TransportKind.ANONYMIZED
    return TransportKind.STANDARD


def partition(addresses: list[str]) -> tuple[list[str], list[str]]:
    """Split addresses into (standard, anonymized), keeping order."""
    standard: list[str] = []
    anonymized: list[str] = []
    for endpoint in map(Endpoint, addresses):
        if endpoint.transport_kind is TransportKind.ANONYMIZED:
            anonymized.append(endpoint.address)
        else:
            standard.append(endpoint.address)
    return standard, anonymized
