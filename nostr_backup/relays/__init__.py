"""Relay transports for nostr-backup.

Clearnet relays are reached through the nostr-sdk pool; .onion relays
through a hand-written protocol client tunnelled over Tor. RelayPool
hides the split.
"""

from .anonymized import AnonymizedTransport
from .base import QueryResult, RelayTransport
from .classify import TransportKind, classify, partition
from .pool import RelayPool
from .probe import ProxyProber, probe
from .standard import StandardTransport

__all__ = [
    "AnonymizedTransport",
    "QueryResult",
    "RelayPool",
    "RelayTransport",
    "ProxyProber",
    "StandardTransport",
    "TransportKind",
    "classify",
    "partition",
    "probe",
]
