"""Core value types shared by the transports and the sync engine."""

import uuid
from dataclasses import dataclass, field
from typing import Any, TYPE_CHECKING

from .errors import ProtocolError

if TYPE_CHECKING:
    from .relays.classify import TransportKind


@dataclass(frozen=True)
class Record:
    """A signed nostr event.

    Records are opaque and already valid; identity is the ``id`` field,
    so two records with the same id are the same record whichever relay
    they came from.
    """

    id: str
    pubkey: str
    created_at: int
    kind: int
    content: str
    tags: tuple[tuple[str, ...], ...] = ()
    sig: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Convert to the NIP-01 event object."""
        return {
            "id": self.id,
            "pubkey": self.pubkey,
            "created_at": self.created_at,
            "kind": self.kind,
            "tags": [list(tag) for tag in self.tags],
            "content": self.content,
            "sig": self.sig,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "Record":
        """Create from a NIP-01 event object.

        Raises:
            ProtocolError: If a required field is missing or mistyped.
        """
        if not isinstance(data, dict):
            raise ProtocolError(f"Event must be an object, got {type(data).__name__}")

        try:
            record = cls(
                id=data["id"],
                pubkey=data["pubkey"],
                created_at=data["created_at"],
                kind=data["kind"],
                content=data.get("content", ""),
                tags=tuple(tuple(tag) for tag in data.get("tags", [])),
                sig=data.get("sig", ""),
            )
        except (KeyError, TypeError) as e:
            raise ProtocolError(f"Malformed event: {e}") from e

        if not isinstance(record.id, str) or not isinstance(record.pubkey, str):
            raise ProtocolError("Event id and pubkey must be strings")
        if isinstance(record.created_at, bool) or not isinstance(record.created_at, int):
            raise ProtocolError(f"Event created_at must be an integer: {record.created_at!r}")
        if isinstance(record.kind, bool) or not isinstance(record.kind, int):
            raise ProtocolError(f"Event kind must be an integer: {record.kind!r}")

        return record


@dataclass(frozen=True)
class Filter:
    """Query filter, fixed for the lifetime of one query."""

    authors: tuple[str, ...] = ()
    kinds: tuple[int, ...] = ()
    since: int | None = None
    until: int | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to the NIP-01 filter object."""
        data: dict[str, Any] = {
            "authors": list(self.authors),
            "kinds": list(self.kinds),
        }
        if self.since is not None:
            data["since"] = self.since
        if self.until is not None:
            data["until"] = self.until
        return data


@dataclass(frozen=True)
class Endpoint:
    """A relay address."""

    address: str

    @property
    def transport_kind(self) -> "TransportKind":
        """Transport used to reach this relay, derived on every access."""
        from .relays.classify import classify

        return classify(self.address)


@dataclass(frozen=True)
class Subscription:
    """Correlation token for one REQ/EOSE exchange."""

    filter: Filter
    endpoint: str
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:16])

    @classmethod
    def open(cls, flt: Filter, endpoint: str) -> "Subscription":
        """Mint a subscription with a fresh id."""
        return cls(filter=flt, endpoint=endpoint)
