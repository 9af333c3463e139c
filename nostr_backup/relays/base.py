"""Capability set shared by the relay transports."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from ..models import Filter, Record
from ..outcomes import PublishOutcome


@dataclass
class QueryResult:
    """Records fetched from a set of relays plus what went wrong."""

    records: list[Record] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)  # relay -> error
    skipped: list[str] = field(default_factory=list)  # never attempted

    def succeeded(self, endpoint: str) -> bool:
        """True if the relay was queried without error."""
        return endpoint not in self.failures and endpoint not in self.skipped

    def extend(self, other: "QueryResult") -> None:
        self.records.extend(other.records)
        self.failures.update(other.failures)
        self.skipped.extend(other.skipped)


class RelayTransport(ABC):
    """Something that can query and publish to a list of relays.

    Implementations catch their own transport errors: ``query`` reports
    them in ``QueryResult.failures`` and ``publish`` returns one terminal
    outcome per relay.
    """

    @abstractmethod
    async def query(self, endpoints: list[str], flt: Filter) -> QueryResult:
        """Fetch records matching ``flt`` from ``endpoints``."""
        pass

    @abstractmethod
    async def publish(self, endpoints: list[str], record: Record) -> list[PublishOutcome]:
        """Publish ``record`` to ``endpoints``."""
        pass

    async def close(self) -> None:
        """Release any connections held by the transport."""
        return None
