"""Standard transport backed by the nostr-sdk relay pool."""

import json
import logging
from datetime import timedelta
from typing import Any

from nostr_sdk import Client, Event
from nostr_sdk import Filter as SdkFilter

from ..models import Filter, Record
from ..outcomes import PublishOutcome
from .base import QueryResult, RelayTransport

logger = logging.getLogger(__name__)

# NIP-01 machine-readable prefixes a relay uses when it refuses an event
REJECTION_PREFIXES = (
    "duplicate:",
    "pow:",
    "blocked:",
    "rate-limited:",
    "invalid:",
    "restricted:",
    "error:",
)


def to_sdk_filter(flt: Filter) -> SdkFilter:
    return SdkFilter.from_json(json.dumps(flt.to_dict()))


def to_sdk_event(record: Record) -> Event:
    return Event.from_json(json.dumps(record.to_dict()))


def from_sdk_event(event: Event) -> Record:
    return Record.from_dict(json.loads(event.as_json()))


def _normalize(url: str) -> str:
    return url.strip().rstrip("/").lower()


def _is_rejection(message: str) -> bool:
    return message.strip().lower().startswith(REJECTION_PREFIXES)


class StandardTransport(RelayTransport):
    """Queries and publishes through a shared nostr-sdk Client.

    Relays are added to the client the first time they are used and the
    client stays connected for the rest of the run. Nothing is retried.
    """

    def __init__(self, client: Any = None, timeout: float = 10.0):
        """Initialize the transport.

        Args:
            client: nostr_sdk.Client to use. Created lazily if omitted.
            timeout: Seconds to wait for stored events on a query.
        """
        self._client = client
        self.timeout = timeout
        self._relays: set[str] = set()

    async def _client_for(self, endpoints: list[str]) -> Any:
        """Return the client with every endpoint added and connected."""
        if self._client is None:
            self._client = Client()

        added = False
        for url in endpoints:
            if url not in self._relays:
                await self._client.add_relay(url)
                self._relays.add(url)
                added = True

        if added:
            await self._client.connect()

        return self._client

    async def query(self, endpoints: list[str], flt: Filter) -> QueryResult:
        result = QueryResult()
        if not endpoints:
            return result

        try:
            client = await self._client_for(endpoints)
            events = await client.fetch_events_from(
                endpoints, to_sdk_filter(flt), timedelta(seconds=self.timeout)
            )
        except Exception as e:
            logger.warning(f"Error querying standard relays {', '.join(endpoints)}: {e}")
            for url in endpoints:
                result.failures[url] = str(e)
            return result

        for event in events.to_vec():
            try:
                result.records.append(from_sdk_event(event))
            except Exception as e:
                logger.warning(f"Skipping unreadable event from standard relays: {e}")

        logger.info(f"Retrieved {len(result.records)} events from {len(endpoints)} standard relay(s)")
        return result

    async def publish(self, endpoints: list[str], record: Record) -> list[PublishOutcome]:
        if not endpoints:
            return []

        try:
            client = await self._client_for(endpoints)
            output = await client.send_event_to(endpoints, to_sdk_event(record))
        except Exception as e:
            logger.warning(f"Error publishing {record.id[:8]} to standard relays: {e}")
            return [
                PublishOutcome.transport_error(record.id, url, str(e))
                for url in endpoints
            ]

        succeeded = {_normalize(url) for url in output.success}
        failed = {_normalize(url): message for url, message in output.failed.items()}

        outcomes = []
        for url in endpoints:
            key = _normalize(url)
            if key in succeeded:
                outcomes.append(PublishOutcome.ack(record.id, url, True))
            elif key in failed:
                message = failed[key] or ""
                if _is_rejection(message):
                    outcomes.append(PublishOutcome.ack(record.id, url, False, message))
                else:
                    outcomes.append(PublishOutcome.transport_error(record.id, url, message))
            else:
                outcomes.append(
                    PublishOutcome.transport_error(record.id, url, "No response from relay")
                )
        return outcomes

    async def close(self) -> None:
        if self._client is not None:
            try:
                await self._client.disconnect()
            except Exception as e:
                logger.debug(f"Error disconnecting relay pool: {e}")
            self._client = None
            self._relays.clear()
