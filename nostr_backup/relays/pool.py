"""Unified relay pool over the standard and anonymized transports."""

import asyncio
import logging

from ..models import Filter, Record
from ..outcomes import PublishOutcome, PublishStream
from .anonymized import AnonymizedTransport
from .base import QueryResult, RelayTransport
from .classify import partition
from .probe import ProxyProber
from .standard import StandardTransport

logger = logging.getLogger(__name__)

PROXY_UNAVAILABLE = "Tor proxy not available"


class RelayPool:
    """Routes each relay to the transport that can reach it.

    Clearnet relays go through the standard transport; .onion relays go
    through the anonymized transport, but only while the proxy answers the
    reachability probe. The probe runs on every query and publish.
    """

    def __init__(
        self,
        standard: RelayTransport | None = None,
        anonymized: RelayTransport | None = None,
        prober: ProxyProber | None = None,
    ):
        self.standard = standard or StandardTransport()
        self.anonymized = anonymized or AnonymizedTransport()
        self.prober = prober or ProxyProber()
        self._tasks: set[asyncio.Task] = set()

    async def query(self, endpoints: list[str], flt: Filter) -> QueryResult:
        """Query every relay; standard results come first, then anonymized.

        Unreachable relays are reported in the result, never raised.
        Records are not deduplicated here.
        """
        standard, anonymized = partition(endpoints)
        result = QueryResult()

        if standard:
            result.extend(await self.standard.query(standard, flt))

        if anonymized:
            if await self.prober.probe():
                result.extend(await self.anonymized.query(anonymized, flt))
            else:
                logger.warning(
                    f"{PROXY_UNAVAILABLE} - skipping {len(anonymized)} .onion relay(s)"
                )
                result.skipped.extend(anonymized)

        return result

    def publish(self, endpoints: list[str], record: Record) -> PublishStream:
        """Start publishing ``record`` and return its result stream.

        Must be called with a running event loop. The stream completes once
        every relay in ``endpoints`` has reported an outcome.
        """
        stream = PublishStream(record.id, endpoints)
        standard, anonymized = partition(stream.endpoints)

        if standard:
            self._spawn(self._publish_standard(standard, record, stream))
        if anonymized:
            self._spawn(self._publish_anonymized(anonymized, record, stream))

        return stream

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _publish_standard(self, endpoints: list[str], record: Record, stream: PublishStream) -> None:
        try:
            outcomes = await self.standard.publish(endpoints, record)
        except Exception as e:
            logger.exception(f"Standard publish of {record.id[:8]} failed")
            outcomes = [PublishOutcome.transport_error(record.id, url, str(e)) for url in endpoints]
        self._report_all(stream, endpoints, outcomes)

    async def _publish_anonymized(self, endpoints: list[str], record: Record, stream: PublishStream) -> None:
        try:
            if not await self.prober.probe():
                outcomes = [
                    PublishOutcome.transport_error(record.id, url, PROXY_UNAVAILABLE)
                    for url in endpoints
                ]
            else:
                outcomes = await self.anonymized.publish(endpoints, record)
        except Exception as e:
            logger.exception(f"Anonymized publish of {record.id[:8]} failed")
            outcomes = [PublishOutcome.transport_error(record.id, url, str(e)) for url in endpoints]
        self._report_all(stream, endpoints, outcomes)

    def _report_all(self, stream: PublishStream, endpoints: list[str], outcomes: list[PublishOutcome]) -> None:
        for outcome in outcomes:
            stream.report(outcome)
        # A transport that skipped a relay still owes the stream an outcome
        reported = {outcome.endpoint for outcome in outcomes}
        for url in endpoints:
            if url not in reported:
                stream.report(
                    PublishOutcome.transport_error(stream.record_id, url, "No outcome reported")
                )

    @property
    def in_flight(self) -> int:
        """Publish tasks that have not finished yet."""
        return len(self._tasks)

    async def close(self, grace: float = 2.0) -> None:
        """Let in-flight publishes finish for up to ``grace`` seconds, then shut down."""
        if self._tasks:
            logger.info(f"Waiting up to {grace}s for {len(self._tasks)} pending publish(es)")
            _, pending = await asyncio.wait(set(self._tasks), timeout=grace)
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

        await self.standard.close()
        await self.anonymized.close()
