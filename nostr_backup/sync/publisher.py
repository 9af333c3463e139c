"""Republishes records to the target relay in batches."""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from ..models import Record
from ..outcomes import OutcomeSlot, PublishOutcome, PublishSignal
from ..relays.pool import RelayPool

logger = logging.getLogger(__name__)

BatchCallback = Callable[[int, int, list[PublishOutcome]], None]


@dataclass
class PublishReport:
    """Totals for one publishing run."""

    published: int = 0
    failed: int = 0
    outcomes: list[PublishOutcome] = field(default_factory=list)
    batches: int = 0

    @property
    def total(self) -> int:
        return self.published + self.failed

    @property
    def success_rate(self) -> float:
        """Percentage of records acknowledged, 0.0 if nothing was sent."""
        if self.total == 0:
            return 0.0
        return self.published / self.total * 100

    def add(self, outcome: PublishOutcome) -> None:
        self.outcomes.append(outcome)
        if outcome.succeeded:
            self.published += 1
        else:
            self.failed += 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "published": self.published,
            "failed": self.failed,
            "total": self.total,
            "batches": self.batches,
            "success_rate": round(self.success_rate, 1),
            "failures": [o.to_dict() for o in self.outcomes if not o.succeeded],
        }


class BatchPublisher:
    """Publishes records to one relay, a batch at a time.

    Records within a batch are published concurrently and each one races
    the relay's answer against ``ack_timeout``. Failures are counted, not
    retried.
    """

    def __init__(
        self,
        pool: RelayPool,
        target: str,
        batch_size: int = 10,
        delay_ms: int = 1000,
        ack_timeout: float = 8.0,
    ):
        if batch_size < 1:
            raise ValueError(f"batch_size must be at least 1, got {batch_size}")
        self.pool = pool
        self.target = target
        self.batch_size = batch_size
        self.delay_ms = delay_ms
        self.ack_timeout = ack_timeout

    def batches(self, records: list[Record]) -> list[list[Record]]:
        return [
            records[i:i + self.batch_size]
            for i in range(0, len(records), self.batch_size)
        ]

    async def publish_record(self, record: Record) -> PublishOutcome:
        """Publish one record and return its terminal outcome.

        The first of the relay's answer or the timeout wins; anything that
        arrives afterwards is dropped.
        """
        slot = OutcomeSlot(record.id, self.target)
        timer = slot.resolve_later(self.ack_timeout, PublishOutcome.timed_out(record.id, self.target))

        def on_signal(signal: PublishSignal) -> None:
            if signal.endpoint == self.target:
                slot.resolve(signal.outcome)

        try:
            stream = self.pool.publish([self.target], record)
            stream.subscribe(on_signal)
        except Exception as e:
            logger.exception(f"Could not start publish of {record.id[:8]}")
            slot.resolve(PublishOutcome.transport_error(record.id, self.target, str(e)))

        try:
            return await slot.wait()
        finally:
            timer.cancel()

    async def publish_batch(self, batch: list[Record]) -> list[PublishOutcome]:
        outcomes = await asyncio.gather(*(self.publish_record(r) for r in batch))
        return list(outcomes)

    async def publish_all(
        self,
        records: list[Record],
        on_batch: BatchCallback | None = None,
    ) -> PublishReport:
        """Publish every record and aggregate the outcomes.

        Args:
            records: Records in publishing order.
            on_batch: Called with (batch_number, batch_count, outcomes)
                after each batch.

        Returns:
            PublishReport where published + failed == len(records).
        """
        report = PublishReport()
        batches = self.batches(records)

        for number, batch in enumerate(batches, start=1):
            logger.info(
                f"Publishing batch {number}/{len(batches)} ({len(batch)} events)"
            )
            outcomes = await self.publish_batch(batch)
            for outcome in outcomes:
                report.add(outcome)
                if outcome.succeeded:
                    logger.debug(f"Published {outcome.record_id[:8]}")
                else:
                    logger.warning(
                        f"Failed {outcome.record_id[:8]}: "
                        f"{outcome.status.value} ({outcome.detail})"
                    )
            report.batches += 1

            if on_batch:
                on_batch(number, len(batches), outcomes)

            if number < len(batches) and self.delay_ms > 0:
                logger.debug(f"Waiting {self.delay_ms}ms before next batch")
                await asyncio.sleep(self.delay_ms / 1000)

        return report
