"""Publish outcomes and the channels that carry them.

Every publish to a relay ends in exactly one terminal PublishOutcome.
OutcomeSlot holds the first one and discards the rest; PublishStream
fans a record's per-relay outcomes out to listeners as ok/failed signals.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable

logger = logging.getLogger(__name__)


class PublishStatus(Enum):
    """Terminal state of a publish to one relay."""

    ACKED_SUCCESS = "acked-success"
    ACKED_REJECTED = "acked-rejected"
    TIMED_OUT = "timed-out"
    TRANSPORT_ERROR = "transport-error"


@dataclass(frozen=True)
class PublishOutcome:
    """Result of publishing one record to one relay."""

    record_id: str
    endpoint: str
    status: PublishStatus
    detail: str = ""

    @property
    def succeeded(self) -> bool:
        return self.status is PublishStatus.ACKED_SUCCESS

    @property
    def acknowledged(self) -> bool:
        return self.status in (PublishStatus.ACKED_SUCCESS, PublishStatus.ACKED_REJECTED)

    @classmethod
    def ack(cls, record_id: str, endpoint: str, success: bool, reason: str = "") -> "PublishOutcome":
        status = PublishStatus.ACKED_SUCCESS if success else PublishStatus.ACKED_REJECTED
        if not success and not reason:
            reason = "Relay rejected event"
        return cls(record_id, endpoint, status, reason)

    @classmethod
    def timed_out(cls, record_id: str, endpoint: str, detail: str = "") -> "PublishOutcome":
        return cls(
            record_id,
            endpoint,
            PublishStatus.TIMED_OUT,
            detail or "Timeout - no response from relay",
        )

    @classmethod
    def transport_error(cls, record_id: str, endpoint: str, detail: str) -> "PublishOutcome":
        return cls(record_id, endpoint, PublishStatus.TRANSPORT_ERROR, detail or "Publish failed")

    def to_dict(self) -> dict[str, str]:
        return {
            "record_id": self.record_id,
            "endpoint": self.endpoint,
            "status": self.status.value,
            "detail": self.detail,
        }


class SignalKind(Enum):
    """Uniform signal emitted by a PublishStream."""

    OK = "ok"  # relay answered, success flag says how
    FAILED = "failed"  # no answer: timeout or transport error


@dataclass(frozen=True)
class PublishSignal:
    """An ok/failed signal for one relay, carrying its outcome."""

    kind: SignalKind
    outcome: PublishOutcome

    @property
    def endpoint(self) -> str:
        return self.outcome.endpoint

    @property
    def success(self) -> bool:
        return self.outcome.succeeded

    @property
    def message(self) -> str:
        return self.outcome.detail

    @classmethod
    def from_outcome(cls, outcome: PublishOutcome) -> "PublishSignal":
        kind = SignalKind.OK if outcome.acknowledged else SignalKind.FAILED
        return cls(kind=kind, outcome=outcome)


SignalListener = Callable[[PublishSignal], None]


class OutcomeSlot:
    """Holds the first terminal outcome for one (record, relay) pair.

    Whatever resolves the slot first wins: an ack, a transport error or a
    timer. Later resolutions are discarded and reported as False.
    """

    def __init__(self, record_id: str, endpoint: str):
        self.record_id = record_id
        self.endpoint = endpoint
        self._future: asyncio.Future[PublishOutcome] = (
            asyncio.get_running_loop().create_future()
        )

    def resolve(self, outcome: PublishOutcome) -> bool:
        """Offer an outcome.

        Returns:
            True if this outcome became the terminal one.
        """
        if self._future.done():
            logger.debug(
                f"Discarding late {outcome.status.value} for "
                f"{self.record_id[:8]} on {self.endpoint}"
            )
            return False
        self._future.set_result(outcome)
        return True

    def resolve_later(self, delay: float, outcome: PublishOutcome) -> asyncio.TimerHandle:
        """Schedule ``outcome`` to be offered after ``delay`` seconds."""
        loop = asyncio.get_running_loop()
        return loop.call_later(delay, self.resolve, outcome)

    @property
    def done(self) -> bool:
        return self._future.done()

    @property
    def outcome(self) -> PublishOutcome | None:
        """The terminal outcome, or None while pending."""
        if self._future.done() and not self._future.cancelled():
            return self._future.result()
        return None

    async def wait(self) -> PublishOutcome:
        """Wait for the terminal outcome."""
        return await self._future


class PublishStream:
    """Per-record publish result multiplexer.

    Collects one outcome per requested relay, no matter which transport
    produced it, and notifies listeners with an ok/failed signal for each.
    The stream is complete once every requested relay has reported.
    """

    def __init__(self, record_id: str, endpoints: list[str]):
        self.record_id = record_id
        self.endpoints = list(dict.fromkeys(endpoints))
        self.outcomes: dict[str, PublishOutcome] = {}
        self._signals: list[PublishSignal] = []
        self._listeners: list[SignalListener] = []
        self._complete = asyncio.Event()
        if not self.endpoints:
            self._complete.set()

    def report(self, outcome: PublishOutcome) -> bool:
        """Record a relay's outcome.

        Returns:
            True if accepted, False if the relay was not requested or has
            already reported.
        """
        if outcome.endpoint not in self.endpoints:
            logger.warning(
                f"Ignoring outcome for unrequested relay {outcome.endpoint} "
                f"(record {self.record_id[:8]})"
            )
            return False

        if outcome.endpoint in self.outcomes:
            logger.debug(
                f"Discarding duplicate {outcome.status.value} from "
                f"{outcome.endpoint} for {self.record_id[:8]}"
            )
            return False

        self.outcomes[outcome.endpoint] = outcome
        signal = PublishSignal.from_outcome(outcome)
        self._signals.append(signal)

        for listener in list(self._listeners):
            self._notify(listener, signal)

        if len(self.outcomes) == len(self.endpoints):
            self._complete.set()

        return True

    def subscribe(self, listener: SignalListener) -> None:
        """Register a listener; signals already reported are replayed."""
        self._listeners.append(listener)
        for signal in list(self._signals):
            self._notify(listener, signal)

    def _notify(self, listener: SignalListener, signal: PublishSignal) -> None:
        try:
            listener(signal)
        except Exception:
            logger.exception(f"Publish listener failed for {signal.endpoint}")

    @property
    def complete(self) -> bool:
        return self._complete.is_set()

    @property
    def signals(self) -> list[PublishSignal]:
        return list(self._signals)

    @property
    def pending(self) -> list[str]:
        """Requested relays that have not reported yet."""
        return [e for e in self.endpoints if e not in self.outcomes]

    async def wait(self) -> dict[str, PublishOutcome]:
        """Wait until every requested relay has reported."""
        await self._complete.wait()
        return dict(self.outcomes)
