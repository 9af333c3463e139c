"""Tests for the unified relay pool."""

import asyncio
import logging
from unittest.mock import AsyncMock, MagicMock

import pytest

from nostr_backup.models import Filter, Record
from nostr_backup.outcomes import PublishOutcome, PublishStatus, SignalKind
from nostr_backup.relays.base import QueryResult
from nostr_backup.relays.pool import PROXY_UNAVAILABLE, RelayPool

FILTER = Filter(authors=("b" * 64,), kinds=(1,))
CLEAR = "wss://relay.example"
ONION = "ws://abcdefghijklmnop.onion"


def make_record(n: int) -> Record:
    return Record(
        id=f"{n:064x}",
        pubkey="b" * 64,
        created_at=1700000000 + n,
        kind=1,
        content=f"note {n}",
    )


def fake_transport(records=None, failures=None):
    """A transport whose query returns ``records`` and whose publish acks everything."""
    transport = MagicMock()
    transport.query = AsyncMock(
        return_value=QueryResult(records=list(records or []), failures=dict(failures or {}))
    )

    async def publish(endpoints, record):
        return [PublishOutcome.ack(record.id, url, True) for url in endpoints]

    transport.publish = AsyncMock(side_effect=publish)
    transport.close = AsyncMock()
    return transport


def fake_prober(reachable: bool):
    prober = MagicMock()
    prober.probe = AsyncMock(return_value=reachable)
    return prober


class TestPoolQuery:
    """Tests for RelayPool.query."""

    @pytest.mark.asyncio
    async def test_routes_and_orders_results(self):
        """Test standard results come before anonymized ones."""
        standard = fake_transport([make_record(1)])
        anonymized = fake_transport([make_record(2)])
        pool = RelayPool(standard, anonymized, fake_prober(True))

        result = await pool.query([ONION, CLEAR], FILTER)

        assert [r.id for r in result.records] == [f"{1:064x}", f"{2:064x}"]
        standard.query.assert_awaited_once_with([CLEAR], FILTER)
        anonymized.query.assert_awaited_once_with([ONION], FILTER)

    @pytest.mark.asyncio
    async def test_proxy_down_skips_onion(self, caplog):
        """Test .onion relays are skipped with a warning when the proxy is down."""
        standard = fake_transport([make_record(1)])
        anonymized = fake_transport([make_record(2)])
        pool = RelayPool(standard, anonymized, fake_prober(False))

        with caplog.at_level(logging.WARNING):
            result = await pool.query([CLEAR, ONION], FILTER)

        assert [r.id for r in result.records] == [f"{1:064x}"]
        assert result.skipped == [ONION]
        anonymized.query.assert_not_called()
        assert PROXY_UNAVAILABLE in caplog.text

    @pytest.mark.asyncio
    async def test_no_probe_without_onion_relays(self):
        prober = fake_prober(True)
        pool = RelayPool(fake_transport(), fake_transport(), prober)

        await pool.query([CLEAR], FILTER)

        prober.probe.assert_not_called()

    @pytest.mark.asyncio
    async def test_failures_carried_through(self):
        standard = fake_transport(failures={CLEAR: "refused"})
        pool = RelayPool(standard, fake_transport(), fake_prober(True))

        result = await pool.query([CLEAR], FILTER)

        assert result.failures == {CLEAR: "refused"}
        assert not result.succeeded(CLEAR)


class TestPoolPublish:
    """Tests for RelayPool.publish."""

    @pytest.mark.asyncio
    async def test_stream_covers_both_transports(self):
        pool = RelayPool(fake_transport(), fake_transport(), fake_prober(True))
        record = make_record(1)

        stream = pool.publish([CLEAR, ONION], record)
        outcomes = await asyncio.wait_for(stream.wait(), timeout=1)

        assert set(outcomes) == {CLEAR, ONION}
        assert all(o.succeeded for o in outcomes.values())

    @pytest.mark.asyncio
    async def test_proxy_down_fails_onion(self):
        """Test an unreachable proxy produces failed signals, not an exception."""
        anonymized = fake_transport()
        pool = RelayPool(fake_transport(), anonymized, fake_prober(False))

        stream = pool.publish([CLEAR, ONION], make_record(1))
        await asyncio.wait_for(stream.wait(), timeout=1)

        signals = {s.endpoint: s for s in stream.signals}
        assert signals[CLEAR].kind is SignalKind.OK
        assert signals[ONION].kind is SignalKind.FAILED
        assert signals[ONION].message == PROXY_UNAVAILABLE
        anonymized.publish.assert_not_called()

    @pytest.mark.asyncio
    async def test_transport_exception_becomes_failed(self):
        standard = fake_transport()
        standard.publish.side_effect = RuntimeError("boom")
        pool = RelayPool(standard, fake_transport(), fake_prober(True))

        stream = pool.publish([CLEAR], make_record(1))
        outcomes = await asyncio.wait_for(stream.wait(), timeout=1)

        assert outcomes[CLEAR].status is PublishStatus.TRANSPORT_ERROR
        assert outcomes[CLEAR].detail == "boom"

    @pytest.mark.asyncio
    async def test_missing_outcome_is_filled(self):
        """Test a relay the transport did not answer for still completes the stream."""
        standard = fake_transport()
        standard.publish = AsyncMock(return_value=[])
        pool = RelayPool(standard, fake_transport(), fake_prober(True))

        stream = pool.publish([CLEAR], make_record(1))
        outcomes = await asyncio.wait_for(stream.wait(), timeout=1)

        assert outcomes[CLEAR].status is PublishStatus.TRANSPORT_ERROR


class TestPoolClose:
    """Tests for RelayPool.close."""

    @pytest.mark.asyncio
    async def test_close_closes_transports(self):
        standard, anonymized = fake_transport(), fake_transport()
        pool = RelayPool(standard, anonymized, fake_prober(True))

        await pool.close()

        standard.close.assert_awaited_once()
        anonymized.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_close_cancels_after_grace(self):
        """Test publishes still running after the grace period are cancelled."""
        standard = fake_transport()

        async def hang(endpoints, record):
            await asyncio.sleep(10)
            return []

        standard.publish.side_effect = hang
        pool = RelayPool(standard, fake_transport(), fake_prober(True))

        pool.publish([CLEAR], make_record(1))
        await asyncio.sleep(0)
        assert pool.in_flight == 1

        await pool.close(grace=0.05)

        assert pool.in_flight == 0
