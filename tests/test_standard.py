"""Tests for the nostr-sdk backed standard transport."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from nostr_backup.models import Filter, Record
from nostr_backup.outcomes import PublishStatus
from nostr_backup.relays.standard import StandardTransport

FILTER = Filter(authors=("b" * 64,), kinds=(1,))


def make_record(n: int) -> Record:
    return Record(
        id=f"{n:064x}",
        pubkey="b" * 64,
        created_at=1700000000 + n,
        kind=1,
        content=f"note {n}",
    )


@pytest.fixture
def client():
    """A stand-in for nostr_sdk.Client."""
    fake = MagicMock()
    fake.add_relay = AsyncMock(return_value=True)
    fake.connect = AsyncMock()
    fake.disconnect = AsyncMock()
    fake.fetch_events_from = AsyncMock()
    fake.send_event_to = AsyncMock()
    return fake


@pytest.fixture
def passthrough():
    """Skip the nostr-sdk object conversions."""
    with patch("nostr_backup.relays.standard.to_sdk_filter", side_effect=lambda f: f), \
            patch("nostr_backup.relays.standard.to_sdk_event", side_effect=lambda r: r), \
            patch("nostr_backup.relays.standard.from_sdk_event", side_effect=lambda e: e):
        yield


class TestStandardQuery:
    """Tests for StandardTransport.query."""

    @pytest.mark.asyncio
    async def test_query_returns_records(self, client, passthrough):
        records = [make_record(1), make_record(2)]
        client.fetch_events_from.return_value = MagicMock(to_vec=MagicMock(return_value=records))
        transport = StandardTransport(client=client, timeout=3.0)

        result = await transport.query(["wss://a", "wss://b"], FILTER)

        assert result.records == records
        assert result.failures == {}
        args = client.fetch_events_from.call_args.args
        assert args[0] == ["wss://a", "wss://b"]
        assert args[2].total_seconds() == 3.0

    @pytest.mark.asyncio
    async def test_relays_added_once(self, client, passthrough):
        client.fetch_events_from.return_value = MagicMock(to_vec=MagicMock(return_value=[]))
        transport = StandardTransport(client=client)

        await transport.query(["wss://a"], FILTER)
        await transport.query(["wss://a"], FILTER)

        client.add_relay.assert_awaited_once_with("wss://a")
        client.connect.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_query_failure_is_reported_not_raised(self, client, passthrough):
        """Test a failure for the whole subset is caught and logged."""
        client.fetch_events_from.side_effect = RuntimeError("relay pool exploded")
        transport = StandardTransport(client=client)

        result = await transport.query(["wss://a", "wss://b"], FILTER)

        assert result.records == []
        assert set(result.failures) == {"wss://a", "wss://b"}
        assert "exploded" in result.failures["wss://a"]

    @pytest.mark.asyncio
    async def test_empty_endpoints(self, client):
        result = await StandardTransport(client=client).query([], FILTER)

        assert result.records == []
        client.fetch_events_from.assert_not_called()


class TestStandardPublish:
    """Tests for StandardTransport.publish."""

    @pytest.mark.asyncio
    async def test_maps_report_to_outcomes(self, client, passthrough):
        """Test success, rejection, transport failure and silence."""
        client.send_event_to.return_value = SimpleNamespace(
            success=["wss://ok/"],
            failed={
                "wss://dup/": "duplicate: already have this event",
                "wss://down/": "relay not connected",
            },
        )
        transport = StandardTransport(client=client)
        record = make_record(1)

        outcomes = await transport.publish(
            ["wss://ok", "wss://dup", "wss://down", "wss://silent"], record
        )

        statuses = {o.endpoint: o.status for o in outcomes}
        assert statuses == {
            "wss://ok": PublishStatus.ACKED_SUCCESS,
            "wss://dup": PublishStatus.ACKED_REJECTED,
            "wss://down": PublishStatus.TRANSPORT_ERROR,
            "wss://silent": PublishStatus.TRANSPORT_ERROR,
        }
        assert all(o.record_id == record.id for o in outcomes)

    @pytest.mark.asyncio
    async def test_client_error_fails_every_endpoint(self, client, passthrough):
        client.send_event_to.side_effect = RuntimeError("boom")
        transport = StandardTransport(client=client)

        outcomes = await transport.publish(["wss://a", "wss://b"], make_record(1))

        assert [o.status for o in outcomes] == [PublishStatus.TRANSPORT_ERROR] * 2
        assert outcomes[0].detail == "boom"

    @pytest.mark.asyncio
    async def test_close_disconnects(self, client):
        transport = StandardTransport(client=client)

        await transport.close()

        client.disconnect.assert_awaited_once()
