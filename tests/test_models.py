"""Tests for the core value types."""

import pytest

from nostr_backup.errors import ProtocolError
from nostr_backup.models import Endpoint, Filter, Record, Subscription
from nostr_backup.relays.classify import TransportKind


EVENT = {
    "id": "a" * 64,
    "pubkey": "b" * 64,
    "created_at": 1700000000,
    "kind": 1,
    "tags": [["e", "c" * 64], ["p", "d" * 64, "wss://relay.example"]],
    "content": "hello nostr",
    "sig": "f" * 128,
}


class TestRecord:
    """Tests for Record."""

    def test_from_dict(self):
        """Test building a record from an event object."""
        record = Record.from_dict(EVENT)

        assert record.id == "a" * 64
        assert record.created_at == 1700000000
        assert record.kind == 1
        assert record.tags == (("e", "c" * 64), ("p", "d" * 64, "wss://relay.example"))

    def test_to_dict_matches_wire_format(self):
        """Test to_dict gives back the original event object."""
        assert Record.from_dict(EVENT).to_dict() == EVENT

    def test_missing_field(self):
        """Test a missing required field is a protocol error."""
        data = dict(EVENT)
        del data["created_at"]

        with pytest.raises(ProtocolError):
            Record.from_dict(data)

    def test_not_an_object(self):
        """Test non-dict payloads are rejected."""
        with pytest.raises(ProtocolError):
            Record.from_dict(["EVENT"])

    def test_mistyped_kind(self):
        """Test a string kind is rejected."""
        with pytest.raises(ProtocolError):
            Record.from_dict({**EVENT, "kind": "1"})

    def test_identity_is_id(self):
        """Test records are equal when all fields match and hashable."""
        a = Record.from_dict(EVENT)
        b = Record.from_dict(EVENT)

        assert a == b
        assert len({a, b}) == 1


class TestFilter:
    """Tests for Filter."""

    def test_to_dict_omits_open_bounds(self):
        """Test since/until are omitted when not set."""
        flt = Filter(authors=("b" * 64,), kinds=(1, 6))

        assert flt.to_dict() == {"authors": ["b" * 64], "kinds": [1, 6]}

    def test_to_dict_with_window(self):
        """Test since/until are included when set."""
        flt = Filter(authors=("b" * 64,), kinds=(1,), since=100, until=200)

        assert flt.to_dict()["since"] == 100
        assert flt.to_dict()["until"] == 200

    def test_filter_is_immutable(self):
        """Test a filter cannot be changed once built."""
        flt = Filter(kinds=(1,))

        with pytest.raises(AttributeError):
            flt.kinds = (2,)


class TestEndpointAndSubscription:
    """Tests for Endpoint and Subscription."""

    def test_endpoint_transport_kind(self):
        """Test endpoint transport kind is derived from the address."""
        assert Endpoint("wss://nos.lol").transport_kind is TransportKind.STANDARD
        assert Endpoint("ws://abcdef.onion").transport_kind is TransportKind.ANONYMIZED

    def test_subscription_ids_are_fresh(self):
        """Test every subscription gets a new id."""
        flt = Filter(kinds=(1,))
        ids = {Subscription.open(flt, "ws://x.onion").id for _ in range(50)}

        assert len(ids) == 50
