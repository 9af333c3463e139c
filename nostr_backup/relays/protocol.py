"""Minimal NIP-01 relay wire protocol.

Only the messages needed to fetch and republish events are supported:

    client -> relay   ["REQ", <sub_id>, <filter>]
                      ["EVENT", <event>]
    relay -> client   ["EVENT", <sub_id>, <event>]
                      ["EOSE", <sub_id>]
                      ["OK", <event_id>, <bool>, <reason>]
                      ["CLOSED", <sub_id>, <message>]
                      ["NOTICE", <message>]
"""

import json
from dataclasses import dataclass
from typing import Any

from ..errors import ProtocolError
from ..models import Record, Subscription


@dataclass(frozen=True)
class RelayMessage:
    """A decoded relay-to-client message."""

    type: str
    subscription_id: str | None = None
    record: Record | None = None
    event_id: str | None = None
    success: bool = False
    reason: str = ""


def encode_req(subscription: Subscription) -> str:
    return json.dumps(["REQ", subscription.id, subscription.filter.to_dict()])


def encode_event(record: Record) -> str:
    return json.dumps(["EVENT", record.to_dict()])


def _expect_str(value: Any, what: str) -> str:
    if not isinstance(value, str):
        raise ProtocolError(f"{what} must be a string, got {value!r}")
    return value


def parse_message(data: str | bytes) -> RelayMessage:
    """Decode one relay message.

    Raises:
        ProtocolError: If the frame is not a well-formed message.
    """
    try:
        message = json.loads(data)
    except (TypeError, ValueError) as e:
        raise ProtocolError(f"Invalid JSON from relay: {e}") from e

    if not isinstance(message, list) or not message:
        raise ProtocolError(f"Relay message must be a non-empty array: {message!r}")

    msg_type = message[0]

    if msg_type == "EVENT":
        if len(message) < 3:
            raise ProtocolError("EVENT message is missing the event")
        return RelayMessage(
            type="EVENT",
            subscription_id=_expect_str(message[1], "Subscription id"),
            record=Record.from_dict(message[2]),
        )

    if msg_type == "EOSE":
        if len(message) < 2:
            raise ProtocolError("EOSE message is missing the subscription id")
        return RelayMessage(
            type="EOSE",
            subscription_id=_expect_str(message[1], "Subscription id"),
        )

    if msg_type == "OK":
        if len(message) < 3:
            raise ProtocolError("OK message is missing fields")
        success = message[2]
        if not isinstance(success, bool):
            raise ProtocolError(f"OK success flag must be a boolean: {success!r}")
        reason = message[3] if len(message) > 3 and isinstance(message[3], str) else ""
        return RelayMessage(
            type="OK",
            event_id=_expect_str(message[1], "Event id"),
            success=success,
            reason=reason,
        )

    if msg_type in ("NOTICE", "CLOSED"):
        text = message[-1] if len(message) > 1 else ""
        return RelayMessage(
            type=msg_type,
            subscription_id=message[1] if msg_type == "CLOSED" and len(message) > 2 else None,
            reason=str(text),
        )

    # AUTH, COUNT and friends are not used here
    return RelayMessage(type=str(msg_type))
