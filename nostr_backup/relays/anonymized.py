"""Anonymized transport for .onion relays.

nostr-sdk cannot route through Tor, so this speaks the relay protocol
directly over a websocket tunnelled through the local SOCKS5 proxy.
Every operation opens its own session and connection; nothing is shared
between calls.
"""

import asyncio
import logging
from typing import Callable

import aiohttp
from aiohttp_socks import ProxyConnectionError, ProxyConnector, ProxyError, ProxyTimeoutError

from ..errors import ConnectivityError, ProtocolError
from ..models import Filter, Record, Subscription
from ..outcomes import OutcomeSlot, PublishOutcome
from .base import QueryResult, RelayTransport
from .protocol import encode_event, encode_req, parse_message

logger = logging.getLogger(__name__)

DEFAULT_PROXY_URL = "socks5://127.0.0.1:9050"
DEFAULT_TIMEOUT = 15.0

TRANSPORT_ERRORS = (
    aiohttp.ClientError,
    ProxyError,
    ProxyConnectionError,
    ProxyTimeoutError,
    OSError,
)

SessionFactory = Callable[[], aiohttp.ClientSession]


class AnonymizedTransport(RelayTransport):
    """Hand-rolled relay client over a SOCKS5-proxied websocket."""

    def __init__(
        self,
        proxy_url: str = DEFAULT_PROXY_URL,
        query_timeout: float = DEFAULT_TIMEOUT,
        publish_timeout: float = DEFAULT_TIMEOUT,
        verify_tls: bool = False,
        session_factory: SessionFactory | None = None,
    ):
        """Initialize the transport.

        Args:
            proxy_url: SOCKS5 proxy URL. Hostnames are resolved by the proxy.
            query_timeout: Seconds allowed for one relay to reach EOSE.
            publish_timeout: Seconds allowed for one relay to send OK.
            verify_tls: Verify relay certificates on wss:// connections.
            session_factory: Builds the HTTP session for each operation.
                Defaults to a session routed through ``proxy_url``.
        """
        self.proxy_url = proxy_url
        self.query_timeout = query_timeout
        self.publish_timeout = publish_timeout
        self.verify_tls = verify_tls
        self._session_factory = session_factory

    def _new_session(self) -> aiohttp.ClientSession:
        if self._session_factory is not None:
            return self._session_factory()
        connector = ProxyConnector.from_url(self.proxy_url, rdns=True)
        return aiohttp.ClientSession(connector=connector)

    async def query(self, endpoints: list[str], flt: Filter) -> QueryResult:
        """Query each relay concurrently; one failing relay never affects another."""
        result = QueryResult()
        if not endpoints:
            return result

        fetched = await asyncio.gather(
            *(self.query_endpoint(url, flt) for url in endpoints),
            return_exceptions=True,
        )

        for url, records in zip(endpoints, fetched):
            if isinstance(records, Exception):
                logger.warning(f"Error querying .onion relay {url}: {records}")
                result.failures[url] = str(records) or type(records).__name__
            else:
                result.records.extend(records)

        return result

    async def query_endpoint(self, url: str, flt: Filter) -> list[Record]:
        """Fetch stored records from one relay.

        Raises:
            ConnectivityError: If the relay cannot be reached, errors out or
                does not finish within ``query_timeout``.
        """
        try:
            return await asyncio.wait_for(self._query_one(url, flt), timeout=self.query_timeout)
        except asyncio.TimeoutError as e:
            raise ConnectivityError(
                f"Timeout querying .onion relay after {self.query_timeout}s"
            ) from e
        except TRANSPORT_ERRORS as e:
            raise ConnectivityError(str(e) or type(e).__name__) from e

    async def _query_one(self, url: str, flt: Filter) -> list[Record]:
        subscription = Subscription.open(flt, url)
        records: list[Record] = []

        async with self._new_session() as session:
            async with session.ws_connect(url, ssl=self.verify_tls) as ws:
                logger.info(f"Connected to .onion relay: {url}")
                await ws.send_str(encode_req(subscription))

                async for msg in ws:
                    if msg.type == aiohttp.WSMsgType.ERROR:
                        raise ConnectivityError(f"Websocket error: {ws.exception()}")
                    if msg.type not in (aiohttp.WSMsgType.TEXT, aiohttp.WSMsgType.BINARY):
                        continue

                    try:
                        message = parse_message(msg.data)
                    except ProtocolError as e:
                        logger.warning(f"Error parsing message from {url}: {e}")
                        continue

                    if message.type == "EVENT" and message.subscription_id == subscription.id:
                        records.append(message.record)
                    elif message.type == "EOSE" and message.subscription_id == subscription.id:
                        break
                    elif message.type == "CLOSED" and message.subscription_id == subscription.id:
                        logger.warning(f"{url} closed the subscription: {message.reason}")
                        break
                    elif message.type == "NOTICE":
                        logger.info(f"Notice from {url}: {message.reason}")
                else:
                    logger.debug(f"{url} closed the connection before EOSE")

        logger.info(f"Retrieved {len(records)} events from {url}")
        return records

    async def publish(self, endpoints: list[str], record: Record) -> list[PublishOutcome]:
        if not endpoints:
            return []
        outcomes = await asyncio.gather(
            *(self.publish_endpoint(url, record) for url in endpoints)
        )
        return list(outcomes)

    async def publish_endpoint(self, url: str, record: Record) -> PublishOutcome:
        """Publish to one relay and return the first terminal outcome.

        An OK, a connection error, the connection closing or the timeout
        resolve the outcome, whichever happens first.
        """
        slot = OutcomeSlot(record.id, url)
        timer = slot.resolve_later(
            self.publish_timeout,
            PublishOutcome.timed_out(record.id, url, "Timeout publishing to .onion relay"),
        )
        task = asyncio.create_task(self._publish_one(url, record, slot))

        try:
            return await slot.wait()
        finally:
            timer.cancel()
            if not task.done():
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)

    async def _publish_one(self, url: str, record: Record, slot: OutcomeSlot) -> None:
        try:
            async with self._new_session() as session:
                async with session.ws_connect(url, ssl=self.verify_tls) as ws:
                    logger.info(f"Publishing {record.id[:8]} to .onion relay: {url}")
                    await ws.send_str(encode_event(record))

                    async for msg in ws:
                        if msg.type == aiohttp.WSMsgType.ERROR:
                            slot.resolve(
                                PublishOutcome.transport_error(
                                    record.id, url, f"Websocket error: {ws.exception()}"
                                )
                            )
                            return
                        if msg.type not in (aiohttp.WSMsgType.TEXT, aiohttp.WSMsgType.BINARY):
                            continue

                        try:
                            message = parse_message(msg.data)
                        except ProtocolError as e:
                            logger.warning(f"Error parsing response from {url}: {e}")
                            continue

                        if message.type == "OK" and message.event_id == record.id:
                            slot.resolve(
                                PublishOutcome.ack(record.id, url, message.success, message.reason)
                            )
                            return
                        if message.type == "NOTICE":
                            logger.info(f"Notice from {url}: {message.reason}")

            slot.resolve(
                PublishOutcome.transport_error(record.id, url, "Connection closed without response")
            )
        except TRANSPORT_ERRORS as e:
            slot.resolve(PublishOutcome.transport_error(record.id, url, str(e) or type(e).__name__))
        except Exception as e:
            logger.exception(f"Unexpected error publishing {record.id[:8]} to {url}")
            slot.resolve(PublishOutcome.transport_error(record.id, url, str(e) or type(e).__name__))
