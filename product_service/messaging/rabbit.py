"""RabbitMQ helpers for connections and topology.

This module wraps ``aio_pika`` to provide:
- ``connect``: a robust connection with optional TLS/mTLS and retry/backoff
- ``ensure_topology``: idempotent declaration of the product exchange, queue
  and binding
- ``BrokerConnection``: the single connection owned by the application, with
  one channel for publishing and one for consuming, and ordered teardown

Example:
    >>> async with BrokerConnection(settings) as broker:
    ...     await ensure_topology(broker.publish_channel, "product_exchange", "product_events")
"""

from __future__ import annotations

import asyncio
import logging
import ssl
from typing import Optional, Tuple
from urllib.parse import urlsplit

import aio_pika
from aio_pika import ExchangeType
from aio_pika.abc import (
    AbstractChannel,
    AbstractExchange,
    AbstractQueue,
    AbstractRobustConnection,
)

from product_service.core.config import Settings
from product_service.core.exceptions import MessagingUnavailableError

logger = logging.getLogger(__name__)

# All events share one binding; there is no routing-key fan-out
DEFAULT_ROUTING_KEY = ""


def _build_ssl_context(settings: Settings) -> Optional[ssl.SSLContext]:
    """Return an ``ssl.SSLContext`` for TLS/mTLS if configured, else ``None``."""
    scheme = urlsplit(settings.rabbitmq_url).scheme.lower()
    wants_tls = scheme == "amqps" or bool(settings.rabbitmq_ssl_ca_path)
    if not wants_tls:
        return None

    context = ssl.create_default_context(cafile=settings.rabbitmq_ssl_ca_path or None)
    if settings.rabbitmq_ssl_cert_path and settings.rabbitmq_ssl_key_path:
        context.load_cert_chain(settings.rabbitmq_ssl_cert_path, settings.rabbitmq_ssl_key_path)
    if not settings.rabbitmq_ssl_verify:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    return context


async def connect(settings: Settings) -> AbstractRobustConnection:
    """Create a robust AMQP connection with bounded retry and exponential backoff.

    Attempts, base delay and max delay come from ``RABBITMQ_CONNECT_*``.
    The last error is re-raised once the attempts are exhausted.
    """
    ssl_context = _build_ssl_context(settings)
    delay_ms = settings.rabbitmq_connect_base_delay_ms
    max_attempts = settings.rabbitmq_connect_attempts

    last_exc: Exception | None = None
    for attempt in range(1, max_attempts + 1):
        try:
            if ssl_context is not None:
                return await aio_pika.connect_robust(
                    settings.rabbitmq_url, ssl=True, ssl_context=ssl_context
                )
            return await aio_pika.connect_robust(settings.rabbitmq_url)
        except Exception as exc:  # noqa: BLE001
            last_exc = exc
            logger.warning(f"RabbitMQ connect attempt {attempt}/{max_attempts} failed: {exc}")
            if attempt == max_attempts:
                break
            await asyncio.sleep(delay_ms / 1000.0)
            delay_ms = min(delay_ms * 2, settings.rabbitmq_connect_max_delay_ms)
    assert last_exc is not None
    raise last_exc


async def ensure_topology(
    channel: AbstractChannel, exchange_name: str, queue_name: str
) -> Tuple[AbstractExchange, AbstractQueue]:
    """Declare the product exchange and queue and bind them.

    - Exchange: direct, durable, not auto-deleted
    - Queue: durable, not exclusive, not auto-deleted
    - Binding: empty routing key, so every event lands on this queue

    Declarations are idempotent in AMQP: re-running with identical
    parameters is a no-op on the broker.
    """
    exchange = await channel.declare_exchange(
        exchange_name, ExchangeType.DIRECT, durable=True, auto_delete=False
    )
    queue = await channel.declare_queue(
        queue_name, durable=True, exclusive=False, auto_delete=False
    )
    await queue.bind(exchange, routing_key=DEFAULT_ROUTING_KEY)
    return exchange, queue


async def get_queue_depth(channel: AbstractChannel, queue_name: str) -> int:
    """Return the number of ready messages via a passive declare."""
    queue = await channel.declare_queue(queue_name, passive=True)
    result = queue.declaration_result
    return int(result.message_count or 0)


class BrokerConnection:
    """Owns the AMQP connection and its publish/consume channel pair.

    Publishing and the long-lived consume run on separate channels so a
    publish never interleaves with consumer flow on the same channel.
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.connection: Optional[AbstractRobustConnection] = None
        self.publish_channel: Optional[AbstractChannel] = None
        self.consume_channel: Optional[AbstractChannel] = None
        self._closed = False

    @property
    def is_connected(self) -> bool:
        return (
            self.connection is not None
            and not self.connection.is_closed
            and self.publish_channel is not None
            and not self.publish_channel.is_closed
        )

    async def connect(self) -> "BrokerConnection":
        """Open the connection and both channels.

        Raises:
            MessagingUnavailableError: if the broker cannot be reached or a
                channel cannot be opened. Anything opened so far is closed.
        """
        try:
            self.connection = await connect(self.settings)
            self.publish_channel = await self.connection.channel()
            self.consume_channel = await self.connection.channel()
        except Exception as exc:  # noqa: BLE001
            await self.close()
            raise MessagingUnavailableError(f"RabbitMQ unavailable: {exc}") from exc
        self._closed = False
        logger.info("RabbitMQ connection established")
        return self

    async def close(self) -> None:
        """Close channels, then the connection. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        for channel in (self.consume_channel, self.publish_channel):
            if channel is None or channel.is_closed:
                continue
            try:
                await channel.close()
            except Exception as exc:  # noqa: BLE001
                logger.debug(f"Ignoring error while closing channel: {exc}")
        if self.connection is not None and not self.connection.is_closed:
            try:
                await self.connection.close()
            except Exception as exc:  # noqa: BLE001
                logger.debug(f"Ignoring error while closing connection: {exc}")
        logger.info("RabbitMQ connection closed")

    async def __aenter__(self) -> "BrokerConnection":
        return await self.connect()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
