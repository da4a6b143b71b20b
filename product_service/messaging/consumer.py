"""
Product event consumer.

- Subscribes to the product event queue with manual acknowledgment
- Decodes each message and dispatches it to the handler for its kind
- Acknowledges only after the handler has run to completion (at-least-once)
- Drops poison messages (undecodable bodies) by acknowledging them
- Skips, and acknowledges, envelopes of unknown kinds
- Survives a temporary channel loss on a robust connection
"""

from __future__ import annotations

import asyncio
import enum
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional

from aio_pika.abc import (
    AbstractChannel,
    AbstractConnection,
    AbstractIncomingMessage,
    AbstractQueue,
)

from product_service.core.exceptions import EventDecodeError, UnknownEventKindError
from product_service.core.metrics import CONSUMER_PROCESS_LATENCY_SECONDS, EVENTS_CONSUMED_TOTAL
from product_service.core.tracing import extract_context_from_headers, get_tracer
from product_service.messaging.events import (
    AttributeAdded,
    CategoryCreated,
    Event,
    EventKind,
    ImageAdded,
    ProductCreated,
    ProductDeleted,
    ProductUpdated,
    decode_event,
)

logger = logging.getLogger(__name__)

Handler = Callable[[Any], Awaitable[None]]

CANCEL_TIMEOUT_S = 5.0


class ConsumerState(str, enum.Enum):
    IDLE = "idle"
    PROCESSING = "processing"
    STOPPED = "stopped"


class ProductEventConsumer:
    """Sequential consumer of the product event queue.

    Concurrency model:
    - Prefetch is 1, so the broker hands over one unacknowledged message at
      a time and messages are handled strictly in delivery order.
    - ``stop()`` cancels the subscription; a message already in flight is
      allowed to finish before ``run()`` returns. No timeout is applied to a
      single handler invocation.

    Channel loss:
    - On a robust channel (``connect_robust``) whose connection is still
      alive, a close is temporary: aio-pika reopens the channel and restores
      the subscription, so ``run()`` keeps waiting.
    - Any other close (plain channel, connection closing or closed) is final
      and ends ``run()``.

    Handler failures:
    - A handler exception on a first delivery is negatively acknowledged with
      requeue, so the broker redelivers it once.
    - The same failure on a redelivery (or with requeue disabled) is
      acknowledged and dropped with an error log.
    """

    def __init__(
        self,
        channel: AbstractChannel,
        queue_name: str,
        consumer_tag: str = "product-service",
        requeue_on_error: bool = True,
        connection: Optional[AbstractConnection] = None,
    ) -> None:
        self.channel = channel
        self.queue_name = queue_name
        self.consumer_tag = consumer_tag
        self.requeue_on_error = requeue_on_error
        self.connection = connection
        self.state = ConsumerState.IDLE
        self.channel_lost = False
        self._stop_requested = False
        self._stopping = asyncio.Event()
        self._idle = asyncio.Event()
        self._idle.set()
        self._queue: Optional[AbstractQueue] = None
        self._tracer = get_tracer()
        self.handlers: Dict[str, Handler] = {
            EventKind.PRODUCT_CREATED.value: self.handle_product_created,
            EventKind.PRODUCT_UPDATED.value: self.handle_product_updated,
            EventKind.PRODUCT_DELETED.value: self.handle_product_deleted,
            EventKind.CATEGORY_CREATED.value: self.handle_category_created,
            EventKind.IMAGE_ADDED.value: self.handle_image_added,
            EventKind.ATTRIBUTE_ADDED.value: self.handle_attribute_added,
        }

    @property
    def stop_requested(self) -> bool:
        return self._stop_requested

    async def run(self) -> None:
        """Subscribe and block until ``stop()`` is called or the channel is closed for good."""
        await self.channel.set_qos(prefetch_count=1)
        self.channel.close_callbacks.add(self._on_channel_closed)
        reopen_callbacks = getattr(self.channel, "reopen_callbacks", None)
        if reopen_callbacks is not None:
            reopen_callbacks.add(self._on_channel_reopened)

        self._queue = await self.channel.get_queue(self.queue_name)
        await self._queue.consume(
            self._on_message,
            no_ack=False,
            exclusive=False,
            consumer_tag=self.consumer_tag,
        )
        logger.info(f"Consumer {self.consumer_tag} subscribed to {self.queue_name}")

        try:
            await self._stopping.wait()
        finally:
            await self._shutdown()

    def stop(self) -> None:
        """Signal the run loop to stop (used by signal handlers and the lifespan)."""
        self._stop_requested = True
        self._stopping.set()

    def _is_recoverable(self) -> bool:
        """True when aio-pika will reopen the channel and restore the subscription."""
        if getattr(self.channel, "reopen_callbacks", None) is None or self.connection is None:
            return False
        return not (self.connection.close_called or self.connection.is_closed)

    async def _shutdown(self) -> None:
        # A robust queue drops the consumer from its restore list before the
        # cancel RPC, which waits for the connection and may time out mid-outage
        if self._queue is not None and (not self.channel.is_closed or self._is_recoverable()):
            try:
                await asyncio.wait_for(
                    self._queue.cancel(self.consumer_tag), timeout=CANCEL_TIMEOUT_S
                )
            except Exception as exc:  # noqa: BLE001
                logger.warning(f"Failed to cancel consumer {self.consumer_tag}: {exc}")
        # Let the in-flight handler finish before reporting stopped
        await self._idle.wait()
        self.state = ConsumerState.STOPPED
        logger.info(f"Consumer {self.consumer_tag} stopped")

    def _on_channel_closed(self, *args: Any) -> None:
        exc = args[1] if len(args) > 1 else None
        if self._stopping.is_set():
            return
        if self._is_recoverable():
            self.channel_lost = True
            logger.warning(f"Consumer channel closed, waiting for it to be restored: {exc}")
            return
        logger.error(f"Consumer channel closed: {exc}")
        self._stopping.set()

    def _on_channel_reopened(self, *args: Any) -> None:
        self.channel_lost = False
        logger.info(f"Consumer channel restored; {self.consumer_tag} resumes on {self.queue_name}")

    async def _on_message(self, message: AbstractIncomingMessage) -> None:
        """Process a single delivery: decode, dispatch, acknowledge."""
        self.state = ConsumerState.PROCESSING
        self._idle.clear()
        start_ts = time.perf_counter()
        try:
            await self._process(message)
        finally:
            CONSUMER_PROCESS_LATENCY_SECONDS.observe(time.perf_counter() - start_ts)
            if self.state is ConsumerState.PROCESSING:
                self.state = ConsumerState.IDLE
            self._idle.set()

    async def _process(self, message: AbstractIncomingMessage) -> None:
        try:
            event = decode_event(message.body)
        except UnknownEventKindError as exc:
            logger.info(f"Unknown event kind {exc.event_kind!r} (event {exc.event_id}); skipping")
            EVENTS_CONSUMED_TOTAL.labels(kind=exc.event_kind, status="unknown").inc()
            await message.ack()
            return
        except EventDecodeError as exc:
            logger.warning(f"Dropping undecodable message {message.message_id}: {exc}")
            EVENTS_CONSUMED_TOTAL.labels(kind="invalid", status="poison").inc()
            await message.ack()
            return

        kind = event.event_kind
        ctx = extract_context_from_headers(message.headers)
        try:
            with self._tracer.start_as_current_span("consume_event", context=ctx) as span:
                span.set_attribute("event_id", event.event_id)
                span.set_attribute("event_kind", kind)
                await self.dispatch(event)
        except Exception as exc:  # noqa: BLE001
            await self._handle_failure(message, event, exc)
            return

        await message.ack()
        EVENTS_CONSUMED_TOTAL.labels(kind=kind, status="handled").inc()

    async def dispatch(self, event: Event) -> None:
        """Route a decoded event to the handler registered for its kind."""
        handler = self.handlers.get(event.event_kind, self.handle_unknown)
        await handler(event)

    async def _handle_failure(
        self, message: AbstractIncomingMessage, event: Event, exc: Exception
    ) -> None:
        kind = event.event_kind
        if self.requeue_on_error and not message.redelivered:
            logger.warning(f"Handler for {kind} event {event.event_id} failed, requeueing: {exc}")
            await message.nack(requeue=True)
            EVENTS_CONSUMED_TOTAL.labels(kind=kind, status="requeued").inc()
            return
        logger.error(
            f"Handler for {kind} event {event.event_id} failed again, dropping: {exc}",
            exc_info=exc,
        )
        await message.ack()
        EVENTS_CONSUMED_TOTAL.labels(kind=kind, status="dropped").inc()

    async def handle_product_created(self, event: ProductCreated) -> None:
        logger.info(f"New product created: {event.subject_id} - {event.payload.name}")

    async def handle_product_updated(self, event: ProductUpdated) -> None:
        logger.info(f"Product updated: {event.subject_id}")

    async def handle_product_deleted(self, event: ProductDeleted) -> None:
        logger.info(f"Product deleted: {event.subject_id}")

    async def handle_category_created(self, event: CategoryCreated) -> None:
        logger.info(f"New category created: {event.payload.category_id}")

    async def handle_image_added(self, event: ImageAdded) -> None:
        logger.info(f"Image added to product {event.subject_id}: {event.payload.image_url}")

    async def handle_attribute_added(self, event: AttributeAdded) -> None:
        logger.info(
            f"Attribute added to product {event.subject_id}: "
            f"{event.payload.name}={event.payload.value}"
        )

    async def handle_unknown(self, event: Any) -> None:
        """Fallback for a decodable kind with no registered handler."""
        logger.info(f"No handler for event kind: {getattr(event, 'event_kind', None)}")
