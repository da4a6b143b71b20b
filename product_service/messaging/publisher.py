"""Publishing of product events to the product exchange.

Publication is best-effort and fire-and-forget relative to the HTTP request
that triggered it: route handlers schedule the ``notify_*`` call as a
background task after the storage commit, so the client response never waits
on, or reflects, the publish outcome.

Known limitation: storage commit and publish are not atomic. If the process
dies between the two, the event is lost. There is no outbox and no retry.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from aio_pika import DeliveryMode, Message
from aio_pika.abc import AbstractExchange

from product_service.core.metrics import EVENTS_PUBLISHED_TOTAL
from product_service.core.tracing import get_tracer, inject_headers
from product_service.messaging import events
from product_service.messaging.events import EventEnvelope, encode_event
from product_service.messaging.rabbit import DEFAULT_ROUTING_KEY

logger = logging.getLogger(__name__)


class EventPublisher:
    """Sends product events to one exchange.

    Built once at startup and shared by every request. Constructed without an
    exchange, it runs disabled: every publish is a no-op and the first
    dropped event is logged once.

    Concurrent callers are serialized on an ``asyncio.Lock`` around the
    channel write so frames from different publishes never interleave.
    """

    def __init__(
        self,
        exchange: Optional[AbstractExchange] = None,
        routing_key: str = DEFAULT_ROUTING_KEY,
    ) -> None:
        self._exchange = exchange
        self._routing_key = routing_key
        self._lock = asyncio.Lock()
        self._warned_disabled = False
        self._tracer = get_tracer()

    @classmethod
    def disabled(cls) -> "EventPublisher":
        return cls(exchange=None)

    @property
    def enabled(self) -> bool:
        return self._exchange is not None

    def _build_message(self, event: EventEnvelope) -> Message:
        headers = inject_headers({"event_kind": event.event_kind})
        return Message(
            body=encode_event(event),
            content_type="application/json",
            content_encoding="utf-8",
            delivery_mode=DeliveryMode.PERSISTENT,
            message_id=event.event_id,
            type=event.event_kind,
            timestamp=event.timestamp,
            headers=headers,
        )

    async def publish(self, event: EventEnvelope) -> bool:
        """Send one event. Never raises.

        Returns:
            bool: True once the local channel write completed, False when the
            publisher is disabled or the send failed (the event is lost).
        """
        kind = event.event_kind
        if self._exchange is None:
            if not self._warned_disabled:
                logger.warning(f"Messaging disabled; dropping {kind} event and all further events")
                self._warned_disabled = True
            EVENTS_PUBLISHED_TOTAL.labels(kind=kind, result="disabled").inc()
            return False

        with self._tracer.start_as_current_span("publish_event") as span:
            span.set_attribute("event_id", event.event_id)
            span.set_attribute("event_kind", kind)
            try:
                message = self._build_message(event)
                async with self._lock:
                    await self._exchange.publish(message, routing_key=self._routing_key)
            except Exception as exc:  # noqa: BLE001
                logger.error(f"Failed to publish {kind} event {event.event_id}: {exc}")
                span.record_exception(exc)
                EVENTS_PUBLISHED_TOTAL.labels(kind=kind, result="error").inc()
                return False

        logger.debug(f"Published {kind} event {event.event_id} for subject {event.subject_id}")
        EVENTS_PUBLISHED_TOTAL.labels(kind=kind, result="ok").inc()
        return True

    async def notify_product_created(self, product: Any) -> bool:
        return await self._notify(events.product_created, product)

    async def notify_product_updated(self, product: Any) -> bool:
        return await self._notify(events.product_updated, product)

    async def notify_product_deleted(self, product_id: int) -> bool:
        return await self._notify(events.product_deleted, product_id)

    async def notify_category_created(self, category_id: int) -> bool:
        return await self._notify(events.category_created, category_id)

    async def notify_image_added(self, product_id: int, image: Any) -> bool:
        return await self._notify(events.image_added, product_id, image)

    async def notify_attribute_added(self, product_id: int, attribute: Any) -> bool:
        return await self._notify(events.attribute_added, product_id, attribute)

    async def _notify(self, build, *args: Any) -> bool:
        # Building can fail on a malformed snapshot; that is a publish failure too
        try:
            event = build(*args)
        except Exception as exc:  # noqa: BLE001
            logger.error(f"Failed to build {build.__name__} event: {exc}")
            EVENTS_PUBLISHED_TOTAL.labels(kind=build.__name__, result="error").inc()
            return False
        return await self.publish(event)
