"""Messaging lifecycle owned by the application lifespan.

``MessagingService.start()`` connects, declares the topology, builds the
publisher and launches the consumer as a supervised task. Any setup failure
leaves the service in degraded mode: the publisher is disabled (all publishes
become no-ops) and the HTTP layer keeps serving.

``MessagingService.stop()`` tears down in order: consumer stopped and awaited,
then channels, then the connection.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from product_service.core.config import Settings
from product_service.core.metrics import QUEUE_DEPTH
from product_service.messaging.consumer import ProductEventConsumer
from product_service.messaging.publisher import EventPublisher
from product_service.messaging.rabbit import BrokerConnection, ensure_topology, get_queue_depth

logger = logging.getLogger(__name__)


class MessagingService:
    """Holds the broker connection, the publisher and the consumer task."""

    def __init__(self, settings: Settings, broker: Optional[BrokerConnection] = None) -> None:
        self.settings = settings
        self.broker = broker or BrokerConnection(settings)
        self.publisher = EventPublisher.disabled()
        self.consumer: Optional[ProductEventConsumer] = None
        self._consumer_task: Optional[asyncio.Task] = None
        self.status = "disabled"

    @property
    def enabled(self) -> bool:
        return self.publisher.enabled

    async def start(self) -> None:
        """Bring messaging up, or fall back to disabled mode. Never raises."""
        if not self.settings.messaging_enabled:
            logger.info("Messaging disabled by configuration")
            return

        try:
            await self.broker.connect()
            exchange, _ = await ensure_topology(
                self.broker.publish_channel,
                self.settings.product_exchange,
                self.settings.product_queue,
            )
        except Exception as exc:  # noqa: BLE001
            logger.error(f"RabbitMQ setup failed, proceeding without messaging: {exc}")
            await self.broker.close()
            self.status = "disabled"
            return

        self.publisher = EventPublisher(exchange)
        self.status = "enabled"
        logger.info(
            f"RabbitMQ integration enabled (exchange={self.settings.product_exchange}, "
            f"queue={self.settings.product_queue})"
        )

        if self.settings.consumer_enabled:
            self.consumer = ProductEventConsumer(
                self.broker.consume_channel,
                self.settings.product_queue,
                consumer_tag=self.settings.consumer_tag,
                requeue_on_error=self.settings.consumer_requeue_on_error,
                connection=self.broker.connection,
            )
            self._consumer_task = asyncio.create_task(
                self._supervise_consumer(), name="product-event-consumer"
            )

    async def _supervise_consumer(self) -> None:
        assert self.consumer is not None
        try:
            await self.consumer.run()
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            # Consumption is lost but publishing keeps working
            logger.error(f"Product event consumer crashed: {exc}", exc_info=exc)
            self.status = "degraded"
            return
        if not self.consumer.stop_requested:
            # The consume channel was closed for good
            logger.error("Product event consumer ended without a stop request")
            self.status = "degraded"

    async def queue_depth(self) -> Optional[int]:
        """Sample the queue depth for health reporting; None when unavailable."""
        if not self.broker.is_connected:
            return None
        try:
            depth = await get_queue_depth(self.broker.publish_channel, self.settings.product_queue)
        except Exception as exc:  # noqa: BLE001
            logger.warning(f"Failed to read queue depth: {exc}")
            return None
        QUEUE_DEPTH.labels(queue=self.settings.product_queue).set(depth)
        return depth

    async def stop(self) -> None:
        """Stop the consumer, wait for it, then close the broker connection."""
        if self.consumer is not None:
            self.consumer.stop()
        if self._consumer_task is not None:
            try:
                await self._consumer_task
            except asyncio.CancelledError:
                pass
            self._consumer_task = None
        self.publisher = EventPublisher.disabled()
        await self.broker.close()
        self.status = "disabled"
