"""
Standalone product event consumer.

Runs the same consumer loop the API process embeds, without the HTTP layer.
Useful when the API runs with ``CONSUMER_ENABLED=false`` and consumption is
scaled separately.

Examples:
    python -m scripts.worker
"""

import asyncio
import signal

from product_service.core.config import Settings
from product_service.core.logging import get_logger, setup_logging
from product_service.core.tracing import start_tracing
from product_service.messaging.consumer import ProductEventConsumer
from product_service.messaging.rabbit import BrokerConnection, ensure_topology

logger = get_logger("scripts.worker")


async def main() -> None:
    """Entrypoint for running a worker as a script."""
    settings = Settings()
    setup_logging(settings.log_level)
    if settings.tracing_enabled:
        start_tracing("product-service-worker")

    async with BrokerConnection(settings) as broker:
        await ensure_topology(
            broker.consume_channel, settings.product_exchange, settings.product_queue
        )
        consumer = ProductEventConsumer(
            broker.consume_channel,
            settings.product_queue,
            consumer_tag=f"{settings.consumer_tag}-worker",
            requeue_on_error=settings.consumer_requeue_on_error,
            connection=broker.connection,
        )

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, consumer.stop)

        logger.info(f"Worker consuming {settings.product_queue}")
        await consumer.run()


if __name__ == "__main__":
    asyncio.run(main())
