"""
Topology initializer.

- Declares the durable product exchange (direct)
- Declares the durable product event queue
- Binds the queue to the exchange with the empty routing key

Re-running is safe: declarations with identical parameters are no-ops.

Supports a best-effort mode via ``--best-effort`` or ``INIT_TOPOLOGY_BEST_EFFORT=1``
which will skip errors if RabbitMQ is not reachable (useful in CI without a broker).

Examples:
    python -m scripts.init_topology
    python -m scripts.init_topology --best-effort
"""

import argparse
import asyncio
import os

from product_service.core.config import Settings
from product_service.core.exceptions import MessagingUnavailableError
from product_service.messaging.rabbit import BrokerConnection, ensure_topology


async def main(settings: Settings, best_effort: bool) -> None:
    """Declare the product exchange, queue and binding.

    When ``best_effort`` is True, any connection or declaration error will
    be logged to stdout and the function will return successfully.
    """
    broker = BrokerConnection(settings)
    try:
        await broker.connect()
    except MessagingUnavailableError as exc:
        if best_effort:
            print(f"[init_topology] Skipping: RabbitMQ not reachable ({exc})")
            return
        raise

    try:
        await ensure_topology(
            broker.publish_channel, settings.product_exchange, settings.product_queue
        )
    except Exception as exc:  # noqa: BLE001
        if best_effort:
            print(f"[init_topology] Skipping declarations due to error: {exc}")
            return
        raise
    finally:
        await broker.close()
    print(
        f"[init_topology] Declared {settings.product_exchange} -> {settings.product_queue}"
    )


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Declare RabbitMQ topology for product events")
    parser.add_argument("--best-effort", action="store_true", help="Do not fail if RabbitMQ is unreachable")
    args = parser.parse_args()

    best_effort_env = os.getenv("INIT_TOPOLOGY_BEST_EFFORT", "false").lower() in {"1", "true", "yes"}
    asyncio.run(main(Settings(), bool(args.best_effort or best_effort_env)))
