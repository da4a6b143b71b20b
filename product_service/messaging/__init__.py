"""Event distribution for catalog mutations.

Modules:
- ``events``: event envelope, payload shapes and the JSON wire codec
- ``rabbit``: connection lifecycle and topology declaration
- ``publisher``: fire-and-forget publishing and the ``notify_*`` triggers
- ``consumer``: the acknowledging consumer loop
- ``service``: startup/shutdown wiring used by the application lifespan
"""

from product_service.messaging.consumer import ConsumerState, ProductEventConsumer
from product_service.messaging.events import EventKind, decode_event, encode_event
from product_service.messaging.publisher import EventPublisher
from product_service.messaging.rabbit import BrokerConnection, ensure_topology
from product_service.messaging.service import MessagingService

__all__ = [
    "BrokerConnection",
    "ConsumerState",
    "EventKind",
    "EventPublisher",
    "MessagingService",
    "ProductEventConsumer",
    "decode_event",
    "encode_event",
    "ensure_topology",
]
