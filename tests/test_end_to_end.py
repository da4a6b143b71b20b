"""Publisher to consumer through the in-memory broker."""

from types import SimpleNamespace

import pytest

from product_service.messaging.service import MessagingService

from conftest import FakeBrokerConnection, make_settings, wait_for_subscription


@pytest.fixture
async def service(fake_broker):
    service = MessagingService(
        make_settings(messaging_enabled=True, consumer_enabled=True),
        broker=FakeBrokerConnection(fake_broker),
    )
    await service.start()
    await wait_for_subscription(fake_broker.queues["product_events"])
    yield service
    await service.stop()


def _record_all(consumer):
    seen = []

    async def record(event):
        seen.append(event)

    for kind in list(consumer.handlers):
        consumer.handlers[kind] = record
    return seen


@pytest.mark.asyncio
async def test_created_product_reaches_consumer(service, fake_broker):
    seen = _record_all(service.consumer)
    widget = SimpleNamespace(
        id=1, name="Widget", description="", price=9.99, stock=5, category_id=1, sku="", image_url=""
    )

    assert await service.publisher.notify_product_created(widget) is True
    await fake_broker.queues["product_events"].deliver_all()

    assert len(seen) == 1
    event = seen[0]
    assert event.event_kind == "product_created"
    assert event.subject_id == 1
    assert event.payload.name == "Widget"
    assert event.payload.price == 9.99
    assert event.payload.stock == 5
    assert event.payload.category_id == 1


@pytest.mark.asyncio
async def test_deleted_product_reaches_consumer(service, fake_broker):
    seen = _record_all(service.consumer)

    await service.publisher.notify_product_deleted(42)
    queue = fake_broker.queues["product_events"]
    await queue.deliver_all()

    assert [(e.event_kind, e.subject_id, e.payload) for e in seen] == [("product_deleted", 42, None)]
    assert queue.depth == 0


@pytest.mark.asyncio
async def test_default_handlers_ack_every_kind(service, fake_broker):
    publisher = service.publisher
    widget = SimpleNamespace(
        id=2, name="Gadget", description="", price=1.0, stock=1, category_id=1, sku="", image_url=""
    )
    await publisher.notify_category_created(1)
    await publisher.notify_product_created(widget)
    await publisher.notify_product_updated(widget)
    await publisher.notify_image_added(2, SimpleNamespace(id=1, image_url="u", is_primary=True))
    await publisher.notify_attribute_added(2, SimpleNamespace(id=1, name="size", value="L"))
    await publisher.notify_product_deleted(2)

    queue = fake_broker.queues["product_events"]
    await queue.deliver_all()

    assert len(queue.settled) == 6
    assert all(m.acked for m in queue.settled)
    assert queue.depth == 0
