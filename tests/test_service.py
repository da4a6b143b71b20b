import asyncio

import pytest

from product_service.messaging.service import MessagingService

from conftest import FakeBrokerConnection, make_settings, wait_for_subscription


@pytest.mark.asyncio
async def test_disabled_by_configuration():
    broker = FakeBrokerConnection()
    service = MessagingService(make_settings(messaging_enabled=False), broker=broker)

    await service.start()

    assert service.status == "disabled"
    assert service.enabled is False
    assert broker.publish_channel is None
    assert await service.publisher.notify_product_deleted(1) is False


@pytest.mark.asyncio
async def test_unreachable_broker_degrades_to_noop_publisher():
    broker = FakeBrokerConnection(fail=True)
    service = MessagingService(make_settings(messaging_enabled=True), broker=broker)

    await service.start()

    assert service.status == "disabled"
    assert service.enabled is False
    assert broker.close_calls == 1
    assert await service.publisher.notify_product_deleted(1) is False


@pytest.mark.asyncio
async def test_start_declares_topology_and_enables_publisher(fake_broker):
    service = MessagingService(
        make_settings(messaging_enabled=True), broker=FakeBrokerConnection(fake_broker)
    )

    await service.start()

    assert service.status == "enabled"
    assert "product_exchange" in fake_broker.exchanges
    assert "product_events" in fake_broker.queues
    assert await service.publisher.notify_product_deleted(5) is True
    assert await service.queue_depth() == 1
    await service.stop()


@pytest.mark.asyncio
async def test_stop_shuts_consumer_then_broker(fake_broker):
    broker = FakeBrokerConnection(fake_broker)
    service = MessagingService(
        make_settings(messaging_enabled=True, consumer_enabled=True), broker=broker
    )
    await service.start()
    await wait_for_subscription(fake_broker.queues["product_events"])

    await service.stop()

    assert service.status == "disabled"
    assert service.enabled is False
    assert fake_broker.queues["product_events"].cancelled == ["product-service"]
    assert broker.consume_channel.is_closed
    assert broker.publish_channel.is_closed


@pytest.mark.asyncio
async def test_stop_twice_is_harmless(fake_broker):
    broker = FakeBrokerConnection(fake_broker)
    service = MessagingService(make_settings(messaging_enabled=True), broker=broker)
    await service.start()

    await service.stop()
    await service.stop()

    assert service.status == "disabled"


@pytest.mark.asyncio
async def test_consumer_crash_marks_service_degraded(fake_broker, monkeypatch):
    service = MessagingService(
        make_settings(messaging_enabled=True, consumer_enabled=True),
        broker=FakeBrokerConnection(fake_broker),
    )

    async def crash(self):
        raise RuntimeError("consumer exploded")

    monkeypatch.setattr("product_service.messaging.consumer.ProductEventConsumer.run", crash)
    await service.start()
    await asyncio.sleep(0)
    await asyncio.sleep(0)

    assert service.status == "degraded"
    assert await service.publisher.notify_product_deleted(1) is True
    await service.stop()


@pytest.mark.asyncio
async def test_consumer_survives_temporary_channel_loss(fake_broker):
    broker = FakeBrokerConnection(fake_broker)
    service = MessagingService(
        make_settings(messaging_enabled=True, consumer_enabled=True), broker=broker
    )
    await service.start()
    queue = fake_broker.queues["product_events"]
    await wait_for_subscription(queue)

    broker.consume_channel.simulate_close(ConnectionError("connection reset"))
    broker.consume_channel.simulate_reopen()
    await asyncio.sleep(0)

    assert service.status == "enabled"
    assert not service._consumer_task.done()
    assert await service.publisher.notify_product_deleted(8) is True
    await queue.deliver_all()
    assert queue.depth == 0

    await service.stop()
    assert queue.cancelled == ["product-service"]


@pytest.mark.asyncio
async def test_final_channel_loss_marks_service_degraded(fake_broker):
    broker = FakeBrokerConnection(fake_broker)
    service = MessagingService(
        make_settings(messaging_enabled=True, consumer_enabled=True), broker=broker
    )
    await service.start()
    await wait_for_subscription(fake_broker.queues["product_events"])

    broker.connection.is_closed = True
    broker.consume_channel.simulate_close(ConnectionError("connection closed"))
    await asyncio.wait_for(service._consumer_task, timeout=1)

    assert service.status == "degraded"
    await service.stop()
