"""Shared fixtures: an in-memory AMQP broker double, a SQLite database and app clients."""

import asyncio
from collections import deque
from types import SimpleNamespace
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from product_service.api.deps import get_db_session
from product_service.core.config import Settings
from product_service.core.database import Base
from product_service.core.exceptions import MessagingUnavailableError
from product_service.core.security import create_access_token
from product_service.main import create_app
from product_service.messaging.service import MessagingService

TEST_SECRET = "test-secret"


# -------------------------
# In-memory broker double
# -------------------------


class FakeIncomingMessage:
    """Delivery handed to a consumer callback; records how it was settled."""

    def __init__(self, queue: "FakeQueue", body: bytes, headers: Dict[str, Any], message_id: Optional[str], redelivered: bool = False):
        self.queue = queue
        self.body = body
        self.headers = headers
        self.message_id = message_id
        self.redelivered = redelivered
        self.acked = False
        self.nacked = False
        self.requeued = False

    async def ack(self) -> None:
        self.acked = True
        self.queue.settle(self)

    async def nack(self, requeue: bool = True) -> None:
        self.nacked = True
        self.requeued = requeue
        self.queue.settle(self)
        if requeue:
            self.queue.ready.append(
                FakeIncomingMessage(self.queue, self.body, self.headers, self.message_id, redelivered=True)
            )


class FakeQueue:
    def __init__(self, name: str, durable: bool, exclusive: bool, auto_delete: bool):
        self.name = name
        self.durable = durable
        self.exclusive = exclusive
        self.auto_delete = auto_delete
        self.bindings: List[Tuple["FakeExchange", str]] = []
        self.ready: Deque[FakeIncomingMessage] = deque()
        self.unacked: List[FakeIncomingMessage] = []
        self.settled: List[FakeIncomingMessage] = []
        self.callback: Optional[Callable] = None
        self.consume_kwargs: Dict[str, Any] = {}
        self.cancelled: List[str] = []

    @property
    def declaration_result(self) -> SimpleNamespace:
        return SimpleNamespace(message_count=len(self.ready))

    @property
    def depth(self) -> int:
        return len(self.ready) + len(self.unacked)

    async def bind(self, exchange: "FakeExchange", routing_key: str = "") -> None:
        if (exchange, routing_key) not in self.bindings:
            self.bindings.append((exchange, routing_key))
            exchange.bound.append((self, routing_key))

    async def consume(self, callback: Callable, no_ack: bool = False, exclusive: bool = False, consumer_tag: Optional[str] = None) -> str:
        self.callback = callback
        self.consume_kwargs = {"no_ack": no_ack, "exclusive": exclusive, "consumer_tag": consumer_tag}
        return consumer_tag or "ctag"

    async def cancel(self, consumer_tag: str) -> None:
        self.cancelled.append(consumer_tag)
        self.callback = None

    def put(self, body: bytes, headers: Optional[Dict[str, Any]] = None, message_id: Optional[str] = None) -> None:
        self.ready.append(FakeIncomingMessage(self, body, dict(headers or {}), message_id))

    def settle(self, message: FakeIncomingMessage) -> None:
        if message in self.unacked:
            self.unacked.remove(message)
        self.settled.append(message)

    async def deliver_all(self) -> None:
        """Hand ready messages to the consumer one at a time, like prefetch=1."""
        while self.ready and self.callback is not None:
            message = self.ready.popleft()
            self.unacked.append(message)
            await self.callback(message)


class FakeExchange:
    def __init__(self, name: str, type_: Any, durable: bool, auto_delete: bool):
        self.name = name
        self.type = type_
        self.durable = durable
        self.auto_delete = auto_delete
        self.bound: List[Tuple[FakeQueue, str]] = []
        self.published: List[Any] = []
        self.fail_with: Optional[Exception] = None

    async def publish(self, message: Any, routing_key: str = "") -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.published.append(message)
        for queue, key in self.bound:
            if key == routing_key:
                queue.put(message.body, message.headers, message.message_id)


class FakeCallbacks:
    def __init__(self):
        self.callbacks: List[Callable] = []

    def add(self, callback: Callable) -> None:
        self.callbacks.append(callback)


class FakeBroker:
    """Broker state shared by every channel opened against it."""

    def __init__(self):
        self.exchanges: Dict[str, FakeExchange] = {}
        self.queues: Dict[str, FakeQueue] = {}
        self.declare_calls = 0


class FakeConnection:
    def __init__(self):
        self.close_called = False
        self.is_closed = False


class FakeChannel:
    """Channel surface used by the code under test.

    ``robust=True`` adds ``reopen_callbacks`` like aio-pika's ``RobustChannel``.
    """

    def __init__(self, broker: FakeBroker, robust: bool = False):
        self.broker = broker
        self.is_closed = False
        self.prefetch_count: Optional[int] = None
        self.close_callbacks = FakeCallbacks()
        if robust:
            self.reopen_callbacks = FakeCallbacks()

    def simulate_close(self, exc: Optional[BaseException] = None) -> None:
        self.is_closed = True
        for callback in list(self.close_callbacks.callbacks):
            callback(self, exc)

    def simulate_reopen(self) -> None:
        self.is_closed = False
        for callback in list(self.reopen_callbacks.callbacks):
            callback(self)

    async def declare_exchange(self, name: str, type_: Any = None, durable: bool = False, auto_delete: bool = False, **_: Any) -> FakeExchange:
        self.broker.declare_calls += 1
        existing = self.broker.exchanges.get(name)
        if existing is not None:
            if (existing.type, existing.durable, existing.auto_delete) != (type_, durable, auto_delete):
                raise RuntimeError(f"PRECONDITION_FAILED - inequivalent arg for exchange {name}")
            return existing
        exchange = FakeExchange(name, type_, durable, auto_delete)
        self.broker.exchanges[name] = exchange
        return exchange

    async def declare_queue(self, name: str, durable: bool = False, exclusive: bool = False, auto_delete: bool = False, passive: bool = False, **_: Any) -> FakeQueue:
        existing = self.broker.queues.get(name)
        if passive:
            if existing is None:
                raise RuntimeError(f"NOT_FOUND - no queue '{name}'")
            return existing
        self.broker.declare_calls += 1
        if existing is not None:
            if (existing.durable, existing.exclusive, existing.auto_delete) != (durable, exclusive, auto_delete):
                raise RuntimeError(f"PRECONDITION_FAILED - inequivalent arg for queue {name}")
            return existing
        queue = FakeQueue(name, durable, exclusive, auto_delete)
        self.broker.queues[name] = queue
        return queue

    async def get_queue(self, name: str) -> FakeQueue:
        return self.broker.queues[name]

    async def set_qos(self, prefetch_count: int = 0) -> None:
        self.prefetch_count = prefetch_count

    async def close(self) -> None:
        self.is_closed = True


class FakeBrokerConnection:
    """Stands in for ``BrokerConnection``: same attributes, no network."""

    def __init__(self, broker: Optional[FakeBroker] = None, fail: bool = False):
        self.broker = broker or FakeBroker()
        self.fail = fail
        self.connection: Optional[FakeConnection] = None
        self.publish_channel: Optional[FakeChannel] = None
        self.consume_channel: Optional[FakeChannel] = None
        self.close_calls = 0

    @property
    def is_connected(self) -> bool:
        return self.publish_channel is not None and not self.publish_channel.is_closed

    async def connect(self) -> "FakeBrokerConnection":
        if self.fail:
            raise MessagingUnavailableError("RabbitMQ unavailable: connection refused")
        self.connection = FakeConnection()
        self.publish_channel = FakeChannel(self.broker, robust=True)
        self.consume_channel = FakeChannel(self.broker, robust=True)
        return self

    async def close(self) -> None:
        self.close_calls += 1
        for channel in (self.consume_channel, self.publish_channel):
            if channel is not None and not channel.is_closed:
                await channel.close()
        if self.connection is not None:
            self.connection.close_called = True
            self.connection.is_closed = True


async def wait_for_subscription(queue: FakeQueue, timeout: float = 1.0) -> None:
    """Yield to the loop until a consumer has subscribed to ``queue``."""

    async def _wait() -> None:
        while queue.callback is None:
            await asyncio.sleep(0)

    await asyncio.wait_for(_wait(), timeout=timeout)


# -------------------------
# Fixtures
# -------------------------


def make_settings(**overrides: Any) -> Settings:
    values = {
        "messaging_enabled": False,
        "consumer_enabled": False,
        "jwt_secret": TEST_SECRET,
        "database_url": "sqlite://",
        "rabbitmq_connect_attempts": 1,
        "rabbitmq_connect_base_delay_ms": 0,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def fake_broker() -> FakeBroker:
    return FakeBroker()


@pytest.fixture
def channel(fake_broker: FakeBroker) -> FakeChannel:
    return FakeChannel(fake_broker)


@pytest.fixture
def db_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(db_engine):
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


def _build_client(db_engine, config: Settings, messaging: MessagingService) -> TestClient:
    app = create_app(config=config, messaging=messaging, db_engine=db_engine)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)

    def override_get_db_session():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db_session] = override_get_db_session
    return TestClient(app)


@pytest.fixture
def client(db_engine, settings):
    """App client with messaging switched off."""
    with _build_client(db_engine, settings, MessagingService(settings)) as test_client:
        yield test_client


@pytest.fixture
def messaging_client(db_engine, fake_broker):
    """App client whose messaging runs against the in-memory broker (no consumer)."""
    config = make_settings(messaging_enabled=True)
    service = MessagingService(config, broker=FakeBrokerConnection(fake_broker))
    with _build_client(db_engine, config, service) as test_client:
        yield test_client


@pytest.fixture
def auth_headers(monkeypatch) -> Dict[str, str]:
    from product_service.core import security

    monkeypatch.setattr(security.settings, "jwt_secret", TEST_SECRET)
    token = create_access_token(1, secret=TEST_SECRET)
    return {"Authorization": f"Bearer {token}"}
