"""
Unit Tests for the AMQP Consumer Binding

pika's BlockingConnection is replaced by an in-process fake that runs
callbacks on the binding's own thread, the way pika does.
"""

import asyncio
import queue
import threading
from types import SimpleNamespace
from unittest.mock import patch

import pytest
from pika.exceptions import AMQPConnectionError, ChannelClosedByBroker, ConnectionWrongStateError

from state_service.core.config.settings import BrokerSettings
from state_service.core.exceptions import ConsumerStartError
from state_service.infrastructure.message_queue import amqp_consumer as amqp_module
from state_service.infrastructure.message_queue.amqp_consumer import AmqpConsumer, build_consumer_factory
from state_service.state.store import StateStore
from state_service.state.worker import StateWorker
from tests.test_fixtures import VALID_ROUTING_KEY, InMemoryStateStore


class FakeChannel:
    def __init__(self, connection):
        self.connection = connection
        self.calls = []
        self.acked = []
        self.nacked = []
        self.fail_on = None
        self._on_message = None
        self._stopped = False
        self._next_tag = 0

    def _record(self, name, **kwargs):
        if self.fail_on == name:
            raise ChannelClosedByBroker(406, "PRECONDITION_FAILED - inequivalent arg 'x-message-ttl'")
        self.calls.append((name, kwargs))

    def exchange_declare(self, **kwargs):
        self._record("exchange_declare", **kwargs)

    def queue_declare(self, **kwargs):
        self._record("queue_declare", **kwargs)

    def queue_bind(self, **kwargs):
        self._record("queue_bind", **kwargs)

    def basic_qos(self, **kwargs):
        self._record("basic_qos", **kwargs)

    def basic_consume(self, queue, on_message_callback, consumer_tag):
        self._record("basic_consume", queue=queue, consumer_tag=consumer_tag)
        self._on_message = on_message_callback

    def basic_ack(self, delivery_tag):
        self.acked.append(delivery_tag)

    def basic_nack(self, delivery_tag, requeue):
        self.nacked.append((delivery_tag, requeue))

    def start_consuming(self):
        while not self._stopped:
            self.connection.run_callbacks(timeout=0.01)

    def stop_consuming(self, consumer_tag=None):
        self._stopped = True

    def deliver(self, routing_key, body):
        self._next_tag += 1
        method = SimpleNamespace(routing_key=routing_key, delivery_tag=self._next_tag)
        self._on_message(self, method, None, body)


class FakeConnection:
    def __init__(self):
        self.channel_obj = FakeChannel(self)
        self.is_open = True
        self._callbacks = queue.Queue()

    @property
    def is_closed(self):
        return not self.is_open

    def channel(self):
        return self.channel_obj

    def add_callback_threadsafe(self, callback):
        if not self.is_open:
            raise ConnectionWrongStateError("BlockingConnection.add_callback_threadsafe() called on closed connection")
        self._callbacks.put(callback)

    def run_callbacks(self, timeout):
        try:
            callback = self._callbacks.get(timeout=timeout) if timeout else self._callbacks.get_nowait()
        except queue.Empty:
            return
        callback()
        while True:
            try:
                self._callbacks.get_nowait()()
            except queue.Empty:
                return

    def process_data_events(self, time_limit=0):
        self.run_callbacks(timeout=time_limit)

    def close(self):
        self.is_open = False

    def publish(self, routing_key, body):
        """Simulate the broker pushing a message to the consumer."""
        self.add_callback_threadsafe(lambda: self.channel_obj.deliver(routing_key, body))


@pytest.fixture
def broker_settings():
    return BrokerSettings(RABBIT_URL="amqp://guest:guest@mq:5672/")


@pytest.fixture
def fake_connection():
    connection = FakeConnection()
    with patch.object(amqp_module.pika, "BlockingConnection", return_value=connection):
        yield connection


async def wait_until(predicate, timeout=2.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.01)


def make_worker(client=None, metrics=None):
    return StateWorker(StateStore(client or InMemoryStateStore()), metrics, name="worker-0")


@pytest.mark.unit
class TestAmqpConsumerStart:
    """Test connection and topology declaration."""

    @pytest.mark.asyncio
    async def test_declares_topology(self, broker_settings, fake_connection, metrics):
        consumer = AmqpConsumer(broker_settings, "stateservice-consumer-host-0", make_worker(metrics=metrics).handle)

        await consumer.start()
        await consumer.shutdown()

        calls = dict(fake_connection.channel_obj.calls)
        assert calls["exchange_declare"]["exchange"] == "amq.topic"
        assert calls["exchange_declare"]["passive"] is True
        assert calls["queue_declare"] == {
            "queue": "stateservice",
            "durable": False,
            "arguments": {"x-message-ttl": 600000},
        }
        assert calls["queue_bind"] == {
            "queue": "stateservice",
            "exchange": "amq.topic",
            "routing_key": "*.$cloud.device.*.channel.*.event.state",
        }
        assert calls["basic_qos"] == {"prefetch_count": 10}
        assert calls["basic_consume"] == {"queue": "stateservice", "consumer_tag": "stateservice-consumer-host-0"}

    @pytest.mark.asyncio
    async def test_own_exchange_declared_actively(self, fake_connection, metrics):
        settings = BrokerSettings(AMQP_EXCHANGE="devices", AMQP_DURABLE=True)
        consumer = AmqpConsumer(settings, "tag-0", make_worker(metrics=metrics).handle)

        await consumer.start()
        await consumer.shutdown()

        calls = dict(fake_connection.channel_obj.calls)
        assert calls["exchange_declare"]["passive"] is False
        assert calls["exchange_declare"]["durable"] is True
        assert calls["queue_declare"]["durable"] is True

    @pytest.mark.asyncio
    async def test_unreachable_broker(self, broker_settings, metrics):
        with patch.object(amqp_module.pika, "BlockingConnection", side_effect=AMQPConnectionError("refused")):
            consumer = AmqpConsumer(broker_settings, "tag-0", make_worker(metrics=metrics).handle)

            with pytest.raises(ConsumerStartError) as exc_info:
                await consumer.start()

        assert isinstance(exc_info.value.__cause__, AMQPConnectionError)
        assert exc_info.value.details["consumer"] == "tag-0"
        assert not consumer.is_running

    @pytest.mark.asyncio
    async def test_rejected_declaration_closes_connection(self, broker_settings, fake_connection, metrics):
        fake_connection.channel_obj.fail_on = "queue_declare"
        consumer = AmqpConsumer(broker_settings, "tag-0", make_worker(metrics=metrics).handle)

        with pytest.raises(ConsumerStartError):
            await consumer.start()

        assert fake_connection.is_closed
        # shutdown after a failed start is a no-op
        await consumer.shutdown()


@pytest.mark.unit
class TestAmqpConsumerDeliveries:
    """Test the delivery bridge and shutdown drain."""

    @pytest.mark.asyncio
    async def test_deliveries_saved_and_acked(self, broker_settings, fake_connection, metrics):
        client = InMemoryStateStore()
        consumer = AmqpConsumer(broker_settings, "tag-0", make_worker(client, metrics).handle)
        await consumer.start()

        fake_connection.publish(VALID_ROUTING_KEY, b"ON")
        fake_connection.publish("bad.key.format", b"??")
        await wait_until(lambda: len(fake_connection.channel_obj.acked) == 2)

        await consumer.shutdown()

        assert fake_connection.channel_obj.acked == [1, 2]
        assert client.data == {"state:alice:b6b984190f:on-off": b"ON"}
        assert metrics.processed_count() == 2

    @pytest.mark.asyncio
    async def test_shutdown_drains_in_flight(self, broker_settings, fake_connection, metrics):
        client = InMemoryStateStore(delay=0.05)
        consumer = AmqpConsumer(broker_settings, "tag-0", make_worker(client, metrics).handle)
        await consumer.start()

        fake_connection.publish(VALID_ROUTING_KEY, b"ON")
        await wait_until(lambda: len(client.calls) == 1)

        await consumer.shutdown()

        assert fake_connection.channel_obj.acked == [1]
        assert fake_connection.is_closed
        assert not consumer.is_running

    @pytest.mark.asyncio
    async def test_shutdown_joins_thread(self, broker_settings, fake_connection, metrics):
        consumer = AmqpConsumer(broker_settings, "tag-0", make_worker(metrics=metrics).handle)
        await consumer.start()
        thread = consumer._thread

        await consumer.shutdown()

        assert not thread.is_alive()

    @pytest.mark.asyncio
    async def test_shutdown_is_idempotent(self, broker_settings, fake_connection, metrics):
        consumer = AmqpConsumer(broker_settings, "tag-0", make_worker(metrics=metrics).handle)
        await consumer.start()

        await consumer.shutdown()
        await consumer.shutdown()

        assert fake_connection.is_closed

    @pytest.mark.asyncio
    async def test_handler_receives_completion_future(self, broker_settings, fake_connection):
        seen = {}

        async def handler(deliveries, done):
            async for delivery in deliveries:
                await delivery.ack()
            seen["thread"] = threading.current_thread().name
            done.set_result(None)

        consumer = AmqpConsumer(broker_settings, "tag-0", handler)
        await consumer.start()
        await consumer.shutdown()

        # handler ran on the event loop thread, not on the pika thread
        assert seen["thread"] != "tag-0"


@pytest.mark.unit
class TestConsumerFactory:
    """Test build_consumer_factory."""

    def test_tags_include_host_and_index(self, broker_settings):
        with patch.object(amqp_module.socket, "gethostname", return_value="relay-7"):
            factory = build_consumer_factory(broker_settings, "stateservice-consumer")

        consumer = factory(3, lambda deliveries, done: None)

        assert isinstance(consumer, AmqpConsumer)
        assert consumer.tag == "stateservice-consumer-relay-7-3"
