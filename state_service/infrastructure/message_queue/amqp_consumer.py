"""
AMQP Consumer Binding (pika)

Feeds one worker from the shared state queue.

Architecture:
    AmqpConsumer (Consumer protocol)
        ├── pika thread: BlockingConnection, declares, start_consuming()
        └── event loop: delivery queue -> handler(deliveries, done)

Threading model:
    pika's BlockingConnection is not thread-safe, so every channel call
    happens on the binding's own thread. Deliveries cross into the event
    loop through loop.call_soon_threadsafe; acks cross back through
    connection.add_callback_threadsafe.

Shutdown:
    1. stop_consuming() on the pika thread (no new deliveries)
    2. end-of-stream marker queued behind the in-flight deliveries
    3. wait for the handler to resolve its completion future
    4. flush outstanding acks, close the connection, join the thread
"""

import asyncio
import socket
import threading
from functools import partial
from typing import Any

import pika
from pika.adapters.blocking_connection import BlockingChannel, BlockingConnection
from pika.exceptions import AMQPError

from state_service.core.config.settings import BrokerSettings
from state_service.core.exceptions import (
    ConsumerShutdownError,
    ConsumerStartError,
    DeliveryAckError,
)
from state_service.core.interfaces.consumer import ConsumerFactory, Delivery, DeliveryHandler
from state_service.core.logging.logger import get_logger

logger = get_logger(__name__)

# Exchanges in the amq. namespace are predeclared by the broker and may only
# be declared passively
RESERVED_EXCHANGE_PREFIX = "amq."

DRAIN_POLL_SECONDS = 0.1


def _resolve(future: asyncio.Future, exc: BaseException | None = None) -> None:
    if future.done():
        return
    if exc is not None:
        future.set_exception(exc)
    else:
        future.set_result(None)


class AmqpConsumer:
    """
    One broker connection and channel consuming the state queue.

    Usage:
        consumer = AmqpConsumer(settings.broker, "stateservice-consumer-host-0", worker.handle)
        await consumer.start()
        ...
        await consumer.shutdown()
    """

    def __init__(self, config: BrokerSettings, tag: str, handler: DeliveryHandler):
        self.tag = tag
        self._config = config
        self._handler = handler

        self._loop: asyncio.AbstractEventLoop | None = None
        self._deliveries_queue: asyncio.Queue | None = None
        self._done: asyncio.Future | None = None
        self._handler_task: asyncio.Task | None = None

        self._thread: threading.Thread | None = None
        self._connection: BlockingConnection | None = None
        self._channel: BlockingChannel | None = None
        self._drained = threading.Event()
        self._closed = False

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive() and not self._closed

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        """
        Connect, declare the topology and launch the handler.

        Raises:
            ConsumerStartError: The broker cannot be reached or rejected a
                declaration
        """
        if self._thread is not None:
            return

        self._loop = asyncio.get_running_loop()
        self._deliveries_queue = asyncio.Queue()
        self._done = self._loop.create_future()
        ready = self._loop.create_future()

        self._thread = threading.Thread(target=self._run, args=(ready,), name=self.tag, daemon=True)
        self._thread.start()

        try:
            await ready
        except ConsumerStartError:
            self._closed = True
            await asyncio.to_thread(self._thread.join)
            raise

        self._handler_task = asyncio.create_task(self._run_handler(), name=self.tag)

        logger.info(
            "Consumer started",
            consumer=self.tag,
            queue=self._config.AMQP_QUEUE,
            exchange=self._config.AMQP_EXCHANGE,
            binding_key=self._config.AMQP_BINDING_KEY,
        )

    async def shutdown(self) -> None:
        """
        Stop intake and wait for the handler to drain.

        Safe to call more than once; later calls return immediately.

        Raises:
            ConsumerShutdownError: The handler task failed while draining
        """
        if self._closed or self._thread is None:
            self._closed = True
            return
        self._closed = True

        logger.info("Stopping consumer", consumer=self.tag)

        try:
            self._connection.add_callback_threadsafe(self._stop_consuming)
        except AMQPError as e:
            # Connection already gone; the pika thread has queued end-of-stream
            logger.warning("Consumer connection already closed", consumer=self.tag, error=str(e))

        try:
            await self._done
            if self._handler_task is not None:
                await self._handler_task
        except Exception as e:
            raise ConsumerShutdownError.from_exception(
                e, message=f"Consumer {self.tag} failed while draining: {e}", consumer=self.tag
            ) from e
        finally:
            self._drained.set()
            await asyncio.to_thread(self._thread.join)

        logger.info("Consumer stopped", consumer=self.tag)

    # =========================================================================
    # Acknowledger (called from the event loop)
    # =========================================================================

    async def ack(self, delivery_tag: Any) -> None:
        self._call_on_channel_thread("basic_ack", delivery_tag=delivery_tag)

    async def nack(self, delivery_tag: Any, requeue: bool) -> None:
        self._call_on_channel_thread("basic_nack", delivery_tag=delivery_tag, requeue=requeue)

    def _call_on_channel_thread(self, method: str, **kwargs) -> None:
        connection = self._connection
        if connection is None or connection.is_closed:
            raise DeliveryAckError(
                "Broker connection is closed",
                details={"consumer": self.tag, **kwargs},
            )
        try:
            connection.add_callback_threadsafe(partial(self._settle, method, kwargs))
        except AMQPError as e:
            raise DeliveryAckError.from_exception(
                e, message=f"Cannot schedule {method}: {e}", consumer=self.tag, **kwargs
            ) from e

    # =========================================================================
    # pika thread
    # =========================================================================

    def _run(self, ready: asyncio.Future) -> None:
        try:
            self._connection, self._channel = self._connect()
        except (AMQPError, OSError, ValueError) as e:
            logger.error("Failed to start consumer", consumer=self.tag, error=str(e))
            error = ConsumerStartError.from_exception(
                e,
                message=f"Failed to start consumer {self.tag}: {e}",
                consumer=self.tag,
                rabbit_url=self._config.RABBIT_URL,
            )
            error.__cause__ = e
            self._loop.call_soon_threadsafe(_resolve, ready, error)
            return

        self._loop.call_soon_threadsafe(_resolve, ready)

        try:
            self._channel.start_consuming()
        except AMQPError as e:
            logger.error("Consumer connection lost", consumer=self.tag, error=str(e))
        finally:
            self._loop.call_soon_threadsafe(self._deliveries_queue.put_nowait, None)

        self._drain_and_close()

    def _connect(self) -> tuple[BlockingConnection, BlockingChannel]:
        connection = pika.BlockingConnection(pika.URLParameters(self._config.RABBIT_URL))
        try:
            channel = connection.channel()

            exchange = self._config.AMQP_EXCHANGE
            channel.exchange_declare(
                exchange=exchange,
                exchange_type=self._config.AMQP_EXCHANGE_TYPE,
                passive=exchange.startswith(RESERVED_EXCHANGE_PREFIX),
                durable=self._config.AMQP_DURABLE,
            )
            channel.queue_declare(
                queue=self._config.AMQP_QUEUE,
                durable=self._config.AMQP_DURABLE,
                arguments={"x-message-ttl": self._config.AMQP_MESSAGE_TTL_MS},
            )
            channel.queue_bind(
                queue=self._config.AMQP_QUEUE,
                exchange=exchange,
                routing_key=self._config.AMQP_BINDING_KEY,
            )
            channel.basic_qos(prefetch_count=self._config.AMQP_PREFETCH_COUNT)
            channel.basic_consume(
                queue=self._config.AMQP_QUEUE,
                on_message_callback=self._on_message,
                consumer_tag=self.tag,
            )
        except Exception:
            if connection.is_open:
                connection.close()
            raise

        return connection, channel

    def _on_message(self, channel: BlockingChannel, method: Any, properties: Any, body: bytes) -> None:
        delivery = Delivery(method.routing_key, body, method.delivery_tag, self)
        self._loop.call_soon_threadsafe(self._deliveries_queue.put_nowait, delivery)

    def _stop_consuming(self) -> None:
        try:
            self._channel.stop_consuming(self.tag)
        except AMQPError as e:
            logger.warning("Failed to cancel consumer", consumer=self.tag, error=str(e))

    def _settle(self, method: str, kwargs: dict[str, Any]) -> None:
        try:
            getattr(self._channel, method)(**kwargs)
        except AMQPError as e:
            logger.error("Failed to settle delivery", consumer=self.tag, method=method, error=str(e), **kwargs)

    def _drain_and_close(self) -> None:
        connection = self._connection
        try:
            # Keep servicing ack callbacks until the handler has finished
            while not self._drained.is_set() and connection.is_open:
                connection.process_data_events(time_limit=DRAIN_POLL_SECONDS)
            if connection.is_open:
                connection.process_data_events(time_limit=0)
                connection.close()
        except AMQPError as e:
            logger.warning("Error closing consumer connection", consumer=self.tag, error=str(e))

    # =========================================================================
    # Event loop side
    # =========================================================================

    async def _deliveries(self):
        while True:
            delivery = await self._deliveries_queue.get()
            if delivery is None:
                return
            yield delivery

    async def _run_handler(self) -> None:
        try:
            await self._handler(self._deliveries(), self._done)
        finally:
            _resolve(self._done)


def build_consumer_factory(config: BrokerSettings, tag_prefix: str) -> ConsumerFactory:
    """
    Build the factory the lifecycle controller uses to create one binding
    per worker. Consumer tags are ``{prefix}-{hostname}-{index}``.
    """
    hostname = socket.gethostname()

    def factory(index: int, handler: DeliveryHandler) -> AmqpConsumer:
        return AmqpConsumer(config, f"{tag_prefix}-{hostname}-{index}", handler)

    return factory
