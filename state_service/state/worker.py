"""
State Worker - Delivery Dispatcher

Drains one broker delivery stream into the state store.

Architecture:
    StateWorker (Public API)
        └── DeliveryProcessor (save + unconditional ack + metrics)

Flow (per delivery, strictly in receipt order):
    1. Count the delivery
    2. Start the latency timer
    3. Save the payload under the routing key's identity
    4. Log a save failure and carry on
    5. Acknowledge, whatever the save outcome
    6. Observe elapsed time

A failed save is never redelivered: the broker sees every delivery consumed
exactly once. When the stream ends the worker resolves its completion
future and returns; it is not restarted.
"""

import asyncio
import time
from collections.abc import AsyncIterator
from typing import Protocol

from state_service.core.exceptions import ConsumerError, RoutingKeyError, StoreError
from state_service.core.interfaces.consumer import Delivery
from state_service.core.logging.logger import (
    bind_worker_context,
    clear_worker_context,
    get_logger,
)

logger = get_logger(__name__)


# =============================================================================
# PROTOCOLS & INTERFACES
# =============================================================================

class Store(Protocol):
    """Persists a payload under the identity encoded in a routing key."""

    async def save(self, body: bytes, routing_key: str) -> str:
        ...


class ProcessingMetrics(Protocol):
    """Counter and latency histogram shared by all workers."""

    def record_processed(self) -> None:
        ...

    def observe_processing(self, duration_seconds: float) -> None:
        ...


# =============================================================================
# LAYER 1: DELIVERY PROCESSING
# =============================================================================

class DeliveryProcessor:
    """
    Handles a single delivery.

    Responsibility:
        Save, then ack, then time. Never raises for a per-message failure:
        routing key, store and ack errors are logged and contained here.
    """

    def __init__(self, store: Store, metrics: ProcessingMetrics):
        self._store = store
        self._metrics = metrics

    async def process(self, delivery: Delivery) -> None:
        self._metrics.record_processed()
        start = time.perf_counter()

        logger.debug(
            "Processing delivery",
            routing_key=delivery.routing_key,
            delivery_tag=delivery.delivery_tag,
            size=len(delivery.body),
        )

        try:
            await self._store.save(delivery.body, delivery.routing_key)
        except RoutingKeyError as e:
            logger.error(
                "Dropping delivery with unparseable routing key",
                routing_key=delivery.routing_key,
                error=e.message,
            )
        except StoreError as e:
            logger.error(
                "Failed to save state",
                routing_key=delivery.routing_key,
                error=e.message,
                error_type=type(e).__name__,
                cause=repr(e.__cause__) if e.__cause__ else None,
            )
        finally:
            await self._acknowledge(delivery)
            self._metrics.observe_processing(time.perf_counter() - start)

    async def _acknowledge(self, delivery: Delivery) -> None:
        try:
            await delivery.ack()
        except ConsumerError as e:
            logger.error(
                "Failed to acknowledge delivery",
                routing_key=delivery.routing_key,
                delivery_tag=delivery.delivery_tag,
                error=e.message,
            )


# =============================================================================
# LAYER 2: PUBLIC API
# =============================================================================

class StateWorker:
    """
    One worker of the pool. ``handle`` is the DeliveryHandler a consumer
    binding drives.

    Usage:
        worker = StateWorker(store, metrics, name="worker-0")
        consumer = factory(0, worker.handle)
        await consumer.start()

    Workers share only the store's connection pool and the metrics
    collector; they hold no other mutable state.
    """

    def __init__(self, store: Store, metrics: ProcessingMetrics, name: str):
        self.name = name
        self._processor = DeliveryProcessor(store, metrics)
        self._processed = 0

    @property
    def processed(self) -> int:
        """Deliveries handled by this worker so far."""
        return self._processed

    async def handle(self, deliveries: AsyncIterator[Delivery], done: asyncio.Future) -> None:
        """
        Consume ``deliveries`` until the stream ends, then resolve ``done``.

        ``done`` is resolved exactly once, also when the loop exits through
        an unexpected error (which is then re-raised to the binding).
        """
        bind_worker_context(self.name)
        logger.info("Worker started")

        try:
            async for delivery in deliveries:
                await self._processor.process(delivery)
                self._processed += 1
        finally:
            logger.info("Deliveries channel closed", processed=self._processed)
            if not done.done():
                done.set_result(None)
            clear_worker_context()
