"""
Broker Consumer Interface

Defines the contract between the workers and whatever broker binding feeds
them. A binding owns the broker connection; a worker only ever sees a stream
of ``Delivery`` objects and a completion future.

Lifecycle of one binding:

    consumer = factory(index, worker.handle)
    await consumer.start()      # connect, subscribe, launch handler task
    ...
    await consumer.shutdown()   # stop intake, wait for handler to drain
"""

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any, Protocol

from state_service.core.exceptions import DeliveryAckError


class Acknowledger(Protocol):
    """Settles deliveries on the broker side."""

    async def ack(self, delivery_tag: Any) -> None:
        """Acknowledge a single delivery."""
        ...

    async def nack(self, delivery_tag: Any, requeue: bool) -> None:
        """Reject a single delivery."""
        ...


class Delivery:
    """
    One message received from the broker.

    Attributes:
        routing_key: Routing key the message was published with
        body: Raw payload bytes
        delivery_tag: Broker-assigned identifier, opaque to workers

    A delivery is settled exactly once, by ``ack()`` or ``nack()``. Any
    further settle attempt raises DeliveryAckError.
    """

    __slots__ = ("routing_key", "body", "delivery_tag", "_acknowledger", "_settled")

    def __init__(self, routing_key: str, body: bytes, delivery_tag: Any, acknowledger: Acknowledger):
        self.routing_key = routing_key
        self.body = body
        self.delivery_tag = delivery_tag
        self._acknowledger = acknowledger
        self._settled = False

    @property
    def settled(self) -> bool:
        return self._settled

    def _settle(self) -> None:
        if self._settled:
            raise DeliveryAckError(
                "Delivery already acknowledged",
                details={"delivery_tag": self.delivery_tag, "routing_key": self.routing_key},
            )
        self._settled = True

    async def ack(self) -> None:
        """Acknowledge this delivery (single, no requeue)."""
        self._settle()
        await self._acknowledger.ack(self.delivery_tag)

    async def nack(self, requeue: bool = False) -> None:
        """Reject this delivery, optionally asking the broker to requeue it."""
        self._settle()
        await self._acknowledger.nack(self.delivery_tag, requeue)

    def __repr__(self) -> str:
        return (
            f"Delivery(routing_key={self.routing_key!r}, body={len(self.body)}B, "
            f"delivery_tag={self.delivery_tag!r}, settled={self._settled})"
        )


# handler(deliveries, done): consumes until the stream ends, then resolves done
DeliveryHandler = Callable[[AsyncIterator[Delivery], asyncio.Future], Awaitable[None]]


class Consumer(Protocol):
    """
    A broker binding driving one worker.

    start() must raise ConsumerStartError when the binding cannot be
    established. shutdown() stops intake, then blocks until the handler has
    resolved its completion future; it is safe to call more than once.
    """

    tag: str

    async def start(self) -> None:
        ...

    async def shutdown(self) -> None:
        ...


# factory(worker_index, handler) -> unstarted binding
ConsumerFactory = Callable[[int, DeliveryHandler], Consumer]
