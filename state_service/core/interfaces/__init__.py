from state_service.core.interfaces.consumer import (
    Acknowledger,
    Consumer,
    ConsumerFactory,
    Delivery,
    DeliveryHandler,
)

__all__ = [
    "Acknowledger",
    "Consumer",
    "ConsumerFactory",
    "Delivery",
    "DeliveryHandler",
]
