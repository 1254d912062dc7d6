"""
Broker Consumer Exceptions

All exceptions related to the broker consumer bindings (AMQP).
"""

from state_service.core.exceptions.base import StateServiceError


class ConsumerError(StateServiceError):
    """Base exception for broker consumer errors."""
    pass


class ConsumerStartError(ConsumerError):
    """
    Raised when a consumer binding cannot be established.

    Common causes:
    - Broker unreachable or credentials rejected
    - Exchange missing or queue declared with different arguments
    """
    pass


class ConsumerShutdownError(ConsumerError):
    """Raised when a consumer binding fails to shut down cleanly."""
    pass


class DeliveryAckError(ConsumerError):
    """
    Raised when a delivery cannot be acknowledged.

    Raised for a second ack/nack of the same delivery, and when the
    broker connection backing the delivery is already gone.
    """
    pass
