"""
State Store Exceptions

All exceptions related to persisting state in the key-value store (Redis).
"""

from state_service.core.exceptions.base import StateServiceError


class RoutingKeyError(StateServiceError):
    """
    Raised when a routing key does not match the device state pattern.

    The offending key is available in ``details["routing_key"]``.
    No store access happens for such a delivery.
    """
    pass


class StoreError(StateServiceError):
    """Base exception for key-value store errors."""
    pass


class StoreConnectionError(StoreError):
    """
    Raised when unable to reach the store.

    Common causes:
    - Redis server is down
    - Network connectivity issues
    - Incorrect REDIS_URL
    - Authentication failure
    """
    pass


class StoreWriteError(StoreError):
    """
    Raised when the store rejects or fails a write.

    Common causes:
    - Server-side error reply (OOM, READONLY replica)
    - Socket timeout during the command
    """
    pass
