"""
State Store

Caches the last known state of every device channel in Redis under

    state:{user_id}:{device_id}:{channel_id}

e.g. state:alice:b6b984190f:on-off. Writes are blind overwrites: last write
wins, no TTL, nothing is ever read back here.
"""

from typing import Protocol

from state_service.core.config.constants import STATE_KEY_PREFIX, STATE_KEY_SEPARATOR
from state_service.core.exceptions import RoutingKeyError
from state_service.core.logging.logger import get_logger
from state_service.state.routing import Identity, parse_routing_key

logger = get_logger(__name__)


class KeyValueWriter(Protocol):
    """The single store operation the state store needs."""

    async def set(self, key: str, value: bytes):
        ...


def storage_key(identity: Identity) -> str:
    """Build the Redis key for an identity."""
    return STATE_KEY_SEPARATOR.join(
        (STATE_KEY_PREFIX, identity.user_id, identity.device_id, identity.channel_id)
    )


class StateStore:
    """
    Persists device state payloads keyed by routing identity.

    Args:
        client: Shared pooled client (RedisClient in production)
    """

    def __init__(self, client: KeyValueWriter):
        self._client = client

    async def save(self, body: bytes, routing_key: str) -> str:
        """
        Store ``body`` as the latest state for the routing key's identity.

        Returns:
            The storage key written

        Raises:
            RoutingKeyError: The routing key does not match; nothing is written
            StoreError: The write failed (cause chained)
        """
        identity = parse_routing_key(routing_key)
        if identity is None:
            raise RoutingKeyError(
                f"bad routing key - {routing_key}",
                details={"routing_key": routing_key},
            )

        key = storage_key(identity)
        result = await self._client.set(key, body)

        logger.debug("redis SET", key=key, result=result, size=len(body))

        return key
