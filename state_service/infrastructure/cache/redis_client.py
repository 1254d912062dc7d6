"""
Redis Client with Connection Pooling

Architecture:
    RedisClient (Public API)
        ├── ConnectionManager (Connection lifecycle)
        ├── OperationExecutor (Command execution with error handling)
        └── HealthMonitor (Health checks for the status listener)

One RedisClient is created at startup and shared by every worker. redis-py
borrows a pooled connection for each command and returns it to the pool on
every exit path, errors included.
"""

import time
from typing import Any

import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool
from redis.exceptions import ConnectionError, RedisError, TimeoutError

from state_service.core.config.settings import RedisSettings, get_settings
from state_service.core.exceptions import (
    ConfigurationError,
    StoreConnectionError,
    StoreWriteError,
)
from state_service.core.logging.logger import get_logger

logger = get_logger(__name__)


# =============================================================================
# LAYER 1: CONNECTION MANAGEMENT
# =============================================================================


class ConnectionManager:
    """
    Manages Redis connection lifecycle and pooling.

    Pool Configuration:
    - Max connections: REDIS_MAX_CONNECTIONS
    - Socket timeouts: REDIS_SOCKET_TIMEOUT / REDIS_SOCKET_CONNECT_TIMEOUT
    - Health check interval: idle connections are pinged before reuse
    - Raw bytes in and out (payloads are stored unmodified)
    """

    def __init__(self, settings: RedisSettings):
        self._settings = settings
        self._pool: ConnectionPool | None = None
        self._client: redis.Redis | None = None
        self._is_connected = False

    def build_pool(self) -> ConnectionPool:
        """
        Create the connection pool from REDIS_URL.

        Raises:
            ConfigurationError: If the URL cannot be parsed
        """
        try:
            return ConnectionPool.from_url(
                self._settings.REDIS_URL,
                max_connections=self._settings.REDIS_MAX_CONNECTIONS,
                socket_timeout=self._settings.REDIS_SOCKET_TIMEOUT,
                socket_connect_timeout=self._settings.REDIS_SOCKET_CONNECT_TIMEOUT,
                health_check_interval=self._settings.REDIS_HEALTH_CHECK_INTERVAL,
                decode_responses=False,
            )
        except ValueError as e:
            raise ConfigurationError.from_exception(
                e, message=f"Invalid REDIS_URL: {e}", redis_url=self._settings.REDIS_URL
            ) from e

    async def connect(self) -> redis.Redis:
        """
        Establish connection to Redis with connection pooling.

        Returns:
            redis.Redis: Connected Redis client

        Raises:
            ConfigurationError: If REDIS_URL is invalid
            StoreConnectionError: If the server cannot be reached or rejects PING
        """
        if self._is_connected and self._client:
            return self._client

        self._pool = self.build_pool()
        self._client = redis.Redis(connection_pool=self._pool)

        try:
            # Verify the server answers before any worker starts
            await self._client.ping()
        except RedisError as e:
            logger.error("Failed to connect to Redis", redis_url=self._settings.REDIS_URL, error=str(e))
            await self.disconnect()
            raise StoreConnectionError.from_exception(
                e,
                message=f"Failed to connect to Redis: {e}",
                redis_url=self._settings.REDIS_URL,
            ) from e

        self._is_connected = True

        logger.info(
            "Redis connected successfully",
            redis_url=self._settings.REDIS_URL,
            max_connections=self._settings.REDIS_MAX_CONNECTIONS,
        )

        return self._client

    async def disconnect(self) -> None:
        """Close Redis client and every pooled connection."""
        if self._client:
            await self._client.aclose()
            self._client = None

        if self._pool:
            await self._pool.disconnect()
            self._pool = None

        if self._is_connected:
            logger.info("Redis disconnected")
        self._is_connected = False

    def get_client(self) -> redis.Redis | None:
        """Get the Redis client instance."""
        return self._client

    def get_pool(self) -> ConnectionPool | None:
        """Get the connection pool instance."""
        return self._pool

    def is_connected(self) -> bool:
        """Check if connected to Redis."""
        return self._is_connected


# =============================================================================
# LAYER 2: OPERATION EXECUTION
# =============================================================================


class OperationExecutor:
    """
    Executes Redis operations with consistent error handling.

    Error Handling Strategy:
    - Connection and timeout failures -> StoreConnectionError
    - Any other RedisError (error replies) -> StoreWriteError
    - The redis-py exception is chained as __cause__
    """

    def __init__(self, redis_client: redis.Redis):
        self._redis = redis_client

    async def set(self, key: str, value: bytes) -> Any:
        """
        Unconditionally overwrite ``key`` with ``value``.

        Plain SET: no NX/XX condition, no expiry.

        Returns:
            The server reply (True for OK)
        """
        try:
            return await self._redis.set(key, value)
        except (ConnectionError, TimeoutError) as e:
            raise StoreConnectionError.from_exception(
                e, message=f"Redis SET failed: {e}", key=key
            ) from e
        except RedisError as e:
            raise StoreWriteError.from_exception(
                e, message=f"Redis SET failed: {e}", key=key
            ) from e


# =============================================================================
# LAYER 3: HEALTH MONITORING
# =============================================================================


class HealthMonitor:
    """
    Reports Redis health and pool utilisation for the status listener.

    Metrics Tracked:
    - Connection status
    - Ping latency
    - Pool size and in-use connections
    """

    def __init__(self, connection_manager: ConnectionManager):
        self._conn_mgr = connection_manager

    async def health_check(self) -> dict[str, Any]:
        health: dict[str, Any] = {
            "status": "healthy",
            "connected": self._conn_mgr.is_connected(),
            "ping_latency_ms": None,
            "pool_max_connections": 0,
            "pool_in_use": 0,
        }

        client = self._conn_mgr.get_client()
        if not client:
            health["status"] = "unhealthy"
            health["error"] = "Client not initialized"
            return health

        try:
            start = time.perf_counter()
            await client.ping()
            health["ping_latency_ms"] = round((time.perf_counter() - start) * 1000, 2)
        except RedisError as e:
            health["status"] = "unhealthy"
            health["error"] = str(e)

        pool = self._conn_mgr.get_pool()
        if pool:
            health["pool_max_connections"] = pool.max_connections
            in_use = getattr(pool, "_in_use_connections", None)
            if in_use is not None:
                health["pool_in_use"] = len(in_use)

        return health


# =============================================================================
# LAYER 4: PUBLIC API
# =============================================================================


class RedisClient:
    """
    Async Redis client with connection pooling and health checks.

    Usage:
        client = RedisClient()
        await client.connect()

        await client.set("state:alice:b6b984190f:on-off", b"ON")

        await client.disconnect()
    """

    def __init__(self, settings: RedisSettings | None = None):
        self._settings = settings or get_settings().redis
        self._conn_mgr = ConnectionManager(self._settings)
        self._executor: OperationExecutor | None = None
        self._health_monitor = HealthMonitor(self._conn_mgr)

    async def connect(self) -> None:
        """
        Connect and verify with PING.

        Raises:
            ConfigurationError: If REDIS_URL is invalid
            StoreConnectionError: If the server cannot be reached
        """
        client = await self._conn_mgr.connect()
        self._executor = OperationExecutor(client)

    async def disconnect(self) -> None:
        """Close the pool."""
        await self._conn_mgr.disconnect()
        self._executor = None

    @property
    def is_connected(self) -> bool:
        return self._conn_mgr.is_connected()

    def _require_executor(self) -> OperationExecutor:
        if self._executor is None:
            raise StoreConnectionError(
                "Redis client is not connected",
                details={"redis_url": self._settings.REDIS_URL},
            )
        return self._executor

    async def set(self, key: str, value: bytes) -> Any:
        """Overwrite a key."""
        return await self._require_executor().set(key, value)

    async def health_check(self) -> dict[str, Any]:
        """Perform health check on Redis connection."""
        return await self._health_monitor.health_check()
