"""
Lifecycle Controller

    STARTING -> RUNNING -> DRAINING -> STOPPED

STARTING: connect Redis, build the state store and one worker plus one
    consumer binding per configured worker. Any failure here is fatal: the
    bindings already started are shut down, Redis is closed, the error
    propagates.
RUNNING: wait for SIGINT/SIGTERM (or request_shutdown()).
DRAINING: shut bindings down one at a time in worker order. Each shutdown
    returns only after that worker acknowledged its in-flight deliveries.
    A failing shutdown is logged and the next binding is still shut down.
    Repeated signals are logged and ignored until the drain completes.
STOPPED: every shutdown attempted, Redis pool closed.

No hard-kill timeout is imposed here; drain time is bounded by the
bindings.
"""

import asyncio
import signal
import socket
from typing import Any

from state_service import __version__
from state_service.application.app import create_status_app
from state_service.application.server import StatusServer
from state_service.core.config.constants import ServiceState
from state_service.core.config.settings import Settings
from state_service.core.interfaces.consumer import Consumer, ConsumerFactory
from state_service.core.logging.logger import get_logger
from state_service.infrastructure.cache.redis_client import RedisClient
from state_service.infrastructure.message_queue.amqp_consumer import build_consumer_factory
from state_service.infrastructure.monitoring.metrics_collector import MetricsCollector
from state_service.state.store import StateStore
from state_service.state.worker import StateWorker

logger = get_logger(__name__)

TERMINATION_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class StateService:
    """
    Owns the worker pool and every shared resource.

    Usage:
        service = StateService(settings)
        await service.run()        # returns after an orderly shutdown

    Collaborators are injectable for tests:
        service = StateService(
            settings,
            redis_client=fake_redis,
            metrics=MetricsCollector(registry=CollectorRegistry()),
            consumer_factory=fake_factory,
        )
    """

    def __init__(
        self,
        settings: Settings,
        redis_client: RedisClient | None = None,
        metrics: MetricsCollector | None = None,
        consumer_factory: ConsumerFactory | None = None,
    ):
        self._settings = settings
        self._redis = redis_client or RedisClient(settings.redis)
        self.metrics = metrics or MetricsCollector(
            app_info={"version": __version__, "name": settings.app.APP_NAME}
        )
        self._consumer_factory = consumer_factory or build_consumer_factory(
            settings.broker, settings.workers.CONSUMER_TAG_PREFIX
        )

        self.state = ServiceState.STARTING
        self.hostname = socket.gethostname()
        self.version = settings.app.APP_VERSION

        self._workers: list[StateWorker] = []
        self._consumers: list[Consumer] = []
        self._shutdown_event = asyncio.Event()
        self._installed_signals: list[signal.Signals] = []

    @property
    def worker_count(self) -> int:
        return len(self._workers)

    @property
    def workers(self) -> list[StateWorker]:
        return list(self._workers)

    @property
    def consumers(self) -> list[Consumer]:
        return list(self._consumers)

    def _set_state(self, state: ServiceState) -> None:
        if state != self.state:
            logger.info("Service state changed", previous=self.state.value, state=state.value)
        self.state = state

    async def store_health(self) -> dict[str, Any]:
        return await self._redis.health_check()

    # =========================================================================
    # STARTING
    # =========================================================================

    async def start(self) -> None:
        """
        Bring every worker up, or none.

        Raises:
            ConfigurationError: REDIS_URL cannot be parsed
            StoreConnectionError: Redis cannot be reached
            ConsumerStartError: A broker binding cannot be established
        """
        self._set_state(ServiceState.STARTING)

        worker_count = self._settings.workers.WORKERS
        logger.info(
            "Starting state service",
            version=self.version,
            hostname=self.hostname,
            workers=worker_count,
            redis_url=self._settings.redis.REDIS_URL,
            rabbit_url=self._settings.broker.RABBIT_URL,
        )

        try:
            await self._redis.connect()
            store = StateStore(self._redis)

            for index in range(worker_count):
                worker = StateWorker(store, self.metrics, name=f"worker-{index}")
                consumer = self._consumer_factory(index, worker.handle)
                await consumer.start()

                self._workers.append(worker)
                self._consumers.append(consumer)
        except BaseException as e:
            # CancelledError too
            logger.error(
                "Startup failed, releasing resources",
                error=str(e),
                error_type=type(e).__name__,
                started_consumers=len(self._consumers),
            )
            await self._shutdown_consumers()
            await self._close_store()
            self._set_state(ServiceState.STOPPED)
            raise

        self._set_state(ServiceState.RUNNING)
        logger.info("State service running", workers=self.worker_count)

    # =========================================================================
    # RUNNING
    # =========================================================================

    def request_shutdown(self, sig: signal.Signals | None = None) -> None:
        """Ask the controller to start draining. Safe to call repeatedly."""
        if self._shutdown_event.is_set():
            if sig is not None:
                logger.warning("Already draining, ignoring signal", signal=sig.name, state=self.state.value)
            return
        if sig is not None:
            logger.info("Received termination signal", signal=sig.name)
        self._shutdown_event.set()

    def install_signal_handlers(self) -> None:
        """Route SIGINT/SIGTERM to request_shutdown() until removed."""
        loop = asyncio.get_running_loop()
        for sig in TERMINATION_SIGNALS:
            try:
                loop.add_signal_handler(sig, self.request_shutdown, sig)
                self._installed_signals.append(sig)
            except (NotImplementedError, RuntimeError):
                logger.warning("Cannot install signal handler", signal=sig.name)

    def remove_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        while self._installed_signals:
            loop.remove_signal_handler(self._installed_signals.pop())

    async def wait_for_termination(self) -> None:
        """Block until SIGINT/SIGTERM or request_shutdown()."""
        await self._shutdown_event.wait()

    # =========================================================================
    # DRAINING / STOPPED
    # =========================================================================

    async def shutdown(self) -> None:
        """Drain every worker in order, then close the store."""
        if self.state in (ServiceState.DRAINING, ServiceState.STOPPED):
            return

        self._set_state(ServiceState.DRAINING)
        await self._shutdown_consumers()
        await self._close_store()
        self._set_state(ServiceState.STOPPED)

        logger.info("State service stopped", processed=self.metrics.processed_count())

    async def _shutdown_consumers(self) -> None:
        for index, consumer in enumerate(self._consumers):
            logger.info("Shutting down consumer", index=index, consumer=consumer.tag)
            try:
                await consumer.shutdown()
            except Exception as e:
                logger.error(
                    "Error shutting down consumer",
                    index=index,
                    consumer=consumer.tag,
                    error=str(e),
                    error_type=type(e).__name__,
                    exc_info=True,
                )

    async def _close_store(self) -> None:
        try:
            await self._redis.disconnect()
        except Exception as e:
            logger.error("Error closing Redis pool", error=str(e), error_type=type(e).__name__)

    # =========================================================================
    # Entry point
    # =========================================================================

    async def run(self) -> None:
        """
        Start, serve status, wait for termination, drain.

        Startup errors propagate. A status listener that cannot bind
        propagates too, after the workers have been drained.

        SIGINT/SIGTERM stay routed to request_shutdown() from startup until
        the last binding has drained, so a repeated signal cannot cut the
        drain short.
        """
        self.install_signal_handlers()
        try:
            await self.start()

            server: StatusServer | None = None
            try:
                port = self._settings.app.PORT
                if port:
                    server = StatusServer(create_status_app(self), host=self._settings.app.STATUS_HOST, port=port)
                    await server.start()

                await self.wait_for_termination()
            finally:
                await self.shutdown()
                if server is not None:
                    await server.stop()
        finally:
            self.remove_signal_handlers()
