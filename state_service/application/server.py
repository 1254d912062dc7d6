"""
Status Server

Runs the status app with uvicorn inside the service's own event loop.

uvicorn normally installs SIGINT/SIGTERM handlers of its own; here the
lifecycle controller owns termination, so signal capture is disabled and the
server is stopped explicitly after the workers have drained.
"""

import asyncio
import contextlib
import socket

import uvicorn
from fastapi import FastAPI

from state_service.core.exceptions import ConfigurationError
from state_service.core.logging.logger import get_logger

logger = get_logger(__name__)

STARTUP_POLL_SECONDS = 0.05


class StatusServer(uvicorn.Server):
    """
    Embedded uvicorn server.

    Usage:
        server = StatusServer(app, host="0.0.0.0", port=6100)
        await server.start()
        ...
        await server.stop()
    """

    def __init__(self, app: FastAPI, host: str, port: int):
        super().__init__(
            uvicorn.Config(
                app,
                host=host,
                port=port,
                log_config=None,
                access_log=False,
                lifespan="off",
            )
        )
        self._task: asyncio.Task | None = None

    @contextlib.contextmanager
    def capture_signals(self):
        yield

    def install_signal_handlers(self) -> None:
        pass

    async def start(self) -> None:
        """
        Bind the listening socket and serve in a background task.

        Raises:
            ConfigurationError: The address cannot be bound
        """
        host, port = self.config.host, self.config.port
        try:
            sock = socket.create_server((host, port))
        except OSError as e:
            raise ConfigurationError.from_exception(
                e, message=f"Cannot bind status listener on {host}:{port}: {e}", host=host, port=port
            ) from e

        self._task = asyncio.create_task(self.serve(sockets=[sock]), name="status-server")

        while not self.started:
            if self._task.done():
                # serve() returned without starting; surface its error
                await self._task
                break
            await asyncio.sleep(STARTUP_POLL_SECONDS)

        logger.info("Status listener started", host=host, port=port)

    async def stop(self) -> None:
        if self._task is None:
            return
        self.should_exit = True
        await self._task
        self._task = None
        logger.info("Status listener stopped")
