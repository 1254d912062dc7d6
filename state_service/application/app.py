"""
Status Application

FastAPI app exposing /health and /metrics for the running state service.
It has no lifespan of its own: the lifecycle controller creates it after
the workers are up and stops its server after they have drained.
"""

from fastapi import FastAPI

from state_service import __version__
from state_service.application.api.dependencies import ServiceStatus
from state_service.application.api.routes.health import router as health_router
from state_service.application.api.routes.metrics import router as metrics_router


def create_status_app(service: ServiceStatus) -> FastAPI:
    """
    Build the status app bound to ``service``.

    Usage:
        app = create_status_app(service)
        server = StatusServer(app, host="0.0.0.0", port=6100)
    """
    app = FastAPI(
        title="State Service",
        description="Device state relay status",
        version=__version__,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.service = service

    app.include_router(health_router)
    app.include_router(metrics_router)

    return app
