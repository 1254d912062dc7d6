"""
FastAPI Dependencies

The status app reads everything from the lifecycle controller stored on
``app.state.service`` when the app is created.
"""

from typing import Annotated, Any, Protocol

from fastapi import Depends, Request

from state_service.core.config.constants import ServiceState
from state_service.infrastructure.monitoring.metrics_collector import MetricsCollector


class ServiceStatus(Protocol):
    """What the status routes need to know about the running service."""

    state: ServiceState
    hostname: str
    version: str
    worker_count: int
    metrics: MetricsCollector

    async def store_health(self) -> dict[str, Any]:
        ...


def get_service(request: Request) -> ServiceStatus:
    """Retrieve the lifecycle controller from application state."""
    return request.app.state.service


def get_metrics(request: Request) -> MetricsCollector:
    """Retrieve the shared metrics collector."""
    return request.app.state.service.metrics


ServiceDep = Annotated[ServiceStatus, Depends(get_service)]
MetricsDep = Annotated[MetricsCollector, Depends(get_metrics)]
