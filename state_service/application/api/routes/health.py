"""
Health Check Routes

GET /health answers "is this instance relaying?":
- 200 while the service is RUNNING
- 503 while starting, draining or stopped

The body carries the lifecycle state, version, hostname, worker count and
the Redis pool health. A Redis outage does not turn the probe red: the
workers keep acknowledging deliveries and recover once the store is back.
"""

from datetime import datetime, timezone

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from state_service.application.api.dependencies import ServiceDep
from state_service.core.config.constants import ServiceState

router = APIRouter(prefix="/health", tags=["Health"])


class HealthResponse(BaseModel):
    """Status listener health payload."""

    status: str
    state: str
    version: str
    hostname: str
    workers: int
    timestamp: str
    components: dict | None = None


@router.get("", response_model=HealthResponse)
async def health_check(service: ServiceDep):
    """
    Health probe for load balancers and orchestrators.

    HTTP Status Codes:
        200: Service is running
        503: Service is not (yet or any longer) consuming
    """
    running = service.state == ServiceState.RUNNING

    body = HealthResponse(
        status="healthy" if running else "unavailable",
        state=service.state.value,
        version=service.version,
        hostname=service.hostname,
        workers=service.worker_count,
        timestamp=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        components={"redis": await service.store_health()},
    )

    return JSONResponse(
        status_code=status.HTTP_200_OK if running else status.HTTP_503_SERVICE_UNAVAILABLE,
        content=body.model_dump(),
    )
