"""
Metrics Route

Prometheus scrapes GET /metrics:

    scrape_configs:
      - job_name: 'state-service'
        static_configs:
          - targets: ['localhost:6100']
"""

from fastapi import APIRouter, Response

from state_service.application.api.dependencies import MetricsDep

router = APIRouter(tags=["Metrics"])


@router.get("/metrics")
async def get_prometheus_metrics(metrics: MetricsDep):
    """Expose metrics in Prometheus text format."""
    return Response(
        content=metrics.get_prometheus_metrics(),
        media_type=metrics.get_content_type(),
    )
