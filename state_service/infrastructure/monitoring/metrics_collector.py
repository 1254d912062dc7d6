#!/usr/bin/env python3
"""
Metrics Collector with Prometheus Integration

Two series describe the relay:
- processed message count (every delivery a worker picks up)
- per-message processing latency histogram (save + ack)

Architectural Decision: prometheus-client for industry-standard metrics
- Scraped from the status listener's /metrics endpoint
- Histogram buckets for latency percentiles

One collector is created at startup and handed to every worker. Counter and
histogram updates are thread-safe inside prometheus_client.
"""

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    CollectorRegistry,
    Counter,
    Histogram,
    Info,
    generate_latest,
)

from state_service.core.config.constants import (
    METRIC_MESSAGES_PROCESSED,
    METRIC_MESSAGES_PROCESSED_TIME,
    PROCESSING_TIME_BUCKETS,
)
from state_service.core.logging.logger import get_logger

logger = get_logger(__name__)


class MetricsCollector:
    """
    Owns the relay's Prometheus metrics.

    Usage:
        metrics = MetricsCollector()

        metrics.record_processed()
        metrics.observe_processing(0.0021)

        output = metrics.get_prometheus_metrics()

    Pass a fresh CollectorRegistry to get isolated series (tests); the
    default registry also exports process and GC metrics.
    """

    def __init__(self, registry: CollectorRegistry | None = None, app_info: dict[str, str] | None = None):
        self._registry = registry if registry is not None else REGISTRY

        self._processed = Counter(
            METRIC_MESSAGES_PROCESSED,
            "Total number of deliveries picked up by workers",
            registry=self._registry,
        )
        self._processing_time = Histogram(
            METRIC_MESSAGES_PROCESSED_TIME,
            "Time to save and acknowledge one delivery",
            buckets=PROCESSING_TIME_BUCKETS,
            registry=self._registry,
        )

        if app_info:
            Info("state_service", "Application information", registry=self._registry).info(app_info)

        logger.debug("Metrics collector initialized")

    @property
    def registry(self) -> CollectorRegistry:
        return self._registry

    # =========================================================================
    # Message Metrics
    # =========================================================================

    def record_processed(self) -> None:
        """Count one delivery."""
        self._processed.inc()

    def observe_processing(self, duration_seconds: float) -> None:
        """Record how long one delivery took."""
        self._processing_time.observe(duration_seconds)

    def processed_count(self) -> float:
        """Current value of the processed counter."""
        return self._registry.get_sample_value(f"{METRIC_MESSAGES_PROCESSED}_total") or 0.0

    def processing_observations(self) -> float:
        """Number of latency observations recorded so far."""
        return self._registry.get_sample_value(f"{METRIC_MESSAGES_PROCESSED_TIME}_count") or 0.0

    # =========================================================================
    # Export
    # =========================================================================

    def get_prometheus_metrics(self) -> bytes:
        """
        Get Prometheus metrics output.

        Returns:
            bytes: Prometheus text format metrics
        """
        return generate_latest(self._registry)

    def get_content_type(self) -> str:
        """Get Prometheus content type."""
        return CONTENT_TYPE_LATEST
