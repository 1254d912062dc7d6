"""
System Constants and Enumerations

Constants shared across the state service: storage key layout, metric names
and lifecycle states.
"""

from enum import Enum

# ============================================================================
# Storage keys
# ============================================================================

STATE_KEY_PREFIX = "state"
STATE_KEY_SEPARATOR = ":"

# ============================================================================
# Metric names (kept compatible with the existing dashboards)
# ============================================================================

METRIC_MESSAGES_PROCESSED = "timeseries_messages_processed"
METRIC_MESSAGES_PROCESSED_TIME = "timeseries_messages_processed_time_seconds"

PROCESSING_TIME_BUCKETS = (0.0005, 0.001, 0.0025, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0)


# ============================================================================
# Service lifecycle
# ============================================================================


class ServiceState(str, Enum):
    """
    Lifecycle controller states.

    STARTING: building the store and the worker bindings
    RUNNING: workers consuming, controller waiting for a termination signal
    DRAINING: shutting bindings down one by one
    STOPPED: every shutdown attempted, store closed
    """

    STARTING = "starting"
    RUNNING = "running"
    DRAINING = "draining"
    STOPPED = "stopped"
