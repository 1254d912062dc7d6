"""
Core Module

Foundational components: configuration, logging, exceptions and the broker
consumer interface.
"""

from .exceptions import (
    ConfigurationError,
    ConsumerError,
    RoutingKeyError,
    StateServiceError,
    StoreError,
)
from .logging import (
    bind_worker_context,
    clear_worker_context,
    get_logger,
    setup_logging,
)
