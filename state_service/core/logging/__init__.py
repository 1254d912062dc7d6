from .logger import (
    bind_worker_context,
    clear_worker_context,
    get_logger,
    get_worker_context,
    setup_logging,
)

__all__ = [
    "bind_worker_context",
    "clear_worker_context",
    "get_logger",
    "get_worker_context",
    "setup_logging",
]
