"""
State Module

Routing key parsing, the Redis-backed state store and the delivery worker.
"""

from .routing import Identity, parse_routing_key
from .store import StateStore, storage_key
from .worker import StateWorker

__all__ = [
    "Identity",
    "parse_routing_key",
    "StateStore",
    "storage_key",
    "StateWorker",
]
