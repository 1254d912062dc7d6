"""
Cache Module

Pooled async Redis client holding the last known device states.
"""

from .redis_client import RedisClient

__all__ = ["RedisClient"]
