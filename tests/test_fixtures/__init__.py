"""
Test Fixtures Package

Shared test utilities and helpers for consistent testing across all modules.
"""

from .delivery_factory import (
    VALID_ROUTING_KEY,
    DeliveryTestFactory,
    FakeConsumer,
    InMemoryStateStore,
    RecordingAcknowledger,
)

__all__ = [
    "VALID_ROUTING_KEY",
    "DeliveryTestFactory",
    "FakeConsumer",
    "InMemoryStateStore",
    "RecordingAcknowledger",
]
