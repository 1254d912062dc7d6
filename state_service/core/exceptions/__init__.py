"""
Exception Module

Structured exception hierarchy for the state service.

Module Structure:
-----------------
- **base.py**: StateServiceError base class + ConfigurationError
- **store.py**: routing key and key-value store exceptions
- **consumer.py**: broker consumer exceptions

Usage:
------
```python
from state_service.core.exceptions import RoutingKeyError, StoreError
```
"""

from state_service.core.exceptions.base import ConfigurationError, StateServiceError
from state_service.core.exceptions.consumer import (
    ConsumerError,
    ConsumerShutdownError,
    ConsumerStartError,
    DeliveryAckError,
)
from state_service.core.exceptions.store import (
    RoutingKeyError,
    StoreConnectionError,
    StoreError,
    StoreWriteError,
)

__all__ = [
    # Base
    "StateServiceError",
    "ConfigurationError",
    # Store
    "RoutingKeyError",
    "StoreError",
    "StoreConnectionError",
    "StoreWriteError",
    # Consumer
    "ConsumerError",
    "ConsumerStartError",
    "ConsumerShutdownError",
    "DeliveryAckError",
]
