"""
Configuration Module

- **settings.py**: Pydantic-based configuration with environment variable loading
- **constants.py**: storage key layout, metric names, lifecycle states

Usage:
------
```python
from state_service.core.config import get_settings

settings = get_settings()
workers = settings.workers.WORKERS
```
"""

from state_service.core.config.constants import ServiceState
from state_service.core.config.settings import Settings, get_settings, reload_settings

__all__ = [
    "ServiceState",
    "Settings",
    "get_settings",
    "reload_settings",
]
