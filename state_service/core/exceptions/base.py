"""
Base Exception Class

StateServiceError and ConfigurationError. Store and broker errors live in
store.py and consumer.py.
"""

from typing import Any


class StateServiceError(Exception):
    """
    Base exception for all state service errors.

    All custom exceptions inherit from this class to enable:
    - Consistent error handling at the worker boundary
    - Structured error logging
    - Rich context for debugging

    Attributes:
        message: Error message
        details: Additional error details (dict)

    Example:
        raise StoreWriteError(
            "Redis SET failed",
            details={"key": "state:alice:b6b984190f:on-off"}
        )
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = (details or {}).copy()
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to dictionary for logging.

        Returns:
            Dict with error_type, message and details
        """
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }

    def __repr__(self) -> str:
        details_str = f", details={self.details}" if self.details else ""
        return f"{self.__class__.__name__}(message='{self.message}'{details_str})"

    @classmethod
    def from_exception(
        cls,
        exc: Exception,
        message: str | None = None,
        **details
    ) -> "StateServiceError":
        """
        Create an error from another exception.

        Wraps third-party exceptions (redis-py, pika) with additional context.
        Callers chain the original with ``raise ... from exc``.

        Example:
            >>> try:
            ...     await client.set(key, body)
            ... except redis.ConnectionError as e:
            ...     raise StoreConnectionError.from_exception(e, key=key) from e
        """
        error_message = message or str(exc)
        error_details = {
            "original_error": exc.__class__.__name__,
            "original_message": str(exc),
            **details
        }
        return cls(error_message, details=error_details)


class ConfigurationError(StateServiceError):
    """Raised when configuration is invalid or missing."""
    pass
