"""
Storefront Core Exceptions

Error types raised across the cache and analytics layers.
"""

from typing import Any, Dict, Optional


class StorefrontCoreError(Exception):
    """Base exception for storefront core."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class CacheBackendError(StorefrontCoreError):
    """The key-value store could not be reached or rejected an operation."""


class FetchTimeoutError(StorefrontCoreError, TimeoutError):
    """A coalesced fetch did not settle within the configured bound."""

    def __init__(self, key: str, timeout: float):
        super().__init__(
            f"Fetch for cache key '{key}' exceeded {timeout}s",
            details={"key": key, "timeout": timeout},
        )
        self.key = key
        self.timeout = timeout


class DateRangeError(StorefrontCoreError, ValueError):
    """Date range is inverted or longer than allowed."""


class EventSourceError(StorefrontCoreError):
    """The event store query failed."""
