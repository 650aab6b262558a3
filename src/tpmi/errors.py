"""Errors raised by catalog cache, fetch, and parse flows."""

from __future__ import annotations


class TPMIError(RuntimeError):
    """Base error for third-party mod identification operations."""


class CacheMiss(TPMIError):
    """Raised when the cache slot holds no catalog."""


class CacheIOError(TPMIError):
    """Raised when the cache slot cannot be read or written."""


class NetworkError(TPMIError):
    """Raised on any failed catalog fetch (transport, timeout, non-2xx)."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class CatalogFormatError(TPMIError):
    """Raised when catalog text is not a well-formed catalog payload."""
