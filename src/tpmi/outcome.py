"""Explicit outcomes passed between refresh tiers."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Generic, TypeVar

from tpmi.errors import CacheIOError, CacheMiss, CatalogFormatError, NetworkError

T = TypeVar("T")


class ErrorKind(StrEnum):
    NOT_FOUND = "not_found"
    IO = "io"
    NETWORK = "network"
    FORMAT = "format"


_KIND_BY_ERROR: tuple[tuple[type[Exception], ErrorKind], ...] = (
    (CacheMiss, ErrorKind.NOT_FOUND),
    (CacheIOError, ErrorKind.IO),
    (NetworkError, ErrorKind.NETWORK),
    (CatalogFormatError, ErrorKind.FORMAT),
)


@dataclass(frozen=True)
class TierOutcome(Generic[T]):
    """Either a value or a tagged failure from one tier step."""

    value: T | None = None
    kind: ErrorKind | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.kind is None

    @classmethod
    def success(cls, value: T) -> TierOutcome[T]:
        return cls(value=value)

    @classmethod
    def failure(cls, error: Exception) -> TierOutcome[T]:
        for error_type, kind in _KIND_BY_ERROR:
            if isinstance(error, error_type):
                return cls(kind=kind, error=error)
        raise TypeError(f"unexpected tier error type: {type(error).__name__}")
