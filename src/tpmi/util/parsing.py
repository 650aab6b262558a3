"""Shared parsing helpers for tolerant numeric coercion."""

from __future__ import annotations

from typing import Any


def safe_int(value: Any) -> int | None:
    """Parse integer-like input into int, returning None when invalid."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    if isinstance(value, str):
        raw = value.strip()
        if not raw:
            return None
        if raw.startswith("+"):
            raw = raw[1:]
        try:
            return int(raw)
        except ValueError:
            return None
    return None


def is_blank(value: Any) -> bool:
    """Return True for None or whitespace-only strings."""
    return value is None or (isinstance(value, str) and not value.strip())
