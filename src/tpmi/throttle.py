"""Fetch throttle policy."""

from __future__ import annotations

from datetime import datetime, timedelta


def can_fetch_now(
    last_success: datetime | None, now: datetime, min_interval: timedelta
) -> bool:
    """Return whether a network fetch is allowed at `now`.

    A fetch is allowed when no fetch has succeeded yet, or when at least
    `min_interval` has elapsed since the last successful one.
    """
    if last_success is None:
        return True
    return now - last_success >= min_interval
