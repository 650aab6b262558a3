"""Fire-and-forget diagnostic event sinks."""

from __future__ import annotations

import logging
from typing import Protocol

logger = logging.getLogger(__name__)


class TelemetrySink(Protocol):
    def record(self, error: BaseException, context: dict[str, str]) -> None: ...


class NullTelemetry:
    """Sink that drops every event."""

    def record(self, error: BaseException, context: dict[str, str]) -> None:
        return None


class LoggingTelemetry:
    """Sink that writes events to a logger; stands in for an upload backend."""

    def __init__(self, name: str = "tpmi.telemetry") -> None:
        self._logger = logging.getLogger(name)

    def record(self, error: BaseException, context: dict[str, str]) -> None:
        fields = " ".join(f"{key}={value!r}" for key, value in sorted(context.items()))
        self._logger.warning("diagnostic event %s: %s", type(error).__name__, fields)


def emit(sink: TelemetrySink, error: BaseException, context: dict[str, str]) -> None:
    """Forward an event to `sink`; sink failures are logged and dropped."""
    try:
        sink.record(error, context)
    except Exception:
        logger.exception("telemetry sink %r failed", sink)
