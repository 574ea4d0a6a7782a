"""In-process Telemetry adapters."""

from __future__ import annotations

import logging
from typing import Any


class NullTelemetry:
    """Default sink: drops every event."""

    def log(self, event: str, **fields: Any) -> None:
        return None


class LoggingTelemetry:
    """Forwards events to a stdlib logger as `EVENT key=value ...` lines."""

    def __init__(self, logger: logging.Logger | None = None, level: int = logging.INFO) -> None:
        self._logger = logger or logging.getLogger("barreplay.telemetry")
        self._level = level

    def log(self, event: str, **fields: Any) -> None:
        if not self._logger.isEnabledFor(self._level):
            return
        rendered = " ".join(f"{k}={v}" for k, v in sorted(fields.items()))
        self._logger.log(self._level, "%s %s", event, rendered)


class MemoryTelemetry:
    """Keeps events in a list, for inspection in tests."""

    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    def log(self, event: str, **fields: Any) -> None:
        self.events.append((event, dict(fields)))

    def names(self) -> list[str]:
        return [name for name, _ in self.events]
