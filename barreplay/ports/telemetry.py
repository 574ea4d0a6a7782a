"""Telemetry Port Interface.

Contract: log structured events, `log(event, **fields)`. Every pipeline component
takes a Telemetry at construction; there is no process-wide log buffer.
"""

from __future__ import annotations

from typing import Any, Protocol


class Telemetry(Protocol):
    def log(self, event: str, **fields: Any) -> None: ...
