"""
Custom exceptions for the bar replay pipeline.

Exception hierarchy:
- BarReplayError (base)
  - SourceUnavailable: backing file missing or moved
  - ReadTimeout: byte-range read did not finish in time (recoverable)
  - IngestFailure: batch cache write aborted mid-transaction
  - CacheUnavailable: storage not initialized
  - CacheTimeout: cache query did not finish in time (recoverable)
  - ConfigurationError: invalid configuration
  - ReplayError: invalid replay command

Malformed CSV lines are not errors: the parser returns a `Rejected` value and
`parse_chunk` drops it.
"""

from __future__ import annotations

from typing import Any, Optional


class BarReplayError(Exception):
    """Base exception for all pipeline errors."""

    def __init__(
        self,
        message: str,
        *,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.component = component
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        parts = [super().__str__()]
        if self.component:
            parts.append(f"[component={self.component}]")
        if self.details:
            parts.append(f"[details={self.details}]")
        return " ".join(parts)


# --- Data ----


class SourceUnavailable(BarReplayError):
    """Raised when the source file is missing, moved or unreadable."""

    def __init__(
        self,
        message: str,
        *,
        path: Optional[str] = None,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.path = path
        details = details or {}
        if path:
            details["path"] = path
        super().__init__(message, component=component, details=details)


class ReadTimeout(BarReplayError):
    """Recoverable: a byte-range read exceeded its timeout."""

    def __init__(
        self,
        message: str,
        *,
        timeout_s: Optional[float] = None,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.timeout_s = timeout_s
        details = details or {}
        if timeout_s is not None:
            details["timeout_s"] = timeout_s
        super().__init__(message, component=component, details=details)


# --- Cache ----


class IngestFailure(BarReplayError):
    """
    Raised when a batch ingest aborts. The in-flight chunk has been rolled back;
    `rows_committed` counts the rows of earlier chunks that did commit.
    """

    def __init__(
        self,
        message: str,
        *,
        symbol: Optional[str] = None,
        timeframe: Optional[str] = None,
        rows_committed: int = 0,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.symbol = symbol
        self.timeframe = timeframe
        self.rows_committed = rows_committed
        details = details or {}
        if symbol:
            details["symbol"] = symbol
        if timeframe:
            details["timeframe"] = timeframe
        details["rows_committed"] = rows_committed
        super().__init__(message, component=component, details=details)


class CacheUnavailable(BarReplayError):
    """Raised when the cache store is used before `connect()`."""


class CacheTimeout(BarReplayError):
    """Recoverable: a cache query exceeded its timeout."""


# --- Config ----


class ConfigurationError(BarReplayError):
    """Raised when configuration is invalid."""

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        value: Any = None,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.field = field
        self.value = value
        details = details or {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = value
        super().__init__(message, component=component, details=details)


# --- Replay ----


class ReplayError(BarReplayError):
    """Raised for invalid replay commands (e.g. non-positive speed)."""
