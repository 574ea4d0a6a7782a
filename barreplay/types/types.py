from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

from barreplay.types.aliases import ByteOffset, UnixMillis

# -------- Enums --------


class RejectReason(str, Enum):
    """Why the parser dropped a line."""

    EMPTY = "empty"
    NOT_NUMERIC = "not_numeric"  # does not start with a digit
    TOO_FEW_FIELDS = "too_few_fields"
    BAD_PRICE = "bad_price"  # open/close not finite
    BAD_TIMESTAMP = "bad_timestamp"


class ReplayPhase(str, Enum):
    IDLE = "idle"
    SEEKING = "seeking"
    PLAYING = "playing"
    PAUSED = "paused"
    COMPLETE = "complete"


# --- Bars ---


@dataclass(frozen=True, slots=True)
class Bar:
    time: UnixMillis  # bucket open time, UTC ms
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0

    @property
    def is_valid_shape(self) -> bool:
        """low <= min(open, close) <= max(open, close) <= high"""
        return self.low <= min(self.open, self.close) <= max(self.open, self.close) <= self.high

    def as_row(self) -> tuple[int, float, float, float, float, float]:
        return (self.time, self.open, self.high, self.low, self.close, self.volume)


@dataclass(frozen=True, slots=True)
class Rejected:
    reason: RejectReason
    line: str = ""


# --- Parsing & Sanitizing ---


@dataclass(slots=True)
class SanitizationStats:
    """
    Report of one sanitize() call. Consumed by logging/telemetry only.
    """

    fixed_zeroes: int = 0
    fixed_logic: int = 0
    filled_gaps: int = 0
    outliers: int = 0
    total_records: int = 0

    def as_dict(self) -> dict[str, int]:
        return {
            "fixed_zeroes": self.fixed_zeroes,
            "fixed_logic": self.fixed_logic,
            "filled_gaps": self.filled_gaps,
            "outliers": self.outliers,
            "total_records": self.total_records,
        }


# --- Chunked reading ---


@dataclass(slots=True)
class FileStreamState:
    """
    Backward-reading cursor over one file.
    - cursor: byte offset where the last read window started
    - leftover: partial first line of that window, joined onto the next older window
    """

    path: Path
    chunk_bytes: int
    cursor: ByteOffset
    leftover: bytes
    has_more: bool
    file_size: int
    is_loading: bool = False


@dataclass(frozen=True, slots=True)
class ChunkResult:
    new_points: list[Bar]
    new_cursor: ByteOffset
    new_leftover: bytes
    has_more: bool


# --- Cache ---


@dataclass(frozen=True, slots=True)
class IngestReport:
    symbol: str
    timeframe: str
    rows_parsed: int
    rows_committed: int
    chunks_committed: int
    skipped: bool = False  # coalesced into an ingest that already ran


# --- Replay ---


@dataclass(frozen=True, slots=True)
class SyncPoint:
    """Synchronized (index, time, price) triple, persisted as a resume point."""

    index: int
    time: UnixMillis
    price: float


@dataclass(frozen=True, slots=True)
class ReplayState:
    index: int
    virtual_elapsed: float
    speed_multiplier: float
    is_playing: bool
    simulated_close: Optional[float]
    phase: ReplayPhase


@dataclass(frozen=True, slots=True)
class ReplayTick:
    """
    One observation per tick. `bar` is the true bar when the tick completed it,
    otherwise the interpolated partial bar. `replay_complete` is set only on the
    tick that completes the last bar of the series.
    """

    index: int
    time: UnixMillis
    price: float
    bar_complete: bool
    bar: Bar
    is_partial: bool
    replay_complete: bool = False
