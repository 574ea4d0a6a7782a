"""
Frame clocks for the replay loop.

now() is the loop's time axis; ReplayLoop only ever uses differences between two
readings, so the origin is up to the clock. sleep_for() waits out one frame.
 - SimClock: headless replays and tests, frames cost no wall time
 - RealtimeClock: replays paced against the wall (`barreplay replay --wall-clock`)
"""

import asyncio
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from barreplay.types.aliases import UnixMillis

Millis = UnixMillis

# -------- Exceptions -----------------------------------------------------------


class ClockError(RuntimeError):
    """Raised when a clock would have to run backwards."""


# -------- Interface -----------------------------------------------------------


class Clock(ABC):
    """
    Time source for frame pacing. Readings are integer milliseconds and never
    decrease.
    """

    @abstractmethod
    def now(self) -> Millis:
        raise NotImplementedError

    @abstractmethod
    async def sleep_until(self, ts_ms: Millis) -> None:
        """Return once now() >= ts_ms. A target in the past returns immediately."""
        raise NotImplementedError

    async def sleep_for(self, delta_ms: Millis) -> None:
        if delta_ms < 0:
            raise ClockError(f"sleep_for: delta_ms must be >= 0, got {delta_ms}")
        await self.sleep_until(self.now() + int(delta_ms))

    @property
    @abstractmethod
    def is_realtime(self) -> bool:
        raise NotImplementedError


# -------- RealtimeClock -------------------------------------------------------


@dataclass
class RealtimeClock(Clock):
    """
    Milliseconds elapsed since construction, read from time.monotonic() so frame
    deltas survive NTP or manual changes to the system clock.

    sleep_chunk_ms caps one asyncio.sleep(); a cancelled loop stops within a chunk.
    """

    sleep_chunk_ms: int = 50
    _t0_mono: float = field(default_factory=time.monotonic, repr=False)

    def __post_init__(self) -> None:
        self.sleep_chunk_ms = max(5, int(self.sleep_chunk_ms))

    @property
    def is_realtime(self) -> bool:
        return True

    def now(self) -> Millis:
        return int((time.monotonic() - self._t0_mono) * 1000)

    async def sleep_until(self, ts_ms: Millis) -> None:
        remaining = ts_ms - self.now()
        while remaining > 0:
            await asyncio.sleep(min(remaining, self.sleep_chunk_ms) / 1000.0)
            remaining = ts_ms - self.now()


# -------- SimClock ------------------------------------------------------------


class SimClock(Clock):
    """
    Manually advanced clock. Sleeping jumps straight to the target and yields to the
    event loop once, so a replay runs as fast as the engine can tick.
    """

    def __init__(self, start_ms: Millis = 0):
        if start_ms < 0:
            raise ValueError("start_ms must be >= 0")
        self.start_ms: Millis = int(start_ms)
        self._now: Millis = int(start_ms)

    @property
    def is_realtime(self) -> bool:
        return False

    def now(self) -> Millis:
        return self._now

    def advance_to(self, ts_ms: Millis) -> Millis:
        if ts_ms < self._now:
            raise ClockError(f"SimClock: cannot go backwards: {ts_ms} < {self._now}")
        self._now = int(ts_ms)
        return self._now

    def advance_by(self, delta_ms: Millis) -> Millis:
        if delta_ms < 0:
            raise ClockError(f"SimClock: delta_ms must be >= 0, got {delta_ms}")
        return self.advance_to(self._now + int(delta_ms))

    async def sleep_until(self, ts_ms: Millis) -> None:
        if ts_ms > self._now:
            self._now = int(ts_ms)
        await asyncio.sleep(0)
