"""
Replay Engine
=============

Plays a bar series back as if it were arriving live.

A virtual clock advances by `delta_ms * speed` on every tick(). The bar at `index`
is in progress: while the virtual elapsed time is below the bar's duration the
engine reports an interpolated partial bar, and once it reaches the duration the
true bar is completed, `index` moves on and the remainder carries into the next bar.

Phases:
    IDLE -> SEEKING -> PLAYING <-> PAUSED -> COMPLETE

The engine has no timer of its own; ReplayLoop (or any scheduler) calls tick().
"""

from __future__ import annotations

import logging
import math
from typing import Optional, Protocol, Sequence

from barreplay.adapters.telemetry.basic import NullTelemetry
from barreplay.core.timeframe import Timeframe
from barreplay.data.series import find_index_for_timestamp
from barreplay.errors.errors import ReplayError
from barreplay.ports.telemetry import Telemetry
from barreplay.replay.interpolation import partial_bar
from barreplay.types.aliases import UnixMillis
from barreplay.types.types import Bar, ReplayPhase, ReplayState, ReplayTick, SyncPoint

logger = logging.getLogger(__name__)


class ReplayObserver(Protocol):
    def on_tick(self, tick: ReplayTick) -> None: ...

    def on_pause(self, sync: Optional[SyncPoint]) -> None: ...

    def on_complete(self, state: ReplayState) -> None: ...


class ReplayEngine:
    def __init__(
        self,
        timeframe: Timeframe | str = Timeframe.M1,
        *,
        speed: float = 1.0,
        realtime: bool = False,
        telemetry: Optional[Telemetry] = None,
    ) -> None:
        self._timeframe = Timeframe.parse(timeframe)
        self._telemetry: Telemetry = telemetry or NullTelemetry()
        self._observers: list[ReplayObserver] = []

        self._series: list[Bar] = []
        self._index = 0
        self._elapsed = 0.0
        self._speed = 1.0
        self._realtime = realtime
        self._phase = ReplayPhase.IDLE
        self._simulated_close: Optional[float] = None
        self._sync: Optional[SyncPoint] = None

        self.set_speed(speed)

    # --- Observers ---

    def add_observer(self, observer: ReplayObserver) -> None:
        if observer not in self._observers:
            self._observers.append(observer)

    def remove_observer(self, observer: ReplayObserver) -> None:
        if observer in self._observers:
            self._observers.remove(observer)

    # --- Introspection ---

    @property
    def phase(self) -> ReplayPhase:
        return self._phase

    @property
    def index(self) -> int:
        return self._index

    @property
    def series(self) -> list[Bar]:
        return self._series

    @property
    def displayed(self) -> list[Bar]:
        """
        Bars already shown in full: series[:index]. The bar at `index` is still in
        progress and is excluded; its interpolated state arrives through
        ReplayTick.bar and simulated_close.
        """
        return self._series[: self._index]

    @property
    def sync_point(self) -> Optional[SyncPoint]:
        return self._sync

    @property
    def speed_multiplier(self) -> float:
        """Effective multiplier; 1:1 realtime mode pins it to 1."""
        return 1.0 if self._realtime else self._speed

    @property
    def state(self) -> ReplayState:
        return ReplayState(
            index=self._index,
            virtual_elapsed=self._elapsed,
            speed_multiplier=self.speed_multiplier,
            is_playing=self._phase is ReplayPhase.PLAYING,
            simulated_close=self._simulated_close,
            phase=self._phase,
        )

    def _set_phase(self, phase: ReplayPhase) -> None:
        if phase is self._phase:
            return
        self._phase = phase
        self._telemetry.log(
            "REPLAY_STATE", component="replay", phase=phase.value, index=self._index
        )

    # --- Commands ---

    def start(self, series: Sequence[Bar], index: int = 0) -> None:
        """Load `series` and seek to `index`."""
        self._series = list(series)
        self._sync = None
        self._set_phase(ReplayPhase.SEEKING)
        self.seek(index)

    def seek(self, index: int) -> None:
        """
        Show series[:index] and restart the bar at `index` from zero elapsed time.
        An index at or past the end completes the replay.
        """
        self._index = min(max(int(index), 0), len(self._series))
        self._elapsed = 0.0
        self._simulated_close = None
        if self._phase is not ReplayPhase.PLAYING:
            self._set_phase(ReplayPhase.SEEKING)
        if self._index >= len(self._series):
            self._complete()

    def play(self) -> None:
        if self._phase is ReplayPhase.IDLE:
            raise ReplayError("play() before start()", component="replay")
        if self._phase is ReplayPhase.COMPLETE:
            return
        self._set_phase(ReplayPhase.PLAYING)

    def pause(self, report: bool = True) -> Optional[SyncPoint]:
        """Freeze the virtual clock. Returns the last sync point when `report`."""
        if self._phase is ReplayPhase.PLAYING:
            self._set_phase(ReplayPhase.PAUSED)
            for obs in list(self._observers):
                obs.on_pause(self._sync)
        return self._sync if report else None

    def set_speed(self, speed: float) -> None:
        if not math.isfinite(speed) or speed <= 0:
            raise ReplayError(
                "Replay speed must be > 0", component="replay", details={"speed": speed}
            )
        self._speed = float(speed)

    def set_realtime(self, enabled: bool) -> None:
        self._realtime = bool(enabled)

    def resync(self, series: Sequence[Bar], global_time: UnixMillis) -> int:
        """
        Switch to a newly resampled `series`, positioned at the last bar at or before
        `global_time`. Keeps playing if the engine was playing. Returns the new index.
        """
        was_playing = self._phase is ReplayPhase.PLAYING
        index = find_index_for_timestamp(series, global_time)
        self.start(series, index)
        if was_playing and self._phase is not ReplayPhase.COMPLETE:
            self._set_phase(ReplayPhase.PLAYING)
        logger.debug("resync: %s -> index %d of %d", global_time, index, len(self._series))
        return index

    def reset(self) -> None:
        """Drop elapsed time and interpolation state; back to IDLE."""
        self._elapsed = 0.0
        self._simulated_close = None
        self._sync = None
        self._set_phase(ReplayPhase.IDLE)

    # --- Tick ---

    def _duration_at(self, index: int) -> int:
        if index > 0:
            delta = self._series[index].time - self._series[index - 1].time
            if delta > 0:
                return delta
        return self._timeframe.duration_ms

    def tick(self, delta_ms: float) -> Optional[ReplayTick]:
        """
        Advance the virtual clock by `delta_ms * speed` and report the bar in
        progress. At most one bar completes per tick; surplus time carries over.
        Returns None unless PLAYING.
        """
        if self._phase is not ReplayPhase.PLAYING:
            return None
        if delta_ms < 0:
            raise ReplayError("tick() delta must be >= 0", component="replay")
        if self._index >= len(self._series):
            self._complete()
            return None

        self._elapsed += delta_ms * self.speed_multiplier
        bar = self._series[self._index]
        duration = self._duration_at(self._index)

        if self._elapsed >= duration:
            self._index += 1
            self._elapsed -= duration
            self._simulated_close = None
            self._sync = SyncPoint(index=self._index, time=bar.time, price=bar.close)
            tick = ReplayTick(
                index=self._index - 1,
                time=bar.time,
                price=bar.close,
                bar_complete=True,
                bar=bar,
                is_partial=False,
                replay_complete=self._index >= len(self._series),
            )
        else:
            partial = partial_bar(bar, self._elapsed / duration)
            self._simulated_close = partial.close
            tick = ReplayTick(
                index=self._index,
                time=bar.time,
                price=partial.close,
                bar_complete=False,
                bar=partial,
                is_partial=True,
                replay_complete=False,
            )

        for obs in list(self._observers):
            obs.on_tick(tick)
        if self._index >= len(self._series):
            self._complete()
        return tick

    def _complete(self) -> None:
        if self._phase is ReplayPhase.COMPLETE:
            return
        self._elapsed = 0.0
        self._set_phase(ReplayPhase.COMPLETE)
        self._telemetry.log(
            "REPLAY_COMPLETE", component="replay", index=self._index, bars=len(self._series)
        )
        state = self.state
        for obs in list(self._observers):
            obs.on_complete(state)
