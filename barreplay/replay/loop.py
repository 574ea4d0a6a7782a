from __future__ import annotations

import asyncio
import logging
from typing import Optional

from barreplay.core.clock import Clock
from barreplay.replay.engine import ReplayEngine
from barreplay.types.types import ReplayPhase

logger = logging.getLogger(__name__)


class ReplayLoop:
    """
    Drives ReplayEngine.tick() once per frame from a Clock.

    Each frame sleeps `frame_interval_ms` on the clock and ticks the engine with the
    measured clock delta. Ticks never overlap. The loop ends on its own when the
    engine leaves PLAYING (paused or complete).
    """

    def __init__(self, engine: ReplayEngine, clock: Clock, frame_interval_ms: int = 16) -> None:
        if frame_interval_ms <= 0:
            raise ValueError(f"frame_interval_ms must be > 0, got {frame_interval_ms}")
        self._engine = engine
        self._clock = clock
        self._frame_ms = int(frame_interval_ms)
        self._task: Optional[asyncio.Task[int]] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run(self, max_ticks: Optional[int] = None) -> int:
        """Tick until the engine stops playing (or `max_ticks`). Returns ticks run."""
        ticks = 0
        last = self._clock.now()
        while self._engine.phase is ReplayPhase.PLAYING:
            if max_ticks is not None and ticks >= max_ticks:
                break
            await self._clock.sleep_for(self._frame_ms)
            now = self._clock.now()
            self._engine.tick(now - last)
            last = now
            ticks += 1
        logger.debug("replay loop exited after %d ticks (%s)", ticks, self._engine.phase.value)
        return ticks

    def start(self, max_ticks: Optional[int] = None) -> asyncio.Task[int]:
        """Play the engine and run the loop as a background task."""
        if self.is_running:
            raise RuntimeError("ReplayLoop already running")
        self._engine.play()
        self._task = asyncio.create_task(self.run(max_ticks), name="replay-loop")
        return self._task

    async def stop(self) -> None:
        """Cancel the pending tick and pause the engine."""
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._engine.pause(report=False)

    async def reset(self) -> None:
        """Stop and discard interpolation state."""
        await self.stop()
        self._engine.reset()
