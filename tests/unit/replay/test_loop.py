"""
Unit tests for ReplayLoop on a simulated clock.
"""

import pytest

from barreplay.core.clock import SimClock
from barreplay.errors.errors import ReplayError
from barreplay.replay.engine import ReplayEngine
from barreplay.replay.loop import ReplayLoop
from barreplay.types.types import ReplayPhase
from tests.fixtures.fixtures import make_bars


def make_engine(n: int = 5, speed: float = 1000) -> ReplayEngine:
    engine = ReplayEngine("1m", speed=speed)
    engine.start(make_bars(n))
    return engine


class TestReplayLoop:
    """Tests for ReplayLoop."""

    @pytest.mark.asyncio
    async def test_runs_to_completion(self) -> None:
        engine = make_engine()
        clock = SimClock()
        loop = ReplayLoop(engine, clock, frame_interval_ms=16)

        ticks = await loop.start()

        # 16 ms frames at 1000x are 16 s of virtual time each
        assert ticks == 19
        assert clock.now() == 19 * 16
        assert engine.phase is ReplayPhase.COMPLETE
        assert engine.index == 5
        assert loop.is_running is False

    @pytest.mark.asyncio
    async def test_max_ticks(self) -> None:
        engine = make_engine()
        loop = ReplayLoop(engine, SimClock(), frame_interval_ms=16)

        assert await loop.start(max_ticks=3) == 3
        assert engine.phase is ReplayPhase.PLAYING
        assert engine.index == 0
        assert engine.state.virtual_elapsed == 48_000

    @pytest.mark.asyncio
    async def test_stop_pauses_engine(self) -> None:
        engine = make_engine()
        loop = ReplayLoop(engine, SimClock())

        loop.start()
        assert loop.is_running
        await loop.stop()

        assert loop.is_running is False
        assert engine.phase is ReplayPhase.PAUSED

    @pytest.mark.asyncio
    async def test_reset_returns_engine_to_idle(self) -> None:
        engine = make_engine()
        loop = ReplayLoop(engine, SimClock())

        await loop.start(max_ticks=2)
        await loop.reset()

        assert engine.phase is ReplayPhase.IDLE
        assert engine.state.virtual_elapsed == 0.0

    @pytest.mark.asyncio
    async def test_double_start_rejected(self) -> None:
        loop = ReplayLoop(make_engine(), SimClock())
        loop.start()
        with pytest.raises(RuntimeError):
            loop.start()
        await loop.stop()

    @pytest.mark.asyncio
    async def test_start_before_engine_start(self) -> None:
        loop = ReplayLoop(ReplayEngine("1m"), SimClock())
        with pytest.raises(ReplayError):
            loop.start()

    @pytest.mark.parametrize("frame_ms", [0, -16])
    def test_invalid_frame_interval(self, frame_ms) -> None:
        with pytest.raises(ValueError):
            ReplayLoop(make_engine(), SimClock(), frame_interval_ms=frame_ms)
