"""
Unit tests for the replay clocks.
"""

import pytest

from barreplay.core.clock import ClockError, RealtimeClock, SimClock


class TestSimClock:
    """Tests for SimClock."""

    def test_starts_at_start_ms(self) -> None:
        clock = SimClock(start_ms=1_000)
        assert clock.now() == 1_000
        assert clock.is_realtime is False

    def test_negative_start_rejected(self) -> None:
        with pytest.raises(ValueError):
            SimClock(start_ms=-1)

    def test_advance(self) -> None:
        clock = SimClock()
        assert clock.advance_by(250) == 250
        assert clock.advance_to(1_000) == 1_000
        assert clock.now() == 1_000

    def test_cannot_go_backwards(self) -> None:
        clock = SimClock(start_ms=500)
        with pytest.raises(ClockError):
            clock.advance_to(499)
        with pytest.raises(ClockError):
            clock.advance_by(-1)

    @pytest.mark.asyncio
    async def test_sleep_until_advances_time(self) -> None:
        """sleep_until() on a SimClock is time travel, never a real wait."""
        clock = SimClock()
        await clock.sleep_until(60_000)
        assert clock.now() == 60_000

        # sleeping into the past is a no-op
        await clock.sleep_until(10)
        assert clock.now() == 60_000

    @pytest.mark.asyncio
    async def test_sleep_for(self) -> None:
        clock = SimClock(start_ms=100)
        await clock.sleep_for(16)
        assert clock.now() == 116
        with pytest.raises(ClockError):
            await clock.sleep_for(-1)


class TestRealtimeClock:
    """Tests for RealtimeClock."""

    def test_now_is_monotonic(self) -> None:
        clock = RealtimeClock()
        readings = [clock.now() for _ in range(100)]
        assert readings == sorted(readings)
        assert clock.is_realtime is True

    def test_starts_near_zero(self) -> None:
        assert 0 <= RealtimeClock().now() < 1_000

    def test_sleep_chunk_floor(self) -> None:
        assert RealtimeClock(sleep_chunk_ms=1).sleep_chunk_ms == 5

    @pytest.mark.asyncio
    async def test_sleep_for_waits(self) -> None:
        clock = RealtimeClock()
        before = clock.now()
        await clock.sleep_for(20)
        assert clock.now() - before >= 20
