"""
Replay Module.

Plays a historical bar series back frame by frame on a virtual clock.

Components:
- ReplayEngine: virtual clock, bar completion, speed control, resync
- ReplayLoop: drives ReplayEngine.tick() from a Clock as an asyncio task
- interpolation: the open -> high -> low -> close intra-bar path

Usage:
    from barreplay.replay import ReplayEngine, ReplayLoop
    from barreplay.core.clock import SimClock

    engine = ReplayEngine("1m", speed=60)
    engine.start(bars, index=100)
    await ReplayLoop(engine, SimClock(), frame_interval_ms=16).start()
"""

from barreplay.replay.engine import ReplayEngine, ReplayObserver
from barreplay.replay.interpolation import interpolate_price, partial_bar
from barreplay.replay.loop import ReplayLoop

__all__ = [
    "ReplayEngine",
    "ReplayObserver",
    "ReplayLoop",
    "interpolate_price",
    "partial_bar",
]
