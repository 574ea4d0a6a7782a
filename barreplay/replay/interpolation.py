"""
Three-phase intra-bar price path.

A bar in progress is animated open -> high -> low -> close:

    progress   [0, 0.33)      open -> high
               [0.33, 0.66)   high -> low
               [0.66, 1)      low  -> close  (over the remaining 0.34)

The partial bar's high/low are the extremes touched so far, so every frame is a
valid OHLC shape.
"""

from __future__ import annotations

from barreplay.types.types import Bar

PHASE_1_END = 0.33
PHASE_2_END = 0.66


def _lerp(a: float, b: float, t: float) -> float:
    return a + (b - a) * t


def interpolate_price(bar: Bar, progress: float) -> float:
    progress = min(max(progress, 0.0), 1.0)
    if progress < PHASE_1_END:
        return _lerp(bar.open, bar.high, progress / PHASE_1_END)
    if progress < PHASE_2_END:
        return _lerp(bar.high, bar.low, (progress - PHASE_1_END) / (PHASE_2_END - PHASE_1_END))
    return _lerp(bar.low, bar.close, (progress - PHASE_2_END) / (1.0 - PHASE_2_END))


def partial_bar(bar: Bar, progress: float) -> Bar:
    """The bar as it would look `progress` (0..1) of the way through its duration."""
    price = interpolate_price(bar, progress)
    if progress < PHASE_1_END:
        high = max(bar.open, price)
        low = min(bar.open, price)
    elif progress < PHASE_2_END:
        high = max(bar.high, bar.open)
        low = min(bar.open, price)
    else:
        high = bar.high
        low = bar.low
    return Bar(
        time=bar.time,
        open=bar.open,
        high=high,
        low=low,
        close=price,
        volume=bar.volume * min(max(progress, 0.0), 1.0),
    )
