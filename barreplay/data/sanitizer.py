"""
Single-pass repair of an ascending bar series.

Each bar is compared only to the previous *output* bar:
    1. zero repair     OHLC fields that are exactly 0 take the previous close
    2. logic repair    swap inverted high/low, then widen them to cover open/close
    3. gap fill        exactly one missing bucket gets a flat filler bar
Bars that do not move time strictly forward are dropped.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Optional, Sequence

from barreplay.ports.telemetry import Telemetry
from barreplay.types.types import Bar, SanitizationStats

logger = logging.getLogger(__name__)

# A one-bar gap is a delta of 2 * duration, give or take 10% of a duration
_GAP_TOLERANCE = 0.1


def _repair_zeroes(bar: Bar, prev: Optional[Bar]) -> tuple[Bar, bool]:
    prices = (bar.open, bar.high, bar.low, bar.close)
    if 0 not in prices:
        return bar, False

    if prev is not None:
        fill = prev.close
    else:
        fill = next((p for p in prices if p != 0), None)
        if fill is None:
            # degenerate all-zero first bar, nothing to fill from
            return bar, False

    return (
        replace(
            bar,
            open=bar.open or fill,
            high=bar.high or fill,
            low=bar.low or fill,
            close=bar.close or fill,
        ),
        True,
    )


def _repair_logic(bar: Bar) -> tuple[Bar, bool]:
    high, low = bar.high, bar.low
    if low > high:
        high, low = low, high
    high = max(high, bar.open, bar.close)
    low = min(low, bar.open, bar.close)
    if high == bar.high and low == bar.low:
        return bar, False
    return replace(bar, high=high, low=low), True


def _is_single_gap(delta: int, duration_ms: int) -> bool:
    return abs(delta - 2 * duration_ms) < _GAP_TOLERANCE * duration_ms


def sanitize(
    bars: Sequence[Bar],
    bucket_duration_ms: int,
    telemetry: Optional[Telemetry] = None,
) -> tuple[list[Bar], SanitizationStats]:
    """
    Repair `bars` (ascending by time) and report what was fixed.

    Returns a new list; the input is not modified. `total_records` in the returned
    stats is the output length, fillers included.
    """
    stats = SanitizationStats()
    out: list[Bar] = []
    prev: Optional[Bar] = None

    for bar in bars:
        if prev is not None and bar.time <= prev.time:
            logger.debug("sanitize: dropping out-of-order bar at %s", bar.time)
            continue

        bar, fixed = _repair_zeroes(bar, prev)
        if fixed:
            stats.fixed_zeroes += 1

        bar, fixed = _repair_logic(bar)
        if fixed:
            stats.fixed_logic += 1

        if prev is not None and bucket_duration_ms > 0:
            if _is_single_gap(bar.time - prev.time, bucket_duration_ms):
                flat = prev.close
                filler = Bar(
                    time=prev.time + bucket_duration_ms,
                    open=flat,
                    high=flat,
                    low=flat,
                    close=flat,
                    volume=0.0,
                )
                out.append(filler)
                stats.filled_gaps += 1

        out.append(bar)
        prev = bar

    stats.total_records = len(out)
    if telemetry is not None:
        telemetry.log("SANITIZE_DONE", component="sanitizer", **stats.as_dict())
    return out, stats
