"""
Timeframes are the bucket durations bars are aggregated into. Every timeframe has a
fixed millisecond duration; "1M" and "1y" use nominal 30/365-day durations, so
month/year buckets are not calendar-exact.
"""

from __future__ import annotations

from collections import Counter
from enum import Enum
from typing import Final, Sequence

from barreplay.types.aliases import UnixMillis
from barreplay.types.types import Bar

_MINUTE: Final[int] = 60_000
_HOUR: Final[int] = 60 * _MINUTE
_DAY: Final[int] = 24 * _HOUR

_TIME_UNITS_MS: Final[dict[str, int]] = {
    "ms": 1,
    "s": 1000,
    "m": _MINUTE,
    "h": _HOUR,
    "d": _DAY,
    "w": 7 * _DAY,
    "M": 30 * _DAY,  # nominal month
    "y": 365 * _DAY,  # nominal year
}


class Timeframe(str, Enum):
    M1 = "1m"
    M3 = "3m"
    M5 = "5m"
    M15 = "15m"
    M30 = "30m"
    H1 = "1h"
    H2 = "2h"
    H4 = "4h"
    H12 = "12h"
    D1 = "1d"
    W1 = "1w"
    MN1 = "1M"
    Y1 = "1y"

    @property
    def duration_ms(self) -> UnixMillis:
        return _DURATIONS[self]

    @classmethod
    def parse(cls, text: str | Timeframe) -> Timeframe:
        """
        Parse '5m', '1h', '1M' etc. Also accepts the aliases written by older
        exports ('1mn', '1D', '1W', '1mo', '12M').
        Raises ValueError for anything else.
        """
        if isinstance(text, Timeframe):
            return text
        key = text.strip()
        if key in _ALIASES:
            return _ALIASES[key]
        try:
            return cls(key)
        except ValueError:
            pass
        # unit letters other than M (month) are case-insensitive
        lowered = key[:-1] + key[-1].lower() if key and key[-1] != "M" else key
        try:
            return cls(lowered)
        except ValueError:
            raise ValueError(f"Timeframe.parse(): unknown timeframe {text!r}") from None


_DURATIONS: Final[dict[Timeframe, int]] = {
    Timeframe.M1: _MINUTE,
    Timeframe.M3: 3 * _MINUTE,
    Timeframe.M5: 5 * _MINUTE,
    Timeframe.M15: 15 * _MINUTE,
    Timeframe.M30: 30 * _MINUTE,
    Timeframe.H1: _HOUR,
    Timeframe.H2: 2 * _HOUR,
    Timeframe.H4: 4 * _HOUR,
    Timeframe.H12: 12 * _HOUR,
    Timeframe.D1: _DAY,
    Timeframe.W1: 7 * _DAY,
    Timeframe.MN1: 30 * _DAY,
    Timeframe.Y1: 365 * _DAY,
}

_ALIASES: Final[dict[str, Timeframe]] = {
    "1mn": Timeframe.M1,
    "1min": Timeframe.M1,
    "1D": Timeframe.D1,
    "1W": Timeframe.W1,
    "1mo": Timeframe.MN1,
    "12M": Timeframe.Y1,
}


def parse_timeframe(tf: str) -> UnixMillis:
    """
    Parse free-form timeframe strings like '1s', '3m', '1h', '2w' into milliseconds.
    Raises ValueError on unknown units, empty quantities, non-digits, or non-positive
    values.

    Valid units: ms, s, m, h, d, w, M (nominal month), y (nominal year).
    """
    tf = tf.strip()
    for unit in ("ms", "s", "m", "h", "d", "w", "M", "y"):
        if tf.endswith(unit):
            prefix = tf[: -len(unit)].strip()
            if not prefix or not prefix.isdigit():
                raise ValueError("parse_timeframe(): quantity None or not digit")
            quantity = int(prefix)
            if quantity <= 0:
                raise ValueError("parse_timeframe(): quantity must be positive")
            return quantity * _TIME_UNITS_MS[unit]
    raise ValueError(f"parse_timeframe(): Invalid timeframe: {tf!r}")


# Minute counts the detector can map back to a timeframe
_DETECTABLE: Final[dict[int, Timeframe]] = {
    1: Timeframe.M1,
    5: Timeframe.M5,
    15: Timeframe.M15,
    60: Timeframe.H1,
    240: Timeframe.H4,
    1440: Timeframe.D1,
    10080: Timeframe.W1,
}


def detect_timeframe(bars: Sequence[Bar], sample: int = 200) -> Timeframe:
    """
    Guess the base resolution of a bar sequence from the modal gap between
    consecutive bars (first `sample` gaps only).

    Fewer than two bars, or no positive gap, gives 1m. A modal gap that does not
    match a known resolution gives 1d.
    """
    if len(bars) < 2:
        return Timeframe.M1

    limit = min(len(bars) - 1, sample)
    diffs = [bars[i + 1].time - bars[i].time for i in range(limit)]
    diffs = [d for d in diffs if d > 0]
    if not diffs:
        return Timeframe.M1

    # Counter.most_common keeps first-seen order on ties
    mode, _ = Counter(diffs).most_common(1)[0]
    minutes = round(mode / _MINUTE)
    return _DETECTABLE.get(minutes, Timeframe.D1)
