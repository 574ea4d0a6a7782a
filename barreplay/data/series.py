"""Helpers over ascending bar series."""

from __future__ import annotations

from bisect import bisect_right
from typing import Iterable, Sequence

from barreplay.types.aliases import UnixMillis
from barreplay.types.types import Bar


def merge_bars(*sequences: Iterable[Bar]) -> list[Bar]:
    """
    Combine bar sequences into one ascending series without duplicate timestamps.

    Sequences are scanned in argument order, so on a timestamp collision the bar from
    the earlier sequence wins (pass older history first).
    """
    seen: dict[UnixMillis, Bar] = {}
    for seq in sequences:
        for bar in seq:
            if bar.time not in seen:
                seen[bar.time] = bar
    return [seen[t] for t in sorted(seen)]


def find_index_for_timestamp(bars: Sequence[Bar], target: UnixMillis) -> int:
    """
    Index of the last bar whose time is at or before `target`.

    Empty series and targets before the first bar give 0; targets after the last bar
    give the last index.
    """
    if not bars:
        return 0
    times = [b.time for b in bars]
    idx = bisect_right(times, target) - 1
    return max(idx, 0)
