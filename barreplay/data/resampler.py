from __future__ import annotations

from typing import Iterable, Iterator, Sequence

import polars as pl

from barreplay.core.timeframe import Timeframe
from barreplay.types.aliases import UnixMillis
from barreplay.types.types import Bar


def bucket_start(time_ms: UnixMillis, duration_ms: int) -> UnixMillis:
    """floor(time / duration) * duration"""
    return (time_ms // duration_ms) * duration_ms


def iter_resample(bars: Iterable[Bar], duration_ms: int) -> Iterator[Bar]:
    """
    Stream ascending bars into `duration_ms` buckets.

    A bucket is emitted once a bar with a different bucket key arrives (or the input
    ends), so memory stays constant. Output time is the bucket start.
    """
    if duration_ms <= 0:
        raise ValueError(f"iter_resample: duration_ms must be > 0, got {duration_ms}")

    key = None
    o = h = low_ = c = v = 0.0

    for bar in bars:
        k = bucket_start(bar.time, duration_ms)
        if k != key:
            if key is not None:
                yield Bar(time=key, open=o, high=h, low=low_, close=c, volume=v)
            # Seed the new bucket
            key = k
            o, h, low_, c, v = bar.open, bar.high, bar.low, bar.close, bar.volume
            continue

        h = max(h, bar.high)
        low_ = min(low_, bar.low)
        c = bar.close
        v += bar.volume

    if key is not None:
        yield Bar(time=key, open=o, high=h, low=low_, close=c, volume=v)


def resample(
    bars: Sequence[Bar],
    timeframe: Timeframe | str,
    base: Timeframe | str = Timeframe.M1,
) -> list[Bar]:
    """
    Aggregate base-resolution bars into `timeframe` buckets.

    Same timeframe as the base resolution returns a copy of the input unchanged.
    """
    target = Timeframe.parse(timeframe)
    if target is Timeframe.parse(base):
        return list(bars)
    return list(iter_resample(bars, target.duration_ms))


# --- Vectorized ---

OHLCV_COLUMNS = ("time", "open", "high", "low", "close", "volume")


def resample_frame(
    lf: pl.LazyFrame | pl.DataFrame,
    timeframe: Timeframe | str,
) -> pl.LazyFrame:
    """
    Polars version of resample() for frames with OHLCV_COLUMNS; `time` is epoch ms.
    Buckets are keyed by the same floor rule, so nominal months and years line up
    with the list version.
    """
    lf = lf.lazy()
    schema = lf.collect_schema()
    missing = [c for c in OHLCV_COLUMNS if c not in schema]
    if missing:
        raise ValueError(f"Missing required columns for resample: {sorted(missing)}")

    tf_ms = Timeframe.parse(timeframe).duration_ms
    agg_exprs = [
        pl.col("open").first().alias("open"),
        pl.col("high").max().alias("high"),
        pl.col("low").min().alias("low"),
        pl.col("close").last().alias("close"),
        pl.col("volume").sum().alias("volume"),
    ]
    return (
        lf.sort("time")
        .with_columns(((pl.col("time") // tf_ms) * tf_ms).cast(pl.Int64).alias("time"))
        .group_by("time", maintain_order=True)
        .agg(agg_exprs)
        .sort("time")
        .select(list(OHLCV_COLUMNS))
    )
