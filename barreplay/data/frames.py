"""Conversion between bar lists and polars frames."""

from __future__ import annotations

from typing import Sequence

import polars as pl

from barreplay.data.resampler import OHLCV_COLUMNS
from barreplay.types.types import Bar

BAR_SCHEMA: dict[str, pl.DataType] = {
    "time": pl.Int64(),
    "open": pl.Float64(),
    "high": pl.Float64(),
    "low": pl.Float64(),
    "close": pl.Float64(),
    "volume": pl.Float64(),
}


def bars_to_frame(bars: Sequence[Bar]) -> pl.DataFrame:
    if not bars:
        return pl.DataFrame(schema=BAR_SCHEMA)
    return pl.DataFrame([b.as_row() for b in bars], schema=BAR_SCHEMA, orient="row")


def frame_to_bars(df: pl.DataFrame | pl.LazyFrame) -> list[Bar]:
    if isinstance(df, pl.LazyFrame):
        df = df.collect()
    return [
        Bar(time=int(t), open=o, high=h, low=l_, close=c, volume=v)
        for t, o, h, l_, c, v in df.select(list(OHLCV_COLUMNS)).iter_rows()
    ]


def write_csv(bars: Sequence[Bar], path) -> None:
    """Write bars as `time,open,high,low,close,volume` with a header row."""
    bars_to_frame(bars).write_csv(path)
