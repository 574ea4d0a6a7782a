from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Sequence

import pytest

from barreplay.adapters.telemetry.basic import MemoryTelemetry
from barreplay.config.configs import CacheConfig, RunContext
from barreplay.types.types import Bar

MINUTE = 60_000
# 2024-01-01T00:00:00Z, aligned to every timeframe up to 1d
T0 = 1_704_067_200_000

run_context_test = RunContext(run_id="TEST", seed=42)


def make_bars(n: int, *, start: int = T0, step: int = MINUTE, base: float = 100.0) -> list[Bar]:
    """
    Ascending, well-formed bars: each opens one point above the previous open and
    closes half a point above its open.
    """
    out = []
    for i in range(n):
        o = base + i
        c = o + 0.5
        out.append(
            Bar(time=start + i * step, open=o, high=c + 0.5, low=o - 0.5, close=c, volume=10.0 + i)
        )
    return out


def csv_line(bar: Bar, layout: str = "date_time") -> str:
    when = datetime.fromtimestamp(bar.time / 1000, tz=timezone.utc)
    if layout == "date_time":
        stamp = when.strftime("%Y%m%d,%H:%M:%S")
    elif layout == "iso":
        stamp = when.strftime("%Y-%m-%d %H:%M:%S")
    else:
        stamp = str(bar.time)
    return f"{stamp},{bar.open},{bar.high},{bar.low},{bar.close},{bar.volume}"


def write_bar_file(
    path: Path,
    bars: Iterable[Bar],
    *,
    layout: str = "date_time",
    header: bool = True,
) -> Path:
    lines = ["Date,Time,Open,High,Low,Close,Volume"] if header else []
    lines.extend(csv_line(b, layout) for b in bars)
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


def assert_valid_shape(bars: Sequence[Bar]) -> None:
    for b in bars:
        assert b.is_valid_shape, b


@pytest.fixture
def sample_bars() -> list[Bar]:
    return make_bars(60)


@pytest.fixture
def sample_csv(tmp_path: Path, sample_bars: list[Bar]) -> Path:
    """60 one-minute bars in `YYYYMMDD,HH:MM:SS,o,h,l,c,v` layout with a header row."""
    return write_bar_file(tmp_path / "EURUSD_1m.csv", sample_bars)


@pytest.fixture
def memory_telemetry() -> MemoryTelemetry:
    return MemoryTelemetry()


@pytest.fixture
def cache_config(tmp_path: Path) -> CacheConfig:
    """Small batches so multi-batch ingest paths run on small files."""
    return CacheConfig(db_path=tmp_path / "cache" / "ohlc.sqlite3", batch_size=7, query_timeout_s=5)
