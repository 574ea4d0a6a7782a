"""
Unit tests for the SQLite-backed WindowedCache.
"""

import asyncio

import aiosqlite
import pytest

from barreplay.cache.store import WindowedCache, window
from barreplay.config.configs import CacheConfig
from barreplay.errors.errors import CacheUnavailable, IngestFailure, SourceUnavailable
from tests.fixtures.fixtures import MINUTE, T0, make_bars, write_bar_file


class FailingCache(WindowedCache):
    """Fails the n-th batch after its rows were written inside the transaction."""

    def __init__(self, *args, fail_on: int = 3, **kwargs):
        super().__init__(*args, **kwargs)
        self.fail_on = fail_on
        self.calls = 0

    async def _insert_batch(self, conn, rows):
        self.calls += 1
        inserted = await super()._insert_batch(conn, rows)
        if self.calls == self.fail_on:
            raise aiosqlite.OperationalError("disk I/O error")
        return inserted


class TestWindow:
    def test_newest_rows_before_time(self) -> None:
        bars = make_bars(10)
        assert window(bars, None, 3) == bars[-3:]
        assert window(bars, T0 + 5 * MINUTE, 2) == bars[3:5]
        assert window(bars, T0, 5) == []
        assert window(bars, None, 0) == []


class TestFetch:
    """Cache-first reads."""

    @pytest.mark.asyncio
    async def test_miss_ingests_from_source(self, cache_config, sample_csv, sample_bars) -> None:
        async with WindowedCache(cache_config) as cache:
            got = await cache.fetch("EURUSD", "1m", limit=10, source_path=sample_csv)

            assert got == sample_bars[-10:]
            assert await cache.count("EURUSD", "1m") == 60

    @pytest.mark.asyncio
    async def test_hit_reads_from_store(self, cache_config, sample_csv, sample_bars) -> None:
        async with WindowedCache(cache_config) as cache:
            await cache.ingest_file("EURUSD", "1m", sample_csv)

            assert await cache.fetch("EURUSD", "1m", limit=5) == sample_bars[-5:]
            assert await cache.fetch("EURUSD", "1m") == sample_bars
            before = sample_bars[20].time
            got = await cache.fetch("EURUSD", "1m", before_time=before, limit=4)
            assert got == sample_bars[16:20]

    @pytest.mark.asyncio
    async def test_zero_limit_is_empty(self, cache_config, sample_csv) -> None:
        """An explicit limit of 0 is an empty window, not the default one."""
        async with WindowedCache(cache_config) as cache:
            await cache.ingest_file("EURUSD", "1m", sample_csv)

            assert await cache.fetch("EURUSD", "1m", limit=0) == []
            assert await cache.fetch("EURUSD", "1m", limit=-3) == []
            assert await cache.count("EURUSD", "1m") == 60

    @pytest.mark.asyncio
    async def test_persists_across_connections(self, cache_config, sample_csv, sample_bars) -> None:
        async with WindowedCache(cache_config) as cache:
            await cache.ingest_file("EURUSD", "1m", sample_csv)
        async with WindowedCache(cache_config) as cache:
            assert await cache.fetch("EURUSD", "1m", limit=3) == sample_bars[-3:]

    @pytest.mark.asyncio
    async def test_miss_without_source_is_empty(self, cache_config) -> None:
        async with WindowedCache(cache_config) as cache:
            assert await cache.fetch("EURUSD", "1m") == []

    @pytest.mark.asyncio
    async def test_empty_window_on_populated_key_does_not_reingest(
        self, cache_config, sample_csv, memory_telemetry
    ) -> None:
        async with WindowedCache(cache_config, telemetry=memory_telemetry) as cache:
            await cache.ingest_file("EURUSD", "1m", sample_csv)
            memory_telemetry.events.clear()

            got = await cache.fetch("EURUSD", "1m", before_time=T0, source_path=sample_csv)

            assert got == []
            assert "CACHE_INGEST_BEGIN" not in memory_telemetry.names()

    @pytest.mark.asyncio
    async def test_timeframe_alias_shares_key(self, cache_config, sample_csv, sample_bars) -> None:
        async with WindowedCache(cache_config) as cache:
            await cache.ingest_file("EURUSD", "1mn", sample_csv)

            assert await cache.fetch("EURUSD", "1m", limit=2) == sample_bars[-2:]
            assert await cache.symbols() == [("EURUSD", "1m")]

    @pytest.mark.asyncio
    async def test_concurrent_misses_ingest_once(
        self, cache_config, sample_csv, sample_bars, memory_telemetry
    ) -> None:
        async with WindowedCache(cache_config, telemetry=memory_telemetry) as cache:
            a, b = await asyncio.gather(
                cache.fetch("EURUSD", "1m", limit=10, source_path=sample_csv),
                cache.fetch("EURUSD", "1m", limit=10, source_path=sample_csv),
            )

            assert a == b == sample_bars[-10:]
            assert memory_telemetry.names().count("CACHE_INGEST_BEGIN") == 1
            assert await cache.count() == 60

    @pytest.mark.asyncio
    async def test_sanitizes_source_on_ingest(self, cache_config, tmp_path) -> None:
        bars = make_bars(10)
        del bars[4]
        path = write_bar_file(tmp_path / "gap.csv", bars)

        async with WindowedCache(cache_config) as cache:
            got = await cache.fetch("GAP", "1m", source_path=path)

        assert [b.time for b in got] == [T0 + i * MINUTE for i in range(10)]
        filler = got[4]
        assert filler.volume == 0
        assert filler.open == filler.high == filler.low == filler.close == bars[3].close

    @pytest.mark.asyncio
    async def test_raw_ingest_keeps_gaps(self, cache_config, tmp_path) -> None:
        bars = make_bars(10)
        del bars[4]
        path = write_bar_file(tmp_path / "gap.csv", bars)

        async with WindowedCache(cache_config, sanitize_on_ingest=False) as cache:
            assert await cache.fetch("GAP", "1m", source_path=path) == bars


class TestIngest:
    """Batch writes."""

    @pytest.mark.asyncio
    async def test_batches_and_report(self, cache_config, sample_csv) -> None:
        async with WindowedCache(cache_config) as cache:
            bars, report = await cache.ingest_file("EURUSD", "1m", sample_csv)

        assert len(bars) == 60
        assert report.rows_parsed == 60
        assert report.rows_committed == 60
        # 60 rows at batch_size=7
        assert report.chunks_committed == 9
        assert report.skipped is False

    @pytest.mark.asyncio
    async def test_idempotent(self, cache_config, sample_csv) -> None:
        async with WindowedCache(cache_config) as cache:
            await cache.ingest_file("EURUSD", "1m", sample_csv)
            _, again = await cache.ingest_file("EURUSD", "1m", sample_csv)

            assert again.rows_parsed == 60
            assert again.rows_committed == 0
            assert await cache.count("EURUSD", "1m") == 60

    @pytest.mark.asyncio
    async def test_existing_rows_not_overwritten(self, cache_config) -> None:
        first = make_bars(3)
        second = make_bars(5, base=500.0)
        async with WindowedCache(cache_config) as cache:
            await cache.ingest("X", "1m", first)
            report = await cache.ingest("X", "1m", second)

            assert report.rows_committed == 2
            assert await cache.fetch("X", "1m") == first + second[3:]

    @pytest.mark.asyncio
    async def test_failed_batch_rolls_back(
        self, cache_config, sample_bars, memory_telemetry
    ) -> None:
        async with FailingCache(cache_config, telemetry=memory_telemetry, fail_on=3) as cache:
            with pytest.raises(IngestFailure) as excinfo:
                await cache.ingest("EURUSD", "1m", sample_bars)

            assert excinfo.value.rows_committed == 14
            assert excinfo.value.symbol == "EURUSD"
            assert isinstance(excinfo.value.__cause__, aiosqlite.OperationalError)
            assert memory_telemetry.names()[-1] == "CACHE_INGEST_FAILED"
            assert await cache.count("EURUSD", "1m") == 14
            assert await cache.fetch("EURUSD", "1m") == sample_bars[:14]

    @pytest.mark.asyncio
    async def test_missing_source(self, cache_config, tmp_path) -> None:
        async with WindowedCache(cache_config) as cache:
            with pytest.raises(SourceUnavailable):
                await cache.ingest_file("EURUSD", "1m", tmp_path / "missing.csv")
            with pytest.raises(SourceUnavailable):
                await cache.fetch("EURUSD", "1m", source_path=tmp_path / "missing.csv")

    @pytest.mark.asyncio
    async def test_telemetry_sequence(self, cache_config, sample_csv, memory_telemetry) -> None:
        async with WindowedCache(cache_config, telemetry=memory_telemetry) as cache:
            await cache.fetch("EURUSD", "1m", source_path=sample_csv)
            await cache.fetch("EURUSD", "1m")

        assert memory_telemetry.names() == [
            "CACHE_MISS",
            "SANITIZE_DONE",
            "CACHE_INGEST_BEGIN",
            "CACHE_INGEST_OK",
            "CACHE_HIT",
        ]


class TestUnavailable:
    """Behaviour before connect() / after close()."""

    @pytest.mark.asyncio
    async def test_fetch_and_ingest_degrade(
        self, sample_csv, sample_bars, memory_telemetry
    ) -> None:
        cache = WindowedCache(telemetry=memory_telemetry)

        assert await cache.fetch("EURUSD", "1m", source_path=sample_csv) == []
        report = await cache.ingest("EURUSD", "1m", sample_bars)
        assert report.skipped is True
        assert report.rows_committed == 0
        assert memory_telemetry.names() == ["CACHE_UNAVAILABLE", "CACHE_UNAVAILABLE"]

    @pytest.mark.asyncio
    async def test_admin_requires_connection(self) -> None:
        cache = WindowedCache()
        with pytest.raises(CacheUnavailable):
            await cache.count()
        with pytest.raises(CacheUnavailable):
            await cache.purge()

    @pytest.mark.asyncio
    async def test_closed_after_context(self, cache_config) -> None:
        async with WindowedCache(cache_config) as cache:
            assert cache.is_connected
        assert not cache.is_connected
        assert await cache.fetch("EURUSD", "1m") == []


class TestAdministration:
    @pytest.mark.asyncio
    async def test_purge_and_symbols(self) -> None:
        bars = make_bars(5)
        async with WindowedCache(CacheConfig(db_path=":memory:")) as cache:
            await cache.ingest("EURUSD", "1m", bars)
            await cache.ingest("EURUSD", "1h", bars)
            await cache.ingest("GBPUSD", "1m", bars)

            assert await cache.symbols() == [("EURUSD", "1h"), ("EURUSD", "1m"), ("GBPUSD", "1m")]
            assert await cache.purge("EURUSD", "1m") == 5
            assert await cache.count() == 10
            assert await cache.purge(symbol="EURUSD") == 5
            assert await cache.symbols() == [("GBPUSD", "1m")]
            assert await cache.purge() == 5
            assert await cache.count() == 0
