"""
Windowed Cache
==============

Persistent SQLite store of bars keyed by (symbol, timeframe, time).

Reads are cache-first: the newest `limit` rows (optionally strictly before a time)
come back ascending. On a miss (no rows at all for the key) with a source file at
hand, the file is parsed and sanitized in a worker thread and batch-ingested.

Ingest writes `INSERT OR IGNORE` in transactions of `batch_size` rows, so rows are
never updated in place and re-ingesting a file never doubles a row. A failing batch
is rolled back; earlier batches stay committed.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Iterable, Optional, Sequence

import aiosqlite

from barreplay.adapters.telemetry.basic import NullTelemetry
from barreplay.config.configs import CacheConfig
from barreplay.core.timeframe import Timeframe
from barreplay.data.parser import parse_file
from barreplay.data.sanitizer import sanitize
from barreplay.errors.errors import (
    CacheTimeout,
    CacheUnavailable,
    IngestFailure,
    SourceUnavailable,
)
from barreplay.ports.telemetry import Telemetry
from barreplay.types.aliases import UnixMillis
from barreplay.types.types import Bar, IngestReport

logger = logging.getLogger(__name__)

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS ohlc_cache (
        symbol TEXT NOT NULL,
        timeframe TEXT NOT NULL,
        time INTEGER NOT NULL,
        open REAL,
        high REAL,
        low REAL,
        close REAL,
        volume REAL,
        UNIQUE(symbol, timeframe, time)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_ohlc_lookup ON ohlc_cache (symbol, timeframe, time)",
)

_INSERT = (
    "INSERT OR IGNORE INTO ohlc_cache "
    "(symbol, timeframe, time, open, high, low, close, volume) "
    "VALUES (?, ?, ?, ?, ?, ?, ?, ?)"
)


def _tf_key(timeframe: Timeframe | str) -> str:
    return Timeframe.parse(timeframe).value


def window(bars: Sequence[Bar], before_time: Optional[UnixMillis], limit: int) -> list[Bar]:
    """The newest `limit` bars of an ascending series, optionally strictly before a time."""
    if before_time is not None:
        bars = [b for b in bars if b.time < before_time]
    return list(bars[-limit:]) if limit > 0 else []


class WindowedCache:
    def __init__(
        self,
        config: Optional[CacheConfig] = None,
        *,
        sanitize_on_ingest: bool = True,
        telemetry: Optional[Telemetry] = None,
    ) -> None:
        self._config = config or CacheConfig()
        self._sanitize = sanitize_on_ingest
        self._telemetry: Telemetry = telemetry or NullTelemetry()
        self._conn: Optional[aiosqlite.Connection] = None
        self._locks: dict[tuple[str, str], asyncio.Lock] = {}

    # --- Lifecycle ---

    @property
    def config(self) -> CacheConfig:
        return self._config

    @property
    def is_connected(self) -> bool:
        return self._conn is not None

    async def connect(self) -> None:
        """Open the database, apply pragmas and create the table."""
        if self._conn is not None:
            return
        db_path = str(self._config.db_path)
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        # autocommit mode; transactions are opened explicitly in _write_batches()
        conn = await aiosqlite.connect(db_path, isolation_level=None)
        try:
            await conn.execute(f"PRAGMA journal_mode={self._config.journal_mode}")
            await conn.execute(f"PRAGMA synchronous={self._config.synchronous}")
            for stmt in _SCHEMA:
                await conn.execute(stmt)
        except aiosqlite.Error:
            await conn.close()
            raise
        self._conn = conn
        logger.info("Cache connected: %s", db_path)

    async def close(self) -> None:
        if self._conn is not None:
            await self._conn.close()
            self._conn = None
            logger.info("Cache connection closed")

    async def __aenter__(self) -> WindowedCache:
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    def require_connection(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise CacheUnavailable("Cache store is not connected", component="cache")
        return self._conn

    def _unavailable(self, op: str, symbol: str, timeframe: str) -> None:
        logger.warning("Cache not connected; %s skipped for %s/%s", op, symbol, timeframe)
        self._telemetry.log(
            "CACHE_UNAVAILABLE", component="cache", op=op, symbol=symbol, timeframe=timeframe
        )

    def _lock_for(self, symbol: str, tf: str) -> asyncio.Lock:
        key = (symbol, tf)
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    # --- Queries ---

    async def _query(self, sql: str, params: Iterable[Any] = ()) -> list[Any]:
        conn = self.require_connection()

        async def run() -> list[Any]:
            async with conn.execute(sql, tuple(params)) as cursor:
                return list(await cursor.fetchall())

        try:
            return await asyncio.wait_for(run(), timeout=self._config.query_timeout_s)
        except asyncio.TimeoutError as exc:
            raise CacheTimeout(
                "Cache query timed out",
                component="cache",
                details={"timeout_s": self._config.query_timeout_s},
            ) from exc

    async def _select_window(
        self, symbol: str, tf: str, before_time: Optional[UnixMillis], limit: int
    ) -> list[Bar]:
        sql = (
            "SELECT time, open, high, low, close, volume FROM ohlc_cache "
            "WHERE symbol = ? AND timeframe = ?"
        )
        params: list[Any] = [symbol, tf]
        if before_time is not None:
            sql += " AND time < ?"
            params.append(before_time)
        sql += " ORDER BY time DESC LIMIT ?"
        params.append(limit)

        rows = await self._query(sql, params)
        rows.reverse()
        return [
            Bar(time=r[0], open=r[1], high=r[2], low=r[3], close=r[4], volume=r[5]) for r in rows
        ]

    async def has_rows(self, symbol: str, timeframe: Timeframe | str) -> bool:
        rows = await self._query(
            "SELECT 1 FROM ohlc_cache WHERE symbol = ? AND timeframe = ? LIMIT 1",
            (symbol, _tf_key(timeframe)),
        )
        return bool(rows)

    async def count(
        self, symbol: Optional[str] = None, timeframe: Optional[Timeframe | str] = None
    ) -> int:
        where, params = self._key_filter(symbol, timeframe)
        rows = await self._query(f"SELECT COUNT(*) FROM ohlc_cache{where}", params)
        return int(rows[0][0])

    async def symbols(self) -> list[tuple[str, str]]:
        """Distinct (symbol, timeframe) keys held in the cache."""
        rows = await self._query(
            "SELECT DISTINCT symbol, timeframe FROM ohlc_cache ORDER BY symbol, timeframe"
        )
        return [(r[0], r[1]) for r in rows]

    @staticmethod
    def _key_filter(
        symbol: Optional[str], timeframe: Optional[Timeframe | str]
    ) -> tuple[str, list[Any]]:
        clauses: list[str] = []
        params: list[Any] = []
        if symbol is not None:
            clauses.append("symbol = ?")
            params.append(symbol)
        if timeframe is not None:
            clauses.append("timeframe = ?")
            params.append(_tf_key(timeframe))
        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
        return where, params

    # --- Read path ---

    async def fetch(
        self,
        symbol: str,
        timeframe: Timeframe | str,
        before_time: Optional[UnixMillis] = None,
        limit: Optional[int] = None,
        source_path: Optional[str | Path] = None,
    ) -> list[Bar]:
        """
        Newest `limit` bars for (symbol, timeframe), ascending, optionally strictly
        before `before_time`.

        When the key has no rows at all and `source_path` is given, the file is
        ingested first and the window is cut from the freshly parsed bars. Returns
        [] when the store is not connected.
        """
        tf = _tf_key(timeframe)
        if self._conn is None:
            self._unavailable("fetch", symbol, tf)
            return []
        if limit is None:
            limit = self._config.default_limit
        # sqlite reads a negative LIMIT as unbounded
        limit = max(int(limit), 0)

        bars = await self._select_window(symbol, tf, before_time, limit)
        if bars:
            self._telemetry.log(
                "CACHE_HIT", component="cache", symbol=symbol, timeframe=tf, rows=len(bars)
            )
            return bars

        if source_path is None or await self.has_rows(symbol, tf):
            # empty window over a populated key, or nothing to ingest from
            return bars

        self._telemetry.log(
            "CACHE_MISS", component="cache", symbol=symbol, timeframe=tf, source=str(source_path)
        )
        parsed, report = await self.ingest_file(symbol, tf, source_path, if_empty=True)
        if report.skipped:
            return await self._select_window(symbol, tf, before_time, limit)
        return window(parsed, before_time, limit)

    # --- Write path ---

    async def ingest(
        self, symbol: str, timeframe: Timeframe | str, bars: Sequence[Bar]
    ) -> IngestReport:
        """Batch-insert `bars` under (symbol, timeframe). Existing rows are kept."""
        tf = _tf_key(timeframe)
        if self._conn is None:
            self._unavailable("ingest", symbol, tf)
            return IngestReport(symbol, tf, len(bars), 0, 0, skipped=True)
        async with self._lock_for(symbol, tf):
            return await self._write_batches(symbol, tf, bars)

    async def ingest_file(
        self,
        symbol: str,
        timeframe: Timeframe | str,
        path: str | Path,
        *,
        if_empty: bool = False,
    ) -> tuple[list[Bar], IngestReport]:
        """
        Parse (and sanitize) a whole file off the event loop, then ingest it.

        With `if_empty`, the ingest is skipped when the key already has rows once
        the per-key lock is held, so concurrent misses ingest only once.
        """
        tf_enum = Timeframe.parse(timeframe)
        tf = tf_enum.value
        if self._conn is None:
            self._unavailable("ingest", symbol, tf)
            return [], IngestReport(symbol, tf, 0, 0, 0, skipped=True)

        async with self._lock_for(symbol, tf):
            if if_empty and await self.has_rows(symbol, tf):
                logger.debug("ingest_file: %s/%s already cached, skipping", symbol, tf)
                return [], IngestReport(symbol, tf, 0, 0, 0, skipped=True)

            bars = await self._load_source(Path(path), tf_enum.duration_ms)
            report = await self._write_batches(symbol, tf, bars)
            return bars, report

    async def _load_source(self, path: Path, duration_ms: int) -> list[Bar]:
        if not path.is_file():
            raise SourceUnavailable("Source file not found", path=str(path), component="cache")

        def work() -> list[Bar]:
            bars = parse_file(path)
            if self._sanitize:
                bars, _ = sanitize(bars, duration_ms, self._telemetry)
            return bars

        try:
            return await asyncio.wait_for(
                asyncio.to_thread(work), timeout=self._config.ingest_timeout_s
            )
        except asyncio.TimeoutError as exc:
            raise CacheTimeout(
                f"Parsing {path} for ingest timed out",
                component="cache",
                details={"timeout_s": self._config.ingest_timeout_s},
            ) from exc

    async def _insert_batch(self, conn: aiosqlite.Connection, rows: list[tuple]) -> int:
        cursor = await conn.executemany(_INSERT, rows)
        return max(cursor.rowcount, 0)

    async def _write_batches(self, symbol: str, tf: str, bars: Sequence[Bar]) -> IngestReport:
        conn = self.require_connection()
        batch_size = self._config.batch_size
        self._telemetry.log(
            "CACHE_INGEST_BEGIN", component="cache", symbol=symbol, timeframe=tf, rows=len(bars)
        )

        committed = 0
        chunks = 0
        for start in range(0, len(bars), batch_size):
            rows = [(symbol, tf, *b.as_row()) for b in bars[start : start + batch_size]]
            try:
                await conn.execute("BEGIN")
                inserted = await self._insert_batch(conn, rows)
                await conn.execute("COMMIT")
            except (aiosqlite.Error, asyncio.CancelledError) as exc:
                if conn.in_transaction:
                    await conn.execute("ROLLBACK")
                if isinstance(exc, asyncio.CancelledError):
                    raise
                self._telemetry.log(
                    "CACHE_INGEST_FAILED",
                    component="cache",
                    symbol=symbol,
                    timeframe=tf,
                    rows_committed=committed,
                    error=str(exc),
                )
                raise IngestFailure(
                    f"Ingest aborted after {chunks} committed batches",
                    symbol=symbol,
                    timeframe=tf,
                    rows_committed=committed,
                    component="cache",
                ) from exc
            committed += inserted
            chunks += 1

        self._telemetry.log(
            "CACHE_INGEST_OK",
            component="cache",
            symbol=symbol,
            timeframe=tf,
            rows_parsed=len(bars),
            rows_committed=committed,
            chunks=chunks,
        )
        return IngestReport(
            symbol=symbol,
            timeframe=tf,
            rows_parsed=len(bars),
            rows_committed=committed,
            chunks_committed=chunks,
        )

    # --- Administration ---

    async def purge(
        self, symbol: Optional[str] = None, timeframe: Optional[Timeframe | str] = None
    ) -> int:
        """Delete cached rows, optionally restricted to a symbol and/or timeframe."""
        conn = self.require_connection()
        where, params = self._key_filter(symbol, timeframe)
        cursor = await conn.execute(f"DELETE FROM ohlc_cache{where}", params)
        deleted = max(cursor.rowcount, 0)
        await cursor.close()
        self._telemetry.log(
            "CACHE_PURGE", component="cache", symbol=symbol, timeframe=timeframe, rows=deleted
        )
        return deleted
