"""
Backward, bounded-window reading of a bar file.

open_tail() reads the newest `chunk_bytes` of a file; load_previous_chunk() then walks
toward byte 0 one window at a time. A window that does not start at byte 0 almost
always begins mid-line, so its first fragment is held back as `leftover` and joined
onto the end of the *older* window on the next call:

    file:      [ .... window k+1 .... | .... window k .... | ... tail window ... ]
    leftover:                          ^ first fragment of window k
    next read: bytes(window k+1) + leftover(k)  -> split on b"\\n"

Leftover stays bytes until joined, so a UTF-8 character split across two windows is
decoded whole.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional, Sequence

from barreplay.adapters.local_file import LocalFileSource
from barreplay.adapters.telemetry.basic import NullTelemetry
from barreplay.data.parser import parse_chunk
from barreplay.data.sanitizer import sanitize
from barreplay.data.series import merge_bars
from barreplay.errors.errors import ReadTimeout, SourceUnavailable
from barreplay.ports.file_source import FileSource
from barreplay.ports.telemetry import Telemetry
from barreplay.types.aliases import UnixMillis
from barreplay.types.types import Bar, ChunkResult, FileStreamState

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_BYTES = 1 << 20


def split_window(data: bytes, starts_at_zero: bool) -> tuple[bytes, list[str]]:
    """
    Split a window into (leftover, complete lines). The first fragment is leftover
    unless the window starts at byte 0.
    """
    pieces = data.split(b"\n")
    leftover = b""
    if not starts_at_zero:
        leftover, pieces = pieces[0], pieces[1:]
    return leftover, [p.decode("utf-8", errors="replace") for p in pieces]


class ChunkedFileReader:
    def __init__(
        self,
        source: Optional[FileSource] = None,
        *,
        chunk_bytes: int = DEFAULT_CHUNK_BYTES,
        read_timeout_s: Optional[float] = 10.0,
        telemetry: Optional[Telemetry] = None,
    ) -> None:
        if chunk_bytes <= 0:
            raise ValueError(f"chunk_bytes must be > 0, got {chunk_bytes}")
        self._source: FileSource = source or LocalFileSource()
        self._chunk_bytes = chunk_bytes
        self._read_timeout_s = read_timeout_s
        self._telemetry: Telemetry = telemetry or NullTelemetry()

    async def _read(self, path: Path, offset: int, length: int) -> bytes:
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self._source.read, path, offset, length),
                timeout=self._read_timeout_s,
            )
        except asyncio.TimeoutError as exc:
            raise ReadTimeout(
                f"Reading {length} bytes at {offset} from {path} timed out",
                timeout_s=self._read_timeout_s,
                component="reader",
            ) from exc

    async def open_tail(
        self,
        path: str | Path,
        chunk_bytes: Optional[int] = None,
    ) -> tuple[list[Bar], FileStreamState]:
        """
        Read the last window of `path` and parse it.

        Returns ascending bars and the stream state for further backfill. Raises
        SourceUnavailable if the file does not exist.
        """
        path = Path(path)
        chunk = chunk_bytes or self._chunk_bytes
        info = self._source.details(path)
        if not info.exists:
            raise SourceUnavailable("Source file not found", path=str(path), component="reader")

        start = max(0, info.size - chunk)
        data = await self._read(path, start, info.size - start)
        leftover, lines = split_window(data, starts_at_zero=start == 0)
        bars = sorted(parse_chunk(lines), key=lambda b: b.time)

        state = FileStreamState(
            path=path,
            chunk_bytes=chunk,
            cursor=start,
            leftover=leftover,
            has_more=start > 0,
            file_size=info.size,
        )
        self._telemetry.log(
            "READER_OPEN_TAIL",
            component="reader",
            path=str(path),
            file_size=info.size,
            cursor=start,
            bars=len(bars),
        )
        return bars, state

    async def load_previous_chunk(self, state: FileStreamState) -> Optional[ChunkResult]:
        """
        Read the window just before `state.cursor` and advance the state.

        Returns None when history is exhausted or another read on this state is in
        flight. Points come back in file order; merge them with merge_bars().
        """
        if not state.has_more or state.is_loading:
            return None

        state.is_loading = True
        try:
            end = state.cursor
            start = max(0, end - state.chunk_bytes)
            older = await self._read(state.path, start, end - start)
            new_leftover, lines = split_window(older + state.leftover, starts_at_zero=start == 0)
            points = parse_chunk(lines)
        finally:
            state.is_loading = False

        state.cursor = start
        state.leftover = new_leftover
        state.has_more = start > 0
        self._telemetry.log(
            "READER_BACKFILL",
            component="reader",
            path=str(state.path),
            cursor=start,
            bars=len(points),
            has_more=state.has_more,
        )
        return ChunkResult(
            new_points=points,
            new_cursor=start,
            new_leftover=new_leftover,
            has_more=state.has_more,
        )

    async def backfill_until(
        self,
        state: FileStreamState,
        bars: Sequence[Bar],
        target_time: UnixMillis,
        *,
        bucket_duration_ms: Optional[int] = None,
        max_attempts: int = 50,
    ) -> list[Bar]:
        """
        Load older windows until the series reaches back to `target_time`, history
        runs out, or `max_attempts` windows were read. With `bucket_duration_ms`
        each window is sanitized before merging.
        """
        series = list(bars)
        attempts = 0
        while state.has_more and attempts < max_attempts:
            if series and series[0].time <= target_time:
                break
            result = await self.load_previous_chunk(state)
            if result is None:
                break
            points = sorted(result.new_points, key=lambda b: b.time)
            if bucket_duration_ms is not None:
                points, _ = sanitize(points, bucket_duration_ms, self._telemetry)
            series = merge_bars(points, series)
            attempts += 1

        if series:
            logger.debug(
                "backfill_until: %d bars from %s after %d windows",
                len(series),
                series[0].time,
                attempts,
            )
        return series
