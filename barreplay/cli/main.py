"""barreplay CLI entrypoint.

Subcommands:
  inspect FILE              parse + sanitize, print stats and the detected timeframe
  resample FILE -t TF       write bars aggregated to TF as CSV
  ingest FILE -t TF         batch-ingest a file into the SQLite cache
  fetch -s SYMBOL -t TF     print a window of cached bars as CSV
  replay FILE [-t TF]       tail-first load, then replay on a simulated or wall clock

Common options: --config FILE (TOML), --set KEY=VALUE (repeatable), --telemetry PATH
(JSONL event sink).
"""

from __future__ import annotations

import argparse
import asyncio
import csv
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Sequence, TextIO

from barreplay.adapters.telemetry.basic import LoggingTelemetry
from barreplay.adapters.telemetry.jsonl import JsonlTelemetry
from barreplay.cache.store import WindowedCache
from barreplay.config.config_loader import ConfigLoader
from barreplay.config.configs import AppConfig, RunContext
from barreplay.core.clock import RealtimeClock, SimClock
from barreplay.core.timeframe import Timeframe, detect_timeframe
from barreplay.core.utility import format_duration
from barreplay.data.frames import write_csv
from barreplay.data.parser import parse_file
from barreplay.data.reader import ChunkedFileReader
from barreplay.data.resampler import resample
from barreplay.data.sanitizer import sanitize
from barreplay.data.symbols import base_symbol_name, symbol_id
from barreplay.errors.errors import BarReplayError
from barreplay.ports.telemetry import Telemetry
from barreplay.replay.engine import ReplayEngine
from barreplay.replay.loop import ReplayLoop
from barreplay.types.types import Bar, ReplayState, ReplayTick, SyncPoint

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """
    Return the top-level CLI argument parser.
    """
    p = argparse.ArgumentParser(prog="barreplay")
    sub = p.add_subparsers(dest="command", required=True)

    def add_common(sp: argparse.ArgumentParser) -> None:
        sp.add_argument("--config", type=Path, required=False, help="TOML config file")
        sp.add_argument(
            "--set",
            dest="config_overrides",
            action="append",
            default=[],
            metavar="KEY=VALUE",
            help="Override a config entry (may be repeated)",
        )
        sp.add_argument("--telemetry", type=Path, default=None, help="JSONL telemetry sink")

    sp = sub.add_parser("inspect", help="Parse and sanitize a file, print stats")
    add_common(sp)
    sp.add_argument("file", type=Path)
    sp.add_argument("-t", "--timeframe", default=None, help="Base timeframe (default: detect)")

    sp = sub.add_parser("resample", help="Aggregate a file to a coarser timeframe")
    add_common(sp)
    sp.add_argument("file", type=Path)
    sp.add_argument("-t", "--timeframe", required=True)
    sp.add_argument("--base", default=None, help="Base timeframe of the file (default: detect)")
    sp.add_argument("--out", type=Path, default=None, help="Output CSV (default: stdout)")

    sp = sub.add_parser("ingest", help="Ingest a file into the cache")
    add_common(sp)
    sp.add_argument("file", type=Path)
    sp.add_argument("-t", "--timeframe", required=True)
    sp.add_argument("-s", "--symbol", default=None, help="Cache symbol (default: from file name)")
    sp.add_argument("--db", type=Path, default=None, help="SQLite path (overrides cache.db_path)")

    sp = sub.add_parser("fetch", help="Print cached bars")
    add_common(sp)
    sp.add_argument("-s", "--symbol", required=True)
    sp.add_argument("-t", "--timeframe", required=True)
    sp.add_argument("--db", type=Path, default=None, help="SQLite path (overrides cache.db_path)")
    sp.add_argument("--before", type=int, default=None, help="Only bars strictly before (ms)")
    sp.add_argument("--limit", type=int, default=None)
    sp.add_argument("--source", type=Path, default=None, help="File to ingest on a cache miss")

    sp = sub.add_parser("replay", help="Replay a file bar by bar")
    add_common(sp)
    sp.add_argument("file", type=Path)
    sp.add_argument(
        "-t", "--timeframe", default=None, help="Replay timeframe (default: replay.timeframe)"
    )
    sp.add_argument("--start-index", type=int, default=0)
    sp.add_argument("--speed", type=float, default=None)
    sp.add_argument("--frame-ms", type=int, default=None)
    sp.add_argument("--wall-clock", action="store_true", help="Pace frames in real time")
    return p


# --- Wiring ---


def build_telemetry(
    cfg: AppConfig, run_ctx: RunContext, sink_override: Optional[Path] = None
) -> Telemetry:
    sink = sink_override or cfg.telemetry.sink_path
    if sink is not None:
        return JsonlTelemetry(run_id=run_ctx.run_id, sink_path=Path(sink), component="cli")
    return LoggingTelemetry(level=logging.DEBUG)


def _iso(ms: int) -> str:
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).isoformat()


def _load_bars(
    path: Path, cfg: AppConfig, base: Optional[str], telemetry: Telemetry
) -> tuple[list[Bar], Timeframe]:
    bars = parse_file(path)
    tf = Timeframe.parse(base) if base else detect_timeframe(bars)
    telemetry.log("PARSE_CHUNK", component="cli", path=str(path), bars=len(bars))
    if cfg.sanitizer.enabled:
        bars, _ = sanitize(bars, tf.duration_ms, telemetry)
    return bars, tf


def _print_bars(bars: Sequence[Bar], out: TextIO) -> None:
    writer = csv.writer(out, lineterminator="\n")
    writer.writerow(["time", "open", "high", "low", "close", "volume"])
    for b in bars:
        writer.writerow(b.as_row())


# --- Commands ---


def cmd_inspect(args: argparse.Namespace, cfg: AppConfig, telemetry: Telemetry) -> int:
    raw = parse_file(args.file)
    if not raw:
        print(f"[!] No bars parsed from {args.file}", file=sys.stderr)
        return 1
    tf = Timeframe.parse(args.timeframe) if args.timeframe else detect_timeframe(raw)
    bars, stats = sanitize(raw, tf.duration_ms, telemetry)

    print(f"file:       {args.file}")
    print(f"symbol:     {base_symbol_name(args.file.name)}")
    print(f"timeframe:  {tf.value}")
    print(f"bars:       {len(raw)} parsed, {len(bars)} after sanitize")
    print(f"range:      {_iso(bars[0].time)} .. {_iso(bars[-1].time)}")
    print(f"span:       {format_duration(bars[-1].time - bars[0].time)}")
    for key, value in stats.as_dict().items():
        print(f"{key + ':':<12}{value}")
    return 0


def cmd_resample(args: argparse.Namespace, cfg: AppConfig, telemetry: Telemetry) -> int:
    bars, base = _load_bars(args.file, cfg, args.base, telemetry)
    out = resample(bars, args.timeframe, base=base)
    if args.out is not None:
        args.out.parent.mkdir(parents=True, exist_ok=True)
        write_csv(out, args.out)
        print(f"{len(out)} bars written to {args.out}")
    else:
        _print_bars(out, sys.stdout)
    return 0


async def _ingest(args: argparse.Namespace, cfg: AppConfig, telemetry: Telemetry) -> int:
    symbol = args.symbol or symbol_id(args.file.name, args.file.parent.name or None)
    async with WindowedCache(
        cfg.cache, sanitize_on_ingest=cfg.sanitizer.enabled, telemetry=telemetry
    ) as cache:
        _, report = await cache.ingest_file(symbol, args.timeframe, args.file)
        total = await cache.count(symbol, args.timeframe)
    print(
        f"{report.symbol}/{report.timeframe}: parsed={report.rows_parsed} "
        f"committed={report.rows_committed} batches={report.chunks_committed} cached={total}"
    )
    return 0


async def _fetch(args: argparse.Namespace, cfg: AppConfig, telemetry: Telemetry) -> int:
    async with WindowedCache(
        cfg.cache, sanitize_on_ingest=cfg.sanitizer.enabled, telemetry=telemetry
    ) as cache:
        bars = await cache.fetch(
            args.symbol,
            args.timeframe,
            before_time=args.before,
            limit=args.limit,
            source_path=args.source,
        )
    _print_bars(bars, sys.stdout)
    return 0


class _PrintCompleted:
    """Prints each completed bar of a headless replay."""

    def __init__(self, out: TextIO) -> None:
        self._out = out

    def on_tick(self, tick: ReplayTick) -> None:
        if tick.bar_complete:
            b = tick.bar
            print(
                f"{tick.index}\t{_iso(b.time)}\t{b.open}\t{b.high}\t{b.low}\t{b.close}",
                file=self._out,
            )

    def on_pause(self, sync: Optional[SyncPoint]) -> None:
        return None

    def on_complete(self, state: ReplayState) -> None:
        print(f"replay complete at index {state.index}", file=self._out)


async def _read_tail_first(path: Path, cfg: AppConfig, telemetry: Telemetry) -> list[Bar]:
    reader = ChunkedFileReader(
        chunk_bytes=cfg.reader.chunk_bytes,
        read_timeout_s=cfg.reader.read_timeout_s,
        telemetry=telemetry,
    )
    bars, state = await reader.open_tail(path)
    bars = await reader.backfill_until(
        state, bars, 0, max_attempts=cfg.reader.backfill_max_attempts
    )
    if state.has_more:
        logger.warning(
            "%s: stopped after %d backfill windows with %d bytes unread; "
            "replaying the newest %d bars only (raise reader.backfill_max_attempts "
            "or reader.chunk_bytes to load more)",
            path,
            cfg.reader.backfill_max_attempts,
            state.cursor,
            len(bars),
        )
    return bars


async def _replay(args: argparse.Namespace, cfg: AppConfig, telemetry: Telemetry) -> int:
    bars = await _read_tail_first(args.file, cfg, telemetry)
    if not bars:
        print(f"[!] No bars parsed from {args.file}", file=sys.stderr)
        return 1
    base = detect_timeframe(bars)
    if cfg.sanitizer.enabled:
        bars, _ = sanitize(bars, base.duration_ms, telemetry)
    timeframe = Timeframe.parse(args.timeframe) if args.timeframe else cfg.replay.timeframe
    series = resample(bars, timeframe, base=base)

    engine = ReplayEngine(
        timeframe,
        speed=args.speed or cfg.replay.speed,
        realtime=cfg.replay.realtime,
        telemetry=telemetry,
    )
    engine.add_observer(_PrintCompleted(sys.stdout))
    engine.start(series, args.start_index)

    clock = RealtimeClock() if args.wall_clock else SimClock()
    loop = ReplayLoop(engine, clock, args.frame_ms or cfg.replay.frame_interval_ms)
    await loop.start()
    return 0


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint wrapper compatible with setuptools scripts."""
    args = build_parser().parse_args(argv)

    try:
        cfg = ConfigLoader().load_app_config(args.config, args.config_overrides)
        if getattr(args, "db", None) is not None:
            cache_cfg = cfg.cache.model_copy(update={"db_path": args.db})
            cfg = cfg.model_copy(update={"cache": cache_cfg})
    except (FileNotFoundError, BarReplayError) as exc:
        print(f"[!] {exc}", file=sys.stderr)
        return 1

    logging.basicConfig(level=cfg.telemetry.level, format="%(levelname)s %(name)s: %(message)s")
    run_ctx = RunContext(run_id=f"{args.command}_{datetime.now(timezone.utc):%Y%m%d-%H%M%S}")
    telemetry = build_telemetry(cfg, run_ctx, args.telemetry)
    logger.debug("run %s: %s", run_ctx.run_id, cfg.model_dump(mode="json"))

    try:
        if args.command == "inspect":
            return cmd_inspect(args, cfg, telemetry)
        if args.command == "resample":
            return cmd_resample(args, cfg, telemetry)
        if args.command == "ingest":
            return asyncio.run(_ingest(args, cfg, telemetry))
        if args.command == "fetch":
            return asyncio.run(_fetch(args, cfg, telemetry))
        if args.command == "replay":
            return asyncio.run(_replay(args, cfg, telemetry))
    except KeyboardInterrupt:
        print("Interrupted by user.")
        return 130
    except (OSError, BarReplayError, ValueError) as exc:
        print(f"[!] {args.command} failed: {exc}", file=sys.stderr)
        return 1

    print(f"[!] Unknown command {args.command!r}", file=sys.stderr)
    return 2


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
