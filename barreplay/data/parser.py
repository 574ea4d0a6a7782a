"""
Line-oriented OHLCV CSV parsing.

Each line is classified on its own, so files that mix delimiters or layouts still
parse. The decision table:

    delimiter   ';' if present in the line, else ','
    layout      field0 is YYYYMMDD or YYYY[-/.]MM[-/.]DD  AND field1 contains ':'
                    -> DATE_TIME: date, time, open, high, low, close[, volume]
                otherwise
                    -> STAMP:     datetime_or_epoch, open, high, low, close[, volume]
    timestamp   calendar parse of the (joined) date text, naive = UTC
                else bare number: < 1e10 -> seconds (x1000), otherwise milliseconds

Malformed lines are never an error: parse_line() returns a Rejected value and
parse_chunk() drops it.
"""

from __future__ import annotations

import datetime as dt
import math
import re
from enum import Enum
from pathlib import Path
from typing import Iterable, Optional

from barreplay.data.series import merge_bars
from barreplay.types.types import Bar, Rejected, RejectReason

_SECONDS_THRESHOLD = 10_000_000_000
_MIN_FIELDS = 5
_DATE_PATTERN = re.compile(r"^(?:\d{8}|\d{4}[.\-/]\d{2}[.\-/]\d{2})$")
_DATE_SEPARATORS = re.compile(r"[.\-/]")
_SEPARATED_DATE = re.compile(r"^(\d{4})[./](\d{1,2})[./](\d{1,2})(?:[ T](.*))?$")


class Layout(str, Enum):
    DATE_TIME = "date_time"  # date, time, o, h, l, c[, v]
    STAMP = "stamp"  # datetime_or_epoch, o, h, l, c[, v]


# --- Decision table ---


def detect_delimiter(line: str) -> str:
    return ";" if ";" in line else ","


def detect_layout(fields: list[str]) -> Layout:
    f0 = fields[0].strip()
    f1 = fields[1].strip()
    if _DATE_PATTERN.match(f0) and ":" in f1:
        return Layout.DATE_TIME
    return Layout.STAMP


def join_date_time(date_text: str, time_text: str) -> str:
    """'20240101' / '2024.01.01' + '09:30:00' -> '2024-01-01T09:30:00'"""
    digits = _DATE_SEPARATORS.sub("", date_text.strip())
    if len(digits) == 8:
        digits = f"{digits[0:4]}-{digits[4:6]}-{digits[6:8]}"
    return f"{digits}T{time_text.strip()}"


def resolve_timestamp(text: str) -> Optional[int]:
    """
    Epoch milliseconds for a calendar string or a bare epoch number; None when the
    text is neither or resolves to a non-positive / non-finite value.
    """
    text = text.strip()
    ts = _calendar_ms(text)
    if ts is None:
        number = _to_float(text)
        if number is None:
            return None
        ts_f = number * 1000 if number < _SECONDS_THRESHOLD else number
        if not math.isfinite(ts_f):
            return None
        ts = int(ts_f)
    if ts <= 0:
        return None
    return ts


def _calendar_ms(text: str) -> Optional[int]:
    # bare epoch digits are not dates, even where fromisoformat would accept them
    if text.isdigit() and len(text) != 8:
        return None
    text = _normalize_date(text)
    try:
        parsed = dt.datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=dt.timezone.utc)
    return int(parsed.timestamp() * 1000)


def _normalize_date(text: str) -> str:
    """'2024.01.01 09:30' / '2024/1/2' -> '2024-01-01T09:30' / '2024-01-02'"""
    match = _SEPARATED_DATE.match(text)
    if match is None:
        return text
    year, month, day, rest = match.groups()
    date_text = f"{year}-{int(month):02d}-{int(day):02d}"
    return f"{date_text}T{rest.strip()}" if rest else date_text


def _to_float(text: str) -> Optional[float]:
    try:
        value = float(text.strip())
    except (TypeError, ValueError):
        return None
    return value


def _finite(text: Optional[str]) -> Optional[float]:
    if text is None:
        return None
    value = _to_float(text)
    if value is None or not math.isfinite(value):
        return None
    return value


# --- Public API ---


def parse_line(line: str) -> Bar | Rejected:
    stripped = line.strip() if line else ""
    if not stripped:
        return Rejected(RejectReason.EMPTY, line or "")
    if not stripped[0].isdigit():
        return Rejected(RejectReason.NOT_NUMERIC, line)

    fields = stripped.split(detect_delimiter(stripped))
    if len(fields) < _MIN_FIELDS:
        return Rejected(RejectReason.TOO_FEW_FIELDS, line)

    def at(i: int) -> Optional[str]:
        return fields[i] if i < len(fields) else None

    if detect_layout(fields) is Layout.DATE_TIME:
        stamp = join_date_time(fields[0], fields[1])
        o, h, l_, c, v = at(2), at(3), at(4), at(5), at(6)
    else:
        stamp = fields[0]
        o, h, l_, c, v = at(1), at(2), at(3), at(4), at(5)

    open_ = _finite(o)
    close = _finite(c)
    if open_ is None or close is None:
        return Rejected(RejectReason.BAD_PRICE, line)

    ts = resolve_timestamp(stamp)
    if ts is None:
        return Rejected(RejectReason.BAD_TIMESTAMP, line)

    high = _finite(h)
    low = _finite(l_)
    volume = _finite(v)
    return Bar(
        time=ts,
        open=open_,
        high=high if high is not None else max(open_, close),
        low=low if low is not None else min(open_, close),
        close=close,
        volume=volume if volume is not None else 0.0,
    )


def parse_chunk(lines: Iterable[str]) -> list[Bar]:
    """
    Parse every line, drop rejections, keep encounter order. Sorting is the caller's
    job since chunk boundaries need not be chronological.
    """
    out: list[Bar] = []
    for line in lines:
        parsed = parse_line(line)
        if isinstance(parsed, Bar):
            out.append(parsed)
    return out


def parse_text(text: str) -> list[Bar]:
    return parse_chunk(text.split("\n"))


def parse_file(path: str | Path, encoding: str = "utf-8") -> list[Bar]:
    """
    Parse a whole file. Returns ascending, de-duplicated bars (first occurrence of a
    timestamp wins).
    """
    with open(path, "r", encoding=encoding, errors="replace", newline="") as fh:
        bars = parse_chunk(fh)
    return merge_bars(bars)
