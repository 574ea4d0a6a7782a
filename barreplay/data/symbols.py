"""
Symbol naming from data file names.

Exports are usually named like `EURUSD_1h.csv`, `btc-usdt m5.txt` or `SPX_daily.csv`.
The timeframe token is stripped to get the base symbol, which keys the cache and
lets a caller find the sibling file for another timeframe.
"""

from __future__ import annotations

import re
from pathlib import PurePath
from typing import Iterable, Optional

from barreplay.core.timeframe import Timeframe

_EXTENSION = re.compile(r"\.(csv|txt|json)$", re.IGNORECASE)
_EDGE_SEPARATORS = re.compile(r"^[_\-\s]+|[_\-\s]+$")


def _token(body: str) -> re.Pattern[str]:
    return re.compile(rf"(?:^|[\W_]){body}(?:[\W_]|$)", re.IGNORECASE)


TF_PATTERNS: dict[Timeframe, tuple[re.Pattern[str], ...]] = {
    Timeframe.M1: (_token(r"(1m|1mn)(?:in)?"), re.compile(r"m1$", re.I), re.compile(r"_1$")),
    Timeframe.M5: (_token(r"5m(?:in)?"), re.compile(r"m5$", re.I), re.compile(r"_5$")),
    Timeframe.M15: (_token(r"15m(?:in)?"), re.compile(r"m15$", re.I), re.compile(r"_15$")),
    Timeframe.H1: (
        _token(r"1h(?:r)?"),
        _token(r"60m(?:in)?"),
        re.compile(r"h1$", re.I),
        re.compile(r"_60$"),
    ),
    Timeframe.H4: (
        _token(r"4h(?:r)?"),
        _token(r"240m(?:in)?"),
        re.compile(r"h4$", re.I),
        re.compile(r"_240$"),
    ),
    Timeframe.D1: (
        _token(r"1d(?:ay)?"),
        re.compile(r"d1$", re.I),
        re.compile(r"daily", re.I),
        re.compile(r"_1440$"),
    ),
    Timeframe.W1: (_token(r"1w(?:eek)?"), re.compile(r"w1$", re.I), re.compile(r"weekly", re.I)),
}


def base_symbol_name(filename: str) -> str:
    """'eurusd_1h.csv' -> 'EURUSD'"""
    name = _EXTENSION.sub("", filename)
    for patterns in TF_PATTERNS.values():
        for pattern in patterns:
            name = pattern.sub("", name, count=1)
    return _EDGE_SEPARATORS.sub("", name).upper()


def symbol_id(filename: str, folder: Optional[str] = None) -> str:
    """
    Cache key for a file. Files inside a named folder get the folder as prefix
    (`FX/eurusd_1h.csv` -> 'FX_EURUSD') unless the folder is '.', 'assets' or
    already the symbol itself.
    """
    base = base_symbol_name(filename)
    if folder and folder != "." and folder.lower() != "assets":
        clean = re.split(r"[\\/]", folder)[-1].upper()
        if clean and clean != base:
            return f"{clean}_{base}"
    return base


def _hash32(text: str) -> int:
    # 31 * h + ord(ch), wrapped to a signed 32-bit integer
    h = 0
    for ch in text:
        h = (h * 31 + ord(ch)) & 0xFFFFFFFF
    return h - (1 << 32) if h >= (1 << 31) else h


def source_id(path: str, kind: str = "local") -> str:
    """
    Stable id for a data source: `<kind>_<hex hash of dir/base symbol>`. Files for
    different timeframes of the same symbol in the same directory share an id.
    """
    if not path:
        return "anonymous_source"
    parts = re.split(r"[\\/]", path)
    filename = parts.pop()
    dir_path = "/".join(parts)
    base = base_symbol_name(filename)
    key = f"{dir_path}/{base}" if dir_path else base
    h = _hash32(key)
    return f"{kind}_{'-' if h < 0 else ''}{abs(h):x}"


def find_file_for_timeframe(
    names: Iterable[str | PurePath],
    current: str,
    timeframe: Timeframe,
) -> Optional[str | PurePath]:
    """
    First entry in `names` that belongs to the same symbol as `current` and carries
    a token for `timeframe`. Entries may be plain names or paths. None if nothing
    matches or the timeframe has no known tokens.
    """
    current_base = base_symbol_name(current)
    patterns = TF_PATTERNS.get(timeframe, ())
    for entry in names:
        name = PurePath(entry).name if isinstance(entry, PurePath) else entry
        file_base = base_symbol_name(name)
        same_symbol = (
            file_base == current_base
            or file_base == ""
            or (current_base != "" and current_base in name.upper())
        )
        if same_symbol and any(p.search(name) for p in patterns):
            return entry
    return None
