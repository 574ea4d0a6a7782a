"""File Source Port Interface.

Contract: byte-range reads and a size/existence probe over a local file. The chunked
reader only ever talks to a file through this port.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Protocol


@dataclass(frozen=True)
class FileDetails:
    exists: bool
    size: int


class FileSource(Protocol):
    def details(self, path: Path) -> FileDetails:
        """Existence and size in bytes (size 0 when missing)."""
        ...

    def read(self, path: Path, offset: int, length: int) -> bytes:
        """Read at most `length` bytes starting at `offset`."""
        ...
