"""Local filesystem adapter for the FileSource port."""

from __future__ import annotations

import os
from pathlib import Path

from barreplay.errors.errors import SourceUnavailable
from barreplay.ports.file_source import FileDetails


class LocalFileSource:
    """Byte-range reads from the local disk."""

    def details(self, path: Path) -> FileDetails:
        try:
            st = os.stat(path)
        except OSError:
            return FileDetails(exists=False, size=0)
        return FileDetails(exists=True, size=int(st.st_size))

    def read(self, path: Path, offset: int, length: int) -> bytes:
        if offset < 0 or length < 0:
            raise ValueError(f"read: offset/length must be >= 0 (got {offset}, {length})")
        try:
            with open(path, "rb") as fh:
                fh.seek(offset)
                return fh.read(length)
        except FileNotFoundError as exc:
            raise SourceUnavailable(
                "Source file disappeared", path=str(path), component="LocalFileSource"
            ) from exc
