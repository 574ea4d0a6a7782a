"""
Unit tests for the local FileSource adapter.
"""

import pytest

from barreplay.adapters.local_file import LocalFileSource
from barreplay.errors.errors import SourceUnavailable
from barreplay.ports.file_source import FileDetails


class TestLocalFileSource:
    def test_details(self, tmp_path) -> None:
        path = tmp_path / "bars.csv"
        path.write_bytes(b"0123456789")
        source = LocalFileSource()

        assert source.details(path) == FileDetails(exists=True, size=10)
        assert source.details(tmp_path / "missing.csv") == FileDetails(exists=False, size=0)

    def test_byte_range_reads(self, tmp_path) -> None:
        path = tmp_path / "bars.csv"
        path.write_bytes(b"0123456789")
        source = LocalFileSource()

        assert source.read(path, 0, 4) == b"0123"
        assert source.read(path, 6, 4) == b"6789"
        assert source.read(path, 8, 100) == b"89"
        assert source.read(path, 10, 5) == b""

    def test_negative_range_rejected(self, tmp_path) -> None:
        path = tmp_path / "bars.csv"
        path.write_bytes(b"x")
        with pytest.raises(ValueError):
            LocalFileSource().read(path, -1, 1)

    def test_missing_file(self, tmp_path) -> None:
        with pytest.raises(SourceUnavailable) as excinfo:
            LocalFileSource().read(tmp_path / "gone.csv", 0, 1)
        assert excinfo.value.path.endswith("gone.csv")
