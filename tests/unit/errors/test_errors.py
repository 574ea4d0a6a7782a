"""
Unit tests for the exception hierarchy.
"""

import pytest

from barreplay.errors.errors import (
    BarReplayError,
    CacheTimeout,
    CacheUnavailable,
    ConfigurationError,
    IngestFailure,
    ReadTimeout,
    ReplayError,
    SourceUnavailable,
)


class TestErrors:
    @pytest.mark.parametrize(
        "exc_type",
        [
            SourceUnavailable,
            ReadTimeout,
            IngestFailure,
            CacheUnavailable,
            CacheTimeout,
            ConfigurationError,
            ReplayError,
        ],
    )
    def test_all_derive_from_base(self, exc_type) -> None:
        assert issubclass(exc_type, BarReplayError)

    def test_str_includes_component_and_details(self) -> None:
        exc = BarReplayError("boom", component="cache", details={"rows": 3})
        assert str(exc) == "boom [component=cache] [details={'rows': 3}]"
        assert str(BarReplayError("plain")) == "plain"

    def test_source_unavailable_keeps_path(self) -> None:
        exc = SourceUnavailable("gone", path="/data/a.csv", component="reader")
        assert exc.path == "/data/a.csv"
        assert "/data/a.csv" in str(exc)

    def test_read_timeout_keeps_timeout(self) -> None:
        exc = ReadTimeout("slow", timeout_s=2.5)
        assert exc.timeout_s == 2.5
        assert exc.details["timeout_s"] == 2.5

    def test_ingest_failure_reports_committed_rows(self) -> None:
        exc = IngestFailure("aborted", symbol="EURUSD", timeframe="1m", rows_committed=14)
        assert exc.rows_committed == 14
        assert exc.details == {"symbol": "EURUSD", "timeframe": "1m", "rows_committed": 14}

    def test_configuration_error_field(self) -> None:
        exc = ConfigurationError("bad", field="cache.batch_size", value=0)
        assert exc.field == "cache.batch_size"
        assert exc.details == {"field": "cache.batch_size", "value": 0}
