"""Tests for the exceptions package - messages and details."""

from pathlib import Path

from metrics_reporter.exceptions import (
    DocumentParseError,
    DuplicateSymbolError,
    FileAccessError,
    InvalidConfigError,
    MetricsReporterError,
    OperationCancelledError,
)


class TestMetricsReporterError:
    def test_plain_message(self):
        error = MetricsReporterError("Nothing to do")
        assert str(error) == "Nothing to do"
        assert error.path is None
        assert error.summary() == "Nothing to do"

    def test_details_stringified_and_none_dropped(self):
        error = MetricsReporterError("Bad value", {"count": 3, "hint": None})
        assert error.details == {"count": "3"}
        assert str(error) == "Bad value (count=3)"

    def test_path_listed_first(self):
        path = Path("in/calc.sarif")
        error = DocumentParseError(path, "SARIF", "no runs")
        message = f"Failed to parse SARIF document: {path}"
        assert str(error) == f"{message} (filepath={path}, format=SARIF, reason=no runs)"
        assert error.path == str(path)
        assert error.summary() == f"{message}: no runs"

    def test_path_moved_ahead_of_other_details(self):
        error = MetricsReporterError("Copy failed", {"reason": "read-only", "path": "b.json"})
        assert str(error) == "Copy failed (path=b.json, reason=read-only)"


class TestErrorFamilies:
    def test_file_access(self):
        error = FileAccessError(Path("out/report.json"), "disk full")
        assert isinstance(error, MetricsReporterError)
        assert error.reason == "disk full"
        assert error.summary().endswith(": disk full")

    def test_duplicate_symbols(self):
        error = DuplicateSymbolError([("NS.T", "a.xml", "b.xml"), ("NS.U", "a.xml", "c.xml")])
        assert error.details == {"collisions": "2", "first": "NS.T"}
        assert error.path is None

    def test_cancelled(self):
        assert OperationCancelledError("aggregation").details == {"stage": "aggregation"}

    def test_invalid_config(self):
        error = InvalidConfigError("workers", 0, "must be positive")
        assert error.details["value"] == "0"
