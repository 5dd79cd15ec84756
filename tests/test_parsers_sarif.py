"""Tests for parsers/sarif.py - analyzer findings to violation elements."""

import json
from decimal import Decimal

import pytest

from metrics_reporter.exceptions import DocumentParseError
from metrics_reporter.models import CodeElementKind, MetricIdentifier
from metrics_reporter.parsers import SarifParser
from metrics_reporter.parsers.sarif import resolve_rule_metric, uri_to_path


def _sarif(results, rules=None):
    run = {"tool": {"driver": {"name": "csc", "rules": rules or []}}, "results": results}
    return json.dumps({"version": "2.1.0", "runs": [run]}).encode()


def _result(rule_id, uri=None, start=None, end=None, message="finding"):
    result = {"ruleId": rule_id, "message": {"text": message}}
    if uri is not None:
        region = {}
        if start is not None:
            region["startLine"] = start
        if end is not None:
            region["endLine"] = end
        result["locations"] = [
            {"physicalLocation": {"artifactLocation": {"uri": uri}, "region": region}}
        ]
    return result


class TestResolveRuleMetric:
    @pytest.mark.parametrize(
        "rule_id, expected",
        [
            ("CA1822", MetricIdentifier.SARIF_CA_RULE_VIOLATIONS),
            ("ca2000", MetricIdentifier.SARIF_CA_RULE_VIOLATIONS),
            ("IDE0059", MetricIdentifier.SARIF_IDE_RULE_VIOLATIONS),
            ("CS8618", None),
            ("", None),
        ],
    )
    def test_prefixes(self, rule_id, expected):
        assert resolve_rule_metric(rule_id) is expected


class TestUriToPath:
    def test_windows_drive(self):
        path = uri_to_path("file:///C:/src/Calc.Core/Calculator.cs")
        assert path == "C:/src/Calc.Core/Calculator.cs"

    def test_escaped_characters(self):
        assert uri_to_path("file:///home/dev/My%20Project/A.cs") == "/home/dev/My Project/A.cs"

    def test_unc_host(self):
        assert uri_to_path("file://build01/share/A.cs") == "//build01/share/A.cs"

    def test_relative_uri_unchanged(self):
        assert uri_to_path("src/Calc.Core/Calculator.cs") == "src/Calc.Core/Calculator.cs"


class TestSarifSample:
    @pytest.fixture
    def document(self, sarif_log):
        return SarifParser().parse(sarif_log)

    def test_only_ca_and_ide_results(self, document):
        assert [e.name for e in document.elements] == ["CA1822", "IDE0059", "IDE0005"]

    def test_findings_have_no_identity(self, document):
        for element in document.elements:
            assert element.kind is CodeElementKind.MEMBER
            assert element.fully_qualified_name is None

    def test_violation_count_and_breakdown(self, document):
        finding = document.elements[0]
        metric = finding.metrics[MetricIdentifier.SARIF_CA_RULE_VIOLATIONS]
        assert metric.value == Decimal(1)
        entry = metric.breakdown["CA1822"]
        assert entry.count == 1
        violation = entry.violations[0]
        assert violation.uri == "file:///C:/src/Calc.Core/Calculator.cs"
        assert (violation.start_line, violation.end_line) == (11, 11)
        assert violation.message.startswith("Member 'Add'")

    def test_source_location(self, document):
        finding = document.elements[1]
        assert finding.source.path == "C:/src/Calc.Core/Calculator.cs"
        assert finding.source.start_line == 19

    def test_result_without_location_is_skipped(self, document):
        assert "CA1014" not in [e.name for e in document.elements]
        assert all(e.source is not None for e in document.elements)

    def test_rule_catalog(self, document):
        assert sorted(document.rule_descriptions) == ["CA1014", "CA1822", "IDE0005", "IDE0059"]
        ca1822 = document.rule_descriptions["CA1822"]
        assert ca1822.short_description == "Mark members as static"
        assert ca1822.category == "Performance"
        assert ca1822.help_uri.endswith("/ca1822")


class TestSarifEdgeCases:
    def test_end_line_defaults_to_start(self):
        content = _sarif([_result("CA1000", "file:///C:/a.cs", start=4)])
        finding = SarifParser().parse_content(content, "a.sarif").elements[0]
        assert (finding.source.start_line, finding.source.end_line) == (4, 4)

    def test_location_without_region(self):
        content = _sarif([_result("IDE0001", "file:///C:/a.cs")])
        finding = SarifParser().parse_content(content, "a.sarif").elements[0]
        assert finding.source.path == "C:/a.cs"
        assert finding.source.start_line is None

    def test_results_without_a_file_are_skipped(self):
        logical_only = {
            "ruleId": "CA1014",
            "message": {"text": "assembly wide"},
            "locations": [{"logicalLocations": [{"fullyQualifiedName": "Calc.Core"}]}],
        }
        content = _sarif(
            [_result("CA1000"), logical_only, _result("IDE0001", "file:///C:/a.cs", 2)]
        )
        document = SarifParser().parse_content(content, "a.sarif")
        assert [e.name for e in document.elements] == ["IDE0001"]

    def test_result_without_rule_id_is_skipped(self):
        content = _sarif([{"message": {"text": "no rule"}}])
        assert SarifParser().parse_content(content, "a.sarif").elements == ()

    def test_missing_runs(self):
        document = SarifParser().parse_content(b'{"version": "2.1.0"}', "a.sarif")
        assert document.elements == ()

    def test_utf8_bom(self):
        content = "\ufeff".encode("utf-8") + _sarif([_result("CA1000", "file:///C:/a.cs", 1)])
        assert len(SarifParser().parse_content(content, "a.sarif").elements) == 1

    def test_invalid_json(self):
        with pytest.raises(DocumentParseError):
            SarifParser().parse_content(b"{runs: [", "a.sarif")
