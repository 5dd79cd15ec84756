"""Tests for filters.py - name patterns and element exclusion."""

import pytest

from metrics_reporter.config import ReporterConfig
from metrics_reporter.filters import (
    ElementFilters,
    NamePatternSet,
    split_patterns,
    wildcard_regex,
)
from metrics_reporter.models import CodeElementKind, MemberKind, ParsedCodeElement


def _element(kind, fqn, parent=None, assembly="Calc.Core", member_kind=None):
    return ParsedCodeElement(
        kind=kind,
        name=fqn.rsplit(".", 1)[-1],
        fully_qualified_name=fqn,
        parent_fully_qualified_name=parent,
        containing_assembly_name=assembly,
        member_kind=member_kind,
    )


class TestSplitPatterns:
    def test_separators(self):
        assert split_patterns("A.*; *.Tests ,") == ["A.*", "*.Tests"]

    def test_empty(self):
        assert split_patterns(None) == []
        assert split_patterns("") == []


class TestWildcardRegex:
    def test_star_and_question_mark(self):
        assert wildcard_regex("*.Tests").match("Calc.Tests")
        assert wildcard_regex("Calc.?").match("Calc.A")
        assert not wildcard_regex("Calc.?").match("Calc.AB")

    def test_literal_characters_escaped(self):
        assert not wildcard_regex("a+b").match("aab")
        assert wildcard_regex("<Run>b__*").match("<Run>b__0_1")


class TestNamePatternSet:
    def test_empty_matches_nothing(self):
        patterns = NamePatternSet("")
        assert not patterns
        assert not patterns.matches("anything")

    def test_substring_by_default(self):
        assert NamePatternSet("Generated").matches("NS.GeneratedCode")

    def test_exact(self):
        patterns = NamePatternSet("Add", exact=True)
        assert patterns.matches("Add")
        assert not patterns.matches("AddRange")

    def test_ignore_case(self):
        assert NamePatternSet("calc.*", ignore_case=True).matches("Calc.Core")
        assert not NamePatternSet("calc.*").matches("Calc.Core")

    def test_leading_dot(self):
        patterns = NamePatternSet(".cctor", exact=True, strip_leading_dot=True)
        assert patterns.matches(".cctor")
        assert patterns.matches("cctor")
        assert not patterns.matches(".ctor")


class TestElementFilters:
    def test_default_members(self):
        filters = ElementFilters.create()
        assert filters.excludes_member("NS.T..ctor(...)")
        assert filters.excludes_member("NS.T..cctor(...)")
        assert filters.excludes_member("NS.T.<Run>b__4_0(...)")
        assert not filters.excludes_member("NS.T.Run(...)")

    def test_none_excludes_nothing(self):
        filters = ElementFilters.none()
        member = _element(CodeElementKind.MEMBER, "NS.T..ctor(...)", parent="NS.T")
        assert not filters.excludes(member)
        assert not filters.excludes_kind(MemberKind.METHOD)

    def test_member_of_excluded_type(self):
        filters = ElementFilters.create(excluded_types="*.Generated*")
        member = _element(CodeElementKind.MEMBER, "NS.Generated.Parser.Run(...)")
        assert filters.excludes(member)
        assert filters.excludes(_element(CodeElementKind.TYPE, "NS.Generated.Parser"))
        assert not filters.excludes(_element(CodeElementKind.TYPE, "NS.Parser"))

    @pytest.mark.parametrize(
        "kind, fqn",
        [
            (CodeElementKind.ASSEMBLY, "Calc.Tests"),
            (CodeElementKind.NAMESPACE, "Calc.Tests.Unit"),
            (CodeElementKind.TYPE, "Calc.Tests.Unit.CalculatorTests"),
        ],
    )
    def test_excluded_assembly(self, kind, fqn):
        filters = ElementFilters.create(excluded_assemblies="*.tests")
        assembly = None if kind is CodeElementKind.ASSEMBLY else "Calc.Tests"
        assert filters.excludes(_element(kind, fqn, assembly=assembly))

    def test_placeholders_never_excluded(self):
        filters = ElementFilters.create(excluded_types="<", excluded_assemblies="<")
        assert not filters.excludes_type("<unknown-type>")
        assert not filters.excludes_assembly("<unknown-assembly>")

    def test_kinds(self):
        filters = ElementFilters.create(exclude_fields=True, exclude_events=True)
        assert filters.excluded_kinds == frozenset({MemberKind.FIELD, MemberKind.EVENT})
        assert not filters.excludes_kind(None)

    def test_from_config(self):
        config = ReporterConfig(
            excluded_members="Dispose", excluded_types="Legacy", exclude_methods=True
        )
        filters = ElementFilters.from_config(config)
        assert filters.excludes_member("NS.T.Dispose(...)")
        assert not filters.excludes_member("NS.T..ctor(...)")
        assert filters.excludes_type("NS.LegacyParser")
        assert filters.excludes_kind(MemberKind.METHOD)
