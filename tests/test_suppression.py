"""Tests for the suppression package - C# scanning and binding to the tree."""

import logging
import shutil
import threading
from decimal import Decimal

import pytest

from metrics_reporter.aggregation.tree import MetricsNode, MetricsTree
from metrics_reporter.exceptions import OperationCancelledError
from metrics_reporter.models import (
    CodeElementKind,
    MetricIdentifier,
    MetricValue,
    SuppressedSymbolInfo,
)
from metrics_reporter.suppression import (
    SuppressedSymbolsAnalyzer,
    analyze_source,
    attach_suppressions,
    bind_suppressions,
    map_rule_to_metric,
    normalize_target,
    resolve_assembly_name,
    resolve_metric,
)
from metrics_reporter.suppression.analyzer import ATTRIBUTE_QUERY
from metrics_reporter.suppression.attributes import (
    concatenated_string,
    read_attribute,
    read_suppress_message,
    string_value,
)
from metrics_reporter.suppression.syntax import CSharpParser

CA = MetricIdentifier.SARIF_CA_RULE_VIOLATIONS
IDE = MetricIdentifier.SARIF_IDE_RULE_VIOLATIONS

CART_SOURCE = """
using System.Collections.Generic;
using System.Diagnostics.CodeAnalysis;

namespace Shop.Orders;

public class Cart
{
    // [SuppressMessage("Style", "IDE0001")]
    [SuppressMessage("Microsoft.Design", "CA1024")]
    public List<Item> GetItems() => items;

    public class Line
    {
        [SuppressMessage("Style", "IDE0032")]
        public int Quantity { get; set; } = 1;
    }

    [SuppressMessage("Microsoft.Design", "CA1000")]
    public static T Create<T>() where T : new() { return new T(); }

    [SuppressMessage("Naming", "CA1707")]
    public void Clear_All() { }
}
"""


def _pairs(results):
    return [(s.fully_qualified_name, s.rule_id) for s in results]


def _attribute(source):
    """First attribute of ``source``, placed on a class so the file parses."""
    parser = CSharpParser()
    tree = parser.parse(f"{source}\nclass Holder {{ }}".encode())
    node, _ = parser.query(tree, ATTRIBUTE_QUERY)[0]
    return read_attribute(node)


def _justification(expression):
    usage = _attribute(f'[SuppressMessage("Style", "IDE0001", Justification = {expression})]')
    return usage.named["Justification"]


class TestAttributeArguments:
    def test_escapes(self):
        assert string_value(_justification(r'"a\tb\"c"')) == 'a\tb"c'

    def test_unicode_escape(self):
        assert string_value(_justification(r'"caf\u00e9"')) == "caf\u00e9"

    def test_verbatim_string(self):
        assert string_value(_justification('@"C:\\dir ""quoted"""')) == 'C:\\dir "quoted"'

    def test_raw_string(self):
        assert string_value(_justification('"""\n    hello\n    """')) == "hello"

    def test_interpolated_string_has_no_value(self):
        node = _justification('$"{Reason}"')
        assert string_value(node) is None
        assert concatenated_string(node) is None

    def test_parenthesized_concatenation(self):
        assert concatenated_string(_justification('"a" + ("b" + "c")')) == "abc"

    def test_non_string_operand(self):
        assert concatenated_string(_justification('"a" + Reasons.B')) is None

    def test_argument_positions(self):
        usage = _attribute(
            '[SuppressMessage("Style", "IDE0001", Scope = "member", Target = "~M:NS.T.Run")]'
        )
        assert [string_value(node) for node in usage.positional] == ["Style", "IDE0001"]
        assert sorted(usage.named) == ["Scope", "Target"]
        assert usage.target is None
        assert usage.line == 1

    def test_named_parameter_is_positional(self):
        usage = _attribute('[SuppressMessage(category: "Style", checkId: "IDE0001")]')
        assert read_suppress_message(usage).rule_id == "IDE0001"


class TestReadSuppressMessage:
    def test_full_attribute(self):
        usage = _attribute(
            '[SuppressMessage("Microsoft.Design", "CA1000:DoNotDeclareStatic", '
            'Justification = "Factory")]'
        )
        message = read_suppress_message(usage)
        assert message.category == "Microsoft.Design"
        assert message.rule_id == "CA1000"
        assert message.justification == "Factory"

    def test_qualified_attribute_name(self):
        usage = _attribute(
            '[System.Diagnostics.CodeAnalysis.SuppressMessageAttribute("Style", "IDE0001")]'
        )
        assert read_suppress_message(usage).rule_id == "IDE0001"

    def test_metric_name_category_accepted(self):
        usage = _attribute('[SuppressMessage("RoslynClassCoupling", "CA1506")]')
        assert read_suppress_message(usage) is not None

    def test_unknown_category_rejected(self):
        assert read_suppress_message(_attribute('[SuppressMessage("Naming", "CA1707")]')) is None

    def test_missing_check_id(self):
        assert read_suppress_message(_attribute('[SuppressMessage("Style")]')) is None
        assert read_suppress_message(_attribute('[SuppressMessage("Style", "")]')) is None

    def test_non_literal_justification(self):
        usage = _attribute('[SuppressMessage("Style", "IDE0001", Justification = nameof(X))]')
        assert read_suppress_message(usage).justification is None

    def test_other_attributes_ignored(self):
        assert read_suppress_message(_attribute('[Obsolete("old", "new")]')) is None

    def test_scope_and_target(self):
        usage = _attribute(
            '[assembly: SuppressMessage("Style", "IDE0001", Scope = "member", '
            'Target = "~M:NS.T.Run")]'
        )
        assert usage.is_global
        message = read_suppress_message(usage)
        assert (message.scope, message.target) == ("member", "~M:NS.T.Run")


class TestNormalizeTarget:
    @pytest.mark.parametrize(
        "target, expected",
        [
            ("~T:NS.Outer+Inner", "NS.Outer.Inner"),
            ("~T:NS.Repo`1", "NS.Repo"),
            ("~M:NS.T.Run(System.Int32)", "NS.T.Run(...)"),
            ("~M:NS.T.Run", "NS.T.Run(...)"),
            ("~M:NS.T.#ctor(System.Int32)", "NS.T..ctor(...)"),
            ("~M:NS.T.#cctor", "NS.T..cctor(...)"),
            ("~m:NS.T.Run(System.String)", "NS.T.Run(...)"),
            ("~P:NS.T.Name", None),
            ("~N:NS", None),
            ("T:NS.T", None),
            ("~T:", None),
            ("", None),
            (None, None),
        ],
    )
    def test_forms(self, target, expected):
        assert normalize_target(target) == expected


class TestMapRuleToMetric:
    def test_structural_rules(self):
        assert map_rule_to_metric("CA1502") is MetricIdentifier.ROSLYN_CYCLOMATIC_COMPLEXITY
        assert map_rule_to_metric("ca1506:Coupling") is MetricIdentifier.ROSLYN_CLASS_COUPLING
        assert map_rule_to_metric("CA1505") is MetricIdentifier.ROSLYN_MAINTAINABILITY_INDEX
        assert map_rule_to_metric("CA1501") is MetricIdentifier.ROSLYN_DEPTH_OF_INHERITANCE

    def test_other_rules(self):
        assert map_rule_to_metric("IDE0059") is None
        assert map_rule_to_metric("CA1822") is None
        assert map_rule_to_metric(" ") is None


class TestAnalyzeSource:
    def test_calculator_fixture(self, fixtures_dir):
        text = (fixtures_dir / "src" / "Calc.Core" / "Calculator.cs").read_text()
        results = analyze_source(text, "src/Calc.Core/Calculator.cs")
        assert _pairs(results) == [
            ("Calc.Core.Calculator", "CA1506"),
            ("Calc.Core.Calculator.Add(...)", "CA1502"),
            ("Calc.Core.Calculator.Divide(...)", "IDE0059"),
        ]
        assert [s.metric for s in results] == [
            MetricIdentifier.ROSLYN_CLASS_COUPLING,
            MetricIdentifier.ROSLYN_CYCLOMATIC_COMPLEXITY,
            None,
        ]
        assert [s.justification for s in results] == [
            "Facade over the engine",
            "Lookup table",
            None,
        ]

    def test_declarations(self):
        assert _pairs(analyze_source(CART_SOURCE)) == [
            ("Shop.Orders.Cart.GetItems(...)", "CA1024"),
            ("Shop.Orders.Cart.Line.Quantity", "IDE0032"),
            ("Shop.Orders.Cart.Create(...)", "CA1000"),
        ]

    def test_type_level_attribute(self):
        source = """
        namespace A.B {
            [SuppressMessage("Microsoft.Maintainability", "CA1506")]
            internal sealed partial class Engine<T> : Base<T>, IDisposable { }
        }
        """
        assert _pairs(analyze_source(source)) == [("A.B.Engine", "CA1506")]

    def test_unsupported_global_scope(self):
        source = (
            '[assembly: SuppressMessage("Microsoft.Design", "CA1020", '
            'Scope = "namespace", Target = "~N:Shop")]'
        )
        assert analyze_source(source) == []

    def test_attribute_outside_a_type(self):
        source = '[SuppressMessage("Style", "IDE0001")]\nnamespace A { }'
        assert analyze_source(source) == []

    def test_method_bodies_are_skipped(self):
        source = """
        class C
        {
            void Run()
            {
                if (x) { var y = new[] { 1, 2 }; }
            }

            [SuppressMessage("Style", "IDE0002")]
            void After() { }
        }
        """
        assert _pairs(analyze_source(source)) == [("C.After(...)", "IDE0002")]

    def test_commented_out_and_string_attributes_ignored(self):
        source = """
        class C
        {
            /* [SuppressMessage("Style", "IDE0001")] */
            string Text = "[SuppressMessage(\\"Style\\", \\"IDE0002\\")]";

            [SuppressMessage("Style", "IDE0003")]
            void Run() { }
        }
        """
        assert _pairs(analyze_source(source)) == [("C.Run(...)", "IDE0003")]

    def test_constructors_and_finalizer(self):
        source = """
        namespace Shop {
            class Cart {
                [SuppressMessage("Style", "IDE0001")]
                public Cart(int size) { }
                [SuppressMessage("Style", "IDE0002")]
                static Cart() { }
                [SuppressMessage("Style", "IDE0003")]
                ~Cart() { }
            }
        }
        """
        assert _pairs(analyze_source(source)) == [
            ("Shop.Cart..ctor(...)", "IDE0001"),
            ("Shop.Cart..cctor(...)", "IDE0002"),
            ("Shop.Cart.Finalize(...)", "IDE0003"),
        ]

    def test_fields_and_events(self):
        source = """
        class Pool
        {
            [SuppressMessage("Style", "IDE0044")]
            private int size, capacity = 4;

            [SuppressMessage("Style", "IDE0051")]
            public event EventHandler Drained;
        }
        """
        assert _pairs(analyze_source(source)) == [
            ("Pool.size", "IDE0044"),
            ("Pool.capacity", "IDE0044"),
            ("Pool.Drained", "IDE0051"),
        ]

    def test_non_declaration_targets_ignored(self):
        source = """
        class C
        {
            [return: SuppressMessage("Style", "IDE0001")]
            int Run([SuppressMessage("Style", "IDE0002")] int x) => x;

            int Total { [SuppressMessage("Style", "IDE0003")] get; set; }
        }
        """
        assert analyze_source(source) == []

    def test_nested_and_verbatim_names(self):
        source = """
        namespace Outer.Inner
        {
            namespace Deep
            {
                struct @event
                {
                    record Entry
                    {
                        [SuppressMessage("Style", "IDE0001")]
                        void Log() { }
                    }
                }
            }
        }
        """
        expected = [("Outer.Inner.Deep.event.Entry.Log(...)", "IDE0001")]
        assert _pairs(analyze_source(source)) == expected

    def test_conditional_compilation(self):
        source = """
        class C
        {
        #if DEBUG
            [SuppressMessage("Style", "IDE0001")]
            void Trace() { }
        #endif
        }
        """
        assert _pairs(analyze_source(source)) == [("C.Trace(...)", "IDE0001")]

    def test_parser_reused(self):
        parser = CSharpParser()
        first = analyze_source(CART_SOURCE, "a.cs", parser)
        second = analyze_source(CART_SOURCE, "b.cs", parser)
        assert _pairs(first) == _pairs(second)


class TestResolveAssemblyName:
    def test_longest_folder_wins(self):
        folders = ["src", "src/Tools"]
        assert resolve_assembly_name("src/Tools/Reporter/File.cs", folders) == "Reporter"
        assert resolve_assembly_name("src/App/Program.cs", folders) == "App"

    def test_backslashes(self):
        assert resolve_assembly_name("src\\App\\Program.cs", ["src"]) == "App"

    def test_unmatched_folder_uses_first_segment(self):
        assert resolve_assembly_name("lib/Core/A.cs", ["src"]) == "lib"

    def test_file_directly_in_folder(self):
        assert resolve_assembly_name("src/Program.cs", ["src"]) is None


class TestSuppressedSymbolsAnalyzer:
    @pytest.fixture
    def solution(self, tmp_path, fixtures_dir):
        core = tmp_path / "src" / "Calc.Core"
        core.mkdir(parents=True)
        shutil.copy(fixtures_dir / "src" / "Calc.Core" / "Calculator.cs", core)

        generated = core / "obj" / "Debug"
        generated.mkdir(parents=True)
        (generated / "Generated.cs").write_text(
            'class G { [SuppressMessage("Style", "IDE0001")] void M() { } }'
        )

        legacy = tmp_path / "src" / "Legacy.Tests"
        legacy.mkdir()
        (legacy / "Old.cs").write_text(
            'class Old { [SuppressMessage("Style", "IDE0002")] void M() { } }'
        )
        return tmp_path

    def test_bin_and_obj_skipped(self, solution):
        analyzer = SuppressedSymbolsAnalyzer(solution, ["src"])
        relative = [rel for _, rel in analyzer.iter_source_files()]
        assert relative == ["src/Calc.Core/Calculator.cs", "src/Legacy.Tests/Old.cs"]

    def test_overlapping_folders_deduplicated(self, solution):
        analyzer = SuppressedSymbolsAnalyzer(solution, ["src", "src/Calc.Core", ""])
        assert len(analyzer.iter_source_files()) == 2

    def test_excluded_assemblies(self, solution):
        analyzer = SuppressedSymbolsAnalyzer(solution, ["src"], excluded_assemblies=["*.tests"])
        results = analyzer.analyze()
        assert len(results) == 3
        assert all(s.fully_qualified_name.startswith("Calc.Core.") for s in results)

    def test_missing_folder_warns(self, solution, caplog):
        analyzer = SuppressedSymbolsAnalyzer(solution, ["src", "missing"])
        with caplog.at_level(logging.WARNING, logger="metrics_reporter"):
            results = analyzer.analyze()
        assert len(results) == 4
        assert "Source folder not found" in caplog.text

    def test_cancellation(self, solution):
        event = threading.Event()
        event.set()
        with pytest.raises(OperationCancelledError):
            SuppressedSymbolsAnalyzer(solution, ["src"]).analyze(event)

    def test_analyze_safely_swallows_scan_errors(self, solution, monkeypatch):
        def broken(text, relative_path="", parser=None):
            raise ValueError("bad source")

        monkeypatch.setattr("metrics_reporter.suppression.analyzer.analyze_source", broken)
        assert SuppressedSymbolsAnalyzer(solution, ["src"]).analyze_safely() == []

    def test_analyze_safely_skips_only_the_failing_file(self, solution, monkeypatch, caplog):
        original = analyze_source

        def flaky(text, relative_path="", parser=None):
            if relative_path.endswith("Old.cs"):
                raise ValueError("bad source")
            return original(text, relative_path, parser)

        monkeypatch.setattr("metrics_reporter.suppression.analyzer.analyze_source", flaky)
        with caplog.at_level(logging.WARNING, logger="metrics_reporter"):
            results = SuppressedSymbolsAnalyzer(solution, ["src"]).analyze_safely()
        assert len(results) == 3
        assert all(s.fully_qualified_name.startswith("Calc.Core.") for s in results)
        assert "src/Legacy.Tests/Old.cs" in caplog.text

    def test_unreadable_file_skipped(self, solution, monkeypatch):
        analyzer = SuppressedSymbolsAnalyzer(solution, ["src"])
        original = analyzer.analyze_file

        def unreadable(path, relative):
            if relative.endswith("Calculator.cs"):
                raise PermissionError(13, "Permission denied", str(path))
            return original(path, relative)

        monkeypatch.setattr(analyzer, "analyze_file", unreadable)
        assert _pairs(analyzer.analyze_safely()) == [("Old.M(...)", "IDE0002")]
        with pytest.raises(PermissionError):
            analyzer.analyze()

    def test_analyze_safely_propagates_cancellation(self, solution):
        event = threading.Event()
        event.set()
        with pytest.raises(OperationCancelledError):
            SuppressedSymbolsAnalyzer(solution, ["src"]).analyze_safely(event)


def _tree_with_members(**members):
    """Tree with members of ``NS.T``; values map metric -> count."""
    tree = MetricsTree()
    tree.add(MetricsNode(kind=CodeElementKind.TYPE, name="T", fully_qualified_name="NS.T"))
    for name, metrics in members.items():
        tree.add(
            MetricsNode(
                kind=CodeElementKind.MEMBER,
                name=name,
                fully_qualified_name=f"NS.T.{name}(...)",
                parent_fully_qualified_name="NS.T",
                metrics={k: MetricValue(Decimal(v)) for k, v in metrics.items()},
            )
        )
    return tree


class TestResolveMetric:
    def test_prefix_preferred(self):
        tree = _tree_with_members(Run={CA: 1, IDE: 2})
        node = tree.find_symbol("NS.T.Run(...)")
        assert resolve_metric(node, "CA1822") is CA
        assert resolve_metric(node, "ide0059") is IDE

    def test_fallback_order(self):
        tree = _tree_with_members(Run={CA: 1}, Stop={IDE: 1, CA: 1})
        assert resolve_metric(tree.find_symbol("NS.T.Run(...)"), "IDE0059") is CA
        assert resolve_metric(tree.find_symbol("NS.T.Stop(...)"), "S1144") is IDE

    def test_no_violation_metrics(self):
        tree = _tree_with_members(Run={MetricIdentifier.ROSLYN_CYCLOMATIC_COMPLEXITY: 3})
        assert resolve_metric(tree.find_symbol("NS.T.Run(...)"), "IDE0059") is None


class TestBindSuppressions:
    def test_binds_unresolved_entries(self):
        tree = _tree_with_members(Run={IDE: 1})
        open_entry = SuppressedSymbolInfo("NS.T.Run(...)", "IDE0059")
        mapped = SuppressedSymbolInfo(
            "NS.T.Run(...)", "CA1502", MetricIdentifier.ROSLYN_CYCLOMATIC_COMPLEXITY
        )
        unknown = SuppressedSymbolInfo("NS.T.Gone(...)", "IDE0059")

        assert bind_suppressions(tree, [open_entry, mapped, unknown]) == 1
        assert open_entry.metric is IDE
        assert mapped.metric is MetricIdentifier.ROSLYN_CYCLOMATIC_COMPLEXITY
        assert unknown.metric is None


class TestAttachSuppressions:
    def test_attaches_once(self):
        tree = _tree_with_members(Run={IDE: 1})
        entry = SuppressedSymbolInfo("NS.T.Run(...)", "IDE0059", IDE)
        duplicate = SuppressedSymbolInfo("NS.T.Run(...)", "IDE0059", IDE)
        type_entry = SuppressedSymbolInfo("NS.T", "CA1506")
        missing = SuppressedSymbolInfo("NS.Gone", "CA1506")

        assert attach_suppressions(tree, [entry, duplicate, type_entry, missing]) == 2
        run = tree.find_symbol("NS.T.Run(...)")
        assert run.suppressions == [entry]
        assert run.is_suppressed
        assert run.suppressed_metrics() == {IDE}
        assert tree.find_symbol("NS.T").suppressions == [type_entry]
