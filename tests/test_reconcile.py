"""Tests for aggregation/reconcile.py - folding generated and nested coverage types."""

from decimal import Decimal

from metrics_reporter.aggregation.reconcile import (
    backfill_type_sources,
    fold_iterator_types,
    fold_plain_nested_types,
    total_coverage,
)
from metrics_reporter.aggregation.tree import MetricsNode, MetricsTree
from metrics_reporter.models import CodeElementKind, MetricIdentifier, MetricValue, SourceLocation

SEQ = MetricIdentifier.OPENCOVER_SEQUENCE_COVERAGE
BRANCH = MetricIdentifier.OPENCOVER_BRANCH_COVERAGE
CC = MetricIdentifier.OPENCOVER_CYCLOMATIC_COMPLEXITY
MI = MetricIdentifier.ROSLYN_MAINTAINABILITY_INDEX


def _type(tree, fqn, seq=None, source=None):
    metrics = {SEQ: MetricValue(Decimal(seq))} if seq is not None else {}
    return tree.add(
        MetricsNode(
            kind=CodeElementKind.TYPE,
            name=fqn,
            fully_qualified_name=fqn,
            parent_fully_qualified_name="NS",
            source=source,
            metrics=metrics,
        )
    )


def _member(tree, type_fqn, name, seq=None, source=None, extra=None):
    metrics = {SEQ: MetricValue(Decimal(seq))} if seq is not None else {}
    metrics.update(extra or {})
    fqn = f"{type_fqn}.{name}"
    return tree.add(
        MetricsNode(
            kind=CodeElementKind.MEMBER,
            name=name,
            fully_qualified_name=fqn,
            parent_fully_qualified_name=type_fqn,
            source=source,
            metrics=metrics,
        )
    )


class TestTotalCoverage:
    def test_sums_sequence_and_branch(self):
        node = MetricsNode(kind=CodeElementKind.MEMBER, name="m", fully_qualified_name="m")
        assert total_coverage(node) == 0
        node.metrics[SEQ] = MetricValue(Decimal("40"))
        node.metrics[BRANCH] = MetricValue(Decimal("25.5"))
        node.metrics[CC] = MetricValue(Decimal("9"))
        assert total_coverage(node) == Decimal("65.5")


class TestFoldIteratorTypes:
    def test_coverage_moves_to_declaring_method(self):
        tree = MetricsTree()
        _type(tree, "NS.Outer")
        run = _member(tree, "NS.Outer", "Run(...)", extra={MI: MetricValue(Decimal(80))})
        generated = _type(tree, "NS.Outer+<Run>d__4", seq=75)
        generated.metrics[CC] = MetricValue(Decimal(4))
        _member(tree, "NS.Outer+<Run>d__4", "MoveNext(...)", seq=75)

        assert fold_iterator_types(tree) == 1
        assert tree.get(CodeElementKind.TYPE, "NS.Outer+<Run>d__4") is None
        assert tree.get(CodeElementKind.MEMBER, "NS.Outer+<Run>d__4.MoveNext(...)") is None
        assert run.metrics[SEQ].value == Decimal(75)
        assert run.metrics[CC].value == Decimal(4)
        assert run.metrics[MI].value == Decimal(80)

    def test_uncovered_generated_type_is_dropped(self):
        tree = MetricsTree()
        _type(tree, "NS.Outer")
        run = _member(tree, "NS.Outer", "Run(...)", seq=50)
        _type(tree, "NS.Outer+<Run>d__4")

        assert fold_iterator_types(tree) == 1
        assert run.metrics[SEQ].value == Decimal(50)

    def test_both_covered_keeps_generated_type(self):
        tree = MetricsTree()
        _type(tree, "NS.Outer")
        _member(tree, "NS.Outer", "Run(...)", seq=50)
        _type(tree, "NS.Outer+<Run>d__4", seq=75)

        assert fold_iterator_types(tree) == 0
        assert tree.get(CodeElementKind.TYPE, "NS.Outer+<Run>d__4") is not None

    def test_covered_generated_type_without_method_is_kept(self):
        tree = MetricsTree()
        _type(tree, "NS.Outer")
        _type(tree, "NS.Outer+<>c", seq=10)
        _type(tree, "NS.Outer+<Lost>d__1", seq=10)

        assert fold_iterator_types(tree) == 0

    def test_plain_types_untouched(self):
        tree = MetricsTree()
        _type(tree, "NS.Outer", seq=10)
        _type(tree, "NS.Outer+Inner", seq=10)
        assert fold_iterator_types(tree) == 0


class TestFoldPlainNestedTypes:
    def test_members_move_to_dotted_type(self):
        tree = MetricsTree()
        _type(tree, "NS.Outer")
        dotted = _type(tree, "NS.Outer.Inner")
        _type(tree, "NS.Outer+Inner", seq=90)
        _member(tree, "NS.Outer+Inner", "Go(...)", seq=90)

        assert fold_plain_nested_types(tree) == 1
        assert tree.get(CodeElementKind.TYPE, "NS.Outer+Inner") is None
        assert dotted.metrics[SEQ].value == Decimal(90)
        moved = tree.get(CodeElementKind.MEMBER, "NS.Outer.Inner.Go(...)")
        assert moved.parent_fully_qualified_name == "NS.Outer.Inner"
        assert moved.metrics[SEQ].value == Decimal(90)

    def test_members_merge_into_existing(self):
        tree = MetricsTree()
        _type(tree, "NS.Outer.Inner")
        mi = {MI: MetricValue(Decimal(70))}
        existing = _member(tree, "NS.Outer.Inner", "Go(...)", extra=mi)
        _type(tree, "NS.Outer+Inner", seq=90)
        _member(
            tree, "NS.Outer+Inner", "Go(...)", seq=90, source=SourceLocation("Inner.cs", 5, 9)
        )

        assert fold_plain_nested_types(tree) == 1
        assert existing.metrics[SEQ].value == Decimal(90)
        assert existing.metrics[MI].value == Decimal(70)
        assert existing.source == SourceLocation("Inner.cs", 5, 9)
        assert tree.get(CodeElementKind.MEMBER, "NS.Outer+Inner.Go(...)") is None

    def test_no_dotted_type(self):
        tree = MetricsTree()
        _type(tree, "NS.Outer+Inner", seq=90)
        assert fold_plain_nested_types(tree) == 0

    def test_both_sides_covered(self):
        tree = MetricsTree()
        _type(tree, "NS.Outer.Inner", seq=10)
        _type(tree, "NS.Outer+Inner", seq=90)
        assert fold_plain_nested_types(tree) == 0

    def test_conflicting_member_coverage(self):
        tree = MetricsTree()
        _type(tree, "NS.Outer.Inner")
        _member(tree, "NS.Outer.Inner", "Go(...)", seq=10)
        _type(tree, "NS.Outer+Inner")
        _member(tree, "NS.Outer+Inner", "Go(...)", seq=90)
        assert fold_plain_nested_types(tree) == 0

    def test_generated_segments_are_not_plain(self):
        tree = MetricsTree()
        _type(tree, "NS.Outer.<Run>d__4")
        _type(tree, "NS.Outer+<Run>d__4", seq=90)
        assert fold_plain_nested_types(tree) == 0


class TestBackfillTypeSources:
    def test_span_from_members(self):
        tree = MetricsTree()
        calc = _type(tree, "NS.Calc")
        _member(tree, "NS.Calc", "A(...)", source=SourceLocation("Calc.cs", 10, 14))
        _member(tree, "NS.Calc", "B(...)", source=SourceLocation("Calc.cs", 20, 31))
        _member(tree, "NS.Calc", "C(...)", source=SourceLocation("Calc.partial.cs", 3, 4))

        backfill_type_sources(tree)
        assert calc.source == SourceLocation("Calc.cs", 10, 31)

    def test_declaration_line_is_widened(self):
        tree = MetricsTree()
        calc = _type(tree, "NS.Calc", source=SourceLocation("Calc.cs", 8, 8))
        _member(tree, "NS.Calc", "A(...)", source=SourceLocation("Calc.cs", 11, 14))
        _member(tree, "NS.Calc", "B(...)", source=SourceLocation("Calc.cs", 28, 28))

        backfill_type_sources(tree)
        assert calc.source == SourceLocation("Calc.cs", 8, 28)

    def test_named_file_preferred(self):
        tree = MetricsTree()
        calc = _type(tree, "NS.Calc", source=SourceLocation("Calc.partial.cs"))
        _member(tree, "NS.Calc", "A(...)", source=SourceLocation("Calc.cs", 10, 14))
        _member(tree, "NS.Calc", "B(...)", source=SourceLocation("Calc.cs", 20, 31))
        _member(tree, "NS.Calc", "C(...)", source=SourceLocation("Calc.partial.cs", 3, 4))

        backfill_type_sources(tree)
        assert calc.source == SourceLocation("Calc.partial.cs", 3, 4)

    def test_existing_span_kept(self):
        tree = MetricsTree()
        calc = _type(tree, "NS.Calc", source=SourceLocation("Calc.cs", 1, 50))
        _member(tree, "NS.Calc", "A(...)", source=SourceLocation("Calc.cs", 60, 70))

        backfill_type_sources(tree)
        assert calc.source == SourceLocation("Calc.cs", 1, 50)

    def test_members_without_lines(self):
        tree = MetricsTree()
        calc = _type(tree, "NS.Calc")
        _member(tree, "NS.Calc", "A(...)", source=SourceLocation("Calc.cs"))

        backfill_type_sources(tree)
        assert calc.source is None
