"""Post-merge clean-up of compiler-generated and nested coverage types.

Coverage tools report what the compiler emitted, Roslyn reports what the
developer wrote. Two mismatches are folded back into source shape here:

* iterator/async state machines (``NS.Outer+<Run>d__4``) carry the coverage
  of ``NS.Outer.Run``;
* nested types written ``NS.Outer+Inner`` by coverage tools and
  ``NS.Outer.Inner`` by Roslyn are the same symbol.
"""

from __future__ import annotations

import re
from decimal import Decimal
from typing import Optional

from ..logging_config import get_logger
from ..models import OPENCOVER_METRICS, CodeElementKind, MetricIdentifier, SourceLocation
from ..normalizer import simple_name
from .tree import MetricsNode, MetricsTree

logger = get_logger(__name__)

_GENERATED_NESTED_RE = re.compile(r"^(?P<outer>.+)\+<(?P<method>[^<>]+)>(?P<suffix>.+)$")

_COVERAGE_METRICS = (
    MetricIdentifier.OPENCOVER_SEQUENCE_COVERAGE,
    MetricIdentifier.OPENCOVER_BRANCH_COVERAGE,
)


def total_coverage(node: MetricsNode) -> Decimal:
    """Sum of sequence and branch coverage; zero when neither was measured."""
    total = Decimal(0)
    for identifier in _COVERAGE_METRICS:
        metric = node.metrics.get(identifier)
        if metric is not None and metric.value is not None:
            total += metric.value
    return total


def has_coverage(node: Optional[MetricsNode]) -> bool:
    return node is not None and total_coverage(node) > 0


def transfer_coverage(source: MetricsNode, target: MetricsNode) -> None:
    for identifier in OPENCOVER_METRICS:
        metric = source.metrics.get(identifier)
        if metric is not None:
            target.metrics[identifier] = metric.copy()


def remove_type(tree: MetricsTree, type_node: MetricsNode) -> None:
    for member in tree.members_of(type_node.fully_qualified_name):
        tree.remove(CodeElementKind.MEMBER, member.fully_qualified_name)
    tree.remove(CodeElementKind.TYPE, type_node.fully_qualified_name)


def _find_method(tree: MetricsTree, type_fqn: str, method_name: str) -> Optional[MetricsNode]:
    """First member of ``type_fqn`` named ``method_name``, by FQN order."""
    for member in tree.members_of(type_fqn):
        if simple_name(member.fully_qualified_name) == method_name:
            return member
    return None


def fold_iterator_types(tree: MetricsTree) -> int:
    """Fold state-machine types into the methods that declared them.

    Returns the number of generated types removed.
    """
    removed = 0
    for type_node in tree.nodes(CodeElementKind.TYPE):
        match = _GENERATED_NESTED_RE.match(type_node.fully_qualified_name)
        if match is None:
            continue

        method = _find_method(tree, match.group("outer"), match.group("method"))
        type_covered = has_coverage(type_node)
        if method is not None and type_covered and has_coverage(method):
            continue

        if method is not None and type_covered:
            logger.debug(
                f"Moving coverage of {type_node.fully_qualified_name} "
                f"to {method.fully_qualified_name}"
            )
            transfer_coverage(type_node, method)
        elif method is None and type_covered:
            continue

        remove_type(tree, type_node)
        removed += 1
    return removed


def _dotted_nested_name(type_fqn: str) -> Optional[str]:
    """``NS.Outer+Inner`` as ``NS.Outer.Inner``; None for generated segments."""
    if "+" not in type_fqn:
        return None
    segments = type_fqn.split("+")
    for segment in segments[1:]:
        if "<" in segment or ">" in segment or "__" in segment:
            return None
    return ".".join(segments)


def _members_conflict(tree: MetricsTree, nested_fqn: str, dotted_fqn: str) -> bool:
    for member in tree.members_of(nested_fqn):
        target_fqn = dotted_fqn + member.fully_qualified_name[len(nested_fqn) :]
        target = tree.get(CodeElementKind.MEMBER, target_fqn)
        if has_coverage(member) and has_coverage(target):
            return True
    return False


def fold_plain_nested_types(tree: MetricsTree) -> int:
    """Merge ``Outer+Inner`` coverage types into the ``Outer.Inner`` Roslyn type.

    Only applies when the dotted type exists and the two sides do not both
    carry coverage. Returns the number of types folded.
    """
    folded = 0
    for nested in tree.nodes(CodeElementKind.TYPE):
        nested_fqn = nested.fully_qualified_name
        dotted_fqn = _dotted_nested_name(nested_fqn)
        if dotted_fqn is None:
            continue
        target = tree.get(CodeElementKind.TYPE, dotted_fqn)
        if target is None:
            continue
        if has_coverage(nested) and has_coverage(target):
            continue
        if _members_conflict(tree, nested_fqn, dotted_fqn):
            continue

        if has_coverage(nested):
            transfer_coverage(nested, target)

        for member in tree.members_of(nested_fqn):
            new_fqn = dotted_fqn + member.fully_qualified_name[len(nested_fqn) :]
            existing = tree.get(CodeElementKind.MEMBER, new_fqn)
            if existing is None:
                tree.rekey(member, new_fqn)
                tree.set_parent(member, dotted_fqn)
                continue
            for identifier, metric in member.metrics.items():
                current = existing.metrics.get(identifier)
                if current is None or current.value is None:
                    existing.metrics[identifier] = metric.copy()
            if existing.source is None or not existing.source.has_line:
                existing.source = member.source or existing.source
            tree.remove(CodeElementKind.MEMBER, member.fully_qualified_name)

        tree.remove(CodeElementKind.TYPE, nested_fqn)
        logger.debug(f"Folded nested type {nested_fqn} into {dotted_fqn}")
        folded += 1
    return folded


def backfill_type_sources(tree: MetricsTree) -> None:
    """Give types without a line span the span of their members.

    Members are grouped by file; the file with the most members wins (ties
    go to the smaller path) unless the type already names a file. A type
    known only by its declaration line is widened to cover its members.
    """
    for type_node in tree.nodes(CodeElementKind.TYPE):
        current = type_node.source
        if current is not None and current.has_line:
            if (current.end_line or 0) > current.start_line:
                continue

        groups: dict = {}
        for member in tree.members_of(type_node.fully_qualified_name):
            source = member.source
            if source is None or not source.has_line:
                continue
            groups.setdefault(source.path, []).append(source)
        if not groups:
            continue

        if current is not None and current.path in groups:
            path = current.path
        elif current is not None and current.has_line:
            continue
        else:
            path = min(groups, key=lambda p: (-len(groups[p]), p))
        sources = groups[path]
        start = min(s.start_line for s in sources)
        end = max(s.end_line if s.end_line is not None else s.start_line for s in sources)

        if current is not None and current.start_line is not None:
            start = current.start_line
        type_node.source = SourceLocation(
            current.path if current is not None else path, start, max(start, end)
        )
