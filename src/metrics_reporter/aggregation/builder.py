"""Merges parsed documents into one Solution→Assembly→Namespace→Type→Member tree.

Structural elements (coverage and Roslyn) are keyed by ``(kind, fqn)`` and
merged first. Missing ancestors are synthesized, compiler-generated types are
folded, and only then are SARIF findings attributed by file and line, since
attribution needs the final member spans.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Sequence, Set

from ..filters import ElementFilters
from ..logging_config import get_logger
from ..models import (
    UNKNOWN_ASSEMBLY,
    UNKNOWN_TYPE,
    CodeElementKind,
    MemberKind,
    MetricIdentifier,
    MetricValue,
    ParsedCodeElement,
    ParsedMetricsDocument,
    RuleDescription,
    SourceLocation,
    merge_breakdowns,
)
from ..normalizer import (
    declaring_type_of_member,
    is_placeholder,
    namespace_of_type,
)
from .line_index import LineIndex
from .reconcile import backfill_type_sources, fold_iterator_types, fold_plain_nested_types
from .tree import MetricsNode, MetricsTree

logger = get_logger(__name__)

DEFAULT_SOLUTION_NAME = "Solution"


def merge_metric(
    metrics: Dict[MetricIdentifier, MetricValue], identifier: MetricIdentifier, value: MetricValue
) -> None:
    """Fold one reading into a node's metric map.

    Violation counts add up. Any other metric keeps the first non-null value,
    which is the only value in practice since each identifier has one owner.
    """
    current = metrics.get(identifier)
    if current is None:
        metrics[identifier] = value.copy()
        return

    if identifier.is_sarif:
        if current.value is None:
            total = value.value
        elif value.value is None:
            total = current.value
        else:
            total = current.value + value.value
        current.value = total
        current.breakdown = merge_breakdowns(current.breakdown, value.breakdown)
    elif current.value is None and value.value is not None:
        metrics[identifier] = value.copy()


def merge_member_kind(
    current: Optional[MemberKind], incoming: Optional[MemberKind]
) -> Optional[MemberKind]:
    """Unknown yields to anything; Method yields to Property/Field/Event."""
    if incoming is None or incoming is MemberKind.UNKNOWN:
        return current if current is not None else incoming
    if current is None or current is MemberKind.UNKNOWN:
        return incoming
    if current is MemberKind.METHOD:
        return incoming
    return current


def merge_source(
    current: Optional[SourceLocation], incoming: Optional[SourceLocation]
) -> Optional[SourceLocation]:
    if current is None:
        return incoming
    if incoming is None:
        return current
    if not current.has_line and incoming.has_line:
        return incoming
    return current


def _type_display_name(type_fqn: str) -> str:
    namespace = namespace_of_type(type_fqn)
    if type_fqn.startswith(namespace + "."):
        return type_fqn[len(namespace) + 1 :]
    return type_fqn


def _pick_name(current: Optional[str], incoming: Optional[str]) -> Optional[str]:
    """Real names win over placeholders; among real names the smaller wins."""
    if current is None or (is_placeholder(current) and not is_placeholder(incoming)):
        return incoming
    if incoming is None or (is_placeholder(incoming) and not is_placeholder(current)):
        return current
    return min(current, incoming)


class AggregationTreeBuilder:
    """Builds a ``MetricsTree`` from any number of parsed documents.

    ``filters`` keeps excluded assemblies, types and members out of the tree.
    Without it nothing is filtered.
    """

    def __init__(
        self, solution_name: Optional[str] = None, filters: Optional[ElementFilters] = None
    ):
        self.configured_solution_name = solution_name
        self.filters = filters or ElementFilters.none()
        self._excluded_files: Set[str] = set()

    def build(self, documents: Sequence[ParsedMetricsDocument]) -> MetricsTree:
        tree = MetricsTree(self.resolve_solution_name(documents))
        self._excluded_files = set()

        findings: List[ParsedCodeElement] = []
        excluded = 0
        for document in documents:
            for element in document.elements:
                if element.fully_qualified_name is None:
                    findings.append(element)
                elif not self._merge_element(tree, element):
                    excluded += 1

        synthesized = self._synthesize_ancestors(tree)
        iterators = fold_iterator_types(tree)
        nested = fold_plain_nested_types(tree)
        backfill_type_sources(tree)
        attributed = self._attribute_findings(tree, findings)
        excluded += self._prune_member_kinds(tree)

        tree.link()
        logger.info(
            f"Built tree '{tree.solution_name}' with {len(tree)} nodes "
            f"({excluded} elements filtered out, "
            f"{synthesized} synthesized, {iterators} generated and {nested} nested types folded, "
            f"{attributed}/{len(findings)} findings attributed to symbols)"
        )
        return tree

    def resolve_solution_name(self, documents: Iterable[ParsedMetricsDocument]) -> str:
        name: Optional[str] = None
        for document in documents:
            if document.solution_name:
                name = document.solution_name
        return name or self.configured_solution_name or DEFAULT_SOLUTION_NAME

    # -- structural merge -------------------------------------------------

    def _is_filtered(self, element: ParsedCodeElement) -> bool:
        """Apply the exclusion filters; files of excluded owners lose their findings too."""
        if self.filters.excluded_by_owner(element):
            if element.source is not None and element.source.path:
                self._excluded_files.add(element.source.path)
            return True
        if self.filters.excludes(element):
            logger.debug(f"Excluding {element.kind.value} {element.fully_qualified_name}")
            return True
        return False

    def _prune_member_kinds(self, tree: MetricsTree) -> int:
        """Drop members of excluded kinds that ended up without findings."""
        if not self.filters.excluded_kinds:
            return 0
        pruned = 0
        for member in tree.nodes(CodeElementKind.MEMBER):
            if not self.filters.excludes_kind(member.member_kind):
                continue
            if any(identifier.is_sarif for identifier in member.metrics):
                continue
            tree.remove(CodeElementKind.MEMBER, member.fully_qualified_name)
            pruned += 1
        return pruned

    def _merge_element(self, tree: MetricsTree, element: ParsedCodeElement) -> bool:
        """Fold one structural element into the tree; False when it was filtered out."""
        if self._is_filtered(element):
            return False

        node = tree.get(element.kind, element.fully_qualified_name)
        if node is None:
            node = tree.add(
                MetricsNode(
                    kind=element.kind,
                    name=element.name,
                    fully_qualified_name=element.fully_qualified_name,
                    parent_fully_qualified_name=element.parent_fully_qualified_name,
                    containing_assembly_name=element.containing_assembly_name,
                    member_kind=element.member_kind,
                    source=element.source,
                )
            )
        else:
            node.name = _pick_name(node.name, element.name)
            node.member_kind = merge_member_kind(node.member_kind, element.member_kind)
            node.source = merge_source(node.source, element.source)
            if element.kind is CodeElementKind.NAMESPACE:
                node.parent_fully_qualified_name = _pick_name(
                    node.parent_fully_qualified_name, element.parent_fully_qualified_name
                )
            elif node.parent_fully_qualified_name is None:
                tree.set_parent(node, element.parent_fully_qualified_name)
            node.containing_assembly_name = _pick_name(
                node.containing_assembly_name, element.containing_assembly_name
            )

        for identifier, value in element.metrics.items():
            merge_metric(node.metrics, identifier, value)
        return True

    def _synthesize_ancestors(self, tree: MetricsTree) -> int:
        """Create any Type, Namespace or Assembly a node points at but nobody reported."""
        created = 0

        for member in tree.nodes(CodeElementKind.MEMBER):
            if member.parent_fully_qualified_name is None:
                tree.set_parent(
                    member, declaring_type_of_member(member.fully_qualified_name) or UNKNOWN_TYPE
                )
            type_fqn = member.parent_fully_qualified_name
            if tree.get(CodeElementKind.TYPE, type_fqn) is None:
                tree.add(
                    MetricsNode(
                        kind=CodeElementKind.TYPE,
                        name=_type_display_name(type_fqn),
                        fully_qualified_name=type_fqn,
                        parent_fully_qualified_name=namespace_of_type(type_fqn),
                        containing_assembly_name=member.containing_assembly_name,
                    )
                )
                created += 1

        for type_node in tree.nodes(CodeElementKind.TYPE):
            if type_node.parent_fully_qualified_name is None:
                type_node.parent_fully_qualified_name = namespace_of_type(
                    type_node.fully_qualified_name
                )
            namespace = type_node.parent_fully_qualified_name
            if tree.get(CodeElementKind.NAMESPACE, namespace) is None:
                tree.add(
                    MetricsNode(
                        kind=CodeElementKind.NAMESPACE,
                        name=namespace,
                        fully_qualified_name=namespace,
                        parent_fully_qualified_name=type_node.containing_assembly_name
                        or UNKNOWN_ASSEMBLY,
                        containing_assembly_name=type_node.containing_assembly_name,
                    )
                )
                created += 1

        for namespace_node in tree.nodes(CodeElementKind.NAMESPACE):
            if namespace_node.parent_fully_qualified_name is None:
                namespace_node.parent_fully_qualified_name = (
                    namespace_node.containing_assembly_name or UNKNOWN_ASSEMBLY
                )
            assembly = namespace_node.parent_fully_qualified_name
            if tree.get(CodeElementKind.ASSEMBLY, assembly) is None:
                tree.add(
                    MetricsNode(
                        kind=CodeElementKind.ASSEMBLY,
                        name=assembly,
                        fully_qualified_name=assembly,
                        containing_assembly_name=assembly,
                    )
                )
                created += 1

        if created:
            logger.debug(f"Synthesized {created} missing ancestor nodes")
        return created

    # -- findings ---------------------------------------------------------

    @staticmethod
    def build_line_index(tree: MetricsTree) -> LineIndex:
        index = LineIndex()
        for kind in (CodeElementKind.MEMBER, CodeElementKind.TYPE):
            for node in tree.nodes(kind):
                source = node.source
                if source is None or not source.path:
                    continue
                assembly = node.containing_assembly_name
                if assembly and not is_placeholder(assembly):
                    index.register_file_assembly(source.path, assembly)
                if source.start_line is None:
                    continue
                end = source.end_line if source.end_line is not None else source.start_line
                if kind is CodeElementKind.MEMBER:
                    index.add_member(source.path, node, source.start_line, end)
                else:
                    index.add_type(source.path, node, source.start_line, end)
        index.sort()
        return index

    def _attribute_findings(self, tree: MetricsTree, findings: List[ParsedCodeElement]) -> int:
        """Attach each finding to a member/type, its file's assembly, or the solution."""
        if not findings:
            return 0

        index = self.build_line_index(tree)
        for path in self._excluded_files:
            index.register_excluded_file(path)

        attributed = 0
        dropped = 0
        for finding in findings:
            target = self._finding_target(tree, index, finding.source)
            if target is None:
                dropped += 1
                continue
            if target.kind in (CodeElementKind.MEMBER, CodeElementKind.TYPE):
                attributed += 1
            for identifier, value in finding.metrics.items():
                merge_metric(target.metrics, identifier, value)
        if dropped:
            logger.debug(f"Dropped {dropped} findings located in filtered-out files")
        return attributed

    @staticmethod
    def _finding_target(
        tree: MetricsTree, index: LineIndex, source: Optional[SourceLocation]
    ) -> Optional[MetricsNode]:
        """Member or type on the finding's line, else its file's assembly, else the root.

        None when the finding sits in a filtered-out file outside any kept symbol.
        """
        if source is None or not source.path:
            return tree.root
        if source.start_line is not None:
            node = index.find_node(source.path, source.start_line)
            if node is not None:
                return node
        assembly = index.assembly_for(source.path)
        if assembly is not None:
            node = tree.get(CodeElementKind.ASSEMBLY, assembly)
            if node is not None:
                return node
        if index.is_excluded_file(source.path):
            return None
        return tree.root


def collect_rule_descriptions(
    documents: Iterable[ParsedMetricsDocument],
) -> Dict[str, RuleDescription]:
    """Union of the rule catalogs of all documents, sorted by rule id."""
    catalog: Dict[str, RuleDescription] = {}
    for document in documents:
        for rule_id, description in document.rule_descriptions.items():
            catalog.setdefault(rule_id, description)
    return dict(sorted(catalog.items()))
