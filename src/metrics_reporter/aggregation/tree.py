"""Identity-keyed aggregation tree.

Nodes live in one arena indexed by ``(kind, fqn)``. Parent/child links are
derived from parent FQNs only after every node exists, so the order in which
documents were merged cannot change the shape of the tree.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple

from ..models import (
    CodeElementKind,
    MemberKind,
    MetricIdentifier,
    MetricSymbolLevel,
    MetricValue,
    SourceLocation,
    SuppressedSymbolInfo,
)

NodeKey = Tuple[CodeElementKind, str]

# Kind of the node a parent FQN refers to
PARENT_KIND: Dict[CodeElementKind, CodeElementKind] = {
    CodeElementKind.ASSEMBLY: CodeElementKind.SOLUTION,
    CodeElementKind.NAMESPACE: CodeElementKind.ASSEMBLY,
    CodeElementKind.TYPE: CodeElementKind.NAMESPACE,
    CodeElementKind.MEMBER: CodeElementKind.TYPE,
}

# Lookup order when a caller only has an FQN
SYMBOL_LOOKUP_ORDER = (
    CodeElementKind.MEMBER,
    CodeElementKind.TYPE,
    CodeElementKind.NAMESPACE,
    CodeElementKind.ASSEMBLY,
)


@dataclass
class MetricsNode:
    """One symbol in the merged report."""

    kind: CodeElementKind
    name: str
    fully_qualified_name: str
    parent_fully_qualified_name: Optional[str] = None
    containing_assembly_name: Optional[str] = None
    member_kind: Optional[MemberKind] = None
    source: Optional[SourceLocation] = None
    metrics: Dict[MetricIdentifier, MetricValue] = field(default_factory=dict)
    children: List[MetricsNode] = field(default_factory=list)
    suppressions: List[SuppressedSymbolInfo] = field(default_factory=list)
    is_new: bool = False

    @property
    def key(self) -> NodeKey:
        return (self.kind, self.fully_qualified_name)

    @property
    def level(self) -> MetricSymbolLevel:
        return MetricSymbolLevel.for_kind(self.kind)

    @property
    def is_suppressed(self) -> bool:
        return bool(self.suppressions)

    def suppressed_metrics(self) -> set:
        return {s.metric for s in self.suppressions if s.metric is not None}

    def walk(self) -> Iterator[MetricsNode]:
        """Depth-first, parents before children."""
        yield self
        for child in self.children:
            yield from child.walk()


class MetricsTree:
    """Arena of nodes with a Solution root."""

    def __init__(self, solution_name: str = "Solution"):
        self.root = MetricsNode(
            kind=CodeElementKind.SOLUTION,
            name=solution_name,
            fully_qualified_name=solution_name,
        )
        self._nodes: Dict[NodeKey, MetricsNode] = {}
        # parent type FQN -> member FQN -> member
        self._members: Dict[str, Dict[str, MetricsNode]] = {}

    @property
    def solution_name(self) -> str:
        return self.root.name

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, key: NodeKey) -> bool:
        return key in self._nodes

    def get(self, kind: CodeElementKind, fqn: Optional[str]) -> Optional[MetricsNode]:
        if fqn is None:
            return None
        if kind is CodeElementKind.SOLUTION:
            return self.root if fqn == self.root.fully_qualified_name else None
        return self._nodes.get((kind, fqn))

    def add(self, node: MetricsNode) -> MetricsNode:
        if node.key in self._nodes:
            raise ValueError(f"Duplicate {node.kind.value} node: {node.fully_qualified_name}")
        self._nodes[node.key] = node
        self._index_member(node)
        return node

    def remove(self, kind: CodeElementKind, fqn: str) -> Optional[MetricsNode]:
        node = self._nodes.pop((kind, fqn), None)
        if node is not None:
            self._unindex_member(node)
        return node

    def rekey(self, node: MetricsNode, new_fqn: str) -> None:
        self._unindex_member(node)
        self._nodes.pop(node.key, None)
        node.fully_qualified_name = new_fqn
        self._nodes[node.key] = node
        self._index_member(node)

    def set_parent(self, node: MetricsNode, parent_fqn: Optional[str]) -> None:
        """Re-parent a node, keeping the member index in step."""
        tracked = self._nodes.get(node.key) is node
        if tracked:
            self._unindex_member(node)
        node.parent_fully_qualified_name = parent_fqn
        if tracked:
            self._index_member(node)

    def _index_member(self, node: MetricsNode) -> None:
        if node.kind is not CodeElementKind.MEMBER or node.parent_fully_qualified_name is None:
            return
        siblings = self._members.setdefault(node.parent_fully_qualified_name, {})
        siblings[node.fully_qualified_name] = node

    def _unindex_member(self, node: MetricsNode) -> None:
        if node.kind is not CodeElementKind.MEMBER or node.parent_fully_qualified_name is None:
            return
        siblings = self._members.get(node.parent_fully_qualified_name)
        if siblings is None:
            return
        siblings.pop(node.fully_qualified_name, None)
        if not siblings:
            del self._members[node.parent_fully_qualified_name]

    def nodes(self, kind: Optional[CodeElementKind] = None) -> List[MetricsNode]:
        """Nodes of one kind (or all), sorted by FQN for stable output."""
        selected = [n for n in self._nodes.values() if kind is None or n.kind is kind]
        return sorted(selected, key=lambda n: (n.kind.value, n.fully_qualified_name))

    def members_of(self, type_fqn: str) -> List[MetricsNode]:
        """Members whose parent is ``type_fqn``, sorted by FQN."""
        siblings = self._members.get(type_fqn)
        if not siblings:
            return []
        return [siblings[fqn] for fqn in sorted(siblings)]

    def find_symbol(self, fqn: str) -> Optional[MetricsNode]:
        """Most specific node carrying ``fqn``: member, then type, namespace, assembly."""
        for kind in SYMBOL_LOOKUP_ORDER:
            node = self._nodes.get((kind, fqn))
            if node is not None:
                return node
        return None

    def parent_of(self, node: MetricsNode) -> Optional[MetricsNode]:
        parent_kind = PARENT_KIND.get(node.kind)
        if parent_kind is None:
            return None
        if parent_kind is CodeElementKind.SOLUTION:
            return self.root
        return self._nodes.get((parent_kind, node.parent_fully_qualified_name or ""))

    def link(self) -> None:
        """Rebuild child lists from parent FQNs, sorted by FQN."""
        self.root.children = []
        for node in self._nodes.values():
            node.children = []
        for node in self.nodes():
            parent = self.parent_of(node)
            if parent is None:
                raise ValueError(
                    f"{node.kind.value} '{node.fully_qualified_name}' has no parent "
                    f"'{node.parent_fully_qualified_name}'"
                )
            parent.children.append(node)
        for node in [self.root, *self._nodes.values()]:
            node.children.sort(key=lambda n: n.fully_qualified_name)

    def walk(self) -> Iterator[MetricsNode]:
        return self.root.walk()
