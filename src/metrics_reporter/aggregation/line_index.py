"""File/line index used to attribute static-analysis findings to symbols.

Findings carry a file and a line but no symbol name. Members are searched
before types. Within one index the winner is, in order:

1. the shortest node starting exactly on the line (declaration lines),
2. the shortest node starting on the next line (metrics tools often index
   the body, one line below the declaration the analyzer reports),
3. the shortest node containing the line,
4. the closest preceding single-line node, provided no other node starts
   between it and the line (metrics tools that only record a start line).

Ties go to the smaller FQN so attribution does not depend on input order.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Set

from .tree import MetricsNode


def normalize_path(path: str) -> str:
    """Comparison key for a file path: forward slashes, case-folded."""
    return path.replace("\\", "/").strip().casefold()


@dataclass(frozen=True)
class IndexedNode:
    node: MetricsNode
    start_line: int
    end_line: int

    @property
    def length(self) -> int:
        return self.end_line - self.start_line

    def rank(self) -> tuple:
        return (self.length, self.node.fully_qualified_name)


class LineIndex:
    def __init__(self) -> None:
        self._members: Dict[str, List[IndexedNode]] = {}
        self._types: Dict[str, List[IndexedNode]] = {}
        self._file_assemblies: Dict[str, str] = {}
        self._excluded_files: Set[str] = set()

    def add_member(self, path: str, node: MetricsNode, start: int, end: int) -> None:
        self._members.setdefault(normalize_path(path), []).append(
            IndexedNode(node, start, max(start, end))
        )

    def add_type(self, path: str, node: MetricsNode, start: int, end: int) -> None:
        self._types.setdefault(normalize_path(path), []).append(
            IndexedNode(node, start, max(start, end))
        )

    def register_file_assembly(self, path: str, assembly_name: str) -> None:
        key = normalize_path(path)
        current = self._file_assemblies.get(key)
        if current is None or assembly_name < current:
            self._file_assemblies[key] = assembly_name

    def register_excluded_file(self, path: str) -> None:
        """Mark a file whose symbols were filtered out of the tree."""
        self._excluded_files.add(normalize_path(path))

    def is_excluded_file(self, path: str) -> bool:
        return self._resolve_key(path) in self._excluded_files

    def sort(self) -> None:
        for index in (self._members, self._types):
            for entries in index.values():
                entries.sort(key=lambda e: (e.start_line, e.node.fully_qualified_name))

    def _resolve_key(self, path: str) -> str:
        """Exact key, or the unique indexed path ending with a relative ``path``."""
        key = normalize_path(path)
        known = (self._members, self._types, self._file_assemblies, self._excluded_files)
        if any(key in keys for keys in known):
            return key
        suffix = "/" + key.lstrip("./")
        candidates = {k for keys in known for k in keys if k.endswith(suffix)}
        if len(candidates) == 1:
            return candidates.pop()
        return key

    def find_node(self, path: str, line: int) -> Optional[MetricsNode]:
        key = self._resolve_key(path)
        node = _find_in(self._members.get(key), line)
        if node is not None:
            return node
        return _find_in(self._types.get(key), line)

    def assembly_for(self, path: str) -> Optional[str]:
        return self._file_assemblies.get(self._resolve_key(path))


def _find_in(entries: Optional[List[IndexedNode]], line: int) -> Optional[MetricsNode]:
    if not entries:
        return None

    exact: Optional[IndexedNode] = None
    near: Optional[IndexedNode] = None
    containing: Optional[IndexedNode] = None

    for entry in entries:
        if line == entry.start_line:
            if exact is None or entry.rank() < exact.rank():
                exact = entry
        elif line == entry.start_line - 1:
            if near is None or entry.rank() < near.rank():
                near = entry
        elif entry.start_line <= line <= entry.end_line:
            if containing is None or entry.rank() < containing.rank():
                containing = entry

    best = exact or near or containing
    if best is not None:
        return best.node
    return _find_single_line_owner(entries, line)


def _find_single_line_owner(entries: List[IndexedNode], line: int) -> Optional[MetricsNode]:
    """Closest single-line node at or before ``line`` with nothing starting in between."""
    candidate: Optional[IndexedNode] = None
    for entry in entries:
        if entry.start_line > line:
            break
        if entry.start_line == entry.end_line:
            if candidate is None or entry.start_line > candidate.start_line:
                candidate = entry

    if candidate is None:
        return None

    for entry in entries:
        if candidate.start_line < entry.start_line < line:
            return None
    return candidate.node
