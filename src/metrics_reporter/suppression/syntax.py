"""Tree-sitter C# parser wrapper.

Usage:
    parser = CSharpParser()
    tree = parser.parse(source_bytes)
    captures = parser.query(tree, "(attribute) @attribute")
"""

from __future__ import annotations

from typing import Dict, List, Optional, Tuple

import tree_sitter
import tree_sitter_c_sharp

Node = tree_sitter.Node
Capture = Tuple[Node, str]


def node_text(node: Optional[Node]) -> str:
    """Source text of a node; empty for a missing node."""
    if node is None or node.text is None:
        return ""
    return node.text.decode("utf-8", errors="replace")


def compact_name(node: Optional[Node]) -> str:
    """Dotted name without whitespace or the ``@`` of verbatim identifiers."""
    text = "".join(node_text(node).split())
    return ".".join(part.lstrip("@") for part in text.split("."))


def child_of_type(node: Optional[Node], *types: str) -> Optional[Node]:
    if node is None:
        return None
    for child in node.children:
        if child.type in types:
            return child
    return None


def has_modifier(node: Node, keyword: str) -> bool:
    return any(
        child.type == "modifier" and node_text(child).strip() == keyword
        for child in node.children
    )


class CSharpParser:
    """Parses C# source and runs S-expression queries over the result.

    Compiled queries are cached per parser. A parser is not shared between
    threads.
    """

    def __init__(self) -> None:
        # tree-sitter >= 0.23 grammars return a PyCapsule; wrap in Language()
        self._language = tree_sitter.Language(tree_sitter_c_sharp.language())
        self._parser = tree_sitter.Parser(self._language)
        self._queries: Dict[str, tree_sitter.Query] = {}

    def parse(self, code: bytes) -> tree_sitter.Tree:
        """Parse source bytes. Syntax errors become ERROR nodes, never exceptions."""
        return self._parser.parse(code)

    def _compiled(self, query_str: str) -> tree_sitter.Query:
        query = self._queries.get(query_str)
        if query is None:
            query = tree_sitter.Query(self._language, query_str)
            self._queries[query_str] = query
        return query

    def query(self, tree: tree_sitter.Tree, query_str: str) -> List[Capture]:
        """Run a query on a syntax tree.

        Returns:
            ``(node, capture_name)`` pairs in document order
        """
        cursor = tree_sitter.QueryCursor(self._compiled(query_str))
        result: List[Capture] = []
        # [(pattern_id, {name: [nodes]})] -> [(node, name)]
        for _pattern_id, captures in cursor.matches(tree.root_node):
            for capture_name, nodes in captures.items():
                for node in nodes:
                    result.append((node, capture_name))
        result.sort(key=lambda capture: capture[0].start_byte)
        return result
