"""Scans C# sources for ``SuppressMessage`` attributes.

Declaration-level attributes are attributed to the type or member they
decorate; assembly-level attributes name their symbol through
``Scope``/``Target``. FQNs are built the same way the metrics parsers build
them (nested types joined with ``.``, methods ending in ``(...)``,
constructors as ``.ctor``) so the binder can match them against tree nodes
by string equality.
"""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from ..exceptions import OperationCancelledError
from ..filters import NamePatternSet
from ..logging_config import get_logger
from ..models import SuppressedSymbolInfo
from ..normalizer import FINALIZER_NAME, PARAMETER_PLACEHOLDER
from ..parsers.base import check_cancelled
from .attributes import (
    AttributeUsage,
    map_rule_to_metric,
    read_attribute,
    read_suppress_message,
    resolve_global_target,
)
from .syntax import CSharpParser, Node, compact_name, has_modifier

logger = get_logger(__name__)

PathLike = Union[str, Path]

SKIPPED_DIRECTORIES = frozenset({"bin", "obj"})

ATTRIBUTE_QUERY = "(attribute) @attribute"

TYPE_DECLARATIONS = frozenset(
    {
        "class_declaration",
        "struct_declaration",
        "interface_declaration",
        "record_declaration",
        "record_struct_declaration",
        "enum_declaration",
    }
)

NAMESPACE_DECLARATIONS = frozenset({"namespace_declaration", "file_scoped_namespace_declaration"})

FIELD_DECLARATIONS = frozenset({"field_declaration", "event_field_declaration"})

# Attribute targets that apply to the declaration itself
DECLARATION_TARGETS = frozenset({None, "type", "method", "property", "field", "event"})


def _is_member_container(node: Node) -> bool:
    return node.type == "declaration_list" or node.type.startswith("preproc_")


def enclosing_type(declaration: Node) -> Optional[Node]:
    """Type declaration a member is declared in; None outside a type body."""
    parent = declaration.parent
    while parent is not None and _is_member_container(parent):
        parent = parent.parent
    if parent is not None and parent.type in TYPE_DECLARATIONS:
        return parent
    return None


class SuppressionCollector:
    """Turns one file's attribute nodes into suppression records."""

    def __init__(self, root: Node, relative_path: str = ""):
        self.relative_path = relative_path
        self.file_namespace: Optional[Node] = None
        for child in root.children:
            if child.type == "file_scoped_namespace_declaration":
                self.file_namespace = child
                break
        self.results: List[SuppressedSymbolInfo] = []

    # -- naming ------------------------------------------------------------

    def type_fqn(self, declaration: Node) -> Optional[str]:
        parts: List[str] = []
        inside_file_namespace = False
        node: Optional[Node] = declaration
        while node is not None:
            if node.type in TYPE_DECLARATIONS or node.type in NAMESPACE_DECLARATIONS:
                name = compact_name(node.child_by_field_name("name"))
                if not name:
                    return None
                parts.append(name)
                if node.type == "file_scoped_namespace_declaration":
                    inside_file_namespace = True
            node = node.parent
        if (
            self.file_namespace is not None
            and not inside_file_namespace
            and declaration.start_byte > self.file_namespace.start_byte
        ):
            parts.append(compact_name(self.file_namespace.child_by_field_name("name")))
        return ".".join(reversed(parts))

    def declared_symbols(self, declaration: Optional[Node]) -> List[str]:
        """FQNs a declaration introduces; empty for declarations that are not tracked."""
        if declaration is None:
            return []
        if declaration.type in TYPE_DECLARATIONS:
            fqn = self.type_fqn(declaration)
            return [fqn] if fqn else []

        owner = enclosing_type(declaration)
        if owner is None:
            return []
        owner_fqn = self.type_fqn(owner)
        if not owner_fqn:
            return []

        kind = declaration.type
        if kind == "method_declaration":
            name = compact_name(declaration.child_by_field_name("name"))
            return [f"{owner_fqn}.{name}{PARAMETER_PLACEHOLDER}"] if name else []
        if kind == "constructor_declaration":
            ctor = ".cctor" if has_modifier(declaration, "static") else ".ctor"
            return [f"{owner_fqn}.{ctor}{PARAMETER_PLACEHOLDER}"]
        if kind == "destructor_declaration":
            return [f"{owner_fqn}.{FINALIZER_NAME}{PARAMETER_PLACEHOLDER}"]
        if kind in ("property_declaration", "event_declaration"):
            name = compact_name(declaration.child_by_field_name("name"))
            return [f"{owner_fqn}.{name}"] if name else []
        if kind == "indexer_declaration":
            return [f"{owner_fqn}.this"]
        if kind in FIELD_DECLARATIONS:
            return [f"{owner_fqn}.{name}" for name in _declarator_names(declaration)]
        return []

    # -- recording ---------------------------------------------------------

    def collect(self, attributes: Iterable[Node]) -> List[SuppressedSymbolInfo]:
        for node in attributes:
            usage = read_attribute(node)
            if not usage.is_suppress_message:
                continue
            if usage.is_global:
                self._record_global(usage)
            elif usage.target in DECLARATION_TARGETS:
                section = node.parent
                declaration = section.parent if section is not None else None
                for fqn in self.declared_symbols(declaration):
                    self._record(usage, fqn)
        return self.results

    def _record(self, usage: AttributeUsage, fqn: str) -> None:
        message = read_suppress_message(usage)
        if message is None:
            return
        self._emit(fqn, message.rule_id, message.justification)

    def _record_global(self, usage: AttributeUsage) -> None:
        message = read_suppress_message(usage)
        if message is None:
            return
        fqn = resolve_global_target(message)
        if fqn is None:
            logger.debug(
                f"Ignoring assembly-level suppression of {message.rule_id} in "
                f"{self.relative_path}: unsupported scope or target"
            )
            return
        self._emit(fqn, message.rule_id, message.justification)

    def _emit(self, fqn: str, rule_id: str, justification: Optional[str]) -> None:
        self.results.append(
            SuppressedSymbolInfo(
                fully_qualified_name=fqn,
                rule_id=rule_id,
                metric=map_rule_to_metric(rule_id),
                justification=justification,
            )
        )


def _declarator_names(declaration: Node) -> List[str]:
    names: List[str] = []
    stack = list(declaration.named_children)
    while stack:
        node = stack.pop(0)
        if node.type == "variable_declarator":
            name = node.child_by_field_name("name")
            if name is None and node.named_children:
                name = node.named_children[0]
            text = compact_name(name)
            if text:
                names.append(text)
        elif node.type == "variable_declaration":
            stack.extend(node.named_children)
    return names


def analyze_source(
    text: str, relative_path: str = "", parser: Optional[CSharpParser] = None
) -> List[SuppressedSymbolInfo]:
    """Suppressions declared in one C# source text."""
    parser = parser or CSharpParser()
    tree = parser.parse(text.encode("utf-8"))
    if tree.root_node.has_error:
        logger.debug(f"{relative_path or '<source>'} has syntax errors; scanning what parsed")
    attributes = [node for node, _ in parser.query(tree, ATTRIBUTE_QUERY)]
    return SuppressionCollector(tree.root_node, relative_path).collect(attributes)


def _normalize_folder(folder: str) -> str:
    return folder.replace("\\", "/").strip().strip("/")


def resolve_assembly_name(relative_path: str, source_folders: Sequence[str]) -> Optional[str]:
    """Assembly directory for a file: the segment after the longest matching folder.

    With folders ``src`` and ``src/Tools``, ``src/Tools/Reporter/File.cs``
    belongs to ``Reporter``. Without a match the first segment is used.
    """
    path = relative_path.replace("\\", "/").lstrip("./")
    lowered = path.lower()
    best: Optional[str] = None
    for folder in source_folders:
        normalized = _normalize_folder(folder)
        if not normalized:
            continue
        if lowered.startswith(normalized.lower() + "/"):
            if best is None or len(normalized) > len(best):
                best = normalized

    remainder = path[len(best) + 1 :] if best else path
    segments = [s for s in remainder.split("/") if s]
    if len(segments) < 2:
        return None
    return segments[0]


class SuppressedSymbolsAnalyzer:
    """Collects suppressions from every ``*.cs`` file under the source folders."""

    def __init__(
        self,
        root: PathLike,
        source_folders: Sequence[str],
        excluded_assemblies: Iterable[str] = (),
    ):
        self.root = Path(root)
        self.source_folders = [f for f in source_folders if _normalize_folder(f)]
        self.excluded_assemblies = NamePatternSet(",".join(excluded_assemblies), ignore_case=True)
        self.parser = CSharpParser()

    def iter_source_files(self) -> List[Tuple[Path, str]]:
        """``(path, relative path)`` pairs, deduplicated and sorted."""
        found = {}
        for folder in self.source_folders:
            base = self.root / _normalize_folder(folder)
            if not base.is_dir():
                logger.warning(f"Source folder not found: {base}")
                continue
            for path in base.rglob("*.cs"):
                relative = path.relative_to(self.root)
                if any(part.lower() in SKIPPED_DIRECTORIES for part in relative.parts[:-1]):
                    continue
                if path.is_file():
                    found[relative.as_posix()] = path
        return [(found[key], key) for key in sorted(found)]

    def analyze_file(self, path: Path, relative: str) -> List[SuppressedSymbolInfo]:
        text = path.read_text(encoding="utf-8-sig", errors="replace")
        return analyze_source(text, relative, self.parser)

    def analyze(
        self,
        cancel_event: Optional[threading.Event] = None,
        skip_failed_files: bool = False,
    ) -> List[SuppressedSymbolInfo]:
        """Scan the configured folders.

        Args:
            cancel_event: Checked between files
            skip_failed_files: Log and skip a file that cannot be read or
                scanned instead of failing the whole scan

        Raises:
            OperationCancelledError: If ``cancel_event`` is set between files
            OSError: If a source file cannot be read
        """
        results: List[SuppressedSymbolInfo] = []
        failed = 0
        files = self.iter_source_files()
        for path, relative in files:
            check_cancelled(cancel_event, "suppression analysis")
            assembly = resolve_assembly_name(relative, self.source_folders)
            if assembly is not None and self.excluded_assemblies.matches(assembly):
                logger.debug(f"Skipping {relative}: assembly {assembly} is excluded")
                continue
            try:
                found = self.analyze_file(path, relative)
            except (OSError, ValueError) as e:
                if not skip_failed_files:
                    raise
                logger.warning(f"Skipping {relative}, suppressions not scanned: {e}")
                failed += 1
                continue
            if found:
                logger.debug(f"{relative} ({assembly}): {len(found)} suppressions")
            results.extend(found)

        logger.info(
            f"Found {len(results)} suppressions in {len(files) - failed} source files"
            + (f" ({failed} skipped after errors)" if failed else "")
        )
        return results

    def analyze_safely(
        self, cancel_event: Optional[threading.Event] = None
    ) -> List[SuppressedSymbolInfo]:
        """Like ``analyze`` but failures cost only the files they hit."""
        try:
            return self.analyze(cancel_event, skip_failed_files=True)
        except OperationCancelledError:
            raise
        except (OSError, ValueError) as e:
            logger.error(f"Suppression analysis failed, continuing without suppressions: {e}")
            return []
