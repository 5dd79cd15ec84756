"""OpenCover / AltCover coverage XML parser.

Coverage output has no explicit namespace level. Each ``Module`` carries
``Class`` records with full names such as ``NS.Outer/Inner`` and ``Method``
records named ``System.Void NS.Outer/Inner::Run(System.Int32)``; namespaces
and member identities are derived from those dotted paths.
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Dict, Iterator, List, Optional

from ..exceptions import DocumentParseError
from ..logging_config import get_logger
from ..models import (
    GLOBAL_NAMESPACE,
    UNKNOWN_ASSEMBLY,
    UNKNOWN_MEMBER,
    UNKNOWN_TYPE,
    CodeElementKind,
    MemberKind,
    MetricIdentifier,
    MetricValue,
    ParsedCodeElement,
    ParsedMetricsDocument,
    SourceLocation,
)
from ..normalizer import (
    apply_coverage_separators,
    extract_method_name,
    namespace_of_type,
    normalize_fully_qualified_method_name,
    normalize_type_name,
    strip_return_type,
)
from .base import (
    MetricsParser,
    attribute,
    child,
    child_text,
    children,
    local_name,
    nested,
    parse_decimal,
    parse_int,
    parse_xml,
)

logger = get_logger(__name__)

COVERAGE_ROOTS = frozenset({"coveragesession", "coverage"})

# Summary attribute -> metric, for module and class summaries
_SUMMARY_ATTRIBUTES = {
    "sequenceCoverage": MetricIdentifier.OPENCOVER_SEQUENCE_COVERAGE,
    "maxCyclomaticComplexity": MetricIdentifier.OPENCOVER_CYCLOMATIC_COMPLEXITY,
    "maxNPathComplexity": MetricIdentifier.OPENCOVER_NPATH_COMPLEXITY,
}

_METHOD_ATTRIBUTES = {
    "sequenceCoverage": MetricIdentifier.OPENCOVER_SEQUENCE_COVERAGE,
    "cyclomaticComplexity": MetricIdentifier.OPENCOVER_CYCLOMATIC_COMPLEXITY,
    "nPathComplexity": MetricIdentifier.OPENCOVER_NPATH_COMPLEXITY,
}


def normalize_coverage_method(raw_name: str, type_fqn: str) -> str:
    """Member FQN for a coverage ``Method/Name``.

    ``System.Void NS.Type::Run(System.Int32)`` inside ``NS.Type`` gives
    ``NS.Type.Run(...)``.
    """
    dotted = apply_coverage_separators(strip_return_type(raw_name))
    fqn = normalize_fully_qualified_method_name(dotted) or dotted
    if type_fqn and not fqn.startswith(type_fqn + "."):
        fqn = f"{type_fqn}.{fqn}"
    return fqn


class OpenCoverParser(MetricsParser):
    """Parses OpenCover and AltCover (OpenCover-compatible) reports."""

    format_name = "OpenCover"

    def parse_content(self, content: bytes, source_path: Optional[str]) -> ParsedMetricsDocument:
        root = parse_xml(content, source_path, self.format_name)
        coverage_root = self._find_coverage_root(root)
        if coverage_root is None:
            raise DocumentParseError(
                Path(source_path or "<memory>"),
                self.format_name,
                f"Unexpected root element '{local_name(root)}'",
            )

        elements: List[ParsedCodeElement] = []
        for module in self._modules(coverage_root):
            if attribute(module, "skippedDueTo"):
                name = child_text(module, "ModuleName")
                logger.debug(f"Skipping module {name}: not instrumented")
                continue
            elements.extend(self._parse_module(module))

        return ParsedMetricsDocument(source_path=source_path, elements=tuple(elements))

    @staticmethod
    def _find_coverage_root(root: ET.Element) -> Optional[ET.Element]:
        if local_name(root).lower() in COVERAGE_ROOTS:
            return root
        for element in root.iter():
            if local_name(element).lower() in COVERAGE_ROOTS:
                return element
        return None

    @staticmethod
    def _modules(coverage_root: ET.Element) -> Iterator[ET.Element]:
        container = child(coverage_root, "Modules")
        if container is not None:
            return children(container, "Module")
        return (e for e in coverage_root.iter() if local_name(e).lower() == "module")

    def _parse_module(self, module: ET.Element) -> Iterator[ParsedCodeElement]:
        assembly = child_text(module, "ModuleName") or UNKNOWN_ASSEMBLY
        yield ParsedCodeElement(
            kind=CodeElementKind.ASSEMBLY,
            name=assembly,
            fully_qualified_name=assembly,
            containing_assembly_name=assembly,
            metrics=summary_metrics(child(module, "Summary")),
        )

        files = self._file_map(module)
        namespaces_seen = set()
        for class_element in nested(module, "Classes", "Class"):
            raw_name = child_text(class_element, "FullName") or UNKNOWN_TYPE
            type_fqn = normalize_type_name(apply_coverage_separators(raw_name)) or UNKNOWN_TYPE
            namespace = namespace_of_type(type_fqn)

            if namespace not in namespaces_seen:
                namespaces_seen.add(namespace)
                yield ParsedCodeElement(
                    kind=CodeElementKind.NAMESPACE,
                    name=namespace,
                    fully_qualified_name=namespace,
                    parent_fully_qualified_name=assembly,
                    containing_assembly_name=assembly,
                )

            yield ParsedCodeElement(
                kind=CodeElementKind.TYPE,
                name=_type_display_name(type_fqn, namespace),
                fully_qualified_name=type_fqn,
                parent_fully_qualified_name=namespace,
                containing_assembly_name=assembly,
                metrics=summary_metrics(child(class_element, "Summary")),
            )
            for method in nested(class_element, "Methods", "Method"):
                yield self._parse_method(method, type_fqn, assembly, files)

    @staticmethod
    def _file_map(module: ET.Element) -> Dict[str, str]:
        files: Dict[str, str] = {}
        for file_element in nested(module, "Files", "File"):
            uid = attribute(file_element, "uid")
            path = attribute(file_element, "fullPath")
            if uid is not None and path is not None:
                files[uid] = path
        return files

    def _parse_method(
        self, method: ET.Element, type_fqn: str, assembly: str, files: Dict[str, str]
    ) -> ParsedCodeElement:
        raw_name = child_text(method, "Name")
        if raw_name:
            fqn = normalize_coverage_method(raw_name, type_fqn)
            display = extract_method_name(apply_coverage_separators(raw_name)) or UNKNOWN_MEMBER
        else:
            fqn = f"{type_fqn}.{UNKNOWN_MEMBER}"
            display = UNKNOWN_MEMBER

        return ParsedCodeElement(
            kind=CodeElementKind.MEMBER,
            name=display,
            fully_qualified_name=fqn,
            parent_fully_qualified_name=type_fqn,
            containing_assembly_name=assembly,
            member_kind=MemberKind.METHOD,
            source=_method_source(method, files),
            metrics=method_metrics(method),
        )


def summary_metrics(summary: Optional[ET.Element]) -> Dict[MetricIdentifier, MetricValue]:
    """Metrics from a module or class ``Summary``. Branch coverage needs branch points."""
    metrics: Dict[MetricIdentifier, MetricValue] = {}
    if summary is None:
        return metrics

    for attr_name, identifier in _SUMMARY_ATTRIBUTES.items():
        value = parse_decimal(attribute(summary, attr_name))
        if value is not None:
            metrics[identifier] = MetricValue(value)

    if (parse_int(attribute(summary, "numBranchPoints")) or 0) > 0:
        value = parse_decimal(attribute(summary, "branchCoverage"))
        if value is not None:
            metrics[MetricIdentifier.OPENCOVER_BRANCH_COVERAGE] = MetricValue(value)
    return metrics


def method_metrics(method: ET.Element) -> Dict[MetricIdentifier, MetricValue]:
    metrics: Dict[MetricIdentifier, MetricValue] = {}
    for attr_name, identifier in _METHOD_ATTRIBUTES.items():
        value = parse_decimal(attribute(method, attr_name))
        if value is not None:
            metrics[identifier] = MetricValue(value)

    summary = child(method, "Summary")
    branch_points = parse_int(attribute(summary, "numBranchPoints"))
    if branch_points is None:
        branch_points = sum(1 for _ in nested(method, "BranchPoints", "BranchPoint"))
    if branch_points > 0:
        value = parse_decimal(attribute(method, "branchCoverage"))
        if value is None:
            value = parse_decimal(attribute(summary, "branchCoverage"))
        if value is not None:
            metrics[MetricIdentifier.OPENCOVER_BRANCH_COVERAGE] = MetricValue(value)
    return metrics


def _method_source(method: ET.Element, files: Dict[str, str]) -> Optional[SourceLocation]:
    file_ref = child(method, "FileRef")
    path = files.get(attribute(file_ref, "uid") or "")
    if path is None:
        return None

    starts: List[int] = []
    ends: List[int] = []
    for point in nested(method, "SequencePoints", "SequencePoint"):
        start = parse_int(attribute(point, "sl"))
        end = parse_int(attribute(point, "el"))
        if start is not None:
            starts.append(start)
        if end is not None:
            ends.append(end)

    if not starts:
        return SourceLocation(path)
    return SourceLocation(path, min(starts), max(ends) if ends else max(starts))


def _type_display_name(type_fqn: str, namespace: str) -> str:
    if namespace == GLOBAL_NAMESPACE or not type_fqn.startswith(namespace + "."):
        return type_fqn
    return type_fqn[len(namespace) + 1 :]
