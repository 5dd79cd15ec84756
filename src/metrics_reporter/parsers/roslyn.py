"""Roslyn code-metrics XML parser.

The input is an explicit tree::

    CodeMetricsReport/Targets/Target
        Assembly/Namespaces/Namespace
            Types/NamedType/Members/{Method,Property,Field,Event}

with ``Metrics/Metric(Name, Value)`` at every level and optional
``File``/``Line`` attributes on types and members.
"""

from __future__ import annotations

import re
import xml.etree.ElementTree as ET
from typing import Dict, Iterator, List, Optional

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
    CONSTRUCTOR_NAMES,
    FINALIZER_NAME,
    combine_member_fqn,
    extract_method_name,
    is_placeholder,
    normalize_type_name,
    simple_name,
    strip_return_type,
)
from .base import (
    MetricsParser,
    attribute,
    children,
    local_name,
    nested,
    parse_decimal,
    parse_int,
    parse_xml,
)

logger = get_logger(__name__)

ROSLYN_METRIC_NAMES: Dict[str, MetricIdentifier] = {
    "MaintainabilityIndex": MetricIdentifier.ROSLYN_MAINTAINABILITY_INDEX,
    "CyclomaticComplexity": MetricIdentifier.ROSLYN_CYCLOMATIC_COMPLEXITY,
    "ClassCoupling": MetricIdentifier.ROSLYN_CLASS_COUPLING,
    "DepthOfInheritance": MetricIdentifier.ROSLYN_DEPTH_OF_INHERITANCE,
    "SourceLines": MetricIdentifier.ROSLYN_SOURCE_LINES,
    "ExecutableLines": MetricIdentifier.ROSLYN_EXECUTABLE_LINES,
}

MEMBER_TAGS: Dict[str, MemberKind] = {
    "method": MemberKind.METHOD,
    "property": MemberKind.PROPERTY,
    "field": MemberKind.FIELD,
    "event": MemberKind.EVENT,
}

ACCESSOR_PREFIXES: Dict[str, MemberKind] = {
    "get_": MemberKind.PROPERTY,
    "set_": MemberKind.PROPERTY,
    "add_": MemberKind.EVENT,
    "remove_": MemberKind.EVENT,
}

_ACCESSOR_BLOCK_RE = re.compile(r"\s*\{[^}]*\}\s*$")

COMPILED_MEMBER_NAMES = (*CONSTRUCTOR_NAMES, FINALIZER_NAME)


def read_metrics(element: ET.Element) -> Dict[MetricIdentifier, MetricValue]:
    """``Metrics/Metric`` children; unknown metric names are skipped."""
    metrics: Dict[MetricIdentifier, MetricValue] = {}
    for metric in nested(element, "Metrics", "Metric"):
        identifier = ROSLYN_METRIC_NAMES.get(attribute(metric, "Name") or "")
        if identifier is None:
            continue
        metrics[identifier] = MetricValue(parse_decimal(attribute(metric, "Value")))
    return metrics


def read_source(element: ET.Element) -> Optional[SourceLocation]:
    path = attribute(element, "File")
    if not path:
        return None
    # An unparsable line keeps the file but drops the location
    line = parse_int(attribute(element, "Line"))
    return SourceLocation(path, line, line)


def short_assembly_name(name: Optional[str]) -> str:
    if name is None:
        return UNKNOWN_ASSEMBLY
    short = name.split(",", 1)[0].strip()
    return short or UNKNOWN_ASSEMBLY


class RoslynMetricsParser(MetricsParser):
    """Walks a Roslyn ``CodeMetricsReport`` tree."""

    format_name = "Roslyn metrics"

    def parse_content(self, content: bytes, source_path: Optional[str]) -> ParsedMetricsDocument:
        root = parse_xml(content, source_path, self.format_name)

        solution_name: Optional[str] = None
        elements: List[ParsedCodeElement] = []
        for target in self._targets(root):
            name = attribute(target, "Name")
            if name:
                solution_name = name
            for assembly in children(target, "Assembly"):
                elements.extend(self._parse_assembly(assembly))

        return ParsedMetricsDocument(
            source_path=source_path, elements=tuple(elements), solution_name=solution_name
        )

    @staticmethod
    def _targets(root: ET.Element) -> Iterator[ET.Element]:
        if local_name(root).lower() == "target":
            return iter([root])
        return nested(root, "Targets", "Target")

    def _parse_assembly(self, assembly: ET.Element) -> Iterator[ParsedCodeElement]:
        assembly_name = short_assembly_name(attribute(assembly, "Name"))
        yield ParsedCodeElement(
            kind=CodeElementKind.ASSEMBLY,
            name=assembly_name,
            fully_qualified_name=assembly_name,
            containing_assembly_name=assembly_name,
            metrics=read_metrics(assembly),
        )

        for namespace in nested(assembly, "Namespaces", "Namespace"):
            # Missing Name means the global namespace; Name="" is kept as ""
            namespace_name = attribute(namespace, "Name")
            if namespace_name is None:
                namespace_name = GLOBAL_NAMESPACE
            yield ParsedCodeElement(
                kind=CodeElementKind.NAMESPACE,
                name=namespace_name,
                fully_qualified_name=namespace_name,
                parent_fully_qualified_name=assembly_name,
                containing_assembly_name=assembly_name,
                metrics=read_metrics(namespace),
            )
            for type_element in nested(namespace, "Types", "*"):
                yield from self._parse_type(type_element, namespace_name, assembly_name)

    def _parse_type(
        self, type_element: ET.Element, namespace_name: str, assembly_name: str
    ) -> Iterator[ParsedCodeElement]:
        raw_name = attribute(type_element, "Name")
        type_name = normalize_type_name(raw_name) if raw_name else UNKNOWN_TYPE
        type_name = type_name or UNKNOWN_TYPE
        if namespace_name and namespace_name != GLOBAL_NAMESPACE and not is_placeholder(type_name):
            type_fqn = f"{namespace_name}.{type_name}"
        else:
            type_fqn = type_name

        yield ParsedCodeElement(
            kind=CodeElementKind.TYPE,
            name=type_name,
            fully_qualified_name=type_fqn,
            parent_fully_qualified_name=namespace_name,
            containing_assembly_name=assembly_name,
            source=read_source(type_element),
            metrics=read_metrics(type_element),
        )

        members = list(nested(type_element, "Members", "*"))
        declared = {
            (MEMBER_TAGS.get(local_name(m).lower()), self._member_simple_name(m)) for m in members
        }
        for member in members:
            element = self._parse_member(member, type_fqn, assembly_name)
            if _duplicates_accessor_owner(element, declared):
                logger.debug(f"Skipping accessor {element.fully_qualified_name}")
                continue
            yield element

    @staticmethod
    def _member_signature(member: ET.Element) -> Optional[str]:
        raw = attribute(member, "Name")
        if not raw or not raw.strip():
            return None
        signature = _ACCESSOR_BLOCK_RE.sub("", strip_return_type(raw)).strip()
        if "(" not in signature and " " in signature:
            # event and field declarations can carry more than one leading token
            signature = signature.rsplit(" ", 1)[-1]
        return signature or None

    def _member_simple_name(self, member: ET.Element) -> Optional[str]:
        signature = self._member_signature(member)
        return simple_name(signature) if signature else None

    def _parse_member(
        self, member: ET.Element, type_fqn: str, assembly_name: str
    ) -> ParsedCodeElement:
        member_kind = MEMBER_TAGS.get(local_name(member).lower(), MemberKind.UNKNOWN)
        signature = self._member_signature(member)
        if signature is None:
            fqn = f"{type_fqn}.{UNKNOWN_MEMBER}"
            display = UNKNOWN_MEMBER
        else:
            is_static = (attribute(member, "Name") or "").lstrip().startswith("static ")
            fqn = combine_member_fqn(type_fqn, signature, is_static)
            if member_kind is MemberKind.METHOD:
                display = extract_method_name(signature) or signature
                if simple_name(fqn) in COMPILED_MEMBER_NAMES:
                    display = simple_name(fqn)
            else:
                display = simple_name(signature)

        return ParsedCodeElement(
            kind=CodeElementKind.MEMBER,
            name=display,
            fully_qualified_name=fqn,
            parent_fully_qualified_name=type_fqn,
            containing_assembly_name=assembly_name,
            member_kind=member_kind,
            source=read_source(member),
            metrics=read_metrics(member),
        )


def _duplicates_accessor_owner(element: ParsedCodeElement, declared: set) -> bool:
    """True for get_/set_/add_/remove_ methods whose property or event is also listed."""
    if element.member_kind is not MemberKind.METHOD:
        return False
    for prefix, owner_kind in ACCESSOR_PREFIXES.items():
        if element.name.startswith(prefix) and len(element.name) > len(prefix):
            return (owner_kind, element.name[len(prefix) :]) in declared
    return False
