"""Core data models shared by parsers, the aggregation tree and the report writer.

Parsed elements are immutable snapshots of one input document. The mutable
tree nodes that outlive a single document live in ``aggregation.tree``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Mapping, Optional

# Placeholder tokens. They look like generic names but must never be stripped.
UNKNOWN_TYPE = "<unknown-type>"
UNKNOWN_MEMBER = "<unknown-member>"
UNKNOWN_ASSEMBLY = "<unknown-assembly>"
GLOBAL_NAMESPACE = "<global>"

SENTINELS = frozenset({UNKNOWN_TYPE, UNKNOWN_MEMBER, UNKNOWN_ASSEMBLY, GLOBAL_NAMESPACE})


class CodeElementKind(Enum):
    """Levels of the symbol hierarchy."""

    SOLUTION = "Solution"
    ASSEMBLY = "Assembly"
    NAMESPACE = "Namespace"
    TYPE = "Type"
    MEMBER = "Member"


class MemberKind(Enum):
    UNKNOWN = "Unknown"
    METHOD = "Method"
    PROPERTY = "Property"
    FIELD = "Field"
    EVENT = "Event"


class MetricIdentifier(Enum):
    """Closed set of (tool, measurement) pairs the reporter understands.

    The enum value is the serialized name used in reports and thresholds.
    """

    OPENCOVER_SEQUENCE_COVERAGE = "OpenCoverSequenceCoverage"
    OPENCOVER_BRANCH_COVERAGE = "OpenCoverBranchCoverage"
    OPENCOVER_CYCLOMATIC_COMPLEXITY = "OpenCoverCyclomaticComplexity"
    OPENCOVER_NPATH_COMPLEXITY = "OpenCoverNPathComplexity"
    ROSLYN_MAINTAINABILITY_INDEX = "RoslynMaintainabilityIndex"
    ROSLYN_CYCLOMATIC_COMPLEXITY = "RoslynCyclomaticComplexity"
    ROSLYN_CLASS_COUPLING = "RoslynClassCoupling"
    ROSLYN_DEPTH_OF_INHERITANCE = "RoslynDepthOfInheritance"
    ROSLYN_SOURCE_LINES = "RoslynSourceLines"
    ROSLYN_EXECUTABLE_LINES = "RoslynExecutableLines"
    SARIF_CA_RULE_VIOLATIONS = "SarifCaRuleViolations"
    SARIF_IDE_RULE_VIOLATIONS = "SarifIdeRuleViolations"

    @classmethod
    def from_name(cls, name: Optional[str]) -> Optional[MetricIdentifier]:
        """Case-insensitive lookup by serialized name. Unknown names give None."""
        if not name:
            return None
        wanted = name.strip().lower()
        for identifier in cls:
            if identifier.value.lower() == wanted:
                return identifier
        return None

    @property
    def is_sarif(self) -> bool:
        return self in SARIF_METRICS


SARIF_METRICS = frozenset(
    {MetricIdentifier.SARIF_CA_RULE_VIOLATIONS, MetricIdentifier.SARIF_IDE_RULE_VIOLATIONS}
)

OPENCOVER_METRICS = frozenset(
    {
        MetricIdentifier.OPENCOVER_SEQUENCE_COVERAGE,
        MetricIdentifier.OPENCOVER_BRANCH_COVERAGE,
        MetricIdentifier.OPENCOVER_CYCLOMATIC_COMPLEXITY,
        MetricIdentifier.OPENCOVER_NPATH_COMPLEXITY,
    }
)


class MetricSymbolLevel(Enum):
    SOLUTION = "Solution"
    ASSEMBLY = "Assembly"
    NAMESPACE = "Namespace"
    TYPE = "Type"
    MEMBER = "Member"

    @classmethod
    def from_name(cls, name: str) -> Optional[MetricSymbolLevel]:
        wanted = name.strip().lower()
        for level in cls:
            if level.value.lower() == wanted:
                return level
        return None

    @classmethod
    def for_kind(cls, kind: CodeElementKind) -> MetricSymbolLevel:
        return cls(kind.value)


class ThresholdStatus(Enum):
    NOT_APPLICABLE = "NotApplicable"
    SUCCESS = "Success"
    WARNING = "Warning"
    ERROR = "Error"


@dataclass(frozen=True)
class SourceLocation:
    """File reference for a symbol. Lines are 1-based and optional."""

    path: str
    start_line: Optional[int] = None
    end_line: Optional[int] = None

    @property
    def has_line(self) -> bool:
        return self.start_line is not None


@dataclass(frozen=True)
class RuleViolation:
    message: Optional[str]
    uri: Optional[str]
    start_line: Optional[int]
    end_line: Optional[int]

    def sort_key(self) -> tuple:
        return (self.uri or "", self.start_line or 0, self.end_line or 0, self.message or "")


@dataclass(frozen=True)
class RuleBreakdownEntry:
    """Per-rule slice of a SARIF violation count."""

    count: int
    violations: tuple[RuleViolation, ...] = ()

    def merged(self, other: RuleBreakdownEntry) -> RuleBreakdownEntry:
        violations = sorted(self.violations + other.violations, key=RuleViolation.sort_key)
        return RuleBreakdownEntry(self.count + other.count, tuple(violations))


@dataclass
class MetricValue:
    """A metric reading on one symbol, annotated with status and baseline delta."""

    value: Optional[Decimal]
    delta: Optional[Decimal] = None
    status: ThresholdStatus = ThresholdStatus.NOT_APPLICABLE
    breakdown: Optional[Dict[str, RuleBreakdownEntry]] = None

    def copy(self) -> MetricValue:
        breakdown = dict(self.breakdown) if self.breakdown is not None else None
        return MetricValue(self.value, self.delta, self.status, breakdown)


def merge_breakdowns(
    left: Optional[Mapping[str, RuleBreakdownEntry]],
    right: Optional[Mapping[str, RuleBreakdownEntry]],
) -> Optional[Dict[str, RuleBreakdownEntry]]:
    if left is None and right is None:
        return None
    merged: Dict[str, RuleBreakdownEntry] = dict(left or {})
    for rule_id, entry in (right or {}).items():
        existing = merged.get(rule_id)
        merged[rule_id] = existing.merged(entry) if existing is not None else entry
    return dict(sorted(merged.items()))


@dataclass(frozen=True)
class ParsedCodeElement:
    """One symbol as reported by a single input document."""

    kind: CodeElementKind
    name: str
    fully_qualified_name: Optional[str]
    parent_fully_qualified_name: Optional[str] = None
    containing_assembly_name: Optional[str] = None
    member_kind: Optional[MemberKind] = None
    source: Optional[SourceLocation] = None
    metrics: Mapping[MetricIdentifier, MetricValue] = field(default_factory=dict)


@dataclass(frozen=True)
class RuleDescription:
    """Catalog entry for a static-analysis rule."""

    rule_id: str
    short_description: Optional[str] = None
    full_description: Optional[str] = None
    help_uri: Optional[str] = None
    category: Optional[str] = None


@dataclass(frozen=True)
class ParsedMetricsDocument:
    """Flat element list produced by one parser for one input file."""

    source_path: Optional[str]
    elements: tuple[ParsedCodeElement, ...]
    solution_name: Optional[str] = None
    rule_descriptions: Mapping[str, RuleDescription] = field(default_factory=dict)


@dataclass
class SuppressedSymbolInfo:
    """A source-level suppression of one rule on one symbol.

    ``metric`` stays None until the binder resolves it against the tree.
    """

    fully_qualified_name: str
    rule_id: str
    metric: Optional[MetricIdentifier] = None
    justification: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "FullyQualifiedName": self.fully_qualified_name,
            "RuleId": self.rule_id,
            "Metric": self.metric.value if self.metric else None,
            "Justification": self.justification,
        }

    @classmethod
    def from_dict(cls, data: dict) -> SuppressedSymbolInfo:
        return cls(
            fully_qualified_name=data["FullyQualifiedName"],
            rule_id=data["RuleId"],
            metric=MetricIdentifier.from_name(data.get("Metric")),
            justification=data.get("Justification"),
        )


@dataclass(frozen=True)
class MetricThreshold:
    warning: Optional[Decimal] = None
    error: Optional[Decimal] = None
    higher_is_better: bool = True
    positive_delta_neutral: bool = False


@dataclass
class MetricThresholdDefinition:
    """Per-level thresholds for one metric identifier."""

    levels: Dict[MetricSymbolLevel, MetricThreshold] = field(default_factory=dict)
    description: Optional[str] = None


ThresholdMap = Dict[MetricIdentifier, MetricThresholdDefinition]
SuppressionList = List[SuppressedSymbolInfo]
