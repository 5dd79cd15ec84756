"""JSON report, baseline snapshot and suppression cache formats."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from .aggregation.tree import MetricsNode, MetricsTree
from .exceptions import DocumentParseError, FileAccessError
from .file_ops import atomic_write_text
from .logging_config import get_logger
from .models import (
    CodeElementKind,
    MetricIdentifier,
    MetricValue,
    RuleBreakdownEntry,
    RuleDescription,
    SuppressedSymbolInfo,
)

logger = get_logger(__name__)

PathLike = Union[str, Path]
SnapshotKey = Tuple[CodeElementKind, str]


def decimal_to_json(value: Optional[Decimal]) -> Union[int, float, str, None]:
    """JSON form of a metric value.

    Integral values become ints. A fraction becomes a float only when that
    float reads back as the same decimal; otherwise the exact decimal text is
    written as a string, which ``snapshot_from_dict`` parses back unchanged.
    """
    if value is None:
        return None
    if value == value.to_integral_value():
        return int(value)
    as_float = float(value)
    if Decimal(repr(as_float)) == value:
        return as_float
    return str(value)


def _breakdown_to_dict(breakdown: Mapping[str, RuleBreakdownEntry]) -> Dict[str, Any]:
    return {
        rule_id: {
            "Count": entry.count,
            "Violations": [
                {
                    "Message": v.message,
                    "Uri": v.uri,
                    "StartLine": v.start_line,
                    "EndLine": v.end_line,
                }
                for v in entry.violations
            ],
        }
        for rule_id, entry in breakdown.items()
    }


def metric_to_dict(metric: MetricValue) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "Value": decimal_to_json(metric.value),
        "Status": metric.status.value,
    }
    if metric.delta is not None:
        data["Delta"] = decimal_to_json(metric.delta)
    if metric.breakdown:
        data["Breakdown"] = _breakdown_to_dict(metric.breakdown)
    return data


def node_to_dict(node: MetricsNode) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "Kind": node.kind.value,
        "Name": node.name,
        "FullyQualifiedName": node.fully_qualified_name,
        "ParentFullyQualifiedName": node.parent_fully_qualified_name,
        "ContainingAssemblyName": node.containing_assembly_name,
    }
    if node.member_kind is not None:
        data["MemberKind"] = node.member_kind.value
    if node.source is not None:
        data["Source"] = {
            "Path": node.source.path,
            "StartLine": node.source.start_line,
            "EndLine": node.source.end_line,
        }
    data["Metrics"] = {
        identifier.value: metric_to_dict(metric)
        for identifier, metric in sorted(node.metrics.items(), key=lambda kv: kv[0].value)
    }
    if node.is_new:
        data["IsNew"] = True
    if node.suppressions:
        data["Suppressions"] = [s.to_dict() for s in node.suppressions]
    return data


def report_to_dict(
    tree: MetricsTree, rule_descriptions: Optional[Mapping[str, RuleDescription]] = None
) -> Dict[str, Any]:
    """Report document: solution name plus every node, parents before children."""
    data: Dict[str, Any] = {
        "SolutionName": tree.solution_name,
        "Elements": [node_to_dict(node) for node in tree.walk()],
    }
    if rule_descriptions:
        data["Rules"] = {
            rule_id: {
                "ShortDescription": d.short_description,
                "FullDescription": d.full_description,
                "HelpUri": d.help_uri,
                "Category": d.category,
            }
            for rule_id, d in sorted(rule_descriptions.items())
        }
    return data


def write_report(
    tree: MetricsTree,
    path: PathLike,
    rule_descriptions: Optional[Mapping[str, RuleDescription]] = None,
) -> Path:
    text = json.dumps(report_to_dict(tree, rule_descriptions), indent=2, ensure_ascii=False)
    target = atomic_write_text(path, text + "\n")
    logger.info(f"Wrote report with {len(tree) + 1} elements to {target}")
    return target


@dataclass
class ReportSnapshot:
    """Metric values of a previously written report, keyed by ``(kind, fqn)``."""

    solution_name: Optional[str] = None
    values: Dict[SnapshotKey, Dict[MetricIdentifier, Optional[Decimal]]] = field(
        default_factory=dict
    )

    def __contains__(self, key: SnapshotKey) -> bool:
        return key in self.values

    def get(self, key: SnapshotKey) -> Optional[Dict[MetricIdentifier, Optional[Decimal]]]:
        return self.values.get(key)


def _to_decimal(value: Any) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, float, str)):
        try:
            result = Decimal(str(value))
        except ArithmeticError:
            return None
        return result if result.is_finite() else None
    return None


def snapshot_from_dict(data: Any, source: str = "<report>") -> ReportSnapshot:
    """Parse a report document.

    Raises:
        DocumentParseError: If the document is not a report object
    """
    if not isinstance(data, dict) or not isinstance(data.get("Elements"), list):
        raise DocumentParseError(
            Path(source), "report", "Expected an object with an 'Elements' array"
        )

    snapshot = ReportSnapshot(solution_name=data.get("SolutionName"))
    for element in data["Elements"]:
        if not isinstance(element, dict):
            continue
        try:
            kind = CodeElementKind(element.get("Kind"))
        except ValueError:
            continue
        fqn = element.get("FullyQualifiedName")
        if not isinstance(fqn, str):
            continue

        metrics: Dict[MetricIdentifier, Optional[Decimal]] = {}
        raw_metrics = element.get("Metrics")
        if isinstance(raw_metrics, dict):
            for name, metric in raw_metrics.items():
                identifier = MetricIdentifier.from_name(name)
                if identifier is None:
                    continue
                value = metric.get("Value") if isinstance(metric, dict) else metric
                metrics[identifier] = _to_decimal(value)
        snapshot.values[(kind, fqn)] = metrics
    return snapshot


def load_report_snapshot(path: PathLike) -> ReportSnapshot:
    """
    Load a report (or baseline) file.

    Raises:
        FileAccessError: If the file cannot be read
        DocumentParseError: If it is not valid report JSON
    """
    filepath = Path(path)
    try:
        text = filepath.read_text(encoding="utf-8-sig")
    except OSError as e:
        raise FileAccessError(filepath, f"Read failed: {e}")
    try:
        data = json.loads(text, parse_float=Decimal)
    except json.JSONDecodeError as e:
        raise DocumentParseError(filepath, "report", str(e))

    snapshot = snapshot_from_dict(data, str(filepath))
    logger.debug(f"Loaded snapshot with {len(snapshot.values)} elements from {filepath}")
    return snapshot


def write_suppressions(suppressions: List[SuppressedSymbolInfo], path: PathLike) -> Path:
    data = {"SuppressedSymbols": [s.to_dict() for s in suppressions]}
    target = atomic_write_text(path, json.dumps(data, indent=2, ensure_ascii=False) + "\n")
    logger.info(f"Wrote {len(suppressions)} suppressed symbols to {target}")
    return target


def load_suppressions(path: PathLike) -> List[SuppressedSymbolInfo]:
    """Suppressions cached by a previous run; a missing file gives an empty list.

    Raises:
        DocumentParseError: If the cache exists but is malformed
    """
    filepath = Path(path)
    if not filepath.exists():
        logger.info(f"No suppressed symbols cache at {filepath}")
        return []
    try:
        data = json.loads(filepath.read_text(encoding="utf-8-sig"))
    except OSError as e:
        raise FileAccessError(filepath, f"Read failed: {e}")
    except json.JSONDecodeError as e:
        raise DocumentParseError(filepath, "suppressed symbols", str(e))

    entries = data.get("SuppressedSymbols") if isinstance(data, dict) else None
    if not isinstance(entries, list):
        raise DocumentParseError(
            filepath, "suppressed symbols", "Expected an object with a 'SuppressedSymbols' array"
        )

    suppressions: List[SuppressedSymbolInfo] = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        if not entry.get("FullyQualifiedName") or not entry.get("RuleId"):
            continue
        suppressions.append(SuppressedSymbolInfo.from_dict(entry))
    return suppressions
