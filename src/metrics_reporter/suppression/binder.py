"""Binds scanned suppressions to tree nodes."""

from __future__ import annotations

from typing import Optional, Sequence

from ..aggregation.tree import MetricsNode, MetricsTree
from ..logging_config import get_logger
from ..models import MetricIdentifier, SuppressedSymbolInfo

logger = get_logger(__name__)

# Tried in order when the rule id prefix does not pick a metric the node reports
FALLBACK_METRICS = (
    MetricIdentifier.SARIF_IDE_RULE_VIOLATIONS,
    MetricIdentifier.SARIF_CA_RULE_VIOLATIONS,
)


def preferred_metric(rule_id: Optional[str]) -> Optional[MetricIdentifier]:
    if not rule_id or not rule_id.strip():
        return None
    upper = rule_id.strip().upper()
    if upper.startswith("IDE"):
        return MetricIdentifier.SARIF_IDE_RULE_VIOLATIONS
    if upper.startswith("CA"):
        return MetricIdentifier.SARIF_CA_RULE_VIOLATIONS
    return None


def node_reports(node: MetricsNode, identifier: MetricIdentifier) -> bool:
    metric = node.metrics.get(identifier)
    return metric is not None and metric.value is not None


def resolve_metric(node: MetricsNode, rule_id: Optional[str]) -> Optional[MetricIdentifier]:
    """Violation metric the suppressed rule lands in on ``node``, if any."""
    preferred = preferred_metric(rule_id)
    if preferred is not None and node_reports(node, preferred):
        return preferred
    for candidate in FALLBACK_METRICS:
        if node_reports(node, candidate):
            return candidate
    return None


def bind_suppressions(tree: MetricsTree, suppressions: Sequence[SuppressedSymbolInfo]) -> int:
    """Fill in ``metric`` for suppressions the rule map could not resolve.

    Entries that already carry a metric are left alone. Returns the number
    of entries bound.
    """
    bound = 0
    for suppression in suppressions:
        if not suppression.fully_qualified_name or not suppression.fully_qualified_name.strip():
            continue
        if suppression.metric is not None:
            continue
        node = tree.find_symbol(suppression.fully_qualified_name)
        if node is None:
            continue
        metric = resolve_metric(node, suppression.rule_id)
        if metric is not None:
            suppression.metric = metric
            bound += 1
    if bound:
        logger.debug(f"Bound {bound} suppressions to SARIF metrics")
    return bound


def attach_suppressions(tree: MetricsTree, suppressions: Sequence[SuppressedSymbolInfo]) -> int:
    """Record each suppression on the node it names. Returns the number attached."""
    attached = 0
    unmatched = 0
    for suppression in suppressions:
        node = tree.find_symbol(suppression.fully_qualified_name)
        if node is None:
            unmatched += 1
            continue
        if suppression not in node.suppressions:
            node.suppressions.append(suppression)
            attached += 1
    if unmatched:
        logger.debug(f"{unmatched} suppressions name symbols absent from the report")
    return attached
