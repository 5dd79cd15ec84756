"""Merging of parsed documents into one symbol tree."""

from .builder import AggregationTreeBuilder, collect_rule_descriptions, merge_metric
from .line_index import LineIndex, normalize_path
from .tree import MetricsNode, MetricsTree

__all__ = [
    "AggregationTreeBuilder",
    "LineIndex",
    "MetricsNode",
    "MetricsTree",
    "collect_rule_descriptions",
    "merge_metric",
    "normalize_path",
]
