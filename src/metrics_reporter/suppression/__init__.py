"""Source-level suppression scanning and binding."""

from .analyzer import SuppressedSymbolsAnalyzer, analyze_source, resolve_assembly_name
from .attributes import RULE_METRIC_MAP, map_rule_to_metric, normalize_target
from .binder import attach_suppressions, bind_suppressions, resolve_metric
from .syntax import CSharpParser

__all__ = [
    "CSharpParser",
    "RULE_METRIC_MAP",
    "SuppressedSymbolsAnalyzer",
    "analyze_source",
    "attach_suppressions",
    "bind_suppressions",
    "map_rule_to_metric",
    "normalize_target",
    "resolve_assembly_name",
    "resolve_metric",
]
