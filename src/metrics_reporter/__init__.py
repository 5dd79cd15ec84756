"""
Metrics Reporter - code quality metrics aggregation

Merges OpenCover coverage, Roslyn code metrics and SARIF analyzer findings
into one Solution -> Assembly -> Namespace -> Type -> Member tree, evaluates
thresholds, honors source-level suppressions and diffs against a baseline.
"""

__version__ = "0.1.0"

from .config import ReporterConfig, load_config
from .pipeline import PipelineResult, ReportPipeline

__all__ = [
    "ReporterConfig",
    "load_config",
    "ReportPipeline",
    "PipelineResult",
]
