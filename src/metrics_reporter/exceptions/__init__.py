"""Exception hierarchy for Metrics Reporter."""

from .analysis import (
    AnalysisError,
    DocumentParseError,
    DuplicateSymbolError,
    FileAccessError,
    OperationCancelledError,
)
from .base import MetricsReporterError
from .config import (
    ConfigurationError,
    InvalidConfigError,
    InvalidPathError,
)

__all__ = [
    "MetricsReporterError",
    "AnalysisError",
    "FileAccessError",
    "DocumentParseError",
    "DuplicateSymbolError",
    "OperationCancelledError",
    "ConfigurationError",
    "InvalidPathError",
    "InvalidConfigError",
]
