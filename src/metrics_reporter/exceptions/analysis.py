"""Analysis-related exceptions: file access, document parsing, symbol collisions."""

from pathlib import Path
from typing import Dict, List, Tuple

from .base import MetricsReporterError


class AnalysisError(MetricsReporterError):
    """Base class for analysis-related errors."""
    pass


class FileAccessError(AnalysisError):
    """Raised when a file cannot be accessed, read or written."""

    def __init__(self, filepath: Path, reason: str):
        super().__init__(
            f"Cannot access file: {filepath}",
            details={"filepath": str(filepath), "reason": reason},
        )
        self.filepath = filepath
        self.reason = reason


class DocumentParseError(AnalysisError):
    """Raised when an input document is malformed or has an unexpected shape."""

    def __init__(self, filepath: Path, format_name: str, reason: str):
        super().__init__(
            f"Failed to parse {format_name} document: {filepath}",
            details={"filepath": str(filepath), "format": format_name, "reason": reason},
        )
        self.filepath = filepath
        self.format_name = format_name
        self.reason = reason


class DuplicateSymbolError(AnalysisError):
    """Raised when the same symbol is reported by more than one input document.

    ``collisions`` holds ``(fqn, first_document, second_document)`` triples.
    """

    def __init__(self, collisions: List[Tuple[str, str, str]]):
        details: Dict[str, str] = {"collisions": str(len(collisions))}
        if collisions:
            details["first"] = collisions[0][0]
        super().__init__("Duplicate symbols detected across input documents", details=details)
        self.collisions = collisions


class OperationCancelledError(AnalysisError):
    """Raised when a run is cancelled before it completes."""

    def __init__(self, stage: str):
        super().__init__(f"Operation cancelled during {stage}", details={"stage": stage})
        self.stage = stage
