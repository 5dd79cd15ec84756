"""Root of the reporter's exception hierarchy.

Every error carries a one-line message plus string details. Most failures
concern one input or output file, so ``str()`` lists the path detail first.
"""

from typing import Dict, Mapping, Optional

PATH_KEYS = ("filepath", "path")


class MetricsReporterError(Exception):
    """Base exception for all Metrics Reporter errors.

    Detail values are stringified on construction and ``None`` values are
    dropped, so an error can be logged or serialized as-is.
    """

    def __init__(self, message: str, details: Optional[Mapping[str, object]] = None):
        super().__init__(message)
        self.message = message
        self.details: Dict[str, str] = {
            key: str(value) for key, value in (details or {}).items() if value is not None
        }

    @property
    def path(self) -> Optional[str]:
        """The file this error concerns, if any."""
        for key in PATH_KEYS:
            if key in self.details:
                return self.details[key]
        return None

    def summary(self) -> str:
        """Message plus reason, for log lines that already name the file."""
        reason = self.details.get("reason")
        return f"{self.message}: {reason}" if reason else self.message

    def __str__(self) -> str:
        if not self.details:
            return self.message
        ordered = sorted(self.details.items(), key=lambda item: item[0] not in PATH_KEYS)
        details_str = ", ".join(f"{key}={value}" for key, value in ordered)
        return f"{self.message} ({details_str})"
