"""Shared CLI helpers."""

from pathlib import Path
from typing import Any, List, Optional

from rich.console import Console

from ..config import ReporterConfig, load_config

console = Console()

STATUS_STYLES = {
    "Success": "green",
    "Warning": "yellow",
    "Error": "red",
    "NotApplicable": "dim",
}


def _paths(values: Optional[List[Path]]) -> Optional[List[str]]:
    if not values:
        return None
    return [str(v) for v in values]


def resolve_config(
    config: Optional[Path] = None,
    opencover: Optional[List[Path]] = None,
    roslyn: Optional[List[Path]] = None,
    sarif: Optional[List[Path]] = None,
    verbose: bool = False,
    quiet: bool = False,
    **options: Any,
) -> ReporterConfig:
    """Build a config from CLI options. Options left unset keep file and env values."""
    overrides = {
        "opencover": _paths(opencover),
        "roslyn": _paths(roslyn),
        "sarif": _paths(sarif),
        "verbose": verbose,
        "quiet": quiet,
    }
    for key, value in options.items():
        if isinstance(value, Path):
            value = str(value)
        elif isinstance(value, list):
            value = [str(v) for v in value] or None
        # Flags only override when switched on
        if value is False:
            value = None
        overrides[key] = value
    return load_config(config_file=config, **overrides)
