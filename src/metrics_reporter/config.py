"""Configuration loading and management for Metrics Reporter.

Configuration sources are merged in priority order:
    1. Defaults (defined in ReporterConfig)
    2. Global config (~/.metrics-reporter.toml)
    3. Project config (./metrics-reporter.toml)
    4. Explicit config file
    5. Environment variables (METRICS_REPORTER_* prefix)
    6. CLI overrides (passed as kwargs)

Example:
    >>> config = load_config(opencover=["coverage.xml"], verbose=True)
    >>> config.verbosity
    'verbose'
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal, Optional, get_type_hints

from .exceptions import ConfigurationError
from .filters import DEFAULT_EXCLUDED_MEMBERS

Verbosity = Literal["quiet", "normal", "verbose"]

ENV_PREFIX = "METRICS_REPORTER_"
CONFIG_FILE_NAME = "metrics-reporter.toml"
DEFAULT_REPORT_NAME = "metrics-report.json"
DEFAULT_SUPPRESSIONS_NAME = "SuppressedSymbols.json"


@dataclass(frozen=True)
class ReporterConfig:
    """Settings for one report generation run.

    Attributes:
        Inputs:
            opencover: OpenCover coverage XML files
            roslyn: Roslyn code metrics XML files
            sarif: SARIF analyzer logs
            solution_name: Root element name; documents may supply their own

        Outputs:
            output_json: Report file written by the run
            suppressed_symbols: Suppression cache (defaults next to the report)

        Baseline:
            baseline: Baseline report to compute deltas against
            storage_dir: Where replaced baselines are archived
            replace_baseline: Rotate the baseline after the run

        Thresholds:
            thresholds_file: JSON threshold overrides
            thresholds: Inline JSON threshold overrides, wins over thresholds_file
            include_suppressed: Evaluate suppressed metrics like any other

        Suppression scanning:
            analyze_suppressions: Scan sources for SuppressMessage attributes
            solution_dir: Root that source_folders are relative to
            source_folders: Folders holding the C# sources
            excluded_assemblies: Comma/semicolon separated assembly name patterns,
                also dropped from the report tree

        Element filters:
            excluded_members: Member names or wildcards to leave out (ctor, *b__*)
            excluded_types: Type FQN substrings or wildcards to leave out
            exclude_methods: Drop methods that carry no findings
            exclude_properties: Drop properties that carry no findings
            exclude_fields: Drop fields that carry no findings
            exclude_events: Drop events that carry no findings

        Execution:
            workers: Parallel parser workers (None = one per document, capped)
            verbosity: Logging verbosity level
            log_file: Plain-text log file appended to by every run
    """

    # Inputs
    opencover: list[str] = field(default_factory=list)
    roslyn: list[str] = field(default_factory=list)
    sarif: list[str] = field(default_factory=list)
    solution_name: Optional[str] = None

    # Outputs
    output_json: str = DEFAULT_REPORT_NAME
    suppressed_symbols: Optional[str] = None

    # Baseline
    baseline: Optional[str] = None
    storage_dir: Optional[str] = None
    replace_baseline: bool = False

    # Thresholds
    thresholds_file: Optional[str] = None
    thresholds: Optional[str] = None
    include_suppressed: bool = False

    # Suppression scanning
    analyze_suppressions: bool = False
    solution_dir: Optional[str] = None
    source_folders: list[str] = field(default_factory=lambda: ["src"])
    excluded_assemblies: Optional[str] = None

    # Element filters
    excluded_members: Optional[str] = DEFAULT_EXCLUDED_MEMBERS
    excluded_types: Optional[str] = None
    exclude_methods: bool = False
    exclude_properties: bool = False
    exclude_fields: bool = False
    exclude_events: bool = False

    # Execution
    workers: Optional[int] = None
    verbosity: Verbosity = "normal"
    log_file: Optional[str] = None

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        for name in ("opencover", "roslyn", "sarif", "source_folders"):
            value = getattr(self, name)
            if not isinstance(value, (list, tuple)) or not all(isinstance(p, str) for p in value):
                raise ValueError(f"{name} must be a list of paths")

        if not self.output_json or not self.output_json.strip():
            raise ValueError("output_json must not be empty")

        if self.workers is not None and self.workers < 1:
            raise ValueError("workers must be at least 1")

        if self.verbosity not in ("quiet", "normal", "verbose"):
            raise ValueError("verbosity must be one of quiet, normal, verbose")

        if self.replace_baseline and not self.baseline:
            raise ValueError("replace_baseline requires a baseline path")

    @property
    def has_inputs(self) -> bool:
        return bool(self.opencover or self.roslyn or self.sarif)

    @property
    def suppressed_symbols_path(self) -> Path:
        """Suppression cache path, next to the report unless configured."""
        if self.suppressed_symbols:
            return Path(self.suppressed_symbols)
        return Path(self.output_json).parent / DEFAULT_SUPPRESSIONS_NAME

    @property
    def source_root(self) -> Path:
        return Path(self.solution_dir) if self.solution_dir else Path.cwd()


def load_config(config_file: Optional[Path] = None, **overrides) -> ReporterConfig:
    """Load configuration with auto-discovery and merging.

    Configuration sources are merged in priority order (lowest to highest):
        1. Defaults (ReporterConfig field defaults)
        2. Global config (~/.metrics-reporter.toml)
        3. Project config (./metrics-reporter.toml)
        4. Explicit config file (if config_file provided)
        5. Environment variables (METRICS_REPORTER_* prefix)
        6. CLI overrides (kwargs); None values are ignored

    Args:
        config_file: Optional explicit config file path
        **overrides: Direct overrides (typically from CLI flags)

    Returns:
        Validated ReporterConfig instance

    Raises:
        ConfigurationError: If a config file is invalid or missing
    """
    merged: dict = {}

    global_config = Path.home() / f".{CONFIG_FILE_NAME}"
    if global_config.exists():
        try:
            merged.update(_load_toml_file(global_config))
        except Exception as e:
            raise ConfigurationError(f"Invalid global config '{global_config}': {e}")

    project_config = Path.cwd() / CONFIG_FILE_NAME
    if project_config.exists():
        try:
            merged.update(_load_toml_file(project_config))
        except Exception as e:
            raise ConfigurationError(f"Invalid project config '{project_config}': {e}")

    if config_file is not None:
        if not config_file.exists():
            raise ConfigurationError(f"Config file not found: {config_file}")
        try:
            merged.update(_load_toml_file(config_file))
        except Exception as e:
            raise ConfigurationError(f"Invalid config file '{config_file}': {e}")

    merged.update(_load_env_vars())

    # Convert verbosity boolean flags to string
    if "verbose" in overrides:
        if overrides["verbose"]:
            overrides["verbosity"] = "verbose"
        del overrides["verbose"]
    if "quiet" in overrides:
        if overrides["quiet"]:
            overrides["verbosity"] = "quiet"
        del overrides["quiet"]

    # Unset CLI options and empty repeatable options leave file values alone
    merged.update({k: v for k, v in overrides.items() if v is not None and v != []})

    try:
        return ReporterConfig(**merged)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid configuration: {e}")


def _load_env_vars() -> dict[str, Any]:
    """Load configuration from METRICS_REPORTER_* environment variables.

    List fields (opencover, roslyn, sarif, source_folders) take values
    separated by ``os.pathsep``.

    Returns:
        Dict of field_name -> parsed_value for any METRICS_REPORTER_* vars found.
    """
    type_hints = get_type_hints(ReporterConfig)

    result: dict[str, Any] = {}

    for field_name in ReporterConfig.__dataclass_fields__:
        env_key = f"{ENV_PREFIX}{field_name.upper()}"
        env_value = os.environ.get(env_key)

        if env_value is None:
            continue

        type_hint = type_hints.get(field_name)
        if type_hint is None:
            continue

        try:
            parsed = _parse_env_value(env_value, type_hint, field_name)
            if parsed is not None:
                result[field_name] = parsed
        except ValueError as e:
            raise ConfigurationError(f"Invalid {env_key}: {e}")

    return result


def _parse_env_value(value: str, type_hint: Any, field_name: str) -> Any:
    """Parse environment variable string to the correct type.

    Raises:
        ValueError: If value can't be parsed to expected type
    """
    origin = getattr(type_hint, "__origin__", None)

    # Optional[X] is Union[X, None]
    args = getattr(type_hint, "__args__", ())
    if type(None) in args:
        non_none_types = [t for t in args if t is not type(None)]
        if non_none_types:
            type_hint = non_none_types[0]
            origin = getattr(type_hint, "__origin__", None)

    if origin is list or type_hint is list:
        return [p for p in value.split(os.pathsep) if p.strip()]

    if type_hint is bool:
        lower = value.lower()
        if lower in ("true", "1", "yes", "on"):
            return True
        elif lower in ("false", "0", "no", "off"):
            return False
        else:
            raise ValueError(f"expected true/false, got '{value}'")

    if type_hint is int:
        return int(value)

    if type_hint is str or origin is Literal:
        return value

    return None


def _load_toml_file(path: Path) -> dict:
    """Load TOML file and return parsed dict.

    Raises:
        ConfigurationError: If tomllib/tomli not available
        Exception: If TOML parsing fails
    """
    try:
        # Python 3.11+ has tomllib in stdlib
        import tomllib
    except ModuleNotFoundError:
        try:
            import tomli as tomllib  # type: ignore
        except ImportError:
            raise ConfigurationError(
                "TOML support requires Python 3.11+ or 'tomli' package. "
                "Install with: pip install tomli"
            )

    with open(path, "rb") as f:
        return tomllib.load(f)
