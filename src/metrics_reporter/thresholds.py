"""
Threshold definitions and status evaluation.

Definitions come from built-in defaults, optionally overridden by a JSON
file of the form::

    {"metrics": [{"name": "RoslynClassCoupling",
                  "higherIsBetter": false,
                  "symbolThresholds": {"Type": {"warning": 40, "error": 60}}}]}

Boundary values fall into the stricter bucket: with ``higherIsBetter`` a
value equal to the warning threshold is a Warning.
"""

import json
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Optional, Union

from .aggregation.tree import MetricsTree
from .exceptions import InvalidConfigError, InvalidPathError
from .logging_config import get_logger
from .models import (
    MetricIdentifier,
    MetricSymbolLevel,
    MetricThreshold,
    MetricThresholdDefinition,
    ThresholdMap,
    ThresholdStatus,
)
from .parsers.base import parse_decimal

logger = get_logger(__name__)

ALL_LEVELS = tuple(MetricSymbolLevel)

# identifier -> (warning, error, higher_is_better, positive_delta_neutral)
_DEFAULTS = {
    MetricIdentifier.OPENCOVER_SEQUENCE_COVERAGE: (75, 60, True, False),
    MetricIdentifier.OPENCOVER_BRANCH_COVERAGE: (70, 55, True, False),
    MetricIdentifier.OPENCOVER_CYCLOMATIC_COMPLEXITY: (15, 30, False, False),
    MetricIdentifier.OPENCOVER_NPATH_COMPLEXITY: (200, 400, False, False),
    MetricIdentifier.ROSLYN_MAINTAINABILITY_INDEX: (65, 40, True, False),
    MetricIdentifier.ROSLYN_CYCLOMATIC_COMPLEXITY: (12, 25, False, False),
    MetricIdentifier.ROSLYN_CLASS_COUPLING: (50, 80, False, False),
    MetricIdentifier.ROSLYN_DEPTH_OF_INHERITANCE: (5, 8, False, False),
    MetricIdentifier.ROSLYN_SOURCE_LINES: (None, None, False, True),
    MetricIdentifier.ROSLYN_EXECUTABLE_LINES: (None, None, False, True),
    MetricIdentifier.SARIF_CA_RULE_VIOLATIONS: (5, 10, False, False),
    MetricIdentifier.SARIF_IDE_RULE_VIOLATIONS: (10, 20, False, False),
}


def _decimal(value: Optional[int]) -> Optional[Decimal]:
    return Decimal(value) if value is not None else None


def uniform_definition(
    warning: Optional[Decimal],
    error: Optional[Decimal],
    higher_is_better: bool,
    positive_delta_neutral: bool = False,
) -> MetricThresholdDefinition:
    threshold = MetricThreshold(warning, error, higher_is_better, positive_delta_neutral)
    return MetricThresholdDefinition(levels={level: threshold for level in ALL_LEVELS})


def default_thresholds() -> ThresholdMap:
    """Fresh copy of the built-in thresholds, identical at every level."""
    return {
        identifier: uniform_definition(_decimal(w), _decimal(e), hib, pdn)
        for identifier, (w, e, hib, pdn) in _DEFAULTS.items()
    }


def parse_thresholds(text: Optional[str], source: str = "<thresholds>") -> ThresholdMap:
    """Defaults overlaid with the metrics listed in ``text``.

    Single quotes are accepted in place of double quotes. Unknown metric or
    level names are skipped.

    Raises:
        InvalidConfigError: If the text is not valid JSON or lacks a ``metrics`` array
    """
    thresholds = default_thresholds()
    if text is None or not text.strip():
        return thresholds

    try:
        data = json.loads(text.replace("'", '"'))
    except json.JSONDecodeError as e:
        raise InvalidConfigError("thresholds", source, f"Invalid JSON: {e}")

    if not isinstance(data, dict) or not isinstance(data.get("metrics"), list):
        raise InvalidConfigError(
            "thresholds", source, "Expected an object with a 'metrics' array property"
        )

    for entry in data["metrics"]:
        if isinstance(entry, dict):
            _apply_entry(thresholds, entry)
    return thresholds


def _apply_entry(thresholds: ThresholdMap, entry: Dict[str, Any]) -> None:
    name = entry.get("name")
    identifier = MetricIdentifier.from_name(name) if isinstance(name, str) else None
    if identifier is None:
        logger.debug(f"Ignoring thresholds for unknown metric {name!r}")
        return

    existing = thresholds.get(identifier)
    levels = dict(existing.levels) if existing else {}
    sample = next(iter(levels.values()), None)

    higher_is_better = entry.get("higherIsBetter")
    if not isinstance(higher_is_better, bool):
        higher_is_better = sample.higher_is_better if sample else True
    positive_delta_neutral = entry.get("positiveDeltaNeutral")
    if not isinstance(positive_delta_neutral, bool):
        positive_delta_neutral = sample.positive_delta_neutral if sample else False

    # Direction flags apply to every level, configured or not
    for level in ALL_LEVELS:
        current = levels.get(level) or MetricThreshold()
        levels[level] = MetricThreshold(
            current.warning, current.error, higher_is_better, positive_delta_neutral
        )

    symbol_thresholds = entry.get("symbolThresholds")
    if isinstance(symbol_thresholds, dict):
        for level_name, values in symbol_thresholds.items():
            level = MetricSymbolLevel.from_name(level_name)
            if level is None or not isinstance(values, dict):
                continue
            levels[level] = MetricThreshold(
                _json_decimal(values.get("warning")),
                _json_decimal(values.get("error")),
                higher_is_better,
                positive_delta_neutral,
            )

    description = entry.get("description")
    if not isinstance(description, str) or not description.strip():
        description = existing.description if existing else None

    thresholds[identifier] = MetricThresholdDefinition(levels=levels, description=description)


def _json_decimal(value: Any) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    return parse_decimal(str(value))


def load_thresholds(path: Optional[Union[str, Path]]) -> ThresholdMap:
    """Thresholds from a JSON file, or the defaults when ``path`` is None.

    Raises:
        InvalidPathError: If the file does not exist or cannot be read
        InvalidConfigError: If the file content is invalid
    """
    if path is None:
        return default_thresholds()

    filepath = Path(path)
    if not filepath.is_file():
        raise InvalidPathError(filepath, "Thresholds file not found")
    try:
        text = filepath.read_text(encoding="utf-8-sig")
    except OSError as e:
        raise InvalidPathError(filepath, f"Cannot read thresholds file: {e}")

    thresholds = parse_thresholds(text, str(filepath))
    logger.debug(f"Loaded thresholds from {filepath}")
    return thresholds


def threshold_for(
    thresholds: ThresholdMap, identifier: MetricIdentifier, level: MetricSymbolLevel
) -> Optional[MetricThreshold]:
    """Threshold for ``level``, falling back to the Type-level entry."""
    definition = thresholds.get(identifier)
    if definition is None:
        return None
    threshold = definition.levels.get(level)
    if threshold is None:
        threshold = definition.levels.get(MetricSymbolLevel.TYPE)
    return threshold


def evaluate(value: Optional[Decimal], threshold: Optional[MetricThreshold]) -> ThresholdStatus:
    """Status of one value against one threshold."""
    if value is None:
        return ThresholdStatus.NOT_APPLICABLE
    if threshold is None or (threshold.warning is None and threshold.error is None):
        return ThresholdStatus.SUCCESS

    if threshold.higher_is_better:
        if threshold.error is not None and value <= threshold.error:
            return ThresholdStatus.ERROR
        if threshold.warning is not None and value <= threshold.warning:
            return ThresholdStatus.WARNING
        return ThresholdStatus.SUCCESS

    if threshold.error is not None and value >= threshold.error:
        return ThresholdStatus.ERROR
    if threshold.warning is not None and value >= threshold.warning:
        return ThresholdStatus.WARNING
    return ThresholdStatus.SUCCESS


def evaluate_metric(
    thresholds: ThresholdMap,
    identifier: MetricIdentifier,
    value: Optional[Decimal],
    level: MetricSymbolLevel,
) -> ThresholdStatus:
    return evaluate(value, threshold_for(thresholds, identifier, level))


def apply_thresholds(
    tree: MetricsTree, thresholds: ThresholdMap, include_suppressed: bool = False
) -> Dict[ThresholdStatus, int]:
    """Set ``status`` on every metric in the tree and return counts per status.

    Suppressed metrics read Success unless ``include_suppressed`` is set.
    """
    counts = {status: 0 for status in ThresholdStatus}
    for node in tree.walk():
        suppressed = set() if include_suppressed else node.suppressed_metrics()
        for identifier, metric in node.metrics.items():
            status = evaluate_metric(thresholds, identifier, metric.value, node.level)
            if identifier in suppressed and metric.value is not None:
                status = ThresholdStatus.SUCCESS
            metric.status = status
            counts[status] += 1

    logger.debug(
        "Threshold evaluation: "
        + ", ".join(f"{status.value}={count}" for status, count in counts.items())
    )
    return counts
