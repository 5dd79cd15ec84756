"""Baseline comparison and rotation.

A baseline is a report from an earlier run. Deltas are ``current - baseline``
per symbol and metric; a symbol missing from the baseline is flagged new
instead of getting a synthetic delta.

Rotation follows three states, decided from what existed when the run
started:

* neither report nor baseline: only the report is written;
* a report but no baseline: the previous report becomes the baseline before
  the new report replaces it;
* a baseline: it is archived under a timestamped name and the previous
  report takes its place, so the next run compares against this run's
  predecessor. Without a previous report the new report fills it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import List, Optional, Tuple, Union

from .aggregation.tree import MetricsTree
from .exceptions import MetricsReporterError
from .file_ops import copy_file_atomic, move_file
from .logging_config import get_logger
from .models import CodeElementKind, MetricIdentifier, ThresholdMap
from .report import ReportSnapshot

logger = get_logger(__name__)

PathLike = Union[str, Path]

ARCHIVE_TIMESTAMP_FORMAT = "%Y%m%d-%H%M%S"


# ── Deltas ───────────────────────────────────────────────────────────────────


@dataclass
class MetricChange:
    """A non-zero delta on one metric of one symbol."""

    kind: CodeElementKind
    fully_qualified_name: str
    metric: MetricIdentifier
    previous: Decimal
    current: Decimal
    delta: Decimal
    direction: str  # better, worse, neutral


@dataclass
class BaselineDiff:
    new_symbols: List[Tuple[CodeElementKind, str]] = field(default_factory=list)
    removed_symbols: List[Tuple[CodeElementKind, str]] = field(default_factory=list)
    changes: List[MetricChange] = field(default_factory=list)

    @property
    def regressions(self) -> List[MetricChange]:
        return [c for c in self.changes if c.direction == "worse"]

    @property
    def improvements(self) -> List[MetricChange]:
        return [c for c in self.changes if c.direction == "better"]


def compute_delta(current: Optional[Decimal], previous: Optional[Decimal]) -> Optional[Decimal]:
    """``current - previous``; None when either is missing or nothing changed."""
    if current is None or previous is None:
        return None
    delta = current - previous
    return delta if delta != 0 else None


def classify_direction(
    identifier: MetricIdentifier, delta: Decimal, thresholds: Optional[ThresholdMap] = None
) -> str:
    """'better', 'worse' or 'neutral' for a delta, from the metric's threshold direction."""
    if delta == 0:
        return "neutral"
    definition = (thresholds or {}).get(identifier)
    sample = next(iter(definition.levels.values()), None) if definition else None
    if sample is None:
        return "neutral"
    if sample.positive_delta_neutral and delta > 0:
        return "neutral"
    if sample.higher_is_better:
        return "better" if delta > 0 else "worse"
    return "better" if delta < 0 else "worse"


def apply_baseline(
    tree: MetricsTree,
    baseline: Optional[ReportSnapshot],
    thresholds: Optional[ThresholdMap] = None,
) -> BaselineDiff:
    """Set ``delta`` and ``is_new`` on every node and summarize the changes.

    Without a baseline nothing is flagged and no deltas are set.
    """
    diff = BaselineDiff()
    if baseline is None:
        return diff

    seen = set()
    for node in tree.walk():
        key = (node.kind, node.fully_qualified_name)
        seen.add(key)
        previous = baseline.get(key)
        if previous is None:
            node.is_new = node.kind is not CodeElementKind.SOLUTION
            if node.is_new:
                diff.new_symbols.append(key)
            for metric in node.metrics.values():
                metric.delta = None
            continue

        node.is_new = False
        for identifier, metric in node.metrics.items():
            prior = previous.get(identifier)
            metric.delta = compute_delta(metric.value, prior)
            if metric.delta is not None:
                diff.changes.append(
                    MetricChange(
                        kind=node.kind,
                        fully_qualified_name=node.fully_qualified_name,
                        metric=identifier,
                        previous=prior,
                        current=metric.value,
                        delta=metric.delta,
                        direction=classify_direction(identifier, metric.delta, thresholds),
                    )
                )

    diff.removed_symbols = sorted(
        (
            key
            for key in baseline.values
            if key not in seen and key[0] is not CodeElementKind.SOLUTION
        ),
        key=lambda k: (k[0].value, k[1]),
    )
    logger.info(
        f"Baseline comparison: {len(diff.new_symbols)} new, {len(diff.removed_symbols)} removed, "
        f"{len(diff.regressions)} regressions, {len(diff.improvements)} improvements"
    )
    return diff


# ── Rotation ─────────────────────────────────────────────────────────────────


def archive_name(baseline_path: Path, now: Optional[datetime] = None) -> str:
    """``baseline.json`` archived at 2024-05-01 13:45:10 is ``baseline-20240501-134510.json``."""
    stamp = (now or datetime.now()).strftime(ARCHIVE_TIMESTAMP_FORMAT)
    return f"{baseline_path.stem}-{stamp}{baseline_path.suffix}"


@dataclass(frozen=True)
class BaselineContext:
    """What existed on disk when the run started."""

    had_report: bool
    had_baseline: bool
    replace_enabled: bool


class BaselineLifecycle:
    """Creates, archives and replaces the baseline around one report write.

    Call order for a run: ``capture_context``, ``initialize_baseline`` and
    ``replace_baseline`` before the baseline is loaded for comparison, then
    ``finalize_baseline`` after the new report is written. The baseline a run
    compares against is therefore always the report of the run before it.
    """

    def __init__(
        self,
        report_path: PathLike,
        baseline_path: Optional[PathLike] = None,
        storage_dir: Optional[PathLike] = None,
        replace_enabled: bool = False,
    ):
        self.report_path = Path(report_path)
        self.baseline_path = Path(baseline_path) if baseline_path else None
        self.storage_dir = Path(storage_dir) if storage_dir else None
        self.replace_enabled = replace_enabled
        self.context: Optional[BaselineContext] = None
        self._fill_from_new_report = False

    def capture_context(self) -> BaselineContext:
        """Record the starting state. Must run before the new report is written."""
        self.context = BaselineContext(
            had_report=self.report_path.is_file(),
            had_baseline=self.baseline_path is not None and self.baseline_path.is_file(),
            replace_enabled=self.replace_enabled,
        )
        logger.debug(
            f"Baseline context: replace={self.context.replace_enabled}, "
            f"had_report={self.context.had_report}, had_baseline={self.context.had_baseline}, "
            f"baseline={self.baseline_path}, storage={self.storage_dir}"
        )
        return self.context

    def _require_context(self) -> BaselineContext:
        if self.context is None:
            return self.capture_context()
        return self.context

    def _rotation_enabled(self) -> bool:
        return self._require_context().replace_enabled and self.baseline_path is not None

    def initialize_baseline(self) -> bool:
        """Promote the previous report to baseline when none exists yet.

        Returns True if a baseline was created.
        """
        if not self._rotation_enabled():
            return False
        context = self._require_context()
        if context.had_baseline:
            return False
        if not context.had_report:
            logger.info("Baseline does not exist and previous report not found; nothing to promote")
            return False

        return self._copy_into_baseline("the previous report")

    def archive_baseline(self, now: Optional[datetime] = None) -> Optional[Path]:
        """Move the current baseline into the storage directory.

        Best effort: failures are logged and None is returned.
        """
        if self.baseline_path is None or not self.baseline_path.is_file():
            return None
        if self.storage_dir is None:
            logger.debug("No baseline storage directory configured; skipping archive")
            return None

        destination = self.storage_dir / archive_name(self.baseline_path, now)
        try:
            move_file(self.baseline_path, destination)
        except MetricsReporterError as e:
            logger.warning(f"Could not archive baseline {self.baseline_path}: {e.summary()}")
            return None
        logger.info(f"Archived baseline to {destination}")
        return destination

    def replace_baseline(self, now: Optional[datetime] = None) -> bool:
        """Archive an existing baseline and promote the previous report into its place.

        When no previous report exists the baseline is kept for this run and
        rotated by ``finalize_baseline`` instead. Returns True if the
        baseline now holds the previous report.
        """
        if not self._rotation_enabled():
            return False
        context = self._require_context()
        if not context.had_baseline:
            return False

        if not (context.had_report and self.report_path.is_file()):
            self._fill_from_new_report = True
            return False

        if not self._archive_before_replace(now):
            return False
        return self._copy_into_baseline("the previous report")

    def finalize_baseline(self, now: Optional[datetime] = None) -> bool:
        """Archive a baseline that had no previous report to replace it and copy the new report in.

        Runs after the new report is written.
        """
        if not self._fill_from_new_report or self.baseline_path is None:
            return False
        self._fill_from_new_report = False
        if not self._archive_before_replace(now):
            return False
        return self._copy_into_baseline("the new report")

    def _archive_before_replace(self, now: Optional[datetime]) -> bool:
        """False when a configured archive could not take the current baseline."""
        if not self.baseline_path.is_file():
            return True
        if self.storage_dir is None:
            logger.debug("No baseline storage directory configured; overwriting baseline")
            return True
        if self.archive_baseline(now) is None:
            logger.warning(
                f"Keeping baseline {self.baseline_path} because it could not be archived"
            )
            return False
        return True

    def _copy_into_baseline(self, description: str) -> bool:
        """Copy the report over the baseline. A failed copy is logged, never raised."""
        try:
            copy_file_atomic(self.report_path, self.baseline_path)
        except MetricsReporterError as e:
            logger.warning(
                f"Could not copy {description} to baseline {self.baseline_path}: {e.summary()}"
            )
            return False
        logger.info(f"Baseline {self.baseline_path} now holds {description}")
        return True
