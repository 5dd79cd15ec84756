"""ReportPipeline: parse -> validate -> aggregate -> suppress -> evaluate -> diff -> write."""

from __future__ import annotations

import os
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .aggregation import AggregationTreeBuilder, collect_rule_descriptions
from .baseline import BaselineDiff, BaselineLifecycle, apply_baseline
from .config import ReporterConfig
from .exceptions import MetricsReporterError
from .filters import ElementFilters, split_patterns
from .logging_config import get_logger
from .models import ParsedMetricsDocument, SuppressedSymbolInfo, ThresholdMap, ThresholdStatus
from .parsers import ParserFamily, check_cancelled, create_parser
from .report import load_report_snapshot, load_suppressions, write_report, write_suppressions
from .suppression import (
    SuppressedSymbolsAnalyzer,
    attach_suppressions,
    bind_suppressions,
)
from .thresholds import apply_thresholds, load_thresholds, parse_thresholds
from .validation import try_validate_unique_symbols, validate_unique_symbols

ProgressCallback = Optional[Callable[[str], None]]

logger = get_logger(__name__)

ParseJob = Tuple[ParserFamily, str]


@dataclass
class PipelineResult:
    """Outcome of one report generation run."""

    report_path: Path
    solution_name: str
    element_count: int
    documents: Dict[ParserFamily, int] = field(default_factory=dict)
    status_counts: Dict[ThresholdStatus, int] = field(default_factory=dict)
    suppressions: int = 0
    attached_suppressions: int = 0
    diff: BaselineDiff = field(default_factory=BaselineDiff)
    baseline_loaded: bool = False
    baseline_created: bool = False
    baseline_replaced: bool = False

    @property
    def has_errors(self) -> bool:
        return self.status_counts.get(ThresholdStatus.ERROR, 0) > 0


def parse_jobs(config: ReporterConfig) -> List[ParseJob]:
    """Every configured input with its parser family, in family then input order."""
    jobs: List[ParseJob] = []
    for family, paths in (
        (ParserFamily.OPENCOVER, config.opencover),
        (ParserFamily.ROSLYN, config.roslyn),
        (ParserFamily.SARIF, config.sarif),
    ):
        jobs.extend((family, path) for path in paths)
    return jobs


def _parse_one(job: ParseJob, cancel_event: Optional[threading.Event]) -> ParsedMetricsDocument:
    family, path = job
    return create_parser(family).parse(path, cancel_event)


def parse_documents(
    jobs: Sequence[ParseJob],
    workers: Optional[int] = None,
    cancel_event: Optional[threading.Event] = None,
) -> Dict[ParserFamily, List[ParsedMetricsDocument]]:
    """Parse all inputs concurrently, grouped by family in input order.

    The first failure cancels documents that have not started and is
    re-raised once running ones finish.
    """
    grouped: Dict[ParserFamily, List[ParsedMetricsDocument]] = {f: [] for f in ParserFamily}
    if not jobs:
        return grouped

    max_workers = workers or min(len(jobs), (os.cpu_count() or 1) + 4)
    results: List[Optional[ParsedMetricsDocument]] = [None] * len(jobs)

    if max_workers == 1 or len(jobs) == 1:
        for index, job in enumerate(jobs):
            check_cancelled(cancel_event, "parsing")
            results[index] = _parse_one(job, cancel_event)
    else:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            futures = {
                executor.submit(_parse_one, job, cancel_event): index
                for index, job in enumerate(jobs)
            }
            try:
                for future in as_completed(futures):
                    results[futures[future]] = future.result()
            except BaseException:
                for future in futures:
                    future.cancel()
                raise

    for (family, _), document in zip(jobs, results):
        if document is not None:
            grouped[family].append(document)
    return grouped


def resolve_thresholds(config: ReporterConfig) -> ThresholdMap:
    """Inline thresholds win over a thresholds file; neither gives the defaults."""
    if config.thresholds and config.thresholds.strip():
        return parse_thresholds(config.thresholds, "thresholds")
    return load_thresholds(config.thresholds_file)


class ReportPipeline:
    """Runs one report generation for a ``ReporterConfig``."""

    def __init__(self, config: ReporterConfig):
        self.config = config

    def run(
        self,
        on_progress: ProgressCallback = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> PipelineResult:
        """Generate the report.

        No report or baseline is written when the run fails or is cancelled before the
        report write.

        Raises:
            ConfigurationError: If thresholds or paths are invalid
            AnalysisError: If an input cannot be read or parsed, documents of
                one family overlap, or the run is cancelled
        """
        config = self.config
        lifecycle = BaselineLifecycle(
            config.output_json, config.baseline, config.storage_dir, config.replace_baseline
        )
        lifecycle.capture_context()

        thresholds = resolve_thresholds(config)

        if on_progress:
            on_progress("Parsing input documents...")
        grouped = parse_documents(parse_jobs(config), config.workers, cancel_event)

        if on_progress:
            on_progress("Validating symbols...")
        for family, documents in grouped.items():
            logger.debug(f"Validating {len(documents)} {family.value} documents")
            validate_unique_symbols(documents)

        check_cancelled(cancel_event, "aggregation")
        if on_progress:
            on_progress("Aggregating metrics...")
        documents = [doc for family in ParserFamily for doc in grouped[family]]
        builder = AggregationTreeBuilder(config.solution_name, ElementFilters.from_config(config))
        tree = builder.build(documents)
        rule_descriptions = collect_rule_descriptions(grouped[ParserFamily.SARIF])

        check_cancelled(cancel_event, "suppression analysis")
        if on_progress:
            on_progress("Resolving suppressions...")
        suppressions = self._collect_suppressions(cancel_event)
        bind_suppressions(tree, suppressions)
        attached = attach_suppressions(tree, suppressions)

        if on_progress:
            on_progress("Evaluating thresholds...")
        status_counts = apply_thresholds(tree, thresholds, config.include_suppressed)

        # Last cancellation point: rotation and the report write happen together
        check_cancelled(cancel_event, "report writing")
        created = lifecycle.initialize_baseline()
        rotated = lifecycle.replace_baseline()
        snapshot = None
        if config.baseline and Path(config.baseline).is_file():
            snapshot = load_report_snapshot(config.baseline)
        diff = apply_baseline(tree, snapshot, thresholds)

        if on_progress:
            on_progress("Writing report...")
        report_path = write_report(tree, config.output_json, rule_descriptions)
        finalized = lifecycle.finalize_baseline()

        return PipelineResult(
            report_path=report_path,
            solution_name=tree.solution_name,
            element_count=len(tree) + 1,
            documents={family: len(docs) for family, docs in grouped.items()},
            status_counts=status_counts,
            suppressions=len(suppressions),
            attached_suppressions=attached,
            diff=diff,
            baseline_loaded=snapshot is not None,
            baseline_created=created,
            baseline_replaced=rotated or finalized,
        )

    def _collect_suppressions(
        self, cancel_event: Optional[threading.Event]
    ) -> List[SuppressedSymbolInfo]:
        """Scan sources and refresh the cache, or reuse the cache when scanning is off."""
        config = self.config
        cache_path = config.suppressed_symbols_path

        if not config.analyze_suppressions:
            try:
                return load_suppressions(cache_path)
            except MetricsReporterError as e:
                logger.warning(f"Ignoring unreadable suppressed symbols cache: {e}")
                return []

        analyzer = SuppressedSymbolsAnalyzer(
            config.source_root,
            config.source_folders,
            split_patterns(config.excluded_assemblies),
        )
        suppressions = analyzer.analyze_safely(cancel_event)
        try:
            write_suppressions(suppressions, cache_path)
        except MetricsReporterError as e:
            logger.warning(f"Could not write suppressed symbols cache: {e}")
        return suppressions


def validate_inputs(
    config: ReporterConfig, cancel_event: Optional[threading.Event] = None
) -> Dict[ParserFamily, bool]:
    """Parse every input and check symbol uniqueness per family.

    Every family is checked even after one fails, so all collisions are logged.
    """
    grouped = parse_documents(parse_jobs(config), config.workers, cancel_event)
    return {
        family: try_validate_unique_symbols(documents)
        for family, documents in grouped.items()
    }
