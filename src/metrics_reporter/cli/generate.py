"""Generate command: runs the full report pipeline."""

import json
import threading
from pathlib import Path
from typing import List, Optional

import typer
from rich.table import Table

from . import app
from ._common import STATUS_STYLES, console, resolve_config
from ..exceptions import MetricsReporterError
from ..logging_config import setup_logging
from ..models import ThresholdStatus
from ..pipeline import PipelineResult, ReportPipeline


@app.command()
def generate(
    opencover: Optional[List[Path]] = typer.Option(
        None, "--opencover", help="OpenCover coverage XML (repeatable)",
        exists=True, file_okay=True, dir_okay=False, readable=True,
    ),
    roslyn: Optional[List[Path]] = typer.Option(
        None, "--roslyn", help="Roslyn code metrics XML (repeatable)",
        exists=True, file_okay=True, dir_okay=False, readable=True,
    ),
    sarif: Optional[List[Path]] = typer.Option(
        None, "--sarif", help="SARIF analyzer log (repeatable)",
        exists=True, file_okay=True, dir_okay=False, readable=True,
    ),
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", help="Report JSON path [default: metrics-report.json]",
    ),
    solution_name: Optional[str] = typer.Option(
        None, "--solution-name", help="Name of the Solution root element",
    ),
    baseline: Optional[Path] = typer.Option(
        None, "--baseline", help="Baseline report to compute deltas against",
    ),
    storage_dir: Optional[Path] = typer.Option(
        None, "--storage-dir", help="Directory for archived baselines",
        file_okay=False, dir_okay=True,
    ),
    replace_baseline: bool = typer.Option(
        False, "--replace-baseline", help="Rotate the baseline after this run",
    ),
    thresholds_file: Optional[Path] = typer.Option(
        None, "--thresholds-file", help="JSON threshold overrides",
    ),
    thresholds: Optional[str] = typer.Option(
        None, "--thresholds", help="Inline JSON threshold overrides",
    ),
    analyze_suppressions: bool = typer.Option(
        False, "--analyze-suppressions", help="Scan C# sources for SuppressMessage attributes",
    ),
    solution_dir: Optional[Path] = typer.Option(
        None, "--solution-dir", help="Root the source folders are relative to",
        file_okay=False, dir_okay=True,
    ),
    source_folder: Optional[List[str]] = typer.Option(
        None, "--source-folder", help="Source folder to scan (repeatable) [default: src]",
    ),
    excluded_assemblies: Optional[str] = typer.Option(
        None, "--excluded-assemblies", help="Assembly name patterns to skip, comma separated",
    ),
    excluded_members: Optional[str] = typer.Option(
        None, "--excluded-members",
        help="Member name patterns to leave out of the report [default: ctor,cctor,*b__*]",
    ),
    excluded_types: Optional[str] = typer.Option(
        None, "--excluded-types", help="Type name patterns to leave out of the report",
    ),
    exclude_methods: bool = typer.Option(
        False, "--exclude-methods", help="Drop methods that carry no analyzer findings",
    ),
    exclude_properties: bool = typer.Option(
        False, "--exclude-properties", help="Drop properties that carry no analyzer findings",
    ),
    exclude_fields: bool = typer.Option(
        False, "--exclude-fields", help="Drop fields that carry no analyzer findings",
    ),
    exclude_events: bool = typer.Option(
        False, "--exclude-events", help="Drop events that carry no analyzer findings",
    ),
    suppressed_symbols: Optional[Path] = typer.Option(
        None, "--suppressed-symbols", help="Suppressed symbols cache path",
    ),
    include_suppressed: bool = typer.Option(
        False, "--include-suppressed", help="Evaluate suppressed metrics against thresholds",
    ),
    workers: Optional[int] = typer.Option(
        None, "--workers", "-w", help="Parallel parser workers", min=1,
    ),
    config: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Configuration file path (TOML format)",
        exists=True, file_okay=True, dir_okay=False, readable=True,
    ),
    json_output: bool = typer.Option(
        False, "--json", help="Print the run summary as JSON",
    ),
    log_file: Optional[Path] = typer.Option(
        None, "--log-file", help="Append plain-text logs to this file",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable DEBUG logging"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Only log errors"),
):
    """Merge the inputs into a metrics report.

    [bold]Examples:[/bold]

      metrics-reporter generate --opencover coverage.xml --roslyn metrics.xml

      metrics-reporter generate --sarif build.sarif --baseline baseline.json --replace-baseline
    """
    try:
        settings = resolve_config(
            config=config,
            opencover=opencover,
            roslyn=roslyn,
            sarif=sarif,
            verbose=verbose,
            quiet=quiet,
            output_json=output,
            solution_name=solution_name,
            baseline=baseline,
            storage_dir=storage_dir,
            replace_baseline=replace_baseline,
            thresholds_file=thresholds_file,
            thresholds=thresholds,
            analyze_suppressions=analyze_suppressions,
            solution_dir=solution_dir,
            source_folders=source_folder,
            excluded_assemblies=excluded_assemblies,
            excluded_members=excluded_members,
            excluded_types=excluded_types,
            exclude_methods=exclude_methods,
            exclude_properties=exclude_properties,
            exclude_fields=exclude_fields,
            exclude_events=exclude_events,
            suppressed_symbols=suppressed_symbols,
            include_suppressed=include_suppressed,
            workers=workers,
            log_file=log_file,
        )
    except MetricsReporterError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    logger = setup_logging(
        verbose=settings.verbosity == "verbose",
        quiet=settings.verbosity == "quiet",
        log_file=settings.log_file,
    )

    if not settings.has_inputs:
        console.print("[red]Error:[/red] No input documents given (--opencover, --roslyn, --sarif)")
        raise typer.Exit(1)

    cancel_event = threading.Event()
    try:
        if json_output:
            result = ReportPipeline(settings).run(cancel_event=cancel_event)
        else:
            with console.status("[cyan]Generating report...[/cyan]") as status:
                result = ReportPipeline(settings).run(
                    on_progress=lambda msg: status.update(f"[cyan]{msg}[/cyan]"),
                    cancel_event=cancel_event,
                )
    except MetricsReporterError as e:
        logger.error(f"{e.__class__.__name__}: {e}")
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    except KeyboardInterrupt:
        cancel_event.set()
        logger.info("Report generation interrupted by user")
        console.print("\n[yellow]Report generation interrupted[/yellow]")
        raise typer.Exit(130)

    if json_output:
        print(json.dumps(summary_to_dict(result), indent=2))
    else:
        _output_rich(result)


def summary_to_dict(result: PipelineResult) -> dict:
    diff = result.diff
    return {
        "report": str(result.report_path),
        "solution": result.solution_name,
        "elements": result.element_count,
        "documents": {family.value: count for family, count in result.documents.items()},
        "statuses": {status.value: count for status, count in result.status_counts.items()},
        "suppressions": {
            "found": result.suppressions,
            "attached": result.attached_suppressions,
        },
        "baseline": {
            "loaded": result.baseline_loaded,
            "created": result.baseline_created,
            "replaced": result.baseline_replaced,
            "new_symbols": len(diff.new_symbols),
            "removed_symbols": len(diff.removed_symbols),
            "regressions": len(diff.regressions),
            "improvements": len(diff.improvements),
        },
    }


def _output_rich(result: PipelineResult) -> None:
    console.print()
    console.print(
        f"[bold cyan]METRICS REPORT[/bold cyan] -- {result.solution_name} "
        f"({result.element_count} elements)"
    )
    inputs = ", ".join(
        f"{count} {family.value}" for family, count in result.documents.items() if count
    )
    console.print(f"[dim]Inputs: {inputs or 'none'}[/dim]")
    console.print()

    table = Table(show_header=True, show_lines=False, pad_edge=True)
    table.add_column("Status", min_width=14)
    table.add_column("Metrics", justify="right")
    for status in (
        ThresholdStatus.ERROR,
        ThresholdStatus.WARNING,
        ThresholdStatus.SUCCESS,
        ThresholdStatus.NOT_APPLICABLE,
    ):
        style = STATUS_STYLES[status.value]
        table.add_row(
            f"[{style}]{status.value}[/{style}]", str(result.status_counts.get(status, 0))
        )
    console.print(table)

    if result.suppressions:
        console.print(
            f"Suppressions: {result.suppressions} found, "
            f"{result.attached_suppressions} matched report symbols"
        )

    if result.baseline_loaded:
        diff = result.diff
        console.print(
            f"Baseline: [green]{len(diff.improvements)} improved[/green], "
            f"[red]{len(diff.regressions)} regressed[/red], "
            f"{len(diff.new_symbols)} new, {len(diff.removed_symbols)} removed"
        )
        for change in diff.regressions[:10]:
            console.print(
                f"  [red]{change.metric.value}[/red] {change.fully_qualified_name}: "
                f"{change.previous} -> {change.current}"
            )
    if result.baseline_created:
        console.print("[dim]Baseline created from the previous report[/dim]")
    elif result.baseline_replaced:
        console.print("[dim]Baseline replaced[/dim]")

    console.print()
    console.print(f"[green]Report written to {result.report_path}[/green]")

