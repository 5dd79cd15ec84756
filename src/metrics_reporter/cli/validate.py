"""Validate command: parses inputs and checks symbol uniqueness only."""

from pathlib import Path
from typing import List, Optional

import typer

from . import app
from ._common import console, resolve_config
from ..exceptions import MetricsReporterError
from ..logging_config import setup_logging
from ..pipeline import validate_inputs


@app.command()
def validate(
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
    config: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Configuration file path (TOML format)",
        exists=True, file_okay=True, dir_okay=False, readable=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable DEBUG logging"),
):
    """Check that the inputs parse and that no two documents of one format share a symbol."""
    try:
        settings = resolve_config(
            config=config, opencover=opencover, roslyn=roslyn, sarif=sarif, verbose=verbose
        )
    except MetricsReporterError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    logger = setup_logging(verbose=settings.verbosity == "verbose", log_file=settings.log_file)

    if not settings.has_inputs:
        console.print("[red]Error:[/red] No input documents given (--opencover, --roslyn, --sarif)")
        raise typer.Exit(1)

    try:
        results = validate_inputs(settings)
    except MetricsReporterError as e:
        logger.error(f"{e.__class__.__name__}: {e}")
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    failed = [family.value for family, ok in results.items() if not ok]
    if failed:
        console.print(f"[red]Duplicate symbols across {', '.join(failed)} documents[/red]")
        raise typer.Exit(1)
    console.print("[green]All inputs are valid[/green]")
