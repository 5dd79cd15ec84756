"""CLI entry point. Registers all subcommands."""

import typer

from .. import __version__
from ._common import console

app = typer.Typer(
    name="metrics-reporter",
    help="Metrics Reporter - merges coverage, code metrics and analyzer findings into one report",
    add_completion=False,
    rich_markup_mode="rich",
)


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"metrics-reporter {__version__}")
        raise typer.Exit()


@app.callback()
def _root(
    version: bool = typer.Option(
        False,
        "--version",
        help="Show version and exit",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """Metrics Reporter - merges coverage, code metrics and analyzer findings into one report."""


# Import subcommands to register them
from .generate import generate as _generate  # noqa: F401, E402
from .validate import validate as _validate  # noqa: F401, E402


def main() -> None:
    app()
