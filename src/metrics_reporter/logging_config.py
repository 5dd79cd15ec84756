"""Logging setup for command-line runs.

Package loggers live under ``metrics_reporter``. Console output goes to
stderr through rich so the summary on stdout stays machine-readable. A log
file, when configured, receives plain timestamped lines at debug level
whatever the console verbosity, which is what CI jobs keep as an artifact.
"""

import logging
from pathlib import Path
from typing import List, Optional, Union

from rich.console import Console
from rich.logging import RichHandler

ROOT_LOGGER_NAME = "metrics_reporter"

FILE_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
FILE_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def resolve_level(verbose: bool = False, quiet: bool = False) -> int:
    """Console level for the CLI flags; ``quiet`` wins over ``verbose``."""
    if quiet:
        return logging.ERROR
    if verbose:
        return logging.DEBUG
    return logging.WARNING


def _console_handler(level: int) -> logging.Handler:
    verbose = level <= logging.DEBUG
    handler = RichHandler(
        console=Console(stderr=True),
        rich_tracebacks=True,
        tracebacks_show_locals=verbose,
        markup=False,
        show_time=True,
        show_path=verbose,
    )
    handler.setLevel(level)
    return handler


def _file_handler(log_file: Union[str, Path]) -> logging.Handler:
    path = Path(log_file)
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, mode="a", encoding="utf-8")
    handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=FILE_DATE_FORMAT))
    handler.setLevel(logging.DEBUG)
    return handler


def setup_logging(
    verbose: bool = False, quiet: bool = False, log_file: Optional[str] = None
) -> logging.Logger:
    """Install the console handler and, optionally, a debug-level log file.

    Args:
        verbose: Show DEBUG messages on the console
        quiet: Show only errors on the console
        log_file: File to append every package message to

    Returns:
        The ``metrics_reporter`` logger
    """
    console_level = resolve_level(verbose, quiet)
    handlers: List[logging.Handler] = [_console_handler(console_level)]
    logger_level = console_level
    if log_file:
        handlers.append(_file_handler(log_file))
        logger_level = logging.DEBUG

    # force=True so repeated invocations in one process replace earlier handlers
    logging.basicConfig(level=console_level, format="%(message)s", handlers=handlers, force=True)

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(logger_level)
    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Logger under the ``metrics_reporter`` hierarchy.

    ``get_logger(__name__)`` is the usual call; names outside the package are
    nested under it so one level setting covers everything.
    """
    if name is None:
        return logging.getLogger(ROOT_LOGGER_NAME)
    if name != ROOT_LOGGER_NAME and not name.startswith(ROOT_LOGGER_NAME + "."):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)
