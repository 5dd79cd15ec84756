"""
Safe file operations for Metrics Reporter.

Reports, baselines and suppression caches are written to a temporary file
in the destination directory and moved into place, so an interrupted write
never leaves a truncated destination behind.
"""

import os
import shutil
import tempfile
import time
from pathlib import Path
from typing import Optional, Union

from .exceptions import FileAccessError
from .logging_config import get_logger

logger = get_logger(__name__)

PathLike = Union[str, Path]

DEFAULT_RETRIES = 3
RETRY_DELAY_SECONDS = 0.2


def atomic_write_text(
    path: PathLike,
    text: str,
    encoding: str = "utf-8",
    retries: int = DEFAULT_RETRIES,
    retry_delay: float = RETRY_DELAY_SECONDS,
) -> Path:
    """
    Write ``text`` to ``path`` via a temporary file and an atomic replace.

    Args:
        path: Destination file
        text: Content to write
        encoding: Text encoding
        retries: Attempts before giving up
        retry_delay: Seconds to wait between attempts

    Returns:
        The destination path

    Raises:
        FileAccessError: If every attempt fails
    """
    target = Path(path)
    last_error: Optional[OSError] = None

    for attempt in range(1, max(1, retries) + 1):
        tmp_path = None
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                mode="w",
                encoding=encoding,
                dir=target.parent,
                prefix=f".{target.name}.",
                suffix=".tmp",
                delete=False,
            ) as tmp:
                tmp_path = Path(tmp.name)
                tmp.write(text)
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(tmp_path, target)
            tmp_path = None
            return target
        except OSError as e:
            last_error = e
            logger.warning(f"Write to {target} failed (attempt {attempt}/{retries}): {e}")
            if attempt < retries:
                time.sleep(retry_delay)
        finally:
            if tmp_path is not None:
                try:
                    tmp_path.unlink(missing_ok=True)
                except OSError:
                    logger.debug(f"Could not remove temporary file {tmp_path}")

    raise FileAccessError(target, f"Write failed after {retries} attempts: {last_error}")


def copy_file_atomic(source: PathLike, destination: PathLike) -> Path:
    """
    Copy ``source`` over ``destination`` without exposing a partial copy.

    Raises:
        FileAccessError: If the source cannot be read or the copy fails
    """
    src = Path(source)
    try:
        text = src.read_text(encoding="utf-8-sig")
    except OSError as e:
        raise FileAccessError(src, f"Read failed: {e}")
    return atomic_write_text(destination, text)


def move_file(source: PathLike, destination: PathLike) -> Path:
    """Move a file, creating the destination directory.

    Raises:
        FileAccessError: If the move fails
    """
    src = Path(source)
    dst = Path(destination)
    try:
        dst.parent.mkdir(parents=True, exist_ok=True)
        shutil.move(str(src), str(dst))
    except OSError as e:
        raise FileAccessError(src, f"Move to {dst} failed: {e}")
    return dst
