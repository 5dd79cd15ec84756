"""Parser contract and XML helpers shared by the three document parsers."""

from __future__ import annotations

import threading
import xml.etree.ElementTree as ET
from abc import ABC, abstractmethod
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Iterator, Optional, Union

from ..exceptions import DocumentParseError, FileAccessError, OperationCancelledError
from ..logging_config import get_logger
from ..models import ParsedMetricsDocument

logger = get_logger(__name__)

PathLike = Union[str, Path]


def check_cancelled(cancel_event: Optional[threading.Event], stage: str) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise OperationCancelledError(stage)


class MetricsParser(ABC):
    """Turns one input document into a flat ``ParsedMetricsDocument``.

    Parsers hold no state between calls, so one instance can be shared by
    concurrent workers.
    """

    format_name: str = "metrics"

    def parse(
        self, path: PathLike, cancel_event: Optional[threading.Event] = None
    ) -> ParsedMetricsDocument:
        """Read and parse ``path``.

        Raises:
            OperationCancelledError: If ``cancel_event`` is set before parsing
            FileAccessError: If the file cannot be read
            DocumentParseError: If the content is malformed
        """
        filepath = Path(path)
        check_cancelled(cancel_event, f"{self.format_name} parsing")

        try:
            content = filepath.read_bytes()
        except OSError as e:
            raise FileAccessError(filepath, f"Read failed: {e}")

        logger.debug(f"Parsing {self.format_name} document {filepath} ({len(content)} bytes)")
        document = self.parse_content(content, str(filepath))
        logger.info(
            f"Parsed {len(document.elements)} elements from {self.format_name} document {filepath}"
        )
        return document

    @abstractmethod
    def parse_content(self, content: bytes, source_path: Optional[str]) -> ParsedMetricsDocument:
        """Parse raw document bytes. ``source_path`` is only used for reporting."""


def parse_xml(content: bytes, source_path: Optional[str], format_name: str) -> ET.Element:
    try:
        return ET.fromstring(content)
    except ET.ParseError as e:
        raise DocumentParseError(Path(source_path or "<memory>"), format_name, str(e))


def local_name(element: ET.Element) -> str:
    """Tag without any ``{namespace}`` prefix."""
    tag = element.tag if isinstance(element.tag, str) else ""
    return tag.rsplit("}", 1)[-1]


def children(element: Optional[ET.Element], name: str) -> Iterator[ET.Element]:
    """Direct children whose local name matches ``name`` case-insensitively.

    ``"*"`` matches every element child.
    """
    if element is None:
        return
    wanted = name.lower()
    for child in element:
        if not isinstance(child.tag, str):
            continue
        if wanted == "*" or local_name(child).lower() == wanted:
            yield child


def child(element: Optional[ET.Element], name: str) -> Optional[ET.Element]:
    return next(children(element, name), None)


def nested(element: Optional[ET.Element], *path: str) -> Iterator[ET.Element]:
    """Walk a container path such as ``nested(module, "Classes", "Class")``."""
    if element is None:
        return
    if len(path) == 1:
        yield from children(element, path[0])
        return
    for container in children(element, path[0]):
        yield from nested(container, *path[1:])


def child_text(element: Optional[ET.Element], name: str) -> Optional[str]:
    found = child(element, name)
    if found is None or found.text is None:
        return None
    text = found.text.strip()
    return text or None


def attribute(element: Optional[ET.Element], name: str) -> Optional[str]:
    """Attribute value looked up case-insensitively."""
    if element is None:
        return None
    value = element.get(name)
    if value is not None:
        return value
    wanted = name.lower()
    for key, candidate in element.attrib.items():
        if key.rsplit("}", 1)[-1].lower() == wanted:
            return candidate
    return None


def parse_decimal(value: Optional[str]) -> Optional[Decimal]:
    """Invariant-culture decimal; blanks and junk give None."""
    if value is None or not value.strip():
        return None
    try:
        parsed = Decimal(value.strip())
    except InvalidOperation:
        return None
    if not parsed.is_finite():
        return None
    return parsed


def parse_int(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value.strip())
    except ValueError:
        return None
