"""Cross-document symbol uniqueness checks.

Coverage tools happily emit the same method in two reports when their test
runs overlap. Merging both would double-count, so documents of one parser
family must not share any Type or Member FQN. Repeats inside a single
document are fine: some tools write one row per reported value.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence, Tuple

from .exceptions import DuplicateSymbolError
from .logging_config import get_logger
from .models import CodeElementKind, ParsedMetricsDocument

logger = get_logger(__name__)

_CHECKED_KINDS = {
    CodeElementKind.TYPE: "type",
    CodeElementKind.MEMBER: "member",
}

Collision = Tuple[str, str, str]


def document_id(document: ParsedMetricsDocument, index: int) -> str:
    """Path of the document, or an ordinal placeholder when it has none."""
    if document.source_path and document.source_path.strip():
        return document.source_path
    return f"Document#{index + 1}"


def find_symbol_collisions(
    documents: Sequence[ParsedMetricsDocument],
) -> List[Tuple[CodeElementKind, Collision]]:
    """One ``(kind, (fqn, first_doc, second_doc))`` entry per colliding symbol."""
    origins: Dict[Tuple[CodeElementKind, str], str] = {}
    reported = set()
    collisions: List[Tuple[CodeElementKind, Collision]] = []

    for index, document in enumerate(documents):
        doc_id = document_id(document, index)
        for element in document.elements:
            if element.kind not in _CHECKED_KINDS:
                continue
            fqn = element.fully_qualified_name
            if fqn is None or not fqn.strip():
                continue

            key = (element.kind, fqn)
            origin = origins.get(key)
            if origin is None:
                origins[key] = doc_id
            elif origin != doc_id and key not in reported:
                reported.add(key)
                collisions.append((element.kind, (fqn, origin, doc_id)))

    return collisions


def try_validate_unique_symbols(
    documents: Sequence[ParsedMetricsDocument], log: Optional[logging.Logger] = None
) -> bool:
    """Log one error per colliding FQN and return False if any were found."""
    if len(documents) <= 1:
        return True

    log = log or logger
    collisions = find_symbol_collisions(documents)
    for kind, (fqn, origin, doc_id) in collisions:
        log.error(
            f"Duplicate {_CHECKED_KINDS[kind]} '{fqn}' detected in '{origin}' and '{doc_id}'. "
            "Ensure coverage XML inputs do not overlap."
        )
    return not collisions


def validate_unique_symbols(documents: Sequence[ParsedMetricsDocument]) -> None:
    """Raise DuplicateSymbolError when documents of one family overlap."""
    if len(documents) <= 1:
        return
    if not try_validate_unique_symbols(documents):
        collisions = [collision for _, collision in find_symbol_collisions(documents)]
        raise DuplicateSymbolError(collisions)
