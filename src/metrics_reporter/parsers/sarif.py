"""SARIF static-analysis findings parser.

Each CA* or IDE* result becomes one Member element with no FQN and a
violation count of 1. The aggregation step attributes it to a symbol by
file and line (see ``aggregation.line_index``).
"""

from __future__ import annotations

import json
import re
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional
from urllib.parse import unquote, urlparse

from ..exceptions import DocumentParseError
from ..logging_config import get_logger
from ..models import (
    CodeElementKind,
    MetricIdentifier,
    MetricValue,
    ParsedCodeElement,
    ParsedMetricsDocument,
    RuleBreakdownEntry,
    RuleDescription,
    RuleViolation,
    SourceLocation,
)
from .base import MetricsParser

logger = get_logger(__name__)

# Rule id prefix -> violation metric; checked in order, case-insensitively
RULE_PREFIXES = (
    ("CA", MetricIdentifier.SARIF_CA_RULE_VIOLATIONS),
    ("IDE", MetricIdentifier.SARIF_IDE_RULE_VIOLATIONS),
)

_WINDOWS_DRIVE_RE = re.compile(r"^/[A-Za-z]:")


def resolve_rule_metric(rule_id: Optional[str]) -> Optional[MetricIdentifier]:
    """Violation metric for a rule id, or None for rules outside the CA/IDE catalogs."""
    if not rule_id:
        return None
    upper = rule_id.strip().upper()
    for prefix, identifier in RULE_PREFIXES:
        if upper.startswith(prefix):
            return identifier
    return None


def uri_to_path(uri: str) -> str:
    """Local path for a ``file://`` URI; other URIs are returned as written."""
    parsed = urlparse(uri)
    if parsed.scheme != "file":
        return uri
    path = unquote(parsed.path)
    if _WINDOWS_DRIVE_RE.match(path):
        path = path[1:]
    if parsed.netloc and parsed.netloc != "localhost":
        path = f"//{parsed.netloc}{path}"
    return path


def _get(data: Any, *keys: str) -> Any:
    for key in keys:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


def _line(region: Any, key: str) -> Optional[int]:
    value = _get(region, key)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return None


class SarifParser(MetricsParser):
    format_name = "SARIF"

    def parse_content(self, content: bytes, source_path: Optional[str]) -> ParsedMetricsDocument:
        try:
            data = json.loads(content.decode("utf-8-sig"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise DocumentParseError(Path(source_path or "<memory>"), self.format_name, str(e))

        runs = _get(data, "runs")
        if not isinstance(runs, list):
            logger.warning(f"SARIF document {source_path} has no 'runs' array")
            return ParsedMetricsDocument(source_path=source_path, elements=())

        elements: List[ParsedCodeElement] = []
        rules: Dict[str, RuleDescription] = {}
        for run in runs:
            elements.extend(self._parse_results(run))
            rules.update(self._parse_rules(run))

        return ParsedMetricsDocument(
            source_path=source_path, elements=tuple(elements), rule_descriptions=rules
        )

    def _parse_results(self, run: Any) -> Iterator[ParsedCodeElement]:
        results = _get(run, "results")
        if not isinstance(results, list):
            return
        for result in results:
            rule_id = _get(result, "ruleId")
            if not isinstance(rule_id, str):
                continue
            identifier = resolve_rule_metric(rule_id)
            if identifier is None:
                continue
            uri, source = _primary_location(result)
            if source is None:
                # Only results that name a file can be attributed
                logger.debug(f"Skipping {rule_id} result without a physical location")
                continue
            yield self._violation_element(result, rule_id, identifier, uri, source)

    @staticmethod
    def _violation_element(
        result: Any,
        rule_id: str,
        identifier: MetricIdentifier,
        uri: str,
        source: SourceLocation,
    ) -> ParsedCodeElement:
        message = _get(result, "message", "text")
        violation = RuleViolation(
            message=message if isinstance(message, str) else None,
            uri=uri,
            start_line=source.start_line,
            end_line=source.end_line,
        )
        metric = MetricValue(
            Decimal(1),
            breakdown={rule_id: RuleBreakdownEntry(1, (violation,))},
        )
        return ParsedCodeElement(
            kind=CodeElementKind.MEMBER,
            name=rule_id,
            fully_qualified_name=None,
            source=source,
            metrics={identifier: metric},
        )

    @staticmethod
    def _parse_rules(run: Any) -> Dict[str, RuleDescription]:
        rules = _get(run, "tool", "driver", "rules")
        catalog: Dict[str, RuleDescription] = {}
        if not isinstance(rules, list):
            return catalog
        for rule in rules:
            rule_id = _get(rule, "id")
            if not isinstance(rule_id, str) or not rule_id.strip():
                continue
            if resolve_rule_metric(rule_id) is None:
                continue
            catalog[rule_id] = RuleDescription(
                rule_id=rule_id,
                short_description=_get(rule, "shortDescription", "text"),
                full_description=_get(rule, "fullDescription", "text"),
                help_uri=_get(rule, "helpUri"),
                category=_get(rule, "properties", "category"),
            )
        return catalog


def _primary_location(result: Any) -> tuple[Optional[str], Optional[SourceLocation]]:
    """First physical location that names a file."""
    locations = _get(result, "locations")
    if not isinstance(locations, list):
        return None, None
    for entry in locations:
        physical = _get(entry, "physicalLocation")
        uri = _get(physical, "artifactLocation", "uri")
        if not isinstance(uri, str):
            continue
        region = _get(physical, "region")
        start = _line(region, "startLine")
        end = _line(region, "endLine") or start
        return uri, SourceLocation(uri_to_path(uri), start, end)
    return None, None
