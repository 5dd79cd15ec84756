"""Input document parsers, one per supported tool format."""

from enum import Enum

from .base import MetricsParser, check_cancelled
from .opencover import OpenCoverParser
from .roslyn import RoslynMetricsParser
from .sarif import SarifParser


class ParserFamily(Enum):
    """Input formats. Each owns a disjoint set of metric identifiers."""

    OPENCOVER = "opencover"
    ROSLYN = "roslyn"
    SARIF = "sarif"


PARSERS = {
    ParserFamily.OPENCOVER: OpenCoverParser,
    ParserFamily.ROSLYN: RoslynMetricsParser,
    ParserFamily.SARIF: SarifParser,
}


def create_parser(family: ParserFamily) -> MetricsParser:
    return PARSERS[family]()


__all__ = [
    "MetricsParser",
    "OpenCoverParser",
    "RoslynMetricsParser",
    "SarifParser",
    "ParserFamily",
    "create_parser",
    "check_cancelled",
]
