"""Collectors that run the Go toolchain and turn its output into store rows."""

from testintel.ingestion.coverage_profile import (
    CoverageBlock,
    CoverageProfile,
    ParseError,
    format_profile,
    load_profile,
    parse_profile,
)
from testintel.ingestion.function_locator import FunctionIndex, FunctionLocator
from testintel.ingestion.packages import GoPackage, SourceResolver, list_packages
from testintel.ingestion.runner import CollectionSummary, collect
from testintel.ingestion.test_coverage import CorrelationResult, TestCoverageCorrelator
from testintel.ingestion.test_events import TestEvent, TestRun, collect_test_events
from testintel.ingestion.tool_runner import ToolRunner

__all__ = [
    "CollectionSummary",
    "CorrelationResult",
    "CoverageBlock",
    "CoverageProfile",
    "FunctionIndex",
    "FunctionLocator",
    "GoPackage",
    "ParseError",
    "SourceResolver",
    "TestCoverageCorrelator",
    "TestEvent",
    "TestRun",
    "ToolRunner",
    "collect",
    "collect_test_events",
    "format_profile",
    "list_packages",
    "load_profile",
    "parse_profile",
]
